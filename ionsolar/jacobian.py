# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np

from .observables import *
from .getF import getF


def getJ(sys, y, psi, light):
    ###########################################################################
    #                     organization of the Jacobian matrix                 #
    ###########################################################################
    # Rows and columns follow the state vector
    # [P(0..N), phi(0..N), n(0..N), p(0..N),
    #  phiE(0..NE-1), nE(0..NE-1), phiH(1..NH), pH(1..NH), (psi)]
    #
    # Chains of nodes spanning a layer boundary
    # -----------------------------------------
    # sys.phi_idx: potential on the combined grid, NE + N + 1 + NH nodes
    # sys.e_idx:   electrons of the ETL followed by n_0, read as nE = n_0/kE
    # sys.h_idx:   p_N, read as pH = p_N/kH, followed by the holes of the HTL
    #
    # Every flux of an edge enters the rows of its two nodes with opposite
    # signs and depends on the two densities and two potentials of the edge.

    par, mesh = sys.params, sys.mesh
    N, NE, NH = sys.N, sys.NE, sys.NH
    P, phi, n, p, phiE, nE, phiH, pH = sys.split(y)

    Phi = np.concatenate((phiE, phi, phiH))
    dPhi = np.diff(Phi)
    dvE, dv, dvH = dPhi[:NE], dPhi[NE:NE+N], dPhi[NE+N:]
    nEx = np.append(nE, n[0] / par.kE)
    pHx = np.insert(pH, 0, p[-1] / par.kH)

    # lists of rows, columns and data that will create the sparse Jacobian
    rows = []
    columns = []
    data = []

    def update(r, c, d):
        r, c, d = np.broadcast_arrays(r, c, d)
        rows.append(r.ravel())
        columns.append(c.ravel())
        data.append(d.ravel())

    def update_flux(r, a, cl, cr, vl, vr, derivs):
        # derivatives of a * j in the rows r, for a flux j of the edges
        # (cl, cr) with potentials (vl, vr)
        dj_ul, dj_ur, dj_dv = derivs
        update(r, cl, a * dj_ul)
        update(r, cr, a * dj_ur)
        update(r, vr, a * dj_dv)
        update(r, vl, -a * dj_dv)

    sites = np.arange(N+1)
    iP, iphi, i_n, ip = sys.iP + sites, sys.iphi + sites, sys.in_ + sites, sys.ip + sites
    vl, vr = iphi[:-1], iphi[1:]

    ###########################################################################
    #                             ion vacancies                               #
    ###########################################################################
    if sys.mode.ions == 'frozen':
        update(iP, iP, 1.)
    else:
        dFP = get_flux_derivs(-1 / mesh.dx, P[:-1], P[1:], dv, -1)
        # fP_s = -lam * (FP_s - FP_sm1)
        first = 1 if sys.mode.ions == 'conserved' else 0
        update_flux(iP[first:-1], -par.lam, iP[first:-1], iP[first+1:],
                    vl[first:], vr[first:], [d[first:] for d in dFP])
        update_flux(iP[1:], par.lam, iP[:-1], iP[1:], vl, vr, dFP)
        if first:
            # total number of vacancies
            update(iP[0], iP, sys.h)

    ###########################################################################
    #                          electrons and holes                            #
    ###########################################################################
    djn = get_flux_derivs(par.Kn / mesh.dx, n[:-1], n[1:], dv, 1)
    update_flux(i_n[:-1], 1., i_n[:-1], i_n[1:], vl, vr, djn)
    update_flux(i_n[1:], -1., i_n[:-1], i_n[1:], vl, vr, djn)

    djp = get_flux_derivs(-par.Kp / mesh.dx, p[:-1], p[1:], dv, -1)
    update_flux(ip[:-1], -1., ip[:-1], ip[1:], vl, vr, djp)
    update_flux(ip[1:], 1., ip[:-1], ip[1:], vl, vr, djp)

    # bulk generation and recombination
    dr_dn, dr_dp = get_bulk_rr_derivs(par, n, p)
    for r in (i_n, ip):
        update(r, i_n, -dr_dn * sys.h)
        update(r, ip, -dr_dp * sys.h)

    # interface recombination
    drl_dnE, drl_dp = get_left_rr_derivs(par, nEx[-1], p[0])
    drr_dn, drr_dpH = get_right_rr_derivs(par, n[-1], pHx[0])
    for r in (i_n[0], ip[0]):
        update(r, [i_n[0], ip[0]], [-drl_dnE / par.kE, -drl_dp])
    for r in (i_n[-1], ip[-1]):
        update(r, [i_n[-1], ip[-1]], [-drr_dn, -drr_dpH / par.kH])

    ###########################################################################
    #                          transport layers                               #
    ###########################################################################
    e_idx, e_scale = sys.e_idx, sys.e_scale
    djE = get_flux_derivs(par.KE / mesh.dxE, nEx[:-1], nEx[1:], dvE, 1)
    djE = (djE[0] * e_scale[:-1], djE[1] * e_scale[1:], djE[2])
    evl, evr = sys.phi_idx[:NE], sys.phi_idx[1:NE+1]
    # fnE_s = jE_s - jE_sm1, the contact node is not an equation of the fluxes
    update_flux(e_idx[1:-1], 1., e_idx[1:-1], e_idx[2:], evl[1:], evr[1:],
                [d[1:] for d in djE])
    update_flux(e_idx[1:], -1., e_idx[:-1], e_idx[1:], evl, evr, djE)
    update(e_idx[0], e_idx[0], 1.)

    h_idx, h_scale = sys.h_idx, sys.h_scale
    djH = get_flux_derivs(-par.KH / mesh.dxH, pHx[:-1], pHx[1:], dvH, -1)
    djH = (djH[0] * h_scale[:-1], djH[1] * h_scale[1:], djH[2])
    hvl, hvr = sys.phi_idx[NE+N:-1], sys.phi_idx[NE+N+1:]
    # fpH_s = -(jH_s - jH_sm1), the contact node is fixed
    update_flux(h_idx[:-1], -1., h_idx[:-1], h_idx[1:], hvl, hvr, djH)
    update_flux(h_idx[1:-1], 1., h_idx[:-2], h_idx[1:-1], hvl[:-1], hvr[:-1],
                [d[:-1] for d in djH])
    update(h_idx[-1], h_idx[-1], 1.)

    ###########################################################################
    #                      Poisson equation, all layers                       #
    ###########################################################################
    phi_idx = sys.phi_idx
    a = par.lam**2 * sys.eps / sys.dX
    update(phi_idx[1:-1], phi_idx[:-2], a[:-1])
    update(phi_idx[1:-1], phi_idx[1:-1], -(a[:-1] + a[1:]))
    update(phi_idx[1:-1], phi_idx[2:], a[1:])

    # charges of the control volumes
    update(phi_idx[1:NE], e_idx[1:NE], -par.delta * sys.hEx[1:NE])
    update(iphi[0], i_n[0], -par.delta * sys.hEx[-1] / par.kE)
    update(iphi, iP, sys.h)
    update(iphi, i_n, -par.delta * sys.h)
    update(iphi, ip, par.delta * par.chi * sys.h)
    update(iphi[-1], ip[-1], par.delta * par.chi * sys.hHx[0] / par.kH)
    update(phi_idx[NE+N+1:-1], h_idx[1:-1], par.delta * par.chi * sys.hHx[1:-1])

    # contacts
    update(phi_idx[[0, -1]], phi_idx[[0, -1]], 1.)

    if sys.mode.open_circuit:
        ipsi = sys.ipsi
        update(phi_idx[[0, -1]], ipsi, [-1., 1.])
        # zero current through the ETL contact
        update_flux(ipsi, 1., e_idx[0], e_idx[1], evl[0], evr[0],
                    [d[0] for d in djE])

    return np.concatenate(rows), np.concatenate(columns), np.concatenate(data)


def getJ_numeric(sys, y, psi, light, f0=None):
    """
    Finite difference approximation of the Jacobian.

    Columns that share no row in the sparsity pattern of the system are
    perturbed together, and rows linear in the state are filled exactly.

    Parameters
    ----------
    sys: Engine
        The discretized system.
    y: numpy array of floats
        State vector.
    psi: float
        Imposed potential drop variable.
    light: float
        Light intensity.
    f0: numpy array of floats
        Right-hand side at y, computed if not given.

    Returns
    -------
    rows, columns, data: numpy arrays
        Coordinates and values of the nonzero entries.
    """
    if f0 is None:
        f0 = getF(sys, y, psi, light)
    pattern = sys.fd_pattern
    eps = np.finfo(float).eps ** 0.5

    rows, columns, data = [], [], []
    for group in sys.fd_groups:
        yp = y.copy()
        yp[group] += eps * np.maximum(1, np.abs(y[group]))
        dy = yp[group] - y[group]
        df = getF(sys, yp, psi, light) - f0
        block = pattern[:, group].tocoo()
        rows.append(block.row)
        columns.append(group[block.col])
        data.append(df[block.row] / dy[block.col])

    for r, (c, d) in sys.linear_rows.items():
        rows.append(np.full(len(c), r))
        columns.append(c)
        data.append(d)

    return np.concatenate(rows), np.concatenate(columns), np.concatenate(data)
