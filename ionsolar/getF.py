# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np

from .observables import *


def get_charge(sys, P, n, p, nEx, pHx):
    # Charge of the control volume of every node of the combined grid
    # ETL + perovskite + HTL. Interface nodes collect one half cell on each
    # side.
    par = sys.params
    N, NE = sys.N, sys.NE
    Q = np.zeros(sys.npoisson)
    Q[:NE+1] += par.delta * (1 - nEx) * sys.hEx
    Q[NE:NE+N+1] += (P - 1 + par.delta * (par.chi * p - n)) * sys.h
    Q[NE+N:] += par.delta * par.chi * (pHx - 1) * sys.hHx
    return Q


def getF(sys, y, psi, light):
    """
    Right-hand side F of the semi-discrete system M dy/dt = F(y).

    Parameters
    ----------
    sys: Engine
        The discretized system.
    y: numpy array of floats
        State vector.
    psi: float
        Potential drop variable imposed on the contacts. Ignored in open
        circuit mode, where it is the last entry of the state vector.
    light: float
        Light intensity relative to the reference photon flux.

    Returns
    -------
    f: numpy array of floats
    """
    ###########################################################################
    #               organization of the right hand side vector                #
    ###########################################################################
    # [fP(0..N), fphi(0..N), fn(0..N), fp(0..N),
    #  fphiE(0..NE-1), fnE(0..NE-1), fphiH(1..NH), fpH(1..NH), (fpsi)]
    #
    # The ETL node NE and the HTL node 0 are the perovskite nodes 0 and N.
    # Rows of the potential in all three layers are rows of one Poisson
    # equation on the combined grid.

    par, mesh = sys.params, sys.mesh
    N, NE = sys.N, sys.NE
    P, phi, n, p, phiE, nE, phiH, pH = sys.split(y)
    if sys.mode.open_circuit:
        psi = y[-1]

    # potential differences across the edges of each layer
    Phi = np.concatenate((phiE, phi, phiH))
    dPhi = np.diff(Phi)
    dvE, dv, dvH = dPhi[:NE], dPhi[NE:NE+N], dPhi[NE+N:]

    # transport layer densities, including their side of the interfaces
    nEx = np.append(nE, n[0] / par.kE)
    pHx = np.insert(pH, 0, p[-1] / par.kH)

    jn = get_flux(par.Kn / mesh.dx, n[:-1], n[1:], dv, 1)
    jp = get_flux(-par.Kp / mesh.dx, p[:-1], p[1:], dv, -1)
    jE = get_flux(par.KE / mesh.dxE, nEx[:-1], nEx[1:], dvE, 1)
    jH = get_flux(-par.KH / mesh.dxH, pHx[:-1], pHx[1:], dvH, -1)

    gr = (light * sys.g - get_bulk_rr(par, n, p)) * sys.h
    rl = get_left_rr(par, nEx[-1], p[0])
    rr = get_right_rr(par, n[-1], pHx[0])

    ###########################################################################
    #                             ion vacancies                               #
    ###########################################################################
    if sys.mode.ions == 'frozen':
        fP = P - 1
    else:
        FP = get_flux(-1 / mesh.dx, P[:-1], P[1:], dv, -1)
        # no ion flux leaves the perovskite
        fP = -par.lam * (np.append(FP, 0) - np.insert(FP, 0, 0))
        if sys.mode.ions == 'conserved':
            fP[0] = np.dot(sys.h, P) - 1

    ###########################################################################
    #                          electrons and holes                            #
    ###########################################################################
    fn = np.append(jn, -rr) - np.insert(jn, 0, jE[-1] + rl) + gr
    fp = np.insert(jp, 0, -rl) - np.append(jp, jH[0]) + gr
    fp[-1] -= rr

    # transport layers, with the densities fixed on the contacts
    fnE = np.insert(np.diff(jE), 0, nE[0] - 1)
    fpH = np.append(-np.diff(jH), pH[-1] - 1)

    ###########################################################################
    #                      Poisson equation, all layers                       #
    ###########################################################################
    D = sys.eps * dPhi / sys.dX
    Q = get_charge(sys, P, n, p, nEx, pHx)
    fv = np.concatenate(([Phi[0] - psi],
                         par.lam**2 * (D[1:] - D[:-1]) + Q[1:-1],
                         [Phi[-1] + psi]))

    f = [fP, fv[NE:NE+N+1], fn, fp, fv[:NE], fnE, fv[NE+N+1:], fpH]
    if sys.mode.open_circuit:
        # no conduction current through the ETL contact
        f.append([jE[0]])
    return np.concatenate(f)


def get_contact_current(sys, y):
    """
    Conduction current density through the ETL contact.

    Parameters
    ----------
    sys: Engine
        The discretized system.
    y: numpy array of floats
        State vector.

    Returns
    -------
    j: float
        Dimensionless electron current density, positive for a current
        delivered by the cell.
    """
    par, mesh = sys.params, sys.mesh
    nE, phiE = y[sys.inE:sys.inE+sys.NE], y[sys.iphiE:sys.iphiE+sys.NE]
    nEx = np.append(nE, y[sys.in_] / par.kE)
    PhiE = np.append(phiE, y[sys.iphi])
    return get_flux(par.KE / mesh.dxE[0], nEx[0], nEx[1], PhiE[1] - PhiE[0], 1)
