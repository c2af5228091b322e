# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np
from collections import namedtuple
from scipy.sparse import csr_matrix, diags
import scipy.sparse.linalg as lg

from .getF import getF, get_charge, get_contact_current
from .jacobian import getJ, getJ_numeric
from .observables import get_generation

__all__ = ['Mode', 'INIT', 'STEADY', 'TRANSIENT', 'OPEN_CIRCUIT', 'Engine']


# Variants of the discretized system. ``ions`` is 'frozen' (vacancy density
# held at its uniform value), 'conserved' (steady vacancy distribution with a
# fixed number of vacancies) or 'free' (vacancies evolve in time).
# ``open_circuit`` appends psi to the state, fixed by a zero contact current.
Mode = namedtuple('Mode', ['name', 'ions', 'open_circuit'])

INIT = Mode('init', 'frozen', False)
STEADY = Mode('steady', 'conserved', False)
TRANSIENT = Mode('transient', 'free', False)
OPEN_CIRCUIT = Mode('open-circuit', 'free', True)


class Engine():
    """
    The three-layer cell discretized on a mesh, in a given mode.

    The engine evaluates the right-hand side F and the Jacobian dF/dy of the
    semi-discrete system ``M dy/dt = F(y)``, where M is a constant diagonal
    mass matrix with zeros on the rows of algebraic equations.

    Parameters
    ----------
    params: Parameters
        The nondimensional parameters.
    mesh: Mesh
        The grids of the three layers.
    mode: Mode
        One of INIT, STEADY, TRANSIENT or OPEN_CIRCUIT.
    analytic: boolean
        Use the analytic Jacobian (default) instead of finite differences.

    Attributes
    ----------
    size: integer
        Length of the state vector.
    mass: numpy array of floats
        Diagonal of the mass matrix.
    pattern: scipy sparse matrix
        Sparsity pattern of the Jacobian in this mode.
    """

    def __init__(self, params, mesh, mode=TRANSIENT, analytic=True):
        self.params = params
        self.mesh = mesh
        self.mode = mode
        self.analytic = analytic

        self.N = N = len(mesh.x) - 1
        self.NE = NE = len(mesh.xE) - 1
        self.NH = NH = len(mesh.xH) - 1

        # offsets of the fields in the state vector
        self.iP = 0
        self.iphi = N + 1
        self.in_ = 2 * (N + 1)
        self.ip = 3 * (N + 1)
        self.iphiE = 4 * (N + 1)
        self.inE = self.iphiE + NE
        self.iphiH = self.inE + NE
        self.ipH = self.iphiH + NH
        self.size = self.ipH + NH
        if mode.open_circuit:
            self.ipsi = self.size
            self.size += 1

        # control volumes of the nodes, the interface nodes of the transport
        # layers only carry their own side of the interface
        def volumes(d):
            return (np.append(d, 0) + np.insert(d, 0, 0)) / 2
        self.h = volumes(mesh.dx)
        self.hEx = volumes(mesh.dxE)
        self.hHx = volumes(mesh.dxH)

        # combined grid of the Poisson equation
        self.npoisson = NE + N + NH + 1
        self.dX = np.concatenate((mesh.dxE, mesh.dx, mesh.dxH))
        self.eps = np.concatenate((np.full(NE, params.epsE), np.ones(N),
                                   np.full(NH, params.epsH)))
        self.phi_idx = np.concatenate((self.iphiE + np.arange(NE),
                                       self.iphi + np.arange(N+1),
                                       self.iphiH + np.arange(NH)))
        self.e_idx = np.append(self.inE + np.arange(NE), self.in_)
        self.e_scale = np.append(np.ones(NE), 1 / params.kE)
        self.h_idx = np.insert(self.ipH + np.arange(NH), 0, self.ip + N)
        self.h_scale = np.insert(np.ones(NH), 0, 1 / params.kH)

        self.g = get_generation(params, mesh.x)
        self.mass = self._mass()
        self.M = diags(self.mass, format='csc')

        # rows linear in the state, filled exactly by finite differences
        self.linear_rows = {}
        if mode.ions == 'conserved':
            self.linear_rows[self.iP] = (self.iP + np.arange(N+1), self.h)

        self.pattern = self._pattern()
        self._fd = None
        self._poisson = None

    def split(self, y):
        """
        Views of the fields of a state vector.

        Returns
        -------
        P, phi, n, p, phiE, nE, phiH, pH: numpy arrays of floats
        """
        N = self.N
        return (y[self.iP:self.iP+N+1], y[self.iphi:self.iphi+N+1],
                y[self.in_:self.in_+N+1], y[self.ip:self.ip+N+1],
                y[self.iphiE:self.inE], y[self.inE:self.iphiH],
                y[self.iphiH:self.ipH], y[self.ipH:self.ipH+self.NH])

    def join(self, P, phi, n, p, phiE, nE, phiH, pH, psi=None):
        fields = [P, phi, n, p, phiE, nE, phiH, pH]
        if self.mode.open_circuit:
            fields.append([psi])
        return np.concatenate(fields).astype(float)

    def _mass(self):
        par, mesh = self.params, self.mesh
        N = self.N
        m = np.zeros(self.size)
        if self.mode.ions == 'free':
            m[self.iP:self.iP+N+1] = self.h
        m[self.in_:self.in_+N+1] = par.sigma * self.h
        m[self.in_] += par.sigma * self.hEx[-1] / par.kE
        m[self.ip:self.ip+N+1] = par.sigma * par.chi * self.h
        m[self.ip+N] += par.sigma * par.chi * self.hHx[0] / par.kH
        m[self.inE+1:self.iphiH] = par.sigma * self.hEx[1:-1]
        m[self.ipH:self.ipH+self.NH-1] = par.sigma * par.chi * self.hHx[1:-1]
        return m

    def _pattern(self):
        y = np.ones(self.size)
        rows, columns, _ = getJ(self, y, 0., 1.)
        J = csr_matrix((np.ones(len(rows)), (rows, columns)),
                       shape=(self.size, self.size))
        J.data[:] = 1
        return J

    def rhs(self, y, psi, light):
        """
        Right-hand side F(y) for the forcing values psi and light.
        """
        return getF(self, y, psi, light)

    def jacobian(self, y, psi, light, f=None):
        """
        Jacobian dF/dy in CSR format.
        """
        if self.analytic:
            rows, columns, data = getJ(self, y, psi, light)
        else:
            rows, columns, data = getJ_numeric(self, y, psi, light, f)
        return csr_matrix((data, (rows, columns)), shape=(self.size, self.size))

    def evaluate(self, y, psi, light):
        """
        Right-hand side and Jacobian of the system.

        Parameters
        ----------
        y: numpy array of floats
            State vector.
        psi: float
            Imposed potential drop variable, ignored in open circuit mode.
        light: float
            Light intensity.

        Returns
        -------
        f: numpy array of floats
        J: scipy sparse matrix
        """
        f = self.rhs(y, psi, light)
        return f, self.jacobian(y, psi, light, f)

    @property
    def fd_pattern(self):
        self._setup_fd()
        return self._fd[0]

    @property
    def fd_groups(self):
        self._setup_fd()
        return self._fd[1]

    def _setup_fd(self):
        # greedy coloring of the columns of the pattern without linear rows
        if self._fd is not None:
            return
        pattern = self.pattern.tolil()
        for r in self.linear_rows:
            pattern.rows[r] = []
            pattern.data[r] = []
        pattern = pattern.tocsc()

        color = np.zeros(self.size, dtype=int)
        used = []
        for c in range(self.size):
            r = pattern.indices[pattern.indptr[c]:pattern.indptr[c+1]]
            for k, mask in enumerate(used):
                if not mask[r].any():
                    break
            else:
                k = len(used)
                used.append(np.zeros(self.size, dtype=bool))
            used[k][r] = True
            color[c] = k
        groups = [np.flatnonzero(color == k) for k in range(len(used))]
        self._fd = (pattern, groups)

    def contact_current(self, y):
        """
        Dimensionless conduction current density through the ETL contact.
        """
        return get_contact_current(self, y)

    def solve_poisson(self, y, psi=None):
        """
        Potential in all layers from the charges of the state vector.

        The Poisson equation is linear in the potential, so the returned
        state satisfies it exactly for the given densities.

        Parameters
        ----------
        y: numpy array of floats
            State vector.
        psi: float
            Potential drop variable, read from the state in open circuit mode.

        Returns
        -------
        y: numpy array of floats
            Copy of the state vector with the potentials replaced.
        """
        par, N, NE = self.params, self.N, self.NE
        if self.mode.open_circuit:
            psi = y[self.ipsi]
        if self._poisson is None:
            m = self.npoisson
            a = par.lam**2 * self.eps / self.dX
            A = diags([a, -np.concatenate(([1.], a[:-1] + a[1:], [1.])), a],
                      [-1, 0, 1], shape=(m, m)).tolil()
            A[0, 1] = 0
            A[0, 0] = 1
            A[m-1, m-2] = 0
            A[m-1, m-1] = 1
            self._poisson = lg.splu(A.tocsc())

        P, phi, n, p, phiE, nE, phiH, pH = self.split(y)
        nEx = np.append(nE, n[0] / par.kE)
        pHx = np.insert(pH, 0, p[-1] / par.kH)
        b = -get_charge(self, P, n, p, nEx, pHx)
        b[0], b[-1] = psi, -psi
        Phi = self._poisson.solve(b)

        y = y.copy()
        y[self.phi_idx] = Phi
        return y
