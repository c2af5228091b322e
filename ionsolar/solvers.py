# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np
import warnings
from collections import namedtuple
from multiprocessing import Pool

import scipy.sparse.linalg as lg
from scipy.integrate import solve_bvp
from scipy.optimize import brentq

from .config import SolverConfig, check_config
from .engine import Engine, INIT, STEADY, TRANSIENT, OPEN_CIRCUIT
from .integrator import integrate
from .mesh import build_mesh
from .observables import get_generation, get_bulk_rr, get_left_rr, get_right_rr
from .protocol import Imposed, ImpedanceProtocol

import logging
logging.basicConfig(level=logging.DEBUG, format='%(levelname)s: %(message)s')

__all__ = ['Solver', 'Solution', 'simulate', 'impedance_spectroscopy',
           'ConvergenceWarning', 'NewtonError', 'SparseSolverError']


class ConvergenceWarning(UserWarning):
    pass


class NewtonError(Exception):
    pass


class SparseSolverError(Exception):
    pass


# States at the output times of a protocol. ``y`` has one row per time in
# the layout of the transient system, ``psi`` and ``light`` hold the forcing.
Solution = namedtuple('Solution', ['time', 'y', 'psi', 'light', 'params',
                                   'mesh', 'protocol'])


class Solver():
    """
    An object that creates an interface for the steady state and time
    dependent solvers of a cell.

    Parameters
    ----------
    params: Parameters
        The nondimensional parameters.
    mesh: Mesh
        The grids of the three layers, built from the settings if None.
    config: SolverConfig
        Settings of the solvers.
    """

    def __init__(self, params, mesh=None, config=None):
        if config is None:
            config = SolverConfig()
        check_config(config)
        if mesh is None:
            mesh = build_mesh(config.N, config.ne, config.nh,
                              params.wE, params.wH, config.st, config.verbose)
        self.params = params
        self.mesh = mesh
        self.config = config
        self._engines = {}

    def engine(self, mode):
        """Discretized system in the given mode, built once."""
        if mode not in self._engines:
            self._engines[mode] = Engine(self.params, self.mesh, mode,
                                         self.config.analytic_jacobian)
        return self._engines[mode]

    @property
    def steady_mode(self):
        return INIT if self.config.frozen_ions else STEADY

    ###########################################################################
    #                              steady state                               #
    ###########################################################################
    def make_guess(self, psi, light):
        """
        Initial guess of a steady state.

        Carrier densities in the perovskite come from the field free boundary
        value problem of the electron and hole currents. The potential drops
        linearly between the contact values psi and -psi, the ion vacancies
        are uniform and the transport layer densities vary linearly from
        their contact values.
        """
        par, mesh = self.params, self.mesh
        x = mesh.x

        def fun(xx, u):
            p, jp, n, jn = u
            gr = light * get_generation(par, xx) - get_bulk_rr(par, n, p)
            return np.vstack((-jp / par.Kp, gr, jn / par.Kn, -gr))

        def bc(ua, ub):
            return np.array([ub[0] - par.kH,
                             ua[1] + get_left_rr(par, 1., ua[0]),
                             ua[2] - par.kE,
                             ub[3] + get_right_rr(par, ub[2], 1.)])

        u0 = np.vstack((par.kH * x + par.kE * (1 - x) / par.chi, 0 * x,
                        par.chi * par.kH * x + par.kE * (1 - x), 0 * x))
        with np.errstate(all='ignore'):
            sol = solve_bvp(fun, bc, x, u0)
        u = sol.sol(x) if sol.status == 0 else u0
        if sol.status != 0 or not np.all(np.isfinite(u)):
            if self.config.verbose:
                logging.info("Carrier boundary value problem: {0} Using a linear "
                             "guess.".format(sol.message))
            u = u0
        p, n = np.abs(u[0]), np.abs(u[2])

        # potential falling linearly from psi at the ETL contact to -psi at
        # the HTL contact
        xE, xH = mesh.xE, mesh.xH
        X = np.concatenate((xE[:-1], x, xH[1:]))
        Phi = psi * (1 - 2 * (X - xE[0]) / (xH[-1] - xE[0]))
        NE = len(xE) - 1
        phiE, phi, phiH = Phi[:NE], Phi[NE:NE+len(x)], Phi[NE+len(x):]

        # transport layer densities linear between the contact and the value
        # matching the perovskite at the interface
        sE = (xE[:-1] - xE[0]) / (xE[-1] - xE[0])
        nE = 1 + (n[0] / par.kE - 1) * sE
        sH = (xH[-1] - xH[1:]) / (xH[-1] - xH[0])
        pH = 1 + (p[-1] / par.kH - 1) * sH

        engine = self.engine(self.steady_mode)
        return engine.join(np.ones(len(x)), phi, n, p, phiE, nE, phiH, pH)

    def _damping(self, dx):
        # This damping procedure is inspired from Solid-State Electronics, vol. 19,
        # pp. 991-992 (1976).

        b = np.abs(dx) > 1
        dx[b] = np.log(1+np.abs(dx[b])*1.72)*np.sign(dx[b])

    def _sparse_solver(self, J, f):
        dx = lg.spsolve(J.tocsc(), f)
        if not np.all(np.isfinite(dx)):
            raise SparseSolverError
        return dx

    def _newton(self, engine, y, psi, light):
        config = self.config
        # densities are kept positive
        density = np.ones(engine.size, dtype=bool)
        density[engine.phi_idx] = False
        if engine.mode.open_circuit:
            density[engine.ipsi] = False

        best, best_norm = y.copy(), np.inf
        converged = False
        cc = 0
        while not converged:
            cc = cc + 1
            # break if no solution found after maxiterations
            if cc > config.maxiter:
                msg = "**  Maximum number of iterations reached  **"
                logging.error(msg)
                break

            f, J = engine.evaluate(y, psi, light)
            fnorm = np.linalg.norm(f)
            if fnorm < best_norm:
                best, best_norm = y.copy(), fnorm
            try:
                dx = self._sparse_solver(J, -f)
                # compute error
                error = np.max(np.abs(dx) / (config.newton_tol * np.abs(y) + config.atol))
                if np.isnan(error) or np.max(np.abs(dx)) > 1e30:
                    raise NewtonError
                self._damping(dx)
                ynew = y + dx
                neg = density & (ynew <= 0)
                ynew[neg] = 0.1 * y[neg]
                y = ynew
                if error <= 1:
                    converged = True
                # print status of solution procedure
                if config.verbose:
                    logging.info('step {0}, error = {1}'.format(cc, error))
            except SparseSolverError:
                msg = "**  The linear system could not be solved  **"
                logging.error(msg)
                break
            except NewtonError:
                msg = "**  The Newton-Raphson algorithm diverged  **"
                logging.error(msg)
                break

        if converged:
            fnorm = np.linalg.norm(engine.rhs(y, psi, light))
            return y, True, cc, fnorm
        return best, False, cc, best_norm

    def steady_state(self, psi, light, guess=None):
        """
        Steady state of the cell for constant forcing.

        Parameters
        ----------
        psi: float
            Imposed potential drop variable.
        light: float
            Light intensity.
        guess: numpy array of floats
            Starting point of the Newton iteration, built from the carrier
            boundary value problem if None.

        Returns
        -------
        y: numpy array of floats
            State vector satisfying the Poisson equation exactly. A
            ConvergenceWarning is issued and the best iterate returned if the
            Newton iteration did not converge.
        """
        engine = self.engine(self.steady_mode)
        if guess is None:
            y = self.make_guess(psi, light)
        else:
            y = np.array(guess[:engine.size], dtype=float)

        if self.config.verbose:
            logging.info("Steady state at psi = {0:.6g}, light = {1:.6g}"
                         .format(psi, light))
        y, converged, cc, fnorm = self._newton(engine, y, psi, light)
        if not converged:
            warnings.warn("Steady state not converged after {0} iterations, "
                          "residual norm {1:.3e}.".format(cc, fnorm),
                          ConvergenceWarning)
        return engine.solve_poisson(y, psi)

    def _refined_current(self, engine, y, psi, light):
        # current after one more Newton step
        f, J = engine.evaluate(y, psi, light)
        try:
            dx = self._sparse_solver(J, -f)
        except SparseSolverError:
            return engine.contact_current(y)
        return engine.contact_current(y + dx)

    def find_voc(self, light, guess=None):
        """
        Open circuit steady state.

        In the dark the open circuit state is thermal equilibrium, reached by
        continuation from flat band. Otherwise a sign change of the current
        is bracketed and refined with Brent's method. A ConvergenceWarning is
        issued when the remaining current exceeds ``config.voc_jtol``.

        Parameters
        ----------
        light: float
            Light intensity.
        guess: numpy array of floats
            Steady state used to start the search.

        Returns
        -------
        psi: float
            Value of psi at which no current flows.
        y: numpy array of floats
            Steady state at that value.
        """
        config = self.config
        engine = self.engine(self.steady_mode)
        states, currents = {}, {}

        def current(psi):
            psi = float(psi)
            if psi not in currents:
                near = min(states, key=lambda s: abs(s - psi)) if states else None
                y = self.steady_state(psi, light, guess if near is None else states[near])
                states[psi] = y
                currents[psi] = self._refined_current(engine, y, psi, light)
                if config.verbose:
                    logging.info("psi = {0:.10g}, current = {1:.6e}"
                                 .format(psi, currents[psi]))
            return currents[psi]

        if light == 0:
            # no generation, the cell is in equilibrium at zero applied voltage
            psi = float(self.params.Vap2psi(0.))
            for s in np.linspace(0, psi, int(np.ceil(abs(psi) / 2.)) + 1):
                current(s)
        else:
            psi = self._bracket_voc(current)

        j = current(psi)
        if abs(j) > config.voc_jtol:
            warnings.warn("Open circuit current {0:.3e} at psi = {1:.6g} exceeds "
                          "the tolerance {2:.1e}.".format(j, psi, config.voc_jtol),
                          ConvergenceWarning)
        return psi, states[psi]

    def _bracket_voc(self, current):
        config = self.config
        # the current decreases with the applied voltage, hence increases
        # with psi
        a, ja = 0., current(0.)
        step = 1. if ja < 0 else -1.
        b, jb = a + step, current(a + step)
        count = 2
        while np.sign(ja) == np.sign(jb) and ja != 0 and count < config.voc_maxiter:
            a, ja = b, jb
            step *= 2
            b, jb = a + step, current(a + step)
            count += 1

        if ja == 0 or jb == 0:
            return a if ja == 0 else b
        if np.sign(ja) == np.sign(jb):
            psi = a if abs(ja) < abs(jb) else b
            warnings.warn("No open circuit voltage bracketed after {0} iterations, "
                          "smallest current {1:.3e} at psi = {2:.6g}."
                          .format(count, min(abs(ja), abs(jb)), psi),
                          ConvergenceWarning)
            return psi
        psi, r = brentq(current, min(a, b), max(a, b), xtol=config.voc_tol,
                        maxiter=config.voc_maxiter, full_output=True, disp=False)
        if not r.converged:
            warnings.warn("Open circuit search not converged after {0} "
                          "iterations.".format(r.iterations), ConvergenceWarning)
        return psi

    ###########################################################################
    #                           time integration                              #
    ###########################################################################
    def integrate(self, protocol, y0, psi0=None):
        """
        Integrate the cell over the time grid of a protocol.

        Parameters
        ----------
        protocol: Protocol
            Compiled forcing, with a known initial psi.
        y0: numpy array of floats
            Steady state at the start of the protocol.
        psi0: float
            Initial psi of an open circuit protocol.

        Returns
        -------
        y: numpy array of floats
            States at the times of the protocol, one row per time.
        psi: numpy array of floats
            Potential drop variable at the same times.
        """
        config = self.config
        time, splits = protocol.time, protocol.splits
        if protocol.open_circuit:
            engine = self.engine(OPEN_CIRCUIT)
            y = np.append(y0[:engine.size-1], psi0)
        else:
            engine = self.engine(TRANSIENT)
            y = np.array(y0[:engine.size], dtype=float)

        def psi(t):
            value = protocol.psi(t)
            return value.value if isinstance(value, Imposed) else None

        def fun(t, y):
            return engine.rhs(y, psi(t), protocol.light(t))

        def jac(t, y):
            return engine.jacobian(y, psi(t), protocol.light(t))

        def forcing(t):
            return {'light': float(protocol.light(t)), 'psi': protocol.psi(t)}

        Y = np.empty((len(time), engine.size))
        Y[0] = y
        for k, (a, b) in enumerate(zip(splits[:-1], splits[1:])):
            if config.verbose:
                logging.info("Split {0}/{1}: t = {2:.6g} to {3:.6g}"
                             .format(k+1, len(splits)-1, a, b))
            inside = (time > a) & (time <= b)
            t_eval = np.union1d([a, b], time[inside])
            Ys = integrate(fun, jac, engine.mass, y, t_eval, rtol=config.rtol,
                           atol=config.atol, max_order=config.max_order,
                           first_step=config.first_step, forcing=forcing,
                           verbose=config.verbose)
            Y[inside] = Ys[np.searchsorted(t_eval, time[inside])]
            y = Ys[-1]

        if protocol.open_circuit:
            return Y[:, :-1], Y[:, -1]
        return Y, np.asarray(protocol.psi_fn(time), dtype=float)

    def simulate(self, protocol, y0=None):
        """
        Solve the cell under a protocol.

        The initial state is the steady state at the start of the protocol,
        at open circuit if the voltage protocol starts with 'open-circuit'.

        Parameters
        ----------
        protocol: Protocol
            Compiled forcing.
        y0: numpy array of floats
            Initial state, computed if None.

        Returns
        -------
        solution: Solution
        """
        t0 = protocol.time[0]
        light0 = float(protocol.light(t0))
        psi0 = None
        if protocol.find_voc:
            psi0, y = self.find_voc(light0, y0)
            if self.config.verbose:
                logging.info("Open circuit voltage: {0:.6f} V"
                             .format(float(self.params.psi2Vap(psi0))))
            protocol = protocol.bind(psi0)
            y0 = y
        elif y0 is None:
            y0 = self.steady_state(protocol.psi(t0).value, light0)

        Y, psi = self.integrate(protocol, y0, psi0)
        return Solution(time=protocol.time, y=Y, psi=psi,
                        light=np.asarray(protocol.light(protocol.time), dtype=float),
                        params=self.params, mesh=self.mesh, protocol=protocol)


def _run_frequency(args):
    params, mesh, config, protocol, y0 = args
    return Solver(params, mesh, config).simulate(protocol, y0)


def impedance_spectroscopy(params, protocol, config=None, mesh=None):
    """
    Time domain simulations of an impedance measurement.

    The cell is settled at the steady state of the DC voltage, then every
    frequency is simulated independently from that state, in parallel if
    ``config.processes`` is set.

    Parameters
    ----------
    params: Parameters
        The nondimensional parameters.
    protocol: ImpedanceProtocol
        Compiled impedance protocol.
    config: SolverConfig
        Settings of the solvers.
    mesh: Mesh
        The grids of the three layers, built from the settings if None.

    Returns
    -------
    solutions: list of Solution
        One solution per frequency, in the order of ``protocol.frequencies``.
    """
    solver = Solver(params, mesh, config)
    first = protocol.protocols[0]
    y0 = solver.steady_state(first.psi_fn.dc, float(first.light(0)))

    jobs = [(params, solver.mesh, solver.config, p, y0) for p in protocol.protocols]
    if solver.config.processes:
        with Pool(solver.config.processes) as pool:
            return pool.map(_run_frequency, jobs)
    solutions = []
    for f, job in zip(protocol.frequencies, jobs):
        if solver.config.verbose:
            logging.info("Frequency {0:.4e} Hz".format(f))
        solutions.append(_run_frequency(job))
    return solutions


def simulate(params, protocol, config=None, mesh=None):
    """
    Solve the cell under a compiled protocol.

    Parameters
    ----------
    params: Parameters
        The nondimensional parameters.
    protocol: Protocol or ImpedanceProtocol
        Compiled forcing.
    config: SolverConfig
        Settings of the solvers.
    mesh: Mesh
        The grids of the three layers, built from the settings if None.

    Returns
    -------
    solution: Solution, or a list of Solution for an impedance protocol
    """
    if isinstance(protocol, ImpedanceProtocol):
        return impedance_spectroscopy(params, protocol, config, mesh)
    return Solver(params, mesh, config).simulate(protocol)
