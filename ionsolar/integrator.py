# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np
from scipy.sparse import diags
import scipy.sparse.linalg as lg

import logging
logging.basicConfig(level=logging.DEBUG, format='%(levelname)s: %(message)s')

__all__ = ['IntegrationError', 'integrate']


EPS = np.finfo(float).eps
NEWTON_MAXITER = 4
MIN_FACTOR = 0.2
MAX_FACTOR = 5
SAFETY = 0.9


class IntegrationError(Exception):
    """
    The step size of the integrator collapsed.

    Attributes
    ----------
    time: float
        Dimensionless time of the failure.
    forcing: object
        Forcing values (light, psi) at that time.
    """
    def __init__(self, time, forcing, msg):
        self.time = time
        self.forcing = forcing
        msg = "{0} at t = {1:.6e} with forcing {2}".format(msg, time, forcing)
        logging.error(msg)
        super().__init__(msg)


def _norm(x, scale):
    return np.sqrt(np.mean((x / scale)**2))


def _lagrange(ts, ys, t):
    # value at t of the polynomial through the points (ts, ys)
    out = np.zeros_like(ys[0])
    for k, (tk, yk) in enumerate(zip(ts, ys)):
        w = 1.
        for j, tj in enumerate(ts):
            if j != k:
                w *= (t - tj) / (tk - tj)
        out += w * yk
    return out


def _newton(fun, jac, mass, t, y_pred, psi, gamma, scale, tol):
    # Solve mass * (y - psi) / gamma = fun(t, y) with a Jacobian frozen at
    # the predictor.
    J = jac(t, y_pred)
    try:
        lu = lg.splu((diags(mass / gamma) - J).tocsc())
    except RuntimeError:
        return False, y_pred

    y = y_pred.copy()
    dy_norm_old = None
    for k in range(NEWTON_MAXITER):
        res = mass * (y - psi) / gamma - fun(t, y)
        if not np.all(np.isfinite(res)):
            return False, y
        dy = lu.solve(-res)
        dy_norm = _norm(dy, scale)
        if dy_norm_old is None:
            rate = None
        else:
            rate = dy_norm / dy_norm_old
        if rate is not None and (rate >= 1 or
                rate ** (NEWTON_MAXITER - k) / (1 - rate) * dy_norm > tol):
            return False, y
        y += dy
        if dy_norm == 0 or (rate is not None and rate / (1 - rate) * dy_norm < tol):
            return True, y
        dy_norm_old = dy_norm
    return False, y


def integrate(fun, jac, mass, y0, t_eval, rtol=1e-6, atol=1e-10, max_order=2,
              first_step=None, forcing=None, verbose=False):
    """
    Integrate the differential-algebraic system ``mass * dy/dt = fun(t, y)``
    with variable step BDF formulas of order 1 and 2.

    Parameters
    ----------
    fun: callable
        Right-hand side, ``fun(t, y)`` returns a numpy array.
    jac: callable
        Jacobian of fun, ``jac(t, y)`` returns a scipy sparse matrix.
    mass: numpy array of floats
        Diagonal of the mass matrix, zero on algebraic equations.
    y0: numpy array of floats
        Consistent initial state at ``t_eval[0]``.
    t_eval: numpy array of floats
        Increasing output times, the integration spans the first to the last.
    rtol, atol: floats
        Relative and absolute tolerances of the local error.
    max_order: integer
        Highest order of the BDF formulas (1 or 2).
    first_step: float
        Initial step size, ``1e-6`` of the time span if None.
    forcing: callable
        ``forcing(t)`` describes the forcing at t in error messages.
    verbose: boolean
        Log the number of steps at the end of the integration.

    Returns
    -------
    y: numpy array of floats
        States at the output times, one row per time.
    """
    t_eval = np.asarray(t_eval, dtype=float)
    t0, tend = t_eval[0], t_eval[-1]
    span = tend - t0
    Y = np.empty((len(t_eval), len(y0)))
    Y[0] = y0
    if span <= 0:
        Y[:] = y0
        return Y

    newton_tol = max(10 * EPS / rtol, min(0.03, rtol ** 0.5))
    h = span * 1e-6 if first_step is None else min(first_step, span)
    h_min = 10 * EPS * max(abs(t0), abs(tend))

    t, y = t0, np.array(y0, dtype=float)
    ts, ys = [t], [y]
    order = 1
    n_equal = 0
    n_steps = n_rejected = 0
    out = 1
    while t < tend:
        if h < h_min:
            raise IntegrationError(t, forcing(t) if forcing else None,
                                   "Step size {0:.3e} below the minimum".format(h))
        if t + h >= tend - h_min:
            h, t_new = tend - t, tend
        else:
            t_new = t + h

        # coefficients of the BDF formula, with the derivative written as
        # (y - psi) / gamma
        k = min(order, len(ts))
        if k == 1:
            gamma, psi = h, y
        else:
            w = h / (t - ts[-2])
            c0 = (1 + 2 * w) / (1 + w)
            gamma = h / c0
            psi = ((1 + w) * y - w**2 / (1 + w) * ys[-2]) / c0

        npred = min(k + 1, len(ts))
        y_pred = _lagrange(ts[-npred:], ys[-npred:], t_new)
        scale = atol + rtol * np.abs(y_pred)

        converged, y_new = _newton(fun, jac, mass, t_new, y_pred, psi, gamma,
                                   scale, newton_tol)
        if not converged:
            h *= 0.25
            order = 1
            n_equal = 0
            n_rejected += 1
            continue

        # local error from the distance to the predictor
        if len(ts) > k:
            err = (y_new - y_pred) * h / (t_new - ts[-k-1])
        else:
            err = 0.5 * (y_new - y)
        scale = atol + rtol * np.maximum(np.abs(y), np.abs(y_new))
        err_norm = _norm(err, scale)
        if err_norm > 1:
            h *= max(MIN_FACTOR, SAFETY * err_norm ** (-1 / (k + 1)))
            n_equal = 0
            n_rejected += 1
            continue

        # output times reached by this step
        while out < len(t_eval) and t_eval[out] <= t_new:
            Y[out] = _lagrange(ts[-k:] + [t_new], ys[-k:] + [y_new], t_eval[out])
            out += 1

        t, y = t_new, y_new
        ts = ts[-2:] + [t]
        ys = ys[-2:] + [y]
        n_steps += 1
        n_equal += 1

        if order < max_order and n_equal > 2 and len(ts) > 2:
            order += 1
            n_equal = 0
        if err_norm == 0:
            factor = MAX_FACTOR
        else:
            factor = min(MAX_FACTOR, SAFETY * err_norm ** (-1 / (k + 1)))
        h *= factor

    Y[out:] = y
    if verbose:
        logging.info("{0} steps, {1} rejected".format(n_steps, n_rejected))
    return Y
