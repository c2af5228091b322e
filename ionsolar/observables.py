# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np


def bernoulli(x):
    """
    Bernoulli function B(x) = x / (exp(x) - 1), with B(0) = 1.

    Parameters
    ----------
    x: numpy array of floats

    Returns
    -------
    b: numpy array of floats
    """
    x = np.asarray(x, dtype=float)
    small = np.abs(x) < 1e-5
    xs = np.where(small, 1., x)
    with np.errstate(over='ignore'):
        b = xs / np.expm1(xs)
    return np.where(small, 1 - x/2 + x**2/12, b)


def bernoulli_deriv(x):
    # B'(x) = B(x) (1 - B(-x)) / x
    x = np.asarray(x, dtype=float)
    small = np.abs(x) < 1e-5
    xs = np.where(small, 1., x)
    d = bernoulli(xs) * (1 - bernoulli(-xs)) / xs
    return np.where(small, -0.5 + x/6, d)


def get_flux(c, ul, ur, dv, s):
    """
    Scharfetter-Gummel flux of a density between neighbouring nodes.

    Parameters
    ----------
    c: float or numpy array of floats
        Transport coefficient divided by the edge length, with sign.
    ul, ur: numpy arrays of floats
        Densities on the left and right nodes of each edge.
    dv: numpy array of floats
        Potential difference (right minus left) across each edge.
    s: integer
        Charge sign of the carrier relative to an electron: +1 for electrons,
        -1 for holes and positive ion vacancies.

    Returns
    -------
    j: numpy array of floats
        ``c * (B(s dv) ur - B(-s dv) ul)``
    """
    return c * (bernoulli(s*dv) * ur - bernoulli(-s*dv) * ul)


def get_flux_derivs(c, ul, ur, dv, s):
    # derivatives of get_flux with respect to ul, ur and dv
    d_ul = -c * bernoulli(-s*dv)
    d_ur = c * bernoulli(s*dv)
    d_dv = c * s * (bernoulli_deriv(s*dv) * ur + bernoulli_deriv(-s*dv) * ul)
    return d_ul, d_ur, d_dv


def get_generation(params, x):
    """
    Beer-Lambert generation profile per unit light intensity.

    Light enters through the ETL (x = 0), or through the HTL (x = 1) for an
    inverted cell. The profile integrates to one over the perovskite.
    """
    ups = params.upsilon
    if params.inverted:
        return ups / (1 - np.exp(-ups)) * np.exp(-ups * (1 - x))
    return ups / (1 - np.exp(-ups)) * np.exp(-ups * x)


def get_bulk_rr(params, n, p):
    # bimolecular, Auger and SRH recombination in the perovskite
    r = params.brate + params.augn * n + params.augp * p
    if params.srh:
        r = r + 1 / (params.srh_n * n + params.srh_p * p + params.srh_k)
    return (n * p - params.ni2) * r


def get_bulk_rr_derivs(params, n, p):
    _np = n * p - params.ni2
    r = params.brate + params.augn * n + params.augp * p
    drdn = params.augn
    drdp = params.augp
    if params.srh:
        den = params.srh_n * n + params.srh_p * p + params.srh_k
        r = r + 1 / den
        drdn = drdn - params.srh_n / den**2
        drdp = drdp - params.srh_p / den**2
    defn = p * r + _np * drdn
    defp = n * r + _np * drdp
    return defn, defp


def _surface_rr(ni2, brate, srh, cn, cp, n, p):
    r = brate
    if srh:
        r = r + 1 / (cn * n + cp * p)
    return (n * p - ni2) * r


def _surface_rr_derivs(ni2, brate, srh, cn, cp, n, p):
    _np = n * p - ni2
    r, drdn, drdp = brate, 0., 0.
    if srh:
        den = cn * n + cp * p
        r = r + 1 / den
        drdn = -cn / den**2
        drdp = -cp / den**2
    return p * r + _np * drdn, n * r + _np * drdp


def get_left_rr(params, nE, p):
    """
    Recombination rate at the ETL/perovskite interface.

    Parameters
    ----------
    params: Parameters
        The nondimensional parameters.
    nE: float
        Electron density on the ETL side of the interface.
    p: float
        Hole density on the perovskite side of the interface.

    Returns
    -------
    r: float
    """
    return _surface_rr(params.ni2 / params.kE, params.brateE, params.srhE,
                       params.srhE_n, params.srhE_p, nE, p)


def get_left_rr_derivs(params, nE, p):
    return _surface_rr_derivs(params.ni2 / params.kE, params.brateE,
                              params.srhE, params.srhE_n, params.srhE_p, nE, p)


def get_right_rr(params, n, pH):
    """
    Recombination rate at the perovskite/HTL interface.

    Parameters
    ----------
    params: Parameters
        The nondimensional parameters.
    n: float
        Electron density on the perovskite side of the interface.
    pH: float
        Hole density on the HTL side of the interface.

    Returns
    -------
    r: float
    """
    return _surface_rr(params.ni2 / params.kH, params.brateH, params.srhH,
                       params.srhH_n, params.srhH_p, n, pH)


def get_right_rr_derivs(params, n, pH):
    return _surface_rr_derivs(params.ni2 / params.kH, params.brateH,
                              params.srhH, params.srhH_n, params.srhH_p, n, pH)
