import numpy as np
import pytest

from ionsolar import build_parameters
from ionsolar.observables import bernoulli, bernoulli_deriv, get_flux, \
    get_flux_derivs, get_generation, get_bulk_rr, get_bulk_rr_derivs, \
    get_left_rr, get_left_rr_derivs, get_right_rr, get_right_rr_derivs


def test_bernoulli_values():
    x = np.array([-50., -1., -1e-7, 0., 1e-7, 1., 50.])
    B = bernoulli(x)
    assert np.all(np.isfinite(B))
    assert B[3] == 1
    np.testing.assert_allclose(B[1], 1 / (np.exp(-1) - 1) * -1)
    np.testing.assert_allclose(B[5], 1 / (np.exp(1) - 1))
    # B(-x) = B(x) + x
    np.testing.assert_allclose(bernoulli(-x), B + x, rtol=1e-12, atol=1e-12)
    # B(x) decays to zero for large x without overflow
    assert bernoulli(800.) == 0


@pytest.mark.parametrize('x', [-20., -1., -1e-3, -1e-6, 0., 2e-6, 0.3, 7.])
def test_bernoulli_deriv(x):
    h = 1e-6 * max(1, abs(x))
    fd = (bernoulli(x + h) - bernoulli(x - h)) / (2 * h)
    np.testing.assert_allclose(bernoulli_deriv(x), fd, rtol=1e-5, atol=1e-8)


def test_flux_limits():
    ul, ur = np.array([2.]), np.array([3.])
    # pure diffusion
    np.testing.assert_allclose(get_flux(1., ul, ur, np.zeros(1), 1), ur - ul)
    # equilibrium densities carry no flux: ur / ul = exp(s dv)
    dv = np.array([0.7])
    for s in (1, -1):
        ur_eq = ul * np.exp(s * dv)
        np.testing.assert_allclose(get_flux(5., ul, ur_eq, dv, s), 0, atol=1e-12)


@pytest.mark.parametrize('s', [1, -1])
def test_flux_derivs(s):
    c, ul, ur, dv = 0.7, np.array([1.3]), np.array([0.4]), np.array([2.1])
    d_ul, d_ur, d_dv = get_flux_derivs(c, ul, ur, dv, s)
    h = 1e-7
    fd = lambda a, b: (a - b) / (2 * h)
    np.testing.assert_allclose(d_ul, fd(get_flux(c, ul+h, ur, dv, s),
                                        get_flux(c, ul-h, ur, dv, s)), rtol=1e-6)
    np.testing.assert_allclose(d_ur, fd(get_flux(c, ul, ur+h, dv, s),
                                        get_flux(c, ul, ur-h, dv, s)), rtol=1e-6)
    np.testing.assert_allclose(d_dv, fd(get_flux(c, ul, ur, dv+h, s),
                                        get_flux(c, ul, ur, dv-h, s)), rtol=1e-6)


@pytest.mark.parametrize('inverted', [False, True])
def test_generation_profile(inverted):
    params = build_parameters(inverted=inverted)
    x = np.linspace(0, 1, 20001)
    G = get_generation(params, x)
    np.testing.assert_allclose(np.sum((G[1:] + G[:-1]) / 2 * np.diff(x)), 1,
                               rtol=1e-6)
    if inverted:
        assert np.all(np.diff(G) > 0)
    else:
        assert np.all(np.diff(G) < 0)


@pytest.fixture(scope='module')
def full_params():
    return build_parameters(beta=1e-17, Augn=1e-40, Augp=2e-40,
                            betaE=1e-19, betaH=1e-19)


def test_no_recombination_at_equilibrium(full_params):
    par = full_params
    n = np.array([1e-3, 0.5, 2.])
    p = par.ni2 / n
    np.testing.assert_allclose(get_bulk_rr(par, n, p), 0, atol=1e-20)
    np.testing.assert_allclose(get_left_rr(par, 0.3, par.ni2 / par.kE / 0.3), 0,
                               atol=1e-20)
    np.testing.assert_allclose(get_right_rr(par, 0.3, par.ni2 / par.kH / 0.3), 0,
                               atol=1e-20)
    # net generation below equilibrium
    assert np.all(get_bulk_rr(par, n, 0.5 * p) < 0)


def _check_derivs(rate, derivs, n, p):
    dn, dp = derivs(n, p)
    hn, hp = 1e-7 * n, 1e-7 * p
    fdn = (rate(n + hn, p) - rate(n - hn, p)) / (2 * hn)
    fdp = (rate(n, p + hp) - rate(n, p - hp)) / (2 * hp)
    np.testing.assert_allclose(dn, fdn, rtol=1e-5)
    np.testing.assert_allclose(dp, fdp, rtol=1e-5)


def test_bulk_rr_derivs(full_params):
    par = full_params
    n, p = np.array([0.01, 0.7, 3.]), np.array([2., 0.2, 1e-2])
    _check_derivs(lambda n, p: get_bulk_rr(par, n, p),
                  lambda n, p: get_bulk_rr_derivs(par, n, p), n, p)


def test_interface_rr_derivs(full_params):
    par = full_params
    _check_derivs(lambda n, p: get_left_rr(par, n, p),
                  lambda n, p: get_left_rr_derivs(par, n, p), 0.4, 1.5)
    _check_derivs(lambda n, p: get_right_rr(par, n, p),
                  lambda n, p: get_right_rr_derivs(par, n, p), 0.02, 0.9)


def test_srh_switched_off():
    par = build_parameters(tn=np.inf, vnE=0., vnH=0.)
    assert not par.srh and not par.srhE and not par.srhH
    assert get_bulk_rr(par, np.array([1.]), np.array([1.]))[0] == 0
    assert get_left_rr(par, 1., 1.) == 0
