import numpy as np
import pytest

from ionsolar import Engine, INIT, STEADY, TRANSIENT, OPEN_CIRCUIT

MODES = [INIT, STEADY, TRANSIENT, OPEN_CIRCUIT]


def dense_jacobian(engine, y, psi, light):
    # central differences on every column
    J = np.zeros((engine.size, engine.size))
    for c in range(engine.size):
        h = 1e-6 * max(1, abs(y[c]))
        yp, ym = y.copy(), y.copy()
        yp[c] += h
        ym[c] -= h
        J[:, c] = (engine.rhs(yp, psi, light) - engine.rhs(ym, psi, light)) / (2 * h)
    return J


def assert_rows_close(J, ref, rtol):
    scale = np.abs(ref).max(axis=1, keepdims=True)
    err = np.abs(J - ref)
    assert np.all(err <= rtol * scale + 1e-12), \
        "largest relative error {0}".format((err / (scale + 1e-300)).max())


@pytest.fixture(scope='module', params=MODES, ids=lambda m: m.name)
def engine(request, params, small_mesh):
    return Engine(params, small_mesh, request.param)


def test_state_layout(engine, make_state):
    N, NE, NH = engine.N, engine.NE, engine.NH
    expected = 4 * (N + 1) + 2 * NE + 2 * NH + engine.mode.open_circuit
    assert engine.size == expected
    y = make_state(engine)
    fields = engine.split(y)
    assert [len(f) for f in fields] == [N+1] * 4 + [NE] * 2 + [NH] * 2
    psi = y[-1] if engine.mode.open_circuit else None
    np.testing.assert_array_equal(engine.join(*fields, psi=psi), y)
    # the potential on the combined grid
    assert len(np.unique(engine.phi_idx)) == engine.npoisson == NE + N + NH + 1


def test_analytic_jacobian(engine, make_state):
    y = make_state(engine, seed=1)
    J = engine.jacobian(y, 0.3, 0.8).toarray()
    ref = dense_jacobian(engine, y, 0.3, 0.8)
    assert_rows_close(J, ref, 1e-6)


def test_numeric_jacobian(engine, make_state):
    y = make_state(engine, seed=2)
    numeric = Engine(engine.params, engine.mesh, engine.mode, analytic=False)
    f, Jn = numeric.evaluate(y, -0.4, 1.)
    Ja = engine.jacobian(y, -0.4, 1.).toarray()
    np.testing.assert_allclose(f, engine.rhs(y, -0.4, 1.))
    assert_rows_close(Jn.toarray(), Ja, 1e-5)


def test_pattern_covers_jacobian(engine, make_state):
    y = make_state(engine, seed=3)
    ref = dense_jacobian(engine, y, 0.1, 1.)
    scale = np.abs(ref).max(axis=1, keepdims=True)
    significant = np.abs(ref) > 1e-8 * scale
    pattern = engine.pattern.toarray() != 0
    assert not np.any(significant & ~pattern)


def test_column_groups(engine):
    pattern = engine.fd_pattern.toarray() != 0
    cols = np.concatenate(engine.fd_groups)
    assert sorted(cols) == list(range(engine.size))
    for group in engine.fd_groups:
        # columns of a group never share a row
        assert pattern[:, group].sum(axis=1).max() <= 1
    assert len(engine.fd_groups) < engine.size / 2


def test_mass_matrix(engine):
    m = engine.mass
    assert np.all(m >= 0)
    assert np.all(m[engine.phi_idx] == 0)
    # densities fixed on the contacts
    assert m[engine.inE] == 0
    assert m[engine.ipH + engine.NH - 1] == 0
    assert np.all(m[engine.in_:engine.ip + engine.N + 1] > 0)
    ions = m[engine.iP:engine.iP + engine.N + 1]
    if engine.mode.ions == 'free':
        np.testing.assert_allclose(ions, engine.h)
    else:
        assert np.all(ions == 0)
    if engine.mode.open_circuit:
        assert m[engine.ipsi] == 0


def test_ion_conservation(params, small_mesh, make_state):
    engine = Engine(params, small_mesh, TRANSIENT)
    y = make_state(engine)
    f = engine.rhs(y, 0.2, 1.)
    fP = f[engine.iP:engine.iP + engine.N + 1]
    assert abs(fP.sum()) < 1e-12 * np.abs(fP).max()


def test_ion_modes(params, small_mesh, make_state):
    y = make_state(Engine(params, small_mesh, INIT))
    P = y[:small_mesh.x.size]
    f = Engine(params, small_mesh, INIT).rhs(y, 0., 1.)
    np.testing.assert_allclose(f[:P.size], P - 1)
    steady = Engine(params, small_mesh, STEADY)
    f = steady.rhs(y, 0., 1.)
    np.testing.assert_allclose(f[0], np.dot(steady.h, P) - 1)


def test_control_volumes(engine):
    np.testing.assert_allclose(engine.h.sum(), 1)
    np.testing.assert_allclose(engine.hEx.sum(), engine.params.wE)
    np.testing.assert_allclose(engine.hHx.sum(), engine.params.wH)


@pytest.mark.parametrize('psi', [-1., 0., 2.5])
def test_solve_poisson(params, small_mesh, make_state, psi):
    engine = Engine(params, small_mesh, TRANSIENT)
    y = engine.solve_poisson(make_state(engine), psi)
    f = engine.rhs(y, psi, 1.)
    np.testing.assert_allclose(f[engine.phi_idx], 0, atol=1e-12)
    P, phi, n, p, phiE, nE, phiH, pH = engine.split(y)
    assert phiE[0] == pytest.approx(psi)
    assert phiH[-1] == pytest.approx(-psi)


def test_solve_poisson_open_circuit(params, small_mesh, make_state):
    engine = Engine(params, small_mesh, OPEN_CIRCUIT)
    y = make_state(engine)
    y[engine.ipsi] = 0.7
    y = engine.solve_poisson(y)
    f = engine.rhs(y, None, 1.)
    np.testing.assert_allclose(f[engine.phi_idx], 0, atol=1e-12)
    assert y[engine.ipsi] == 0.7


def test_contact_current_row(params, small_mesh, make_state):
    engine = Engine(params, small_mesh, OPEN_CIRCUIT)
    y = make_state(engine)
    f = engine.rhs(y, None, 1.)
    assert f[engine.ipsi] == pytest.approx(engine.contact_current(y))
