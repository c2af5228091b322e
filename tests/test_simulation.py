import numpy as np
import pytest

from ionsolar import compile_protocol, simulate, Solver, Analyzer, \
                     extract_impedance, STEADY


@pytest.fixture(scope='module')
def constant_run(params, mesh, config):
    protocol = compile_protocol(params, 1, float(params.Vbi), config)
    return simulate(params, protocol, config, mesh)


def test_constant_forcing_stays_steady(constant_run):
    sol = constant_run
    np.testing.assert_array_equal(sol.time, [0, 1])
    assert sol.y.shape[0] == 2
    np.testing.assert_allclose(sol.psi, 0, atol=1e-12)
    np.testing.assert_array_equal(sol.light, [1, 1])
    np.testing.assert_allclose(sol.y[-1], sol.y[0], rtol=1e-4, atol=1e-8)


def test_current_balance(constant_run, params):
    # electrons generated and not recombined leave through the ETL
    az = Analyzer(constant_run)
    sys = az.sys
    rr = az.integrated_recombination(0)
    generated = np.dot(sys.h, sys.g)
    j = az.conduction_current()[0]
    np.testing.assert_allclose(j, generated - rr['bulk'] - rr['left'] - rr['right'],
                               rtol=1e-4, atol=1e-8)
    assert j < generated
    J = az.current()
    np.testing.assert_allclose(J, az.conduction_current() * params.jay, rtol=1e-3)


def test_distributions(constant_run):
    az = Analyzer(constant_run)
    d = az.distributions()
    N = len(constant_run.mesh.x)
    assert sorted(d) == sorted(['P', 'phi', 'n', 'p', 'phiE', 'nE', 'phiH', 'pH'])
    assert len(d['phi']) == N
    assert len(d['phiE']) == len(constant_run.mesh.xE) - 1
    np.testing.assert_allclose(az.voltage(), constant_run.params.Vbi)


def test_voltage_ramp(params, mesh, config):
    V0 = float(params.Vbi)
    protocol = compile_protocol(params, [1, 'tanh', 0.5, 0.8],
                                [V0, 'linear', 1, V0 - 0.1], config)
    sol = Solver(params, mesh, config).simulate(protocol)
    assert len(sol.time) == len(protocol.time)
    assert np.all(np.isfinite(sol.y))
    V = Analyzer(sol).voltage()
    np.testing.assert_allclose(V[0], V0)
    np.testing.assert_allclose(V[-1], V0 - 0.1)
    np.testing.assert_allclose(sol.light[-1], 0.8)
    # densities stay positive along the scan
    engine = Solver(params, mesh, config).engine(STEADY)
    for y in sol.y:
        P, phi, n, p = engine.split(y)[:4]
        assert np.all(n > 0) and np.all(p > 0) and np.all(P > 0)


def test_open_circuit_run(params, mesh, config):
    protocol = compile_protocol(params, 1, 'open-circuit', config)
    sol = simulate(params, protocol, config, mesh)
    assert not sol.protocol.find_voc
    np.testing.assert_allclose(sol.psi, sol.psi[0], rtol=1e-4, atol=1e-6)
    jc = Analyzer(sol).conduction_current()
    assert np.all(np.abs(jc) < 1e-3)
    Voc = sol.params.psi2Vap(sol.psi[0])
    assert 0 < Voc < 1.6


def test_impedance_single_frequency(params, mesh, config):
    Vac = 0.02
    protocol = compile_protocol(params, 1, ['impedance', 1e3, 1e3, float(params.Vbi),
                                            Vac, 1, 3], config)
    sols = simulate(params, protocol, config, mesh)
    assert len(sols) == 1
    assert len(sols[0].time) == 3 * config.points_per_period + 1
    spectrum = extract_impedance(sols)
    np.testing.assert_allclose(spectrum.frequencies, [1e3])
    np.testing.assert_allclose(abs(spectrum.V[0]), Vac, rtol=1e-6)
    assert np.all(np.isfinite(spectrum.Z))
    assert abs(spectrum.Z[0]) > 0
