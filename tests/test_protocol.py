import numpy as np
import pytest

from ionsolar import compile_protocol, Imposed, SOLVE_FOR_VOC, ProtocolError, \
                     SolverConfig
from ionsolar.protocol import ImpedanceProtocol


def test_constant_protocol(params):
    prot = compile_protocol(params, 0.5, 1.0)
    np.testing.assert_array_equal(prot.time, [0., 1.])
    psi = float(params.Vap2psi(1.0))
    for t in prot.time:
        assert prot.light(t) == 0.5
        assert prot.psi(t) == Imposed(psi)
    assert not prot.find_voc


def test_segments_reach_their_targets(params):
    prot = compile_protocol(params, 1, [1.2, 'tanh', 5, 1.2, 'linear', 12, 0,
                                        'exponential', 3, 0.6])
    ends = np.cumsum(params.t2tstar([5, 12, 3]))
    np.testing.assert_allclose(prot.splits, np.concatenate(([0], ends)))
    for t, V in zip(ends, [1.2, 0, 0.6]):
        np.testing.assert_allclose(params.psi2Vap(prot.psi(t).value), V, atol=1e-12)
    assert prot.time[0] == 0
    assert prot.time[-1] == ends[-1]
    assert np.all(np.diff(prot.time) > 0)
    # after the last segment the value is held
    np.testing.assert_allclose(params.psi2Vap(prot.psi(2 * ends[-1]).value), 0.6)


@pytest.mark.parametrize('shape', ['linear', 'tanh', 'exponential'])
def test_segment_continuity(params, shape):
    prot = compile_protocol(params, [0, shape, 2, 1, shape, 3, 0.2],
                            [0.9, shape, 1, 0.3, shape, 4, 1.1])
    for t in prot.splits[1:-1]:
        dt = 1e-9 * t
        assert abs(prot.light(t + dt) - prot.light(t - dt)) < 1e-6
        assert abs(prot.psi(t + dt).value - prot.psi(t - dt).value) < 1e-6


def test_time_grid_merges_breakpoints(params):
    config = SolverConfig(points_per_segment=5)
    prot = compile_protocol(params, [1, 'linear', 2, 0], [0.5, 'linear', 3, 1.],
                            config)
    np.testing.assert_allclose(prot.splits, params.t2tstar([0, 2, 3]))
    for s in prot.splits:
        assert np.any(prot.time == s)
    # 4 points in each of the two intervals plus the end point
    assert len(prot.time) == 9


def test_log_spacing(params):
    config = SolverConfig(points_per_segment=6, time_spacing='log')
    prot = compile_protocol(params, 1, [0, 'linear', 1, 1], config)
    steps = np.diff(prot.time)
    assert np.all(steps > 0)
    assert np.all(np.diff(steps) > 0)


def test_no_splits(params):
    config = SolverConfig(use_splits=False)
    prot = compile_protocol(params, 1, [0, 'linear', 1, 1, 'linear', 1, 0], config)
    np.testing.assert_allclose(prot.splits, [0, params.t2tstar(2)])


def test_open_circuit(params):
    prot = compile_protocol(params, 1, 'open-circuit')
    assert prot.find_voc and prot.open_circuit
    assert prot.psi(0) == SOLVE_FOR_VOC
    assert prot.psi(0.5) == SOLVE_FOR_VOC
    bound = prot.bind(-2.)
    assert not bound.find_voc
    assert bound.psi(0.5) == SOLVE_FOR_VOC


def test_open_circuit_then_segments(params):
    prot = compile_protocol(params, 1, ['open-circuit', 'linear', 10, 0])
    assert prot.find_voc and not prot.open_circuit
    assert prot.psi(0) == SOLVE_FOR_VOC
    bound = prot.bind(-2.)
    assert bound.psi(0) == Imposed(-2.)
    end = params.t2tstar(10)
    np.testing.assert_allclose(bound.psi(end).value, params.Vap2psi(0))
    np.testing.assert_allclose(bound.psi(end / 2).value,
                               (-2. + params.Vap2psi(0)) / 2)


@pytest.mark.parametrize('light, voltage', [
    ('dark', 1.),
    ([], 1.),
    (1, ['open']),
    (1, [1., 'linear', 1]),
    (1, [1., 'cubic', 1, 0]),
    (1, [1., 'linear', 0, 0]),
    (1, [1., 'linear', -1, 0]),
    (1, [1., 'linear', 1, 'high']),
    (1, [1., 'linear', np.inf, 0]),
    ('open-circuit', 1.),
    ([1, 'linear', 1, 0], ['impedance', 1, 10, 0.9, 0.01, 3, 5]),
    (1, ['impedance', 1, 10, 0.9, 0.01, 3]),
    (1, ['impedance', 10, 1, 0.9, 0.01, 3, 5]),
    (1, ['impedance', 1, 10, 0.9, 0.01, 2.5, 5]),
    (1, ['impedance', 1, 10, 0.9, 0.01, 3, 0]),
])
def test_bad_grammar(params, light, voltage):
    with pytest.raises(ProtocolError):
        compile_protocol(params, light, voltage)


def test_impedance_grid(params):
    config = SolverConfig(points_per_period=25)
    prot = compile_protocol(params, 1, ['impedance', 1e3, 1e3, 0.9, 0.01, 1, 5],
                            config)
    assert isinstance(prot, ImpedanceProtocol)
    assert len(prot.protocols) == 1
    p = prot.protocols[0]
    period = params.t2tstar(1e-3)
    np.testing.assert_allclose(p.time[-1] - p.time[0], 5 * period, rtol=1e-12)
    assert len(p.time) - 1 >= 5 * config.points_per_period
    np.testing.assert_allclose(p.splits, np.arange(6) * period, rtol=1e-12)
    # sinusoidal voltage around the DC level
    V = params.psi2Vap(p.psi_fn(p.time))
    np.testing.assert_allclose(V.max(), 0.91, atol=1e-4)
    np.testing.assert_allclose(V.min(), 0.89, atol=1e-4)
    assert p.psi(0) == Imposed(float(params.Vap2psi(0.9)))


def test_impedance_frequencies(params):
    prot = compile_protocol(params, 1, ['impedance', 1e-2, 1e4, 1., 0.02, 7, 3])
    np.testing.assert_allclose(prot.frequencies, np.logspace(-2, 4, 7))
    spans = [p.time[-1] for p in prot.protocols]
    np.testing.assert_allclose(spans, 3 * params.t2tstar(1 / prot.frequencies))
