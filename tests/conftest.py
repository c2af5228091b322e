import numpy as np
import pytest

from ionsolar import build_parameters, build_mesh, SolverConfig, Solver


@pytest.fixture(scope='session')
def params():
    return build_parameters()


@pytest.fixture(scope='session')
def config():
    return SolverConfig(N=40, NE=10, NH=10, points_per_segment=10,
                        points_per_period=20)


@pytest.fixture(scope='session')
def mesh(params, config):
    return build_mesh(config.N, config.NE, config.NH, params.wE, params.wH,
                      config.st)


@pytest.fixture
def solver(params, mesh, config):
    return Solver(params, mesh, config)


@pytest.fixture(scope='session')
def small_mesh(params):
    return build_mesh(12, 4, 4, params.wE, params.wH)


def perturbed_state(engine, seed=0):
    # smooth state away from any steady state, all densities positive
    rng = np.random.RandomState(seed)
    y = np.empty(engine.size)
    N = engine.N
    x = engine.mesh.x
    y[engine.iP:engine.iP+N+1] = 1 + 0.3 * np.cos(3 * x)
    y[engine.in_:engine.in_+N+1] = engine.params.kE * (1 + 0.5 * x)
    y[engine.ip:engine.ip+N+1] = engine.params.kH * (1.5 - 0.5 * x)
    y[engine.phi_idx] = 0.5 * np.sin(np.linspace(0, 3, engine.npoisson)) \
        + 0.05 * rng.rand(engine.npoisson)
    y[engine.inE:engine.inE+engine.NE] = 1 + 0.1 * rng.rand(engine.NE)
    y[engine.ipH:engine.ipH+engine.NH] = 1 + 0.1 * rng.rand(engine.NH)
    if engine.mode.open_circuit:
        y[engine.ipsi] = 0.2
    return y


@pytest.fixture
def make_state():
    return perturbed_state
