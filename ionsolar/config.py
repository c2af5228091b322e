# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

from collections import namedtuple

from .parameters import ConfigurationError

__all__ = ['SolverConfig', 'check_config']


_fields = [
    # mesh
    ('N', 400), ('NE', None), ('NH', None), ('st', 2.),
    # time integration
    ('rtol', 1e-6), ('atol', 1e-10), ('max_order', 2), ('first_step', None),
    ('use_splits', True),
    # steady state Newton iteration
    ('newton_tol', 1e-8), ('maxiter', 100), ('frozen_ions', False),
    # open circuit search
    ('voc_tol', 1e-8), ('voc_jtol', 1e-6), ('voc_maxiter', 100),
    # time grids
    ('points_per_segment', 100), ('points_per_period', 50),
    ('time_spacing', 'lin'),
    # Jacobian
    ('analytic_jacobian', True),
    # impedance sweeps
    ('processes', None),
    ('verbose', False),
]


class SolverConfig(namedtuple('SolverConfig', [k for k, _ in _fields],
                              defaults=[v for _, v in _fields])):
    """
    Immutable settings of a simulation.

    Attributes
    ----------
    N, NE, NH: integers
        Number of subintervals in the perovskite, ETL and HTL. ``NE`` and
        ``NH`` default to a quarter of ``N`` (at least 2).
    st: float
        Stretching factor of the tanh meshes.
    rtol, atol: floats
        Relative and absolute error tolerances of the time integration.
    max_order: integer
        Highest order (1 or 2) of the BDF formulas.
    first_step: float
        Initial dimensionless step size, chosen from the time grid if None.
    use_splits: boolean
        Restart the integrator at every split point of the protocol.
    newton_tol: float
        Relative accuracy of the steady state Newton iteration.
    maxiter: integer
        Maximum number of steps of the steady state Newton iteration.
    frozen_ions: boolean
        Hold the ion vacancy density uniform in the steady state instead of
        letting a fixed number of vacancies reach their steady distribution.
    voc_tol: float
        Tolerance on psi of the open circuit search.
    voc_jtol: float
        Largest dimensionless current accepted at open circuit, a
        ConvergenceWarning is issued above it.
    voc_maxiter: integer
        Maximum number of iterations of the open circuit search.
    points_per_segment: integer
        Number of output times in every segment of a protocol.
    points_per_period: integer
        Number of output times in every period of an impedance measurement.
    time_spacing: string
        'lin' or 'log' spacing of the output times in a segment.
    analytic_jacobian: boolean
        Use the analytic Jacobian instead of finite differences.
    processes: integer
        Number of worker processes of an impedance sweep, run serially if None.
    verbose: boolean
        Log the progress of the solvers.
    """
    __slots__ = ()

    @property
    def ne(self):
        return self.NE if self.NE is not None else max(2, self.N // 4)

    @property
    def nh(self):
        return self.NH if self.NH is not None else max(2, self.N // 4)


def check_config(config):
    """
    Raise a ConfigurationError for inconsistent settings.
    """
    for name in ('rtol', 'atol', 'newton_tol', 'voc_tol', 'voc_jtol', 'st'):
        if not getattr(config, name) > 0:
            raise ConfigurationError("Setting '{0}' must be positive, got {1}."
                                     .format(name, getattr(config, name)))
    for name in ('maxiter', 'voc_maxiter'):
        if getattr(config, name) < 1:
            raise ConfigurationError("Setting '{0}' must be at least 1, got {1}."
                                     .format(name, getattr(config, name)))
    for name in ('points_per_segment', 'points_per_period'):
        if getattr(config, name) < 2:
            raise ConfigurationError("Setting '{0}' must be at least 2, got {1}."
                                     .format(name, getattr(config, name)))
    if config.max_order not in (1, 2):
        raise ConfigurationError("Setting 'max_order' must be 1 or 2, got {0}."
                                 .format(config.max_order))
    if config.time_spacing not in ('lin', 'log'):
        raise ConfigurationError("Setting 'time_spacing' must be 'lin' or 'log', "
                                 "got '{0}'.".format(config.time_spacing))
    if config.first_step is not None and not config.first_step > 0:
        raise ConfigurationError("Setting 'first_step' must be positive, got {0}."
                                 .format(config.first_step))
