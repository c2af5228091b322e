# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

from ._version import __version__

__all__ = ['parameters', 'config', 'mesh', 'protocol', 'engine', 'integrator',
           'solvers', 'analyzer', 'impedance']
for module in __all__:
    exec('from . import {0}'.format(module))

available = [('parameters', ['build_parameters', 'Parameters', 'ConfigurationError']),
             ('config', ['SolverConfig']),
             ('mesh', ['build_mesh', 'Mesh']),
             ('protocol', ['compile_protocol', 'Imposed', 'SOLVE_FOR_VOC',
                           'ProtocolError']),
             ('engine', ['Engine', 'INIT', 'STEADY', 'TRANSIENT', 'OPEN_CIRCUIT']),
             ('integrator', ['IntegrationError']),
             ('solvers', ['Solver', 'Solution', 'simulate', 'impedance_spectroscopy',
                          'ConvergenceWarning']),
             ('analyzer', ['Analyzer']),
             ('impedance', ['extract_impedance', 'Spectrum'])]
for module, names in available:
    exec('from .{0} import {1}'.format(module, ', '.join(names)))
    __all__.extend(names)
