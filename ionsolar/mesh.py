# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import logging
import numpy as np
from collections import namedtuple

from .parameters import ConfigurationError

__all__ = ['Mesh', 'build_mesh']


# Node coordinates and forward spacings of the three layers. The ETL ends at
# x = 0 and the HTL starts at x = 1, where they share a node with the
# perovskite.
Mesh = namedtuple('Mesh', ['x', 'dx', 'xE', 'dxE', 'xH', 'dxH'])


def _warp(u, st):
    # maps [-1, 1] onto itself, compressing points towards both ends
    return np.tanh(st * u) / np.tanh(st)


def build_mesh(N, NE, NH, wE, wH, st=2., verbose=False):
    """
    Build the tanh-graded grids of the ETL, perovskite and HTL.

    Parameters
    ----------
    N, NE, NH: integers
        Number of subintervals in the perovskite, ETL and HTL.
    wE, wH: floats
        Dimensionless widths of the ETL and HTL.
    st: float
        Stretching factor, larger values put more points near the interfaces
        and the contacts.
    verbose: boolean
        Log the smallest and largest spacing of each layer.

    Returns
    -------
    mesh: Mesh
        Named tuple of the node coordinates (``x``, ``xE``, ``xH``) and their
        spacings (``dx``, ``dxE``, ``dxH``). ``xE[-1] == x[0] == 0`` and
        ``x[-1] == xH[0] == 1`` hold exactly.
    """
    for name, value in (('N', N), ('NE', NE), ('NH', NH)):
        if int(value) != value or value < 2:
            raise ConfigurationError("Number of subintervals {0} must be an "
                                     "integer larger than 1, got {1}."
                                     .format(name, value))
    for name, value in (('wE', wE), ('wH', wH), ('st', st)):
        if not value > 0:
            raise ConfigurationError("{0} must be positive, got {1}."
                                     .format(name, value))
    N, NE, NH = int(N), int(NE), int(NH)

    # perovskite, refined towards both interfaces
    x = (_warp(np.linspace(-1, 1, N+1), st) + 1) / 2
    # transport layers, refined towards the contacts and the perovskite
    xE = wE * (_warp(np.linspace(-1, 1, NE+1), st) - 1) / 2
    xH = 1 + wH * (_warp(np.linspace(-1, 1, NH+1), st) + 1) / 2

    # pin the layer boundaries
    x[0], x[-1] = 0., 1.
    xE[0], xE[-1] = -wE, 0.
    xH[0], xH[-1] = 1., 1. + wH

    mesh = Mesh(x=x, dx=np.diff(x), xE=xE, dxE=np.diff(xE),
                xH=xH, dxH=np.diff(xH))
    if verbose:
        for name in ('dx', 'dxE', 'dxH'):
            d = getattr(mesh, name)
            logging.info("min {0} is {1:.3e}, max {0} is {2:.3e}"
                         .format(name, d.min(), d.max()))
    return mesh
