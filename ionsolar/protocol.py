# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np
from collections import namedtuple
from numbers import Real

from .config import SolverConfig
from .parameters import ConfigurationError

__all__ = ['ProtocolError', 'Imposed', 'SolveForVoc', 'SOLVE_FOR_VOC',
           'Segment', 'Piecewise', 'Sine', 'Protocol', 'ImpedanceProtocol',
           'compile_protocol']


class ProtocolError(ConfigurationError):
    pass


# Value of psi at a given time: imposed, or unknown and set by a zero current
Imposed = namedtuple('Imposed', ['value'])
SolveForVoc = namedtuple('SolveForVoc', [])
SOLVE_FOR_VOC = SolveForVoc()


# Ramps from 0 to 1 over the elapsed fraction s of a segment
SHAPES = {
    'linear': lambda s: s,
    'tanh': lambda s: np.tanh(4 * s) / np.tanh(4),
    'exponential': lambda s: np.expm1(-4 * s) / np.expm1(-4),
}


class Segment(namedtuple('Segment', ['shape', 'start', 'end', 'v0', 'v1'])):
    """
    Change of a forcing value from v0 to v1 between the times start and end.
    """
    __slots__ = ()

    def __call__(self, t):
        s = np.clip((t - self.start) / (self.end - self.start), 0, 1)
        return self.v0 + (self.v1 - self.v0) * SHAPES[self.shape](s)


class Piecewise(namedtuple('Piecewise', ['initial', 'segments'])):
    """
    Forcing function made of consecutive segments, constant before the first
    one and after the last one.
    """
    __slots__ = ()

    def __call__(self, t):
        t = np.asarray(t, dtype=float)
        out = np.full(t.shape, self.initial, dtype=float)
        for seg in self.segments:
            mask = t >= seg.start
            out[mask] = seg(t[mask])
        return out[()]

    @property
    def end(self):
        return self.segments[-1].end if self.segments else 0.

    def rebase(self, value):
        """Same ramps, starting from another initial value."""
        if not self.segments:
            return Piecewise(value, ())
        first = self.segments[0]._replace(v0=value)
        return Piecewise(value, (first,) + tuple(self.segments[1:]))


class Sine(namedtuple('Sine', ['dc', 'amplitude', 'omega'])):
    __slots__ = ()

    def __call__(self, t):
        return self.dc + self.amplitude * np.sin(self.omega * np.asarray(t))


class Protocol(namedtuple('Protocol', ['light_fn', 'psi_fn', 'time', 'splits',
                                       'find_voc', 'open_circuit'])):
    """
    Compiled forcing of a simulation, in dimensionless time.

    Attributes
    ----------
    light_fn: callable
        Light intensity as a function of time.
    psi_fn: callable
        Imposed psi as a function of time, None when the cell stays at open
        circuit.
    time: numpy array of floats
        Output times.
    splits: numpy array of floats
        Times at which the integrator restarts, including both ends of the
        time grid.
    find_voc: boolean
        True if the initial psi must be found from a zero current.
    open_circuit: boolean
        True if psi is an unknown over the whole protocol.
    """
    __slots__ = ()

    def light(self, t):
        return self.light_fn(t)

    def psi(self, t):
        """
        Forcing voltage at time t.

        Returns
        -------
        psi: Imposed or SolveForVoc
            ``Imposed(value)`` when psi is imposed at t, ``SOLVE_FOR_VOC``
            when it is set by open circuit conditions.
        """
        if self.open_circuit or (self.find_voc and t <= self.time[0]):
            return SOLVE_FOR_VOC
        return Imposed(float(self.psi_fn(t)))

    def bind(self, psi0):
        """
        Protocol starting from the open circuit value psi0.
        """
        psi_fn = self.psi_fn.rebase(psi0) if self.psi_fn is not None else None
        return self._replace(psi_fn=psi_fn, find_voc=False)


ImpedanceProtocol = namedtuple('ImpedanceProtocol', ['frequencies', 'protocols',
                                                     'Vdc', 'Vac', 'n_periods'])


def _is_number(value):
    return isinstance(value, Real) and not isinstance(value, bool) \
           and np.isfinite(value)


def _parse(instr, name, sentinels=()):
    # Split an instruction [initial, shape, duration, target, ...] into its
    # initial value and a list of (shape, duration, target).
    if _is_number(instr) or isinstance(instr, str):
        instr = [instr]
    if not isinstance(instr, (list, tuple)) or len(instr) == 0:
        raise ProtocolError("The {0} protocol must be a non-empty list, got {1!r}."
                            .format(name, instr))
    initial = instr[0]
    if not (_is_number(initial) or initial in sentinels):
        raise ProtocolError("The {0} protocol must start with a number{1}, got {2!r}."
                            .format(name, ''.join(" or '{0}'".format(s) for s in sentinels),
                                    initial))
    rest = list(instr[1:])
    if len(rest) % 3 != 0:
        raise ProtocolError("The {0} protocol {1!r} does not split into "
                            "(shape, duration, target) segments."
                            .format(name, instr))
    segments = []
    for k in range(0, len(rest), 3):
        shape, duration, target = rest[k:k+3]
        if shape not in SHAPES:
            raise ProtocolError("Unknown shape {0!r} in the {1} protocol, use one "
                                "of {2}.".format(shape, name, ', '.join(sorted(SHAPES))))
        if not (_is_number(duration) and duration > 0):
            raise ProtocolError("Segment durations must be positive numbers, got "
                                "{0!r} in the {1} protocol.".format(duration, name))
        if not _is_number(target):
            raise ProtocolError("Segment targets must be numbers, got {0!r} in the "
                                "{1} protocol.".format(target, name))
        segments.append((shape, float(duration), float(target)))
    return initial, segments


def _segments(initial, parsed, scale, offset, to_time):
    # chain the parsed segments, each starting where the previous one ends
    segs = []
    t, v = 0., initial
    for shape, duration, target in parsed:
        t1 = t + float(to_time(duration))
        v1 = offset + scale * target
        segs.append(Segment(shape, t, t1, v, v1))
        t, v = t1, v1
    return Piecewise(initial, tuple(segs))


def _time_grid(breakpoints, points, spacing):
    grid = []
    for a, b in zip(breakpoints[:-1], breakpoints[1:]):
        if spacing == 'log':
            u = np.concatenate(([0], np.logspace(-4, 0, points - 1)))
        else:
            u = np.linspace(0, 1, points)
        grid.append(a + (b - a) * u[:-1])
    grid.append([breakpoints[-1]])
    return np.concatenate(grid)


def compile_protocol(params, light, voltage, config=None):
    """
    Compile light and voltage instructions into forcing functions and time
    grids.

    An instruction is a number, or a list made of an initial value followed
    by segments ``shape, duration, target`` where shape is 'linear', 'tanh'
    or 'exponential' and the duration is in seconds. Light values are
    relative to the reference photon flux, voltages are in Volts. A voltage
    instruction can start with 'open-circuit', or be
    ``['impedance', fmin, fmax, Vdc, Vac, n_frequencies, n_periods]``.

    Parameters
    ----------
    params: Parameters
        The nondimensional parameters.
    light: number or list
        Light instruction.
    voltage: number, string or list
        Voltage instruction.
    config: SolverConfig
        Settings of the time grids.

    Returns
    -------
    protocol: Protocol or ImpedanceProtocol

    Examples
    --------
    Precondition at 1.2 V for 5 s, then scan to 0 V and back at 100 mV/s:

    >>> compile_protocol(params, 1, [1.2, 'tanh', 5, 1.2,
    ...                              'linear', 12, 0, 'linear', 12, 1.2])
    """
    if config is None:
        config = SolverConfig()

    if isinstance(voltage, (list, tuple)) and len(voltage) > 0 \
       and voltage[0] == 'impedance':
        return _compile_impedance(params, light, voltage, config)

    light0, light_segs = _parse(light, 'light')
    psi0, voltage_segs = _parse(voltage, 'voltage', sentinels=('open-circuit',))

    find_voc = isinstance(psi0, str)
    open_circuit = find_voc and not voltage_segs
    light_fn = _segments(float(light0), light_segs, 1., 0., params.t2tstar)
    if open_circuit:
        psi_fn = None
    else:
        # placeholder start value until the open circuit psi is known
        start = 0. if find_voc else float(params.Vap2psi(psi0))
        psi_fn = _segments(start, voltage_segs, -1 / (2 * params.VT),
                           params.Vbi / (2 * params.VT), params.t2tstar)

    ends = [light_fn.end] + ([psi_fn.end] if psi_fn is not None else [])
    breakpoints = np.unique(np.concatenate(
        ([0.], [s.end for s in light_fn.segments],
         [s.end for s in psi_fn.segments] if psi_fn is not None else [])))
    if max(ends) == 0:
        # constant forcing
        time = np.array([0., 1.])
        breakpoints = time
    else:
        time = _time_grid(breakpoints, config.points_per_segment, config.time_spacing)

    splits = breakpoints if config.use_splits else breakpoints[[0, -1]]
    return Protocol(light_fn=light_fn, psi_fn=psi_fn, time=time, splits=splits,
                    find_voc=find_voc, open_circuit=open_circuit)


def _compile_impedance(params, light, voltage, config):
    if len(voltage) != 7 or not all(_is_number(v) for v in voltage[1:]):
        raise ProtocolError("The impedance protocol must be ['impedance', fmin, "
                            "fmax, Vdc, Vac, n_frequencies, n_periods], got {0!r}."
                            .format(voltage))
    fmin, fmax, Vdc, Vac, nf, nper = voltage[1:]
    if not 0 < fmin <= fmax:
        raise ProtocolError("Impedance frequencies must satisfy 0 < fmin <= fmax, "
                            "got fmin={0}, fmax={1}.".format(fmin, fmax))
    if int(nf) != nf or nf < 1 or int(nper) != nper or nper < 1:
        raise ProtocolError("The numbers of frequencies and periods must be "
                            "positive integers, got {0} and {1}.".format(nf, nper))
    light0, light_segs = _parse(light, 'light')
    if light_segs:
        raise ProtocolError("The light intensity of an impedance protocol must be "
                            "a single value, got {0!r}.".format(light))
    nf, nper = int(nf), int(nper)

    light_fn = Piecewise(float(light0), ())
    frequencies = np.logspace(np.log10(fmin), np.log10(fmax), nf)
    protocols = []
    for f in frequencies:
        period = float(params.t2tstar(1 / f))
        span = nper * period
        time = np.linspace(0, span, nper * config.points_per_period + 1)
        if config.use_splits:
            splits = np.linspace(0, span, nper + 1)
        else:
            splits = np.array([0., span])
        psi_fn = Sine(dc=float(params.Vap2psi(Vdc)), amplitude=-Vac / (2 * params.VT),
                      omega=2 * np.pi / period)
        protocols.append(Protocol(light_fn=light_fn, psi_fn=psi_fn, time=time,
                                  splits=splits, find_voc=False, open_circuit=False))
    return ImpedanceProtocol(frequencies=frequencies, protocols=protocols,
                             Vdc=Vdc, Vac=Vac, n_periods=nper)
