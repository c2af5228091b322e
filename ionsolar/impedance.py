# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np
from collections import namedtuple

from .analyzer import Analyzer

__all__ = ['Spectrum', 'fit_phasor', 'extract_impedance']


# Impedance [Ohm cm^2] and the complex amplitudes of the applied voltage [V]
# and current density [mA/cm^2] at each frequency [Hz]
Spectrum = namedtuple('Spectrum', ['frequencies', 'Z', 'V', 'J'])


def fit_phasor(t, signal, omega):
    """
    Least squares fit of ``a0 + a1 sin(omega t) + a2 cos(omega t)``.

    Parameters
    ----------
    t: numpy array of floats
        Sample times.
    signal: numpy array of floats
        Samples.
    omega: float
        Angular frequency, in the inverse unit of t.

    Returns
    -------
    phasor: complex
        ``a1 + 1j * a2``, the complex amplitude of the oscillation with
        ``sin(omega t)`` as phase reference.
    """
    A = np.column_stack((np.ones_like(t), np.sin(omega * t), np.cos(omega * t)))
    coefs = np.linalg.lstsq(A, signal, rcond=None)[0]
    return coefs[1] + 1j * coefs[2]


def extract_impedance(solutions, periods=1):
    """
    Impedance from the response of the cell to sinusoidal voltages.

    Parameters
    ----------
    solutions: list of Solution
        Output of ``impedance_spectroscopy``, one solution per frequency.
    periods: integer
        Number of final periods used in the fits.

    Returns
    -------
    spectrum: Spectrum
    """
    freqs, Z, V, J = [], [], [], []
    for sol in solutions:
        par = sol.params
        omega = sol.protocol.psi_fn.omega / par.Tion
        period = 2 * np.pi / omega
        t = par.tstar2t(sol.time)
        # keep the tail of the response, after the initial transient
        last = t >= t[-1] - periods * period * (1 + 1e-9)
        az = Analyzer(sol)
        v = fit_phasor(t[last], az.voltage()[last], omega)
        j = fit_phasor(t[last], az.current()[last], omega)

        freqs.append(omega / (2 * np.pi))
        V.append(v)
        J.append(j)
        # the current into the cell is -J, V / (mA/cm^2) is 1e3 Ohm cm^2
        Z.append(1e3 * v / -j)
    return Spectrum(frequencies=np.array(freqs), Z=np.array(Z),
                    V=np.array(V), J=np.array(J))
