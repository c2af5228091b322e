# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np
import scipy.constants as cts
from collections import namedtuple

__all__ = ['Scaling', 'Parameters', 'build_parameters', 'default_parameters',
           'ConfigurationError']


class ConfigurationError(ValueError):
    pass


# Dimensional inputs in SI units (energies in eV, permittivities relative to
# vacuum). User values override these entries.
default_parameters = {
    # perovskite
    'T': 298., 'b': 400e-9, 'epsp': 24.1, 'alpha': 1.3e7,
    'Ec': -3.7, 'Ev': -5.4, 'Dn': 1.7e-4, 'Dp': 1.7e-4,
    'gc': 8.1e24, 'gv': 5.8e24,
    # ion vacancies
    'N0': 1.6e25, 'DIinf': 6.5e-8, 'EAI': 0.58, 'DI': None,
    # light
    'Fph': 1.4e21, 'inverted': False,
    # electron transport layer
    'dE': 1e24, 'gcE': 5e25, 'EcE': -4.0, 'bE': 100e-9, 'epsE': 10.,
    'DE': 1e-5,
    # hole transport layer
    'dH': 1e24, 'gvH': 5e25, 'EvH': -5.1, 'bH': 200e-9, 'epsH': 3.,
    'DH': 1e-6,
    # bulk recombination
    'tn': 3e-9, 'tp': 3e-7, 'beta': 0., 'Augn': 0., 'Augp': 0.,
    # interface recombination
    'betaE': 0., 'betaH': 0., 'vnE': 1e5, 'vpE': 10., 'vnH': 0.1, 'vpH': 1e5,
}

_positive = ['T', 'b', 'epsp', 'Dn', 'Dp', 'gc', 'gv', 'N0', 'DIinf', 'Fph',
             'dE', 'gcE', 'bE', 'epsE', 'DE', 'dH', 'gvH', 'bH', 'epsH', 'DH',
             'tn', 'tp', 'alpha']
_non_negative = ['beta', 'Augn', 'Augp', 'betaE', 'betaH',
                 'vnE', 'vpE', 'vnH', 'vpH']


class Scaling():
    """
    An object defining the scalings of the drift-diffusion-Poisson equations
    of the three-layer cell.

    Parameters
    ----------
    mt: dictionary
        Dimensional inputs, with the keys of ``default_parameters``.

    Attributes
    ----------
    VT: float
        Thermal voltage [V].
    LD: float
        Debye length of the ion vacancies [m].
    DI: float
        Ion vacancy diffusion coefficient [m\ :sup:`2`/s].
    time: float
        Ion vacancy time scale [s].
    generation: float
        Scale of generation and recombination rates [m\ :sup:`-3`/s].
    current: float
        Electrical current density scale [mA/cm\ :sup:`2`].
    """
    def __init__(self, mt):
        self.VT = cts.k * mt['T'] / cts.e
        self.LD = np.sqrt(mt['epsp'] * cts.epsilon_0 * self.VT / (cts.e * mt['N0']))
        if mt['DI'] is None:
            self.DI = mt['DIinf'] * np.exp(-mt['EAI'] / self.VT)
        else:
            self.DI = mt['DI']
        self.time = mt['b'] * self.LD / self.DI
        upsilon = mt['alpha'] * mt['b']
        self.generation = mt['Fph'] * (1 - np.exp(-upsilon)) / mt['b']
        # q * G0 * b in A/m^2, reported in mA/cm^2
        self.current = 0.1 * cts.e * self.generation * mt['b']


class Parameters(namedtuple('Parameters', [
        'VT', 'Vbi', 'Tion', 'jay', 'b', 'N0',
        'lam', 'delta', 'chi', 'sigma', 'Kn', 'Kp', 'KE', 'KH',
        'epsE', 'epsH', 'wE', 'wH', 'kE', 'kH', 'upsilon', 'inverted',
        'ni2', 'brate', 'augn', 'augp', 'srh', 'srh_n', 'srh_p', 'srh_k',
        'brateE', 'srhE', 'srhE_n', 'srhE_p',
        'brateH', 'srhH', 'srhH_n', 'srhH_p', 'dispE'])):
    """
    Immutable record of the nondimensional groups of the model.

    Densities are scaled by the transport-layer doping ``dE`` (electrons) and
    ``dH`` (holes) and by ``N0`` (ion vacancies), lengths by the perovskite
    width ``b``, time by the ion time scale ``Tion`` and the potential by the
    thermal voltage ``VT``.
    """
    __slots__ = ()

    def psi2Vap(self, psi):
        """Applied voltage [V] from the potential variable psi."""
        return self.Vbi - 2 * self.VT * np.asarray(psi)

    def Vap2psi(self, V):
        """Potential variable psi from the applied voltage [V]."""
        return (self.Vbi - np.asarray(V)) / (2 * self.VT)

    def t2tstar(self, t):
        return np.asarray(t) / self.Tion

    def tstar2t(self, tstar):
        return np.asarray(tstar) * self.Tion


def _check(mt):
    for key in _positive:
        if not mt[key] > 0:
            raise ConfigurationError("Parameter '{0}' must be positive, got {1}."
                                     .format(key, mt[key]))
    for key in _non_negative:
        if not mt[key] >= 0:
            raise ConfigurationError("Parameter '{0}' must be non-negative, got {1}."
                                     .format(key, mt[key]))
    if mt['DI'] is not None and not mt['DI'] > 0:
        raise ConfigurationError("Parameter 'DI' must be positive, got {0}."
                                 .format(mt['DI']))
    if mt['dE'] >= mt['gcE']:
        raise ConfigurationError("ETL doping dE={0} must be below its density of "
                                 "states gcE={1}.".format(mt['dE'], mt['gcE']))
    if mt['dH'] >= mt['gvH']:
        raise ConfigurationError("HTL doping dH={0} must be below its density of "
                                 "states gvH={1}.".format(mt['dH'], mt['gvH']))
    if mt['Ec'] <= mt['Ev']:
        raise ConfigurationError("Conduction band edge Ec={0} must lie above the "
                                 "valence band edge Ev={1}.".format(mt['Ec'], mt['Ev']))


def build_parameters(**kwargs):
    """
    Nondimensionalise a set of dimensional inputs.

    Parameters
    ----------
    kwargs:
        Dimensional inputs overriding the entries of ``default_parameters``
        (SI units, energies in eV, relative permittivities). A lifetime set to
        ``numpy.inf`` or a recombination velocity set to 0 switches the
        corresponding Shockley-Read-Hall term off.

    Returns
    -------
    params: Parameters
        The nondimensional record consumed by the rest of the package.
    """
    unknown = set(kwargs) - set(default_parameters)
    if unknown:
        raise ConfigurationError("Unknown parameter(s): {0}."
                                 .format(', '.join(sorted(unknown))))
    mt = dict(default_parameters)
    mt.update(kwargs)
    _check(mt)

    sc = Scaling(mt)
    VT, G0, b = sc.VT, sc.generation, mt['b']
    dE, dH = mt['dE'], mt['dH']

    # Fermi levels of the doped transport layers set the built-in voltage
    EfE = mt['EcE'] + VT * np.log(dE / mt['gcE'])
    EfH = mt['EvH'] - VT * np.log(dH / mt['gvH'])
    ni = np.sqrt(mt['gc'] * mt['gv']) * np.exp((mt['Ev'] - mt['Ec']) / (2 * VT))

    lam = sc.LD / b
    delta = dE / mt['N0']
    sigma = dE / (G0 * sc.time)
    epsE = mt['epsE'] / mt['epsp']

    tn, tp = mt['tn'], mt['tp']
    srh = bool(np.isfinite(tn) and np.isfinite(tp))
    if srh:
        srh_n, srh_p = G0 * tp / dH, G0 * tn / dE
        srh_k = G0 * (tn + tp) * ni / (dE * dH)
    else:
        srh_n = srh_p = srh_k = 0.

    srhE = mt['vnE'] > 0 and mt['vpE'] > 0
    srhH = mt['vnH'] > 0 and mt['vpH'] > 0

    params = Parameters(
        VT=VT, Vbi=EfE - EfH, Tion=sc.time, jay=sc.current, b=b, N0=mt['N0'],
        lam=lam, delta=delta, chi=dH / dE, sigma=sigma,
        Kn=mt['Dn'] * dE / (G0 * b**2), Kp=mt['Dp'] * dH / (G0 * b**2),
        KE=mt['DE'] * dE / (G0 * b**2), KH=mt['DH'] * dH / (G0 * b**2),
        epsE=epsE, epsH=mt['epsH'] / mt['epsp'],
        wE=mt['bE'] / b, wH=mt['bH'] / b,
        kE=mt['gc'] / mt['gcE'] * np.exp((mt['EcE'] - mt['Ec']) / VT),
        kH=mt['gv'] / mt['gvH'] * np.exp((mt['Ev'] - mt['EvH']) / VT),
        upsilon=mt['alpha'] * b, inverted=bool(mt['inverted']),
        ni2=ni**2 / (dE * dH),
        brate=mt['beta'] * dE * dH / G0,
        augn=mt['Augn'] * dE**2 * dH / G0, augp=mt['Augp'] * dE * dH**2 / G0,
        srh=srh, srh_n=srh_n, srh_p=srh_p, srh_k=srh_k,
        brateE=mt['betaE'] * dE * dH / (G0 * b), srhE=srhE,
        srhE_n=G0 * b / (dH * mt['vpE']) if srhE else 0.,
        srhE_p=G0 * b / (dE * mt['vnE']) if srhE else 0.,
        brateH=mt['betaH'] * dE * dH / (G0 * b), srhH=srhH,
        srhH_n=G0 * b / (dH * mt['vpH']) if srhH else 0.,
        srhH_p=G0 * b / (dE * mt['vnH']) if srhH else 0.,
        dispE=epsE * lam**2 * sigma / delta,
    )
    return params
