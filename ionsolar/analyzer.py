# Copyright 2026 The Ionsolar developers.
#
# This file is part of Ionsolar. It is subject to the license terms in the file
# LICENSE.rst found in the top-level directory of this distribution.

import numpy as np

from .engine import Engine, TRANSIENT
from .observables import get_bulk_rr, get_left_rr, get_right_rr


class Analyzer():
    """
    Object that simplifies the extraction of physical data (densities,
    voltage, currents, recombination) from a solution.

    Parameters
    ----------
    solution: Solution
        Output of a time dependent simulation.
    """

    def __init__(self, solution):
        self.solution = solution
        self.params = solution.params
        self.sys = Engine(solution.params, solution.mesh, TRANSIENT)

    def distributions(self, k=-1):
        """
        Dimensionless fields at the time index k.

        Returns
        -------
        fields: dictionary of numpy arrays of floats
            Keys are 'P', 'phi', 'n', 'p' (perovskite), 'phiE', 'nE' (ETL,
            without the interface node) and 'phiH', 'pH' (HTL, without the
            interface node).
        """
        keys = ['P', 'phi', 'n', 'p', 'phiE', 'nE', 'phiH', 'pH']
        return dict(zip(keys, self.sys.split(self.solution.y[k])))

    def voltage(self):
        """
        Applied voltage [V] at every output time.
        """
        return self.params.psi2Vap(self.solution.psi)

    def conduction_current(self):
        """
        Dimensionless electron current density through the ETL contact at
        every output time.
        """
        return np.array([self.sys.contact_current(y) for y in self.solution.y])

    def current(self):
        """
        Total current density [mA/cm\ :sup:`2`] through the ETL contact at
        every output time, conduction and displacement.

        Returns
        -------
        J: numpy array of floats
            Positive for a current delivered by the cell.
        """
        sol, sys = self.solution, self.sys
        jc = self.conduction_current()
        if len(sol.time) < 2:
            return jc * self.params.jay
        phiE = sol.y[:, sys.iphiE:sys.iphiE+2]
        grad = (phiE[:, 1] - phiE[:, 0]) / sol.mesh.dxE[0]
        jd = -self.params.dispE * np.gradient(grad, sol.time)
        return (jc + jd) * self.params.jay

    def integrated_recombination(self, k=-1):
        """
        Bulk and interface recombination integrated over the perovskite at
        the time index k.

        Returns
        -------
        r: dictionary of floats
            Dimensionless rates, keys 'bulk', 'left' and 'right'.
        """
        par, sys = self.params, self.sys
        d = self.distributions(k)
        n, p = d['n'], d['p']
        return {'bulk': np.dot(sys.h, get_bulk_rr(par, n, p)),
                'left': get_left_rr(par, n[0] / par.kE, p[0]),
                'right': get_right_rr(par, n[-1], p[-1] / par.kH)}
