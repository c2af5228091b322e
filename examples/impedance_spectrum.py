import ionsolar
import numpy as np

params = ionsolar.build_parameters()
config = ionsolar.SolverConfig(N=200, points_per_period=40, processes=4)

# 20 mV perturbation around 1 V, 13 frequencies from 10 mHz to 10 kHz,
# 5 periods each
light = 1
voltage = ['impedance', 1e-2, 1e4, 1., 0.02, 13, 5]
protocol = ionsolar.compile_protocol(params, light, voltage, config)

if __name__ == '__main__':
    solutions = ionsolar.simulate(params, protocol, config)
    spectrum = ionsolar.extract_impedance(solutions)

    for f, Z in zip(spectrum.frequencies, spectrum.Z):
        print('f = {0:10.4g} Hz, Z = {1.real:10.4g} {1.imag:+10.4g}j Ohm cm^2'
              .format(f, Z))

    # capacitance from the imaginary part of the admittance
    C = (1 / spectrum.Z).imag / (2 * np.pi * spectrum.frequencies)
    print('Capacitance at {0:.3g} Hz: {1:.3e} F/cm^2'.format(spectrum.frequencies[-1], C[-1]))
