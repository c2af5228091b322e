import ionsolar
import numpy as np
from scipy.io import savemat

# Cell with the default parameters and a lower ETL electron extraction
# velocity
params = ionsolar.build_parameters(vnE=1e4)
config = ionsolar.SolverConfig(N=200, points_per_segment=60, verbose=True)

# Precondition at 1.2 V for 5 s, then scan to 0 V and back at 100 mV/s
light = 1
voltage = [1.2, 'tanh', 5, 1.2, 'linear', 12, 0, 'linear', 12, 1.2]
protocol = ionsolar.compile_protocol(params, light, voltage, config)

sol = ionsolar.simulate(params, protocol, config)
az = ionsolar.Analyzer(sol)
V, J = az.voltage(), az.current()
t = params.tstar2t(sol.time)

# Print the results of the reverse and forward scans
start = np.searchsorted(t, 5)
for counter in range(start, len(t), 6):
    print('t = {0:6.2f} s, V = {1:.3f} V, J = {2:8.4f} mA/cm^2'
          .format(t[counter], V[counter], J[counter]))

# Save the scan
savemat('jv_scan.mat', {'t': t, 'V': V, 'J': J})
