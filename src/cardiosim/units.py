import math

import pint

ureg = pint.UnitRegistry()

#: Pressure-flow resistance conversion (dyn·s·cm⁻⁵ -> mmHg·s/mL)
DYN_TO_MMHG_S_PER_ML = ureg("dyn * s / cm**5").to("mmHg * s / mL").magnitude

#: 1 mmHg expressed in Pa
MMHG_IN_PA = ureg("mmHg").to("Pa").magnitude

#: 1 mmHg expressed in dyn/cm² (barye)
MMHG_IN_BARYE = ureg("mmHg").to("dyn / cm**2").magnitude

#: Blood density in g/mL, used by the orifice equation
BLOOD_DENSITY_G_PER_ML = 1.06

#: sqrt(2 ΔP / ρ) prefactor so that Q[mL/s] = Cd * A[cm²] * k * sqrt(ΔP[mmHg])
ORIFICE_COEFFICIENT = math.sqrt(2 * MMHG_IN_BARYE / BLOOD_DENSITY_G_PER_ML)


def dyn_to_mmHg_s_per_mL(R):
    return R * DYN_TO_MMHG_S_PER_ML


def Pa_to_mmHg(p):
    return p / MMHG_IN_PA
