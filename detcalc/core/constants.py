"""
Physical constants and unit conversions for detonation calculations.

All internal quantities are SI per 1 kg of mixture unless noted:
mole numbers in mol/kg, specific volume in m^3/kg, pressure in Pa,
specific energy in J/kg.

References:
    - CODATA 2018 recommended values
    - Mader, C.L. (2008). "Numerical Modeling of Explosives and Propellants",
      3rd ed., CRC Press.
"""

from typing import Final

# Universal Gas Constant (J/(mol·K))
# CODATA 2018 exact value
# Reference: https://physics.nist.gov/cgi-bin/cuu/Value?r
GAS_CONSTANT: Final[float] = 8.31446261815324

# Standard temperature (K) for thermodynamic reference
T_REF: Final[float] = 298.15

# Standard pressure (Pa) for thermodynamic reference
P_REF: Final[float] = 101325.0

# Reference mass for element totals and specific properties (g)
REFERENCE_MASS_G: Final[float] = 1000.0

# Unit conversions
CM3_TO_M3: Final[float] = 1.0e-6
G_CM3_TO_KG_M3: Final[float] = 1000.0
KJ_TO_J: Final[float] = 1000.0
PA_TO_GPA: Final[float] = 1.0e-9
GPA_TO_PA: Final[float] = 1.0e9
