"""
Thermodynamic property kernels for NASA 7-term polynomials.

Compiled (numba) evaluation of Cp/R, H/RT, S/R and G/RT from the two
coefficient segments of a NASA-7 fit.

Scalar kernels serve single-species queries; ``compute_thermo`` evaluates a
whole species table in one call for the equilibrium solver. All kernels take
raw numpy arrays. Coefficient selection by temperature window and range
checking happen outside these functions.

References:
    - Gordon, S. & McBride, B.J. (1994). "Computer Program for Calculation
      of Complex Chemical Equilibrium Compositions and Applications"
      NASA Reference Publication 1311.
    - McBride, B.J., Zehe, M.J., & Gordon, S. (2002). "NASA Glenn Coefficients
      for Calculating Thermodynamic Properties of Individual Species"
      NASA/TP-2002-211556.
"""

import numpy as np
from numba import jit
from numpy.typing import NDArray


@jit(nopython=True, cache=True)
def cp_over_r(T: float, coeffs: NDArray[np.float64]) -> float:
    """
    Dimensionless heat capacity.

    Cp/R = a1 + a2*T + a3*T^2 + a4*T^3 + a5*T^4
    """
    return coeffs[0] + T * (coeffs[1] + T * (coeffs[2] + T * (coeffs[3] + T * coeffs[4])))


@jit(nopython=True, cache=True)
def h_over_rt(T: float, coeffs: NDArray[np.float64]) -> float:
    """
    Dimensionless enthalpy.

    H/(RT) = a1 + (a2/2)*T + (a3/3)*T^2 + (a4/4)*T^3 + (a5/5)*T^4 + a6/T

    The a6 coefficient carries the heat of formation, so H is the absolute
    (formation-referenced) enthalpy used by the energy balances.
    """
    return (
        coeffs[0]
        + T * (coeffs[1] / 2.0 + T * (coeffs[2] / 3.0 + T * (coeffs[3] / 4.0 + T * coeffs[4] / 5.0)))
        + coeffs[5] / T
    )


@jit(nopython=True, cache=True)
def s_over_r(T: float, coeffs: NDArray[np.float64]) -> float:
    """
    Dimensionless standard-state entropy.

    S/R = a1*ln(T) + a2*T + (a3/2)*T^2 + (a4/3)*T^3 + (a5/4)*T^4 + a7
    """
    return (
        coeffs[0] * np.log(T)
        + T * (coeffs[1] + T * (coeffs[2] / 2.0 + T * (coeffs[3] / 3.0 + T * coeffs[4] / 4.0)))
        + coeffs[6]
    )


@jit(nopython=True, cache=True)
def get_thermo_properties(
    T: float,
    coeffs_low: NDArray[np.float64],
    coeffs_high: NDArray[np.float64],
    T_mid: float = 1000.0
) -> tuple:
    """
    (Cp/R, H/RT, S/R, G/RT) of one species, picking the segment by T_mid.

    The high-temperature segment applies from T_mid upward.
    """
    coeffs = coeffs_high if T_mid <= T else coeffs_low

    cp_r = cp_over_r(T, coeffs)
    h_rt = h_over_rt(T, coeffs)
    s_r = s_over_r(T, coeffs)

    return cp_r, h_rt, s_r, h_rt - s_r


@jit(nopython=True, cache=True)
def compute_thermo(
    T: float,
    coeffs_low: NDArray[np.float64],
    coeffs_high: NDArray[np.float64],
    t_mid: NDArray[np.float64],
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    Evaluate a species table at one temperature.

    Args:
        T: Temperature (K)
        coeffs_low: (n_species, 7) low-T coefficients
        coeffs_high: (n_species, 7) high-T coefficients
        t_mid: (n_species,) switch temperatures

    Returns:
        Arrays (G/RT, H/RT, Cp/R, S/R), each of length n_species
    """
    n_spec = t_mid.shape[0]
    g_rt = np.empty(n_spec, dtype=np.float64)
    h_rt = np.empty(n_spec, dtype=np.float64)
    cp_r = np.empty(n_spec, dtype=np.float64)
    s_r = np.empty(n_spec, dtype=np.float64)

    for j in range(n_spec):
        c = coeffs_high[j] if t_mid[j] <= T else coeffs_low[j]
        h = h_over_rt(T, c)
        s = s_over_r(T, c)
        h_rt[j] = h
        s_r[j] = s
        g_rt[j] = h - s
        cp_r[j] = cp_over_r(T, c)

    return g_rt, h_rt, cp_r, s_r
