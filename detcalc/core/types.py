"""
Data types for thermochemical and detonation calculations.

Species records keep names and metadata beside plain coefficient arrays,
which the compiled kernels in ``thermodynamics`` consume directly. Solver
results and the calculation error hierarchy live here too.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum

import numpy as np
from numpy.typing import NDArray

from .constants import GAS_CONSTANT
from .thermodynamics import cp_over_r, get_thermo_properties, h_over_rt, s_over_r

# =============================================================================
# Errors
# =============================================================================


@dataclass(frozen=True)
class Diagnostics:
    """
    Convergence diagnostics attached to every result and every failure.

    Attributes:
        iterations: Iterations used by the loop that produced this block
        residual: Last residual of that loop (dimensionless)
        converged: Whether the tolerance was met
        admitted: Condensed species present in the final active set
        message: Free-form note (which loop, why it stopped)
    """
    iterations: int = 0
    residual: float = math.nan
    converged: bool = False
    admitted: tuple[str, ...] = ()
    message: str = ""


class CalculationError(Exception):
    """Exception raised when a thermochemical calculation fails."""

    def __init__(self, message: str, diagnostics: Diagnostics | None = None):
        super().__init__(message)
        self.diagnostics = diagnostics if diagnostics is not None else Diagnostics(message=message)


class InvalidCompositionError(CalculationError):
    """Mixture is empty, unbalanced, negative or references unknown reactants."""
    pass


class OutOfRangeError(CalculationError):
    """Temperature lies outside the fitted polynomial window."""
    pass


class NonConvergenceError(CalculationError):
    """Iteration cap reached without satisfying the tolerance."""
    pass


class SingularJacobianError(CalculationError):
    """Newton linear system could not be solved."""
    pass


class UnsupportedEosCombinationError(CalculationError):
    """Equation of state cannot handle the requested species set."""
    pass


class CalculationCancelled(CalculationError):
    """Caller requested cancellation between outer iterations."""
    pass


class CondensedDepletedError(CalculationError):
    """
    An active condensed species was driven to zero.

    The phase manager catches this, drops the species and solves again
    from ``state``, the last iterate (its ``depleted`` field names the
    species).
    """

    def __init__(self, message: str, state: "EquilibriumState", diagnostics: Diagnostics | None = None):
        super().__init__(message, diagnostics)
        self.state = state
        self.depleted = state.depleted


class ThermoDataError(Exception):
    """Species reference data violates an internal invariant."""
    pass


class JwlFitWarning(UserWarning):
    """Isentrope fit quality is below the acceptance threshold."""
    pass


# =============================================================================
# Species
# =============================================================================


class Phase(Enum):
    """Phase tag of a species, using the NASA single-letter codes."""
    GAS = "G"
    LIQUID = "L"
    SOLID = "S"

    @property
    def is_condensed(self) -> bool:
        return self is not Phase.GAS

    @classmethod
    def from_tag(cls, tag: "str | Phase") -> "Phase":
        if isinstance(tag, Phase):
            return tag
        key = tag.strip().upper()[:1]
        for phase in cls:
            if phase.value == key:
                return phase
        # NASA files use 'C' for condensed
        if key == "C":
            return cls.SOLID
        raise ThermoDataError(f"Unknown phase tag {tag!r}")


_PHASE_SUFFIX = re.compile(r"\((?:g|l|s|c|a|G|L|S|cr|gr)\)$")


@dataclass(frozen=True, eq=False)
class Species:
    """
    Immutable NASA 7-term polynomial thermodynamic data for one species.

    The NASA polynomial format uses two sets of 7 coefficients each:
    - Low temperature range: t_low <= T < t_mid
    - High temperature range: t_mid <= T <= t_high

    Coefficients a1-a5 define Cp/R, H/RT, S/R polynomials.
    Coefficients a6, a7 are integration constants for H and S.

    Attributes:
        name: Species name (e.g., "H2O", "C(gr)", "Al2O3(s)")
        molecular_weight: Molecular weight in g/mol
        phase: Phase tag
        t_low, t_mid, t_high: Temperature window and switch point (K)
        coeffs_low: Low-T coefficients [a1..a7]
        coeffs_high: High-T coefficients [a1..a7]
        formula: Element formula, defaults to the name without phase suffix
        h_formation_298: Heat of formation at 298.15 K in J/mol (optional)
        eos_params: EOS parameters, e.g. ``bkw_covolume``, ``covolume``,
            ``molar_volume`` (all cm^3/mol). Treated as read-only.

    Example:
        >>> water = Species(
        ...     name="H2O",
        ...     molecular_weight=18.01528,
        ...     coeffs_low=np.array([...]),
        ...     coeffs_high=np.array([...]),
        ...     eos_params={"bkw_covolume": 250.0},
        ... )
    """

    name: str
    molecular_weight: float
    phase: Phase = Phase.GAS
    t_low: float = 200.0
    t_mid: float = 1000.0
    t_high: float = 6000.0
    coeffs_low: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros(7, dtype=np.float64)
    )
    coeffs_high: NDArray[np.float64] = field(
        default_factory=lambda: np.zeros(7, dtype=np.float64)
    )
    formula: str = ""
    h_formation_298: float | None = None
    eos_params: dict[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "phase", Phase.from_tag(self.phase))
        for attr in ("coeffs_low", "coeffs_high"):
            coeffs = np.array(getattr(self, attr), dtype=np.float64)
            if coeffs.shape != (7,):
                raise ThermoDataError(
                    f"{self.name}: {attr} must hold 7 coefficients, got shape {coeffs.shape}"
                )
            coeffs.setflags(write=False)
            object.__setattr__(self, attr, coeffs)
        if not self.formula:
            object.__setattr__(self, "formula", _PHASE_SUFFIX.sub("", self.name))
        object.__setattr__(self, "eos_params", dict(self.eos_params))

    @property
    def is_condensed(self) -> bool:
        return self.phase.is_condensed

    def covers(self, T: float) -> bool:
        """True if T lies inside the fitted window."""
        return self.t_low <= T <= self.t_high

    def get_coeffs_for_temp(self, T: float) -> NDArray[np.float64]:
        """
        Return appropriate coefficient set for given temperature.

        Raises:
            OutOfRangeError: If temperature is outside valid range
        """
        if not self.covers(T):
            raise OutOfRangeError(
                f"Temperature {T:.2f} K is outside valid range "
                f"[{self.t_low}, {self.t_high}] K for species {self.name}"
            )
        if self.t_mid <= T:
            return self.coeffs_high
        return self.coeffs_low

    def heat_capacity(self, T: float) -> float:
        """Cp in J/(mol·K)."""
        return cp_over_r(T, self.get_coeffs_for_temp(T)) * GAS_CONSTANT

    def enthalpy(self, T: float) -> float:
        """H in J/mol, including the heat of formation."""
        return h_over_rt(T, self.get_coeffs_for_temp(T)) * GAS_CONSTANT * T

    def entropy(self, T: float) -> float:
        """Standard-state S in J/(mol·K)."""
        return s_over_r(T, self.get_coeffs_for_temp(T)) * GAS_CONSTANT

    def gibbs_free_energy(self, T: float) -> float:
        """Standard-state G = H - T·S in J/mol."""
        return self.enthalpy(T) - T * self.entropy(T)

    def eos_param(self, key: str) -> float | None:
        return self.eos_params.get(key)

    def check_consistency(self, tolerance: float = 1e-3) -> None:
        """
        Verify the polynomial data is usable.

        Checks finite coefficients, window ordering, continuity of Cp, H and S
        at t_mid (relative to R and RT scales) and the identity G = H - TS at
        sample temperatures.

        Raises:
            ThermoDataError: If any check fails
        """
        if not (np.all(np.isfinite(self.coeffs_low)) and np.all(np.isfinite(self.coeffs_high))):
            raise ThermoDataError(f"{self.name}: non-finite polynomial coefficients")
        if not (0.0 < self.t_low < self.t_mid < self.t_high):
            raise ThermoDataError(
                f"{self.name}: bad temperature window "
                f"({self.t_low}, {self.t_mid}, {self.t_high})"
            )
        if self.molecular_weight <= 0.0:
            raise ThermoDataError(f"{self.name}: molecular weight must be positive")

        T = self.t_mid
        low = get_thermo_properties(T, self.coeffs_low, self.coeffs_low, T)
        high = get_thermo_properties(T, self.coeffs_high, self.coeffs_high, T)
        for label, a, b in zip(("Cp/R", "H/RT", "S/R"), low[:3], high[:3], strict=True):
            if abs(a - b) > tolerance * max(1.0, abs(a)):
                raise ThermoDataError(
                    f"{self.name}: {label} discontinuous at {T} K ({a:.6g} vs {b:.6g})"
                )

        for T in np.linspace(self.t_low, self.t_high, 7):
            h = self.enthalpy(T)
            s = self.entropy(T)
            g = self.gibbs_free_energy(T)
            if abs(g - (h - T * s)) > 1e-9 * max(1.0, abs(h), abs(T * s)):
                raise ThermoDataError(f"{self.name}: G != H - TS at {T:.1f} K")

    def __repr__(self) -> str:
        return (
            f"Species(name='{self.name}', MW={self.molecular_weight:.4f}, "
            f"phase={self.phase.value}, T_range=[{self.t_low:.0f}-{self.t_high:.0f}K])"
        )


# Type alias for species database
SpeciesDatabase = dict[str, Species]


def lookup_species(species_db: SpeciesDatabase, key: str) -> Species:
    """
    Find a species by name, falling back to its formula.

    A formula match prefers the gas-phase entry when several phases share
    the same formula.

    Raises:
        KeyError: If nothing matches
    """
    if key in species_db:
        return species_db[key]
    matches = [sp for sp in species_db.values() if sp.formula == key]
    if not matches:
        raise KeyError(f"Species {key!r} not found by name or formula")
    matches.sort(key=lambda sp: sp.is_condensed)
    return matches[0]


# =============================================================================
# Equilibrium State
# =============================================================================


@dataclass
class EquilibriumState:
    """
    Solver-owned state of one equilibrium calculation.

    All extensive quantities refer to 1 kg of mixture.

    Attributes:
        species_names: Candidate species in solver order
        moles: Mole numbers (mol/kg), zero for excluded condensed species
        temperature: Temperature (K)
        volume: Specific volume (m^3/kg)
        pressure: Pressure (Pa)
        elements: Element symbols in constraint order
        element_potentials: Lagrange multipliers divided by RT
        active: Condensed species included in the solve
        depleted: Condensed species the last solve drove to zero
        internal_energy: Specific internal energy (J/kg)
        entropy: Specific entropy (J/(kg·K))
        heat_capacity_v: Frozen constant-volume heat capacity (J/(kg·K))
        dp_dt: Frozen (dP/dT) at constant volume (Pa/K)
        dp_dv: Frozen (dP/dv) at constant temperature (Pa·kg/m^3)
        frozen_sound_speed: Frozen sound speed (m/s)
        diagnostics: Iteration count, residual and convergence flag
    """
    species_names: tuple[str, ...]
    moles: NDArray[np.float64]
    temperature: float
    volume: float
    pressure: float = math.nan
    elements: tuple[str, ...] = ()
    element_potentials: NDArray[np.float64] = field(default_factory=lambda: np.array([]))
    active: tuple[str, ...] = ()
    depleted: tuple[str, ...] = ()
    internal_energy: float = math.nan
    entropy: float = math.nan
    heat_capacity_v: float = math.nan
    dp_dt: float = math.nan
    dp_dv: float = math.nan
    frozen_sound_speed: float = math.nan
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def converged(self) -> bool:
        return self.diagnostics.converged

    @property
    def density(self) -> float:
        """Mixture density (kg/m^3)."""
        return 1.0 / self.volume

    @property
    def total_moles(self) -> float:
        return float(np.sum(self.moles))

    @property
    def mole_fractions(self) -> NDArray[np.float64]:
        total = self.total_moles
        if total <= 0.0:
            return np.zeros_like(self.moles)
        return self.moles / total

    @property
    def frozen_gamma(self) -> float:
        """Effective heat-capacity ratio c^2 rho / P from the frozen sound speed."""
        return self.frozen_sound_speed**2 / (self.pressure * self.volume)

    def moles_of(self, species_name: str) -> float:
        try:
            return float(self.moles[self.species_names.index(species_name)])
        except ValueError:
            return 0.0

    def mole_fraction(self, species_name: str) -> float:
        """Get mole fraction (over all products) for a species."""
        total = self.total_moles
        return self.moles_of(species_name) / total if total > 0.0 else 0.0

    def composition(self, threshold: float = 0.0) -> dict[str, float]:
        """Mole fractions above threshold, keyed by species name."""
        x = self.mole_fractions
        return {
            name: float(xi)
            for name, xi in zip(self.species_names, x, strict=True)
            if xi > threshold
        }

    def __repr__(self) -> str:
        top_species = sorted(self.composition().items(), key=lambda item: item[1], reverse=True)[:5]
        species_str = ", ".join(f"{n}:{x:.4f}" for n, x in top_species)
        return (
            f"EquilibriumState(T={self.temperature:.1f}K, "
            f"P={self.pressure / 1e9:.4g}GPa, rho={self.density:.1f}kg/m3, [{species_str}])"
        )
