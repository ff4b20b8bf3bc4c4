"""
Chapman-Jouguet detonation state.

The CJ point is the state on the equilibrium product Hugoniot where the
Rayleigh line from the unreacted state is tangent to it, i.e. where the
flow behind the front is sonic: D - u = c_eq.

Hugoniot relations (per unit mass, v = 1/rho):
    e  = e0 + (P + P0)(v0 - v)/2
    D  = v0 sqrt((P - P0)/(v0 - v))
    u  = sqrt((P - P0)(v0 - v))

The outer iteration is on the product volume ratio v/v0 with the residual
(D - u)/c_eq - 1, negative on the overdriven branch (small v). Each trial
volume is placed on the Hugoniot by a secant iteration on pressure around
an equilibrium (v, e) solve.

References:
    - Fickett, W. & Davis, W.C. (1979). "Detonation", University of
      California Press, Ch. 2.
    - Mader, C.L. (2008). "Numerical Modeling of Explosives and
      Propellants", 3rd ed., Ch. 2 (BKW CJ calculations).
"""

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

from .composition import Composition
from .config import EngineSettings
from .constants import PA_TO_GPA
from .eos import EquationOfState
from .equilibrium import GibbsEquilibriumSolver
from .phases import PhaseManager
from .types import (
    CalculationCancelled,
    Diagnostics,
    EquilibriumState,
    NonConvergenceError,
    OutOfRangeError,
    Species,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CjResult:
    """
    Chapman-Jouguet detonation state.

    Attributes:
        detonation_velocity: D (m/s)
        pressure: CJ pressure (Pa)
        temperature: CJ temperature (K)
        density: CJ product density (kg/m^3)
        particle_velocity: u (m/s)
        sound_speed: Equilibrium sound speed c_eq (m/s)
        frozen_sound_speed: Frozen-composition sound speed (m/s)
        gamma: Effective polytropic exponent rho0 D^2 / P - 1
        frozen_gamma: c_frozen^2 rho / P
        volume_ratio: v_CJ / v0
        specific_volume: v_CJ (m^3/kg)
        internal_energy: e_CJ (J/kg)
        initial_density: rho0 (kg/m^3)
        mole_fractions: Product mole fractions above 1e-8
        admitted: Condensed species present at the CJ point
        hugoniot_evaluations: Equilibrium Hugoniot points computed
        diagnostics: Outer-iteration diagnostics
        state: Full equilibrium state at the CJ point
    """
    detonation_velocity: float
    pressure: float
    temperature: float
    density: float
    particle_velocity: float
    sound_speed: float
    frozen_sound_speed: float
    gamma: float
    frozen_gamma: float
    volume_ratio: float
    specific_volume: float
    internal_energy: float
    initial_density: float
    mole_fractions: dict[str, float] = field(default_factory=dict)
    admitted: tuple[str, ...] = ()
    hugoniot_evaluations: int = 0
    diagnostics: Diagnostics = field(default_factory=Diagnostics)
    state: EquilibriumState | None = field(default=None, repr=False, compare=False)

    @property
    def pressure_gpa(self) -> float:
        return self.pressure * PA_TO_GPA

    def summary(self) -> str:
        return (
            f"D = {self.detonation_velocity:.0f} m/s, P = {self.pressure_gpa:.2f} GPa, "
            f"T = {self.temperature:.0f} K, rho = {self.density:.0f} kg/m3, gamma = {self.gamma:.3f}"
        )


@dataclass
class _HugoniotPoint:
    volume_ratio: float
    state: EquilibriumState
    pressure: float


class CJStateSolver:
    """
    Equilibrium CJ state of a formulation at a given loading density.

    Args:
        species: Candidate product species
        composition: Reactant mixture
        eos: Gas-phase equation of state (instance or registry name)
        density: Initial density (kg/m^3); defaults to the composition density
        settings: Engine settings

    Example:
        >>> solver = CJStateSolver(species, Composition([("TNT", 1.0)]), "bkw-tnt", 1630.0)
        >>> result = solver.solve()
        >>> result.detonation_velocity
    """

    def __init__(
        self,
        species: Sequence[Species],
        composition: Composition,
        eos: EquationOfState | str,
        density: float | None = None,
        settings: EngineSettings | None = None,
    ):
        self.settings = settings or EngineSettings()
        cj = self.settings.cj
        self.composition = composition
        self.p0 = cj.initial_pressure
        self.rho0 = density if density is not None else composition.density(cj.initial_temperature, self.p0)
        if not (self.rho0 > 0.0 and math.isfinite(self.rho0)):
            raise OutOfRangeError(f"Initial density must be positive, got {self.rho0}")
        self.v0 = 1.0 / self.rho0
        self.e0 = composition.specific_energy(self.p0, self.rho0)

        self.equilibrium = GibbsEquilibriumSolver(
            species, composition.element_vector(), eos, self.settings.equilibrium
        )
        self.phases = PhaseManager(self.equilibrium, self.settings.phases)
        self.hugoniot_evaluations = 0
        self._last: EquilibriumState | None = None

    # -------------------------------------------------------------------------
    # Hugoniot
    # -------------------------------------------------------------------------

    def hugoniot_energy(self, pressure: float, volume: float) -> float:
        return self.e0 + 0.5 * (pressure + self.p0) * (self.v0 - volume)

    def hugoniot_point(self, volume_ratio: float, pressure_hint: float | None = None) -> EquilibriumState:
        """
        Equilibrium state on the product Hugoniot at v = volume_ratio * v0.

        Raises:
            NonConvergenceError: If the pressure secant does not converge
        """
        cj = self.settings.cj
        volume = volume_ratio * self.v0
        self.hugoniot_evaluations += 1

        def on_hugoniot(p_guess: float) -> tuple[EquilibriumState, float]:
            state = self.phases.solve_ve(volume, self.hugoniot_energy(p_guess, volume), initial=self._last)
            self._last = state
            return state, state.pressure - p_guess

        if pressure_hint is None:
            state = self.phases.solve_ve(volume, self.e0, initial=self._last)
            self._last = state
            p_a = state.pressure
        else:
            p_a = pressure_hint
        state, g_a = on_hugoniot(p_a)
        if abs(g_a) <= cj.hugoniot_tolerance * state.pressure:
            return state

        # Fixed-point step first: the map P -> P(e(P)) contracts for v < v0
        p_b = max(p_a + g_a, self.p0)
        for iteration in range(cj.max_hugoniot_iterations):
            state, g_b = on_hugoniot(p_b)
            if abs(g_b) <= cj.hugoniot_tolerance * state.pressure:
                return state
            if g_b == g_a:
                p_next = p_b + g_b
            else:
                p_next = p_b - g_b * (p_b - p_a) / (g_b - g_a)
            p_a, g_a = p_b, g_b
            p_b = max(p_next, 0.5 * p_b, self.p0)
            logger.debug("Hugoniot v/v0=%.4f iter %d: P=%.6e Pa", volume_ratio, iteration, p_b)

        raise NonConvergenceError(
            f"Hugoniot pressure did not converge at v/v0 = {volume_ratio:.4f}",
            Diagnostics(iterations=cj.max_hugoniot_iterations, residual=abs(g_b) / state.pressure,
                        message="Hugoniot secant"),
        )

    def _point(self, volume_ratio: float, hint: float | None = None) -> _HugoniotPoint:
        state = self.hugoniot_point(volume_ratio, hint)
        return _HugoniotPoint(volume_ratio, state, state.pressure)

    def _residual(self, point: _HugoniotPoint) -> tuple[float, float]:
        """CJ residual (D - u)/c_eq - 1 and c_eq at a Hugoniot point."""
        h = self.settings.cj.derivative_step
        v = point.volume_ratio * self.v0
        low = self.hugoniot_point(point.volume_ratio * (1.0 - h), point.pressure)
        high = self.hugoniot_point(point.volume_ratio * (1.0 + h), point.pressure)
        slope = (high.pressure - low.pressure) / (2.0 * h * v)
        c_squared = -v * v * slope
        if c_squared <= 0.0:
            raise OutOfRangeError(
                f"Hugoniot slope is non-negative at v/v0 = {point.volume_ratio:.4f}",
                Diagnostics(message="CJ sound speed"),
            )
        c_eq = math.sqrt(c_squared)
        D, u = self.velocities(point.pressure, v)
        return (D - u) / c_eq - 1.0, c_eq

    def velocities(self, pressure: float, volume: float) -> tuple[float, float]:
        """Detonation and particle velocity (m/s) of a Hugoniot state."""
        dp = max(pressure - self.p0, 0.0)
        dv = self.v0 - volume
        return self.v0 * math.sqrt(dp / dv), math.sqrt(dp * dv)

    # -------------------------------------------------------------------------
    # CJ root
    # -------------------------------------------------------------------------

    def solve(self, cancel: Callable[[], bool] | None = None) -> CjResult:
        """
        Find the CJ state.

        Each call starts from a clean phase set and no warm start, so
        repeated calls on one instance give identical results.

        Args:
            cancel: Polled between outer iterations; returning True aborts

        Raises:
            NonConvergenceError: If no sign change exists within the volume
                limits. Also raised when the bracket collapses onto a jump in
                the residual or the iteration cap is reached.
            CalculationCancelled: If ``cancel`` returned True
        """
        cj = self.settings.cj
        v_min, v_max = cj.volume_ratio_limits
        self.hugoniot_evaluations = 0
        self._last = None
        self.phases.reset()

        def check_cancel(iterations: int) -> None:
            if cancel is not None and cancel():
                raise CalculationCancelled(
                    "CJ calculation cancelled",
                    Diagnostics(iterations=iterations, message="cancelled between CJ iterations"),
                )

        lo, hi = cj.initial_bracket
        p_lo = self._point(lo)
        r_lo, _ = self._residual(p_lo)
        p_hi = self._point(hi, p_lo.pressure)
        r_hi, _ = self._residual(p_hi)

        expansions = 0
        while r_lo > 0.0 or r_hi < 0.0:
            check_cancel(expansions)
            if expansions >= cj.max_bracket_expansions or (
                (r_lo > 0.0 and lo <= v_min) or (r_hi < 0.0 and hi >= v_max)
            ):
                raise NonConvergenceError(
                    f"No CJ sign change in v/v0 = [{lo:.3f}, {hi:.3f}]",
                    Diagnostics(iterations=expansions, residual=min(abs(r_lo), abs(r_hi)),
                                message="CJ bracket search"),
                )
            expansions += 1
            if r_lo > 0.0:
                logger.warning("CJ bracket: residual positive at v/v0=%.3f, expanding downward", lo)
                lo, hi, p_hi, r_hi = max(lo - cj.bracket_step, v_min), lo, p_lo, r_lo
                p_lo = self._point(lo, p_hi.pressure)
                r_lo, _ = self._residual(p_lo)
            else:
                logger.warning("CJ bracket: residual negative at v/v0=%.3f, expanding upward", hi)
                lo, p_lo, r_lo, hi = hi, p_hi, r_hi, min(hi + cj.bracket_step, v_max)
                p_hi = self._point(hi, p_lo.pressure)
                r_hi, _ = self._residual(p_hi)

        # Illinois regula falsi, falling back to bisection when it stalls
        side = 0
        best = p_lo if abs(r_lo) < abs(r_hi) else p_hi
        residual = min(abs(r_lo), abs(r_hi))
        for iteration in range(1, cj.max_iterations + 1):
            check_cancel(iteration)
            x = (lo * r_hi - hi * r_lo) / (r_hi - r_lo)
            width = hi - lo
            if not (lo + 0.01 * width < x < hi - 0.01 * width):
                x = 0.5 * (lo + hi)
            x = min(max(x, v_min), v_max)
            point = self._point(x, best.pressure)
            r, c_eq = self._residual(point)
            logger.debug("CJ iter %d: v/v0=%.6f P=%.4f GPa residual=%.3e",
                         iteration, x, point.pressure * PA_TO_GPA, r)
            best = point
            residual = abs(r)
            if residual < cj.tolerance:
                return self._result(point, c_eq, iteration, residual)
            if width < 1e-10:
                raise NonConvergenceError(
                    f"CJ bracket collapsed at v/v0 = {x:.8f} with residual {residual:.3e}",
                    Diagnostics(iterations=iteration, residual=residual, message="CJ bracket collapsed"),
                )
            if r < 0.0:
                lo, p_lo, r_lo = x, point, r
                if side == -1:
                    r_hi *= 0.5
                side = -1
            else:
                hi, p_hi, r_hi = x, point, r
                if side == 1:
                    r_lo *= 0.5
                side = 1

        raise NonConvergenceError(
            f"CJ iteration did not converge in {cj.max_iterations} iterations (residual {residual:.3e})",
            Diagnostics(iterations=cj.max_iterations, residual=residual, message="CJ root"),
        )

    def _result(self, point: _HugoniotPoint, c_eq: float, iterations: int, residual: float) -> CjResult:
        state = point.state
        v = state.volume
        D, u = self.velocities(state.pressure, v)
        result = CjResult(
            detonation_velocity=D,
            pressure=state.pressure,
            temperature=state.temperature,
            density=state.density,
            particle_velocity=u,
            sound_speed=c_eq,
            frozen_sound_speed=state.frozen_sound_speed,
            gamma=self.rho0 * D * D / state.pressure - 1.0,
            frozen_gamma=state.frozen_gamma,
            volume_ratio=point.volume_ratio,
            specific_volume=v,
            internal_energy=state.internal_energy,
            initial_density=self.rho0,
            mole_fractions=state.composition(threshold=1e-8),
            admitted=tuple(state.active),
            hugoniot_evaluations=self.hugoniot_evaluations,
            diagnostics=Diagnostics(
                iterations=iterations,
                residual=residual,
                converged=True,
                admitted=tuple(state.active),
                message=f"{self.hugoniot_evaluations} Hugoniot evaluations",
            ),
            state=state,
        )
        logger.info("CJ state: %s", result.summary())
        return result
