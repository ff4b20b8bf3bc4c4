"""
CJ release isentrope and JWL fit.

Starting at the CJ point, the products are expanded along increasing
specific volume. Each step integrates de = -P dv with a trapezoid
predictor-corrector in which every corrector pass is an equilibrium
(v, e) solve, so composition shifts along the expansion.

The sampled isentrope is fitted to the JWL form (V = v/v0, P in GPa)

    P_s(V) = A exp(-R1 V) + B exp(-R2 V) + C V^-(1+omega)

with C fixed by the energy released from the CJ volume to infinity,

    E_s(V_cj) = A/R1 exp(-R1 V_cj) + B/R2 exp(-R2 V_cj) + C/omega V_cj^-omega,

where E_s(V_cj) is the numerical integral of P dV along the isentrope
plus a power-law tail.

References:
    - Lee, E.L., Hornig, H.C. & Kury, J.W. (1968). "Adiabatic Expansion of
      High Explosive Detonation Products", UCRL-50422.
    - Souers, P.C. & Haselman, L.C. (1994). "Detonation Equation of State
      at LLNL", UCRL-ID-116113.
"""

import logging
import math
import warnings
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray
from scipy import integrate, optimize

from .config import IsentropeSettings
from .constants import PA_TO_GPA
from .detonation import CJStateSolver, CjResult
from .types import (
    CalculationCancelled,
    Diagnostics,
    EquilibriumState,
    JwlFitWarning,
    NonConvergenceError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IsentropePoint:
    """One equilibrium state on the release isentrope."""
    volume_ratio: float     # v / v0
    pressure: float         # Pa
    temperature: float      # K
    energy: float           # J/kg
    entropy: float          # J/(kg·K)


@dataclass(frozen=True)
class JwlParameters:
    """
    JWL isentrope parameters.

    Pressures and energies are in GPa (energy per unit initial volume),
    V is the relative volume v/v0.

    Attributes:
        a, b: Exponential amplitudes (GPa)
        r1, r2: Exponential rates
        omega: Gruneisen coefficient of the power-law term
        e0: Detonation energy per unit initial volume (GPa)
        reference_density: Initial density rho0 (kg/m^3)
        v_cj: CJ relative volume
        p_cj: CJ pressure (GPa)
        rms: RMS relative pressure residual of the fit
        acceptable: False if rms exceeded the fit tolerance
    """
    a: float
    b: float
    r1: float
    r2: float
    omega: float
    e0: float
    reference_density: float
    v_cj: float
    p_cj: float
    rms: float
    acceptable: bool = True

    @property
    def c(self) -> float:
        return _jwl_c(self.a, self.b, self.r1, self.r2, self.omega, self.v_cj, self.e0, self.p_cj)

    def pressure(self, V: float | NDArray[np.float64]) -> float | NDArray[np.float64]:
        """Isentrope pressure (GPa) at relative volume V."""
        return _jwl_pressure(V, self.a, self.b, self.r1, self.r2, self.omega, self.c)

    def energy(self, V: float | NDArray[np.float64]) -> float | NDArray[np.float64]:
        """Isentrope energy E_s(V) (GPa) available from V to infinity."""
        return (
            self.a / self.r1 * np.exp(-self.r1 * V)
            + self.b / self.r2 * np.exp(-self.r2 * V)
            + self.c / self.omega * np.power(V, -self.omega)
        )

    def __repr__(self) -> str:
        return (
            f"JwlParameters(A={self.a:.2f}GPa, B={self.b:.3f}GPa, R1={self.r1:.3f}, "
            f"R2={self.r2:.3f}, omega={self.omega:.3f}, C={self.c:.4f}GPa, rms={self.rms:.4f})"
        )


@dataclass(frozen=True)
class IsentropeResult:
    """Sampled isentrope, its JWL fit and the CJ state it starts from."""
    points: tuple[IsentropePoint, ...]
    jwl: JwlParameters
    cj: CjResult
    entropy_drift: float                 # max |s - s_cj|, J/(kg·K)
    diagnostics: Diagnostics = field(default_factory=Diagnostics)

    @property
    def volume_ratios(self) -> NDArray[np.float64]:
        return np.array([p.volume_ratio for p in self.points])

    @property
    def pressures(self) -> NDArray[np.float64]:
        return np.array([p.pressure for p in self.points])


def _jwl_pressure(V, a, b, r1, r2, omega, c):
    return a * np.exp(-r1 * V) + b * np.exp(-r2 * V) + c * np.power(V, -(1.0 + omega))


def _jwl_c(a, b, r1, r2, omega, v_cj, e0, p_cj):
    e_cj = e0 + 0.5 * p_cj * (1.0 - v_cj)
    return omega * v_cj**omega * (
        e_cj - a / r1 * math.exp(-r1 * v_cj) - b / r2 * math.exp(-r2 * v_cj)
    )


def isentrope_energy(volume_ratios: NDArray[np.float64], pressures_gpa: NDArray[np.float64]) -> float:
    """
    Energy (GPa) released from the first volume to infinity.

    Trapezoid integral over the samples plus a power-law tail
    P ~ V^-k fitted through the last two points.
    """
    body = float(integrate.trapezoid(pressures_gpa, volume_ratios))
    v1, v2 = volume_ratios[-2], volume_ratios[-1]
    p1, p2 = pressures_gpa[-2], pressures_gpa[-1]
    k = math.log(p1 / p2) / math.log(v2 / v1)
    k = max(k, 1.05)
    return body + p2 * v2 / (k - 1.0)


def fit_jwl(
    volume_ratios: Sequence[float],
    pressures: Sequence[float],
    reference_density: float,
    tolerance: float = 0.02,
    max_evaluations: int = 4000,
) -> JwlParameters:
    """
    Fit JWL parameters to an isentrope sampled from the CJ point outward.

    Args:
        volume_ratios: v/v0, increasing, first entry at the CJ point
        pressures: Pressures (Pa) matching ``volume_ratios``
        reference_density: Initial density (kg/m^3)
        tolerance: RMS relative residual above which the fit is flagged
        max_evaluations: Residual evaluation budget for the optimizer

    Returns:
        JwlParameters; ``acceptable`` is False and a JwlFitWarning is issued
        if the RMS residual exceeds ``tolerance``.
    """
    V = np.asarray(volume_ratios, dtype=np.float64)
    P = np.asarray(pressures, dtype=np.float64) * PA_TO_GPA
    v_cj, p_cj = float(V[0]), float(P[0])
    e0 = isentrope_energy(V, P) - 0.5 * p_cj * (1.0 - v_cj)

    def residuals(x: NDArray[np.float64]) -> NDArray[np.float64]:
        a, b, r1, r2, omega = x
        c = _jwl_c(a, b, r1, r2, omega, v_cj, e0, p_cj)
        rel = _jwl_pressure(V, a, b, r1, r2, omega, c) / P - 1.0
        penalty = 10.0 * max(-c, 0.0) / p_cj
        return np.append(rel, penalty)

    x0 = np.array([18.0 * p_cj, 0.15 * p_cj, 4.5, 1.0, 0.3])
    lower = np.array([0.0, 0.0, 2.5, 0.1, 0.01])
    upper = np.array([np.inf, np.inf, 15.0, 2.5, 1.5])
    fit = optimize.least_squares(
        residuals, x0, bounds=(lower, upper), x_scale="jac", max_nfev=max_evaluations
    )
    a, b, r1, r2, omega = (float(v) for v in fit.x)
    rms = float(np.sqrt(np.mean(fit.fun[:-1] ** 2)))
    acceptable = rms <= tolerance

    params = JwlParameters(
        a=a, b=b, r1=r1, r2=r2, omega=omega, e0=e0,
        reference_density=reference_density, v_cj=v_cj, p_cj=p_cj,
        rms=rms, acceptable=acceptable,
    )
    if not acceptable:
        logger.warning("JWL fit RMS %.4f exceeds tolerance %.4f", rms, tolerance)
        warnings.warn(
            f"JWL fit RMS residual {rms:.4f} exceeds tolerance {tolerance:.4f}",
            JwlFitWarning,
            stacklevel=2,
        )
    return params


class IsentropeFitter:
    """
    Expands CJ products along the equilibrium isentrope and fits JWL.

    Shares the CJ solver's equilibrium solver and phase manager so the
    condensed-phase set found at the CJ point carries into the expansion.

    Example:
        >>> cj_solver = CJStateSolver(species, composition, "bkw", 1630.0)
        >>> result = IsentropeFitter(cj_solver).run()
        >>> result.jwl
    """

    def __init__(self, cj_solver: CJStateSolver, settings: IsentropeSettings | None = None):
        self.cj_solver = cj_solver
        self.settings = settings or cj_solver.settings.isentrope

    def volume_grid(self, v_cj_ratio: float) -> NDArray[np.float64]:
        """Geometric v/v0 grid from the CJ point to the final expansion."""
        return np.geomspace(v_cj_ratio, self.settings.final_volume_ratio, self.settings.n_points)

    def _step(
        self, state: EquilibriumState, volume: float
    ) -> EquilibriumState:
        """Advance one isentrope step to ``volume`` (m^3/kg)."""
        s = self.settings
        phases = self.cj_solver.phases
        dv = volume - state.volume
        gamma = max(state.frozen_gamma, 1.05) if math.isfinite(state.frozen_gamma) else 1.3

        p_new = state.pressure * (state.volume / volume) ** gamma
        new_state = state
        for _ in range(s.max_corrector_iterations):
            energy = state.internal_energy - 0.5 * (state.pressure + p_new) * dv
            new_state = phases.solve_ve(volume, energy, initial=new_state)
            change = abs(new_state.pressure - p_new) / new_state.pressure
            p_new = new_state.pressure
            if change < s.corrector_tolerance:
                return new_state
        raise NonConvergenceError(
            f"Isentrope corrector did not converge at v={volume:.4e} m^3/kg",
            Diagnostics(iterations=s.max_corrector_iterations, residual=change,
                        message="isentrope predictor-corrector"),
        )

    def run(self, cj: CjResult | None = None, cancel: Callable[[], bool] | None = None) -> IsentropeResult:
        """
        Sample the isentrope and fit JWL.

        Args:
            cj: CJ result to start from; solved here if omitted
            cancel: Polled between steps; returning True aborts

        Raises:
            CalculationCancelled: If ``cancel`` returned True
        """
        if cj is None:
            cj = self.cj_solver.solve(cancel=cancel)
        v0 = self.cj_solver.v0
        state = cj.state
        if state is None:
            state = self.cj_solver.phases.solve_ve(cj.specific_volume, cj.internal_energy)

        grid = self.volume_grid(cj.volume_ratio)
        points = [self._point(cj.volume_ratio, state)]
        for k, ratio in enumerate(grid[1:], start=1):
            if cancel is not None and cancel():
                raise CalculationCancelled(
                    "Isentrope calculation cancelled",
                    Diagnostics(iterations=k, message="cancelled between isentrope steps"),
                )
            state = self._step(state, ratio * v0)
            points.append(self._point(float(ratio), state))
            logger.debug("Isentrope step %d: V=%.4f P=%.4e Pa T=%.1f K",
                         k, ratio, state.pressure, state.temperature)

        entropies = np.array([p.entropy for p in points])
        drift = float(np.max(np.abs(entropies - entropies[0])))
        jwl = fit_jwl(
            [p.volume_ratio for p in points],
            [p.pressure for p in points],
            self.cj_solver.rho0,
            tolerance=self.settings.fit_tolerance,
            max_evaluations=self.settings.max_fit_evaluations,
        )
        logger.info("Isentrope: %d points, entropy drift %.3e J/(kg K), %r", len(points), drift, jwl)
        return IsentropeResult(
            points=tuple(points),
            jwl=jwl,
            cj=cj,
            entropy_drift=drift,
            diagnostics=Diagnostics(
                iterations=len(points) - 1,
                residual=jwl.rms,
                converged=jwl.acceptable,
                admitted=tuple(state.active),
                message=f"entropy drift {drift:.3e} J/(kg K)",
            ),
        )

    @staticmethod
    def _point(volume_ratio: float, state: EquilibriumState) -> IsentropePoint:
        return IsentropePoint(
            volume_ratio=volume_ratio,
            pressure=state.pressure,
            temperature=state.temperature,
            energy=state.internal_energy,
            entropy=state.entropy,
        )
