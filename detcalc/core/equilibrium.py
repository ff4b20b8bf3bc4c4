"""
Chemical equilibrium solver by constrained free-energy minimization.

The core problem is the minimum of the Helmholtz energy at fixed
temperature and volume,

    min A(n)  subject to  A_el n = b,  n >= 0,

for a mixture of gas species (ideal mixing plus an EOS residual term) and
incompressible condensed species. Fixed (T, P) and fixed (v, e) problems
are solved on top of it by outer loops on volume and temperature; at the
converged (T, V) the (T, P) result is the Gibbs minimum at the computed
pressure.

Newton iteration:
    Gas species use ln n as variables, condensed species use n. With
    S = diag(n_gas, 1_cond), H the Hessian of A/RT and mu the chemical
    potentials over RT, the symmetric KKT system

        [ S H S   S A^T ] [  z  ]   [ -S mu   ]
        [ A S      0    ] [ -pi ] = [ b - A n ]

    gives the step z and the new element potentials pi. It is assembled
    into one preallocated buffer, row-equilibrated and solved densely.
    Steps are damped as in RP-1311: major species move at most
    max_log_step in ln n, trace species may rise only to trace_ceiling.

References:
    - Gordon, S. & McBride, B.J. (1994). NASA RP-1311, Part I.
    - Smith, W.R. & Missen, R.W. (1982). "Chemical Reaction Equilibrium
      Analysis: Theory and Algorithms", Wiley.
    - Nocedal, J. & Wright, S.J. (2006). "Numerical Optimization", 2nd ed.,
      Ch. 16 (KKT systems).
"""

import logging
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace

import numpy as np
from numpy.typing import NDArray

from .composition import ElementVector, build_stoichiometry_matrix, parse_formula
from .config import EquilibriumSettings
from .constants import CM3_TO_M3, GAS_CONSTANT, P_REF
from .eos import EquationOfState, ResidualProperties, get_eos
from .thermodynamics import compute_thermo
from .types import (
    CondensedDepletedError,
    Diagnostics,
    EquilibriumState,
    InvalidCompositionError,
    NonConvergenceError,
    OutOfRangeError,
    SingularJacobianError,
    Species,
)

logger = logging.getLogger(__name__)


class ThermoTable:
    """Packed NASA coefficients for a species list, evaluated per temperature."""

    def __init__(self, species: Sequence[Species]):
        self.species = tuple(species)
        self.coeffs_low = np.vstack([sp.coeffs_low for sp in self.species])
        self.coeffs_high = np.vstack([sp.coeffs_high for sp in self.species])
        self.t_low = np.array([sp.t_low for sp in self.species])
        self.t_mid = np.array([sp.t_mid for sp in self.species])
        self.t_high = np.array([sp.t_high for sp in self.species])
        self._cached_T: float | None = None
        self._cached: tuple[NDArray[np.float64], ...] = ()

    def window(self, indices: NDArray[np.intp]) -> tuple[float, float]:
        """Temperature interval where every listed species is valid."""
        return float(np.max(self.t_low[indices])), float(np.min(self.t_high[indices]))

    def evaluate(
        self, T: float, indices: NDArray[np.intp]
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """
        Return (G/RT, H/RT, Cp/R, S/R) for all species at T.

        Raises:
            OutOfRangeError: If T is outside the window of a listed species
        """
        outside = (T < self.t_low[indices]) | (T > self.t_high[indices])
        if np.any(outside):
            sp = self.species[int(indices[np.argmax(outside)])]
            raise OutOfRangeError(
                f"Temperature {T:.2f} K is outside valid range "
                f"[{sp.t_low}, {sp.t_high}] K for species {sp.name}",
                Diagnostics(message="thermo window"),
            )
        if self._cached_T != T:
            self._cached = compute_thermo(T, self.coeffs_low, self.coeffs_high, self.t_mid)
            self._cached_T = T
        return self._cached


@dataclass
class _Evaluation:
    """Chemical potentials and EOS bundle at one iterate."""
    gas_volume: float
    props: ResidualProperties
    mu_gas: NDArray[np.float64]
    mu_cond: NDArray[np.float64]


class GibbsEquilibriumSolver:
    """
    Equilibrium composition of a fixed element inventory.

    One instance owns a work buffer and must not be shared between
    threads; it is cheap to build one per worker.

    Args:
        species: Candidate product species (gas and condensed)
        element_totals: ElementVector, or (elements, b) with b in mol/kg
        eos: EquationOfState instance or registry name
        settings: Numerical controls

    Example:
        >>> solver = GibbsEquilibriumSolver(species, composition.element_vector(), "ideal")
        >>> state = solver.solve_tp(3000.0, 1.0e6)
    """

    def __init__(
        self,
        species: Sequence[Species],
        element_totals: ElementVector | tuple[Sequence[str], Sequence[float]],
        eos: EquationOfState | str = "ideal",
        settings: EquilibriumSettings | None = None,
    ):
        if isinstance(element_totals, ElementVector):
            elements = element_totals.elements
            b = element_totals.as_array(elements)
        else:
            elements, b = tuple(element_totals[0]), np.asarray(element_totals[1], dtype=np.float64)

        self.species = tuple(species)
        self.species_names = tuple(sp.name for sp in self.species)
        self.elements = tuple(elements)
        self.b = np.asarray(b, dtype=np.float64)
        self.eos = get_eos(eos)
        self.settings = settings or EquilibriumSettings()

        if not self.species:
            raise InvalidCompositionError("No candidate product species")
        if self.b.shape != (len(self.elements),) or np.any(~np.isfinite(self.b)) or np.any(self.b <= 0.0):
            raise InvalidCompositionError(f"Element totals must be positive, got {self.b}")

        self.a_matrix = build_stoichiometry_matrix(list(self.species), self.elements)
        carried = self.a_matrix.sum(axis=0)
        for sp, atoms in zip(self.species, carried, strict=True):
            if atoms != sum(parse_formula(sp.formula).values()):
                raise InvalidCompositionError(
                    f"Species {sp.name} contains elements outside {self.elements}"
                )
        for k, element in enumerate(self.elements):
            if not np.any(self.a_matrix[k] > 0.0):
                raise InvalidCompositionError(f"No candidate species carries element {element}")

        self.eos.validate_species(self.species)

        condensed = np.array([sp.is_condensed for sp in self.species], dtype=bool)
        self.gas_idx = np.flatnonzero(~condensed)
        self.cond_idx = np.flatnonzero(condensed)
        if self.gas_idx.size == 0:
            raise InvalidCompositionError("At least one gas-phase species is required")
        self.gas_params = self.eos.gas_parameters(self.species)
        self.molar_volumes = np.array(
            [sp.eos_params.get("molar_volume", 0.0) * CM3_TO_M3 if sp.is_condensed else 0.0
             for sp in self.species]
        )
        self.thermo = ThermoTable(self.species)

        size = len(self.species) + len(self.elements)
        self._kkt = np.zeros((size, size), dtype=np.float64)
        self._rhs = np.zeros(size, dtype=np.float64)

    # -------------------------------------------------------------------------
    # Species bookkeeping
    # -------------------------------------------------------------------------

    @property
    def condensed_names(self) -> tuple[str, ...]:
        return tuple(self.species_names[i] for i in self.cond_idx)

    def index_of(self, name: str) -> int:
        try:
            return self.species_names.index(name)
        except ValueError:
            raise KeyError(f"{name} is not a candidate species") from None

    def required_condensed(self) -> tuple[str, ...]:
        """Condensed species that are the only carriers of some element."""
        gas_carried = np.any(self.a_matrix[:, self.gas_idx] > 0.0, axis=1)
        required = []
        for i in self.cond_idx:
            if np.any((self.a_matrix[:, i] > 0.0) & ~gas_carried):
                required.append(self.species_names[i])
        return tuple(required)

    def _active_indices(self, active: Iterable[str]) -> NDArray[np.intp]:
        indices = sorted({self.index_of(name) for name in active})
        for i in indices:
            if not self.species[i].is_condensed:
                raise KeyError(f"{self.species_names[i]} is not a condensed species")
        return np.array(indices, dtype=np.intp)

    def element_residual(self, state: EquilibriumState) -> NDArray[np.float64]:
        """A n - b for a state produced by this solver."""
        return self.a_matrix @ state.moles - self.b

    # -------------------------------------------------------------------------
    # Newton machinery
    # -------------------------------------------------------------------------

    def _initial_moles(
        self, initial: EquilibriumState | None, cond: NDArray[np.intp]
    ) -> NDArray[np.float64]:
        n = np.zeros(len(self.species), dtype=np.float64)
        if initial is not None and initial.species_names == self.species_names:
            n[self.gas_idx] = initial.moles[self.gas_idx]
            n[cond] = initial.moles[cond]
        else:
            n_gas = len(self.gas_idx)
            for j in self.gas_idx:
                column = self.a_matrix[:, j]
                carriers = column > 0.0
                n[j] = np.min(self.b[carriers] / column[carriers]) / n_gas

        floor = math.exp(self.settings.ln_floor)
        n[self.gas_idx] = np.maximum(n[self.gas_idx], floor)
        for i in cond:
            if n[i] <= 0.0:
                column = self.a_matrix[:, i]
                carriers = column > 0.0
                n[i] = self.settings.condensed_seed * np.min(self.b[carriers] / column[carriers])
        return n

    def _evaluate(
        self,
        T: float,
        volume: float,
        n_gas: NDArray[np.float64],
        n_cond: NDArray[np.float64],
        cond: NDArray[np.intp],
        g_rt: NDArray[np.float64],
    ) -> _Evaluation | None:
        """Chemical potentials at an iterate, or None if the state is inadmissible."""
        gas_volume = volume - float(np.dot(n_cond, self.molar_volumes[cond]))
        if not self.eos.is_admissible(T, gas_volume, n_gas, self.gas_params):
            return None
        props = self.eos.evaluate(T, gas_volume, n_gas, self.gas_params)
        RT = GAS_CONSTANT * T
        mu_gas = g_rt[self.gas_idx] + np.log(n_gas * RT / (gas_volume * P_REF)) + props.mu
        mu_cond = g_rt[cond] + props.pressure * self.molar_volumes[cond] / RT
        if not (np.all(np.isfinite(mu_gas)) and np.all(np.isfinite(mu_cond))):
            return None
        return _Evaluation(gas_volume, props, mu_gas, mu_cond)

    def _newton_direction(
        self,
        T: float,
        ev: _Evaluation,
        n_gas: NDArray[np.float64],
        n_cond: NDArray[np.float64],
        cond: NDArray[np.intp],
        residual: NDArray[np.float64],
        iteration: int,
    ) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
        """Solve the KKT system; returns (dln n_gas, dn_cond, pi_new)."""
        n_g = n_gas.shape[0]
        n_c = cond.shape[0]
        n_s = n_g + n_c
        size = n_s + len(self.elements)
        K = self._kkt[:size, :size]
        rhs = self._rhs[:size]
        K.fill(0.0)

        RT = GAS_CONSTANT * T
        a_gas = self.a_matrix[:, self.gas_idx]
        a_cond = self.a_matrix[:, cond]
        v_cond = self.molar_volumes[cond]
        props = ev.props

        # S H S blocks
        K[:n_g, :n_g] = n_gas[:, None] * props.hessian * n_gas[None, :]
        K[np.arange(n_g), np.arange(n_g)] += n_gas
        if n_c:
            cross = n_gas[:, None] * np.outer(props.dp_dn, v_cond) / RT
            K[:n_g, n_g:n_s] = cross
            K[n_g:n_s, :n_g] = cross.T
            K[n_g:n_s, n_g:n_s] = -np.outer(v_cond, v_cond) * props.dp_dv / RT

        # Element constraint blocks
        K[n_s:, :n_g] = a_gas * n_gas[None, :]
        K[n_s:, n_g:n_s] = a_cond
        K[:n_s, n_s:] = K[n_s:, :n_s].T

        rhs[:n_g] = -n_gas * ev.mu_gas
        rhs[n_g:n_s] = -ev.mu_cond
        rhs[n_s:] = -residual

        # Row equilibration: gas rows by 1/n_i
        K[:n_g] /= n_gas[:, None]
        rhs[:n_g] /= n_gas

        try:
            solution = np.linalg.solve(K, rhs)
        except np.linalg.LinAlgError as exc:
            raise SingularJacobianError(
                f"KKT system is singular at T={T:.1f} K: {exc}",
                Diagnostics(iterations=iteration, residual=float(np.max(np.abs(residual))),
                            message="equilibrium Newton step"),
            ) from exc
        if not np.all(np.isfinite(solution)):
            raise SingularJacobianError(
                f"KKT solution is not finite at T={T:.1f} K",
                Diagnostics(iterations=iteration, message="equilibrium Newton step"),
            )
        return solution[:n_g], solution[n_g:n_s], -solution[n_s:]

    def _max_step(
        self,
        n_gas: NDArray[np.float64],
        d_gas: NDArray[np.float64],
        n_total: float,
    ) -> float:
        """Largest step allowed by the log-step caps."""
        s = self.settings
        x = n_gas / n_total
        t = 1.0
        major = x > s.trace_fraction
        if np.any(major):
            biggest = float(np.max(np.abs(d_gas[major])))
            if biggest > s.max_log_step:
                t = s.max_log_step / biggest
        rising = ~major & (d_gas > 0.0)
        if np.any(rising):
            allowed = np.log(s.trace_ceiling / x[rising])
            t = min(t, float(np.min(allowed / d_gas[rising])))
        return t

    def _finish(
        self,
        T: float,
        volume: float,
        n: NDArray[np.float64],
        cond: NDArray[np.intp],
        ev: _Evaluation,
        pi: NDArray[np.float64],
        diagnostics: Diagnostics,
        depleted: tuple[str, ...] = (),
    ) -> EquilibriumState:
        """Assemble the state and its frozen thermodynamic properties."""
        g_rt, h_rt, cp_r, s_r = self.thermo.evaluate(T, np.concatenate([self.gas_idx, cond]))
        RT = GAS_CONSTANT * T
        n_gas = n[self.gas_idx]
        n_cond = n[cond]
        props = ev.props

        energy = (
            RT * float(np.dot(n_gas, h_rt[self.gas_idx] - 1.0))
            + RT * float(np.dot(n_cond, h_rt[cond]))
            + props.energy
        )
        ideal_s = s_r[self.gas_idx] - np.log(n_gas * RT / (ev.gas_volume * P_REF))
        entropy = (
            GAS_CONSTANT * (float(np.dot(n_gas, ideal_s)) + float(np.dot(n_cond, s_r[cond])))
            + props.entropy
        )
        cv = (
            GAS_CONSTANT * (float(np.dot(n_gas, cp_r[self.gas_idx] - 1.0)) + float(np.dot(n_cond, cp_r[cond])))
            + props.heat_capacity
        )
        c_squared = volume**2 * (-props.dp_dv + T * props.dp_dt**2 / cv) if cv > 0.0 else math.nan

        return EquilibriumState(
            species_names=self.species_names,
            moles=n,
            temperature=T,
            volume=volume,
            pressure=props.pressure,
            elements=self.elements,
            element_potentials=pi,
            active=tuple(self.species_names[i] for i in cond),
            depleted=depleted,
            internal_energy=energy,
            entropy=entropy,
            heat_capacity_v=cv,
            dp_dt=props.dp_dt,
            dp_dv=props.dp_dv,
            frozen_sound_speed=math.sqrt(c_squared) if c_squared > 0.0 else math.nan,
            diagnostics=diagnostics,
        )

    # -------------------------------------------------------------------------
    # Solve modes
    # -------------------------------------------------------------------------

    def solve_tv(
        self,
        temperature: float,
        volume: float,
        active: Iterable[str] = (),
        initial: EquilibriumState | None = None,
    ) -> EquilibriumState:
        """
        Equilibrium at fixed temperature (K) and specific volume (m^3/kg).

        Args:
            temperature: Temperature (K)
            volume: Specific volume of the mixture (m^3/kg)
            active: Condensed species allowed to be present
            initial: Previous state to warm-start from

        Returns:
            Converged EquilibriumState

        Raises:
            OutOfRangeError: T outside a species window, or T, v not positive
            CondensedDepletedError: An active condensed species was driven to zero
            SingularJacobianError: The Newton system could not be solved
            NonConvergenceError: Iteration cap reached
        """
        if not (temperature > 0.0 and volume > 0.0 and math.isfinite(temperature) and math.isfinite(volume)):
            raise OutOfRangeError(f"Non-physical state T={temperature} K, v={volume} m^3/kg")

        s = self.settings
        T = float(temperature)
        cond = self._active_indices(active)
        g_rt = self.thermo.evaluate(T, np.concatenate([self.gas_idx, cond]))[0]

        n = self._initial_moles(initial, cond)
        n_gas = n[self.gas_idx]
        n_cond = n[cond]
        ln_n = np.log(n_gas)

        ev = self._evaluate(T, volume, n_gas, n_cond, cond, g_rt)
        if ev is None:
            raise OutOfRangeError(
                f"Initial composition is inadmissible for {self.eos.name} at v={volume:.4g} m^3/kg",
                Diagnostics(message="equilibrium start"),
            )

        blocked = np.zeros(cond.shape[0], dtype=int)
        step_norm = math.inf

        for iteration in range(1, s.max_iterations + 1):
            residual = self.a_matrix[:, self.gas_idx] @ n_gas + self.a_matrix[:, cond] @ n_cond - self.b
            d_gas, d_cond, pi_new = self._newton_direction(T, ev, n_gas, n_cond, cond, residual, iteration)

            n_total = float(np.sum(n_gas) + np.sum(n_cond))
            step_norm = float(np.max(n_gas / n_total * np.abs(d_gas)))
            if d_cond.size:
                step_norm = max(step_norm, float(np.max(np.abs(d_cond))) / n_total)
            element_error = float(np.max(np.abs(residual) / np.max(self.b)))
            converged = step_norm < s.step_tolerance and element_error < s.element_tolerance

            # Condensed positivity, multiplicative reduction
            t = 1.0 if converged else self._max_step(n_gas, d_gas, n_total)
            would_vanish = n_cond + d_cond <= 0.0
            blocked = np.where(would_vanish & (element_error < s.depletion_residual), blocked + 1, 0)
            depleted_mask = would_vanish & (
                (blocked >= s.depletion_patience) | (n_cond <= s.condensed_floor * n_total)
            )
            if np.any(depleted_mask):
                depleted = tuple(self.species_names[i] for i in cond[depleted_mask])
                logger.debug("Condensed species depleted at T=%.1f K: %s", T, depleted)
                n[self.gas_idx] = n_gas
                n[cond] = n_cond
                diagnostics = Diagnostics(iterations=iteration, residual=step_norm, converged=False,
                                          message="condensed species depleted")
                raise CondensedDepletedError(
                    f"Condensed species {', '.join(depleted)} depleted at T={T:.1f} K",
                    self._finish(T, volume, n, cond, ev, pi_new, diagnostics, depleted=depleted),
                    diagnostics,
                )
            while np.any(n_cond + t * d_cond <= 0.0):
                t *= 0.5

            # Damped Newton step; halve only out of states the EOS rejects
            accepted = None
            for _ in range(s.max_backtracks + 1):
                trial_ln = np.maximum(ln_n + t * d_gas, s.ln_floor)
                trial_gas = np.exp(trial_ln)
                trial_cond = n_cond + t * d_cond
                trial_ev = self._evaluate(T, volume, trial_gas, trial_cond, cond, g_rt)
                if trial_ev is not None:
                    accepted = (t, trial_ln, trial_gas, trial_cond, trial_ev)
                    break
                t *= 0.5
            if accepted is None:
                raise NonConvergenceError(
                    f"No admissible step from the current iterate at T={T:.1f} K",
                    Diagnostics(iterations=iteration, residual=step_norm, message="equilibrium step"),
                )

            t, ln_n, n_gas, n_cond, ev = accepted
            logger.debug(
                "TV iter %d: T=%.1f K step=%.3e elem=%.3e t=%.3g",
                iteration, T, step_norm, element_error, t,
            )

            if converged:
                n[self.gas_idx] = n_gas
                n[cond] = n_cond
                return self._finish(
                    T, volume, n, cond, ev, pi_new,
                    Diagnostics(iterations=iteration, residual=step_norm, converged=True,
                                admitted=tuple(self.species_names[i] for i in cond)),
                )

        raise NonConvergenceError(
            f"Equilibrium did not converge in {s.max_iterations} iterations "
            f"(T={T:.1f} K, step norm {step_norm:.3e})",
            Diagnostics(iterations=s.max_iterations, residual=step_norm, message="equilibrium Newton"),
        )

    def _frozen_volume(
        self, T: float, pressure: float, n: NDArray[np.float64], cond: NDArray[np.intp]
    ) -> float:
        """Volume that gives ``pressure`` for fixed mole numbers."""
        n_gas = n[self.gas_idx]
        condensed_volume = float(np.dot(n[cond], self.molar_volumes[cond]))
        gas_volume = float(np.sum(n_gas)) * GAS_CONSTANT * T / pressure
        gas_volume += float(np.dot(n_gas, self.gas_params)) * CM3_TO_M3 if self.eos.parameter == "covolume" else 0.0
        for _ in range(100):
            props = self.eos.evaluate(T, gas_volume, n_gas, self.gas_params)
            error = math.log(props.pressure / pressure)
            if abs(error) < 1e-10:
                break
            slope = gas_volume * props.dp_dv / props.pressure
            step = max(-1.0, min(1.0, -error / slope))
            while not self.eos.is_admissible(T, gas_volume * math.exp(step), n_gas, self.gas_params):
                step *= 0.5
            gas_volume *= math.exp(step)
        return gas_volume + condensed_volume

    def solve_tp(
        self,
        temperature: float,
        pressure: float,
        active: Iterable[str] = (),
        initial: EquilibriumState | None = None,
    ) -> EquilibriumState:
        """
        Equilibrium at fixed temperature (K) and pressure (Pa).

        Newton/secant iteration on ln v around ``solve_tv`` using the frozen
        slope (d ln P / d ln v) as the first derivative estimate.
        """
        if not (pressure > 0.0 and math.isfinite(pressure)):
            raise OutOfRangeError(f"Non-physical pressure {pressure} Pa")
        s = self.settings
        active = tuple(active)
        cond = self._active_indices(active)

        if initial is not None and initial.species_names == self.species_names and math.isfinite(initial.pressure):
            volume = initial.volume * (initial.pressure / pressure) * (temperature / initial.temperature)
        else:
            volume = self._frozen_volume(temperature, pressure, self._initial_moles(None, cond), cond)

        state = initial
        previous: tuple[float, float] | None = None
        error = math.inf
        newton_total = 0
        for iteration in range(1, s.max_pressure_iterations + 1):
            state = self.solve_tv(temperature, volume, active, initial=state)
            newton_total += state.diagnostics.iterations
            error = math.log(state.pressure / pressure)
            if abs(error) < s.pressure_tolerance:
                state.diagnostics = replace(
                    state.diagnostics, iterations=newton_total, residual=abs(error),
                    message=f"TP converged in {iteration} volume iterations",
                )
                return state

            slope = volume * state.dp_dv / state.pressure
            ln_v = math.log(volume)
            if previous is not None and ln_v != previous[0]:
                secant = (math.log(state.pressure) - previous[1]) / (ln_v - previous[0])
                if secant < 0.0:
                    slope = secant
            previous = (ln_v, math.log(state.pressure))
            volume *= math.exp(max(-1.0, min(1.0, -error / slope)))

        raise NonConvergenceError(
            f"TP volume loop did not converge (|ln P/P*| = {abs(error):.3e})",
            Diagnostics(iterations=s.max_pressure_iterations, residual=abs(error), message="TP volume loop"),
        )

    def solve_ve(
        self,
        volume: float,
        energy: float,
        active: Iterable[str] = (),
        initial: EquilibriumState | None = None,
        temperature: float | None = None,
    ) -> EquilibriumState:
        """
        Equilibrium at fixed specific volume (m^3/kg) and energy (J/kg).

        The temperature loop starts from ``temperature``, the warm-start
        state or the configured default. Each update is a Newton step with
        the frozen heat capacity (secant once two points exist), clamped
        to the temperature window of the active species and kept inside
        the bracket of known residual signs.

        Raises:
            OutOfRangeError: The energy needs a temperature outside the
                polynomial window
        """
        s = self.settings
        active = tuple(active)
        cond = self._active_indices(active)
        t_min, t_max = self.thermo.window(np.concatenate([self.gas_idx, cond]))

        if temperature is None:
            temperature = initial.temperature if initial is not None else s.initial_temperature
        T = min(max(float(temperature), t_min), t_max)

        lower, upper = t_min, t_max
        previous: tuple[float, float] | None = None
        state = initial
        residual = math.inf
        newton_total = 0
        for iteration in range(1, s.max_temperature_iterations + 1):
            state = self.solve_tv(T, volume, active, initial=state)
            newton_total += state.diagnostics.iterations

            delta = energy - state.internal_energy
            scale = max(abs(energy), state.heat_capacity_v * T, 1.0)
            residual = abs(delta) / scale
            if residual < s.energy_tolerance:
                state.diagnostics = replace(
                    state.diagnostics, iterations=newton_total, residual=residual,
                    message=f"VE converged in {iteration} temperature iterations",
                )
                return state

            if delta > 0.0:
                if T >= t_max:
                    raise OutOfRangeError(
                        f"Energy {energy:.6g} J/kg needs T above {t_max:.0f} K",
                        Diagnostics(iterations=iteration, residual=residual, message="VE temperature loop"),
                    )
                lower = T
            else:
                if T <= t_min:
                    raise OutOfRangeError(
                        f"Energy {energy:.6g} J/kg needs T below {t_min:.0f} K",
                        Diagnostics(iterations=iteration, residual=residual, message="VE temperature loop"),
                    )
                upper = T

            slope = state.heat_capacity_v
            if previous is not None and T != previous[0]:
                secant = (state.internal_energy - previous[1]) / (T - previous[0])
                if secant > 0.0:
                    slope = secant
            previous = (T, state.internal_energy)

            step = max(-s.max_temperature_step, min(s.max_temperature_step, delta / slope))
            T_new = T + step
            if T_new >= upper:
                T_new = 0.5 * (T + upper) if upper < t_max else min(T_new, t_max)
            elif T_new <= lower:
                T_new = 0.5 * (T + lower) if lower > t_min else max(T_new, t_min)
            T = T_new

        raise NonConvergenceError(
            f"VE temperature loop did not converge (relative energy residual {residual:.3e})",
            Diagnostics(iterations=s.max_temperature_iterations, residual=residual, message="VE temperature loop"),
        )

    def driving_forces(self, state: EquilibriumState, candidates: Iterable[str]) -> dict[str, float]:
        """
        mu_c/RT - sum_k a_kc pi_k for condensed candidates at the state's T, P.

        Negative values mean the pure condensed species is more stable than
        its elements in the gas mixture. Candidates whose polynomial window
        excludes T are skipped.
        """
        T = state.temperature
        RT = GAS_CONSTANT * T
        forces: dict[str, float] = {}
        for name in candidates:
            i = self.index_of(name)
            sp = self.species[i]
            if not sp.covers(T):
                continue
            g_rt = self.thermo.evaluate(T, np.array([i]))[0][i]
            mu = g_rt + state.pressure * self.molar_volumes[i] / RT
            forces[name] = float(mu - self.a_matrix[:, i] @ state.element_potentials)
        return forces
