"""
Condensed-phase active-set management.

Condensed species enter the Newton system only while they are present.
After each converged solve the manager checks the driving force of every
excluded candidate,

    d_c = mu_c/RT - sum_k a_kc pi_k,

admits the most negative one and re-solves; species that the solver
drives to zero are removed and the system is solved again. The loop ends
when a full pass leaves the active set unchanged.

References:
    - Gordon, S. & McBride, B.J. (1994). NASA RP-1311, Section 3.5
      (inclusion and removal of condensed species).
"""

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from enum import Enum

from .config import PhaseSettings
from .equilibrium import GibbsEquilibriumSolver
from .types import (
    CondensedDepletedError,
    Diagnostics,
    EquilibriumState,
    NonConvergenceError,
    SingularJacobianError,
)

logger = logging.getLogger(__name__)


class PhaseStatus(Enum):
    EXCLUDED = "excluded"
    TENTATIVE = "tentative"
    ADMITTED = "admitted"


class PhaseManager:
    """
    Wraps a GibbsEquilibriumSolver with condensed-phase admission.

    Species that are the sole carrier of some element start TENTATIVE
    since the constraints cannot be met without them. Status persists
    between calls, so a sequence of related solves (a Hugoniot scan, an
    isentrope) carries the active set forward.

    Example:
        >>> manager = PhaseManager(solver)
        >>> state = manager.solve_tp(2000.0, 1.0e7)
        >>> manager.admitted
        ('Al2O3(s)',)
    """

    def __init__(self, solver: GibbsEquilibriumSolver, settings: PhaseSettings | None = None):
        self.solver = solver
        self.settings = settings or PhaseSettings()
        self.status: dict[str, PhaseStatus] = {
            name: PhaseStatus.EXCLUDED for name in solver.condensed_names
        }
        for name in solver.required_condensed():
            self.status[name] = PhaseStatus.TENTATIVE

    @property
    def admitted(self) -> tuple[str, ...]:
        return tuple(name for name, st in self.status.items() if st is PhaseStatus.ADMITTED)

    @property
    def active(self) -> tuple[str, ...]:
        return tuple(name for name, st in self.status.items() if st is not PhaseStatus.EXCLUDED)

    def reset(self) -> None:
        """Forget admissions from earlier solves."""
        for name in self.status:
            self.status[name] = PhaseStatus.EXCLUDED
        for name in self.solver.required_condensed():
            self.status[name] = PhaseStatus.TENTATIVE

    def solve_tv(self, temperature: float, volume: float,
                 initial: EquilibriumState | None = None) -> EquilibriumState:
        return self._run(lambda active, start: self.solver.solve_tv(temperature, volume, active, start), initial)

    def solve_tp(self, temperature: float, pressure: float,
                 initial: EquilibriumState | None = None) -> EquilibriumState:
        return self._run(lambda active, start: self.solver.solve_tp(temperature, pressure, active, start), initial)

    def solve_ve(self, volume: float, energy: float, initial: EquilibriumState | None = None,
                 temperature: float | None = None) -> EquilibriumState:
        def solve(active: Sequence[str], start: EquilibriumState | None) -> EquilibriumState:
            guess = start.temperature if start is not None else temperature
            return self.solver.solve_ve(volume, energy, active, start, temperature=guess)
        return self._run(solve, initial)

    def _run(
        self,
        solve: Callable[[Sequence[str], EquilibriumState | None], EquilibriumState],
        initial: EquilibriumState | None,
    ) -> EquilibriumState:
        candidates = list(self.status)
        max_passes = self.settings.max_passes or 2 * len(candidates) + 2
        state = initial
        total_iterations = 0

        for n_pass in range(1, max_passes + 1):
            tentative = [name for name, st in self.status.items() if st is PhaseStatus.TENTATIVE]
            try:
                state = solve(self.active, state)
            except CondensedDepletedError as exc:
                for name in exc.depleted:
                    logger.debug("Removing depleted condensed species %s", name)
                    self.status[name] = PhaseStatus.EXCLUDED
                state = exc.state
                continue
            except (SingularJacobianError, NonConvergenceError) as exc:
                if not tentative:
                    raise
                logger.debug("Solve with tentative %s failed (%s); excluding", tentative, exc)
                for name in tentative:
                    self.status[name] = PhaseStatus.EXCLUDED
                state = initial
                continue
            total_iterations += state.diagnostics.iterations

            for name in tentative:
                self.status[name] = PhaseStatus.ADMITTED

            excluded = [name for name in candidates if self.status[name] is PhaseStatus.EXCLUDED]
            forces = self.solver.driving_forces(state, excluded)
            best = None
            for name in excluded:
                force = forces.get(name)
                if force is not None and force < -self.settings.admission_tolerance:
                    if best is None or force < forces[best]:
                        best = name
            if best is None:
                state.diagnostics = replace(
                    state.diagnostics,
                    iterations=total_iterations,
                    admitted=self.admitted,
                    message=f"{state.diagnostics.message}; phase passes {n_pass}".lstrip("; "),
                )
                return state

            logger.debug("Admitting %s (driving force %.3e)", best, forces[best])
            self.status[best] = PhaseStatus.TENTATIVE

        raise NonConvergenceError(
            f"Condensed-phase selection did not settle in {max_passes} passes",
            Diagnostics(iterations=total_iterations, admitted=self.admitted, message="phase admission"),
        )
