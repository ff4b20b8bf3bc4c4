"""
Numerical settings for the equilibrium, phase, CJ and isentrope solvers.

Every tolerance and iteration cap used by the engine lives here so a
caller can relax or tighten a calculation without touching solver code.
Defaults reproduce the reference results in ``tests/validation``.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any


@dataclass
class EquilibriumSettings:
    """
    Newton solver and inner-loop controls.

    Tolerances are relative: the step norm is max(x_i |dln n_i|) over
    gas species and |dn_c|/n_total over condensed species; the element
    residual is max|A n - b| / max(b).
    """
    # Newton iteration on mole numbers
    max_iterations: int = 200
    step_tolerance: float = 1e-9
    element_tolerance: float = 1e-10

    # Step control
    max_log_step: float = 2.0        # cap on |dln n| for major species
    trace_fraction: float = 1e-8     # below this a gas species is "trace"
    trace_ceiling: float = 1e-4      # trace species may jump up to this fraction
    max_backtracks: int = 8          # halvings allowed out of EOS-inadmissible states
    ln_floor: float = -80.0          # ln n lower clamp (mol/kg)

    # Condensed species handling
    condensed_seed: float = 1e-3     # newly admitted amount, fraction of its element limit
    condensed_floor: float = 1e-10   # below this fraction of n_total a species is depleted
    depletion_patience: int = 4      # consecutive blocked steps before depletion
    depletion_residual: float = 1e-6 # blocked steps count once the element error is below this

    # (v, e) temperature loop
    initial_temperature: float = 3000.0
    max_temperature_iterations: int = 50
    energy_tolerance: float = 1e-9   # relative to max(|e|, Cv T)
    max_temperature_step: float = 500.0

    # (T, P) volume loop
    max_pressure_iterations: int = 50
    pressure_tolerance: float = 1e-9  # on |ln(P/P_target)|


@dataclass
class PhaseSettings:
    """Condensed-phase active-set controls."""
    admission_tolerance: float = 1e-7    # driving force (units of RT) to admit
    max_passes: int | None = None        # None -> 2 * n_candidates + 2


@dataclass
class CJSettings:
    """
    Chapman-Jouguet outer iteration.

    Volume bounds are ratios v/v0 of product to initial specific volume.
    """
    tolerance: float = 1e-4
    max_iterations: int = 50
    initial_bracket: tuple[float, float] = (0.68, 0.82)
    bracket_step: float = 0.06
    volume_ratio_limits: tuple[float, float] = (0.35, 0.97)
    max_bracket_expansions: int = 8
    derivative_step: float = 1e-3        # relative dv for the Hugoniot slope
    hugoniot_tolerance: float = 1e-9     # relative pressure on the Hugoniot
    max_hugoniot_iterations: int = 30
    initial_pressure: float = 101325.0   # Pa
    initial_temperature: float = 298.15  # K


@dataclass
class IsentropeSettings:
    """Isentrope sampling and JWL fit controls."""
    n_points: int = 40
    final_volume_ratio: float = 10.0     # v_end / v0
    corrector_tolerance: float = 1e-8
    max_corrector_iterations: int = 8
    fit_tolerance: float = 0.02          # RMS relative pressure residual
    max_fit_evaluations: int = 4000


@dataclass
class EngineSettings:
    """All solver settings, grouped by stage."""
    equilibrium: EquilibriumSettings = field(default_factory=EquilibriumSettings)
    phases: PhaseSettings = field(default_factory=PhaseSettings)
    cj: CJSettings = field(default_factory=CJSettings)
    isentrope: IsentropeSettings = field(default_factory=IsentropeSettings)

    def with_overrides(self, overrides: dict[str, Any]) -> "EngineSettings":
        """
        Return a copy with dotted-key overrides applied.

        Example:
            >>> EngineSettings().with_overrides({"cj.tolerance": 1e-5})

        Raises:
            KeyError: For an unknown group or field
        """
        groups = {f.name: getattr(self, f.name) for f in fields(self)}
        changes: dict[str, dict[str, Any]] = {}
        for key, value in overrides.items():
            group, _, name = key.partition(".")
            if group not in groups or name not in {f.name for f in fields(groups[group])}:
                raise KeyError(f"Unknown setting {key!r}")
            changes.setdefault(group, {})[name] = value
        return replace(
            self, **{group: replace(groups[group], **values) for group, values in changes.items()}
        )
