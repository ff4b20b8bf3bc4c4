"""Core physics engine - equilibrium, CJ and isentrope solvers."""

from .constants import GAS_CONSTANT, P_REF, T_REF
from .types import (
    CalculationCancelled,
    CalculationError,
    CondensedDepletedError,
    Diagnostics,
    EquilibriumState,
    InvalidCompositionError,
    JwlFitWarning,
    NonConvergenceError,
    OutOfRangeError,
    Phase,
    SingularJacobianError,
    Species,
    SpeciesDatabase,
    ThermoDataError,
    UnsupportedEosCombinationError,
    lookup_species,
)
from .thermodynamics import (
    compute_thermo,
    cp_over_r,
    get_thermo_properties,
    h_over_rt,
    s_over_r,
)
from .composition import Composition, ElementVector, parse_formula
from .config import (
    CJSettings,
    EngineSettings,
    EquilibriumSettings,
    IsentropeSettings,
    PhaseSettings,
)
from .eos import (
    AbelNobleEOS,
    BKWEquationOfState,
    BKW_RDX,
    BKW_TNT,
    EquationOfState,
    IdealGasEOS,
    get_eos,
)
from .equilibrium import GibbsEquilibriumSolver
from .phases import PhaseManager, PhaseStatus
from .detonation import CJStateSolver, CjResult
from .isentrope import IsentropeFitter, IsentropePoint, IsentropeResult, JwlParameters, fit_jwl
from .engine import CalculationKind, DetonationProblem, Formulation, run_formulation
from .sweep import SweepOutcome, screen_formulations, sweep_densities

__all__ = [
    # Constants
    "GAS_CONSTANT",
    "P_REF",
    "T_REF",
    # Types
    "Species",
    "SpeciesDatabase",
    "Phase",
    "EquilibriumState",
    "Diagnostics",
    "lookup_species",
    # Errors
    "CalculationError",
    "InvalidCompositionError",
    "OutOfRangeError",
    "NonConvergenceError",
    "SingularJacobianError",
    "UnsupportedEosCombinationError",
    "CalculationCancelled",
    "CondensedDepletedError",
    "ThermoDataError",
    "JwlFitWarning",
    # Thermodynamics
    "cp_over_r",
    "h_over_rt",
    "s_over_r",
    "get_thermo_properties",
    "compute_thermo",
    # Composition
    "Composition",
    "ElementVector",
    "parse_formula",
    # Settings
    "EngineSettings",
    "EquilibriumSettings",
    "PhaseSettings",
    "CJSettings",
    "IsentropeSettings",
    # Equations of state
    "EquationOfState",
    "IdealGasEOS",
    "AbelNobleEOS",
    "BKWEquationOfState",
    "BKW_RDX",
    "BKW_TNT",
    "get_eos",
    # Solvers
    "GibbsEquilibriumSolver",
    "PhaseManager",
    "PhaseStatus",
    "CJStateSolver",
    "CjResult",
    "IsentropeFitter",
    "IsentropePoint",
    "IsentropeResult",
    "JwlParameters",
    "fit_jwl",
    # Front end
    "CalculationKind",
    "Formulation",
    "DetonationProblem",
    "run_formulation",
    "SweepOutcome",
    "screen_formulations",
    "sweep_densities",
]
