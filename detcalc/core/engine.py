"""
High-level interface: formulations in, CJ states and isentropes out.

A formulation names its reactants by mass fraction, the calculation
kind, the product EOS and the loading conditions. ``DetonationProblem``
assembles the candidate product set from a species table and runs the
equilibrium, CJ or isentrope calculation; ``run_formulation`` is the
one-call entry point used by sweeps.
"""

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum

from ..data.explosives import get_preset
from ..utils.nasa_parser import create_sample_database
from .composition import Composition, filter_valid_species
from .config import EngineSettings
from .constants import G_CM3_TO_KG_M3, P_REF, T_REF
from .detonation import CJStateSolver, CjResult
from .eos import EquationOfState, get_eos
from .equilibrium import GibbsEquilibriumSolver
from .isentrope import IsentropeFitter, IsentropeResult
from .phases import PhaseManager
from .types import (
    EquilibriumState,
    InvalidCompositionError,
    Species,
    SpeciesDatabase,
    lookup_species,
)

logger = logging.getLogger(__name__)


class CalculationKind(Enum):
    EQUILIBRIUM = "equilibrium"
    CJ_STATE = "cj"
    ISENTROPE = "isentrope"


@dataclass(frozen=True)
class Formulation:
    """
    Calculation request.

    Attributes:
        components: (reactant key, mass fraction) pairs
        kind: Which calculation to run
        eos: Product EOS registry name
        density: Loading density (g/cm^3); None uses the composition density
        temperature: Temperature (K) for EQUILIBRIUM; for CJ and isentrope
            runs, the initial temperature of the unreacted mixture (it sets
            the loading density of gases, reactant enthalpies stay at 298.15 K)
        pressure: Pressure (Pa) for EQUILIBRIUM; initial pressure P0 otherwise
        products: Candidate product names; None uses the default list
        label: Free-form name carried into sweep outcomes
    """
    components: tuple[tuple[str, float], ...]
    kind: CalculationKind = CalculationKind.CJ_STATE
    eos: str = "bkw"
    density: float | None = None
    temperature: float | None = None
    pressure: float | None = None
    products: tuple[str, ...] | None = None
    label: str = ""

    @classmethod
    def from_preset(cls, name: str, kind: CalculationKind = CalculationKind.CJ_STATE, **overrides) -> "Formulation":
        """Build a formulation from a named explosive preset."""
        preset = get_preset(name)
        if preset is None:
            raise InvalidCompositionError(f"Unknown explosive preset {name!r}")
        values = dict(
            components=preset.components, kind=kind, eos=preset.eos,
            density=preset.density, label=preset.name,
        )
        values.update(overrides)
        return cls(**values)


class DetonationProblem:
    """
    Detonation problem for one reactant mixture.

    Example:
        >>> problem = DetonationProblem(create_sample_database(), eos="bkw-tnt")
        >>> problem.add_reactant("TNT", 1.0)
        >>> problem.set_density(1.63)
        >>> cj = problem.chapman_jouguet()
    """

    def __init__(
        self,
        species_db: SpeciesDatabase,
        eos: EquationOfState | str = "bkw",
        settings: EngineSettings | None = None,
    ):
        self.species_db = species_db
        self.eos = get_eos(eos)
        self.settings = settings or EngineSettings()
        self.composition = Composition()
        self.density: float | None = None       # kg/m^3
        self.product_species: list[str] = []
        self.default_products = [
            # Major C/H/N/O products
            "H2O",
            "CO2",
            "CO",
            "N2",
            "H2",
            "O2",
            "CH4",
            "NH3",
            # Radicals and atoms for high-temperature states
            "OH",
            "NO",
            "H",
            "O",
            "N",
            # Metal combustion
            "Al",
            "AlO",
            "Al2O",
            # Condensed
            "C(gr)",
            "Al2O3(s)",
        ]

    def add_reactant(self, reactant: str, mass_fraction: float) -> None:
        self.composition.add(reactant, mass_fraction)

    def set_products(self, species_names: Iterable[str]) -> None:
        self.product_species = list(species_names)

    def set_density(self, density_g_cm3: float) -> None:
        """Loading density in g/cm^3."""
        self.density = density_g_cm3 * G_CM3_TO_KG_M3

    def product_candidates(self) -> list[Species]:
        """Candidate products that can form from the mixture's elements."""
        elements = self.composition.element_vector().elements
        names = self.product_species if self.product_species else self.default_products
        candidates = []
        for name in names:
            try:
                candidates.append(lookup_species(self.species_db, name))
            except KeyError:
                if self.product_species:
                    raise InvalidCompositionError(f"Product species {name!r} is not in the database") from None
        candidates = filter_valid_species(candidates, elements)
        if not candidates:
            raise InvalidCompositionError("No valid product species")
        return candidates

    def equilibrium(self, temperature: float = T_REF, pressure: float = P_REF) -> EquilibriumState:
        """Equilibrium products at fixed temperature (K) and pressure (Pa)."""
        solver = GibbsEquilibriumSolver(
            self.product_candidates(),
            self.composition.element_vector(),
            self.eos,
            self.settings.equilibrium,
        )
        state = PhaseManager(solver, self.settings.phases).solve_tp(temperature, pressure)
        logger.info("Equilibrium: %r", state)
        return state

    def cj_solver(self) -> CJStateSolver:
        return CJStateSolver(
            self.product_candidates(), self.composition, self.eos, self.density, self.settings
        )

    def chapman_jouguet(self, cancel: Callable[[], bool] | None = None) -> CjResult:
        return self.cj_solver().solve(cancel=cancel)

    def isentrope(self, cancel: Callable[[], bool] | None = None) -> IsentropeResult:
        """CJ state, release isentrope and JWL fit."""
        return IsentropeFitter(self.cj_solver()).run(cancel=cancel)


def run_formulation(
    formulation: Formulation,
    database: SpeciesDatabase | None = None,
    settings: EngineSettings | None = None,
    cancel: Callable[[], bool] | None = None,
) -> EquilibriumState | CjResult | IsentropeResult:
    """
    Run the calculation a formulation asks for.

    Args:
        formulation: What to compute
        database: Species table; defaults to the built-in product table
        settings: Engine settings
        cancel: Cooperative cancellation callback for CJ and isentrope runs

    Raises:
        CalculationError: Any subclass, from the underlying solvers
    """
    if database is None:
        database = create_sample_database()

    if formulation.kind is not CalculationKind.EQUILIBRIUM:
        initial = {}
        if formulation.temperature is not None:
            initial["cj.initial_temperature"] = formulation.temperature
        if formulation.pressure is not None:
            initial["cj.initial_pressure"] = formulation.pressure
        if initial:
            settings = (settings or EngineSettings()).with_overrides(initial)

    problem = DetonationProblem(database, formulation.eos, settings)
    for reactant, fraction in formulation.components:
        problem.add_reactant(reactant, fraction)
    if formulation.products is not None:
        problem.set_products(formulation.products)
    if formulation.density is not None:
        problem.set_density(formulation.density)

    if formulation.kind is CalculationKind.EQUILIBRIUM:
        return problem.equilibrium(
            formulation.temperature if formulation.temperature is not None else T_REF,
            formulation.pressure if formulation.pressure is not None else P_REF,
        )
    if formulation.kind is CalculationKind.CJ_STATE:
        return problem.chapman_jouguet(cancel)
    return problem.isentrope(cancel)
