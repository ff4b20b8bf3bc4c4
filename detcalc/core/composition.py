"""
Formula parsing and mixture reduction to elemental totals.

A formulation is a list of (reactant, mass fraction) pairs. It is reduced
to moles of each element per 1 kg of mixture, the right-hand side ``b`` of
the element-conservation constraints, together with the reactant specific
enthalpy and the initial density needed by the Hugoniot relations.
"""

import math
import re
from collections.abc import Iterable, Iterator, Mapping

import numpy as np
from numpy.typing import NDArray

from ..data.explosives import ReactantSpec, get_reactant
from .constants import G_CM3_TO_KG_M3, GAS_CONSTANT, KJ_TO_J, P_REF, REFERENCE_MASS_G, T_REF
from .types import InvalidCompositionError, Species

# Atomic weights for molecular weight calculation (IUPAC 2021)
ATOMIC_WEIGHTS: dict[str, float] = {
    'H': 1.00794,
    'He': 4.002602,
    'B': 10.811,
    'C': 12.0107,
    'N': 14.0067,
    'O': 15.9994,
    'F': 18.9984032,
    'Na': 22.98977,
    'Mg': 24.305,
    'Al': 26.981538,
    'Si': 28.0855,
    'P': 30.973761,
    'S': 32.065,
    'Cl': 35.453,
    'Ar': 39.948,
    'K': 39.0983,
    'Ti': 47.867,
    'Fe': 55.845,
}

_TOKEN = re.compile(r"([A-Z][a-z]?|\(|\)|\d+(?:\.\d+)?|\.\d+)")
_PHASE_SUFFIX = re.compile(r"\((?:g|l|s|c|a|G|L|S|cr|gr)\)$")


class ElementVector(Mapping[str, float]):
    """
    Immutable mapping from element symbol to atom count.

    Counts are floats so that polymer repeat units and empirical formulas
    with fractional subscripts are representable.
    """

    __slots__ = ("_counts",)

    def __init__(self, counts: Mapping[str, float] | Iterable[tuple[str, float]] = ()):
        items = counts.items() if isinstance(counts, Mapping) else counts
        merged: dict[str, float] = {}
        for symbol, count in items:
            merged[symbol] = merged.get(symbol, 0.0) + float(count)
        self._counts = {k: v for k, v in sorted(merged.items()) if v != 0.0}

    def __getitem__(self, symbol: str) -> float:
        return self._counts[symbol]

    def __iter__(self) -> Iterator[str]:
        return iter(self._counts)

    def __len__(self) -> int:
        return len(self._counts)

    def __hash__(self) -> int:
        return hash(tuple(self._counts.items()))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return self._counts == dict(other)
        return NotImplemented

    def __add__(self, other: "ElementVector") -> "ElementVector":
        return ElementVector(list(self.items()) + list(other.items()))

    def scaled(self, factor: float) -> "ElementVector":
        return ElementVector({k: v * factor for k, v in self._counts.items()})

    @property
    def elements(self) -> tuple[str, ...]:
        return tuple(self._counts)

    def molecular_weight(self) -> float:
        """Molar mass in g/mol from the atomic weight table."""
        try:
            return sum(ATOMIC_WEIGHTS[el] * n for el, n in self._counts.items())
        except KeyError as exc:
            raise InvalidCompositionError(f"No atomic weight for element {exc.args[0]}") from exc

    def as_array(self, elements: Iterable[str]) -> NDArray[np.float64]:
        return np.array([self._counts.get(el, 0.0) for el in elements], dtype=np.float64)

    def __repr__(self) -> str:
        body = " ".join(f"{el}:{n:g}" for el, n in self._counts.items())
        return f"ElementVector({body})"


def parse_formula(formula: str) -> ElementVector:
    """
    Parse a chemical formula into element counts.

    Handles phase suffixes ("C(gr)", "Al2O3(s)"), parenthesized groups
    ("C(NO2)4") and fractional subscripts ("C10H15.4O0.07").

    Raises:
        InvalidCompositionError: If the formula cannot be parsed
    """
    text = _PHASE_SUFFIX.sub("", formula.strip())
    tokens = _TOKEN.findall(text)
    if not tokens or "".join(tokens) != text:
        raise InvalidCompositionError(f"Cannot parse formula {formula!r}")

    stack: list[dict[str, float]] = [{}]
    last: dict[str, float] | str | None = None
    for token in tokens:
        if token == "(":
            stack.append({})
            last = None
        elif token == ")":
            if len(stack) == 1:
                raise InvalidCompositionError(f"Unbalanced parentheses in {formula!r}")
            group = stack.pop()
            _merge(stack[-1], group, 1.0)
            last = group
        elif token[0].isdigit() or token[0] == ".":
            count = float(token)
            if last is None:
                raise InvalidCompositionError(f"Dangling subscript in {formula!r}")
            if isinstance(last, str):
                stack[-1][last] += count - 1.0
            else:
                _merge(stack[-1], last, count - 1.0)
            last = None
        else:
            stack[-1][token] = stack[-1].get(token, 0.0) + 1.0
            last = token

    if len(stack) != 1:
        raise InvalidCompositionError(f"Unbalanced parentheses in {formula!r}")
    return ElementVector(stack[0])


def _merge(target: dict[str, float], group: dict[str, float], factor: float) -> None:
    for el, n in group.items():
        target[el] = target.get(el, 0.0) + n * factor


def build_stoichiometry_matrix(
    species_list: list[Species], element_list: Iterable[str]
) -> NDArray[np.float64]:
    """Build stoichiometry matrix a[i,j] = atoms of element i in species j."""
    elements = tuple(element_list)
    a_matrix = np.zeros((len(elements), len(species_list)), dtype=np.float64)
    for j, species in enumerate(species_list):
        a_matrix[:, j] = parse_formula(species.formula).as_array(elements)
    return a_matrix


def filter_valid_species(species_list: list[Species], element_list: Iterable[str]) -> list[Species]:
    """Filter species to only those that can be formed from available elements."""
    element_set = set(element_list)
    return [sp for sp in species_list if set(parse_formula(sp.formula)).issubset(element_set)]


class Composition:
    """
    Mixture of reactants given by mass fraction.

    Example:
        >>> mix = Composition([("RDX", 0.95), ("PE", 0.05)])
        >>> elements, b = mix.element_totals()
    """

    def __init__(self, components: Iterable[tuple[str | ReactantSpec, float]] = ()):
        self.components: list[tuple[ReactantSpec, float]] = []
        for reactant, fraction in components:
            self.add(reactant, fraction)

    def add(self, reactant: str | ReactantSpec, mass_fraction: float) -> None:
        """Append a reactant by library key, formula or explicit spec."""
        spec = reactant if isinstance(reactant, ReactantSpec) else get_reactant(reactant)
        if spec is None:
            raise InvalidCompositionError(f"Unknown reactant {reactant!r}")
        if not math.isfinite(mass_fraction) or mass_fraction < 0.0:
            raise InvalidCompositionError(
                f"Mass fraction of {spec.formula} must be finite and non-negative, got {mass_fraction}"
            )
        self.components.append((spec, float(mass_fraction)))

    @property
    def total_fraction(self) -> float:
        return sum(w for _, w in self.components)

    def normalized(self) -> list[tuple[ReactantSpec, float]]:
        """Components with mass fractions rescaled to sum to 1."""
        total = self.total_fraction
        if not self.components or total <= 0.0:
            raise InvalidCompositionError("Composition has no reactants with positive mass fraction")
        return [(spec, w / total) for spec, w in self.components if w > 0.0]

    def check_balance(self, tolerance: float = 1e-6) -> None:
        """Raise if mass fractions do not already sum to 1."""
        if abs(self.total_fraction - 1.0) > tolerance:
            raise InvalidCompositionError(
                f"Mass fractions sum to {self.total_fraction:.8f}, expected 1"
            )

    def _moles_per_kg(self) -> list[tuple[ReactantSpec, ElementVector, float]]:
        rows = []
        for spec, w in self.normalized():
            formula = parse_formula(spec.formula)
            rows.append((spec, formula, w * REFERENCE_MASS_G / formula.molecular_weight()))
        return rows

    def element_vector(self) -> ElementVector:
        """Total moles of each element in 1 kg of mixture."""
        total = ElementVector()
        for _, formula, moles in self._moles_per_kg():
            total = total + formula.scaled(moles)
        if not total or any(n <= 0.0 for n in total.values()):
            raise InvalidCompositionError("Composition reduces to an empty element vector")
        return total

    def element_totals(self) -> tuple[tuple[str, ...], NDArray[np.float64]]:
        """Element symbols (sorted) and the matching totals in mol/kg."""
        vector = self.element_vector()
        return vector.elements, vector.as_array(vector.elements)

    def specific_enthalpy(self) -> float:
        """Reactant specific enthalpy at 298.15 K in J/kg."""
        return sum(moles * spec.heat_of_formation * KJ_TO_J for spec, _, moles in self._moles_per_kg())

    def specific_energy(self, pressure: float = P_REF, density: float | None = None) -> float:
        """Reactant specific internal energy e0 = h0 - P0 v0 in J/kg."""
        rho = density if density is not None else self.density(T_REF, pressure)
        return self.specific_enthalpy() - pressure / rho

    @property
    def is_gaseous(self) -> bool:
        return all(spec.is_gas for spec, _ in self.normalized())

    def density(self, temperature: float = T_REF, pressure: float = P_REF) -> float:
        """
        Initial density in kg/m^3.

        Condensed mixtures use the volume-additive theoretical maximum
        density. Gas mixtures use the ideal-gas law at (temperature, pressure).
        Mixed condensed/gas formulations need an explicit density.
        """
        components = self.normalized()
        if self.is_gaseous:
            moles = sum(m for _, _, m in self._moles_per_kg())
            return REFERENCE_MASS_G / 1000.0 * pressure / (moles * GAS_CONSTANT * temperature)
        if any(spec.density is None for spec, _ in components):
            raise InvalidCompositionError(
                "Mixed gas/condensed formulation requires an explicit initial density"
            )
        specific_volume = sum(w / spec.density for spec, w in components)  # cm³/g
        return G_CM3_TO_KG_M3 / specific_volume

    def __repr__(self) -> str:
        parts = ", ".join(f"{spec.formula}:{w:.4f}" for spec, w in self.components)
        return f"Composition({parts})"
