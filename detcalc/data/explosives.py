"""
Reactant and formulation database for detonation calculations.

Contains explosive ingredients with formula, heat of formation and
crystal (or liquid) density, plus named formulations with reference
CJ performance from the literature.

References:
    - Dobratz, B.M. & Crawford, P.C. (1985). "LLNL Explosives Handbook",
      UCRL-52997 Change 2.
    - Mader, C.L. (2008). "Numerical Modeling of Explosives and Propellants",
      3rd ed., CRC Press.
    - Cooper, P.W. (1996). "Explosives Engineering", Wiley-VCH.
    - NIST Chemistry WebBook (gas-phase heats of formation)
"""

from dataclasses import dataclass
from enum import Enum, auto


class ReactantCategory(Enum):
    """Role of an ingredient in a formulation."""
    HIGH_EXPLOSIVE = auto()      # TNT, RDX, HMX, PETN
    OXIDIZER = auto()            # AN, O2
    METAL = auto()               # Al
    BINDER = auto()              # Polyethylene, wax
    GAS = auto()                 # H2, N2, CH4


@dataclass(frozen=True)
class ReactantSpec:
    """Specification for a single formulation ingredient."""
    name: str
    formula: str
    heat_of_formation: float     # kJ/mol at 298.15 K
    density: float | None        # g/cm³, None for gases
    phase: str                   # 'S', 'L' or 'G'
    category: ReactantCategory

    @property
    def is_gas(self) -> bool:
        return self.phase == "G"


@dataclass(frozen=True)
class ExplosivePreset:
    """
    Named formulation with reference performance.

    Reference values are experimental or BKW-calculated CJ states and
    are used for validation, not as solver inputs.
    """
    name: str
    description: str
    components: tuple[tuple[str, float], ...]   # (reactant key, mass fraction)
    density: float | None                       # g/cm³, None for gases at 1 atm
    eos: str
    detonation_velocity: float | None           # m/s
    cj_pressure: float | None                   # GPa
    notes: str = ""


# =============================================================================
# Ingredient Database
# =============================================================================

REACTANTS: dict[str, ReactantSpec] = {
    "TNT": ReactantSpec(
        name="2,4,6-Trinitrotoluene",
        formula="C7H5N3O6",
        heat_of_formation=-63.2,
        density=1.654,
        phase="S",
        category=ReactantCategory.HIGH_EXPLOSIVE,
    ),
    "RDX": ReactantSpec(
        name="Cyclotrimethylenetrinitramine",
        formula="C3H6N6O6",
        heat_of_formation=70.3,
        density=1.806,
        phase="S",
        category=ReactantCategory.HIGH_EXPLOSIVE,
    ),
    "HMX": ReactantSpec(
        name="Cyclotetramethylenetetranitramine",
        formula="C4H8N8O8",
        heat_of_formation=74.9,
        density=1.905,
        phase="S",
        category=ReactantCategory.HIGH_EXPLOSIVE,
    ),
    "PETN": ReactantSpec(
        name="Pentaerythritol tetranitrate",
        formula="C5H8N4O12",
        heat_of_formation=-538.5,
        density=1.778,
        phase="S",
        category=ReactantCategory.HIGH_EXPLOSIVE,
    ),
    "TATB": ReactantSpec(
        name="Triaminotrinitrobenzene",
        formula="C6H6N6O6",
        heat_of_formation=-154.2,
        density=1.937,
        phase="S",
        category=ReactantCategory.HIGH_EXPLOSIVE,
    ),
    "NM": ReactantSpec(
        name="Nitromethane",
        formula="CH3NO2",
        heat_of_formation=-113.1,
        density=1.137,
        phase="L",
        category=ReactantCategory.HIGH_EXPLOSIVE,
    ),
    "AN": ReactantSpec(
        name="Ammonium nitrate",
        formula="H4N2O3",
        heat_of_formation=-365.6,
        density=1.725,
        phase="S",
        category=ReactantCategory.OXIDIZER,
    ),
    "AL": ReactantSpec(
        name="Aluminum",
        formula="Al",
        heat_of_formation=0.0,
        density=2.70,
        phase="S",
        category=ReactantCategory.METAL,
    ),
    "PE": ReactantSpec(
        name="Polyethylene binder (per CH2 unit)",
        formula="CH2",
        heat_of_formation=-28.2,
        density=0.93,
        phase="S",
        category=ReactantCategory.BINDER,
    ),
    "H2": ReactantSpec(
        name="Hydrogen",
        formula="H2",
        heat_of_formation=0.0,
        density=None,
        phase="G",
        category=ReactantCategory.GAS,
    ),
    "O2": ReactantSpec(
        name="Oxygen",
        formula="O2",
        heat_of_formation=0.0,
        density=None,
        phase="G",
        category=ReactantCategory.GAS,
    ),
    "N2": ReactantSpec(
        name="Nitrogen",
        formula="N2",
        heat_of_formation=0.0,
        density=None,
        phase="G",
        category=ReactantCategory.GAS,
    ),
    "CH4": ReactantSpec(
        name="Methane",
        formula="CH4",
        heat_of_formation=-74.6,
        density=None,
        phase="G",
        category=ReactantCategory.GAS,
    ),
}


# =============================================================================
# Formulation Presets
# =============================================================================

EXPLOSIVE_PRESETS: dict[str, ExplosivePreset] = {
    "TNT": ExplosivePreset(
        name="TNT",
        description="Cast TNT",
        components=(("TNT", 1.0),),
        density=1.63,
        eos="bkw-tnt",
        detonation_velocity=6860.0,
        cj_pressure=19.0,
        notes="Oxygen-lean; solid carbon in the products",
    ),
    "RDX": ExplosivePreset(
        name="RDX",
        description="Pressed RDX near crystal density",
        components=(("RDX", 1.0),),
        density=1.80,
        eos="bkw-rdx",
        detonation_velocity=8754.0,
        cj_pressure=34.7,
    ),
    "RDX/PE 95/5": ExplosivePreset(
        name="RDX/PE 95/5",
        description="RDX with 5% hydrocarbon binder",
        components=(("RDX", 0.95), ("PE", 0.05)),
        density=1.76,
        eos="bkw-rdx",
        detonation_velocity=8500.0,
        cj_pressure=33.8,
    ),
    "HMX": ExplosivePreset(
        name="HMX",
        description="Pressed HMX",
        components=(("HMX", 1.0),),
        density=1.891,
        eos="bkw-rdx",
        detonation_velocity=9110.0,
        cj_pressure=39.0,
    ),
    "PETN": ExplosivePreset(
        name="PETN",
        description="Pressed PETN",
        components=(("PETN", 1.0),),
        density=1.77,
        eos="bkw-rdx",
        detonation_velocity=8300.0,
        cj_pressure=33.5,
    ),
    "COMP B": ExplosivePreset(
        name="COMP B",
        description="Composition B, RDX/TNT 64/36",
        components=(("RDX", 0.64), ("TNT", 0.36)),
        density=1.717,
        eos="bkw-rdx",
        detonation_velocity=7980.0,
        cj_pressure=29.5,
    ),
    "TRITONAL": ExplosivePreset(
        name="TRITONAL",
        description="TNT/Al 80/20",
        components=(("TNT", 0.80), ("AL", 0.20)),
        density=1.72,
        eos="bkw-tnt",
        detonation_velocity=6700.0,
        cj_pressure=None,
        notes="Aluminum assumed to react fully within the CJ zone",
    ),
    "H2-O2": ExplosivePreset(
        name="H2-O2",
        description="Stoichiometric hydrogen/oxygen at 298.15 K and 1 atm",
        components=(("H2", 0.111898), ("O2", 0.888102)),
        density=None,
        eos="ideal",
        detonation_velocity=2836.0,
        cj_pressure=0.00186,
        notes="Gaseous detonation; CJ values from NASA CEA",
    ),
}


def get_reactant(key: str) -> ReactantSpec | None:
    """Find an ingredient by key or by formula."""
    if key in REACTANTS:
        return REACTANTS[key]
    upper = key.upper()
    if upper in REACTANTS:
        return REACTANTS[upper]
    for spec in REACTANTS.values():
        if spec.formula == key:
            return spec
    return None


def get_preset(name: str) -> ExplosivePreset | None:
    """Get formulation preset by name."""
    return EXPLOSIVE_PRESETS.get(name)


def get_all_preset_names() -> list[str]:
    """Get list of all formulation preset names."""
    return list(EXPLOSIVE_PRESETS.keys())


def get_reactants_by_category(category: ReactantCategory) -> list[ReactantSpec]:
    """Get all ingredients in a category."""
    return [r for r in REACTANTS.values() if r.category == category]
