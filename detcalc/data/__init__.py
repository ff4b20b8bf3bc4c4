"""Data modules - Reactant database and explosive presets."""

from .explosives import (
    EXPLOSIVE_PRESETS,
    REACTANTS,
    ExplosivePreset,
    ReactantCategory,
    ReactantSpec,
    get_all_preset_names,
    get_preset,
    get_reactant,
    get_reactants_by_category,
)

__all__ = [
    # Enums
    "ReactantCategory",
    # Data classes
    "ExplosivePreset",
    "ReactantSpec",
    # Databases
    "EXPLOSIVE_PRESETS",
    "REACTANTS",
    # Functions
    "get_preset",
    "get_reactant",
    "get_all_preset_names",
    "get_reactants_by_category",
]
