"""
Unit tests for the reactant library and formulation presets.
"""

import pytest

from detcalc.core.composition import Composition, parse_formula
from detcalc.core.engine import CalculationKind, Formulation
from detcalc.core.types import InvalidCompositionError
from detcalc.data import (
    EXPLOSIVE_PRESETS,
    REACTANTS,
    ReactantCategory,
    get_all_preset_names,
    get_preset,
    get_reactants_by_category,
)


class TestReactants:

    def test_formulas_parse(self):
        for key, spec in REACTANTS.items():
            assert parse_formula(spec.formula), key

    def test_gases_have_no_density(self):
        for spec in REACTANTS.values():
            assert (spec.density is None) == spec.is_gas

    def test_categories(self):
        names = {spec.formula for spec in get_reactants_by_category(ReactantCategory.METAL)}
        assert names == {"Al"}
        assert len(get_reactants_by_category(ReactantCategory.HIGH_EXPLOSIVE)) >= 5


class TestPresets:

    @pytest.mark.parametrize("name", get_all_preset_names())
    def test_preset_mass_fractions_balance(self, name):
        preset = EXPLOSIVE_PRESETS[name]
        Composition(preset.components).check_balance()

    def test_formulation_from_preset(self):
        formulation = Formulation.from_preset("RDX/PE 95/5", kind=CalculationKind.ISENTROPE)
        assert formulation.components == (("RDX", 0.95), ("PE", 0.05))
        assert formulation.eos == "bkw-rdx"
        assert formulation.density == 1.76
        assert formulation.kind is CalculationKind.ISENTROPE

    def test_overrides(self):
        formulation = Formulation.from_preset("TNT", density=1.0, eos="bkw-rdx")
        assert formulation.density == 1.0
        assert formulation.eos == "bkw-rdx"
        assert formulation.label == "TNT"

    def test_unknown_preset(self):
        assert get_preset("OCTANITROCUBANE") is None
        with pytest.raises(InvalidCompositionError):
            Formulation.from_preset("OCTANITROCUBANE")
