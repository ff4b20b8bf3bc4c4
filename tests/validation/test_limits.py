"""
Limiting cases every product model and solver path must reproduce.
"""

import numpy as np
import pytest

from detcalc.core.composition import Composition
from detcalc.core.constants import GAS_CONSTANT
from detcalc.core.engine import CalculationKind, DetonationProblem, Formulation, run_formulation
from detcalc.core.equilibrium import GibbsEquilibriumSolver
from detcalc.core.types import InvalidCompositionError, OutOfRangeError
from detcalc.utils.nasa_parser import create_sample_database


@pytest.fixture(scope="module")
def species_db():
    return create_sample_database()


class TestIdealGasLimit:

    @pytest.mark.parametrize("eos", ["bkw-tnt", "bkw-rdx", "abel-noble"])
    def test_dilute_products_match_ideal(self, eos, species_db):
        problem = DetonationProblem(species_db, eos=eos)
        problem.add_reactant("TNT", 1.0)
        gases = [sp for sp in problem.product_candidates() if not sp.is_condensed]
        elements = Composition([("TNT", 1.0)]).element_vector()

        dense = GibbsEquilibriumSolver(gases, elements, eos).solve_tv(3000.0, 100.0)
        ideal = GibbsEquilibriumSolver(gases, elements, "ideal").solve_tv(3000.0, 100.0)
        assert dense.pressure == pytest.approx(ideal.pressure, rel=1e-3)
        np.testing.assert_allclose(dense.mole_fractions, ideal.mole_fractions, rtol=1e-2, atol=1e-8)


class TestSingleSpecies:

    def test_nitrogen_only(self, species_db):
        problem = DetonationProblem(species_db, eos="ideal")
        problem.add_reactant("N2", 1.0)
        problem.set_products(["N2"])
        state = problem.equilibrium(3000.0, 1.0e5)
        assert state.moles_of("N2") == pytest.approx(1000.0 / 28.0134, rel=1e-6)
        assert state.mole_fraction("N2") == pytest.approx(1.0)
        assert state.pressure * state.volume == pytest.approx(
            state.total_moles * GAS_CONSTANT * 3000.0, rel=1e-8
        )


class TestRepeatability:

    def test_identical_requests_identical_results(self, species_db):
        formulation = Formulation(
            components=(("RDX", 1.0),),
            kind=CalculationKind.EQUILIBRIUM,
            eos="bkw-rdx",
            temperature=3500.0,
            pressure=1.0e9,
        )
        first = run_formulation(formulation, species_db)
        second = run_formulation(formulation, species_db)
        np.testing.assert_array_equal(first.moles, second.moles)
        assert first.volume == second.volume


class TestInvalidRequests:

    def test_temperature_beyond_data(self, species_db):
        problem = DetonationProblem(species_db, eos="ideal")
        problem.add_reactant("TNT", 1.0)
        with pytest.raises(OutOfRangeError):
            problem.equilibrium(7000.0, 1.0e5)

    def test_negative_density(self, species_db):
        formulation = Formulation(components=(("TNT", 1.0),), eos="bkw-tnt", density=-1.0)
        with pytest.raises(OutOfRangeError):
            run_formulation(formulation, species_db)

    def test_unknown_product(self, species_db):
        problem = DetonationProblem(species_db, eos="ideal")
        problem.add_reactant("TNT", 1.0)
        problem.set_products(["H2O", "CO2", "N2", "XeF6"])
        with pytest.raises(InvalidCompositionError):
            problem.product_candidates()
