"""
Unit tests for formulation screening and density sweeps.
"""

import pytest

from detcalc.core.engine import CalculationKind, Formulation
from detcalc.core.sweep import screen_formulations, sweep_densities
from detcalc.core.types import EquilibriumState
from detcalc.utils.nasa_parser import create_sample_database

H2_O2 = (("H2", 0.111898), ("O2", 0.888102))


def _equilibrium(temperature, components=H2_O2):
    return Formulation(
        components=components,
        kind=CalculationKind.EQUILIBRIUM,
        eos="ideal",
        temperature=temperature,
        pressure=1.0e6,
        label=f"T={temperature:g}",
    )


@pytest.fixture(scope="module")
def species_db():
    return create_sample_database()


class TestScreenFormulations:

    def test_serial_results_in_input_order(self, species_db):
        temperatures = [3500.0, 2500.0, 3000.0]
        outcomes = screen_formulations(
            [_equilibrium(T) for T in temperatures], species_db, n_workers=0
        )
        assert [o.index for o in outcomes] == [0, 1, 2]
        assert all(o.success for o in outcomes)
        for outcome, T in zip(outcomes, temperatures):
            assert isinstance(outcome.result, EquilibriumState)
            assert outcome.result.temperature == T
            assert outcome.formulation.label == f"T={T:g}"

    def test_failures_are_recorded(self, species_db):
        formulations = [
            _equilibrium(3000.0),
            _equilibrium(3000.0, components=(("UNOBTAINIUM", 1.0),)),
            Formulation(components=H2_O2, kind=CalculationKind.EQUILIBRIUM, eos="van-der-waals"),
        ]
        outcomes = screen_formulations(formulations, species_db, n_workers=0)
        assert outcomes[0].success
        assert outcomes[1].error_type == "InvalidCompositionError"
        assert "UNOBTAINIUM" in outcomes[1].error_message
        assert outcomes[2].error_type == "UnsupportedEosCombinationError"
        assert outcomes[2].result is None

    def test_parallel_matches_serial(self, species_db):
        formulations = [_equilibrium(T) for T in (2500.0, 3500.0)]
        serial = screen_formulations(formulations, species_db, n_workers=0)
        parallel = screen_formulations(formulations, species_db, n_workers=2)
        for a, b in zip(serial, parallel):
            assert a.index == b.index
            assert b.result.pressure == pytest.approx(a.result.pressure, rel=1e-12)
            assert b.result.moles == pytest.approx(a.result.moles, rel=1e-12, abs=1e-30)

    def test_empty(self):
        assert screen_formulations([], n_workers=0) == []


class TestSweepDensities:

    def test_labels_follow_densities(self, species_db):
        outcomes = sweep_densities(
            [("UNOBTAINIUM", 1.0)], [1.5, 1.6, 1.7], database=species_db, n_workers=0
        )
        assert [o.formulation.label for o in outcomes] == ["rho=1.5", "rho=1.6", "rho=1.7"]
        assert [o.formulation.density for o in outcomes] == [1.5, 1.6, 1.7]
        assert not any(o.success for o in outcomes)
