"""
Unit tests for the product equations of state.

Derivatives returned by each model are checked against finite
differences of the model's own pressure and chemical potentials.
"""

import numpy as np
import pytest

from detcalc.core.constants import GAS_CONSTANT
from detcalc.core.eos import (
    BKW_RDX,
    AbelNobleEOS,
    BKWEquationOfState,
    IdealGasEOS,
    get_eos,
)
from detcalc.core.types import Species, UnsupportedEosCombinationError
from detcalc.utils.nasa_parser import create_sample_database


@pytest.fixture
def species_db():
    return create_sample_database()


@pytest.fixture
def gas_state(species_db):
    """Dense detonation-product-like gas: 1 kg of H2O/CO2/N2/CO."""
    species = [species_db[n] for n in ("H2O", "CO2", "N2", "CO")]
    moles = np.array([12.0, 4.0, 10.0, 8.0])
    return species, moles


ALL_MODELS = [IdealGasEOS(), AbelNobleEOS(), BKWEquationOfState(BKW_RDX)]


class TestIdealLimit:
    """Every model reduces to PV = nRT at low density."""

    @pytest.mark.parametrize("eos", ALL_MODELS, ids=lambda e: e.name)
    def test_low_density_pressure(self, eos, gas_state):
        species, moles = gas_state
        T, density = 2000.0, 0.01
        P = eos.pressure(T, density, moles, species)
        ideal = moles.sum() * GAS_CONSTANT * T * density
        assert P == pytest.approx(ideal, rel=1e-3)

    @pytest.mark.parametrize("eos", ALL_MODELS, ids=lambda e: e.name)
    def test_low_density_correction_vanishes(self, eos, gas_state):
        species, moles = gas_state
        correction = eos.chemical_potential_correction(2000.0, 1e-4, moles, species)
        np.testing.assert_allclose(correction, 0.0, atol=1e-4)


class TestDerivatives:
    """Analytic derivatives agree with central differences."""

    @pytest.mark.parametrize("eos", ALL_MODELS, ids=lambda e: e.name)
    def test_pressure_derivatives(self, eos, gas_state):
        species, moles = gas_state
        params = eos.gas_parameters(species)
        T, V = 3500.0, 2.5e-3
        props = eos.evaluate(T, V, moles, params)

        h = 1e-6
        dp_dv = (eos.evaluate(T, V * (1 + h), moles, params).pressure
                 - eos.evaluate(T, V * (1 - h), moles, params).pressure) / (2 * h * V)
        dp_dt = (eos.evaluate(T * (1 + h), V, moles, params).pressure
                 - eos.evaluate(T * (1 - h), V, moles, params).pressure) / (2 * h * T)
        assert props.dp_dv == pytest.approx(dp_dv, rel=1e-5)
        assert props.dp_dt == pytest.approx(dp_dt, rel=1e-5)

        for i in range(len(moles)):
            step = np.zeros_like(moles)
            step[i] = h * moles[i]
            dp_dn = (eos.evaluate(T, V, moles + step, params).pressure
                     - eos.evaluate(T, V, moles - step, params).pressure) / (2 * step[i])
            assert props.dp_dn[i] == pytest.approx(dp_dn, rel=1e-5)

    @pytest.mark.parametrize("eos", ALL_MODELS[1:], ids=lambda e: e.name)
    def test_residual_hessian(self, eos, gas_state):
        species, moles = gas_state
        params = eos.gas_parameters(species)
        T, V = 3500.0, 2.5e-3
        props = eos.evaluate(T, V, moles, params)

        h = 1e-6
        for j in range(len(moles)):
            step = np.zeros_like(moles)
            step[j] = h * moles[j]
            column = (eos.evaluate(T, V, moles + step, params).mu
                      - eos.evaluate(T, V, moles - step, params).mu) / (2 * step[j])
            np.testing.assert_allclose(props.hessian[:, j], column, rtol=1e-5)
        np.testing.assert_allclose(props.hessian, props.hessian.T, rtol=1e-12)

    def test_bkw_maxwell_relation(self, gas_state):
        """d(mu_i/RT)/dV = -(dP/dn_i)/RT including the ideal mixing term."""
        species, moles = gas_state
        eos = BKWEquationOfState()
        params = eos.gas_parameters(species)
        T, V = 3000.0, 2.5e-3
        props = eos.evaluate(T, V, moles, params)

        h = 1e-6
        mu_plus = eos.evaluate(T, V * (1 + h), moles, params).mu - np.log(V * (1 + h))
        mu_minus = eos.evaluate(T, V * (1 - h), moles, params).mu - np.log(V * (1 - h))
        dmu_dv = (mu_plus - mu_minus) / (2 * h * V)
        np.testing.assert_allclose(dmu_dv, -props.dp_dn / (GAS_CONSTANT * T), rtol=1e-5)

    def test_bkw_energy_consistency(self, gas_state):
        """U_res = -T^2 d(A_res/T)/dT and Cv_res = dU_res/dT."""
        species, moles = gas_state
        eos = BKWEquationOfState()
        params = eos.gas_parameters(species)
        T, V = 3000.0, 2.5e-3
        props = eos.evaluate(T, V, moles, params)

        h = 1e-5
        up = eos.evaluate(T * (1 + h), V, moles, params)
        down = eos.evaluate(T * (1 - h), V, moles, params)
        cv = (up.energy - down.energy) / (2 * h * T)
        assert props.heat_capacity == pytest.approx(cv, rel=1e-5)
        # S_res = -(dA_res/dT)
        a_up = up.energy - T * (1 + h) * up.entropy
        a_down = down.energy - T * (1 - h) * down.entropy
        assert props.entropy == pytest.approx(-(a_up - a_down) / (2 * h * T), rel=1e-5)


class TestModelProperties:

    def test_bkw_raises_pressure_at_detonation_density(self, gas_state):
        species, moles = gas_state
        ideal = IdealGasEOS().pressure(3500.0, 2000.0, moles, species)
        bkw = BKWEquationOfState().pressure(3500.0, 2000.0, moles, species)
        assert bkw > 3.0 * ideal

    def test_abel_noble_grows_with_density(self, gas_state):
        species, moles = gas_state
        eos = AbelNobleEOS()
        ratios = [
            eos.pressure(3000.0, rho, moles, species) / IdealGasEOS().pressure(3000.0, rho, moles, species)
            for rho in (10.0, 100.0, 500.0)
        ]
        assert ratios[0] < ratios[1] < ratios[2]

    def test_condensed_correction(self, species_db):
        species = [species_db["N2"], species_db["C(gr)"]]
        moles = np.array([10.0, 5.0])
        T, density = 3000.0, 1500.0
        eos = get_eos("bkw")
        P = eos.pressure(T, density, moles, species)
        correction = eos.chemical_potential_correction(T, density, moles, species)
        assert correction[1] == pytest.approx(P * 4.44e-6 / (GAS_CONSTANT * T))

    def test_registry(self):
        assert get_eos("ideal").name == "ideal"
        assert get_eos("BKW_TNT").calibration.name == "BKW-TNT"
        assert get_eos("bkw").calibration is BKW_RDX
        with pytest.raises(UnsupportedEosCombinationError):
            get_eos("van-der-waals")

    def test_missing_parameter_rejected(self, species_db):
        bare = Species(name="N2", molecular_weight=28.0134,
                       coeffs_low=species_db["N2"].coeffs_low,
                       coeffs_high=species_db["N2"].coeffs_high)
        IdealGasEOS().validate_species([bare])
        with pytest.raises(UnsupportedEosCombinationError):
            BKWEquationOfState().validate_species([bare])
        with pytest.raises(UnsupportedEosCombinationError):
            AbelNobleEOS().validate_species([bare])
