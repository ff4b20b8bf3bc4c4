"""
Unit tests for thermodynamic property calculations.

Tests verify NASA polynomial calculations against known reference values
from NASA Glenn database and the consistency rules every species obeys.

Reference:
    - NASA/TP-2002-211556 (NASA Glenn Coefficients)
    - NIST Chemistry WebBook (thermodynamic data validation)
"""

import numpy as np
import pytest

from detcalc.core.constants import GAS_CONSTANT
from detcalc.core.thermodynamics import (
    compute_thermo,
    cp_over_r,
    get_thermo_properties,
    h_over_rt,
    s_over_r,
)
from detcalc.core.types import (
    OutOfRangeError,
    Phase,
    Species,
    ThermoDataError,
    lookup_species,
)
from detcalc.utils.nasa_parser import create_sample_database


class TestNASAPolynomialCalculations:
    """Test NASA 7-term polynomial thermodynamic calculations."""

    @pytest.fixture
    def species_db(self):
        """Create sample species database for testing."""
        return create_sample_database()

    @pytest.fixture
    def h2o(self, species_db):
        return species_db['H2O']

    def test_cp_over_r_h2o_low_temp(self, h2o):
        """Cp/R of H2O at 500 K is about 4.1 (NIST: 35.2 J/mol/K)."""
        result = cp_over_r(500.0, h2o.coeffs_low)
        assert 3.9 < result < 4.3, f"Cp/R at 500K = {result}, expected ~4.0-4.2"

    def test_cp_over_r_h2o_high_temp(self, h2o):
        """Cp/R of H2O at 2000 K is about 6.2 (NIST: 51.2 J/mol/K)."""
        result = cp_over_r(2000.0, h2o.coeffs_high)
        assert 5.9 < result < 6.5, f"Cp/R at 2000K = {result}, expected ~6.2"

    def test_h2o_heat_of_formation(self, h2o):
        """H(298.15) reproduces the tabulated heat of formation."""
        h = h2o.enthalpy(298.15)
        assert h == pytest.approx(-241826.0, rel=2e-3)

    def test_h2o_standard_entropy(self, h2o):
        """S(298.15) of H2O is 188.8 J/mol/K."""
        assert h2o.entropy(298.15) == pytest.approx(188.83, rel=2e-3)

    def test_get_thermo_properties_matches_kernels(self, h2o):
        T = 2500.0
        cp_r, h_rt, s_r, g_rt = get_thermo_properties(T, h2o.coeffs_low, h2o.coeffs_high, h2o.t_mid)
        assert cp_r == pytest.approx(cp_over_r(T, h2o.coeffs_high))
        assert h_rt == pytest.approx(h_over_rt(T, h2o.coeffs_high))
        assert s_r == pytest.approx(s_over_r(T, h2o.coeffs_high))
        assert g_rt == pytest.approx(h_rt - s_r)

    def test_compute_thermo_table(self, species_db):
        """Vectorized table evaluation agrees with per-species methods."""
        species = [species_db[name] for name in ('H2O', 'CO2', 'N2', 'C(gr)')]
        low = np.vstack([sp.coeffs_low for sp in species])
        high = np.vstack([sp.coeffs_high for sp in species])
        t_mid = np.array([sp.t_mid for sp in species])
        T = 1800.0

        g_rt, h_rt, cp_r, s_r = compute_thermo(T, low, high, t_mid)

        for j, sp in enumerate(species):
            assert cp_r[j] * GAS_CONSTANT == pytest.approx(sp.heat_capacity(T))
            assert h_rt[j] * GAS_CONSTANT * T == pytest.approx(sp.enthalpy(T))
            assert s_r[j] * GAS_CONSTANT == pytest.approx(sp.entropy(T))
            assert g_rt[j] * GAS_CONSTANT * T == pytest.approx(sp.gibbs_free_energy(T))


class TestSpeciesModel:
    """Species invariants and range handling."""

    @pytest.fixture
    def species_db(self):
        return create_sample_database()

    @pytest.mark.parametrize('T', [300.0, 999.0, 1000.0, 2500.0, 3900.0])
    def test_gibbs_identity(self, species_db, T):
        """G = H - T*S for every species inside its window."""
        for sp in species_db.values():
            g = sp.gibbs_free_energy(T)
            assert g == pytest.approx(sp.enthalpy(T) - T * sp.entropy(T), rel=1e-12, abs=1e-6), sp.name

    def test_all_species_consistent(self, species_db):
        """Continuity at t_mid and window ordering hold for the whole table."""
        for sp in species_db.values():
            sp.check_consistency()

    def test_out_of_range_raises(self, species_db):
        with pytest.raises(OutOfRangeError):
            species_db['H2O'].enthalpy(100.0)
        with pytest.raises(OutOfRangeError):
            species_db['Al2O3(s)'].heat_capacity(4500.0)

    def test_window_edges_are_valid(self, species_db):
        c = species_db['C(gr)']
        assert c.covers(c.t_low)
        assert c.covers(c.t_high)
        assert not c.covers(c.t_high + 1.0)

    def test_coefficients_are_read_only(self, species_db):
        with pytest.raises(ValueError):
            species_db['N2'].coeffs_low[0] = 0.0

    def test_discontinuous_data_rejected(self, species_db):
        n2 = species_db['N2']
        broken = Species(
            name='N2X',
            molecular_weight=28.0134,
            coeffs_low=n2.coeffs_low,
            coeffs_high=n2.coeffs_high + np.array([0.5, 0, 0, 0, 0, 0, 0]),
            formula='N2',
        )
        with pytest.raises(ThermoDataError):
            broken.check_consistency()

    def test_wrong_coefficient_count_rejected(self):
        with pytest.raises(ThermoDataError):
            Species(name='X', molecular_weight=1.0, coeffs_low=np.zeros(6))

    def test_condensed_phase_and_formula(self, species_db):
        alumina = species_db['Al2O3(s)']
        assert alumina.phase is Phase.SOLID
        assert alumina.is_condensed
        assert alumina.formula == 'Al2O3'
        assert alumina.eos_param('molar_volume') == pytest.approx(25.575)

    def test_alumina_heat_of_formation(self, species_db):
        assert species_db['Al2O3(s)'].enthalpy(298.15) == pytest.approx(-1675700.0, rel=1e-3)

    def test_lookup_by_name_and_formula(self, species_db):
        assert lookup_species(species_db, 'C(gr)').name == 'C(gr)'
        assert lookup_species(species_db, 'Al2O3').name == 'Al2O3(s)'
        with pytest.raises(KeyError):
            lookup_species(species_db, 'XeF6')
