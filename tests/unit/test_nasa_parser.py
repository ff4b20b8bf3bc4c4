"""
Unit tests for NASA thermodynamic data parser.
"""

import numpy as np
import pytest

from detcalc.core.types import Phase
from detcalc.utils.nasa_parser import (
    NASAParserError,
    _parse_coefficient,
    _parse_element_fields,
    create_sample_database,
    parse_nasa_file,
    parse_nasa_text,
)

# CHEMKIN-style blocks: N2 (GRI-Mech 3.0) and a hand-made condensed entry
N2_BLOCK = """\
N2                121286N   2               G   200.000  6000.000 1000.00      1
 0.02952576E+02 0.01396900E-01-0.04926316E-05 0.07860102E-09-0.04607552E-13    2
-0.09239487E+04 0.05871888E+02 0.03531005E+02-0.01236610E-02-0.05029994E-05    3
 0.02435306E-07-0.01408812E-10-0.01046976E+05 0.02967470E+02                   4
"""

AL2O3_BLOCK = """\
AL2O3(S)          JANAF AL  2O   3          S   200.000  4000.000 1000.00      1
 1.29524075E+01 1.48027514E-03 0.00000000E+00 0.00000000E+00 0.00000000E+00    2
-2.06833822E+05-7.09335865E+01 7.40672755E+00 7.02595506E-03 0.00000000E+00    3
 0.00000000E+00 0.00000000E+00-2.04060982E+05-3.81710667E+01                   4
"""

BROKEN_BLOCK = """\
BAD               121286N   2               G   200.000  6000.000 1000.00      1
 0.02952576E+02xxxxxxxxxxxxxxx-0.04926316E-05 0.07860102E-09-0.04607552E-13    2
-0.09239487E+04 0.05871888E+02 0.03531005E+02-0.01236610E-02-0.05029994E-05    3
 0.02435306E-07-0.01408812E-10-0.01046976E+05 0.02967470E+02                   4
"""


class TestCoefficientParsing:
    """Test coefficient parsing from fixed-width fields."""

    def test_parse_standard_exponential(self):
        result = _parse_coefficient(" 1.23456789E+01")
        assert abs(result - 12.3456789) < 1e-7

    def test_parse_fortran_d_notation(self):
        result = _parse_coefficient(" 1.23456789D+01")
        assert abs(result - 12.3456789) < 1e-7

    def test_parse_missing_exponent_letter(self):
        result = _parse_coefficient("-1.23456789-05")
        assert abs(result - (-1.23456789e-5)) < 1e-12

    def test_parse_negative_number(self):
        result = _parse_coefficient("-1.23456789E+01")
        assert abs(result - (-12.3456789)) < 1e-7

    def test_empty_field_is_an_error(self):
        with pytest.raises(ValueError):
            _parse_coefficient("               ")

    def test_garbage_is_an_error(self):
        with pytest.raises(ValueError):
            _parse_coefficient("xxxxxxxxxxxxxxx")


class TestElementFields:

    def test_upper_case_symbols_normalized(self):
        assert _parse_element_fields("AL  2O   3          ") == "Al2O3"

    def test_single_atoms(self):
        assert _parse_element_fields("N   1O   1          ") == "NO"


class TestNASA7Parsing:
    """Parse 4-line NASA-7 blocks."""

    def test_parse_n2(self):
        db = parse_nasa_text(N2_BLOCK)
        n2 = db['N2']
        reference = create_sample_database()['N2']
        np.testing.assert_allclose(n2.coeffs_high, reference.coeffs_high, rtol=1e-5)
        np.testing.assert_allclose(n2.coeffs_low, reference.coeffs_low, rtol=1e-5)
        assert n2.t_low == 200.0
        assert n2.t_high == 6000.0
        assert n2.molecular_weight == pytest.approx(28.0134)

    def test_parse_condensed_entry(self):
        db = parse_nasa_text("THERMO\n" + AL2O3_BLOCK + "END\n")
        alumina = db['AL2O3(S)']
        assert alumina.phase is Phase.SOLID
        assert alumina.formula == 'Al2O3'
        assert alumina.t_high == 4000.0

    def test_eos_parameters_attached(self):
        db = parse_nasa_text(N2_BLOCK, eos_params={'N2': {'bkw_covolume': 380.0}})
        assert db['N2'].eos_param('bkw_covolume') == 380.0

    def test_malformed_entry_skipped_with_warning(self):
        with pytest.warns(UserWarning, match="BAD"):
            db = parse_nasa_text(BROKEN_BLOCK + N2_BLOCK)
        assert 'BAD' not in db
        assert 'N2' in db

    def test_empty_text_raises(self):
        with pytest.raises(NASAParserError):
            parse_nasa_text("THERMO\nEND\n")

    def test_parse_file(self, tmp_path):
        path = tmp_path / "thermo.dat"
        path.write_text("THERMO\n   300.000  1000.000  5000.000\n" + N2_BLOCK + AL2O3_BLOCK + "END\n")
        db = parse_nasa_file(path)
        assert set(db) == {'N2', 'AL2O3(S)'}

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            parse_nasa_file(tmp_path / "missing.dat")


class TestSampleDatabase:

    def test_contains_product_species(self):
        db = create_sample_database()
        for name in ('H2O', 'CO2', 'CO', 'N2', 'H2', 'O2', 'OH', 'H', 'O', 'NO', 'N',
                     'NH3', 'CH4', 'Al', 'AlO', 'Al2O', 'C(gr)', 'Al2O3(s)'):
            assert name in db, name

    def test_gas_species_carry_covolumes(self):
        for sp in create_sample_database().values():
            if sp.is_condensed:
                assert sp.eos_param('molar_volume') > 0.0
            else:
                assert sp.eos_param('bkw_covolume') > 0.0
                assert sp.eos_param('covolume') > 0.0
