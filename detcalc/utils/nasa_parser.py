"""
NASA Glenn thermodynamic polynomial data parser.

Parses NASA-format thermodynamic data files containing 7-term polynomial
coefficients for species properties (Cp, H, S), and provides a verified
table of detonation product species with their EOS parameters.

Supported formats:
- NASA Glenn / CHEMKIN .thermo files (4-line NASA-7 blocks)

References:
    - McBride, B.J., Zehe, M.J., & Gordon, S. (2002). "NASA Glenn Coefficients
      for Calculating Thermodynamic Properties of Individual Species"
      NASA/TP-2002-211556.
    - Mader, C.L. (2008). "Numerical Modeling of Explosives and Propellants",
      3rd ed. (BKW geometric covolumes)
    - Chase, M.W. (1998). "NIST-JANAF Thermochemical Tables", 4th ed.
      (Al, AlO, Al2O, Al2O3 heats of formation and heat capacities)
"""

import logging
import re
import warnings
from collections.abc import Mapping
from pathlib import Path

import numpy as np

from ..core.composition import ATOMIC_WEIGHTS, parse_formula
from ..core.types import (
    InvalidCompositionError,
    Phase,
    Species,
    SpeciesDatabase,
    ThermoDataError,
)

logger = logging.getLogger(__name__)


class NASAParserError(Exception):
    """Exception raised for errors during NASA data parsing."""
    pass


def parse_nasa_file(
    filepath: str | Path,
    eos_params: Mapping[str, Mapping[str, float]] | None = None,
) -> SpeciesDatabase:
    """
    Parse a NASA-format thermodynamic data file.

    Args:
        filepath: Path to the .dat or .thermo file
        eos_params: Optional EOS parameters keyed by species name

    Returns:
        Dictionary mapping species names to Species objects

    Raises:
        NASAParserError: If no species could be read
        FileNotFoundError: If file doesn't exist
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Thermodynamic data file not found: {path}")

    with open(path, encoding='utf-8', errors='replace') as f:
        content = f.read()

    return parse_nasa_text(content, eos_params)


def parse_nasa_text(
    content: str,
    eos_params: Mapping[str, Mapping[str, float]] | None = None,
) -> SpeciesDatabase:
    """
    Parse NASA 7-term polynomial blocks (McBride / CHEMKIN format).

    Format specification:
    - Line 1: Species name (cols 1-18), date (19-24), element counts
              (25-44, four 5-char fields), phase (45), T_low (46-55),
              T_high (56-65), T_mid (66-73), line number 1 (80)
    - Line 2: Coefficients a1-a5 for high-T range (5 x 15 chars each)
    - Line 3: Coefficients a6-a7 high-T, a1-a3 low-T (5 x 15 chars)
    - Line 4: Coefficients a4-a7 low-T (4 x 15 chars)

    Entries with unreadable coefficients or inconsistent data are skipped
    with a UserWarning.

    Raises:
        NASAParserError: If the text holds no readable species
    """
    eos_params = eos_params or {}
    species_db: SpeciesDatabase = {}
    lines = content.split('\n')

    # Find the THERMO section
    thermo_start = -1
    thermo_end = len(lines)

    for i, line in enumerate(lines):
        if line.strip().upper().startswith('THERMO'):
            thermo_start = i + 1
        elif line.strip().upper() == 'END' and thermo_start >= 0:
            thermo_end = i
            break

    if thermo_start < 0:
        # No THERMO marker, try parsing entire file
        thermo_start = 0

    # Skip temperature range line if present
    if thermo_start < len(lines):
        temp_line = lines[thermo_start].strip()
        if re.match(r'^[\d\s.]+$', temp_line):
            thermo_start += 1

    i = thermo_start
    while i + 3 < thermo_end:
        header = lines[i]
        if len(header) < 45 or header.strip() == '' or header.startswith('!'):
            i += 1
            continue

        # Line number marker '1' in column 80 opens a block
        if len(header) >= 80 and header[79] == '1':
            name = header[0:18].split()[0] if header[0:18].strip() else '?'
            try:
                species = _parse_species_entry(
                    lines[i], lines[i+1], lines[i+2], lines[i+3], eos_params.get(name)
                )
            except (ValueError, ThermoDataError, InvalidCompositionError) as exc:
                warnings.warn(
                    f"Skipping malformed NASA entry {name!r}: {exc}",
                    UserWarning, stacklevel=2
                )
            else:
                species_db[species.name] = species
            i += 4
        else:
            i += 1

    if not species_db:
        raise NASAParserError("No species found in NASA thermo data")
    logger.debug("Parsed %d species from NASA thermo data", len(species_db))
    return species_db


def _parse_species_entry(
    line1: str,
    line2: str,
    line3: str,
    line4: str,
    eos_params: Mapping[str, float] | None = None,
) -> Species:
    """
    Parse a single species entry from 4 lines of NASA-7 format data.

    Raises:
        ValueError: If a numeric field cannot be read
        ThermoDataError: If the resulting data fails its consistency check
    """
    # Pad lines to 80 characters
    line1 = line1.ljust(80)
    line2 = line2.ljust(80)
    line3 = line3.ljust(80)
    line4 = line4.ljust(80)

    name = line1[0:18].split()[0]
    formula = _parse_element_fields(line1[24:44]) or name

    # Phase (G=gas, L=liquid, S=solid, C=condensed)
    phase = Phase.from_tag(line1[44] if line1[44] in 'GLSC' else 'G')

    t_low = float(line1[45:55])
    t_high = float(line1[55:65])
    t_mid = float(line1[65:73]) if line1[65:73].strip() else 1000.0

    coeffs_high = np.array([
        _parse_coefficient(line2[0:15]),
        _parse_coefficient(line2[15:30]),
        _parse_coefficient(line2[30:45]),
        _parse_coefficient(line2[45:60]),
        _parse_coefficient(line2[60:75]),
        _parse_coefficient(line3[0:15]),
        _parse_coefficient(line3[15:30]),
    ], dtype=np.float64)

    coeffs_low = np.array([
        _parse_coefficient(line3[30:45]),
        _parse_coefficient(line3[45:60]),
        _parse_coefficient(line3[60:75]),
        _parse_coefficient(line4[0:15]),
        _parse_coefficient(line4[15:30]),
        _parse_coefficient(line4[30:45]),
        _parse_coefficient(line4[45:60]),
    ], dtype=np.float64)

    species = Species(
        name=name,
        molecular_weight=parse_formula(formula).molecular_weight(),
        phase=phase,
        t_low=t_low,
        t_mid=t_mid,
        t_high=t_high,
        coeffs_low=coeffs_low,
        coeffs_high=coeffs_high,
        formula=formula,
        eos_params=dict(eos_params or {}),
    )
    species.check_consistency()
    return species


def _parse_element_fields(text: str) -> str:
    """
    Build a formula from the four (symbol, count) fields of a header line.

    CHEMKIN writes symbols in upper case ("AL", "O"); they are normalized
    to "Al", "O".
    """
    parts = []
    for k in range(0, 20, 5):
        symbol = text[k:k+2].strip()
        count = text[k+2:k+5].strip()
        if not symbol or not count:
            continue
        symbol = symbol[0].upper() + symbol[1:].lower()
        if symbol not in ATOMIC_WEIGHTS:
            raise ValueError(f"unknown element {symbol!r}")
        n = float(count)
        if n > 0:
            parts.append(symbol if n == 1 else f"{symbol}{n:g}")
    return ''.join(parts)


def _parse_coefficient(field: str) -> float:
    """
    Parse a coefficient from NASA fixed-width format.

    Handles various exponential notation formats:
    - Standard: 1.234E+01
    - D notation: 1.234D+01 (Fortran)
    - No E: 1.234+01

    Raises:
        ValueError: For a blank or unreadable field
    """
    field = field.strip()
    if not field:
        raise ValueError("blank coefficient field")

    # Replace Fortran 'D' exponent with 'E'
    field = field.replace('D', 'E').replace('d', 'e')

    # Handle cases like "1.234+01" (missing E)
    if re.match(r'^-?\d+\.\d+[+-]\d+$', field):
        field = re.sub(r'([+-])(\d+)$', r'E\1\2', field)

    return float(field)


def _species(
    name: str,
    molecular_weight: float,
    low: list[float],
    high: list[float],
    h_formation_298: float,
    eos_params: dict[str, float],
    phase: Phase = Phase.GAS,
    window: tuple[float, float, float] = (200.0, 1000.0, 6000.0),
) -> Species:
    return Species(
        name=name,
        molecular_weight=molecular_weight,
        phase=phase,
        t_low=window[0],
        t_mid=window[1],
        t_high=window[2],
        coeffs_low=np.array(low, dtype=np.float64),
        coeffs_high=np.array(high, dtype=np.float64),
        h_formation_298=h_formation_298,
        eos_params=eos_params,
    )


def create_sample_database() -> SpeciesDatabase:
    """
    Create the detonation product database with verified coefficients.

    Gas species carry a BKW geometric covolume (``bkw_covolume``) and an
    Abel-Noble covolume (``covolume``), both in cm^3/mol. Condensed species
    carry a molar volume (``molar_volume``, cm^3/mol).

    Gas-phase C/H/N/O coefficients match NASA CEA reference data. The
    aluminium species use constant (gases) or linear (Al2O3) heat capacities
    fitted to JANAF data; their a6, a7 reproduce the tabulated heat of
    formation and entropy at 298.15 K.

    Reference: NASA/TP-2002-211556
    """
    db: SpeciesDatabase = {}

    # H2O (Water vapor) - from NASA Glenn database
    db['H2O'] = _species(
        'H2O', 18.01528,
        [4.19864056E+00, -2.03643410E-03, 6.52040211E-06, -5.48797062E-09,
         1.77197817E-12, -3.02937267E+04, -8.49032208E-01],
        [2.67703787E+00, 2.97318329E-03, -7.73769690E-07, 9.44336689E-11,
         -4.26900959E-15, -2.98858938E+04, 6.88255571E+00],
        -241826.0,
        {'bkw_covolume': 250.0, 'covolume': 30.49},
    )

    # CO2 (Carbon Dioxide)
    db['CO2'] = _species(
        'CO2', 44.0095,
        [2.35677352E+00, 8.98459677E-03, -7.12356269E-06, 2.45919022E-09,
         -1.43699548E-13, -4.83719697E+04, 9.90105222E+00],
        [4.63659493E+00, 2.74131991E-03, -9.95828531E-07, 1.60373011E-10,
         -9.16103468E-15, -4.90249341E+04, -1.93534855E+00],
        -393510.0,
        {'bkw_covolume': 600.0, 'covolume': 42.67},
    )

    # CO (Carbon Monoxide)
    db['CO'] = _species(
        'CO', 28.0101,
        [3.57953347E+00, -6.10353680E-04, 1.01681433E-06, 9.07005884E-10,
         -9.04424499E-13, -1.43440860E+04, 3.50840928E+00],
        [3.04848583E+00, 1.35172818E-03, -4.85794075E-07, 7.88536486E-11,
         -4.69807489E-15, -1.42661171E+04, 6.01709790E+00],
        -110530.0,
        {'bkw_covolume': 390.0, 'covolume': 39.52},
    )

    # N2 (Nitrogen)
    db['N2'] = _species(
        'N2', 28.0134,
        [3.53100528E+00, -1.23660988E-04, -5.02999433E-07, 2.43530612E-09,
         -1.40881235E-12, -1.04697628E+03, 2.96747038E+00],
        [2.95257637E+00, 1.39690040E-03, -4.92631603E-07, 7.86010195E-11,
         -4.60755204E-15, -9.23948688E+02, 5.87188762E+00],
        0.0,
        {'bkw_covolume': 380.0, 'covolume': 38.70},
    )

    # H2 (Hydrogen)
    db['H2'] = _species(
        'H2', 2.01588,
        [2.34433112E+00, 7.98052075E-03, -1.94781510E-05, 2.01572094E-08,
         -7.37611761E-12, -9.17935173E+02, 6.83010238E-01],
        [2.93286575E+00, 8.26608026E-04, -1.46402364E-07, 1.54100414E-11,
         -6.88804800E-16, -8.13065581E+02, -1.02432865E+00],
        0.0,
        {'bkw_covolume': 180.0, 'covolume': 26.61},
    )

    # O2 (Oxygen)
    db['O2'] = _species(
        'O2', 31.9988,
        [3.78245636E+00, -2.99673416E-03, 9.84730201E-06, -9.68129509E-09,
         3.24372837E-12, -1.06394356E+03, 3.65767573E+00],
        [3.66096065E+00, 6.56365811E-04, -1.41149627E-07, 2.05797935E-11,
         -1.29913436E-15, -1.21597718E+03, 3.41536279E+00],
        0.0,
        {'bkw_covolume': 350.0, 'covolume': 31.83},
    )

    # OH (Hydroxyl radical)
    db['OH'] = _species(
        'OH', 17.00734,
        [3.99198424E+00, -2.40106655E-03, 4.61664033E-06, -3.87916306E-09,
         1.36319502E-12, 3.36889836E+03, -1.03998477E-01],
        [2.83864607E+00, 1.10725586E-03, -2.93914978E-07, 4.20524247E-11,
         -2.42169092E-15, 3.69780808E+03, 5.84452662E+00],
        38987.0,
        {'bkw_covolume': 413.0, 'covolume': 25.0},
    )

    # CH4 (Methane)
    db['CH4'] = _species(
        'CH4', 16.04246,
        [5.14987613E+00, -1.36709788E-02, 4.91800599E-05, -4.84743026E-08,
         1.66693956E-11, -1.02466476E+04, -4.64130376E+00],
        [7.48514950E-02, 1.33909467E-02, -5.73285809E-06, 1.22292535E-09,
         -1.01815230E-13, -9.46834459E+03, 1.84373180E+01],
        -74600.0,
        {'bkw_covolume': 528.0, 'covolume': 43.01},
    )

    # H (Atomic Hydrogen) - high-temperature dissociation
    db['H'] = _species(
        'H', 1.00794,
        [2.50000000E+00, 0.0, 0.0, 0.0, 0.0, 2.54736599E+04, -4.46682853E-01],
        [2.50000286E+00, -5.65334214E-09, 3.63251723E-12, -9.19949720E-16,
         7.95260746E-20, 2.54736589E+04, -4.46698494E-01],
        217998.0,
        {'bkw_covolume': 76.0, 'covolume': 13.0},
    )

    # O (Atomic Oxygen)
    db['O'] = _species(
        'O', 15.9994,
        [3.16826710E+00, -3.27931884E-03, 6.64306396E-06, -6.12806624E-09,
         2.11265971E-12, 2.91222592E+04, 2.05193346E+00],
        [2.54363697E+00, -2.73162486E-05, -4.19029520E-09, 4.95481845E-12,
         -4.79553694E-16, 2.92260120E+04, 4.92229457E+00],
        249175.0,
        {'bkw_covolume': 120.0, 'covolume': 16.0},
    )

    # NO (Nitric Oxide)
    db['NO'] = _species(
        'NO', 30.0061,
        [4.21859896E+00, -4.63988124E-03, 1.10443049E-05, -9.34055507E-09,
         2.80554874E-12, 9.84509964E+03, 2.28061001E+00],
        [3.26071234E+00, 1.19101135E-03, -4.29122646E-07, 6.94481463E-11,
         -4.03295681E-15, 9.92143132E+03, 6.36900518E+00],
        91290.0,
        {'bkw_covolume': 386.0, 'covolume': 27.89},
    )

    # N (Atomic Nitrogen)
    db['N'] = _species(
        'N', 14.0067,
        [2.5, 0.0, 0.0, 0.0, 0.0, 5.6104637E+04, 4.1939087E+00],
        [2.4159429E+00, 1.7489065E-04, -1.1902369E-07, 3.0226245E-11,
         -2.0360982E-15, 5.6133773E+04, 4.6496096E+00],
        472680.0,
        {'bkw_covolume': 148.0, 'covolume': 16.0},
    )

    # NH3 (Ammonia) - low-temperature product of fuel-rich mixtures
    db['NH3'] = _species(
        'NH3', 17.03052,
        [4.28602740E+00, -4.66052300E-03, 2.17185130E-05, -2.28088870E-08,
         8.26380460E-12, -6.74172850E+03, -6.25372770E-01],
        [2.63445210E+00, 5.66625600E-03, -1.72786760E-06, 2.38671610E-10,
         -1.25787860E-14, -6.54469580E+03, 6.56629280E+00],
        -45898.0,
        {'bkw_covolume': 476.0, 'covolume': 37.07},
    )

    # Al, AlO, Al2O - constant Cp fits to JANAF, valid to 6000 K
    db['Al'] = _species(
        'Al', 26.981538,
        [2.52571946E+00, 0.0, 0.0, 0.0, 0.0, 3.89007522E+04, 5.40028515E+00],
        [2.52571946E+00, 0.0, 0.0, 0.0, 0.0, 3.89007522E+04, 5.40028515E+00],
        329700.0,
        {'bkw_covolume': 200.0, 'covolume': 15.0},
    )
    db['AlO'] = _species(
        'AlO', 42.980938,
        [3.96898772E+00, 0.0, 0.0, 0.0, 0.0, 6.86286686E+03, 3.65379096E+00],
        [3.96898772E+00, 0.0, 0.0, 0.0, 0.0, 6.86286686E+03, 3.65379096E+00],
        66900.0,
        {'bkw_covolume': 300.0, 'covolume': 25.0},
    )
    db['Al2O'] = _species(
        'Al2O', 69.962476,
        [6.25416246E+00, 0.0, 0.0, 0.0, 0.0, -1.93282245E+04, -4.43504661E+00],
        [6.25416246E+00, 0.0, 0.0, 0.0, 0.0, -1.93282245E+04, -4.43504661E+00],
        -145200.0,
        {'bkw_covolume': 450.0, 'covolume': 35.0},
    )

    # =========================================================================
    # Condensed products
    # =========================================================================

    # C(gr) (Graphite) - solid carbon, free carbon in oxygen-lean products
    db['C(gr)'] = _species(
        'C(gr)', 12.0107,
        [-3.10872240E-01, 4.40353550E-03, 1.90394100E-06, -6.38546880E-09,
         2.98964460E-12, -1.08650140E+02, 1.11382480E+00],
        [1.45571870E+00, 1.71702470E-03, -6.97562390E-07, 1.35277160E-10,
         -1.00328830E-14, -6.95137900E+02, -8.52583350E+00],
        0.0,
        {'molar_volume': 4.44},
        phase=Phase.SOLID,
        window=(200.0, 1000.0, 5000.0),
    )

    # Al2O3(s) (Alumina) - linear Cp fit, solid and liquid lumped to 4000 K
    db['Al2O3(s)'] = _species(
        'Al2O3(s)', 101.961276,
        [7.40672755E+00, 7.02595506E-03, 0.0, 0.0, 0.0, -2.04060982E+05, -3.81710667E+01],
        [1.29524075E+01, 1.48027514E-03, 0.0, 0.0, 0.0, -2.06833822E+05, -7.09335865E+01],
        -1675700.0,
        {'molar_volume': 25.575},
        phase=Phase.SOLID,
        window=(200.0, 1000.0, 4000.0),
    )

    return db
