"""
Unit tests for the release isentrope and the JWL fit.
"""

import numpy as np
import pytest

from detcalc.core.config import EngineSettings
from detcalc.core.constants import GPA_TO_PA
from detcalc.core.engine import CalculationKind, DetonationProblem, Formulation, run_formulation
from detcalc.core.isentrope import (
    IsentropeFitter,
    JwlParameters,
    fit_jwl,
    isentrope_energy,
)
from detcalc.core.types import CalculationCancelled, JwlFitWarning
from detcalc.utils.nasa_parser import create_sample_database

# LLNL TNT JWL: A, B, C in GPa
TNT_JWL = dict(a=371.2, b=3.231, r1=4.15, r2=0.95, omega=0.30, c=1.045)


def _tnt_isentrope(V):
    p = TNT_JWL
    return (
        p["a"] * np.exp(-p["r1"] * V)
        + p["b"] * np.exp(-p["r2"] * V)
        + p["c"] * V ** -(1.0 + p["omega"])
    )


class TestIsentropeEnergy:

    def test_power_law(self):
        """P = V^-2 from V = 1 carries exactly 1 GPa of energy."""
        V = np.geomspace(1.0, 10.0, 200)
        assert isentrope_energy(V, V**-2) == pytest.approx(1.0, rel=1e-3)

    def test_tail_exponent_floor(self):
        """A nearly flat tail is integrated with exponent 1.05, not divergently."""
        V = np.array([1.0, 2.0, 4.0])
        P = np.array([1.0, 0.99, 0.98])
        assert np.isfinite(isentrope_energy(V, P))


class TestJwlFit:

    @pytest.fixture
    def samples(self):
        V = np.geomspace(0.73, 10.0, 60)
        return V, _tnt_isentrope(V) * GPA_TO_PA

    def test_fit_reproduces_isentrope(self, samples):
        V, P = samples
        jwl = fit_jwl(V, P, reference_density=1630.0)
        assert jwl.acceptable
        assert jwl.rms < 0.01
        np.testing.assert_allclose(jwl.pressure(V) * GPA_TO_PA, P, rtol=0.03)
        assert jwl.p_cj == pytest.approx(P[0] / GPA_TO_PA)
        assert jwl.c > 0.0

    def test_energy_closure(self, samples):
        """C is chosen so the JWL energy at the CJ volume matches e0 + P_cj(1 - V_cj)/2."""
        V, P = samples
        jwl = fit_jwl(V, P, reference_density=1630.0)
        expected = jwl.e0 + 0.5 * jwl.p_cj * (1.0 - jwl.v_cj)
        assert jwl.energy(jwl.v_cj) == pytest.approx(expected, rel=1e-10)

    def test_poor_fit_warns(self, samples):
        V, P = samples
        jagged = P * (1.0 + 0.25 * (-1.0) ** np.arange(len(P)))
        with pytest.warns(JwlFitWarning):
            jwl = fit_jwl(V, jagged, reference_density=1630.0)
        assert not jwl.acceptable
        assert jwl.rms > 0.02

    def test_repr_lists_parameters(self):
        jwl = JwlParameters(a=371.2, b=3.231, r1=4.15, r2=0.95, omega=0.3, e0=7.0,
                            reference_density=1630.0, v_cj=0.73, p_cj=21.0, rms=0.001)
        assert "R1=4.150" in repr(jwl)


class TestIsentropeFitter:

    @pytest.fixture(scope="class")
    def cj_solver(self):
        settings = EngineSettings().with_overrides({"isentrope.n_points": 15})
        problem = DetonationProblem(create_sample_database(), eos="ideal", settings=settings)
        problem.add_reactant("H2", 0.111898)
        problem.add_reactant("O2", 0.888102)
        return problem.cj_solver()

    @pytest.fixture(scope="class")
    def result(self, cj_solver):
        return IsentropeFitter(cj_solver).run()

    def test_expansion_is_monotone(self, result):
        assert len(result.points) == 15
        assert np.all(np.diff(result.volume_ratios) > 0.0)
        assert np.all(np.diff(result.pressures) < 0.0)
        temperatures = np.array([p.temperature for p in result.points])
        assert np.all(np.diff(temperatures) < 0.0)

    def test_starts_at_cj_point(self, result):
        first = result.points[0]
        assert first.volume_ratio == pytest.approx(result.cj.volume_ratio)
        assert first.pressure == pytest.approx(result.cj.pressure)
        assert result.volume_ratios[-1] == pytest.approx(10.0)

    def test_entropy_conserved(self, result):
        s_cj = result.points[0].entropy
        assert result.entropy_drift < 1e-3 * abs(s_cj)

    def test_cancel_between_steps(self, cj_solver, result):
        with pytest.raises(CalculationCancelled):
            IsentropeFitter(cj_solver).run(cj=result.cj, cancel=lambda: True)


class TestCondensedExplosive:
    """BKW products of TNT at 1.63 g/cm^3, the case JWL parameters are used for."""

    @pytest.fixture(scope="class")
    def result(self):
        settings = EngineSettings().with_overrides({"isentrope.n_points": 20})
        formulation = Formulation.from_preset("TNT", kind=CalculationKind.ISENTROPE)
        return run_formulation(formulation, settings=settings)

    def test_expansion(self, result):
        assert len(result.points) == 20
        assert np.all(np.diff(result.pressures) < 0.0)
        assert result.points[0].pressure == pytest.approx(result.cj.pressure)
        assert result.entropy_drift < 5e-3 * abs(result.points[0].entropy)

    def test_jwl_parameters(self, result):
        jwl = result.jwl
        assert jwl.p_cj == pytest.approx(result.cj.pressure_gpa)
        assert jwl.v_cj == pytest.approx(result.cj.volume_ratio)
        assert jwl.reference_density == pytest.approx(1630.0)
        assert jwl.rms < 0.05
        assert jwl.a > 0.0 and jwl.b >= 0.0 and jwl.c > 0.0
        assert 0.01 <= jwl.omega <= 1.5
        # Fitted curve passes close to the CJ pressure
        assert jwl.pressure(jwl.v_cj) == pytest.approx(jwl.p_cj, rel=0.1)
