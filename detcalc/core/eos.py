"""
Equations of state for gaseous detonation products.

Each model supplies the non-ideal (residual) part of the Helmholtz energy
of the gas phase: pressure and its derivatives, the residual chemical
potential mu_res/RT of every gas species with its composition Hessian,
and the residual internal energy, entropy and heat capacity. The ideal
mixing term is added by the equilibrium solver, so an EOS never needs
to know about standard-state data.

Condensed species are treated as incompressible with a fixed molar
volume; their chemical potential correction is P*v_c/RT for every EOS.

Models:
    - IdealGasEOS: no correction
    - AbelNobleEOS: P (V - B) = n R T with B = sum n_i b_i
    - BKWEquationOfState: Becker-Kistiakowsky-Wilson,
      PV/(nRT) = 1 + x exp(beta x), x = kappa sum(n_i k_i) / (V (T + theta)^alpha)

References:
    - Mader, C.L. (2008). "Numerical Modeling of Explosives and Propellants",
      3rd ed., CRC Press. (BKW form, RDX and TNT calibrations, covolumes)
    - Cowan, R.D. & Fickett, W. (1956). "Calculation of the Detonation
      Properties of Solid Explosives with the Kistiakowsky-Wilson Equation
      of State", J. Chem. Phys. 24, 932.
"""

import math
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .constants import CM3_TO_M3, GAS_CONSTANT
from .types import Species, UnsupportedEosCombinationError


@dataclass(frozen=True)
class ResidualProperties:
    """
    Residual gas-phase properties at one (T, V_g, n) state.

    Pressure derivatives are totals (ideal plus residual) with respect to
    the gas volume V_g. ``mu`` and ``hessian`` are the residual parts only,
    in units of RT (hessian per mol).
    """
    pressure: float                  # Pa
    dp_dv: float                     # Pa/m^3
    dp_dt: float                     # Pa/K
    dp_dn: NDArray[np.float64]       # Pa/mol
    mu: NDArray[np.float64]          # mu_res/RT
    hessian: NDArray[np.float64]     # d(mu_res/RT)/dn_j
    energy: float = 0.0              # U_res, J
    entropy: float = 0.0             # S_res, J/K
    heat_capacity: float = 0.0       # Cv_res, J/K


class EquationOfState(ABC):
    """
    Interchangeable gas-phase equation of state.

    Instances are stateless; every method is a pure function of its
    arguments so one instance may be shared by concurrent solves.
    """

    name: str = "eos"
    #: Species EOS parameter every gas species must carry, if any
    parameter: str | None = None

    @abstractmethod
    def evaluate(
        self,
        T: float,
        gas_volume: float,
        gas_moles: NDArray[np.float64],
        params: NDArray[np.float64],
    ) -> ResidualProperties:
        """
        Evaluate the model.

        Args:
            T: Temperature (K)
            gas_volume: Volume available to the gas phase (m^3)
            gas_moles: Gas mole numbers (mol)
            params: Per-species model parameter from ``gas_parameters``
        """

    def is_admissible(
        self,
        T: float,
        gas_volume: float,
        gas_moles: NDArray[np.float64],
        params: NDArray[np.float64],
    ) -> bool:
        return gas_volume > 0.0 and T > 0.0

    def gas_parameters(self, species: Sequence[Species]) -> NDArray[np.float64]:
        """Per-species parameter vector for the gas species in ``species``."""
        gas = [sp for sp in species if not sp.is_condensed]
        if self.parameter is None:
            return np.zeros(len(gas), dtype=np.float64)
        return np.array([sp.eos_params[self.parameter] for sp in gas], dtype=np.float64)

    def validate_species(self, species: Sequence[Species]) -> None:
        """
        Check that every species carries what this model needs.

        Raises:
            UnsupportedEosCombinationError: A gas species lacks the model
                parameter or a condensed species lacks a molar volume
        """
        for sp in species:
            if sp.is_condensed:
                volume = sp.eos_param("molar_volume")
                if volume is None or not volume > 0.0:
                    raise UnsupportedEosCombinationError(
                        f"{self.name}: condensed species {sp.name} has no molar_volume"
                    )
            elif self.parameter is not None:
                value = sp.eos_param(self.parameter)
                if value is None or not math.isfinite(value) or value < 0.0:
                    raise UnsupportedEosCombinationError(
                        f"{self.name}: gas species {sp.name} has no '{self.parameter}' parameter"
                    )

    # -------------------------------------------------------------------------
    # Convenience API on (T, density, moles per kg)
    # -------------------------------------------------------------------------

    def _split(
        self, density: float, moles: NDArray[np.float64], species: Sequence[Species]
    ) -> tuple[float, NDArray[np.float64], NDArray[np.float64], NDArray[np.float64], NDArray[np.bool_]]:
        moles = np.asarray(moles, dtype=np.float64)
        condensed = np.array([sp.is_condensed for sp in species], dtype=bool)
        molar_volumes = np.array(
            [sp.eos_params.get("molar_volume", 0.0) * CM3_TO_M3 if sp.is_condensed else 0.0
             for sp in species],
            dtype=np.float64,
        )
        gas_volume = 1.0 / density - float(np.dot(moles[condensed], molar_volumes[condensed]))
        return gas_volume, moles[~condensed], self.gas_parameters(species), molar_volumes, condensed

    def pressure(
        self, T: float, density: float, moles: NDArray[np.float64], species: Sequence[Species]
    ) -> float:
        """
        Pressure (Pa) of 1 kg of mixture.

        Args:
            T: Temperature (K)
            density: Mixture density (kg/m^3)
            moles: Mole numbers per kg, one per entry of ``species``
            species: Species table matching ``moles``
        """
        gas_volume, gas_moles, params, _, _ = self._split(density, moles, species)
        return self.evaluate(T, gas_volume, gas_moles, params).pressure

    def chemical_potential_correction(
        self, T: float, density: float, moles: NDArray[np.float64], species: Sequence[Species]
    ) -> NDArray[np.float64]:
        """Per-species correction to mu/RT beyond standard state and ideal mixing."""
        gas_volume, gas_moles, params, molar_volumes, condensed = self._split(density, moles, species)
        props = self.evaluate(T, gas_volume, gas_moles, params)
        correction = np.zeros(len(species), dtype=np.float64)
        correction[~condensed] = props.mu
        correction[condensed] = props.pressure * molar_volumes[condensed] / (GAS_CONSTANT * T)
        return correction

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class IdealGasEOS(EquationOfState):
    """Ideal gas: PV = nRT, no residual terms."""

    name = "ideal"

    def evaluate(self, T, gas_volume, gas_moles, params):
        n_gas = gas_moles.shape[0]
        RT = GAS_CONSTANT * T
        P = float(np.sum(gas_moles)) * RT / gas_volume
        return ResidualProperties(
            pressure=P,
            dp_dv=-P / gas_volume,
            dp_dt=P / T,
            dp_dn=np.full(n_gas, RT / gas_volume),
            mu=np.zeros(n_gas),
            hessian=np.zeros((n_gas, n_gas)),
        )


class AbelNobleEOS(EquationOfState):
    """
    Abel-Noble covolume gas: P = n R T / (V - B), B = sum n_i b_i.

    Species parameter ``covolume`` (cm^3/mol). The residual energy is zero;
    the correction to mu grows with the packing fraction B/V.
    """

    name = "abel-noble"
    parameter = "covolume"

    def is_admissible(self, T, gas_volume, gas_moles, params):
        B = float(np.dot(gas_moles, params)) * CM3_TO_M3
        return T > 0.0 and gas_volume - B > 0.0

    def evaluate(self, T, gas_volume, gas_moles, params):
        b = params * CM3_TO_M3
        RT = GAS_CONSTANT * T
        n_total = float(np.sum(gas_moles))
        free_volume = gas_volume - float(np.dot(gas_moles, b))
        if free_volume <= 0.0:
            raise UnsupportedEosCombinationError(
                f"Abel-Noble covolume exceeds gas volume ({free_volume:.3e} m^3 free)"
            )
        P = n_total * RT / free_volume
        return ResidualProperties(
            pressure=P,
            dp_dv=-P / free_volume,
            dp_dt=P / T,
            dp_dn=RT / free_volume + n_total * RT * b / free_volume**2,
            mu=-math.log(free_volume / gas_volume) + n_total * b / free_volume,
            hessian=(b[:, None] + b[None, :]) / free_volume + n_total * np.outer(b, b) / free_volume**2,
            energy=0.0,
            entropy=n_total * GAS_CONSTANT * math.log(free_volume / gas_volume),
            heat_capacity=0.0,
        )


@dataclass(frozen=True)
class BKWParameters:
    """Global calibration constants of the BKW equation of state."""
    name: str
    alpha: float
    beta: float
    kappa: float
    theta: float        # K


BKW_RDX = BKWParameters(name="BKW-RDX", alpha=0.5, beta=0.16, kappa=10.91, theta=400.0)
BKW_TNT = BKWParameters(name="BKW-TNT", alpha=0.5, beta=0.09585, kappa=12.685, theta=400.0)


class BKWEquationOfState(EquationOfState):
    """
    Becker-Kistiakowsky-Wilson real-gas EOS.

    PV/(n R T) = 1 + x exp(beta x),  x = kappa K / (V (T + theta)^alpha)

    with K = sum n_i k_i the total geometric covolume (species parameter
    ``bkw_covolume``, cm^3/mol) and V in cm^3. The residual Helmholtz energy
    is A_res/RT = n (exp(beta x) - 1)/beta, from which the residual chemical
    potentials, their Hessian and the caloric terms below follow exactly.
    """

    name = "bkw"
    parameter = "bkw_covolume"

    def __init__(self, calibration: BKWParameters = BKW_RDX):
        self.calibration = calibration

    def is_admissible(self, T, gas_volume, gas_moles, params):
        if not (gas_volume > 0.0 and T > 0.0):
            return False
        cal = self.calibration
        x = cal.kappa * float(np.dot(gas_moles, params)) / (gas_volume / CM3_TO_M3) / (T + cal.theta) ** cal.alpha
        return cal.beta * x < 500.0

    def evaluate(self, T, gas_volume, gas_moles, params):
        cal = self.calibration
        RT = GAS_CONSTANT * T
        n_total = float(np.sum(gas_moles))
        volume_cm3 = gas_volume / CM3_TO_M3

        scale = cal.kappa / (T + cal.theta) ** cal.alpha / volume_cm3     # dx/dK
        x = scale * float(np.dot(gas_moles, params))
        expo = math.exp(cal.beta * x)
        f = 1.0 + x * expo
        df_dx = expo * (1.0 + cal.beta * x)
        dx_dt = -cal.alpha * x / (T + cal.theta)

        P = n_total * RT * f / gas_volume
        dp_dv = -(n_total * RT / gas_volume**2) * (f + x * df_dx)
        dp_dt = n_total * GAS_CONSTANT * f / gas_volume + n_total * RT * df_dx * dx_dt / gas_volume
        dp_dn = (RT / gas_volume) * (f + n_total * df_dx * scale * params)

        mu = (expo - 1.0) / cal.beta + n_total * expo * scale * params
        k = scale * params
        hessian = expo * (k[:, None] + k[None, :] + cal.beta * n_total * np.outer(k, k))

        a_res = n_total * RT * (expo - 1.0) / cal.beta
        u_res = -n_total * RT * T * expo * dx_dt
        cv_res = u_res * (
            2.0 / T - cal.alpha * (1.0 + cal.beta * x) / (T + cal.theta) - 1.0 / (T + cal.theta)
        )

        return ResidualProperties(
            pressure=P,
            dp_dv=dp_dv,
            dp_dt=dp_dt,
            dp_dn=dp_dn,
            mu=mu,
            hessian=hessian,
            energy=u_res,
            entropy=(u_res - a_res) / T,
            heat_capacity=cv_res,
        )

    def __repr__(self) -> str:
        return f"BKWEquationOfState({self.calibration.name})"


EOS_MODELS: dict[str, EquationOfState] = {
    "ideal": IdealGasEOS(),
    "abel-noble": AbelNobleEOS(),
    "bkw": BKWEquationOfState(BKW_RDX),
    "bkw-rdx": BKWEquationOfState(BKW_RDX),
    "bkw-tnt": BKWEquationOfState(BKW_TNT),
}


def get_eos(model: str | EquationOfState) -> EquationOfState:
    """
    Resolve an EOS by registry name, passing instances through.

    Raises:
        UnsupportedEosCombinationError: For an unknown name
    """
    if isinstance(model, EquationOfState):
        return model
    key = model.strip().lower().replace("_", "-")
    if key not in EOS_MODELS:
        raise UnsupportedEosCombinationError(
            f"Unknown equation of state {model!r}; choose from {sorted(EOS_MODELS)}"
        )
    return EOS_MODELS[key]
