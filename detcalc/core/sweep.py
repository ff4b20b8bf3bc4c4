"""
Parallel parameter sweeps over independent detonation calculations.

Each task is a self-contained (index, formulation, database, settings)
tuple executed in a worker process, so nothing mutable is shared. A
failed calculation does not stop the sweep: its outcome records the
error type and message instead of a result.
"""

import logging
import multiprocessing
import time
from collections.abc import Iterable, Sequence
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, replace

from .config import EngineSettings
from .detonation import CjResult
from .engine import CalculationKind, Formulation, run_formulation
from .isentrope import IsentropeResult
from .types import CalculationError, EquilibriumState, SpeciesDatabase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepOutcome:
    """Result or failure of one sweep task."""
    index: int
    formulation: Formulation
    result: EquilibriumState | CjResult | IsentropeResult | None = None
    error_type: str | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        return self.result is not None


def _run_single_task(
    args: tuple[int, Formulation, SpeciesDatabase | None, EngineSettings | None],
) -> SweepOutcome:
    """
    Run one formulation.

    This function runs in a separate process via multiprocessing.
    """
    index, formulation, database, settings = args
    try:
        result = run_formulation(formulation, database, settings)
    except CalculationError as exc:
        return SweepOutcome(
            index=index,
            formulation=formulation,
            error_type=type(exc).__name__,
            error_message=str(exc),
        )
    return SweepOutcome(index=index, formulation=formulation, result=result)


def screen_formulations(
    formulations: Iterable[Formulation],
    database: SpeciesDatabase | None = None,
    settings: EngineSettings | None = None,
    n_workers: int | None = None,
) -> list[SweepOutcome]:
    """
    Run independent formulations, in parallel by default.

    Args:
        formulations: Calculation requests
        database: Species table shared (by copy) with every worker
        settings: Engine settings
        n_workers: Worker processes; None uses the CPU count and 0 runs
            serially in this process

    Returns:
        One SweepOutcome per formulation, in input order
    """
    args_list = [(i, f, database, settings) for i, f in enumerate(formulations)]
    if not args_list:
        return []

    start_time = time.time()
    if n_workers == 0:
        outcomes = [_run_single_task(args) for args in args_list]
    else:
        n_workers = n_workers or multiprocessing.cpu_count()
        logger.info("Screening %d formulations on %d workers", len(args_list), n_workers)
        outcomes = []
        with ProcessPoolExecutor(max_workers=n_workers) as executor:
            futures = {executor.submit(_run_single_task, args): args[0] for args in args_list}
            for future in as_completed(futures):
                outcomes.append(future.result())
                logger.debug("Completed %d/%d", len(outcomes), len(args_list))

    # Sort results by input index
    outcomes.sort(key=lambda o: o.index)

    failed = [o for o in outcomes if not o.success]
    for outcome in failed:
        logger.warning(
            "Formulation %d (%s) failed: %s: %s",
            outcome.index, outcome.formulation.label, outcome.error_type, outcome.error_message,
        )
    logger.info(
        "Sweep finished: %d successful, %d failed in %.1fs",
        len(outcomes) - len(failed), len(failed), time.time() - start_time,
    )
    return outcomes


def sweep_densities(
    components: Sequence[tuple[str, float]],
    densities: Iterable[float],
    eos: str = "bkw",
    kind: CalculationKind = CalculationKind.CJ_STATE,
    database: SpeciesDatabase | None = None,
    settings: EngineSettings | None = None,
    n_workers: int | None = None,
) -> list[SweepOutcome]:
    """
    CJ (or isentrope) calculations of one mixture over loading densities.

    Args:
        components: (reactant key, mass fraction) pairs
        densities: Loading densities (g/cm^3)
        eos: Product EOS registry name

    Returns:
        One SweepOutcome per density, in input order
    """
    base = Formulation(components=tuple(components), kind=kind, eos=eos)
    formulations = [
        replace(base, density=rho, label=f"rho={rho:g}") for rho in densities
    ]
    return screen_formulations(formulations, database, settings, n_workers)
