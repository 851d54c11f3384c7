from __future__ import annotations

import argparse
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple

from petpvc import __version__
from petpvc.algorithms.gtm import DEFAULT_MAX_CONDITION, SOLVERS
from petpvc.algorithms.iterative_yang import DEFAULT_ITERATIONS
from petpvc.operators.psf import PointSpreadFunction

LOG_LEVEL_ENV = "PETPVC_LOG_LEVEL"
LOG_FORMAT = "%(levelname)s:%(name)s:%(message)s"


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"Expected a non-negative integer, got {value}")
    return number


def _non_negative_float(value: str) -> float:
    number = float(value)
    if not number >= 0.0:
        raise argparse.ArgumentTypeError(f"Expected a non-negative number, got {value}")
    return number


@dataclass
class CorrectionConfig:
    pet_file: Path
    mask_file: Path
    output_file: Path
    fwhm: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    iterations: int = DEFAULT_ITERATIONS
    debug: bool = False
    backend: str = "auto"
    max_condition: float = DEFAULT_MAX_CONDITION
    solver: str = "lu"
    means_csv: Optional[Path] = None

    def psf(self, geometry) -> PointSpreadFunction:
        return PointSpreadFunction.from_geometry(self.fwhm, geometry)

    def summary_lines(self, include_iterations: bool = True) -> Iterable[str]:
        yield "Correction configuration:"
        yield f"  pet_file: {self.pet_file}"
        yield f"  mask_file: {self.mask_file}"
        yield f"  output_file: {self.output_file}"
        yield f"  fwhm (x, y, z) mm: {self.fwhm}"
        yield f"  backend: {self.backend}"
        if include_iterations:
            yield f"  iterations: {self.iterations}"
        else:
            yield f"  solver: {self.solver}"
            yield f"  max_condition: {self.max_condition}"
            yield f"  means_csv: {self.means_csv}"


def configure_logging(debug: bool = False) -> None:
    """
    Send package log records to stderr.

    The level is DEBUG with ``debug``, INFO otherwise, and the
    ``PETPVC_LOG_LEVEL`` environment variable overrides both.
    """
    logger = logging.getLogger("petpvc")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    level = logging.DEBUG if debug else logging.INFO
    level_name = os.environ.get(LOG_LEVEL_ENV)
    if level_name is not None:
        level = getattr(logging, level_name.upper(), level)
    logger.setLevel(level)
    logger.propagate = False


def parse_common_args(
    *,
    prog: str,
    description: str,
    epilog: str = "",
    argv: Optional[Sequence[str]] = None,
    include_iterations: bool = False,
) -> Tuple[CorrectionConfig, argparse.Namespace]:
    parser = argparse.ArgumentParser(
        prog=prog,
        description=description,
        epilog=epilog,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("petfile", type=Path, help="PET filename")
    parser.add_argument("maskfile", type=Path, help="mask filename (4-D, one volume per region)")
    parser.add_argument("outputfile", type=Path, help="output filename")

    parser.add_argument("-x", "--FWHMx", type=_non_negative_float, required=True, help="The full-width at half maximum in mm along x-axis")
    parser.add_argument("-y", "--FWHMy", type=_non_negative_float, required=True, help="The full-width at half maximum in mm along y-axis")
    parser.add_argument("-z", "--FWHMz", type=_non_negative_float, required=True, help="The full-width at half maximum in mm along z-axis")
    if include_iterations:
        parser.add_argument("-i", "--iter", dest="iterations", type=_non_negative_int, default=DEFAULT_ITERATIONS, help="Number of iterations")
    else:
        parser.add_argument("--max-condition", type=float, default=DEFAULT_MAX_CONDITION, help="Largest acceptable GTM condition number")
        parser.add_argument("--solver", choices=SOLVERS, default="lu", help="Linear solver used to invert the GTM")
        parser.add_argument("--means-csv", type=Path, default=None, help="Write observed and corrected regional means to this CSV file")
    parser.add_argument("--backend", choices=["auto", "numba", "scipy"], default="auto", help="Blurring backend")
    parser.add_argument("-d", "--debug", action="store_true", help="Prints debug information")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    args = parser.parse_args(argv)

    config = CorrectionConfig(
        pet_file=args.petfile,
        mask_file=args.maskfile,
        output_file=args.outputfile,
        fwhm=(args.FWHMx, args.FWHMy, args.FWHMz),
        iterations=getattr(args, "iterations", DEFAULT_ITERATIONS),
        debug=args.debug,
        backend=args.backend,
        max_condition=getattr(args, "max_condition", DEFAULT_MAX_CONDITION),
        solver=getattr(args, "solver", "lu"),
        means_csv=getattr(args, "means_csv", None),
    )

    return config, args
