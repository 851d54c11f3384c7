#!/usr/bin/env python3
"""CLI entry point for Iterative Yang (IY) partial volume correction."""

from __future__ import annotations

import logging
import sys

from petpvc.algorithms.iterative_yang import iterative_yang
from petpvc.cli.config import CorrectionConfig, configure_logging, parse_common_args
from petpvc.exceptions import PVCError
from petpvc.image import ImageData
from petpvc.utils import check_nifti_path, load_image, load_mask, save_image

LOGGER = logging.getLogger(__name__)

DESCRIPTION = "Iterative Yang (IY) PVC.\n\nPerforms iterative Yang (IY) partial volume correction."

ACKNOWLEDGMENTS = (
    "This program implements the Iterative Yang (IY) partial volume correction (PVC) technique. "
    "Please cite the following paper:\n"
    "\tErlandsson, K. and Buvat, I. and Pretorius, P.H. and Thomas, B.A. and Hutton, B.F., (2012).\n"
    "\t\"A review of partial volume correction techniques for emission tomography and their\n"
    "\tapplications in neurology, cardiology and oncology\",\n"
    "\tPhysics in Medicine and Biology, vol. 57, no. 21, R119-59."
)


def run_pipeline(config: CorrectionConfig) -> ImageData:
    for line in config.summary_lines(include_iterations=True):
        LOGGER.debug(line)

    # fail on the output name before any computation
    check_nifti_path(config.output_file, stage="write output")
    masks = load_mask(config.mask_file)
    pet = load_image(config.pet_file)
    psf = config.psf(pet.geometry)
    LOGGER.debug("PSF variance (x, y, z) in mm^2: %s", psf.variance_mm)

    try:
        corrected = iterative_yang(
            pet,
            masks,
            psf,
            iterations=config.iterations,
            verbose=config.debug,
            backend=config.backend,
        )
    except PVCError as e:
        if e.path is None:
            e.path = config.pet_file
        raise
    save_image(corrected, config.output_file)
    return corrected


def main(argv=None) -> int:
    config, _ = parse_common_args(
        prog="petpvc-iy",
        description=DESCRIPTION,
        epilog=ACKNOWLEDGMENTS,
        argv=argv,
        include_iterations=True,
    )
    configure_logging(config.debug)
    try:
        run_pipeline(config)
    except PVCError as e:
        print(f"[Error]\t{e.describe()}", file=sys.stderr)
        return 1
    except (OSError, ValueError) as e:
        print(f"[Error]\t{e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
