"""
petpvc: partial volume correction for PET images.

This package provides region-based partial volume correction driven by a
multi-region anatomical mask and a Gaussian scanner PSF, including:
- Geometric Transfer Matrix (GTM) correction of regional means
- Region-based voxel-wise (RBV) correction
- Iterative Yang (IY) correction
"""

__version__ = "0.1.0"

from petpvc.exceptions import (
    PVCError,
    ImageIOError,
    InvalidMaskError,
    DivisionByZeroError,
    SingularMatrixError,
    UnsupportedFormatError,
)
from petpvc.image import ImageData, ImageGeometry, RegionMaskSet
from petpvc.operators.psf import PointSpreadFunction, fwhm_to_sigma
from petpvc.operators.blurring import GaussianBlurringOperator, create_gaussian_blur
from petpvc.algorithms.gtm import (
    TransferMatrix,
    build_gtm,
    regional_means,
    solve_corrected_means,
)
from petpvc.algorithms.rbv import RBVResult, rbv_correct, run_rbv, synthetic_volume
from petpvc.algorithms.iterative_yang import IterativeYang, iterative_yang
from petpvc.utils import get_array, load_image, load_mask, save_image

__all__ = [
    "__version__",
    # Errors
    "PVCError",
    "ImageIOError",
    "InvalidMaskError",
    "DivisionByZeroError",
    "SingularMatrixError",
    "UnsupportedFormatError",
    # Images
    "ImageData",
    "ImageGeometry",
    "RegionMaskSet",
    # Operators
    "PointSpreadFunction",
    "fwhm_to_sigma",
    "GaussianBlurringOperator",
    "create_gaussian_blur",
    # Algorithms
    "TransferMatrix",
    "build_gtm",
    "regional_means",
    "solve_corrected_means",
    "RBVResult",
    "rbv_correct",
    "run_rbv",
    "synthetic_volume",
    "IterativeYang",
    "iterative_yang",
    # Utils
    "get_array",
    "load_image",
    "load_mask",
    "save_image",
]
