"""Operators for PET partial volume correction."""

from petpvc.operators.psf import PointSpreadFunction, fwhm_to_sigma
from petpvc.operators.blurring import GaussianBlurringOperator, create_gaussian_blur

__all__ = [
    "PointSpreadFunction",
    "fwhm_to_sigma",
    "GaussianBlurringOperator",
    "create_gaussian_blur",
]
