"""Geometric transfer matrix (GTM) region-based correction.

The GTM method models the observed mean in region ``i`` as a blurred mixture
of the true region means::

    observed[i] = sum_j M[i, j] * true[j]

where ``M[i, j]`` is the mean, over region ``i``, of region ``j``'s indicator
after blurring by the PSF. Inverting ``M`` recovers the true regional means.
"""

import logging
from dataclasses import dataclass

import numpy as np
from scipy import linalg

from petpvc.exceptions import DivisionByZeroError, InvalidMaskError, SingularMatrixError
from petpvc.image import ImageData, RegionMaskSet

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CONDITION = 1e10
SOLVERS = ("lu", "svd")


@dataclass(frozen=True)
class TransferMatrix:
    """
    GTM of a mask set under a given PSF.

    Attributes
    ----------
    matrix : np.ndarray
        K x K matrix, ``matrix[i, j]`` is the fraction of region j's signal
        seen in region i
    region_sizes : np.ndarray
        Voxel count (or fuzzy weighted sum) of each region
    """

    matrix: np.ndarray
    region_sizes: np.ndarray

    def __post_init__(self):
        matrix = np.array(self.matrix, dtype=np.float64)
        sizes = np.array(self.region_sizes, dtype=np.float64)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValueError(f"Transfer matrix must be square, got shape {matrix.shape}")
        if sizes.shape != (matrix.shape[0],):
            raise ValueError(
                f"Expected {matrix.shape[0]} region sizes, got shape {sizes.shape}"
            )
        matrix.setflags(write=False)
        sizes.setflags(write=False)
        object.__setattr__(self, "matrix", matrix)
        object.__setattr__(self, "region_sizes", sizes)

    @property
    def num_regions(self) -> int:
        return self.matrix.shape[0]

    @property
    def condition_number(self) -> float:
        return float(np.linalg.cond(self.matrix))


def _checked_region_sizes(masks: RegionMaskSet, region_sizes=None) -> np.ndarray:
    if region_sizes is None:
        sizes = masks.region_sizes()
    else:
        sizes = np.asarray(region_sizes, dtype=np.float64)
        if sizes.shape != (len(masks),):
            raise InvalidMaskError(
                f"Expected {len(masks)} region sizes, got shape {sizes.shape}",
                stage="regional means",
            )
    empty = np.flatnonzero(sizes == 0)
    if empty.size:
        region = int(empty[0]) + 1
        raise DivisionByZeroError(
            f"Region {region} contains no voxels",
            region=region,
            stage="region sizes",
        )
    return sizes


def build_gtm(masks: RegionMaskSet, blur, image: ImageData = None) -> TransferMatrix:
    """
    Compute the geometric transfer matrix of ``masks`` under ``blur``.

    Parameters
    ----------
    masks : RegionMaskSet
        Region indicators
    blur : GaussianBlurringOperator
        PSF blurring operator
    image : ImageData, optional
        Activity image the mask must be aligned with

    Returns
    -------
    TransferMatrix
        Matrix and region sizes

    Raises
    ------
    InvalidMaskError
        If ``masks`` is not a RegionMaskSet or is not aligned with ``image``
    DivisionByZeroError
        If a region contains no voxels
    """
    if not isinstance(masks, RegionMaskSet):
        raise InvalidMaskError(
            f"Expected a RegionMaskSet, got {type(masks).__name__}", stage="GTM"
        )
    if image is not None:
        masks.check_aligned(image)

    sizes = _checked_region_sizes(masks)
    num_regions = len(masks)
    flat = masks.as_array().reshape(num_regions, -1)

    matrix = np.empty((num_regions, num_regions), dtype=np.float64)
    for j in range(num_regions):
        blurred = blur.blur_array(masks.region_array(j))
        matrix[:, j] = flat @ blurred.ravel() / sizes
        LOGGER.debug("GTM column %d: %s", j + 1, matrix[:, j])

    return TransferMatrix(matrix=matrix, region_sizes=sizes)


def regional_means(image: ImageData, masks: RegionMaskSet, region_sizes=None) -> np.ndarray:
    """Mean of ``image`` inside every region (weighted by fuzzy membership)."""
    masks.check_aligned(image)
    sizes = _checked_region_sizes(masks, region_sizes)
    flat = masks.as_array().reshape(len(masks), -1)
    return flat @ image.as_array().ravel() / sizes


def solve_corrected_means(
    gtm,
    observed,
    max_condition: float = DEFAULT_MAX_CONDITION,
    method: str = "lu",
) -> np.ndarray:
    """
    Solve ``M @ corrected = observed`` for the corrected regional means.

    Parameters
    ----------
    gtm : TransferMatrix or array_like
        Transfer matrix
    observed : array_like
        Observed regional means
    max_condition : float, optional
        Largest acceptable 2-norm condition number (default: 1e10)
    method : str, optional
        'lu' (LU factorisation, default) or 'svd'

    Returns
    -------
    np.ndarray
        Corrected regional means

    Raises
    ------
    SingularMatrixError
        If the matrix is singular, not finite or too ill-conditioned
    """
    matrix = gtm.matrix if isinstance(gtm, TransferMatrix) else np.asarray(gtm, dtype=np.float64)
    observed = np.asarray(observed, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise ValueError(f"Transfer matrix must be square, got shape {matrix.shape}")
    if observed.shape != (matrix.shape[0],):
        raise ValueError(
            f"Expected {matrix.shape[0]} observed means, got shape {observed.shape}"
        )
    if method not in SOLVERS:
        raise ValueError(f"Unknown solver {method!r}; choose from {SOLVERS}")
    if not np.all(np.isfinite(matrix)):
        raise SingularMatrixError("Transfer matrix contains non-finite entries", stage="GTM inversion")

    with np.errstate(divide="ignore", invalid="ignore"):
        condition = np.linalg.cond(matrix)
    if not np.isfinite(condition) or condition > max_condition:
        raise SingularMatrixError(
            f"Transfer matrix is singular or ill-conditioned "
            f"(condition number {condition:.3e} > {max_condition:.3e})",
            stage="GTM inversion",
        )
    LOGGER.debug("GTM condition number: %.6g", condition)

    if method == "svd":
        u, s, vh = linalg.svd(matrix)
        return vh.T @ ((u.T @ observed) / s)
    lu, piv = linalg.lu_factor(matrix)
    return linalg.lu_solve((lu, piv), observed)
