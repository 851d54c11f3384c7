"""Iterative Yang (IY) partial volume correction.

Erlandsson, K. et al. (2012). "A review of partial volume correction
techniques for emission tomography and their applications in neurology,
cardiology and oncology", Physics in Medicine and Biology, 57(21), R119-59.
"""

import logging

import numpy as np

from petpvc.algorithms.base import Algorithm
from petpvc.algorithms.gtm import regional_means
from petpvc.callbacks import RegionalRatioCallback
from petpvc.exceptions import DivisionByZeroError
from petpvc.image import ImageData, RegionMaskSet
from petpvc.operators.blurring import create_gaussian_blur

LOGGER = logging.getLogger(__name__)

DEFAULT_ITERATIONS = 10


class IterativeYang(Algorithm):
    """
    Iterative Yang partial volume correction.

    Each iteration rescales every region of the current estimate x by the
    ratio of the region's observed mean to its mean after blurring x:

        x = x * sum_j (mean_j(y) / mean_j(A x)) * R_j

    where A is the PSF blur, y the observed image and R_j the region masks.
    There is no convergence test; the algorithm runs for exactly the
    requested number of iterations.

    Parameters
    ----------
    observed_data : ImageData
        Observed PET image, also the initial estimate
    masks : RegionMaskSet
        Region masks on the PET grid
    blurring_operator : GaussianBlurringOperator
        PSF blurring operator

    Attributes
    ----------
    x : ImageData
        Current estimate
    true_means : np.ndarray
        Regional means of the observed image
    ratios : np.ndarray or None
        Regional ratios of the last iteration
    ratio_history : list of np.ndarray
        Regional ratios of every completed iteration

    Examples
    --------
    >>> iy = IterativeYang(observed, masks, blur_op)
    >>> iy.run(iterations=10, callbacks=[RegionalRatioCallback()])
    >>> corrected = iy.solution
    """

    def __init__(self, observed_data: ImageData, masks: RegionMaskSet, blurring_operator, **kwargs):
        super().__init__(**kwargs)
        masks.check_aligned(observed_data)
        self.observed_data = observed_data
        self.masks = masks
        self.blurring_operator = blurring_operator
        self.region_sizes = masks.region_sizes()
        self.true_means = regional_means(observed_data, masks, self.region_sizes)
        self.x = observed_data.clone()
        self.ratios = None
        self.ratio_history = []
        self.configured = True

    @property
    def solution(self) -> ImageData:
        return self.x

    def update(self):
        blurred = self.blurring_operator.direct(self.x)
        blurred_means = regional_means(blurred, self.masks, self.region_sizes)

        vanished = np.flatnonzero(blurred_means == 0)
        if vanished.size:
            region = int(vanished[0]) + 1
            raise DivisionByZeroError(
                f"Blurred mean of region {region} is zero at iteration {self.iteration + 1}",
                region=region,
                stage="iterative Yang",
            )

        self.ratios = self.true_means / blurred_means
        self.ratio_history.append(self.ratios.copy())
        correction = np.tensordot(self.ratios, self.masks.as_array(), axes=1)
        self.x = self.x * correction


def iterative_yang(
    pet: ImageData,
    masks: RegionMaskSet,
    psf,
    iterations: int = DEFAULT_ITERATIONS,
    verbose: bool = False,
    backend: str = "auto",
    callbacks=None,
) -> ImageData:
    """
    Run Iterative Yang correction and return the corrected image.

    Parameters
    ----------
    pet : ImageData
        Observed PET image
    masks : RegionMaskSet
        Region masks on the PET grid
    psf : PointSpreadFunction or GaussianBlurringOperator
        Scanner PSF
    iterations : int, optional
        Number of iterations (default: 10)
    verbose : bool, optional
        Report the regional ratios of every iteration
    backend : str, optional
        Blurring backend used when ``psf`` is a PointSpreadFunction
    callbacks : list, optional
        Extra callbacks called after every iteration
    """
    if iterations < 0:
        raise ValueError(f"Number of iterations must be non-negative, got {iterations}")
    blur = psf if hasattr(psf, "direct") else create_gaussian_blur(psf, backend)

    all_callbacks = []
    if verbose:
        all_callbacks.append(RegionalRatioCallback())
    if callbacks is not None:
        all_callbacks.extend(callbacks)

    iy = IterativeYang(observed_data=pet, masks=masks, blurring_operator=blur)
    iy.run(iterations=iterations, callbacks=all_callbacks)
    return iy.solution
