"""Error types raised by the correction stages.

Every error is terminal for a run: stages raise, nothing retries, and the
command-line tools turn the exception into a non-zero exit status.
"""

from typing import Optional

import numpy as np


class PVCError(Exception):
    """Base class for partial volume correction failures.

    Parameters
    ----------
    message : str
        Human-readable description of the failure
    path : str or Path, optional
        File the failure relates to
    region : int, optional
        1-based region number the failure relates to
    stage : str, optional
        Name of the pipeline stage that failed
    """

    def __init__(self, message, path=None, region: Optional[int] = None, stage: Optional[str] = None):
        super().__init__(message)
        self.path = path
        self.region = region
        self.stage = stage

    def describe(self) -> str:
        """Message prefixed with the failing stage and suffixed with the file, when known."""
        message = str(self)
        if self.stage:
            message = f"{self.stage} failed: {message}"
        if self.path is not None and str(self.path) not in message:
            message = f"{message} (file: {self.path})"
        return message


class ImageIOError(PVCError, OSError):
    """An image file could not be read or written."""


class InvalidMaskError(PVCError, ValueError):
    """The region mask has the wrong dimensionality, region count or grid."""


class DivisionByZeroError(PVCError, ZeroDivisionError):
    """A region has zero size or zero blurred signal."""


class SingularMatrixError(PVCError, np.linalg.LinAlgError):
    """The transfer matrix is singular or too ill-conditioned to invert."""


class UnsupportedFormatError(ImageIOError, ValueError):
    """The file name does not carry a supported image suffix."""
