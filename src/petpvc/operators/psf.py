"""Gaussian point-spread function described by its FWHM."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple

import numpy as np

FWHM_TO_SIGMA = 1.0 / (2.0 * np.sqrt(2.0 * np.log(2.0)))


def fwhm_to_sigma(fwhm: Tuple[float, float, float]) -> Tuple[float, float, float]:
    return tuple(float(value) * FWHM_TO_SIGMA for value in fwhm)


@dataclass(frozen=True)
class PointSpreadFunction:
    """
    Separable Gaussian PSF.

    Parameters
    ----------
    fwhm : tuple of float
        Full width at half maximum along (x, y, z) in mm
    voxel_size : tuple of float
        Voxel spacing along (x, y, z) in mm
    """

    fwhm: Tuple[float, float, float]
    voxel_size: Tuple[float, float, float] = (1.0, 1.0, 1.0)

    def __post_init__(self):
        fwhm = tuple(float(v) for v in self.fwhm)
        voxel_size = tuple(float(v) for v in self.voxel_size)
        if len(fwhm) != 3 or len(voxel_size) != 3:
            raise ValueError("FWHM and voxel size need three components (x, y, z).")
        if not all(np.isfinite(v) and v >= 0.0 for v in fwhm):
            raise ValueError(f"FWHM must be finite and non-negative, got {fwhm}")
        if not all(np.isfinite(v) and v > 0.0 for v in voxel_size):
            raise ValueError(f"Voxel size must be finite and positive, got {voxel_size}")
        object.__setattr__(self, "fwhm", fwhm)
        object.__setattr__(self, "voxel_size", voxel_size)

    @classmethod
    def from_geometry(cls, fwhm, geometry) -> "PointSpreadFunction":
        return cls(
            fwhm=tuple(fwhm),
            voxel_size=(geometry.voxel_size_x, geometry.voxel_size_y, geometry.voxel_size_z),
        )

    @property
    def sigma_mm(self) -> Tuple[float, float, float]:
        return fwhm_to_sigma(self.fwhm)

    @property
    def variance_mm(self) -> Tuple[float, float, float]:
        return tuple(s ** 2 for s in self.sigma_mm)

    @property
    def variance_voxels(self) -> Tuple[float, float, float]:
        """Per-axis variance (x, y, z) in voxel units."""
        return tuple((s / v) ** 2 for s, v in zip(self.sigma_mm, self.voxel_size))

    @property
    def sigma_voxels(self) -> Tuple[float, float, float]:
        """Per-axis standard deviation in voxels, ordered (z, y, x) like the arrays."""
        sx, sy, sz = (s / v for s, v in zip(self.sigma_mm, self.voxel_size))
        return (sz, sy, sx)

    @property
    def is_identity(self) -> bool:
        return all(v == 0.0 for v in self.fwhm)
