"""In-memory image containers shared by every correction stage.

Arrays are held in ``(z, y, x)`` order (``(k, z, y, x)`` for region masks) and
always travel with the :class:`ImageGeometry` describing their grid.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from petpvc.exceptions import InvalidMaskError


@dataclass(frozen=True)
class ImageGeometry:
    voxel_num_x: int
    voxel_num_y: int
    voxel_num_z: int
    voxel_size_x: float = 1.0
    voxel_size_y: float = 1.0
    voxel_size_z: float = 1.0
    affine: Optional[np.ndarray] = field(default=None, compare=False, repr=False)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return (self.voxel_num_z, self.voxel_num_y, self.voxel_num_x)

    @property
    def voxel_sizes(self) -> Tuple[float, float, float]:
        """Voxel sizes as (z, y, x) in mm."""
        return (self.voxel_size_z, self.voxel_size_y, self.voxel_size_x)

    @classmethod
    def from_shape(cls, shape, voxel_sizes=(1.0, 1.0, 1.0), affine=None) -> "ImageGeometry":
        """Build a geometry from a (z, y, x) shape and (z, y, x) voxel sizes."""
        nz, ny, nx = (int(n) for n in shape)
        sz, sy, sx = (float(s) for s in voxel_sizes)
        return cls(
            voxel_num_x=nx,
            voxel_num_y=ny,
            voxel_num_z=nz,
            voxel_size_x=sx,
            voxel_size_y=sy,
            voxel_size_z=sz,
            affine=affine,
        )

    def nifti_affine(self) -> np.ndarray:
        if self.affine is not None:
            return np.asarray(self.affine, dtype=np.float64)
        return np.diag([self.voxel_size_x, self.voxel_size_y, self.voxel_size_z, 1.0])

    def is_compatible(self, other: "ImageGeometry", rtol: float = 1e-4) -> bool:
        if self.shape != other.shape:
            return False
        return bool(np.allclose(self.voxel_sizes, other.voxel_sizes, rtol=rtol, atol=0.0))

    def allocate(self, value: float = 0.0) -> "ImageData":
        return ImageData(np.full(self.shape, value, dtype=np.float64), self)


class ImageData:
    """
    A 3-D volume of floating point samples on a fixed grid.

    Operations never modify the operands in place; elementwise arithmetic with
    another ImageData or a scalar returns a new ImageData on the same geometry.

    Parameters
    ----------
    array : array_like
        Samples in (z, y, x) order
    geometry : ImageGeometry, optional
        Grid descriptor. Unit voxels are assumed if omitted.
    """

    __array_priority__ = 1000

    def __init__(self, array, geometry: Optional[ImageGeometry] = None):
        data = np.array(array, dtype=np.float64)
        if data.ndim != 3:
            raise ValueError(f"ImageData must be 3-D, got shape {data.shape}")
        if geometry is None:
            geometry = ImageGeometry.from_shape(data.shape)
        elif geometry.shape != data.shape:
            raise ValueError(
                f"Array shape {data.shape} does not match geometry shape {geometry.shape}"
            )
        data.setflags(write=False)
        self._data = data
        self.geometry = geometry

    @property
    def shape(self):
        return self._data.shape

    def as_array(self) -> np.ndarray:
        return self._data

    def clone(self) -> "ImageData":
        return ImageData(self._data.copy(), self.geometry)

    def sum(self) -> float:
        return float(np.sum(self._data))

    def _wrap(self, values) -> "ImageData":
        return ImageData(values, self.geometry)

    def _operand(self, other):
        if isinstance(other, ImageData):
            if other.shape != self.shape:
                raise ValueError(f"Shape mismatch: {self.shape} vs {other.shape}")
            return other.as_array()
        return other

    def __add__(self, other):
        return self._wrap(self._data + self._operand(other))

    __radd__ = __add__

    def __sub__(self, other):
        return self._wrap(self._data - self._operand(other))

    def __rsub__(self, other):
        return self._wrap(self._operand(other) - self._data)

    def __mul__(self, other):
        return self._wrap(self._data * self._operand(other))

    __rmul__ = __mul__

    def __truediv__(self, other):
        return self._wrap(self._data / self._operand(other))

    def __repr__(self):
        return f"ImageData(shape={self.shape}, geometry={self.geometry!r})"


class RegionMaskSet:
    """
    Ordered stack of per-region indicator (or fuzzy membership) volumes.

    Parameters
    ----------
    masks : array_like
        Region channels stacked as (k, z, y, x), values in [0, 1]
    geometry : ImageGeometry, optional
        Grid shared by every channel. Unit voxels are assumed if omitted.
    tolerance : float, optional
        Allowed excursion outside [0, 1] before a mask is rejected
        (default: 1e-6)

    Raises
    ------
    InvalidMaskError
        If the stack is not 4-D, holds no region, does not match the geometry,
        or has values that are not finite or lie outside [0, 1].
    """

    def __init__(self, masks, geometry: Optional[ImageGeometry] = None, tolerance: float = 1e-6):
        data = np.array(masks, dtype=np.float64)
        if data.ndim != 4:
            raise InvalidMaskError(
                f"Mask must be 4-D (region, z, y, x), got {data.ndim}-D array",
                stage="mask",
            )
        if data.shape[0] < 1:
            raise InvalidMaskError("Mask must contain at least one region", stage="mask")
        if geometry is None:
            geometry = ImageGeometry.from_shape(data.shape[1:])
        elif geometry.shape != data.shape[1:]:
            raise InvalidMaskError(
                f"Mask grid {data.shape[1:]} does not match geometry {geometry.shape}",
                stage="mask",
            )
        if not np.all(np.isfinite(data)):
            raise InvalidMaskError("Mask contains non-finite values", stage="mask")
        if data.min() < -tolerance or data.max() > 1.0 + tolerance:
            raise InvalidMaskError(
                f"Mask values must lie in [0, 1], found [{data.min()}, {data.max()}]",
                stage="mask",
            )
        data.setflags(write=False)
        self._data = data
        self.geometry = geometry

    def __len__(self) -> int:
        return self._data.shape[0]

    @property
    def num_regions(self) -> int:
        return len(self)

    @property
    def shape(self):
        return self._data.shape

    def as_array(self) -> np.ndarray:
        return self._data

    def region_array(self, index: int) -> np.ndarray:
        return self._data[index]

    def region(self, index: int) -> ImageData:
        """Extract region ``index`` (0-based) as a volume."""
        return ImageData(self._data[index], self.geometry)

    def region_sizes(self) -> np.ndarray:
        """Voxel count (or fuzzy weighted sum) of every region."""
        return self._data.reshape(len(self), -1).sum(axis=1)

    def check_aligned(self, image: ImageData) -> None:
        """Raise InvalidMaskError unless ``image`` lives on the mask grid."""
        if not self.geometry.is_compatible(image.geometry):
            raise InvalidMaskError(
                "Mask grid does not match image grid: "
                f"shape {self.geometry.shape} vs {image.geometry.shape}, "
                f"voxel sizes {self.geometry.voxel_sizes} vs {image.geometry.voxel_sizes}",
                stage="mask",
            )
