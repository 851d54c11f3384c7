import logging
import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from petpvc.algorithms.rbv import synthetic_volume  # noqa: E402
from petpvc.image import ImageGeometry, RegionMaskSet  # noqa: E402
from petpvc.operators.blurring import GaussianBlurringOperator  # noqa: E402
from petpvc.operators.psf import PointSpreadFunction  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger("petpvc")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def geometry():
    # (z, y, x) = (10, 12, 16) voxels of 2 mm
    return ImageGeometry.from_shape((10, 12, 16), voxel_sizes=(2.0, 2.0, 2.0))


@pytest.fixture
def two_region_masks(geometry):
    """Two binary regions splitting the volume along x; together they cover every voxel."""
    left = np.zeros(geometry.shape)
    left[:, :, :8] = 1.0
    right = 1.0 - left
    return RegionMaskSet(np.stack([left, right]), geometry)


@pytest.fixture
def three_region_masks(geometry):
    """Background, a slab and a small cube embedded in the slab."""
    cube = np.zeros(geometry.shape)
    cube[3:7, 4:8, 6:10] = 1.0
    slab = np.zeros(geometry.shape)
    slab[2:8, :, :] = 1.0
    slab -= cube
    background = 1.0 - slab - cube
    return RegionMaskSet(np.stack([background, slab, cube]), geometry)


@pytest.fixture
def psf(geometry):
    return PointSpreadFunction.from_geometry((6.0, 6.0, 6.0), geometry)


@pytest.fixture
def blur(psf):
    return GaussianBlurringOperator(psf, backend="scipy")


@pytest.fixture
def identity_blur(geometry):
    return GaussianBlurringOperator(
        PointSpreadFunction.from_geometry((0.0, 0.0, 0.0), geometry), backend="scipy"
    )


@pytest.fixture
def step_image(two_region_masks):
    """Piecewise constant truth: 100 in the left region, 20 in the right."""
    return synthetic_volume(two_region_masks, [100.0, 20.0])


@pytest.fixture
def three_region_truth(three_region_masks):
    return synthetic_volume(three_region_masks, [5.0, 40.0, 200.0])
