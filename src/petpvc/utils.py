"""Utility functions for the petpvc package."""

from pathlib import Path

import nibabel as nib
import numpy as np
from nibabel.affines import voxel_sizes as nifti_voxel_sizes
from nibabel.filebasedimages import ImageFileError
from nibabel.spatialimages import HeaderDataError

from petpvc.exceptions import ImageIOError, InvalidMaskError, UnsupportedFormatError
from petpvc.image import ImageData, ImageGeometry, RegionMaskSet

NIFTI_SUFFIXES = ('.nii', '.nii.gz')


def get_array(x):
    """
    Extract numpy array from various data containers.

    Parameters
    ----------
    x : object
        Data container (ImageData, RegionMaskSet or numpy array)

    Returns
    -------
    np.ndarray
        Numpy array representation
    """
    if hasattr(x, 'as_array'):
        return x.as_array()
    elif isinstance(x, np.ndarray):
        return x
    else:
        return np.asarray(x)


def _is_nifti(filepath: Path) -> bool:
    return str(filepath).endswith(NIFTI_SUFFIXES)


def check_nifti_path(filepath, stage: str = "write output") -> Path:
    """Return ``filepath`` as a Path, raising UnsupportedFormatError unless it is NIfTI."""
    filepath = Path(filepath)
    if not _is_nifti(filepath):
        raise UnsupportedFormatError(
            f"Unsupported file format: {filepath.suffix}. "
            "Supported formats: .nii, .nii.gz",
            path=filepath,
            stage=stage,
        )
    return filepath


def _read_nifti(filepath: Path, description: str):
    """Return (data, affine) of a NIfTI file, float64, in NIfTI (x, y, z, ...) order."""
    if not filepath.exists():
        raise ImageIOError(
            f"Cannot read {description} input file: {filepath} (no such file)",
            path=filepath,
            stage=f"read {description}",
        )
    try:
        nii = nib.load(str(filepath))
        data = np.asarray(nii.get_fdata(dtype=np.float64))
    except (OSError, EOFError, ValueError, ImageFileError, HeaderDataError) as e:
        raise ImageIOError(
            f"Cannot read {description} input file: {filepath} ({e})",
            path=filepath,
            stage=f"read {description}",
        ) from e
    return data, nii.affine


def _geometry(spatial_shape_xyz, affine) -> ImageGeometry:
    voxel_sizes = nifti_voxel_sizes(affine)
    return ImageGeometry(
        voxel_num_x=int(spatial_shape_xyz[0]),
        voxel_num_y=int(spatial_shape_xyz[1]),
        voxel_num_z=int(spatial_shape_xyz[2]),
        voxel_size_x=float(voxel_sizes[0]),
        voxel_size_y=float(voxel_sizes[1]),
        voxel_size_z=float(voxel_sizes[2]),
        affine=np.asarray(affine, dtype=np.float64),
    )


def load_image(filepath, description: str = "PET") -> ImageData:
    """
    Load a 3-D NIfTI image.

    Parameters
    ----------
    filepath : str or Path
        Path to .nii or .nii.gz file
    description : str, optional
        Name used in error messages (default: "PET")

    Returns
    -------
    ImageData
        Image in (z, y, x) order with its geometry
    """
    filepath = check_nifti_path(filepath, stage=f"read {description}")
    data, affine = _read_nifti(filepath, description)

    # single-frame 4-D files are accepted as 3-D
    if data.ndim == 4 and data.shape[3] == 1:
        data = data[..., 0]
    if data.ndim != 3:
        raise ImageIOError(
            f"{description} file: {filepath} must be 3-D, got shape {data.shape}",
            path=filepath,
            stage=f"read {description}",
        )

    # NIfTI is (x, y, z); arrays are (z, y, x)
    return ImageData(np.transpose(data, (2, 1, 0)), _geometry(data.shape, affine))


def load_mask(filepath) -> RegionMaskSet:
    """
    Load a 4-D NIfTI mask with one region per volume.

    Raises
    ------
    InvalidMaskError
        If the file is not 4-D or its values are not valid memberships
    """
    filepath = check_nifti_path(filepath, stage="read mask")
    data, affine = _read_nifti(filepath, "mask")

    # (x, y, z, 1, k) files written by some tools
    if data.ndim == 5 and data.shape[3] == 1:
        data = data[:, :, :, 0, :]
    if data.ndim != 4:
        raise InvalidMaskError(
            f"Mask file: {filepath} must be 4-D!", path=filepath, stage="read mask"
        )

    try:
        return RegionMaskSet(np.transpose(data, (3, 2, 1, 0)), _geometry(data.shape[:3], affine))
    except InvalidMaskError as e:
        raise InvalidMaskError(f"Mask file: {filepath}: {e}", path=filepath, stage="read mask") from e


def save_image(image, filepath) -> None:
    """
    Save an image to file.

    Parameters
    ----------
    image : ImageData
        Image in (z, y, x) order
    filepath : str or Path
        Output file path (.nii, .nii.gz)
    """
    filepath = check_nifti_path(filepath, stage="write output")

    # Get array and transpose back to NIfTI convention
    data = np.transpose(get_array(image), (2, 1, 0)).astype(np.float32)
    geometry = getattr(image, 'geometry', None)
    if geometry is not None:
        affine = geometry.nifti_affine()
    else:
        affine = np.eye(4)

    try:
        nib.save(nib.Nifti1Image(data, affine), str(filepath))
    except (OSError, ValueError, ImageFileError) as e:
        raise ImageIOError(
            f"Cannot write output file: {filepath} ({e})",
            path=filepath,
            stage="write output",
        ) from e
