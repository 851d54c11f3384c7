"""Tests for NIfTI I/O functionality."""

import numpy as np
import nibabel as nib
import pytest
import tempfile
from pathlib import Path

from petpvc.exceptions import ImageIOError, InvalidMaskError, UnsupportedFormatError
from petpvc.utils import check_nifti_path, get_array, load_image, load_mask, save_image


def _write(data, path, voxel_sizes=(2.0, 2.0, 3.0)):
    affine = np.diag([voxel_sizes[0], voxel_sizes[1], voxel_sizes[2], 1.0])
    nib.save(nib.Nifti1Image(np.asarray(data, dtype=np.float32), affine), str(path))
    return path


def test_nifti_load_save_roundtrip():
    """Test loading and saving NIfTI files with ImageData."""
    data = np.random.rand(10, 12, 8).astype(np.float32)

    with tempfile.TemporaryDirectory() as tmpdir:
        tmpdir = Path(tmpdir)
        nifti_path = _write(data, tmpdir / "test.nii.gz")

        img = load_image(nifti_path)

        # Check shape (should be transposed: x,y,z -> z,y,x)
        loaded_data = img.as_array()
        assert loaded_data.shape == (8, 12, 10), f"Expected (8, 12, 10), got {loaded_data.shape}"
        np.testing.assert_allclose(loaded_data, np.transpose(data, (2, 1, 0)), rtol=1e-6)

        geom = img.geometry
        assert geom.voxel_size_x == pytest.approx(2.0)
        assert geom.voxel_size_y == pytest.approx(2.0)
        assert geom.voxel_size_z == pytest.approx(3.0)

        output_path = tmpdir / "output.nii"
        save_image(img, output_path)

        nii_output = nib.load(str(output_path))
        np.testing.assert_allclose(nii_output.get_fdata(), data, rtol=1e-6)
        np.testing.assert_allclose(nii_output.affine, np.diag([2.0, 2.0, 3.0, 1.0]))


def test_single_frame_4d_image_is_accepted(tmp_path):
    path = _write(np.ones((4, 5, 6, 1)), tmp_path / "pet.nii")
    assert load_image(path).shape == (6, 5, 4)


def test_multi_frame_image_is_rejected(tmp_path):
    path = _write(np.ones((4, 5, 6, 3)), tmp_path / "pet.nii")
    with pytest.raises(ImageIOError, match="must be 3-D"):
        load_image(path)


def test_load_mask_reorders_regions(tmp_path):
    data = np.zeros((4, 5, 6, 2))
    data[:2, ..., 0] = 1.0
    data[2:, ..., 1] = 1.0
    masks = load_mask(_write(data, tmp_path / "mask.nii.gz"))

    assert len(masks) == 2
    assert masks.shape == (2, 6, 5, 4)
    np.testing.assert_array_equal(masks.region_array(0), np.transpose(data[..., 0], (2, 1, 0)))
    np.testing.assert_array_equal(masks.region_sizes(), [2 * 5 * 6, 2 * 5 * 6])
    assert masks.geometry.voxel_size_z == pytest.approx(3.0)


def test_three_dimensional_mask_file_is_rejected(tmp_path):
    path = _write(np.ones((4, 5, 6)), tmp_path / "mask.nii")
    with pytest.raises(InvalidMaskError, match="must be 4-D"):
        load_mask(path)


def test_mask_with_invalid_values_names_the_file(tmp_path):
    path = _write(np.full((4, 5, 6, 2), 3.0), tmp_path / "mask.nii")
    with pytest.raises(InvalidMaskError) as excinfo:
        load_mask(path)
    assert excinfo.value.path == path


def test_missing_file_raises_image_io_error(tmp_path):
    missing = tmp_path / "missing.nii.gz"
    with pytest.raises(ImageIOError) as excinfo:
        load_image(missing)
    assert excinfo.value.path == missing
    assert isinstance(excinfo.value, OSError)


def test_corrupt_file_raises_image_io_error(tmp_path):
    corrupt = tmp_path / "corrupt.nii"
    corrupt.write_bytes(b"this is not a nifti file")
    with pytest.raises(ImageIOError, match="Cannot read mask input file"):
        load_mask(corrupt)


def test_unwritable_output_raises_image_io_error(tmp_path, geometry):
    with pytest.raises(ImageIOError, match="Cannot write output file"):
        save_image(geometry.allocate(1.0), tmp_path / "no" / "such" / "dir" / "out.nii")


def test_load_unsupported_format():
    """Test that loading unsupported formats raises an error."""
    with pytest.raises(ValueError, match="Unsupported file format"):
        load_image("test.txt")

    with pytest.raises(ValueError, match="Unsupported file format"):
        load_mask("test.hv")


def test_save_unsupported_format(geometry):
    """Test that saving to unsupported formats raises an error."""
    with pytest.raises(ValueError, match="Unsupported file format"):
        save_image(geometry.allocate(1.0), "test.txt")


@pytest.mark.parametrize(
    "call, stage",
    [
        (lambda p: load_image(p), "read PET"),
        (lambda p: load_mask(p), "read mask"),
        (lambda p: check_nifti_path(p), "write output"),
    ],
)
def test_unsupported_format_names_stage_and_file(call, stage, tmp_path):
    path = tmp_path / "volume.img"
    with pytest.raises(UnsupportedFormatError) as excinfo:
        call(path)

    error = excinfo.value
    assert isinstance(error, ImageIOError)
    assert error.path == path
    assert error.stage == stage
    assert error.describe().startswith(f"{stage} failed: Unsupported file format: .img")
    assert str(path) in error.describe()


def test_check_nifti_path_accepts_nifti_names():
    assert check_nifti_path("out.nii") == Path("out.nii")
    assert check_nifti_path("dir/out.nii.gz") == Path("dir/out.nii.gz")


def test_get_array(geometry, two_region_masks):
    arr = np.zeros((2, 2, 2))
    assert get_array(arr) is arr
    assert get_array(geometry.allocate(2.0)).shape == geometry.shape
    assert get_array(two_region_masks).shape == (2,) + geometry.shape
    assert get_array([1, 2]).tolist() == [1, 2]
