import numpy as np
import nibabel as nib
import pytest

from petpvc.cli.config import CorrectionConfig, parse_common_args
from petpvc.cli.run_iterative_yang import main as iy_main
from petpvc.cli.run_rbv import main as rbv_main
from petpvc.utils import save_image


def _mask_nifti(masks, path):
    # (k, z, y, x) -> (x, y, z, k)
    data = np.transpose(masks.as_array(), (3, 2, 1, 0)).astype(np.float32)
    nib.save(nib.Nifti1Image(data, masks.geometry.nifti_affine()), str(path))
    return path


@pytest.fixture
def inputs(tmp_path, three_region_masks, three_region_truth, blur):
    pet = tmp_path / "pet.nii.gz"
    save_image(blur.direct(three_region_truth), pet)
    mask = _mask_nifti(three_region_masks, tmp_path / "mask.nii.gz")
    return pet, mask


FWHM_ARGS = ["-x", "6", "-y", "6", "--FWHMz", "6", "--backend", "scipy"]


def test_parse_common_args_defaults(tmp_path):
    config, _ = parse_common_args(
        prog="petpvc-iy",
        description="",
        argv=["pet.nii", "mask.nii", "out.nii", "--FWHMx", "5", "--FWHMy", "4", "-z", "3"],
        include_iterations=True,
    )
    assert isinstance(config, CorrectionConfig)
    assert config.fwhm == (5.0, 4.0, 3.0)
    assert config.iterations == 10
    assert config.debug is False
    assert config.backend == "auto"


def test_parse_common_args_iterations_and_debug():
    config, _ = parse_common_args(
        prog="petpvc-iy",
        description="",
        argv=["p.nii", "m.nii", "o.nii", "-x", "1", "-y", "1", "-z", "1", "--iter", "3", "-d"],
        include_iterations=True,
    )
    assert config.iterations == 3
    assert config.debug is True


@pytest.mark.parametrize(
    "argv",
    [
        ["p.nii", "m.nii", "o.nii", "-x", "1", "-y", "1"],
        ["p.nii", "m.nii", "o.nii", "-x", "-1", "-y", "1", "-z", "1"],
        ["p.nii", "m.nii", "-x", "1", "-y", "1", "-z", "1"],
    ],
)
def test_invalid_arguments_exit_non_zero(argv):
    with pytest.raises(SystemExit) as excinfo:
        rbv_main(argv)
    assert excinfo.value.code != 0


def test_rbv_cli(inputs, tmp_path, three_region_truth):
    pet, mask = inputs
    output = tmp_path / "rbv.nii.gz"
    means = tmp_path / "means.csv"

    code = rbv_main([str(pet), str(mask), str(output), *FWHM_ARGS, "--means-csv", str(means)])

    assert code == 0
    corrected = nib.load(str(output)).get_fdata()
    expected = np.transpose(three_region_truth.as_array(), (2, 1, 0))
    np.testing.assert_allclose(corrected, expected, rtol=1e-3)

    lines = means.read_text().splitlines()
    assert lines[0] == "region,size,observed,corrected"
    assert len(lines) == 4
    assert float(lines[3].split(",")[3]) == pytest.approx(200.0, rel=1e-4)


def test_iy_cli(inputs, tmp_path):
    pet, mask = inputs
    output = tmp_path / "iy.nii"

    code = iy_main([str(pet), str(mask), str(output), *FWHM_ARGS, "--iter", "2", "--debug"])

    assert code == 0
    assert nib.load(str(output)).shape == (16, 12, 10)


def test_missing_pet_reports_path(inputs, tmp_path, capsys):
    _, mask = inputs
    missing = tmp_path / "missing.nii.gz"

    code = rbv_main([str(missing), str(mask), str(tmp_path / "out.nii"), *FWHM_ARGS])

    assert code == 1
    err = capsys.readouterr().err
    assert err.startswith("[Error]")
    assert str(missing) in err


def test_three_dimensional_mask_fails(inputs, tmp_path, capsys):
    pet, _ = inputs
    mask = tmp_path / "mask3d.nii"
    nib.save(nib.Nifti1Image(np.ones((16, 12, 10), dtype=np.float32), np.eye(4)), str(mask))

    code = iy_main([str(pet), str(mask), str(tmp_path / "out.nii"), *FWHM_ARGS])

    assert code == 1
    assert "must be 4-D" in capsys.readouterr().err


def test_singular_gtm_fails(tmp_path, geometry, capsys):
    # two identical regions make the transfer matrix singular
    region = np.ones(geometry.shape)
    data = np.stack([region, region], axis=-1).transpose(2, 1, 0, 3).astype(np.float32)
    mask = tmp_path / "mask.nii"
    nib.save(nib.Nifti1Image(data, geometry.nifti_affine()), str(mask))
    pet = tmp_path / "pet.nii"
    save_image(geometry.allocate(1.0), pet)

    code = rbv_main([str(pet), str(mask), str(tmp_path / "out.nii"), *FWHM_ARGS])

    assert code == 1
    err = capsys.readouterr().err
    assert "GTM inversion failed" in err
    assert str(pet) in err


@pytest.mark.parametrize("main", [rbv_main, iy_main])
def test_unsupported_output_format_fails_before_correction(main, inputs, tmp_path, capsys):
    pet, mask = inputs
    output = tmp_path / "result.img"

    code = main([str(pet), str(mask), str(output), *FWHM_ARGS])

    assert code == 1
    assert not output.exists()
    err = capsys.readouterr().err
    assert err.startswith("[Error]\twrite output failed: Unsupported file format: .img")
    assert str(output) in err
    assert "Regional means" not in err
