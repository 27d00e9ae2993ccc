#!/usr/bin/env python3
"""
Tests for the fMRIPrep to BrainVoyager command line interface.
"""

import json
from unittest.mock import patch

import nibabel as nib
import numpy as np
import pytest
from click.testing import CliRunner

from src.brainvoyager.errors import CapabilityError
from src.run import cli


def _summary(converted=0, failure=0, subjects_failure=0):
    return {
        "subjects": 1,
        "subjects_success": 1 - subjects_failure,
        "subjects_failure": subjects_failure,
        "converted": converted,
        "skipped": 0,
        "failure": failure,
    }


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def mock_capabilities():
    with patch("src.run.default_capabilities") as default_capabilities:
        yield default_capabilities


@pytest.fixture
def mock_wrapper():
    with patch("src.run.FmriprepToBrainVoyager") as wrapper_cls:
        wrapper = wrapper_cls.return_value
        wrapper.run.return_value = True
        wrapper.get_processing_summary.return_value = _summary(converted=1)
        yield wrapper_cls


def test_help(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "FMRIPREP_DIR" in result.output
    assert "--max_vertices" in result.output


def test_missing_fmriprep_dir(runner, tmp_path):
    result = runner.invoke(cli, [str(tmp_path / "does-not-exist")])
    assert result.exit_code == 2


def test_default_output_dir(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    result = runner.invoke(cli, [str(fmriprep_dataset)])

    assert result.exit_code == 0, result.output
    output_dir = mock_wrapper.call_args.args[0]
    assert output_dir == fmriprep_dataset.resolve().parent / "brainvoyager"
    mock_wrapper.return_value.write_dataset_description.assert_called_once()


def test_explicit_output_dir(runner, fmriprep_dataset, tmp_path, mock_capabilities, mock_wrapper):
    output_dir = tmp_path / "bv"
    result = runner.invoke(cli, [str(fmriprep_dataset), "--output_dir", str(output_dir)])

    assert result.exit_code == 0, result.output
    assert mock_wrapper.call_args.args[0] == output_dir.resolve()


def test_participant_label(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    result = runner.invoke(cli, [str(fmriprep_dataset), "--participant_label", "02"])

    assert result.exit_code == 0, result.output
    manifests = mock_wrapper.return_value.run.call_args.args[0]
    assert [manifest.subject for manifest in manifests] == ["sub-02"]


def test_all_participants_by_default(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    runner.invoke(cli, [str(fmriprep_dataset)])

    manifests = mock_wrapper.return_value.run.call_args.args[0]
    assert [manifest.subject for manifest in manifests] == ["sub-01", "sub-02"]


@pytest.mark.parametrize("args, expected", [([], False), (["--overwrite"], True)])
def test_overwrite_flag(runner, fmriprep_dataset, mock_capabilities, mock_wrapper, args, expected):
    runner.invoke(cli, [str(fmriprep_dataset)] + args)
    assert mock_wrapper.call_args.kwargs["overwrite"] is expected


def test_max_vertices_from_environment(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    result = runner.invoke(cli, [str(fmriprep_dataset)], env={"FMRIPREP2BV_MAX_VERTICES": "1000"})

    assert result.exit_code == 0, result.output
    mock_capabilities.assert_called_once_with(1000)
    mock_capabilities.return_value.validate.assert_called_once()


def test_invalid_max_vertices(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    result = runner.invoke(cli, [str(fmriprep_dataset), "--max_vertices", "0"])
    assert result.exit_code == 2


def test_failed_subject_exit_code(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    mock_wrapper.return_value.run.return_value = False
    mock_wrapper.return_value.get_processing_summary.return_value = _summary(subjects_failure=1)

    result = runner.invoke(cli, [str(fmriprep_dataset)])

    assert result.exit_code == 1
    mock_wrapper.return_value.save_processing_summary.assert_called_once()


def test_summary_not_saved_without_work(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    mock_wrapper.return_value.get_processing_summary.return_value = _summary()

    result = runner.invoke(cli, [str(fmriprep_dataset)])

    assert result.exit_code == 0
    mock_wrapper.return_value.save_processing_summary.assert_not_called()


def test_missing_capabilities(runner, fmriprep_dataset, mock_capabilities, mock_wrapper):
    mock_capabilities.return_value.validate.side_effect = CapabilityError(
        "Unable to load capabilities: reduce_mesh"
    )

    result = runner.invoke(cli, [str(fmriprep_dataset)])

    assert result.exit_code == 1
    assert isinstance(result.exception, CapabilityError)
    mock_wrapper.assert_not_called()


def test_log_file(runner, fmriprep_dataset, tmp_path, mock_capabilities, mock_wrapper):
    log_file = tmp_path / "logs" / "fmriprep2bv.log"
    result = runner.invoke(cli, [str(fmriprep_dataset), "--log_file", str(log_file)])

    assert result.exit_code == 0, result.output
    assert "Processing complete!" in log_file.read_text()


def test_convert_anatomical_end_to_end(runner, fmriprep_dataset, tmp_path):
    """sub-02 is converted with the real capabilities, then skipped on a second run."""
    pytest.importorskip("vtkmodules")
    t1w = fmriprep_dataset / "sub-02" / "anat" / "sub-02_desc-preproc_T1w.nii.gz"
    data = np.random.default_rng(0).uniform(0, 1000, size=(8, 9, 10)).astype(np.float32)
    nib.save(nib.Nifti1Image(data, np.eye(4)), str(t1w))
    output_dir = tmp_path / "bv"

    result = runner.invoke(cli, [str(fmriprep_dataset), "--output_dir", str(output_dir), "--participant_label", "sub-02"])

    assert result.exit_code == 0, result.output
    vmr = output_dir / "sub-02" / "anat" / "sub-02_desc-preproc_T1w.vmr"
    assert vmr.is_file()
    assert (output_dir / "dataset_description.json").is_file()
    summary_file = output_dir / "processing_summary.json"
    with open(summary_file) as f:
        assert json.load(f)["converted_list"] == [str(vmr.resolve())]

    summary_file.unlink()
    modified = vmr.stat().st_mtime_ns
    result = runner.invoke(cli, [str(fmriprep_dataset), "--output_dir", str(output_dir), "--participant_label", "02"])

    assert result.exit_code == 0, result.output
    assert vmr.stat().st_mtime_ns == modified
    assert not summary_file.exists()
