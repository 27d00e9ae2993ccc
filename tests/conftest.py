#!/usr/bin/env python3
"""
Shared fixtures for the fMRIPrep to BrainVoyager tests.
"""

import json

import pytest

SUB01_FILES = [
    "anat/sub-01_desc-preproc_T1w.nii.gz",
    "anat/sub-01_desc-brain_mask.nii.gz",
    "anat/sub-01_hemi-L_pial.surf.gii",
    "anat/sub-01_hemi-R_midthickness.surf.gii",
    "anat/sub-01_hemi-L_inflated.surf.gii",
    "anat/sub-01_from-fsnative_to-T1w_mode-image_xfm.txt",
    "ses-01/func/sub-01_ses-01_task-rest_desc-preproc_bold.nii.gz",
    "ses-01/func/sub-01_ses-01_task-rest_desc-confounds_timeseries.tsv",
    "ses-01/func/sub-01_ses-01_task-rest_hemi-L_space-fsnative_bold.func.gii",
    "func/sub-01_task-motor_desc-preproc_bold.nii.gz",
    "func/sub-01_task-motor_desc-confounds_timeseries.tsv",
    "func/sub-01_task-motor_desc-confounds_timeseries.json",
]

SUB02_FILES = [
    "anat/sub-02_desc-preproc_T1w.nii.gz",
]


@pytest.fixture
def fmriprep_dataset(tmp_path):
    """Create an fMRIPrep derivatives tree with empty placeholder files."""
    fmriprep_dir = tmp_path / "fmriprep"
    fmriprep_dir.mkdir()

    with open(fmriprep_dir / "dataset_description.json", "w") as f:
        json.dump({"Name": "fMRIPrep - fMRI PREProcessing workflow", "DatasetType": "derivative"}, f)

    for subject, files in (("sub-01", SUB01_FILES), ("sub-02", SUB02_FILES)):
        for relative in files:
            path = fmriprep_dir / subject / relative
            path.parent.mkdir(parents=True, exist_ok=True)
            path.touch()

    # fMRIPrep reports sit next to the subject folders
    (fmriprep_dir / "sub-01.html").touch()
    (fmriprep_dir / "logs").mkdir()

    return fmriprep_dir
