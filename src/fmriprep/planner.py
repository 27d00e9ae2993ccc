#!/usr/bin/env python3
"""
Output path planning for BrainVoyager derivatives.

Given a subject manifest, derive the BrainVoyager file name and directory of
every source file and create the directory tree before conversion starts.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Tuple

from bids.layout import parse_file_entities

from src.fmriprep.patterns import CONVERSION_ORDER, FUNCTIONAL_CATEGORIES, FileCategory
from src.utils import split_filename

logger = logging.getLogger("fmriprep2bv.planner")

BRAINVOYAGER_DIRNAME = "brainvoyager"


@dataclass(frozen=True)
class TargetPlan:
    """BrainVoyager targets of one subject, parallel to its manifest."""

    subject_dir: Path
    files: Dict[FileCategory, Tuple[Path, ...]] = field(default_factory=dict)
    directories: Tuple[Path, ...] = ()

    def get(self, category):
        return self.files.get(category, ())


def default_output_dir(fmriprep_dir):
    """Return the ``brainvoyager`` directory next to the fMRIPrep directory."""
    return Path(fmriprep_dir).resolve().parent / BRAINVOYAGER_DIRNAME


def convert_filename(file_name, category):
    """
    Derive the BrainVoyager file name of a source file.

    Parameters
    ----------
    file_name : str or Path
        fMRIPrep file
    category : FileCategory
        Category the file was classified into

    Returns
    -------
    str
        Target file name (no directory)
    """
    _, base, _ = split_filename(file_name)
    if category == FileCategory.ANATOMICAL:
        return f"{base}.vmr"
    if category == FileCategory.SURFACE:
        return base.replace(".surf", ".srf")
    if category == FileCategory.VOLUME_TIMESERIES:
        return f"{base}.vtc"
    if category == FileCategory.SURFACE_TIMESERIES:
        return base.replace(".func", ".mtc")
    if category == FileCategory.CONFOUNDS:
        return f"{base}.sdm"
    raise ValueError(f"No BrainVoyager file type for category {category.name}")


def extract_session(file_name):
    """Return the ``ses-<label>`` directory name of a file, or None."""
    session = parse_file_entities(Path(file_name).name).get("session")
    return f"ses-{session}" if session else None


def _target_directory(subject_out, source, category):
    if category in FUNCTIONAL_CATEGORIES:
        session = extract_session(source)
        return subject_out / session if session else subject_out
    return subject_out / "anat"


def plan_outputs(manifest, output_dir, create=True):
    """
    Plan the BrainVoyager outputs of a subject.

    Parameters
    ----------
    manifest : SubjectManifest
        Classified source files of the subject
    output_dir : str or Path
        Root BrainVoyager output directory
    create : bool, optional
        Create the target directories (default True)

    Returns
    -------
    TargetPlan
        One target per source file, in source order
    """
    subject_out = Path(output_dir) / manifest.subject
    targets = {}
    directories = []

    for category in CONVERSION_ORDER:
        planned = []
        for source in manifest.get(category):
            directory = _target_directory(subject_out, source, category)
            planned.append(directory / convert_filename(source, category))
            if directory not in directories:
                directories.append(directory)
        targets[category] = tuple(planned)

    plan = TargetPlan(subject_dir=subject_out, files=targets, directories=tuple(directories))

    if create:
        for directory in plan.directories:
            directory.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Created directory {directory}")

    return plan
