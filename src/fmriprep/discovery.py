#!/usr/bin/env python3
"""
Discovery of fMRIPrep outputs.

This module walks an fMRIPrep derivatives directory, finds the subject
directories and sorts every file of a subject into the categories the
converter knows about.
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from src.fmriprep.patterns import FMRIPREP_FILE_PATTERNS, FileCategory

logger = logging.getLogger("fmriprep2bv.discovery")


class AmbiguousFileError(ValueError):
    """Raised when a file matches more than one category pattern."""


@dataclass(frozen=True)
class SubjectManifest:
    """Classified fMRIPrep files of one subject."""

    subject: str
    subject_dir: Path
    files: Dict[FileCategory, Tuple[Path, ...]] = field(default_factory=dict)
    transform: Optional[Path] = None

    def get(self, category):
        """Return the source files of ``category`` (empty tuple if none)."""
        return self.files.get(category, ())

    def __len__(self):
        return sum(len(files) for files in self.files.values())


def _relative_posix(path, root):
    return Path(path).relative_to(root).as_posix()


def classify_files(files, subject_dir, patterns=None):
    """
    Partition a file listing into categories.

    Parameters
    ----------
    files : iterable of Path
        Files found under ``subject_dir``
    subject_dir : Path
        Directory the patterns are matched relative to
    patterns : dict, optional
        Mapping of FileCategory to regular expression
        (default: FMRIPREP_FILE_PATTERNS)

    Returns
    -------
    dict
        FileCategory -> tuple of paths, in the order of ``files``. Every
        category of ``patterns`` is present, possibly with no files.

    Raises
    ------
    AmbiguousFileError
        If a file matches more than one pattern
    """
    patterns = patterns or FMRIPREP_FILE_PATTERNS
    compiled = {category: re.compile(pattern) for category, pattern in patterns.items()}
    classified = {category: [] for category in compiled}
    subject_dir = Path(subject_dir)

    for file_path in files:
        relative = _relative_posix(file_path, subject_dir)
        matches = [category for category, regex in compiled.items() if regex.search(relative)]
        if not matches:
            logger.debug(f"Ignoring unrecognized file: {relative}")
            continue
        if len(matches) > 1:
            names = ", ".join(category.name for category in matches)
            raise AmbiguousFileError(f"File {file_path} matches several categories: {names}")
        classified[matches[0]].append(Path(file_path))

    return {category: tuple(paths) for category, paths in classified.items()}


def _list_files(directory):
    return sorted(path for path in Path(directory).rglob("*") if not path.is_dir())


def _select_subjects(fmriprep_dir, participant_labels):
    subject_dirs = sorted(path for path in fmriprep_dir.glob("sub-*") if path.is_dir())
    if not participant_labels:
        return subject_dirs

    wanted = [label if label.startswith("sub-") else f"sub-{label}" for label in participant_labels]
    available = {path.name for path in subject_dirs}
    for label in wanted:
        if label not in available:
            logger.warning(f"Subject {label} not found in {fmriprep_dir}")
    return [path for path in subject_dirs if path.name in wanted]


def build_manifest(subject_dir):
    """
    Build the manifest of a single subject directory.

    Raises
    ------
    AmbiguousFileError
        If a file matches several categories, or more than one
        surface-to-anatomical transform is found
    """
    subject_dir = Path(subject_dir)
    classified = classify_files(_list_files(subject_dir), subject_dir)

    transforms = classified.pop(FileCategory.SURFACE_TO_ANAT_TRANSFORM, ())
    if len(transforms) > 1:
        raise AmbiguousFileError(
            f"Found {len(transforms)} surface-to-anatomical transforms for {subject_dir.name}"
        )

    manifest = SubjectManifest(
        subject=subject_dir.name,
        subject_dir=subject_dir,
        files=classified,
        transform=transforms[0] if transforms else None,
    )
    logger.info(f"Found {len(manifest)} files to convert for {manifest.subject}")
    for category, paths in classified.items():
        for path in paths:
            logger.debug(f"{category.name}: {path}")
    return manifest


def find_fmriprep_files(fmriprep_dir, participant_labels=None) -> List[SubjectManifest]:
    """
    Locate fMRIPrep files by subject.

    Parameters
    ----------
    fmriprep_dir : str or Path
        Path to the fMRIPrep derivatives directory
    participant_labels : iterable of str, optional
        Subjects to include, with or without the "sub-" prefix. Empty or
        None selects every subject.

    Returns
    -------
    list of SubjectManifest
        One manifest per subject, sorted by subject label

    Raises
    ------
    ValueError
        If ``fmriprep_dir`` is empty
    FileNotFoundError
        If ``fmriprep_dir`` is not an existing directory
    """
    if not fmriprep_dir:
        raise ValueError("Cannot provide empty 'fmriprep_dir'.")

    fmriprep_dir = Path(fmriprep_dir)
    if not fmriprep_dir.is_dir():
        raise FileNotFoundError(f"Unable to locate directory '{fmriprep_dir}'.")

    if isinstance(participant_labels, str):
        participant_labels = [participant_labels]

    subject_dirs = _select_subjects(fmriprep_dir, list(participant_labels or []))
    logger.info(f"Processing {len(subject_dirs)} subjects from {fmriprep_dir}")
    return [build_manifest(subject_dir) for subject_dir in subject_dirs]
