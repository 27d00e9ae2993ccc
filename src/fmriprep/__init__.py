"""
fMRIPrep derivatives discovery package

This package locates the files of an fMRIPrep output tree, sorts them into
categories and plans where their BrainVoyager counterparts are written.
"""

from .discovery import AmbiguousFileError, SubjectManifest, classify_files, find_fmriprep_files
from .patterns import FileCategory
from .planner import TargetPlan, default_output_dir, plan_outputs

__all__ = [
    "AmbiguousFileError",
    "FileCategory",
    "SubjectManifest",
    "TargetPlan",
    "classify_files",
    "default_output_dir",
    "find_fmriprep_files",
    "plan_outputs",
]
