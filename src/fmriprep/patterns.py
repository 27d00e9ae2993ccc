#!/usr/bin/env python3
"""
fMRIPrep file categories and the naming patterns that define them.
"""

from enum import Enum


class FileCategory(Enum):
    """Kinds of fMRIPrep outputs handled by the converter."""

    ANATOMICAL = "anat"
    SURFACE = "surf"
    VOLUME_TIMESERIES = "vtc"
    SURFACE_TIMESERIES = "mtc"
    CONFOUNDS = "confounds"
    SURFACE_TO_ANAT_TRANSFORM = "surf2anat"


# Accepted fMRIPrep surface mesh kinds
SURFACE_TYPES = ("midthickness", "pial", "smoothwm")

# Patterns are matched against the POSIX path relative to the subject directory
FMRIPREP_FILE_PATTERNS = {
    FileCategory.ANATOMICAL: r"anat/[\w-]+_desc-preproc_T1w\.nii\.gz$",
    FileCategory.SURFACE: r"anat/[\w-]+_(%s)\.surf\.gii$" % "|".join(SURFACE_TYPES),
    FileCategory.VOLUME_TIMESERIES: r"func/[\w-]+_desc-preproc_bold\.nii\.gz$",
    FileCategory.SURFACE_TIMESERIES: r"func/[\w-]+_bold\.func\.gii$",
    FileCategory.CONFOUNDS: r"func/[\w-]+_desc-confounds_timeseries\.tsv$",
    FileCategory.SURFACE_TO_ANAT_TRANSFORM: r"anat/[\w-]+_from-fsnative_to-T1w_mode-image_xfm\.txt$",
}

# Categories converted to BrainVoyager files, in processing order
CONVERSION_ORDER = (
    FileCategory.ANATOMICAL,
    FileCategory.SURFACE,
    FileCategory.VOLUME_TIMESERIES,
    FileCategory.SURFACE_TIMESERIES,
    FileCategory.CONFOUNDS,
)

# Categories written next to the subject (or session) rather than under anat/
FUNCTIONAL_CATEGORIES = (
    FileCategory.VOLUME_TIMESERIES,
    FileCategory.SURFACE_TIMESERIES,
    FileCategory.CONFOUNDS,
)

CATEGORY_DESCRIPTIONS = {
    FileCategory.ANATOMICAL: "Anatomical Volumes",
    FileCategory.SURFACE: "Surfaces",
    FileCategory.VOLUME_TIMESERIES: "Volume Time Courses",
    FileCategory.SURFACE_TIMESERIES: "Surface Time Courses",
    FileCategory.CONFOUNDS: "Functional Confounds",
}
