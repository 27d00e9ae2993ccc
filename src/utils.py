#!/usr/bin/env python3
"""
Utility functions for the fMRIPrep to BrainVoyager converter.

This module provides common utility functions used across the application,
including filename handling, version checks, and logging configuration.
"""

import datetime
import logging
import os
import sys
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

# Extensions made of more than one dot-separated part, longest first
MULTIPART_EXTENSIONS = (".nii.gz", ".gii.gz")


def split_filename(file_name):
    """
    Split a file path into directory, base name and extension.

    Parameters
    ----------
    file_name : str or Path
        Path to split

    Returns
    -------
    tuple
        (directory, base name, extension). Known compressed extensions such
        as ``.nii.gz`` are returned whole; inner markers like ``.surf`` in
        ``*.surf.gii`` stay part of the base name.

    Examples
    --------
    >>> split_filename("/data/sub-01_desc-preproc_T1w.nii.gz")
    (PosixPath('/data'), 'sub-01_desc-preproc_T1w', '.nii.gz')
    >>> split_filename("sub-01_hemi-L_pial.surf.gii")
    (PosixPath('.'), 'sub-01_hemi-L_pial.surf', '.gii')
    """
    path = Path(file_name)
    name = path.name
    for ext in MULTIPART_EXTENSIONS:
        if name.endswith(ext):
            return path.parent, name[: -len(ext)], ext
    return path.parent, path.stem, path.suffix


def get_extension(file_name):
    """Return the (possibly multi-part) extension of ``file_name``."""
    return split_filename(file_name)[2]


def setup_logging(log_level=logging.INFO, log_file=None):
    """
    Configure logging for the application.

    Parameters
    ----------
    log_level : int, optional
        Logging level (e.g., logging.INFO, logging.DEBUG)
    log_file : str, optional
        Path to log file (if None, logs to console only)
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Reset root logger
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers = [logging.FileHandler(log_file), logging.StreamHandler()]
    else:
        handlers = [logging.StreamHandler()]

    logging.basicConfig(level=log_level, format=log_format, handlers=handlers)

    # Silence overly verbose packages
    logging.getLogger("nibabel").setLevel(logging.WARNING)
    logging.getLogger("bids").setLevel(logging.WARNING)


def get_version_info():
    """
    Get version information for the application and its numeric stack.

    Returns
    -------
    dict
        Dictionary containing version information for all components
    """
    version_info = {
        "fmriprep2bv": {
            "version": "unknown",
            "timestamp": datetime.datetime.now().isoformat(),
        },
        "python": {"version": sys.version, "packages": {}},
    }

    try:
        version_info["fmriprep2bv"]["version"] = version("fmriprep2bv")
    except PackageNotFoundError:
        logging.warning("fmriprep2bv is not installed; version unknown")

    for package in ["numpy", "pandas", "nibabel", "scipy", "vtk", "pybids"]:
        try:
            version_info["python"]["packages"][package] = version(package)
        except PackageNotFoundError:
            pass

    return version_info
