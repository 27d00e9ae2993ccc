#!/usr/bin/env python3
"""
fMRIPrep to BrainVoyager file converters.

One conversion function per file category, and a converter object binding
them to a set of capabilities for the orchestrator.
"""

import logging
from pathlib import Path

import nibabel as nib
import numpy as np

from src.brainvoyager import formats
from src.brainvoyager.surface import check_file_names, convert_surf_to_srf
from src.fmriprep.patterns import FileCategory

logger = logging.getLogger("fmriprep2bv.converters")

NIFTI_EXTENSIONS = (".nii", ".nii.gz")
GIFTI_EXTENSIONS = (".gii", ".gii.gz")

# Used when a time series does not record its repetition time
DEFAULT_TR_MS = 2000.0


def _canonical_data(img, dtype):
    img = nib.as_closest_canonical(img)
    return img, img.get_fdata(dtype=dtype)


def _voxel_size(img):
    # RAS+ zooms reordered to BrainVoyager's X (A-P), Y (S-I), Z (R-L)
    zooms = img.header.get_zooms()[:3]
    return float(zooms[1]), float(zooms[2]), float(zooms[0])


def _repetition_time_ms(img):
    zooms = img.header.get_zooms()
    if len(zooms) < 4 or not zooms[3]:
        logger.warning(f"No repetition time found, using {DEFAULT_TR_MS} ms")
        return DEFAULT_TR_MS
    units = img.header.get_xyzt_units()[1]
    if units == "msec":
        return float(zooms[3])
    if units == "usec":
        return float(zooms[3]) / 1000.0
    return float(zooms[3]) * 1000.0


def convert_anat_to_vmr(save_name, file_name, capabilities):
    """
    Convert an fMRIPrep preprocessed T1w volume to a BrainVoyager VMR.

    Intensities are linearly rescaled to BrainVoyager's 0-225 range.
    """
    check_file_names(save_name, file_name, (".vmr",), NIFTI_EXTENSIONS)

    img, data = _canonical_data(capabilities.read_volume(file_name), np.float64)
    if data.ndim != 3:
        raise ValueError(f"Expected a 3-D anatomical volume, got {data.ndim} dimensions: {file_name}")

    low, high = float(data.min()), float(data.max())
    if high > low:
        scaled = (data - low) / (high - low) * formats.VMR_MAX_INTENSITY
    else:
        scaled = np.zeros_like(data)

    formats.write_vmr(
        save_name,
        np.rint(formats.ras_to_brainvoyager(scaled)).astype(np.uint8),
        voxel_size=_voxel_size(img),
        original_range=(low, float(data.mean()), high),
    )
    return Path(save_name)


def convert_func_to_vtc(save_name, file_name, capabilities):
    """Convert an fMRIPrep preprocessed BOLD series to a BrainVoyager VTC."""
    check_file_names(save_name, file_name, (".vtc",), NIFTI_EXTENSIONS)

    img, data = _canonical_data(capabilities.read_volume(file_name), np.float32)
    if data.ndim != 4:
        raise ValueError(f"Expected a 4-D functional series, got {data.ndim} dimensions: {file_name}")

    resolution = max(1, int(round(min(_voxel_size(img)))))
    formats.write_vtc(
        save_name,
        formats.ras_to_brainvoyager(data),
        resolution=resolution,
        tr=_repetition_time_ms(img),
        source_name=Path(file_name).name,
    )
    return Path(save_name)


def convert_func_to_mtc(save_name, file_name, capabilities):
    """Convert an fMRIPrep surface BOLD series (func.gii) to a BrainVoyager MTC."""
    check_file_names(save_name, file_name, (".mtc",), GIFTI_EXTENSIONS)

    data, tr = capabilities.read_surface_timeseries(file_name)
    if tr is None:
        logger.warning(f"No repetition time found in {file_name}, using {DEFAULT_TR_MS} ms")
        tr = DEFAULT_TR_MS

    formats.write_mtc(save_name, data, tr=tr, source_name=Path(file_name).name)
    return Path(save_name)


def convert_confounds_to_sdm(save_name, file_name, capabilities):
    """
    Convert an fMRIPrep confounds table to a BrainVoyager SDM.

    Missing values (e.g. the first row of derivative regressors) become 0.
    """
    check_file_names(save_name, file_name, (".sdm",), (".tsv",))

    table = capabilities.read_table(file_name).fillna(0)
    formats.write_sdm(save_name, table)
    return Path(save_name)


class BrainVoyagerConverter:
    """Per-category converters bound to one set of capabilities."""

    def __init__(self, capabilities):
        self.capabilities = capabilities

    def anatomical(self, save_name, file_name):
        return convert_anat_to_vmr(save_name, file_name, self.capabilities)

    def surface(self, save_name, file_name, trf=None):
        return convert_surf_to_srf(save_name, file_name, trf, capabilities=self.capabilities)

    def volume_timeseries(self, save_name, file_name):
        return convert_func_to_vtc(save_name, file_name, self.capabilities)

    def surface_timeseries(self, save_name, file_name):
        return convert_func_to_mtc(save_name, file_name, self.capabilities)

    def confounds(self, save_name, file_name):
        return convert_confounds_to_sdm(save_name, file_name, self.capabilities)

    def registry(self):
        """Mapping of file category to converter."""
        return {
            FileCategory.ANATOMICAL: self.anatomical,
            FileCategory.SURFACE: self.surface,
            FileCategory.VOLUME_TIMESERIES: self.volume_timeseries,
            FileCategory.SURFACE_TIMESERIES: self.surface_timeseries,
            FileCategory.CONFOUNDS: self.confounds,
        }
