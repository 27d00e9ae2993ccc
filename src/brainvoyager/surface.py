#!/usr/bin/env python3
"""
Conversion of fMRIPrep surfaces to BrainVoyager SRF files.

Surfaces are moved from fMRIPrep's coordinate convention to BrainVoyager's,
transformed into the anatomical space and saved. A surface too large for the
writer is decimated a little more after every failed attempt, down to a third
of its faces, and saved under a name recording how much of it was kept.
"""

import logging
from pathlib import Path

import numpy as np

from src.brainvoyager.capabilities import WriteStatus, default_capabilities
from src.brainvoyager.errors import CapabilityError, MeshReductionError, UnsupportedExtensionError
from src.brainvoyager.formats import SurfaceColors
from src.utils import get_extension, split_filename

logger = logging.getLogger("fmriprep2bv.surface")

SAVE_EXTENSIONS = (".srf",)
FILE_EXTENSIONS = (".gii", ".gii.gz", ".midthick", ".pial", ".smoothwm")

# LPI to ASR axis permutation and reflection
LPI_TO_ASR = np.array([[0, 0, -1], [-1, 0, 0], [0, -1, 0]], dtype=np.float64)
BRAINVOYAGER_CENTER = 128.0

# Proportions are tracked in whole percent
START_PERCENT = 99
MIN_PERCENT = 33


def check_file_names(save_name, file_name, save_extensions, file_extensions):
    """
    Validate the target and source of a conversion.

    Raises
    ------
    UnsupportedExtensionError
        If either extension is not accepted
    FileNotFoundError
        If ``file_name`` does not exist
    """
    if not save_name:
        raise ValueError("Cannot provide empty 'save_name'.")
    if not file_name:
        raise ValueError("Cannot provide empty 'file_name'.")

    save_ext = get_extension(save_name)
    if save_ext not in save_extensions:
        raise UnsupportedExtensionError(
            f"Unrecognized 'save_name' extension ({save_ext}). "
            f"Extension must be {', '.join(save_extensions)}."
        )

    file_ext = get_extension(file_name)
    if file_ext not in file_extensions:
        raise UnsupportedExtensionError(
            f"Unrecognized 'file_name' extension ({file_ext}). "
            f"Accepted extensions: {', '.join(file_extensions)}"
        )

    if not Path(file_name).is_file():
        raise FileNotFoundError(f"Unable to locate file '{file_name}'.")


def reduced_save_name(save_name, percent):
    """
    Insert a ``res-reduce<percent>`` entity before the last name segment.

    >>> reduced_save_name("anat/sub-01_hemi-L_pial.srf", 98)
    PosixPath('anat/sub-01_hemi-L_res-reduce98_pial.srf')
    """
    directory, base, ext = split_filename(save_name)
    parts = base.split("_")
    parts.insert(len(parts) - 1, f"res-reduce{percent}")
    return directory / ("_".join(parts) + ext)


def find_reduced_outputs(save_name):
    """Previously written reduced versions of ``save_name``."""
    pattern = reduced_save_name(save_name, "*")
    return sorted(pattern.parent.glob(pattern.name))


def lpi_to_asr(vertices):
    """Move vertex coordinates to BrainVoyager's ASR convention."""
    return (np.asarray(vertices, dtype=np.float64) - BRAINVOYAGER_CENTER) @ LPI_TO_ASR


def brainvoyager_transform(ras_affine):
    """
    Express a RAS+ vertex transform in BrainVoyager's ASR space.

    ``apply_transform(lpi_to_asr(v), brainvoyager_transform(A))`` equals
    ``lpi_to_asr(apply_transform(v, A))``.
    """
    remap = np.eye(4)
    remap[:3, :3] = LPI_TO_ASR.T
    remap[:3, 3] = -LPI_TO_ASR.T @ np.full(3, BRAINVOYAGER_CENTER)
    return remap @ np.asarray(ras_affine, dtype=np.float64) @ np.linalg.inv(remap)


def apply_transform(vertices, trf):
    """Apply a 4x4 affine to (N, 3) vertex coordinates."""
    homogeneous = np.column_stack([vertices, np.ones(len(vertices))])
    return (homogeneous @ np.asarray(trf, dtype=np.float64).T)[:, :3]


def save_surface(save_name, vertices, faces, capabilities):
    """
    Save a surface, reducing it until the writer accepts it.

    The first attempt writes the mesh as is. After each attempt rejected for
    size, the current mesh is decimated to ``p`` of its faces, with ``p``
    starting at 0.99 and dropping by 0.01 per attempt. No reduction is made
    at or below 0.33.

    Returns
    -------
    Path
        The file actually written; reduced surfaces carry a
        ``res-reduceNN`` entity, NN being the percentage of the last
        reduction applied.

    Raises
    ------
    MeshReductionError
        If the surface is still too large at the lowest proportion
    """
    percent = START_PERCENT
    while True:
        if percent < START_PERCENT:
            target = reduced_save_name(save_name, percent + 1)
        else:
            target = Path(save_name)

        status = capabilities.write_mesh(target, vertices, faces, SurfaceColors.default(len(vertices)))
        if status is WriteStatus.OK:
            if percent < START_PERCENT:
                logger.info(f"  Saved reduced surface ({percent + 1}%): {target}")
            return target
        if status is not WriteStatus.CAPACITY_EXCEEDED:
            raise CapabilityError(f"Surface writer returned an unknown status: {status!r}")

        if percent <= MIN_PERCENT:
            raise MeshReductionError(
                f"Surface {save_name} is too large to save, even after reducing it to "
                f"{MIN_PERCENT + 1}% of its faces"
            )

        logger.info(f"  Surface too large ({len(faces)} faces), reducing mesh to {percent}%")
        vertices, faces = capabilities.reduce_mesh(vertices, faces, percent / 100)
        percent -= 1


def convert_surf_to_srf(save_name, file_name, trf=None, capabilities=None):
    """
    Convert an fMRIPrep surface to a BrainVoyager SRF file.

    Parameters
    ----------
    save_name : str or Path
        Name to save the BrainVoyager file as, e.g.
        ``[...]_hemi-L_smoothwm.srf``
    file_name : str or Path
        fMRIPrep surface, e.g. ``[...]_hemi-L_smoothwm.surf.gii``
        (.gii, .gii.gz, .midthick, .pial or .smoothwm)
    trf : np.ndarray, optional
        4x4 transformation matrix applied to the surface (default identity)
    capabilities : Capabilities, optional
        Mesh read/write/reduce operations (default: nibabel and VTK backed)

    Returns
    -------
    Path
        The file written, which differs from ``save_name`` when the surface
        had to be reduced
    """
    check_file_names(save_name, file_name, SAVE_EXTENSIONS, FILE_EXTENSIONS)

    trf = np.eye(4) if trf is None else np.asarray(trf, dtype=np.float64)
    if trf.shape != (4, 4):
        raise ValueError(f"Transformation matrix must be 4x4, got shape {trf.shape}")

    if capabilities is None:
        capabilities = default_capabilities().validate()

    vertices, faces = capabilities.read_mesh(file_name)
    vertices = apply_transform(lpi_to_asr(vertices), trf)
    faces = np.asarray(faces, dtype=np.int64)

    return save_surface(save_name, vertices, faces, capabilities)
