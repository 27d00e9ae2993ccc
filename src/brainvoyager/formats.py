#!/usr/bin/env python3
"""
BrainVoyager file writers.

Writers for anatomical volumes (VMR), surfaces (SRF), volume time courses
(VTC), surface time courses (MTC) and design matrices (SDM). All binary
formats are little-endian.
"""

import logging
import struct
from dataclasses import dataclass

import numpy as np

logger = logging.getLogger("fmriprep2bv.formats")

SRF_VERSION = 4.0
VMR_VERSION = 4
VTC_VERSION = 3
MTC_VERSION = 1
SDM_VERSION = 1

# BrainVoyager reserves intensities above 225 for colour look-up entries
VMR_MAX_INTENSITY = 225
VMR_FRAMING_CUBE = 256

RADIOLOGICAL = 1
NATIVE_SPACE = 1


@dataclass(frozen=True)
class SurfaceColors:
    """Colour information stored in a BrainVoyager surface."""

    vertex_colors: np.ndarray
    convex_rgba: tuple = (0.322, 0.733, 0.98, 1.0)
    concave_rgba: tuple = (0.322, 0.733, 0.98, 1.0)

    @classmethod
    def default(cls, n_vertices):
        return cls(vertex_colors=np.zeros(n_vertices, dtype=np.int32))


def _pack(f, fmt, *values):
    f.write(struct.pack("<" + fmt, *values))


def _write_string(f, value):
    f.write(value.encode("utf-8") + b"\x00")


def _write_array(f, array, dtype):
    f.write(np.ascontiguousarray(array, dtype=np.dtype(dtype).newbyteorder("<")).tobytes())


def ras_to_brainvoyager(data):
    """
    Reorder an array in RAS+ voxel order to BrainVoyager's file order.

    BrainVoyager's X axis runs anterior to posterior, Y superior to inferior
    and Z right to left, the same ASR convention as surface coordinates.
    The returned array is indexed (Z, Y, X) so that X varies fastest on
    disk; any trailing (time) axes are kept last.
    """
    flipped = np.flip(data, axis=(0, 1, 2))
    return flipped.transpose((0, 2, 1) + tuple(range(3, data.ndim)))


def write_vmr(save_name, data, voxel_size=(1.0, 1.0, 1.0), original_range=(0, 0, 0)):
    """
    Write an 8-bit anatomical volume.

    Parameters
    ----------
    save_name : str or Path
        Output .vmr file
    data : np.ndarray
        (Z, Y, X) uint8 volume in BrainVoyager axis order
    voxel_size : tuple, optional
        Voxel size along X, Y, Z in mm
    original_range : tuple, optional
        (min, mean, max) intensities before rescaling
    """
    data = np.asarray(data, dtype=np.uint8)
    dim_z, dim_y, dim_x = data.shape
    framing_cube = max(VMR_FRAMING_CUBE, dim_x, dim_y, dim_z)

    with open(save_name, "wb") as f:
        _pack(f, "4H", VMR_VERSION, dim_x, dim_y, dim_z)
        _write_array(f, data, np.uint8)

        _pack(f, "4h", 0, 0, 0, framing_cube)
        _pack(f, "2i", 0, 0)  # position infos verified, coordinate system
        _pack(f, "12f", *([0.0] * 12))  # slice centers and row/column directions
        _pack(f, "2i", dim_y, dim_x)
        _pack(f, "4f", dim_y * voxel_size[1], dim_x * voxel_size[0], voxel_size[2], 0.0)
        _pack(f, "i", 0)  # past spatial transformations
        _pack(f, "2B", RADIOLOGICAL, NATIVE_SPACE)
        _pack(f, "3f", *voxel_size)
        _pack(f, "2B", 1, 1)
        _pack(f, "3i", *(int(round(value)) for value in original_range))

    logger.debug(f"Wrote VMR {save_name} ({dim_x}x{dim_y}x{dim_z})")


def write_srf(save_name, vertices, faces, normals, neighbors, colors, mesh_center=128.0):
    """
    Write a BrainVoyager surface.

    Parameters
    ----------
    save_name : str or Path
        Output .srf file
    vertices : np.ndarray
        (N, 3) vertex coordinates in BrainVoyager space
    faces : np.ndarray
        (M, 3) triangle vertex indices
    normals : np.ndarray
        (N, 3) vertex normals
    neighbors : tuple
        (counts, indices) as returned by ``mesh.vertex_neighbors``
    colors : SurfaceColors
        Vertex colours and convex/concave shading colours
    mesh_center : float, optional
        Center coordinate of the mesh (default 128)
    """
    vertices = np.asarray(vertices)
    faces = np.asarray(faces)
    counts, indices = neighbors

    # Each vertex is stored as its neighbour count followed by the neighbours
    offsets = np.concatenate([[0], np.cumsum(counts)[:-1]]) + np.arange(len(counts))
    neighbor_block = np.empty(len(counts) + len(indices), dtype=np.int64)
    is_count = np.zeros(len(neighbor_block), dtype=bool)
    is_count[offsets] = True
    neighbor_block[is_count] = counts
    neighbor_block[~is_count] = indices

    with open(save_name, "wb") as f:
        _pack(f, "f", SRF_VERSION)
        _pack(f, "i", 0)
        _pack(f, "2i", len(vertices), len(faces))
        _pack(f, "3f", mesh_center, mesh_center, mesh_center)
        _write_array(f, vertices.T, np.float32)
        _write_array(f, np.asarray(normals).T, np.float32)
        _pack(f, "4f", *colors.convex_rgba)
        _pack(f, "4f", *colors.concave_rgba)
        _write_array(f, colors.vertex_colors, np.int32)
        _write_array(f, neighbor_block, np.int32)
        _write_array(f, faces, np.int32)
        _pack(f, "i", 0)  # triangle strip elements
        _write_string(f, "")  # linked MTC

    logger.debug(f"Wrote SRF {save_name} ({len(vertices)} vertices, {len(faces)} triangles)")


def write_vtc(save_name, data, resolution, tr, source_name=""):
    """
    Write a float volume time course.

    Parameters
    ----------
    save_name : str or Path
        Output .vtc file
    data : np.ndarray
        (Z, Y, X, T) time series in BrainVoyager axis order
    resolution : int
        Functional voxel size relative to the anatomical space, in mm
    tr : float
        Repetition time in milliseconds
    source_name : str, optional
        Name of the source functional file stored in the header
    """
    data = np.asarray(data, dtype=np.float32)
    dim_z, dim_y, dim_x, n_volumes = data.shape

    with open(save_name, "wb") as f:
        _pack(f, "H", VTC_VERSION)
        _write_string(f, source_name)
        _pack(f, "H", 0)  # linked protocols
        _pack(f, "H", 0)  # current protocol
        _pack(f, "H", 2)  # data type: float32
        _pack(f, "2H", n_volumes, resolution)
        _pack(
            f,
            "6H",
            0, dim_x * resolution,
            0, dim_y * resolution,
            0, dim_z * resolution,
        )
        _pack(f, "2B", RADIOLOGICAL, NATIVE_SPACE)
        _pack(f, "f", tr)
        _write_array(f, data, np.float32)

    logger.debug(f"Wrote VTC {save_name} ({dim_x}x{dim_y}x{dim_z}, {n_volumes} volumes)")


def write_mtc(save_name, data, tr, source_name=""):
    """
    Write a surface (mesh) time course.

    Parameters
    ----------
    save_name : str or Path
        Output .mtc file
    data : np.ndarray
        (vertices, time points) time series, stored vertex by vertex
    tr : float
        Repetition time in milliseconds
    source_name : str, optional
        Name of the source file stored in the header
    """
    data = np.asarray(data, dtype=np.float32)
    n_vertices, n_timepoints = data.shape

    with open(save_name, "wb") as f:
        _pack(f, "i", MTC_VERSION)
        _pack(f, "2I", n_vertices, n_timepoints)
        _write_string(f, source_name)
        _write_string(f, "")  # linked protocol
        _pack(f, "i", 0)  # hemodynamic delay
        _pack(f, "3f", tr, 2.5, 1.25)  # TR, HRF delta, HRF tau
        _pack(f, "2i", int(round(tr)), 0)  # segment size, segment offset
        _pack(f, "B", 1)  # data type: float32
        _write_array(f, data, np.float32)

    logger.debug(f"Wrote MTC {save_name} ({n_vertices} vertices, {n_timepoints} time points)")


def predictor_colors(n_predictors, seed=0):
    """Deterministic RGB colours for design matrix predictors."""
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(n_predictors, 3))


def write_sdm(save_name, table):
    """
    Write a design matrix (SDM) from a table of predictors.

    Parameters
    ----------
    save_name : str or Path
        Output .sdm file
    table : pandas.DataFrame
        One column per predictor, one row per data point, no missing values
    """
    n_points, n_predictors = table.shape
    colors = predictor_colors(n_predictors)

    with open(save_name, "w") as f:
        f.write(f"FileVersion:            {SDM_VERSION}\n\n")
        f.write(f"NrOfPredictors:         {n_predictors}\n")
        f.write(f"NrOfDataPoints:         {n_points}\n")
        f.write("IncludesConstant:       0\n")
        f.write("FirstConfoundPredictor: 1\n\n")
        f.write("   ".join(" ".join(str(c) for c in rgb) for rgb in colors) + "\n")
        f.write(" ".join(f'"{name}"' for name in table.columns) + "\n")
        for row in table.to_numpy(dtype=float):
            f.write(" ".join(f"{value:.6f}" for value in row) + "\n")

    logger.debug(f"Wrote SDM {save_name} ({n_predictors} predictors, {n_points} data points)")
