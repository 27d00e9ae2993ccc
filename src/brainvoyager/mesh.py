#!/usr/bin/env python3
"""
Surface mesh helpers.

Reading of GIfTI and FreeSurfer surfaces, mesh decimation with VTK, and the
per-vertex structures (neighbours, normals) BrainVoyager surfaces carry.
"""

import gzip
import logging

import nibabel as nib
import numpy as np
from scipy.sparse import csr_matrix

from src.brainvoyager.errors import UnsupportedExtensionError
from src.utils import get_extension

logger = logging.getLogger("fmriprep2bv.mesh")

GIFTI_EXTENSIONS = (".gii", ".gii.gz")
FREESURFER_EXTENSIONS = (".midthick", ".pial", ".smoothwm")

# ITK stores affines in LPS coordinates
LPS_TO_RAS = np.diag([-1.0, -1.0, 1.0, 1.0])

# FreeSurfer LTA transform types
LTA_RAS_TO_RAS = 1


def _load_gifti(path):
    if get_extension(path) == ".gii.gz":
        with gzip.open(path, "rb") as f:
            return nib.GiftiImage.from_bytes(f.read())
    return nib.load(str(path))


def read_mesh(path):
    """
    Read a triangulated surface.

    Parameters
    ----------
    path : str or Path
        GIfTI (.gii, .gii.gz) or FreeSurfer (.midthick, .pial, .smoothwm)
        surface file

    Returns
    -------
    tuple
        (vertices, faces) as (N, 3) float and (M, 3) integer arrays
    """
    ext = get_extension(path)
    if ext in GIFTI_EXTENSIONS:
        vertices, faces = _load_gifti(path).agg_data(("pointset", "triangle"))
    elif ext in FREESURFER_EXTENSIONS:
        vertices, faces = nib.freesurfer.read_geometry(str(path))
    else:
        raise UnsupportedExtensionError(f"Cannot read surface with extension '{ext}': {path}")
    return np.asarray(vertices, dtype=np.float64), np.asarray(faces, dtype=np.int64)


def read_surface_timeseries(path):
    """
    Read a GIfTI functional time series.

    Returns
    -------
    tuple
        (data, tr) where data is (vertices, time points) and tr is the
        repetition time in milliseconds, or None when the file does not
        record it
    """
    gii = _load_gifti(path)
    data = gii.agg_data()
    if isinstance(data, tuple):
        # Arrays without a time series intent come back one per time point
        data = np.column_stack(data)
    data = np.asarray(data, dtype=np.float32)
    if data.ndim == 1:
        data = data[:, np.newaxis]

    tr = None
    if gii.darrays:
        time_step = gii.darrays[0].meta.get("TimeStep")
        if time_step:
            tr = float(time_step)
            # Values this small are seconds
            if tr < 100:
                tr *= 1000.0
    return data, tr


def reduce_mesh(vertices, faces, proportion):
    """
    Decimate a mesh to a proportion of its faces with vtkDecimatePro.

    Parameters
    ----------
    vertices : np.ndarray, shape (N, 3)
    faces : np.ndarray, shape (M, 3)
    proportion : float
        Fraction of faces to keep, in (0, 1]

    Returns
    -------
    tuple
        (vertices, faces) of the reduced mesh
    """
    from vtkmodules.util.numpy_support import numpy_to_vtk, numpy_to_vtkIdTypeArray, vtk_to_numpy
    from vtkmodules.vtkCommonCore import vtkPoints
    from vtkmodules.vtkCommonDataModel import vtkCellArray, vtkPolyData
    from vtkmodules.vtkFiltersCore import vtkDecimatePro

    vertices = np.ascontiguousarray(vertices, dtype=np.float64)
    faces = np.asarray(faces, dtype=np.int64)

    points = vtkPoints()
    points.SetData(numpy_to_vtk(vertices, deep=True))

    # Legacy cell layout: [3, i, j, k, 3, i, j, k, ...]
    connectivity = np.column_stack([np.full(len(faces), 3, dtype=np.int64), faces]).ravel()
    cells = vtkCellArray()
    cells.ImportLegacyFormat(numpy_to_vtkIdTypeArray(connectivity, deep=True))

    polydata = vtkPolyData()
    polydata.SetPoints(points)
    polydata.SetPolys(cells)

    decimate = vtkDecimatePro()
    decimate.SetInputData(polydata)
    decimate.SetTargetReduction(1.0 - proportion)
    decimate.PreserveTopologyOn()
    decimate.Update()

    decimated = decimate.GetOutput()
    reduced_vertices = vtk_to_numpy(decimated.GetPoints().GetData()).astype(np.float64)
    # vtkDecimatePro only outputs triangles
    reduced_faces = vtk_to_numpy(decimated.GetPolys().GetConnectivityArray()).reshape(-1, 3)
    logger.debug(f"Reduced mesh from {len(faces)} to {len(reduced_faces)} faces")
    return reduced_vertices, reduced_faces.astype(np.int64)


def mesh_adjacency(faces, n_vertices):
    """Binary, symmetric vertex adjacency matrix of a triangle mesh."""
    faces = np.asarray(faces, dtype=np.int64)
    rows = np.hstack([faces[:, 0], faces[:, 0], faces[:, 1], faces[:, 1], faces[:, 2], faces[:, 2]])
    cols = np.hstack([faces[:, 1], faces[:, 2], faces[:, 0], faces[:, 2], faces[:, 0], faces[:, 1]])
    adjacency = csr_matrix((np.ones_like(rows), (rows, cols)), shape=(n_vertices, n_vertices))
    adjacency = (adjacency > 0).astype(np.int32)
    adjacency.sort_indices()
    return adjacency


def vertex_neighbors(faces, n_vertices):
    """
    Neighbour lists of every vertex.

    Returns
    -------
    tuple
        (counts, indices): number of neighbours per vertex and the
        concatenated, per-vertex sorted neighbour indices
    """
    adjacency = mesh_adjacency(faces, n_vertices)
    return np.diff(adjacency.indptr), adjacency.indices.astype(np.int64)


def vertex_normals(vertices, faces):
    """Unit vertex normals, the normalized sum of adjacent face normals."""
    vertices = np.asarray(vertices, dtype=np.float64)
    faces = np.asarray(faces, dtype=np.int64)
    face_normals = np.cross(
        vertices[faces[:, 1]] - vertices[faces[:, 0]],
        vertices[faces[:, 2]] - vertices[faces[:, 0]],
    )
    normals = np.zeros_like(vertices)
    for corner in range(3):
        np.add.at(normals, faces[:, corner], face_normals)

    norms = np.linalg.norm(normals, axis=1)
    norms[norms < np.finfo(float).eps] = 1.0
    return normals / norms[:, np.newaxis]


def _parse_itk_transform(lines):
    values = {}
    for line in lines:
        if ":" in line and not line.startswith("#"):
            key, _, value = line.partition(":")
            values[key.strip()] = value.strip()
    parameters = np.array(values["Parameters"].split(), dtype=float)
    center = np.array(values.get("FixedParameters", "0 0 0").split(), dtype=float)
    if parameters.size != 12 or center.size != 3:
        raise ValueError("Only 3-D affine ITK transforms are supported")

    matrix = parameters[:9].reshape(3, 3)
    offset = parameters[9:] + center - matrix @ center
    affine = np.eye(4)
    affine[:3, :3] = matrix
    affine[:3, 3] = offset

    # ITK maps points of the fixed (target) space into the moving (source)
    # space; vertices are carried the other way
    return np.linalg.inv(LPS_TO_RAS @ affine @ LPS_TO_RAS)


def _parse_lta_transform(path, lines):
    values = {}
    for line in lines:
        if "=" in line and not line.startswith("#"):
            key, _, value = line.partition("=")
            values[key.strip()] = value.split("#")[0].strip()

    lta_type = int(values.get("type", LTA_RAS_TO_RAS))
    if lta_type != LTA_RAS_TO_RAS:
        raise ValueError(f"Only RAS-to-RAS LTA transforms are supported, {path} has type {lta_type}")

    start = next(i for i, line in enumerate(lines) if line.split() == ["1", "4", "4"]) + 1
    return np.array([line.split() for line in lines[start:start + 4]], dtype=float)


def load_transform(path):
    """
    Load an affine transform from a text file.

    Accepts a plain 4x4 (or 3x4) whitespace-separated matrix, an ITK
    ``MatrixOffsetTransformBase`` text transform or a FreeSurfer LTA file, as
    written by fMRIPrep for ``from-fsnative_to-T1w`` transforms.

    The result maps surface vertices, in RAS+ millimetres, from the source
    space to the target space. ITK transforms are converted from LPS and
    inverted to match; plain matrices and RAS-to-RAS LTA matrices are taken
    as they are.

    Returns
    -------
    np.ndarray
        4x4 affine matrix

    Raises
    ------
    ValueError
        If the file holds none of the supported formats
    """
    with open(path, "r") as f:
        lines = [line.strip() for line in f if line.strip()]

    if any(line.startswith("Parameters:") for line in lines):
        return _parse_itk_transform(lines)
    if any(line.split() == ["1", "4", "4"] for line in lines):
        return _parse_lta_transform(path, lines)

    try:
        matrix = np.array([line.split() for line in lines if not line.startswith("#")], dtype=float)
    except ValueError as e:
        raise ValueError(
            f"Unable to read a transform from {path}: expected a 4x4 matrix, "
            f"an ITK text transform or an LTA file"
        ) from e
    if matrix.shape == (3, 4):
        matrix = np.vstack([matrix, [0.0, 0.0, 0.0, 1.0]])
    if matrix.shape != (4, 4):
        raise ValueError(f"Expected a 4x4 affine matrix in {path}, found shape {matrix.shape}")
    return matrix
