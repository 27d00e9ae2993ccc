#!/usr/bin/env python3
"""
Tests for mesh reading, reduction and per-vertex structures.
"""

import gzip
import warnings

import nibabel as nib
import numpy as np
import pytest

from src.brainvoyager.errors import UnsupportedExtensionError
from src.brainvoyager.mesh import (
    load_transform,
    read_mesh,
    read_surface_timeseries,
    reduce_mesh,
    vertex_neighbors,
    vertex_normals,
)

TETRA_VERTICES = np.array([[0.0, 0.0, 0.0], [1.0, 0.0, 0.0], [0.0, 1.0, 0.0], [0.0, 0.0, 1.0]])
TETRA_FACES = np.array([[0, 2, 1], [0, 1, 3], [0, 3, 2], [1, 2, 3]])


def _surface_gifti(vertices, faces):
    return nib.gifti.GiftiImage(
        darrays=[
            nib.gifti.GiftiDataArray(vertices.astype(np.float32), intent="NIFTI_INTENT_POINTSET"),
            nib.gifti.GiftiDataArray(faces.astype(np.int32), intent="NIFTI_INTENT_TRIANGLE"),
        ]
    )


def _grid_mesh(n=12):
    """Flat n x n grid of vertices split into triangles."""
    xs, ys = np.meshgrid(np.arange(n, dtype=float), np.arange(n, dtype=float))
    vertices = np.column_stack([xs.ravel(), ys.ravel(), np.zeros(n * n)])
    faces = []
    for row in range(n - 1):
        for col in range(n - 1):
            i = row * n + col
            faces.append([i, i + 1, i + n])
            faces.append([i + 1, i + n + 1, i + n])
    return vertices, np.array(faces)


def test_read_gifti_surface(tmp_path):
    path = tmp_path / "sub-01_hemi-L_pial.surf.gii"
    nib.save(_surface_gifti(TETRA_VERTICES, TETRA_FACES), str(path))

    vertices, faces = read_mesh(path)
    np.testing.assert_allclose(vertices, TETRA_VERTICES)
    np.testing.assert_array_equal(faces, TETRA_FACES)
    assert vertices.dtype == np.float64


def test_read_compressed_gifti_surface(tmp_path):
    path = tmp_path / "lh.pial.gii.gz"
    with gzip.open(path, "wb") as f:
        f.write(_surface_gifti(TETRA_VERTICES, TETRA_FACES).to_bytes())

    vertices, faces = read_mesh(path)
    np.testing.assert_array_equal(faces, TETRA_FACES)


def test_read_freesurfer_surface(tmp_path):
    path = tmp_path / "lh.pial"
    nib.freesurfer.write_geometry(str(path), TETRA_VERTICES, TETRA_FACES)

    vertices, faces = read_mesh(path)
    np.testing.assert_allclose(vertices, TETRA_VERTICES, atol=1e-6)
    np.testing.assert_array_equal(faces, TETRA_FACES)


def test_read_unknown_surface(tmp_path):
    with pytest.raises(UnsupportedExtensionError):
        read_mesh(tmp_path / "lh.obj")


def test_read_surface_timeseries(tmp_path):
    path = tmp_path / "sub-01_task-rest_hemi-L_bold.func.gii"
    darrays = [
        nib.gifti.GiftiDataArray(
            np.full(6, t, dtype=np.float32),
            intent="NIFTI_INTENT_TIME_SERIES",
            meta=nib.gifti.GiftiMetaData({"TimeStep": "2.0"}),
        )
        for t in range(4)
    ]
    nib.save(nib.gifti.GiftiImage(darrays=darrays), str(path))

    data, tr = read_surface_timeseries(path)
    assert data.shape == (6, 4)
    np.testing.assert_allclose(data[0], [0, 1, 2, 3])
    assert tr == 2000.0


def test_vertex_neighbors():
    counts, indices = vertex_neighbors(TETRA_FACES, 4)
    np.testing.assert_array_equal(counts, [3, 3, 3, 3])
    np.testing.assert_array_equal(indices[:3], [1, 2, 3])


def test_vertex_neighbors_isolated_vertex():
    counts, indices = vertex_neighbors(TETRA_FACES, 5)
    assert counts[-1] == 0
    assert len(indices) == 12


def test_vertex_normals_are_unit_length():
    normals = vertex_normals(TETRA_VERTICES, TETRA_FACES)
    np.testing.assert_allclose(np.linalg.norm(normals, axis=1), 1.0)


def test_vertex_normals_flat_mesh():
    vertices, faces = _grid_mesh(4)
    normals = vertex_normals(vertices, faces)
    np.testing.assert_allclose(np.abs(normals[:, 2]), 1.0)


def test_reduce_mesh():
    pytest.importorskip("vtkmodules")
    vertices, faces = _grid_mesh()
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        reduced_vertices, reduced_faces = reduce_mesh(vertices, faces, 0.5)

    assert not [w for w in caught if "SetCells" in str(w.message)]
    assert 0 < len(reduced_faces) < len(faces)
    assert reduced_faces.shape[1] == 3
    assert reduced_faces.max() < len(reduced_vertices)


def test_load_plain_transform(tmp_path):
    path = tmp_path / "xfm.txt"
    trf = np.eye(4)
    trf[:3, 3] = [1.5, -2.0, 3.0]
    np.savetxt(path, trf)

    np.testing.assert_allclose(load_transform(path), trf)


def test_load_3x4_transform(tmp_path):
    path = tmp_path / "xfm.txt"
    path.write_text("1 0 0 5\n0 1 0 6\n0 0 1 7\n")

    trf = load_transform(path)
    assert trf.shape == (4, 4)
    np.testing.assert_allclose(trf[3], [0, 0, 0, 1])
    np.testing.assert_allclose(trf[:3, 3], [5, 6, 7])


def test_load_itk_transform(tmp_path):
    path = tmp_path / "sub-01_from-fsnative_to-T1w_mode-image_xfm.txt"
    path.write_text(
        "#Insight Transform File V1.0\n"
        "#Transform 0\n"
        "Transform: MatrixOffsetTransformBase_double_3_3\n"
        "Parameters: 1 0 0 0 1 0 0 0 1 0.5 -1 2\n"
        "FixedParameters: 0 0 0\n"
    )

    trf = load_transform(path)
    np.testing.assert_allclose(trf[:3, :3], np.eye(3))
    # LPS translation (0.5, -1, 2) in RAS is (-0.5, 1, 2), inverted for vertices
    np.testing.assert_allclose(trf[:3, 3], [0.5, -1, -2])


def test_load_itk_transform_with_center(tmp_path):
    path = tmp_path / "xfm.txt"
    path.write_text(
        "Transform: MatrixOffsetTransformBase_double_3_3\n"
        "Parameters: 0 -1 0 1 0 0 0 0 1 0 0 0\n"
        "FixedParameters: 1 1 0\n"
    )

    trf = load_transform(path)
    # The center of rotation, (1, 1, 0) in LPS, is a fixed point
    np.testing.assert_allclose(trf @ [-1, -1, 0, 1], [-1, -1, 0, 1])
    # A 90 degree rotation is inverted
    np.testing.assert_allclose(trf[:3, :3], [[0, 1, 0], [-1, 0, 0], [0, 0, 1]], atol=1e-12)


LTA_TEMPLATE = """# transform file sub-01_from-fsnative_to-T1w_mode-image_xfm.txt
type      = {lta_type} # LINEAR_RAS_TO_RAS
nxforms   = 1
mean      = 0.0000 0.0000 0.0000
sigma     = 1.0000
1 4 4
1.0 0.0 0.0 1.5
0.0 1.0 0.0 -2.0
0.0 0.0 1.0 3.0
0.0 0.0 0.0 1.0
src volume info
valid = 1  # volume info valid
filename = /out/sourcedata/freesurfer/sub-01/mri/T1.mgz
volume = 256 256 256
"""


def test_load_lta_transform(tmp_path):
    path = tmp_path / "sub-01_from-fsnative_to-T1w_mode-image_xfm.txt"
    path.write_text(LTA_TEMPLATE.format(lta_type=1))

    trf = load_transform(path)
    np.testing.assert_allclose(trf[:3, :3], np.eye(3))
    np.testing.assert_allclose(trf[:3, 3], [1.5, -2.0, 3.0])


def test_load_voxel_lta_transform(tmp_path):
    path = tmp_path / "xfm.txt"
    path.write_text(LTA_TEMPLATE.format(lta_type=0))
    with pytest.raises(ValueError, match="RAS-to-RAS"):
        load_transform(path)


def test_load_invalid_transform(tmp_path):
    path = tmp_path / "xfm.txt"
    path.write_text("1 0\n0 1\n")
    with pytest.raises(ValueError, match="4x4"):
        load_transform(path)


def test_load_unrecognized_transform(tmp_path):
    path = tmp_path / "xfm.txt"
    path.write_text("transform version 2\n1 0 0 0\n0 1 0 0\n")
    with pytest.raises(ValueError, match="Unable to read a transform from .*xfm.txt"):
        load_transform(path)
