#!/usr/bin/env python3
"""
Capabilities used by the BrainVoyager converters.

The readers, writers and the mesh reduction routine are gathered in a single
provider object that is created and validated once, before any subject is
processed, and then handed to the converters.
"""

import importlib.util
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Callable, Dict, Optional

import nibabel as nib
import pandas as pd

from src.brainvoyager import formats, mesh
from src.brainvoyager.errors import CapabilityError

logger = logging.getLogger("fmriprep2bv.capabilities")

# Largest surface BrainVoyager is asked to hold; bigger meshes get reduced
DEFAULT_MAX_VERTICES = 2 ** 18

CAPABILITY_NAMES = (
    "read_mesh",
    "write_mesh",
    "reduce_mesh",
    "load_transform",
    "read_volume",
    "read_surface_timeseries",
    "read_table",
)


class WriteStatus(Enum):
    """Outcome of a surface write attempt."""

    OK = "ok"
    CAPACITY_EXCEEDED = "capacity_exceeded"


class SrfWriter:
    """
    Surface write capability with a vertex and triangle budget.

    Meshes over budget are not written and report
    ``WriteStatus.CAPACITY_EXCEEDED``; I/O errors propagate.
    """

    def __init__(self, max_vertices=DEFAULT_MAX_VERTICES, max_triangles=None):
        self.max_vertices = max_vertices
        self.max_triangles = max_triangles if max_triangles is not None else 2 * max_vertices

    def __call__(self, save_name, vertices, faces, colors=None):
        if len(vertices) > self.max_vertices or len(faces) > self.max_triangles:
            logger.debug(
                f"Surface with {len(vertices)} vertices and {len(faces)} triangles "
                f"exceeds the budget of {self.max_vertices} vertices"
            )
            return WriteStatus.CAPACITY_EXCEEDED

        if colors is None:
            colors = formats.SurfaceColors.default(len(vertices))
        formats.write_srf(
            save_name,
            vertices,
            faces,
            normals=mesh.vertex_normals(vertices, faces),
            neighbors=mesh.vertex_neighbors(faces, len(vertices)),
            colors=colors,
        )
        return WriteStatus.OK


@dataclass
class Capabilities:
    """
    Opaque operations the converters depend on.

    ``required_modules`` maps importable module names to the capability that
    needs them, for modules only imported on first use.
    """

    read_mesh: Optional[Callable] = None
    write_mesh: Optional[Callable] = None
    reduce_mesh: Optional[Callable] = None
    load_transform: Optional[Callable] = None
    read_volume: Optional[Callable] = None
    read_surface_timeseries: Optional[Callable] = None
    read_table: Optional[Callable] = None
    required_modules: Dict[str, str] = field(default_factory=dict)

    def missing(self):
        """Names of the capabilities that cannot be used."""
        missing = [name for name in CAPABILITY_NAMES if not callable(getattr(self, name))]
        for module, capability in self.required_modules.items():
            if importlib.util.find_spec(module) is None and capability not in missing:
                missing.append(capability)
        return missing

    def validate(self):
        """
        Check that every capability is available.

        Raises
        ------
        CapabilityError
            Listing all missing capabilities
        """
        missing = self.missing()
        if missing:
            raise CapabilityError(f"Unable to load capabilities: {', '.join(missing)}")
        return self


def default_capabilities(max_vertices=DEFAULT_MAX_VERTICES):
    """
    Build the nibabel/pandas/VTK backed capabilities.

    Parameters
    ----------
    max_vertices : int, optional
        Vertex budget of written surfaces

    Returns
    -------
    Capabilities
    """
    return Capabilities(
        read_mesh=mesh.read_mesh,
        write_mesh=SrfWriter(max_vertices),
        reduce_mesh=mesh.reduce_mesh,
        load_transform=mesh.load_transform,
        read_volume=nib.load,
        read_surface_timeseries=mesh.read_surface_timeseries,
        read_table=partial(pd.read_csv, sep="\t"),
        required_modules={"vtkmodules": "reduce_mesh"},
    )
