"""
BrainVoyager conversion package

This package provides the converters from fMRIPrep outputs to BrainVoyager
file formats and the wrapper that runs them over a dataset.
"""

from .capabilities import Capabilities, WriteStatus, default_capabilities
from .converters import BrainVoyagerConverter
from .errors import CapabilityError, MeshReductionError, UnsupportedExtensionError
from .surface import convert_surf_to_srf
from .wrapper import FmriprepToBrainVoyager

__all__ = [
    "BrainVoyagerConverter",
    "Capabilities",
    "CapabilityError",
    "FmriprepToBrainVoyager",
    "MeshReductionError",
    "UnsupportedExtensionError",
    "WriteStatus",
    "convert_surf_to_srf",
    "default_capabilities",
]
