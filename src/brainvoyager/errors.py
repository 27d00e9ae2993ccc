#!/usr/bin/env python3
"""
Exceptions raised while converting files to BrainVoyager formats.
"""


class CapabilityError(RuntimeError):
    """Raised when a read, write or reduction capability is unavailable."""


class UnsupportedExtensionError(ValueError):
    """Raised when a source or target file has an unrecognized extension."""


class MeshReductionError(RuntimeError):
    """Raised when a surface cannot be saved even after maximal reduction."""
