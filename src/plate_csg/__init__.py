"""Public API for the layered-slab CSG construction pass."""

from plate_csg.audit import BuildAudit
from plate_csg.errors import (
    CellExistsError,
    CellNotFoundError,
    ConfigurationError,
    GeometryError,
    MissingVariableError,
    PlateError,
    SurfaceNotFoundError,
    UnknownMaterialError,
)
from plate_csg.frame import FrameOffset, LocalFrame
from plate_csg.geometry import Cell, CSGModel, IdAllocator, Plane, Region
from plate_csg.grid_divide import CellGrid, GridDivision, GridEdit, PartitionIssue
from plate_csg.layer_stack import Layer, LayerStack
from plate_csg.plate import FissionPlate
from plate_csg.resolver import XZResolver
from plate_csg.variables import VariableTable

__all__ = [
    "BuildAudit",
    "Cell",
    "CellExistsError",
    "CellGrid",
    "CellNotFoundError",
    "ConfigurationError",
    "CSGModel",
    "FissionPlate",
    "FrameOffset",
    "GeometryError",
    "GridDivision",
    "GridEdit",
    "IdAllocator",
    "Layer",
    "LayerStack",
    "LocalFrame",
    "MissingVariableError",
    "PartitionIssue",
    "Plane",
    "PlateError",
    "Region",
    "SurfaceNotFoundError",
    "UnknownMaterialError",
    "VariableTable",
    "XZResolver",
]
