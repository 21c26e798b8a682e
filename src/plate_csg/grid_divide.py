"""
Grid subdivision of selected layers ("fission plate" division).

A divided layer keeps its front/back planes but its single cell is replaced
by an NXSpace x NZSpace grid of cells. Internal partition planes sit at the
XPts / ZPts values, which are local X / Z coordinates about the plate origin
(the footprint spans -Width/2 .. Width/2 and -Height/2 .. Height/2). The outermost columns and rows are closed by the slab's own
lateral planes, never by an internal plane:

    column 0            left  .. XPts[0]
    column i (inner)    XPts[i-1] .. XPts[i]
    column NXSpace-1    XPts[NXSpace-2] .. right
    NXSpace == 1        left .. right

Variables read (prefixed with the component key name):
  DIndex{k}                  divided layer numbers, read for k = 0, 1, ... until
                             a key is missing
  NDivide                    optional: exactly this many DIndex entries are read
  NXSpace, NZSpace           grid size (missing or 0: no division)
  XPts{i}, ZPts{j}           NXSpace-1 / NZSpace-1 partition coordinates
  DMat..., DTemp...          per-cell material / temperature, see resolver.py

Partition points are sorted but not otherwise corrected; validate() reports
coincident or out-of-slab points without changing them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
from shapely.geometry import Polygon, box

from plate_csg.errors import (
    CellExistsError,
    CellNotFoundError,
    ConfigurationError,
    GeometryError,
)
from plate_csg.geometry import Cell, CSGModel, Region
from plate_csg.layer_stack import LayerStack
from plate_csg.materials import resolve_material
from plate_csg.resolver import XZResolver
from plate_csg.variables import VariableTable, to_count

logger = logging.getLogger(__name__)

ZERO_WIDTH_TOL = 1e-9


@dataclass
class CellGrid:
    """Per-cell material and temperature, indexed [d_layer, i, j]."""
    mat_index: np.ndarray   # int, (n_divide, nx, nz)
    mat_temp: np.ndarray    # float, (n_divide, nx, nz)

    def __post_init__(self):
        self.mat_index = np.asarray(self.mat_index, dtype=int)
        self.mat_temp = np.asarray(self.mat_temp, dtype=float)
        if self.mat_index.ndim != 3:
            raise ValueError(f"mat_index must be 3-D, got shape {self.mat_index.shape}")
        if self.mat_index.shape != self.mat_temp.shape:
            raise ValueError(
                f"mat_index {self.mat_index.shape} and mat_temp "
                f"{self.mat_temp.shape} shapes differ"
            )

    @classmethod
    def zeros(cls, n_divide: int, nx: int, nz: int) -> "CellGrid":
        shape = (n_divide, nx, nz)
        return cls(np.zeros(shape, dtype=int), np.zeros(shape, dtype=float))

    @property
    def shape(self) -> Tuple[int, int, int]:
        return tuple(self.mat_index.shape)


@dataclass
class PartitionIssue:
    """Problem found in the partition points (reported, not fixed)."""
    code: str               # "zero_width_band" | "outside_slab"
    axis: str               # "x" | "z"
    index: int              # band or point index
    message: str
    value: Optional[float] = None


@dataclass
class LayerReplacement:
    """One divided layer: the parent cell and the cells that replace it."""
    d_layer: int
    layer_index: int
    parent_id: int
    children: Dict[Tuple[int, int], Cell] = field(default_factory=dict)

    @property
    def child_ids(self) -> List[int]:
        return [cell.cell_id for cell in self.children.values()]


@dataclass
class GridEdit:
    """Set of cell replacements applied to a model as one unit."""
    replacements: List[LayerReplacement] = field(default_factory=list)
    applied: bool = False

    @property
    def removed_ids(self) -> List[int]:
        return [r.parent_id for r in self.replacements]

    @property
    def new_ids(self) -> List[int]:
        return [cid for r in self.replacements for cid in r.child_ids]

    def is_empty(self) -> bool:
        return not self.replacements

    def apply(self, model: CSGModel) -> List[int]:
        """Remove every parent cell and insert the children.

        All checks run before the model is touched, so a failure leaves the
        model unchanged.

        Raises:
            CellNotFoundError: a parent is missing or listed twice.
            CellExistsError: a child number is already in use.
        """
        if self.applied:
            raise GeometryError("Grid edit already applied")
        seen = set()
        for r in self.replacements:
            if r.parent_id in seen:
                raise CellNotFoundError(
                    f"Cell {r.parent_id} would be replaced twice (layer {r.layer_index})"
                )
            seen.add(r.parent_id)
            if not model.has_cell(r.parent_id):
                raise CellNotFoundError(
                    f"Parent cell {r.parent_id} of layer {r.layer_index} not in model"
                )
        for cid in self.new_ids:
            if model.has_cell(cid):
                raise CellExistsError(f"Cell number in use: {cid}")

        for r in self.replacements:
            model.remove_cell(r.parent_id)
            for cell in r.children.values():
                model.add_cell(cell)
        self.applied = True
        return self.new_ids


class GridDivision:
    """Replaces selected layer cells of a LayerStack by X x Z grids."""

    def __init__(self, key_name: str, stack: LayerStack,
                 resolver: Optional[XZResolver] = None):
        self.key_name = key_name
        self.stack = stack
        self.resolver = resolver if resolver is not None else XZResolver()

        self.d_index: Tuple[int, ...] = ()
        self.nx = 0
        self.nz = 0
        self.x_pts: Tuple[float, ...] = ()
        self.z_pts: Tuple[float, ...] = ()
        self.grid: Optional[CellGrid] = None
        self.disabled_reason: Optional[str] = None

        self._x_surfs: List[int] = []
        self._z_surfs: List[int] = []

    @property
    def n_divide(self) -> int:
        return len(self.d_index)

    @property
    def active(self) -> bool:
        return self.grid is not None

    def _disable(self, reason: str) -> None:
        logger.warning("%s: subdivision disabled: %s", self.key_name, reason)
        self.disabled_reason = reason
        self.d_index = ()
        self.nx = self.nz = 0
        self.x_pts = self.z_pts = ()
        self.grid = None

    # ─── populate ─────────────────────────────────────────────────────────

    def _read_d_index(self, table: VariableTable) -> Tuple[int, ...]:
        """DIndex entries: NDivide of them if given, else up to the first gap."""
        key = self.key_name
        if table.has_variable(key + "NDivide"):
            n_divide = table.eval_var(key + "NDivide", to_count)
            return tuple(
                table.eval_var(f"{key}DIndex{k}", to_count) for k in range(n_divide)
            )
        d_index: List[int] = []
        while table.has_variable(f"{key}DIndex{len(d_index)}"):
            d_index.append(table.eval_var(f"{key}DIndex{len(d_index)}", to_count))
        return tuple(d_index)

    def populate(self, table: VariableTable) -> None:
        if not self.stack.populated:
            raise ConfigurationError(f"{self.key_name}: layer stack not populated")
        key = self.key_name
        n_slab = self.stack.n_slab

        d_index = self._read_d_index(table)
        if not d_index:
            self._disable("no divided layers (DIndex empty)")
            return
        bad = [d for d in d_index if d >= n_slab]
        if bad:
            self._disable(f"DIndex {bad} outside layer range [0,{n_slab})")
            return

        nx = table.eval_def_var(key + "NXSpace", 0, to_count)
        nz = table.eval_def_var(key + "NZSpace", 0, to_count)
        if nx * nz == 0:
            self._disable(f"grid size NXSpace={nx} NZSpace={nz}")
            return

        x_pts = tuple(sorted(table.eval_var(f"{key}XPts{i}", float) for i in range(nx - 1)))
        z_pts = tuple(sorted(table.eval_var(f"{key}ZPts{j}", float) for j in range(nz - 1)))

        grid = CellGrid.zeros(len(d_index), nx, nz)
        for d in range(len(d_index)):
            for i in range(nx):
                for j in range(nz):
                    grid.mat_index[d, i, j] = resolve_material(
                        self.resolver.resolve(table, key + "DMat", d, i, j)
                    )
                    grid.mat_temp[d, i, j] = self.resolver.resolve(
                        table, key + "DTemp", d, i, j, float
                    )

        self.d_index = d_index
        self.nx, self.nz = nx, nz
        self.x_pts, self.z_pts = x_pts, z_pts
        self.grid = grid
        self.disabled_reason = None
        logger.info("%s: dividing layers %s into %d x %d cells",
                    key, list(d_index), nx, nz)

    # ─── footprint / validation ───────────────────────────────────────────

    def band_bounds(self, axis: str, index: int) -> Tuple[float, float]:
        """Local (lo, hi) coordinates of column (axis "x") or row (axis "z")."""
        if axis == "x":
            extent, pts, n = self.stack.width, self.x_pts, self.nx
        elif axis == "z":
            extent, pts, n = self.stack.height, self.z_pts, self.nz
        else:
            raise ValueError(f"axis must be 'x' or 'z', got {axis!r}")
        if not 0 <= index < n:
            raise IndexError(f"{self.key_name}: {axis} band {index} out of range [0,{n})")
        edges = (-extent / 2.0,) + pts + (extent / 2.0,)
        return (edges[index], edges[index + 1])

    def cell_footprint(self, i: int, j: int) -> Polygon:
        """(x, z) footprint of grid cell (i, j) in local coordinates."""
        x_lo, x_hi = self.band_bounds("x", i)
        z_lo, z_hi = self.band_bounds("z", j)
        return box(min(x_lo, x_hi), min(z_lo, z_hi), max(x_lo, x_hi), max(z_lo, z_hi))

    def validate(self) -> List[PartitionIssue]:
        """Report degenerate bands and partition points outside the slab."""
        issues: List[PartitionIssue] = []
        if not self.active:
            return issues
        for axis, pts, extent in (("x", self.x_pts, self.stack.width),
                                  ("z", self.z_pts, self.stack.height)):
            for k, value in enumerate(pts):
                if not -extent / 2.0 < value < extent / 2.0:
                    issues.append(PartitionIssue(
                        code="outside_slab", axis=axis, index=k, value=value,
                        message=(f"{axis.upper()}Pts{k}={value:g} not inside "
                                 f"({-extent / 2.0:g}, {extent / 2.0:g})"),
                    ))
        for i in range(self.nx):
            for j in range(self.nz):
                if self.cell_footprint(i, j).area <= ZERO_WIDTH_TOL:
                    lo_x, hi_x = self.band_bounds("x", i)
                    axis, index = ("x", i) if hi_x - lo_x <= ZERO_WIDTH_TOL else ("z", j)
                    issues.append(PartitionIssue(
                        code="zero_width_band", axis=axis, index=index,
                        message=f"grid cell ({i},{j}) has zero area",
                    ))
        for issue in issues:
            logger.warning("%s: %s", self.key_name, issue.message)
        return issues

    # ─── surfaces ─────────────────────────────────────────────────────────

    def create_surfaces(self, model: CSGModel) -> None:
        if not self.active:
            return
        f = self.stack.frame
        alloc = self.stack.surf_alloc
        self._x_surfs = [
            model.build_plane(alloc, f.origin + f.x * pt, f.x,
                              name=f"{self.key_name}XPts{i}")
            for i, pt in enumerate(self.x_pts)
        ]
        self._z_surfs = [
            model.build_plane(alloc, f.origin + f.z * pt, f.z,
                              name=f"{self.key_name}ZPts{j}")
            for j, pt in enumerate(self.z_pts)
        ]

    @staticmethod
    def _band(index: int, n: int, planes: List[int], low_edge: int, high_edge: int) -> Region:
        if not 0 <= index < n:
            raise IndexError(f"band {index} out of range [0,{n})")
        if n == 1:
            return Region.of(low_edge, -high_edge)
        if index == 0:
            return Region.of(low_edge, -planes[0])
        if index == n - 1:
            return Region.of(planes[n - 2], -high_edge)
        return Region.of(planes[index - 1], -planes[index])

    def get_x_surf(self, i: int) -> Region:
        """Region selecting column i."""
        return self._band(i, self.nx, self._x_surfs,
                          self.stack.get_lateral_surface("left"),
                          self.stack.get_lateral_surface("right"))

    def get_z_surf(self, j: int) -> Region:
        """Region selecting row j."""
        return self._band(j, self.nz, self._z_surfs,
                          self.stack.get_lateral_surface("base"),
                          self.stack.get_lateral_surface("top"))

    # ─── objects ──────────────────────────────────────────────────────────

    def plan_objects(self) -> GridEdit:
        """Build the replacement cells without touching the model."""
        edit = GridEdit()
        if not self.active:
            return edit
        for d, layer_idx in enumerate(self.d_index):
            layer_rule = (self.stack.get_front_surface(layer_idx)
                          & self.stack.get_back_surface(layer_idx))
            replacement = LayerReplacement(
                d_layer=d,
                layer_index=layer_idx,
                parent_id=self.stack.get_cell_index(layer_idx),
            )
            for i in range(self.nx):
                x_rule = layer_rule & self.get_x_surf(i)
                for j in range(self.nz):
                    replacement.children[(i, j)] = Cell(
                        cell_id=self.stack.cell_alloc.next(),
                        material=int(self.grid.mat_index[d, i, j]),
                        temperature=float(self.grid.mat_temp[d, i, j]),
                        region=x_rule & self.get_z_surf(j),
                        name=f"{self.stack.key_name}Layer{layer_idx}X{i}Z{j}",
                    )
            edit.replacements.append(replacement)
        return edit

    def create_objects(self, model: CSGModel) -> GridEdit:
        """Replace each divided layer's cell; returns the applied edit."""
        edit = self.plan_objects()
        if edit.is_empty():
            return edit
        edit.apply(model)
        for r in edit.replacements:
            self.stack.replace_layer_cells(r.layer_index, r.child_ids)
        logger.info("%s: replaced %d layer cells with %d grid cells",
                    self.key_name, len(edit.removed_ids), len(edit.new_ids))
        return edit
