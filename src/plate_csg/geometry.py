"""
Geometry kernel: planes, half-space regions, cells and the shared model.

Regions are boolean combinations of signed surface numbers, written the way
the transport code reads them:

    "5 -6 7"        intersection of +5, -6 and +7
    "(-5:6)"        union of -5 and +6

For a plane n.p = d, the positive side is n.p - d > 0.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Mapping, Optional, Sequence, Set, Tuple, Union

import numpy as np

from plate_csg.errors import (
    CellExistsError,
    CellNotFoundError,
    GeometryError,
    SurfaceNotFoundError,
)

logger = logging.getLogger(__name__)


# ─── Surfaces ────────────────────────────────────────────────────────────────

@dataclass(eq=False)
class Plane:
    """Plane n.p = d with unit normal n."""
    surface_id: int
    normal: np.ndarray      # (3,) unit normal
    distance: float         # signed distance from origin

    @classmethod
    def from_point(cls, surface_id: int, point: Sequence[float],
                   normal: Sequence[float]) -> "Plane":
        n = np.asarray(normal, dtype=float)
        norm = float(np.linalg.norm(n))
        if norm < 1e-12:
            raise ValueError(f"Plane {surface_id}: zero normal")
        n = n / norm
        return cls(surface_id=surface_id, normal=n,
                   distance=float(n @ np.asarray(point, dtype=float)))

    def side(self, point: Sequence[float]) -> float:
        """Signed distance of point from the plane."""
        return float(self.normal @ np.asarray(point, dtype=float)) - self.distance

    def is_coincident(self, other: "Plane", tol: float = 1e-8) -> bool:
        """True if both planes describe the same surface (either orientation)."""
        dot = float(self.normal @ other.normal)
        if abs(abs(dot) - 1.0) > tol:
            return False
        return abs(self.distance - np.sign(dot) * other.distance) < tol

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.surface_id,
            "type": "plane",
            "normal": [float(c) for c in self.normal],
            "distance": self.distance,
        }


class IdAllocator:
    """Hands out consecutive surface or cell numbers for one build."""

    def __init__(self, start: int = 1, step: int = 1):
        if start < 1 or step < 1:
            raise ValueError("Allocator start and step must be positive")
        self._next = start
        self.step = step

    def next(self) -> int:
        value = self._next
        self._next += self.step
        return value

    def peek(self) -> int:
        return self._next

    def take(self, count: int) -> List[int]:
        return [self.next() for _ in range(count)]


# ─── Regions ─────────────────────────────────────────────────────────────────

RegionItem = Union[int, "Region"]


@dataclass(frozen=True)
class Region:
    """Intersection ("and") or union ("or") of signed surfaces and sub-regions.

    An empty intersection is all space; an empty union is no space.
    """
    op: str = "and"
    items: Tuple[RegionItem, ...] = ()

    def __post_init__(self):
        if self.op not in ("and", "or"):
            raise ValueError(f"Unknown region operator: {self.op!r}")
        for item in self.items:
            if isinstance(item, Region):
                continue
            if isinstance(item, bool) or not isinstance(item, (int, np.integer)) or item == 0:
                raise ValueError(f"Region items must be non-zero surface numbers: {item!r}")
        object.__setattr__(self, "items", tuple(
            item if isinstance(item, Region) else int(item) for item in self.items
        ))

    @classmethod
    def of(cls, *signed_ids: int) -> "Region":
        """Intersection of signed surface numbers."""
        return cls("and", tuple(signed_ids))

    @classmethod
    def union(cls, *parts: RegionItem) -> "Region":
        return cls("or", tuple(parts))

    @classmethod
    def everything(cls) -> "Region":
        return cls("and", ())

    def is_everything(self) -> bool:
        return self.op == "and" and not self.items

    def _merge(self, other: RegionItem, op: str) -> "Region":
        parts: List[RegionItem] = []
        for part in (self, other):
            if isinstance(part, Region) and part.op == op:
                parts.extend(part.items)
            else:
                parts.append(part)
        return Region(op, tuple(parts))

    def __and__(self, other: RegionItem) -> "Region":
        return self._merge(other, "and")

    def __or__(self, other: RegionItem) -> "Region":
        return self._merge(other, "or")

    def __invert__(self) -> "Region":
        flipped = tuple(~item if isinstance(item, Region) else -item for item in self.items)
        if len(flipped) == 1:
            return Region("and", flipped)
        return Region("or" if self.op == "and" else "and", flipped)

    def surface_ids(self) -> Set[int]:
        ids: Set[int] = set()
        for item in self.items:
            if isinstance(item, Region):
                ids |= item.surface_ids()
            else:
                ids.add(abs(item))
        return ids

    def signed_ids(self) -> List[int]:
        """Top-level signed surface numbers, in order."""
        return [item for item in self.items if not isinstance(item, Region)]

    def contains(self, point: Sequence[float], surfaces: Mapping[int, Plane]) -> bool:
        """Point classification; points on a surface count as outside."""
        results = (self._item_contains(item, point, surfaces) for item in self.items)
        if self.op == "and":
            return all(results)
        return any(results)

    @staticmethod
    def _item_contains(item: RegionItem, point: Sequence[float],
                       surfaces: Mapping[int, Plane]) -> bool:
        if isinstance(item, Region):
            return item.contains(point, surfaces)
        try:
            plane = surfaces[abs(item)]
        except KeyError:
            raise SurfaceNotFoundError(f"Surface {abs(item)} not in model") from None
        value = plane.side(point)
        return value > 0.0 if item > 0 else value < 0.0

    def __str__(self) -> str:
        parts = []
        for item in self.items:
            if isinstance(item, Region):
                parts.append(str(item) if item.op == "or" else f"({item})")
            else:
                parts.append(str(item))
        if self.op == "and":
            return " ".join(parts)
        return "(" + ":".join(parts) + ")"


# ─── Cells and model ─────────────────────────────────────────────────────────

@dataclass
class Cell:
    """A material-filled region of the model."""
    cell_id: int
    material: int
    temperature: float
    region: Region
    name: str = ""

    @property
    def expression(self) -> str:
        return str(self.region)

    def to_payload(self) -> Dict[str, object]:
        return {
            "id": self.cell_id,
            "material": self.material,
            "temperature": self.temperature,
            "region": self.expression,
            "name": self.name,
        }


@dataclass
class CSGModel:
    """Surface and cell tables shared by every component of a build.

    Components write to it one at a time; no locking is done.
    """
    surfaces: Dict[int, Plane] = field(default_factory=dict)
    cells: Dict[int, Cell] = field(default_factory=dict)
    surface_names: Dict[str, int] = field(default_factory=dict)

    # Surfaces

    def add_surface(self, plane: Plane, name: Optional[str] = None) -> int:
        if plane.surface_id in self.surfaces:
            raise GeometryError(f"Surface number in use: {plane.surface_id}")
        self.surfaces[plane.surface_id] = plane
        if name:
            self.surface_names[name] = plane.surface_id
        return plane.surface_id

    def build_plane(self, allocator: IdAllocator, origin: Sequence[float],
                    normal: Sequence[float], name: Optional[str] = None) -> int:
        """Create a plane through origin with the given normal; returns its number."""
        plane = Plane.from_point(allocator.next(), origin, normal)
        return self.add_surface(plane, name)

    def surface(self, surface_id: int) -> Plane:
        try:
            return self.surfaces[abs(surface_id)]
        except KeyError:
            raise SurfaceNotFoundError(f"Surface {surface_id} not in model") from None

    def named_surface(self, name: str) -> int:
        try:
            return self.surface_names[name]
        except KeyError:
            raise SurfaceNotFoundError(f"No surface named {name!r}") from None

    # Cells

    def add_cell(self, cell: Cell) -> int:
        if cell.cell_id in self.cells:
            raise CellExistsError(f"Cell number in use: {cell.cell_id}")
        missing = sorted(sid for sid in cell.region.surface_ids() if sid not in self.surfaces)
        if missing:
            raise SurfaceNotFoundError(
                f"Cell {cell.cell_id} uses undefined surfaces: {missing}"
            )
        self.cells[cell.cell_id] = cell
        logger.debug("Added cell %d mat=%d: %s", cell.cell_id, cell.material, cell.expression)
        return cell.cell_id

    def remove_cell(self, cell_id: int) -> Cell:
        try:
            cell = self.cells.pop(cell_id)
        except KeyError:
            raise CellNotFoundError(f"Cell {cell_id} not in model") from None
        logger.debug("Removed cell %d", cell_id)
        return cell

    def cell(self, cell_id: int) -> Cell:
        try:
            return self.cells[cell_id]
        except KeyError:
            raise CellNotFoundError(f"Cell {cell_id} not in model") from None

    def has_cell(self, cell_id: int) -> bool:
        return cell_id in self.cells

    def cell_ids(self) -> List[int]:
        return list(self.cells)

    @property
    def n_cells(self) -> int:
        return len(self.cells)

    def find_cells(self, point: Sequence[float]) -> List[int]:
        """Cells whose region contains point."""
        return [cid for cid, cell in self.cells.items()
                if cell.region.contains(point, self.surfaces)]

    def __iter__(self) -> Iterator[Cell]:
        return iter(self.cells.values())

    def to_payload(self) -> Dict[str, object]:
        return {
            "schema_version": "plate_csg.model.v1",
            "surfaces": [p.to_payload() for p in self.surfaces.values()],
            "surface_names": dict(self.surface_names),
            "cells": [c.to_payload() for c in self.cells.values()],
        }
