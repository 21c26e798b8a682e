"""
Layered slab builder.

Builds N slabs stacked along the local Y axis. Each slab has its own
thickness, material and temperature and becomes exactly one cell bounded by
two transverse planes (front/back) and the four lateral planes of the
rectangular footprint (Width along X, Height along Z, centred on the origin).

Variables read (all prefixed with the component key name):
  NSlab, Width, Height, Thick{i}, Mat{i}, Temp{i}     required
  FrontShared, XStep, YStep, ZStep, XYAngle, ZAngle   optional
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from plate_csg.errors import CellNotFoundError, ConfigurationError
from plate_csg.frame import FrameOffset, LocalFrame
from plate_csg.geometry import Cell, CSGModel, IdAllocator, Region
from plate_csg.variables import VariableTable, to_bool, to_count

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Layer:
    """One slab of the stack."""
    index: int
    thickness: float
    material: int
    temperature: float
    front_offset: float     # distance of the front plane from the origin along Y

    @property
    def back_offset(self) -> float:
        return self.front_offset + self.thickness


@dataclass(frozen=True, eq=False)
class LinkPoint:
    """Connection point exposed to the containing assembly."""
    name: str
    point: np.ndarray
    axis: np.ndarray
    region: Region


class LayerStack:
    """Ordered stack of slabs, one cell per slab."""

    def __init__(
        self,
        key_name: str,
        surf_alloc: Optional[IdAllocator] = None,
        cell_alloc: Optional[IdAllocator] = None,
    ):
        self.key_name = key_name
        self.surf_alloc = surf_alloc if surf_alloc is not None else IdAllocator()
        self.cell_alloc = cell_alloc if cell_alloc is not None else IdAllocator()
        self.frame = LocalFrame.identity()
        self.offset = FrameOffset()

        self.layers: Tuple[Layer, ...] = ()
        self.width = 0.0
        self.height = 0.0
        self.front_shared = False
        self.front_rule: Optional[Region] = None
        self.populated = False

        self._layer_surfs: List[Optional[int]] = []
        self._lateral: Dict[str, int] = {}
        self._cell_index: Dict[int, int] = {}
        self.cell_map: Dict[str, List[int]] = {}

    # ─── populate ─────────────────────────────────────────────────────────

    def populate(self, table: VariableTable) -> None:
        """Read all stack variables; nothing is stored unless every read succeeds."""
        key = self.key_name
        n_slab = table.eval_var(key + "NSlab", to_count)
        if n_slab == 0:
            raise ConfigurationError(f"{key}NSlab must be at least 1")
        width = table.eval_var(key + "Width", float)
        height = table.eval_var(key + "Height", float)
        if width <= 0.0 or height <= 0.0:
            raise ConfigurationError(
                f"{key}: footprint must be positive, got {width} x {height}"
            )

        layers: List[Layer] = []
        offset = 0.0
        for i in range(n_slab):
            thick = table.eval_var(f"{key}Thick{i}", float)
            if thick <= 0.0:
                raise ConfigurationError(f"{key}Thick{i} must be positive, got {thick}")
            layers.append(Layer(
                index=i,
                thickness=thick,
                material=table.eval_material(f"{key}Mat{i}"),
                temperature=table.eval_var(f"{key}Temp{i}", float),
                front_offset=offset,
            ))
            offset += thick

        self.layers = tuple(layers)
        self.width = width
        self.height = height
        self.front_shared = table.eval_def_var(key + "FrontShared", False, to_bool)
        self.offset = FrameOffset.from_variables(table, key)
        self.populated = True
        logger.debug("%s: populated %d layers, total thickness %.4g",
                     key, n_slab, offset)

    @property
    def n_slab(self) -> int:
        return len(self.layers)

    @property
    def total_thickness(self) -> float:
        return self.layers[-1].back_offset if self.layers else 0.0

    # ─── frame ────────────────────────────────────────────────────────────

    def create_unit_vector(self, frame: Optional[LocalFrame] = None) -> None:
        base = frame if frame is not None else LocalFrame.identity()
        self.frame = base.apply_offset(self.offset)

    def set_front_rule(self, region: Optional[Region]) -> None:
        """Use an external surface as the front of layer 0 (FrontShared)."""
        self.front_rule = region

    # ─── surfaces ─────────────────────────────────────────────────────────

    def create_surfaces(self, model: CSGModel) -> None:
        if not self.populated:
            raise ConfigurationError(f"{self.key_name}: create_surfaces before populate")
        if self.front_shared and self.front_rule is None:
            raise ConfigurationError(
                f"{self.key_name}FrontShared is set but no front surface was supplied"
            )
        if self.front_rule is not None and not self.front_shared:
            logger.debug("%s: front rule supplied but FrontShared not set; ignored",
                         self.key_name)

        f = self.frame
        offsets = [0.0] + [layer.back_offset for layer in self.layers]
        surfs: List[Optional[int]] = []
        for k, dist in enumerate(offsets):
            if k == 0 and self.front_shared:
                surfs.append(None)
                continue
            surfs.append(model.build_plane(
                self.surf_alloc, f.origin + f.y * dist, f.y,
                name=f"{self.key_name}Layer{k}",
            ))
        self._layer_surfs = surfs

        half_w = self.width / 2.0
        half_h = self.height / 2.0
        self._lateral = {
            "left": model.build_plane(self.surf_alloc, f.origin - f.x * half_w, f.x,
                                      name=f"{self.key_name}Left"),
            "right": model.build_plane(self.surf_alloc, f.origin + f.x * half_w, f.x,
                                       name=f"{self.key_name}Right"),
            "base": model.build_plane(self.surf_alloc, f.origin - f.z * half_h, f.z,
                                      name=f"{self.key_name}Base"),
            "top": model.build_plane(self.surf_alloc, f.origin + f.z * half_h, f.z,
                                     name=f"{self.key_name}Top"),
        }

    def _check_layer(self, layer_idx: int) -> None:
        if not 0 <= layer_idx < self.n_slab:
            raise IndexError(
                f"{self.key_name}: layer {layer_idx} out of range [0,{self.n_slab})"
            )
        if not self._layer_surfs:
            raise ConfigurationError(f"{self.key_name}: surfaces not created")

    def get_front_surface(self, layer_idx: int) -> Region:
        self._check_layer(layer_idx)
        if layer_idx == 0 and self.front_shared:
            return self.front_rule
        return Region.of(self._layer_surfs[layer_idx])

    def get_back_surface(self, layer_idx: int) -> Region:
        self._check_layer(layer_idx)
        return Region.of(-self._layer_surfs[layer_idx + 1])

    def get_lateral_surface(self, side: str) -> int:
        """Surface number of the "left", "right", "base" or "top" plane."""
        if not self._lateral:
            raise ConfigurationError(f"{self.key_name}: surfaces not created")
        return self._lateral[side]

    def get_lateral_region(self) -> Region:
        if not self._lateral:
            raise ConfigurationError(f"{self.key_name}: surfaces not created")
        s = self._lateral
        return Region.of(s["left"], -s["right"], s["base"], -s["top"])

    # ─── objects ──────────────────────────────────────────────────────────

    def create_objects(self, model: CSGModel) -> List[int]:
        """One cell per layer; returns the new cell numbers in layer order."""
        lateral = self.get_lateral_region()
        cell_ids: List[int] = []
        for layer in self.layers:
            region = (self.get_front_surface(layer.index)
                      & self.get_back_surface(layer.index)
                      & lateral)
            cell_id = self.cell_alloc.next()
            model.add_cell(Cell(
                cell_id=cell_id,
                material=layer.material,
                temperature=layer.temperature,
                region=region,
                name=f"{self.key_name}Layer{layer.index}",
            ))
            self._cell_index[layer.index] = cell_id
            self.cell_map[f"Layer{layer.index}"] = [cell_id]
            cell_ids.append(cell_id)
        logger.info("%s: built %d layer cells", self.key_name, len(cell_ids))
        return cell_ids

    def get_cell_index(self, layer_idx: int) -> int:
        """Cell number assigned to layer_idx by create_objects."""
        try:
            return self._cell_index[layer_idx]
        except KeyError:
            raise CellNotFoundError(
                f"{self.key_name}: no cell built for layer {layer_idx}"
            ) from None

    def replace_layer_cells(self, layer_idx: int, cell_ids: List[int]) -> None:
        """Record that layer_idx is now made of cell_ids."""
        self.cell_map[f"Layer{layer_idx}"] = list(cell_ids)

    def get_cells(self, name: str) -> List[int]:
        try:
            return list(self.cell_map[name])
        except KeyError:
            raise CellNotFoundError(f"{self.key_name}: no cell group {name!r}") from None

    # ─── links ────────────────────────────────────────────────────────────

    def outer_region(self) -> Region:
        """Bounding region of the whole stack."""
        return (self.get_front_surface(0)
                & self.get_back_surface(self.n_slab - 1)
                & self.get_lateral_region())

    def link_points(self) -> List[LinkPoint]:
        f = self.frame
        return [
            LinkPoint("front", f.origin.copy(), -f.y, ~self.get_front_surface(0)),
            LinkPoint("back", f.origin + f.y * self.total_thickness, f.y.copy(),
                      ~self.get_back_surface(self.n_slab - 1)),
        ]

    def create_all(
        self,
        model: CSGModel,
        table: VariableTable,
        frame: Optional[LocalFrame] = None,
        front_rule: Optional[Region] = None,
    ) -> List[int]:
        self.populate(table)
        self.create_unit_vector(frame)
        if front_rule is not None:
            self.set_front_rule(front_rule)
        self.create_surfaces(model)
        return self.create_objects(model)
