"""
FissionPlate: a layer stack with optional grid subdivision of chosen layers.

Build order is fixed:

    populate -> unit vector -> surfaces -> objects -> links

Every variable is read before the first surface is emitted, so a
configuration error leaves the model as it was.
"""

from __future__ import annotations

import logging
from typing import Dict, List, Optional

from plate_csg.audit import BuildAudit
from plate_csg.frame import LocalFrame
from plate_csg.geometry import CSGModel, IdAllocator, Region
from plate_csg.grid_divide import GridDivision, GridEdit, PartitionIssue
from plate_csg.layer_stack import LayerStack, LinkPoint
from plate_csg.resolver import XZResolver
from plate_csg.variables import VariableTable

logger = logging.getLogger(__name__)


class FissionPlate:
    """Layered slab component whose selected layers are split into X/Z grids."""

    def __init__(
        self,
        key_name: str,
        surf_alloc: Optional[IdAllocator] = None,
        cell_alloc: Optional[IdAllocator] = None,
        resolver: Optional[XZResolver] = None,
    ):
        self.key_name = key_name
        self.stack = LayerStack(key_name, surf_alloc=surf_alloc, cell_alloc=cell_alloc)
        self.divider = GridDivision(key_name, self.stack, resolver=resolver)
        self.last_edit: Optional[GridEdit] = None
        self.issues: List[PartitionIssue] = []
        self.links: List[LinkPoint] = []

    def populate(self, table: VariableTable) -> None:
        self.stack.populate(table)
        self.divider.populate(table)

    @property
    def cell_map(self) -> Dict[str, List[int]]:
        return self.stack.cell_map

    @property
    def frame(self) -> LocalFrame:
        return self.stack.frame

    def get_cells(self, name: str) -> List[int]:
        return self.stack.get_cells(name)

    def cell_ids(self) -> List[int]:
        """All cells of the plate, in layer order."""
        return [cid for layer in self.stack.layers
                for cid in self.stack.cell_map.get(f"Layer{layer.index}", [])]

    def outer_region(self) -> Region:
        return self.stack.outer_region()

    def create_all(
        self,
        model: CSGModel,
        table: VariableTable,
        frame: Optional[LocalFrame] = None,
        front_rule: Optional[Region] = None,
        audit: Optional[BuildAudit] = None,
    ) -> List[int]:
        """Build the plate into model; returns the plate's cell numbers."""
        self.populate(table)
        if audit is not None:
            audit.checkpoint("populate", counts={
                "layers": self.stack.n_slab,
                "divided_layers": self.divider.n_divide,
                "nx": self.divider.nx,
                "nz": self.divider.nz,
            })
            if not self.divider.active:
                audit.record_decision(
                    "subdivision_skipped", [self.key_name],
                    reason=self.divider.disabled_reason or "not requested",
                )

        self.stack.create_unit_vector(frame)
        if front_rule is not None:
            self.stack.set_front_rule(front_rule)

        n_surf = len(model.surfaces)
        self.stack.create_surfaces(model)
        self.divider.create_surfaces(model)
        if audit is not None:
            audit.checkpoint("surfaces", counts={"surfaces": len(model.surfaces) - n_surf})

        self.stack.create_objects(model)
        self.issues = self.divider.validate()
        self.last_edit = self.divider.create_objects(model)
        if audit is not None:
            for r in self.last_edit.replacements:
                audit.record_decision(
                    "cell_replaced", [r.parent_id],
                    reason=f"layer {r.layer_index} divided",
                    evidence={"d_layer": r.d_layer, "children": r.child_ids},
                )
            audit.checkpoint("objects", counts={
                "cells": len(self.cell_ids()),
                "removed": len(self.last_edit.removed_ids),
                "added": len(self.last_edit.new_ids),
            }, outputs={"issues": [i.code for i in self.issues]})

        self.links = self.stack.link_points()
        logger.info("%s: plate built with %d cells", self.key_name, len(self.cell_ids()))
        return self.cell_ids()
