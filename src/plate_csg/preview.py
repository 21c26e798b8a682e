"""
Mesh preview of a built plate.

Each cell of a FissionPlate is a rectangular box in the plate's local frame,
so it can be rendered (or volume-checked) without a CSG evaluator. With a
shared front surface, layer 0 is drawn from the plate origin.
"""

from __future__ import annotations

import logging
from typing import Dict, Tuple

import numpy as np
import trimesh

from plate_csg.plate import FissionPlate

logger = logging.getLogger(__name__)


def _box(plate: FissionPlate, x: Tuple[float, float], y: Tuple[float, float],
         z: Tuple[float, float]) -> trimesh.Trimesh:
    extents = [x[1] - x[0], y[1] - y[0], z[1] - z[0]]
    centre = [(x[0] + x[1]) / 2.0, (y[0] + y[1]) / 2.0, (z[0] + z[1]) / 2.0]
    transform = np.eye(4)
    transform[:3, :3] = plate.frame.rotation_matrix()
    transform[:3, 3] = plate.frame.to_world(centre)
    return trimesh.creation.box(extents=extents, transform=transform)


def cell_boxes(plate: FissionPlate) -> Dict[int, trimesh.Trimesh]:
    """World-frame box mesh per cell number."""
    stack = plate.stack
    children = {}
    if plate.last_edit is not None:
        for r in plate.last_edit.replacements:
            children[r.layer_index] = r.children

    half_w = stack.width / 2.0
    half_h = stack.height / 2.0
    boxes: Dict[int, trimesh.Trimesh] = {}
    for layer in stack.layers:
        y = (layer.front_offset, layer.back_offset)
        if layer.index not in children:
            boxes[stack.get_cell_index(layer.index)] = _box(
                plate, (-half_w, half_w), y, (-half_h, half_h))
            continue
        for (i, j), cell in children[layer.index].items():
            boxes[cell.cell_id] = _box(
                plate,
                plate.divider.band_bounds("x", i),
                y,
                plate.divider.band_bounds("z", j),
            )
    logger.debug("%s: %d preview boxes", plate.key_name, len(boxes))
    return boxes


def cell_volumes(plate: FissionPlate) -> Dict[int, float]:
    return {cid: float(mesh.volume) for cid, mesh in cell_boxes(plate).items()}


def total_volume(plate: FissionPlate) -> float:
    return float(sum(cell_volumes(plate).values()))


def combined_mesh(plate: FissionPlate) -> trimesh.Trimesh:
    """All cell boxes as a single mesh (for export or viewing)."""
    return trimesh.util.concatenate(list(cell_boxes(plate).values()))
