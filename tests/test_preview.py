"""Tests for the box-mesh preview and volume bookkeeping."""
import numpy.testing as npt
import pytest

from conftest import divided_values
from plate_csg.frame import LocalFrame
from plate_csg.plate import FissionPlate
from plate_csg.preview import cell_boxes, cell_volumes, combined_mesh, total_volume
from plate_csg.variables import VariableTable


def _plate(model, table, **kwargs):
    plate = FissionPlate("Plate")
    plate.create_all(model, table, **kwargs)
    return plate


class TestVolumes:

    def test_one_box_per_cell(self, model, divided_table):
        plate = _plate(model, divided_table)
        boxes = cell_boxes(plate)
        assert sorted(boxes) == sorted(model.cell_ids())
        assert all(mesh.is_watertight for mesh in boxes.values())

    def test_total_volume(self, model, divided_table):
        plate = _plate(model, divided_table)
        assert total_volume(plate) == pytest.approx(3.0 * 1.0 * 3.5)

    def test_children_conserve_parent_volume(self, model, divided_table):
        plate = _plate(model, divided_table)
        volumes = cell_volumes(plate)
        children = plate.get_cells("Layer1")
        assert sum(volumes[c] for c in children) == pytest.approx(3.0 * 1.0 * 2.0)

    def test_child_volume(self, model, divided_table):
        plate = _plate(model, divided_table)
        child = plate.last_edit.replacements[0].children[(2, 1)]
        # column 2: x in [0.5, 1.5], row 1: z in [0, 0.5], layer 1: 2 thick
        assert cell_volumes(plate)[child.cell_id] == pytest.approx(1.0 * 0.5 * 2.0)

    def test_undivided(self, model, plate_table):
        plate = _plate(model, plate_table)
        assert len(cell_boxes(plate)) == 3
        assert total_volume(plate) == pytest.approx(10.5)


class TestPlacement:

    def test_boxes_follow_frame(self, model):
        table = VariableTable(divided_values(PlateYStep=5.0))
        plate = _plate(model, table)
        layer0 = cell_boxes(plate)[plate.stack.get_cell_index(0)]
        npt.assert_allclose(layer0.bounds, [[-1.5, 5.0, -0.5], [1.5, 6.0, 0.5]], atol=1e-9)

    def test_rotation_keeps_volume(self, model, divided_table):
        frame = LocalFrame.from_y_axis([0, 0, 0], [1, 1, 0])
        plate = _plate(model, divided_table, frame=frame)
        assert total_volume(plate) == pytest.approx(10.5)

    def test_combined_mesh(self, model, divided_table):
        plate = _plate(model, divided_table)
        mesh = combined_mesh(plate)
        npt.assert_allclose(mesh.bounds, [[-1.5, 0.0, -0.5], [1.5, 3.5, 0.5]], atol=1e-9)
