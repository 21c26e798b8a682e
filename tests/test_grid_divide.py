"""Tests for grid subdivision of layer cells."""
import logging

import numpy as np
import pytest

from conftest import divided_values, plate_values
from plate_csg.errors import (
    CellExistsError,
    CellNotFoundError,
    GeometryError,
    MissingVariableError,
)
from plate_csg.geometry import Cell, CSGModel, Region
from plate_csg.grid_divide import CellGrid, GridDivision, GridEdit, LayerReplacement
from plate_csg.layer_stack import LayerStack
from plate_csg.variables import VariableTable


def _divide(values):
    """Build the stack, then subdivide; returns (stack, divider, model, edit)."""
    table = VariableTable(values)
    model = CSGModel()
    stack = LayerStack("Plate")
    divider = GridDivision("Plate", stack)
    stack.populate(table)
    divider.populate(table)
    stack.create_unit_vector()
    stack.create_surfaces(model)
    divider.create_surfaces(model)
    stack.create_objects(model)
    edit = divider.create_objects(model)
    return stack, divider, model, edit


class TestCellGrid:

    def test_shape(self):
        grid = CellGrid.zeros(2, 3, 4)
        assert grid.shape == (2, 3, 4)
        assert grid.mat_index.dtype.kind == "i"

    def test_mismatched_shapes(self):
        with pytest.raises(ValueError):
            CellGrid(np.zeros((1, 2, 2)), np.zeros((1, 2, 3)))

    def test_not_3d(self):
        with pytest.raises(ValueError):
            CellGrid(np.zeros((2, 2)), np.zeros((2, 2)))


class TestPopulate:

    def test_points_sorted(self):
        _, divider, _, _ = _divide(divided_values())
        assert divider.x_pts == (-0.5, 0.5)
        assert divider.z_pts == (0.0,)

    def test_grid_shape_and_values(self):
        _, divider, _, _ = _divide(divided_values())
        grid = divider.grid
        assert grid.shape == (1, 3, 2)
        assert grid.mat_index[0, 0, 0] == 93       # layer default
        assert grid.mat_index[0, 1, 0] == 11       # cell override
        assert grid.mat_temp[0, 2, 0] == pytest.approx(600.0)
        assert grid.mat_temp[0, 2, 1] == pytest.approx(350.0)   # row override

    def test_unresolved_cell_is_fatal(self):
        values = divided_values()
        del values["PlateDTempL0"]
        table = VariableTable(values)
        stack = LayerStack("Plate")
        stack.populate(table)
        divider = GridDivision("Plate", stack)
        with pytest.raises(MissingVariableError, match="PlateDTempL0X0Z0"):
            divider.populate(table)
        assert not divider.active

    def test_missing_partition_point(self):
        values = divided_values()
        del values["PlateXPts1"]
        table = VariableTable(values)
        stack = LayerStack("Plate")
        stack.populate(table)
        with pytest.raises(MissingVariableError, match="PlateXPts1"):
            GridDivision("Plate", stack).populate(table)

    def test_dindex_read_without_count(self):
        _, divider, model, _ = _divide(divided_values())
        assert "PlateNDivide" not in divided_values()
        assert divider.d_index == (1,)
        assert model.n_cells == 8

    def test_dindex_stops_at_first_gap(self):
        table = VariableTable(divided_values(PlateDIndex2=0))
        stack = LayerStack("Plate")
        stack.populate(table)
        divider = GridDivision("Plate", stack)
        divider.populate(table)
        assert divider.d_index == (1,)

    def test_ndivide_bounds_the_list(self):
        table = VariableTable(divided_values(PlateNDivide=2))
        stack = LayerStack("Plate")
        stack.populate(table)
        with pytest.raises(MissingVariableError, match="PlateDIndex1"):
            GridDivision("Plate", stack).populate(table)


class TestDegenerate:

    def test_no_divide_leaves_cells(self, caplog):
        stack, divider, model, edit = _divide(plate_values())
        assert not divider.active
        assert edit.is_empty()
        assert model.n_cells == 3
        assert "subdivision disabled" in caplog.text

    def test_zero_ndivide(self):
        stack, divider, model, edit = _divide(divided_values(PlateNDivide=0))
        assert not divider.active
        assert model.n_cells == 3

    def test_dindex_out_of_range(self, caplog):
        with caplog.at_level(logging.WARNING, logger="plate_csg"):
            _, divider, model, _ = _divide(divided_values(PlateDIndex0=3))
        assert not divider.active
        assert model.n_cells == 3
        assert any(r.levelno == logging.WARNING for r in caplog.records)

    def test_zero_grid_size(self):
        _, divider, model, _ = _divide(divided_values(PlateNZSpace=0))
        assert not divider.active
        assert model.n_cells == 3

    def test_single_cell_grid(self):
        values = plate_values(
            PlateNDivide=1, PlateDIndex0=1, PlateNXSpace=1, PlateNZSpace=1,
            PlateDMatL0="Lead", PlateDTempL0=400.0,
        )
        stack, divider, model, edit = _divide(values)
        assert len(model.surfaces) == 8
        assert model.n_cells == 3
        child = model.cell(edit.new_ids[0])
        assert child.expression == "2 -3 5 -6 7 -8"
        assert child.material == 6
        assert stack.get_cells("Layer1") == edit.new_ids


class TestGridCells:

    def test_cell_count(self):
        stack, _, model, edit = _divide(divided_values())
        assert model.n_cells == 3 - 1 + 6
        assert edit.removed_ids == [2]
        assert len(edit.new_ids) == 6
        assert not model.has_cell(2)
        assert stack.get_cells("Layer1") == edit.new_ids
        assert stack.get_cells("Layer0") == [1]

    def test_partition_surfaces(self):
        _, divider, model, _ = _divide(divided_values())
        assert len(model.surfaces) == 8 + 2 + 1
        assert model.surface(model.named_surface("PlateXPts0")).distance == pytest.approx(-0.5)
        assert model.surface(model.named_surface("PlateXPts1")).distance == pytest.approx(0.5)
        assert model.surface(model.named_surface("PlateZPts0")).distance == pytest.approx(0.0)

    def test_edge_substitution(self):
        _, divider, _, _ = _divide(divided_values())
        assert str(divider.get_x_surf(0)) == "5 -9"
        assert str(divider.get_x_surf(1)) == "9 -10"
        assert str(divider.get_x_surf(2)) == "10 -6"
        assert str(divider.get_z_surf(0)) == "7 -11"
        assert str(divider.get_z_surf(1)) == "11 -8"
        with pytest.raises(IndexError):
            divider.get_x_surf(3)

    def test_child_region(self):
        _, _, model, edit = _divide(divided_values())
        child = edit.replacements[0].children[(0, 0)]
        assert child.expression == "2 -3 5 -9 7 -11"
        assert child.name == "PlateLayer1X0Z0"
        assert model.cell(child.cell_id).material == 93

    def test_band_centres(self):
        _, divider, model, edit = _divide(divided_values())
        children = edit.replacements[0].children
        for (i, j), cell in children.items():
            x_lo, x_hi = divider.band_bounds("x", i)
            z_lo, z_hi = divider.band_bounds("z", j)
            centre = [(x_lo + x_hi) / 2, 2.0, (z_lo + z_hi) / 2]
            assert model.find_cells(centre) == [cell.cell_id]

    def test_footprints_tile_slab(self):
        _, divider, _, _ = _divide(divided_values())
        areas = [divider.cell_footprint(i, j).area
                 for i in range(divider.nx) for j in range(divider.nz)]
        assert sum(areas) == pytest.approx(3.0 * 1.0)
        assert divider.cell_footprint(0, 0).bounds == pytest.approx((-1.5, -0.5, -0.5, 0.0))


class TestCentredPoints:
    """Partition points are local coordinates about the plate origin."""

    def _values(self):
        return plate_values(
            PlateWidth=119.0, PlateHeight=102.1,
            PlateDIndex0=1, PlateNXSpace=3, PlateNZSpace=1,
            PlateXPts0=10.0, PlateXPts1=-30.0,
            PlateDMatL0="U3Si2", PlateDTempL0=300.0,
        )

    def test_negative_points_inside_slab(self):
        _, divider, model, _ = _divide(self._values())
        assert divider.validate() == []
        distances = [model.surface(model.named_surface(f"PlateXPts{i}")).distance
                     for i in range(2)]
        assert distances == pytest.approx([-30.0, 10.0])

    def test_band_bounds(self):
        _, divider, _, _ = _divide(self._values())
        assert divider.band_bounds("x", 0) == pytest.approx((-59.5, -30.0))
        assert divider.band_bounds("x", 1) == pytest.approx((-30.0, 10.0))
        assert divider.band_bounds("x", 2) == pytest.approx((10.0, 59.5))

    def test_first_column_not_empty(self):
        _, _, model, edit = _divide(self._values())
        child = edit.replacements[0].children[(0, 0)]
        assert model.find_cells([-44.75, 2.0, 0.0]) == [child.cell_id]


class TestValidate:

    def test_clean_partition(self):
        _, divider, _, _ = _divide(divided_values())
        assert divider.validate() == []

    def test_zero_width_band(self, caplog):
        _, divider, _, _ = _divide(divided_values(PlateXPts0=-0.5))
        issues = divider.validate()
        assert any(i.code == "zero_width_band" and i.axis == "x" and i.index == 1
                   for i in issues)
        assert divider.x_pts == (-0.5, -0.5)
        assert "zero area" in caplog.text

    def test_point_outside_slab(self):
        _, divider, _, _ = _divide(divided_values(PlateXPts0=5.0))
        issues = divider.validate()
        assert [i.code for i in issues if i.code == "outside_slab"] == ["outside_slab"]
        assert issues[0].value == 5.0


class TestGridEdit:

    def test_consumed_parent_raises_without_mutation(self):
        _, divider, model, _ = _divide(divided_values())
        before = sorted(model.cell_ids())
        edit = divider.plan_objects()
        with pytest.raises(CellNotFoundError):
            edit.apply(model)
        assert sorted(model.cell_ids()) == before
        assert not edit.applied

    def test_apply_twice(self):
        _, _, model, edit = _divide(divided_values())
        with pytest.raises(GeometryError, match="already applied"):
            edit.apply(model)

    def test_duplicate_parent(self):
        _, _, model, _ = _divide(plate_values())
        edit = GridEdit([
            LayerReplacement(d_layer=0, layer_index=1, parent_id=2),
            LayerReplacement(d_layer=1, layer_index=1, parent_id=2),
        ])
        with pytest.raises(CellNotFoundError, match="twice"):
            edit.apply(model)

    def test_child_collision(self):
        _, divider, model, _ = _divide(plate_values())
        clash = Cell(1, 5, 300.0, Region.of(5))
        edit = GridEdit([LayerReplacement(0, 2, parent_id=3, children={(0, 0): clash})])
        with pytest.raises(CellExistsError):
            edit.apply(model)
        assert model.has_cell(3)
        assert model.n_cells == 3

    def test_overlapping_layers_rejected(self):
        table = VariableTable(divided_values(
            PlateDIndex1=1, PlateDMatL1="Lead", PlateDTempL1=500.0,
        ))
        model = CSGModel()
        stack = LayerStack("Plate")
        divider = GridDivision("Plate", stack)
        stack.populate(table)
        divider.populate(table)
        assert divider.d_index == (1, 1)
        stack.create_unit_vector()
        stack.create_surfaces(model)
        divider.create_surfaces(model)
        stack.create_objects(model)
        with pytest.raises(CellNotFoundError, match="twice"):
            divider.create_objects(model)
        assert sorted(model.cell_ids()) == [1, 2, 3]
        assert stack.get_cells("Layer1") == [2]
