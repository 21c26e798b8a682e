"""
Shared test fixtures for the plate construction tests.
"""
import sys
from pathlib import Path

import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from plate_csg.geometry import CSGModel
from plate_csg.variables import VariableTable


def plate_values(**overrides):
    """Three-layer plate, 3 wide (X) by 1 high (Z), 3.5 thick (Y)."""
    values = {
        "PlateNSlab": 3,
        "PlateWidth": 3.0,
        "PlateHeight": 1.0,
        "PlateThick0": 1.0,
        "PlateThick1": 2.0,
        "PlateThick2": 0.5,
        "PlateMat0": "Aluminium",
        "PlateMat1": "U3Si2",
        "PlateMat2": 5,
        "PlateTemp0": 300.0,
        "PlateTemp1": 300.0,
        "PlateTemp2": 300.0,
    }
    values.update(overrides)
    return values


def divided_values(**overrides):
    """plate_values() with layer 1 split into a 3 x 2 grid."""
    values = plate_values(
        PlateDIndex0=1,
        PlateNXSpace=3,
        PlateNZSpace=2,
        PlateXPts0=0.5,     # deliberately unsorted
        PlateXPts1=-0.5,
        PlateZPts0=0.0,
        PlateDMatL0="U3Si2",
        PlateDMatL0X1Z0="H2O",
        PlateDTempL0=600.0,
        PlateDTempL0Z1=350.0,
    )
    values.update(overrides)
    return values


@pytest.fixture
def model():
    return CSGModel()


@pytest.fixture
def plate_table():
    return VariableTable(plate_values())


@pytest.fixture
def divided_table():
    return VariableTable(divided_values())
