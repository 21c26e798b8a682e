"""
Neutronics material catalog.

Maps the material names used in variable tables to the integer material
numbers carried by cells. Integers (and digit strings) are passed through
unchanged so that tables can refer to materials defined elsewhere.
Used by variables.eval_material for every Mat/DMat lookup.
"""

from dataclasses import dataclass
from typing import Dict, Union

from plate_csg.errors import UnknownMaterialError

VOID_MATERIAL = 0


@dataclass(frozen=True)
class Material:
    """A material known to the solver input."""

    mat_id: int
    name: str
    density: float  # g/cm3, nominal (0 for void)


MATERIALS: Dict[str, Material] = {
    "Void": Material(mat_id=0, name="Void", density=0.0),
    "H2O": Material(mat_id=11, name="Light water", density=1.0),
    "D2O": Material(mat_id=12, name="Heavy water", density=1.1),
    "Aluminium": Material(mat_id=5, name="Aluminium 6061", density=2.70),
    "Stainless304": Material(mat_id=3, name="Stainless steel 304", density=8.00),
    "Iron": Material(mat_id=4, name="Iron", density=7.87),
    "Lead": Material(mat_id=6, name="Lead", density=11.35),
    "Tungsten": Material(mat_id=7, name="Tungsten", density=19.30),
    "Poly": Material(mat_id=9, name="Polyethylene", density=0.94),
    "B4C": Material(mat_id=47, name="Boron carbide", density=2.52),
    "Cadmium": Material(mat_id=48, name="Cadmium", density=8.65),
    "Beryllium": Material(mat_id=10, name="Beryllium", density=1.85),
    "Concrete": Material(mat_id=49, name="Concrete", density=2.30),
    "U235": Material(mat_id=92, name="Highly enriched uranium", density=18.95),
    "U3Si2": Material(mat_id=93, name="Uranium silicide LEU", density=12.20),
}


def resolve_material(value: Union[int, str]) -> int:
    """Resolve a material name or number to a material number.

    Raises:
        UnknownMaterialError: name not in MATERIALS or negative number.
    """
    if isinstance(value, bool):
        raise UnknownMaterialError(f"Material must be a name or number: {value!r}")
    if isinstance(value, (int, float)):
        mat_id = int(value)
    else:
        text = str(value).strip()
        if text.lstrip("-").isdigit():
            mat_id = int(text)
        elif text in MATERIALS:
            return MATERIALS[text].mat_id
        else:
            raise UnknownMaterialError(f"Unknown material: {text!r}")
    if mat_id < 0:
        raise UnknownMaterialError(f"Negative material number: {mat_id}")
    return mat_id
