"""
Per-cell value resolution for divided layers.

A value for grid cell (layer d, column i, row j) is looked up under
``<PreName>`` followed by one of four tags, most specific first:

    L{d}X{i}Z{j}   the single cell
    L{d}X{i}       every row of column i
    L{d}Z{j}       every column of row j
    L{d}           the whole layer

The first tag present wins. There is no default below the layer level: if
none of the four keys exist the lookup fails.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

from plate_csg.errors import MissingVariableError
from plate_csg.variables import Cast, VariableTable

KeyBuilder = Callable[[int, int, int], str]


@dataclass(frozen=True)
class Scope:
    """One level of the override chain."""
    name: str
    tag: KeyBuilder

    def key(self, pre_name: str, d_layer: int, i: int, j: int) -> str:
        return pre_name + self.tag(d_layer, i, j)


DEFAULT_CHAIN: Tuple[Scope, ...] = (
    Scope("cell", lambda d, i, j: f"L{d}X{i}Z{j}"),
    Scope("column", lambda d, i, j: f"L{d}X{i}"),
    Scope("row", lambda d, i, j: f"L{d}Z{j}"),
    Scope("layer", lambda d, i, j: f"L{d}"),
)


class XZResolver:
    """Evaluates the override chain against a variable table."""

    def __init__(self, chain: Tuple[Scope, ...] = DEFAULT_CHAIN):
        if not chain:
            raise ValueError("Resolver chain must not be empty")
        self.chain = chain

    def keys(self, pre_name: str, d_layer: int, i: int, j: int) -> Tuple[str, ...]:
        """Keys tried for (d_layer, i, j), in precedence order."""
        return tuple(scope.key(pre_name, d_layer, i, j) for scope in self.chain)

    def resolve_scope(self, table: VariableTable, pre_name: str,
                      d_layer: int, i: int, j: int) -> Optional[Scope]:
        """The scope that supplies the value, or None."""
        for scope in self.chain:
            if table.has_variable(scope.key(pre_name, d_layer, i, j)):
                return scope
        return None

    def resolve(self, table: VariableTable, pre_name: str,
                d_layer: int, i: int, j: int, cast: Cast = None) -> Any:
        """Value for (d_layer, i, j).

        Raises:
            MissingVariableError: no key of the chain is present.
        """
        keys = self.keys(pre_name, d_layer, i, j)
        try:
            return table.eval_chain(keys, cast)
        except MissingVariableError as e:
            raise MissingVariableError(
                e.keys, f"no value for layer {d_layer} cell ({i},{j})"
            ) from None
