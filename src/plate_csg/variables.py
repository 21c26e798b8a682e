"""
Variable table consumed by the construction pass.

A flat key -> value store (numbers, strings, booleans). Components read their
parameters from it by concatenating a component key name with a suffix,
e.g. ``"PlateThick3"``. Lookups are exact-key: no prefix matching is ever
performed, so ``"PlateX3"`` cannot satisfy a request for ``"PlateX30"``.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Sequence

from plate_csg.errors import ConfigurationError, MissingVariableError
from plate_csg.materials import resolve_material

logger = logging.getLogger(__name__)

Cast = Optional[Callable[[Any], Any]]


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        text = value.strip().lower()
        if text in ("1", "true", "yes", "on"):
            return True
        if text in ("0", "false", "no", "off", ""):
            return False
        raise ValueError(f"not a boolean: {value!r}")
    return bool(value)


def to_count(value: Any) -> int:
    count = int(value)
    if count != float(value) or count < 0:
        raise ValueError(f"not a non-negative integer: {value!r}")
    return count


class VariableTable:
    """Key -> typed value database with fallback lookups."""

    def __init__(self, values: Optional[Mapping[str, Any]] = None):
        self._values: Dict[str, Any] = {}
        if values:
            self.update(values)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "VariableTable":
        return cls(values)

    @classmethod
    def from_json(cls, path: str | Path) -> "VariableTable":
        """Load a flat JSON object of variables."""
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        if not isinstance(payload, dict):
            raise ConfigurationError(f"Variable file must hold a JSON object: {path}")
        logger.debug("Loaded %d variables from %s", len(payload), path)
        return cls(payload)

    # ─── Mutation ─────────────────────────────────────────────────────────

    def set_variable(self, key: str, value: Any) -> None:
        if not key:
            raise ValueError("Variable key must be non-empty")
        self._values[str(key)] = value

    def update(self, values: Mapping[str, Any]) -> None:
        for key, value in values.items():
            self.set_variable(key, value)

    def remove_variable(self, key: str) -> None:
        if key not in self._values:
            raise MissingVariableError([key], "remove_variable")
        del self._values[key]

    # ─── Lookup ───────────────────────────────────────────────────────────

    def has_variable(self, key: str) -> bool:
        return key in self._values

    def eval_var(self, key: str, cast: Cast = None) -> Any:
        """Value of key, raising MissingVariableError when absent."""
        if key not in self._values:
            raise MissingVariableError([key])
        return self._convert(key, self._values[key], cast)

    def eval_def_var(self, key: str, default: Any, cast: Cast = None) -> Any:
        """Value of key, or default when absent."""
        if key not in self._values:
            return default
        return self._convert(key, self._values[key], cast)

    def eval_pair(self, key_a: str, key_b: str, cast: Cast = None) -> Any:
        return self.eval_chain((key_a, key_b), cast)

    def eval_chain(self, keys: Sequence[str], cast: Cast = None) -> Any:
        """Value of the first present key in keys."""
        for key in keys:
            if key in self._values:
                return self._convert(key, self._values[key], cast)
        raise MissingVariableError(keys)

    def eval_material(self, key: str) -> int:
        return resolve_material(self.eval_var(key))

    # ─── Mapping protocol ─────────────────────────────────────────────────

    def keys(self) -> Iterable[str]:
        return self._values.keys()

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    @staticmethod
    def _convert(key: str, value: Any, cast: Cast) -> Any:
        if cast is None:
            return value
        try:
            return cast(value)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Variable {key} has bad value {value!r}: {e}") from e
