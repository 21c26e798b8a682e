"""Exception hierarchy for the plate construction pass."""

from typing import Iterable


class PlateError(Exception):
    """Base exception for construction errors."""
    pass


class ConfigurationError(PlateError):
    """Configuration is absent or unusable; construction aborts."""
    pass


class MissingVariableError(ConfigurationError, KeyError):
    """None of the requested variable keys exist in the table."""

    def __init__(self, keys: Iterable[str], context: str = ""):
        self.keys = tuple(keys)
        self.context = context
        joined = ":".join(self.keys)
        message = f"variable not found: {joined}"
        if context:
            message = f"{context}: {message}"
        super().__init__(message)

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class UnknownMaterialError(ConfigurationError):
    """Material name not present in the material catalog."""
    pass


class GeometryError(PlateError):
    """Geometry model contract was violated."""
    pass


class CellExistsError(GeometryError):
    """Cell number already in use."""
    pass


class CellNotFoundError(GeometryError, KeyError):
    """Cell number not present in the model."""

    def __str__(self) -> str:
        return self.args[0] if self.args else "cell not found"


class SurfaceNotFoundError(GeometryError, KeyError):
    """Surface number not present in the model."""

    def __str__(self) -> str:
        return self.args[0] if self.args else "surface not found"
