"""
Input validation utilities for values and configuration.
"""
from typing import Any, List, Optional, Tuple, Type, Union
import numpy as np
from utils.logging_config import get_logger
from utils.exceptions import GraphEngineError, ValidationError

logger = get_logger(__name__)


class Validator:
    """Base validator class."""

    def __init__(self, name: str = "value", error: Type[GraphEngineError] = ValidationError):
        self.name = name
        self.error = error

    def validate(self, value: Any) -> Any:
        """Validate and return the value."""
        return value

    def __call__(self, value: Any) -> Any:
        """Allow validator to be called as a function."""
        return self.validate(value)


class TypeValidator(Validator):
    """Validates value type."""

    def __init__(
        self,
        expected_type: Union[type, Tuple[type, ...]],
        name: str = "value",
        error: Type[GraphEngineError] = ValidationError
    ):
        super().__init__(name, error)
        self.expected_type = expected_type

    def validate(self, value: Any) -> Any:
        """Validate type."""
        if not isinstance(value, self.expected_type):
            raise self.error(
                f"{self.name} must be of type {self.expected_type}, got {type(value)}",
                details={'expected': str(self.expected_type), 'actual': str(type(value))}
            )
        return value


class ShapeValidator(Validator):
    """Validates array shape against an expected shape."""

    def __init__(
        self,
        expected_shape: Optional[Tuple[int, ...]] = None,
        name: str = "array",
        error: Type[GraphEngineError] = ValidationError
    ):
        super().__init__(name, error)
        self.expected_shape = expected_shape

    def validate(self, value: np.ndarray) -> np.ndarray:
        """Validate shape. ``None`` accepts any shape."""
        if self.expected_shape is not None and tuple(value.shape) != tuple(self.expected_shape):
            raise self.error(
                f"{self.name} shape mismatch: expected {tuple(self.expected_shape)}, "
                f"got {tuple(value.shape)}",
                details={'expected': tuple(self.expected_shape), 'actual': tuple(value.shape)}
            )
        return value


class DTypeValidator(Validator):
    """Validates the numeric type of an array."""

    def __init__(
        self,
        expected_dtype: np.dtype,
        name: str = "array",
        error: Type[GraphEngineError] = ValidationError
    ):
        super().__init__(name, error)
        self.expected_dtype = np.dtype(expected_dtype)

    def validate(self, value: np.ndarray) -> np.ndarray:
        """Validate dtype."""
        if value.dtype != self.expected_dtype:
            raise self.error(
                f"{self.name} must have dtype {self.expected_dtype}, got {value.dtype}",
                details={'expected': str(self.expected_dtype), 'actual': str(value.dtype)}
            )
        return value


class ChoiceValidator(Validator):
    """Validates value is in allowed choices."""

    def __init__(self, choices: List[Any], name: str = "value"):
        super().__init__(name)
        self.choices = choices

    def validate(self, value: Any) -> Any:
        """Validate choice."""
        if value not in self.choices:
            raise self.error(
                f"{self.name} must be one of {self.choices}, got {value}",
                details={'allowed': self.choices, 'actual': value}
            )
        return value


def validate_shape_compatible(
    arr1: np.ndarray,
    arr2: np.ndarray,
    operation: str = "operation",
    error: Type[GraphEngineError] = ValidationError
) -> Tuple[np.ndarray, np.ndarray]:
    """Validate two arrays have identical shapes."""
    if arr1.shape != arr2.shape:
        raise error(
            f"Shape mismatch for {operation}: {arr1.shape} vs {arr2.shape}",
            details={'shape1': arr1.shape, 'shape2': arr2.shape}
        )
    return arr1, arr2
