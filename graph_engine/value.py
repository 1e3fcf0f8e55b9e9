# graph_engine/value.py

import numpy as np
from typing import Any, Tuple

from utils.exceptions import DomainError, TypeMismatch
from validation.validators import validate_shape_compatible

SUPPORTED_DTYPES = (np.dtype(np.float64), np.dtype(np.float32))


def as_dtype(dtype: Any) -> np.dtype:
    """Normalize a dtype spec ('float64', np.float32, ...) to a supported numpy dtype."""
    try:
        dt = np.dtype(dtype)
    except TypeError as e:
        raise TypeMismatch(f"Unknown dtype: {dtype!r}", details={'dtype': str(dtype)}) from e
    if dt not in SUPPORTED_DTYPES:
        raise TypeMismatch(
            f"Unsupported dtype {dt}; expected one of {[str(d) for d in SUPPORTED_DTYPES]}",
            details={'dtype': str(dt)}
        )
    return dt


class Value:
    """
    A typed numeric payload: a scalar (shape ``()``) or a tensor.

    The Value owns its buffer. Construction always copies, so two nodes never
    share storage. Arithmetic is elementwise and requires identical shapes
    and dtypes.
    """

    __array_priority__ = 1000

    def __init__(self, data: Any, dtype: Any = None):
        if isinstance(data, Value):
            data = data.data
        if dtype is None:
            dtype = data.dtype if isinstance(data, np.ndarray) else np.float64
        self.data = np.array(data, dtype=as_dtype(dtype), copy=True)

    @classmethod
    def scalar(cls, x: float, dtype: Any = np.float64) -> 'Value':
        return cls(np.asarray(x), dtype=dtype)

    @property
    def shape(self) -> Tuple[int, ...]:
        return tuple(self.data.shape)

    @property
    def dtype(self) -> np.dtype:
        return self.data.dtype

    @property
    def is_scalar(self) -> bool:
        return self.data.ndim == 0

    @property
    def size(self) -> int:
        return int(self.data.size)

    def item(self) -> float:
        """Return the Python float of a single-element value."""
        if self.data.size != 1:
            raise DomainError(
                f"item() requires a single element, value has shape {self.shape}",
                details={'shape': self.shape}
            )
        return float(self.data.reshape(()))

    def copy(self) -> 'Value':
        return Value(self.data, dtype=self.dtype)

    def ones_like(self) -> 'Value':
        return Value(np.ones_like(self.data), dtype=self.dtype)

    def zeros_like(self) -> 'Value':
        return Value(np.zeros_like(self.data), dtype=self.dtype)

    def has_nan(self) -> bool:
        return bool(np.isnan(self.data).any())

    def has_inf(self) -> bool:
        return bool(np.isinf(self.data).any())

    def allclose(self, other: Any, rtol: float = 1e-9, atol: float = 1e-12) -> bool:
        other_data = other.data if isinstance(other, Value) else np.asarray(other)
        if other_data.shape != self.data.shape:
            return False
        return bool(np.allclose(self.data, other_data, rtol=rtol, atol=atol))

    def accumulate(self, other: 'Value') -> 'Value':
        """Return ``self + other``; used to sum gradient contributions."""
        return self + other

    def _check_compatible(self, other: 'Value', op: str):
        if not isinstance(other, Value):
            raise DomainError(f"Cannot {op} Value and {type(other).__name__}")
        validate_shape_compatible(self.data, other.data, op, error=DomainError)
        if other.dtype != self.dtype:
            raise DomainError(
                f"Dtype mismatch for {op}: {self.dtype} vs {other.dtype}",
                details={'dtype1': str(self.dtype), 'dtype2': str(other.dtype)}
            )

    def __add__(self, other: 'Value') -> 'Value':
        self._check_compatible(other, 'add')
        return Value(self.data + other.data, dtype=self.dtype)

    def __sub__(self, other: 'Value') -> 'Value':
        self._check_compatible(other, 'sub')
        return Value(self.data - other.data, dtype=self.dtype)

    def __mul__(self, other: 'Value') -> 'Value':
        self._check_compatible(other, 'mul')
        return Value(self.data * other.data, dtype=self.dtype)

    def __truediv__(self, other: 'Value') -> 'Value':
        self._check_compatible(other, 'div')
        if np.any(other.data == 0):
            raise DomainError("Division by zero", details={'shape': other.shape})
        return Value(self.data / other.data, dtype=self.dtype)

    def __neg__(self) -> 'Value':
        return Value(-self.data, dtype=self.dtype)

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self.dtype == other.dtype and np.array_equal(self.data, other.data)

    __hash__ = None

    def __float__(self) -> float:
        return self.item()

    def __repr__(self) -> str:
        if self.is_scalar:
            return f"Value({self.data.item()!r}, dtype={self.dtype})"
        return f"Value(shape={self.shape}, dtype={self.dtype})"
