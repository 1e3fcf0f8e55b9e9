"""
Custom exception hierarchy for exprgraph.
"""
from typing import Any, Dict, Optional


class GraphEngineError(Exception):
    """Base exception for all exprgraph errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            'error_type': self.__class__.__name__,
            'error_code': self.error_code,
            'message': self.message,
            'details': self.details
        }


# Construction Exceptions
class ConstructionError(GraphEngineError):
    """Base exception for graph construction errors. The graph is left unchanged."""
    pass


class ArityMismatch(ConstructionError):
    """Raised when an operation receives the wrong number of inputs."""
    pass


class ShapeMismatch(ConstructionError):
    """Raised when a value's shape conflicts with a leaf's declared or prior shape."""
    pass


class TypeMismatch(ConstructionError):
    """Raised when a value's numeric type differs from a leaf's dtype."""
    pass


class CycleDetected(ConstructionError):
    """Raised when the dependency edges would not form a DAG."""
    pass


class ForeignNodeReference(ConstructionError):
    """Raised when a node handle belongs to another graph."""
    pass


class NotALeaf(ConstructionError):
    """Raised when a value is assigned to an operation or constant node."""
    pass


# Evaluation Exceptions
class EvaluationError(GraphEngineError):
    """Base exception for errors raised while a machine is running."""
    pass


class DomainError(EvaluationError):
    """Raised when an operation receives invalid numeric inputs."""
    pass


class GradientUndefined(EvaluationError):
    """Raised when an operation has no derivative rule."""
    pass


class UncomputedInput(EvaluationError):
    """Raised when an instruction's input has no value."""
    pass


# Differentiation Exceptions
class DifferentiationError(GraphEngineError):
    """Base exception for symbolic differentiation errors."""
    pass


class NotAPredecessor(DifferentiationError):
    """Raised when a requested input cannot reach the output."""
    pass


# Machine Exceptions
class MachineError(GraphEngineError):
    """Base exception for engine lifecycle errors."""
    pass


class EngineClosed(MachineError):
    """Raised when a closed machine is used."""
    pass


class OperationNotFound(GraphEngineError):
    """Raised when an operation name is not registered."""
    pass


# Configuration Exceptions
class ConfigurationError(GraphEngineError):
    """Raised when configuration is invalid."""
    pass


class ValidationError(GraphEngineError):
    """Raised when data validation fails."""
    pass
