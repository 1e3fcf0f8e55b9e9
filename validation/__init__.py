"""
Validation utilities for exprgraph.
"""
from .validators import (
    Validator,
    TypeValidator,
    ShapeValidator,
    DTypeValidator,
    ChoiceValidator,
    validate_shape_compatible
)
from .schema import (
    Schema,
    EngineConfigSchema
)

__all__ = [
    'Validator',
    'TypeValidator',
    'ShapeValidator',
    'DTypeValidator',
    'ChoiceValidator',
    'validate_shape_compatible',
    'Schema',
    'EngineConfigSchema',
]
