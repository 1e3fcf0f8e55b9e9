"""
Schema validation for configuration dictionaries.
"""
from typing import Any, Dict
from utils.logging_config import get_logger
from utils.exceptions import ValidationError
from .validators import ChoiceValidator

logger = get_logger(__name__)


class Schema:
    """Schema for validating dictionaries."""

    def __init__(self, schema: Dict[str, Any], strict: bool = False):
        """
        Initialize schema.

        Args:
            schema: Dictionary defining expected structure. A value may be a
                type, a rule dict (``type``, ``required``, ``default``,
                ``validator``, ``choices``) or a nested Schema.
            strict: If True, reject extra keys not in schema
        """
        self.schema = schema
        self.strict = strict

    def validate(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Validate data against schema."""
        if not isinstance(data, dict):
            raise ValidationError(
                f"Expected dict, got {type(data)}",
                details={'actual_type': str(type(data))}
            )

        validated = {}
        errors = []

        # Check required fields
        for key, spec in self.schema.items():
            if key not in data:
                if isinstance(spec, Schema):
                    validated[key] = spec.validate({})
                    continue
                if isinstance(spec, dict) and not spec.get('required', True):
                    # Optional field, use default if provided
                    if 'default' in spec:
                        validated[key] = spec['default']
                    continue
                errors.append(f"Missing required field: {key}")
                continue

            # Validate field
            try:
                validated[key] = self._validate_field(key, data[key], spec)
            except ValidationError as e:
                errors.append(f"Field '{key}': {e.message}")
                errors.extend(e.details.get('errors', []))

        # Check for extra fields in strict mode
        if self.strict:
            extra_keys = set(data.keys()) - set(self.schema.keys())
            if extra_keys:
                errors.append(f"Unexpected fields: {sorted(extra_keys)}")
        else:
            # Include extra fields
            for key in data:
                if key not in validated:
                    validated[key] = data[key]

        if errors:
            raise ValidationError(
                "Schema validation failed",
                details={'errors': errors}
            )

        return validated

    def _validate_field(self, key: str, value: Any, spec: Any) -> Any:
        """Validate a single field."""
        if isinstance(spec, Schema):
            return spec.validate(value)

        # If spec is a type, check type
        if isinstance(spec, type):
            if not isinstance(value, spec):
                raise ValidationError(
                    f"Expected {spec}, got {type(value)}",
                    details={'expected': str(spec), 'actual': str(type(value))}
                )
            return value

        # If spec is a dict with validation rules
        if isinstance(spec, dict):
            expected_type = spec.get('type')
            if expected_type and not isinstance(value, expected_type):
                raise ValidationError(
                    f"Expected {expected_type}, got {type(value)}",
                    details={'expected': str(expected_type), 'actual': str(type(value))}
                )

            if 'validator' in spec:
                value = spec['validator'].validate(value)

            if 'choices' in spec and value not in spec['choices']:
                raise ValidationError(
                    f"Must be one of {spec['choices']}, got {value}",
                    details={'allowed': spec['choices'], 'actual': value}
                )

            return value

        return value


class EngineConfigSchema(Schema):
    """Schema for the ``engine`` and ``logging`` configuration sections."""

    def __init__(self):
        engine = Schema({
            'watch_nan': {'type': bool, 'required': False, 'default': False},
            'watch_inf': {'type': bool, 'required': False, 'default': False},
            'trace': {'type': bool, 'required': False, 'default': False},
        }, strict=True)
        logging_section = Schema({
            'log_level': {
                'type': str,
                'required': False,
                'default': 'WARNING',
                'validator': ChoiceValidator(
                    ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'], name='logging.log_level'
                )
            },
            'log_dir': {'type': str, 'required': False, 'default': 'logs'},
            'enable_console': {'type': bool, 'required': False, 'default': True},
            'enable_file': {'type': bool, 'required': False, 'default': False},
            'enable_structured': {'type': bool, 'required': False, 'default': False},
        }, strict=True)
        super().__init__({'engine': engine, 'logging': logging_section}, strict=False)
