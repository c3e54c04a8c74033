"""
Configuration validation utilities.
"""

from typing import Dict, Any, List
from pydantic import ValidationError

from ...infrastructure.exceptions import ConfigurationError
from .models import RunnerConfiguration

KNOWN_TOP_LEVEL_KEYS = {'runner'}


class ConfigurationValidationError(ConfigurationError):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, validation_errors: List[Dict[str, Any]]):
        super().__init__(
            message,
            validation_errors=validation_errors,
            error_code="CONFIGURATION_VALIDATION_ERROR"
        )
        self.validation_errors = validation_errors

    def get_detailed_message(self) -> str:
        """Get a detailed error message with all validation errors."""
        lines = [self.message, "Validation errors:"]

        for error in self.validation_errors:
            location = " -> ".join(str(loc) for loc in error.get('loc', []))
            lines.append(f"- {location}: {error.get('msg', 'Unknown error')}")

        return "\n".join(lines)


class ConfigurationValidator:
    """Validates configuration data and provides detailed error messages."""

    @staticmethod
    def validate_configuration(config_data: Dict[str, Any]) -> List[str]:
        """
        Validate configuration data and return list of warnings.

        Args:
            config_data: Raw configuration data to validate

        Returns:
            List of warning messages for unknown configuration keys

        Raises:
            ConfigurationValidationError: If validation fails with errors
        """
        errors = []
        warnings = []

        runner_data = config_data.get('runner', {})
        if not isinstance(runner_data, dict):
            errors.append({
                'loc': ['runner'],
                'msg': "runner section must be a mapping",
                'type': 'type_error'
            })
        else:
            try:
                RunnerConfiguration(**runner_data)
            except ValidationError as e:
                for error in e.errors():
                    errors.append({
                        'loc': ['runner'] + list(error['loc']),
                        'msg': error['msg'],
                        'type': error['type']
                    })

        for key in config_data.keys():
            if key not in KNOWN_TOP_LEVEL_KEYS:
                warnings.append(f"Unknown configuration key: {key}")

        if errors:
            raise ConfigurationValidationError("Configuration validation failed", errors)

        return warnings
