"""
Error handling utilities for engine runs.
"""
from typing import Callable, Optional
from .logging_config import get_logger
from .exceptions import GraphEngineError


logger = get_logger(__name__)


class ErrorContext:
    """
    Context manager that logs a failing operation and re-raises.

    Engine errors are logged with their structured details; anything else is
    logged with a traceback. An optional cleanup function runs before the
    exception propagates.
    """

    def __init__(
        self,
        operation_name: str,
        cleanup_func: Optional[Callable] = None
    ):
        self.operation_name = operation_name
        self.cleanup_func = cleanup_func
        self.logger = get_logger(__name__)

    def __enter__(self):
        self.logger.debug(f"Starting operation: {self.operation_name}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            if isinstance(exc_val, GraphEngineError):
                self.logger.error(
                    f"Error in operation {self.operation_name}: {exc_val.message}",
                    extra={'extra_fields': {'error_details': exc_val.to_dict()}}
                )
            else:
                self.logger.error(
                    f"Unexpected error in operation {self.operation_name}: {exc_val}",
                    exc_info=(exc_type, exc_val, exc_tb)
                )

            if self.cleanup_func:
                try:
                    self.cleanup_func()
                except Exception as cleanup_error:
                    self.logger.error(
                        f"Error during cleanup: {cleanup_error}",
                        exc_info=True
                    )

            return False

        self.logger.debug(f"Completed operation: {self.operation_name}")
        return False
