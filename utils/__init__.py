"""
Utility modules for exprgraph.
"""
from .logging_config import get_logger, LoggerFactory, LogContext
from .exceptions import *
from .error_handlers import ErrorContext

__all__ = [
    'get_logger',
    'LoggerFactory',
    'LogContext',
    'ErrorContext',
]
