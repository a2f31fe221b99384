"""Logging helpers shared by the engine and the CLI"""

from .logging_config import LOG_FORMATS, StructuredFormatter, log_execution_time, setup_logging

__all__ = [
    'LOG_FORMATS',
    'StructuredFormatter',
    'log_execution_time',
    'setup_logging'
]
