"""
Logging configuration for cloud discovery
"""
import functools
import json
import logging
import logging.config
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

LOG_FORMATS = ('console', 'json', 'detailed')

# LogRecord attributes that are not user-supplied `extra` fields
_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName', 'levelname',
    'levelno', 'lineno', 'module', 'msecs', 'pathname', 'process',
    'processName', 'relativeCreated', 'thread', 'threadName', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message', 'asctime',
}


class StructuredFormatter(logging.Formatter):
    """JSON structured log formatter"""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
            'thread': record.threadName,
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str)


def setup_logging(log_level: str = 'INFO',
                  log_file: Optional[str] = None,
                  log_format: str = 'console',
                  enable_color: bool = True) -> None:
    """
    Setup logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional log file path
        log_format: Format type ('console', 'json', 'detailed')
        enable_color: Enable colored output for console
    """
    log_level = log_level.upper()
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    config: Dict[str, Any] = {
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {},
        'handlers': {},
        'loggers': {
            'cloud_discovery': {
                'level': log_level,
                'handlers': [],
                'propagate': False
            },
            'boto3': {
                'level': 'WARNING',
                'handlers': [],
                'propagate': False
            },
            'botocore': {
                'level': 'WARNING',
                'handlers': [],
                'propagate': False
            },
            'urllib3': {
                'level': 'WARNING',
                'handlers': [],
                'propagate': False
            }
        },
        'root': {
            'level': log_level,
            'handlers': []
        }
    }

    if log_format == 'json':
        config['formatters']['json'] = {
            '()': StructuredFormatter
        }
        formatter_name = 'json'
    elif log_format == 'detailed':
        config['formatters']['detailed'] = {
            'format': '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] '
                      '%(filename)s:%(lineno)d - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        }
        formatter_name = 'detailed'
    else:  # console
        if enable_color and sys.stderr.isatty():
            config['formatters']['console'] = {
                '()': 'colorlog.ColoredFormatter',
                'format': '%(log_color)s%(levelname)-8s%(reset)s %(message)s',
                'log_colors': {
                    'DEBUG': 'cyan',
                    'INFO': 'green',
                    'WARNING': 'yellow',
                    'ERROR': 'red',
                    'CRITICAL': 'red,bg_white'
                }
            }
        else:
            config['formatters']['console'] = {
                'format': '%(levelname)-8s %(message)s'
            }
        formatter_name = 'console'

    config['handlers']['console'] = {
        'class': 'logging.StreamHandler',
        'level': log_level,
        'formatter': formatter_name,
        'stream': 'ext://sys.stderr'
    }

    for logger_name in config['loggers']:
        config['loggers'][logger_name]['handlers'].append('console')
    config['root']['handlers'].append('console')

    if log_file:
        config['formatters']['file'] = {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'datefmt': '%Y-%m-%d %H:%M:%S'
        }

        config['handlers']['file'] = {
            'class': 'logging.handlers.RotatingFileHandler',
            'level': log_level,
            'formatter': 'file' if log_format != 'json' else 'json',
            'filename': log_file,
            'maxBytes': 10 * 1024 * 1024,  # 10MB
            'backupCount': 5,
            'encoding': 'utf-8'
        }

        for logger_name in config['loggers']:
            config['loggers'][logger_name]['handlers'].append('file')
        config['root']['handlers'].append('file')

    logging.config.dictConfig(config)


def log_execution_time(func):
    """Decorator to log function execution time"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(func.__module__)
        start_time = time.monotonic()

        try:
            result = func(*args, **kwargs)
            execution_time = time.monotonic() - start_time
            logger.debug(f"{func.__name__} completed in {execution_time:.2f} seconds")
            return result
        except Exception as e:
            execution_time = time.monotonic() - start_time
            logger.error(f"{func.__name__} failed after {execution_time:.2f} seconds: {e}")
            raise

    return wrapper
