"""
Configuration loading for cloud discovery

Precedence (lowest to highest): built-in defaults, the YAML config file,
CLOUD_DISCOVERY_* environment variables. Command-line flags are applied on
top of the result by the CLI.
"""
import logging
import os
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

import yaml

from .exceptions import ConfigurationError
from .models import DEFAULT_CACHE_TTL, DEFAULT_MAX_CONCURRENCY, DEFAULT_TIMEOUT
from .utils.logging_config import LOG_FORMATS

logger = logging.getLogger(__name__)

CONFIG_FILENAME = '.cloud-discovery.yaml'
ENV_PREFIX = 'CLOUD_DISCOVERY_'
OUTPUT_FORMATS = ('json', 'yaml', 'table', 'excel')
LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def get_default_config() -> Dict[str, Any]:
    """Get default configuration"""
    return {
        'output_format': 'json',
        'discovery': {
            'max_concurrency': DEFAULT_MAX_CONCURRENCY,
            'timeout': DEFAULT_TIMEOUT,
            'use_cache': False,
            'cache_ttl': DEFAULT_CACHE_TTL,
            'cache_dir': '~/.cache/cloud-discovery',
        },
        'logging': {
            'level': 'INFO',
            'file': None,
            'format': 'console',
            'color': True,
        },
        'providers': {
            'aws': {
                'regions': ['us-east-1', 'us-west-2'],
                'profile': None,
                'role_arn': None,
            },
        },
    }


def config_search_paths() -> List[Path]:
    return [
        Path.cwd() / CONFIG_FILENAME,
        Path.home() / CONFIG_FILENAME,
        Path('/etc/cloud-discovery') / CONFIG_FILENAME,
    ]


def find_config_file() -> Optional[Path]:
    for path in config_search_paths():
        if path.is_file():
            return path
    return None


def _deep_merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def _to_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ('1', 'true', 'yes', 'on'):
        return True
    if lowered in ('0', 'false', 'no', 'off'):
        return False
    raise ValueError(f"not a boolean: {value!r}")


def _to_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


# Environment variable suffix -> (config path, converter)
_ENV_OVERRIDES: Dict[str, Tuple[Tuple[str, ...], Callable[[str], Any]]] = {
    'OUTPUT_FORMAT': (('output_format',), str),
    'MAX_CONCURRENCY': (('discovery', 'max_concurrency'), int),
    'TIMEOUT': (('discovery', 'timeout'), float),
    'USE_CACHE': (('discovery', 'use_cache'), _to_bool),
    'CACHE_TTL': (('discovery', 'cache_ttl'), float),
    'CACHE_DIR': (('discovery', 'cache_dir'), str),
    'LOG_LEVEL': (('logging', 'level'), str),
    'LOG_FILE': (('logging', 'file'), str),
    'LOG_FORMAT': (('logging', 'format'), str),
    'LOG_COLOR': (('logging', 'color'), _to_bool),
    'AWS_REGIONS': (('providers', 'aws', 'regions'), _to_list),
    'AWS_PROFILE': (('providers', 'aws', 'profile'), str),
    'AWS_ROLE_ARN': (('providers', 'aws', 'role_arn'), str),
}


def apply_env_overrides(config: Dict[str, Any],
                        environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Apply CLOUD_DISCOVERY_* environment variables in place"""
    environ = os.environ if environ is None else environ
    for suffix, (path, convert) in _ENV_OVERRIDES.items():
        name = ENV_PREFIX + suffix
        if name not in environ:
            continue
        try:
            value = convert(environ[name])
        except ValueError as e:
            raise ConfigurationError(f"Invalid value for {name}", cause=e) from e

        section = config
        for key in path[:-1]:
            section = section.setdefault(key, {})
        section[path[-1]] = value
        logger.debug(f"Config override from environment: {name}")
    return config


def load_config(path: Optional[Union[str, Path]] = None,
                environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Load configuration from defaults, file and environment

    Args:
        path: Explicit config file; must exist when given. Otherwise the
            standard locations are searched and a missing file is not an error.
        environ: Environment mapping, os.environ by default

    Returns:
        Validated configuration dictionary
    """
    config = get_default_config()

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.is_file():
            raise ConfigurationError(f"Config file not found: {config_path}")
    else:
        config_path = find_config_file()

    if config_path is not None:
        try:
            with open(config_path, 'r') as f:
                file_config = yaml.safe_load(f) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read config file {config_path}", cause=e) from e
        if not isinstance(file_config, Mapping):
            raise ConfigurationError(f"Config file {config_path} must contain a mapping")
        _deep_merge(config, file_config)
        logger.info(f"Using config file: {config_path}")
    else:
        logger.debug("No config file found, using defaults")

    apply_env_overrides(config, environ)
    validate_config(config)
    return config


def save_config(config: Dict[str, Any], path: Union[str, Path]) -> Path:
    """Write configuration as YAML, creating parent directories"""
    config_path = Path(path).expanduser()
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with open(config_path, 'w') as f:
        yaml.safe_dump(config, f, default_flow_style=False, sort_keys=False)
    return config_path


def init_config(path: Optional[Union[str, Path]] = None, force: bool = False) -> Path:
    """Create a config file populated with the defaults"""
    config_path = Path(path).expanduser() if path else Path.cwd() / CONFIG_FILENAME
    if config_path.exists() and not force:
        raise ConfigurationError(f"Config file already exists: {config_path}")
    save_config(get_default_config(), config_path)
    logger.info(f"Created config file: {config_path}")
    return config_path


def _number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_config(config: Mapping[str, Any]) -> None:
    """Raise ConfigurationError describing every problem found"""
    problems = []

    if config.get('output_format') not in OUTPUT_FORMATS:
        problems.append(f"output_format must be one of {', '.join(OUTPUT_FORMATS)}")

    discovery = config.get('discovery') or {}
    concurrency = discovery.get('max_concurrency')
    if not isinstance(concurrency, int) or isinstance(concurrency, bool) or concurrency < 1:
        problems.append("discovery.max_concurrency must be an integer >= 1")
    if not _number(discovery.get('timeout')) or discovery['timeout'] <= 0:
        problems.append("discovery.timeout must be a number greater than 0")
    if not _number(discovery.get('cache_ttl')) or discovery['cache_ttl'] < 0:
        problems.append("discovery.cache_ttl must be a non-negative number")
    if not isinstance(discovery.get('use_cache'), bool):
        problems.append("discovery.use_cache must be true or false")

    logging_config = config.get('logging') or {}
    if str(logging_config.get('level', '')).upper() not in LOG_LEVELS:
        problems.append(f"logging.level must be one of {', '.join(LOG_LEVELS)}")
    if logging_config.get('format') not in LOG_FORMATS:
        problems.append(f"logging.format must be one of {', '.join(LOG_FORMATS)}")

    aws = (config.get('providers') or {}).get('aws') or {}
    regions = aws.get('regions', [])
    if not isinstance(regions, list) or not all(isinstance(r, str) for r in regions):
        problems.append("providers.aws.regions must be a list of region names")

    if problems:
        raise ConfigurationError("Invalid configuration: " + "; ".join(problems),
                                 details={'problems': problems})

