"""
Configuration management for the retirement cost collector.

Supports loading configuration from:
1. YAML config file (--config)
2. Environment variables (RETCOST_*)
3. Command-line arguments (highest priority)

Config file example:
```yaml
input: "./retirements.csv"
delimiter: ";"
period: "202401"
export: "./retirement_costs.csv"

query:
  max_attempts: 20
  max_total_wait: ${RETCOST_MAX_WAIT:-3600}
```
"""
import logging
import os
import re
import stat
from datetime import date
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .cost_query import QueryConfig
from .errors import InvalidConfigValue

logger = logging.getLogger(__name__)


# Default config file locations (checked in order)
DEFAULT_CONFIG_PATHS = [
    './retcost-config.yaml',
    './retcost-config.yml',
    '~/.retcost/config.yaml',
    '~/.retcost/config.yml',
]

# Mapping from config keys to env vars
ENV_VAR_MAPPING = {
    'input': 'RETCOST_INPUT',
    'delimiter': 'RETCOST_DELIMITER',
    'period': 'RETCOST_PERIOD',
    'end_date': 'RETCOST_END_DATE',
    'date_format': 'RETCOST_DATE_FORMAT',
    'output': 'RETCOST_OUTPUT',
    'export': 'RETCOST_EXPORT',
    'summary_json': 'RETCOST_SUMMARY_JSON',
    'log_level': 'RETCOST_LOG_LEVEL',
    'query.max_attempts': 'RETCOST_MAX_ATTEMPTS',
    'query.max_total_wait': 'RETCOST_MAX_TOTAL_WAIT',
    'query.default_retry_after': 'RETCOST_DEFAULT_RETRY_AFTER',
    'query.api_version': 'RETCOST_API_VERSION',
    'query.client_type': 'RETCOST_CLIENT_TYPE',
    'query.timeout': 'RETCOST_TIMEOUT',
}

_INT_KEYS = {'query.max_attempts'}
_FLOAT_KEYS = {'query.max_total_wait', 'query.default_retry_after', 'query.timeout'}
_BOOL_KEYS = {'summary_json'}
_TEXT_KEYS = {'period', 'end_date'}


def _substitute_env_vars(value: Any) -> Any:
    """Substitute ${ENV_VAR} patterns in string values."""
    if isinstance(value, str):
        # Pattern: ${VAR_NAME} or ${VAR_NAME:-default}
        pattern = r'\$\{([^}:]+)(?::-([^}]*))?\}'

        def replace(match):
            var_name = match.group(1)
            default = match.group(2) or ''
            return os.environ.get(var_name, default)

        return re.sub(pattern, replace, value)
    elif isinstance(value, dict):
        return {k: _substitute_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [_substitute_env_vars(item) for item in value]
    return value


def _get_nested(data: Dict, key_path: str, default: Any = None) -> Any:
    """Get a nested value from a dict using dot notation."""
    value = data
    for key in key_path.split('.'):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def _set_nested(data: Dict, key_path: str, value: Any) -> None:
    """Set a nested value in a dict using dot notation."""
    keys = key_path.split('.')
    for key in keys[:-1]:
        data = data.setdefault(key, {})
    data[keys[-1]] = value


def _coerce(key_path: str, value: Any) -> Any:
    """Convert string values from env vars / YAML substitution to their types."""
    # YAML reads unquoted 202401 as int and 2026-12-31 as a date
    if key_path in _TEXT_KEYS and isinstance(value, (int, date)) and not isinstance(value, bool):
        return value.isoformat() if isinstance(value, date) else str(value)
    if value is None or not isinstance(value, str):
        return value
    if value == '':
        return None
    try:
        if key_path in _INT_KEYS:
            return int(value)
        if key_path in _FLOAT_KEYS:
            return float(value)
    except ValueError:
        raise InvalidConfigValue(key_path, value) from None
    if key_path in _BOOL_KEYS:
        return value.lower() in ('true', '1', 'yes')
    return value


def load_config_file(config_path: str) -> Dict[str, Any]:
    """Load configuration from a YAML file."""
    path = Path(config_path).expanduser()

    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    file_mode = path.stat().st_mode
    if file_mode & (stat.S_IRWXG | stat.S_IRWXO):
        logger.warning(f"Config file {config_path} has loose permissions. "
                       f"Consider: chmod 600 {config_path}")

    logger.info(f"Loading config from {path}")

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    config = _substitute_env_vars(config)

    for key_path in list(ENV_VAR_MAPPING):
        value = _get_nested(config, key_path)
        if value is not None:
            _set_nested(config, key_path, _coerce(key_path, value))

    return config


def find_default_config() -> Optional[str]:
    """Find a config file in default locations."""
    for path in DEFAULT_CONFIG_PATHS:
        expanded = Path(path).expanduser()
        if expanded.exists():
            return str(expanded)
    return None


def load_env_config() -> Dict[str, Any]:
    """Load configuration from environment variables."""
    config: Dict[str, Any] = {}

    for config_key, env_var in ENV_VAR_MAPPING.items():
        value = os.environ.get(env_var)
        if value is not None:
            _set_nested(config, config_key, _coerce(config_key, value))

    return config


def merge_configs(*configs: Dict[str, Any]) -> Dict[str, Any]:
    """Merge multiple config dicts. Later configs override earlier ones."""
    result: Dict[str, Any] = {}

    for config in configs:
        for key, value in config.items():
            if isinstance(value, dict) and isinstance(result.get(key), dict):
                result[key] = merge_configs(result[key], value)
            elif value is not None:
                result[key] = value

    return result


# argparse attribute -> config key
ARG_MAPPING = {
    'input': 'input',
    'delimiter': 'delimiter',
    'period': 'period',
    'end_date': 'end_date',
    'date_format': 'date_format',
    'output': 'output',
    'export': 'export',
    'summary_json': 'summary_json',
    'log_level': 'log_level',
    'max_attempts': 'query.max_attempts',
    'max_total_wait': 'query.max_total_wait',
}


def args_to_config(args) -> Dict[str, Any]:
    """Convert argparse args to config dict format."""
    config: Dict[str, Any] = {}

    for arg_name, config_key in ARG_MAPPING.items():
        value = getattr(args, arg_name, None)
        if value is not None:
            _set_nested(config, config_key, value)

    return config


def config_to_args(config: Dict[str, Any], args) -> None:
    """Apply merged config values back onto the argparse namespace."""
    for arg_name, config_key in ARG_MAPPING.items():
        value = _get_nested(config, config_key)
        if value is not None:
            setattr(args, arg_name, value)


def load_config(args) -> Dict[str, Any]:
    """
    Load configuration from all sources and merge them.

    Priority (highest to lowest):
    1. CLI arguments
    2. Config file (--config or default location)
    3. Environment variables

    Returns merged config dict.
    """
    configs = []

    env_config = load_env_config()
    if env_config:
        logger.debug("Loaded config from environment variables")
        configs.append(env_config)

    config_path = getattr(args, 'config', None)
    if config_path:
        configs.append(load_config_file(config_path))
    else:
        default_config = find_default_config()
        if default_config:
            logger.info(f"Found default config file: {default_config}")
            configs.append(load_config_file(default_config))

    configs.append(args_to_config(args))

    merged = merge_configs(*configs)
    config_to_args(merged, args)

    return merged


def query_config_from(config: Dict[str, Any]) -> QueryConfig:
    """Build the cost query client settings from the merged config."""
    query = config.get('query') or {}
    defaults = QueryConfig()
    return QueryConfig(
        api_version=query.get('api_version') or defaults.api_version,
        client_type=query.get('client_type') or defaults.client_type,
        timeout=query.get('timeout') or defaults.timeout,
        default_retry_after=query.get('default_retry_after') or defaults.default_retry_after,
        max_attempts=query.get('max_attempts'),
        max_total_wait=query.get('max_total_wait'),
    )


def generate_sample_config() -> str:
    """Generate a sample config file content."""
    return '''# Retirement Cost Collector Configuration
#
# Environment variable substitution supported:
#   ${VAR_NAME}           - required env var
#   ${VAR_NAME:-default}  - env var with default value

# Retirement list exported from the Azure portal / Advisor workbook
input: "./retirements.csv"

# Column delimiter of the input (and export) file
delimiter: ","

# Billing period YYYYMM (default: last full month)
# period: "202401"

# Only include resources retiring on or before this date (YYYY-MM-DD)
# end_date: "2026-12-31"

# strptime format of the Retirement Date column (default: ISO-8601)
# date_format: "%m/%d/%Y"

# Output directory for the log file and JSON summary
output: "."

# Per-resource export file (omit to skip the export)
# export: "./retirement_costs.csv"

# Also write a JSON summary into the output directory
summary_json: false

# Logging level: DEBUG, INFO, WARNING, ERROR
log_level: INFO


# =============================================================================
# Cost Management query settings
# =============================================================================
query:
  # Throttled requests are retried until they succeed. Set either ceiling
  # to give up on a resource (it is then counted as 0).
  # max_attempts: 50
  # max_total_wait: 3600

  # Wait used when a 429 carries no retry-after header
  default_retry_after: 30

  # api_version: "2023-03-01"
  # timeout: 60
'''
