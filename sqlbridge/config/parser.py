"""Loader for SQLBridge connection profile files.

Profiles live in YAML. String values may reference the environment as
``${VAR}`` or ``${VAR:-default}``, and a file may pull shared profiles in
with ``include:`` (a path or a list of paths, relative to the including
file). Included files are read first so the including file wins.
"""

import os
import re
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

import yaml
from pydantic import ValidationError

from sqlbridge.config.models import SQLBridgeConfig, EnvironmentSettings
from sqlbridge.exceptions import ConfigurationError

PathLike = Union[str, Path]

DEFAULT_FILE_NAMES = ("sqlbridge.yaml", "sqlbridge.yml", "config/sqlbridge.yaml")

SAMPLE_PROFILES: Dict[str, Any] = {
    'connections': {
        'local': {
            'client': 'pg',
            'host': 'localhost',
            'port': 5432,
            'database': 'postgres',
            'user': 'postgres',
            'password': '${PGPASSWORD:-postgres}',
            'schema': 'public',
            'pool_size': 0,
        },
        'warehouse': {
            'client': 'pg',
            'host': '${WAREHOUSE_HOST:-localhost}',
            'database': 'warehouse',
            'user': 'analyst',
            'password': '${WAREHOUSE_PASSWORD}',
            'pool_size': 5,
            'ssl': True,
            'connect_timeout': 30,
            'options': {
                'target_session_attrs': 'read-write',
            },
        },
    },
    'default_connection': 'local',
}


def describe_validation_error(error: ValidationError) -> str:
    """One ``connections.<profile>.<field>: message`` line per problem."""
    lines = []
    for problem in error.errors():
        location = '.'.join(str(part) for part in problem['loc']) or '<root>'
        lines.append(f"  {location}: {problem['msg']}")
    return '\n'.join(lines)


class ConfigParser:
    """Reads profile files, resolving environment references and includes."""

    ENV_VAR_PATTERN = re.compile(r'\$\{([^}]+)\}')

    def __init__(self) -> None:
        self.env_settings = EnvironmentSettings()

    def load_config(self, config_path: Optional[PathLike] = None) -> SQLBridgeConfig:
        """Load and validate connection profiles.

        Args:
            config_path: Profile file. When omitted, ``SQLBRIDGE_CONFIG_FILE``
                and then the default file names in the working directory
                are tried.

        Raises:
            ConfigurationError: If no file is found, the YAML is broken, an
                environment reference cannot be resolved or a profile is
                invalid.
        """
        config_file = self.find_config_file(config_path)
        document = self._read(config_file, seen=set())
        if not document:
            raise ConfigurationError(f"Configuration file '{config_file}' is empty")

        try:
            return SQLBridgeConfig(**document)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid connection profiles in '{config_file}':\n{describe_validation_error(e)}",
                details={'file': str(config_file), 'errors': e.errors()},
            ) from e

    def find_config_file(self, config_path: Optional[PathLike] = None) -> Path:
        if config_path:
            path = Path(config_path)
            if not path.exists():
                raise ConfigurationError(f"Configuration file '{config_path}' not found")
            return path

        if self.env_settings.config_file and Path(self.env_settings.config_file).exists():
            return Path(self.env_settings.config_file)

        candidates = [Path.cwd() / name for name in DEFAULT_FILE_NAMES]
        for candidate in candidates:
            if candidate.exists():
                return candidate

        raise ConfigurationError(
            f"No configuration file found in default locations: {[str(c) for c in candidates]}"
        )

    def _read(self, path: Path, seen: Set[Path]) -> Dict[str, Any]:
        """Parse one file with its includes merged underneath it."""
        resolved = path.resolve()
        if resolved in seen:
            raise ConfigurationError(f"Circular include of '{path}'")
        seen = seen | {resolved}

        try:
            with open(path, 'r', encoding='utf-8') as file:
                document = yaml.safe_load(file)
        except FileNotFoundError as e:
            raise ConfigurationError(f"Configuration file '{path}' not found") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in '{path}': {e}") from e

        if document is None:
            return {}
        if not isinstance(document, dict):
            raise ConfigurationError(f"Configuration file '{path}' must contain a mapping")

        document = self.resolve_env(document)

        includes: Union[str, List[str]] = document.pop('include', [])
        if isinstance(includes, str):
            includes = [includes]

        merged: Dict[str, Any] = {}
        for include in includes:
            merged = merge_documents(merged, self._read(path.parent / include, seen))
        return merge_documents(merged, document)

    def resolve_env(self, value: Any, location: str = '') -> Any:
        """Replace ``${VAR}`` references throughout a parsed document.

        Raises:
            ConfigurationError: If a reference without default names an
                unset variable. The message carries the key path.
        """
        if isinstance(value, dict):
            return {
                key: self.resolve_env(item, f"{location}.{key}" if location else str(key))
                for key, item in value.items()
            }
        if isinstance(value, list):
            return [self.resolve_env(item, f"{location}[{i}]") for i, item in enumerate(value)]
        if not isinstance(value, str):
            return value

        def replace_var(match: 're.Match[str]') -> str:
            name, has_default, default = match.group(1).partition(':-')
            name = name.strip()
            resolved = os.getenv(name)
            if resolved is not None:
                return resolved
            if has_default:
                return default.strip()
            raise ConfigurationError(
                f"Required environment variable '{name}' is not set (referenced by {location or 'value'})"
            )

        return self.ENV_VAR_PATTERN.sub(replace_var, value)


def merge_documents(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Deep-merge two documents; ``override`` wins on conflicts."""
    result = dict(base)
    for key, value in override.items():
        if isinstance(result.get(key), dict) and isinstance(value, dict):
            result[key] = merge_documents(result[key], value)
        else:
            result[key] = value
    return result


# Global configuration instance
_config_parser = ConfigParser()
_loaded_config: Optional[SQLBridgeConfig] = None


def get_config(config_path: Optional[PathLike] = None, reload: bool = False) -> SQLBridgeConfig:
    """Get the global configuration instance."""
    global _loaded_config

    if _loaded_config is None or reload:
        _loaded_config = _config_parser.load_config(config_path)

    return _loaded_config


def validate_config_file(config_path: PathLike) -> bool:
    """Load ``config_path`` without touching the global instance.

    Raises:
        ConfigurationError: If the file is invalid.
    """
    ConfigParser().load_config(config_path)
    return True


def create_sample_config(output_path: PathLike) -> None:
    """Write :data:`SAMPLE_PROFILES` to ``output_path``."""
    with open(output_path, 'w', encoding='utf-8') as file:
        yaml.safe_dump(SAMPLE_PROFILES, file, default_flow_style=False, sort_keys=False)
