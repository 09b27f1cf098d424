"""Configuration loading: matrix definitions and .image-matrix.yml settings."""

import os
import re
import sys
from pathlib import Path

import yaml
from pydantic import BaseModel, model_validator
from pydantic_yaml import parse_yaml_file_as

from imagematrix.aliases import LATEST_TAG
from imagematrix.models import DEFAULT_CONTAINER_COMMAND, ImageKind, OsFamily

_config_cache: dict | None = None

CONFIG_FILE = ".image-matrix.yml"
MATRIX_FILE = "matrix.yml"
DEFAULT_MATRIX_PATH = Path(__file__).parent / "defaults" / "matrix.yml"
DEFAULT_PUSH_DELAY = 3.0
DEFAULT_REPOSITORY_FORMAT = "{repository}-{family}{os_version}"


def clear_config_cache() -> None:
    """Clear the config cache. Useful for testing."""
    global _config_cache
    _config_cache = None


def expand_env_vars(value: str | None) -> str | None:
    """Expand ${VAR} references in a string value.

    Supports:
    - Pure env var: ${VAR}
    - Multiple env vars: ${USER}:${PASS}
    - Mixed content: https://${HOST}:5000

    Returns None if the value is None or any referenced env var is undefined.
    """
    if value is None:
        return None

    if not isinstance(value, str):
        value = str(value)

    if not value:
        return value

    pattern = r'\$\{([^}]+)\}'
    matches = list(re.finditer(pattern, value))

    if not matches:
        return value

    result = value
    for match in reversed(matches):  # Reverse to preserve positions during replacement
        env_value = os.environ.get(match.group(1))
        if env_value is None:
            return None
        result = result[:match.start()] + env_value + result[match.end():]

    return result


def load_config() -> dict:
    """Load .image-matrix.yml from current directory.

    Returns empty dict if file doesn't exist or is empty.
    Result is cached for the duration of the process.
    """
    global _config_cache

    if _config_cache is not None:
        return _config_cache

    config_path = Path.cwd() / CONFIG_FILE

    if not config_path.exists():
        _config_cache = {}
        return _config_cache

    try:
        loaded = yaml.safe_load(config_path.read_text())
    except (OSError, yaml.YAMLError):
        loaded = None

    _config_cache = loaded if isinstance(loaded, dict) else {}
    return _config_cache


class RegistrySettings:
    """Private registry settings from .image-matrix.yml"""

    def __init__(self, url: str | None = None, username: str | None = None, password: str | None = None):
        self.url = url
        self.username = username
        self.password = password


def get_registry_settings() -> RegistrySettings:
    """Get the private registry settings, with env vars expanded."""
    registry = load_config().get("registry") or {}
    if not isinstance(registry, dict):
        return RegistrySettings()

    return RegistrySettings(
        url=expand_env_vars(registry.get("url")),
        username=expand_env_vars(registry.get("username")),
        password=expand_env_vars(registry.get("password")),
    )


def get_push_delay() -> float:
    """Seconds to wait before each push."""
    value = expand_env_vars(load_config().get("push_delay"))
    if value is None:
        return DEFAULT_PUSH_DELAY
    try:
        return float(value)
    except ValueError:
        print(f"Warning: Invalid push_delay '{value}' in {CONFIG_FILE}, using {DEFAULT_PUSH_DELAY}", file=sys.stderr)
        return DEFAULT_PUSH_DELAY


def get_container_command() -> str | None:
    return expand_env_vars(load_config().get("container_command"))


def get_matrix_path() -> Path:
    """Resolve which matrix definition to load.

    Order: 'matrix' in settings, matrix.yml in cwd, packaged default.
    """
    configured = expand_env_vars(load_config().get("matrix"))
    if configured:
        return Path(configured)

    local = Path.cwd() / MATRIX_FILE
    if local.exists():
        return local

    return DEFAULT_MATRIX_PATH


class OsVersionConfig(BaseModel):
    """A single OS version within a family"""
    version: str
    codename: str | None = None
    minimum_runtime_version: str | None = None


class FamilyConfig(BaseModel):
    """An OS family axis"""
    family: OsFamily
    versions: list[OsVersionConfig]
    enabled: bool = True
    minimum_runtime_version: str | None = None
    provides_default: bool = False
    default_version: str | None = None

    @model_validator(mode="after")
    def _check_default_version(self) -> "FamilyConfig":
        if self.default_version is not None and self.default_version not in [v.version for v in self.versions]:
            raise ValueError(
                f"default_version '{self.default_version}' is not a declared {self.family.value} version"
            )
        return self

    @property
    def resolved_default_version(self) -> str | None:
        """The OS version that gets unsuffixed references, if any."""
        if not self.provides_default or not self.versions:
            return None
        return self.default_version or self.versions[0].version


class KindConfig(BaseModel):
    """An image kind and its unsuffixed repository name"""
    kind: ImageKind
    repository: str


class MatrixConfig(BaseModel):
    """Root configuration from matrix.yml"""
    runtime_versions: list[str]
    aliases: dict[str, list[str]] = {}
    latest_version: str | None = None
    kinds: list[KindConfig]
    families: list[FamilyConfig]
    container_command: str = DEFAULT_CONTAINER_COMMAND
    repository_format: str = DEFAULT_REPOSITORY_FORMAT

    @model_validator(mode="after")
    def _check_single_default_family(self) -> "MatrixConfig":
        defaults = [f.family.value for f in self.families if f.provides_default]
        if len(defaults) > 1:
            raise ValueError(f"Only one family may provide default references, got: {', '.join(defaults)}")
        return self

    @model_validator(mode="after")
    def _check_repository_format(self) -> "MatrixConfig":
        def render(os_version: str) -> str:
            return self.repository_format.format(repository="repo", family="family", os_version=os_version)

        try:
            # Every OS version needs its own repository
            distinct = render("1") != render("2")
        except (KeyError, IndexError, ValueError, AttributeError) as e:
            raise ValueError(
                f"Invalid repository_format '{self.repository_format}' "
                f"(allowed fields: repository, family, os_version): {e!r}"
            ) from e
        if not distinct:
            raise ValueError(f"repository_format '{self.repository_format}' must contain {{os_version}}")
        return self

    @model_validator(mode="after")
    def _check_latest_version(self) -> "MatrixConfig":
        tagged = [version for version, tags in self.aliases.items() if LATEST_TAG in tags]
        if len(tagged) > 1:
            raise ValueError(f"Only one version may carry the '{LATEST_TAG}' alias, got: {', '.join(tagged)}")

        if self.latest_version is None:
            return self
        if self.latest_version not in self.runtime_versions:
            raise ValueError(f"latest_version '{self.latest_version}' is not a declared runtime version")
        if tagged and tagged[0] != self.latest_version:
            raise ValueError(
                f"latest_version '{self.latest_version}' conflicts with the '{LATEST_TAG}' alias of {tagged[0]}"
            )
        return self


class ConfigLoader:
    """Loads and validates matrix.yml files"""

    @staticmethod
    def load(path: Path) -> MatrixConfig:
        """Load and validate a matrix definition"""
        return parse_yaml_file_as(MatrixConfig, path)
