"""Loading and resolving project Buildfile configuration.

A Buildfile is a TOML file describing the registry and the build context::

    [default]
    subscription_id = "00000000-0000-0000-0000-000000000000"
    resource_group = "ci"
    registry_name = "myregistry"
    image_names = ["app:{{.Run.ID}}"]
    ignore = ["*.log", "build/"]

    [production]
    registry_name = "prodregistry"

The same tables may live under ``[tool.acrbuild]``. The ``[default]`` table
is deep-merged under the selected environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

try:  # pragma: no cover - import guard
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - python <3.11 fallback
    try:
        import tomli as tomllib  # type: ignore[assignment]
    except ModuleNotFoundError as exc:  # pragma: no cover - surface helpful error
        raise ImportError(
            "Parsing Buildfile requires 'tomllib' (Python 3.11+) or 'tomli'."
        ) from exc

TOMLDecodeError = getattr(tomllib, "TOMLDecodeError", ValueError)

from .errors import (
    BuildfileEnvironmentNotFoundError,
    BuildfileInvalidError,
    BuildfileNotFoundError,
    ConfigurationError,
)
from .registry import ACCESS_TOKEN_ENV_VAR
from .tailer import DEFAULT_POLL_INTERVAL


ACRBUILD_ENV_VAR = "ACRBUILD_ENV"
BUILDFILE_ENV_VAR = "ACRBUILD_FILE"
DEFAULT_BUILDFILE_NAMES = (
    "Buildfile",
    "Buildfile.toml",
    "buildfile",
    "buildfile.toml",
)


@dataclass
class BuildfileEnvironment:
    """Resolved configuration for a specific Buildfile environment."""

    name: str
    path: Path
    config: Dict[str, Any]


@dataclass
class BuildSettings:
    """Validated settings for one registry build."""

    subscription_id: str
    resource_group: str
    registry_name: str
    image_names: List[str]
    context: Path = field(default_factory=lambda: Path("."))
    dockerfile: str = "Dockerfile"
    ignore: List[str] = field(default_factory=list)
    ignore_file: Optional[str] = ".dockerignore"
    archive_path: Optional[Path] = None
    platform: str = "linux/amd64"
    build_args: Dict[str, str] = field(default_factory=dict)
    push: bool = True
    no_cache: bool = False
    timeout: int = 3600
    poll_interval: float = DEFAULT_POLL_INTERVAL
    access_token: Optional[str] = None


PathLike = Union[str, os.PathLike[str]]

_REQUIRED_KEYS = ("subscription_id", "resource_group", "registry_name")


def load_environment(
    buildfile: Optional[PathLike] = None,
    *,
    env: Optional[str] = None,
    start_dir: Optional[PathLike] = None,
) -> BuildfileEnvironment:
    """Load a Buildfile environment, merging the defaults into it."""

    resolved_path = resolve_buildfile_path(buildfile, start_dir=start_dir)
    raw_data = _read_toml(resolved_path)
    root_table = _extract_root_table(raw_data)
    env_table = _extract_environment_table(root_table)

    env_name = (env or os.getenv(ACRBUILD_ENV_VAR) or "default").strip() or "default"
    resolved_config = _resolve_environment_config(root_table, env_table, env_name)

    return BuildfileEnvironment(
        name=env_name,
        path=resolved_path,
        config=resolved_config,
    )


def load_settings(
    buildfile: Optional[PathLike] = None,
    *,
    env: Optional[str] = None,
    start_dir: Optional[PathLike] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> BuildSettings:
    """Load a Buildfile environment and validate it into :class:`BuildSettings`.

    Relative ``context`` and ``archive_path`` values are resolved against the
    Buildfile's directory. ``overrides`` (for example from CLI flags) win over
    file values; ``None`` entries are ignored.
    """

    environment = load_environment(buildfile, env=env, start_dir=start_dir)
    config = dict(environment.config)
    for key, value in (overrides or {}).items():
        if value is not None:
            config[key] = value
    return settings_from_mapping(config, base_dir=environment.path.parent)


def settings_from_mapping(
    config: Dict[str, Any], *, base_dir: Optional[Path] = None
) -> BuildSettings:
    """Validate a plain mapping into :class:`BuildSettings`."""

    base_dir = base_dir or Path.cwd()
    known = set(BuildSettings.__dataclass_fields__)
    unknown = sorted(set(config) - known)
    if unknown:
        raise BuildfileInvalidError(f"Unknown Buildfile settings: {', '.join(unknown)}.")

    missing = [key for key in _REQUIRED_KEYS if not config.get(key)]
    if missing:
        raise ConfigurationError(
            f"Missing required registry settings: {', '.join(missing)}."
        )

    image_names = _as_str_list(config.get("image_names"), "image_names")
    if not image_names:
        raise ConfigurationError("At least one entry in 'image_names' is required.")

    settings = BuildSettings(
        subscription_id=_as_str(config["subscription_id"], "subscription_id"),
        resource_group=_as_str(config["resource_group"], "resource_group"),
        registry_name=_as_str(config["registry_name"], "registry_name"),
        image_names=image_names,
        context=_resolve_path(config.get("context", "."), base_dir),
        dockerfile=_as_str(config.get("dockerfile", "Dockerfile"), "dockerfile"),
        ignore=_as_str_list(config.get("ignore"), "ignore"),
        ignore_file=_optional_str(config.get("ignore_file", ".dockerignore"), "ignore_file"),
        archive_path=(
            _resolve_path(config["archive_path"], base_dir)
            if config.get("archive_path")
            else None
        ),
        platform=_as_str(config.get("platform", "linux/amd64"), "platform"),
        build_args=_as_str_dict(config.get("build_args"), "build_args"),
        push=_as_bool(config.get("push", True), "push"),
        no_cache=_as_bool(config.get("no_cache", False), "no_cache"),
        timeout=_as_number(config.get("timeout", 3600), "timeout", int),
        poll_interval=_as_number(
            config.get("poll_interval", DEFAULT_POLL_INTERVAL), "poll_interval", float
        ),
        access_token=(
            _optional_str(config.get("access_token"), "access_token")
            or os.getenv(ACCESS_TOKEN_ENV_VAR)
        ),
    )
    if settings.poll_interval <= 0:
        raise ConfigurationError("'poll_interval' must be positive.")
    return settings


def resolve_buildfile_path(
    buildfile: Optional[PathLike] = None,
    *,
    start_dir: Optional[PathLike] = None,
) -> Path:
    """Determine which Buildfile to use, respecting explicit hints and discovery."""

    if buildfile is not None:
        return _normalize_buildfile_path(Path(buildfile))

    env_path = os.getenv(BUILDFILE_ENV_VAR)
    if env_path:
        return _normalize_buildfile_path(Path(env_path))

    return discover_buildfile(start_dir=start_dir)


def discover_buildfile(start_dir: Optional[PathLike] = None) -> Path:
    """Search upwards from ``start_dir`` (or ``cwd``) for a Buildfile."""

    start = Path(start_dir if start_dir is not None else Path.cwd()).expanduser()
    start = start.resolve() if start.exists() else start.absolute()

    for directory in [start, *start.parents]:
        found = _buildfile_in(directory)
        if found is not None:
            return found

    raise BuildfileNotFoundError(
        f"No Buildfile found in '{start}' or any parent directory. "
        f"Looked for: {', '.join(DEFAULT_BUILDFILE_NAMES)}."
    )


def list_environments(buildfile: Optional[PathLike] = None) -> List[str]:
    """Return the environment names defined in a Buildfile."""

    tables = _extract_environment_table(
        _extract_root_table(_read_toml(resolve_buildfile_path(buildfile)))
    )
    names = [name for name, value in tables.items() if isinstance(value, dict)]
    return names if "default" in names else ["default", *names]


def _buildfile_in(directory: Path) -> Optional[Path]:
    return next(
        (
            directory / name
            for name in DEFAULT_BUILDFILE_NAMES
            if (directory / name).is_file()
        ),
        None,
    )


def _normalize_buildfile_path(path: Path) -> Path:
    path = path.expanduser()
    if path.is_file():
        return path
    if path.is_dir():
        found = _buildfile_in(path)
        if found is None:
            raise BuildfileNotFoundError(
                f"Directory '{path}' contains no Buildfile. "
                f"Looked for: {', '.join(DEFAULT_BUILDFILE_NAMES)}."
            )
        return found
    raise BuildfileNotFoundError(f"Buildfile path '{path}' does not exist.")


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except TOMLDecodeError as exc:
        raise BuildfileInvalidError(f"Buildfile '{path}' is not valid TOML: {exc}") from exc
    except OSError as exc:
        raise BuildfileNotFoundError(f"Cannot read Buildfile '{path}': {exc}") from exc
    return data


def _extract_root_table(data: Dict[str, Any]) -> Dict[str, Any]:
    section = data.get("tool", {})
    section = section.get("acrbuild") if isinstance(section, dict) else None
    return section if isinstance(section, dict) else data


def _extract_environment_table(root: Dict[str, Any]) -> Dict[str, Any]:
    tables = root.get("environments")
    return tables if isinstance(tables, dict) else root


def _resolve_environment_config(
    root_table: Dict[str, Any],
    env_table: Dict[str, Any],
    env_name: str,
) -> Dict[str, Any]:
    layers: List[Dict[str, Any]] = []
    for table in (root_table, env_table):
        defaults = table.get("default")
        if not defaults or any(defaults is layer for layer in layers):
            continue
        if not isinstance(defaults, dict):
            raise BuildfileInvalidError("The [default] section must be a table.")
        layers.append(defaults)

    if env_name != "default":
        selected = env_table.get(env_name)
        if selected is None:
            raise BuildfileEnvironmentNotFoundError(
                f"Environment '{env_name}' not defined in Buildfile."
            )
        if not isinstance(selected, dict):
            raise BuildfileInvalidError(f"The [{env_name}] section must be a table.")
        layers.append(selected)

    resolved: Dict[str, Any] = {}
    for layer in layers:
        resolved = _deep_merge(resolved, layer)
    return resolved


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _resolve_path(value: Any, base_dir: Path) -> Path:
    path = Path(_as_str(value, "path")).expanduser()
    if not path.is_absolute():
        path = base_dir / path
    return path


def _as_str(value: Any, key: str) -> str:
    if isinstance(value, (str, os.PathLike)):
        return os.fspath(value)
    raise BuildfileInvalidError(f"'{key}' must be a string, got {type(value).__name__}.")


def _optional_str(value: Any, key: str) -> Optional[str]:
    if value is None or value == "" or value is False:
        return None
    return _as_str(value, key)


def _as_str_list(value: Any, key: str) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, (list, tuple)) or not all(
        isinstance(item, str) for item in value
    ):
        raise BuildfileInvalidError(f"'{key}' must be a list of strings.")
    return list(value)


def _as_str_dict(value: Any, key: str) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise BuildfileInvalidError(f"'{key}' must be a table.")
    return {str(name): str(item) for name, item in value.items()}


def _as_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"false", "0", "no", "off"}:
            return False
        if lowered in {"true", "1", "yes", "on"}:
            return True
    raise BuildfileInvalidError(f"'{key}' must be a boolean.")


def _as_number(value: Any, key: str, kind: type) -> Any:
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        raise BuildfileInvalidError(f"'{key}' must be a number.")
    try:
        return kind(value)
    except ValueError as exc:
        raise BuildfileInvalidError(f"'{key}' must be a number.") from exc
