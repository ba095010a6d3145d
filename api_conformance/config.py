"""Engine and execution configuration.

Engines are loaded from, in order:

1. an explicit YAML file,
2. the ``API_CONFORMANCE_ENGINES`` environment variable
   (``quickwit=http://localhost:7280/api/v1/_elastic,elasticsearch=http://localhost:9200``),
3. ``engines.yaml`` in the working directory, then ``~/.api-conformance/engines.yaml``.

The YAML file looks like::

    engines:
      quickwit:
        url: http://localhost:7280/api/v1/_elastic/
        variables:
          index_suffix: qw
      elasticsearch: http://localhost:9200/
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Optional, Union

import yaml

from .errors import ConfigurationError

ENGINES_ENV_VAR = "API_CONFORMANCE_ENGINES"
DEFAULT_CONFIG_NAME = "engines.yaml"


@dataclass(frozen=True)
class EngineConfig:
    """One HTTP target under test."""
    name: str
    base_url: str
    variables: dict[str, str] = field(default_factory=dict)

    def template_variables(self) -> dict[str, str]:
        return {"engine": self.name, **self.variables}


class EngineRegistry:
    """Configured engines, keyed by identifier, in declaration order."""

    def __init__(self, engines: Iterable[EngineConfig]):
        self._engines: dict[str, EngineConfig] = {}
        for engine in engines:
            if engine.name in self._engines:
                raise ConfigurationError(f"Engine '{engine.name}' configured twice")
            self._engines[engine.name] = engine
        if not self._engines:
            raise ConfigurationError("No engines configured")

    @classmethod
    def from_mapping(cls, mapping: dict[str, Any]) -> "EngineRegistry":
        """Build from ``{name: url}`` or ``{name: {url: ..., variables: ...}}``."""
        engines = []
        for name, value in mapping.items():
            if isinstance(value, str):
                engines.append(EngineConfig(name=str(name), base_url=value))
                continue
            if not isinstance(value, dict) or not isinstance(value.get("url"), str):
                raise ConfigurationError(f"Engine '{name}' needs a 'url'")
            variables = value.get("variables") or {}
            if not isinstance(variables, dict):
                raise ConfigurationError(f"Engine '{name}': 'variables' must be a mapping")
            engines.append(EngineConfig(
                name=str(name),
                base_url=value["url"],
                variables={str(k): str(v) for k, v in variables.items()},
            ))
        return cls(engines)

    @property
    def names(self) -> list[str]:
        return list(self._engines)

    def __contains__(self, name: object) -> bool:
        return name in self._engines

    def __getitem__(self, name: str) -> EngineConfig:
        try:
            return self._engines[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown engine '{name}'. Configured: {', '.join(self.names)}"
            ) from None

    def __iter__(self):
        return iter(self._engines.values())

    def __len__(self) -> int:
        return len(self._engines)

    def select(self, names: Optional[Iterable[str]] = None) -> list[EngineConfig]:
        """Engines to run, all of them when ``names`` is empty."""
        if not names:
            return list(self._engines.values())
        return [self[name] for name in names]


def parse_engines_env(value: str) -> EngineRegistry:
    """Parse ``name=url,name=url``."""
    mapping: dict[str, str] = {}
    for item in value.split(","):
        item = item.strip()
        if not item:
            continue
        name, sep, url = item.partition("=")
        if not sep or not name.strip() or not url.strip():
            raise ConfigurationError(f"Invalid engine entry '{item}' in {ENGINES_ENV_VAR}")
        mapping[name.strip()] = url.strip()
    return EngineRegistry.from_mapping(mapping)


def load_engine_file(path: Union[str, Path]) -> EngineRegistry:
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Engine configuration not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(data, dict) or not isinstance(data.get("engines"), dict):
        raise ConfigurationError(f"{path} must contain an 'engines' mapping")
    return EngineRegistry.from_mapping(data["engines"])


def load_engines(config_path: Optional[Union[str, Path]] = None) -> EngineRegistry:
    """Load engine configuration from file or environment.

    Raises:
        ConfigurationError: If no configuration is found or it is invalid.
    """
    if config_path is not None:
        return load_engine_file(config_path)

    env_value = os.environ.get(ENGINES_ENV_VAR)
    if env_value:
        return parse_engines_env(env_value)

    for candidate in (
        Path.cwd() / DEFAULT_CONFIG_NAME,
        Path.home() / ".api-conformance" / DEFAULT_CONFIG_NAME,
    ):
        if candidate.exists():
            return load_engine_file(candidate)

    raise ConfigurationError(
        f"No engines configured.\n"
        f"Set {ENGINES_ENV_VAR}=name=url,..., or\n"
        f"create {DEFAULT_CONFIG_NAME} with an 'engines' mapping"
    )


@dataclass
class ExecutionConfig:
    """Configuration for a conformance run."""
    request_timeout: float = 30.0
    retry_delay: float = 0.5
    max_workers: Optional[int] = None  # None: one thread per engine
    save_report: bool = False
    report_dir: Optional[Path] = None
    pretty_output: bool = False
