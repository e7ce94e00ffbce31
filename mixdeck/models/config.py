"""Models for the (persistent) configuration."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from mashumaro import DataClassDictMixin

from mixdeck.constants import DEFAULT_VOLUME

from .enums import RepeatMode, TrackSource


@dataclass
class CoreConfig(DataClassDictMixin):
    """Settings of the playback session itself."""

    volume: int = DEFAULT_VOLUME
    repeat_mode: RepeatMode = RepeatMode.OFF
    shuffle: bool = False
    shuffle_seed: int | None = None
    media_control: bool = True


@dataclass
class BackendConfig(DataClassDictMixin):
    """Configuration (and pre-resolved credentials) of a single backend."""

    source: TrackSource
    enabled: bool = True
    values: dict[str, Any] = field(default_factory=dict)

    def get_value(self, key: str, default: Any = None) -> Any:
        """Return a config value, or the default if it is not set."""
        value = self.values.get(key)
        return default if value is None else value


@dataclass
class MixDeckConfig(DataClassDictMixin):
    """Complete configuration."""

    core: CoreConfig = field(default_factory=CoreConfig)
    backends: dict[TrackSource, BackendConfig] = field(default_factory=dict)

    def get_backend_config(self, source: TrackSource) -> BackendConfig:
        """Return the config for a backend, creating a default (enabled) one if missing."""
        if source not in self.backends:
            self.backends[source] = BackendConfig(source=source)
        return self.backends[source]
