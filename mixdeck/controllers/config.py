"""Logic to handle storage of persistent (configuration) settings."""

from __future__ import annotations

import contextlib
import json
import logging
import os
from typing import TYPE_CHECKING, Any

import aiofiles
from aiofiles.os import wrap
from mashumaro.exceptions import InvalidFieldValue, MissingField

from mixdeck.constants import (
    CONF_BACKENDS,
    CONF_CORE,
    DEFAULT_CONFIG_DIR,
    DEFAULT_CONFIG_FILENAME,
    MIXDECK_LOGGER_NAME,
)
from mixdeck.models.config import BackendConfig, CoreConfig, MixDeckConfig
from mixdeck.models.errors import SetupFailedError

if TYPE_CHECKING:
    from mixdeck.hub import MixDeck
    from mixdeck.models.enums import TrackSource

LOGGER = logging.getLogger(f"{MIXDECK_LOGGER_NAME}.config")

isfile = wrap(os.path.isfile)
mkdirs = wrap(os.makedirs)
remove = wrap(os.remove)
rename = wrap(os.rename)


def parse_config(raw: dict[str, Any]) -> MixDeckConfig:
    """Parse the raw (json) settings into the config model."""
    backends = {
        source: {**values, "source": source}
        for source, values in (raw.get(CONF_BACKENDS) or {}).items()
    }
    try:
        return MixDeckConfig.from_dict(
            {CONF_CORE: raw.get(CONF_CORE) or {}, CONF_BACKENDS: backends}
        )
    except (InvalidFieldValue, MissingField, ValueError) as err:
        raise SetupFailedError(f"Invalid configuration: {err}") from err


def dump_config(config: MixDeckConfig) -> dict[str, Any]:
    """Return the config model as raw (json) settings."""
    raw = config.to_dict()
    for backend in raw[CONF_BACKENDS].values():
        backend.pop("source", None)
    return raw


class ConfigController:
    """Controller that handles storage of persistent configuration settings."""

    def __init__(
        self,
        mixdeck: MixDeck,
        filename: str | None = None,
        config: MixDeckConfig | None = None,
    ) -> None:
        """Initialize the controller, a given config is used as is (not loaded from disk)."""
        self.mixdeck = mixdeck
        self.filename = filename or os.path.join(DEFAULT_CONFIG_DIR, DEFAULT_CONFIG_FILENAME)
        self._data = config or MixDeckConfig()
        self._preloaded = config is not None
        self.initialized = False

    async def setup(self) -> None:
        """Async initialize of controller."""
        if not self._preloaded:
            await self._load()
        self.initialized = True
        LOGGER.debug("Started.")

    @property
    def data(self) -> MixDeckConfig:
        """Return the complete config."""
        return self._data

    @property
    def core(self) -> CoreConfig:
        """Return the core (session) settings."""
        return self._data.core

    def get_backend_config(self, source: TrackSource) -> BackendConfig:
        """Return the config of a backend."""
        return self._data.get_backend_config(source)

    async def save(self) -> None:
        """Save the config to disk, keeping the previous file as backup."""
        filename_tmp = f"{self.filename}.tmp"
        filename_backup = f"{self.filename}.backup"
        if directory := os.path.dirname(self.filename):
            await mkdirs(directory, exist_ok=True)
        async with aiofiles.open(filename_tmp, "w", encoding="utf-8") as _file:
            await _file.write(json.dumps(dump_config(self._data), indent=2))
        # make backup before we move the new file in place
        if await isfile(self.filename):
            with contextlib.suppress(FileNotFoundError):
                await remove(filename_backup)
            await rename(self.filename, filename_backup)
        await rename(filename_tmp, self.filename)
        LOGGER.debug("Saved config to %s", self.filename)

    async def _load(self) -> None:
        """Load the config from disk, falling back to the backup and then to defaults."""
        for filename in (self.filename, f"{self.filename}.backup"):
            try:
                async with aiofiles.open(filename, encoding="utf-8") as _file:
                    raw = json.loads(await _file.read())
            except FileNotFoundError:
                continue
            except json.JSONDecodeError:
                LOGGER.exception("Error while reading config file %s", filename)
                continue
            if not isinstance(raw, dict):
                LOGGER.error("Ignoring config file %s: not a JSON object", filename)
                continue
            self._data = parse_config(raw)
            LOGGER.debug("Loaded config from %s", filename)
            return
        LOGGER.debug("Started with default config: no config file found.")
