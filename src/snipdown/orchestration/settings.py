"""Persisted conversion options."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Callable, Optional, Protocol

import yaml
from pydantic import ValidationError

from ..models.options import ConversionOptions

logger = logging.getLogger(__name__)

SettingsListener = Callable[[ConversionOptions], None]


class SettingsStore(Protocol):
    """Async key/value store for the user's options."""

    async def get(self, defaults: ConversionOptions) -> ConversionOptions:
        """Saved options layered over ``defaults``."""
        ...

    async def set(self, options: ConversionOptions) -> None:
        ...

    def on_changed(self, listener: SettingsListener) -> None:
        ...


class _Notifying:
    def __init__(self) -> None:
        self._listeners: list[SettingsListener] = []

    def on_changed(self, listener: SettingsListener) -> None:
        self._listeners.append(listener)

    def _notify(self, options: ConversionOptions) -> None:
        for listener in list(self._listeners):
            try:
                listener(options)
            except Exception as e:
                logger.warning(f"Settings listener failed: {e}")


def _layer(defaults: ConversionOptions, saved: dict) -> ConversionOptions:
    data = defaults.model_dump(mode="json")
    data.update(saved)
    return ConversionOptions.model_validate(data)


class MemorySettingsStore(_Notifying):
    """Options kept in memory for the life of the process."""

    def __init__(self, saved: Optional[dict] = None) -> None:
        super().__init__()
        self._saved = dict(saved or {})

    async def get(self, defaults: ConversionOptions) -> ConversionOptions:
        try:
            return _layer(defaults, self._saved)
        except ValidationError as e:
            logger.warning(f"Ignoring invalid saved options: {e}")
            return defaults

    async def set(self, options: ConversionOptions) -> None:
        self._saved = options.model_dump(mode="json")
        self._notify(options)


class YamlSettingsStore(_Notifying):
    """
    Options saved as YAML.

    An unreadable or invalid file yields the defaults and a warning.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.path = Path(path)

    def _read(self) -> dict:
        if not self.path.exists():
            return {}
        data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or {}
        if not isinstance(data, dict):
            raise ValueError("settings file must hold a mapping")
        return data

    def _write(self, options: ConversionOptions) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(options.to_yaml(), encoding="utf-8")

    async def get(self, defaults: ConversionOptions) -> ConversionOptions:
        try:
            saved = await asyncio.to_thread(self._read)
            return _layer(defaults, saved)
        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.warning(f"Could not load settings from {self.path}, using defaults: {e}")
            return defaults

    async def set(self, options: ConversionOptions) -> None:
        await asyncio.to_thread(self._write, options)
        logger.debug(f"Saved settings to {self.path}")
        self._notify(options)
