"""Clipboard backends, tried in order."""

from __future__ import annotations

import asyncio
import base64
import logging
import shutil
import sys
from typing import Optional, Protocol, Sequence, TextIO

from ..errors import ClipboardError

logger = logging.getLogger(__name__)

# First available command wins
CLIPBOARD_COMMANDS = (
    ("pbcopy",),
    ("wl-copy",),
    ("xclip", "-selection", "clipboard"),
    ("xsel", "--clipboard", "--input"),
    ("clip",),
)


class ClipboardBackend(Protocol):
    name: str

    async def write(self, text: str) -> None:
        """
        Raises:
            ClipboardError: If the text could not be placed on the clipboard
        """
        ...


class CommandClipboard:
    """System clipboard through a helper command (pbcopy, wl-copy, xclip...)."""

    name = "system"

    def __init__(self, command: Sequence[str]) -> None:
        self.command = tuple(command)

    @classmethod
    def detect(cls) -> Optional[CommandClipboard]:
        for command in CLIPBOARD_COMMANDS:
            if shutil.which(command[0]):
                return cls(command)
        return None

    async def write(self, text: str) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.DEVNULL,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await process.communicate(text.encode("utf-8"))
        except OSError as e:
            raise ClipboardError(f"{self.command[0]}: {e}") from e
        if process.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise ClipboardError(f"{self.command[0]} exited with {process.returncode}: {detail}")


class Osc52Clipboard:
    """
    Terminal selection through the OSC 52 escape sequence.

    Works over SSH and in most modern terminals; needs a TTY.
    """

    name = "osc52"

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self._stream = stream

    async def write(self, text: str) -> None:
        stream = self._stream or sys.stdout
        if not stream.isatty():
            raise ClipboardError("OSC 52 needs a terminal")
        encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
        stream.write(f"\x1b]52;c;{encoded}\x07")
        stream.flush()


def default_backends() -> list[ClipboardBackend]:
    backends: list[ClipboardBackend] = []
    command = CommandClipboard.detect()
    if command is not None:
        backends.append(command)
    backends.append(Osc52Clipboard())
    return backends


async def copy_to_clipboard(text: str, backends: Sequence[ClipboardBackend]) -> str:
    """
    Write ``text`` with the first backend that accepts it.

    Returns:
        Name of the backend that succeeded

    Raises:
        ClipboardError: If every backend refused
    """
    errors = []
    for backend in backends:
        try:
            await backend.write(text)
        except ClipboardError as e:
            logger.warning(f"Clipboard backend {backend.name} failed: {e}")
            errors.append(f"{backend.name}: {e}")
            continue
        logger.debug(f"Copied {len(text)} characters with {backend.name}")
        return backend.name
    raise ClipboardError("; ".join(errors) or "No clipboard available")
