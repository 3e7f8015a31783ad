from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Protocol, Sequence

from config import settings

logger = logging.getLogger("windhub.converter")


class ConversionError(RuntimeError):
    """Raised when a raw GRIB2 snapshot could not be turned into JSON."""


class SnapshotConverter(Protocol):
    async def convert(self, raw_path: Path, json_path: Path) -> None: ...


class Grib2JsonConverter:
    """Runs the ``grib2json`` CLI once per snapshot."""

    def __init__(self, command: str | Sequence[str], *, timeout: float = 300.0) -> None:
        self._command = [command] if isinstance(command, str) else list(command)
        self._timeout = timeout

    def build_args(self, raw_path: Path, json_path: Path) -> list[str]:
        return [
            *self._command,
            "--data",
            "--output",
            str(json_path),
            "--names",
            "--compact",
            str(raw_path),
        ]

    async def convert(self, raw_path: Path, json_path: Path) -> None:
        args = self.build_args(raw_path, json_path)
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            raise ConversionError(f"Unable to launch {args[0]}: {exc}") from exc

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            process.kill()
            await process.wait()
            raise ConversionError(f"grib2json timed out after {self._timeout:.0f}s") from exc

        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip() or stdout.decode(errors="replace").strip()
            raise ConversionError(f"grib2json exited with {process.returncode}: {message or 'no output'}")
        logger.debug("Converted %s -> %s", raw_path, json_path)


grib2json_converter = Grib2JsonConverter(settings.converter_command, timeout=settings.converter_timeout)

__all__ = ["ConversionError", "Grib2JsonConverter", "SnapshotConverter", "grib2json_converter"]
