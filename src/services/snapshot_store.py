from __future__ import annotations

import logging
import os
import stat
from contextlib import contextmanager
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List

from config import settings
from services.time_grid import InvalidTimestamp, stamp_to_datetime

logger = logging.getLogger("windhub.store")

RAW_SUFFIX = ".f000"
JSON_SUFFIX = ".json"
STAGING_SUFFIX = ".part"


class StorageUnavailable(RuntimeError):
    """Raised when the snapshot directories cannot be read or written."""


class SnapshotStore:
    """Filesystem-backed cache of raw GRIB2 downloads and converted JSON snapshots.

    Raw files live in ``<root>/<raw_dir_name>/<stamp>.f000`` and are transient;
    JSON files live in ``<root>/<json_dir_name>/<stamp>.json`` and are never
    overwritten once present. Writers stage into ``*.part`` files so a name
    without the suffix always refers to a complete artifact.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        raw_dir_name: str = "grib-data",
        json_dir_name: str = "json-data",
    ) -> None:
        self._root = Path(root)
        self._raw_dir_name = raw_dir_name
        self._json_dir_name = json_dir_name

    @property
    def root(self) -> Path:
        return self._root

    @property
    def raw_dir(self) -> Path:
        return self._root / self._raw_dir_name

    @property
    def json_dir(self) -> Path:
        return self._root / self._json_dir_name

    def raw_path(self, stamp: str) -> Path:
        return self.raw_dir / f"{stamp}{RAW_SUFFIX}"

    def json_path(self, stamp: str) -> Path:
        return self.json_dir / f"{stamp}{JSON_SUFFIX}"

    def staged_json_path(self, stamp: str) -> Path:
        return self.json_dir / f"{stamp}{JSON_SUFFIX}{STAGING_SUFFIX}"

    def has_raw_data(self, stamp: str) -> bool:
        return self._is_file(self.raw_path(stamp))

    def has_json(self, stamp: str) -> bool:
        return self._is_file(self.json_path(stamp))

    def ensure_dir(self, name: str) -> Path:
        path = self._root / name
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Unable to create {path}: {exc}") from exc
        return path

    @contextmanager
    def open_raw_writer(self, stamp: str) -> Iterator[BinaryIO]:
        """Yield a binary sink for the raw download of ``stamp``.

        The file only appears under its permanent name once the block exits
        cleanly; on any exception the staged bytes are removed.
        """
        self.ensure_dir(self._raw_dir_name)
        target = self.raw_path(stamp)
        staging = target.with_name(target.name + STAGING_SUFFIX)
        try:
            handle = staging.open("wb")
        except OSError as exc:
            raise StorageUnavailable(f"Unable to open {staging}: {exc}") from exc
        try:
            with handle:
                yield handle
                handle.flush()
        except BaseException:
            self._discard(staging)
            raise
        try:
            os.replace(staging, target)
        except OSError as exc:
            self._discard(staging)
            raise StorageUnavailable(f"Unable to commit {target}: {exc}") from exc
        logger.debug("Committed raw snapshot %s", target)

    def prepare_json(self, stamp: str) -> Path:
        """Return the staging path a converter should write ``stamp`` into."""
        self.ensure_dir(self._json_dir_name)
        staging = self.staged_json_path(stamp)
        self._discard(staging)
        return staging

    def commit_json(self, stamp: str) -> Path:
        staging = self.staged_json_path(stamp)
        target = self.json_path(stamp)
        if not self._is_file(staging):
            raise StorageUnavailable(f"Converter produced no output for {stamp}")
        try:
            os.replace(staging, target)
        except OSError as exc:
            raise StorageUnavailable(f"Unable to commit {target}: {exc}") from exc
        return target

    def discard_staged_json(self, stamp: str) -> None:
        self._discard(self.staged_json_path(stamp))

    def delete_raw_data(self, pattern: str = f"*{RAW_SUFFIX}") -> int:
        """Remove raw artifacts matching ``pattern``; failures are logged, not raised."""
        removed = 0
        if not self.raw_dir.is_dir():
            return removed
        for path in self.raw_dir.glob(pattern):
            try:
                path.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as exc:
                logger.warning("Failed to delete raw snapshot %s: %s", path, exc)
        return removed

    def list_json_stamps(self) -> List[str]:
        return self._list_stamps(self.json_dir, JSON_SUFFIX)

    def list_raw_stamps(self) -> List[str]:
        return self._list_stamps(self.raw_dir, RAW_SUFFIX)

    def stats(self) -> Dict[str, object]:
        payload: Dict[str, object] = {"root": str(self._root)}
        for label, directory, suffix in (
            ("raw", self.raw_dir, RAW_SUFFIX),
            ("json", self.json_dir, JSON_SUFFIX),
        ):
            count = 0
            total_bytes = 0
            if directory.is_dir():
                for path in directory.glob(f"*{suffix}"):
                    try:
                        total_bytes += path.stat().st_size
                    except FileNotFoundError:
                        continue
                    count += 1
            payload[label] = {"dir": str(directory), "file_count": count, "bytes": total_bytes}
        return payload

    @staticmethod
    def _is_file(path: Path) -> bool:
        try:
            return stat.S_ISREG(path.stat().st_mode)
        except (FileNotFoundError, NotADirectoryError):
            return False
        except OSError as exc:
            raise StorageUnavailable(f"Unable to stat {path}: {exc}") from exc

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.debug("Unable to remove staged file %s", path, exc_info=True)

    @staticmethod
    def _list_stamps(directory: Path, suffix: str) -> List[str]:
        if not directory.is_dir():
            return []
        try:
            names = [path.name for path in directory.iterdir()]
        except OSError as exc:
            raise StorageUnavailable(f"Unable to list {directory}: {exc}") from exc
        stamps = []
        for name in names:
            if not name.endswith(suffix):
                continue
            stem = name[: -len(suffix)]
            try:
                stamp_to_datetime(stem)
            except InvalidTimestamp:
                continue
            stamps.append(stem)
        return sorted(stamps)


snapshot_store = SnapshotStore(
    settings.data_dir,
    raw_dir_name=settings.raw_dir_name,
    json_dir_name=settings.json_dir_name,
)

__all__ = ["SnapshotStore", "StorageUnavailable", "snapshot_store"]
