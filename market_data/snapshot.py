"""
Local Snapshot Store - Last-resort real data from a JSON file on disk.

The file is a JSON array of provider-raw records (any provider shape) and is
re-normalized on every load. It is written only by the out-of-band
update-snapshot command, never by the read path.
"""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Union

from market_data.config import DEFAULT_SNAPSHOT_PATH
from market_data.exceptions import NormalizationError, SnapshotUnavailable
from market_data.models import NormalizedCoin
from market_data.normalizer import LOCAL_SNAPSHOT, ProviderNormalizer


logger = logging.getLogger(__name__)


class LocalSnapshotStore:
    """Read/write access to the snapshot file."""

    def __init__(
        self,
        path: Union[str, Path] = DEFAULT_SNAPSHOT_PATH,
        normalizer: Optional[ProviderNormalizer] = None,
    ) -> None:
        self._path = Path(path)
        self._normalizer = normalizer or ProviderNormalizer()

    @property
    def path(self) -> Path:
        return self._path

    def load_raw(self) -> list[dict[str, Any]]:
        """
        Read the raw record array.

        Raises:
            SnapshotUnavailable: Missing, unreadable, unparsable, non-array
                or empty file
        """
        if not self._path.is_file():
            raise SnapshotUnavailable(
                message="Snapshot file not found",
                path=str(self._path),
                reason="missing",
            )

        try:
            with self._path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise SnapshotUnavailable(
                message=f"Snapshot file unreadable: {e}",
                path=str(self._path),
                reason="unreadable",
                original_error=e,
            )
        except ValueError as e:
            raise SnapshotUnavailable(
                message=f"Snapshot file is not valid JSON: {e}",
                path=str(self._path),
                reason="parse_error",
                original_error=e,
            )

        if not isinstance(data, list):
            raise SnapshotUnavailable(
                message="Snapshot file does not contain an array",
                path=str(self._path),
                reason="not_an_array",
            )
        if not data:
            raise SnapshotUnavailable(
                message="Snapshot file is empty",
                path=str(self._path),
                reason="empty",
            )

        return data

    def load(self) -> Optional[list[NormalizedCoin]]:
        """
        Load and normalize the snapshot.

        Returns:
            Normalized records, or None when the snapshot is unavailable or
            nothing in it survives normalization
        """
        try:
            raw = self.load_raw()
            coins = self._normalizer.normalize(LOCAL_SNAPSHOT, raw)
        except (SnapshotUnavailable, NormalizationError) as e:
            logger.warning(f"[{LOCAL_SNAPSHOT}] {e.message} ({self._path})")
            return None

        if not coins:
            logger.warning(f"[{LOCAL_SNAPSHOT}] No valid records in {self._path}")
            return None

        logger.info(f"[{LOCAL_SNAPSHOT}] Loaded {len(coins)} records from {self._path}")
        return coins

    def save(self, records: list[dict[str, Any]]) -> Path:
        """Atomically replace the snapshot with provider-raw records."""
        if not records:
            raise SnapshotUnavailable(
                message="Refusing to write an empty snapshot",
                path=str(self._path),
                reason="empty",
            )

        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self._path.name}.",
            suffix=".tmp",
            dir=str(self._path.parent),
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(records, f, indent=2, ensure_ascii=False)
            os.replace(tmp_name, self._path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise

        logger.info(f"[{LOCAL_SNAPSHOT}] Saved {len(records)} records to {self._path}")
        return self._path
