"""Two-phase disk storage for uploaded receipts.

Uploads land in a temporary folder under a generated name. Once validated they
are moved to the durable uploads folder; rejected uploads are deleted from the
temporary folder.
"""

import logging
import os
import secrets
import time
from pathlib import Path

from prometheus_client import Counter

logger = logging.getLogger(__name__)

TMP = "tmp"
UPLOAD = "upload"

# Leaves room for the random prefix under the usual 255 byte name limit.
MAX_BASENAME_BYTES = 200

TMP_PURGE_COUNTER = Counter(
    "tmp_files_purged_total", "Total stale files removed from temporary storage"
)


class StoredFileNotFound(Exception):
    """Raised when a file expected in storage is missing."""


class DiskStorage:
    def __init__(self, tmp_folder: str, uploads_folder: str) -> None:
        self.tmp_folder = Path(tmp_folder).resolve()
        self.uploads_folder = Path(uploads_folder).resolve()

    @staticmethod
    def generate_filename(original: str) -> str:
        """Prefix the base name of ``original`` with 20 random hex characters."""
        base = os.path.basename((original or "").replace("\\", "/"))
        encoded = base.encode("utf-8")
        if len(encoded) > MAX_BASENAME_BYTES:
            stem, ext = os.path.splitext(base)
            ext_bytes = ext.encode("utf-8")[:16]
            keep = MAX_BASENAME_BYTES - len(ext_bytes)
            stem = stem.encode("utf-8")[:keep].decode("utf-8", "ignore")
            base = stem + ext_bytes.decode("utf-8", "ignore")
        return f"{secrets.token_hex(10)}-{base}"

    def _folder(self, location: str) -> Path:
        if location == TMP:
            return self.tmp_folder
        if location == UPLOAD:
            return self.uploads_folder
        raise ValueError(f"unknown storage location: {location!r}")

    def path(self, filename: str, location: str) -> Path:
        if not filename or filename in {".", ".."} or "/" in filename or "\\" in filename:
            raise ValueError(f"invalid stored filename: {filename!r}")
        return self._folder(location) / filename

    def exists(self, filename: str, location: str) -> bool:
        try:
            return self.path(filename, location).is_file()
        except ValueError:
            return False

    def tmp_path(self, filename: str) -> Path:
        return self.path(filename, TMP)

    def ensure_folders(self) -> None:
        self.tmp_folder.mkdir(parents=True, exist_ok=True)
        self.uploads_folder.mkdir(parents=True, exist_ok=True)

    def save_file(self, filename: str) -> str:
        """Move ``filename`` from temporary to durable storage.

        Raises :class:`StoredFileNotFound` without touching the filesystem when
        the file is not in temporary storage. The move is a rename, so on
        failure the file is still in temporary storage.
        """
        tmp_path = self.tmp_path(filename)
        dest_path = self.path(filename, UPLOAD)
        if not tmp_path.is_file():
            raise StoredFileNotFound(f"Arquivo não encontrado: {tmp_path}")

        self.uploads_folder.mkdir(parents=True, exist_ok=True)
        os.replace(tmp_path, dest_path)
        logger.info("persisted upload %s", filename)
        return filename

    def delete_file(self, filename: str, location: str) -> None:
        """Remove ``filename`` from ``location``; a missing file is not an error."""
        file_path = self.path(filename, location)
        try:
            file_path.unlink()
        except FileNotFoundError:
            return
        logger.info("deleted %s file %s", location, filename)

    def purge_tmp(self, older_than: float) -> int:
        """Delete temporary files last modified more than ``older_than`` seconds ago."""
        if not self.tmp_folder.is_dir():
            return 0
        cutoff = time.time() - older_than
        removed = 0
        for entry in self.tmp_folder.iterdir():
            if not entry.is_file():
                continue
            try:
                if entry.stat().st_mtime < cutoff:
                    entry.unlink()
                    removed += 1
            except FileNotFoundError:
                # Persisted or discarded concurrently.
                continue
        if removed:
            TMP_PURGE_COUNTER.inc(removed)
            logger.info("purged %d stale tmp files", removed)
        return removed
