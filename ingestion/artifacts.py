"""
ingestion/artifacts.py — Durable byte storage for audio files and covers.

This is the only module that writes catalog bytes to disk.  Everything else
holds *artifact references*: POSIX paths relative to the store root, e.g.
``"3f2a_1718000000000_song.mp3"`` or ``"covers/cover_3f2a_1718000000000.png"``.

Layout::

    <root>/                 audio uploads
    <root>/covers/          uploaded and extracted cover images

Writes go to a temporary sibling first and are moved into place with
``os.replace``, so a crash never leaves a truncated artifact under its
final name.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import tempfile
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Literal, Protocol

from core.errors import EmptyUploadError, UploadTooLargeError

logger = logging.getLogger(__name__)

ArtifactKind = Literal["audio", "cover"]

COVERS_DIR = "covers"
_COPY_CHUNK = 1024 * 1024
_UNSAFE_NAME_RE = re.compile(r"[^a-zA-Z0-9._-]")
_UNSAFE_OWNER_RE = re.compile(r"[^a-zA-Z0-9-]")


class ArtifactStore(Protocol):
    """What the ingestion pipeline needs from byte storage."""

    def save(self, data: bytes, destination_hint: str) -> str: ...

    def delete(self, ref: str) -> bool: ...

    def exists(self, ref: str) -> bool: ...

    def size(self, ref: str) -> int | None: ...

    def local_path(self, ref: str) -> Path: ...


@dataclass(frozen=True)
class StoredUpload:
    """An upload written to the store.

    Attributes:
        ref:       Artifact reference of the stored file.
        file_name: Final file name (last path component of ``ref``).
        size:      Bytes written.
    """

    ref: str
    file_name: str
    size: int


def _epoch_ms() -> int:
    return int(time.time() * 1000)


def sanitize_filename(name: str) -> str:
    """Spaces become underscores; anything outside ``[A-Za-z0-9._-]`` is dropped."""
    return _UNSAFE_NAME_RE.sub("", re.sub(r"\s+", "_", PurePosixPath(name).name))


def audio_file_name(owner_id: str, original_name: str, now_ms: int | None = None) -> str:
    """``<owner>_<epoch-ms>_<sanitised original name>``."""
    owner = _UNSAFE_OWNER_RE.sub("", owner_id) or "anonymous"
    return f"{owner}_{now_ms or _epoch_ms()}_{sanitize_filename(original_name)}"


def cover_file_name(owner_id: str, original_name: str, now_ms: int | None = None) -> str:
    """``cover_<owner>_<epoch-ms><ext>``."""
    owner = _UNSAFE_OWNER_RE.sub("", owner_id) or "anonymous"
    extension = PurePosixPath(original_name).suffix.lower()
    return f"cover_{owner}_{now_ms or _epoch_ms()}{extension}"


def extracted_artwork_hint(
    owner_id: str, record_id: str, extension: str, now_ms: int | None = None
) -> str:
    """Destination hint for artwork pulled out of an audio file's tags."""
    owner = _UNSAFE_OWNER_RE.sub("", owner_id) or "anonymous"
    return f"{COVERS_DIR}/extracted_{owner}_{record_id}_{now_ms or _epoch_ms()}{extension}"


class LocalArtifactStore:
    """Filesystem-backed artifact store.

    Args:
        root: Directory holding every artifact.  Created on first use.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def local_path(self, ref: str) -> Path:
        """Absolute path of *ref*.

        Raises:
            ValueError: If *ref* is absolute or escapes the store root.
        """
        if not ref or PurePosixPath(ref).is_absolute():
            raise ValueError(f"Invalid artifact reference {ref!r}")
        path = (self._root / ref).resolve()
        if not path.is_relative_to(self._root):
            raise ValueError(f"Artifact reference escapes the store root: {ref!r}")
        return path

    def _ref_for(self, path: Path) -> str:
        return path.relative_to(self._root).as_posix()

    def _write_atomic(self, target: Path, chunks: Iterator[bytes]) -> int:
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".partial-")
        written = 0
        try:
            with os.fdopen(fd, "wb") as tmp:
                for chunk in chunks:
                    tmp.write(chunk)
                    written += len(chunk)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return written

    # ------------------------------------------------------------------ #
    # ArtifactStore protocol                                               #
    # ------------------------------------------------------------------ #

    def save(self, data: bytes, destination_hint: str) -> str:
        """Write *data* at *destination_hint* (relative to the root).

        Returns:
            The artifact reference.
        """
        target = self.local_path(destination_hint)
        self._write_atomic(target, iter((data,)))
        logger.debug("Saved artifact %s (%d bytes)", destination_hint, len(data))
        return self._ref_for(target)

    def delete(self, ref: str) -> bool:
        """Remove an artifact.  Returns False when it did not exist."""
        path = self.local_path(ref)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        return True

    def exists(self, ref: str) -> bool:
        return self.local_path(ref).is_file()

    def size(self, ref: str) -> int | None:
        """Size in bytes, or None when the artifact does not exist."""
        path = self.local_path(ref)
        try:
            return path.stat().st_size
        except FileNotFoundError:
            return None

    # ------------------------------------------------------------------ #
    # Uploads and sweeps                                                   #
    # ------------------------------------------------------------------ #

    def store_upload(
        self,
        stream: BinaryIO,
        original_name: str,
        owner_id: str,
        kind: ArtifactKind,
        *,
        max_bytes: int,
    ) -> StoredUpload:
        """Stream an incoming upload into the store.

        Args:
            stream: Readable binary file object.
            original_name: Client-side filename.
            owner_id: Uploading owner, embedded in the stored name.
            kind: ``"audio"`` or ``"cover"``.
            max_bytes: Size limit; exceeding it aborts the write.

        Returns:
            The stored upload.

        Raises:
            UploadTooLargeError: More than *max_bytes* were sent.
            EmptyUploadError: Nothing was sent.
        """
        if kind == "audio":
            hint = audio_file_name(owner_id, original_name)
        else:
            hint = f"{COVERS_DIR}/{cover_file_name(owner_id, original_name)}"
        target = self.local_path(hint)

        def _chunks() -> Iterator[bytes]:
            total = 0
            while chunk := stream.read(_COPY_CHUNK):
                total += len(chunk)
                if total > max_bytes:
                    raise UploadTooLargeError(
                        f"{kind} upload exceeds the {max_bytes // (1024 * 1024)} MB limit"
                    )
                yield chunk

        written = self._write_atomic(target, _chunks())
        if written == 0:
            target.unlink(missing_ok=True)
            raise EmptyUploadError("Uploaded file is empty")
        logger.info("Stored %s upload %s (%d bytes)", kind, target.name, written)
        return StoredUpload(ref=self._ref_for(target), file_name=target.name, size=written)

    def iter_refs(self) -> Iterator[str]:
        """Every artifact reference currently in the store."""
        if not self._root.exists():
            return
        for path in sorted(self._root.rglob("*")):
            if path.is_file() and not path.name.startswith(".partial-"):
                yield self._ref_for(path)

    def copy_into(self, source: Path, destination_hint: str) -> str:
        """Copy a local file into the store (used by bulk imports)."""
        target = self.local_path(destination_hint)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, target)
        return self._ref_for(target)
