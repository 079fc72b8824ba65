"""A crash-tolerant key-value store kept in an append-only file.

Every write first goes to a checksummed temporary file. Only then is it
appended to the destination file, and the temporary file is removed
afterwards. On start-up the destination file is replayed to rebuild the key
index. A temporary file left behind by a crash is applied when its checksum
is intact and discarded when it is not.
"""

from __future__ import annotations

import asyncio
import hashlib
import os
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO

KEY_SIZE = 255
MAX_VALUE_SIZE = 0xFFFF
DIGEST_SIZE = 32

DST_FILE_NAME = "dstfile.txt"
TMP_FILE_NAME = "tmpfile.txt"


def _pad_key(key: str) -> bytes:
    raw = key.encode("utf-8")
    if len(raw) > KEY_SIZE:
        raise ValueError("Key is longer than 255")
    return raw.ljust(KEY_SIZE, b"\x00")


def _check_value(value: bytes) -> bytes:
    value = bytes(value)
    if len(value) > MAX_VALUE_SIZE:
        raise ValueError("Value has size greater than 65535 bytes")
    return value


@dataclass(frozen=True)
class _Record:
    key: bytes
    value: bytes
    present: bool

    @property
    def size(self) -> int:
        return KEY_SIZE + 2 + len(self.value) + 1

    def to_bytes(self) -> bytes:
        return (
            self.key
            + len(self.value).to_bytes(2, "big")
            + self.value
            + (b"\x01" if self.present else b"\x00")
        )

    @classmethod
    def read_from(cls, stream: BinaryIO) -> _Record | None:
        """Read one record, or return None at the end or on a truncated record."""
        key = stream.read(KEY_SIZE)
        if len(key) < KEY_SIZE:
            return None
        header = stream.read(2)
        if len(header) < 2:
            return None
        size = int.from_bytes(header, "big")
        value = stream.read(size)
        if len(value) < size:
            return None
        flag = stream.read(1)
        if not flag:
            return None
        return cls(key=key, value=value, present=flag[0] > 0)

    @classmethod
    def from_bytes(cls, buffer: bytes) -> _Record | None:
        key = buffer[:KEY_SIZE]
        rest = buffer[KEY_SIZE:]
        if len(key) < KEY_SIZE or len(rest) < 2:
            return None
        size = int.from_bytes(rest[:2], "big")
        if len(rest) < 2 + size + 1:
            return None
        value = rest[2 : 2 + size]
        return cls(key=key, value=value, present=rest[2 + size] > 0)


def _sync_dir(directory: Path) -> None:
    if os.name == "nt":
        return
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _read_tmp_record(path: Path) -> _Record | None:
    """Return the record held in the temporary file when its checksum matches."""
    data = path.read_bytes()
    checksum, body = data[:DIGEST_SIZE], data[DIGEST_SIZE:]
    if len(checksum) < DIGEST_SIZE or hashlib.sha256(body).digest() != checksum:
        return None
    return _Record.from_bytes(body)


def _append(path: Path, content: bytes) -> None:
    with open(path, "ab") as dst:
        dst.write(content)
        dst.flush()
        os.fsync(dst.fileno())


class StableStorage:
    """A key-value store whose contents survive crashes.

    Instances are created by ``build_stable_storage``.
    """

    def __init__(self, root: Path, index: dict[bytes, int], eof: int) -> None:
        self._root = root
        self._dst = root / DST_FILE_NAME
        self._tmp = root / TMP_FILE_NAME
        self._index = index
        self._eof = eof
        self._lock = asyncio.Lock()

    async def put(self, key: str, value: bytes) -> None:
        """Store ``value`` under ``key``.

        Raises ValueError when the key is longer than 255 bytes or the value
        longer than 65535 bytes.
        """
        record = _Record(key=_pad_key(key), value=_check_value(value), present=True)
        async with self._lock:
            await asyncio.to_thread(self._stable_store, record)
            self._index[record.key] = self._eof
            self._eof += record.size

    async def get(self, key: str) -> bytes | None:
        """Return the value stored under ``key``, or None when there is none."""
        try:
            padded = _pad_key(key)
        except ValueError:
            return None
        async with self._lock:
            offset = self._index.get(padded)
            if offset is None:
                return None
            record = await asyncio.to_thread(self._read_at, offset)
        return None if record is None else record.value

    async def remove(self, key: str) -> bool:
        """Remove ``key`` and its value; return whether the key was present."""
        try:
            padded = _pad_key(key)
        except ValueError:
            return False
        async with self._lock:
            if padded not in self._index:
                return False
            record = _Record(key=padded, value=b"\x00", present=False)
            try:
                await asyncio.to_thread(self._stable_store, record)
            except ValueError:
                return False
            del self._index[padded]
            self._eof += record.size
        return True

    def _stable_store(self, record: _Record) -> None:
        buffer = record.to_bytes()
        with open(self._tmp, "wb") as tmp:
            tmp.write(hashlib.sha256(buffer).digest() + buffer)
            tmp.flush()
            os.fsync(tmp.fileno())
        _sync_dir(self._root)

        stored = _read_tmp_record(self._tmp)
        if stored is None:
            raise ValueError("Checksums don't match")
        _append(self._dst, stored.to_bytes())

        self._tmp.unlink()
        _sync_dir(self._root)

    def _read_at(self, offset: int) -> _Record | None:
        with open(self._dst, "rb") as dst:
            dst.seek(offset)
            return _Record.read_from(dst)


def _recover(root: Path) -> tuple[dict[bytes, int], int]:
    dst_path = root / DST_FILE_NAME
    tmp_path = root / TMP_FILE_NAME
    index: dict[bytes, int] = {}
    eof = 0

    if dst_path.exists():
        with open(dst_path, "rb") as dst:
            while (record := _Record.read_from(dst)) is not None:
                if record.present:
                    index[record.key] = eof
                else:
                    index.pop(record.key, None)
                eof += record.size
        if dst_path.stat().st_size > eof:
            # Drop a partially written tail so that offsets of later appends match.
            with open(dst_path, "r+b") as dst:
                dst.truncate(eof)
                dst.flush()
                os.fsync(dst.fileno())
    else:
        with open(dst_path, "wb") as dst:
            os.fsync(dst.fileno())
        _sync_dir(root)

    if tmp_path.exists():
        record = _read_tmp_record(tmp_path)
        if record is not None:
            _append(dst_path, record.to_bytes())
            if record.present:
                index[record.key] = eof
            else:
                index.pop(record.key, None)
            eof += record.size
        tmp_path.unlink()
        _sync_dir(root)

    return index, eof


async def build_stable_storage(root_storage_dir: str | os.PathLike) -> StableStorage:
    """Open the storage kept in ``root_storage_dir``, recovering after a crash."""
    root = Path(root_storage_dir)
    index, eof = await asyncio.to_thread(_recover, root)
    return StableStorage(root, index, eof)