"""Streaming zip archives for multi-file shares."""

import zipfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO, Callable, Iterable, Iterator

CHUNK_SIZE = 65536  # 64KB


@dataclass
class ArchiveEntry:
    """A file to add to the archive; ``opener`` is called once, when its turn comes."""

    name: str
    size: int
    opener: Callable[[], BinaryIO]
    modified_at: datetime | None = None

    @classmethod
    def from_path(cls, name: str, path: Path, size: int, modified_at: datetime | None = None) -> "ArchiveEntry":
        return cls(name=name, size=size, opener=lambda: open(path, "rb"), modified_at=modified_at)


class _DrainableSink:
    """Write-only, unseekable buffer handed to ``zipfile``.

    Without ``seek``/``tell`` zipfile falls back to streaming mode and writes a
    data descriptor after each member instead of patching local headers.
    """

    def __init__(self):
        self._chunks: list[bytes] = []

    def write(self, data) -> int:
        self._chunks.append(bytes(data))
        return len(data)

    def flush(self) -> None:
        pass

    def drain(self) -> bytes:
        data = b"".join(self._chunks)
        self._chunks.clear()
        return data


def _zip_date_time(value: datetime | None) -> tuple[int, int, int, int, int, int]:
    value = value or datetime.now()
    # Zip timestamps cannot represent dates before 1980
    if value.year < 1980:
        return (1980, 1, 1, 0, 0, 0)
    return (value.year, value.month, value.day, value.hour, value.minute, value.second)


def stream_archive(entries: Iterable[ArchiveEntry], chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield a deflate-compressed zip of ``entries`` piece by piece.

    Members are read in order, one chunk at a time; compressed output is yielded
    as soon as the compressor emits it. The returned generator can be consumed
    only once.
    """
    sink = _DrainableSink()
    with zipfile.ZipFile(sink, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for entry in entries:
            info = zipfile.ZipInfo(entry.name, date_time=_zip_date_time(entry.modified_at))
            info.compress_type = zipfile.ZIP_DEFLATED
            # Known size up front lets zipfile pick ZIP64 headers when needed
            info.file_size = entry.size

            with entry.opener() as source, archive.open(info, mode="w") as member:
                while chunk := source.read(chunk_size):
                    member.write(chunk)
                    data = sink.drain()
                    if data:
                        yield data

            data = sink.drain()
            if data:
                yield data

    # Central directory is written when the archive closes
    data = sink.drain()
    if data:
        yield data
