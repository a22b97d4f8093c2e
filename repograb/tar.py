"""
Streaming tar decoder.

Bytes are pushed in arbitrary chunks and complete regular-file entries come
out as soon as their data is buffered:

    decoder = TarDecoder()
    for chunk in response.iter_content(65536):
        for entry in decoder.feed(chunk):
            handle(entry.name, entry.body)
    decoder.close()

Header layout used (512-byte blocks):
    0-100    name (NUL padded)
    124-136  size, octal ASCII
    156      type flag ('0' or NUL = regular file)
    257-263  'ustar' magic
    345-500  name prefix (ustar)

All-zero blocks are padding and skipped; the archive ends when the stream
does. Pax ('x') and GNU long-name ('L') records are not yielded but supply
the name of the entry that follows them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

from .errors import ArchiveCorrupt


BLOCK_SIZE = 512
REGULAR_TYPES = (b'0', b'\x00', b'')
PAX_HEADER = b'x'
GNU_LONGNAME = b'L'
# Compact the buffer once this many consumed bytes sit in front of the cursor
COMPACT_THRESHOLD = 1 << 20


@dataclass
class TarEntry:
    name: str
    size: int
    type_flag: str
    body: bytes = b''

    @property
    def is_file(self) -> bool:
        return self.type_flag in ('0', '\x00', '')


@dataclass
class _Header:
    name: str
    size: int
    type_flag: bytes

    @property
    def padded_size(self) -> int:
        return -(-self.size // BLOCK_SIZE) * BLOCK_SIZE


def parse_header(block: bytes) -> _Header:
    """Parse one 512-byte header block. Raises ArchiveCorrupt on a bad size field."""
    name = _cstring(block[0:100])

    raw_size = block[124:136].replace(b'\x00', b' ').strip()
    if not raw_size:
        size = 0
    else:
        try:
            size = int(raw_size.decode('ascii'), 8)
        except (UnicodeDecodeError, ValueError):
            raise ArchiveCorrupt(f"Invalid size field in tar header for {name!r}: {raw_size!r}")

    type_flag = block[156:157]

    if block[257:262] == b'ustar':
        prefix = _cstring(block[345:500])
        if prefix:
            name = f"{prefix}/{name}"

    return _Header(name=name, size=size, type_flag=type_flag)


def _cstring(raw: bytes) -> str:
    return raw.split(b'\x00', 1)[0].decode('utf-8', errors='replace')


def _pax_path(body: bytes) -> str | None:
    """Pull 'path' out of pax extended header records ("<len> key=value\\n")."""
    for line in body.decode('utf-8', errors='replace').split('\n'):
        _, _, record = line.partition(' ')
        key, sep, value = record.partition('=')
        if sep and key == 'path':
            return value
    return None


class TarDecoder:
    """
    Push-driven tar state machine.

    State: a byte buffer, a read cursor into it, and the header of the
    entry whose body is still arriving.
    """

    def __init__(self):
        self._buffer = bytearray()
        self._cursor = 0
        self._pending: _Header | None = None
        self._next_name: str | None = None
        self.entries_seen = 0

    @property
    def buffered(self) -> int:
        return len(self._buffer) - self._cursor

    def feed(self, chunk: bytes) -> list[TarEntry]:
        """Append a chunk and return every entry it completed."""
        if chunk:
            self._buffer.extend(chunk)
        entries = []

        while True:
            if self._pending is None:
                if self.buffered < BLOCK_SIZE:
                    break
                block = bytes(self._buffer[self._cursor:self._cursor + BLOCK_SIZE])
                if not any(block):
                    self._cursor += BLOCK_SIZE
                    continue
                self._pending = parse_header(block)
                self._cursor += BLOCK_SIZE

            header = self._pending
            if self.buffered < header.padded_size:
                break

            body = bytes(self._buffer[self._cursor:self._cursor + header.size])
            self._cursor += header.padded_size
            self._pending = None

            entry = self._complete(header, body)
            if entry is not None:
                entries.append(entry)

        if self._cursor >= COMPACT_THRESHOLD or self._cursor == len(self._buffer):
            del self._buffer[:self._cursor]
            self._cursor = 0

        return entries

    def _complete(self, header: _Header, body: bytes) -> TarEntry | None:
        self.entries_seen += 1
        if header.type_flag == PAX_HEADER:
            self._next_name = _pax_path(body) or self._next_name
            return None
        if header.type_flag == GNU_LONGNAME:
            self._next_name = _cstring(body)
            return None

        name = self._next_name or header.name
        self._next_name = None
        if header.type_flag not in REGULAR_TYPES:
            return None
        return TarEntry(
            name=name,
            size=header.size,
            type_flag=header.type_flag.decode('latin-1'),
            body=body,
        )

    def close(self) -> None:
        """
        Signal end of stream.

        Raises:
            ArchiveCorrupt if a header or body was cut short
        """
        if self._pending is not None:
            raise ArchiveCorrupt(
                f"Tar stream truncated inside {self._pending.name!r} "
                f"({self.buffered} of {self._pending.size} bytes)"
            )
        leftover = self._buffer[self._cursor:]
        if any(leftover):
            raise ArchiveCorrupt(f"Tar stream truncated: {len(leftover)} trailing bytes")
        self._buffer.clear()
        self._cursor = 0


def iter_tar_entries(chunks: Iterable[bytes]) -> Iterator[TarEntry]:
    """Lazily yield regular-file entries from an iterable of byte chunks."""
    decoder = TarDecoder()
    for chunk in chunks:
        yield from decoder.feed(chunk)
    decoder.close()


__all__ = ['TarEntry', 'TarDecoder', 'iter_tar_entries', 'parse_header', 'BLOCK_SIZE']
