"""
The binformat module :mod:`binformat` contains the byte sources the decoder reads from, \
esentially expanding on :external:mod:`struct`'s functionality with offset tracking.

Two storage strategies are provided. :py:class:`SliceReader` borrows from a buffer held entirely
in memory, returning variable-length payloads as :external:py:class:`memoryview` slices of it.
:py:class:`StreamReader` reads incrementally from a file object, and so has to copy every payload.
Both raise :py:class:`~dmxparser.errors.MalformedStructureError` if the data runs out.
"""
from typing import IO, Any, List, Mapping, Optional, Tuple, Union
from typing_extensions import Final
from struct import Struct
import functools

from dmxparser.errors import DMXIOError, MalformedStructureError


__all__ = [
    'SIZES', 'SIZE_CHAR', 'SIZE_INT', 'SIZE_LONG', 'SIZE_FLOAT',
    'CHUNK_SIZE', 'SEARCH_SIZE', 'Buffer', 'Payload',
    'Reader', 'SliceReader', 'StreamReader',
]

SIZES: Final[Mapping[str, int]] = {
    fmt: Struct('<' + fmt).size
    for fmt in 'bB?iIqQf'
}
SIZE_CHAR: Final = 1
SIZE_INT: Final = 4
SIZE_LONG: Final = 8
SIZE_FLOAT: Final = 4

assert SIZE_CHAR == SIZES['b']
assert SIZE_INT == SIZES['i']
assert SIZE_LONG == SIZES['q']
assert SIZE_FLOAT == SIZES['f']

# Largest single read() issued to a stream. Bigger payloads are read in pieces, so a corrupt
# length field fails once the data runs out instead of allocating the whole amount first.
CHUNK_SIZE: Final = 1 << 20
# Views can't be searched directly, so they are copied this much at a time to look for nulls.
SEARCH_SIZE: Final = 1 << 12

ST_INT: Final = Struct('<i')
Buffer = Union[bytes, bytearray, memoryview]
Payload = Union[bytes, memoryview]
_cached_struct = functools.lru_cache()(Struct)


class Reader:
    """Common interface for the byte sources.

    :py:attr:`offset` is the number of bytes consumed so far, used to locate errors.
    :py:attr:`phase` is set by the decoder, and is included in errors.
    """
    borrowed: bool = False
    offset: int
    phase: Optional[str]

    def __init__(self) -> None:
        self.offset = 0
        self.phase = None

    def error(self, message: str, offset: Optional[int] = None) -> MalformedStructureError:
        """Produce an error for the current position."""
        return MalformedStructureError(
            message,
            self.offset if offset is None else offset,
            self.phase,
        )

    def read(self, size: int) -> bytes:
        """Read exactly this many bytes, always producing a copy."""
        raise NotImplementedError

    def read_payload(self, size: int) -> Payload:
        """Read a variable-length payload.

        Depending on the reader this is either a copy or a view of the source.
        """
        raise NotImplementedError

    def read_nullstr_bytes(self, limit: Optional[int] = None) -> bytes:
        """Read up to a null byte, returning the data without it."""
        raise NotImplementedError

    def struct_read(self, fmt: Union[Struct, str]) -> Tuple[Any, ...]:
        """Read a structure, automatically computing the required number of bytes."""
        if not isinstance(fmt, Struct):
            fmt = _cached_struct(fmt)
        return fmt.unpack(self.read(fmt.size))

    def read_int(self) -> int:
        """Read a single signed 32-bit integer."""
        [value] = ST_INT.unpack(self.read(SIZE_INT))
        return value

    def read_count(self, what: str) -> int:
        """Read a 32-bit count or length, which must not be negative."""
        start = self.offset
        count = self.read_int()
        if count < 0:
            raise self.error(f'Negative {what} ({count})!', start)
        return count

    def read_array(self, fmt: Struct, count: int) -> List[Tuple[Any, ...]]:
        """Read a consecutive run of fixed-size structures."""
        if count == 0:
            return []
        return list(fmt.iter_unpack(self.read_payload(fmt.size * count)))

    def read_nullstr(self, encoding: str = 'utf8', limit: Optional[int] = None) -> str:
        """Read and decode a null-terminated string."""
        start = self.offset
        data = self.read_nullstr_bytes(limit)
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as exc:
            raise self.error(f'Invalid {encoding} string {data!r}: {exc.reason}', start) from exc


class SliceReader(Reader):
    """Reads from a buffer held in memory, without copying payloads.

    The buffer must remain unchanged for as long as any returned payloads are in use.
    """
    borrowed = True

    def __init__(self, buffer: Buffer) -> None:
        super().__init__()
        self.view = memoryview(buffer).cast('B')
        # memoryview has no find(), search the original object if possible.
        self._search: Optional[Union[bytes, bytearray]]
        if isinstance(buffer, (bytes, bytearray)):
            self._search = buffer
        else:
            self._search = None

    def __len__(self) -> int:
        return len(self.view)

    @property
    def remaining(self) -> int:
        """The number of bytes left to read."""
        return len(self.view) - self.offset

    def _take(self, size: int) -> memoryview:
        if size < 0:
            raise self.error(f'Negative length ({size})!')
        end = self.offset + size
        if end > len(self.view):
            raise self.error(
                f'Unexpected end of data, needed {size} bytes but '
                f'only {self.remaining} remain!'
            )
        chunk = self.view[self.offset:end]
        self.offset = end
        return chunk

    def read(self, size: int) -> bytes:
        return self._take(size).tobytes()

    def read_payload(self, size: int) -> memoryview:
        return self._take(size)

    def struct_read(self, fmt: Union[Struct, str]) -> Tuple[Any, ...]:
        if not isinstance(fmt, Struct):
            fmt = _cached_struct(fmt)
        return fmt.unpack(self._take(fmt.size))

    def _find_null(self, start: int, end: int) -> int:
        """Locate the next null byte in the range, or return -1."""
        if self._search is not None:
            return self._search.find(b'\0', start, end)
        for block in range(start, end, SEARCH_SIZE):
            pos = self.view[block:min(block + SEARCH_SIZE, end)].tobytes().find(b'\0')
            if pos >= 0:
                return block + pos
        return -1

    def read_nullstr_bytes(self, limit: Optional[int] = None) -> bytes:
        end = len(self.view) if limit is None else min(len(self.view), self.offset + limit + 1)
        pos = self._find_null(self.offset, end)
        if pos < 0:
            if end < len(self.view):
                raise self.error(f'No null terminator within {limit} bytes!')
            raise self.error('Fell off end of data looking for a null terminator!')
        data = self.view[self.offset:pos].tobytes()
        self.offset = pos + 1
        return data


class StreamReader(Reader):
    """Reads incrementally from a binary file object, copying all data.

    Failures of the underlying ``read()`` call are converted to
    :py:class:`~dmxparser.errors.DMXIOError`.
    """
    borrowed = False

    def __init__(self, file: IO[bytes]) -> None:
        super().__init__()
        self.file = file
        # Buffered readers let us search for terminators in bulk.
        self._peek = getattr(file, 'peek', None)

    def _raw_read(self, size: int) -> bytes:
        try:
            data = self.file.read(size)
        except OSError as exc:
            raise DMXIOError(f'Failed to read from source: {exc}', self.offset) from exc
        if data is None:  # Non-blocking stream with nothing available.
            raise DMXIOError('Source returned no data, non-blocking streams are unsupported.', self.offset)
        return data

    def read(self, size: int) -> bytes:
        if size < 0:
            raise self.error(f'Negative length ({size})!')
        # Streams may return less than requested before the end, keep going until they're empty.
        parts = []
        got = 0
        while got < size:
            part = self._raw_read(min(CHUNK_SIZE, size - got))
            if not part:
                break
            parts.append(part)
            got += len(part)
        data = parts[0] if len(parts) == 1 else b''.join(parts)
        if len(data) < size:
            raise self.error(
                f'Unexpected end of data, needed {size} bytes but '
                f'only {len(data)} remain!'
            )
        self.offset += size
        return data

    read_payload = read

    def read_nullstr_bytes(self, limit: Optional[int] = None) -> bytes:
        text = bytearray()
        while True:
            if limit is not None and len(text) > limit:
                raise self.error(f'No null terminator within {limit} bytes!')
            if self._peek is not None:
                try:
                    chunk = self._peek()
                except OSError as exc:
                    raise DMXIOError(f'Failed to read from source: {exc}', self.offset) from exc
                if not chunk:
                    raise self.error('Fell off end of data looking for a null terminator!')
                pos = chunk.find(b'\0')
                if pos < 0:
                    text += self.read(len(chunk))
                    continue
                text += self.read(pos + 1)
            else:
                char = self._raw_read(1)
                if not char:
                    raise self.error('Fell off end of data looking for a null terminator!')
                self.offset += 1
                text += char
            if text.endswith(b'\0'):
                del text[-1]
                if limit is not None and len(text) > limit:
                    raise self.error(f'No null terminator within {limit} bytes!')
                return bytes(text)
