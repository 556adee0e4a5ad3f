"""Exceptions raised when decoding or deserializing DMX files.

Decoding failures derive from :py:class:`DecodeError`, and always abort the whole decode.
Deserialization failures derive from :py:class:`DeserializeError`, and carry the attribute path
where the problem was found.
"""
from typing import Optional, Sequence, Tuple


__all__ = [
    'DMXError',
    'DecodeError', 'DMXIOError', 'UnsupportedVersionError', 'MalformedStructureError',
    'DeserializeError', 'TypeMismatchError', 'MissingFieldError', 'CyclicReferenceError',
    'NotImplementedShapeError',
    'format_path',
]

Path = Tuple[str, ...]


def format_path(path: Sequence[str]) -> str:
    """Join path segments into a readable string.

    Segments starting with ``[`` are array indexes, and are appended without a separator.
    """
    parts = []
    for seg in path:
        if parts and not seg.startswith('['):
            parts.append('.')
        parts.append(seg)
    return ''.join(parts) or '<root>'


class DMXError(Exception):
    """Base class for all errors produced by this package."""


class DecodeError(DMXError):
    """The binary data could not be decoded."""


class DMXIOError(DecodeError, OSError):
    """Reading from the underlying byte source failed."""
    def __init__(self, message: str, offset: int) -> None:
        super().__init__(message)
        self.mess = message
        self.offset = offset

    def __str__(self) -> str:
        return f'{self.mess} (at byte {self.offset})'


class UnsupportedVersionError(DecodeError):
    """The header specifies an encoding version other than the one we read."""
    version: int
    """The version found in the file."""

    def __init__(self, version: int, supported: int) -> None:
        super().__init__()
        self.version = version
        self.supported = supported

    def __str__(self) -> str:
        return f'Unsupported DMX binary version {self.version}, only {self.supported} can be read!'


class MalformedStructureError(DecodeError):
    """The file does not follow the binary grammar.

    The string representation includes the byte offset at which the problem was detected.
    """
    mess: str
    offset: int
    """The offset from the start of the file where the error was detected."""
    phase: Optional[str]
    """The decoding phase that was active, if known."""

    def __init__(self, message: str, offset: int, phase: Optional[str] = None) -> None:
        super().__init__()
        self.mess = message
        self.offset = offset
        self.phase = phase

    def __repr__(self) -> str:
        return f'MalformedStructureError({self.mess!r}, {self.offset!r}, {self.phase!r})'

    def __str__(self) -> str:
        if self.phase is not None:
            return f'{self.mess}\nAt byte {self.offset:,} (while reading {self.phase})'
        return f'{self.mess}\nAt byte {self.offset:,}'


class DeserializeError(DMXError):
    """A document could not be converted into the requested shape."""
    path: Path
    """Path segments leading to the problematic element or attribute."""

    def __init__(self, path: Sequence[str]) -> None:
        super().__init__()
        self.path = tuple(path)

    @property
    def path_str(self) -> str:
        """The path as a single string."""
        return format_path(self.path)


class TypeMismatchError(DeserializeError):
    """The value kind in the file cannot satisfy the kind the shape asks for."""
    def __init__(self, expected: str, actual: str, path: Sequence[str]) -> None:
        super().__init__(path)
        self.expected = expected
        self.actual = actual

    def __str__(self) -> str:
        return f'{self.path_str}: expected {self.expected}, got {self.actual}'


class MissingFieldError(DeserializeError):
    """A required field is not an attribute of the element."""
    def __init__(self, field: str, path: Sequence[str]) -> None:
        super().__init__(path)
        self.field = field

    def __str__(self) -> str:
        return f'{self.path_str}: missing required field "{self.field}"'


class CyclicReferenceError(DeserializeError):
    """Expanding an element reference would re-enter an element already being expanded."""
    indices: Tuple[int, ...]
    """The element indexes forming the cycle, ending with the re-entered element."""

    def __init__(self, indices: Sequence[int], path: Sequence[str]) -> None:
        super().__init__(path)
        self.indices = tuple(indices)

    def __str__(self) -> str:
        chain = ' -> '.join(map(str, self.indices))
        return f'{self.path_str}: cyclic element reference ({chain})'


class NotImplementedShapeError(DeserializeError, NotImplementedError):
    """The shape requests a mapping the engine does not provide."""
    def __init__(self, message: str, path: Sequence[str]) -> None:
        super().__init__(path)
        self.mess = message

    def __str__(self) -> str:
        return f'{self.path_str}: {self.mess}'
