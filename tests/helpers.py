"""Helpers for performing tests."""
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from struct import Struct
from uuid import UUID
import io
import struct

from dirty_equals import DirtyEquals

from dmxparser.dmx import ARRAY_OFFSET, VAL_TYPE_TO_IND, ValueType


__all__ = ['ExactType', 'DMXBuilder', 'Trickle', 'pack_value', 'make_uuid']


class ExactType(DirtyEquals[object]):
    """Proxy object which verifies both value and types match."""
    def __init__(self, val: object) -> None:
        super().__init__(val)
        self.compare = val

    def equals(self, other: object) -> bool:
        if isinstance(other, ExactType):
            other = other.compare
        return type(self.compare) is type(other) and self.compare == other


class Trickle(io.RawIOBase):
    """A raw stream which returns only a few bytes at a time, like a pipe or socket."""
    def __init__(self, data: bytes, step: int = 3) -> None:
        super().__init__()
        self.data = data
        self.pos = 0
        self.step = step

    def readable(self) -> bool:
        return True

    def readinto(self, buffer: Any) -> int:
        chunk = self.data[self.pos:self.pos + min(len(buffer), self.step)]
        buffer[:len(chunk)] = chunk
        self.pos += len(chunk)
        return len(chunk)


def make_uuid(index: int) -> UUID:
    """Produce a predictable identifier."""
    return UUID(int=0x1234_5678_9abc_def0_0000_0000_0000_0000 + index)


FIXED_FORMATS: Dict[ValueType, Struct] = {
    ValueType.INT: Struct('<i'),
    ValueType.FLOAT: Struct('<f'),
    ValueType.BOOL: Struct('<B'),
    ValueType.COLOR: Struct('<4B'),
    ValueType.VEC2: Struct('<2f'),
    ValueType.VEC3: Struct('<3f'),
    ValueType.VEC4: Struct('<4f'),
    ValueType.ANGLE: Struct('<3f'),
    ValueType.QUATERNION: Struct('<4f'),
    ValueType.MATRIX: Struct('<16f'),
    ValueType.UINT64: Struct('<Q'),
    ValueType.UINT8: Struct('<B'),
}


def _nullstr(text: Union[str, bytes]) -> bytes:
    if isinstance(text, str):
        text = text.encode('utf8')
    return text + b'\0'


def pack_value(val_type: ValueType, value: Any, string_index: Optional[int] = None) -> bytes:
    """Encode a single value.

    Strings are written inline, unless the string table index is provided.
    """
    if val_type is ValueType.ELEMENT:
        return struct.pack('<i', -1 if value is None else value)
    elif val_type is ValueType.STRING:
        if string_index is not None:
            return struct.pack('<i', string_index)
        return _nullstr(value)
    elif val_type is ValueType.BINARY:
        return struct.pack('<i', len(value)) + bytes(value)
    elif val_type is ValueType.TIME:
        return struct.pack('<i', round(value * 10000))
    fmt = FIXED_FORMATS[val_type]
    if fmt.size == 1 or val_type in (ValueType.INT, ValueType.FLOAT, ValueType.UINT64):
        return fmt.pack(value)
    return fmt.pack(*value)


class DMXBuilder:
    """Writes binary DMX v9 files, so the decoder can be tested without sample files.

    Attributes are stored pre-encoded, so invalid data can be inserted as well.
    """
    def __init__(
        self,
        fmt_name: str = 'vmap',
        fmt_version: int = 35,
        *,
        encoding: str = 'binary',
        version: int = 9,
    ) -> None:
        self.header = f'<!-- dmx encoding {encoding} {version} format {fmt_name} {fmt_version} -->\n'
        self.prefix: List[List[bytes]] = []
        self.strings: List[bytes] = []
        self.elements: List[Tuple[int, int, UUID, List[bytes]]] = []

    def string(self, text: Union[str, bytes]) -> int:
        """Add a string to the table, returning its index."""
        if isinstance(text, str):
            text = text.encode('utf8')
        try:
            return self.strings.index(text)
        except ValueError:
            self.strings.append(text)
            return len(self.strings) - 1

    def element(self, el_type: str, name: str = '', uuid: Optional[UUID] = None) -> int:
        """Add an element, returning its index."""
        index = len(self.elements)
        self.elements.append((
            self.string(el_type),
            self.string(name),
            make_uuid(index) if uuid is None else uuid,
            [],
        ))
        return index

    @staticmethod
    def _encode(val_type: ValueType, value: Any, array: bool, string_index: Optional[int]) -> bytes:
        tag = VAL_TYPE_TO_IND[val_type]
        if not array:
            return bytes([tag]) + pack_value(val_type, value, string_index)
        values: Sequence[Any] = value
        return b''.join([
            bytes([tag + ARRAY_OFFSET]),
            struct.pack('<i', len(values)),
            *[pack_value(val_type, val) for val in values],
        ])

    def attr(self, elem: int, name: str, val_type: ValueType, value: Any, array: bool = False) -> None:
        """Add an attribute to an element."""
        name_ind = self.string(name)
        string_ind = None
        if val_type is ValueType.STRING and not array:
            string_ind = self.string(value)
        self.elements[elem][3].append(
            struct.pack('<i', name_ind) + self._encode(val_type, value, array, string_ind)
        )

    def raw_attr(self, elem: int, name: str, data: bytes) -> None:
        """Add an attribute with arbitrary data following the name."""
        self.elements[elem][3].append(struct.pack('<i', self.string(name)) + data)

    def prefix_attr(
        self,
        name: str,
        val_type: ValueType,
        value: Any,
        array: bool = False,
        block: int = 0,
    ) -> None:
        """Add an attribute to the prefix, creating blocks as required."""
        while len(self.prefix) <= block:
            self.prefix.append([])
        self.prefix[block].append(_nullstr(name) + self._encode(val_type, value, array, None))

    def build(self) -> bytes:
        """Produce the file."""
        out = bytearray(_nullstr(self.header))
        out += struct.pack('<i', len(self.prefix))
        for block in self.prefix:
            out += struct.pack('<i', len(block))
            for data in block:
                out += data
        out += struct.pack('<i', len(self.strings))
        for text in self.strings:
            out += text + b'\0'
        out += struct.pack('<i', len(self.elements))
        for el_type, name, uuid, _ in self.elements:
            out += struct.pack('<ii', el_type, name)
            out += uuid.bytes_le
        for _, _, _, attrs in self.elements:
            out += struct.pack('<i', len(attrs))
            for data in attrs:
                out += data
        return bytes(out)
