"""Decodes binary DMX files, encoding version 9.

The file is read strictly in order:

* The header comment, ``<!-- dmx encoding binary 9 format vmap 35 -->``, terminated by a
  newline and a null byte. This is followed by the prefix attributes, which store their
  names and strings inline.
* The string table. Element types, names, attribute names and scalar string values in
  element bodies all refer to this by index.
* The element "shells": type, name and identifier for every element.
* The attributes for each element, in the same order as the shells.

The same walker is used for both byte sources, only the payload ownership differs.
"""
from typing import IO, Any, Dict, List, Optional, Tuple, Union
from enum import Enum
from uuid import UUID
import os
import re

from typing_extensions import Final

from dmxparser import logger
from dmxparser.binformat import SIZE_INT, Buffer, Reader, SliceReader, StreamReader
from dmxparser.dmx import (
    ARRAY_OFFSET, BINARY_READERS, IND_TO_VALTYPE, NULL,
    Attribute, Document, Element, ElementRef, ValueType,
)
from dmxparser.errors import DMXIOError, UnsupportedVersionError


__all__ = [
    'Phase', 'SUPPORTED_VERSION', 'MAX_HEADER_LEN',
    'decode_borrowed', 'decode_owned', 'parse',
]
LOGGER = logger.get_logger(__name__)

SUPPORTED_VERSION: Final = 9
# The header is null-terminated, give up if we don't find that in a reasonable distance.
MAX_HEADER_LEN: Final = 1024
ENCODING_NAME: Final = 'binary'
HEADER_RE: Final = re.compile(
    r'<!--\s*dmx\s+encoding\s+(\S+)\s+(-?[0-9]+)\s+'
    r'format\s+(\S+)\s+([0-9]+)\s*-->\s*\Z'
)


class Phase(Enum):
    """The sections of the file, in the order they are read."""
    HEADER = 'header'
    STRING_TABLE = 'string table'
    ELEMENT_SHELLS = 'element shells'
    ELEMENT_BODIES = 'element bodies'
    DONE = 'done'


class _Decoder:
    """Walks the file grammar, building a document."""
    reader: Reader
    phase: Phase
    strings: List[str]
    elements: List[Element]
    # Element references in the prefix can only be checked once shells are read.
    # Stored as (offset, index) pairs.
    prefix_refs: List[Tuple[int, int]]

    def __init__(self, reader: Reader) -> None:
        self.reader = reader
        self.phase = Phase.HEADER
        self.strings = []
        self.elements = []
        self.prefix_refs = []

    def enter(self, phase: Phase) -> None:
        """Move to the next phase."""
        self.phase = phase
        self.reader.phase = phase.value
        LOGGER.debug('Reading {} at byte {}', phase.value, self.reader.offset)

    def decode(self) -> Document:
        """Read the entire file."""
        reader = self.reader
        self.enter(Phase.HEADER)
        enc_name, enc_vers, fmt_name, fmt_vers = self.read_header()
        prefix = self.read_prefix()

        self.enter(Phase.STRING_TABLE)
        string_count = reader.read_count('string count')
        self.strings = [reader.read_nullstr() for _ in range(string_count)]
        LOGGER.debug('Read {} strings', string_count)

        self.enter(Phase.ELEMENT_SHELLS)
        element_count = reader.read_count('element count')
        for index in range(element_count):
            el_type = self.read_string_ref()
            name = self.read_string_ref()
            uuid = UUID(bytes_le=reader.read(16))
            self.elements.append(Element(index, name, el_type, uuid))
        for offset, index in self.prefix_refs:
            if index >= element_count:
                raise reader.error(
                    f'Prefix attribute refers to element #{index}, '
                    f'but only {element_count} elements exist!',
                    offset,
                )

        self.enter(Phase.ELEMENT_BODIES)
        for elem in self.elements:
            # noinspection PyProtectedMember
            elem._members = self.read_attributes(inline_names=False)

        self.enter(Phase.DONE)
        if isinstance(reader, SliceReader) and reader.remaining:
            LOGGER.debug('{} bytes of trailing data ignored', reader.remaining)
        return Document(
            encoding=enc_name,
            encoding_version=enc_vers,
            format_name=fmt_name,
            format_version=fmt_vers,
            elements=self.elements,
            strings=self.strings,
            prefix=prefix,
            borrowed=reader.borrowed,
        )

    def read_header(self) -> Tuple[str, int, str, int]:
        """Read and validate the header comment."""
        reader = self.reader
        text = reader.read_nullstr('ascii', MAX_HEADER_LEN)
        match = HEADER_RE.match(text)
        if match is None:
            raise reader.error(f'Invalid DMX header {text[:64]!r}!', 0)
        enc_name, enc_vers_str, fmt_name, fmt_vers_str = match.groups()
        if enc_name != ENCODING_NAME:
            raise reader.error(f'Unsupported DMX encoding "{enc_name}", only binary can be read!', 0)
        enc_vers = int(enc_vers_str)
        if enc_vers != SUPPORTED_VERSION:
            raise UnsupportedVersionError(enc_vers, SUPPORTED_VERSION)
        LOGGER.debug('Format: {} v{}', fmt_name, fmt_vers_str)
        return enc_name, enc_vers, fmt_name, int(fmt_vers_str)

    def read_prefix(self) -> List[Dict[str, Attribute[Any]]]:
        """Read the prefix elements following the header."""
        count = self.reader.read_count('prefix element count')
        return [self.read_attributes(inline_names=True) for _ in range(count)]

    def read_string_ref(self) -> str:
        """Read an index into the string table."""
        start = self.reader.offset
        index = self.reader.read_int()
        if not (0 <= index < len(self.strings)):
            raise self.reader.error(
                f'String index {index} is out of range, '
                f'only {len(self.strings)} strings exist!',
                start,
            )
        return self.strings[index]

    def read_attributes(self, inline_names: bool) -> Dict[str, Attribute[Any]]:
        """Read a counted block of attributes.

        In the prefix names and strings are stored inline, instead of in the table.
        """
        reader = self.reader
        attr_count = reader.read_count('attribute count')
        members: Dict[str, Attribute[Any]] = {}
        for _ in range(attr_count):
            start = reader.offset
            if inline_names:
                name = reader.read_nullstr()
            else:
                name = self.read_string_ref()
            if name in members:
                raise reader.error(f'Duplicate attribute "{name}"!', start)
            members[name] = self.read_value(name, inline_names)
        return members

    def read_value(self, name: str, inline_strings: bool) -> Attribute[Any]:
        """Read the type and value of an attribute."""
        reader = self.reader
        start = reader.offset
        [tag] = reader.struct_read('<B')
        array_size: Optional[int]
        if tag >= ARRAY_OFFSET:
            array_size = reader.read_count(f'array size for "{name}"')
            ind = tag - ARRAY_OFFSET
        else:
            array_size = None
            ind = tag
        try:
            attr_type = IND_TO_VALTYPE[ind]
        except KeyError:
            raise reader.error(f'Unknown attribute type {tag} for "{name}"!', start) from None

        value: Any
        if attr_type is ValueType.ELEMENT:
            value = self.read_elem_refs(1 if array_size is None else array_size, inline_strings)
        elif attr_type is ValueType.STRING:
            if array_size is not None:
                # Arrays are always inline.
                value = [reader.read_nullstr() for _ in range(array_size)]
            elif inline_strings:
                value = reader.read_nullstr()
            else:
                value = self.read_string_ref()
        elif attr_type is ValueType.BINARY:
            value = [
                reader.read_payload(reader.read_count(f'binary length for "{name}"'))
                for _ in range(1 if array_size is None else array_size)
            ]
        else:
            # All other types are fixed-length.
            fmt, conv = BINARY_READERS[attr_type]
            value = [conv(tup) for tup in reader.read_array(fmt, 1 if array_size is None else array_size)]

        if array_size is None and attr_type is not ValueType.STRING:
            [value] = value
        return Attribute(name, attr_type, value, array=array_size is not None)

    def read_elem_refs(self, count: int, deferred: bool) -> List[ElementRef]:
        """Read element indexes, checking they refer to a real element.

        In the prefix the elements are not yet known, so they are checked afterwards.
        """
        reader = self.reader
        start = reader.offset
        refs: List[ElementRef] = []
        for i, [index] in enumerate(reader.read_array(BINARY_READERS[ValueType.INT][0], count)):
            if index == -1:
                refs.append(NULL)
                continue
            offset = start + i * SIZE_INT
            if index < 0:
                raise reader.error(f'Invalid element index {index}!', offset)
            if deferred:
                self.prefix_refs.append((offset, index))
            elif index >= len(self.elements):
                raise reader.error(
                    f'Element index {index} is out of range, '
                    f'only {len(self.elements)} elements exist!',
                    offset,
                )
            refs.append(ElementRef(index))
        return refs


def decode_borrowed(buffer: Buffer) -> Document:
    """Decode a DMX file held entirely in memory.

    Binary values in the result are views into the buffer, so it must not be modified while the
    document is in use.
    """
    return _Decoder(SliceReader(buffer)).decode()


def decode_owned(source: IO[bytes]) -> Document:
    """Decode a DMX file from a binary file object, reading it incrementally.

    All values are copied, so the source can be closed afterwards.
    """
    return _Decoder(StreamReader(source)).decode()


def parse(
    file_or_path: Union[IO[bytes], str, 'os.PathLike[str]'],
    *,
    borrow: bool = False,
) -> Document:
    """Decode a DMX file from either a filename or an open binary file.

    If ``borrow`` is set the whole file is read into memory first, and binary values are views
    into that buffer. Otherwise, the file is read incrementally.
    """
    if isinstance(file_or_path, (str, os.PathLike)):
        LOGGER.debug('Parsing "{}"', os.fspath(file_or_path))
        with open(file_or_path, 'rb') as f:
            return parse(f, borrow=borrow)
    if borrow:
        try:
            data = file_or_path.read()
        except OSError as exc:
            raise DMXIOError(f'Failed to read from source: {exc}', 0) from exc
        return decode_borrowed(data)
    return decode_owned(file_or_path)
