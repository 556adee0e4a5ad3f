"""Handles the in-memory representation of DataModel eXchange trees.

A decoded file is a :py:class:`Document`: a flat array of :py:class:`Element` objects addressed
by index. Attributes which refer to other elements hold an :py:class:`ElementRef`, which stores
only the index of the target. This means cyclic graphs are perfectly fine to hold, since
nothing here ever follows those references on its own.

Documents are produced by :py:mod:`dmxparser.decoder`, and are immutable afterwards::

    with open("path/to/file.vmap", "rb") as f:
        doc = dmxparser.decode_owned(f)
    print(doc.format_name, doc.format_version, doc.root.type)
"""
from typing import (
    TYPE_CHECKING, Any, Callable, Dict, Generic, Iterator, KeysView, List, Mapping,
    NamedTuple, Optional, Sequence, Tuple, TypeVar, Union, ValuesView,
)
from typing_extensions import Final, TypeAlias
from enum import Enum
from struct import Struct
from uuid import UUID
import builtins
import contextlib
import math

import attrs

from dmxparser import logger
from dmxparser.errors import CyclicReferenceError, TypeMismatchError


__all__ = [
    'ValueType', 'NULL', 'ElementRef',
    'Vec2', 'Vec3', 'Vec4', 'Angle', 'Quaternion', 'Matrix', 'Color', 'Time',
    'Attribute', 'Element', 'Document', 'Resolver',
    'narrow', 'INTEGER_TYPES',
]
LOGGER = logger.get_logger(__name__)


class ValueType(Enum):
    """The type of value an element attribute has."""
    ELEMENT = 'element'
    """A reference to another :py:class:`Element`, stored as an :py:class:`ElementRef`. This may be :py:data:`NULL`."""
    INTEGER = INT = 'int'
    """A 32-bit signed :external:py:class:`int` value."""
    FLOAT = 'float'
    """A single-precision :external:py:class:`float` point value."""
    BOOL = 'bool'
    """A :external:py:class:`bool` true/false value."""
    STRING = STR = 'string'
    """A general text string."""
    BINARY = BIN = VOID = 'binary'
    """A block of raw data. In borrowing mode this is a :external:py:class:`memoryview` into the source buffer, otherwise :external:py:class:`bytes`."""
    TIME = 'time'
    """Time since the begining of a level, in seconds. This is represented by the :py:class:`Time` type."""
    COLOR = COLOUR = 'color'
    """An RGBA 8-bit colour, represented by :py:class:`Color`."""
    VEC2 = 'vector2'
    """A generic XY vector, represented by the :py:class:`Vec2` namedtuple."""
    VEC3 = 'vector3'
    """A generic XYZ vector, represented by the :py:class:`Vec3` namedtuple."""
    VEC4 = 'vector4'
    """A generic XYZW vector, represented by the :py:class:`Vec4` namedtuple."""
    ANGLE = 'qangle'
    """An Euler angle, represented by the :py:class:`Angle` namedtuple."""
    QUATERNION = 'quaternion'
    """A rotational quaternion, represented by the :py:class:`Quaternion` namedtuple."""
    MATRIX = 'vmatrix'
    """A 4x4 transformation :py:class:`Matrix`."""
    UINT64 = 'uint64'
    """An unsigned 64-bit :external:py:class:`int`."""
    UINT8 = 'uint8'
    """An unsigned 8-bit :external:py:class:`int`."""


# type -> enum index.
VAL_TYPE_TO_IND: Final = {
    ValueType.ELEMENT: 1,
    ValueType.INT: 2,
    ValueType.FLOAT: 3,
    ValueType.BOOL: 4,
    ValueType.STRING: 5,
    ValueType.BINARY: 6,
    ValueType.TIME: 7,
    ValueType.COLOR: 8,
    ValueType.VEC2: 9,
    ValueType.VEC3: 10,
    ValueType.VEC4: 11,
    ValueType.ANGLE: 12,
    ValueType.QUATERNION: 13,
    ValueType.MATRIX: 14,
    ValueType.UINT64: 15,
    ValueType.UINT8: 16,
}
# INT_ARRAY is INT + ARRAY_OFFSET = 34, and so on.
ARRAY_OFFSET: Final = 32
IND_TO_VALTYPE: Final = {
    ind: val_type
    for val_type, ind in VAL_TYPE_TO_IND.items()
}
INTEGER_TYPES: Final = frozenset({ValueType.INTEGER, ValueType.UINT8, ValueType.UINT64})
# Inclusive bounds for each integer kind.
_INT_RANGES: Final = {
    ValueType.INTEGER: (-(1 << 31), (1 << 31) - 1),
    ValueType.UINT8: (0, 255),
    ValueType.UINT64: (0, (1 << 64) - 1),
}
T = TypeVar('T')


class Vec2(NamedTuple):
    """A 2-dimensional vector."""
    x: float
    y: float

    def __str__(self) -> str:
        return f'({self[0]:.6g} {self[1]:.6g})'


class Vec3(NamedTuple):
    """A 3-dimensional vector."""
    x: float
    y: float
    z: float

    def __str__(self) -> str:
        return f'({self[0]:.6g} {self[1]:.6g} {self[2]:.6g})'


class Vec4(NamedTuple):
    """A 4-dimensional vector."""
    x: float
    y: float
    z: float
    w: float

    def __str__(self) -> str:
        return f'({self[0]:.6g} {self[1]:.6g} {self[2]:.6g} {self[3]:.6g})'


class Angle(NamedTuple):
    """A pitch-yaw-roll Euler angle, in degrees."""
    pitch: float
    yaw: float
    roll: float

    def __str__(self) -> str:
        return f'({self[0]:.6g} {self[1]:.6g} {self[2]:.6g})'


class Quaternion(NamedTuple):
    """A quaternion used to represent rotations."""
    x: float
    y: float
    z: float
    w: float


def _clamp_color(x: int) -> int:
    """Clamp colors to 0-255."""
    return max(0, min(255, round(x)))


@attrs.frozen
class Color:
    """An RGBA color."""

    r: int = attrs.field(converter=_clamp_color)
    g: int = attrs.field(converter=_clamp_color)
    b: int = attrs.field(converter=_clamp_color)
    a: int = attrs.field(converter=_clamp_color, default=255)

    def __iter__(self) -> Iterator[int]:
        yield self.r
        yield self.g
        yield self.b
        yield self.a

    def __str__(self) -> str:
        return f'{self.r} {self.g} {self.b} {self.a}'


@attrs.frozen
class Time:
    """A relative timestamp, in seconds."""
    value: float = 0.0

    def __float__(self) -> float:
        """This can be coerced into a float."""
        return self.value


@attrs.frozen
class Matrix:
    """A 4x4 transformation matrix, stored row-major.

    Individual cells can be read with ``mat[row, col]``.
    """
    values: Tuple[float, ...] = attrs.field(
        default=(
            1.0, 0.0, 0.0, 0.0,
            0.0, 1.0, 0.0, 0.0,
            0.0, 0.0, 1.0, 0.0,
            0.0, 0.0, 0.0, 1.0,
        ),
        converter=tuple,
    )

    @values.validator
    def _check_size(self, attribute: 'attrs.Attribute[Tuple[float, ...]]', value: Tuple[float, ...]) -> None:
        if len(value) != 16:
            raise ValueError(f'Matrix requires 16 values, got {len(value)}!')

    def __getitem__(self, item: Tuple[int, int]) -> float:
        row, col = item
        if not (0 <= row < 4 and 0 <= col < 4):
            raise KeyError(item)
        return self.values[row * 4 + col]

    def rows(self) -> Iterator[Tuple[float, float, float, float]]:
        """Yield each row of the matrix."""
        for i in range(0, 16, 4):
            yield self.values[i], self.values[i + 1], self.values[i + 2], self.values[i + 3]


@attrs.frozen(repr=False)
class ElementRef:
    """A reference to another element in the same document.

    The index is ``None`` for :py:data:`NULL` references.
    """
    index: Optional[int] = None

    @property
    def is_null(self) -> bool:
        """Check if this refers to no element at all."""
        return self.index is None

    def __repr__(self) -> str:
        if self.index is None:
            return '<NULL element>'
        return f'<ElementRef #{self.index}>'


NULL: Final = ElementRef(None)
"""A reference to no element. In the file this is stored as index ``-1``."""


Value: TypeAlias = Union[
    int, float, bool, str, bytes, memoryview,
    Color, Time,
    Vec2, Vec3, Vec4,
    Angle, Quaternion, Matrix,
    ElementRef,
]
ValueT = TypeVar(
    'ValueT',
    int, float, bool, str, bytes, memoryview,
    Color, Time,
    Vec2, Vec3, Vec4,
    Angle, Quaternion, Matrix,
    ElementRef,
)

# Binary layout for each fixed-size type, and a function building the value from the
# unpacked fields. Strings and binary data are variable-length, and handled by the decoder.
BinaryReader: TypeAlias = Tuple[Struct, Callable[[Tuple[Any, ...]], Value]]
BINARY_READERS: Dict[ValueType, BinaryReader] = {}


def _binconv_basic(val_type: ValueType, fmt: str, conv: Callable[[Any], Value] = lambda x: x) -> None:
    """Converter functions for a type with a single value."""
    BINARY_READERS[val_type] = (Struct(fmt), lambda tup: conv(tup[0]))


def _binconv_cls(val_type: ValueType, fmt: str, Tup: Callable[..., Value]) -> None:
    """Converter functions for a type matching a namedtuple."""
    BINARY_READERS[val_type] = (Struct(fmt), lambda tup: Tup(*tup))


_binconv_basic(ValueType.ELEMENT, '<i', lambda ind: NULL if ind == -1 else ElementRef(ind))
_binconv_basic(ValueType.INTEGER, '<i')
_binconv_basic(ValueType.FLOAT, '<f')
_binconv_basic(ValueType.BOOL, '<B', bool)
_binconv_basic(ValueType.UINT64, '<Q')
_binconv_basic(ValueType.UINT8, '<B')
# Time is a fixed point integer, in units of 1/10000 second.
_binconv_basic(ValueType.TIME, '<i', lambda num: Time(num / 10000.0))

_binconv_cls(ValueType.COLOR, '<4B', Color)
_binconv_cls(ValueType.VEC2, '<2f', Vec2)
_binconv_cls(ValueType.VEC3, '<3f', Vec3)
_binconv_cls(ValueType.VEC4, '<4f', Vec4)
_binconv_cls(ValueType.ANGLE, '<3f', Angle)
_binconv_cls(ValueType.QUATERNION, '<4f', Quaternion)
BINARY_READERS[ValueType.MATRIX] = (Struct('<16f'), Matrix)

del _binconv_basic, _binconv_cls


def _same_value(a: Any, b: Any) -> bool:
    """Compare two values, treating NaN as equal to itself."""
    if isinstance(a, float) and isinstance(b, float):
        return a == b or (math.isnan(a) and math.isnan(b))
    if isinstance(a, Matrix) and isinstance(b, Matrix):
        a, b = a.values, b.values
    if isinstance(a, tuple) and isinstance(b, tuple):
        return len(a) == len(b) and all(map(_same_value, a, b))
    return bool(a == b)


def _kind_name(val_type: ValueType, is_array: bool = False) -> str:
    """The name used for a kind in error messages."""
    if is_array:
        return f'{val_type.value}_array'
    return val_type.value


def narrow(value: Any, from_type: ValueType, to_type: ValueType, path: Sequence[str] = ()) -> Any:
    """Convert a scalar value to another kind, if that is permitted.

    Only numeric kinds can be converted. Integers can become any other integer kind if they fit,
    or a float. Floats can become integers if they hold an integral value.
    Anything else raises :py:class:`~dmxparser.errors.TypeMismatchError`.
    """
    if from_type is to_type:
        return value
    if to_type is ValueType.FLOAT and from_type in INTEGER_TYPES:
        return float(value)
    if to_type in INTEGER_TYPES:
        if from_type in INTEGER_TYPES:
            result = value
        elif from_type is ValueType.FLOAT and value == value and float(value).is_integer():
            result = int(value)
        else:
            raise TypeMismatchError(_kind_name(to_type), _kind_name(from_type), path)
        low, high = _INT_RANGES[to_type]
        if not (low <= result <= high):
            raise TypeMismatchError(
                _kind_name(to_type),
                f'{_kind_name(from_type)} {value!r} (out of range)',
                path,
            )
        return result
    raise TypeMismatchError(_kind_name(to_type), _kind_name(from_type), path)


def _make_val_prop(val_type: ValueType, typ: type) -> property:
    """Build the read-only properties for each type."""

    def getter(self: 'Attribute[Any]') -> Any:
        return self._read_val(val_type)

    if val_type.name[0].casefold() in 'aeiou':
        desc = f'an {val_type.name.lower()}.'
    else:
        desc = f'a {val_type.name.lower()}.'
    getter.__doc__ = 'Return the value as ' + desc
    getter.__annotations__['return'] = typ
    return property(fget=getter, doc='Access the value as ' + desc)


def _make_iter(val_type: ValueType, typ: type) -> Callable[['Attribute[Any]'], Iterator[Any]]:
    """Build an iterator for the given value type."""
    def iterator(self: 'Attribute[Any]') -> Iterator[Any]:
        return self._iter_array(val_type)

    iterator.__doc__ = f'Iterate over {val_type.name.lower()} values.'
    iterator.__annotations__['return'] = Iterator[typ]  # type: ignore
    return iterator


class Attribute(Generic[ValueT]):
    """A single attribute of an element.

    Attributes store either a single scalar value, or a tuple of multiple values of the same type.
    They are created by the decoder, and cannot be modified.

    To access the value, read one of the `val_*` properties, which will convert numeric values
    if possible. For arrays use `iter_*()`, or index the attribute to fetch single values.
    """
    __slots__ = ['name', '_typ', '_value', '_array']
    name: str
    _typ: ValueType
    _value: Union[ValueT, Tuple[ValueT, ...]]
    _array: bool

    def __init__(
        self,
        name: str,
        val_type: ValueType,
        value: Union[ValueT, Sequence[ValueT]],
        array: bool = False,
    ) -> None:
        """For internal use only."""
        self.name = name
        self._typ = val_type
        self._array = array
        if array:
            self._value = tuple(value)  # type: ignore
        else:
            self._value = value  # type: ignore

    @property
    def type(self) -> ValueType:
        """Return the type of the attribute."""
        return self._typ

    @property
    def is_array(self) -> bool:
        """Check if this is an array, or a singular value."""
        return self._array

    @property
    def value(self) -> Union[ValueT, Tuple[ValueT, ...]]:
        """The raw value, or a tuple of values for arrays."""
        return self._value

    @property
    def kind_name(self) -> str:
        """The kind of this attribute, as used in error messages."""
        return _kind_name(self._typ, self._array)

    def _read_val(self, newtype: ValueType) -> Value:
        """Convert to the desired type."""
        if self._array:
            raise TypeMismatchError(_kind_name(newtype), self.kind_name, (self.name, ))
        return narrow(self._value, self._typ, newtype, (self.name, ))

    def _iter_array(self, newtype: ValueType) -> Iterator[Value]:
        """Iterate over the values, converted to the desired type."""
        values: Sequence[Any] = self._value if self._array else (self._value, )  # type: ignore
        return (
            narrow(val, self._typ, newtype, (self.name, f'[{i}]'))
            for i, val in enumerate(values)
        )

    if TYPE_CHECKING:
        val_int: builtins.int
        val_uint64: builtins.int
        val_uint8: builtins.int
        val_float: builtins.float
        val_bool: builtins.bool
        val_str: builtins.str
        val_string: builtins.str
        val_bytes: Union[builtins.bytes, memoryview]
        val_bin: Union[builtins.bytes, memoryview]
        val_binary: Union[builtins.bytes, memoryview]
        val_time: Time
        val_color: Color
        val_colour: Color
        val_vec2: Vec2
        val_vec3: Vec3
        val_vec4: Vec4
        val_ang: Angle
        val_angle: Angle
        val_quat: Quaternion
        val_quaternion: Quaternion
        val_mat: Matrix
        val_matrix: Matrix
        val_elem: ElementRef

        def iter_int(self) -> Iterator[builtins.int]: ...
        def iter_uint64(self) -> Iterator[builtins.int]: ...
        def iter_uint8(self) -> Iterator[builtins.int]: ...
        def iter_float(self) -> Iterator[builtins.float]: ...
        def iter_bool(self) -> Iterator[builtins.bool]: ...
        def iter_str(self) -> Iterator[builtins.str]: ...
        def iter_string(self) -> Iterator[builtins.str]: ...
        def iter_bytes(self) -> Iterator[Union[builtins.bytes, memoryview]]: ...
        def iter_bin(self) -> Iterator[Union[builtins.bytes, memoryview]]: ...
        def iter_binary(self) -> Iterator[Union[builtins.bytes, memoryview]]: ...
        def iter_time(self) -> Iterator[Time]: ...
        def iter_color(self) -> Iterator[Color]: ...
        def iter_colour(self) -> Iterator[Color]: ...
        def iter_vec2(self) -> Iterator[Vec2]: ...
        def iter_vec3(self) -> Iterator[Vec3]: ...
        def iter_vec4(self) -> Iterator[Vec4]: ...
        def iter_ang(self) -> Iterator[Angle]: ...
        def iter_angle(self) -> Iterator[Angle]: ...
        def iter_quat(self) -> Iterator[Quaternion]: ...
        def iter_quaternion(self) -> Iterator[Quaternion]: ...
        def iter_mat(self) -> Iterator[Matrix]: ...
        def iter_matrix(self) -> Iterator[Matrix]: ...
        def iter_elem(self) -> Iterator[ElementRef]: ...
    else:
        val_int = _make_val_prop(ValueType.INT, builtins.int)
        val_uint64 = _make_val_prop(ValueType.UINT64, builtins.int)
        val_uint8 = _make_val_prop(ValueType.UINT8, builtins.int)
        val_float = _make_val_prop(ValueType.FLOAT, builtins.float)
        val_bool = _make_val_prop(ValueType.BOOL, builtins.bool)
        val_str = val_string = _make_val_prop(ValueType.STRING, builtins.str)
        val_bin = val_binary = val_bytes = _make_val_prop(ValueType.BINARY, builtins.bytes)
        val_time = _make_val_prop(ValueType.TIME, Time)
        val_colour = val_color = _make_val_prop(ValueType.COLOR, Color)
        val_vec2 = _make_val_prop(ValueType.VEC2, Vec2)
        val_vec3 = _make_val_prop(ValueType.VEC3, Vec3)
        val_vec4 = _make_val_prop(ValueType.VEC4, Vec4)
        val_ang = val_angle = _make_val_prop(ValueType.ANGLE, Angle)
        val_quat = val_quaternion = _make_val_prop(ValueType.QUATERNION, Quaternion)
        val_mat = val_matrix = _make_val_prop(ValueType.MATRIX, Matrix)
        val_elem = _make_val_prop(ValueType.ELEMENT, ElementRef)

        iter_int = _make_iter(ValueType.INT, builtins.int)
        iter_uint64 = _make_iter(ValueType.UINT64, builtins.int)
        iter_uint8 = _make_iter(ValueType.UINT8, builtins.int)
        iter_float = _make_iter(ValueType.FLOAT, builtins.float)
        iter_bool = _make_iter(ValueType.BOOL, builtins.bool)
        iter_str = iter_string = _make_iter(ValueType.STRING, builtins.str)
        iter_bin = iter_binary = iter_bytes = _make_iter(ValueType.BINARY, builtins.bytes)
        iter_time = _make_iter(ValueType.TIME, Time)
        iter_colour = iter_color = _make_iter(ValueType.COLOR, Color)
        iter_vec2 = _make_iter(ValueType.VEC2, Vec2)
        iter_vec3 = _make_iter(ValueType.VEC3, Vec3)
        iter_vec4 = _make_iter(ValueType.VEC4, Vec4)
        iter_ang = iter_angle = _make_iter(ValueType.ANGLE, Angle)
        iter_quat = iter_quaternion = _make_iter(ValueType.QUATERNION, Quaternion)
        iter_mat = iter_matrix = _make_iter(ValueType.MATRIX, Matrix)
        iter_elem = _make_iter(ValueType.ELEMENT, ElementRef)

    def __repr__(self) -> str:
        if self._array and len(self._value) > 8:  # type: ignore
            # Trim down long arrays to make it more readable.
            value = ', '.join(map(repr, self._value[:8]))  # type: ignore
            value = f'[{value}, ...]'
        else:
            value = repr(self._value)
        return f'<{self.kind_name} Attr {self.name!r}: {value}>'

    def __eq__(self, other: object) -> builtins.bool:
        if isinstance(other, Attribute):
            return (
                self._typ is other._typ and
                self._array == other._array and
                self.name == other.name and
                _same_value(self._value, other._value)
            )
        return NotImplemented

    __hash__ = None  # type: ignore

    def __getitem__(self, item: builtins.int) -> ValueT:
        """Read values in an array."""
        if not self._array:
            raise ValueError('Cannot index singular attributes.')
        return self._value[item]  # type: ignore

    def __len__(self) -> builtins.int:
        """Return the number of values in the array, if this is one."""
        if self._array:
            return len(self._value)  # type: ignore
        raise ValueError('Singular attributes have no length!')


class Element(Mapping[str, Attribute[Any]]):
    """An element in a DMX document.

    This is a read-only mapping over `Attribute` objects, representing each key-value pair in
    the element. Keys must match exactly, and keep the order they appeared in the file.
    """
    __slots__ = ['index', 'type', 'name', 'uuid', '_members']

    index: int
    """The position of this element in the document."""
    type: str
    """
    In Valve's formats, this is the name of the C++ class that the element should deserialise
    into, like `CMapEntity` for example.
    """
    name: str
    """The instance name of the element."""
    uuid: UUID
    """This identifies the element uniquely, and is stable across saves of the file."""
    _members: Dict[str, Attribute[Any]]

    def __init__(self, index: int, name: str, type: str, uuid: UUID) -> None:
        """Elements are built by the decoder."""
        self.index = index
        self.name = name
        self.type = type
        self.uuid = uuid
        self._members = {}

    def __repr__(self) -> str:
        return f'<{self.type}({self.name!r}) #{self.index}: {self._members!r}>'

    def __len__(self) -> int:
        return len(self._members)

    def __iter__(self) -> Iterator[str]:
        return iter(self._members.keys())

    def __contains__(self, name: object) -> bool:
        return name in self._members

    def keys(self) -> KeysView[str]:
        """Return a view of the attribute names for this element."""
        return self._members.keys()

    def values(self) -> ValuesView[Attribute[Any]]:
        """Return a view of the attributes for this element."""
        return self._members.values()

    def __getitem__(self, name: str) -> Attribute[Any]:
        return self._members[name]

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Element):
            return (
                self.index == other.index and
                self.type == other.type and
                self.name == other.name and
                self.uuid == other.uuid and
                self._members == other._members
            )
        return NotImplemented

    __hash__ = None  # type: ignore


def _build_uuid_index(elements: Sequence[Element]) -> Dict[UUID, int]:
    """Map identifiers to element indexes. If duplicated, the first element wins."""
    index: Dict[UUID, int] = {}
    for elem in elements:
        if index.setdefault(elem.uuid, elem.index) != elem.index:
            LOGGER.warning(
                'Duplicate element ID {} for #{} and #{}!',
                elem.uuid, index[elem.uuid], elem.index,
            )
    return index


@attrs.frozen(repr=False)
class Document:
    """A fully decoded DMX file.

    Elements are stored in declaration order, and may be accessed by index, identifier, or
    by resolving an :py:class:`ElementRef`. The root element is always the first.
    """
    encoding: str
    encoding_version: int
    format_name: str
    """The kind of data stored in the file, like ``vmap``."""
    format_version: int
    elements: Tuple[Element, ...] = attrs.field(converter=tuple)
    strings: Tuple[str, ...] = attrs.field(converter=tuple, default=())
    """The string table, kept for diagnostics. Values in elements are already resolved."""
    prefix: Tuple[Mapping[str, Attribute[Any]], ...] = attrs.field(converter=tuple, default=())
    """Attribute blocks stored before the string table."""
    borrowed: bool = attrs.field(default=False, eq=False)
    """If set, binary values are views into the buffer the document was decoded from."""
    _by_uuid: Dict[UUID, int] = attrs.field(init=False, eq=False)

    @_by_uuid.default
    def _uuid_index(self) -> Dict[UUID, int]:
        return _build_uuid_index(self.elements)

    @property
    def root(self) -> Element:
        """The first element in the file."""
        try:
            return self.elements[0]
        except IndexError:
            raise LookupError('No elements in DMX document!') from None

    def __repr__(self) -> str:
        return (
            f'<Document {self.format_name} v{self.format_version}, '
            f'{len(self.elements)} elements>'
        )

    def __len__(self) -> int:
        return len(self.elements)

    def __iter__(self) -> Iterator[Element]:
        return iter(self.elements)

    def __getitem__(self, index: int) -> Element:
        return self.elements[index]

    def by_uuid(self, uuid: UUID) -> Element:
        """Look up an element by its identifier, raising KeyError if not present."""
        return self.elements[self._by_uuid[uuid]]

    def resolve(self, ref: ElementRef) -> Optional[int]:
        """Convert a reference into an element index, or ``None`` for null references.

        This only checks the index is valid, the element is not expanded in any way.
        """
        if ref.index is None:
            return None
        if not (0 <= ref.index < len(self.elements)):
            raise IndexError(f'{ref!r} does not refer to an element in this document!')
        return ref.index

    def element(self, ref: ElementRef) -> Optional[Element]:
        """Fetch the element a reference points to, or ``None`` for null references."""
        index = self.resolve(ref)
        if index is None:
            return None
        return self.elements[index]


class Resolver:
    """Resolves references during recursive traversals of a document, guarding against cycles.

    The set of elements currently being expanded is tracked, so re-entering one of those
    raises :py:class:`~dmxparser.errors.CyclicReferenceError` instead of recursing forever.
    Each traversal should use its own resolver.
    """
    document: Document
    # Dict, to preserve order for error messages.
    _active: Dict[int, None]

    def __init__(self, document: Document) -> None:
        self.document = document
        self._active = {}

    def resolve(self, ref: ElementRef) -> Optional[int]:
        """Convert a reference into an index, without expanding it."""
        return self.document.resolve(ref)

    @property
    def active(self) -> List[int]:
        """The elements currently being expanded, outermost first."""
        return list(self._active)

    @contextlib.contextmanager
    def expanding(self, index: int, path: Sequence[str] = ()) -> Iterator[Element]:
        """Mark the element as being expanded for the duration of the block."""
        if index in self._active:
            chain = self.active
            raise CyclicReferenceError([*chain[chain.index(index):], index], path)
        self._active[index] = None
        try:
            yield self.document.elements[index]
        finally:
            del self._active[index]
