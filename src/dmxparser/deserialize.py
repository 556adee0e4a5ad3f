"""Converts decoded documents into user-defined objects.

The conversion is driven by *shapes*, which describe what is expected at each point::

    @attrs.frozen
    class Entity:
        name: str
        origin: Vec3
        children: List['Entity']

    deserialize.register(
        Entity,
        Field('name', STRING, attr='m_name'),
        Field('origin', VEC3),
        Field('children', Array(Entity)),
    )
    ent = deserialize.deserialize(doc, Entity)

Element references are followed when a :py:class:`Struct` is expected, and the referenced
element is converted recursively. Cycles in the graph are detected, raising
:py:class:`~dmxparser.errors.CyclicReferenceError` instead of recursing forever.
Use :py:class:`Identifier` to store just the index or UUID instead.
"""
from typing import (
    Any, Callable, Dict, Mapping, Optional, Sequence, Tuple, Type, TypeVar, Union,
)
from typing_extensions import Final, TypeAlias

import attrs

from dmxparser import logger
from dmxparser.dmx import Document, Element, ElementRef, Resolver, ValueType, narrow
from dmxparser.errors import MissingFieldError, NotImplementedShapeError, TypeMismatchError


__all__ = [
    'Scalar', 'Array', 'Field', 'Struct', 'Identifier', 'Variant',
    'INT', 'FLOAT', 'BOOL', 'STRING', 'BINARY', 'TIME', 'COLOR',
    'VEC2', 'VEC3', 'VEC4', 'ANGLE', 'QUATERNION', 'MATRIX', 'UINT64', 'UINT8',
    'register', 'shape_for', 'deserialize', 'Deserializer',
]
LOGGER = logger.get_logger(__name__)
T = TypeVar('T')
# Either a shape object, or a class standing in for one.
Shape: TypeAlias = Any
Path: TypeAlias = Tuple[str, ...]


@attrs.frozen
class Scalar:
    """A single value of a primitive kind.

    Numeric kinds are converted between each other where no information is lost.
    """
    kind: ValueType


INT: Final = Scalar(ValueType.INTEGER)
FLOAT: Final = Scalar(ValueType.FLOAT)
BOOL: Final = Scalar(ValueType.BOOL)
STRING: Final = Scalar(ValueType.STRING)
BINARY: Final = Scalar(ValueType.BINARY)
TIME: Final = Scalar(ValueType.TIME)
COLOR: Final = Scalar(ValueType.COLOR)
VEC2: Final = Scalar(ValueType.VEC2)
VEC3: Final = Scalar(ValueType.VEC3)
VEC4: Final = Scalar(ValueType.VEC4)
ANGLE: Final = Scalar(ValueType.ANGLE)
QUATERNION: Final = Scalar(ValueType.QUATERNION)
MATRIX: Final = Scalar(ValueType.MATRIX)
UINT64: Final = Scalar(ValueType.UINT64)
UINT8: Final = Scalar(ValueType.UINT8)

# Builtin types which can be used directly as shapes.
BUILTIN_SHAPES: Final[Mapping[type, Scalar]] = {
    int: INT,
    float: FLOAT,
    bool: BOOL,
    str: STRING,
    bytes: BINARY,
}


@attrs.frozen
class Array:
    """An array attribute. Each value is converted using the item shape, producing a list."""
    item: Shape


@attrs.frozen
class Field:
    """A named field of a :py:class:`Struct`.

    :param name: The keyword passed to the factory.
    :param shape: The shape of the value.
    :param optional: If set, a missing attribute or a null element produces ``None``.
    :param attr: The attribute name in the file, if different from ``name``.
    """
    name: str
    shape: Shape
    optional: bool = False
    attr: Optional[str] = None

    @property
    def key(self) -> str:
        """The attribute name to look up."""
        return self.name if self.attr is None else self.attr


@attrs.frozen
class Struct:
    """An element, converted by passing each field to the factory as keyword arguments.

    Attributes not mentioned in the fields are ignored. The element's own name, type and
    identifier can be passed as well, by specifying the keywords to use.
    """
    fields: Tuple[Field, ...] = attrs.field(converter=tuple)
    factory: Callable[..., Any] = dict
    name_attr: Optional[str] = attrs.field(default=None, kw_only=True)
    type_attr: Optional[str] = attrs.field(default=None, kw_only=True)
    uuid_attr: Optional[str] = attrs.field(default=None, kw_only=True)

    @property
    def display_name(self) -> str:
        """The name of the factory, for error messages."""
        return getattr(self.factory, '__name__', repr(self.factory))


@attrs.frozen
class Identifier:
    """A reference to an element, producing only its index.

    If ``uuid`` is set the element's identifier is produced instead. Null references produce
    ``None``. The element is never expanded, so these can be used to represent cyclic graphs.
    """
    uuid: bool = False


@attrs.frozen
class Variant:
    """A reference to one of several kinds of element, picked by the element type."""
    options: Mapping[str, Shape] = attrs.field(converter=dict, hash=False)
    default: Optional[Shape] = None


_REGISTRY: Dict[type, Struct] = {}


def register(
    cls: Type[T],
    *fields: Field,
    name_attr: Optional[str] = None,
    type_attr: Optional[str] = None,
    uuid_attr: Optional[str] = None,
) -> Struct:
    """Register the fields used to construct a class.

    Afterwards, the class can be used wherever a shape is expected.
    Fields may refer to classes which are registered later, these are looked up when used.
    """
    if cls in BUILTIN_SHAPES:
        raise ValueError(f'Cannot register builtin type {cls.__name__}!')
    shape = Struct(
        fields, cls,
        name_attr=name_attr,
        type_attr=type_attr,
        uuid_attr=uuid_attr,
    )
    if cls in _REGISTRY:
        LOGGER.warning('Replacing shape registered for {}', cls.__qualname__)
    _REGISTRY[cls] = shape
    return shape


def shape_for(cls: type) -> Struct:
    """Return the shape registered for a class."""
    try:
        return _REGISTRY[cls]
    except KeyError:
        raise KeyError(f'No shape registered for {cls.__qualname__}!') from None


def _describe(shape: Shape) -> str:
    """Describe the expected value, for errors."""
    if isinstance(shape, Scalar):
        return shape.kind.value
    if isinstance(shape, Array):
        return f'array of {_describe(shape.item)}'
    if isinstance(shape, Struct):
        return f'element ({shape.display_name})'
    if isinstance(shape, type):
        try:
            return BUILTIN_SHAPES[shape].kind.value
        except KeyError:
            return f'element ({shape.__name__})'
    return 'element'


class Deserializer:
    """Holds the state for a single conversion.

    Elements currently being expanded are tracked by the resolver to detect cycles.
    """
    document: Document
    resolver: Resolver

    def __init__(self, document: Document) -> None:
        self.document = document
        self.resolver = Resolver(document)

    @staticmethod
    def resolve_shape(shape: Shape, path: Sequence[str]) -> Any:
        """Convert classes into their shape, and reject unknown objects."""
        if isinstance(shape, (Scalar, Array, Struct, Identifier, Variant)):
            return shape
        if isinstance(shape, type):
            try:
                return BUILTIN_SHAPES[shape]
            except KeyError:
                pass
            try:
                return _REGISTRY[shape]
            except KeyError:
                raise NotImplementedShapeError(
                    f'No shape registered for {shape.__qualname__}', path,
                ) from None
        raise NotImplementedShapeError(f'Unknown shape {shape!r}', path)

    def from_element(self, index: int, shape: Shape, path: Path) -> Any:
        """Convert an element, given its index."""
        shape = self.resolve_shape(shape, path)
        if isinstance(shape, Identifier):
            return self.document[index].uuid if shape.uuid else index
        if isinstance(shape, (Struct, Variant)):
            return self.expand(index, shape, path)
        raise TypeMismatchError(_describe(shape), 'element', path)

    def from_attribute(self, attr: Any, shape: Shape, path: Path, optional: bool = False) -> Any:
        """Convert an attribute value, which may be an array."""
        shape = self.resolve_shape(shape, path)
        if isinstance(shape, Array):
            if not attr.is_array:
                raise TypeMismatchError(_describe(shape), attr.kind_name, path)
            return [
                self.from_value(attr.type, value, shape.item, (*path, f'[{i}]'))
                for i, value in enumerate(attr.value)
            ]
        if attr.is_array:
            raise TypeMismatchError(_describe(shape), attr.kind_name, path)
        return self.from_value(attr.type, attr.value, shape, path, optional)

    def from_value(
        self,
        val_type: ValueType,
        value: Any,
        shape: Shape,
        path: Path,
        optional: bool = False,
    ) -> Any:
        """Convert a single value."""
        shape = self.resolve_shape(shape, path)
        if isinstance(shape, Scalar):
            if shape.kind is ValueType.ELEMENT:
                raise NotImplementedShapeError(
                    'Element references cannot be read as scalars, '
                    'use Identifier or Struct instead', path,
                )
            return narrow(value, val_type, shape.kind, path)
        if isinstance(shape, Array):
            # Arrays cannot be nested.
            raise TypeMismatchError(_describe(shape), val_type.value, path)

        # Everything else expects an element.
        if val_type is not ValueType.ELEMENT:
            raise TypeMismatchError(_describe(shape), val_type.value, path)
        assert isinstance(value, ElementRef), value
        index = self.resolver.resolve(value)
        if index is None:
            if optional or isinstance(shape, Identifier):
                return None
            raise TypeMismatchError(_describe(shape), 'null element', path)
        return self.from_element(index, shape, path)

    def expand(self, index: int, shape: Union[Struct, Variant], path: Path) -> Any:
        """Construct an object from the element at this index."""
        if isinstance(shape, Variant):
            el_type = self.document[index].type
            try:
                option = shape.options[el_type]
            except KeyError:
                if shape.default is None:
                    raise TypeMismatchError(
                        'one of ' + ', '.join(sorted(shape.options)),
                        f'element type "{el_type}"',
                        path,
                    ) from None
                option = shape.default
            struct = self.resolve_shape(option, path)
            if not isinstance(struct, (Struct, Variant)):
                raise NotImplementedShapeError(
                    f'Variant option for "{el_type}" must be an element shape, not {struct!r}',
                    path,
                )
            return self.expand(index, struct, path)

        with self.resolver.expanding(index, path) as elem:
            kwargs = self.read_fields(elem, shape, path)
        return shape.factory(**kwargs)

    def read_fields(self, elem: Element, shape: Struct, path: Path) -> Dict[str, Any]:
        """Convert each field of a struct."""
        kwargs: Dict[str, Any] = {}
        for field in shape.fields:
            try:
                attr = elem[field.key]
            except KeyError:
                if field.optional:
                    kwargs[field.name] = None
                    continue
                raise MissingFieldError(field.key, path) from None
            kwargs[field.name] = self.from_attribute(
                attr, field.shape,
                (*path, field.key),
                field.optional,
            )
        if shape.name_attr is not None:
            kwargs[shape.name_attr] = elem.name
        if shape.type_attr is not None:
            kwargs[shape.type_attr] = elem.type
        if shape.uuid_attr is not None:
            kwargs[shape.uuid_attr] = elem.uuid
        return kwargs


def deserialize(
    document: Document,
    target: Shape,
    *,
    root: Union[int, ElementRef, Element, None] = None,
) -> Any:
    """Convert a document into the target shape or registered class.

    By default the first element is converted, ``root`` can specify another element.
    """
    if root is None:
        index = document.root.index
    elif isinstance(root, Element):
        index = root.index
    elif isinstance(root, ElementRef):
        found = document.resolve(root)
        if found is None:
            raise ValueError('Cannot deserialize from a null element!')
        index = found
    else:
        index = document.resolve(ElementRef(root))  # type: ignore
    LOGGER.debug(
        'Deserializing element #{} ({}) as {}',
        index, document[index].type, _describe(target),
    )
    return Deserializer(document).from_element(index, target, ('root', ))

