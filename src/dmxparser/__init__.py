"""Reads Valve's binary DataModel eXchange files, and converts them into Python objects.

Files are first decoded into a :py:class:`Document`, then optionally converted with
:py:func:`deserialize` using shapes describing the expected structure.
"""
from dmxparser.errors import (
    CyclicReferenceError, DecodeError, DeserializeError, DMXError, DMXIOError,
    MalformedStructureError, MissingFieldError, NotImplementedShapeError,
    TypeMismatchError, UnsupportedVersionError,
)
from dmxparser.dmx import (
    NULL, Angle, Attribute, Color, Document, Element, ElementRef, Matrix,
    Quaternion, Resolver, Time, ValueType, Vec2, Vec3, Vec4,
)
from dmxparser.decoder import decode_borrowed, decode_owned, parse
from dmxparser.deserialize import deserialize


__version__ = '0.1.0'
__all__ = [
    '__version__',
    'decode_borrowed', 'decode_owned', 'parse', 'deserialize',

    'Document', 'Element', 'Attribute', 'Resolver', 'ValueType', 'ElementRef', 'NULL',
    'Vec2', 'Vec3', 'Vec4', 'Angle', 'Quaternion', 'Matrix', 'Color', 'Time',

    'DMXError', 'DecodeError', 'DMXIOError', 'UnsupportedVersionError',
    'MalformedStructureError', 'DeserializeError', 'TypeMismatchError',
    'MissingFieldError', 'CyclicReferenceError', 'NotImplementedShapeError',

    # Submodules:
    'binformat', 'decoder', 'dmx', 'errors', 'logger',  # pyright: ignore
]
