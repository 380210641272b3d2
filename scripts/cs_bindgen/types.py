"""
Type mapping module

Maps schemas to their natural C# types and raw representations to the
blittable C# types used in DllImport declarations.
"""

from typing import Optional

from .abi import (
    AbiProtocol, Direction, RawHandle, RawRecord, RawRepr, RawScalar, RawSlice,
    RawTagged, RawVec, RawVoid, Scalar,
)
from .errors import GenerationError
from .export import BindingStyle, NamedType
from .naming import mangle
from .schema import Enum, Map, Option, Primitive, Schema, Seq, Slice, Tuple, is_named

# Natural C# type of each primitive
PRIMITIVE_CS_TYPES = {
    Primitive.UNIT: 'void',
    Primitive.BOOL: 'bool',
    Primitive.CHAR: 'uint',
    Primitive.I8: 'sbyte',
    Primitive.I16: 'short',
    Primitive.I32: 'int',
    Primitive.I64: 'long',
    Primitive.ISIZE: 'IntPtr',
    Primitive.U8: 'byte',
    Primitive.U16: 'ushort',
    Primitive.U32: 'uint',
    Primitive.U64: 'ulong',
    Primitive.USIZE: 'UIntPtr',
    Primitive.F32: 'float',
    Primitive.F64: 'double',
    Primitive.STRING: 'string',
    Primitive.STR: 'string',
}

# Blittable C# type of each raw scalar
SCALAR_CS_TYPES = {
    Scalar.I8: 'sbyte',
    Scalar.I16: 'short',
    Scalar.I32: 'int',
    Scalar.I64: 'long',
    Scalar.ISIZE: 'IntPtr',
    Scalar.U8: 'byte',
    Scalar.U16: 'ushort',
    Scalar.U32: 'uint',
    Scalar.U64: 'ulong',
    Scalar.USIZE: 'UIntPtr',
    Scalar.F32: 'float',
    Scalar.F64: 'double',
}

RAW_VEC = '__bindings.RawVec'
RAW_SLICE = '__bindings.RawSlice'


class TypeConverter:
    """Manages type mapping between the module's schemas and C#

    Also records which sequence and slice element types the generated code
    converts, so that the matching helpers can be emitted once each.
    """

    def __init__(self, abi: AbiProtocol):
        self.abi = abi
        self._seq_elements: dict[str, Schema] = {}
        self._slice_elements: dict[str, Schema] = {}

    def named_type(self, schema: Schema, export: Optional[str] = None) -> NamedType:
        return self.abi.named_type(schema.name, export)

    def cs_type(self, schema: Schema, export: Optional[str] = None) -> str:
        """Get the natural C# type for a schema"""
        if isinstance(schema, Primitive):
            return PRIMITIVE_CS_TYPES[schema]

        if is_named(schema):
            named = self.named_type(schema, export)
            if is_complex_enum(named):
                return f'I{named.name}'
            return named.name

        if isinstance(schema, Seq):
            return f'List<{self.cs_type(schema.inner, export)}>'

        if isinstance(schema, Slice):
            return f'{self.cs_type(schema.inner, export)}[]'

        if isinstance(schema, (Option, Map, Tuple)):
            raise GenerationError(f'{type(schema).__name__} has no C# mapping', export=export)

        raise GenerationError(f'unknown schema node {schema!r}', export=export)

    def raw_type(self, repr: RawRepr) -> str:
        """Get the blittable C# type for a raw representation"""
        if isinstance(repr, RawVoid):
            return 'void'
        if isinstance(repr, RawScalar):
            return SCALAR_CS_TYPES[repr.scalar]
        if isinstance(repr, RawVec):
            return RAW_VEC
        if isinstance(repr, RawSlice):
            return RAW_SLICE
        if isinstance(repr, RawHandle):
            return 'IntPtr'
        if isinstance(repr, RawRecord):
            if repr.variant is not None:
                return f'{repr.type_name.name}.{repr.variant}_Raw'
            return f'{repr.type_name.name}_Raw'
        if isinstance(repr, RawTagged):
            return f'{repr.type_name.name}_Raw'
        raise TypeError(f'not a raw representation: {repr!r}')

    def raw_type_of(self, schema: Schema, direction: Direction = Direction.RETURN,
                    export: Optional[str] = None) -> str:
        """Get the blittable C# type a schema crosses the boundary as"""
        return self.raw_type(self.abi.raw_repr(schema, direction, export))

    def discriminant_type(self, schema: Enum) -> str:
        """Raw C# type of an enum's discriminant"""
        return SCALAR_CS_TYPES[self.abi.discriminant_scalar(schema)]

    def discriminant_literal(self, schema: Enum, value: int) -> str:
        """C# expression for a raw discriminant value"""
        cs_type = self.discriminant_type(schema)
        if cs_type in ('IntPtr', 'UIntPtr'):
            return f'new {cs_type}({value})'
        return f'({cs_type})({value})'

    def discriminant_value(self, schema: Enum, expr: str) -> str:
        """C# expression reading a raw discriminant as a 64-bit integer"""
        cs_type = self.discriminant_type(schema)
        if cs_type == 'IntPtr':
            return f'{expr}.ToInt64()'
        if cs_type == 'UIntPtr':
            return f'{expr}.ToUInt64()'
        return f'(long){expr}'

    def enum_underlying_type(self, schema: Enum) -> str:
        """Underlying type of a generated C# enum (pointer-width types are widened)"""
        if schema.repr in (None, Primitive.ISIZE):
            return 'long'
        if schema.repr == Primitive.USIZE:
            return 'ulong'
        return PRIMITIVE_CS_TYPES[schema.repr]

    # --------------------------------------------------------------------------
    # Sequence and slice element tracking
    # --------------------------------------------------------------------------

    def use_seq(self, schema: Seq, export: Optional[str] = None):
        """Record that a sequence of this element type is returned somewhere"""
        self.abi.raw_repr(schema, Direction.RETURN, export)
        self._seq_elements.setdefault(element_key(schema.inner), schema.inner)

    def use_slice(self, schema: Slice, export: Optional[str] = None):
        """Record that a slice of this element type is returned somewhere

        Array helpers only copy elements, so one helper serves every element
        type with the same C# type.
        """
        self.abi.raw_repr(schema, Direction.RETURN, export)
        self._slice_elements.setdefault(self.cs_type(schema.inner, export), schema.inner)

    def seq_elements(self) -> list[Schema]:
        return [self._seq_elements[k] for k in sorted(self._seq_elements)]

    def slice_elements(self) -> list[Schema]:
        return [self._slice_elements[k] for k in sorted(self._slice_elements)]

    @staticmethod
    def list_helper(element: Schema) -> str:
        """Name of the conversion reading an owned sequence of `element`

        Char and U32 sequences are both List<uint> but are read through
        different index and drop-vec entry points.
        """
        return '__FromRawChars' if element == Primitive.CHAR else '__FromRaw'


def is_complex_enum(named: NamedType) -> bool:
    return isinstance(named.schema, Enum) and not named.schema.is_simple


def is_handle(named: NamedType) -> bool:
    return named.binding_style == BindingStyle.HANDLE


def element_key(schema: Schema) -> str:
    """Sort key for an element type, unique per type"""
    if isinstance(schema, Primitive):
        return f'0{schema.value}'
    return f'1{mangle(schema.name)}'
