"""
ABI protocol module

Maps every schema node to its raw, C-compatible representation and converts
values to and from that representation.

Raw representations by schema kind:

    integers, F32, F64    same width and signedness
    Bool                  u8 (0 or 1)
    Char                  u32 code point
    String (returned)     {ptr, len, cap}, owned by the receiver, freed exactly once
    String (argument)     {ptr, len} of UTF-16 units, borrowed for the call
    Str, Slice(T)         {ptr, len}, borrowed for the call
    Seq(T)                {ptr, len, cap}, owned like String
    named type, Value     record of the raw fields in declaration order; String
                          fields are owned, so such records are return-only
    named type, Handle    opaque pointer
    simple enum           bare discriminant
    complex enum          {discriminant, union of per-variant payload records}
    Option, Map, Tuple    none; asking for one is a GenerationError

The conversions run on ctypes layouts. A RawHeap stands in for the allocator
on the other side of the boundary and tracks which raw buffers are still
owned, so reading or freeing a transferred buffer twice is reported instead
of corrupting memory.
"""

import ctypes
import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, NamedTuple, Optional, Union

from .errors import AbiError, GenerationError, OwnershipError
from .export import BindingStyle, Func, Method, NamedType
from .schema import (
    Enum, Field, Map, NewtypeStruct, Option, Primitive, Schema, Seq, Slice,
    Struct, Tuple, TupleStruct, TupleVariant, TypeName, UnitStruct, UnitVariant,
    Variant, discriminants, fields_of, is_named,
)

logger = logging.getLogger(__name__)


class Direction(enum.Enum):
    """Which way a value crosses the boundary"""
    ARG = 'arg'         # host -> module
    RETURN = 'return'   # module -> host


class Scalar(enum.Enum):
    I8 = 'i8'
    I16 = 'i16'
    I32 = 'i32'
    I64 = 'i64'
    ISIZE = 'isize'
    U8 = 'u8'
    U16 = 'u16'
    U32 = 'u32'
    U64 = 'u64'
    USIZE = 'usize'
    F32 = 'f32'
    F64 = 'f64'

    @property
    def ctype(self):
        return SCALAR_CTYPES[self]

    @property
    def is_float(self) -> bool:
        return self in (Scalar.F32, Scalar.F64)

    @property
    def is_signed(self) -> bool:
        return self in (Scalar.I8, Scalar.I16, Scalar.I32, Scalar.I64, Scalar.ISIZE)

    @property
    def bits(self) -> int:
        return ctypes.sizeof(self.ctype) * 8

    @property
    def range(self) -> tuple[int, int]:
        """Smallest and largest value of an integer scalar"""
        if self.is_signed:
            return -(1 << (self.bits - 1)), (1 << (self.bits - 1)) - 1
        return 0, (1 << self.bits) - 1


SCALAR_CTYPES = {
    Scalar.I8: ctypes.c_int8,
    Scalar.I16: ctypes.c_int16,
    Scalar.I32: ctypes.c_int32,
    Scalar.I64: ctypes.c_int64,
    Scalar.ISIZE: ctypes.c_ssize_t,
    Scalar.U8: ctypes.c_uint8,
    Scalar.U16: ctypes.c_uint16,
    Scalar.U32: ctypes.c_uint32,
    Scalar.U64: ctypes.c_uint64,
    Scalar.USIZE: ctypes.c_size_t,
    Scalar.F32: ctypes.c_float,
    Scalar.F64: ctypes.c_double,
}

PRIMITIVE_SCALARS = {
    Primitive.BOOL: Scalar.U8,
    Primitive.CHAR: Scalar.U32,
    Primitive.I8: Scalar.I8,
    Primitive.I16: Scalar.I16,
    Primitive.I32: Scalar.I32,
    Primitive.I64: Scalar.I64,
    Primitive.ISIZE: Scalar.ISIZE,
    Primitive.U8: Scalar.U8,
    Primitive.U16: Scalar.U16,
    Primitive.U32: Scalar.U32,
    Primitive.U64: Scalar.U64,
    Primitive.USIZE: Scalar.USIZE,
    Primitive.F32: Scalar.F32,
    Primitive.F64: Scalar.F64,
}

# Discriminant type of enums without an explicit repr
DEFAULT_DISCRIMINANT = Scalar.ISIZE


# ==============================================================================
# Raw representations
# ==============================================================================

@dataclass(frozen=True)
class RawVoid:
    """No value (function returning nothing)"""


@dataclass(frozen=True)
class RawScalar:
    scalar: Scalar


@dataclass(frozen=True)
class RawVec:
    """{ptr, len, cap}; the receiver owns the buffer"""
    element: 'RawRepr'


@dataclass(frozen=True)
class RawSlice:
    """{ptr, len}; borrowed for the duration of a call"""
    element: 'RawRepr'


@dataclass(frozen=True)
class RawField:
    name: str
    repr: 'RawRepr'


@dataclass(frozen=True)
class RawRecord:
    """Parallel record of a value type, or the payload of one enum variant"""
    type_name: TypeName
    fields: tuple[RawField, ...]
    variant: Optional[str] = None


@dataclass(frozen=True)
class RawHandle:
    """Opaque pointer owning a heap allocation on the module side"""
    type_name: Optional[TypeName] = None


@dataclass(frozen=True)
class RawTagged:
    """Discriminant plus a union of the data-carrying variants' payload records"""
    type_name: TypeName
    discriminant: Scalar
    payloads: tuple[RawField, ...]


RawRepr = Union[RawVoid, RawScalar, RawVec, RawSlice, RawRecord, RawHandle, RawTagged]


@dataclass(frozen=True)
class RawSignature:
    """Raw parameter and return types of an exported function"""
    params: tuple[RawField, ...]
    result: RawRepr


def raw_field_name(field: Field, index: int) -> str:
    """Name of a field in a raw record; positional fields are numbered"""
    return field.name if field.name is not None else f'element_{index}'


def holds_owned_buffer(repr: RawRepr) -> bool:
    """Check if a raw value is, or contains, an owned {ptr, len, cap} buffer"""
    if isinstance(repr, RawVec):
        return True
    if isinstance(repr, RawRecord):
        return any(holds_owned_buffer(f.repr) for f in repr.fields)
    if isinstance(repr, RawTagged):
        return any(holds_owned_buffer(p.repr) for p in repr.payloads)
    return False


def holds_owned(repr: RawRepr) -> bool:
    """Check if a raw value is, or contains, anything that must be released"""
    if isinstance(repr, RawHandle):
        return True
    if isinstance(repr, RawRecord):
        return any(holds_owned(f.repr) for f in repr.fields)
    if isinstance(repr, RawTagged):
        return any(holds_owned(p.repr) for p in repr.payloads)
    return holds_owned_buffer(repr)


# ==============================================================================
# ctypes layouts
# ==============================================================================

class RawVecStruct(ctypes.Structure):
    _fields_ = [
        ('ptr', ctypes.c_void_p),
        ('length', ctypes.c_size_t),
        ('capacity', ctypes.c_size_t),
    ]


class RawSliceStruct(ctypes.Structure):
    _fields_ = [
        ('ptr', ctypes.c_void_p),
        ('length', ctypes.c_size_t),
    ]


class VariantValue(NamedTuple):
    """Natural value of a complex enum

    `payload` is None for unit variants, a tuple for tuple variants and a dict
    for struct variants.
    """
    name: str
    payload: Any = None


# ==============================================================================
# Ownership tracking
# ==============================================================================

class RawHeap:
    """Allocator standing in for the module side of the boundary

    Owned buffers and boxed handle values stay registered until they are
    released; releasing or reading an address that is not registered raises
    OwnershipError. Borrowed buffers live only inside a `pinned()` scope.
    """

    def __init__(self):
        self._blocks: dict[int, ctypes.Array] = {}
        self._boxes: dict[int, tuple[ctypes.Array, Any]] = {}
        self._pins: Optional[list] = None

    @property
    def live(self) -> int:
        """Number of allocations not yet released"""
        return len(self._blocks) + len(self._boxes)

    def allocate(self, ctype, count: int) -> ctypes.Array:
        """Allocate an owned buffer of `count` elements"""
        block = (ctype * max(count, 1))()
        self._blocks[ctypes.addressof(block)] = block
        return block

    def owns(self, address: Optional[int]) -> bool:
        return address is not None and (address in self._blocks or address in self._boxes)

    def check(self, address: Optional[int]):
        """Fail unless `address` is an owned buffer"""
        if address is None or address not in self._blocks:
            raise OwnershipError(f'buffer at {address!r} is not owned (already freed or transferred)')

    def release(self, address: Optional[int]):
        """Free an owned buffer"""
        self.check(address)
        del self._blocks[address]

    def box(self, value: Any) -> int:
        """Move `value` into a fresh heap allocation and return its address"""
        block = (ctypes.c_uint8 * 1)()
        address = ctypes.addressof(block)
        self._boxes[address] = (block, value)
        return address

    def deref(self, address: Optional[int]) -> Any:
        """Read a boxed value without taking it"""
        if address is None or address not in self._boxes:
            raise OwnershipError(f'handle {address!r} does not point to a live allocation')
        return self._boxes[address][1]

    def unbox(self, address: Optional[int]) -> Any:
        """Take a boxed value back out of the heap, freeing the allocation"""
        value = self.deref(address)
        del self._boxes[address]
        return value

    def drop(self, address: Optional[int]):
        """Free a boxed value"""
        self.unbox(address)

    @contextmanager
    def pinned(self) -> Iterator['RawHeap']:
        """Scope during which borrowed buffers stay valid"""
        outer = self._pins
        self._pins = []
        try:
            yield self
        finally:
            self._pins = outer

    def pin(self, buffer: ctypes.Array) -> int:
        if self._pins is None:
            raise AbiError('borrowed data can only be created inside a pinned scope')
        self._pins.append(buffer)
        return ctypes.addressof(buffer)


class Handle:
    """Host-side owner of an opaque pointer

    `dispose` calls the drop function the first time and clears the pointer;
    later calls do nothing.
    """

    def __init__(self, pointer: int, drop: Callable[[int], None],
                 type_name: Optional[TypeName] = None):
        self._pointer: Optional[int] = pointer
        self._drop = drop
        self.type_name = type_name

    @property
    def pointer(self) -> Optional[int]:
        return self._pointer

    @property
    def is_disposed(self) -> bool:
        return self._pointer is None

    def dispose(self):
        if self._pointer is not None:
            pointer, self._pointer = self._pointer, None
            self._drop(pointer)

    def into_raw(self) -> int:
        """Give up ownership of the pointer without dropping it"""
        if self._pointer is None:
            raise OwnershipError(f'handle for {self.type_name} was already disposed or consumed')
        pointer, self._pointer = self._pointer, None
        return pointer

    def __enter__(self) -> 'Handle':
        return self

    def __exit__(self, *args):
        self.dispose()

    def __repr__(self) -> str:
        return f'Handle({self.type_name}, pointer={self._pointer!r})'


# ==============================================================================
# Protocol
# ==============================================================================

class AbiProtocol:
    """Raw representation rules and conversions for a set of exported types"""

    def __init__(self, named_types: Iterable[NamedType] = (), heap: Optional[RawHeap] = None):
        self._types: dict[TypeName, NamedType] = {t.type_name: t for t in named_types}
        self.heap = heap if heap is not None else RawHeap()
        self._ctypes: dict[Any, Any] = {}

    def named_type(self, type_name: TypeName, export: Optional[str] = None) -> NamedType:
        """Look up the export for a named type"""
        named = self._types.get(type_name)
        if named is None:
            raise GenerationError(f'type {type_name} is referenced but not exported', export=export)
        return named

    # --------------------------------------------------------------------------
    # Representation rules
    # --------------------------------------------------------------------------

    def raw_repr(self, schema: Schema, direction: Direction = Direction.RETURN,
                 export: Optional[str] = None) -> RawRepr:
        """Get the raw representation of `schema` crossing in `direction`"""
        if isinstance(schema, Primitive):
            return self._primitive_repr(schema, direction, export)

        if is_named(schema):
            named = self.named_type(schema.name, export)
            if named.binding_style == BindingStyle.HANDLE:
                return RawHandle(named.type_name)
            repr = self._value_repr(named.schema, export)
            if direction == Direction.ARG and holds_owned_buffer(repr):
                raise GenerationError(
                    f'{named.type_name} holds an owned string and can only be returned', export=export,
                )
            return repr

        if isinstance(schema, Seq):
            return RawVec(self._element_repr(schema.inner, 'sequence', export))

        if isinstance(schema, Slice):
            element = self._element_repr(schema.inner, 'slice', export)
            if holds_owned(element):
                raise GenerationError('slice elements cannot own handles', export=export)
            return RawSlice(element)

        if isinstance(schema, Option):
            raise GenerationError('Option has no raw representation', export=export)

        if isinstance(schema, Map):
            raise GenerationError('Map has no raw representation', export=export)

        if isinstance(schema, Tuple):
            raise GenerationError('anonymous tuples have no raw representation', export=export)

        raise GenerationError(f'unknown schema node {schema!r}', export=export)

    def _primitive_repr(self, schema: Primitive, direction: Direction,
                        export: Optional[str]) -> RawRepr:
        if schema == Primitive.UNIT:
            if direction == Direction.ARG:
                raise GenerationError('unit cannot be passed as an argument', export=export)
            return RawVoid()
        if schema == Primitive.STRING:
            if direction == Direction.ARG:
                return RawSlice(RawScalar(Scalar.U16))
            return RawVec(RawScalar(Scalar.U8))
        if schema == Primitive.STR:
            return RawSlice(RawScalar(Scalar.U8))
        return RawScalar(PRIMITIVE_SCALARS[schema])

    def _value_repr(self, schema: Schema, export: Optional[str]) -> RawRepr:
        if isinstance(schema, Enum):
            self._check_discriminants(schema, export)
            if schema.is_simple:
                return RawScalar(self.discriminant_scalar(schema))
            payloads = []
            for variant in schema.variants:
                record = self._record_repr(schema.name, fields_of(variant), export, variant.name)
                if record.fields:
                    payloads.append(RawField(variant.name, record))
            return RawTagged(schema.name, self.discriminant_scalar(schema), tuple(payloads))

        if isinstance(schema, (Struct, TupleStruct, NewtypeStruct, UnitStruct)):
            return self._record_repr(schema.name, fields_of(schema), export)

        raise GenerationError(f'{schema!r} cannot be exported by value', export=export)

    def _record_repr(self, type_name: TypeName, fields: list[Field], export: Optional[str],
                     variant: Optional[str] = None) -> RawRecord:
        # Strings are stored owned; borrowed data and sequences cannot outlive the call
        raw_fields = []
        for index, field in enumerate(fields):
            repr = self.raw_repr(field.schema, Direction.RETURN, export)
            if isinstance(field.schema, Seq) or isinstance(repr, (RawVoid, RawSlice)):
                owner = f'{type_name}::{variant}' if variant else str(type_name)
                raise GenerationError(
                    f'field {raw_field_name(field, index)!r} of {owner} cannot be stored in a raw record',
                    export=export,
                )
            raw_fields.append(RawField(raw_field_name(field, index), repr))
        return RawRecord(type_name, tuple(raw_fields), variant)

    def _element_repr(self, schema: Schema, container: str, export: Optional[str]) -> RawRepr:
        repr = self.raw_repr(schema, Direction.RETURN, export)
        if isinstance(repr, (RawVoid, RawSlice)) or holds_owned_buffer(repr):
            raise GenerationError(
                f'{container} elements must have a raw representation without owned or borrowed buffers',
                export=export,
            )
        return repr

    def _check_discriminants(self, schema: Enum, export: Optional[str]):
        """Fail if a discriminant does not fit the enum's discriminant type"""
        scalar = self.discriminant_scalar(schema)
        low, high = scalar.range
        for variant, value in zip(schema.variants, discriminants(schema)):
            if not low <= value <= high:
                raise GenerationError(
                    f'discriminant {value} of {schema.name}::{variant.name} does not fit in {scalar.value}',
                    export=export,
                )

    @staticmethod
    def discriminant_scalar(schema: Enum) -> Scalar:
        if schema.repr is None:
            return DEFAULT_DISCRIMINANT
        return PRIMITIVE_SCALARS[schema.repr]

    def signature(self, export: Union[Func, Method]) -> RawSignature:
        """Raw signature of a function or method, receiver first"""
        params = []
        if export.receiver is not None:
            self_type = export.self_type if isinstance(export, Method) else None
            params.append(RawField('self', RawHandle(self_type)))
        for param in export.inputs:
            params.append(RawField(param.name, self.raw_repr(param.schema, Direction.ARG, export.ident)))
        result = self.raw_repr(export.output, Direction.RETURN, export.ident)
        return RawSignature(tuple(params), result)

    # --------------------------------------------------------------------------
    # ctypes layouts
    # --------------------------------------------------------------------------

    def ctype(self, repr: RawRepr):
        """Get the ctypes type laid out like `repr` (None for void)"""
        if isinstance(repr, RawVoid):
            return None
        if isinstance(repr, RawScalar):
            return repr.scalar.ctype
        if isinstance(repr, RawVec):
            return RawVecStruct
        if isinstance(repr, RawSlice):
            return RawSliceStruct
        if isinstance(repr, RawHandle):
            return ctypes.c_void_p
        if isinstance(repr, RawRecord):
            key = (repr.type_name, repr.variant)
            if key not in self._ctypes:
                name = repr.type_name.name + (f'_{repr.variant}' if repr.variant else '') + '_Raw'
                fields = [(f.name, self.ctype(f.repr)) for f in repr.fields]
                self._ctypes[key] = type(name, (ctypes.Structure,), {'_fields_': fields})
            return self._ctypes[key]
        if isinstance(repr, RawTagged):
            key = (repr.type_name, '<tagged>')
            if key not in self._ctypes:
                union = type(f'{repr.type_name.name}_Data_Raw', (ctypes.Union,), {
                    '_fields_': [(p.name, self.ctype(p.repr)) for p in repr.payloads],
                })
                self._ctypes[key] = type(f'{repr.type_name.name}_Raw', (ctypes.Structure,), {
                    '_fields_': [('discriminant', repr.discriminant.ctype), ('value', union)],
                })
            return self._ctypes[key]
        raise TypeError(f'not a raw representation: {repr!r}')

    # --------------------------------------------------------------------------
    # Conversions
    # --------------------------------------------------------------------------

    def into_raw(self, schema: Schema, value: Any, direction: Direction = Direction.RETURN) -> Any:
        """Convert a natural value into its raw form

        Owned results (strings, sequences, handles) transfer ownership to the
        receiver. Borrowed results are only valid inside `heap.pinned()`.
        """
        repr = self.raw_repr(schema, direction)
        return self._into_raw(schema, repr, value)

    def from_raw(self, schema: Schema, raw: Any, direction: Direction = Direction.RETURN) -> Any:
        """Convert a raw value back into its natural form

        Owned raw values are consumed: must be called at most once per value.
        """
        repr = self.raw_repr(schema, direction)
        return self._from_raw(schema, repr, raw)

    def free(self, schema: Schema, raw: Any, direction: Direction = Direction.RETURN):
        """Release an owned raw value without converting it"""
        repr = self.raw_repr(schema, direction)
        self._free(schema, repr, raw)

    def _free(self, schema: Schema, repr: RawRepr, raw: Any):
        if isinstance(raw, ctypes._SimpleCData):
            raw = raw.value

        if isinstance(repr, RawHandle):
            self.heap.drop(raw)

        elif isinstance(repr, RawVec):
            self.heap.check(raw.ptr)
            # Elements owning handles are dropped before their block
            if holds_owned(repr.element) and raw.length:
                array = (self.ctype(repr.element) * raw.length).from_address(raw.ptr)
                for index in range(raw.length):
                    self._free(schema.inner, repr.element, array[index])
            self.heap.release(raw.ptr)

        elif isinstance(repr, RawRecord):
            named = self.named_type(schema.name)
            self._free_record(repr, fields_of(named.schema), raw)

        elif isinstance(repr, RawTagged):
            named = self.named_type(schema.name)
            values = discriminants(named.schema)
            if raw.discriminant not in values:
                raise AbiError(f'{raw.discriminant} is not a discriminant of {named.schema.name}')
            variant = named.schema.variants[values.index(raw.discriminant)]
            payload = self._payload_repr(repr, variant)
            if payload is not None:
                self._free_record(payload, fields_of(variant), getattr(raw.value, variant.name))

    def _free_record(self, repr: RawRecord, fields: list[Field], raw: Any):
        for raw_field, field in zip(repr.fields, fields):
            if holds_owned(raw_field.repr):
                self._free(field.schema, raw_field.repr, getattr(raw, raw_field.name))

    def _into_raw(self, schema: Schema, repr: RawRepr, value: Any) -> Any:
        if isinstance(repr, RawVoid):
            if value is not None:
                raise AbiError(f'expected no value, got {value!r}')
            return None

        if isinstance(repr, RawScalar):
            return self._scalar_into_raw(schema, repr.scalar, value)

        if isinstance(schema, Primitive) and schema.is_text:
            if not isinstance(value, str):
                raise AbiError(f'expected str for {schema.value}, got {value!r}')
            if isinstance(repr, RawVec):
                data = value.encode('utf-8')
                block = self.heap.allocate(ctypes.c_uint8, len(data))
                ctypes.memmove(block, data, len(data))
                return RawVecStruct(ctypes.addressof(block), len(data), len(block))
            if repr.element == RawScalar(Scalar.U16):
                units = value.encode('utf-16-le')
                buffer = (ctypes.c_uint16 * max(len(units) // 2, 1))()
                ctypes.memmove(buffer, units, len(units))
                return RawSliceStruct(self.heap.pin(buffer), len(units) // 2)
            data = value.encode('utf-8')
            buffer = (ctypes.c_uint8 * max(len(data), 1))()
            ctypes.memmove(buffer, data, len(data))
            return RawSliceStruct(self.heap.pin(buffer), len(data))

        if isinstance(repr, RawVec):
            items = self._expect_list(value)
            block = self.heap.allocate(self.ctype(repr.element), len(items))
            for index, item in enumerate(items):
                block[index] = self._into_raw(schema.inner, repr.element, item)
            return RawVecStruct(ctypes.addressof(block), len(items), len(block))

        if isinstance(repr, RawSlice):
            items = self._expect_list(value)
            buffer = (self.ctype(repr.element) * max(len(items), 1))()
            for index, item in enumerate(items):
                buffer[index] = self._into_raw(schema.inner, repr.element, item)
            return RawSliceStruct(self.heap.pin(buffer), len(items))

        if isinstance(repr, RawHandle):
            if isinstance(value, Handle):
                return value.into_raw()
            return self.heap.box(value)

        named = self.named_type(schema.name)
        if isinstance(repr, RawRecord):
            return self._record_into_raw(repr, fields_of(named.schema), self._field_values(named.schema, value))

        if isinstance(repr, RawTagged):
            return self._tagged_into_raw(named.schema, repr, value)

        raise AbiError(f'cannot convert {value!r} to {repr!r}')

    def _from_raw(self, schema: Schema, repr: RawRepr, raw: Any) -> Any:
        if isinstance(raw, ctypes._SimpleCData):
            raw = raw.value

        if isinstance(repr, RawVoid):
            return None

        if isinstance(repr, RawScalar):
            return self._scalar_from_raw(schema, repr.scalar, raw)

        if isinstance(schema, Primitive) and schema.is_text:
            if isinstance(repr, RawVec):
                self.heap.check(raw.ptr)
                data = ctypes.string_at(raw.ptr, raw.length)
                self.heap.release(raw.ptr)
                return data.decode('utf-8')
            if repr.element == RawScalar(Scalar.U16):
                return ctypes.string_at(raw.ptr, raw.length * 2).decode('utf-16-le')
            return ctypes.string_at(raw.ptr, raw.length).decode('utf-8')

        if isinstance(repr, RawVec):
            self.heap.check(raw.ptr)
            items = self._read_array(schema.inner, repr.element, raw)
            self.heap.release(raw.ptr)
            return items

        if isinstance(repr, RawSlice):
            return self._read_array(schema.inner, repr.element, raw)

        if isinstance(repr, RawHandle):
            return Handle(raw, self.heap.drop, repr.type_name)

        named = self.named_type(schema.name)
        if isinstance(repr, RawRecord):
            values = self._record_from_raw(repr, fields_of(named.schema), raw)
            return self._natural_value(named.schema, values)

        if isinstance(repr, RawTagged):
            return self._tagged_from_raw(named.schema, repr, raw)

        raise AbiError(f'cannot convert {raw!r} from {repr!r}')

    def _scalar_into_raw(self, schema: Schema, scalar: Scalar, value: Any) -> Any:
        if is_named(schema):
            # References resolve through the export, which holds the full variant list
            schema = self.named_type(schema.name).schema
            names = [v.name for v in schema.variants]
            if value not in names:
                raise AbiError(f'{value!r} is not a variant of {schema.name}')
            value = discriminants(schema)[names.index(value)]
        elif schema == Primitive.BOOL:
            if not isinstance(value, bool):
                raise AbiError(f'expected bool, got {value!r}')
            return 1 if value else 0
        elif schema == Primitive.CHAR:
            if not isinstance(value, str) or len(value) != 1:
                raise AbiError(f'expected a single character, got {value!r}')
            return ord(value)

        if scalar.is_float:
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise AbiError(f'expected a number, got {value!r}')
            return scalar.ctype(value).value

        if isinstance(value, bool) or not isinstance(value, int):
            raise AbiError(f'expected an integer, got {value!r}')
        low, high = scalar.range
        if not low <= value <= high:
            raise AbiError(f'{value} does not fit in {scalar.value}')
        return value

    def _scalar_from_raw(self, schema: Schema, scalar: Scalar, raw: Any) -> Any:
        if is_named(schema):
            schema = self.named_type(schema.name).schema
            values = discriminants(schema)
            if raw not in values:
                raise AbiError(f'{raw} is not a discriminant of {schema.name}')
            return schema.variants[values.index(raw)].name
        if schema == Primitive.BOOL:
            return raw != 0
        if schema == Primitive.CHAR:
            return chr(raw)
        return float(raw) if scalar.is_float else int(raw)

    def _read_array(self, schema: Schema, element: RawRepr, raw: Any) -> list:
        if not raw.length:
            return []
        array = (self.ctype(element) * raw.length).from_address(raw.ptr)
        return [self._from_raw(schema, element, array[i]) for i in range(raw.length)]

    def _record_into_raw(self, repr: RawRecord, fields: list[Field], values: list) -> Any:
        record = self.ctype(repr)()
        for raw_field, field, value in zip(repr.fields, fields, values):
            setattr(record, raw_field.name, self._into_raw(field.schema, raw_field.repr, value))
        return record

    def _record_from_raw(self, repr: RawRecord, fields: list[Field], raw: Any) -> list:
        return [
            self._from_raw(field.schema, raw_field.repr, getattr(raw, raw_field.name))
            for raw_field, field in zip(repr.fields, fields)
        ]

    def _field_values(self, schema: Schema, value: Any) -> list:
        """Split the natural value of a value type into its field values"""
        fields = fields_of(schema)
        if isinstance(schema, Struct):
            if not isinstance(value, dict) or set(value) != {f.name for f in fields}:
                raise AbiError(f'expected a dict with fields {[f.name for f in fields]}, got {value!r}')
            return [value[f.name] for f in fields]
        if isinstance(schema, TupleStruct):
            if not isinstance(value, tuple) or len(value) != len(fields):
                raise AbiError(f'expected a tuple of {len(fields)} elements, got {value!r}')
            return list(value)
        if isinstance(schema, NewtypeStruct):
            return [value]
        if isinstance(schema, UnitStruct):
            if value is not None:
                raise AbiError(f'expected None for unit struct {schema.name}, got {value!r}')
            return []
        raise AbiError(f'{schema!r} is not a struct')

    @staticmethod
    def _natural_value(schema: Schema, values: list) -> Any:
        if isinstance(schema, Struct):
            return {f.name: v for f, v in zip(schema.fields, values)}
        if isinstance(schema, TupleStruct):
            return tuple(values)
        if isinstance(schema, NewtypeStruct):
            return values[0]
        return None

    def _tagged_into_raw(self, schema: Enum, repr: RawTagged, value: Any) -> Any:
        if not isinstance(value, VariantValue):
            raise AbiError(f'expected a VariantValue for {schema.name}, got {value!r}')
        index = self._variant_index(schema, value.name)
        variant = schema.variants[index]

        tagged = self.ctype(repr)()
        tagged.discriminant = discriminants(schema)[index]
        payload = self._payload_repr(repr, variant)
        if payload is not None:
            values = self._payload_values(variant, value.payload)
            setattr(tagged.value, variant.name, self._record_into_raw(payload, fields_of(variant), values))
        elif value.payload not in (None, (), {}):
            raise AbiError(f'variant {variant.name} of {schema.name} carries no data, got {value.payload!r}')
        return tagged

    def _tagged_from_raw(self, schema: Enum, repr: RawTagged, raw: Any) -> VariantValue:
        values = discriminants(schema)
        if raw.discriminant not in values:
            raise AbiError(f'{raw.discriminant} is not a discriminant of {schema.name}')
        variant = schema.variants[values.index(raw.discriminant)]

        if isinstance(variant, UnitVariant):
            return VariantValue(variant.name, None)
        payload = self._payload_repr(repr, variant)
        fields = self._record_from_raw(payload, fields_of(variant), getattr(raw.value, variant.name)) if payload else []
        if isinstance(variant, TupleVariant):
            return VariantValue(variant.name, tuple(fields))
        return VariantValue(variant.name, {f.name: v for f, v in zip(variant.fields, fields)})

    @staticmethod
    def _payload_repr(repr: RawTagged, variant: Variant) -> Optional[RawRecord]:
        for payload in repr.payloads:
            if payload.name == variant.name:
                return payload.repr
        return None

    @staticmethod
    def _payload_values(variant: Variant, payload: Any) -> list:
        if isinstance(variant, TupleVariant):
            if not isinstance(payload, tuple) or len(payload) != len(variant.elements):
                raise AbiError(f'expected a tuple of {len(variant.elements)} elements for {variant.name}, got {payload!r}')
            return list(payload)
        names = [f.name for f in variant.fields]
        if not isinstance(payload, dict) or set(payload) != set(names):
            raise AbiError(f'expected a dict with fields {names} for {variant.name}, got {payload!r}')
        return [payload[name] for name in names]

    @staticmethod
    def _variant_index(schema: Enum, name: str) -> int:
        for index, variant in enumerate(schema.variants):
            if variant.name == name:
                return index
        raise AbiError(f'{name!r} is not a variant of {schema.name}')

    @staticmethod
    def _expect_list(value: Any) -> list:
        if not isinstance(value, (list, tuple)):
            raise AbiError(f'expected a list, got {value!r}')
        return list(value)
