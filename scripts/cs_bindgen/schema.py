"""
Schema module

Self-describing type tree for exported items. The set of node kinds is closed:
code that dispatches on a schema handles every kind listed in SCHEMA_KINDS and
fails loudly on anything else.

Schemas are encoded as externally tagged JSON: primitives are bare strings
("I32", "String"), every other node is a single-key object whose key is the
node kind ({"Seq": "U8"}, {"Struct": {...}}).
"""

import enum
from dataclasses import dataclass
from typing import Any, Optional, Union


class Primitive(enum.Enum):
    """Leaf schema nodes"""
    UNIT = 'Unit'
    BOOL = 'Bool'
    CHAR = 'Char'
    I8 = 'I8'
    I16 = 'I16'
    I32 = 'I32'
    I64 = 'I64'
    ISIZE = 'ISize'
    U8 = 'U8'
    U16 = 'U16'
    U32 = 'U32'
    U64 = 'U64'
    USIZE = 'USize'
    F32 = 'F32'
    F64 = 'F64'
    STRING = 'String'
    STR = 'Str'

    @property
    def is_integer(self) -> bool:
        return self in INTEGER_PRIMITIVES

    @property
    def is_float(self) -> bool:
        return self in (Primitive.F32, Primitive.F64)

    @property
    def is_text(self) -> bool:
        return self in (Primitive.STRING, Primitive.STR)


INTEGER_PRIMITIVES = frozenset({
    Primitive.I8, Primitive.I16, Primitive.I32, Primitive.I64, Primitive.ISIZE,
    Primitive.U8, Primitive.U16, Primitive.U32, Primitive.U64, Primitive.USIZE,
})


@dataclass(frozen=True)
class TypeName:
    """Identity of a named type: local name plus declaring module path"""
    name: str
    module: str

    def __str__(self) -> str:
        return f'{self.module}::{self.name}'


@dataclass(frozen=True)
class Field:
    """Named or positional field of a struct-like type"""
    name: Optional[str]
    schema: 'Schema'


@dataclass(frozen=True)
class Struct:
    name: TypeName
    fields: tuple[Field, ...] = ()


@dataclass(frozen=True)
class UnitStruct:
    name: TypeName


@dataclass(frozen=True)
class NewtypeStruct:
    name: TypeName
    inner: 'Schema'


@dataclass(frozen=True)
class TupleStruct:
    name: TypeName
    elements: tuple['Schema', ...] = ()


@dataclass(frozen=True)
class UnitVariant:
    name: str
    discriminant: Optional[int] = None


@dataclass(frozen=True)
class TupleVariant:
    name: str
    elements: tuple['Schema', ...] = ()


@dataclass(frozen=True)
class StructVariant:
    name: str
    fields: tuple[Field, ...] = ()


Variant = Union[UnitVariant, TupleVariant, StructVariant]


@dataclass(frozen=True)
class Enum:
    """Enum type; `repr` is the integer type of the discriminant, if declared"""
    name: TypeName
    variants: tuple[Variant, ...] = ()
    repr: Optional[Primitive] = None

    @property
    def is_simple(self) -> bool:
        """True if no variant carries data"""
        return all(isinstance(v, UnitVariant) for v in self.variants)

    @property
    def has_data(self) -> bool:
        return not self.is_simple


@dataclass(frozen=True)
class Option:
    inner: 'Schema'


@dataclass(frozen=True)
class Seq:
    """The designated growable sequence (an owned vector)"""
    inner: 'Schema'


@dataclass(frozen=True)
class Slice:
    inner: 'Schema'


@dataclass(frozen=True)
class Tuple:
    elements: tuple['Schema', ...] = ()


@dataclass(frozen=True)
class Map:
    key: 'Schema'
    value: 'Schema'


Schema = Union[
    Primitive, Struct, UnitStruct, NewtypeStruct, TupleStruct, Enum,
    Option, Seq, Slice, Tuple, Map,
]

NamedSchema = Union[Struct, UnitStruct, NewtypeStruct, TupleStruct, Enum]

NAMED_KINDS = (Struct, UnitStruct, NewtypeStruct, TupleStruct, Enum)

SCHEMA_KINDS = (Primitive,) + NAMED_KINDS + (Option, Seq, Slice, Tuple, Map)


def is_named(schema: Schema) -> bool:
    """Check if schema is a named (nominal) type"""
    return isinstance(schema, NAMED_KINDS)


def type_name_of(schema: Schema) -> Optional[TypeName]:
    """Get the TypeName of a named schema, None for structural ones"""
    if isinstance(schema, NAMED_KINDS):
        return schema.name
    return None


def fields_of(schema: Union[NamedSchema, Variant]) -> list[Field]:
    """Return the fields of a struct-like schema or enum variant in declaration order

    Positional elements are returned as fields without a name.
    """
    if isinstance(schema, (Struct, StructVariant)):
        return list(schema.fields)
    if isinstance(schema, (TupleStruct, TupleVariant)):
        return [Field(None, element) for element in schema.elements]
    if isinstance(schema, NewtypeStruct):
        return [Field(None, schema.inner)]
    if isinstance(schema, (UnitStruct, UnitVariant)):
        return []
    raise TypeError(f'{type(schema).__name__} has no fields')


def discriminants(schema: Enum) -> list[int]:
    """Assign a discriminant to every variant

    A variant uses its explicit discriminant if it has one, otherwise the
    previous discriminant plus one, otherwise zero for the first variant.
    """
    result = []
    previous: Optional[int] = None
    for variant in schema.variants:
        explicit = variant.discriminant if isinstance(variant, UnitVariant) else None
        if explicit is not None:
            value = explicit
        elif previous is None:
            value = 0
        else:
            value = previous + 1
        result.append(value)
        previous = value
    return result


# ==============================================================================
# JSON encoding
# ==============================================================================

def type_name_to_json(name: TypeName) -> dict:
    return {'name': name.name, 'module': name.module}


def type_name_from_json(data: Any) -> TypeName:
    if not isinstance(data, dict):
        raise ValueError(f'type name must be an object, got {data!r}')
    return TypeName(name=_require_str(data, 'name'), module=_require_str(data, 'module'))


def schema_to_json(schema: Schema) -> Any:
    """Encode a schema as JSON-compatible data"""
    if isinstance(schema, Primitive):
        return schema.value
    if isinstance(schema, Struct):
        return {'Struct': {
            'name': type_name_to_json(schema.name),
            'fields': [_field_to_json(f) for f in schema.fields],
        }}
    if isinstance(schema, UnitStruct):
        return {'UnitStruct': {'name': type_name_to_json(schema.name)}}
    if isinstance(schema, NewtypeStruct):
        return {'NewtypeStruct': {
            'name': type_name_to_json(schema.name),
            'inner': schema_to_json(schema.inner),
        }}
    if isinstance(schema, TupleStruct):
        return {'TupleStruct': {
            'name': type_name_to_json(schema.name),
            'elements': [schema_to_json(e) for e in schema.elements],
        }}
    if isinstance(schema, Enum):
        return {'Enum': {
            'name': type_name_to_json(schema.name),
            'repr': schema.repr.value if schema.repr is not None else None,
            'variants': [_variant_to_json(v) for v in schema.variants],
        }}
    if isinstance(schema, Option):
        return {'Option': schema_to_json(schema.inner)}
    if isinstance(schema, Seq):
        return {'Seq': schema_to_json(schema.inner)}
    if isinstance(schema, Slice):
        return {'Slice': schema_to_json(schema.inner)}
    if isinstance(schema, Tuple):
        return {'Tuple': [schema_to_json(e) for e in schema.elements]}
    if isinstance(schema, Map):
        return {'Map': {'key': schema_to_json(schema.key), 'value': schema_to_json(schema.value)}}
    raise TypeError(f'not a schema node: {schema!r}')


def schema_from_json(data: Any) -> Schema:
    """Decode a schema from JSON-compatible data

    Raises ValueError if the data does not describe a schema.
    """
    if isinstance(data, str):
        try:
            return Primitive(data)
        except ValueError:
            raise ValueError(f'unknown primitive schema {data!r}') from None

    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f'schema must be a string or a single-key object, got {data!r}')

    (kind, body), = data.items()

    if kind == 'Struct':
        return Struct(
            name=type_name_from_json(_require(body, 'name')),
            fields=tuple(_field_from_json(f) for f in _require_list(body, 'fields')),
        )
    elif kind == 'UnitStruct':
        return UnitStruct(name=type_name_from_json(_require(body, 'name')))
    elif kind == 'NewtypeStruct':
        return NewtypeStruct(
            name=type_name_from_json(_require(body, 'name')),
            inner=schema_from_json(_require(body, 'inner')),
        )
    elif kind == 'TupleStruct':
        return TupleStruct(
            name=type_name_from_json(_require(body, 'name')),
            elements=tuple(schema_from_json(e) for e in _require_list(body, 'elements')),
        )
    elif kind == 'Enum':
        repr_ = body.get('repr') if isinstance(body, dict) else None
        if repr_ is not None:
            repr_ = Primitive(repr_)
            if not repr_.is_integer:
                raise ValueError(f'enum repr must be an integer type, got {repr_.value}')
        return Enum(
            name=type_name_from_json(_require(body, 'name')),
            variants=tuple(_variant_from_json(v) for v in _require_list(body, 'variants')),
            repr=repr_,
        )
    elif kind == 'Option':
        return Option(schema_from_json(body))
    elif kind == 'Seq':
        return Seq(schema_from_json(body))
    elif kind == 'Slice':
        return Slice(schema_from_json(body))
    elif kind == 'Tuple':
        if not isinstance(body, list):
            raise ValueError(f'tuple schema must be a list, got {body!r}')
        return Tuple(tuple(schema_from_json(e) for e in body))
    elif kind == 'Map':
        return Map(
            key=schema_from_json(_require(body, 'key')),
            value=schema_from_json(_require(body, 'value')),
        )

    raise ValueError(f'unknown schema kind {kind!r}')


def _field_to_json(field: Field) -> dict:
    return {'name': field.name, 'schema': schema_to_json(field.schema)}


def _field_from_json(data: Any) -> Field:
    name = data.get('name') if isinstance(data, dict) else None
    if name is not None and not isinstance(name, str):
        raise ValueError(f'field name must be a string, got {name!r}')
    return Field(name=name, schema=schema_from_json(_require(data, 'schema')))


def _variant_to_json(variant: Variant) -> dict:
    if isinstance(variant, UnitVariant):
        return {'Unit': {'name': variant.name, 'discriminant': variant.discriminant}}
    if isinstance(variant, TupleVariant):
        return {'Tuple': {
            'name': variant.name,
            'elements': [schema_to_json(e) for e in variant.elements],
        }}
    if isinstance(variant, StructVariant):
        return {'Struct': {
            'name': variant.name,
            'fields': [_field_to_json(f) for f in variant.fields],
        }}
    raise TypeError(f'not an enum variant: {variant!r}')


def _variant_from_json(data: Any) -> Variant:
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f'variant must be a single-key object, got {data!r}')

    (kind, body), = data.items()
    name = _require_str(body, 'name')

    if kind == 'Unit':
        discriminant = body.get('discriminant')
        if discriminant is not None and (isinstance(discriminant, bool) or not isinstance(discriminant, int)):
            raise ValueError(f'discriminant of {name} must be an integer, got {discriminant!r}')
        return UnitVariant(name=name, discriminant=discriminant)
    elif kind == 'Tuple':
        return TupleVariant(
            name=name,
            elements=tuple(schema_from_json(e) for e in _require_list(body, 'elements')),
        )
    elif kind == 'Struct':
        return StructVariant(
            name=name,
            fields=tuple(_field_from_json(f) for f in _require_list(body, 'fields')),
        )

    raise ValueError(f'unknown variant kind {kind!r}')


def _require(data: Any, key: str) -> Any:
    if not isinstance(data, dict) or key not in data:
        raise ValueError(f'missing key {key!r} in {data!r}')
    return data[key]


def _require_str(data: Any, key: str) -> str:
    value = _require(data, key)
    if not isinstance(value, str):
        raise ValueError(f'{key!r} must be a string, got {value!r}')
    return value


def _require_list(data: Any, key: str) -> list:
    value = _require(data, key)
    if not isinstance(value, list):
        raise ValueError(f'{key!r} must be a list, got {value!r}')
    return value
