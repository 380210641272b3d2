"""Shared declaration fixtures."""

import pytest

from cs_bindgen.export import BindingStyle, DeclarationSet, Func, Method, NamedType, Param, Receiver
from cs_bindgen.naming import drop_vec_fn, index_fn
from cs_bindgen.schema import (
    Enum, Field, Primitive, Struct, StructVariant, TupleStruct, TupleVariant, TypeName,
    UnitStruct, UnitVariant,
)

POINT = TypeName('Point', 'geo')
PAIR = TypeName('Pair', 'geo')
COUNTER = TypeName('Counter', 'state')
COLOR = TypeName('Color', 'paint')
SHAPE = TypeName('Shape', 'geo')
MARKER = TypeName('Marker', 'geo')
BASIC = TypeName('BasicStruct', 'integration_tests')
DATA_ENUM = TypeName('DataEnum', 'integration_tests')
HOLDER = TypeName('Holder', 'state')


def named(type_name, schema, style=BindingStyle.VALUE):
    return NamedType(
        type_name=type_name,
        binding_style=style,
        index_fn=index_fn(type_name),
        drop_vec_fn=drop_vec_fn(type_name),
        schema=schema,
    )


def greet_fn():
    return Func(
        name='greet',
        binding='gen_greet',
        inputs=(Param('num', Primitive.I32),),
        output=Primitive.STRING,
    )


def point_type():
    return named(POINT, Struct(POINT, (
        Field('x', Primitive.F64),
        Field('y', Primitive.F64),
    )))


def pair_type():
    return named(PAIR, TupleStruct(PAIR, (Primitive.I32, Primitive.BOOL)))


def marker_type():
    return named(MARKER, UnitStruct(MARKER))


def color_type():
    return named(COLOR, Enum(COLOR, (
        UnitVariant('Red'),
        UnitVariant('Green', 5),
        UnitVariant('Blue'),
    ), repr=Primitive.U8))


def shape_type():
    return named(SHAPE, Enum(SHAPE, (
        UnitVariant('Empty'),
        TupleVariant('Circle', (Primitive.F64,)),
        StructVariant('Rect', (
            Field('width', Primitive.F32),
            Field('height', Primitive.F32),
        )),
    )))


def basic_struct_type():
    return named(BASIC, Struct(BASIC, (
        Field('foo', Primitive.I32),
        Field('bar', Primitive.STRING),
        Field('baz', Primitive.BOOL),
    )))


def data_enum_type():
    return named(DATA_ENUM, Enum(DATA_ENUM, (
        UnitVariant('Foo'),
        TupleVariant('Bar', (Primitive.STRING,)),
        StructVariant('Baz', (
            Field('name', Primitive.STRING),
            Field('value', Primitive.I32),
        )),
    )))


def holder_type():
    return named(HOLDER, Struct(HOLDER, (
        Field('owner', UnitStruct(COUNTER)),
        Field('count', Primitive.I32),
    )))


def counter_type():
    return named(COUNTER, UnitStruct(COUNTER), BindingStyle.HANDLE)


def counter_methods():
    return [
        Method(name='new', binding='counter_new', self_type=COUNTER,
               inputs=(Param('start', Primitive.I64),), output=UnitStruct(COUNTER)),
        Method(name='increment', binding='counter_increment', self_type=COUNTER,
               receiver=Receiver.REF_MUT),
        Method(name='get', binding='counter_get', self_type=COUNTER,
               receiver=Receiver.REF, output=Primitive.I64),
        Method(name='finish', binding='counter_finish', self_type=COUNTER,
               receiver=Receiver.VALUE, output=Primitive.I64),
        Method(name='max_value', binding='counter_max_value', self_type=COUNTER,
               output=Primitive.I64),
    ]


@pytest.fixture
def greet_declarations():
    return DeclarationSet([greet_fn()])


@pytest.fixture
def full_declarations():
    exports = [
        greet_fn(),
        point_type(),
        pair_type(),
        marker_type(),
        color_type(),
        shape_type(),
        counter_type(),
        Func(name='distance', binding='geo_distance',
             inputs=(Param('a', POINT_REF), Param('b', POINT_REF)), output=Primitive.F64),
        Func(name='paint', binding='paint_color',
             inputs=(Param('color', COLOR_REF),), output=SHAPE_REF),
    ] + counter_methods()
    return DeclarationSet(exports)


# Schema references to exported types, as they appear in signatures
POINT_REF = Struct(POINT, (Field('x', Primitive.F64), Field('y', Primitive.F64)))
COLOR_REF = Enum(COLOR, (UnitVariant('Red'), UnitVariant('Green', 5), UnitVariant('Blue')), repr=Primitive.U8)
SHAPE_REF = Enum(SHAPE, ())
