"""C# generation tests."""

import os

import pytest

from cs_bindgen.errors import GenerationError
from cs_bindgen.export import DeclarationSet, Func, Method, Param, Receiver
from cs_bindgen.generator import Generator, GeneratorConfig
from cs_bindgen.schema import (
    Enum, Field, Map, NewtypeStruct, Option, Primitive, Seq, Slice, Struct, TypeName, UnitStruct,
    UnitVariant,
)

from conftest import (
    COUNTER, POINT_REF, basic_struct_type, counter_type, data_enum_type, holder_type,
    named, pair_type, point_type,
)


def _generate(declarations, **kwargs) -> str:
    config = GeneratorConfig(dll_name=kwargs.pop('dll_name', 'example'), **kwargs)
    return Generator(declarations, config).generate()


# ------------------------------------------------------------------------------
# End-to-end greet example
# ------------------------------------------------------------------------------

def test_greet_wrapper(greet_declarations):
    source = _generate(greet_declarations)

    assert source.startswith('// machine generated, do not edit\nusing System;\n')
    assert 'public static class Example\n{\n' in source
    assert '    public static string Greet(int num)\n' in source
    assert '        string __ret;\n' in source
    assert '            __bindings.__IntoRaw(num, out int __raw_num);\n' in source
    assert '            __bindings.__FromRaw(__bindings.gen_greet(__raw_num), out __ret);\n' in source
    assert '        return __ret;\n' in source


def test_greet_raw_declaration(greet_declarations):
    source = _generate(greet_declarations)

    assert (
        '    [DllImport("example", EntryPoint = "gen_greet", CallingConvention = CallingConvention.Cdecl)]\n'
        '    internal static extern __bindings.RawVec gen_greet(int num);\n'
    ) in source
    assert 'internal static extern void __cs_bindgen_drop_string(__bindings.RawVec raw);' in source


def test_owned_string_freed_once_after_decoding(greet_declarations):
    source = _generate(greet_declarations)

    assert source.count('__cs_bindgen_drop_string(raw);') == 1
    decode = source.index('internal static void __FromRaw(__bindings.RawVec raw, out string result)')
    body = source[decode:source.index('}', decode)]
    assert body.index('Encoding.UTF8.GetString') < body.index('__cs_bindgen_drop_string(raw);')


def test_borrowed_string_is_not_freed(greet_declarations):
    source = _generate(greet_declarations)
    decode = source.index('internal static void __FromRaw(__bindings.RawSlice raw, out string result)')
    assert '__cs_bindgen_drop_string' not in source[decode:source.index('}', decode)]


# ------------------------------------------------------------------------------
# Determinism
# ------------------------------------------------------------------------------

def test_output_is_deterministic(full_declarations):
    assert _generate(full_declarations) == _generate(full_declarations)


def test_output_independent_of_discovery_order(full_declarations):
    exports = list(full_declarations.values())
    reordered = DeclarationSet(reversed(exports))
    assert _generate(reordered) == _generate(full_declarations)


# ------------------------------------------------------------------------------
# Configuration
# ------------------------------------------------------------------------------

def test_namespace_and_class_name(greet_declarations):
    source = _generate(greet_declarations, class_name='Native', namespace='Example.Bindings')

    assert 'namespace Example.Bindings\n{\n    public static class Native\n' in source
    assert source.endswith('    }\n}\n')
    assert '        public static string Greet(int num)\n' in source


def test_ignored_exports(full_declarations):
    source = _generate(full_declarations, ignores={'greet'})
    assert 'gen_greet' not in source
    assert 'geo_distance' in source


def test_ignored_type_still_referenced(full_declarations):
    with pytest.raises(GenerationError):
        _generate(full_declarations, ignores={'geo::Point'})


@pytest.mark.parametrize('kwargs', [
    {'class_name': 'not valid'},
    {'namespace': 'Bad..Namespace'},
    {'dll_name': '123'},
])
def test_invalid_config(greet_declarations, kwargs):
    with pytest.raises(GenerationError):
        _generate(greet_declarations, **kwargs)


def test_function_named_like_wrapper_class(greet_declarations):
    with pytest.raises(GenerationError):
        _generate(greet_declarations, dll_name='greet')


# ------------------------------------------------------------------------------
# Arguments
# ------------------------------------------------------------------------------

def test_string_argument_is_pinned():
    func = Func(name='set_name', binding='set_name', inputs=(Param('name', Primitive.STRING),))
    source = _generate(DeclarationSet([func]))

    assert '    public static void SetName(string name)\n' in source
    assert 'fixed (char* __fixed_name = name)' in source
    assert 'var __raw_name = new __bindings.RawSlice((IntPtr)__fixed_name, name.Length);' in source
    assert '__bindings.set_name(__raw_name);' in source
    assert 'internal static extern void set_name(__bindings.RawSlice name);' in source
    # Nothing is returned, so there is no result to convert or free
    assert '__ret' not in source


def test_str_argument_is_utf8_encoded():
    func = Func(name='log', binding='log_message', inputs=(Param('message', Primitive.STR),))
    source = _generate(DeclarationSet([func]))

    assert 'byte[] __bytes_message = Encoding.UTF8.GetBytes(message);' in source
    assert 'fixed (byte* __fixed_message = __bytes_message)' in source


def test_keyword_argument_is_escaped():
    func = Func(name='check', binding='check', inputs=(Param('class', Primitive.BOOL),),
                output=Primitive.BOOL)
    source = _generate(DeclarationSet([func]))

    assert 'public static bool Check(bool @class)' in source
    assert '__bindings.__IntoRaw(@class, out byte __raw_class);' in source
    assert 'internal static extern byte check(byte @class);' in source


def test_slice_argument():
    func = Func(name='sum', binding='sum_points', inputs=(Param('points', Slice(POINT_REF)),),
                output=Primitive.F64)
    source = _generate(DeclarationSet([func, point_type()]))

    assert 'public static double Sum(Point[] points)' in source
    assert 'var __elements_points = new Point_Raw[points.Length];' in source
    assert 'fixed (Point_Raw* __fixed_points = __elements_points)' in source


def test_sequence_argument_rejected():
    func = Func(name='sum', binding='sum', inputs=(Param('values', Seq(Primitive.I32)),))
    with pytest.raises(GenerationError) as info:
        _generate(DeclarationSet([func]))
    assert info.value.export == 'sum'


@pytest.mark.parametrize('schema', [
    Option(Primitive.I32),
    Map(Primitive.STRING, Primitive.I32),
    Seq(Primitive.STRING),
])
def test_unrepresentable_output_rejected(schema):
    func = Func(name='lookup', binding='lookup', output=schema)
    with pytest.raises(GenerationError) as info:
        _generate(DeclarationSet([func]))
    assert info.value.export == 'lookup'


def test_free_function_with_receiver_rejected():
    func = Func(name='bad', binding='bad', receiver=Receiver.REF)
    with pytest.raises(GenerationError):
        _generate(DeclarationSet([func]))


def test_invalid_binding_symbol_rejected():
    func = Func(name='bad', binding='not-a-symbol')
    with pytest.raises(GenerationError):
        _generate(DeclarationSet([func]))


# ------------------------------------------------------------------------------
# Value types
# ------------------------------------------------------------------------------

def test_value_struct(full_declarations):
    source = _generate(full_declarations)

    assert 'public struct Point\n{\n    public double X;\n    public double Y;\n' in source
    assert 'public Point(double x, double y)' in source
    assert '[StructLayout(LayoutKind.Sequential)]\ninternal struct Point_Raw\n' in source
    assert 'internal Point(Point_Raw raw)' in source
    assert '__bindings.__FromRaw(raw.X, out this.X);' in source
    assert 'internal static void __IntoRaw(Point value, out Point_Raw result)' in source
    assert '__bindings.__IntoRaw(a, out Point_Raw __raw_a);' in source


def test_tuple_struct_fields(full_declarations):
    source = _generate(full_declarations)

    assert 'public struct Pair\n{\n    public int Element0;\n    public bool Element1;\n' in source
    assert 'public Pair(int element0, bool element1)' in source
    assert '    public byte Element1;\n' in source


def test_unit_struct_has_no_basic_constructor(full_declarations):
    source = _generate(full_declarations)
    assert 'public struct Marker\n{\n    internal Marker(Marker_Raw raw)\n' in source


def test_index_and_drop_vec_for_every_named_type(full_declarations):
    source = _generate(full_declarations)
    for named_type in full_declarations.named_types:
        assert f'EntryPoint = "{named_type.index_fn}"' in source
        assert f'EntryPoint = "{named_type.drop_vec_fn}"' in source
    assert 'internal static extern Point_Raw __cs_bindgen_index__3geo5Point(__bindings.RawVec vec, UIntPtr index);' in source
    assert 'internal static extern IntPtr __cs_bindgen_index__5state7Counter(__bindings.RawVec vec, UIntPtr index);' in source


def test_sequence_result_uses_index_and_drop_vec():
    funcs = [
        Func(name='points', binding='all_points', output=Seq(POINT_REF)),
        Func(name='numbers', binding='numbers', output=Seq(Primitive.I32)),
    ]
    source = _generate(DeclarationSet(funcs + [point_type()]))

    assert 'public static List<Point> Points()' in source
    assert 'internal static void __FromRaw(__bindings.RawVec raw, out List<Point> result)' in source
    assert '__FromRaw(__cs_bindgen_index__3geo5Point(raw, new UIntPtr((uint)index)), out Point element);' in source
    assert '__cs_bindgen_drop_vec__3geo5Point(raw);' in source

    assert 'internal static extern int __cs_bindgen_index__i32(__bindings.RawVec vec, UIntPtr index);' in source
    assert 'internal static void __FromRaw(__bindings.RawVec raw, out List<int> result)' in source
    # Primitive vector helpers only appear for primitives in use
    assert '__cs_bindgen_index__u8' not in source


def test_slice_result_is_copied():
    func = Func(name='weights', binding='weights', output=Slice(Primitive.F32))
    source = _generate(DeclarationSet([func]))

    assert 'public static float[] Weights()' in source
    assert 'internal static void __FromRaw(__bindings.RawSlice raw, out float[] result)' in source
    assert 'var elements = (float*)raw.Ptr.ToPointer();' in source


def test_method_on_value_type_rejected():
    method = Method(name='length', binding='point_length', self_type=point_type().type_name,
                    receiver=Receiver.REF, output=Primitive.F64)
    with pytest.raises(GenerationError) as info:
        _generate(DeclarationSet([point_type(), method]))
    assert info.value.export == 'geo::Point::length'


def test_struct_with_string_field():
    make = Func(name='make_basic', binding='make_basic', output=basic_struct_type().schema)
    source = _generate(DeclarationSet([basic_struct_type(), make]))

    assert 'public struct BasicStruct\n{\n    public int Foo;\n    public string Bar;\n    public bool Baz;\n' in source
    assert (
        '[StructLayout(LayoutKind.Sequential)]\n'
        'internal struct BasicStruct_Raw\n'
        '{\n'
        '    public int Foo;\n'
        '    public __bindings.RawVec Bar;\n'
        '    public byte Baz;\n'
        '}\n'
    ) in source
    # The owned string is decoded and freed while building the struct
    assert '__bindings.__FromRaw(raw.Bar, out this.Bar);' in source
    assert 'internal static void __FromRaw(BasicStruct_Raw raw, out BasicStruct result)' in source
    assert 'public static BasicStruct MakeBasic()' in source
    assert 'internal BasicStruct_Raw(BasicStruct value)' not in source
    assert '__IntoRaw(BasicStruct value' not in source


def test_struct_with_string_field_cannot_be_passed():
    take = Func(name='take_basic', binding='take_basic',
                inputs=(Param('value', basic_struct_type().schema),))
    with pytest.raises(GenerationError) as info:
        _generate(DeclarationSet([basic_struct_type(), take]))
    assert info.value.export == 'take_basic'


def test_struct_with_handle_field():
    holder = holder_type()
    store = Func(name='store', binding='store', inputs=(Param('holder', holder.schema),))
    source = _generate(DeclarationSet([counter_type(), holder, store]))

    assert 'public struct Holder\n{\n    public Counter Owner;\n    public int Count;\n' in source
    assert '    public IntPtr Owner;\n' in source
    assert 'internal Holder_Raw(Holder value)' in source
    assert '__bindings.__IntoRaw(value.Owner, out this.Owner);' in source
    assert 'internal static void __IntoRaw(Holder value, out Holder_Raw result)' in source


def test_record_with_sequence_field_rejected():
    name = TypeName('Person', 'people')
    person = named(name, Struct(name, (Field('tags', Seq(Primitive.I32)),)))
    with pytest.raises(GenerationError) as info:
        _generate(DeclarationSet([person]))
    assert info.value.export == 'people::Person'


def test_char_and_u32_sequences_get_distinct_helpers():
    funcs = [
        Func(name='chars', binding='chars', output=Seq(Primitive.CHAR)),
        Func(name='nums', binding='nums', output=Seq(Primitive.U32)),
        Func(name='letters', binding='letters', output=Slice(Primitive.CHAR)),
        Func(name='weights', binding='weights', output=Slice(Primitive.U32)),
    ]
    source = _generate(DeclarationSet(funcs))

    assert source.count('internal static void __FromRaw(__bindings.RawVec raw, out List<uint> result)') == 1
    assert source.count('internal static void __FromRawChars(__bindings.RawVec raw, out List<uint> result)') == 1
    assert '__bindings.__FromRawChars(__bindings.chars(), out __ret);' in source
    assert '__bindings.__FromRaw(__bindings.nums(), out __ret);' in source
    assert '__FromRaw(__cs_bindgen_index__char(raw, new UIntPtr((uint)index)), out uint element);' in source
    assert '__cs_bindgen_drop_vec__char(raw);' in source
    assert '__FromRaw(__cs_bindgen_index__u32(raw, new UIntPtr((uint)index)), out uint element);' in source
    # Array helpers only copy elements, so Char and U32 slices share one
    assert source.count('internal static void __FromRaw(__bindings.RawSlice raw, out uint[] result)') == 1


# ------------------------------------------------------------------------------
# Handle types
# ------------------------------------------------------------------------------

def test_handle_class(full_declarations):
    source = _generate(full_declarations)

    assert 'public unsafe partial class Counter : IDisposable\n{\n    internal IntPtr _handle;\n' in source
    assert 'internal Counter(IntPtr raw)' in source
    assert (
        '    public void Dispose()\n'
        '    {\n'
        '        if (_handle != IntPtr.Zero)\n'
        '        {\n'
        '            __bindings.__cs_bindgen_drop__5state7Counter(_handle);\n'
        '            _handle = IntPtr.Zero;\n'
        '        }\n'
        '    }\n'
    ) in source
    assert 'internal static extern void __cs_bindgen_drop__5state7Counter(IntPtr self);' in source


def test_handle_methods(full_declarations):
    source = _generate(full_declarations)

    # Constructor heuristic
    assert '    public Counter(long start)\n' in source
    assert '_handle = __bindings.counter_new(__raw_start);' in source

    assert '    public long Get()\n' in source
    assert (
        '        if (_handle == IntPtr.Zero)\n'
        '            throw new ObjectDisposedException(GetType().Name);\n'
    ) in source
    assert '__bindings.__FromRaw(__bindings.counter_get(_handle), out __ret);' in source
    assert '__bindings.counter_increment(_handle);' in source
    assert '    public static long MaxValue()\n' in source
    assert 'internal static extern long counter_get(IntPtr self);' in source
    assert 'internal static extern IntPtr counter_new(long start);' in source


def test_value_receiver_consumes_handle(full_declarations):
    source = _generate(full_declarations)
    finish = source.index('public long Finish()')
    body = source[finish:source.index('return __ret;', finish)]
    assert body.index('counter_finish(_handle)') < body.index('_handle = IntPtr.Zero;')


def test_handle_into_raw_transfers_ownership(full_declarations):
    source = _generate(full_declarations)
    assert (
        'internal static void __IntoRaw(Counter value, out IntPtr result)\n'
        '    {\n'
        '        if (value._handle == IntPtr.Zero)\n'
        '            throw new ObjectDisposedException(value.GetType().Name);\n'
        '        result = value._handle;\n'
        '        value._handle = IntPtr.Zero;\n'
    ) in source


def test_method_named_dispose_rejected():
    method = Method(name='dispose', binding='counter_dispose', self_type=COUNTER, receiver=Receiver.VALUE)
    with pytest.raises(GenerationError):
        _generate(DeclarationSet([counter_type(), method]))


def test_constructor_colliding_with_handle_constructor_rejected():
    method = Method(name='from_raw', binding='counter_from_raw', self_type=COUNTER,
                    inputs=(Param('raw', Primitive.ISIZE),), output=UnitStruct(COUNTER))
    with pytest.raises(GenerationError):
        _generate(DeclarationSet([counter_type(), method]))


def test_method_on_unexported_type_rejected():
    method = Method(name='get', binding='get', self_type=TypeName('Missing', 'x'), receiver=Receiver.REF)
    with pytest.raises(GenerationError):
        _generate(DeclarationSet([method]))


# ------------------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------------------

def test_simple_enum(full_declarations):
    source = _generate(full_declarations)

    assert 'public enum Color : byte\n{\n    Red = 0,\n    Green = 5,\n    Blue = 6,\n}\n' in source
    assert 'internal static void __FromRaw(byte raw, out Color result)' in source
    assert 'result = (Color)(long)raw;' in source
    assert 'result = (byte)value;' in source
    assert '__bindings.__IntoRaw(color, out byte __raw_color);' in source


def test_simple_enum_default_discriminant():
    name = TypeName('Mode', 'app')
    mode = named(name, Enum(name, (UnitVariant('Off'), UnitVariant('On', -3))))
    source = _generate(DeclarationSet([mode]))

    assert 'public enum Mode : long\n{\n    Off = 0,\n    On = -3,\n}\n' in source
    assert 'result = (Mode)raw.ToInt64();' in source
    assert 'result = new IntPtr((long)value);' in source


def test_complex_enum(full_declarations):
    source = _generate(full_declarations)

    assert 'public interface IShape\n{\n}\n' in source
    assert 'public static class Shape\n{\n' in source
    assert '    public struct Empty : IShape\n    {\n    }\n' in source
    assert '    public struct Circle : IShape\n    {\n        public double Element0;\n' in source
    assert '    public struct Rect : IShape\n    {\n        public float Width;\n        public float Height;\n' in source
    assert '    internal struct Circle_Raw\n' in source

    assert 'internal struct Shape_Raw\n{\n    public IntPtr Discriminant;\n    public Shape_Data_Raw Value;\n' in source
    assert (
        '[StructLayout(LayoutKind.Explicit)]\n'
        'internal struct Shape_Data_Raw\n'
        '{\n'
        '    [FieldOffset(0)]\n'
        '    internal Shape.Circle_Raw Circle;\n'
        '    [FieldOffset(0)]\n'
        '    internal Shape.Rect_Raw Rect;\n'
        '}\n'
    ) in source


def test_complex_enum_conversions(full_declarations):
    source = _generate(full_declarations)

    assert 'public static IShape Paint(Color color)' in source
    assert 'internal static void __FromRaw(Shape_Raw raw, out IShape result)' in source
    assert 'switch (raw.Discriminant.ToInt64())' in source
    assert 'result = new Shape.Circle(raw.Value.Circle);' in source
    assert 'result = new Shape.Empty();' in source
    assert 'case Shape.Rect variant:' in source
    assert 'result = new Shape_Raw(new IntPtr(2), new Shape_Data_Raw { Rect = new Shape.Rect_Raw(variant) });' in source
    assert 'throw new ArgumentException("Invalid discriminant " + raw.Discriminant + " for IShape");' in source


def test_complex_enum_with_string_payloads():
    fetch = Func(name='fetch', binding='fetch', output=data_enum_type().schema)
    source = _generate(DeclarationSet([data_enum_type(), fetch]))

    assert 'public static IDataEnum Fetch()' in source
    assert '    public struct Bar : IDataEnum\n    {\n        public string Element0;\n' in source
    assert '    internal struct Bar_Raw\n    {\n        public __bindings.RawVec Element0;\n    }\n' in source
    assert '        public __bindings.RawVec Name;\n        public int Value;\n' in source
    assert 'result = new DataEnum.Bar(raw.Value.Bar);' in source
    assert 'internal static void __FromRaw(DataEnum_Raw raw, out IDataEnum result)' in source
    # Values holding owned strings never go back to the module
    assert '__IntoRaw(IDataEnum value' not in source
    assert 'internal Bar_Raw(Bar value)' not in source


@pytest.mark.parametrize('variants', [
    (UnitVariant('Low', -12),),
    (UnitVariant('Low', 300),),
    (UnitVariant('Low', 255), UnitVariant('High')),
])
def test_discriminant_outside_repr_rejected(variants):
    name = TypeName('Level', 'app')
    level = named(name, Enum(name, variants, repr=Primitive.U8))
    with pytest.raises(GenerationError) as info:
        _generate(DeclarationSet([level]))
    assert info.value.export == 'app::Level'


# ------------------------------------------------------------------------------
# Name collisions
# ------------------------------------------------------------------------------

def test_same_local_name_in_different_modules_rejected():
    first = TypeName('Point', 'geo')
    second = TypeName('Point', 'render')
    exports = [
        named(first, NewtypeStruct(first, Primitive.I32)),
        named(second, NewtypeStruct(second, Primitive.I64)),
    ]
    with pytest.raises(GenerationError) as info:
        _generate(DeclarationSet(exports))
    assert 'geo::Point' in str(info.value)
    assert info.value.export == 'render::Point'


def test_derived_name_collision_rejected():
    # Pair_Raw is generated for Pair, so no exported type may use that name
    clash = TypeName('Pair_Raw', 'geo')
    with pytest.raises(GenerationError):
        _generate(DeclarationSet([pair_type(), named(clash, UnitStruct(clash))]))


def test_type_colliding_with_wrapper_class():
    name = TypeName('Example', 'app')
    with pytest.raises(GenerationError):
        _generate(DeclarationSet([named(name, UnitStruct(name))]))


# ------------------------------------------------------------------------------
# Output
# ------------------------------------------------------------------------------

def test_write_replaces_file(tmp_path, greet_declarations):
    path = tmp_path / 'Example.cs'
    path.write_text('old contents', encoding='utf-8')

    source = Generator(greet_declarations, GeneratorConfig(dll_name='example')).write(str(path))

    assert path.read_text(encoding='utf-8') == source
    assert os.listdir(tmp_path) == ['Example.cs']


def test_failed_write_leaves_previous_output(tmp_path):
    path = tmp_path / 'Example.cs'
    path.write_text('old contents', encoding='utf-8')
    declarations = DeclarationSet([Func(name='bad', binding='bad', output=Option(Primitive.I32))])

    with pytest.raises(GenerationError):
        Generator(declarations, GeneratorConfig(dll_name='example')).write(str(path))

    assert path.read_text(encoding='utf-8') == 'old contents'
    assert os.listdir(tmp_path) == ['Example.cs']

