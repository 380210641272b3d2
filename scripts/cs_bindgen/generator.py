"""
Main generator module

Orchestrates all components to generate one complete C# source unit from a
declaration set.
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from typing import Optional

from .abi import AbiProtocol, Direction
from .codegen import CodeGen, as_pascal_case, gen_conversions, is_identifier
from .enum import EnumGenerator
from .errors import GenerationError
from .export import DeclarationSet, Func, Method, NamedType
from .func import FuncGenerator, check_symbol
from .handle import HandleGenerator
from .naming import STRING_FREE_FN, drop_vec_fn, index_fn
from .schema import Enum, Primitive, Schema
from .struct import StructGenerator
from .types import (
    PRIMITIVE_CS_TYPES, RAW_SLICE, RAW_VEC, TypeConverter, is_complex_enum, is_handle,
)

logger = logging.getLogger(__name__)

# Namespaces every generated unit imports
USINGS = [
    'System',
    'System.Collections.Generic',
    'System.Runtime.InteropServices',
    'System.Text',
]

BINDINGS_CLASS = '__bindings'

# Primitives converted by plain assignment, in emission order
SCALAR_PRIMITIVES = [
    Primitive.CHAR, Primitive.I8, Primitive.I16, Primitive.I32, Primitive.I64,
    Primitive.ISIZE, Primitive.U8, Primitive.U16, Primitive.U32, Primitive.U64,
    Primitive.USIZE, Primitive.F32, Primitive.F64,
]

_NAMESPACE_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*(\.[A-Za-z_][A-Za-z0-9_]*)*$')


@dataclass
class GeneratorConfig:
    """Configuration for one generated C# unit"""
    dll_name: str
    class_name: Optional[str] = None
    namespace: Optional[str] = None
    ignores: set[str] = field(default_factory=set)

    @property
    def wrapper_class(self) -> str:
        """Name of the static class holding the free functions"""
        return self.class_name or as_pascal_case(self.dll_name)


class Generator:
    """Main binding generator"""

    def __init__(self, declarations: DeclarationSet, config: GeneratorConfig):
        self.declarations = declarations
        self.config = config

    def generate(self) -> str:
        """Generate the complete C# source

        Raises GenerationError if any export cannot be bound; nothing is
        produced in that case.
        """
        self._check_config()

        exports = [e for ident, e in self.declarations.items() if ident not in self.config.ignores]
        functions = [e for e in exports if isinstance(e, Func)]
        methods = [e for e in exports if isinstance(e, Method)]
        named_types = sorted((e for e in exports if isinstance(e, NamedType)), key=lambda n: str(n.type_name))
        logger.info('generating bindings for %d exports (%d ignored)',
                    len(exports), len(self.declarations) - len(exports))

        self._check_collisions(named_types)

        abi = AbiProtocol(named_types)
        type_conv = TypeConverter(abi)
        func_gen = FuncGenerator(type_conv, self.config.dll_name)
        struct_gen = StructGenerator(type_conv)
        enum_gen = EnumGenerator(type_conv, struct_gen)
        handle_gen = HandleGenerator(type_conv, func_gen)

        methods_by_type: dict[str, list[Method]] = {n.ident: [] for n in named_types}
        for method in methods:
            named = abi.named_type(method.self_type, method.ident)
            if not is_handle(named):
                raise GenerationError(
                    f'methods are only supported on handle types, {named.type_name} is exported by value',
                    export=method.ident,
                )
            methods_by_type[named.ident].append(method)

        base_indent = 1 if self.config.namespace else 0

        # Free function wrappers
        wrappers = CodeGen(base_indent)
        with wrappers.block(f'public static class {self.config.wrapper_class}'):
            for func in functions:
                if as_pascal_case(func.name) == self.config.wrapper_class:
                    raise GenerationError('function name collides with the wrapper class', export=func.ident)
                func_gen.generate(func, wrappers)
        wrappers.line()

        # Generated types
        types = CodeGen(base_indent)
        for named in named_types:
            if is_handle(named):
                handle_gen.generate(named, methods_by_type[named.ident], types)
            elif isinstance(named.schema, Enum):
                enum_gen.generate(named, types)
            else:
                struct_gen.generate(named, types)

        # Raw declarations and conversions, rendered last so that every
        # sequence and slice element type in use has been recorded
        bindings = CodeGen(base_indent)
        with bindings.block(f'internal static unsafe class {BINDINGS_CLASS}'):
            func_gen.generate_extern(bindings, STRING_FREE_FN, 'void', [f'{RAW_VEC} raw'])
            for export in functions + methods:
                func_gen.generate_raw(export, bindings)
            for named in named_types:
                if is_handle(named):
                    handle_gen.generate_raw(named, bindings)
                self._gen_vec_externs(named.schema, named.index_fn, named.drop_vec_fn,
                                      type_conv, func_gen, bindings, named.ident)
            for element in type_conv.seq_elements():
                if isinstance(element, Primitive):
                    self._gen_vec_externs(element, index_fn(element), drop_vec_fn(element),
                                          type_conv, func_gen, bindings)

            self._gen_raw_structs(bindings)
            self._gen_primitive_conversions(bindings)
            self._gen_string_conversions(bindings)

            for named in named_types:
                if is_handle(named):
                    handle_gen.generate_conversions(named, bindings)
                elif isinstance(named.schema, Enum):
                    enum_gen.generate_conversions(named, bindings)
                else:
                    struct_gen.generate_conversions(named, bindings)

            for element in type_conv.seq_elements():
                self._gen_list_conversion(element, abi, type_conv, bindings)
            for element in type_conv.slice_elements():
                self._gen_array_conversion(element, type_conv, bindings)

        gen = CodeGen()
        gen.line('// machine generated, do not edit')
        for using in USINGS:
            gen.line(f'using {using};')
        gen.line()
        if self.config.namespace:
            gen.line(f'namespace {self.config.namespace}')
            gen.line('{')
        gen.extend(wrappers)
        gen.extend(types)
        gen.extend(bindings)
        if self.config.namespace:
            gen.line('}')

        logger.info('generated %d functions, %d methods and %d types',
                    len(functions), len(methods), len(named_types))
        return gen.output()

    def write(self, path: str) -> str:
        """Generate and write the source to `path`

        The file is replaced atomically, so a failed run leaves any previous
        output untouched.
        """
        source = self.generate()
        directory = os.path.dirname(os.path.abspath(path))
        fd, temp_path = tempfile.mkstemp(dir=directory, prefix='.cs_bindgen-', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', newline='\n', encoding='utf-8') as f:
                f.write(source)
            os.replace(temp_path, path)
        except BaseException:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise
        logger.info('wrote %s', path)
        return source

    def _check_config(self):
        """Fail on class or namespace names that are not valid C#"""
        if not is_identifier(self.config.wrapper_class):
            raise GenerationError(f'class name {self.config.wrapper_class!r} is not a valid identifier')
        if self.config.namespace and not _NAMESPACE_RE.match(self.config.namespace):
            raise GenerationError(f'namespace {self.config.namespace!r} is not valid')

    def _check_collisions(self, named_types: list[NamedType]):
        """Fail if two exported types would generate the same C# type name"""
        owners = {self.config.wrapper_class: 'the wrapper class', BINDINGS_CLASS: 'the bindings class'}
        for named in named_types:
            if not is_identifier(named.name):
                raise GenerationError(f'type name {named.name!r} is not a valid identifier', export=named.ident)
            for cs_name in generated_type_names(named):
                owner = owners.get(cs_name)
                if owner is not None:
                    raise GenerationError(
                        f'C# type name {cs_name!r} is generated for both {owner} and {named.type_name}',
                        export=named.ident,
                    )
                owners[cs_name] = str(named.type_name)

    def _gen_vec_externs(self, schema: Schema, index_symbol: str, drop_symbol: str,
                         type_conv: TypeConverter, func_gen: FuncGenerator, gen: CodeGen,
                         export: Optional[str] = None):
        """Generate the index and drop-vec declarations for one element type"""
        element_type = type_conv.raw_type_of(schema, Direction.RETURN, export)
        func_gen.generate_extern(gen, check_symbol(index_symbol, export), element_type,
                                 [f'{RAW_VEC} vec', 'UIntPtr index'])
        func_gen.generate_extern(gen, check_symbol(drop_symbol, export), 'void', [f'{RAW_VEC} vec'])

    def _gen_raw_structs(self, gen: CodeGen):
        gen.line('[StructLayout(LayoutKind.Sequential)]')
        with gen.block('internal struct RawVec'):
            gen.line('public IntPtr Ptr;')
            gen.line('public UIntPtr Length;')
            gen.line('public UIntPtr Capacity;')
        gen.line()
        gen.line('[StructLayout(LayoutKind.Sequential)]')
        with gen.block('internal struct RawSlice'):
            gen.line('public IntPtr Ptr;')
            gen.line('public UIntPtr Length;')
            gen.line()
            with gen.block('internal RawSlice(IntPtr ptr, int length)'):
                gen.line('Ptr = ptr;')
                gen.line('Length = new UIntPtr((uint)length);')
        gen.line()

    def _gen_primitive_conversions(self, gen: CodeGen):
        gen_conversions(gen, 'byte', 'bool', ['result = raw != 0;'], ['result = value ? (byte)1 : (byte)0;'])
        emitted = set()
        for primitive in SCALAR_PRIMITIVES:
            cs_type = PRIMITIVE_CS_TYPES[primitive]
            if cs_type not in emitted:
                emitted.add(cs_type)
                gen_conversions(gen, cs_type, cs_type, ['result = raw;'], ['result = value;'])

    def _gen_string_conversions(self, gen: CodeGen):
        # Owned strings are freed once, right after decoding
        with gen.block(f'internal static void __FromRaw({RAW_VEC} raw, out string result)'):
            gen.line('result = Encoding.UTF8.GetString((byte*)raw.Ptr.ToPointer(), (int)raw.Length);')
            gen.line(f'{STRING_FREE_FN}(raw);')
        gen.line()
        with gen.block(f'internal static void __FromRaw({RAW_SLICE} raw, out string result)'):
            gen.line('result = Encoding.UTF8.GetString((byte*)raw.Ptr.ToPointer(), (int)raw.Length);')
        gen.line()

    def _gen_list_conversion(self, element: Schema, abi: AbiProtocol, type_conv: TypeConverter,
                             gen: CodeGen):
        """Generate the conversion of an owned sequence through the index and drop-vec entry points"""
        cs_type = type_conv.cs_type(element)
        if isinstance(element, Primitive):
            index_symbol, drop_symbol = index_fn(element), drop_vec_fn(element)
        else:
            named = abi.named_type(element.name)
            index_symbol, drop_symbol = named.index_fn, named.drop_vec_fn

        helper = type_conv.list_helper(element)
        with gen.block(f'internal static void {helper}({RAW_VEC} raw, out List<{cs_type}> result)'):
            gen.line(f'result = new List<{cs_type}>((int)raw.Length);')
            with gen.block('for (int index = 0; index < (int)raw.Length; index++)'):
                gen.line(f'__FromRaw({index_symbol}(raw, new UIntPtr((uint)index)), out {cs_type} element);')
                gen.line('result.Add(element);')
            gen.line(f'{drop_symbol}(raw);')
        gen.line()

    def _gen_array_conversion(self, element: Schema, type_conv: TypeConverter, gen: CodeGen):
        """Generate the copy of a borrowed slice into a new array"""
        cs_type = type_conv.cs_type(element)
        raw_type = type_conv.raw_type_of(element)
        array_type = f'{cs_type}[]'

        with gen.block(f'internal static void __FromRaw({RAW_SLICE} raw, out {array_type} result)'):
            gen.line(f'var elements = ({raw_type}*)raw.Ptr.ToPointer();')
            gen.line(f'result = new {cs_type}[(int)raw.Length];')
            with gen.block('for (int index = 0; index < result.Length; index++)'):
                gen.line('__FromRaw(elements[index], out result[index]);')
        gen.line()


def generated_type_names(named: NamedType) -> list[str]:
    """Top-level C# type names generated for a named type"""
    if is_handle(named):
        return [named.name]
    if isinstance(named.schema, Enum):
        if is_complex_enum(named):
            return [named.name, f'I{named.name}', f'{named.name}_Raw', f'{named.name}_Data_Raw']
        return [named.name]
    return [named.name, f'{named.name}_Raw']
