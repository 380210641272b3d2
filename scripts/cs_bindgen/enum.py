"""
Enum binding generation module

Generates native C# enums for simple enums, and an interface plus one struct
per variant for enums whose variants carry data.
"""

import logging
from typing import TYPE_CHECKING

from .abi import Direction, RawTagged, holds_owned_buffer
from .codegen import CodeGen, gen_conversions
from .errors import GenerationError
from .schema import Enum, discriminants, fields_of

if TYPE_CHECKING:
    from .export import NamedType
    from .struct import StructGenerator
    from .types import TypeConverter

logger = logging.getLogger(__name__)


class EnumGenerator:
    """Generates enum bindings"""

    def __init__(self, type_conv: 'TypeConverter', struct_gen: 'StructGenerator'):
        self.type_conv = type_conv
        self.struct_gen = struct_gen

    def generate(self, named: 'NamedType', gen: CodeGen):
        """Generate the C# types for an enum"""
        schema = named.schema
        if not isinstance(schema, Enum):
            raise GenerationError(f'{named.type_name} is not an enum', export=named.ident)

        logger.debug('generating enum %s', named.ident)
        # Rejects discriminants outside the discriminant type
        self.type_conv.abi.raw_repr(schema, Direction.RETURN, named.ident)
        if schema.is_simple:
            self._gen_simple(named, schema, gen)
        else:
            self._gen_complex(named, schema, gen)

    def generate_conversions(self, named: 'NamedType', gen: CodeGen):
        """Generate the raw conversions (inside the bindings class)"""
        schema = named.schema
        if schema.is_simple:
            raw_type = self.type_conv.discriminant_type(schema)
            if raw_type == 'IntPtr':
                into_raw = 'result = new IntPtr((long)value);'
            elif raw_type == 'UIntPtr':
                into_raw = 'result = new UIntPtr((ulong)value);'
            else:
                into_raw = f'result = ({raw_type})value;'
            from_raw = f'result = ({named.name}){self.type_conv.discriminant_value(schema, "raw")};'
            gen_conversions(gen, raw_type, named.name, [from_raw], [into_raw])
            return

        interface = f'I{named.name}'
        raw_type = f'{named.name}_Raw'
        union_type = f'{named.name}_Data_Raw'
        tagged = self._tagged(named)
        payloads = {p.name for p in tagged.payloads}

        with gen.block(f'internal static void __FromRaw({raw_type} raw, out {interface} result)'):
            gen.line(f'switch ({self.type_conv.discriminant_value(schema, "raw.Discriminant")})')
            gen.line('{')
            gen.indent()
            for variant, value in zip(schema.variants, discriminants(schema)):
                gen.line(f'case {value}:')
                if variant.name in payloads:
                    gen.line(f'    result = new {named.name}.{variant.name}(raw.Value.{variant.name});')
                else:
                    gen.line(f'    result = new {named.name}.{variant.name}();')
                gen.line('    break;')
            gen.line('default:')
            gen.line(f'    throw new ArgumentException("Invalid discriminant " + raw.Discriminant + " for {interface}");')
            gen.dedent()
            gen.line('}')
        gen.line()

        # Payloads holding owned strings only come back from the module
        if holds_owned_buffer(tagged):
            return

        with gen.block(f'internal static void __IntoRaw({interface} value, out {raw_type} result)'):
            gen.line('switch (value)')
            gen.line('{')
            gen.indent()
            for variant, value in zip(schema.variants, discriminants(schema)):
                discriminant = self.type_conv.discriminant_literal(schema, value)
                if variant.name in payloads:
                    gen.line(f'case {named.name}.{variant.name} variant:')
                    data = f'new {union_type} {{ {variant.name} = new {named.name}.{variant.name}_Raw(variant) }}'
                else:
                    gen.line(f'case {named.name}.{variant.name} _:')
                    data = f'new {union_type}()'
                gen.line(f'    result = new {raw_type}({discriminant}, {data});')
                gen.line('    break;')
            gen.line('default:')
            gen.line(f'    throw new ArgumentException("Unrecognized variant of {interface}: " + value);')
            gen.dedent()
            gen.line('}')
        gen.line()

    def _gen_simple(self, named: 'NamedType', schema: Enum, gen: CodeGen):
        with gen.block(f'public enum {named.name} : {self.type_conv.enum_underlying_type(schema)}'):
            for variant, value in zip(schema.variants, discriminants(schema)):
                gen.line(f'{variant.name} = {value},')
        gen.line()

    def _gen_complex(self, named: 'NamedType', schema: Enum, gen: CodeGen):
        interface = f'I{named.name}'
        tagged = self._tagged(named)
        payloads = {p.name: p.repr for p in tagged.payloads}

        with gen.block(f'public interface {interface}'):
            pass
        gen.line()

        # Static class namespacing the variant structs
        with gen.block(f'public static class {named.name}'):
            for variant in schema.variants:
                if variant.name in payloads:
                    self.struct_gen.generate_record(
                        variant.name, f'{variant.name}_Raw', fields_of(variant),
                        payloads[variant.name], gen, named.ident, interface=interface,
                    )
                else:
                    with gen.block(f'public struct {variant.name} : {interface}'):
                        pass
                    gen.line()
        gen.line()

        raw_type = f'{named.name}_Raw'
        union_type = f'{named.name}_Data_Raw'
        discriminant_type = self.type_conv.discriminant_type(schema)

        gen.line('[StructLayout(LayoutKind.Sequential)]')
        with gen.block(f'internal struct {raw_type}'):
            gen.line(f'public {discriminant_type} Discriminant;')
            gen.line(f'public {union_type} Value;')
            gen.line()
            with gen.block(f'internal {raw_type}({discriminant_type} discriminant, {union_type} value)'):
                gen.line('this.Discriminant = discriminant;')
                gen.line('this.Value = value;')
        gen.line()

        # Unit and empty variants have no member in the union
        gen.line('[StructLayout(LayoutKind.Explicit)]')
        with gen.block(f'internal struct {union_type}'):
            for payload in tagged.payloads:
                gen.line('[FieldOffset(0)]')
                gen.line(f'internal {self.type_conv.raw_type(payload.repr)} {payload.name};')
        gen.line()

    def _tagged(self, named: 'NamedType') -> RawTagged:
        raw = self.type_conv.abi.raw_repr(named.schema, Direction.RETURN, named.ident)
        if not isinstance(raw, RawTagged):
            raise GenerationError(f'{named.type_name} is not a data-carrying enum', export=named.ident)
        return raw
