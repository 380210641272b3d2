"""
Struct binding generation module

Generates C# structs for types exported by value, together with their raw
sequential-layout twins and the conversions between the two.
"""

import logging
from typing import Optional, TYPE_CHECKING

from .abi import Direction, RawRecord, holds_owned_buffer
from .codegen import CodeGen, arg_ident, field_ident, gen_conversions
from .errors import GenerationError
from .schema import Field, fields_of

if TYPE_CHECKING:
    from .export import NamedType
    from .types import TypeConverter

logger = logging.getLogger(__name__)


class StructGenerator:
    """Generates value struct bindings"""

    def __init__(self, type_conv: 'TypeConverter'):
        self.type_conv = type_conv

    def generate(self, named: 'NamedType', gen: CodeGen):
        """Generate the struct and its raw twin"""
        logger.debug('generating struct %s', named.ident)
        raw = self.type_conv.abi.raw_repr(named.schema, Direction.RETURN, named.ident)
        if not isinstance(raw, RawRecord):
            raise GenerationError(f'{named.type_name} is not a struct', export=named.ident)

        self.generate_record(
            named.name, f'{named.name}_Raw', fields_of(named.schema), raw, gen, named.ident,
        )

    def generate_conversions(self, named: 'NamedType', gen: CodeGen):
        """Generate the raw conversions (inside the bindings class)"""
        raw_type = f'{named.name}_Raw'
        raw = self.type_conv.abi.raw_repr(named.schema, Direction.RETURN, named.ident)
        into_raw = None if holds_owned_buffer(raw) else [f'result = new {raw_type}(value);']
        gen_conversions(gen, raw_type, named.name, [f'result = new {named.name}(raw);'], into_raw)

    def generate_record(self, name: str, raw_name: str, fields: list[Field], raw: RawRecord,
                        gen: CodeGen, export: str, interface: Optional[str] = None):
        """Generate a natural struct and its raw twin

        Also used for the variant structs of complex enums, which implement
        the enum's interface. Owned string fields are decoded and freed by
        the internal constructor; records holding them only come back from
        the module, so their raw twin has no constructor from the natural
        struct.
        """
        idents = [field_ident(f.name, i) for i, f in enumerate(fields)]
        header = f'public struct {name}' + (f' : {interface}' if interface else '')

        with gen.block(header):
            for ident, field in zip(idents, fields):
                gen.line(f'public {self.type_conv.cs_type(field.schema, export)} {ident};')
            if fields:
                gen.line()
                self._gen_basic_constructor(name, fields, idents, gen, export)
                gen.line()
            with gen.block(f'internal {name}({raw_name} raw)'):
                for ident in idents:
                    gen.line(f'__bindings.__FromRaw(raw.{ident}, out this.{ident});')
        gen.line()

        gen.line('[StructLayout(LayoutKind.Sequential)]')
        with gen.block(f'internal struct {raw_name}'):
            for ident, raw_field in zip(idents, raw.fields):
                gen.line(f'public {self.type_conv.raw_type(raw_field.repr)} {ident};')
            if not holds_owned_buffer(raw):
                if fields:
                    gen.line()
                with gen.block(f'internal {raw_name}({name} value)'):
                    for ident in idents:
                        gen.line(f'__bindings.__IntoRaw(value.{ident}, out this.{ident});')
        gen.line()

    def _gen_basic_constructor(self, name: str, fields: list[Field], idents: list[str],
                               gen: CodeGen, export: str):
        """Generate a constructor taking every field in order"""
        args = [arg_ident(f.name, i) for i, f in enumerate(fields)]
        params = ', '.join(
            f'{self.type_conv.cs_type(f.schema, export)} {arg}' for f, arg in zip(fields, args)
        )
        with gen.block(f'public {name}({params})'):
            for ident, arg in zip(idents, args):
                gen.line(f'this.{ident} = {arg};')
