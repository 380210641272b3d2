"""
Function binding generation module

Generates raw DllImport declarations and the wrapper functions that convert
arguments and results around them.
"""

import logging
from typing import Optional, Union, TYPE_CHECKING

from .abi import Direction
from .codegen import CodeGen, as_camel_case, as_pascal_case, escape_ident, is_identifier, string_literal
from .errors import GenerationError
from .export import Func, Method
from .schema import Primitive, Seq, Slice
from .types import RAW_SLICE

if TYPE_CHECKING:
    from .types import TypeConverter

logger = logging.getLogger(__name__)


def check_symbol(symbol: str, export: Optional[str] = None) -> str:
    """Fail if an entry point name cannot be used as a C# method name"""
    if not is_identifier(symbol):
        raise GenerationError(f'entry point {symbol!r} is not a valid identifier', export=export)
    return symbol


class FuncGenerator:
    """Generates function wrapper bindings"""

    def __init__(self, type_conv: 'TypeConverter', dll_name: str):
        self.type_conv = type_conv
        self.dll_name = dll_name

    def generate_extern(self, gen: CodeGen, symbol: str, return_type: str, params: list[str]):
        """Generate a DllImport declaration for one entry point"""
        gen.line(
            f'[DllImport({string_literal(self.dll_name)}, EntryPoint = {string_literal(symbol)}, '
            f'CallingConvention = CallingConvention.Cdecl)]'
        )
        gen.line(f'internal static extern {return_type} {symbol}({", ".join(params)});')
        gen.line()

    def generate_raw(self, export: Union[Func, Method], gen: CodeGen):
        """Generate the raw declaration for a function or method, receiver first"""
        signature = self.type_conv.abi.signature(export)
        symbol = check_symbol(export.binding, export.ident)
        params = [f'{self.type_conv.raw_type(p.repr)} {escape_ident(p.name)}' for p in signature.params]
        self.generate_extern(gen, symbol, self.type_conv.raw_type(signature.result), params)

    def generate(self, func: Func, gen: CodeGen):
        """Generate wrapper for a free function"""
        if func.receiver is not None:
            raise GenerationError('free function declares a receiver but has no self type', export=func.ident)
        logger.debug('generating function %s', func.ident)
        self.generate_wrapper(func, gen, 'public static')

    def generate_wrapper(self, export: Union[Func, Method], gen: CodeGen, modifiers: str,
                         receiver: Optional[str] = None, epilogue: tuple[str, ...] = ()):
        """Generate a wrapper method using natural C# types

        `receiver` is the raw expression passed as the first argument, and
        `epilogue` lines run after the raw call returns.
        """
        ident = export.ident
        self.type_conv.abi.signature(export)

        return_type = self.type_conv.cs_type(export.output, ident)
        params = ', '.join(self.wrapper_params(export))
        has_result = export.output != Primitive.UNIT

        with gen.block(f'{modifiers} {return_type} {as_pascal_case(export.name)}({params})'):
            if receiver is not None:
                gen.line('if (_handle == IntPtr.Zero)')
                gen.line('    throw new ObjectDisposedException(GetType().Name);')
            if has_result:
                gen.line(f'{return_type} __ret;')
            with gen.block('unsafe'):
                self.generate_call(export, gen, receiver, '__ret' if has_result else None)
            gen.lines(*epilogue)
            if has_result:
                gen.line('return __ret;')
        gen.line()

    def wrapper_params(self, export: Union[Func, Method]) -> list[str]:
        return [
            f'{self.type_conv.cs_type(p.schema, export.ident)} {as_camel_case(p.name)}'
            for p in export.inputs
        ]

    def generate_call(self, export: Union[Func, Method], gen: CodeGen, receiver: Optional[str],
                      target: Optional[str], raw_target: bool = False):
        """Generate argument conversion, the raw call and result conversion

        Borrowed arguments are pinned with nested `fixed` blocks spanning the
        call. With `raw_target` the raw result is assigned to `target` as is.
        """
        ident = export.ident
        args = [receiver] if receiver is not None else []
        pinned = 0

        for param in export.inputs:
            var = as_camel_case(param.name)
            raw_var = f'__raw_{param.name}'
            schema = param.schema

            if schema == Primitive.STRING:
                self._open_fixed(gen, f'char* __fixed_{param.name} = {var}')
                gen.line(f'var {raw_var} = new {RAW_SLICE}((IntPtr)__fixed_{param.name}, {var}.Length);')
                pinned += 1
            elif schema == Primitive.STR:
                gen.line(f'byte[] __bytes_{param.name} = Encoding.UTF8.GetBytes({var});')
                self._open_fixed(gen, f'byte* __fixed_{param.name} = __bytes_{param.name}')
                gen.line(f'var {raw_var} = new {RAW_SLICE}((IntPtr)__fixed_{param.name}, __bytes_{param.name}.Length);')
                pinned += 1
            elif isinstance(schema, Slice):
                element_type = self.type_conv.raw_type_of(schema.inner, Direction.RETURN, ident)
                elements, index = f'__elements_{param.name}', f'__i_{param.name}'
                gen.line(f'var {elements} = new {element_type}[{var}.Length];')
                with gen.block(f'for (int {index} = 0; {index} < {var}.Length; {index}++)'):
                    gen.line(f'__bindings.__IntoRaw({var}[{index}], out {elements}[{index}]);')
                self._open_fixed(gen, f'{element_type}* __fixed_{param.name} = {elements}')
                gen.line(f'var {raw_var} = new {RAW_SLICE}((IntPtr)__fixed_{param.name}, {elements}.Length);')
                pinned += 1
            elif isinstance(schema, Seq):
                raise GenerationError(f'sequence argument {param.name!r} cannot be passed by the host', export=ident)
            else:
                raw_type = self.type_conv.raw_type_of(schema, Direction.ARG, ident)
                gen.line(f'__bindings.__IntoRaw({var}, out {raw_type} {raw_var});')
            args.append(raw_var)

        invoke = f'__bindings.{export.binding}({", ".join(args)})'
        if target is None:
            gen.line(f'{invoke};')
        elif raw_target:
            gen.line(f'{target} = {invoke};')
        else:
            helper = '__FromRaw'
            if isinstance(export.output, Seq):
                self.type_conv.use_seq(export.output, ident)
                helper = self.type_conv.list_helper(export.output.inner)
            elif isinstance(export.output, Slice):
                self.type_conv.use_slice(export.output, ident)
            gen.line(f'__bindings.{helper}({invoke}, out {target});')

        for _ in range(pinned):
            gen.dedent()
            gen.line('}')

    @staticmethod
    def _open_fixed(gen: CodeGen, declaration: str):
        gen.line(f'fixed ({declaration})')
        gen.line('{')
        gen.indent()
