"""
Handle binding generation module

Generates disposable C# classes wrapping the opaque pointer of types that are
exported by handle, with their methods, constructors and static functions.
"""

import logging
from typing import TYPE_CHECKING

from .codegen import CodeGen, as_pascal_case, gen_conversions
from .errors import GenerationError
from .export import Receiver
from .naming import drop_fn

if TYPE_CHECKING:
    from .export import Method, NamedType
    from .func import FuncGenerator
    from .types import TypeConverter

logger = logging.getLogger(__name__)


class HandleGenerator:
    """Generates handle class bindings"""

    def __init__(self, type_conv: 'TypeConverter', func_gen: 'FuncGenerator'):
        self.type_conv = type_conv
        self.func_gen = func_gen

    def generate(self, named: 'NamedType', methods: list['Method'], gen: CodeGen):
        """Generate the handle class and all of its methods"""
        logger.debug('generating handle class %s', named.ident)
        name = named.name

        with gen.block(f'public unsafe partial class {name} : IDisposable'):
            gen.line('internal IntPtr _handle;')
            gen.line()
            with gen.block(f'internal {name}(IntPtr raw)'):
                gen.line('_handle = raw;')
            gen.line()

            # First disposal drops the value; later calls see a null handle
            with gen.block('public void Dispose()'):
                with gen.block('if (_handle != IntPtr.Zero)'):
                    gen.line(f'__bindings.{drop_fn(named.type_name)}(_handle);')
                    gen.line('_handle = IntPtr.Zero;')
            gen.line()

            for method in methods:
                self.generate_method(named, method, gen)
        gen.line()

    def generate_method(self, named: 'NamedType', method: 'Method', gen: CodeGen):
        """Generate a constructor, instance method or static method"""
        if as_pascal_case(method.name) in ('Dispose', named.name) and not method.is_constructor:
            raise GenerationError(f'method name collides with {as_pascal_case(method.name)}', export=method.ident)

        if method.is_constructor:
            params = self.func_gen.wrapper_params(method)
            if [p.split(' ')[0] for p in params] == ['IntPtr']:
                raise GenerationError(
                    'constructor signature collides with the internal handle constructor',
                    export=method.ident,
                )
            self.type_conv.abi.signature(method)
            with gen.block(f'public {named.name}({", ".join(params)})'):
                with gen.block('unsafe'):
                    self.func_gen.generate_call(method, gen, None, '_handle', raw_target=True)
            gen.line()
        elif method.receiver is not None:
            # A by-value receiver moves the value into the call
            epilogue = ('_handle = IntPtr.Zero;',) if method.receiver == Receiver.VALUE else ()
            self.func_gen.generate_wrapper(method, gen, 'public', receiver='_handle', epilogue=epilogue)
        else:
            self.func_gen.generate_wrapper(method, gen, 'public static')

    def generate_raw(self, named: 'NamedType', gen: CodeGen):
        """Generate the raw drop declaration"""
        self.func_gen.generate_extern(gen, drop_fn(named.type_name), 'void', ['IntPtr self'])

    def generate_conversions(self, named: 'NamedType', gen: CodeGen):
        """Generate the raw conversions (inside the bindings class)

        Converting a handle into its raw pointer hands ownership to the
        module, so the wrapper's pointer is cleared.
        """
        gen_conversions(
            gen, 'IntPtr', named.name,
            [f'result = new {named.name}(raw);'],
            [
                'if (value._handle == IntPtr.Zero)',
                '    throw new ObjectDisposedException(value.GetType().Name);',
                'result = value._handle;',
                'value._handle = IntPtr.Zero;',
            ],
        )
