"""
cs_bindgen - C# binding generation for WebAssembly modules

Recovers the export declarations a compiled module embeds (or reads them from
a side-channel JSON file) and generates a self-contained C# source unit that
calls the module's native twin through P/Invoke.
"""

from .schema import (
    Primitive, TypeName, Field, Struct, UnitStruct, NewtypeStruct, TupleStruct,
    Enum, UnitVariant, TupleVariant, StructVariant, Option, Seq, Slice, Tuple, Map,
)
from .export import Receiver, BindingStyle, Param, Func, Method, NamedType, DeclarationSet
from .abi import AbiProtocol, Direction, RawHeap, Handle, VariantValue
from .loader import DeclarationLoader, load_declarations, load_declarations_file, write_declarations_file
from .codegen import CodeGen
from .generator import Generator, GeneratorConfig
from .errors import (
    BindgenError, ModuleLoadError, ModuleStructureError, ExecutionTrap,
    DecodingError, GenerationError, AbiError, OwnershipError,
)

__all__ = [
    'Primitive', 'TypeName', 'Field', 'Struct', 'UnitStruct', 'NewtypeStruct', 'TupleStruct',
    'Enum', 'UnitVariant', 'TupleVariant', 'StructVariant', 'Option', 'Seq', 'Slice', 'Tuple', 'Map',
    'Receiver', 'BindingStyle', 'Param', 'Func', 'Method', 'NamedType', 'DeclarationSet',
    'AbiProtocol', 'Direction', 'RawHeap', 'Handle', 'VariantValue',
    'DeclarationLoader', 'load_declarations', 'load_declarations_file', 'write_declarations_file',
    'CodeGen',
    'Generator', 'GeneratorConfig',
    'BindgenError', 'ModuleLoadError', 'ModuleStructureError', 'ExecutionTrap',
    'DecodingError', 'GenerationError', 'AbiError', 'OwnershipError',
]
