"""
Declaration loader module

Recovers the export declarations a compiled WebAssembly module embeds in its
linear memory. For every export named `__cs_bindgen_decl_ptr__<id>` the module
also exports `__cs_bindgen_decl_len__<id>`; both take no arguments and return
one integer. The returned range of linear memory holds the JSON encoding of
one export.

Declarations can also be stored in, and read back from, a plain JSON file:

    {"exports": [<export>, ...]}
"""

import json
import logging
import os
from typing import Any, Optional, Union

from wasmtime import Engine, Func, Instance, Memory, Module, Store, Trap, ValType, WasmtimeError

from .errors import DecodingError, ExecutionTrap, ModuleLoadError, ModuleStructureError
from .export import DeclarationSet, Export, export_from_json, export_to_json
from .naming import decl_ident, decl_len_fn, decl_ptr_fn

logger = logging.getLogger(__name__)

MEMORY_EXPORT = 'memory'


class DeclarationLoader:
    """Loads declarations by instantiating a module and reading its memory

    Module calls and memory reads are strictly sequential: each range is
    copied out right after its pointer and length calls return, before the
    next call can grow or rewrite memory.
    """

    def __init__(self, engine: Optional[Engine] = None):
        self.engine = engine if engine is not None else Engine()

    def load(self, path: str) -> DeclarationSet:
        """Load declarations from a module file"""
        logger.info('loading module %s', path)
        try:
            with open(path, 'rb') as f:
                data = f.read()
        except OSError as err:
            raise ModuleLoadError(f'cannot read module {path}: {err}') from err
        if path.endswith('.wat'):
            try:
                text = data.decode('utf-8')
            except UnicodeDecodeError as err:
                raise ModuleLoadError(f'{path} is not a text module: {err}') from err
            return self.load_bytes(text)
        return self.load_bytes(data)

    def load_bytes(self, data: Union[bytes, str]) -> DeclarationSet:
        """Load declarations from a binary module or its text format"""
        try:
            module = Module(self.engine, data)
        except WasmtimeError as err:
            raise ModuleLoadError(f'not a valid WebAssembly module: {err}') from err
        return self.load_module(module)

    def load_module(self, module: Module) -> DeclarationSet:
        """Instantiate a compiled module and read every declaration it embeds"""
        store = Store(self.engine)
        try:
            instance = Instance(store, module, [])
        except Trap as err:
            raise ExecutionTrap(f'module trapped during instantiation: {err}') from err
        except WasmtimeError as err:
            raise ModuleLoadError(f'cannot instantiate module: {err}') from err

        exports = instance.exports(store)
        memory = _lookup(exports, MEMORY_EXPORT)
        if not isinstance(memory, Memory):
            raise ModuleStructureError(f'module does not export its linear memory as {MEMORY_EXPORT!r}')

        idents = sorted(ident for ident in (decl_ident(e.name) for e in module.exports) if ident is not None)
        logger.debug('found %d declaration entry points', len(idents))

        declarations = [self._read_declaration(store, exports, memory, ident) for ident in idents]
        result = DeclarationSet(declarations)
        logger.info('recovered %d declarations', len(result))
        return result

    def _read_declaration(self, store: Store, exports: Any, memory: Memory, ident: str) -> Export:
        ptr = self._call(store, exports, decl_ptr_fn(ident), ident)
        length = self._call(store, exports, decl_len_fn(ident), ident)

        size = memory.data_len(store)
        if ptr < 0 or length < 0 or ptr + length > size:
            raise DecodingError(
                f'declaration range [{ptr}, {ptr + length}) is outside linear memory of {size} bytes',
                export=ident,
            )
        data = bytes(memory.read(store, ptr, ptr + length))
        logger.debug('read %d bytes for %s', length, ident)
        return decode_declaration(data, ident)

    def _call(self, store: Store, exports: Any, name: str, ident: str) -> int:
        """Invoke a zero-argument entry point returning exactly one integer"""
        func = _lookup(exports, name)
        if not isinstance(func, Func):
            raise ModuleStructureError(f'missing entry point {name}', export=ident)

        func_type = func.type(store)
        if len(func_type.params) != 0:
            raise ModuleStructureError(f'{name} takes {len(func_type.params)} arguments, expected none', export=ident)
        if len(func_type.results) != 1:
            raise ModuleStructureError(f'{name} returns {len(func_type.results)} values, expected 1', export=ident)
        result_type = func_type.results[0]
        if result_type not in (ValType.i32(), ValType.i64()):
            raise ModuleStructureError(f'{name} returns {result_type}, expected an integer', export=ident)

        try:
            value = func(store)
        except Trap as err:
            raise ExecutionTrap(f'{name} trapped: {err}', export=ident) from err
        except WasmtimeError as err:
            raise ExecutionTrap(f'{name} failed: {err}', export=ident) from err

        # i32 results come back signed; pointers and lengths are unsigned
        if result_type == ValType.i32():
            value &= 0xFFFFFFFF
        return value


def decode_declaration(data: bytes, ident: Optional[str] = None) -> Export:
    """Decode one JSON-encoded export"""
    try:
        return export_from_json(json.loads(data.decode('utf-8')))
    except UnicodeDecodeError as err:
        raise DecodingError(f'declaration is not valid UTF-8: {err}', export=ident) from err
    except json.JSONDecodeError as err:
        raise DecodingError(f'declaration is not valid JSON: {err}', export=ident) from err
    except (ValueError, KeyError) as err:
        raise DecodingError(f'declaration does not describe an export: {err}', export=ident) from err
    except RecursionError as err:
        raise DecodingError('declaration is nested too deeply to decode', export=ident) from err


def load_declarations_file(path: str) -> DeclarationSet:
    """Read declarations from a side-channel JSON file"""
    logger.info('loading declarations from %s', path)
    try:
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as err:
        raise ModuleLoadError(f'cannot read declarations file {path}: {err}') from err

    try:
        document = json.loads(data.decode('utf-8'))
    except UnicodeDecodeError as err:
        raise DecodingError(f'{path} is not valid UTF-8: {err}') from err
    except json.JSONDecodeError as err:
        raise DecodingError(f'{path} is not valid JSON: {err}') from err
    except RecursionError as err:
        raise DecodingError(f'{path} is nested too deeply to decode') from err

    if not isinstance(document, dict) or not isinstance(document.get('exports'), list):
        raise DecodingError(f'{path} must contain an object with an "exports" list')

    exports = []
    for index, item in enumerate(document['exports']):
        try:
            exports.append(export_from_json(item))
        except (ValueError, KeyError) as err:
            raise DecodingError(f'entry {index} does not describe an export: {err}') from err
        except RecursionError as err:
            raise DecodingError(f'entry {index} is nested too deeply to decode') from err
    return DeclarationSet(exports)


def write_declarations_file(declarations: DeclarationSet, path: str):
    """Write declarations to a side-channel JSON file"""
    document = {'exports': [export_to_json(e) for e in declarations.values()]}
    with open(path, 'w', encoding='utf-8', newline='\n') as f:
        json.dump(document, f, indent=2, sort_keys=True)
        f.write('\n')
    logger.info('wrote %d declarations to %s', len(declarations), path)


def load_declarations(path: str, loader: Optional[DeclarationLoader] = None) -> DeclarationSet:
    """Load declarations from a module, or from a side-channel file ending in .json"""
    if os.path.splitext(path)[1].lower() == '.json':
        return load_declarations_file(path)
    return (loader or DeclarationLoader()).load(path)


def _lookup(exports: Any, name: str) -> Any:
    try:
        return exports[name]
    except KeyError:
        return None
