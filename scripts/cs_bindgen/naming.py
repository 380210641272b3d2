"""
Symbol naming

Every entry point name shared between the compiled module and the generated
code is derived here, from one function. Type-related symbols are mangled from
the full TypeName (declaring module path and local name) so that types with
the same local name in different modules get distinct symbols.
"""

import enum
import re
from typing import Optional, Union

from .schema import Primitive, TypeName

PREFIX = '__cs_bindgen'

# Designated entry point that frees an owned string handed out by the module
STRING_FREE_FN = f'{PREFIX}_drop_string'


class SymbolKind(enum.Enum):
    DECL_PTR = 'decl_ptr'
    DECL_LEN = 'decl_len'
    DROP = 'drop'
    INDEX = 'index'
    DROP_VEC = 'drop_vec'


_IDENT_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')


def symbol_name(kind: SymbolKind, target: Union[str, TypeName, Primitive]) -> str:
    """Derive the entry point name for `target`

    Examples:
        (DECL_PTR, 'greet') -> __cs_bindgen_decl_ptr__greet
        (DROP, TypeName('Point', 'geo::shapes')) -> __cs_bindgen_drop__3geo6shapes5Point
        (INDEX, Primitive.I32) -> __cs_bindgen_index__i32
    """
    if isinstance(target, TypeName):
        suffix = mangle(target)
    elif isinstance(target, Primitive):
        suffix = target.value.lower()
    else:
        suffix = target
    if not _IDENT_RE.match(suffix):
        raise ValueError(f'cannot derive a symbol from {target!r}')
    return f'{PREFIX}_{kind.value}__{suffix}'


def mangle(type_name: TypeName) -> str:
    """Mangle a TypeName into an identifier fragment

    Each path segment is prefixed with its length, so distinct paths never
    produce the same fragment.

    Examples:
        TypeName('Point', 'geo::shapes') -> 3geo6shapes5Point
        TypeName('Foo', 'a_b') -> 3a_b3Foo
    """
    segments = [s for s in type_name.module.split('::') if s]
    segments.append(type_name.name)
    return ''.join(f'{len(s)}{s}' for s in segments)


def decl_ptr_fn(ident: str) -> str:
    # Module export names are arbitrary strings, so the identifier is kept verbatim
    return f'{PREFIX}_{SymbolKind.DECL_PTR.value}__{ident}'


def decl_len_fn(ident: str) -> str:
    return f'{PREFIX}_{SymbolKind.DECL_LEN.value}__{ident}'


def decl_ident(export_name: str) -> Optional[str]:
    """Return the declaration identifier if `export_name` is a decl pointer entry point"""
    prefix = f'{PREFIX}_{SymbolKind.DECL_PTR.value}__'
    if export_name.startswith(prefix) and len(export_name) > len(prefix):
        return export_name[len(prefix):]
    return None


def drop_fn(type_name: TypeName) -> str:
    return symbol_name(SymbolKind.DROP, type_name)


def index_fn(target: Union[TypeName, Primitive]) -> str:
    return symbol_name(SymbolKind.INDEX, target)


def drop_vec_fn(target: Union[TypeName, Primitive]) -> str:
    return symbol_name(SymbolKind.DROP_VEC, target)
