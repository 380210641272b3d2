"""
Export module

Metadata records for the items a compiled module exports: free functions,
methods on exported types, and the named types themselves.
"""

import enum
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional, Union

from .errors import ModuleStructureError
from .schema import (
    Primitive, Schema, TypeName,
    schema_from_json, schema_to_json, type_name_from_json, type_name_to_json,
)


class Receiver(enum.Enum):
    """How a method takes `self`"""
    REF = 'Ref'
    REF_MUT = 'RefMut'
    VALUE = 'Value'


class BindingStyle(enum.Enum):
    """How a named type crosses the boundary

    VALUE copies the full field data; HANDLE passes an opaque pointer and is
    used for owned types that cannot be duplicated.
    """
    VALUE = 'Value'
    HANDLE = 'Handle'


@dataclass(frozen=True)
class Param:
    """Function parameter"""
    name: str
    schema: Schema


@dataclass(frozen=True)
class Func:
    """Exported free function"""
    name: str
    binding: str
    inputs: tuple[Param, ...] = ()
    output: Schema = Primitive.UNIT
    receiver: Optional[Receiver] = None

    @property
    def ident(self) -> str:
        return self.name


@dataclass(frozen=True)
class Method:
    """Exported method of a named type"""
    name: str
    binding: str
    self_type: TypeName
    inputs: tuple[Param, ...] = ()
    output: Schema = Primitive.UNIT
    receiver: Optional[Receiver] = None

    @property
    def ident(self) -> str:
        return f'{self.self_type}::{self.name}'

    @property
    def is_constructor(self) -> bool:
        """A static method returning its own type is treated as a constructor"""
        if self.receiver is not None:
            return False
        output_name = getattr(self.output, 'name', None)
        return isinstance(output_name, TypeName) and output_name == self.self_type


@dataclass(frozen=True)
class NamedType:
    """Exported named type together with its vector helper entry points"""
    type_name: TypeName
    binding_style: BindingStyle
    index_fn: str
    drop_vec_fn: str
    schema: Schema

    @property
    def ident(self) -> str:
        return str(self.type_name)

    @property
    def name(self) -> str:
        return self.type_name.name


Export = Union[Func, Method, NamedType]


# ==============================================================================
# JSON encoding
# ==============================================================================

def export_to_json(export: Export) -> dict:
    """Encode an export as JSON-compatible data"""
    if isinstance(export, Func):
        return {'Fn': {
            'name': export.name,
            'binding': export.binding,
            'receiver': export.receiver.value if export.receiver else None,
            'inputs': [_param_to_json(p) for p in export.inputs],
            'output': schema_to_json(export.output),
        }}
    if isinstance(export, Method):
        return {'Method': {
            'name': export.name,
            'binding': export.binding,
            'self_type': type_name_to_json(export.self_type),
            'receiver': export.receiver.value if export.receiver else None,
            'inputs': [_param_to_json(p) for p in export.inputs],
            'output': schema_to_json(export.output),
        }}
    if isinstance(export, NamedType):
        return {'Named': {
            'type_name': type_name_to_json(export.type_name),
            'binding_style': export.binding_style.value,
            'index_fn': export.index_fn,
            'drop_vec_fn': export.drop_vec_fn,
            'schema': schema_to_json(export.schema),
        }}
    raise TypeError(f'not an export: {export!r}')


def export_from_json(data: Any) -> Export:
    """Decode an export from JSON-compatible data

    Raises ValueError if the data does not describe an export.
    """
    if not isinstance(data, dict) or len(data) != 1:
        raise ValueError(f'export must be a single-key object, got {data!r}')

    (kind, body), = data.items()
    if not isinstance(body, dict):
        raise ValueError(f'{kind} export body must be an object, got {body!r}')

    if kind == 'Fn':
        return Func(
            name=_require_str(body, 'name'),
            binding=_require_str(body, 'binding'),
            receiver=_receiver_from_json(body.get('receiver')),
            inputs=_params_from_json(body.get('inputs', [])),
            output=_output_from_json(body.get('output')),
        )
    elif kind == 'Method':
        return Method(
            name=_require_str(body, 'name'),
            binding=_require_str(body, 'binding'),
            self_type=type_name_from_json(body.get('self_type')),
            receiver=_receiver_from_json(body.get('receiver')),
            inputs=_params_from_json(body.get('inputs', [])),
            output=_output_from_json(body.get('output')),
        )
    elif kind == 'Named':
        return NamedType(
            type_name=type_name_from_json(body.get('type_name')),
            binding_style=BindingStyle(_require_str(body, 'binding_style')),
            index_fn=_require_str(body, 'index_fn'),
            drop_vec_fn=_require_str(body, 'drop_vec_fn'),
            schema=schema_from_json(body.get('schema')),
        )

    raise ValueError(f'unknown export kind {kind!r}')


def _param_to_json(param: Param) -> dict:
    return {'name': param.name, 'schema': schema_to_json(param.schema)}


def _params_from_json(data: Any) -> tuple[Param, ...]:
    if not isinstance(data, list):
        raise ValueError(f'inputs must be a list, got {data!r}')
    params = []
    for item in data:
        name = _require_str(item, 'name')
        params.append(Param(name=name, schema=schema_from_json(item.get('schema'))))
    return tuple(params)


def _receiver_from_json(data: Any) -> Optional[Receiver]:
    if data is None:
        return None
    return Receiver(data)


def _output_from_json(data: Any) -> Schema:
    # A missing output is a function returning nothing
    if data is None:
        return Primitive.UNIT
    return schema_from_json(data)


def _require_str(data: Any, key: str) -> str:
    if not isinstance(data, dict):
        raise ValueError(f'expected an object with {key!r}, got {data!r}')
    value = data.get(key)
    if not isinstance(value, str):
        raise ValueError(f'{key!r} must be a string, got {value!r}')
    return value


# ==============================================================================
# Declaration set
# ==============================================================================

class DeclarationSet(Mapping):
    """Read-only set of recovered exports keyed by export identifier

    Iteration order is sorted by identifier so that everything derived from a
    declaration set is independent of discovery order.
    """

    def __init__(self, exports: Iterable[Export] = ()):
        by_ident: dict[str, Export] = {}
        types: dict[TypeName, NamedType] = {}
        for export in exports:
            ident = export.ident
            if ident in by_ident:
                raise ModuleStructureError('duplicate declaration', export=ident)
            by_ident[ident] = export
            if isinstance(export, NamedType):
                types[export.type_name] = export

        self._exports = {k: by_ident[k] for k in sorted(by_ident)}
        self._types = {k: types[k] for k in sorted(types, key=str)}

    def __getitem__(self, ident: str) -> Export:
        return self._exports[ident]

    def __iter__(self) -> Iterator[str]:
        return iter(self._exports)

    def __len__(self) -> int:
        return len(self._exports)

    def __repr__(self) -> str:
        return f'DeclarationSet({list(self._exports)!r})'

    @property
    def functions(self) -> list[Func]:
        return [e for e in self._exports.values() if isinstance(e, Func)]

    @property
    def methods(self) -> list[Method]:
        return [e for e in self._exports.values() if isinstance(e, Method)]

    @property
    def named_types(self) -> list[NamedType]:
        return list(self._types.values())

    def named_type(self, type_name: TypeName) -> Optional[NamedType]:
        """Get the export describing a named type"""
        return self._types.get(type_name)

    def methods_of(self, type_name: TypeName) -> list[Method]:
        """Get the methods whose self type is `type_name`"""
        return [m for m in self.methods if m.self_type == type_name]
