"""
Error taxonomy

Every failure is fatal to the run. Errors carry the identifier of the export
being processed (or None when the failure concerns the whole module).
"""

from typing import Optional


class BindgenError(Exception):
    """Base class for all binding generation failures"""

    def __init__(self, message: str, export: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.export = export

    def __str__(self) -> str:
        if self.export is None:
            return self.message
        return f'{self.message} (export: {self.export})'


class ModuleLoadError(BindgenError):
    """The module file is missing, unreadable, not valid wasm, or failed to instantiate"""


class ModuleStructureError(BindgenError):
    """The module is missing an expected export or an entry point has the wrong shape"""


class ExecutionTrap(BindgenError):
    """Module code faulted while declarations were being retrieved"""


class DecodingError(BindgenError):
    """A declaration blob could not be read or parsed"""


class GenerationError(BindgenError):
    """An export cannot be turned into bindings"""


class AbiError(BindgenError):
    """A value could not be converted to or from its raw representation"""


class OwnershipError(AbiError):
    """A raw buffer was used after its ownership was given up"""
