"""Built-in music modules, keyed by module id."""

from typing import Dict

from liquidglass.core.modules.registry import BuiltinFactory
from liquidglass.modules import im_miserable


BUILTIN_FACTORIES: Dict[str, BuiltinFactory] = {
    im_miserable.MODULE_ID: im_miserable.create,
}

__all__ = ["BUILTIN_FACTORIES"]
