"""
Static screening for user-supplied module scripts.

The guest language is a restricted subset of Python. Source is parsed with
`ast` and rejected before anything executes if it imports, reaches for
dunder names, references the dynamic-execution builtins, or reads any
attribute outside ALLOWED_ATTRS. The runtime then only sees the curated
SAFE_BUILTINS table.

Attribute access is an allowlist: coroutine, generator and future objects
expose send/throw/get_loop and friends, and any one of those hands the guest
the host event loop. A determined script can still burn CPU or memory in the
host process.
"""

from __future__ import annotations

import ast
import builtins
from typing import Any, Dict, List, Optional

from liquidglass.core.errors import InitializationError, InvalidFormatError


FORBIDDEN_NAMES = {
    "eval",
    "exec",
    "compile",
    "open",
    "getattr",
    "setattr",
    "delattr",
    "globals",
    "locals",
    "vars",
    "__import__",
    "breakpoint",
    "input",
    "type",
    "object",
    "super",
    "memoryview",
    "help",
    "exit",
    "quit",
}

# Every attribute a guest may read or call. Anything else fails the screen.
ALLOWED_ATTRS = frozenset(
    {
        # fetch() responses
        "ok",
        "status",
        "status_text",
        "headers",
        "json",
        "text",
        # console
        "log",
        "warn",
        "error",
        # exceptions
        "args",
        # str / bytes
        "lower",
        "upper",
        "strip",
        "lstrip",
        "rstrip",
        "split",
        "rsplit",
        "splitlines",
        "join",
        "replace",
        "startswith",
        "endswith",
        "find",
        "rfind",
        "index",
        "count",
        "isdigit",
        "isalpha",
        "isalnum",
        "isspace",
        "title",
        "capitalize",
        "zfill",
        "partition",
        "rpartition",
        "encode",
        "decode",
        # list
        "append",
        "extend",
        "insert",
        "pop",
        "remove",
        "sort",
        "reverse",
        "copy",
        "clear",
        # dict
        "get",
        "items",
        "keys",
        "values",
        "update",
        "setdefault",
        # set
        "add",
        "discard",
        "union",
        "intersection",
        "difference",
    }
)

_SAFE_BUILTIN_NAMES = [
    "abs",
    "all",
    "any",
    "bool",
    "dict",
    "enumerate",
    "filter",
    "float",
    "int",
    "isinstance",
    "len",
    "list",
    "map",
    "max",
    "min",
    "range",
    "reversed",
    "round",
    "set",
    "sorted",
    "str",
    "sum",
    "tuple",
    "zip",
    "Exception",
    "ValueError",
    "KeyError",
    "TypeError",
    "IndexError",
    "RuntimeError",
    "StopIteration",
]

SAFE_BUILTINS: Dict[str, Any] = {name: getattr(builtins, name) for name in _SAFE_BUILTIN_NAMES}

META_NAME = "MODULE_META"


def _violation(node: ast.AST) -> Optional[str]:
    if isinstance(node, (ast.Import, ast.ImportFrom)):
        return "imports are not allowed"
    if isinstance(node, ast.Name):
        if node.id.startswith("__"):
            return f"name '{node.id}' is not allowed"
        if node.id in FORBIDDEN_NAMES:
            return f"'{node.id}' is not available to modules"
    if isinstance(node, ast.Attribute) and node.attr not in ALLOWED_ATTRS:
        return f"attribute '{node.attr}' is not allowed"
    if isinstance(node, ast.MatchClass):
        # class patterns read attributes by keyword
        names = [a for a in node.kwd_attrs if a not in ALLOWED_ATTRS]
        if names:
            return f"attribute '{names[0]}' is not allowed"
    if isinstance(node, (ast.FunctionDef, ast.AsyncFunctionDef, ast.ClassDef)) and node.name.startswith("__"):
        return f"definition '{node.name}' is not allowed"
    if isinstance(node, ast.arg) and node.arg.startswith("__"):
        return f"argument '{node.arg}' is not allowed"
    if isinstance(node, (ast.Global, ast.Nonlocal)):
        names = [n for n in node.names if n.startswith("__")]
        if names:
            return f"name '{names[0]}' is not allowed"
    return None


def check_source(source_code: str, *, max_bytes: int = 256_000, filename: str = "<module>") -> ast.Module:
    """Parse and screen a module script. Raises InvalidFormatError on rejection."""
    if not isinstance(source_code, str) or not source_code.strip():
        raise InvalidFormatError("module source is empty")
    if len(source_code.encode("utf-8")) > int(max_bytes):
        raise InvalidFormatError(f"module source exceeds {int(max_bytes)} bytes")
    try:
        tree = ast.parse(source_code, filename=filename)
    except SyntaxError as e:
        raise InvalidFormatError(f"syntax error at line {e.lineno}: {e.msg}") from e

    for node in ast.walk(tree):
        reason = _violation(node)
        if reason:
            line = getattr(node, "lineno", None)
            where = f" (line {line})" if line else ""
            raise InvalidFormatError(f"{reason}{where}", line=line)
    return tree


def read_module_meta(tree: ast.Module) -> Dict[str, Any]:
    """
    MODULE_META must be a literal dict assigned at top level; it is read
    without executing the script.
    """
    for node in tree.body:
        value = None
        if isinstance(node, ast.Assign) and any(isinstance(t, ast.Name) and t.id == META_NAME for t in node.targets):
            value = node.value
        elif isinstance(node, ast.AnnAssign) and isinstance(node.target, ast.Name) and node.target.id == META_NAME:
            value = node.value
        if value is None:
            continue
        try:
            meta = ast.literal_eval(value)
        except (ValueError, TypeError, SyntaxError, MemoryError, RecursionError) as e:
            raise InitializationError(f"{META_NAME} must be a literal dict") from e
        if not isinstance(meta, dict):
            raise InitializationError(f"{META_NAME} must be a literal dict")
        return meta
    raise InitializationError(f"Module did not define {META_NAME}")


def meta_str_list(meta: Dict[str, Any], *keys: str) -> List[str]:
    for key in keys:
        v = meta.get(key)
        if isinstance(v, (list, tuple)):
            return [str(x) for x in v if isinstance(x, str) and x.strip()]
    return []
