from __future__ import annotations

from typing import Any, Dict, Optional


def _with_overrides(
    base: Dict[str, Any],
    overrides: Optional[Dict[str, Any]] = None,
    **kwargs: Any,
) -> Dict[str, Any]:
    out = dict(base)
    if overrides:
        out.update(overrides)
    if kwargs:
        out.update(kwargs)
    return out


def build_security_config_v1(*, overrides: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
    return _with_overrides({"schema_version": 1}, overrides, **kwargs)


def build_modules_config_v1(*, overrides: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
    return _with_overrides({"schema_version": 1}, overrides, **kwargs)


def build_network_config_v1(*, overrides: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
    return _with_overrides({"schema_version": 1}, overrides, **kwargs)


def build_sandbox_config_v1(*, overrides: Optional[Dict[str, Any]] = None, **kwargs: Any) -> Dict[str, Any]:
    return _with_overrides({"schema_version": 1}, overrides, **kwargs)
