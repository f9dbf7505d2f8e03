"""
CLI rendering helpers for the `modules`, `search` and `violations` commands.

app.py stays a thin argparse shell; these helpers return plain lines so the
output can be tested without a terminal.
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, List, Optional

from liquidglass.core.modules.models import ModuleInfo, SearchResults
from liquidglass.core.policy.models import PolicyViolation


def _cell(value: Any, *, limit: int = 80) -> str:
    text = str(value if value is not None else "").replace("|", "/").strip()
    return text[:limit]


def modules_list_lines(*, registry: Any) -> List[str]:
    """
    Columns: module_id | name | version | origin | enabled | signed | last_error
    """
    infos: List[ModuleInfo] = list(registry.get_all_module_infos() or [])
    lines = ["module_id | name | version | origin | enabled | signed | last_error"]
    for info in infos:
        lines.append(
            f"{_cell(info.id)} | {_cell(info.name)} | {_cell(info.version)} | {info.origin.value} | "
            f"{str(info.is_enabled).lower()} | {str(info.signed).lower()} | {_cell(info.last_error or '')}"
        )
    return lines


def module_show_payload(*, registry: Any, module_id: str) -> Dict[str, Any]:
    info: Optional[ModuleInfo] = registry.get_module_info(str(module_id))
    if info is None:
        return {"ok": False, "error": f"unknown module: {module_id}"}
    return {"ok": True, "module": info.model_dump(mode="json")}


def search_result_lines(results: Dict[str, SearchResults], *, limit_per_module: int = 10) -> List[str]:
    if not results:
        return ["No modules returned results."]
    lines: List[str] = []
    for module_id in sorted(results):
        res = results[module_id]
        lines.append(f"[{module_id}] {len(res.tracks)} track(s)")
        for t in res.tracks[: max(0, int(limit_per_module))]:
            album = f" ({_cell(t.album)})" if t.album else ""
            lines.append(f"  {_cell(t.id, limit=40)} | {_cell(t.artist_name)} - {_cell(t.title)}{album} | {t.formatted_duration} | {t.quality.badge}")
    return lines


def violation_lines(violations: Iterable[PolicyViolation]) -> List[str]:
    lines = ["time | module_id | reason | url"]
    for v in violations:
        ts = dt.datetime.fromtimestamp(v.timestamp, tz=dt.timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
        lines.append(f"{ts} | {_cell(v.module_id)} | {_cell(v.reason, limit=160)} | {_cell(v.url or '', limit=160)}")
    return lines
