from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from liquidglass.core.modules.models import ModuleInfo, SearchResults
from liquidglass.core.policy.models import PolicyViolation


class DynamicModuleRequest(BaseModel):
    source_code: str = Field(min_length=1, max_length=10_000_000)


class UrlCheckRequest(BaseModel):
    url: str = Field(min_length=1, max_length=8192)
    module_id: str = Field(default="", max_length=256)


class UrlCheckResponse(BaseModel):
    allowed: bool
    code: Optional[str] = None
    detail: Optional[str] = None


class SanitizeUrlResponse(BaseModel):
    url: str


class ModuleListResponse(BaseModel):
    modules: List[ModuleInfo]


class ToggleResponse(BaseModel):
    module: ModuleInfo
    ok: bool


class SearchAllResponse(BaseModel):
    query: str
    results: Dict[str, SearchResults]


class ViolationListResponse(BaseModel):
    violations: List[PolicyViolation]


class ClearedResponse(BaseModel):
    cleared: int


class RateLimitResponse(BaseModel):
    module_id: str
    rate_limited: bool
    remaining_seconds: Optional[float] = None
    hit_count: int = 0
