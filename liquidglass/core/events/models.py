from __future__ import annotations

import json
import time
import uuid
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from liquidglass.core.redaction import redact


class ModuleEventType(str, Enum):
    REGISTERED = "module.registered"
    ENABLED = "module.enabled"
    DISABLED = "module.disabled"
    DELETED = "module.deleted"
    ENABLE_FAILED = "module.enable_failed"
    RATE_LIMITED = "module.rate_limited"
    MANIFEST_REJECTED = "module.manifest_rejected"
    MODULES_LOADED = "registry.loaded"


class ModuleEvent(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    event_id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    event_type: str
    module_id: str = ""
    timestamp: float = Field(default_factory=lambda: time.time())
    trace_id: Optional[str] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("event_type", mode="before")
    @classmethod
    def _non_empty(cls, v: Any) -> str:
        if isinstance(v, ModuleEventType):
            v = v.value
        v = str(v or "").strip()
        if not v:
            raise ValueError("event_type required")
        return v

    @field_validator("payload")
    @classmethod
    def _jsonable_and_redacted(cls, v: Dict[str, Any]) -> Dict[str, Any]:
        safe = redact(v)
        try:
            json.dumps(safe, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise ValueError("payload must be JSON-serializable") from e
        return safe
