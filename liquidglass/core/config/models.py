from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_GLOBAL_ALLOWED_DOMAINS = [
    "tidal.kinoplus.online",
    "resources.tidal.com",
    "api.spotify.com",
    "i.scdn.co",
]
DEFAULT_BLOCKED_SCHEMES = ["file", "ftp", "telnet", "data"]
DEFAULT_SUPPORTED_ALGORITHMS = ["SHA256withRSA", "SHA256", "Ed25519"]


def _clean_str_list(v: Any, *, lower: bool = False) -> List[str]:
    if v is None:
        return []
    if isinstance(v, str):
        v = [v]
    if not isinstance(v, list):
        return []
    out: List[str] = []
    for item in v:
        s = str(item or "").strip()
        if lower:
            s = s.lower()
        if s and s not in out:
            out.append(s)
    return out


class TrustedCertificateConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: str = Field(default="public_key", pattern=r"^(opaque|public_key)$")
    # PEM text for public_key, any UTF-8 text for opaque material.
    material: str = Field(min_length=1)


class SecurityConfigFile(BaseModel):
    """
    config/security.json schema.
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=10)
    global_allowed_domains: List[str] = Field(default_factory=lambda: list(DEFAULT_GLOBAL_ALLOWED_DOMAINS))
    blocked_schemes: List[str] = Field(default_factory=lambda: list(DEFAULT_BLOCKED_SCHEMES))
    supported_algorithms: List[str] = Field(default_factory=lambda: list(DEFAULT_SUPPORTED_ALGORITHMS))
    max_violations: int = Field(default=1000, ge=10, le=1_000_000)
    signature_max_age_days: int = Field(default=365, ge=1, le=3650)
    trusted_certificates: Dict[str, TrustedCertificateConfig] = Field(default_factory=dict)
    audit_log_path: str = "logs/security.jsonl"

    @field_validator("global_allowed_domains", "blocked_schemes", mode="before")
    @classmethod
    def _norm_lower_lists(cls, v: Any) -> List[str]:
        return _clean_str_list(v, lower=True)

    @field_validator("supported_algorithms", mode="before")
    @classmethod
    def _norm_algorithms(cls, v: Any) -> List[str]:
        return _clean_str_list(v)


class ModulesConfigFile(BaseModel):
    """
    config/modules.json schema (registry behaviour, not module state).
    """

    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=10)
    # Operator-curated; each manifest must carry a verifiable signature.
    approved_manifest_urls: List[str] = Field(default_factory=list)
    search_max_workers: int = Field(default=8, ge=1, le=64)
    search_timeout_seconds: Optional[float] = Field(default=20.0, gt=0, le=600)
    search_cache_ttl_seconds: float = Field(default=0.0, ge=0, le=86_400)
    default_retry_after_seconds: float = Field(default=60.0, gt=0, le=86_400)
    state_path: str = "state/module_state.json"

    @field_validator("approved_manifest_urls", mode="before")
    @classmethod
    def _norm_urls(cls, v: Any) -> List[str]:
        return _clean_str_list(v)


class NetworkConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=10)
    timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    user_agent: str = Field(default="LiquidGlass/1.0", min_length=1, max_length=200)
    default_headers: Dict[str, str] = Field(default_factory=lambda: {"Accept": "application/json"})


class SandboxConfigFile(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=10)
    call_timeout_seconds: float = Field(default=30.0, gt=0, le=600)
    max_source_bytes: int = Field(default=256_000, ge=1024, le=10_000_000)


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    security: SecurityConfigFile = Field(default_factory=SecurityConfigFile)
    modules: ModulesConfigFile = Field(default_factory=ModulesConfigFile)
    network: NetworkConfigFile = Field(default_factory=NetworkConfigFile)
    sandbox: SandboxConfigFile = Field(default_factory=SandboxConfigFile)
