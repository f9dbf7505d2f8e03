from __future__ import annotations

import base64
import binascii
import datetime as dt
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


BUILTIN_CERTIFICATE_ID = "com.liquidglass.builtin"
BUILTIN_CERTIFICATE_MATERIAL = b"BUILTIN_MODULE_TRUSTED"


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class CertificateKind(str, Enum):
    OPAQUE = "opaque"
    PUBLIC_KEY = "public_key"


@dataclass(frozen=True)
class TrustedCertificate:
    certificate_id: str
    material: bytes
    kind: CertificateKind = CertificateKind.OPAQUE


@dataclass(frozen=True)
class RateLimitState:
    unlocks_at: float
    hit_count: int


class ModuleSignature(BaseModel):
    """
    Cryptographic attestation attached to a module or manifest.
    `data` travels as base64 in JSON.
    """

    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)

    data: bytes
    algorithm: str = "SHA256withRSA"
    certificate_id: str = Field(alias="certificateId", min_length=1)
    timestamp: dt.datetime = Field(default_factory=utcnow)

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, v: Any) -> Any:
        if isinstance(v, str):
            try:
                return base64.b64decode(v.encode("ascii"), validate=True)
            except (ValueError, binascii.Error) as e:
                raise ValueError("signature data must be base64") from e
        return v

    @field_validator("timestamp")
    @classmethod
    def _assume_utc(cls, v: dt.datetime) -> dt.datetime:
        if v.tzinfo is None:
            return v.replace(tzinfo=dt.timezone.utc)
        return v

    @field_serializer("data")
    def _encode_data(self, v: bytes) -> str:
        return base64.b64encode(v).decode("ascii")


class PolicyViolation(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    module_id: str
    reason: str
    url: Optional[str] = None
    timestamp: float
