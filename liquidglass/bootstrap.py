from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from liquidglass.core.cache import ResponseCache
from liquidglass.core.config import AppConfig, ConfigFsPaths, ConfigManager
from liquidglass.core.events import EventHub
from liquidglass.core.modules.registry import BuiltinFactory, ModuleRegistry
from liquidglass.core.net.transport import HttpTransport, Transport
from liquidglass.core.network_logger import NetworkLogger
from liquidglass.core.persistence import JsonFileKeyValueStore, KeyValueStore
from liquidglass.core.policy.models import CertificateKind
from liquidglass.core.policy.signatures import SignatureVerifier, load_public_key
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.policy.validator import URLValidator
from liquidglass.core.security_events import SecurityAuditLogger


@dataclass
class Services:
    """Process-wide instances, built once at startup and passed down explicitly."""

    config: AppConfig
    config_manager: ConfigManager
    policy_store: PolicyStore
    validator: URLValidator
    verifier: SignatureVerifier
    transport: Transport
    network_logger: NetworkLogger
    event_hub: EventHub
    registry: ModuleRegistry

    def close(self) -> None:
        self.registry.close()
        self.transport.close()


def build_policy_store(cfg: AppConfig, *, root: str = ".", time_fn: Callable[[], float] = time.time, logger: Optional[logging.Logger] = None) -> PolicyStore:
    sec = cfg.security
    audit = SecurityAuditLogger(path=ConfigFsPaths(root).resolve(sec.audit_log_path)) if sec.audit_log_path else None
    store = PolicyStore(
        global_allowed_domains=sec.global_allowed_domains,
        blocked_schemes=sec.blocked_schemes,
        max_violations=sec.max_violations,
        time_fn=time_fn,
        audit_logger=audit,
        logger=logger,
    )
    for cert_id, cert in sec.trusted_certificates.items():
        material = cert.material.encode("utf-8")
        kind = CertificateKind(cert.kind)
        if kind == CertificateKind.PUBLIC_KEY:
            # fail at startup rather than at first verification
            load_public_key(material)
        store.add_trusted_certificate(cert_id, material, kind)
    return store


def build_services(
    root: str = ".",
    *,
    logger: Optional[logging.Logger] = None,
    transport: Optional[Transport] = None,
    kv_store: Optional[KeyValueStore] = None,
    builtin_factories: Optional[Dict[str, BuiltinFactory]] = None,
    time_fn: Callable[[], float] = time.time,
    load: bool = True,
) -> Services:
    log = logger or logging.getLogger("liquidglass")
    config_manager = ConfigManager(fs=ConfigFsPaths(root), logger=log)
    cfg = config_manager.load_all()

    policy_store = build_policy_store(cfg, root=root, time_fn=time_fn, logger=log.getChild("policy"))
    validator = URLValidator(policy_store)
    verifier = SignatureVerifier(
        policy_store,
        supported_algorithms=cfg.security.supported_algorithms,
        max_age_days=cfg.security.signature_max_age_days,
        logger=log.getChild("signatures"),
    )
    net = transport or HttpTransport.from_config(cfg.network, logger=log.getChild("net"))
    network_logger = NetworkLogger(time_fn=time_fn)
    hub = EventHub(logger=log.getChild("events"))
    cache = ResponseCache(default_ttl_seconds=cfg.modules.search_cache_ttl_seconds, time_fn=time_fn) if cfg.modules.search_cache_ttl_seconds > 0 else None

    if builtin_factories is None:
        from liquidglass.modules import BUILTIN_FACTORIES

        builtin_factories = BUILTIN_FACTORIES

    registry = ModuleRegistry(
        policy_store=policy_store,
        validator=validator,
        verifier=verifier,
        transport=net,
        kv_store=kv_store or JsonFileKeyValueStore(config_manager.fs.resolve(cfg.modules.state_path), logger=log.getChild("persistence")),
        builtin_factories=builtin_factories,
        approved_manifest_urls=cfg.modules.approved_manifest_urls,
        network_logger=network_logger,
        event_hub=hub,
        cache=cache,
        cache_ttl_seconds=cfg.modules.search_cache_ttl_seconds,
        search_max_workers=cfg.modules.search_max_workers,
        search_timeout_seconds=cfg.modules.search_timeout_seconds,
        default_retry_after_seconds=cfg.modules.default_retry_after_seconds,
        script_call_timeout_seconds=cfg.sandbox.call_timeout_seconds,
        max_source_bytes=cfg.sandbox.max_source_bytes,
        audit_logger=policy_store.audit_logger,
        logger=log.getChild("registry"),
    )
    if load:
        registry.load_modules()

    return Services(
        config=cfg,
        config_manager=config_manager,
        policy_store=policy_store,
        validator=validator,
        verifier=verifier,
        transport=net,
        network_logger=network_logger,
        event_hub=hub,
        registry=registry,
    )
