"""
ModuleRegistry: lifecycle, trust checks and aggregated access for music modules.

State per module: Unregistered -> Registered -> Enabled <-> Disabled, and
Registered -> Deleted for dynamic (script) modules only. The enabled set is
mirrored into persisted `module.enabled.<id>` flags before any mutating call
returns.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
import time
from typing import Any, Callable, Dict, Iterable, List, Optional
from urllib.parse import urlsplit

from liquidglass.core.cache import ResponseCache
from liquidglass.core.errors import (
    ExecutionFailedError,
    LiquidGlassError,
    ModuleConflictError,
    ModuleDisabledError,
    RateLimitedError,
    SecurityError,
    SecurityViolationError,
)
from liquidglass.core.events.hub import EventHub
from liquidglass.core.events.models import ModuleEventType
from liquidglass.core.modules.base import ModuleContext, MusicModule
from liquidglass.core.modules.manifests import MANIFEST_POLICY_ID, ManifestLoader
from liquidglass.core.modules.models import (
    Album,
    Artist,
    AudioQuality,
    ModuleInfo,
    ModuleManifest,
    ModuleOrigin,
    SearchResults,
    StreamInfo,
)
from liquidglass.core.modules.script_host import ScriptModule
from liquidglass.core.net.transport import Transport
from liquidglass.core.network_logger import NetworkLogger
from liquidglass.core.persistence import DYNAMIC_MODULES_KEY, KeyValueStore, configured_key, enabled_key
from liquidglass.core.policy.signatures import SignatureVerifier
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.policy.validator import URLValidator, sanitize_url
from liquidglass.core.security_events import SecurityAuditLogger
from liquidglass.core.trace import current_trace_id


BuiltinFactory = Callable[[ModuleContext], MusicModule]


class ModuleRegistry:
    def __init__(
        self,
        *,
        policy_store: PolicyStore,
        validator: URLValidator,
        verifier: SignatureVerifier,
        transport: Transport,
        kv_store: KeyValueStore,
        builtin_factories: Optional[Dict[str, BuiltinFactory]] = None,
        approved_manifest_urls: Iterable[str] = (),
        network_logger: Optional[NetworkLogger] = None,
        event_hub: Optional[EventHub] = None,
        cache: Optional[ResponseCache] = None,
        cache_ttl_seconds: float = 0.0,
        search_max_workers: int = 8,
        search_timeout_seconds: Optional[float] = None,
        default_retry_after_seconds: float = 60.0,
        script_call_timeout_seconds: float = 30.0,
        max_source_bytes: int = 256_000,
        audit_logger: Optional[SecurityAuditLogger] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.policy_store = policy_store
        self.validator = validator
        self.verifier = verifier
        self.transport = transport
        self.kv = kv_store
        self.network_logger = network_logger
        self.event_hub = event_hub
        self.cache = cache
        self.cache_ttl_seconds = float(cache_ttl_seconds)
        self.search_max_workers = max(1, int(search_max_workers))
        self.search_timeout_seconds = search_timeout_seconds
        self.default_retry_after_seconds = float(default_retry_after_seconds)
        self.script_call_timeout_seconds = float(script_call_timeout_seconds)
        self.max_source_bytes = int(max_source_bytes)
        self.audit_logger = audit_logger
        self.logger = logger or logging.getLogger("liquidglass.registry")

        self._lock = threading.RLock()
        self._factories: Dict[str, BuiltinFactory] = dict(builtin_factories or {})
        self._modules: Dict[str, MusicModule] = {}
        self._enabled: List[str] = []
        self._remote_manifests: Dict[str, ModuleManifest] = {}
        self._module_errors: Dict[str, str] = {}
        self.last_error: Optional[LiquidGlassError] = None
        self.is_loading = False

        self.approved_manifest_urls = [str(u) for u in approved_manifest_urls if str(u or "").strip()]
        self.manifest_loader = ManifestLoader(transport=transport, validator=validator, verifier=verifier, logger=self.logger)
        manifest_hosts = [urlsplit(u).hostname or "" for u in self.approved_manifest_urls]
        self.policy_store.register_module_domains(MANIFEST_POLICY_ID, manifest_hosts)

    # ---- wiring ----
    def make_context(self, module_id: str) -> ModuleContext:
        return ModuleContext(
            module_id,
            validator=self.validator,
            transport=self.transport,
            network_logger=self.network_logger,
            logger=logging.getLogger(f"liquidglass.modules.{module_id}"),
        )

    def register_builtin_factory(self, module_id: str, factory: BuiltinFactory) -> None:
        with self._lock:
            self._factories[str(module_id)] = factory

    def _emit(self, event_type: ModuleEventType, module_id: str = "", **payload: Any) -> None:
        if self.event_hub is None:
            return
        self.event_hub.emit(event_type.value, module_id=module_id, payload=payload, trace_id=current_trace_id())

    def _audit(self, event: str, module_id: str, outcome: str, **details: Any) -> None:
        if self.audit_logger is None:
            return
        try:
            self.audit_logger.log(
                severity="INFO" if outcome == "allowed" else "WARN",
                event=event,
                outcome=outcome,
                module_id=module_id,
                details=details,
                trace_id=current_trace_id(),
            )
        except OSError as e:
            self.logger.error("Unable to write security audit line: %s", e)

    def _install(self, module: MusicModule) -> Optional[MusicModule]:
        """Put a module in the table and register its domains. Returns the instance it replaced."""
        with self._lock:
            previous = self._modules.get(module.id)
            self._modules[module.id] = module
        self.policy_store.register_module_domains(module.id, module.allowed_domains)
        if self.cache is not None:
            self.cache.remove_prefix(f"{module.id}:")
        return previous

    # ---- loading ----
    def load_modules(self) -> None:
        with self._lock:
            self.is_loading = True
            self.last_error = None
            factories = list(self._factories.items())
        try:
            for module_id, factory in factories:
                self._load_builtin(module_id, factory)
            self._load_remote_manifests()
            self._load_dynamic_modules()
        finally:
            with self._lock:
                self.is_loading = False
        self._emit(ModuleEventType.MODULES_LOADED, modules=len(self._modules), enabled=len(self._enabled))

    def _load_builtin(self, module_id: str, factory: BuiltinFactory) -> None:
        try:
            module = factory(self.make_context(module_id))
        except Exception as e:  # noqa: BLE001
            self.logger.error("Built-in module %s failed to construct: %s", module_id, e)
            self.last_error = e if isinstance(e, LiquidGlassError) else ExecutionFailedError(str(e), module_id=module_id)
            return
        if module.id != module_id:
            self.logger.warning("Built-in factory %s produced module id %s; using factory id", module_id, module.id)
            module.id = module_id
        module.origin = ModuleOrigin.BUILTIN
        self._install(module)

        # New modules default to enabled; after the first load the persisted flag wins.
        should_enable = self.kv.get_bool(enabled_key(module_id)) or not self.kv.get_bool(configured_key(module_id))
        if should_enable:
            self.enable_module(module_id)
        self.kv.set_bool(configured_key(module_id), True)

    def _load_remote_manifests(self) -> None:
        for url in self.approved_manifest_urls:
            try:
                manifest = self.manifest_loader.fetch(url)
            except LiquidGlassError as e:
                self.logger.warning("Failed to load manifest from %s: %s", sanitize_url(url), e)
                continue

            reason: Optional[str] = None
            try:
                if not self.manifest_loader.verify(manifest):
                    reason = "Invalid module signature"
            except SecurityError as e:
                reason = f"Invalid module signature: {e.user_message}"
            if reason is not None:
                self.policy_store.record_violation(manifest.id, reason, url=sanitize_url(url))
                if self.network_logger is not None:
                    self.network_logger.log_policy_violation(manifest.id, reason)
                self._emit(ModuleEventType.MANIFEST_REJECTED, manifest.id, reason=reason)
                continue

            with self._lock:
                owner = self._modules.get(manifest.id)
                if owner is not None:
                    self.logger.warning("Manifest %s ignored: id already used by a %s module", manifest.id, owner.origin.value)
                    continue
                self._remote_manifests[manifest.id] = manifest

    def _saved_sources(self) -> Dict[str, str]:
        saved = self.kv.get(DYNAMIC_MODULES_KEY, {}) or {}
        if not isinstance(saved, dict):
            return {}
        return {str(k): str(v) for k, v in saved.items() if isinstance(v, str)}

    def _build_script_module(self, source_code: str) -> ScriptModule:
        return ScriptModule(
            source_code,
            context_factory=self.make_context,
            call_timeout_seconds=self.script_call_timeout_seconds,
            max_source_bytes=self.max_source_bytes,
        )

    def _load_dynamic_modules(self) -> None:
        for saved_id, code in self._saved_sources().items():
            try:
                module = self._build_script_module(code)
            except LiquidGlassError as e:
                self.logger.error("Failed to load dynamic module %s: %s", saved_id, e)
                continue
            try:
                self._check_dynamic_id(module.id)
            except ModuleConflictError as e:
                module.close()
                self.logger.error("Skipping dynamic module %s: %s", saved_id, e)
                continue
            previous = self._install(module)
            if previous is not None and previous is not module:
                previous.close()
            if self.kv.get_bool(enabled_key(module.id)):
                self.enable_module(module.id)

    # ---- dynamic modules ----
    def _check_dynamic_id(self, module_id: str) -> None:
        with self._lock:
            existing = self._modules.get(module_id)
            if existing is not None and existing.origin != ModuleOrigin.DYNAMIC:
                raise ModuleConflictError(module_id, existing.origin.value)
            if module_id in self._factories:
                raise ModuleConflictError(module_id, ModuleOrigin.BUILTIN.value)
            if module_id in self._remote_manifests:
                raise ModuleConflictError(module_id, ModuleOrigin.REMOTE.value)

    def register_dynamic_module(self, source_code: str) -> ModuleInfo:
        module = self._build_script_module(source_code)
        try:
            self._check_dynamic_id(module.id)
        except ModuleConflictError:
            module.close()
            self._audit("module.dynamic.register", module.id, "denied", reason="id_conflict")
            raise

        with self._lock:
            saved = self._saved_sources()
            saved[module.id] = source_code
            self.kv.set(DYNAMIC_MODULES_KEY, saved)
            previous = self._install(module)
        if previous is not None and previous is not module:
            previous.close()

        self.logger.info("Registered dynamic module %s (%s)", module.id, module.version)
        self._audit("module.dynamic.register", module.id, "allowed", version=module.version, allowed_domains=list(module.allowed_domains))
        self._emit(ModuleEventType.REGISTERED, module.id, origin=ModuleOrigin.DYNAMIC.value, replaced=previous is not None)
        self.enable_module(module.id)
        info = self.get_module_info(module.id)
        if info is None:
            raise ModuleDisabledError(module.id)
        return info

    def delete_dynamic_module(self, module_id: str) -> bool:
        with self._lock:
            module = self._modules.get(module_id)
        if module is None or module.origin != ModuleOrigin.DYNAMIC:
            self.logger.warning("Refusing to delete %s: not a dynamic module", module_id)
            return False

        self.disable_module(module_id)
        with self._lock:
            self._modules.pop(module_id, None)
            self._module_errors.pop(module_id, None)
            saved = self._saved_sources()
            saved.pop(module_id, None)
            self.kv.set(DYNAMIC_MODULES_KEY, saved)
            self.kv.remove(enabled_key(module_id))
        self.policy_store.unregister_module_domains(module_id)
        if self.cache is not None:
            self.cache.remove_prefix(f"{module_id}:")
        module.close()

        self.logger.info("Deleted dynamic module %s", module_id)
        self._audit("module.dynamic.delete", module_id, "allowed")
        self._emit(ModuleEventType.DELETED, module_id)
        return True

    # ---- lifecycle ----
    def enable_module(self, module_id: str) -> bool:
        with self._lock:
            module = self._modules.get(module_id)
        if module is None:
            self.logger.warning("Cannot enable unknown module %s", module_id)
            return False

        if module.signature is not None:
            err: Optional[LiquidGlassError] = None
            try:
                if not self.verifier.verify_module_signature(module.signature, module.signing_payload()):
                    err = SecurityViolationError("Module signature verification failed", module_id=module_id)
            except SecurityError as e:
                err = e
            if err is not None:
                with self._lock:
                    self.last_error = err
                    self._module_errors[module_id] = err.user_message
                self.logger.warning("Module %s not enabled: %s", module_id, err.user_message)
                self._audit("module.enable", module_id, "denied", reason=err.code)
                self._emit(ModuleEventType.ENABLE_FAILED, module_id, code=err.code)
                return False

        with self._lock:
            if module_id not in self._enabled:
                self._enabled.append(module_id)
            self._module_errors.pop(module_id, None)
            self.kv.set_bool(enabled_key(module_id), True)
        self._emit(ModuleEventType.ENABLED, module_id)
        return True

    def disable_module(self, module_id: str) -> bool:
        with self._lock:
            known = module_id in self._modules
            if known:
                self._enabled = [m for m in self._enabled if m != module_id]
                self.kv.set_bool(enabled_key(module_id), False)
        if not known:
            self.logger.warning("Cannot disable unknown module %s", module_id)
            return False
        self._emit(ModuleEventType.DISABLED, module_id)
        return True

    def toggle_module(self, module_id: str) -> bool:
        """Flip the enabled state. Returns the resulting state."""
        if self.is_enabled(module_id):
            self.disable_module(module_id)
            return False
        return self.enable_module(module_id)

    def is_enabled(self, module_id: str) -> bool:
        with self._lock:
            return module_id in self._enabled

    # ---- access ----
    def get_module(self, module_id: str) -> Optional[MusicModule]:
        with self._lock:
            return self._modules.get(module_id)

    def get_enabled_modules(self) -> List[MusicModule]:
        with self._lock:
            return [self._modules[m] for m in self._enabled if m in self._modules]

    @property
    def primary_module(self) -> Optional[MusicModule]:
        enabled = self.get_enabled_modules()
        return enabled[0] if enabled else None

    def get_remote_manifests(self) -> List[ModuleManifest]:
        with self._lock:
            return list(self._remote_manifests.values())

    def _require_enabled(self, module_id: str) -> MusicModule:
        with self._lock:
            module = self._modules.get(module_id)
            if module is None or module_id not in self._enabled:
                raise ModuleDisabledError(module_id)
            return module

    def _require_known(self, module_id: str) -> MusicModule:
        module = self.get_module(module_id)
        if module is None:
            raise ModuleDisabledError(module_id)
        return module

    def _guarded(self, module_id: str, call: Callable[[], Any]) -> Any:
        remaining = self.policy_store.rate_limit_remaining(module_id)
        if remaining is not None:
            raise RateLimitedError(remaining, module_id=module_id)
        try:
            return call()
        except RateLimitedError as e:
            retry = e.retry_after if e.retry_after is not None else self.default_retry_after_seconds
            self.policy_store.record_rate_limit(module_id, retry)
            if self.network_logger is not None:
                self.network_logger.log_error(module_id, e)
            self._emit(ModuleEventType.RATE_LIMITED, module_id, retry_after=retry)
            raise
        except LiquidGlassError as e:
            if self.network_logger is not None:
                self.network_logger.log_error(module_id, e)
            raise
        except Exception as e:  # noqa: BLE001
            self.logger.exception("Module %s raised unexpectedly", module_id)
            wrapped = ExecutionFailedError(str(e) or type(e).__name__, module_id=module_id)
            if self.network_logger is not None:
                self.network_logger.log_error(module_id, wrapped)
            raise wrapped from e

    def _search_module(self, module: MusicModule, query: str, limit: int) -> SearchResults:
        key = f"{module.id}:search:{int(limit)}:{query}"
        if self.cache is not None and self.cache_ttl_seconds > 0:
            hit = self.cache.get(key)
            if hit is not None:
                return hit

        def run() -> SearchResults:
            started = time.monotonic()
            results = module.search_tracks(query, limit)
            if self.network_logger is not None:
                self.network_logger.log_search(module.id, query, len(results.tracks), time.monotonic() - started)
            return results

        results = self._guarded(module.id, run)
        if self.cache is not None and self.cache_ttl_seconds > 0:
            self.cache.set(key, results, self.cache_ttl_seconds)
        return results

    # ---- search / stream ----
    def search_all(self, query: str, limit: int = 25, timeout: Optional[float] = None) -> Dict[str, SearchResults]:
        modules = self.get_enabled_modules()
        if not modules:
            return {}
        wait_for = self.search_timeout_seconds if timeout is None else timeout

        pool = concurrent.futures.ThreadPoolExecutor(
            max_workers=min(self.search_max_workers, len(modules)), thread_name_prefix="module-search"
        )
        try:
            futures = {m.id: pool.submit(self._search_module, m, query, limit) for m in modules}
            done, not_done = concurrent.futures.wait(list(futures.values()), timeout=wait_for)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        results: Dict[str, SearchResults] = {}
        for module_id, fut in futures.items():
            if fut in not_done:
                fut.cancel()
                self.logger.warning("Search timed out for module %s", module_id)
                continue
            try:
                results[module_id] = fut.result()
            except Exception as e:  # noqa: BLE001
                self.logger.warning("Search failed for module %s: %s", module_id, e)
        return results

    def search(self, module_id: str, query: str, limit: int = 25) -> SearchResults:
        module = self._require_enabled(module_id)
        return self._search_module(module, query, limit)

    def get_stream(self, module_id: str, track_id: str, quality: AudioQuality = AudioQuality.LOSSLESS) -> StreamInfo:
        module = self._require_enabled(module_id)

        def run() -> StreamInfo:
            started = time.monotonic()
            info = module.get_track_stream(track_id, quality)
            if self.network_logger is not None:
                self.network_logger.log_stream_resolution(module_id, track_id, quality.display_name, time.monotonic() - started)
            return info

        return self._guarded(module_id, run)

    def get_album(self, module_id: str, album_id: str) -> Album:
        module = self._require_enabled(module_id)
        return self._guarded(module_id, lambda: module.get_album(album_id))

    def get_artist(self, module_id: str, artist_id: str) -> Artist:
        module = self._require_enabled(module_id)
        return self._guarded(module_id, lambda: module.get_artist(artist_id))

    # ---- authentication ----
    def is_authenticated(self, module_id: str) -> bool:
        module = self.get_module(module_id)
        if module is None:
            return False
        return bool(module.is_authenticated())

    def authenticate(self, module_id: str) -> Optional[str]:
        return self._require_known(module_id).authenticate()

    def handle_auth_callback(self, module_id: str, callback_url: str) -> None:
        self._require_known(module_id).handle_auth_callback(callback_url)

    def sign_out(self, module_id: str) -> None:
        module = self.get_module(module_id)
        if module is not None:
            module.sign_out()

    # ---- display ----
    def get_module_info(self, module_id: str) -> Optional[ModuleInfo]:
        with self._lock:
            module = self._modules.get(module_id)
            enabled = module_id in self._enabled
            last_error = self._module_errors.get(module_id)
        if module is None:
            return None
        try:
            authenticated = bool(module.is_authenticated())
        except LiquidGlassError:
            authenticated = False
        d = module.descriptor(is_enabled=enabled)
        return ModuleInfo(
            id=d.id,
            name=d.name,
            version=d.version,
            description=d.description,
            labels=d.labels,
            icon_url=d.icon_url,
            is_enabled=d.is_enabled,
            requires_auth=d.requires_auth,
            is_authenticated=authenticated,
            allowed_domains=d.allowed_domains,
            origin=d.origin,
            signed=d.signature is not None,
            last_error=last_error,
        )

    def get_all_module_infos(self) -> List[ModuleInfo]:
        with self._lock:
            ids = list(self._modules)
        out: List[ModuleInfo] = []
        for module_id in ids:
            info = self.get_module_info(module_id)
            if info is not None:
                out.append(info)
        return out

    def close(self) -> None:
        with self._lock:
            modules = list(self._modules.values())
            self._modules.clear()
            self._enabled = []
        for module in modules:
            try:
                module.close()
            except Exception as e:  # noqa: BLE001
                self.logger.warning("Error closing module %s: %s", module.id, e)
