from __future__ import annotations

import os

import pytest

from liquidglass.core.config.manager import ConfigManager
from liquidglass.core.config.paths import ConfigFsPaths
from liquidglass.core.events.hub import EventHub
from liquidglass.core.modules.registry import ModuleRegistry
from liquidglass.core.network_logger import NetworkLogger
from liquidglass.core.persistence import MemoryKeyValueStore
from liquidglass.core.policy.signatures import SignatureVerifier
from liquidglass.core.policy.store import PolicyStore
from liquidglass.core.policy.validator import URLValidator
from .helpers.fakes import FakeClock, FakeTransport


@pytest.fixture
def tmp_config_root(tmp_path):
    """
    Provides an isolated repo root with config/ and state/ under tmp_path.
    """
    fs = ConfigFsPaths(root=str(tmp_path))
    os.makedirs(fs.config_dir, exist_ok=True)
    os.makedirs(fs.state_dir, exist_ok=True)
    return fs


@pytest.fixture
def config_manager(tmp_config_root):
    cm = ConfigManager(fs=tmp_config_root, logger=None, read_only=False)
    cm.load_all()
    return cm


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def policy_store(clock):
    return PolicyStore(time_fn=clock.time)


@pytest.fixture
def validator(policy_store):
    return URLValidator(policy_store)


@pytest.fixture
def verifier(policy_store):
    return SignatureVerifier(policy_store)


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def kv():
    return MemoryKeyValueStore()


@pytest.fixture
def hub():
    return EventHub()


@pytest.fixture
def network_logger(clock):
    return NetworkLogger(time_fn=clock.time)


@pytest.fixture
def make_registry(policy_store, validator, verifier, transport, kv, hub, network_logger):
    """
    Factory for registries sharing the test's store, transport and KV state.
    Registries are closed at teardown.
    """
    made = []

    def _make(**overrides):
        kwargs = dict(
            policy_store=policy_store,
            validator=validator,
            verifier=verifier,
            transport=transport,
            kv_store=kv,
            network_logger=network_logger,
            event_hub=hub,
            script_call_timeout_seconds=5.0,
        )
        kwargs.update(overrides)
        reg = ModuleRegistry(**kwargs)
        made.append(reg)
        return reg

    yield _make
    for reg in made:
        reg.close()
