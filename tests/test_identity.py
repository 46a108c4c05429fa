from __future__ import annotations

from concurrent.futures import Future
from unittest.mock import MagicMock

from suggestbox.backends.memory import MemoryIdentityProvider
from suggestbox.config import SuggestboxConfig
from suggestbox.errors import ConfigurationError, IdentityError
from suggestbox.identity import IdentityBootstrapper, IdentityState
from suggestbox.types import Principal


def _record(bootstrapper: IdentityBootstrapper) -> list[IdentityState]:
    events: list[IdentityState] = []
    bootstrapper.subscribe(events.append)
    return events


def test_start_requests_identity_exactly_once(
    config: SuggestboxConfig, identity: MemoryIdentityProvider
) -> None:
    bootstrapper = IdentityBootstrapper(config, identity)
    events = _record(bootstrapper)

    bootstrapper.start()
    bootstrapper.start()

    assert identity.sign_in_calls == 1
    assert events == [IdentityState(principal=Principal("u123"))]


def test_invalid_config_signals_error_without_provider_calls() -> None:
    provider = MagicMock()
    bootstrapper = IdentityBootstrapper(SuggestboxConfig(api_key=""), provider)
    events = _record(bootstrapper)

    bootstrapper.start()

    assert len(events) == 1
    assert isinstance(events[0].error, ConfigurationError)
    assert events[0].principal is None
    provider.sign_in_anonymously.assert_not_called()
    provider.on_identity_change.assert_not_called()


def test_pending_provider_does_not_block(config: SuggestboxConfig) -> None:
    provider = MemoryIdentityProvider("u1", auto_resolve=False)
    bootstrapper = IdentityBootstrapper(config, provider)
    events = _record(bootstrapper)

    bootstrapper.start()

    assert events == []
    assert bootstrapper.state is None

    provider.resolve()

    assert events == [IdentityState(principal=Principal("u1"))]


def test_relays_sign_out_and_collapses_duplicates(
    config: SuggestboxConfig, identity: MemoryIdentityProvider
) -> None:
    bootstrapper = IdentityBootstrapper(config, identity)
    events = _record(bootstrapper)
    bootstrapper.start()

    identity.sign_out()
    identity.sign_out()

    assert [event.principal for event in events] == [Principal("u123"), None]


def test_sign_in_failure_surfaces_identity_error(config: SuggestboxConfig) -> None:
    provider = MemoryIdentityProvider(auto_resolve=False)
    bootstrapper = IdentityBootstrapper(config, provider)
    events = _record(bootstrapper)
    bootstrapper.start()

    provider.fail(RuntimeError("auth/operation-not-allowed"))

    assert len(events) == 1
    assert isinstance(events[0].error, IdentityError)
    assert "operation-not-allowed" in str(events[0].error)
    assert provider.sign_in_calls == 1


def test_future_only_provider_still_publishes_principal(config: SuggestboxConfig) -> None:
    future: Future[Principal] = Future()
    provider = MagicMock()
    provider.sign_in_anonymously.return_value = future
    bootstrapper = IdentityBootstrapper(config, provider)
    events = _record(bootstrapper)
    bootstrapper.start()

    future.set_result(Principal("u9"))

    assert events == [IdentityState(principal=Principal("u9"))]


def test_close_releases_provider_listener(
    config: SuggestboxConfig, identity: MemoryIdentityProvider
) -> None:
    bootstrapper = IdentityBootstrapper(config, identity)
    events = _record(bootstrapper)
    bootstrapper.start()
    assert identity.listener_count == 1

    bootstrapper.close()
    bootstrapper.close()
    identity.sign_out()

    assert identity.listener_count == 0
    assert len(events) == 1
