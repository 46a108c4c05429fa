from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

import httpx

from ..config import SuggestboxConfig
from ..errors import IdentityError
from ..types import Principal
from .base import (
    SERVER_TIMESTAMP,
    DocumentSnapshot,
    ErrorListener,
    IdentityListener,
    SnapshotListener,
    Unsubscribe,
)

logger = logging.getLogger(__name__)

SIGN_UP_URL = "https://identitytoolkit.googleapis.com/v1/accounts:signUp"


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:240].strip() or f"http {response.status_code}"
    if isinstance(payload, dict):
        error = payload.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"http {response.status_code}"


class FirebaseIdentityProvider:
    """Anonymous sign-in through the Identity Toolkit REST API."""

    def __init__(self, config: SuggestboxConfig, *, client: httpx.Client | None = None) -> None:
        self._config = config
        # No timeout: a sign-in that never answers leaves the session pending.
        self._client = client or httpx.Client(timeout=None)
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="suggestbox-auth")
        self._listeners: list[IdentityListener] = []
        self._principal: Principal | None = None
        self._id_token: str | None = None
        self._lock = threading.Lock()

    @property
    def id_token(self) -> str | None:
        with self._lock:
            return self._id_token

    def sign_in_anonymously(self) -> Future[Principal]:
        return self._executor.submit(self._sign_up)

    def _sign_up(self) -> Principal:
        try:
            response = self._client.post(
                SIGN_UP_URL,
                params={"key": self._config.api_key},
                json={"returnSecureToken": True},
            )
        except httpx.HTTPError as exc:
            raise IdentityError(f"anonymous sign-in failed: {exc}") from exc
        if response.status_code >= 400:
            raise IdentityError(f"anonymous sign-in failed: {_error_message(response)}")
        payload = response.json()
        uid = payload.get("localId") if isinstance(payload, dict) else None
        token = payload.get("idToken") if isinstance(payload, dict) else None
        if not uid or not token:
            raise IdentityError("anonymous sign-in failed: response missing localId or idToken")
        principal = Principal(str(uid))
        with self._lock:
            self._id_token = str(token)
        logger.info("signed in anonymously as %s", principal.uid)
        self._set_principal(principal)
        return principal

    def sign_out(self) -> None:
        with self._lock:
            self._id_token = None
        self._set_principal(None)

    def on_identity_change(self, listener: IdentityListener) -> Unsubscribe:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        self._client.close()

    def _set_principal(self, principal: Principal | None) -> None:
        with self._lock:
            if principal == self._principal:
                return
            self._principal = principal
            listeners = list(self._listeners)
        for listener in listeners:
            listener(principal)


def _default_client_factory(config: SuggestboxConfig, id_token: str) -> Any:
    from google.cloud import firestore
    from google.oauth2.credentials import Credentials

    return firestore.Client(project=config.project_id, credentials=Credentials(token=id_token))


def _to_firestore_fields(fields: Mapping[str, Any]) -> dict[str, Any]:
    from google.cloud import firestore

    return {
        key: firestore.SERVER_TIMESTAMP if value is SERVER_TIMESTAMP else value
        for key, value in fields.items()
    }


class FirestoreCollectionStore:
    """Live collection backed by Cloud Firestore.

    The client is authorized with the anonymous user's ID token, so it must be
    created after sign-in has completed.
    """

    def __init__(
        self,
        config: SuggestboxConfig,
        identity: FirebaseIdentityProvider,
        *,
        client_factory: Callable[[SuggestboxConfig, str], Any] | None = None,
    ) -> None:
        self._config = config
        self._identity = identity
        self._client_factory = client_factory or _default_client_factory
        self._client: Any = None
        self._client_token: str | None = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="suggestbox-write")
        self._lock = threading.Lock()

    def _firestore(self) -> Any:
        token = self._identity.id_token
        if not token:
            raise IdentityError("not signed in")
        with self._lock:
            if self._client is None or self._client_token != token:
                self._client = self._client_factory(self._config, token)
                self._client_token = token
            return self._client

    def subscribe(
        self,
        path: str,
        on_snapshot: SnapshotListener,
        on_error: ErrorListener,
    ) -> Unsubscribe:
        collection = self._firestore().collection(path)

        def _callback(docs: list[Any], _changes: Any, _read_time: Any) -> None:
            try:
                snapshots = [DocumentSnapshot(doc.id, doc.to_dict() or {}) for doc in docs]
            except Exception as exc:
                on_error(exc)
                return
            on_snapshot(snapshots)

        watch = collection.on_snapshot(_callback)
        logger.debug("firestore watch opened on %s", path)
        return watch.unsubscribe

    def append(self, path: str, fields: Mapping[str, Any]) -> Future[str]:
        def _add() -> str:
            _update_time, ref = self._firestore().collection(path).add(_to_firestore_fields(fields))
            return str(ref.id)

        return self._executor.submit(_add)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        with self._lock:
            client, self._client = self._client, None
        if client is not None and hasattr(client, "close"):
            client.close()
