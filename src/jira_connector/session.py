from __future__ import annotations

import json
from typing import Any, Dict, Iterable, Optional, Tuple

ROLE_PREFIX = "role"
PROJECT_PREFIX = "project"


class SessionStore:
    """In-process key/value store used to memoize project and role lookups during one sync pass.

    Values are stored as encoded JSON bytes so anything a host-provided store could hold
    round-trips the same way here. There is no eviction; the store lives as long as the
    connector instance that owns it.
    """

    def __init__(self, payload: Optional[Dict[str, bytes]] = None) -> None:
        self._values: Dict[str, bytes] = dict(payload or {})

    def get(self, key: str) -> Tuple[Optional[bytes], bool]:
        if key in self._values:
            return self._values[key], True
        return None, False

    def set(self, key: str, value: bytes) -> None:
        self._values[key] = value

    def get_many(self, keys: Iterable[str]) -> Dict[str, bytes]:
        return {key: self._values[key] for key in keys if key in self._values}

    def set_many(self, values: Dict[str, bytes]) -> None:
        self._values.update(values)

    def __len__(self) -> int:
        return len(self._values)


def session_key(prefix: str, identifier: Any) -> str:
    return f"{prefix}:{identifier}"


def get_json(store: Optional[SessionStore], key: str) -> Tuple[Any, bool]:
    if store is None:
        return None, False
    raw, found = store.get(key)
    if not found or raw is None:
        return None, False
    return json.loads(raw.decode("utf-8")), True


def set_json(store: Optional[SessionStore], key: str, value: Any) -> None:
    if store is None:
        return
    store.set(key, json.dumps(value).encode("utf-8"))


def get_many_json(store: Optional[SessionStore], keys: Iterable[str]) -> Dict[str, Any]:
    if store is None:
        return {}
    return {key: json.loads(raw.decode("utf-8")) for key, raw in store.get_many(keys).items()}


def set_many_json(store: Optional[SessionStore], values: Dict[str, Any]) -> None:
    if store is None or not values:
        return
    store.set_many({key: json.dumps(value).encode("utf-8") for key, value in values.items()})


__all__ = [
    "PROJECT_PREFIX",
    "ROLE_PREFIX",
    "SessionStore",
    "get_json",
    "get_many_json",
    "session_key",
    "set_json",
    "set_many_json",
]
