"""Opaque page tokens for offset and cursor-relay pagination.

A token is a stack of ``PageState`` frames. The current frame names the
resource type being enumerated; popping it moves on to the next sibling frame,
which gives a depth-first walk over nested collections (sites, then the groups
of each site).
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from .errors import CursorDecodeError

RESOURCE_PAGE_SIZE = 50


@dataclass(frozen=True)
class PageState:
    resource_type_id: str = ""
    resource_id: str = ""
    token: str = ""

    def to_dict(self) -> Dict[str, str]:
        payload: Dict[str, str] = {}
        if self.resource_type_id:
            payload["type"] = self.resource_type_id
        if self.resource_id:
            payload["id"] = self.resource_id
        if self.token:
            payload["token"] = self.token
        return payload

    @classmethod
    def from_dict(cls, raw: Any) -> "PageState":
        if not isinstance(raw, dict):
            raise CursorDecodeError("page token frame must be an object")
        values = {}
        for key in ("type", "id", "token"):
            value = raw.get(key, "")
            if not isinstance(value, str):
                raise CursorDecodeError(f"page token field {key!r} must be a string")
            values[key] = value
        return cls(resource_type_id=values["type"], resource_id=values["id"], token=values["token"])


class Bag:
    def __init__(self) -> None:
        self.states: List[PageState] = []
        self.current_state: Optional[PageState] = None

    def push(self, state: PageState) -> None:
        if self.current_state is not None:
            self.states.append(self.current_state)
        self.current_state = state

    def pop(self) -> Optional[PageState]:
        if self.current_state is None:
            return None
        popped = self.current_state
        self.current_state = self.states.pop() if self.states else None
        return popped

    def current(self) -> Optional[PageState]:
        return self.current_state

    def next(self, token: str) -> None:
        """Advance the current frame to ``token``; an empty token drops the frame."""
        state = self.pop()
        if state is None or not token:
            return
        self.push(PageState(state.resource_type_id, state.resource_id, token))

    def resource_type_id(self) -> str:
        return self.current_state.resource_type_id if self.current_state else ""

    def resource_id(self) -> str:
        return self.current_state.resource_id if self.current_state else ""

    def page_token(self) -> str:
        return self.current_state.token if self.current_state else ""

    def marshal(self) -> str:
        if self.current_state is None:
            return ""
        payload = {
            "states": [state.to_dict() for state in self.states],
            "current_state": self.current_state.to_dict(),
        }
        return json.dumps(payload, separators=(",", ":"), sort_keys=True)

    def unmarshal(self, token: str) -> None:
        self.states = []
        self.current_state = None
        if not token:
            return
        try:
            payload = json.loads(token)
        except (TypeError, ValueError) as exc:
            raise CursorDecodeError(f"malformed page token: {exc}") from exc
        if not isinstance(payload, dict):
            raise CursorDecodeError("malformed page token: expected an object")
        raw_states = payload.get("states") or []
        if not isinstance(raw_states, list):
            raise CursorDecodeError("malformed page token: states must be a list")
        self.states = [PageState.from_dict(raw) for raw in raw_states]
        raw_current = payload.get("current_state")
        self.current_state = PageState.from_dict(raw_current) if raw_current is not None else None
        if self.current_state is None and self.states:
            raise CursorDecodeError("malformed page token: missing current_state")


def decode(token: str) -> Bag:
    bag = Bag()
    bag.unmarshal(token)
    return bag


def encode(bag: Bag) -> str:
    return bag.marshal()


def get_token(token: str, resource_type_id: str) -> Tuple[Bag, str]:
    """Decode ``token`` for cursor-relay listings, seeding a frame for ``resource_type_id``."""
    bag = decode(token)
    if bag.current() is None:
        bag.push(PageState(resource_type_id=resource_type_id))
    return bag, bag.page_token()


def parse_page_token(token: str, resource_type_id: str) -> Tuple[Bag, int]:
    bag, page_token = get_token(token, resource_type_id)
    if not page_token:
        return bag, 0
    try:
        offset = int(page_token)
    except ValueError as exc:
        raise CursorDecodeError(f"malformed page offset: {page_token!r}") from exc
    if offset < 0:
        raise CursorDecodeError(f"malformed page offset: {page_token!r}")
    return bag, offset


def get_page_token_from_offset(bag: Bag, offset: int) -> str:
    bag.next(str(offset))
    return bag.marshal()


def is_last_page(count: int, page_size: int) -> bool:
    return count < page_size


__all__ = [
    "Bag",
    "PageState",
    "RESOURCE_PAGE_SIZE",
    "decode",
    "encode",
    "get_page_token_from_offset",
    "get_token",
    "is_last_page",
    "parse_page_token",
]
