"""Realtime team sync boundary.

The engine only ever sees broadcast *snapshots*: every subscriber receives its
own decoded copy of the wire payload, stamped by the server at publish time.
Delivery is at-least-once with no ordering guarantee across clients, so
consumers must tolerate duplicates and stale packets.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol

import msgspec

from geohunt.core.models import Coordinate

if TYPE_CHECKING:
    from geohunt.core.types import TeamId
    from geohunt.engine.scheduler import Clock

logger = logging.getLogger(__name__)


class Broadcast(msgspec.Struct, frozen=True, kw_only=True, tag_field="kind"):
    game_id: str
    team_id: str
    device_id: str = ""
    # Assigned by the server on publish; never trusted from the client.
    stamped_at: int = 0


class PositionBroadcast(Broadcast, frozen=True, kw_only=True, tag="position"):
    position: Coordinate | None = None
    accuracy: float | None = None
    name: str = ""


class ScoreBroadcast(Broadcast, frozen=True, kw_only=True, tag="score"):
    score: int = 0
    # Ledger revision of the sender, used to order same-instant snapshots.
    revision: int = 0


class ChatBroadcast(Broadcast, frozen=True, kw_only=True, tag="chat"):
    message: str = ""
    sender: str = ""
    target_team_id: str | None = None
    is_urgent: bool = False


AnyBroadcast = PositionBroadcast | ScoreBroadcast | ChatBroadcast
BroadcastCallback = Callable[[AnyBroadcast], None]

_encoder = msgspec.json.Encoder()
_decoder = msgspec.json.Decoder(AnyBroadcast)


def encode(message: AnyBroadcast) -> bytes:
    return _encoder.encode(message)


def decode(payload: bytes) -> AnyBroadcast:
    return _decoder.decode(payload)


class Subscription(Protocol):
    def unsubscribe(self) -> None: ...


class TeamSyncChannel(Protocol):
    def publish(self, team_id: TeamId, message: AnyBroadcast) -> None: ...

    def subscribe(self, game_id: str, callback: BroadcastCallback) -> Subscription: ...


@dataclass(eq=False)
class _InMemorySubscription:
    channel: InMemorySyncChannel
    game_id: str
    callback: BroadcastCallback
    active: bool = True

    def unsubscribe(self) -> None:
        self.active = False
        self.channel.drop(self)


@dataclass
class InMemorySyncChannel:
    """
    Reference TeamSyncChannel for tests and replays.

    Messages round-trip through the JSON wire codec. While `paused`, published
    payloads are queued so tests can release them late or reordered.
    """

    clock: Clock
    paused: bool = False
    subscribers: dict[str, list[_InMemorySubscription]] = field(
        default_factory=lambda: defaultdict(list),
    )
    wire_log: list[bytes] = field(default_factory=list)
    _held: list[bytes] = field(default_factory=list)

    def publish(self, team_id: TeamId, message: AnyBroadcast) -> None:
        if message.team_id != team_id:
            msg = f"Team {team_id} cannot publish on behalf of team {message.team_id}"
            raise ValueError(msg)
        stamped = msgspec.structs.replace(message, stamped_at=self.clock.now_ms())
        payload = encode(stamped)
        self.wire_log.append(payload)
        if self.paused:
            self._held.append(payload)
            return
        self._deliver(payload)

    def subscribe(self, game_id: str, callback: BroadcastCallback) -> Subscription:
        sub = _InMemorySubscription(self, game_id, callback)
        self.subscribers[game_id].append(sub)
        return sub

    def drop(self, sub: _InMemorySubscription) -> None:
        subs = self.subscribers.get(sub.game_id, [])
        self.subscribers[sub.game_id] = [s for s in subs if s is not sub]

    def flush(self, *, reverse: bool = False) -> int:
        """Deliver held payloads, optionally newest first."""
        held, self._held = self._held, []
        for payload in reversed(held) if reverse else held:
            self._deliver(payload)
        return len(held)

    def redeliver(self, index: int = -1) -> None:
        """Deliver an already-sent payload again (at-least-once semantics)."""
        self._deliver(self.wire_log[index])

    def _deliver(self, payload: bytes) -> None:
        game_id = decode(payload).game_id
        # Snapshot the list: callbacks may subscribe or unsubscribe.
        for sub in list(self.subscribers.get(game_id, [])):
            if sub.active:
                sub.callback(decode(payload))
        logger.debug(f"Delivered {len(payload)} bytes on game {game_id}")
