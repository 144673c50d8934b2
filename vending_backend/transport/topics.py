"""
Shelf Topic Scheme

    <prefix>/<heartbeat_segment>/<shelfId>   inbound presence
    <prefix>/<response_segment>/<shelfId>    inbound dispense result
    <prefix>/<command_segment>/<shelfId>     outbound "<itemId>,<quantity>"
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple


class TopicKind(Enum):
    HEARTBEAT = "heartbeat"
    RESPONSE = "response"
    COMMAND = "command"


@dataclass(frozen=True)
class ShelfTopics:
    prefix: str = "vending"
    heartbeat_segment: str = "heartbit"
    response_segment: str = "response"
    command_segment: str = "shelf"

    @classmethod
    def from_settings(cls, mqtt_settings) -> "ShelfTopics":
        return cls(
            prefix=mqtt_settings.topic_prefix,
            heartbeat_segment=mqtt_settings.heartbeat_segment,
            response_segment=mqtt_settings.response_segment,
            command_segment=mqtt_settings.command_segment,
        )

    def _segment(self, kind: TopicKind) -> str:
        return {
            TopicKind.HEARTBEAT: self.heartbeat_segment,
            TopicKind.RESPONSE: self.response_segment,
            TopicKind.COMMAND: self.command_segment,
        }[kind]

    def topic(self, kind: TopicKind, shelf_id: int) -> str:
        return f"{self.prefix}/{self._segment(kind)}/{shelf_id}"

    def wildcard(self, kind: TopicKind) -> str:
        return f"{self.prefix}/{self._segment(kind)}/+"

    def parse(self, topic: str) -> Optional[Tuple[TopicKind, int]]:
        """Split a concrete topic into (kind, shelf id); None if it isn't ours."""
        parts = topic.split("/")
        if len(parts) != 3 or parts[0] != self.prefix:
            return None

        kind = next((k for k in TopicKind if self._segment(k) == parts[1]), None)
        if kind is None:
            return None

        try:
            return kind, int(parts[2])
        except ValueError:
            return None
