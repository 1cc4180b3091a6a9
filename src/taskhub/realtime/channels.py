"""Logical chat channels and their external topic names."""

import re
from dataclasses import dataclass

GLOBAL_TOPIC = "/topic/public"
PROJECT_TOPIC_PREFIX = "/topic/project/"

_PROJECT_TOPIC_RE = re.compile(r"^/topic/project/(\d+)$")


@dataclass(frozen=True, slots=True)
class Channel:
    """Routing key for fan-out: the global channel or one project's channel."""

    project_id: int | None = None

    @classmethod
    def global_channel(cls) -> "Channel":
        return cls(None)

    @classmethod
    def for_project(cls, project_id: int | None) -> "Channel":
        return cls(project_id)

    @classmethod
    def from_topic(cls, topic: str) -> "Channel | None":
        """Parse a subscription destination; None if it names no channel."""
        if topic == GLOBAL_TOPIC:
            return cls(None)
        match = _PROJECT_TOPIC_RE.match(topic)
        if match is None:
            return None
        project_id = int(match.group(1))
        return cls(project_id) if project_id > 0 else None

    @property
    def is_global(self) -> bool:
        return self.project_id is None

    @property
    def key(self) -> str:
        return "global" if self.project_id is None else f"project:{self.project_id}"

    @property
    def topic(self) -> str:
        if self.project_id is None:
            return GLOBAL_TOPIC
        return f"{PROJECT_TOPIC_PREFIX}{self.project_id}"

    def __str__(self) -> str:
        return self.key
