"""MQTT topic filters and topic matching.

Filters are split on ``/`` into segments. ``+`` matches exactly one
topic segment, ``#`` matches every remaining segment (including none)
and is only legal as the final segment.

A malformed filter does not raise here: :meth:`TopicPattern.parse`
returns a pattern whose :attr:`~TopicPattern.is_valid` is ``False`` and
which never matches. Callers that want a hard failure (the configuration
loader) use :func:`validate_filter` instead.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from pymqttnotify._constants import MULTI_LEVEL_WILDCARD, SINGLE_LEVEL_WILDCARD, TOPIC_SEPARATOR

_WILDCARDS = (SINGLE_LEVEL_WILDCARD, MULTI_LEVEL_WILDCARD)


def validate_filter(text: str) -> None:
    """Raise :class:`ValueError` if *text* is not a well-formed topic filter."""
    if not text:
        raise ValueError("topic filter is empty")
    segments = text.split(TOPIC_SEPARATOR)
    last = len(segments) - 1
    for index, segment in enumerate(segments):
        if segment == MULTI_LEVEL_WILDCARD:
            if index != last:
                raise ValueError(f"'#' must be the last segment in {text!r}")
            continue
        if segment == SINGLE_LEVEL_WILDCARD:
            continue
        if any(wildcard in segment for wildcard in _WILDCARDS):
            raise ValueError(f"wildcard must occupy a whole segment in {text!r}")


@dataclass(frozen=True)
class TopicPattern:
    """A parsed topic filter."""

    text: str
    segments: tuple[str, ...]
    is_valid: bool

    @classmethod
    def parse(cls, text: str) -> TopicPattern:
        try:
            validate_filter(text)
        except ValueError:
            valid = False
        else:
            valid = True
        return cls(text=text, segments=tuple(text.split(TOPIC_SEPARATOR)), is_valid=valid)

    def matches(self, topic: str) -> bool:
        """Return whether the concrete *topic* matches this filter."""
        if not self.is_valid or not topic:
            return False
        topic_segments = topic.split(TOPIC_SEPARATOR)
        if any(wildcard in topic for wildcard in _WILDCARDS):
            return False
        # Leading wildcards never match system topics such as "$SYS/...".
        if topic.startswith("$") and self.segments[0] in _WILDCARDS:
            return False

        for index, segment in enumerate(self.segments):
            if segment == MULTI_LEVEL_WILDCARD:
                return True
            if index >= len(topic_segments):
                return False
            if segment != SINGLE_LEVEL_WILDCARD and segment != topic_segments[index]:
                return False
        return len(topic_segments) == len(self.segments)

    def __str__(self) -> str:
        return self.text


def parse_patterns(filters: Iterable[str]) -> tuple[TopicPattern, ...]:
    return tuple(TopicPattern.parse(text) for text in filters)


def matches(topic: str, patterns: Iterable[TopicPattern]) -> bool:
    """Return ``True`` if *topic* matches any pattern in *patterns*."""
    return any(pattern.matches(topic) for pattern in patterns)
