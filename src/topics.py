"""Keyword-based topic detection for model responses."""

import re
from collections.abc import Mapping, Sequence


class TopicClassifier:
    """Map response text to known topic labels.

    Built from an ordered ``{topic: [pattern, ...]}`` registry. Patterns are
    regular expressions matched case-insensitively anywhere in the text. A
    topic is reported once, as soon as any of its patterns matches, and
    results come back in registry order.
    """

    def __init__(self, registry: Mapping[str, Sequence[str]]) -> None:
        self._registry: tuple[tuple[str, tuple[re.Pattern[str], ...]], ...] = tuple(
            (topic, tuple(re.compile(p, re.IGNORECASE) for p in patterns))
            for topic, patterns in registry.items()
        )

    @property
    def topics(self) -> list[str]:
        return [topic for topic, _ in self._registry]

    def classify(self, text: str | None) -> list[str]:
        if not text:
            return []
        found: list[str] = []
        for topic, patterns in self._registry:
            if any(p.search(text) for p in patterns):
                found.append(topic)
        return found
