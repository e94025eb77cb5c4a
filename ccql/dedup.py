"""Clustering of repeated or near-identical prompts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

_CODE_SUBSTRINGS = (
    "import ",
    "export ",
    "const ",
    "function ",
    "interface ",
    ".js:",
    ".ts:",
    ".tsx:",
    "chunk-",
    "requestanimationframe",
    "installhook",
)
_CODE_PREFIXES = ("//", "/*", "```", "[", "{", "<")


def _levenshtein(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def normalized_levenshtein(a: str, b: str) -> float:
    """Similarity in [0, 1]: one minus edit distance over the longer length."""
    if not a and not b:
        return 1.0
    return 1.0 - _levenshtein(a, b) / max(len(a), len(b))


def _byte_len(s: str) -> int:
    return len(s.encode("utf-8"))


@dataclass
class PromptCluster:
    canonical: str
    variants: list[str] = field(default_factory=list)
    count: int = 0
    latest_timestamp: int = 0


class FuzzyDeduper:
    """Groups prompts whose normalized forms are similar enough."""

    def __init__(self, threshold: float = 0.8, min_length: int = 4) -> None:
        self.threshold = threshold
        self.min_length = min_length

    def cluster(self, prompts: Iterable[tuple[str, int]]) -> list[PromptCluster]:
        """Cluster (prompt, timestamp) pairs; the most frequent form leads each cluster."""
        counts: dict[str, list[int]] = {}
        for prompt, timestamp in prompts:
            normalized = self._normalize(prompt)
            if normalized and _byte_len(normalized) >= self.min_length:
                entry = counts.setdefault(normalized, [0, 0])
                entry[0] += 1
                entry[1] = max(entry[1], timestamp)

        items = sorted(counts.items(), key=lambda item: item[1][0], reverse=True)

        clusters: list[PromptCluster] = []
        for prompt, (count, timestamp) in items:
            target = next((c for c in clusters if self._is_similar(prompt, c.canonical)), None)
            if target is None:
                clusters.append(PromptCluster(prompt, [prompt], count, timestamp))
            else:
                target.variants.append(prompt)
                target.count += count
                target.latest_timestamp = max(target.latest_timestamp, timestamp)
        return clusters

    @staticmethod
    def sort_by_count(clusters: list[PromptCluster]) -> None:
        clusters.sort(key=lambda c: c.count, reverse=True)

    @staticmethod
    def sort_by_latest(clusters: list[PromptCluster]) -> None:
        clusters.sort(key=lambda c: c.latest_timestamp, reverse=True)

    @staticmethod
    def _normalize(s: str) -> str:
        s = s.strip().lower()
        if any(marker in s for marker in _CODE_SUBSTRINGS) or s.startswith(_CODE_PREFIXES):
            return ""
        return s

    def _is_similar(self, a: str, b: str) -> bool:
        if a == b:
            return True
        len_a, len_b = _byte_len(a), _byte_len(b)
        if min(len_a, len_b) / max(len_a, len_b) < 0.5:
            return False
        return normalized_levenshtein(a, b) >= self.threshold