"""Match confidence — how likely a provider candidate is the scanned game."""

from __future__ import annotations

from dataclasses import dataclass, field

from rapidfuzz.distance import Levenshtein

from gameshelf.models.candidate import ProviderCandidate
from gameshelf.models.scan_result import GameSource, ScanResult
from gameshelf.utils import normalize_title

_PC_PLATFORM_HINTS = frozenset({"pc", "windows", "win", "win32", "win64"})


@dataclass
class MatchScore:
    confidence: float
    reasons: list[str] = field(default_factory=list)


def title_similarity(a: str, b: str) -> float:
    """Normalized Levenshtein similarity in [0, 1] of two normalized titles."""
    if not a and not b:
        return 1.0
    return float(Levenshtein.normalized_similarity(a, b))


def word_overlap(a: str, b: str) -> float:
    """Shared words over the larger word set."""
    words_a = set(a.split())
    words_b = set(b.split())
    if not words_a or not words_b:
        return 0.0
    return len(words_a & words_b) / max(len(words_a), len(words_b))


class GameMatcher:
    """
    Scores a candidate against a scan result.

    Title agreement carries most of the weight: an exact normalized match
    adds 0.5, a near match 0.4/0.2/0.1 by Levenshtein similarity.  A Steam
    app id agreement adds 0.4 (a disagreement costs 0.2), source agreement
    0.1, a release year found in the scanned name 0.1 and a PC platform
    hint 0.05.  Titles sharing under 30% of their words lose 0.2.  The sum
    is clamped to [0, 1].
    """

    def score(self, scanned: ScanResult, candidate: ProviderCandidate, title: str | None = None) -> MatchScore:
        confidence = 0.0
        reasons: list[str] = []

        scanned_title = normalize_title(title or scanned.title)
        candidate_title = normalize_title(candidate.title)

        if scanned_title == candidate_title:
            confidence += 0.5
            reasons.append("exact title match")
        else:
            similarity = title_similarity(scanned_title, candidate_title)
            if similarity > 0.9:
                confidence += 0.4
                reasons.append(f"very similar title ({similarity:.0%})")
            elif similarity > 0.7:
                confidence += 0.2
                reasons.append(f"similar title ({similarity:.0%})")
            elif similarity > 0.5:
                confidence += 0.1
                reasons.append(f"somewhat similar title ({similarity:.0%})")
            else:
                reasons.append(f"low title similarity ({similarity:.0%})")

            if word_overlap(scanned_title, candidate_title) < 0.3:
                confidence -= 0.2
                reasons.append("low word overlap")

        if scanned.source == GameSource.STEAM and scanned.source_app_id and candidate.steam_app_id:
            if str(scanned.source_app_id) == str(candidate.steam_app_id):
                confidence += 0.4
                reasons.append("steam app id match")
            else:
                confidence -= 0.2
                reasons.append("steam app id mismatch")

        if candidate.provider == scanned.source.value:
            confidence += 0.1
            reasons.append("source match")

        if candidate.year and str(candidate.year) in scanned.original_name:
            confidence += 0.1
            reasons.append("release year match")

        if candidate.platform_hint and candidate.platform_hint.lower() in _PC_PLATFORM_HINTS:
            confidence += 0.05
            reasons.append("pc platform")

        return MatchScore(confidence=max(0.0, min(1.0, confidence)), reasons=reasons)

    def rank(
        self, scanned: ScanResult, candidates: list[ProviderCandidate], title: str | None = None
    ) -> list[tuple[ProviderCandidate, MatchScore]]:
        """Candidates with their scores, highest confidence first (stable)."""
        scored = [(c, self.score(scanned, c, title)) for c in candidates]
        scored.sort(key=lambda pair: pair[1].confidence, reverse=True)
        return scored
