"""Coverage arithmetic."""

from dataclasses import dataclass


def coverage_percent(covered: int, total: int) -> float:
    """Percentage of ``covered`` over ``total``.

    Returns 0.0 when total is 0 and is clamped to [0, 100].
    """
    if total <= 0:
        return 0.0
    return max(0.0, min(100.0, 100.0 * covered / total))


@dataclass(frozen=True)
class CoverageSummary:
    """Coverage totals for one spec/impl pair."""

    total: int = 0
    covered: int = 0
    verified: int = 0

    @property
    def covered_percent(self) -> float:
        return coverage_percent(self.covered, self.total)

    @property
    def verified_percent(self) -> float:
        return coverage_percent(self.verified, self.total)

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "covered": self.covered,
            "verified": self.verified,
            "covered_percent": round(self.covered_percent, 1),
            "verified_percent": round(self.verified_percent, 1),
        }
