"""
Validation and repair of oracle rankings.

Reconciles the oracle's (courseId, rank) pairs against the known candidate
set:

1. pairs whose ID is not a candidate are dropped (hallucinated)
2. repeated IDs keep their first occurrence
3. candidates the oracle skipped are appended after everything it ranked,
   in candidate order
4. the result is renumbered 1..N ordered by (oracle rank, response position),
   so gaps and ties in the oracle's numbering never reach storage

If nothing valid is left, the repair fails as a whole and no ranks are
produced. Pure functions only: no I/O, no logging side effects.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Sequence, Tuple, Union

from .schemas import CourseRanking

RankingPair = Union[CourseRanking, Tuple[str, int]]


@dataclass(frozen=True)
class RepairReport:
    """Outcome of repair_rankings()."""
    rankings: List[Tuple[str, int]] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)
    hallucinated: List[str] = field(default_factory=list)
    duplicates: List[str] = field(default_factory=list)
    invalid: int = 0
    renumbered: bool = False
    ok: bool = False

    @property
    def ranks(self) -> dict:
        return dict(self.rankings)

    @property
    def needed_repair(self) -> bool:
        return bool(self.missing or self.hallucinated or self.duplicates or self.invalid or self.renumbered)


def _as_pair(entry: RankingPair) -> Tuple[str, int]:
    if isinstance(entry, CourseRanking):
        return entry.courseId, entry.rank
    course_id, rank = entry
    return course_id, rank


def _valid_rank(rank) -> bool:
    return isinstance(rank, int) and not isinstance(rank, bool) and rank > 0


def is_complete_ranking(candidate_ids: Iterable[str], rankings: Sequence[Tuple[str, int]]) -> bool:
    """True when rankings cover exactly the candidates with ranks 1..N."""
    candidates = set(candidate_ids)
    ids = [course_id for course_id, _ in rankings]
    ranks = sorted(rank for _, rank in rankings)
    return (
        len(ids) == len(set(ids))
        and set(ids) == candidates
        and ranks == list(range(1, len(candidates) + 1))
    )


def repair_rankings(candidate_ids: Sequence[str], rankings: Sequence[RankingPair]) -> RepairReport:
    """
    Reconcile oracle rankings with the candidate set.

    Args:
        candidate_ids: IDs sent to the oracle, in candidate order
        rankings: Oracle's (courseId, rank) pairs, in response order

    Returns:
        RepairReport; ok=False (and no rankings) when nothing valid was returned
    """
    candidates = list(dict.fromkeys(candidate_ids))
    candidate_set = set(candidates)

    kept: List[Tuple[str, int, int]] = []
    seen = set()
    hallucinated: List[str] = []
    duplicates: List[str] = []
    invalid = 0

    for position, entry in enumerate(rankings):
        course_id, rank = _as_pair(entry)
        if course_id not in candidate_set:
            hallucinated.append(course_id)
            continue
        if not _valid_rank(rank):
            invalid += 1
            continue
        if course_id in seen:
            duplicates.append(course_id)
            continue
        seen.add(course_id)
        kept.append((course_id, rank, position))

    if not kept:
        return RepairReport(
            missing=[c for c in candidates if c not in seen],
            hallucinated=hallucinated,
            duplicates=duplicates,
            invalid=invalid,
            ok=False,
        )

    missing = [c for c in candidates if c not in seen]
    max_rank = max(rank for _, rank, _ in kept)
    next_position = len(rankings)
    for offset, course_id in enumerate(missing, start=1):
        kept.append((course_id, max_rank + offset, next_position + offset))

    ordered = sorted(kept, key=lambda e: (e[1], e[2]))
    repaired = [(course_id, new_rank) for new_rank, (course_id, _, _) in enumerate(ordered, start=1)]
    renumbered = any(old_rank != new_rank for (_, old_rank, _), (_, new_rank) in zip(ordered, repaired))

    ok = is_complete_ranking(candidates, repaired)

    return RepairReport(
        rankings=repaired if ok else [],
        missing=missing,
        hallucinated=hallucinated,
        duplicates=duplicates,
        invalid=invalid,
        renumbered=renumbered,
        ok=ok,
    )
