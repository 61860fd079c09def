"""
Ranking service: orders participants into standings

Pure computation, no database or network access.
"""
from dataclasses import dataclass
from typing import Iterable, List


@dataclass(frozen=True)
class ParticipantSnapshot:
    """Immutable copy of a participant taken when a request loads it"""
    github_id: str
    username: str
    followers: int

    @classmethod
    def from_row(cls, row) -> "ParticipantSnapshot":
        return cls(
            github_id=row.github_id,
            username=row.username,
            followers=row.followers or 0
        )


@dataclass(frozen=True)
class StandingsEntry:
    rank: int
    participant: ParticipantSnapshot

    @property
    def github_id(self) -> str:
        return self.participant.github_id

    @property
    def username(self) -> str:
        return self.participant.username

    @property
    def followers(self) -> int:
        return self.participant.followers


def rank_participants(participants: Iterable[ParticipantSnapshot]) -> List[StandingsEntry]:
    """
    Sort participants by followers (descending) and assign 0-based ranks

    sorted() is stable, so participants with equal follower counts keep
    the order they were loaded in.

    Example:
        [a(10), b(10), c(5)] -> [0: a, 1: b, 2: c]
    """
    ordered = sorted(participants, key=lambda p: p.followers, reverse=True)
    return [StandingsEntry(rank=i, participant=p) for i, p in enumerate(ordered)]
