"""Standings derived from the raw round submissions.

Rebuilt from every record on each read; sessions are classroom-sized.
"""
from dataclasses import dataclass
from typing import Dict, Iterable, List, Tuple

from processmaster.models import GameSession, Score


@dataclass
class Standing:
    rank: int
    nickname: str
    avatar: str
    total_score: int
    rounds_played: int

    def to_dict(self):
        return {
            'rank': self.rank,
            'nickname': self.nickname,
            'avatar': self.avatar,
            'total_score': self.total_score,
            'rounds_played': self.rounds_played,
        }


def _record_order(record) -> Tuple[float, int]:
    return (record.timestamp or 0.0, record.id or 0)


def dedupe_submissions(records: Iterable) -> List:
    """Keep one record per (nickname, round): the earliest, then lowest id."""
    kept: Dict[Tuple[str, int], object] = {}
    for r in records:
        key = (r.nickname, r.round_index)
        if key not in kept or _record_order(r) < _record_order(kept[key]):
            kept[key] = r
    return sorted(kept.values(), key=_record_order)


def compute_standings(records: Iterable, players: Iterable = ()) -> List[Standing]:
    totals: Dict[str, Dict] = {}
    # Joined players without submissions still rank, with zero
    for p in players:
        totals.setdefault(p.nickname, {'avatar': p.avatar, 'total': 0, 'rounds': 0})
    for r in dedupe_submissions(records):
        row = totals.setdefault(r.nickname, {'avatar': r.avatar, 'total': 0, 'rounds': 0})
        row['total'] += int(r.score or 0)
        row['rounds'] += 1

    ordered = sorted(totals.items(), key=lambda item: (-item[1]['total'], item[0]))
    return [
        Standing(rank=i, nickname=name, avatar=row['avatar'], total_score=row['total'], rounds_played=row['rounds'])
        for i, (name, row) in enumerate(ordered, start=1)
    ]


def round_results(records: Iterable, round_index: int) -> List[Dict]:
    """One round's results, best score first, faster finish breaking ties."""
    rows = [r for r in dedupe_submissions(records) if r.round_index == round_index]
    rows.sort(key=lambda r: (-int(r.score or 0), int(r.time_taken or 0), r.nickname))
    results = []
    for i, r in enumerate(rows, start=1):
        results.append({
            'rank': i,
            'nickname': r.nickname,
            'avatar': r.avatar,
            'score': r.score,
            'correct_count': r.correct_count,
            'time_taken': r.time_taken,
        })
    return results


def rank_of(standings: List[Standing], nickname: str) -> int:
    """1-based rank, or 0 when the nickname is not ranked."""
    for s in standings:
        if s.nickname == nickname:
            return s.rank
    return 0


def session_standings(session: GameSession) -> List[Standing]:
    records = Score.query.filter_by(session_id=session.id).all()
    return compute_standings(records, session.players)


def session_round_results(session: GameSession, round_index: int) -> List[Dict]:
    records = Score.query.filter_by(session_id=session.id, round_index=round_index).all()
    return round_results(records, round_index)
