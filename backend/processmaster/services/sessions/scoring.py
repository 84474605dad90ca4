import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from processmaster.errors import ValidationError

POINTS_PER_CORRECT_STEP = 100
TIME_BONUS_PER_SECOND = 10


@dataclass
class RoundScore:
    correct_count: int
    total_steps: int
    seconds_remaining: int
    time_bonus: int
    score: int

    @property
    def is_perfect(self) -> bool:
        return self.total_steps > 0 and self.correct_count == self.total_steps


def seconds_remaining_at(end_time: Optional[float], now: float) -> int:
    """Whole seconds left on the round clock, rounded up; 0 once time is up."""
    if end_time is None or now > end_time:
        return 0
    return max(0, math.ceil(end_time - now))


def validate_ordering(correct_order: Sequence[Dict], ordering, allow_gaps: bool = False) -> List[Optional[str]]:
    """Normalize a submitted slot list to step ids, ``None`` marking an empty slot.

    Slots may hold a step id or a ``{"id": ...}`` dict. Missing trailing slots
    count as empty.
    """
    if ordering is None:
        ordering = []
    if not isinstance(ordering, list):
        raise ValidationError('ordering must be a list of step ids')
    if len(ordering) > len(correct_order):
        raise ValidationError(f'ordering has {len(ordering)} slots, level has {len(correct_order)} steps')

    known = {step['id'] for step in correct_order}
    slots: List[Optional[str]] = []
    seen = set()
    for slot in ordering:
        step_id = slot.get('id') if isinstance(slot, dict) else slot
        if step_id is None or step_id == '':
            slots.append(None)
            continue
        step_id = str(step_id)
        if step_id not in known:
            raise ValidationError(f'Unknown step {step_id}')
        if step_id in seen:
            raise ValidationError(f'Step {step_id} placed twice')
        seen.add(step_id)
        slots.append(step_id)
    slots.extend([None] * (len(correct_order) - len(slots)))

    if not allow_gaps and any(s is None for s in slots):
        raise ValidationError('Please fill all slots before submitting.')
    return slots


def count_correct(correct_order: Sequence[Dict], slots: Sequence[Optional[str]]) -> int:
    return sum(
        1 for i, step in enumerate(correct_order)
        if i < len(slots) and slots[i] is not None and slots[i] == step['id']
    )


def score_ordering(correct_order: Sequence[Dict], slots: Sequence[Optional[str]], seconds_remaining: int,
                   points_per_step: int = POINTS_PER_CORRECT_STEP,
                   bonus_per_second: int = TIME_BONUS_PER_SECOND) -> RoundScore:
    """Score one round.

    100 points per step in its correct position. The time bonus (10 per
    remaining second) is awarded only for a perfect ordering.
    """
    correct = count_correct(correct_order, slots)
    total = len(correct_order)
    perfect = total > 0 and correct == total
    bonus = max(0, int(seconds_remaining)) * bonus_per_second if perfect else 0
    return RoundScore(
        correct_count=correct,
        total_steps=total,
        seconds_remaining=max(0, int(seconds_remaining)),
        time_bonus=bonus,
        score=correct * points_per_step + bonus,
    )
