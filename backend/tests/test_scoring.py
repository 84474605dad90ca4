import pytest

from processmaster.errors import ValidationError
from processmaster.services.sessions.scoring import (
    count_correct,
    score_ordering,
    seconds_remaining_at,
    validate_ordering,
)

STEPS = [{'id': f'bpr{i}', 'content': f'Step {i}'} for i in range(1, 5)]


def test_perfect_ordering_earns_time_bonus():
    result = score_ordering(STEPS, ['bpr1', 'bpr2', 'bpr3', 'bpr4'], seconds_remaining=40)
    assert result.correct_count == 4
    assert result.is_perfect
    assert result.time_bonus == 400
    assert result.score == 800


def test_imperfect_ordering_gets_no_time_bonus():
    # 3 of 4 in place with 4s left: bonus applies only to a perfect round
    result = score_ordering(STEPS, ['bpr1', 'bpr2', 'bpr3', None], seconds_remaining=4)
    assert result.correct_count == 3
    assert not result.is_perfect
    assert result.time_bonus == 0
    assert result.score == 300


def test_swapped_steps_score_only_positions_that_match():
    result = score_ordering(STEPS, ['bpr2', 'bpr1', 'bpr3', 'bpr4'], seconds_remaining=30)
    assert result.correct_count == 2
    assert result.score == 200


def test_custom_point_values():
    result = score_ordering(STEPS, ['bpr1', 'bpr2', 'bpr3', 'bpr4'], 3, points_per_step=50, bonus_per_second=5)
    assert result.score == 4 * 50 + 3 * 5


def test_seconds_remaining_rounds_up_and_clamps():
    assert seconds_remaining_at(100.0, 96.2) == 4
    assert seconds_remaining_at(100.0, 100.0) == 0
    assert seconds_remaining_at(100.0, 130.0) == 0
    assert seconds_remaining_at(None, 10.0) == 0


def test_validate_ordering_pads_and_accepts_dict_slots():
    slots = validate_ordering(STEPS, [{'id': 'bpr1'}, None], allow_gaps=True)
    assert slots == ['bpr1', None, None, None]
    assert count_correct(STEPS, slots) == 1


def test_validate_ordering_rejects_gaps_unless_forced():
    with pytest.raises(ValidationError, match='fill all slots'):
        validate_ordering(STEPS, ['bpr1', None, 'bpr3', 'bpr4'])


@pytest.mark.parametrize('ordering', [
    ['bpr1', 'bpr1', 'bpr3', 'bpr4'],
    ['bpr1', 'nope', 'bpr3', 'bpr4'],
    ['bpr1', 'bpr2', 'bpr3', 'bpr4', 'bpr1'],
    'bpr1,bpr2',
])
def test_validate_ordering_rejects_bad_input(ordering):
    with pytest.raises(ValidationError):
        validate_ordering(STEPS, ordering, allow_gaps=True)
