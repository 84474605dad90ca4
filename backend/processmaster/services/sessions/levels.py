"""Level catalog: the built-in procedures plus instructor-authored ones."""
import json
import time
from typing import Dict, List, Optional

from processmaster import db
from processmaster.errors import NotFound, ValidationError
from processmaster.models import CustomLevel


def _steps(prefix: str, contents: List[str]) -> List[Dict[str, str]]:
    return [{'id': f'{prefix}{i}', 'content': c} for i, c in enumerate(contents, start=1)]


BUILTIN_LEVELS: Dict[str, Dict] = {
    'mckinsey': {
        'id': 'mckinsey',
        'title': 'McKinsey 7-Step Problem Solving',
        'correct_order': _steps('m', [
            'Define problem',
            'Structure problem',
            'Prioritise issues',
            'Plan analysis and work',
            'Conduct analyses',
            'Synthesise findings',
            'Develop recommendation',
        ]),
    },
    'design_thinking': {
        'id': 'design_thinking',
        'title': 'Design Thinking',
        'correct_order': _steps('dt', ['Empathize', 'Define', 'Ideate', 'Prototype', 'Test']),
    },
    'bpr': {
        'id': 'bpr',
        'title': 'Business Process Reengineering (BPR)',
        'correct_order': _steps('bpr', [
            'Identify process',
            'Analyse As-Is',
            'Design To-Be',
            'Test & Implement To-Be',
        ]),
    },
    'dmaic': {
        'id': 'dmaic',
        'title': 'DMAIC (Six Sigma)',
        'correct_order': _steps('dm', ['Define', 'Measure', 'Analyze', 'Improve', 'Control']),
    },
    'eight_d': {
        'id': 'eight_d',
        'title': '8D Problem Solving',
        'correct_order': _steps('8d', [
            'Create team',
            'Define problem',
            'Implement interim solution',
            'Identify root cause',
            'Develop corrective actions',
            'Implement corrective actions',
            'Prevent recurrence',
            'Recognise team',
        ]),
    },
}

DEFAULT_LEVEL_ID = 'mckinsey'
CUSTOM_PREFIX = 'custom_'
MIN_STEPS = 2


def list_levels() -> List[Dict]:
    """Built-in levels first, then custom levels newest first."""
    levels = [dict(level, custom=False) for level in BUILTIN_LEVELS.values()]
    for row in CustomLevel.query.order_by(CustomLevel.created_at.desc(), CustomLevel.id.desc()).all():
        levels.append(row.to_level())
    return levels


def get_level(level_id: Optional[str]) -> Dict:
    if not level_id:
        raise ValidationError('level_id is required')
    level_id = str(level_id)
    if level_id in BUILTIN_LEVELS:
        return dict(BUILTIN_LEVELS[level_id], custom=False)
    if level_id.startswith(CUSTOM_PREFIX):
        try:
            pk = int(level_id[len(CUSTOM_PREFIX):])
        except ValueError:
            pk = None
        row = db.session.get(CustomLevel, pk) if pk is not None else None
        if row:
            return row.to_level()
    raise NotFound(f'Level {level_id} not found')


def validate_custom_level(title, steps) -> List[Dict[str, str]]:
    """Check an authored level and return its normalized step list.

    ``steps`` may be plain strings or ``{"content": ...}`` dicts; ids are
    assigned by position.
    """
    if not isinstance(title, str) or not title.strip():
        raise ValidationError('Please enter a title')
    if not isinstance(steps, list):
        raise ValidationError('steps must be a list')

    contents = []
    for step in steps:
        content = step.get('content') if isinstance(step, dict) else step
        if not isinstance(content, str):
            raise ValidationError('Each step needs text content')
        content = content.strip()
        if content:
            contents.append(content)

    if len(contents) < MIN_STEPS:
        raise ValidationError(f'A level needs at least {MIN_STEPS} steps')

    seen = set()
    for content in contents:
        key = content.lower()
        if key in seen:
            raise ValidationError(f'Duplicate step: "{content}"')
        seen.add(key)

    return [{'id': f's{i}', 'content': c} for i, c in enumerate(contents, start=1)]


def create_custom_level(title, steps, author_id=None, now=None) -> CustomLevel:
    correct_order = validate_custom_level(title, steps)
    row = CustomLevel(
        title=title.strip(),
        correct_order=json.dumps(correct_order),
        author_id=author_id,
        created_at=time.time() if now is None else now,
    )
    db.session.add(row)
    db.session.commit()
    return row


def build_playlist(items, default_time_limit: int = 60, max_time_limit: int = 3600) -> List[Dict]:
    """Snapshot each requested level with its time limit.

    Later edits to the level library never reach a session built from this.
    """
    if not isinstance(items, list) or not items:
        raise ValidationError('Add at least one level to the playlist')

    entries = []
    for item in items:
        if isinstance(item, str):
            item = {'level_id': item}
        if not isinstance(item, dict):
            raise ValidationError('Playlist entries need a level_id')
        level = get_level(item.get('level_id'))
        raw_limit = item.get('time_limit')
        try:
            time_limit = int(raw_limit) if raw_limit is not None else int(default_time_limit)
        except (TypeError, ValueError):
            raise ValidationError(f'Invalid time limit: {raw_limit}')
        if not 1 <= time_limit <= max_time_limit:
            raise ValidationError(f'Time limit must be between 1 and {max_time_limit} seconds')
        entries.append({
            'level_id': level['id'],
            'time_limit': time_limit,
            'level_data': {
                'title': level['title'],
                'correct_order': [dict(step) for step in level['correct_order']],
            },
        })
    return entries
