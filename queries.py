"""
Typed query builders over the Supabase tables
machines, workouts, exercises and users
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, TypedDict

from postgrest.exceptions import APIError

logger = logging.getLogger(__name__)

MACHINE_TYPES = ('cardio', 'strength', 'flexibility', 'balance')

EXERCISE_COLUMNS = (
    'id, workout_id, machine_id, weight_kg, incline_degrees, repetitions, sets, '
    'distance_meters, duration_seconds, calories_burned, notes, resistance_level, '
    'stride_rate, rpm, strokes_per_minute, speed, intensity_level, created_at'
)


class Machine(TypedDict):
    id: str
    name: str
    type: str


class WorkoutRow(TypedDict, total=False):
    id: str
    user_id: str
    start_time: str
    end_time: Optional[str]
    total_calories: Optional[int]
    notes: Optional[str]
    ai_notes: Optional[str]
    ai_calculated_calories: Optional[int]
    ai_overall_recommendations: Optional[str]
    created_at: str
    updated_at: str
    exercises: List['ExerciseRow']


class ExerciseRow(TypedDict, total=False):
    id: str
    workout_id: str
    machine_id: str
    weight_kg: Optional[float]
    incline_degrees: Optional[float]
    repetitions: Optional[int]
    sets: Optional[int]
    distance_meters: Optional[float]
    duration_seconds: Optional[int]
    calories_burned: Optional[int]
    notes: Optional[str]
    resistance_level: Optional[int]
    stride_rate: Optional[int]
    rpm: Optional[int]
    strokes_per_minute: Optional[int]
    speed: Optional[float]
    intensity_level: Optional[int]
    created_at: str
    machines: Machine


class UserProfile(TypedDict, total=False):
    id: str
    full_name: Optional[str]
    avatar_url: Optional[str]
    weight_kg: Optional[float]
    height_cm: Optional[float]
    fitness_level: Optional[str]


PROFILE_FIELDS = ('full_name', 'avatar_url', 'weight_kg', 'height_cm', 'fitness_level')


class QueryError(Exception):
    """A Supabase query failed"""

    def __init__(self, operation, message):
        super().__init__(f"{operation} failed: {message}")
        self.operation = operation
        self.message = message


def _run(operation, query):
    """Execute a query builder and return its rows"""
    try:
        response = query.execute()
    except APIError as e:
        logger.error("Error in %s: %s", operation, e.message)
        raise QueryError(operation, e.message) from e
    return response.data or []


def _first(rows):
    return rows[0] if rows else None


# ============================================================================
# Machines
# ============================================================================

def list_machines(client) -> List[Machine]:
    """All gym machines ordered by name"""
    return _run('list_machines', client.table('machines').select('*').order('name'))


def get_machine(client, machine_id) -> Optional[Machine]:
    rows = _run('get_machine', client.table('machines').select('id, name, type').eq('id', machine_id).limit(1))
    return _first(rows)


# ============================================================================
# Workouts
# ============================================================================

def fetch_workout(client, workout_id, user_id) -> Optional[WorkoutRow]:
    """Single workout owned by user_id, or None"""
    query = (
        client.table('workouts')
        .select('*')
        .eq('id', workout_id)
        .eq('user_id', user_id)
        .limit(1)
    )
    return _first(_run('fetch_workout', query))


def fetch_exercises(client, workout_id) -> List[ExerciseRow]:
    """Exercises of a workout with their machine joined in"""
    query = (
        client.table('exercises')
        .select(f'{EXERCISE_COLUMNS}, machines(id, name, type)')
        .eq('workout_id', workout_id)
        .order('created_at')
    )
    return _run('fetch_exercises', query)


def list_workouts(client, user_id, since=None, until=None, ascending=False, with_exercises=False) -> List[WorkoutRow]:
    """
    Workouts for a user, optionally bounded by start_time.

    since/until are datetimes (inclusive). with_exercises embeds the
    exercise rows of each workout under 'exercises'.
    """
    columns = '*, exercises(*, machines(id, name, type))' if with_exercises else '*'
    query = client.table('workouts').select(columns).eq('user_id', user_id)
    if since is not None:
        query = query.gte('start_time', since.isoformat())
    if until is not None:
        query = query.lte('start_time', until.isoformat())
    query = query.order('start_time', desc=not ascending)
    return _run('list_workouts', query)


def insert_workout(client, row) -> WorkoutRow:
    """Insert a workout and return the created row"""
    created = _first(_run('insert_workout', client.table('workouts').insert(row)))
    if not created:
        raise QueryError('insert_workout', 'Workout created but no data returned')
    return created


def delete_workout(client, workout_id, user_id):
    """Delete a workout and its exercises; returns True when a row was removed"""
    if not fetch_workout(client, workout_id, user_id):
        return False
    _run('delete_exercises', client.table('exercises').delete().eq('workout_id', workout_id))
    deleted = _run(
        'delete_workout',
        client.table('workouts').delete().eq('id', workout_id).eq('user_id', user_id),
    )
    return len(deleted) > 0


# ============================================================================
# Exercises
# ============================================================================

def insert_exercises(client, rows) -> List[ExerciseRow]:
    """Insert all exercises of a workout in a single batch"""
    if not rows:
        return []
    return _run('insert_exercises', client.table('exercises').insert(list(rows)))


def list_recent_exercises(client, user_id, limit=None) -> List[ExerciseRow]:
    """Exercises across a user's workouts, newest first, with workout and machine"""
    query = (
        client.table('exercises')
        .select('*, workouts!inner(*), machines!inner(*)')
        .eq('workouts.user_id', user_id)
        .order('created_at', desc=True)
    )
    if limit:
        query = query.limit(limit)
    return _run('list_recent_exercises', query)


def last_exercises_by_machine(client, user_id) -> Dict[str, ExerciseRow]:
    """Most recent exercise row per machine id for a user"""
    query = (
        client.table('exercises')
        .select('*, workouts!inner(user_id)')
        .eq('workouts.user_id', user_id)
        .order('created_at', desc=True)
    )
    latest: Dict[str, ExerciseRow] = {}
    for row in _run('last_exercises_by_machine', query):
        # Rows arrive newest first, so the first one seen per machine wins
        machine_id = row.get('machine_id')
        if machine_id and machine_id not in latest:
            latest[machine_id] = row
    return latest


def fetch_exercise(client, exercise_id) -> Optional[ExerciseRow]:
    rows = _run('fetch_exercise', client.table('exercises').select('*').eq('id', exercise_id).limit(1))
    return _first(rows)


def exercise_history(client, machine_id, user_id, exclude_id=None, limit=10) -> List[ExerciseRow]:
    """The user's previous exercises on the same machine, newest first"""
    query = (
        client.table('exercises')
        .select(f'{EXERCISE_COLUMNS}, workouts!inner(user_id)')
        .eq('machine_id', machine_id)
        .eq('workouts.user_id', user_id)
    )
    if exclude_id:
        query = query.neq('id', exclude_id)
    query = query.order('created_at', desc=True).limit(limit)
    return _run('exercise_history', query)


# ============================================================================
# Profile
# ============================================================================

def get_profile(client, user_id) -> Optional[UserProfile]:
    rows = _run('get_profile', client.table('users').select('*').eq('id', user_id).limit(1))
    return _first(rows)


def update_profile(client, user_id, fields: Dict[str, Any]) -> Optional[UserProfile]:
    """Update whitelisted profile columns and stamp updated_at"""
    values = {k: v for k, v in fields.items() if k in PROFILE_FIELDS}
    values['updated_at'] = datetime.now(timezone.utc).isoformat()
    rows = _run('update_profile', client.table('users').update(values).eq('id', user_id))
    return _first(rows)
