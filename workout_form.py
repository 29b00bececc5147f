#!/usr/bin/env python3
"""
Workout Entry Form
Server-side state for the new-workout form: one entry per exercise,
with the editable fields depending on the machine chosen
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

DISTANCE_OPTIONS = [(i + 1) * 100 for i in range(20)]  # 100m - 2000m
WEIGHT_OPTIONS = [9, 14, 18, 23, 27, 32, 36, 41, 46, 50, 55, 59, 64, 68, 73, 77, 82, 86, 91, 96, 100, 105, 109]
SETS_OPTIONS = list(range(1, 6))
REPS_OPTIONS = [5, 7, 10, 12, 15, 18]
RESISTANCE_LEVELS = list(range(1, 21))
INCLINE_OPTIONS = list(range(1, 16))  # degrees
SPEED_OPTIONS = [(i + 1) * 0.5 for i in range(20)]  # 0.5 - 10
INTENSITY_OPTIONS = ['Low', 'Medium', 'High', 'Maximum']  # stored as 1-4
RPM_OPTIONS = [40, 50, 60, 70, 80, 90, 100, 110, 120]
STRIDE_RATE_OPTIONS = [100, 120, 140, 160, 180, 200]  # strides per minute
STROKES_OPTIONS = [20, 24, 26, 28, 30, 32, 34, 36]  # strokes per minute
DURATION_OPTIONS = [
    {'label': '5 minutes', 'value': 300},
    {'label': '10 minutes', 'value': 600},
    {'label': '15 minutes', 'value': 900},
    {'label': '20 minutes', 'value': 1200},
    {'label': '25 minutes', 'value': 1500},
    {'label': '30 minutes', 'value': 1800},
    {'label': '1 hour', 'value': 3600},
]

DEFAULT_DURATION = DURATION_OPTIONS[1]['value']
DEFAULT_SETS = 3
DEFAULT_REPS = 10
# Drafts live in the session cookie, which browsers cap at ~4 KB
MAX_NOTES_LENGTH = 500

FIELD_OPTIONS = {
    'duration_seconds': [d['value'] for d in DURATION_OPTIONS],
    'distance_meters': DISTANCE_OPTIONS,
    'incline_degrees': INCLINE_OPTIONS,
    'speed': SPEED_OPTIONS,
    'resistance_level': RESISTANCE_LEVELS,
    'stride_rate': STRIDE_RATE_OPTIONS,
    'rpm': RPM_OPTIONS,
    'strokes_per_minute': STROKES_OPTIONS,
    'intensity_level': list(range(1, len(INTENSITY_OPTIONS) + 1)),
    'weight_kg': WEIGHT_OPTIONS,
    'sets': SETS_OPTIONS,
    'repetitions': REPS_OPTIONS,
}

FIELD_TYPES = {
    'duration_seconds': int,
    'calories_burned': int,
    'notes': str,
    'distance_meters': int,
    'incline_degrees': int,
    'speed': float,
    'resistance_level': int,
    'stride_rate': int,
    'rpm': int,
    'strokes_per_minute': int,
    'intensity_level': int,
    'weight_kg': int,
    'sets': int,
    'repetitions': int,
}

COMMON_FIELDS = ('duration_seconds', 'calories_burned', 'notes')
STRENGTH_FIELDS = ('weight_kg', 'sets', 'repetitions')
MACHINE_FIELDS = {
    'Treadmill': ('distance_meters', 'incline_degrees', 'speed'),
    'Elliptical': ('resistance_level', 'stride_rate'),
    'Stationary Bike': ('resistance_level', 'rpm'),
    'Rowing Machine': ('resistance_level', 'strokes_per_minute'),
    'Stair Climber': ('speed', 'intensity_level'),
}

# Every per-machine column, in the order they are written to the exercises table
OPTIONAL_FIELDS = (
    'weight_kg', 'incline_degrees', 'distance_meters', 'resistance_level', 'stride_rate',
    'rpm', 'strokes_per_minute', 'speed', 'intensity_level', 'sets', 'repetitions',
)


class FormError(ValueError):
    """Invalid change to the workout form"""


def fields_for_machine(machine: Optional[Dict[str, Any]]) -> List[str]:
    """Editable fields for a machine; only the common ones until a machine is picked"""
    fields = list(COMMON_FIELDS)
    if not machine:
        return fields
    fields.extend(MACHINE_FIELDS.get(machine.get('name'), ()))
    if machine.get('type') == 'strength':
        fields.extend(STRENGTH_FIELDS)
    return fields


def new_entry(machine_id='', machine=None) -> Dict[str, Any]:
    """Blank exercise entry with the form defaults"""
    strength = machine is None or machine.get('type') == 'strength'
    entry = {
        'machine_id': machine_id,
        'duration_seconds': DEFAULT_DURATION,
        'calories_burned': 0,
        'notes': '',
        'last_used': False,
    }
    for field in OPTIONAL_FIELDS:
        entry[field] = None
    # Sets/reps are pre-filled until a non-strength machine is chosen
    entry['sets'] = DEFAULT_SETS if strength else None
    entry['repetitions'] = DEFAULT_REPS if strength else None
    return entry


def coerce_value(field, value):
    """Convert a submitted form value to the field's type and check it against its options"""
    if field not in FIELD_TYPES:
        raise FormError(f"Unknown field: {field}")

    if value is None or value == '':
        if field == 'duration_seconds':
            raise FormError("Duration is required")
        if field == 'notes':
            return ''
        if field == 'calories_burned':
            return 0
        return None

    if field == 'intensity_level' and isinstance(value, str) and value in INTENSITY_OPTIONS:
        return INTENSITY_OPTIONS.index(value) + 1

    cast = FIELD_TYPES[field]
    if cast is str:
        text = str(value).strip()
        if len(text) > MAX_NOTES_LENGTH:
            raise FormError(f"Notes cannot be longer than {MAX_NOTES_LENGTH} characters")
        return text
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise FormError(f"Invalid value for {field}: {value!r}")
    if cast is int:
        if not number.is_integer():
            raise FormError(f"{field} must be a whole number")
        coerced = int(number)
    else:
        coerced = number

    options = FIELD_OPTIONS.get(field)
    if options is not None and coerced not in options:
        raise FormError(f"{value!r} is not a valid choice for {field}")
    if field == 'calories_burned' and coerced < 0:
        raise FormError("Calories cannot be negative")
    return coerced


def build_last_used(machines, latest_rows) -> Dict[str, Dict[str, Any]]:
    """
    Turn the newest stored exercise per machine into pre-filled form entries.

    Only fields that apply to the machine are carried over; missing durations
    fall back to the default and strength machines get default sets/reps when
    none were stored.
    """
    by_id = {m['id']: m for m in machines}
    last_used = {}
    for machine_id, row in latest_rows.items():
        machine = by_id.get(machine_id)
        if not machine:
            continue
        entry = new_entry(machine_id, machine)
        allowed = fields_for_machine(machine)
        for field in OPTIONAL_FIELDS:
            if field in allowed and row.get(field) is not None:
                entry[field] = row[field]
        entry['duration_seconds'] = row.get('duration_seconds') or DEFAULT_DURATION
        entry['calories_burned'] = row.get('calories_burned') or 0
        entry['notes'] = row.get('notes') or ''
        entry['last_used'] = True
        last_used[machine_id] = entry
    return last_used


class WorkoutDraft:
    """
    In-progress workout: a fixed start time plus an ordered list of exercise entries.

    The machine catalog and last-used entries are looked up fresh on each
    request; only start_time and the entries are persisted via to_dict().
    """

    def __init__(self, machines, last_used=None, start_time=None, exercises=None):
        self.machines = {m['id']: m for m in machines}
        self.last_used = last_used or {}
        self.start_time = start_time or datetime.now(timezone.utc).isoformat()
        self.exercises: List[Dict[str, Any]] = exercises if exercises is not None else []

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def machine_for(self, index) -> Optional[Dict[str, Any]]:
        return self.machines.get(self._entry(index)['machine_id'])

    def visible_fields(self, index) -> List[str]:
        return fields_for_machine(self.machine_for(index))

    def _entry(self, index):
        if not isinstance(index, int) or index < 0 or index >= len(self.exercises):
            raise FormError(f"No exercise at position {index}")
        return self.exercises[index]

    # ------------------------------------------------------------------
    # Edits
    # ------------------------------------------------------------------

    def add_exercise(self):
        """Append a blank exercise and return its index"""
        self.exercises.append(new_entry())
        return len(self.exercises) - 1

    def remove_exercise(self, index):
        self._entry(index)
        del self.exercises[index]

    def update_exercise(self, index, field, value):
        """
        Change one field of an exercise.

        Choosing a machine replaces the entry with the user's last settings on
        that machine, or resets it to defaults. Any other edit marks the entry
        as no longer matching the last-used settings.
        """
        entry = self._entry(index)

        if field == 'machine_id':
            if not isinstance(value, str):
                raise FormError(f"Unknown machine: {value!r}")
            machine = self.machines.get(value)
            if not machine:
                raise FormError(f"Unknown machine: {value}")
            previous = self.last_used.get(value)
            if previous:
                updated = dict(previous)
                updated['machine_id'] = value
                updated['last_used'] = True
            else:
                updated = new_entry(value, machine)
            self.exercises[index] = updated
            return updated

        allowed = self.visible_fields(index)
        if field not in allowed:
            machine = self.machine_for(index)
            where = machine['name'] if machine else 'an exercise without a machine'
            raise FormError(f"{field} does not apply to {where}")

        entry[field] = coerce_value(field, value)
        entry['last_used'] = False
        return entry

    # ------------------------------------------------------------------
    # Totals / export
    # ------------------------------------------------------------------

    def total_duration_seconds(self):
        return sum(ex['duration_seconds'] for ex in self.exercises)

    def total_calories(self):
        return sum(ex.get('calories_burned') or 0 for ex in self.exercises)

    def validate_for_finish(self):
        if not self.exercises:
            raise FormError("Add at least one exercise before finishing")
        for i, ex in enumerate(self.exercises):
            if ex['machine_id'] not in self.machines:
                raise FormError(f"Exercise {i + 1} has no machine selected")

    def to_workout_data(self, end_time=None) -> Dict[str, Any]:
        """Summary handed to the AI insights call"""
        end_time = end_time or datetime.now(timezone.utc).isoformat()
        exercises = []
        for ex in self.exercises:
            machine = self.machines.get(ex['machine_id']) or {}
            exercises.append({
                'machine_name': machine.get('name') or 'Unknown',
                'machine_type': machine.get('type') or 'Unknown',
                'weight_kg': ex.get('weight_kg'),
                'incline_degrees': ex.get('incline_degrees'),
                'duration_seconds': ex['duration_seconds'],
                'distance_meters': ex.get('distance_meters'),
                'notes': ex.get('notes'),
            })
        return {
            'exercises': exercises,
            'total_duration_seconds': self.total_duration_seconds(),
            'start_time': self.start_time,
            'end_time': end_time,
        }

    def exercise_rows(self, workout_id) -> List[Dict[str, Any]]:
        """Rows for the exercises table; fields that do not apply to the machine are null"""
        rows = []
        for i in range(len(self.exercises)):
            ex = self.exercises[i]
            allowed = self.visible_fields(i)
            row = {
                'workout_id': workout_id,
                'machine_id': ex['machine_id'],
                'duration_seconds': ex['duration_seconds'],
                'calories_burned': ex.get('calories_burned') or 0,
                'notes': ex.get('notes') or None,
            }
            for field in OPTIONAL_FIELDS:
                row[field] = ex.get(field) if field in allowed else None
            rows.append(row)
        return rows

    # ------------------------------------------------------------------
    # Session storage
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        # Drop nulls to keep the session cookie small
        return {
            'start_time': self.start_time,
            'exercises': [{k: v for k, v in ex.items() if v is not None} for ex in self.exercises],
        }

    @classmethod
    def from_dict(cls, data, machines, last_used=None):
        exercises = []
        for stored in data.get('exercises', []):
            entry = new_entry()
            for field in OPTIONAL_FIELDS:
                entry[field] = None
            entry.update(stored)
            exercises.append(entry)
        return cls(machines, last_used=last_used, start_time=data.get('start_time'), exercises=exercises)

    def as_json(self) -> Dict[str, Any]:
        """Draft plus per-exercise visible fields, for the API"""
        return {
            'start_time': self.start_time,
            'total_duration_seconds': self.total_duration_seconds(),
            'exercises': [
                dict(ex, index=i, visible_fields=self.visible_fields(i))
                for i, ex in enumerate(self.exercises)
            ],
        }


def form_options() -> Dict[str, Any]:
    """Option lists for every select in the form"""
    return {
        'durations': DURATION_OPTIONS,
        'distances': DISTANCE_OPTIONS,
        'weights': WEIGHT_OPTIONS,
        'sets': SETS_OPTIONS,
        'repetitions': REPS_OPTIONS,
        'resistance_levels': RESISTANCE_LEVELS,
        'inclines': INCLINE_OPTIONS,
        'speeds': SPEED_OPTIONS,
        'intensities': [{'label': label, 'value': i + 1} for i, label in enumerate(INTENSITY_OPTIONS)],
        'rpms': RPM_OPTIONS,
        'stride_rates': STRIDE_RATE_OPTIONS,
        'strokes_per_minute': STROKES_OPTIONS,
    }
