#!/usr/bin/env python3
"""
Progress & History
Dashboard summaries, chart series and display formatting for stored workouts
"""

from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional

STRENGTH_MACHINES = ['Leg Press', 'Chest Press', 'Shoulder Press', 'Lat Pulldown', 'Cable Row', 'Smith Machine']
CARDIO_MACHINES = ['Treadmill', 'Elliptical', 'Stationary Bike', 'Rowing Machine']
HISTORY_FILTERS = ('all', 'strength', 'cardio')


def parse_timestamp(value, tz=None) -> Optional[datetime]:
    """Parse a Supabase timestamptz string into an aware datetime in tz (local time by default)"""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace('Z', '+00:00'))
    except (AttributeError, ValueError):
        return None
    return parsed.astimezone(tz)


def day_bounds(day: date, tz=None):
    """First and last instant of a calendar day in tz"""
    start = datetime.combine(day, time.min)
    end = datetime.combine(day, time.max)
    if tz is None:
        return start.astimezone(), end.astimezone()
    return start.replace(tzinfo=tz), end.replace(tzinfo=tz)


def start_of_week(day: date) -> date:
    """Sunday on or before day"""
    return day - timedelta(days=(day.weekday() + 1) % 7)


def workout_duration_seconds(workout) -> float:
    start = parse_timestamp(workout.get('start_time'))
    end = parse_timestamp(workout.get('end_time'))
    if not start or not end:
        return 0
    return (end - start).total_seconds()


def machine_of(exercise) -> Dict[str, Any]:
    """Joined machine row, whichever embed name the query used"""
    return exercise.get('machines') or exercise.get('machine') or {}


# ============================================================================
# Formatting
# ============================================================================

def format_duration(seconds) -> str:
    """125 -> '2:05'"""
    seconds = int(seconds or 0)
    return f"{seconds // 60}:{seconds % 60:02d}"


def format_duration_words(seconds) -> str:
    """125 -> '2m 5s', 120 -> '2m'"""
    seconds = int(seconds or 0)
    minutes, remaining = divmod(seconds, 60)
    return f"{minutes}m {remaining}s" if remaining > 0 else f"{minutes}m"


def format_distance(meters) -> str:
    return f"{meters / 1000:.2f}km" if meters >= 1000 else f"{meters}m"


def exercise_details(exercise) -> str:
    """Compact detail column: weight, sets x reps, distance"""
    parts = []
    if exercise.get('weight_kg'):
        parts.append(f"{exercise['weight_kg']}kg")
    if exercise.get('sets') and exercise.get('repetitions'):
        parts.append(f"{exercise['sets']}×{exercise['repetitions']}")
    if exercise.get('distance_meters'):
        parts.append(f"{exercise['distance_meters']}m")
    return ' '.join(parts)


# ============================================================================
# Dashboard
# ============================================================================

def today_summary(workouts) -> Dict[str, Any]:
    """Totals across the given (today's) workouts"""
    total_calories = sum(w.get('total_calories') or 0 for w in workouts)
    exercise_count = sum(len(w.get('exercises') or []) for w in workouts)
    total_duration = sum(workout_duration_seconds(w) for w in workouts)
    return {
        'total_calories': total_calories,
        'total_duration': total_duration,
        'exercise_count': exercise_count,
        'duration_display': f"{int(total_duration // 60)}m {int(total_duration % 60)}s",
    }


def weekly_chart_data(workouts, today: date, tz=None) -> List[Dict[str, Any]]:
    """One point per day of the current week (Sunday first)"""
    week_start = start_of_week(today)
    by_day = {}
    for workout in workouts:
        started = parse_timestamp(workout.get('start_time'), tz)
        if started:
            by_day.setdefault(started.date(), []).append(workout)

    points = []
    for offset in range(7):
        day = week_start + timedelta(days=offset)
        day_workouts = by_day.get(day, [])
        points.append({
            'date': day.strftime('%a'),
            'day': day.isoformat(),
            'calories': sum(w.get('total_calories') or 0 for w in day_workouts),
            'duration': round(sum(workout_duration_seconds(w) for w in day_workouts) / 60, 1),
            'exercises': sum(len(w.get('exercises') or []) for w in day_workouts),
        })
    return points


def recent_activity(exercises, tz=None) -> List[Dict[str, Any]]:
    """Rows for the recent-activity table"""
    rows = []
    for ex in exercises:
        created = parse_timestamp(ex.get('created_at'), tz)
        rows.append({
            'id': ex.get('id'),
            'workout_id': ex.get('workout_id'),
            'date': f"{created:%b} {created.day}, {created.year}" if created else '',
            'machine': machine_of(ex).get('name', ''),
            'duration': f"{int(ex.get('duration_seconds') or 0) // 60}m",
            'calories': ex.get('calories_burned'),
            'details': exercise_details(ex),
        })
    return rows


# ============================================================================
# History
# ============================================================================

def workout_dates(workouts, tz=None) -> List[str]:
    """Distinct calendar days with a workout, newest first"""
    days = set()
    for workout in workouts:
        started = parse_timestamp(workout.get('start_time'), tz)
        if started:
            days.add(started.date())
    return [d.isoformat() for d in sorted(days, reverse=True)]


def filter_exercises(exercises, filter_type='all'):
    """Keep strength or cardio machines only; 'all' keeps everything"""
    if filter_type not in HISTORY_FILTERS:
        raise ValueError(f"Unknown filter: {filter_type}")
    if filter_type == 'all':
        return list(exercises)
    names = STRENGTH_MACHINES if filter_type == 'strength' else CARDIO_MACHINES
    return [ex for ex in exercises if machine_of(ex).get('name') in names]


# ============================================================================
# Charts
# ============================================================================

def machine_type_distribution(exercises) -> List[Dict[str, Any]]:
    """Exercise count per machine type, for the pie chart"""
    counts = OrderedDict()
    for ex in exercises:
        machine_type = machine_of(ex).get('type') or ex.get('machine_type') or 'unknown'
        counts[machine_type] = counts.get(machine_type, 0) + 1
    return [{'name': name.capitalize(), 'value': value} for name, value in counts.items()]


def calories_by_exercise(exercises) -> List[Dict[str, Any]]:
    return [
        {'name': machine_of(ex).get('name') or 'Unknown', 'calories': ex.get('calories_burned') or 0}
        for ex in exercises
    ]


def exercise_history_points(history, current_id=None, tz=None) -> List[Dict[str, Any]]:
    """Per-session series for one machine's history chart"""
    points = []
    for item in history:
        created = parse_timestamp(item.get('created_at'), tz)
        points.append({
            'name': created.strftime('%m/%d') if created else '',
            'duration': round((item.get('duration_seconds') or 0) / 60),
            'calories': item.get('calories_burned'),
            'weight': item.get('weight_kg') or 0,
            'distance': item.get('distance_meters') or 0,
            'incline': item.get('incline_degrees') or 0,
            'id': item.get('id'),
            'current': item.get('id') == current_id,
        })
    return points


def workout_detail(workout, exercises) -> Dict[str, Any]:
    """Workout with flattened exercises, total exercise time and chart series"""
    flattened = []
    for ex in exercises:
        machine = machine_of(ex)
        flattened.append(dict(
            ex,
            machine_name=machine.get('name') or 'Unknown Machine',
            machine_type=machine.get('type') or 'unknown',
            duration_display=format_duration(ex.get('duration_seconds')),
            distance_display=format_distance(ex['distance_meters']) if ex.get('distance_meters') else None,
        ))
    total_duration = sum(ex.get('duration_seconds') or 0 for ex in exercises)
    return dict(
        workout,
        exercises=flattened,
        total_duration=total_duration,
        total_duration_display=format_duration_words(total_duration),
        charts={
            'machine_types': machine_type_distribution(exercises),
            'calories': calories_by_exercise(exercises),
        },
    )


def workouts_to_markdown(workouts, tz=None) -> str:
    """Markdown export of workouts with their exercises"""
    content = "# Workout History\n\n"
    for workout in workouts:
        started = parse_timestamp(workout.get('start_time'), tz)
        heading = started.strftime('%m/%d/%y %I:%M %p') if started else workout.get('start_time', '')
        content += f"## {heading}\n\n"
        content += f"Calories: {workout.get('total_calories') or 0}\n\n"
        for ex in workout.get('exercises') or []:
            name = machine_of(ex).get('name') or ex.get('machine_id', '')
            line = f"- {name}: {format_duration_words(ex.get('duration_seconds'))}"
            details = exercise_details(ex)
            if details:
                line += f", {details}"
            content += line + "\n"
        if workout.get('notes'):
            content += f"\n{workout['notes']}\n"
        content += "\n---\n\n"
    return content
