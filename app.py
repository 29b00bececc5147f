#!/usr/bin/env python3
"""
Gym Tracker
Log machine workouts, follow progress and get AI commentary on each session
"""

import logging
import os
import secrets
import time
from datetime import date, datetime, timedelta, timezone
from functools import wraps
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv
from flask import Flask, Response, jsonify, redirect, render_template, request, session
from supabase import AuthApiError
from werkzeug.middleware.proxy_fix import ProxyFix

from insights import get_workout_insights
from progress import (
    day_bounds,
    exercise_history_points,
    filter_exercises,
    recent_activity,
    start_of_week,
    today_summary,
    weekly_chart_data,
    workout_dates,
    workout_detail,
    workouts_to_markdown,
)
from queries import (
    PROFILE_FIELDS,
    QueryError,
    delete_workout,
    exercise_history,
    fetch_exercise,
    fetch_exercises,
    fetch_workout,
    get_machine,
    get_profile,
    insert_exercises,
    insert_workout,
    last_exercises_by_machine,
    list_machines,
    list_recent_exercises,
    list_workouts,
    update_profile,
)
from supabase_client import check_supabase_connection, get_client, is_configured
from workout_form import FormError, WorkoutDraft, build_last_used, form_options

load_dotenv()

logging.basicConfig(
    level=os.getenv('LOG_LEVEL', 'INFO').upper(),
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)
logger = logging.getLogger(__name__)

app = Flask(__name__)
# Production when running behind a platform proxy or with an explicit SECRET_KEY
is_production_env = (
    os.getenv('RAILWAY_ENVIRONMENT') is not None
    or os.getenv('RENDER') is not None
    or os.getenv('SECRET_KEY') is not None
)

if is_production_env:
    app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)
# IMPORTANT: set SECRET_KEY in production or sessions reset on every restart
app.secret_key = os.getenv('SECRET_KEY', secrets.token_hex(32))
app.config['PERMANENT_SESSION_LIFETIME'] = timedelta(days=30)
is_production = is_production_env or os.getenv('FLASK_ENV') == 'production'
app.config['SESSION_COOKIE_SECURE'] = is_production
app.config['SESSION_COOKIE_HTTPONLY'] = True
app.config['SESSION_COOKIE_SAMESITE'] = 'Lax'

if is_configured():
    print("✓ Supabase configured")
else:
    print("⚠ Supabase not configured, set SUPABASE_URL and SUPABASE_ANON_KEY")

PROTECTED_PATHS = ('/dashboard', '/profile', '/workout')
AUTH_PATHS = ('/auth/login', '/auth/signup')

# Refresh access tokens this many seconds before they expire
TOKEN_REFRESH_MARGIN = 60
DRAFT_KEY = 'workout_draft'


def get_timezone():
    """Timezone used to bucket workouts into days (TIMEZONE env, server local time otherwise)"""
    name = os.getenv('TIMEZONE')
    if not name:
        return None
    try:
        return ZoneInfo(name)
    except ZoneInfoNotFoundError:
        logger.warning("Unknown TIMEZONE %r, using server local time", name)
        return None


def local_today():
    return datetime.now(get_timezone()).date()


# ============================================================================
# Authentication Helper Functions
# ============================================================================

class AuthRequired(Exception):
    """The request has no usable Supabase session"""


def get_current_user_id():
    """Get current user ID (Supabase auth uuid) from session"""
    user_id = session.get('user_id')
    if user_id and isinstance(user_id, str):
        return user_id
    return None


def require_auth(f):
    """Decorator to require authentication for routes"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not get_current_user_id():
            return jsonify({'error': 'Authentication required'}), 401
        return f(*args, **kwargs)
    return decorated_function


def store_auth_session(auth_session, user):
    """Keep the Supabase tokens in the Flask session"""
    session.permanent = True
    session['access_token'] = auth_session.access_token
    session['refresh_token'] = auth_session.refresh_token
    session['expires_at'] = auth_session.expires_at
    session['user_id'] = user.id
    session['email'] = user.email
    session.modified = True


def get_supabase():
    """Supabase client acting as the logged-in user, refreshing the access token when close to expiry"""
    access_token = session.get('access_token')
    if not access_token:
        raise AuthRequired()

    expires_at = session.get('expires_at')
    refresh_token = session.get('refresh_token')
    if expires_at and refresh_token and expires_at - TOKEN_REFRESH_MARGIN <= time.time():
        try:
            refreshed = get_client().auth.refresh_session(refresh_token)
        except AuthApiError as e:
            logger.info("Session refresh failed: %s", e)
            session.clear()
            raise AuthRequired()
        store_auth_session(refreshed.session, refreshed.user)
        access_token = refreshed.session.access_token

    return get_client(access_token)


@app.errorhandler(AuthRequired)
def handle_auth_required(e):
    return jsonify({'error': 'Authentication required'}), 401


@app.errorhandler(QueryError)
def handle_query_error(e):
    return jsonify({'error': str(e)}), 500


@app.errorhandler(FormError)
def handle_form_error(e):
    return jsonify({'error': str(e)}), 400


@app.before_request
def guard_pages():
    """Send anonymous visitors to login and logged-in users away from the auth pages"""
    path = request.path
    logged_in = get_current_user_id() is not None
    if not logged_in and path.startswith(PROTECTED_PATHS):
        return redirect('/auth/login')
    if logged_in and path.startswith(AUTH_PATHS):
        return redirect('/dashboard')
    return None


# ============================================================================
# Pages
# ============================================================================

@app.route('/')
def index():
    """Landing page: dashboard when logged in, login otherwise"""
    return redirect('/dashboard' if get_current_user_id() else '/auth/login')


@app.route('/auth/login')
def login_page():
    return render_template('index.html', page='login')


@app.route('/auth/signup')
def signup_page():
    return render_template('index.html', page='signup')


@app.route('/dashboard')
def dashboard_page():
    return render_template('index.html', page='dashboard')


@app.route('/profile')
def profile_page():
    return render_template('index.html', page='profile')


@app.route('/workout/new')
def new_workout_page():
    return render_template('index.html', page='new-workout')


@app.route('/workout/history')
def history_page():
    return render_template('index.html', page='history')


@app.route('/workout/detail/<workout_id>')
def workout_detail_page(workout_id):
    return render_template('index.html', page='workout-detail', resource_id=workout_id)


@app.route('/workout/exercise/<exercise_id>')
def exercise_detail_page(exercise_id):
    return render_template('index.html', page='exercise-detail', resource_id=exercise_id)


@app.route('/health')
def health_check():
    return jsonify({'status': 'ok', 'supabase_configured': is_configured()})


# ============================================================================
# Auth API
# ============================================================================

def _json_object():
    """Request body as a dict; a missing body counts as empty"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise FormError("Request body must be a JSON object")
    return data


def _credentials():
    data = _json_object()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''
    return email, password


@app.route('/api/register', methods=['POST'])
def register():
    """Sign up through Supabase Auth"""
    if not is_configured():
        return jsonify({'error': 'Supabase not available'}), 500

    email, password = _credentials()
    if not email or not password:
        return jsonify({'error': 'Email and password required'}), 400
    if '@' not in email:
        return jsonify({'error': 'Invalid email address'}), 400
    if len(password) < 6:
        return jsonify({'error': 'Password must be at least 6 characters'}), 400

    try:
        response = get_client().auth.sign_up({'email': email, 'password': password})
    except AuthApiError as e:
        return jsonify({'error': e.message}), 400

    if response.user is None:
        return jsonify({'error': 'Sign up failed'}), 400

    # No session means the project requires email confirmation first
    if response.session is None:
        return jsonify({
            'success': True,
            'confirmation_required': True,
            'email': email
        })

    store_auth_session(response.session, response.user)
    return jsonify({
        'success': True,
        'user_id': response.user.id,
        'email': email
    })


@app.route('/api/login', methods=['POST'])
def login():
    """Login with email and password"""
    if not is_configured():
        return jsonify({'error': 'Supabase not available'}), 500

    email, password = _credentials()
    if not email or not password:
        return jsonify({'error': 'Email and password required'}), 400

    try:
        response = get_client().auth.sign_in_with_password({'email': email, 'password': password})
    except AuthApiError as e:
        logger.info("Login failed for %s: %s", email, e.message)
        return jsonify({'error': 'Invalid email or password'}), 401

    store_auth_session(response.session, response.user)
    return jsonify({
        'success': True,
        'user_id': response.user.id,
        'email': response.user.email
    })


@app.route('/api/logout', methods=['POST'])
def logout():
    """Logout the current user"""
    session.clear()
    return jsonify({'success': True})


@app.route('/api/current-user', methods=['GET'])
def get_current_user():
    """Get current user info"""
    user_id = get_current_user_id()
    if not user_id:
        return jsonify({'authenticated': False}), 401

    return jsonify({
        'authenticated': True,
        'user_id': user_id,
        'email': session.get('email', '')
    })


# ============================================================================
# Workout entry form
# ============================================================================

def load_draft(client, with_last_used=False):
    """Rebuild the in-progress workout from the session, starting one if needed"""
    machines = list_machines(client)
    last_used = None
    if with_last_used:
        last_used = build_last_used(machines, last_exercises_by_machine(client, get_current_user_id()))
    data = session.get(DRAFT_KEY)
    if data:
        return WorkoutDraft.from_dict(data, machines, last_used=last_used)
    return WorkoutDraft(machines, last_used=last_used)


def save_draft(draft):
    session[DRAFT_KEY] = draft.to_dict()
    session.modified = True


def draft_response(draft, **extra):
    payload = {'success': True, 'draft': draft.as_json()}
    payload.update(extra)
    return jsonify(payload)


@app.route('/api/machines', methods=['GET'])
@require_auth
def get_machines():
    """Machine catalog plus the option lists for the entry form"""
    machines = list_machines(get_supabase())
    return jsonify({'machines': machines, 'options': form_options()})


@app.route('/api/workout/draft', methods=['GET'])
@require_auth
def get_draft():
    draft = load_draft(get_supabase())
    save_draft(draft)
    return draft_response(draft, options=form_options(), machines=list(draft.machines.values()))


@app.route('/api/workout/draft', methods=['POST'])
@require_auth
def start_draft():
    """Start a fresh workout; the start time is fixed now"""
    session.pop(DRAFT_KEY, None)
    draft = load_draft(get_supabase())
    save_draft(draft)
    return draft_response(draft)


@app.route('/api/workout/draft', methods=['DELETE'])
@require_auth
def cancel_draft():
    session.pop(DRAFT_KEY, None)
    return jsonify({'success': True})


@app.route('/api/workout/draft/exercises', methods=['POST'])
@require_auth
def add_draft_exercise():
    """Add an exercise, optionally choosing its machine straight away"""
    data = _json_object()
    draft = load_draft(get_supabase(), with_last_used=bool(data.get('machine_id')))
    index = draft.add_exercise()
    if data.get('machine_id'):
        draft.update_exercise(index, 'machine_id', data['machine_id'])
    save_draft(draft)
    return draft_response(draft, index=index)


@app.route('/api/workout/draft/exercises/<int:index>', methods=['PATCH'])
@require_auth
def update_draft_exercise(index):
    """
    Update fields of one exercise.

    Body is an object of field -> value. machine_id is applied first, since
    choosing a machine replaces the entry with last-used values or defaults.
    """
    data = _json_object()
    if not data:
        return jsonify({'error': 'No fields to update'}), 400

    draft = load_draft(get_supabase(), with_last_used='machine_id' in data)
    if 'machine_id' in data:
        draft.update_exercise(index, 'machine_id', data['machine_id'])
    for field, value in data.items():
        if field != 'machine_id':
            draft.update_exercise(index, field, value)
    save_draft(draft)
    return draft_response(draft)


@app.route('/api/workout/draft/exercises/<int:index>', methods=['DELETE'])
@require_auth
def remove_draft_exercise(index):
    draft = load_draft(get_supabase())
    draft.remove_exercise(index)
    save_draft(draft)
    return draft_response(draft)


@app.route('/api/workout/draft/insights', methods=['POST'])
@require_auth
def draft_insights():
    """Preview the AI commentary for the workout so far"""
    draft = load_draft(get_supabase())
    draft.validate_for_finish()
    insights = get_workout_insights(draft.to_workout_data(), get_timezone())
    return jsonify({'success': True, 'insights': insights})


@app.route('/api/workout/draft/finish', methods=['POST'])
@require_auth
def finish_workout():
    """Analyze the workout, save it with its exercises and clear the draft"""
    client = get_supabase()
    user_id = get_current_user_id()
    draft = load_draft(client)
    draft.validate_for_finish()

    end_time = datetime.now(timezone.utc).isoformat()
    insights = get_workout_insights(draft.to_workout_data(end_time), get_timezone())

    # Prefer the AI figure; fall back to what was entered per exercise
    if insights and insights['ai_calculated_calories'] > 0:
        total_calories = insights['ai_calculated_calories']
    else:
        total_calories = draft.total_calories()

    try:
        workout = insert_workout(client, {
            'user_id': user_id,
            'start_time': draft.start_time,
            'end_time': end_time,
            'total_calories': total_calories,
            'notes': f"{insights['ai_notes']}\n\nRecommendations: {insights['ai_overall_recommendations']}",
            'ai_notes': insights['ai_notes'],
            'ai_calculated_calories': insights['ai_calculated_calories'],
            'ai_overall_recommendations': insights['ai_overall_recommendations'],
        })
    except QueryError as e:
        return jsonify({'error': f"Failed to save workout: {e.message}"}), 500

    try:
        insert_exercises(client, draft.exercise_rows(workout['id']))
    except QueryError as e:
        # Don't leave a workout without its exercises behind
        try:
            delete_workout(client, workout['id'], user_id)
        except QueryError:
            logger.error("Could not remove workout %s after failed exercise insert", workout['id'])
        return jsonify({'error': f"Failed to save exercises: {e.message}"}), 500

    session.pop(DRAFT_KEY, None)
    logger.info("Saved workout %s with %d exercises", workout['id'], len(draft.exercises))
    return jsonify({
        'success': True,
        'message': 'Workout completed and analyzed successfully!',
        'workout_id': workout['id'],
        'insights': insights
    })


# ============================================================================
# Dashboard
# ============================================================================

@app.route('/api/dashboard/summary', methods=['GET'])
@require_auth
def dashboard_summary():
    """Today's calories, duration and exercise count"""
    tz = get_timezone()
    start, _ = day_bounds(local_today(), tz)
    workouts = list_workouts(get_supabase(), get_current_user_id(), since=start, with_exercises=True)
    return jsonify({'success': True, 'summary': today_summary(workouts)})


@app.route('/api/dashboard/recent', methods=['GET'])
@require_auth
def dashboard_recent():
    """Most recent exercises across all workouts"""
    limit = request.args.get('limit', type=int)
    if limit is not None and (limit < 1 or limit > 100):
        return jsonify({'error': 'limit must be between 1 and 100'}), 400
    exercises = list_recent_exercises(get_supabase(), get_current_user_id(), limit=limit)
    return jsonify({'success': True, 'exercises': recent_activity(exercises, get_timezone())})


@app.route('/api/dashboard/weekly', methods=['GET'])
@require_auth
def dashboard_weekly():
    """Calories, minutes and exercise count for each day of this week"""
    tz = get_timezone()
    today = local_today()
    start, _ = day_bounds(start_of_week(today), tz)
    workouts = list_workouts(
        get_supabase(), get_current_user_id(), since=start, ascending=True, with_exercises=True
    )
    return jsonify({'success': True, 'data': weekly_chart_data(workouts, today, tz)})


# ============================================================================
# History
# ============================================================================

@app.route('/api/workouts/dates', methods=['GET'])
@require_auth
def get_workout_dates():
    """Days that have a workout, for the history calendar"""
    workouts = list_workouts(get_supabase(), get_current_user_id())
    return jsonify({'success': True, 'dates': workout_dates(workouts, get_timezone())})


@app.route('/api/workouts/by-date', methods=['GET'])
@require_auth
def get_workout_by_date():
    """Latest workout on a day, exercises filtered by machine category"""
    try:
        day = date.fromisoformat(request.args.get('date', ''))
    except ValueError:
        return jsonify({'error': 'date must be YYYY-MM-DD'}), 400
    filter_type = request.args.get('filter', 'all')

    start, end = day_bounds(day, get_timezone())
    workouts = list_workouts(get_supabase(), get_current_user_id(), since=start, until=end, with_exercises=True)
    if not workouts:
        return jsonify({'success': True, 'workout': None})

    workout = dict(workouts[0])
    try:
        workout['exercises'] = filter_exercises(workout.get('exercises') or [], filter_type)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400
    return jsonify({'success': True, 'workout': workout})


@app.route('/api/workouts/<workout_id>', methods=['GET'])
@require_auth
def get_workout(workout_id):
    """Workout with exercises, totals and chart series"""
    client = get_supabase()
    workout = fetch_workout(client, workout_id, get_current_user_id())
    if not workout:
        return jsonify({'error': 'Workout not found.'}), 404
    exercises = fetch_exercises(client, workout_id)
    return jsonify({'success': True, 'workout': workout_detail(workout, exercises)})


@app.route('/api/workouts/<workout_id>', methods=['DELETE'])
@require_auth
def remove_workout(workout_id):
    if not delete_workout(get_supabase(), workout_id, get_current_user_id()):
        return jsonify({'error': 'Workout not found.'}), 404
    return jsonify({'success': True})


@app.route('/api/exercises/<exercise_id>', methods=['GET'])
@require_auth
def get_exercise(exercise_id):
    """One exercise with its machine, workout start time and previous sessions on that machine"""
    client = get_supabase()
    exercise = fetch_exercise(client, exercise_id)
    if not exercise:
        return jsonify({'error': 'Exercise not found.'}), 404

    workout = fetch_workout(client, exercise['workout_id'], get_current_user_id())
    if not workout:
        return jsonify({'error': 'Exercise not found.'}), 404

    machine = get_machine(client, exercise['machine_id']) or {}
    history = exercise_history(client, exercise['machine_id'], get_current_user_id(), exclude_id=exercise_id)

    detail = dict(
        exercise,
        machine_name=machine.get('name') or 'Unknown Machine',
        machine_type=machine.get('type') or 'unknown',
        start_time=workout['start_time'],
    )
    comparison = None
    if len(history) >= 2:
        comparison = {'first': history[0], 'last': history[-1]}

    return jsonify({
        'success': True,
        'exercise': detail,
        'history': exercise_history_points(history, exercise_id, get_timezone()),
        'comparison': comparison
    })


@app.route('/api/export-workouts', methods=['GET'])
@require_auth
def export_workouts():
    """Export all workouts for the current user as markdown"""
    workouts = list_workouts(get_supabase(), get_current_user_id(), with_exercises=True)
    if not workouts:
        return jsonify({'error': 'No workouts found'}), 404

    return Response(
        workouts_to_markdown(workouts, get_timezone()),
        mimetype='text/markdown',
        headers={
            'Content-Disposition': f'attachment; filename=workout-history-{datetime.now().strftime("%Y%m%d")}.md'
        }
    )


# ============================================================================
# Profile
# ============================================================================

def _optional_number(value, name):
    if value is None or value == '':
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise FormError(f"{name} must be a number")
    if number <= 0:
        raise FormError(f"{name} must be positive")
    return number


@app.route('/api/profile', methods=['GET'])
@require_auth
def get_user_profile():
    profile = get_profile(get_supabase(), get_current_user_id()) or {}
    return jsonify({
        'success': True,
        'profile': {
            'full_name': profile.get('full_name') or '',
            'email': session.get('email', ''),
            'weight_kg': profile.get('weight_kg'),
            'height_cm': profile.get('height_cm'),
            'fitness_level': profile.get('fitness_level') or '',
        }
    })


@app.route('/api/profile', methods=['PUT'])
@require_auth
def update_user_profile():
    data = _json_object()
    fields = {k: v for k, v in data.items() if k in PROFILE_FIELDS}
    if 'weight_kg' in fields:
        fields['weight_kg'] = _optional_number(fields['weight_kg'], 'Weight')
    if 'height_cm' in fields:
        fields['height_cm'] = _optional_number(fields['height_cm'], 'Height')
    if not fields:
        return jsonify({'error': 'No profile fields to update'}), 400

    profile = update_profile(get_supabase(), get_current_user_id(), fields)
    return jsonify({
        'success': True,
        'message': 'Your profile has been updated successfully.',
        'profile': profile
    })


if __name__ == '__main__':
    port = int(os.getenv('PORT', '5001'))
    print("\n" + "="*50)
    print("Gym Tracker")
    print("="*50)
    if not is_configured():
        print("Supabase: NOT configured")
    elif check_supabase_connection():
        print("Supabase: ✓ connected")
    else:
        print("Supabase: ⚠ configured but unreachable")
    print(f"AI provider: {os.getenv('AI_PROVIDER', 'deepseek')}")
    print("="*50 + "\n")
    print(f"Starting server on http://localhost:{port}")
    print("Press Ctrl+C to stop\n")
    app.run(debug=not is_production, host='0.0.0.0', port=port)
