"""
Shared fixtures: a fake Supabase client that records query chains,
and a Flask test client wired to it
"""

import os
import time
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

os.environ.setdefault('SUPABASE_URL', 'https://example.supabase.co')
os.environ.setdefault('SUPABASE_ANON_KEY', 'anon-key')
os.environ['TZ'] = 'UTC'
time.tzset()
os.environ.pop('TIMEZONE', None)

import app as gym_app  # noqa: E402

MACHINES = [
    {'id': 'm-leg', 'name': 'Leg Press', 'type': 'strength'},
    {'id': 'm-row', 'name': 'Rowing Machine', 'type': 'cardio'},
    {'id': 'm-stair', 'name': 'Stair Climber', 'type': 'cardio'},
    {'id': 'm-tread', 'name': 'Treadmill', 'type': 'cardio'},
]


class FakeQuery:
    """Chainable stand-in for a postgrest request builder"""

    def __init__(self, db, table):
        self.db = db
        self.table = table
        self.calls = []
        self.operation = 'select'
        self.payload = None

    def _chain(name):
        def method(self, *args, **kwargs):
            self.calls.append((name, args, kwargs))
            return self
        return method

    select = _chain('select')
    eq = _chain('eq')
    neq = _chain('neq')
    gte = _chain('gte')
    lte = _chain('lte')
    order = _chain('order')
    limit = _chain('limit')
    del _chain

    def insert(self, payload):
        self.operation = 'insert'
        self.payload = payload
        self.calls.append(('insert', (payload,), {}))
        return self

    def update(self, payload):
        self.operation = 'update'
        self.payload = payload
        self.calls.append(('update', (payload,), {}))
        return self

    def delete(self):
        self.operation = 'delete'
        self.calls.append(('delete', (), {}))
        return self

    def filters(self, name):
        return [args for call, args, _ in self.calls if call == name]

    def execute(self):
        self.db.executed.append(self)
        queued = self.db.queued.get(self.table)
        if queued:
            result = queued.pop(0)
            if isinstance(result, Exception):
                raise result
            return SimpleNamespace(data=result)

        if self.operation == 'insert':
            payload = self.payload if isinstance(self.payload, list) else [self.payload]
            created = []
            for row in payload:
                self.db.counter += 1
                created.append(dict(row, id=f"{self.table}-{self.db.counter}"))
            return SimpleNamespace(data=created)

        rows = self.db.rows.get(self.table, [])
        # Only plain columns are filtered; embedded filters like workouts.user_id are ignored
        for column, value in self.filters('eq'):
            if '.' not in column:
                rows = [r for r in rows if r.get(column) == value]
        for column, value in self.filters('neq'):
            rows = [r for r in rows if r.get(column) != value]
        if self.operation == 'update':
            rows = [dict(r, **self.payload) for r in rows]
        return SimpleNamespace(data=[dict(r) for r in rows])


class FakeSupabase:
    def __init__(self):
        self.rows = {'machines': [dict(m) for m in MACHINES]}
        self.queued = {}
        self.queries = []
        self.executed = []
        self.counter = 0
        self.auth = MagicMock()
        self.postgrest = MagicMock()

    def table(self, name):
        query = FakeQuery(self, name)
        self.queries.append(query)
        return query

    def queue(self, table, result):
        """Result for the next executed query on table: rows, or an exception to raise"""
        self.queued.setdefault(table, []).append(result)

    def executed_on(self, table, operation=None):
        return [q for q in self.executed if q.table == table and (operation is None or q.operation == operation)]


def auth_response(user_id='user-1', email='lifter@example.com', expires_in=3600):
    return SimpleNamespace(
        session=SimpleNamespace(
            access_token=f'access-{user_id}',
            refresh_token=f'refresh-{user_id}',
            expires_at=int(time.time()) + expires_in,
        ),
        user=SimpleNamespace(id=user_id, email=email),
    )


STUB_INSIGHTS = {
    'ai_notes': 'Analysis: steady session.',
    'ai_calculated_calories': 321,
    'ai_overall_recommendations': 'Recommendations: add intervals.',
    'fallback': False,
}


@pytest.fixture
def machines():
    return [dict(m) for m in MACHINES]


@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def insight_calls(monkeypatch):
    """Replace the AI call in the app; returns the workout data it was given"""
    calls = []

    def fake_insights(workout_data, tz=None):
        calls.append(workout_data)
        return dict(STUB_INSIGHTS)

    monkeypatch.setattr(gym_app, 'get_workout_insights', fake_insights)
    return calls


@pytest.fixture
def client(fake_db, insight_calls, monkeypatch):
    monkeypatch.setattr(gym_app, 'get_client', lambda access_token=None: fake_db)
    gym_app.app.config['TESTING'] = True
    # Test client talks plain http
    gym_app.app.config['SESSION_COOKIE_SECURE'] = False
    with gym_app.app.test_client() as test_client:
        yield test_client


@pytest.fixture
def auth_client(client):
    """Test client with a logged-in session"""
    with client.session_transaction() as sess:
        sess['user_id'] = 'user-1'
        sess['email'] = 'lifter@example.com'
        sess['access_token'] = 'access-user-1'
        sess['refresh_token'] = 'refresh-user-1'
        sess['expires_at'] = int(time.time()) + 3600
    return client
