"""
Query builder tests against the fake Supabase client
Run with: python3 -m pytest tests/
"""

from datetime import datetime, timezone

import pytest
from postgrest.exceptions import APIError

from queries import (
    QueryError,
    delete_workout,
    exercise_history,
    get_machine,
    insert_exercises,
    insert_workout,
    last_exercises_by_machine,
    list_machines,
    list_recent_exercises,
    list_workouts,
    update_profile,
)


def api_error(message):
    return APIError({'message': message, 'code': '42501', 'hint': None, 'details': None})


class TestMachines:
    def test_list_ordered_by_name(self, fake_db):
        machines = list_machines(fake_db)
        assert len(machines) == 4
        assert fake_db.queries[0].filters('order') == [('name',)]

    def test_get_machine(self, fake_db):
        assert get_machine(fake_db, 'm-row')['name'] == 'Rowing Machine'
        assert get_machine(fake_db, 'missing') is None


class TestWorkouts:
    def test_list_workouts_range(self, fake_db):
        since = datetime(2024, 5, 12, tzinfo=timezone.utc)
        until = datetime(2024, 5, 12, 23, 59, 59, tzinfo=timezone.utc)
        list_workouts(fake_db, 'user-1', since=since, until=until, ascending=True, with_exercises=True)

        query = fake_db.queries[0]
        assert query.table == 'workouts'
        assert query.filters('select') == [('*, exercises(*, machines(id, name, type))',)]
        assert query.filters('eq') == [('user_id', 'user-1')]
        assert query.filters('gte') == [('start_time', '2024-05-12T00:00:00+00:00')]
        assert query.filters('lte') == [('start_time', '2024-05-12T23:59:59+00:00')]
        assert ('order', ('start_time',), {'desc': False}) in query.calls

    def test_list_workouts_newest_first_by_default(self, fake_db):
        list_workouts(fake_db, 'user-1')
        query = fake_db.queries[0]
        assert ('order', ('start_time',), {'desc': True}) in query.calls
        assert query.filters('gte') == []

    def test_insert_workout_returns_row(self, fake_db):
        row = insert_workout(fake_db, {'user_id': 'user-1', 'start_time': '2024-05-12T10:00:00+00:00'})
        assert row['id'].startswith('workouts-')

    def test_insert_workout_without_returned_row(self, fake_db):
        fake_db.queue('workouts', [])
        with pytest.raises(QueryError, match="no data returned"):
            insert_workout(fake_db, {'user_id': 'user-1'})

    def test_api_error_becomes_query_error(self, fake_db):
        fake_db.queue('workouts', api_error('permission denied for table workouts'))
        with pytest.raises(QueryError) as excinfo:
            list_workouts(fake_db, 'user-1')
        assert excinfo.value.operation == 'list_workouts'
        assert excinfo.value.message == 'permission denied for table workouts'
        assert str(excinfo.value) == 'list_workouts failed: permission denied for table workouts'

    def test_delete_missing_workout(self, fake_db):
        assert delete_workout(fake_db, 'w-404', 'user-1') is False
        assert fake_db.executed_on('exercises') == []

    def test_delete_removes_exercises_then_workout(self, fake_db):
        fake_db.rows['workouts'] = [{'id': 'w1', 'user_id': 'user-1'}]
        assert delete_workout(fake_db, 'w1', 'user-1') is True

        exercise_delete = fake_db.executed_on('exercises', 'delete')[0]
        assert exercise_delete.filters('eq') == [('workout_id', 'w1')]
        workout_delete = fake_db.executed_on('workouts', 'delete')[0]
        assert workout_delete.filters('eq') == [('id', 'w1'), ('user_id', 'user-1')]
        assert fake_db.executed.index(exercise_delete) < fake_db.executed.index(workout_delete)

    def test_other_users_workout_is_not_deleted(self, fake_db):
        fake_db.rows['workouts'] = [{'id': 'w1', 'user_id': 'someone-else'}]
        assert delete_workout(fake_db, 'w1', 'user-1') is False
        assert fake_db.executed_on('workouts', 'delete') == []


class TestExercises:
    def test_insert_nothing(self, fake_db):
        assert insert_exercises(fake_db, []) == []
        assert fake_db.executed == []

    def test_insert_in_one_batch(self, fake_db):
        rows = [{'workout_id': 'w1', 'machine_id': 'm-tread'}, {'workout_id': 'w1', 'machine_id': 'm-leg'}]
        created = insert_exercises(fake_db, rows)
        assert len(created) == 2
        assert len(fake_db.executed_on('exercises', 'insert')) == 1

    def test_recent_exercises_scoped_to_user(self, fake_db):
        list_recent_exercises(fake_db, 'user-1', limit=5)
        query = fake_db.queries[0]
        assert query.filters('select') == [('*, workouts!inner(*), machines!inner(*)',)]
        assert query.filters('eq') == [('workouts.user_id', 'user-1')]
        assert query.filters('limit') == [(5,)]

    def test_last_exercise_per_machine(self, fake_db):
        fake_db.rows['exercises'] = [
            {'id': 'e3', 'machine_id': 'm-leg', 'weight_kg': 64},
            {'id': 'e2', 'machine_id': 'm-tread', 'distance_meters': 1000},
            {'id': 'e1', 'machine_id': 'm-leg', 'weight_kg': 50},
        ]
        latest = last_exercises_by_machine(fake_db, 'user-1')
        assert latest['m-leg']['id'] == 'e3'
        assert latest['m-tread']['id'] == 'e2'
        assert ('order', ('created_at',), {'desc': True}) in fake_db.queries[0].calls

    def test_history_excludes_current(self, fake_db):
        fake_db.rows['exercises'] = [
            {'id': 'e1', 'machine_id': 'm-leg'},
            {'id': 'e2', 'machine_id': 'm-leg'},
            {'id': 'e3', 'machine_id': 'm-tread'},
        ]
        history = exercise_history(fake_db, 'm-leg', 'user-1', exclude_id='e2')
        assert [row['id'] for row in history] == ['e1']
        assert fake_db.queries[0].filters('limit') == [(10,)]

    def test_history_scoped_to_user(self, fake_db):
        exercise_history(fake_db, 'm-leg', 'user-1')
        query = fake_db.queries[0]
        assert query.filters('select')[0][0].endswith(', workouts!inner(user_id)')
        assert query.filters('eq') == [('machine_id', 'm-leg'), ('workouts.user_id', 'user-1')]
        assert query.filters('neq') == []


def test_update_profile_whitelists_fields(fake_db):
    fake_db.rows['users'] = [{'id': 'user-1', 'full_name': 'Old Name'}]
    profile = update_profile(fake_db, 'user-1', {'full_name': 'New Name', 'is_admin': True})

    query = fake_db.executed_on('users', 'update')[0]
    assert set(query.payload) == {'full_name', 'updated_at'}
    assert profile['full_name'] == 'New Name'
