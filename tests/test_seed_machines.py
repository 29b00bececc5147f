"""
Machine catalog seeding tests
Run with: python3 -m pytest tests/
"""

from seed_machines import DEFAULT_MACHINES, missing_machines, seed_machines


def test_missing_machines_ignores_case():
    missing = missing_machines([' treadmill', 'LEG PRESS'])
    names = [m['name'] for m in missing]
    assert 'Treadmill' not in names
    assert 'Leg Press' not in names
    assert len(missing) == len(DEFAULT_MACHINES) - 2


def test_seed_inserts_only_new_machines(fake_db):
    added = seed_machines(fake_db)
    assert added == len(DEFAULT_MACHINES) - 4
    inserted = fake_db.executed_on('machines', 'insert')[0].payload
    assert {m['name'] for m in inserted} == {
        'Elliptical', 'Stationary Bike', 'Chest Press', 'Shoulder Press',
        'Lat Pulldown', 'Cable Row', 'Smith Machine',
    }


def test_seed_is_idempotent(fake_db):
    fake_db.rows['machines'] = [dict(m) for m in DEFAULT_MACHINES]
    assert seed_machines(fake_db) == 0
    assert fake_db.executed_on('machines', 'insert') == []
