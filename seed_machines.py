#!/usr/bin/env python3
"""
Seed the machines table with the gym's machine catalog
Run this once after creating the tables from schema.sql
"""

import os
import sys

from dotenv import load_dotenv
from postgrest.exceptions import APIError
from supabase import create_client

from supabase_client import get_supabase_url

load_dotenv()

DEFAULT_MACHINES = [
    {'name': 'Treadmill', 'type': 'cardio'},
    {'name': 'Elliptical', 'type': 'cardio'},
    {'name': 'Stationary Bike', 'type': 'cardio'},
    {'name': 'Rowing Machine', 'type': 'cardio'},
    {'name': 'Stair Climber', 'type': 'cardio'},
    {'name': 'Leg Press', 'type': 'strength'},
    {'name': 'Chest Press', 'type': 'strength'},
    {'name': 'Shoulder Press', 'type': 'strength'},
    {'name': 'Lat Pulldown', 'type': 'strength'},
    {'name': 'Cable Row', 'type': 'strength'},
    {'name': 'Smith Machine', 'type': 'strength'},
]


def missing_machines(existing_names, catalog=DEFAULT_MACHINES):
    """Catalog entries whose name is not in the table yet"""
    existing = {name.strip().lower() for name in existing_names}
    return [m for m in catalog if m['name'].lower() not in existing]


def seed_machines(client):
    """Insert catalog machines that don't exist yet; returns how many were added"""
    print("Seeding machines...")
    rows = client.table('machines').select('name').execute().data or []
    to_insert = missing_machines(row['name'] for row in rows)
    if not to_insert:
        print("  All machines already present, skipping")
        return 0

    client.table('machines').insert(to_insert).execute()
    for machine in to_insert:
        print(f"  + {machine['name']} ({machine['type']})")
    print(f"  ✓ Added {len(to_insert)} machines")
    return len(to_insert)


def main():
    url = get_supabase_url()
    # The anon key cannot write to machines under RLS
    service_key = os.getenv('SUPABASE_SERVICE_ROLE_KEY')
    if not url or not service_key:
        print("❌ Set SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY to seed machines")
        sys.exit(1)

    try:
        seed_machines(create_client(url, service_key))
    except APIError as e:
        print(f"❌ Seeding failed: {e.message}")
        sys.exit(1)


if __name__ == '__main__':
    main()
