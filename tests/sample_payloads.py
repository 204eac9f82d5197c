import copy
import json

import yaml

_PLAN = {
    "meta": {
        "date": "2025-01-06",
        "location": "Home Gym",
        "units": "lbs",
        "duration_minutes": 45,
        "goal": "strength",
        "superset_policy": "pairs_ok",
    },
    "session": {"type": "strength", "tiers": ["A", "B"], "cut_order": ["B"]},
    "gap_fill_policy": {"min_sets_per_selected_pattern": None, "target_patterns": ["hinge"]},
    "fatigue_policy": {"rir_shift": 1, "load_cap_pct": 0.9, "reason": "long run yesterday"},
    "instructions_context": {
        "primary_goals": ["build posterior chain strength"],
        "execution_principles": ["controlled eccentrics"],
        "construction_rules": {"format": "straight_sets", "priority_order": ["A", "B"]},
        "constraints": {"avoid": [], "encourage": ["unilateral work"]},
    },
    "time_budget": {"target_set_count": 8, "estimated_minutes_total": 40},
    "available_equipment": ["barbell", "dumbbells"],
    "exercise_plan": [
        {
            "tier": "A",
            "exercise": "Romanian Deadlift",
            "equipment": "barbell",
            "warmups": 1,
            "working_sets": 2,
            "targets": {"rep_range": "6-8", "rir": 2, "target_load": 185, "load_cap": None},
        },
        {
            "tier": "B",
            "exercise": "DB Incline Press",
            "equipment": "dumbbells",
            "superset_with": None,
            "warmups": 0,
            "working_sets": 2,
            "targets": {"rep_range": "10", "rir": 2, "target_load": 50, "load_cap": None},
        },
    ],
}

_WORKOUT = {
    "version": "1.2",
    "meta": {
        "workout_id": "2025-01-06-home-gym-42",
        "date": "2025-01-06",
        "location": "Home Gym",
        "units": "lbs",
        "duration_minutes": 45,
        "goal": "strength",
    },
    "sets": [
        {
            "set_id": "A-ROMANIAN-DE-WU1",
            "tier": "A",
            "exercise": "Romanian Deadlift",
            "equipment": "barbell",
            "warmup": True,
            "target_load": 95,
            "target_reps": 8,
            "target_rir": None,
            "rest_sec": 60,
            "superset_tag": None,
        },
        {
            "set_id": "A-ROMANIAN-DE-1",
            "tier": "A",
            "exercise": "Romanian Deadlift",
            "equipment": "barbell",
            "warmup": False,
            "target_load": 185,
            "target_reps": 8,
            "target_rir": 2,
            "rest_sec": 120,
            "superset_tag": None,
        },
        {
            "set_id": "A-ROMANIAN-DE-2",
            "tier": "A",
            "exercise": "Romanian Deadlift",
            "equipment": "barbell",
            "warmup": False,
            "target_load": 185,
            "target_reps": 8,
            "target_rir": 2,
            "rest_sec": 120,
            "superset_tag": None,
        },
        {
            "set_id": "B-DB-INCLINE-1",
            "tier": "B",
            "exercise": "DB Incline Press",
            "equipment": "dumbbells",
            "warmup": False,
            "target_load": 50,
            "target_reps": 10,
            "target_rir": 2,
            "rest_sec": 90,
            "superset_tag": None,
        },
    ],
    "notes": ["Keep the bar close on the hinge."],
}


def valid_plan():
    return copy.deepcopy(_PLAN)


def valid_workout():
    return copy.deepcopy(_WORKOUT)


def plan_json(plan=None):
    return json.dumps(plan if plan is not None else _PLAN)


def workout_yaml(workout=None):
    return yaml.safe_dump(workout if workout is not None else _WORKOUT, sort_keys=False)


def analyze_request(**overrides):
    payload = {
        "instructions_url": "",
        "history_url": "",
        "strava_recent": None,
        "upcoming_cardio_text": "Easy 5k on Wednesday",
        "location": "Home Gym",
        "equipment_inventory": ["barbell", "dumbbells"],
        "duration_minutes": 45,
        "units": "lbs",
        "garmin_sleep_score": None,
        "garmin_body_battery": None,
    }
    payload.update(overrides)
    return payload
