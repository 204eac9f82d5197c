"""
Prompt assembly for the analyze and generate phases.
"""

import json

ANALYZER_SYSTEM = """You are an expert strength coach planning a single training session.
Read the athlete's rules, their set-level history, recent cardio load and recovery signals,
then decide the session shape, fatigue adjustments, time budget and exercise selection.

Return ONLY a JSON object that conforms to the analyzer_plan schema. No prose, no markdown."""

GENERATOR_SYSTEM = """You are an expert strength coach turning a session plan into concrete sets.
Expand every exercise_plan entry into its warm-up and working sets with a single load,
a single rep target and RIR. Honor the plan's tiers, superset policy, fatigue policy and units.

Return ONLY a YAML (or JSON) document that conforms to the generator_output schema. No prose, no markdown."""


def analyzer_user_prompt(
    instructions_block,
    history_block,
    strava_json,
    upcoming_cardio_text,
    sleep_score,
    body_battery,
    equipment_json,
    date,
    location,
    units,
    duration_minutes,
    estimated_sets,
):
    """
    Build the analyze-phase user prompt.

    Missing recovery scores and activity data arrive here already rendered as
    the literal ``null`` so the model never reads them as a measured zero.
    """
    return f"""Plan today's session from the context below.

instructions: |
{instructions_block}

history: |
{history_block}

strava_recent: {strava_json}
upcoming_cardio_text: {json.dumps(upcoming_cardio_text or "")}
garmin_sleep_score: {sleep_score}
garmin_body_battery: {body_battery}
equipment_inventory: {equipment_json}
date: {date}
location: {json.dumps(location or "")}
units: {units}
duration_minutes: {duration_minutes}
estimated_set_capacity: {estimated_sets}

RULES:
- meta.date must be {date}; meta.units must be {units}; meta.duration_minutes must be {duration_minutes}.
- Only select exercises that the equipment inventory supports.
- Treat null recovery scores as unknown, not as zero.
- When recent cardio load or low recovery suggests fatigue, raise fatigue_policy.rir_shift and lower load_cap_pct.
- Keep time_budget.target_set_count at or below the estimated set capacity.
"""


def generator_user_prompt(plan_json, suggested_workout_id, units, set_id_prefixes=""):
    return f"""Expand this session plan into a complete workout.

PLAN:
{plan_json}

OUTPUT RULES:
- version must be "1.2".
- meta.workout_id should be {suggested_workout_id}.
- Loads are in {units}; one load and one rep count per set, never ranges.
- set_id format: <TIER>-<SLUG>-<n> for working sets and <TIER>-<SLUG>-WU<n> for warm-ups,
  where SLUG is the uppercase exercise name with dashes, at most 12 characters (e.g. A-BENCH-PRESS-1, A-BENCH-PRESS-WU1).
- Use these set_id prefixes:
{set_id_prefixes}
- Paired exercises share the same superset_tag (e.g. "S1"); leave superset_tag null otherwise.
- Only use tiers the plan declares in session.tiers.
"""


def _format_errors(errors):
    return "\n".join(f"- {error}" for error in errors)


def repair_analyzer_prompt(errors, schema):
    """Repair prompt for the analyze phase, grounded on the schema document."""
    return f"""Your previous reply was rejected.

Validation errors so far:
{_format_errors(errors)}

Return a corrected JSON object that satisfies this schema exactly. JSON only.

SCHEMA:
{schema}
"""


def repair_generator_prompt(errors, original_user_prompt):
    """Repair prompt for the generate phase, grounded on the original request."""
    return f"""Your previous workout was rejected.

Validation errors so far:
{_format_errors(errors)}

Fix every listed error and return the full corrected workout as YAML (or JSON) only.
Keep the structure and exercise order unless an error requires a change.

ORIGINAL REQUEST:
{original_user_prompt}
"""


def trim_for_log(text, limit):
    """Keep the head of ``text`` plus a short tail when it is longer than ``limit``."""
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit] + "\n... [truncated] ...\n" + text[-min(200, len(text)):]
