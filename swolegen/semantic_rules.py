"""
Business rules a schema-valid workout must also satisfy against its plan.
"""


def _add_violation(violations, code, message, set_id=None):
    violations.append(
        {
            "code": code,
            "message": message,
            "set_id": set_id or "",
        }
    )


def _superset_tags(workout):
    return [
        entry
        for entry in workout.get("sets", [])
        if (entry.get("superset_tag") or "").strip()
    ]


def check_superset_policy(plan, workout):
    """`none` forbids superset tags, `required` demands at least one."""
    violations = []
    policy = (plan.get("meta") or {}).get("superset_policy")
    tagged = _superset_tags(workout)

    if policy == "none" and tagged:
        _add_violation(
            violations,
            "superset_policy_none",
            f"Plan superset policy is 'none' but {len(tagged)} set(s) carry a superset tag.",
            set_id=tagged[0].get("set_id"),
        )
    elif policy == "required" and not tagged:
        _add_violation(
            violations,
            "superset_policy_required",
            "Plan superset policy is 'required' but no set carries a superset tag.",
        )
    return violations


def check_unique_set_ids(plan, workout):
    violations = []
    seen = set()
    for entry in workout.get("sets", []):
        set_id = entry.get("set_id")
        if set_id in seen:
            _add_violation(
                violations,
                "duplicate_set_id",
                f"Set id {set_id} appears more than once.",
                set_id=set_id,
            )
        seen.add(set_id)
    return violations


def check_declared_tiers(plan, workout):
    """Every set must belong to a tier the plan's session declares."""
    violations = []
    tiers = set((plan.get("session") or {}).get("tiers") or [])
    if not tiers:
        return violations

    for entry in workout.get("sets", []):
        tier = entry.get("tier")
        if tier not in tiers:
            _add_violation(
                violations,
                "undeclared_tier",
                f"Set {entry.get('set_id')} uses tier {tier}, plan declares {sorted(tiers)}.",
                set_id=entry.get("set_id"),
            )
    return violations


def check_units_match(plan, workout):
    violations = []
    plan_units = (plan.get("meta") or {}).get("units")
    workout_units = (workout.get("meta") or {}).get("units")
    if plan_units and workout_units and plan_units != workout_units:
        _add_violation(
            violations,
            "units_mismatch",
            f"Workout units {workout_units} differ from plan units {plan_units}.",
        )
    return violations


DEFAULT_RULES = [
    check_superset_policy,
    check_unique_set_ids,
    check_declared_tiers,
    check_units_match,
]


def check_workout(plan, workout, rules=None):
    """
    Run every rule and collect all violations (no short-circuit).

    Returns:
        dict with keys: violations, summary
    """
    violations = []
    for rule in DEFAULT_RULES if rules is None else rules:
        violations.extend(rule(plan, workout) or [])

    sets_checked = len(workout.get("sets", []))
    summary = f"Semantic rules: {sets_checked} sets checked, {len(violations)} violation(s)."
    return {
        "violations": violations,
        "summary": summary,
    }
