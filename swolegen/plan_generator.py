"""
Two-phase workout planning over a completion provider.

Analyze turns raw training context into a schema-checked session plan.
Generate expands that plan into concrete sets. Both phases repair and retry
when the model's reply does not validate.
"""

import json
import os
from dataclasses import dataclass, field, replace
from datetime import datetime

import yaml

from swolegen.cancellation import background
from swolegen.errors import (
    CancelledError,
    ConfigurationError,
    FetchError,
    ProviderError,
    RetriesExhaustedError,
    SchemaValidationError,
    SemanticRuleError,
)
from swolegen.ids import set_id, workout_id
from swolegen.prompts import (
    ANALYZER_SYSTEM,
    GENERATOR_SYSTEM,
    analyzer_user_prompt,
    generator_user_prompt,
    repair_analyzer_prompt,
    repair_generator_prompt,
    trim_for_log,
)
from swolegen.providers import (
    RESPONSE_FORMAT_ANALYZER_PLAN,
    RESPONSE_FORMAT_ANALYZER_PLAN_DESCRIPTION,
    RESPONSE_FORMAT_GENERATOR_OUTPUT,
    RESPONSE_FORMAT_GENERATOR_OUTPUT_DESCRIPTION,
    AnthropicProvider,
    CompletionRequest,
)
from swolegen.resource_fetcher import (
    DEFAULT_MAX_FETCH_BYTES,
    fetch_text,
    indent_for_block,
)
from swolegen.schema_validator import (
    KIND_ANALYZER_PLAN,
    KIND_WORKOUT,
    load_schema_text,
    validate_artifact,
    validate_value,
)
from swolegen.semantic_rules import check_workout
from swolegen.timebox import estimate_sets

DEFAULT_RETRIES = 3
DEFAULT_UNITS = "lbs"


def _require_str(payload, key):
    value = payload.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ValueError(f"{key} must be a string")
    return value


def _optional_int(payload, key):
    value = payload.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer or null")
    return value


@dataclass(frozen=True)
class AnalyzerInputs:
    """Decoded analyze request. Recovery scores stay None when not measured."""

    instructions_url: str = ""
    history_url: str = ""
    strava_recent: str = None
    upcoming_cardio_text: str = ""
    location: str = ""
    equipment_inventory: tuple = field(default_factory=tuple)
    duration_minutes: int = 0
    units: str = ""
    garmin_sleep_score: int = None
    garmin_body_battery: int = None

    @classmethod
    def from_dict(cls, payload):
        """
        Build inputs from the analyze request JSON object.

        Raises:
            ValueError: when a field has the wrong type
        """
        if not isinstance(payload, dict):
            raise ValueError("analyze input must be a JSON object")

        strava_recent = payload.get("strava_recent")
        if strava_recent is not None and not isinstance(strava_recent, str):
            strava_recent = json.dumps(strava_recent)

        equipment = payload.get("equipment_inventory") or []
        if not isinstance(equipment, list) or not all(isinstance(item, str) for item in equipment):
            raise ValueError("equipment_inventory must be a list of strings")

        duration = payload.get("duration_minutes", 0)
        if isinstance(duration, bool) or not isinstance(duration, int):
            raise ValueError("duration_minutes must be an integer")

        return cls(
            instructions_url=_require_str(payload, "instructions_url"),
            history_url=_require_str(payload, "history_url"),
            strava_recent=strava_recent,
            upcoming_cardio_text=_require_str(payload, "upcoming_cardio_text"),
            location=_require_str(payload, "location"),
            equipment_inventory=tuple(equipment),
            duration_minutes=duration,
            units=_require_str(payload, "units"),
            garmin_sleep_score=_optional_int(payload, "garmin_sleep_score"),
            garmin_body_battery=_optional_int(payload, "garmin_body_battery"),
        )

    def with_strava_recent(self, activities):
        """Copy of these inputs carrying ``activities`` as the recent-activity JSON."""
        return replace(self, strava_recent=json.dumps(activities))


def _null_or_int(value):
    return "null" if value is None else str(int(value))


class PlanGenerator:
    """Runs the analyze and generate phases against a completion provider."""

    def __init__(
        self,
        provider,
        retries=DEFAULT_RETRIES,
        max_fetch_bytes=DEFAULT_MAX_FETCH_BYTES,
        debug=False,
        feed_rules_back=True,
        rules=None,
        clock=None,
    ):
        """
        Initialize the plan generator.

        Args:
            provider: CompletionProvider used for every model call
            retries: Repair attempts after the first try (total tries = 1 + retries)
            max_fetch_bytes: Byte cap for instruction/history documents
            debug: Print every attempt's prompts and raw reply
            feed_rules_back: Send semantic-rule failures back through the repair loop
            rules: Semantic rules for generated workouts (defaults to the built-in set)
            clock: Callable returning "now"; the analyze date comes from it
        """
        self.provider = provider
        self.retries = retries
        self.max_fetch_bytes = max_fetch_bytes
        self.debug = debug
        self.feed_rules_back = feed_rules_back
        self.rules = rules
        self.clock = clock or datetime.now

    @classmethod
    def from_config(cls, config, provider=None):
        """Build a generator from the loaded config dict."""
        llm = (config or {}).get("llm", {}) or {}
        if provider is None:
            provider_name = llm.get("provider", "anthropic")
            if provider_name != "anthropic":
                raise ConfigurationError(f"unknown llm provider: {provider_name}")
            provider = AnthropicProvider(
                api_key=os.getenv(llm.get("api_key_env", "ANTHROPIC_API_KEY")),
                model=llm.get("model"),
                max_tokens=llm.get("max_tokens"),
                timeout=llm.get("timeout"),
            )

        return cls(
            provider,
            retries=llm.get("retries", DEFAULT_RETRIES),
            max_fetch_bytes=llm.get("max_fetch_bytes", DEFAULT_MAX_FETCH_BYTES),
            debug=bool(llm.get("debug", False)),
            feed_rules_back=bool(llm.get("feed_rules_back", True)),
        )

    def validate_config(self):
        """Fail fast, before any network activity, on an unusable setup."""
        if self.provider is None:
            raise ConfigurationError("llm provider not configured")
        self.provider.validate()
        if isinstance(self.retries, bool) or not isinstance(self.retries, int) or self.retries < 0:
            raise ConfigurationError("llm retries must be non-negative")
        if (
            isinstance(self.max_fetch_bytes, bool)
            or not isinstance(self.max_fetch_bytes, int)
            or self.max_fetch_bytes <= 0
        ):
            raise ConfigurationError("llm max fetch bytes must be positive")

    # ── Analyze ──────────────────────────────────────────────────────

    def build_analyzer_prompt(self, inputs, context=None):
        """
        Resolve referenced documents and render the analyze user prompt.

        Raises:
            FetchError: when the instructions or history document cannot be read
        """
        context = context or background()

        units = inputs.units if inputs.units.strip() else DEFAULT_UNITS
        date = self.clock().strftime("%Y-%m-%d")
        strava_json = inputs.strava_recent if inputs.strava_recent else "null"

        try:
            instructions_text = fetch_text(inputs.instructions_url, self.max_fetch_bytes, context)
        except FetchError as exc:
            raise FetchError(f"fetch instructions: {exc}") from exc
        try:
            history_text = fetch_text(inputs.history_url, self.max_fetch_bytes, context)
        except FetchError as exc:
            raise FetchError(f"fetch history: {exc}") from exc

        if self.debug:
            print(f"[LLM_DEBUG] instructions:\n{trim_for_log(instructions_text, 2000)}")
            print(f"[LLM_DEBUG] history:\n{trim_for_log(history_text, 2000)}")

        return analyzer_user_prompt(
            instructions_block=indent_for_block(instructions_text),
            history_block=indent_for_block(history_text),
            strava_json=strava_json,
            upcoming_cardio_text=inputs.upcoming_cardio_text,
            sleep_score=_null_or_int(inputs.garmin_sleep_score),
            body_battery=_null_or_int(inputs.garmin_body_battery),
            equipment_json=json.dumps(list(inputs.equipment_inventory)),
            date=date,
            location=inputs.location,
            units=units,
            duration_minutes=inputs.duration_minutes,
            estimated_sets=estimate_sets(inputs.duration_minutes),
        )

    def analyze(self, inputs, context=None, traces=None):
        """
        Turn raw training context into a validated analyzer plan.

        Args:
            inputs: AnalyzerInputs, or the analyze request dict
            context: CallContext for cancellation/deadline
            traces: Optional list that receives one dict per attempt

        Returns:
            The analyzer plan dict (always schema-valid)
        """
        self.validate_config()
        context = context or background()
        if isinstance(inputs, dict):
            inputs = AnalyzerInputs.from_dict(inputs)

        print("\n🤖 Analyzing training context...")
        user = self.build_analyzer_prompt(inputs, context)
        schema = load_schema_text(KIND_ANALYZER_PLAN)
        request = CompletionRequest(
            name=RESPONSE_FORMAT_ANALYZER_PLAN,
            description=RESPONSE_FORMAT_ANALYZER_PLAN_DESCRIPTION,
            schema=schema,
            system_prompt=ANALYZER_SYSTEM,
            user_prompt=user,
        )

        plan = self._run_phase(
            "analyze",
            KIND_ANALYZER_PLAN,
            request,
            build_repair=lambda errors: repair_analyzer_prompt(errors, schema),
            context=context,
            traces=traces,
        )
        print(f"✓ Plan ready: {len(plan['exercise_plan'])} exercises, "
              f"{plan['time_budget']['target_set_count']} target sets")
        return plan

    # ── Generate ─────────────────────────────────────────────────────

    def build_generator_prompt(self, plan):
        plan_json = json.dumps(plan, indent=2)
        meta = plan["meta"]
        suggested_id = workout_id(meta["date"], meta["location"], plan_json)
        prefixes = []
        for entry in plan["exercise_plan"]:
            line = f"  {entry['exercise']}: {set_id(entry['tier'], entry['exercise'], 1)}"
            if entry["warmups"]:
                line += f", {set_id(entry['tier'], entry['exercise'], 1, warmup=True)}"
            if line not in prefixes:
                prefixes.append(line)
        return generator_user_prompt(plan_json, suggested_id, meta["units"], "\n".join(prefixes))

    def generate_workout(self, plan, context=None, traces=None):
        """
        Expand a validated analyzer plan into a workout dict.

        The input plan is checked against the analyzer schema first; an invalid
        plan raises SchemaValidationError without calling the provider.
        """
        self.validate_config()
        context = context or background()
        validate_value(KIND_ANALYZER_PLAN, plan)

        print("\n🤖 Generating workout from plan...")
        user = self.build_generator_prompt(plan)
        request = CompletionRequest(
            name=RESPONSE_FORMAT_GENERATOR_OUTPUT,
            description=RESPONSE_FORMAT_GENERATOR_OUTPUT_DESCRIPTION,
            schema=load_schema_text(KIND_WORKOUT),
            system_prompt=GENERATOR_SYSTEM,
            user_prompt=user,
        )

        workout = self._run_phase(
            "generate",
            KIND_WORKOUT,
            request,
            build_repair=lambda errors: repair_generator_prompt(errors, user),
            context=context,
            traces=traces,
            post_check=lambda value: self._check_rules(plan, value),
        )
        print(f"✓ Workout generated: {len(workout['sets'])} sets")
        return workout

    def generate(self, plan, context=None, traces=None):
        """Generate a workout and return it as a YAML document."""
        workout = self.generate_workout(plan, context=context, traces=traces)
        return yaml.safe_dump(workout, sort_keys=False, allow_unicode=True)

    def _check_rules(self, plan, workout):
        result = check_workout(plan, workout, rules=self.rules)
        if result["violations"]:
            raise SemanticRuleError(result["violations"], workout=workout)

    # ── Repair / retry loop ──────────────────────────────────────────

    def _record(self, traces, phase, attempt, request, raw, error):
        if self.debug:
            print(
                f"[LLM_DEBUG] phase={phase} attempt={attempt}\n"
                f"SYSTEM:\n{trim_for_log(request.system_prompt, 2000)}\n\n"
                f"USER:\n{trim_for_log(request.user_prompt, 4000)}\n\n"
                f"RAW:\n{trim_for_log(raw, 4000)}\n"
            )
        if traces is not None:
            traces.append(
                {
                    "phase": phase,
                    "attempt": attempt,
                    "system": request.system_prompt,
                    "user": request.user_prompt,
                    "raw": raw,
                    "error": error,
                }
            )

    def _run_phase(self, phase, kind, request, build_repair, context, traces=None, post_check=None):
        """
        Attempt, validate, repair; up to 1 + retries tries.

        Provider errors retry the same request. Validation (and, when enabled,
        semantic-rule) failures rebuild the request with every error seen so
        far. Cancellation ends the loop at once.
        """
        errors = []
        total = 1 + self.retries

        for attempt in range(1, total + 1):
            context.check()
            raw = None
            try:
                raw = self.provider.complete(request, context)
                value = validate_artifact(kind, raw)
                if post_check is not None:
                    post_check(value)
            except CancelledError:
                self._record(traces, phase, attempt, request, raw, "cancelled")
                raise
            except ProviderError as exc:
                errors.append(f"attempt {attempt}: provider error: {exc}")
                self._record(traces, phase, attempt, request, raw, str(exc))
                print(f"  ⚠ {phase} attempt {attempt}/{total}: provider error ({exc})")
                continue
            except SemanticRuleError as exc:
                self._record(traces, phase, attempt, request, raw, str(exc))
                if not self.feed_rules_back:
                    raise
                errors.append(f"attempt {attempt}: {exc}")
            except SchemaValidationError as exc:
                self._record(traces, phase, attempt, request, raw, str(exc))
                errors.append(f"attempt {attempt}: {exc}")
            else:
                self._record(traces, phase, attempt, request, raw, None)
                return value

            print(f"  ⚠ {phase} attempt {attempt}/{total} rejected: {errors[-1]}")
            if attempt < total:
                request = replace(request, user_prompt=build_repair(errors))

        raise RetriesExhaustedError(phase, errors)
