#!/usr/bin/env python3
"""
SwoleGen command-line entry point.

Runs the analyze and generate phases, and the Strava OAuth helpers, from the
terminal. Artifacts go to stdout; progress lines go to stderr.
"""

import argparse
import contextlib
import json
import os
import sys

from swolegen.cancellation import CallContext
from swolegen.config import load_config
from swolegen.errors import PipelineError
from swolegen.plan_generator import AnalyzerInputs, PlanGenerator
from swolegen.strava_client import (
    ProcessTokenSource,
    StravaClient,
    Token,
    UserTokenSource,
    authorize_url,
    exchange_code,
    get_process_token,
    set_process_token,
    validate_state,
)


def print_banner():
    """Print welcome banner."""
    banner = """
╔══════════════════════════════════════════════════════════════╗
║                                                              ║
║        SWOLEGEN WORKOUT GENERATOR                            ║
║        Powered by Claude AI                                  ║
║                                                              ║
╚══════════════════════════════════════════════════════════════╝
    """
    print(banner)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Generate validated workouts with an LLM.")
    parser.add_argument("--config", default="config.yaml", help="Path to config.yaml.")
    parser.add_argument("--timeout", type=float, default=None, help="Overall deadline in seconds.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    analyze = subparsers.add_parser("analyze", help="Produce an analyzer plan (JSON).")
    analyze.add_argument("input", help="Analyze request JSON file.")

    generate = subparsers.add_parser("generate", help="Produce a workout (YAML) from a plan.")
    generate.add_argument("plan", help="Analyzer plan JSON file.")

    run = subparsers.add_parser("run", help="Analyze then generate.")
    run.add_argument("input", help="Analyze request JSON file.")

    for sub in (analyze, run):
        sub.add_argument("--strava-token", default=None, help="Strava bearer token.")
        sub.add_argument("--strava-refresh-token", default=None, help="Strava refresh token.")
        sub.add_argument("--strava-days", type=int, default=None, help="Days of activity to pull.")

    subparsers.add_parser("strava-auth-url", help="Print the Strava authorization URL.")

    exchange = subparsers.add_parser("strava-exchange", help="Exchange an OAuth code for a token.")
    exchange.add_argument("code", help="Authorization code from the callback.")
    exchange.add_argument("--state", default=None, help="State from the callback, checked if given.")

    recent = subparsers.add_parser("strava-recent", help="Print recent Strava activities.")
    recent.add_argument("--days", type=int, default=None, help="Days of activity to pull.")
    recent.add_argument("--token", default=None, help="Strava bearer token (default: STRAVA_ACCESS_TOKEN).")
    recent.add_argument(
        "--refresh-token", default=None, help="Strava refresh token (default: STRAVA_REFRESH_TOKEN)."
    )

    return parser.parse_args(argv)


def read_json(path):
    try:
        with open(path, "r") as f:
            return json.load(f)
    except OSError as exc:
        raise PipelineError(f"read {path}: {exc}") from exc
    except json.JSONDecodeError as exc:
        raise PipelineError(f"{path} is not valid JSON: {exc}") from exc


def token_source(access_token=None, refresh_token=None):
    """
    Pick where the Strava token comes from.

    A bearer token wins. Otherwise the process token is used, seeded from
    ``refresh_token`` when nothing is cached yet; it is refreshed on first use.
    """
    if access_token:
        return UserTokenSource(Token(access_token=access_token))
    if refresh_token and get_process_token() is None:
        set_process_token(Token(access_token="", refresh_token=refresh_token))
    if get_process_token() is None:
        return None
    return ProcessTokenSource()


def recent_activities(source, days, context):
    client = StravaClient(source)
    return client.get_recent_activities(days, context=context)


def load_inputs(args, config, context):
    try:
        inputs = AnalyzerInputs.from_dict(read_json(args.input))
    except ValueError as exc:
        raise PipelineError(f"bad analyze input: {exc}") from exc

    if inputs.strava_recent is None and (args.strava_token or args.strava_refresh_token):
        source = token_source(args.strava_token, args.strava_refresh_token)
        days = args.strava_days if args.strava_days is not None else config["strava"]["activity_days"]
        inputs = inputs.with_strava_recent(recent_activities(source, days, context))
    return inputs


def run_command(args, config, context):
    """Execute one subcommand; returns the text to write to stdout."""
    if args.command == "strava-auth-url":
        return authorize_url()

    if args.command == "strava-exchange":
        if args.state is not None:
            try:
                validate_state(args.state)
            except ValueError as exc:
                raise PipelineError(f"invalid state: {exc}") from exc
        token = exchange_code(args.code)
        set_process_token(token)
        print("✓ Token stored for this process")
        return json.dumps(token.to_dict(), indent=2)

    if args.command == "strava-recent":
        source = token_source(
            args.token or os.getenv("STRAVA_ACCESS_TOKEN"),
            args.refresh_token or os.getenv("STRAVA_REFRESH_TOKEN"),
        )
        if source is None:
            raise PipelineError(
                "no Strava token; pass --token or --refresh-token, "
                "or set STRAVA_ACCESS_TOKEN or STRAVA_REFRESH_TOKEN"
            )
        days = args.days if args.days is not None else config["strava"]["activity_days"]
        activities = recent_activities(source, days, context)
        return json.dumps({"count": len(activities), "activities": activities}, indent=2)

    generator = PlanGenerator.from_config(config)

    if args.command == "analyze":
        plan = generator.analyze(load_inputs(args, config, context), context=context)
        return json.dumps(plan, indent=2)

    if args.command == "generate":
        return generator.generate(read_json(args.plan), context=context)

    if args.command == "run":
        plan = generator.analyze(load_inputs(args, config, context), context=context)
        return generator.generate(plan, context=context)

    raise PipelineError(f"unknown command: {args.command}")


def main(argv=None):
    """Main application flow."""
    args = parse_args(argv)
    context = CallContext(timeout=args.timeout)

    try:
        with contextlib.redirect_stdout(sys.stderr):
            print_banner()
            print("Loading configuration...")
            config = load_config(args.config)
            output = run_command(args, config, context)
    except PipelineError as exc:
        print(f"\n❌ Error: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        context.cancel("interrupted")
        print("\n❌ Cancelled.", file=sys.stderr)
        return 1

    print(output.rstrip("\n"))
    return 0


if __name__ == "__main__":
    sys.exit(main())
