import io
import json
import os
import tempfile
import unittest
from datetime import datetime
from unittest.mock import patch

import yaml

import main
from swolegen.plan_generator import PlanGenerator
from swolegen.providers import StubProvider
from swolegen.strava_client import (
    ProcessTokenSource,
    Token,
    UserTokenSource,
    get_process_token,
    set_process_token,
)
from sample_payloads import analyze_request, plan_json, valid_plan, workout_yaml


class MainCliTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.config_path = os.path.join(self.tmpdir.name, "config.yaml")
        self.input_path = os.path.join(self.tmpdir.name, "input.json")
        with open(self.input_path, "w") as f:
            json.dump(analyze_request(), f)

    def tearDown(self):
        self.tmpdir.cleanup()

    def run_main(self, argv, replies):
        self.provider = StubProvider(replies)
        generator = PlanGenerator(self.provider, clock=lambda: datetime(2025, 1, 6))
        stdout, stderr = io.StringIO(), io.StringIO()
        with patch.object(PlanGenerator, "from_config", return_value=generator), \
                patch("main.load_config", return_value={"llm": {}, "strava": {"activity_days": 7}}), \
                patch("sys.stdout", stdout), patch("sys.stderr", stderr):
            code = main.main(["--config", self.config_path] + argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_analyze_prints_plan_json_only(self):
        code, out, err = self.run_main(["analyze", self.input_path], [plan_json()])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), valid_plan())
        self.assertIn("Analyzing", err)

    def test_run_prints_workout_yaml(self):
        code, out, _ = self.run_main(["run", self.input_path], [plan_json(), workout_yaml()])
        self.assertEqual(code, 0)
        self.assertEqual(yaml.safe_load(out)["version"], "1.2")
        self.assertEqual(self.provider.calls, 2)

    def test_generate_from_plan_file(self):
        plan_path = os.path.join(self.tmpdir.name, "plan.json")
        with open(plan_path, "w") as f:
            f.write(plan_json())
        code, out, _ = self.run_main(["generate", plan_path], [workout_yaml()])
        self.assertEqual(code, 0)
        self.assertIn("version: '1.2'", out)

    def test_pipeline_error_exits_one(self):
        code, out, err = self.run_main(["analyze", self.input_path], ["nope"] * 4)
        self.assertEqual(code, 1)
        self.assertEqual(out, "")
        self.assertIn("❌", err)
        self.assertIn("analyze failed after 4 attempt(s)", err)

    def test_missing_input_file(self):
        code, _, err = self.run_main(["analyze", os.path.join(self.tmpdir.name, "nope.json")], [])
        self.assertEqual(code, 1)
        self.assertIn("❌", err)

    def test_strava_token_fills_recent_activities(self):
        activities = [{"name": "Run", "type": "Run", "start_date": "2025-01-05", "suffer_score": 10}]
        with patch("main.recent_activities", return_value=activities) as fetch:
            code, _, _ = self.run_main(
                ["analyze", self.input_path, "--strava-token", "tok", "--strava-days", "3"],
                [plan_json()],
            )
        self.assertEqual(code, 0)
        source, days = fetch.call_args.args[:2]
        self.assertIsInstance(source, UserTokenSource)
        self.assertEqual(source.current().access_token, "tok")
        self.assertEqual(days, 3)
        self.assertIn('"suffer_score": 10', self.provider.requests[0].user_prompt)

    def test_strava_exchange_stores_process_token(self):
        token = Token(access_token="a1", refresh_token="r1", expires_at=4102444800)
        self.addCleanup(set_process_token, None)
        with patch("main.exchange_code", return_value=token) as exchange:
            code, out, _ = self.run_main(["strava-exchange", "the-code"], [])
        self.assertEqual(code, 0)
        exchange.assert_called_once_with("the-code")
        self.assertIs(get_process_token(), token)
        self.assertEqual(json.loads(out)["access_token"], "a1")

    def test_strava_recent_falls_back_to_refresh_token(self):
        self.addCleanup(set_process_token, None)
        set_process_token(None)
        with patch("main.recent_activities", return_value=[]) as fetch, \
                patch.dict(os.environ, {"STRAVA_ACCESS_TOKEN": ""}):
            code, out, _ = self.run_main(["strava-recent", "--refresh-token", "r1"], [])
        self.assertEqual(code, 0)
        self.assertEqual(json.loads(out), {"count": 0, "activities": []})
        source = fetch.call_args.args[0]
        self.assertIsInstance(source, ProcessTokenSource)
        self.assertEqual(source.current().refresh_token, "r1")

    def test_strava_recent_without_any_token(self):
        self.addCleanup(set_process_token, None)
        set_process_token(None)
        env = {"STRAVA_ACCESS_TOKEN": "", "STRAVA_REFRESH_TOKEN": ""}
        with patch.dict(os.environ, env):
            code, _, err = self.run_main(["strava-recent"], [])
        self.assertEqual(code, 1)
        self.assertIn("no Strava token", err)


if __name__ == "__main__":
    unittest.main()
