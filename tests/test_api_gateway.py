"""Unit tests for the APIGateway class and its FastAPI app."""

import json
import shutil
import tempfile
import unittest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from study_planner.api_gateway.gateway import APIGateway
from study_planner.app import StudyPlannerApp
from study_planner.config_manager.config_manager import ConfigManager
from study_planner.exceptions import AIResponseParseError

FAR_EXAM_DATE = "2099-06-15"

TEST_CONFIG = {
    "ai": {"provider": "openai", "api_key": "", "retry_attempts": 1, "retry_delay": 0},
    "storage": {"db_path": ":memory:"},
    "monitoring": {"logging": {"console": False, "filepath": None}},
}


class TestAPIGateway(unittest.TestCase):
    """Tests for the APIGateway routes against an in-memory StudyPlannerApp."""

    def setUp(self):
        ConfigManager._instance = None
        ConfigManager._config = None
        self.config_dir = tempfile.mkdtemp()
        with open(os.path.join(self.config_dir, "config.json"), "w", encoding="utf-8") as f:
            json.dump(TEST_CONFIG, f)

        self.planner_app = StudyPlannerApp(config_dir=self.config_dir)
        self.api_gateway = APIGateway(planner_app=self.planner_app)
        self.client = TestClient(self.api_gateway.get_fastapi_app())

    def tearDown(self):
        self.planner_app.storage.close_connection()
        shutil.rmtree(self.config_dir)
        ConfigManager._instance = None
        ConfigManager._config = None
        ConfigManager._config_dir = None

    def _create_exam(self, name="英语四级", date=FAR_EXAM_DATE):
        response = self.client.post("/api/v1/exams", json={"name": name, "subject": "英语", "date": date})
        self.assertEqual(response.status_code, 201)
        return response.json()

    def _create_knowledge_point(self, exam_id, name="听力", mastery_level=20, importance=4):
        response = self.client.post(
            f"/api/v1/exams/{exam_id}/knowledge_points",
            json={"name": name, "mastery_level": mastery_level, "importance": importance},
        )
        self.assertEqual(response.status_code, 201)
        return response.json()

    def test_initialization(self):
        self.assertIs(self.api_gateway.planner_app, self.planner_app)
        self.assertIsNotNone(self.api_gateway.app)

    # --- Exams ---

    def test_exam_crud(self):
        exam = self._create_exam()
        self.assertEqual(exam["name"], "英语四级")

        response = self.client.get("/api/v1/exams")
        self.assertEqual([e["id"] for e in response.json()], [exam["id"]])

        response = self.client.patch(f"/api/v1/exams/{exam['id']}", json={"name": "英语六级"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "英语六级")
        self.assertEqual(response.json()["subject"], "英语")

        response = self.client.delete(f"/api/v1/exams/{exam['id']}")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/api/v1/exams").json(), [])

    def test_unknown_exam_is_404(self):
        response = self.client.get("/api/v1/exams/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json(), {"detail": "Exam not found: missing", "error": "EntityNotFoundError"})

        self.assertEqual(self.client.patch("/api/v1/exams/missing", json={"name": "x"}).status_code, 404)
        self.assertEqual(self.client.delete("/api/v1/exams/missing").status_code, 404)

    def test_invalid_exam_body_is_422(self):
        response = self.client.post("/api/v1/exams", json={"subject": "英语"})
        self.assertEqual(response.status_code, 422)

    def test_exam_date_must_parse(self):
        response = self.client.post("/api/v1/exams", json={"name": "e", "date": "next friday"})
        self.assertEqual(response.status_code, 422)

        exam = self._create_exam(date="2099-06-15T09:00:00")
        response = self.client.patch(f"/api/v1/exams/{exam['id']}", json={"date": "someday"})
        self.assertEqual(response.status_code, 422)
        response = self.client.patch(f"/api/v1/exams/{exam['id']}", json={"date": None, "name": "改名"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["date"], "2099-06-15T09:00:00")

        self.assertEqual(self.client.get("/api/v1/dashboard").status_code, 200)

    # --- Knowledge points ---

    def test_knowledge_points_and_weak_filter(self):
        exam = self._create_exam()
        weak = self._create_knowledge_point(exam["id"], "听力", mastery_level=20)
        self._create_knowledge_point(exam["id"], "阅读", mastery_level=80)

        all_points = self.client.get(f"/api/v1/exams/{exam['id']}/knowledge_points").json()
        self.assertEqual(len(all_points), 2)
        weak_points = self.client.get(
            f"/api/v1/exams/{exam['id']}/knowledge_points", params={"weak_only": True}
        ).json()
        self.assertEqual([k["id"] for k in weak_points], [weak["id"]])

    def test_knowledge_point_update_and_mastery(self):
        exam = self._create_exam()
        kp = self._create_knowledge_point(exam["id"], mastery_level=95)

        response = self.client.patch(f"/api/v1/knowledge_points/{kp['id']}", json={"importance": 5})
        self.assertEqual(response.json()["importance"], 5)

        response = self.client.post(f"/api/v1/knowledge_points/{kp['id']}/mastery")
        self.assertEqual(response.json()["mastery_level"], 100)

        response = self.client.patch(f"/api/v1/knowledge_points/{kp['id']}", json={"importance": 7})
        self.assertEqual(response.status_code, 422)

    def test_knowledge_point_for_unknown_exam_is_404(self):
        response = self.client.post("/api/v1/exams/missing/knowledge_points", json={"name": "听力"})
        self.assertEqual(response.status_code, 404)

    # --- Reviews ---

    def test_review_flow(self):
        exam = self._create_exam()
        kp = self._create_knowledge_point(exam["id"])

        record = self.client.post(f"/api/v1/knowledge_points/{kp['id']}/studied").json()
        self.assertEqual(record["review_count"], 0)
        self.assertEqual(record["status"], "pending")

        response = self.client.get(f"/api/v1/knowledge_points/{kp['id']}/review")
        self.assertEqual(response.json()["id"], record["id"])

        due = self.client.get("/api/v1/reviews/due", params={"as_of": record["next_review_date"]}).json()
        self.assertEqual([r["id"] for r in due], [record["id"]])

        completed = self.client.post(f"/api/v1/reviews/{record['id']}/complete").json()
        self.assertEqual(completed["review_count"], 1)

        self.assertEqual(self.client.post("/api/v1/reviews/missing/complete").status_code, 404)
        self.assertEqual(self.client.get("/api/v1/knowledge_points/other/review").status_code, 404)

    # --- Tasks ---

    def test_task_crud(self):
        exam = self._create_exam()
        response = self.client.post(
            f"/api/v1/exams/{exam['id']}/tasks",
            json={"title": "背单词", "estimated_minutes": 30, "scheduled_date": "2099-01-05"},
        )
        self.assertEqual(response.status_code, 201)
        task = response.json()
        self.assertEqual(task["status"], "pending")

        by_month = self.client.get("/api/v1/tasks", params={"date": "2099-01"}).json()
        self.assertEqual([t["id"] for t in by_month], [task["id"]])

        response = self.client.patch(f"/api/v1/tasks/{task['id']}", json={"status": "completed", "actual_minutes": 25})
        self.assertEqual(response.json()["status"], "completed")

        self.assertEqual(self.client.delete(f"/api/v1/tasks/{task['id']}").status_code, 204)
        self.assertEqual(self.client.patch(f"/api/v1/tasks/{task['id']}", json={"title": "x"}).status_code, 404)

    def test_task_requires_positive_minutes(self):
        exam = self._create_exam()
        response = self.client.post(
            f"/api/v1/exams/{exam['id']}/tasks",
            json={"title": "背单词", "estimated_minutes": 0, "scheduled_date": "2099-01-05"},
        )
        self.assertEqual(response.status_code, 422)

    def test_task_dates_are_validated_and_zero_padded(self):
        exam = self._create_exam()
        url = f"/api/v1/exams/{exam['id']}/tasks"
        response = self.client.post(url, json={"title": "背单词", "estimated_minutes": 30, "scheduled_date": "2099-1-5"})
        self.assertEqual(response.status_code, 201)
        task = response.json()
        self.assertEqual(task["scheduled_date"], "2099-01-05")

        response = self.client.post(url, json={"title": "背单词", "estimated_minutes": 30, "scheduled_date": "soon"})
        self.assertEqual(response.status_code, 422)

        response = self.client.patch(f"/api/v1/tasks/{task['id']}", json={"scheduled_date": "later"})
        self.assertEqual(response.status_code, 422)
        response = self.client.patch(f"/api/v1/tasks/{task['id']}", json={"scheduled_date": None})
        self.assertEqual(response.status_code, 422)
        self.assertEqual(response.json()["error"], "ValidationError")
        self.assertEqual(self.planner_app.state_store.get_task(task["id"]).scheduled_date, "2099-01-05")

    def test_due_reviews_reject_bad_date(self):
        response = self.client.get("/api/v1/reviews/due", params={"as_of": "yesterday"})
        self.assertEqual(response.status_code, 422)

    # --- Plans ---

    def test_generate_and_fetch_quick_plan(self):
        exam = self._create_exam()
        self._create_knowledge_point(exam["id"], "听力", mastery_level=0, importance=5)
        self._create_knowledge_point(exam["id"], "阅读", mastery_level=60, importance=3)

        self.assertEqual(self.client.get(f"/api/v1/exams/{exam['id']}/plan").status_code, 404)

        response = self.client.post(f"/api/v1/exams/{exam['id']}/plan/generate", json={"mode": "quick"})
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["status"], "success")
        self.assertEqual([t["title"] for t in body["data"]], ["学习: 听力", "学习: 阅读"])

        plan = self.client.get(f"/api/v1/exams/{exam['id']}/plan").json()
        self.assertEqual(len(plan["tasks"]), 2)

        response = self.client.post(f"/api/v1/exams/{exam['id']}/plan/adjust")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()["data"]), 2)

    def test_generate_plan_for_unknown_exam_is_404(self):
        response = self.client.post("/api/v1/exams/missing/plan/generate", json={"mode": "quick"})
        self.assertEqual(response.status_code, 404)

    def test_generate_plan_rejects_unknown_mode(self):
        exam = self._create_exam()
        response = self.client.post(f"/api/v1/exams/{exam['id']}/plan/generate", json={"mode": "magic"})
        self.assertEqual(response.status_code, 422)

    def test_ai_plan_without_provider_is_502(self):
        exam = self._create_exam()
        response = self.client.post(f"/api/v1/exams/{exam['id']}/plan/generate", json={"mode": "ai"})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"], "AIRequestError")

    def test_ai_plan_for_past_exam_is_400(self):
        exam = self._create_exam(date="2000-01-01")
        response = self.client.post(f"/api/v1/exams/{exam['id']}/plan/generate", json={"mode": "ai"})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "PlanningInputError")

    def test_ai_parse_failure_is_502(self):
        exam = self._create_exam()
        self.planner_app.ai_planner = MagicMock()
        self.planner_app.ai_planner.adjust_plan.side_effect = AIResponseParseError()

        response = self.client.post(
            f"/api/v1/exams/{exam['id']}/plan/adjust", json={"mode": "ai", "reason": "进度落后"}
        )

        self.assertEqual(response.status_code, 502)
        self.assertIn("AI 响应解析失败", response.json()["detail"])
        self.assertEqual(self.planner_app.ai_planner.adjust_plan.call_args.kwargs["reason"], "进度落后")

    # --- Weakness analysis ---

    def test_weakness_analysis_with_no_results_is_400(self):
        exam = self._create_exam()
        response = self.client.post(
            f"/api/v1/exams/{exam['id']}/weakness/analyze", json={"results": [], "questions": []}
        )
        self.assertEqual(response.status_code, 400)

    # --- Settings & dashboard ---

    def test_settings_mask_api_key(self):
        response = self.client.put(
            "/api/v1/settings/ai_config", json={"provider": "deepseek", "api_key": "sk-1234567890"}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["ai_config"]["api_key"], "sk-***7890")
        self.assertEqual(self.planner_app.llm_interface.api_key, "sk-1234567890")

        settings = self.client.get("/api/v1/settings").json()
        self.assertEqual(settings["ai_config"]["provider"], "deepseek")

        cleared = self.client.delete("/api/v1/settings/ai_config").json()
        self.assertIsNone(cleared["ai_config"])

    def test_update_settings(self):
        response = self.client.patch("/api/v1/settings", json={"daily_study_minutes": 90})
        self.assertEqual(response.json()["daily_study_minutes"], 90)
        self.assertEqual(self.client.patch("/api/v1/settings", json={"daily_study_minutes": 0}).status_code, 422)

    def test_dashboard(self):
        exam = self._create_exam()
        self._create_knowledge_point(exam["id"], mastery_level=20)

        summary = self.client.get("/api/v1/dashboard").json()

        self.assertEqual(summary["exam_count"], 1)
        self.assertEqual(summary["weak_point_count"], 1)
        self.assertEqual(summary["upcoming_exams"][0]["id"], exam["id"])
        self.assertFalse(summary["has_ai_config"])


if __name__ == '__main__':
    unittest.main()
