# -*- coding: utf-8 -*-
"""API 网关主文件。

使用 FastAPI 实现，定义了所有面向前端的 HTTP 接口，
负责请求的接收与校验、路由到状态存储和规划模块，
并把领域异常转换为相应的 HTTP 状态码。
"""
import logging
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Path, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from study_planner.dates import to_date
from study_planner.exceptions import (AIRequestError, AIResponseParseError, EntityNotFoundError,
                                      PlanConflictError, PlanningInputError)
from study_planner.models import (AIConfig, CalendarDate, DateOrDateTime, Exam, KnowledgePoint,
                                  PreferredStudyTime, StudyTask, TaskStatus, UserSettings)
from study_planner.weakness_analyzer.weakness_analyzer import TestQuestion, TestResult

if TYPE_CHECKING:
    from study_planner.app import StudyPlannerApp

logger = logging.getLogger(__name__)


# --- Request Models ---
class ExamCreate(BaseModel):
    name: str
    subject: str = ""
    date: DateOrDateTime
    total_score: int = 100


class ExamUpdate(BaseModel):
    name: Optional[str] = None
    subject: Optional[str] = None
    date: Optional[DateOrDateTime] = None
    total_score: Optional[int] = None


class KnowledgePointCreate(BaseModel):
    name: str
    mastery_level: int = Field(default=0, ge=0, le=100)
    importance: int = Field(default=3, ge=1, le=5)
    parent_id: Optional[str] = None


class KnowledgePointUpdate(BaseModel):
    name: Optional[str] = None
    mastery_level: Optional[int] = Field(default=None, ge=0, le=100)
    importance: Optional[int] = Field(default=None, ge=1, le=5)
    parent_id: Optional[str] = None


class MasteryIncrease(BaseModel):
    amount: int = 10


class TaskCreate(BaseModel):
    knowledge_point_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    estimated_minutes: int = Field(gt=0)
    scheduled_date: CalendarDate


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    estimated_minutes: Optional[int] = Field(default=None, gt=0)
    scheduled_date: Optional[CalendarDate] = None
    status: Optional[TaskStatus] = None
    actual_minutes: Optional[int] = None
    completed_at: Optional[str] = None


class PlanGenerateRequest(BaseModel):
    mode: Literal["quick", "ai"] = "quick"


class PlanAdjustRequest(BaseModel):
    mode: Literal["quick", "ai"] = "quick"
    reason: str = ""


class WeaknessAnalyzeRequest(BaseModel):
    results: List[TestResult]
    questions: List[TestQuestion] = Field(default_factory=list)
    save: bool = True


class SettingsUpdate(BaseModel):
    daily_study_minutes: Optional[int] = Field(default=None, gt=0)
    preferred_study_time: Optional[PreferredStudyTime] = None


def _dump(model: BaseModel) -> Dict[str, Any]:
    return model.model_dump(mode="json")


def _dump_settings(settings: UserSettings) -> Dict[str, Any]:
    """Settings as returned to clients; the API key is masked."""
    data = _dump(settings)
    ai_config = data.get("ai_config")
    if ai_config and ai_config.get("api_key"):
        key = ai_config["api_key"]
        ai_config["api_key"] = f"{key[:3]}***{key[-4:]}" if len(key) > 8 else "***"
    return data


# --- API Gateway Class ---
class APIGateway:
    """
    API Gateway using FastAPI to route requests to the StudyPlannerApp.

    Endpoints are plain ``def`` functions so FastAPI runs them in its thread
    pool; the StateStore serialises access to the shared state.
    """

    def __init__(self, planner_app: "StudyPlannerApp"):
        self.app = FastAPI(title="Exam Study Planner API Gateway")
        self.planner_app = planner_app
        self.state_store = planner_app.state_store
        self._setup_exception_handlers()
        self._setup_routes()

    def _error_response(self, request: Request, status_code: int, exc: Exception) -> JSONResponse:
        log = logger.warning if status_code < 500 else logger.error
        log(f"{request.method} {request.url.path} failed with {status_code}: {exc}")
        self.planner_app.monitoring_manager.record_metric(
            "api_gateway_errors", 1, metric_type="counter", tags={"status_code": str(status_code)}
        )
        return JSONResponse(status_code=status_code, content={"detail": str(exc), "error": type(exc).__name__})

    def _setup_exception_handlers(self):
        @self.app.exception_handler(EntityNotFoundError)
        async def entity_not_found_handler(request: Request, exc: EntityNotFoundError):
            return self._error_response(request, 404, exc)

        @self.app.exception_handler(PlanningInputError)
        async def planning_input_handler(request: Request, exc: PlanningInputError):
            return self._error_response(request, 400, exc)

        @self.app.exception_handler(AIRequestError)
        async def ai_request_handler(request: Request, exc: AIRequestError):
            return self._error_response(request, 502, exc)

        @self.app.exception_handler(AIResponseParseError)
        async def ai_parse_handler(request: Request, exc: AIResponseParseError):
            return self._error_response(request, 502, exc)

        @self.app.exception_handler(PlanConflictError)
        async def plan_conflict_handler(request: Request, exc: PlanConflictError):
            return self._error_response(request, 409, exc)

        # entity changes that fail model validation inside the store
        @self.app.exception_handler(ValidationError)
        async def validation_handler(request: Request, exc: ValidationError):
            return self._error_response(request, 422, exc)

    def _require_exam(self, exam_id: str) -> Exam:
        exam = self.state_store.get_exam(exam_id)
        if exam is None:
            raise EntityNotFoundError("Exam", exam_id)
        return exam

    def _setup_routes(self):
        """Defines the API routes."""
        store = self.state_store

        # --- Exams ---
        @self.app.get("/api/v1/exams", tags=["Exams"])
        def list_exams() -> List[Dict[str, Any]]:
            return [_dump(e) for e in store.list_exams()]

        @self.app.post("/api/v1/exams", status_code=201, tags=["Exams"])
        def create_exam(body: ExamCreate) -> Dict[str, Any]:
            exam = store.add_exam(Exam(**body.model_dump()))
            return _dump(exam)

        @self.app.get("/api/v1/exams/{exam_id}", tags=["Exams"])
        def get_exam(exam_id: str = Path(..., title="Exam ID")) -> Dict[str, Any]:
            return _dump(self._require_exam(exam_id))

        @self.app.patch("/api/v1/exams/{exam_id}", tags=["Exams"])
        def update_exam(exam_id: str, body: ExamUpdate) -> Dict[str, Any]:
            return _dump(store.update_exam(exam_id, **body.model_dump(exclude_unset=True, exclude_none=True)))

        @self.app.delete("/api/v1/exams/{exam_id}", status_code=204, tags=["Exams"])
        def delete_exam(exam_id: str):
            store.delete_exam(exam_id)

        # --- Knowledge points ---
        @self.app.get("/api/v1/exams/{exam_id}/knowledge_points", tags=["Knowledge Points"])
        def list_knowledge_points(
            exam_id: str,
            weak_only: bool = Query(False, description="Only return points with mastery below 60"),
        ) -> List[Dict[str, Any]]:
            self._require_exam(exam_id)
            if weak_only:
                points = store.get_weak_knowledge_points(exam_id)
            else:
                points = store.get_knowledge_points_by_exam(exam_id)
            return [_dump(k) for k in points]

        @self.app.post("/api/v1/exams/{exam_id}/knowledge_points", status_code=201, tags=["Knowledge Points"])
        def create_knowledge_point(exam_id: str, body: KnowledgePointCreate) -> Dict[str, Any]:
            self._require_exam(exam_id)
            kp = store.add_knowledge_point(KnowledgePoint(exam_id=exam_id, **body.model_dump()))
            return _dump(kp)

        @self.app.patch("/api/v1/knowledge_points/{kp_id}", tags=["Knowledge Points"])
        def update_knowledge_point(kp_id: str, body: KnowledgePointUpdate) -> Dict[str, Any]:
            return _dump(store.update_knowledge_point(kp_id, **body.model_dump(exclude_unset=True)))

        @self.app.delete("/api/v1/knowledge_points/{kp_id}", status_code=204, tags=["Knowledge Points"])
        def delete_knowledge_point(kp_id: str):
            store.delete_knowledge_point(kp_id)

        @self.app.post("/api/v1/knowledge_points/{kp_id}/mastery", tags=["Knowledge Points"])
        def increase_mastery(kp_id: str, body: Optional[MasteryIncrease] = None) -> Dict[str, Any]:
            amount = body.amount if body else MasteryIncrease().amount
            return _dump(store.increase_mastery(kp_id, amount))

        @self.app.post("/api/v1/knowledge_points/{kp_id}/studied", tags=["Knowledge Points"])
        def mark_studied(kp_id: str) -> Dict[str, Any]:
            return _dump(store.mark_knowledge_point_studied(kp_id))

        # --- Tasks ---
        @self.app.get("/api/v1/exams/{exam_id}/tasks", tags=["Tasks"])
        def list_exam_tasks(exam_id: str) -> List[Dict[str, Any]]:
            self._require_exam(exam_id)
            return [_dump(t) for t in store.get_tasks_by_exam(exam_id)]

        @self.app.post("/api/v1/exams/{exam_id}/tasks", status_code=201, tags=["Tasks"])
        def create_task(exam_id: str, body: TaskCreate) -> Dict[str, Any]:
            self._require_exam(exam_id)
            return _dump(store.add_task(StudyTask(exam_id=exam_id, **body.model_dump())))

        @self.app.get("/api/v1/tasks", tags=["Tasks"])
        def list_tasks_by_date(
            date: str = Query(..., description="Date or date prefix, e.g. 2024-01-05 or 2024-01"),
        ) -> List[Dict[str, Any]]:
            return [_dump(t) for t in store.get_tasks_by_date(date)]

        @self.app.patch("/api/v1/tasks/{task_id}", tags=["Tasks"])
        def update_task(task_id: str, body: TaskUpdate) -> Dict[str, Any]:
            return _dump(store.update_task(task_id, **body.model_dump(exclude_unset=True)))

        @self.app.delete("/api/v1/tasks/{task_id}", status_code=204, tags=["Tasks"])
        def delete_task(task_id: str):
            store.delete_task(task_id)

        # --- Plans ---
        @self.app.get("/api/v1/exams/{exam_id}/plan", tags=["Plans"])
        def get_plan(exam_id: str) -> Dict[str, Any]:
            self._require_exam(exam_id)
            plan = store.get_plan_by_exam(exam_id)
            if plan is None:
                raise HTTPException(status_code=404, detail=f"No plan for exam {exam_id}")
            return _dump(plan)

        @self.app.post("/api/v1/exams/{exam_id}/plan/generate", tags=["Plans"])
        def generate_plan(exam_id: str, body: Optional[PlanGenerateRequest] = None) -> Dict[str, Any]:
            body = body or PlanGenerateRequest()
            logger.info(f"Gateway received plan generation for exam {exam_id} (mode={body.mode})")
            tasks = self.planner_app.generate_plan(exam_id, mode=body.mode)
            return {"status": "success", "data": [_dump(t) for t in tasks]}

        @self.app.post("/api/v1/exams/{exam_id}/plan/adjust", tags=["Plans"])
        def adjust_plan(exam_id: str, body: Optional[PlanAdjustRequest] = None) -> Dict[str, Any]:
            body = body or PlanAdjustRequest()
            logger.info(f"Gateway received plan adjustment for exam {exam_id} (mode={body.mode})")
            tasks = self.planner_app.adjust_plan(exam_id, mode=body.mode, reason=body.reason)
            return {"status": "success", "data": [_dump(t) for t in tasks]}

        # --- Reviews ---
        @self.app.get("/api/v1/reviews/due", tags=["Reviews"])
        def list_due_reviews(
            as_of: Optional[str] = Query(None, description="YYYY-MM-DD, defaults to today"),
        ) -> List[Dict[str, Any]]:
            if as_of is not None:
                try:
                    to_date(as_of)
                except ValueError:
                    raise HTTPException(status_code=422, detail=f"Invalid date: {as_of}")
            return [_dump(r) for r in store.get_reviews_due(as_of)]

        @self.app.get("/api/v1/knowledge_points/{kp_id}/review", tags=["Reviews"])
        def get_review_for_knowledge_point(kp_id: str) -> Dict[str, Any]:
            record = store.get_review_by_knowledge_point(kp_id)
            if record is None:
                raise HTTPException(status_code=404, detail=f"No review record for knowledge point {kp_id}")
            return _dump(record)

        @self.app.post("/api/v1/reviews/{record_id}/complete", tags=["Reviews"])
        def complete_review(record_id: str) -> Dict[str, Any]:
            return _dump(store.complete_review(record_id))

        # --- Weakness analysis ---
        @self.app.post("/api/v1/exams/{exam_id}/weakness/analyze", tags=["Weakness"])
        def analyze_weakness(exam_id: str, body: WeaknessAnalyzeRequest) -> Dict[str, Any]:
            analysis = self.planner_app.analyze_weakness(
                exam_id, body.results, body.questions, save=body.save
            )
            return {"status": "success", "data": _dump(analysis)}

        # --- Settings ---
        @self.app.get("/api/v1/settings", tags=["Settings"])
        def get_settings() -> Dict[str, Any]:
            return _dump_settings(store.get_settings())

        @self.app.patch("/api/v1/settings", tags=["Settings"])
        def update_settings(body: SettingsUpdate) -> Dict[str, Any]:
            return _dump_settings(self.planner_app.update_settings(**body.model_dump(exclude_unset=True)))

        @self.app.put("/api/v1/settings/ai_config", tags=["Settings"])
        def set_ai_config(body: AIConfig) -> Dict[str, Any]:
            return _dump_settings(self.planner_app.set_ai_config(body))

        @self.app.delete("/api/v1/settings/ai_config", tags=["Settings"])
        def clear_ai_config() -> Dict[str, Any]:
            return _dump_settings(self.planner_app.set_ai_config(None))

        # --- Dashboard ---
        @self.app.get("/api/v1/dashboard", tags=["Dashboard"])
        def get_dashboard() -> Dict[str, Any]:
            return store.get_dashboard_summary()

    def get_fastapi_app(self) -> FastAPI:
        """Returns the FastAPI application instance."""
        return self.app
