# -*- coding: utf-8 -*-
"""学习计划助手的实体模型。

考试、知识点、学习任务、学习计划、复习记录与用户设置，
以及整体持久化的状态文档 AppState。日期统一使用 YYYY-MM-DD 字符串。
"""
import uuid
from datetime import datetime
from typing import Annotated, List, Literal, Optional

from pydantic import AfterValidator, BaseModel, Field

from study_planner.dates import check_date, normalize_date

WEAK_MASTERY_THRESHOLD = 60
MAX_MASTERY = 100
DEFAULT_DAILY_STUDY_MINUTES = 120

TaskStatus = Literal["pending", "in_progress", "completed", "skipped"]
ReviewStatus = Literal["pending", "completed"]
AIProvider = Literal["openai", "anthropic", "dashscope", "deepseek", "custom"]
PreferredStudyTime = Literal["morning", "afternoon", "evening", "any"]

# zero-padded YYYY-MM-DD; other parseable dates are normalised
CalendarDate = Annotated[str, AfterValidator(normalize_date)]
# ISO date or date-time; only the calendar date is used
DateOrDateTime = Annotated[str, AfterValidator(check_date)]


def new_id() -> str:
    return str(uuid.uuid4())


def now_iso() -> str:
    return datetime.now().isoformat()


class Exam(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    subject: str = ""
    date: DateOrDateTime
    total_score: int = 100
    created_at: str = Field(default_factory=now_iso)


class KnowledgePoint(BaseModel):
    id: str = Field(default_factory=new_id)
    exam_id: str
    name: str
    mastery_level: int = Field(default=0, ge=0, le=MAX_MASTERY)
    importance: int = Field(default=3, ge=1, le=5)
    parent_id: Optional[str] = None

    @property
    def is_weak(self) -> bool:
        return self.mastery_level < WEAK_MASTERY_THRESHOLD


class StudyTask(BaseModel):
    id: str = Field(default_factory=new_id)
    exam_id: str
    knowledge_point_id: Optional[str] = None
    title: str
    description: Optional[str] = None
    estimated_minutes: int = Field(gt=0)
    scheduled_date: CalendarDate
    status: TaskStatus = "pending"
    actual_minutes: Optional[int] = None
    completed_at: Optional[str] = None


class StudyPlan(BaseModel):
    id: str = Field(default_factory=new_id)
    exam_id: str
    tasks: List[StudyTask] = Field(default_factory=list)
    created_at: str = Field(default_factory=now_iso)
    last_adjusted_at: str = Field(default_factory=now_iso)


class ReviewRecord(BaseModel):
    id: str = Field(default_factory=new_id)
    knowledge_point_id: str
    exam_id: str
    review_count: int = Field(default=0, ge=0)
    last_review_date: Optional[CalendarDate] = None
    next_review_date: CalendarDate
    status: ReviewStatus = "pending"
    created_at: str = Field(default_factory=now_iso)


class AIConfig(BaseModel):
    provider: AIProvider
    api_key: str
    model: Optional[str] = None
    custom_base_url: Optional[str] = None


class UserSettings(BaseModel):
    ai_config: Optional[AIConfig] = None
    daily_study_minutes: int = Field(default=DEFAULT_DAILY_STUDY_MINUTES, gt=0)
    preferred_study_time: PreferredStudyTime = "any"  # advisory only


class AppState(BaseModel):
    """The whole persisted document: five entity collections plus settings."""

    exams: List[Exam] = Field(default_factory=list)
    knowledge_points: List[KnowledgePoint] = Field(default_factory=list)
    tasks: List[StudyTask] = Field(default_factory=list)
    plans: List[StudyPlan] = Field(default_factory=list)
    review_records: List[ReviewRecord] = Field(default_factory=list)
    settings: UserSettings = Field(default_factory=UserSettings)
