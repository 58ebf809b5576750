# -*- coding: utf-8 -*-
"""
状态存储模块 (StateStore)

持有考试、知识点、任务、计划、复习记录与用户设置的完整状态，
提供增删改查、级联删除和派生查询。每次修改都会计算出新的集合，
并把整个状态文档写回 KeyValueStorage。
"""
import threading
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Sequence

from pydantic import ValidationError

from study_planner.dates import DateLike, format_date, to_date
from study_planner.exceptions import EntityNotFoundError, PlanConflictError
from study_planner.memory_bank_manager.storage import KeyValueStorage
from study_planner.models import (MAX_MASTERY, AIConfig, AppState, Exam, KnowledgePoint,
                                  ReviewRecord, StudyPlan, StudyTask, UserSettings, now_iso)
from study_planner.monitoring_manager.monitoring_manager import MonitoringManager
from study_planner.planner_module.quick_planner import days_until
from study_planner.review_scheduler.review_scheduler import (advance_review_record, filter_due_reviews,
                                                             new_review_record)

DEFAULT_STORAGE_KEY = "study-planner-storage"
MASTERY_BOOST = 10
UPCOMING_EXAM_LIMIT = 3
PLAN_REWRITE_ATTEMPTS = 3


class ExamSnapshot(NamedTuple):
    """Everything a planner reads about one exam."""

    exam: Exam
    knowledge_points: List[KnowledgePoint]
    tasks: List[StudyTask]
    daily_study_minutes: int


def _find(items: Iterable[Any], entity_id: str) -> Optional[Any]:
    return next((item for item in items if item.id == entity_id), None)


def _apply_changes(entity, changes: Dict[str, Any]):
    """Returns a re-validated copy of entity with changes applied; the id never changes."""
    changes = {k: v for k, v in changes.items() if k != "id"}
    return type(entity).model_validate({**entity.model_dump(), **changes})


class StateStore:
    """应用状态的唯一持有者。所有公开方法都在同一把可重入锁内执行（rewrite_exam_tasks 的 planner 除外）。"""

    def __init__(
        self,
        storage: KeyValueStorage,
        monitoring_manager: MonitoringManager,
        storage_key: str = DEFAULT_STORAGE_KEY,
        autosave: bool = True,
        default_settings: Optional[UserSettings] = None,
    ):
        """
        Args:
            storage: 整体状态文档的持久化后端。
            monitoring_manager: 监控管理器实例。
            storage_key: 状态文档在存储中的键。
            autosave: 为 True 时每次修改后立即写回存储。
            default_settings: 没有已保存状态时使用的初始设置。
        """
        self.storage = storage
        self.monitoring_manager = monitoring_manager
        self.storage_key = storage_key
        self.autosave = autosave
        self.default_settings = default_settings or UserSettings()
        self._lock = threading.RLock()
        self.state = self.load()

    # --- 持久化 ---

    def load(self) -> AppState:
        """读取状态文档。不存在或损坏时返回全新的默认状态。"""
        raw = self.storage.get(self.storage_key)
        if raw is None:
            self.monitoring_manager.log_info(
                f"No stored state under '{self.storage_key}', starting fresh.",
                context={"module": "StateStore"},
            )
            return AppState(settings=self.default_settings)
        try:
            return AppState.model_validate_json(raw)
        except ValidationError as e:
            self.monitoring_manager.log_error(
                f"Stored state under '{self.storage_key}' is invalid, starting fresh: {e}",
                context={"module": "StateStore"},
            )
            return AppState(settings=self.default_settings)

    def save(self) -> bool:
        with self._lock:
            saved = self.storage.put(self.storage_key, self.state.model_dump_json())
        if not saved:
            self.monitoring_manager.log_error(
                "Failed to persist application state.", context={"module": "StateStore"}
            )
        return saved

    def _commit(self, **collections) -> None:
        self.state = self.state.model_copy(update=collections)
        if self.autosave:
            self.save()

    # --- 考试 ---

    def add_exam(self, exam: Exam) -> Exam:
        with self._lock:
            self._commit(exams=[*self.state.exams, exam])
        self.monitoring_manager.log_info(f"Exam added: {exam.id}", context={"module": "StateStore", "name": exam.name})
        return exam

    def get_exam(self, exam_id: str) -> Optional[Exam]:
        with self._lock:
            return _find(self.state.exams, exam_id)

    def list_exams(self) -> List[Exam]:
        with self._lock:
            return list(self.state.exams)

    def _require_exam(self, exam_id: str) -> Exam:
        exam = _find(self.state.exams, exam_id)
        if exam is None:
            raise EntityNotFoundError("Exam", exam_id)
        return exam

    def update_exam(self, exam_id: str, **changes) -> Exam:
        with self._lock:
            updated = _apply_changes(self._require_exam(exam_id), changes)
            self._commit(exams=[updated if e.id == exam_id else e for e in self.state.exams])
            return updated

    def delete_exam(self, exam_id: str) -> None:
        """删除考试及其知识点、任务和计划。复习记录保留。"""
        with self._lock:
            self._require_exam(exam_id)
            self._commit(
                exams=[e for e in self.state.exams if e.id != exam_id],
                knowledge_points=[k for k in self.state.knowledge_points if k.exam_id != exam_id],
                tasks=[t for t in self.state.tasks if t.exam_id != exam_id],
                plans=[p for p in self.state.plans if p.exam_id != exam_id],
            )
        self.monitoring_manager.log_info(f"Exam deleted: {exam_id}", context={"module": "StateStore"})

    # --- 知识点 ---

    def add_knowledge_point(self, knowledge_point: KnowledgePoint) -> KnowledgePoint:
        with self._lock:
            self._commit(knowledge_points=[*self.state.knowledge_points, knowledge_point])
        return knowledge_point

    def add_knowledge_points(self, knowledge_points: Sequence[KnowledgePoint]) -> List[KnowledgePoint]:
        with self._lock:
            self._commit(knowledge_points=[*self.state.knowledge_points, *knowledge_points])
        return list(knowledge_points)

    def get_knowledge_point(self, kp_id: str) -> Optional[KnowledgePoint]:
        with self._lock:
            return _find(self.state.knowledge_points, kp_id)

    def _require_knowledge_point(self, kp_id: str) -> KnowledgePoint:
        kp = _find(self.state.knowledge_points, kp_id)
        if kp is None:
            raise EntityNotFoundError("KnowledgePoint", kp_id)
        return kp

    def update_knowledge_point(self, kp_id: str, **changes) -> KnowledgePoint:
        with self._lock:
            updated = _apply_changes(self._require_knowledge_point(kp_id), changes)
            self._commit(
                knowledge_points=[updated if k.id == kp_id else k for k in self.state.knowledge_points]
            )
            return updated

    def delete_knowledge_point(self, kp_id: str) -> None:
        with self._lock:
            self._require_knowledge_point(kp_id)
            self._commit(knowledge_points=[k for k in self.state.knowledge_points if k.id != kp_id])

    def get_knowledge_points_by_exam(self, exam_id: str) -> List[KnowledgePoint]:
        with self._lock:
            return [k for k in self.state.knowledge_points if k.exam_id == exam_id]

    def get_weak_knowledge_points(self, exam_id: Optional[str] = None) -> List[KnowledgePoint]:
        with self._lock:
            return [
                k for k in self.state.knowledge_points
                if k.is_weak and (exam_id is None or k.exam_id == exam_id)
            ]

    def increase_mastery(self, kp_id: str, amount: int = MASTERY_BOOST) -> KnowledgePoint:
        """自测答对后提升掌握度，上限 100。"""
        with self._lock:
            kp = self._require_knowledge_point(kp_id)
            new_level = max(0, min(MAX_MASTERY, kp.mastery_level + amount))
            return self.update_knowledge_point(kp_id, mastery_level=new_level)

    # --- 任务 ---

    def add_task(self, task: StudyTask) -> StudyTask:
        with self._lock:
            self._commit(tasks=[*self.state.tasks, task])
        return task

    def add_tasks(self, tasks: Sequence[StudyTask]) -> List[StudyTask]:
        with self._lock:
            self._commit(tasks=[*self.state.tasks, *tasks])
        return list(tasks)

    def get_task(self, task_id: str) -> Optional[StudyTask]:
        with self._lock:
            return _find(self.state.tasks, task_id)

    def update_task(self, task_id: str, **changes) -> StudyTask:
        with self._lock:
            task = _find(self.state.tasks, task_id)
            if task is None:
                raise EntityNotFoundError("StudyTask", task_id)
            updated = _apply_changes(task, changes)
            self._commit(tasks=[updated if t.id == task_id else t for t in self.state.tasks])
            return updated

    def delete_task(self, task_id: str) -> None:
        with self._lock:
            if _find(self.state.tasks, task_id) is None:
                raise EntityNotFoundError("StudyTask", task_id)
            self._commit(tasks=[t for t in self.state.tasks if t.id != task_id])

    def get_tasks_by_exam(self, exam_id: str) -> List[StudyTask]:
        with self._lock:
            return [t for t in self.state.tasks if t.exam_id == exam_id]

    def get_tasks_by_date(self, date_prefix: str) -> List[StudyTask]:
        """按日期前缀匹配任务，"2024-01" 会返回整个一月的任务。"""
        with self._lock:
            return [t for t in self.state.tasks if t.scheduled_date.startswith(date_prefix)]

    def replace_exam_tasks(self, exam_id: str, tasks: Sequence[StudyTask]) -> List[StudyTask]:
        """用新的任务列表整体替换某个考试的任务，其他考试的任务保持原位。"""
        with self._lock:
            self._require_exam(exam_id)
            self._commit(tasks=[*(t for t in self.state.tasks if t.exam_id != exam_id), *tasks])
        self.monitoring_manager.log_info(
            f"Replaced tasks for exam {exam_id}",
            context={"module": "StateStore", "task_count": len(tasks)},
        )
        return list(tasks)

    # --- 计划 ---

    def add_plan(self, plan: StudyPlan) -> StudyPlan:
        now = now_iso()
        plan = plan.model_copy(update={"created_at": now, "last_adjusted_at": now})
        with self._lock:
            self._commit(plans=[*self.state.plans, plan])
        return plan

    def update_plan(self, plan_id: str, **changes) -> StudyPlan:
        with self._lock:
            plan = _find(self.state.plans, plan_id)
            if plan is None:
                raise EntityNotFoundError("StudyPlan", plan_id)
            updated = _apply_changes(plan, {**changes, "last_adjusted_at": now_iso()})
            self._commit(plans=[updated if p.id == plan_id else p for p in self.state.plans])
            return updated

    def get_plan_by_exam(self, exam_id: str) -> Optional[StudyPlan]:
        with self._lock:
            return next((p for p in self.state.plans if p.exam_id == exam_id), None)

    def save_plan_for_exam(self, exam_id: str, tasks: Sequence[StudyTask]) -> StudyPlan:
        """记录某个考试当前任务的快照：已有计划则更新，否则新建。"""
        with self._lock:
            plan = self.get_plan_by_exam(exam_id)
            if plan is None:
                return self.add_plan(StudyPlan(exam_id=exam_id, tasks=list(tasks)))
            return self.update_plan(plan.id, tasks=list(tasks))

    def exam_snapshot(self, exam_id: str) -> ExamSnapshot:
        with self._lock:
            return ExamSnapshot(
                exam=self._require_exam(exam_id),
                knowledge_points=[k for k in self.state.knowledge_points if k.exam_id == exam_id],
                tasks=[t for t in self.state.tasks if t.exam_id == exam_id],
                daily_study_minutes=self.state.settings.daily_study_minutes,
            )

    def rewrite_exam_tasks(
        self,
        exam_id: str,
        planner: Callable[[ExamSnapshot], Optional[Sequence[StudyTask]]],
        max_attempts: int = PLAN_REWRITE_ATTEMPTS,
    ) -> Optional[List[StudyTask]]:
        """
        基于考试的一致快照运行 planner，并把结果作为该考试的新任务与计划保存。

        planner 在锁外执行（AI 调用可能很慢）。保存前若发现考试、知识点、任务或
        每日预算已被其他请求修改，则丢弃本次结果，基于新快照重新计算。

        Args:
            exam_id: 考试 id。
            planner: 接收 ExamSnapshot，返回新的任务列表；返回 None 表示不需要修改。
            max_attempts: 最多计算次数。

        Returns:
            保存后的任务列表；planner 返回 None 时返回 None。

        Raises:
            EntityNotFoundError: 考试不存在（或在计算期间被删除）。
            PlanConflictError: 每次计算期间状态都被修改。
        """
        for attempt in range(1, max_attempts + 1):
            snapshot = self.exam_snapshot(exam_id)
            tasks = planner(snapshot)
            with self._lock:
                if self.exam_snapshot(exam_id) != snapshot:
                    self.monitoring_manager.log_warning(
                        f"Exam {exam_id} changed while planning, recomputing.",
                        context={"module": "StateStore", "attempt": attempt},
                    )
                    continue
                if tasks is None:
                    return None
                stored = self.replace_exam_tasks(exam_id, tasks)
                self.save_plan_for_exam(exam_id, stored)
                return stored
        raise PlanConflictError(exam_id, max_attempts)

    # --- 复习记录 ---

    def create_review_record(self, kp_id: str, exam_id: str) -> ReviewRecord:
        """为知识点创建复习记录。已存在未完成的记录时直接返回该记录。"""
        with self._lock:
            existing = next(
                (r for r in self.state.review_records if r.knowledge_point_id == kp_id and r.status == "pending"),
                None,
            )
            if existing is not None:
                return existing
            record = new_review_record(kp_id, exam_id)
            self._commit(review_records=[*self.state.review_records, record])
        self.monitoring_manager.log_info(
            f"Review record created for knowledge point {kp_id}",
            context={"module": "StateStore", "next_review_date": record.next_review_date},
        )
        return record

    def mark_knowledge_point_studied(self, kp_id: str) -> ReviewRecord:
        """学习完成一个知识点后为其安排复习。"""
        with self._lock:
            kp = self._require_knowledge_point(kp_id)
            return self.create_review_record(kp.id, kp.exam_id)

    def complete_review(self, record_id: str, today: Optional[DateLike] = None) -> ReviewRecord:
        with self._lock:
            record = _find(self.state.review_records, record_id)
            if record is None:
                raise EntityNotFoundError("ReviewRecord", record_id)
            advanced = advance_review_record(record, today)
            self._commit(
                review_records=[advanced if r.id == record_id else r for r in self.state.review_records]
            )
        return advanced

    def get_reviews_due(self, as_of: Optional[DateLike] = None) -> List[ReviewRecord]:
        with self._lock:
            return filter_due_reviews(self.state.review_records, as_of)

    def get_review_by_knowledge_point(self, kp_id: str) -> Optional[ReviewRecord]:
        """返回该知识点的第一条复习记录（不区分状态）。"""
        with self._lock:
            return next((r for r in self.state.review_records if r.knowledge_point_id == kp_id), None)

    # --- 设置 ---

    def get_settings(self) -> UserSettings:
        with self._lock:
            return self.state.settings

    def update_settings(self, **changes) -> UserSettings:
        with self._lock:
            settings = _apply_changes(self.state.settings, changes)
            self._commit(settings=settings)
            return settings

    def set_ai_config(self, config: Optional[AIConfig]) -> UserSettings:
        with self._lock:
            settings = self.state.settings.model_copy(update={"ai_config": config})
            self._commit(settings=settings)
            return settings

    # --- 派生查询 ---

    def get_dashboard_summary(self, today: Optional[DateLike] = None) -> Dict[str, Any]:
        """首页概览：各类数量、平均掌握度、今日待复习以及最近的考试。"""
        today_date = to_date(today)
        with self._lock:
            state = self.state
            kps = state.knowledge_points
            weak = [k for k in kps if k.is_weak]
            average_mastery = int(sum(k.mastery_level for k in kps) / len(kps) + 0.5) if kps else 0

            upcoming = sorted(
                (e for e in state.exams if to_date(e.date) >= today_date),
                key=lambda e: to_date(e.date),
            )[:UPCOMING_EXAM_LIMIT]

            return {
                "exam_count": len(state.exams),
                "knowledge_point_count": len(kps),
                "weak_point_count": len(weak),
                "average_mastery": average_mastery,
                "due_review_count": len(filter_due_reviews(state.review_records, today_date)),
                "today_task_count": sum(1 for t in state.tasks if t.scheduled_date == format_date(today_date)),
                "has_ai_config": bool(state.settings.ai_config and state.settings.ai_config.api_key),
                "upcoming_exams": [
                    {
                        "id": e.id,
                        "name": e.name,
                        "subject": e.subject,
                        "date": e.date,
                        "days_left": days_until(e.date, today_date),
                        "knowledge_point_count": sum(1 for k in kps if k.exam_id == e.id),
                        "weak_point_count": sum(1 for k in weak if k.exam_id == e.id),
                    }
                    for e in upcoming
                ],
            }
