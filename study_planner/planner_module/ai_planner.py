# -*- coding: utf-8 -*-
"""AI 辅助的任务拆解与计划调整 (AIPlanner)。

把考试信息、剩余天数、每日时间预算以及知识点或现有任务的摘要发送给大模型，
解析其 JSON 输出，并与现有的知识点 / 任务状态对账，得到新的任务列表。
"""
import json
import time
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

from pydantic import BaseModel, ValidationError

from study_planner.exceptions import AIRequestError, AIResponseParseError, PlanningInputError
from study_planner.llm_interface.llm_interface import LLMInterface
from study_planner.llm_interface.response_parser import parse_json_response
from study_planner.models import Exam, KnowledgePoint, StudyTask
from study_planner.monitoring_manager.monitoring_manager import MonitoringManager
from study_planner.planner_module.prompts import PLAN_ADJUST_PROMPT, TASK_DECOMPOSE_PROMPT
from study_planner.planner_module.quick_planner import days_until
from study_planner.planner_module.schemas import (AdjustResponse, DecomposeResponse,
                                                  DeleteDirective, KeepDirective,
                                                  ModifyDirective, NewDirective)
from study_planner.dates import DateLike, to_date

SchemaT = TypeVar("SchemaT", bound=BaseModel)


class AIPlanner:
    def __init__(self, llm_interface: LLMInterface, monitoring_manager: MonitoringManager):
        self.llm_interface = llm_interface
        self.monitoring_manager = monitoring_manager
        self.monitoring_manager.log_info("AIPlanner initialized.")

    def _call_llm(self, operation: str, prompt: str, system_prompt: str) -> str:
        span = self.monitoring_manager.start_span(f"AIPlanner.{operation}", attributes={"operation": operation})
        start_time = time.time()
        response = self.llm_interface.generate_text(prompt, system_prompt=system_prompt)
        self.monitoring_manager.record_metric(
            "ai_planner_request_seconds",
            time.time() - start_time,
            metric_type="histogram",
            tags={"operation": operation},
        )
        if response.get("status") != "success":
            message = response.get("message") or "unknown error"
            self.monitoring_manager.log_error(
                f"LLM call failed during {operation}: {message}",
                context={"module": "AIPlanner", "operation": operation},
            )
            error = AIRequestError(message)
            self.monitoring_manager.end_span(span, exc=error)
            raise error
        self.monitoring_manager.end_span(span)
        return response["data"]["text"]

    def _parse(self, operation: str, text: str, schema: Type[SchemaT]) -> SchemaT:
        try:
            parsed = parse_json_response(text)
        except AIResponseParseError:
            self.monitoring_manager.log_error(
                "Failed to extract JSON from AI response.",
                context={"module": "AIPlanner", "operation": operation, "response": text[:500]},
            )
            raise
        try:
            return schema.model_validate(parsed)
        except ValidationError as e:
            self.monitoring_manager.log_error(
                f"AI response did not match the {schema.__name__} structure: {e}",
                context={"module": "AIPlanner", "operation": operation, "response": text[:500]},
            )
            raise AIResponseParseError() from e

    @staticmethod
    def _render_prompt(header: str, payload: Dict[str, Any]) -> str:
        return (
            f"{header}\n\n"
            f"{json.dumps(payload, ensure_ascii=False, indent=2)}\n\n"
            "请按照系统prompt中的格式要求输出JSON。"
        )

    def decompose_tasks(
        self,
        exam: Exam,
        knowledge_points: Sequence[KnowledgePoint],
        daily_study_minutes: int,
        today: Optional[DateLike] = None,
    ) -> List[StudyTask]:
        """
        让 AI 为考试生成学习任务。

        任务通过 knowledgePointName 精确匹配到输入的知识点；匹配不到时任务不关联知识点。

        Raises:
            PlanningInputError: 考试日期已过或就在今天。
            AIRequestError: 大模型调用失败。
            AIResponseParseError: 响应中没有可用的 JSON，或结构不符合要求。
        """
        today_date = to_date(today)
        days_until_exam = days_until(exam.date, today_date)
        if days_until_exam <= 0:
            raise PlanningInputError("考试日期已过或就在今天，无法生成学习计划")

        payload = {
            "examName": exam.name,
            "examDate": exam.date,
            "daysUntilExam": days_until_exam,
            "dailyStudyMinutes": daily_study_minutes,
            "knowledgePoints": [
                {"name": kp.name, "masteryLevel": kp.mastery_level, "importance": kp.importance}
                for kp in knowledge_points
            ],
        }
        text = self._call_llm(
            "decompose",
            self._render_prompt("请为以下考试制定学习计划：", payload),
            TASK_DECOMPOSE_PROMPT,
        )
        result = self._parse("decompose", text, DecomposeResponse)

        # later duplicates win, matching a plain dict build
        kp_name_to_id = {kp.name: kp.id for kp in knowledge_points}
        tasks = []
        for generated in result.tasks:
            kp_id = kp_name_to_id.get(generated.knowledge_point_name)
            if generated.knowledge_point_name and kp_id is None:
                self.monitoring_manager.log_warning(
                    f"Generated task references unknown knowledge point '{generated.knowledge_point_name}'.",
                    context={"module": "AIPlanner", "exam_id": exam.id},
                )
            tasks.append(
                StudyTask(
                    exam_id=exam.id,
                    knowledge_point_id=kp_id,
                    title=generated.title,
                    description=generated.description,
                    estimated_minutes=generated.estimated_minutes,
                    scheduled_date=generated.scheduled_date,
                    status="pending",
                )
            )

        self.monitoring_manager.log_info(
            f"AI generated {len(tasks)} tasks for exam {exam.id}.",
            context={"module": "AIPlanner", "exam_id": exam.id, "strategy": result.strategy},
        )
        self.monitoring_manager.record_metric(
            "ai_planner_tasks_generated", len(tasks), metric_type="counter", tags={"operation": "decompose"}
        )
        return tasks

    def adjust_plan(
        self,
        exam: Exam,
        tasks: Sequence[StudyTask],
        daily_study_minutes: int,
        reason: str = "",
        today: Optional[DateLike] = None,
    ) -> Sequence[StudyTask]:
        """
        让 AI 根据完成情况调整现有任务。

        按指令顺序生成输出：delete 丢弃任务，keep 原样保留，modify 覆盖标题、说明、
        预计时长和日期，new 新建任务。引用不存在的任务 id 的指令会被跳过；
        没有被任何指令提到的任务不会出现在结果中。考试已过时不调用 AI，原样返回。
        """
        today_date = to_date(today)
        days_remaining = days_until(exam.date, today_date)
        if days_remaining <= 0:
            self.monitoring_manager.log_info(
                f"Exam {exam.id} is over; plan left unchanged.",
                context={"module": "AIPlanner", "exam_id": exam.id},
            )
            return tasks

        payload = {
            "examName": exam.name,
            "examDate": exam.date,
            "daysRemaining": days_remaining,
            "dailyStudyMinutes": daily_study_minutes,
            "reason": reason,
            "tasks": [
                {
                    "id": t.id,
                    "title": t.title,
                    "status": t.status,
                    "scheduledDate": t.scheduled_date,
                    "estimatedMinutes": t.estimated_minutes,
                    "actualMinutes": t.actual_minutes,
                }
                for t in tasks
            ],
        }
        text = self._call_llm(
            "adjust",
            self._render_prompt("请根据以下情况调整学习计划：", payload),
            PLAN_ADJUST_PROMPT,
        )
        result = self._parse("adjust", text, AdjustResponse)

        task_map = {t.id: t for t in tasks}
        adjusted_tasks: List[StudyTask] = []
        skipped_ids = []

        for directive in result.adjusted_tasks:
            if isinstance(directive, DeleteDirective):
                continue

            if isinstance(directive, NewDirective):
                adjusted_tasks.append(
                    StudyTask(
                        exam_id=exam.id,
                        title=directive.title,
                        description=directive.description,
                        estimated_minutes=directive.estimated_minutes,
                        scheduled_date=directive.scheduled_date,
                        status="pending",
                    )
                )
                continue

            original = task_map.get(directive.id)
            if original is None:
                skipped_ids.append(directive.id)
                continue

            if isinstance(directive, KeepDirective):
                adjusted_tasks.append(original)
            elif isinstance(directive, ModifyDirective):
                adjusted_tasks.append(
                    original.model_copy(
                        update={
                            "title": directive.title,
                            "description": directive.description,
                            "estimated_minutes": directive.estimated_minutes,
                            "scheduled_date": directive.scheduled_date,
                        }
                    )
                )

        if skipped_ids:
            self.monitoring_manager.log_warning(
                f"Skipped {len(skipped_ids)} directives referencing unknown task ids.",
                context={"module": "AIPlanner", "exam_id": exam.id, "task_ids": skipped_ids},
            )
        self.monitoring_manager.log_info(
            f"AI adjusted plan for exam {exam.id}: {len(tasks)} -> {len(adjusted_tasks)} tasks.",
            context={"module": "AIPlanner", "exam_id": exam.id, "reason": result.adjustment_reason},
        )
        return adjusted_tasks
