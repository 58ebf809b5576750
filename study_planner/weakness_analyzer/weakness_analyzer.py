# -*- coding: utf-8 -*-
"""薄弱点分析 (WeaknessAnalyzer) 的主实现文件。

把一次自测的答题结果交给大模型分析，得到薄弱知识点及其通俗讲解。
答案为「不会」的题目视为跳过且答错。
"""
import json
import math
from typing import List, Literal, Optional, Sequence

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from study_planner.exceptions import AIRequestError, AIResponseParseError, PlanningInputError
from study_planner.llm_interface.llm_interface import LLMInterface
from study_planner.llm_interface.response_parser import parse_json_response
from study_planner.models import MAX_MASTERY, KnowledgePoint, new_id
from study_planner.monitoring_manager.monitoring_manager import MonitoringManager

SKIPPED_ANSWER = "不会"
DEFAULT_MASTERY = 30
DEFAULT_IMPORTANCE = 3
DEFAULT_NAME = "未命名知识点"

PATIENT_TEACHER_PROMPT = """你是一位非常有耐心的老师，面对的学生可能完全零基础。
讲解时避免术语堆砌，先用一句大白话说明概念是什么，再举一个生活中的具体例子。"""

WEAKNESS_ANALYSIS_PROMPT = """请根据学生的测试结果找出薄弱知识点。

只输出如下格式的 JSON，不要输出其他内容：
{
  "weakPoints": [
    {
      "name": "知识点名称",
      "reason": "判断为薄弱点的原因",
      "suggestedMasteryLevel": 30,
      "importance": 3,
      "explanation": "用最直白的话讲解这个知识点，并举一个生活中的例子"
    }
  ],
  "summary": "整体分析"
}"""


class TestQuestion(BaseModel):
    __test__ = False

    id: str = Field(default_factory=new_id)
    exam_id: str
    question: str
    type: Literal["choice", "truefalse", "short"] = "choice"
    options: Optional[List[str]] = None
    answer: str
    knowledge_point_id: Optional[str] = None


class TestResult(BaseModel):
    __test__ = False

    question_id: str
    user_answer: str
    is_correct: bool
    knowledge_point_id: Optional[str] = None

    @property
    def is_skipped(self) -> bool:
        return self.user_answer == SKIPPED_ANSWER


class WeakPointPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: Optional[str] = None
    reason: Optional[str] = None
    suggested_mastery_level: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("suggestedMasteryLevel", "suggested_mastery_level")
    )
    mastery_level: Optional[float] = Field(
        default=None, validation_alias=AliasChoices("masteryLevel", "mastery_level")
    )
    importance: Optional[float] = None
    explanation: Optional[str] = None

    @field_validator("suggested_mastery_level", "mastery_level", "importance")
    @classmethod
    def _drop_non_finite(cls, value: Optional[float]) -> Optional[float]:
        # NaN and Infinity are valid JSON for json.loads; treat them as missing
        return value if value is None or math.isfinite(value) else None


class WeaknessResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    weak_points: List[WeakPointPayload] = Field(
        validation_alias=AliasChoices(
            "weakPoints", "weak_points", "weakpoints", "points", "knowledgePoints", "knowledge_points"
        )
    )
    summary: str = ""


class AnalyzedWeakPoint(BaseModel):
    knowledge_point: KnowledgePoint
    explanation: str = ""


class WeaknessAnalysis(BaseModel):
    weak_points: List[AnalyzedWeakPoint] = Field(default_factory=list)
    summary: str = ""


def _clamp(value: float, low: int, high: int) -> int:
    return int(max(low, min(high, round(value))))


class WeaknessAnalyzer:
    """
    调用大模型分析测试结果，返回带讲解的薄弱知识点（尚未写入状态存储）。
    """

    def __init__(self, llm_interface: LLMInterface, monitoring_manager: MonitoringManager):
        self.llm_interface = llm_interface
        self.monitoring_manager = monitoring_manager
        self.monitoring_manager.log_info("WeaknessAnalyzer initialized.")

    def _build_input(self, subject: str, results: Sequence[TestResult], questions: Sequence[TestQuestion]) -> dict:
        questions_by_id = {q.id: q for q in questions}
        test_data = []
        for r in results:
            question = questions_by_id.get(r.question_id)
            test_data.append({
                "question": question.question if question else None,
                "userAnswer": r.user_answer,
                "correctAnswer": question.answer if question else None,
                "isCorrect": False if r.is_skipped else r.is_correct,
                "isSkipped": r.is_skipped,
                "knowledgePoint": question.knowledge_point_id if question else None,
            })

        skipped_count = sum(1 for t in test_data if t["isSkipped"])
        correct_count = sum(1 for r in results if r.is_correct and not r.is_skipped)
        return {
            "subject": subject,
            "testResults": test_data,
            "correctRate": correct_count / len(results),
            "skippedCount": skipped_count,
            "note": (
                f'用户有 {skipped_count} 道题选择了"不会"，这些知识点需要从零开始讲解'
                if skipped_count > 0 else ""
            ),
        }

    def analyze(
        self,
        exam_id: str,
        subject: str,
        results: Sequence[TestResult],
        questions: Sequence[TestQuestion],
    ) -> WeaknessAnalysis:
        """
        分析测试结果。

        Args:
            exam_id: 薄弱点所属的考试。
            subject: 学科名称。
            results: 答题结果。
            questions: 本次测试的题目，用于补全题干与正确答案。

        Returns:
            WeaknessAnalysis，其中每个知识点都带有新的 id。

        Raises:
            PlanningInputError: 没有任何答题结果。
            AIRequestError: 大模型调用失败。
            AIResponseParseError: 响应无法解析或缺少薄弱点列表。
        """
        if not results:
            raise PlanningInputError("没有测试结果，无法分析薄弱点")

        analysis_input = self._build_input(subject, results, questions)
        system_prompt = f"{PATIENT_TEACHER_PROMPT}\n\n{WEAKNESS_ANALYSIS_PROMPT}"
        prompt = (
            "请分析以下测试结果中的薄弱知识点：\n\n"
            f"{json.dumps(analysis_input, ensure_ascii=False, indent=2)}\n\n"
            "请按照系统prompt中的格式要求输出JSON。\n"
            "特别注意：对于每个薄弱点，请用最直白的话解释这个知识点是什么，"
            "举一个生活中的具体例子，让零基础的学生也能听懂。"
        )

        span = self.monitoring_manager.start_span("WeaknessAnalyzer.analyze", attributes={"exam_id": exam_id})
        response = self.llm_interface.generate_text(prompt, system_prompt=system_prompt)
        if response.get("status") != "success":
            message = response.get("message") or "unknown error"
            self.monitoring_manager.log_error(
                f"LLM call failed during weakness analysis: {message}",
                context={"module": "WeaknessAnalyzer", "exam_id": exam_id},
            )
            error = AIRequestError(message)
            self.monitoring_manager.end_span(span, exc=error)
            raise error
        self.monitoring_manager.end_span(span)

        text = response["data"]["text"]
        try:
            parsed = WeaknessResponse.model_validate(parse_json_response(text))
        except (AIResponseParseError, ValidationError) as e:
            self.monitoring_manager.log_error(
                f"Failed to parse weakness analysis response: {e}",
                context={"module": "WeaknessAnalyzer", "exam_id": exam_id, "response": text[:500]},
            )
            raise AIResponseParseError() from e

        weak_points = []
        for wp in parsed.weak_points:
            mastery = wp.suggested_mastery_level
            if mastery is None:
                mastery = wp.mastery_level if wp.mastery_level is not None else DEFAULT_MASTERY
            importance = wp.importance if wp.importance is not None else DEFAULT_IMPORTANCE
            weak_points.append(
                AnalyzedWeakPoint(
                    knowledge_point=KnowledgePoint(
                        exam_id=exam_id,
                        name=wp.name or DEFAULT_NAME,
                        mastery_level=_clamp(mastery, 0, MAX_MASTERY),
                        importance=_clamp(importance, 1, 5),
                    ),
                    explanation=wp.explanation or wp.reason or "",
                )
            )

        self.monitoring_manager.log_info(
            f"Weakness analysis found {len(weak_points)} weak points.",
            context={"module": "WeaknessAnalyzer", "exam_id": exam_id, "subject": subject},
        )
        return WeaknessAnalysis(weak_points=weak_points, summary=parsed.summary)
