# -*- coding: utf-8 -*-
"""学习计划助手的异常类型。

每一种异常都只作用于单次用户操作，不会导致进程退出。
"""


class StudyPlannerError(Exception):
    """Base class for all errors raised by the study planner."""


class PlanningInputError(StudyPlannerError):
    """Raised when the input of a planning operation cannot be scheduled (e.g. the exam is over)."""


class AIRequestError(StudyPlannerError):
    """The AI provider call itself failed (network, auth, rate limit...)."""

    def __init__(self, message: str):
        super().__init__(f"AI request failed: {message}")
        self.provider_message = message


class AIResponseParseError(StudyPlannerError):
    """The AI provider answered, but no usable structured data could be recovered."""

    def __init__(self, message: str = "AI 响应解析失败，请重试"):
        super().__init__(f"AI response parse failed: {message}")
        self.detail = message


class EntityNotFoundError(StudyPlannerError, KeyError):
    """Raised when an operation references an entity id the store does not hold."""

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(f"{entity_type} not found: {entity_id}")
        self.entity_type = entity_type
        self.entity_id = entity_id

    def __str__(self) -> str:
        return f"{self.entity_type} not found: {self.entity_id}"


class PlanConflictError(StudyPlannerError):
    """The exam kept changing while a new plan was computed, so the plan was not stored."""

    def __init__(self, exam_id: str, attempts: int):
        super().__init__(f"Exam {exam_id} changed during planning; gave up after {attempts} attempts")
        self.exam_id = exam_id
        self.attempts = attempts
