# -*- coding: utf-8 -*-
"""AI 拆解 / 调整响应的数据结构。

字段名与模型输出保持一致（camelCase），Python 侧以 snake_case 访问。
校验失败时由调用方转换为 AIResponseParseError。
"""
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from study_planner.dates import normalize_date


class _AIModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class _ScheduledFields(_AIModel):
    title: str
    description: str = ""
    estimated_minutes: int = Field(gt=0)
    scheduled_date: str

    @field_validator("scheduled_date")
    @classmethod
    def _normalize_date(cls, value: str) -> str:
        return normalize_date(value)


class GeneratedTask(_ScheduledFields):
    knowledge_point_name: Optional[str] = None
    priority: Optional[str] = None


class DecomposeResponse(_AIModel):
    tasks: List[GeneratedTask]
    strategy: str = ""


class KeepDirective(_AIModel):
    action: Literal["keep"]
    id: str


class ModifyDirective(_ScheduledFields):
    action: Literal["modify"]
    id: str


class DeleteDirective(_AIModel):
    action: Literal["delete"]
    id: Optional[str] = None


class NewDirective(_ScheduledFields):
    action: Literal["new"]


AdjustDirective = Annotated[
    Union[KeepDirective, ModifyDirective, DeleteDirective, NewDirective],
    Field(discriminator="action"),
]


class AdjustResponse(_AIModel):
    adjusted_tasks: List[AdjustDirective]
    adjustment_reason: str = ""
