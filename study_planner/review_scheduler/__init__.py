# -*- coding: utf-8 -*-
"""复习调度模块 (ReviewScheduler)。

按艾宾浩斯遗忘曲线的固定间隔 (1, 2, 4, 7, 15, 30 天)
计算复习日期，并筛选到期的复习记录。
"""
from .review_scheduler import (
    REVIEW_INTERVALS,
    REVIEW_LABELS,
    advance_review_record,
    calculate_next_review_date,
    filter_due_reviews,
    format_date,
    get_review_label,
    is_review_completed,
    new_review_record,
    to_date,
)

__all__ = [
    "REVIEW_INTERVALS",
    "REVIEW_LABELS",
    "advance_review_record",
    "calculate_next_review_date",
    "filter_due_reviews",
    "format_date",
    "get_review_label",
    "is_review_completed",
    "new_review_record",
    "to_date",
]
