# -*- coding: utf-8 -*-
"""复习调度 (ReviewScheduler) 的主实现文件。

基于艾宾浩斯遗忘曲线的固定间隔表计算下次复习日期、
复习轮次标签以及到期复习记录。所有函数均为纯函数，不访问状态存储。

复习间隔: 1天 → 2天 → 4天 → 7天 → 15天 → 30天
"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, TypeVar

from study_planner.dates import DateLike, format_date, to_date
from study_planner.models import ReviewRecord

REVIEW_INTERVALS = (1, 2, 4, 7, 15, 30)
REVIEW_LABELS = (
    "首次复习",
    "第2次复习",
    "第3次复习",
    "第4次复习",
    "第5次复习",
    "第6次复习",
    "巩固完成",
)

R = TypeVar("R")


def calculate_next_review_date(review_count: int, from_date: Optional[DateLike] = None) -> str:
    """
    计算下次复习日期。

    Args:
        review_count: 已完成的复习次数。超出间隔表长度时沿用最后一个间隔（30 天）。
        from_date: 起始日期，默认为今天。

    Returns:
        YYYY-MM-DD 格式的日期字符串。
    """
    if review_count < 0:
        raise ValueError(f"review_count must be >= 0, got {review_count}")
    interval_index = min(review_count, len(REVIEW_INTERVALS) - 1)
    next_date = to_date(from_date) + timedelta(days=REVIEW_INTERVALS[interval_index])
    return format_date(next_date)


def get_review_label(review_count: int) -> str:
    """获取复习轮次描述，超出范围时返回最后一个标签。"""
    return REVIEW_LABELS[max(0, min(review_count, len(REVIEW_LABELS) - 1))]


def is_review_completed(review_count: int) -> bool:
    """判断知识点是否已完成所有复习轮次。"""
    return review_count >= len(REVIEW_INTERVALS)


def filter_due_reviews(records: Iterable[R], as_of: Optional[DateLike] = None) -> List[R]:
    """
    返回状态为 pending 且下次复习日期不晚于 as_of 的记录。

    比较基于 YYYY-MM-DD 字符串的字典序，因此 as_of 会先规范化为同一格式。
    """
    as_of_str = format_date(to_date(as_of))
    return [r for r in records if r.status == "pending" and r.next_review_date <= as_of_str]


def new_review_record(
    knowledge_point_id: str, exam_id: str, now: Optional[datetime] = None
) -> ReviewRecord:
    """为刚学习过的知识点创建第一条复习记录（首次复习安排在明天）。"""
    now = now or datetime.now()
    return ReviewRecord(
        knowledge_point_id=knowledge_point_id,
        exam_id=exam_id,
        review_count=0,
        last_review_date=None,
        next_review_date=calculate_next_review_date(0, now),
        status="pending",
        created_at=now.isoformat(),
    )


def advance_review_record(record: ReviewRecord, today: Optional[DateLike] = None) -> ReviewRecord:
    """
    完成一次复习，返回更新后的新记录。

    下次复习日期从今天（而不是原定日期）起算，迟到的复习不会累积延迟。
    完成全部轮次后状态置为 completed，next_review_date 保持原值。
    """
    today_date = to_date(today)
    new_count = record.review_count + 1
    if is_review_completed(new_count):
        return record.model_copy(
            update={
                "review_count": new_count,
                "last_review_date": format_date(today_date),
                "status": "completed",
            }
        )
    return record.model_copy(
        update={
            "review_count": new_count,
            "last_review_date": format_date(today_date),
            "next_review_date": calculate_next_review_date(new_count, today_date),
        }
    )
