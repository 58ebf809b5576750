# -*- coding: utf-8 -*-
"""基于规则的快速拆解与快速调整（不调用 AI）。

quick_decompose 按 重要性 × (100 - 掌握度) 的优先级把知识点排入每日时间预算；
quick_adjust 把已过期但未开始的任务顺延到今天及以后。两者均为纯函数。
"""
import math
from datetime import timedelta
from typing import List, Optional, Sequence

from study_planner.models import Exam, KnowledgePoint, StudyTask
from study_planner.dates import DateLike, format_date, to_date

BASE_STUDY_MINUTES = 30


def days_until(target_date: DateLike, today: Optional[DateLike] = None) -> int:
    """Whole days between today and target_date, both truncated to midnight."""
    return (to_date(target_date) - to_date(today)).days


def priority_score(knowledge_point: KnowledgePoint) -> int:
    return knowledge_point.importance * (100 - knowledge_point.mastery_level)


def estimate_study_minutes(mastery_level: int) -> int:
    """30 minutes at full mastery up to 60 minutes at zero mastery, rounded half up."""
    return int(math.floor(BASE_STUDY_MINUTES * (1 + (100 - mastery_level) / 100) + 0.5))


def quick_decompose(
    exam: Exam,
    knowledge_points: Sequence[KnowledgePoint],
    daily_study_minutes: int,
    today: Optional[DateLike] = None,
) -> List[StudyTask]:
    """
    按规则把知识点拆解为每日学习任务。

    考试已过或就在今天时返回空列表。当某天剩余时间不足以容纳下一个任务时顺延一天；
    顺延后到达考试日期则停止，剩余知识点不再安排。

    Args:
        exam: 目标考试。
        knowledge_points: 该考试的知识点。
        daily_study_minutes: 每日学习时长预算（分钟）。
        today: 计算基准日，默认为今天。

    Returns:
        新生成的任务列表（未持久化）。
    """
    today_date = to_date(today)
    exam_date = to_date(exam.date)
    if days_until(exam_date, today_date) <= 0:
        return []

    # sorted() is stable, so equal scores keep their input order
    sorted_points = sorted(knowledge_points, key=priority_score, reverse=True)

    tasks: List[StudyTask] = []
    current_date = today_date
    remaining_minutes_today = daily_study_minutes

    for kp in sorted_points:
        estimated_minutes = estimate_study_minutes(kp.mastery_level)

        if remaining_minutes_today < estimated_minutes:
            current_date += timedelta(days=1)
            remaining_minutes_today = daily_study_minutes
            if current_date >= exam_date:
                break

        tasks.append(
            StudyTask(
                exam_id=exam.id,
                knowledge_point_id=kp.id,
                title=f"学习: {kp.name}",
                description=f"深入学习和理解 {kp.name} 相关内容",
                estimated_minutes=estimated_minutes,
                scheduled_date=format_date(current_date),
                status="pending",
            )
        )
        remaining_minutes_today -= estimated_minutes

    return tasks


def find_overdue_tasks(tasks: Sequence[StudyTask], today: Optional[DateLike] = None) -> List[StudyTask]:
    today_str = format_date(to_date(today))
    return [t for t in tasks if t.status == "pending" and t.scheduled_date < today_str]


def quick_adjust(
    tasks: Sequence[StudyTask],
    daily_study_minutes: int,
    today: Optional[DateLike] = None,
) -> Sequence[StudyTask]:
    """
    把过期未完成的任务顺延到今天及以后，其余任务保持原位不变。

    今天的剩余时间 = 每日预算 - 今天已安排且未完成任务的预计时长（可能为负）。
    没有过期任务时原样返回输入。
    """
    today_date = to_date(today)
    today_str = format_date(today_date)

    overdue_tasks = find_overdue_tasks(tasks, today_date)
    if not overdue_tasks:
        return tasks

    remaining_minutes_today = daily_study_minutes - sum(
        t.estimated_minutes
        for t in tasks
        if t.scheduled_date == today_str and t.status != "completed"
    )

    current_date = today_date
    new_dates = {}
    for task in overdue_tasks:
        if remaining_minutes_today < task.estimated_minutes:
            current_date += timedelta(days=1)
            remaining_minutes_today = daily_study_minutes
        new_dates[task.id] = format_date(current_date)
        remaining_minutes_today -= task.estimated_minutes

    return [
        t.model_copy(update={"scheduled_date": new_dates[t.id]}) if t.id in new_dates else t
        for t in tasks
    ]
