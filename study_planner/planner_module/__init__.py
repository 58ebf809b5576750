# -*- coding: utf-8 -*-
"""规划模块 (PlannerModule)。

负责把考试与知识点拆解为每日学习任务，并在进度落后时调整计划。
包括基于规则的快速拆解 / 快速调整，以及 AI 辅助的拆解 / 调整。
"""
from .ai_planner import AIPlanner
from .quick_planner import (days_until, estimate_study_minutes, find_overdue_tasks,
                            priority_score, quick_adjust, quick_decompose)

__all__ = [
    "AIPlanner",
    "days_until",
    "estimate_study_minutes",
    "find_overdue_tasks",
    "priority_score",
    "quick_adjust",
    "quick_decompose",
]
