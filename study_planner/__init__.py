# -*- coding: utf-8 -*-
"""考试复习计划助手 (Study Planner)。

管理考试、知识点、学习任务与艾宾浩斯复习记录，
并提供基于规则和基于大模型的任务拆解与计划调整。
"""

__version__ = "0.1.0"
