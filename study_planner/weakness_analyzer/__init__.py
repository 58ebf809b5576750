# -*- coding: utf-8 -*-
"""薄弱点分析模块 (WeaknessAnalyzer)。

根据自测结果让大模型识别薄弱知识点，并给出通俗讲解。
"""
from .weakness_analyzer import (DEFAULT_IMPORTANCE, DEFAULT_MASTERY, AnalyzedWeakPoint,
                                TestQuestion, TestResult, WeaknessAnalysis, WeaknessAnalyzer)

__all__ = [
    "AnalyzedWeakPoint",
    "DEFAULT_IMPORTANCE",
    "DEFAULT_MASTERY",
    "TestQuestion",
    "TestResult",
    "WeaknessAnalysis",
    "WeaknessAnalyzer",
]
