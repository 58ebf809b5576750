# -*- coding: utf-8 -*-
"""API 网关模块 (APIGateway)。

通过 FastAPI 对外提供考试、知识点、任务、计划、复习、薄弱点分析、
设置和首页概览的 HTTP 接口。
"""
from .gateway import APIGateway

__all__ = ["APIGateway"]
