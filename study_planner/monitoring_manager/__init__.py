# -*- coding: utf-8 -*-
"""监控管理器模块 (MonitoringManager)。

负责统一管理系统的可观测性，包括结构化日志与可选的 Prometheus 指标。
"""
from .monitoring_manager import MonitoringManager, StructuredJsonFormatter

__all__ = ["MonitoringManager", "StructuredJsonFormatter"]
