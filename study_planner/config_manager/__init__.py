# -*- coding: utf-8 -*-
"""配置管理器模块 (ConfigManager)。

负责加载、合并和提供学习计划助手的配置信息，
包括 AI 服务商、存储路径、每日学习时长和日志参数等。
"""
from .config_manager import ConfigManager

__all__ = ["ConfigManager"]
