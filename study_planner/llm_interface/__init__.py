# -*- coding: utf-8 -*-
"""大模型接口模块 (LLMInterface)。

封装与 AI 服务商的交互细节，提供统一的文本生成调用，
以及从模型输出中稳健提取 JSON 的工具函数。
"""
from .llm_interface import PROVIDER_DEFAULTS, LLMInterface
from .response_parser import extract_json, parse_json_response

__all__ = ["LLMInterface", "PROVIDER_DEFAULTS", "extract_json", "parse_json_response"]
