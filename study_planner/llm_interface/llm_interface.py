# -*- coding: utf-8 -*-
"""大模型接口 (LLMInterface) 的主实现文件。

封装与 AI 服务商（OpenAI、Anthropic、通义千问、DeepSeek 及自定义
OpenAI 兼容服务）的 HTTP 交互，包括请求构建、认证、重试与响应解析。
"""
import json
import logging
import time
from typing import Any, Dict, Optional

import requests

from study_planner.config_manager.config_manager import ConfigManager
from study_planner.models import AIConfig

logger = logging.getLogger(__name__)

# DeepSeek 和通义千问使用 OpenAI 兼容接口
PROVIDER_DEFAULTS: Dict[str, Dict[str, str]] = {
    "openai": {"base_url": "https://api.openai.com/v1", "default_model": "gpt-4o-mini"},
    "anthropic": {"base_url": "https://api.anthropic.com/v1", "default_model": "claude-3-5-sonnet-20241022"},
    "dashscope": {"base_url": "https://dashscope.aliyuncs.com/compatible-mode/v1", "default_model": "qwen-plus"},
    "deepseek": {"base_url": "https://api.deepseek.com/v1", "default_model": "deepseek-chat"},
}
ANTHROPIC_VERSION = "2023-06-01"


class LLMInterface:
    """
    封装与大语言模型的交互，处理 API 请求、认证、重试和结果解析。
    """

    def __init__(self, config_manager: ConfigManager, ai_config: Optional[AIConfig] = None):
        """
        Args:
            config_manager: ConfigManager 实例，提供 ai.* 默认配置与重试参数。
            ai_config: 用户设置中的 AI 配置；提供时优先于配置文件。
        """
        self.config_manager = config_manager
        self.request_timeout = self.config_manager.get_config("ai.request_timeout", 60)
        self.retry_attempts = self.config_manager.get_config("ai.retry_attempts", 3)
        self.retry_delay = self.config_manager.get_config("ai.retry_delay", 5)
        self.retry_on_status_codes = self.config_manager.get_config(
            "ai.retry_on_status_codes", [429, 500, 502, 503, 504]
        )
        self.default_max_tokens = self.config_manager.get_config("ai.default_max_tokens", 4096)
        self.default_temperature = self.config_manager.get_config("ai.default_temperature", 0.7)
        self.configure(ai_config)

    def configure(self, ai_config: Optional[AIConfig] = None) -> None:
        """切换 AI 服务商配置。ai_config 为 None 时回退到配置文件中的 ai.* 设置。"""
        if ai_config is not None:
            self.provider = ai_config.provider
            self.api_key = ai_config.api_key
            self.model = ai_config.model
            self.base_url = ai_config.custom_base_url
        else:
            self.provider = self.config_manager.get_config("ai.provider", "openai")
            self.api_key = self.config_manager.get_config("ai.api_key")
            self.model = self.config_manager.get_config("ai.model")
            self.base_url = self.config_manager.get_config("ai.base_url")

        defaults = PROVIDER_DEFAULTS.get(self.provider, {})
        if self.provider != "custom":
            self.base_url = self.base_url or defaults.get("base_url")
            self.model = self.model or defaults.get("default_model")

        if not self.is_configured():
            logger.warning(f"AI provider '{self.provider}' is not fully configured; AI features are unavailable.")

    def is_configured(self) -> bool:
        if self.provider == "custom":
            return bool(self.api_key and self.base_url and self.model)
        return bool(self.api_key and self.provider in PROVIDER_DEFAULTS)

    def _endpoint(self) -> str:
        clean_base_url = self.base_url.rstrip("/")
        if self.provider == "anthropic":
            return clean_base_url if clean_base_url.endswith("/messages") else f"{clean_base_url}/messages"
        if "/chat/completions" in clean_base_url:
            return clean_base_url
        return f"{clean_base_url}/chat/completions"

    def _build_request(self, prompt: str, system_prompt: Optional[str], model_config: Dict[str, Any]):
        model_name = model_config.get("model_name", self.model)
        max_tokens = model_config.get("max_tokens", self.default_max_tokens)
        temperature = model_config.get("temperature", self.default_temperature)

        if self.provider == "anthropic":
            headers = {
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "Content-Type": "application/json",
            }
            payload = {
                "model": model_name,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "messages": [{"role": "user", "content": prompt}],
            }
            if system_prompt:
                payload["system"] = system_prompt
            return headers, payload

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        payload = {
            "model": model_name,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "stream": False,
        }
        return headers, payload

    def _extract_text(self, response_data: Dict[str, Any]) -> str:
        if self.provider == "anthropic":
            blocks = response_data.get("content") or []
            return "".join(b.get("text", "") for b in blocks if b.get("type", "text") == "text")
        return (response_data.get("choices") or [{}])[0].get("message", {}).get("content") or ""

    @staticmethod
    def _error_detail(http_response: requests.Response) -> str:
        try:
            body = http_response.json()
        except ValueError:
            return http_response.text or http_response.reason or ""
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
        return http_response.text

    def generate_text(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        model_config: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        调用大语言模型生成文本。

        Args:
            prompt: 用户 Prompt。
            system_prompt: 可选的系统 Prompt。
            model_config: 可选的覆盖项，如 {"model_name": ..., "max_tokens": ..., "temperature": ...}。

        Returns:
            {"status": "success"|"error", "data": {"text": ..., "usage": ...} | None, "message": str}
        """
        if not self.is_configured():
            if self.provider == "custom":
                message = "自定义模型需要配置 baseURL 和模型名称"
            else:
                message = "AI provider API key or endpoint not configured."
            return {"status": "error", "data": None, "message": message}

        headers, payload = self._build_request(prompt, system_prompt, model_config or {})
        endpoint = self._endpoint()

        for attempt in range(self.retry_attempts):
            logger.debug(f"Attempt {attempt + 1}/{self.retry_attempts} to call {self.provider} API: {endpoint}")
            try:
                http_response = requests.post(
                    endpoint, headers=headers, json=payload, timeout=self.request_timeout
                )
            except requests.exceptions.Timeout:
                logger.warning(f"AI API request timed out after {self.request_timeout}s.")
                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay)
                    continue
                return {"status": "error", "data": None, "message": "AI API request timed out after multiple retries."}
            except requests.exceptions.RequestException as e:
                logger.warning(f"AI API request failed: {e}")
                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay)
                    continue
                return {"status": "error", "data": None, "message": f"AI API request failed after multiple retries: {e}"}

            if http_response.status_code == 200:
                try:
                    response_data = http_response.json()
                    text_content = self._extract_text(response_data)
                except (json.JSONDecodeError, ValueError, IndexError, KeyError, AttributeError) as e:
                    return {"status": "error", "data": None, "message": f"Error parsing AI JSON response: {e}"}
                if not text_content:
                    return {"status": "error", "data": None, "message": "AI response missing content."}
                return {
                    "status": "success",
                    "data": {"text": text_content, "usage": response_data.get("usage", {})},
                    "message": "",
                }

            if http_response.status_code in self.retry_on_status_codes:
                logger.warning(f"AI API returned {http_response.status_code}. Retrying in {self.retry_delay}s...")
                if attempt < self.retry_attempts - 1:
                    time.sleep(self.retry_delay)
                continue

            error_message = (
                f"API 请求失败: {http_response.status_code} {self._error_detail(http_response)}".strip()
            )
            logger.error(error_message)
            return {"status": "error", "data": None, "message": error_message}

        return {"status": "error", "data": None, "message": "AI API request failed after all retry attempts."}
