# -*- coding: utf-8 -*-
"""大模型响应的 JSON 提取工具。

模型经常在 JSON 外包裹说明文字、代码块，或者输出尾随逗号，
这里按由严到宽的顺序逐步尝试恢复出结构化数据。
"""
import json
import re
from typing import Any, Optional

from study_planner.exceptions import AIResponseParseError

_CODE_BLOCK_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")
_BRACE_RE = re.compile(r"\{[\s\S]*\}")
_TRAILING_COMMA_OBJECT_RE = re.compile(r",\s*}")
_TRAILING_COMMA_ARRAY_RE = re.compile(r",\s*]")
_CONTROL_CHARS_RE = re.compile(r"[\x00-\x1F\x7F]")


def _try_loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except ValueError:
        return None


def extract_json(text: str) -> Optional[Any]:
    """
    从模型输出中提取 JSON。

    依次尝试：
      1. ```json ... ``` 代码块中的内容；
      2. 第一个 "{" 到最后一个 "}" 之间的子串；
      3. 同一子串去掉尾随逗号、把控制字符替换为空格后再解析。

    Returns:
        解析出的对象；全部失败时返回 None。
    """
    if not text:
        return None

    code_block_match = _CODE_BLOCK_RE.search(text)
    if code_block_match:
        parsed = _try_loads(code_block_match.group(1).strip())
        if parsed is not None:
            return parsed

    brace_match = _BRACE_RE.search(text)
    if not brace_match:
        return None

    candidate = brace_match.group(0)
    parsed = _try_loads(candidate)
    if parsed is not None:
        return parsed

    cleaned = _TRAILING_COMMA_OBJECT_RE.sub("}", candidate)
    cleaned = _TRAILING_COMMA_ARRAY_RE.sub("]", cleaned)
    cleaned = _CONTROL_CHARS_RE.sub(" ", cleaned)
    return _try_loads(cleaned)


def parse_json_response(text: str) -> Any:
    """Like extract_json, but raises AIResponseParseError when nothing can be recovered."""
    parsed = extract_json(text)
    if parsed is None:
        raise AIResponseParseError("AI 响应中未找到有效 JSON")
    return parsed
