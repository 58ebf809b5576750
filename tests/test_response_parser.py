# -*- coding: utf-8 -*-
"""Pytest unit tests for the AI response JSON extraction helpers."""

import pytest

import sys
import os
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from study_planner.exceptions import AIResponseParseError
from study_planner.llm_interface.response_parser import extract_json, parse_json_response


def test_extract_json_from_fenced_block():
    text = 'Here is the plan:\n```json\n{"tasks":[]}\n```'
    assert extract_json(text) == {"tasks": []}


def test_extract_json_from_unlabelled_fence():
    text = '```\n{"strategy": "先易后难"}\n```\n以上。'
    assert extract_json(text) == {"strategy": "先易后难"}


def test_extract_json_from_surrounding_prose():
    text = '好的，计划如下：{"tasks": [{"title": "复习极限"}]} 祝你考试顺利！'
    assert extract_json(text) == {"tasks": [{"title": "复习极限"}]}


def test_extract_json_strips_trailing_commas():
    assert extract_json('{"tasks":[],}') == {"tasks": []}
    assert extract_json('{"tasks":[1, 2,],}') == {"tasks": [1, 2]}


def test_extract_json_blanks_control_characters():
    text = '{"summary": "第一行\n第二行"}'
    assert extract_json(text) == {"summary": "第一行 第二行"}


def test_extract_json_falls_back_when_fenced_block_is_broken():
    text = '```json\n{broken\n```\n{"tasks": []}'
    # the greedy brace match spans from the first "{" so this stays unrecoverable
    assert extract_json(text) is None


@pytest.mark.parametrize("text", ["", "no json here", "{not json at all}"])
def test_extract_json_returns_none_when_unrecoverable(text):
    assert extract_json(text) is None


def test_parse_json_response_raises_parse_error():
    with pytest.raises(AIResponseParseError) as exc_info:
        parse_json_response("抱歉，我无法生成计划。")
    assert "AI response parse failed" in str(exc_info.value)


def test_parse_json_response_returns_parsed_object():
    assert parse_json_response('```json\n{"adjustedTasks": []}\n```') == {"adjustedTasks": []}
