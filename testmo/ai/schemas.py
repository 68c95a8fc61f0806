"""Structured-output schemas handed to the model.

Plain dicts in the OpenAPI subset Gemini accepts. Keys match the record
field names so hydration is a direct mapping.
"""
from __future__ import annotations

_STR = {"type": "STRING"}
_INT = {"type": "INTEGER"}

STEP_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "step_id": _STR,
        "sequence": _INT,
        "description": _STR,
        "expected_result": _STR,
        "test_data": _STR,
        "estimated_duration_min": _INT,
        "priority": {"type": "STRING", "enum": ["High", "Medium", "Low"]},
        "generated_example": {"type": "BOOLEAN"},
    },
    "required": ["step_id", "sequence", "description", "expected_result", "estimated_duration_min", "priority"],
}

NEGATIVE_FLOW_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "flow_id": _STR,
        "description": _STR,
        "steps": {"type": "ARRAY", "items": STEP_SCHEMA},
    },
    "required": ["flow_id", "description", "steps"],
}

CASE_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "case_id": _STR,
        "title": _STR,
        "summary": _STR,
        "tags": {"type": "ARRAY", "items": _STR},
        "priority": {"type": "STRING", "enum": ["High", "Medium", "Low"]},
        "type": {"type": "STRING", "enum": ["functional", "regression", "smoke", "exploratory"]},
        "preconditions": {"type": "ARRAY", "items": _STR},
        "estimated_duration_min": _INT,
        "estimated_effort": {"type": "STRING", "enum": ["XS", "S", "M", "L", "XL"]},
        "steps": {"type": "ARRAY", "items": STEP_SCHEMA},
        "negative_flows": {"type": "ARRAY", "items": NEGATIVE_FLOW_SCHEMA},
    },
    "required": ["case_id", "title", "summary", "priority", "steps", "preconditions", "estimated_effort"],
}

CASE_LIST_SCHEMA = {"type": "ARRAY", "items": CASE_SCHEMA}

ANALYSIS_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "is_match": {"type": "BOOLEAN"},
        "confidence": _INT,
        "reasoning": _STR,
        "detected_issues": {"type": "ARRAY", "items": _STR},
    },
    "required": ["is_match", "confidence", "reasoning"],
}

DEFECT_SCHEMA = {
    "type": "OBJECT",
    "properties": {
        "title": _STR,
        "description": _STR,
        "steps_to_reproduce": _STR,
        "expected_vs_actual": _STR,
        "severity": {"type": "STRING", "enum": ["Critical", "Major", "Minor", "Trivial"]},
        "environment": _STR,
        "category": _STR,
    },
    "required": ["title", "description", "steps_to_reproduce", "expected_vs_actual", "severity"],
}
