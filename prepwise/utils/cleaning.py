"""
Response cleaning utilities for LLM outputs.
Pulls a JSON object out of free-form model text.
"""
import json
import re
from typing import Any, Dict, Optional


class ResponseCleaner:
    """
    Cleans raw completions before they are parsed.
    Reasoning models may wrap the answer in <think> blocks or markdown fences.
    """

    THINK_PATTERN = re.compile(r"<think>.*?</think>", re.DOTALL | re.IGNORECASE)
    FENCE_PATTERN = re.compile(r"```(?:json)?", re.IGNORECASE)
    # Greedy first-brace-to-last-brace, used when the balanced scan fails
    GREEDY_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)

    @classmethod
    def strip_reasoning(cls, text: str) -> str:
        """Remove chain-of-thought blocks and code fences."""
        if not text:
            return ""
        cleaned = cls.THINK_PATTERN.sub("", text)
        cleaned = cls.FENCE_PATTERN.sub("", cleaned)
        return cleaned.strip()

    @staticmethod
    def first_balanced_object(text: str) -> Optional[str]:
        """
        Return the first balanced {...} substring, honouring JSON string escapes.

        Returns None when there is no opening brace or it is never closed.
        """
        start = text.find("{")
        if start < 0:
            return None

        depth = 0
        in_string = False
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
                continue
            if ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:idx + 1]
        return None

    @classmethod
    def parse_json_object(cls, text: str) -> Optional[Dict[str, Any]]:
        """Parse text as a JSON object. Returns None for anything that is not a dict."""
        try:
            parsed = json.loads(text)
        except (TypeError, ValueError, RecursionError):
            return None
        return parsed if isinstance(parsed, dict) else None

    @classmethod
    def extract_json_object(cls, text: str) -> Optional[Dict[str, Any]]:
        """
        Find and parse the JSON object embedded in surrounding prose.

        Tries the first balanced object, then the greedy brace span,
        then the greedy span with trailing commas removed.
        """
        if not text:
            return None
        cleaned = cls.strip_reasoning(text)

        candidate = cls.first_balanced_object(cleaned)
        if candidate:
            parsed = cls.parse_json_object(candidate)
            if parsed is not None:
                return parsed

        match = cls.GREEDY_OBJECT_PATTERN.search(cleaned)
        if not match:
            return None
        parsed = cls.parse_json_object(match.group())
        if parsed is not None:
            return parsed

        # Fix trailing commas
        fixed = re.sub(r",\s*([}\]])", r"\1", match.group())
        return cls.parse_json_object(fixed)
