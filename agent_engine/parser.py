"""Turn free-form model text into an AgentThought.

Models are asked to answer either in plain text (a final answer) or with a
JSON object ``{"tool": ..., "params": {...}, "reason": ...}`` somewhere in
the text. Extraction is a brace-depth scan that respects JSON string
literals, so braces inside values never split an object.

When several candidates qualify, the first one wins. That is a policy, not
a guarantee of what the model meant.
"""

import json
from typing import Any, Optional

from agent_engine.execution import AgentThought, PlannedAction

DEFAULT_REASON = "unspecified"
ACTION_CONFIDENCE = 0.8
ANSWER_CONFIDENCE = 0.9


def extract_json(text: str) -> list[str]:
    """Return every top-level ``{...}`` span of ``text``, in order.

    Every unescaped quote toggles string state, inside or outside an object.
    Inside a string literal a backslash escapes the next character and an
    unescaped quote ends the string. Braces inside strings don't count.
    A closing brace with nothing open is ignored, as is an object that is
    never closed.
    """
    candidates = []
    depth = 0
    start = -1
    in_string = False
    escaped = False

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue

        if char == '"':
            in_string = True
        elif char == "{":
            if depth == 0:
                start = index
            depth += 1
        elif char == "}" and depth > 0:
            depth -= 1
            if depth == 0:
                candidates.append(text[start : index + 1])
                start = -1

    return candidates


def _load_action(candidate: str) -> Optional[dict]:
    try:
        data = json.loads(candidate)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    tool = data.get("tool")
    if not isinstance(tool, str) or not tool.strip():
        return None
    if not isinstance(data.get("params"), dict):
        return None
    return data


def _confidence(value: Any, default: float) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return max(0.0, min(1.0, float(value)))


class ActionParser:
    """Parses raw model output into an AgentThought.

    Usage:
        thought = ActionParser().parse('Checking. {"tool": "echo", "params": {"text": "hi"}}')
        thought.planned_action.tool  # "echo"
    """

    def parse(self, text: str, thinking_time_ms: float = 0.0) -> AgentThought:
        for candidate in extract_json(text):
            data = _load_action(candidate)
            if data is None:
                continue

            reason = data.get("reason")
            if not isinstance(reason, str) or not reason.strip():
                reason = DEFAULT_REASON
            action = PlannedAction(tool=data["tool"].strip(), params=data["params"], reason=reason)

            reasoning = text.replace(candidate, "", 1).strip() or reason
            return AgentThought(
                content=text,
                reasoning=reasoning,
                confidence=_confidence(data.get("confidence"), ACTION_CONFIDENCE),
                thinking_time_ms=thinking_time_ms,
                planned_action=action,
            )

        content = text.strip()
        return AgentThought(
            content=content,
            reasoning=content,
            confidence=ANSWER_CONFIDENCE,
            thinking_time_ms=thinking_time_ms,
        )
