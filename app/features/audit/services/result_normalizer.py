"""
Result normalization.

The model's JSON is treated as an untrusted, loosely typed document: every
field is coerced on its own and anything missing gets a default, so nothing
downstream ever sees None where it expects text.
"""
import json
import math
from typing import Any, Dict, List, Union

from app.features.audit.schemas.audit import GranularFinding, NormalizedResult, StrategicFinding
from app.platform.exceptions import MalformedResponseError
from app.platform.logger import get_logger

logger = get_logger(__name__)

SEVERITIES = {"critical", "high", "medium", "low"}

GRANULAR_DEFAULTS = {
    "title": "Issue Detected",
    "issue": "No description provided",
    "solution": "No solution provided",
    "severity": "medium",
    "category": "General",
}

STRATEGIC_DEFAULTS = {
    "title": "Strategic Insight",
    "issue": "Observation",
    "solution": "Recommendation",
}

UNTITLED = "Untitled Audit"


def parse_raw_response(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """Turn the model output into a dict, tolerating markdown code fences."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        raise MalformedResponseError(f"Unexpected response type: {type(raw).__name__}")

    text = raw.strip()
    if "```json" in text:
        text = text.split("```json", 1)[1].split("```", 1)[0]
    elif "```" in text:
        text = text.split("```", 1)[1].split("```", 1)[0]
    text = text.strip()

    # Drop any chatter around the object
    start_idx = text.find("{")
    end_idx = text.rfind("}") + 1
    if start_idx != -1 and end_idx > start_idx:
        text = text[start_idx:end_idx]

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"Failed to parse model JSON: {e}")
        logger.debug(f"Raw response: {raw}")
        raise MalformedResponseError(f"Model returned invalid JSON: {e}")

    if not isinstance(parsed, dict):
        raise MalformedResponseError("Model response is not a JSON object")
    return parsed


def normalize(raw: Union[str, bytes, Dict[str, Any]]) -> NormalizedResult:
    """
    Build the two-tier finding structure from a raw model response.

    Granular findings come only from images[*].audit, strategic findings
    only from strategic_audit. The tiers are never cross-checked or merged.

    Raises:
        MalformedResponseError: If the response isn't a JSON object
    """
    data = parse_raw_response(raw)
    images = [group for group in _as_list(data.get("images")) if isinstance(group, dict)]

    granular = [
        _granular_finding(item)
        for group in images
        for item in _as_list(group.get("audit"))
        if isinstance(item, dict)
    ]
    strategic = [
        _strategic_finding(item)
        for item in _as_list(data.get("strategic_audit"))
        if isinstance(item, dict)
    ]

    return NormalizedResult(
        score=_as_number(data.get("score")),
        granular=granular,
        strategic=strategic,
        ux_metrics=_as_metrics(data.get("ux_metrics")),
        strengths=_as_strings(_first_present(data, "strengths", "key_strengths")),
        weaknesses=_as_strings(_first_present(data, "weaknesses", "key_weaknesses")),
        display_title=_display_title(data),
    )


def _granular_finding(item: Dict[str, Any]) -> GranularFinding:
    severity = _text(item.get("severity")).lower()
    return GranularFinding(
        title=_text(item.get("title")) or GRANULAR_DEFAULTS["title"],
        issue=_text(item.get("issue")) or GRANULAR_DEFAULTS["issue"],
        solution=_text(item.get("solution")) or GRANULAR_DEFAULTS["solution"],
        severity=severity if severity in SEVERITIES else GRANULAR_DEFAULTS["severity"],
        category=_text(item.get("category")) or GRANULAR_DEFAULTS["category"],
    )


def _strategic_finding(item: Dict[str, Any]) -> StrategicFinding:
    return StrategicFinding(
        title=_text(item.get("title")) or STRATEGIC_DEFAULTS["title"],
        issue=_text(item.get("issue")) or STRATEGIC_DEFAULTS["issue"],
        solution=_text(item.get("solution")) or STRATEGIC_DEFAULTS["solution"],
    )


def _display_title(data: Dict[str, Any]) -> str:
    summary = data.get("summary")
    if isinstance(summary, dict) and _text(summary.get("ui_title")):
        return _text(summary.get("ui_title"))
    # Only the first raw entry counts, even when it is not an object
    raw_images = _as_list(data.get("images"))
    first = raw_images[0] if raw_images else None
    if isinstance(first, dict) and _text(first.get("ui_title")):
        return _text(first.get("ui_title"))
    return UNTITLED


def _first_present(data: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return None


def _text(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    return str(value).strip()


def _as_list(value: Any) -> list:
    return value if isinstance(value, list) else []


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return 0
    if not isinstance(value, (int, float)):
        try:
            value = float(str(value).strip())
        except (TypeError, ValueError):
            return 0
    # NaN / Infinity parse fine but can't be rendered as JSON
    return value if math.isfinite(value) else 0


def _as_metrics(value: Any) -> Dict[str, float]:
    if not isinstance(value, dict):
        return {}
    metrics = {}
    for key, metric in value.items():
        if isinstance(metric, bool):
            continue
        if not isinstance(metric, (int, float)):
            try:
                metric = float(str(metric).strip())
            except (TypeError, ValueError):
                continue
        if math.isfinite(metric):
            metrics[str(key)] = metric
    return metrics


def _as_strings(value: Any) -> List[str]:
    if isinstance(value, str):
        value = [value]
    return [_text(item) for item in _as_list(value) if _text(item)]
