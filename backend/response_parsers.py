"""Creator Safety Vetting - Response Parsers
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Parse-or-default boundary for every capability response.

Models answer in loosely structured text: JSON (sometimes fenced or
wrapped in prose) or, for older prompts, labelled lines such as
"SAFETY_RATING: caution". Everything that knows about those shapes
lives here; callers get normalized dataclasses or a documented default.
"""

import json
import re
import logging
from typing import Iterable, Optional

from risk_rollup import overall_risk_from_decisions
from vetting_models import (
    DECISION_CATEGORIES,
    ISSUE_LOCATIONS,
    ISSUE_TYPES,
    RECOMMENDATIONS,
    SAFETY_RATINGS,
    SEVERITIES,
    ActionDetection,
    BrandDetection,
    ContentClassification,
    LogoDetection,
    PotentialIssue,
    SceneContext,
    ScreeningResult,
    TextDetection,
    VettingDecision,
    VettingResult,
    VisualSummary,
)

logger = logging.getLogger(__name__)

UNAVAILABLE_DESCRIPTION = "Unable to analyze visual content"

# Confidence score buckets for brand/logo detections
HIGH_CONFIDENCE_SCORE = 0.7
MEDIUM_CONFIDENCE_SCORE = 0.4

# A category score above this (0-100) is reported as flagged
FLAGGED_CATEGORY_SCORE = 50

_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_JSON_ARRAY_RE = re.compile(r"\[[\s\S]*\]")
_LABELLED_LINE_RE = re.compile(r"^\s*([A-Z_]+)\s*:\s*(.*)$")

_LABELS = {"DESCRIPTION", "BRANDS", "TEXT", "ACTIONS", "SETTING", "MOOD",
           "CONTENT_TYPE", "CONCERNS", "SAFETY_RATING"}


# ------------------------------------------------------------------ #
#  Generic helpers                                                    #
# ------------------------------------------------------------------ #

def strip_code_fences(text: str) -> str:
    """Remove a surrounding ``` / ```json fence if present."""
    text = (text or "").strip()
    if text.startswith("```"):
        text = text.split("```")[1]
        if text.startswith("json"):
            text = text[4:]
    return text.strip()


def _extract(text: str, pattern: re.Pattern, expected: type):
    cleaned = strip_code_fences(text)
    try:
        value = json.loads(cleaned)
    except (json.JSONDecodeError, TypeError):
        match = pattern.search(cleaned)
        if not match:
            raise ValueError(f"No JSON {expected.__name__} found in response")
        try:
            value = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in response: {e}") from e
    if not isinstance(value, expected):
        raise ValueError(f"Expected JSON {expected.__name__}, got {type(value).__name__}")
    return value


def extract_json_object(text: str) -> dict:
    """First JSON object in text (raises ValueError)."""
    return _extract(text, _JSON_OBJECT_RE, dict)


def extract_json_array(text: str) -> list:
    """First JSON array in text (raises ValueError)."""
    return _extract(text, _JSON_ARRAY_RE, list)


def _pick(data: dict, *keys, default=None):
    """First present key; accepts snake_case and camelCase spellings."""
    for key in keys:
        if key in data and data[key] is not None:
            return data[key]
    return default


def _str_list(value) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()]


def _as_list(value) -> list:
    if isinstance(value, list):
        return value
    if isinstance(value, (str, dict)):
        return [value]
    return []


def _float_or_none(value) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    return None


def normalize_rating(value, default: str = "safe") -> str:
    rating = str(value or "").strip().lower()
    return rating if rating in SAFETY_RATINGS else default


def confidence_level(value) -> str:
    """Map a 0-1 score or a label onto high/medium/low."""
    score = _float_or_none(value)
    if score is not None:
        if score >= HIGH_CONFIDENCE_SCORE:
            return "high"
        if score >= MEDIUM_CONFIDENCE_SCORE:
            return "medium"
        return "low"
    label = str(value or "").strip().lower()
    return label if label in ("high", "medium", "low") else "medium"


# ------------------------------------------------------------------ #
#  Visual summaries (image and video capabilities)                   #
# ------------------------------------------------------------------ #

def default_visual_summary(rating: str, raw: str = "") -> VisualSummary:
    """Summary used when nothing usable came back."""
    return VisualSummary(
        description=UNAVAILABLE_DESCRIPTION,
        safety_rating=rating,
        raw_analysis=raw,
    )


def is_default_summary(summary: VisualSummary) -> bool:
    return summary.description == UNAVAILABLE_DESCRIPTION


def _summary_from_json(data: dict, raw: str) -> VisualSummary:
    brands = []
    for entry in _as_list(_pick(data, "brands")):
        if isinstance(entry, str):
            brands.append(BrandDetection(brand=entry))
        elif isinstance(entry, dict) and _pick(entry, "brand", "name"):
            brands.append(BrandDetection(
                brand=str(_pick(entry, "brand", "name")),
                confidence=confidence_level(_pick(entry, "confidence")),
                context=str(_pick(entry, "context", default="")),
                appears_sponsored=bool(_pick(entry, "appears_sponsored", "appearsSponsored", default=False)),
                start_time=_float_or_none(_pick(entry, "start_time", "startTime")),
                end_time=_float_or_none(_pick(entry, "end_time", "endTime")),
            ))

    actions = []
    for entry in _as_list(_pick(data, "actions")):
        if isinstance(entry, str):
            actions.append(ActionDetection(action=entry))
        elif isinstance(entry, dict) and _pick(entry, "action"):
            actions.append(ActionDetection(
                action=str(entry["action"]),
                is_concerning=bool(_pick(entry, "is_concerning", "isConcerning", default=False)),
                reason=str(_pick(entry, "reason", default="")),
            ))

    texts = []
    for entry in _as_list(_pick(data, "text_detections", "textDetected", "text")):
        if isinstance(entry, str):
            texts.append(TextDetection(text=entry))
        elif isinstance(entry, dict) and _pick(entry, "text"):
            texts.append(TextDetection(text=str(entry["text"]), context=str(_pick(entry, "context", default=""))))

    scene_data = _pick(data, "scene", "sceneContext", default={})
    if not isinstance(scene_data, dict):
        scene_data = {}
    scene = SceneContext(
        setting=str(_pick(scene_data, "setting", default="Unknown")),
        mood=str(_pick(scene_data, "mood", default="Unknown")),
        content_type=str(_pick(scene_data, "content_type", "contentType", default="Unknown")),
        concerns=_str_list(_pick(scene_data, "concerns")),
    )

    return VisualSummary(
        description=str(_pick(data, "description", default="")).strip(),
        brands=brands,
        actions=actions,
        text_detections=texts,
        scene=scene,
        safety_rating=normalize_rating(_pick(data, "safety_rating", "safetyRating", "overallSafetyRating")),
        safety_summary=str(_pick(data, "safety_summary", "safetySummary", default="")),
        raw_analysis=raw,
    )


def _summary_from_labelled_lines(raw: str) -> Optional[VisualSummary]:
    """Older prompt format: one LABEL: value per line."""
    fields = {}
    for line in raw.splitlines():
        match = _LABELLED_LINE_RE.match(line)
        if match and match.group(1) in _LABELS:
            fields[match.group(1)] = match.group(2).strip()
    if not fields:
        return None

    def listed(label: str) -> list[str]:
        value = fields.get(label, "")
        if value.lower() in ("", "none", "n/a"):
            return []
        return [part.strip() for part in value.split(",") if part.strip()]

    return VisualSummary(
        description=fields.get("DESCRIPTION", ""),
        brands=[BrandDetection(brand=b) for b in listed("BRANDS")],
        actions=[ActionDetection(action=a) for a in listed("ACTIONS")],
        text_detections=[TextDetection(text=t) for t in listed("TEXT")],
        scene=SceneContext(
            setting=fields.get("SETTING") or "Unknown",
            mood=fields.get("MOOD") or "Unknown",
            content_type=fields.get("CONTENT_TYPE") or "Unknown",
            concerns=listed("CONCERNS"),
        ),
        safety_rating=normalize_rating(fields.get("SAFETY_RATING")),
        raw_analysis=raw,
    )


def parse_visual_summary(raw: Optional[str], fallback_rating: str = "safe") -> VisualSummary:
    """
    Parse a visual analysis response.

    A parsed response without a rating is rated "safe" (no evidence of
    risk). A response that cannot be parsed at all yields the default
    summary rated `fallback_rating`.
    """
    raw = raw or ""
    try:
        return _summary_from_json(extract_json_object(raw), raw)
    except ValueError:
        pass

    summary = _summary_from_labelled_lines(raw)
    if summary is not None:
        return summary

    logger.warning("Visual analysis response could not be parsed, using default summary")
    return default_visual_summary(fallback_rating, raw)


def parse_video_analysis(raw: Optional[str]) -> tuple[VisualSummary, list[LogoDetection], Optional[ContentClassification]]:
    """Visual summary plus the video-only logo and classification sections."""
    summary = parse_visual_summary(raw, fallback_rating="safe")
    try:
        data = extract_json_object(raw or "")
    except ValueError:
        return summary, [], None

    logos = []
    for entry in _as_list(_pick(data, "logos", "logo_detections")):
        if not isinstance(entry, dict) or not _pick(entry, "brand", "name"):
            continue
        score = _float_or_none(_pick(entry, "confidence", "confidence_score")) or 0.0
        logos.append(LogoDetection(
            brand=str(_pick(entry, "brand", "name")),
            confidence=confidence_level(score),
            confidence_score=score,
            start_time=_float_or_none(_pick(entry, "start_time", "startTime", "start")),
            end_time=_float_or_none(_pick(entry, "end_time", "endTime", "end")),
        ))

    classification = None
    scores = _pick(data, "category_scores", "categoryScores")
    if isinstance(scores, dict):
        clean = {
            str(k): min(max(float(v), 0.0), 100.0)
            for k, v in scores.items() if _float_or_none(v) is not None
        }
        if clean:
            average = sum(clean.values()) / len(clean)
            classification = ContentClassification(
                category_scores=clean,
                overall_safety_score=round(1 - average / 100, 4),
                flagged_categories=[k for k, v in clean.items() if v > FLAGGED_CATEGORY_SCORE],
            )

    return summary, logos, classification


# ------------------------------------------------------------------ #
#  Screening (Tier 1)                                                 #
# ------------------------------------------------------------------ #

def _parse_issue(entry) -> Optional[PotentialIssue]:
    if not isinstance(entry, dict):
        return None
    text = str(_pick(entry, "text", default="")).strip()
    if not text:
        return None
    issue_type = str(_pick(entry, "type", default="other")).lower()
    location = str(_pick(entry, "location", default="caption")).lower()
    return PotentialIssue(
        type=issue_type if issue_type in ISSUE_TYPES else "other",
        text=text,
        context=str(_pick(entry, "context", default="")),
        location=location if location in ISSUE_LOCATIONS else "caption",
    )


def _parse_screening_entry(entry, wanted: set[str]) -> Optional[ScreeningResult]:
    if not isinstance(entry, dict):
        return None
    post_id = _pick(entry, "post_id", "postId")
    if post_id is None or str(post_id) not in wanted:
        return None

    raw_issues = _pick(entry, "potential_issues", "potentialIssues", default=[])
    if not isinstance(raw_issues, list):
        raw_issues = []

    issues = []
    for raw_issue in raw_issues:
        issue = _parse_issue(raw_issue)
        if issue is not None:
            issues.append(issue)

    flag = _pick(entry, "requires_senior_review", "requiresSeniorReview")
    # Missing or garbled flag: escalate whenever something was found
    requires_review = flag if isinstance(flag, bool) else bool(issues)

    return ScreeningResult(
        post_id=str(post_id),
        potential_issues=tuple(issues),
        transcript_summary=str(_pick(entry, "transcript_summary", "transcriptSummary", default="")),
        brand_mentions=tuple(_str_list(_pick(entry, "brand_mentions", "brandMentions"))),
        ad_indicators=tuple(_str_list(_pick(entry, "ad_indicators", "adIndicators"))),
        requires_senior_review=requires_review,
    )


def parse_screening_results(raw: Optional[str], post_ids: Iterable[str]) -> list[ScreeningResult]:
    """
    One ScreeningResult per requested post, in request order.

    Posts that are missing from the response, or whose entry is
    malformed, get an empty result instead of failing the batch.
    """
    post_ids = [str(p) for p in post_ids]
    wanted = set(post_ids)
    parsed: dict[str, ScreeningResult] = {}

    try:
        entries = extract_json_array(raw or "")
    except ValueError as e:
        logger.warning(f"Screening response unparseable ({e}); defaulting {len(post_ids)} posts")
        entries = []

    for entry in entries:
        result = _parse_screening_entry(entry, wanted)
        if result is not None and result.post_id not in parsed:
            parsed[result.post_id] = result

    missing = wanted - set(parsed)
    if missing and entries:
        logger.warning(f"Screening response missing {len(missing)} posts, using defaults")

    return [parsed.get(pid, ScreeningResult(post_id=pid)) for pid in post_ids]


# ------------------------------------------------------------------ #
#  Adjudication (Tier 2)                                              #
# ------------------------------------------------------------------ #

def _parse_decision(entry, known_post_ids: Optional[set[str]]) -> Optional[VettingDecision]:
    if not isinstance(entry, dict):
        return None
    # Only explicit confirmations survive
    if _pick(entry, "is_confirmed_risk", "isConfirmedRisk") is not True:
        return None
    post_id = _pick(entry, "post_id", "postId")
    if post_id is None:
        return None
    post_id = str(post_id)
    if known_post_ids is not None and post_id not in known_post_ids:
        logger.warning(f"Dropping decision for unknown post {post_id}")
        return None

    severity = str(_pick(entry, "severity", default="")).lower()
    if severity not in SEVERITIES:
        logger.warning(f"Decision for {post_id} has invalid severity {severity!r}, using medium")
        severity = "medium"
    category = str(_pick(entry, "category", default="other")).lower()

    return VettingDecision(
        post_id=post_id,
        severity=severity,
        concerns=tuple(_str_list(_pick(entry, "concerns"))),
        reason=str(_pick(entry, "reason", default="")),
        category=category if category in DECISION_CATEGORIES else "other",
        is_confirmed_risk=True,
    )


def parse_vetting_result(raw: Optional[str], known_post_ids: Optional[Iterable[str]] = None) -> VettingResult:
    """
    Parse the adjudication object (raises ValueError on shape failure).

    Overall risk is recomputed from the confirmed decisions; the value the
    model reported is kept in reported_overall_risk.
    """
    data = extract_json_object(raw or "")
    raw_decisions = _pick(data, "decisions", default=[])
    if not isinstance(raw_decisions, list):
        raise ValueError("'decisions' must be a list")

    known = {str(p) for p in known_post_ids} if known_post_ids is not None else None
    decisions = []
    for entry in raw_decisions:
        decision = _parse_decision(entry, known)
        if decision is not None:
            decisions.append(decision)

    recommendation = str(_pick(data, "recommendation", default="")).lower()
    if recommendation not in RECOMMENDATIONS:
        recommendation = "review"

    reported = str(_pick(data, "overall_risk", "overallRisk", default="")).lower()

    return VettingResult(
        decisions=decisions,
        overall_risk=overall_risk_from_decisions(decisions),
        summary=str(_pick(data, "summary", default="")),
        recommendation=recommendation,
        recommendation_rationale=str(_pick(data, "recommendation_rationale", "recommendationRationale", default="")),
        reported_overall_risk=reported if reported in SEVERITIES else None,
    )
