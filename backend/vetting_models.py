"""Creator Safety Vetting - Data Models
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Records passed between the prefilter, the media scheduler, the two
review tiers and the findings converter.
"""

from dataclasses import dataclass, field
from typing import Optional

# --- Vocabularies ---
SEVERITIES = ("critical", "high", "medium", "low")   # Worst first
SAFETY_RATINGS = ("safe", "caution", "unsafe")
MEDIA_KINDS = ("video", "image")
RECOMMENDATIONS = ("approve", "caution", "review", "reject")
DECISION_CATEGORIES = ("brand_safety", "legal", "political", "disclosure", "content", "other")
ISSUE_TYPES = (
    "profanity", "controversial", "political", "brand_mention",
    "adult_content", "violence", "legal", "misinformation", "other",
)
ISSUE_LOCATIONS = ("caption", "transcript", "visual")


# ------------------------------------------------------------------ #
#  Media                                                              #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class MediaItem:
    id: str
    kind: str
    locator: str
    raw_bytes: Optional[bytes] = None
    content_type: Optional[str] = None


@dataclass
class BrandDetection:
    brand: str
    confidence: str = "medium"     # high, medium, low
    context: str = ""
    appears_sponsored: bool = False
    start_time: Optional[float] = None
    end_time: Optional[float] = None


@dataclass
class ActionDetection:
    action: str
    is_concerning: bool = False
    reason: str = ""


@dataclass
class TextDetection:
    text: str
    context: str = ""


@dataclass
class SceneContext:
    setting: str = "Unknown"
    mood: str = "Unknown"
    content_type: str = "Unknown"
    concerns: list[str] = field(default_factory=list)


@dataclass
class VisualSummary:
    description: str
    brands: list[BrandDetection] = field(default_factory=list)
    actions: list[ActionDetection] = field(default_factory=list)
    text_detections: list[TextDetection] = field(default_factory=list)
    scene: SceneContext = field(default_factory=SceneContext)
    safety_rating: str = "safe"
    safety_summary: str = ""
    raw_analysis: str = ""


@dataclass
class TranscriptSegment:
    start: float
    end: float
    text: str


@dataclass
class Transcript:
    text: str
    segments: list[TranscriptSegment] = field(default_factory=list)


@dataclass
class IndexingMetadata:
    index_id: str
    video_id: str
    task_id: str
    duration: Optional[float] = None


@dataclass
class LogoDetection:
    brand: str
    confidence: str
    confidence_score: float
    start_time: Optional[float] = None
    end_time: Optional[float] = None


@dataclass
class ContentClassification:
    category_scores: dict[str, float] = field(default_factory=dict)
    overall_safety_score: float = 1.0
    flagged_categories: list[str] = field(default_factory=list)


@dataclass
class MediaAnalysisRecord:
    kind: str
    visual_summary: VisualSummary
    transcript: Optional[Transcript] = None
    indexing_metadata: Optional[IndexingMetadata] = None
    detected_logos: Optional[list[LogoDetection]] = None
    content_classification: Optional[ContentClassification] = None


# ------------------------------------------------------------------ #
#  Posts and creators                                                 #
# ------------------------------------------------------------------ #

@dataclass
class CreatorContext:
    name: str
    handle: str = ""
    platforms: list[str] = field(default_factory=list)


@dataclass
class SocialPost:
    id: str
    caption: str = ""
    permalink: str = ""
    timestamp: str = ""
    transcript: Optional[str] = None
    media: Optional[MediaItem] = None
    media_analysis: Optional[MediaAnalysisRecord] = None
    keyword_result: Optional["KeywordDetectionResult"] = None

    @property
    def full_content(self) -> str:
        """Caption followed by the transcript, when there is one."""
        if self.transcript:
            return f"{self.caption}\n\n{self.transcript}"
        return self.caption


# ------------------------------------------------------------------ #
#  Lexical prefilter                                                  #
# ------------------------------------------------------------------ #

@dataclass
class KeywordMatch:
    keyword: str
    match_type: str        # exact, stem
    matched_text: str
    severity: str


@dataclass
class KeywordDetectionResult:
    matches: list[KeywordMatch] = field(default_factory=list)
    overall_risk: str = "low"

    @property
    def has_matches(self) -> bool:
        return bool(self.matches)

    @property
    def flagged_terms(self) -> list[str]:
        return [m.keyword for m in self.matches]


# ------------------------------------------------------------------ #
#  Review tiers                                                       #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class PotentialIssue:
    type: str
    text: str
    context: str = ""
    location: str = "caption"


@dataclass(frozen=True)
class ScreeningResult:
    post_id: str
    potential_issues: tuple[PotentialIssue, ...] = ()
    transcript_summary: str = ""
    brand_mentions: tuple[str, ...] = ()
    ad_indicators: tuple[str, ...] = ()
    requires_senior_review: bool = False


@dataclass(frozen=True)
class VettingDecision:
    post_id: str
    severity: str
    concerns: tuple[str, ...]
    reason: str
    category: str = "other"
    is_confirmed_risk: bool = True


@dataclass
class VettingResult:
    decisions: list[VettingDecision] = field(default_factory=list)
    overall_risk: str = "low"
    summary: str = ""
    recommendation: str = "approve"
    recommendation_rationale: str = ""
    reported_overall_risk: Optional[str] = None
    dismissed_post_ids: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class Finding:
    post_id: str
    platform: str
    handle: str
    title: str
    summary: str
    severity: str
    concerns: tuple[str, ...]
    reason: str
    category: str
    caption_excerpt: str = ""
    permalink: str = ""
    published_at: str = ""
    media_locators: tuple[str, ...] = ()
