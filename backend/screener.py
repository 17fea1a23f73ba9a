"""Creator Safety Vetting - Content Screener (Tier 1)
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Fast, cheap, high-recall pass over every post. The screener only lists
candidate issues and says whether a post needs senior review; it never
assigns a final severity. Over-flagging is acceptable here because the
adjudication tier filters false positives.
"""

import logging
from collections import Counter
from typing import Optional

from batch_config import LLM_RETRIES, LLM_RETRY_DELAY_SECONDS, SCREENING_BATCH_SIZE
from llm_provider import LLMProvider
from response_parsers import parse_screening_results
from retry_policy import retry_async
from vetting_models import CreatorContext, MediaAnalysisRecord, ScreeningResult, SocialPost

logger = logging.getLogger(__name__)

# --- Prompt truncation limits ---
MAX_CAPTION_CHARS = 500
MAX_TRANSCRIPT_CHARS = 1000
MAX_VISUAL_CHARS = 800
SCREENING_MAX_TOKENS = 4096

SCREENING_SYSTEM_PROMPT = """You are a content screener for brand-partnership vetting. You review batches of social media posts from one creator and list anything a brand safety team might want to look at.

Be thorough: it is fine to flag something that later turns out to be harmless, but do not invent issues that are not in the text or media description.

For EVERY post in the batch return one entry. Respond with ONLY a valid JSON array (no markdown):
[
    {
        "post_id": "the post id exactly as given",
        "potential_issues": [
            {
                "type": "profanity" | "controversial" | "political" | "brand_mention" | "adult_content" | "violence" | "legal" | "misinformation" | "other",
                "text": "the exact words or visual element",
                "context": "short explanation",
                "location": "caption" | "transcript" | "visual"
            }
        ],
        "transcript_summary": "one sentence, empty if no transcript",
        "brand_mentions": ["brand names mentioned or shown"],
        "ad_indicators": ["#ad, 'paid partnership', discount codes, affiliate links..."],
        "requires_senior_review": true | false
    }
]

Set requires_senior_review to true when a post has any potential issue that could matter to a brand, or when a brand appears with ad indicators but no clear disclosure."""


def truncate(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def format_time(seconds: Optional[float]) -> str:
    """Seconds as M:SS, or H:MM:SS past an hour."""
    total = int(seconds or 0)
    hours, remainder = divmod(total, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def format_visual_summary_for_prompt(record: MediaAnalysisRecord) -> str:
    """Render a media analysis record as plain lines for a prompt."""
    visual = record.visual_summary
    lines = [f"Description: {visual.description}"]

    scene = visual.scene
    lines.append(f"Scene: {scene.setting} / {scene.mood} / {scene.content_type}")

    if visual.brands:
        brands = []
        for brand in visual.brands:
            label = f"{brand.brand} ({brand.confidence}"
            if brand.appears_sponsored:
                label += ", appears sponsored"
            label += ")"
            if brand.start_time is not None:
                label += f" at {format_time(brand.start_time)}"
            brands.append(label)
        lines.append("Brands: " + ", ".join(brands))

    if record.detected_logos:
        logos = [
            f"{logo.brand} ({logo.confidence}) {format_time(logo.start_time)}-{format_time(logo.end_time)}"
            for logo in record.detected_logos
        ]
        lines.append("Logos: " + ", ".join(logos))

    if visual.text_detections:
        lines.append("On-screen text: " + "; ".join(t.text for t in visual.text_detections))

    concerning = [a for a in visual.actions if a.is_concerning]
    if concerning:
        lines.append("Concerning actions: " + "; ".join(
            f"{a.action} ({a.reason})" if a.reason else a.action for a in concerning
        ))

    if scene.concerns:
        lines.append("Visual concerns: " + "; ".join(scene.concerns))

    if record.content_classification and record.content_classification.flagged_categories:
        lines.append("Flagged categories: " + ", ".join(record.content_classification.flagged_categories))

    lines.append(f"Visual safety rating: {visual.safety_rating}")
    return "\n".join(lines)


def format_post_for_screening(post: SocialPost) -> str:
    parts = [f"--- POST {post.id} ---"]
    if post.timestamp:
        parts.append(f"Date: {post.timestamp}")
    parts.append(f"Caption: {truncate(post.caption, MAX_CAPTION_CHARS) or '(none)'}")
    if post.transcript:
        parts.append(f"Transcript: {truncate(post.transcript, MAX_TRANSCRIPT_CHARS)}")
    if post.media_analysis is not None:
        visual = truncate(format_visual_summary_for_prompt(post.media_analysis), MAX_VISUAL_CHARS)
        parts.append(f"Media analysis ({post.media_analysis.kind}):\n{visual}")
    if post.keyword_result is not None and post.keyword_result.has_matches:
        terms = ", ".join(post.keyword_result.flagged_terms)
        parts.append(f"Keyword flags (risk {post.keyword_result.overall_risk}): {terms}")
    return "\n".join(parts)


def build_screening_prompt(posts: list[SocialPost], platform: str, creator: Optional[CreatorContext] = None) -> str:
    header = f"Platform: {platform}"
    if creator is not None:
        header += f"\nCreator: {creator.name}"
        if creator.handle:
            header += f" (@{creator.handle.lstrip('@')})"
    body = "\n\n".join(format_post_for_screening(p) for p in posts)
    return f"{header}\nPosts in this batch: {len(posts)}\n\n{body}\n\nReturn the JSON array now."


class ContentScreener:
    """Tier 1 screening over sub-batches of posts."""

    def __init__(
        self,
        provider: LLMProvider,
        batch_size: int = SCREENING_BATCH_SIZE,
        retries: int = LLM_RETRIES,
        retry_delay: float = LLM_RETRY_DELAY_SECONDS,
    ):
        self.provider = provider
        self.batch_size = max(1, batch_size)
        self.retries = retries
        self.retry_delay = retry_delay

    @property
    def is_configured(self) -> bool:
        return self.provider.is_configured

    async def _screen_chunk(self, chunk: list[SocialPost], platform: str, creator: Optional[CreatorContext]) -> list[ScreeningResult]:
        post_ids = [p.id for p in chunk]
        prompt = build_screening_prompt(chunk, platform, creator)
        try:
            raw = await retry_async(
                lambda: self.provider.complete(SCREENING_SYSTEM_PROMPT, prompt, max_tokens=SCREENING_MAX_TOKENS),
                retries=self.retries,
                base_delay=self.retry_delay,
                label=f"Screening {platform} ({len(chunk)} posts)",
            )
        except Exception as e:
            logger.error(f"Screening failed for {len(chunk)} {platform} posts, using defaults: {e}")
            return [ScreeningResult(post_id=pid) for pid in post_ids]
        try:
            return parse_screening_results(raw, post_ids)
        except Exception as e:
            logger.error(f"Screening response for {len(chunk)} {platform} posts could not be read, using defaults: {e}")
            return [ScreeningResult(post_id=pid) for pid in post_ids]

    async def screen(
        self,
        posts: list[SocialPost],
        platform: str,
        creator: Optional[CreatorContext] = None,
    ) -> list[ScreeningResult]:
        """One ScreeningResult per post, in input order. Never raises."""
        if not posts:
            return []
        if not self.is_configured:
            logger.warning("Screening provider not configured, returning empty screening results")
            return [ScreeningResult(post_id=p.id) for p in posts]

        results: list[ScreeningResult] = []
        for start in range(0, len(posts), self.batch_size):
            chunk = posts[start:start + self.batch_size]
            results.extend(await self._screen_chunk(chunk, platform, creator))

        flagged = sum(1 for r in results if r.requires_senior_review)
        logger.info(f"🔍 Screened {len(posts)} {platform} posts: {flagged} need senior review")
        return results


def screening_summary(results: list[ScreeningResult]) -> dict:
    """Counts for reporting: posts, flags, issues by type, unique brands."""
    issue_types = Counter(issue.type for r in results for issue in r.potential_issues)
    brands: dict[str, None] = {}
    for result in results:
        for brand in result.brand_mentions:
            brands.setdefault(brand, None)
    return {
        "total_posts": len(results),
        "posts_needing_review": sum(1 for r in results if r.requires_senior_review),
        "total_issues": sum(issue_types.values()),
        "issue_types": dict(issue_types),
        "brand_mentions": list(brands),
    }
