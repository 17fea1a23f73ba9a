"""Creator Safety Vetting - Vetting Agent (Tier 2)
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

Senior review of the posts that screening flagged. The agent re-reads
each candidate with its full caption and transcript, drops false
positives, and gives confirmed risks a severity and category plus one
recommendation for the whole batch.

Fail-safe policy: anything that goes wrong here (provider error,
unparseable answer) ends in a "review" recommendation with no confirmed
decisions, so a human looks at the batch.
"""

import logging
from typing import Optional

from batch_config import LLM_RETRIES, LLM_RETRY_DELAY_SECONDS
from llm_provider import LLMProvider
from response_parsers import parse_vetting_result
from retry_policy import retry_async
from vetting_models import CreatorContext, ScreeningResult, SocialPost, VettingResult

logger = logging.getLogger(__name__)

MAX_CAPTION_CHARS = 2000
MAX_TRANSCRIPT_CHARS = 4000
VETTING_MAX_TOKENS = 4096

VETTING_SYSTEM_PROMPT = """You are a senior brand-safety reviewer deciding whether a creator is safe for a brand partnership.

A junior screener has flagged the posts below. Many flags are false positives. For each flagged post:
1. Re-read the full caption and transcript and judge the candidate issues in context.
2. Discard false positives. Examples: an organic, unpaid brand mention with no ad indicators is NOT a risk; quoting or criticizing something is not endorsing it; ordinary slang is not hate speech.
3. For every real risk, assign exactly one severity:
   - critical: severe or disqualifying (hate speech, sexual content involving minors, incitement to violence)
   - high: a significant blocker for brand partnerships (undisclosed paid promotion, illegal activity, harassment)
   - medium: moderate, context-dependent (heavy profanity, divisive political statements, alcohol focus)
   - low: minor but noteworthy
4. Categorize each risk: brand_safety, legal, political, disclosure, content, or other.

Then give one overall risk and one recommendation for the whole batch:
approve (no meaningful risk), caution (minor risks), review (a human should look), reject (not suitable).

Respond with ONLY valid JSON (no markdown):
{
    "decisions": [
        {
            "post_id": "id as given",
            "is_confirmed_risk": true | false,
            "severity": "critical" | "high" | "medium" | "low",
            "category": "brand_safety" | "legal" | "political" | "disclosure" | "content" | "other",
            "concerns": ["short concern", "..."],
            "reason": "why this is (or is not) a risk"
        }
    ],
    "overall_risk": "critical" | "high" | "medium" | "low",
    "summary": "2-3 sentence summary for the brand team",
    "recommendation": "approve" | "caution" | "review" | "reject",
    "recommendation_rationale": "one or two sentences"
}"""

_LANGUAGE_INSTRUCTIONS = {
    "de": "Write summary, concerns, reasons and rationale in German.",
}

_FAST_PATH_TEXT = {
    "en": ("No content required senior review. Screening found no potential brand-safety issues.",
           "Screening raised no concerns."),
    "de": ("Kein Inhalt erforderte eine vertiefte Prüfung. Das Screening ergab keine Hinweise auf Markensicherheitsrisiken.",
           "Das Screening ergab keine Bedenken."),
}

_FAIL_SAFE_TEXT = {
    "en": ("Unable to complete detailed analysis. Flagged content requires manual review.",
           "Automated senior review did not complete; a human should review the flagged posts."),
    "de": ("Die detaillierte Analyse konnte nicht abgeschlossen werden. Markierte Inhalte erfordern eine manuelle Prüfung.",
           "Die automatische Prüfung wurde nicht abgeschlossen; die markierten Beiträge sollten manuell geprüft werden."),
}


def _text(table: dict, language: str) -> tuple[str, str]:
    return table.get((language or "en")[:2].lower(), table["en"])


def approved_result(language: str = "en") -> VettingResult:
    summary, rationale = _text(_FAST_PATH_TEXT, language)
    return VettingResult(
        decisions=[],
        overall_risk="low",
        summary=summary,
        recommendation="approve",
        recommendation_rationale=rationale,
    )


def fail_safe_result(language: str = "en") -> VettingResult:
    summary, rationale = _text(_FAIL_SAFE_TEXT, language)
    return VettingResult(
        decisions=[],
        overall_risk="low",
        summary=summary,
        recommendation="review",
        recommendation_rationale=rationale,
    )


def _clip(text: Optional[str], limit: int) -> str:
    text = (text or "").strip()
    return text if len(text) <= limit else text[:limit] + "..."


def format_flagged_post(result: ScreeningResult, post: Optional[SocialPost]) -> str:
    lines = [f"=== POST {result.post_id} ==="]
    if post is not None and post.timestamp:
        lines.append(f"Date: {post.timestamp}")

    if result.potential_issues:
        lines.append("Screener flags:")
        for issue in result.potential_issues:
            line = f"  - [{issue.type}] \"{issue.text}\" in {issue.location}"
            if issue.context:
                line += f": {issue.context}"
            lines.append(line)
    if result.brand_mentions:
        lines.append("Brand mentions: " + ", ".join(result.brand_mentions))
    lines.append("Ad indicators: " + (", ".join(result.ad_indicators) if result.ad_indicators else "none"))
    if result.transcript_summary:
        lines.append(f"Transcript summary: {result.transcript_summary}")

    if post is not None:
        lines.append(f"Original caption: {_clip(post.caption, MAX_CAPTION_CHARS) or '(none)'}")
        if post.transcript:
            lines.append(f"Original transcript: {_clip(post.transcript, MAX_TRANSCRIPT_CHARS)}")
        if post.media_analysis is not None:
            visual = post.media_analysis.visual_summary
            lines.append(f"Media ({post.media_analysis.kind}): {visual.description} [rating: {visual.safety_rating}]")
    return "\n".join(lines)


def build_vetting_prompt(
    flagged: list[ScreeningResult],
    posts_by_id: dict[str, SocialPost],
    creator: CreatorContext,
    platform: str,
    language: str = "en",
) -> str:
    header = [f"Creator: {creator.name}", f"Platform: {platform}"]
    if creator.handle:
        header.append(f"Handle: @{creator.handle.lstrip('@')}")
    if creator.platforms:
        header.append("Active on: " + ", ".join(creator.platforms))
    header.append(f"Flagged posts: {len(flagged)}")

    body = "\n\n".join(format_flagged_post(r, posts_by_id.get(r.post_id)) for r in flagged)
    instruction = _LANGUAGE_INSTRUCTIONS.get((language or "en")[:2].lower(), "")
    return "\n".join(header) + "\n\n" + body + "\n\nReturn the JSON object now." + (f" {instruction}" if instruction else "")


class VettingAgent:
    """Tier 2 adjudication over screening results."""

    def __init__(
        self,
        provider: LLMProvider,
        retries: int = LLM_RETRIES,
        retry_delay: float = LLM_RETRY_DELAY_SECONDS,
    ):
        self.provider = provider
        self.retries = retries
        self.retry_delay = retry_delay

    @property
    def is_configured(self) -> bool:
        return self.provider.is_configured

    async def adjudicate(
        self,
        screening_results: list[ScreeningResult],
        posts: list[SocialPost],
        creator: CreatorContext,
        platform: str,
        language: str = "en",
    ) -> VettingResult:
        """
        Confirm or dismiss the flagged posts and recommend an action.

        Returns an approved result without calling the provider when
        nothing was flagged. Never raises.
        """
        flagged = [r for r in screening_results if r.requires_senior_review]
        if not flagged:
            logger.info(f"✅ No {platform} posts flagged for senior review, approving")
            return approved_result(language)

        flagged_ids = [r.post_id for r in flagged]
        if not self.is_configured:
            logger.warning(f"Vetting provider not configured; {len(flagged)} flagged {platform} posts go to manual review")
            return fail_safe_result(language)

        posts_by_id = {p.id: p for p in posts}
        prompt = build_vetting_prompt(flagged, posts_by_id, creator, platform, language)

        try:
            raw = await retry_async(
                lambda: self.provider.complete(VETTING_SYSTEM_PROMPT, prompt, max_tokens=VETTING_MAX_TOKENS),
                retries=self.retries,
                base_delay=self.retry_delay,
                label=f"Vetting {platform} ({len(flagged)} flagged)",
            )
            result = parse_vetting_result(raw, known_post_ids=flagged_ids)
        except Exception as e:
            logger.error(f"Vetting failed for {creator.name} on {platform}, falling back to review: {e}")
            return fail_safe_result(language)

        confirmed = {d.post_id for d in result.decisions}
        result.dismissed_post_ids = [pid for pid in flagged_ids if pid not in confirmed]

        logger.info(
            f"⚖️ Vetting {platform}: {len(result.decisions)} confirmed risks, "
            f"{len(result.dismissed_post_ids)} flagged posts dismissed, "
            f"overall={result.overall_risk}, recommendation={result.recommendation}"
        )
        return result
