import json
from unittest.mock import AsyncMock, patch

import pytest

from conftest import make_provider, make_record
from keyword_detector import KeywordDetector
from media_queue import MediaAnalysisQueue, MediaQueueOptions
from screener import ContentScreener
from vetting_agent import VettingAgent
from vetting_models import (
    CreatorContext,
    MediaItem,
    SocialPost,
    Transcript,
    VettingDecision,
    VettingResult,
)
from vetting_pipeline import (
    CreatorBatch,
    VettingPipeline,
    build_findings,
    create_pipeline,
    merge_post,
    platform_label,
)

SCREENING = json.dumps([
    {"post_id": "p1", "requires_senior_review": False},
    {"post_id": "p2", "potential_issues": [{"type": "brand_mention", "text": "Brand X"}],
     "brand_mentions": ["Brand X"], "ad_indicators": ["#ad"], "requires_senior_review": True},
    {"post_id": "p3", "potential_issues": [{"type": "legal", "text": "scam"}], "requires_senior_review": True},
])

VETTING = json.dumps({
    "decisions": [
        {"post_id": "p2", "is_confirmed_risk": False, "severity": "low", "reason": "Disclosed with #ad"},
        {"post_id": "p3", "is_confirmed_risk": True, "severity": "high", "category": "legal",
         "concerns": ["Promotes a scam"], "reason": "Caption accuses others of fraud without context"},
    ],
    "overall_risk": "high",
    "summary": "One legal concern.",
    "recommendation": "caution",
    "recommendation_rationale": "Single high-severity post.",
})


class StubCapability:
    def __init__(self, kind, record=None, configured=True):
        self.kind = kind
        self.record = record or make_record(kind=kind)
        self.is_configured = configured
        self.calls = []

    async def analyze(self, locator, data=None, content_type=None):
        self.calls.append(locator)
        return self.record


def make_pipeline(screening=SCREENING, vetting=VETTING, video_record=None, configured=True):
    video_record = video_record or make_record(kind="video", description="Blender unboxing")
    queue = MediaAnalysisQueue(
        StubCapability("video", video_record),
        StubCapability("image"),
        MediaQueueOptions(video_interval=0, image_interval=0, retry_delay=0),
    )
    return VettingPipeline(
        keyword_detector=KeywordDetector(),
        media_queue=queue,
        screener=ContentScreener(make_provider(screening, configured=configured), retry_delay=0),
        vetting_agent=VettingAgent(make_provider(vetting, configured=configured), retry_delay=0),
    )


class TestVetBatch:
    @pytest.mark.asyncio
    async def test_end_to_end(self, sample_posts, creator):
        pipeline = make_pipeline()
        outcome = await pipeline.vet_batch(sample_posts, creator, "instagram")

        assert outcome.platform == "instagram"
        assert outcome.handle == "jamiecooks"
        assert outcome.result.recommendation == "caution"
        assert outcome.result.overall_risk == "medium"
        assert outcome.result.dismissed_post_ids == ["p2"]
        assert outcome.post_risk == {"p3": "medium"}

        assert len(outcome.findings) == 1
        finding = outcome.findings[0]
        assert finding.post_id == "p3"
        assert finding.title == "Instagram Post - Promotes a scam"
        assert finding.severity == "high"
        assert finding.category == "legal"
        assert 'Post excerpt: "this is a blatant scam and fraud"' in finding.summary
        assert finding.permalink == "https://instagram.com/p/p3"

        assert outcome.keyword_results["p3"].overall_risk == "high"
        assert outcome.media_summary.successful == 2
        assert outcome.media_summary.videos == 1
        assert outcome.screening_summary["posts_needing_review"] == 2

    @pytest.mark.asyncio
    async def test_screening_sees_keyword_flags_and_media(self, sample_posts, creator):
        pipeline = make_pipeline()
        await pipeline.vet_batch(sample_posts, creator, "instagram")
        prompt = pipeline.screener.provider.complete.await_args.args[1]
        assert "Keyword flags (risk high)" in prompt
        assert "Description: Blender unboxing" in prompt

    @pytest.mark.asyncio
    async def test_media_failure_does_not_stop_the_batch(self, sample_posts, creator):
        pipeline = make_pipeline()
        pipeline.media_queue.capabilities_by_kind["video"] = StubCapability("video", configured=False)
        outcome = await pipeline.vet_batch(sample_posts, creator, "instagram")
        assert outcome.media_summary.failed == 1
        assert outcome.posts[1].media_analysis is None
        assert len(outcome.findings) == 1

    @pytest.mark.asyncio
    async def test_video_transcript_fills_missing_transcript(self, sample_posts, creator):
        record = make_record(kind="video")
        record.transcript = Transcript(text="use code JAMIE for 20% off")
        pipeline = make_pipeline(video_record=record)
        outcome = await pipeline.vet_batch(sample_posts, creator, "instagram")
        assert outcome.posts[1].transcript == "use code JAMIE for 20% off"
        # Inputs are not mutated
        assert sample_posts[1].transcript is None

    @pytest.mark.asyncio
    async def test_nothing_flagged(self, sample_posts, creator):
        pipeline = make_pipeline(screening="[]")
        outcome = await pipeline.vet_batch(sample_posts, creator, "tiktok")
        assert outcome.result.recommendation == "approve"
        assert outcome.findings == []
        pipeline.vetting_agent.provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_reasoning_backend_approves(self, sample_posts, creator):
        pipeline = make_pipeline(configured=False)
        outcome = await pipeline.vet_batch(sample_posts, creator, "instagram")
        assert outcome.result.recommendation == "approve"

    @pytest.mark.asyncio
    async def test_empty_batch(self, creator):
        pipeline = make_pipeline()
        outcome = await pipeline.vet_batch([], creator, "instagram")
        assert outcome.result.recommendation == "approve"
        pipeline.screener.provider.complete.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unexpected_error_means_review(self, sample_posts, creator):
        pipeline = make_pipeline()
        with patch.object(pipeline.screener, "screen", new=AsyncMock(side_effect=RuntimeError("boom"))):
            outcome = await pipeline.vet_batch(sample_posts, creator, "instagram")
        assert outcome.result.recommendation == "review"
        assert outcome.findings == []

    @pytest.mark.asyncio
    async def test_custom_keywords_reach_prefilter(self, sample_posts, creator):
        pipeline = make_pipeline()
        outcome = await pipeline.vet_batch(sample_posts, creator, "instagram", custom_keywords=["blender"])
        assert "blender" in outcome.keyword_results["p2"].flagged_terms


class TestVetCreators:
    @pytest.mark.asyncio
    async def test_chunks_with_pause(self, sample_posts):
        pipeline = make_pipeline()
        batches = [
            CreatorBatch(creator=CreatorContext(name=f"Creator {i}", handle=f"c{i}"), platform="instagram", posts=sample_posts)
            for i in range(5)
        ]
        with patch("vetting_pipeline.asyncio.sleep", new_callable=AsyncMock) as sleep:
            outcomes = await pipeline.vet_creators(batches, chunk_size=2, pause=0.5)
        assert [o.handle for o in outcomes] == ["c0", "c1", "c2", "c3", "c4"]
        assert sleep.await_count == 2


class TestFindings:
    def test_one_finding_per_confirmed_decision(self, sample_posts):
        result = VettingResult(decisions=[
            VettingDecision("p1", "medium", (), "Alcohol focus", category="brand_safety"),
            VettingDecision("p2", "high", ("Undisclosed ad",), "No disclosure", category="disclosure"),
            VettingDecision("p3", "critical", ("x",), "y", is_confirmed_risk=False),
        ])
        findings = build_findings(result, sample_posts, "tiktok", "jamiecooks")
        assert [f.post_id for f in findings] == ["p1", "p2"]
        assert findings[0].title == "TikTok Post - Brand Safety"
        assert findings[1].media_locators == ("https://cdn.example.com/p2.mp4",)
        assert findings[0].media_locators == ("https://cdn.example.com/p1.jpg",)

    def test_long_excerpt_clipped(self):
        post = SocialPost(id="p1", caption="a" * 300)
        result = VettingResult(decisions=[VettingDecision("p1", "low", ("minor",), "minor issue")])
        finding = build_findings(result, [post], "youtube", "h")[0]
        assert finding.caption_excerpt == "a" * 200 + "..."

    def test_decision_without_post(self):
        result = VettingResult(decisions=[VettingDecision("ghost", "low", ("c",), "r")])
        finding = build_findings(result, [], "instagram", "h")[0]
        assert finding.summary == "r"
        assert finding.permalink == ""

    @pytest.mark.parametrize("platform,expected", [
        ("instagram", "Instagram"),
        ("TikTok", "TikTok"),
        ("twitter", "X"),
        ("threads", "Threads"),
    ])
    def test_platform_label(self, platform, expected):
        assert platform_label(platform) == expected


class TestMergeAndWiring:
    def test_merge_keeps_platform_transcript(self):
        record = make_record(kind="video")
        record.transcript = Transcript(text="from video")
        post = SocialPost(id="p1", transcript="from platform",
                          media=MediaItem(id="p1:media", kind="video", locator="v.mp4"))
        merged = merge_post(post, None, record)
        assert merged.transcript == "from platform"
        assert merged.media_analysis is record

    def test_create_pipeline_without_keys(self, monkeypatch):
        monkeypatch.delenv("TWELVE_LABS_API_KEY", raising=False)
        pipeline = create_pipeline()
        assert pipeline.capabilities() == {
            "video": False, "image": False, "screening": False, "adjudication": False,
        }

    def test_create_pipeline_with_keys(self):
        pipeline = create_pipeline(anthropic_api_key="sk-ant", twelve_labs_api_key="tl-key")
        assert all(pipeline.capabilities().values())
        assert pipeline.screener.provider.model == "claude-haiku-4-5-20251001"
        assert pipeline.vetting_agent.provider.model == "claude-opus-4-5-20251101"
