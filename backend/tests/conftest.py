import pytest
import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

# Add backend directory to path so imports work
backend_path = Path(__file__).parent.parent
sys.path.append(str(backend_path))

from llm_provider import LLMProvider
from vetting_models import (
    CreatorContext,
    MediaAnalysisRecord,
    MediaItem,
    SocialPost,
    VisualSummary,
)


def make_provider(response="", side_effect=None, configured=True):
    """LLMProvider stand-in whose complete() returns `response`."""
    provider = MagicMock(spec=LLMProvider)
    provider.is_configured = configured
    provider.complete = AsyncMock(return_value=response, side_effect=side_effect)
    return provider


def make_record(kind="image", rating="safe", description="A person in a kitchen", brands=None):
    return MediaAnalysisRecord(
        kind=kind,
        visual_summary=VisualSummary(
            description=description,
            brands=brands or [],
            safety_rating=rating,
        ),
    )


@pytest.fixture
def creator():
    return CreatorContext(name="Jamie Rivera", handle="jamiecooks", platforms=["instagram", "tiktok"])


@pytest.fixture
def sample_posts():
    return [
        SocialPost(
            id="p1",
            caption="Sunday pasta night with the family",
            permalink="https://instagram.com/p/p1",
            timestamp="2026-03-01T18:00:00Z",
            media=MediaItem(id="p1:media", kind="image", locator="https://cdn.example.com/p1.jpg"),
        ),
        SocialPost(
            id="p2",
            caption="Loving my new Brand X blender #ad",
            permalink="https://instagram.com/p/p2",
            timestamp="2026-03-02T18:00:00Z",
            media=MediaItem(id="p2:media", kind="video", locator="https://cdn.example.com/p2.mp4"),
        ),
        SocialPost(
            id="p3",
            caption="this is a blatant scam and fraud",
            permalink="https://instagram.com/p/p3",
            timestamp="2026-03-03T18:00:00Z",
        ),
    ]
