import base64
import json

import httpx
import pytest

from conftest import make_provider
from image_analyzer import MAX_IMAGE_BYTES, ImageAnalyzer, sniff_image_media_type
from retry_policy import PermanentCapabilityError, TransientCapabilityError

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32

ANALYSIS = json.dumps({
    "description": "A glass of wine on a restaurant table",
    "brands": [{"brand": "Acme Wines", "confidence": "high"}],
    "scene": {"setting": "restaurant", "concerns": ["alcohol"]},
    "safety_rating": "caution",
})


def serve(status=200, content=PNG_BYTES, content_type="image/png"):
    def handler(request):
        return httpx.Response(status, content=content, headers={"content-type": content_type})
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestSniff:
    @pytest.mark.parametrize("data,expected", [
        (PNG_BYTES, "image/png"),
        (JPEG_BYTES, "image/jpeg"),
        (b"GIF89a" + b"\x00" * 10, "image/gif"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
    ])
    def test_magic_bytes(self, data, expected):
        assert sniff_image_media_type(data) == expected

    def test_declared_type_used_when_unknown(self):
        assert sniff_image_media_type(b"????????", "image/webp; charset=binary") == "image/webp"

    def test_default_jpeg(self):
        assert sniff_image_media_type(b"????????", "application/octet-stream") == "image/jpeg"


class TestAnalyze:
    @pytest.mark.asyncio
    async def test_fetches_and_analyzes(self):
        provider = make_provider(ANALYSIS)
        async with ImageAnalyzer(provider, http_client=serve()) as analyzer:
            record = await analyzer.analyze("https://cdn.example.com/p1.png")

        assert record.kind == "image"
        assert record.visual_summary.safety_rating == "caution"
        assert record.visual_summary.brands[0].brand == "Acme Wines"
        images = provider.complete.await_args.kwargs["images"]
        assert images == [("image/png", base64.standard_b64encode(PNG_BYTES).decode("ascii"))]

    @pytest.mark.asyncio
    async def test_uses_given_bytes(self):
        provider = make_provider(ANALYSIS)
        async with ImageAnalyzer(provider, http_client=serve(status=500)) as analyzer:
            record = await analyzer.analyze("upload", data=JPEG_BYTES)
        assert record.visual_summary.description.startswith("A glass of wine")
        assert provider.complete.await_args.kwargs["images"][0][0] == "image/jpeg"

    @pytest.mark.asyncio
    async def test_unparseable_answer_is_caution(self):
        provider = make_provider("Sorry, I can't help with that.")
        async with ImageAnalyzer(provider, http_client=serve()) as analyzer:
            record = await analyzer.analyze("https://cdn.example.com/p1.png")
        assert record.visual_summary.safety_rating == "caution"
        assert record.visual_summary.raw_analysis == "Sorry, I can't help with that."

    @pytest.mark.asyncio
    async def test_fetch_throttled_is_transient(self):
        async with ImageAnalyzer(make_provider(ANALYSIS), http_client=serve(status=503)) as analyzer:
            with pytest.raises(TransientCapabilityError):
                await analyzer.analyze("https://cdn.example.com/p1.png")

    @pytest.mark.asyncio
    async def test_missing_image_is_permanent(self):
        async with ImageAnalyzer(make_provider(ANALYSIS), http_client=serve(status=404)) as analyzer:
            with pytest.raises(PermanentCapabilityError):
                await analyzer.analyze("https://cdn.example.com/gone.png")

    @pytest.mark.asyncio
    async def test_empty_and_oversized_payloads(self):
        provider = make_provider(ANALYSIS)
        async with ImageAnalyzer(provider, http_client=serve()) as analyzer:
            with pytest.raises(PermanentCapabilityError):
                await analyzer.analyze("upload", data=b"")
            with pytest.raises(PermanentCapabilityError):
                await analyzer.analyze("upload", data=b"\x00" * (MAX_IMAGE_BYTES + 1))
        provider.complete.assert_not_awaited()

    def test_configuration_follows_provider(self):
        assert ImageAnalyzer(make_provider(configured=False), http_client=serve()).is_configured is False
        assert ImageAnalyzer(make_provider(), http_client=serve()).is_configured is True
