"""
Creator Safety Vetting - Backend API
Copyright (c) 2026 beautifulplanet
Licensed under MIT License

FastAPI server that vets a creator's social media posts for brand-safety
risk: keyword prefilter, media analysis, screening and senior review.
"""

import os
import logging
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

import re
import secrets
from dataclasses import asdict
from typing import Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator
import uvicorn

from media_router import build_media_item
from rate_limiter import RollingWindowLimiter
from vetting_models import CreatorContext, SocialPost
from vetting_pipeline import create_pipeline

APP_VERSION = "1.0.0"

# Platform names are used in prompts and logs, keep them simple
PLATFORM_PATTERN = re.compile(r'^[a-z][a-z0-9_-]{1,30}$')
MAX_POSTS_PER_REQUEST = 500

app = FastAPI(
    title="Creator Safety Vetting API",
    description="Vets creators' social media posts for brand-safety risks",
    version=APP_VERSION
)

# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Attach security headers (X-Content-Type-Options, X-Frame-Options, etc.)."""
    response = await call_next(request)
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response

# API Key Authentication middleware (optional - set API_SECRET_KEY in .env to enable)
_api_secret = os.environ.get("API_SECRET_KEY", "").strip()
_PUBLIC_ENDPOINTS = {"/health", "/docs", "/openapi.json", "/redoc"}

if _api_secret:
    logger.info("API authentication: ENABLED (API_SECRET_KEY set)")
else:
    logger.warning("API authentication: DISABLED. Set API_SECRET_KEY in .env to require auth.")

@app.middleware("http")
async def api_key_middleware(request: Request, call_next):
    """Require X-API-Key header on protected endpoints when API_SECRET_KEY is configured."""
    if not _api_secret:
        return await call_next(request)

    path = request.url.path.rstrip("/")
    if path in _PUBLIC_ENDPOINTS or request.method == "OPTIONS":
        return await call_next(request)

    provided_key = request.headers.get("X-API-Key", "")
    if not secrets.compare_digest(provided_key, _api_secret):
        return JSONResponse(status_code=401, content={"detail": "Invalid or missing API key"})

    return await call_next(request)

# Per-IP rate limiting: vetting runs paid model calls
_rate_limiters: dict[str, RollingWindowLimiter] = {}
RATE_LIMIT_WINDOW = 60  # seconds
RATE_LIMITS = {
    "/vet": 5,                # 5 batches per minute
    "/keywords/detect": 120,
    "/health": 60,
}
DEFAULT_RATE_LIMIT = 30

@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """Reject requests over the per-IP, per-endpoint limit."""
    client_ip = request.client.host if request.client else "unknown"
    path = request.url.path.rstrip("/")
    key = f"{client_ip}:{path}"

    limiter = _rate_limiters.get(key)
    if limiter is None:
        limiter = RollingWindowLimiter(RATE_LIMITS.get(path, DEFAULT_RATE_LIMIT), RATE_LIMIT_WINDOW)
        _rate_limiters[key] = limiter

    if limiter.try_acquire() > 0:
        return JSONResponse(
            status_code=429,
            content={"detail": f"Rate limit exceeded. Max {limiter.limit} requests per minute for {path}."}
        )

    # Drop idle limiters once the table grows
    if len(_rate_limiters) > 200:
        idle = [k for k, v in _rate_limiters.items() if v.recent_admissions == 0]
        for k in idle:
            del _rate_limiters[k]

    return await call_next(request)

# CORS: dashboards that call this API (comma-separated ALLOWED_ORIGINS)
_allowed_origins = [o.strip() for o in os.environ.get("ALLOWED_ORIGINS", "").split(",") if o.strip()]
if not _allowed_origins:
    _allowed_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
    logger.warning("CORS: No ALLOWED_ORIGINS set - allowing localhost:3000 only (dev mode).")

app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Content-Type", "X-API-Key"],
)

# Initialize components
openai_api_key = os.environ.get("OPENAI_API_KEY")
anthropic_api_key = os.environ.get("ANTHROPIC_API_KEY")
twelve_labs_api_key = os.environ.get("TWELVE_LABS_API_KEY")

pipeline = create_pipeline(
    anthropic_api_key=anthropic_api_key,
    openai_api_key=openai_api_key,
    twelve_labs_api_key=twelve_labs_api_key,
    provider=os.environ.get("LLM_PROVIDER", "auto"),
)

# Startup validation - log feature availability
_features = pipeline.capabilities()
logger.info("=== Feature Availability ===")
for feature, enabled in _features.items():
    status = "ENABLED" if enabled else "DISABLED"
    logger.info(f"  {feature}: {status}")
if not _features["video"]:
    logger.warning("Video analysis disabled. Set TWELVE_LABS_API_KEY to enable.")
if not (_features["screening"] and _features["adjudication"]):
    logger.warning("Screening/senior review disabled. Set ANTHROPIC_API_KEY or OPENAI_API_KEY to enable.")


# Request/Response models
class MediaIn(BaseModel):
    url: str = Field(..., min_length=1, max_length=2048)
    kind: Optional[str] = None
    content_type: Optional[str] = Field(None, max_length=100)

    @field_validator('kind')
    @classmethod
    def validate_kind(cls, v):
        if v is not None and v not in ("video", "image"):
            raise ValueError("kind must be 'video' or 'image'")
        return v


class PostIn(BaseModel):
    id: str = Field(..., min_length=1, max_length=200)
    caption: str = Field("", max_length=10000)
    permalink: str = Field("", max_length=2048)
    timestamp: str = Field("", max_length=64)
    transcript: Optional[str] = Field(None, max_length=100000)
    media: Optional[MediaIn] = None


class CreatorIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    handle: str = Field("", max_length=200)
    platforms: list[str] = []


class VetRequest(BaseModel):
    platform: str
    creator: CreatorIn
    posts: list[PostIn] = Field(default_factory=list, max_length=MAX_POSTS_PER_REQUEST)
    language: str = Field("en", max_length=10)
    custom_keywords: list[str] = Field(default_factory=list, max_length=200)

    @field_validator('platform')
    @classmethod
    def validate_platform(cls, v):
        v = v.strip().lower()
        if not PLATFORM_PATTERN.match(v):
            raise ValueError('Invalid platform name')
        return v

    @field_validator('posts')
    @classmethod
    def validate_unique_ids(cls, v):
        ids = [p.id for p in v]
        if len(ids) != len(set(ids)):
            raise ValueError('Post ids must be unique')
        return v


class KeywordRequest(BaseModel):
    text: str = Field(..., max_length=50000)
    language: str = Field("en", max_length=10)
    custom_keywords: list[str] = Field(default_factory=list, max_length=200)


class KeywordMatchOut(BaseModel):
    keyword: str
    match_type: str
    matched_text: str
    severity: str


class KeywordResponse(BaseModel):
    language: str
    overall_risk: str
    flagged_terms: list[str]
    matches: list[KeywordMatchOut]


class DecisionOut(BaseModel):
    post_id: str
    severity: str
    concerns: list[str]
    reason: str
    category: str


class VettingResultOut(BaseModel):
    decisions: list[DecisionOut]
    overall_risk: str
    summary: str
    recommendation: str
    recommendation_rationale: str
    reported_overall_risk: Optional[str] = None
    dismissed_post_ids: list[str] = []


class FindingOut(BaseModel):
    post_id: str
    title: str
    summary: str
    severity: str
    concerns: list[str]
    reason: str
    category: str
    caption_excerpt: str = ""
    permalink: str = ""
    published_at: str = ""
    media_locators: list[str] = []


class VetResponse(BaseModel):
    platform: str
    handle: str
    result: VettingResultOut
    findings: list[FindingOut]
    post_risk: dict[str, str] = {}
    keyword_flags: dict[str, list[str]] = {}
    media_summary: dict = {}
    screening_summary: dict = {}
    media_analysis: dict[str, Optional[dict]] = {}


def _to_post(post: PostIn) -> SocialPost:
    media = None
    if post.media is not None:
        media = build_media_item(
            item_id=f"{post.id}:media",
            locator=post.media.url,
            content_type=post.media.content_type,
            type_hint=post.media.kind,
        )
    return SocialPost(
        id=post.id,
        caption=post.caption,
        permalink=post.permalink,
        timestamp=post.timestamp,
        transcript=post.transcript,
        media=media,
    )


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "version": APP_VERSION
    }


@app.get("/capabilities")
async def get_capabilities():
    """Which backends are configured"""
    return pipeline.capabilities()


@app.post("/keywords/detect", response_model=KeywordResponse)
async def detect_keywords(request: KeywordRequest):
    """Run the keyword prefilter on a piece of text."""
    detector = pipeline.keyword_detector
    result = detector.detect(request.text, request.language, request.custom_keywords)
    return {
        "language": detector.lexicon.resolve_language(request.language),
        "overall_risk": result.overall_risk,
        "flagged_terms": result.flagged_terms,
        "matches": [asdict(m) for m in result.matches],
    }


@app.post("/vet", response_model=VetResponse)
async def vet_posts(request: VetRequest):
    """
    Vet one creator's posts on one platform.

    Returns the batch verdict, one finding per confirmed risk, and the
    intermediate summaries (keyword flags, media and screening counts).
    """
    creator = CreatorContext(
        name=request.creator.name,
        handle=request.creator.handle,
        platforms=request.creator.platforms,
    )
    posts = [_to_post(p) for p in request.posts]

    try:
        outcome = await pipeline.vet_batch(
            posts,
            creator,
            request.platform,
            language=request.language,
            custom_keywords=request.custom_keywords,
        )
    except Exception as e:
        logger.error(f"Vetting error for {creator.name}: {e}")
        raise HTTPException(status_code=500, detail="Vetting failed. Please try again later.")

    return {
        "platform": outcome.platform,
        "handle": outcome.handle,
        "result": asdict(outcome.result),
        "findings": [asdict(f) for f in outcome.findings],
        "post_risk": outcome.post_risk,
        "keyword_flags": {
            post_id: kw.flagged_terms
            for post_id, kw in outcome.keyword_results.items() if kw.has_matches
        },
        "media_summary": asdict(outcome.media_summary),
        "screening_summary": outcome.screening_summary,
        "media_analysis": {
            post.id: asdict(post.media_analysis) if post.media_analysis else None
            for post in outcome.posts if post.media is not None
        },
    }


if __name__ == "__main__":
    logger.info("Creator Safety Vetting API")
    logger.info("Starting server at http://127.0.0.1:8000")
    logger.info("API docs: http://127.0.0.1:8000/docs")
    # SECURITY: bind to localhost only - never 0.0.0.0 without authentication
    uvicorn.run(app, host="127.0.0.1", port=8000)
