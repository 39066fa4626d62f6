"""
Matchbox — Profiles API

Discovery listing, profile lookup and the like / skip shortcuts.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, Query, status

from matchbox.api.deps import get_current_user_id, get_match_engine, get_profile_directory
from matchbox.api.swipes import swipe_response
from matchbox.config import get_settings
from matchbox.schemas.match import LikeCreate, SwipeResponse
from matchbox.schemas.profile import ProfileResponse
from matchbox.services.match_engine import MatchEngine
from matchbox.services.profile_directory import ProfileDirectory

logger = structlog.get_logger("matchbox.api.profiles")

router = APIRouter()


# ──────────────────────────────────────────────────────────────────────────────
# GET /discover — Profiles not yet swiped on
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/discover",
    response_model=list[ProfileResponse],
    summary="Get discovery feed candidates",
)
async def discover_profiles(
    limit: int = Query(20, ge=1, description="Max candidates to return"),
    offset: int = Query(0, ge=0, description="Number of candidates to skip"),
    user_id: str = Depends(get_current_user_id),
    directory: ProfileDirectory = Depends(get_profile_directory),
) -> list[ProfileResponse]:
    """Return profiles of other users that the caller has not swiped on yet."""
    limit = min(limit, get_settings().DISCOVER_PAGE_MAX)
    profiles = await directory.list_discoverable(user_id, limit=limit, offset=offset)
    return [ProfileResponse.model_validate(p) for p in profiles]


# ──────────────────────────────────────────────────────────────────────────────
# GET /{profile_id} — Profile lookup
# ──────────────────────────────────────────────────────────────────────────────

@router.get(
    "/{profile_id}",
    response_model=ProfileResponse,
    summary="Get profile by ID",
)
async def get_profile(
    profile_id: str,
    directory: ProfileDirectory = Depends(get_profile_directory),
) -> ProfileResponse:
    profile = await directory.get_profile(profile_id)
    if profile is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Profile {profile_id} not found.",
        )
    return ProfileResponse.model_validate(profile)


# ──────────────────────────────────────────────────────────────────────────────
# POST /{profile_id}/like and /{profile_id}/skip
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "/{profile_id}/like",
    response_model=SwipeResponse,
    summary="Like a profile",
)
async def like_profile(
    profile_id: str,
    payload: Optional[LikeCreate] = Body(None),
    user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> SwipeResponse:
    message = payload.message if payload is not None else None
    logger.info("like_profile", user_id=user_id, profile_id=profile_id)
    match = await engine.like(user_id, profile_id, message)
    return swipe_response(True, match)


@router.post(
    "/{profile_id}/skip",
    response_model=SwipeResponse,
    summary="Skip a profile",
)
async def skip_profile(
    profile_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> SwipeResponse:
    logger.info("skip_profile", user_id=user_id, profile_id=profile_id)
    await engine.skip(user_id, profile_id)
    return swipe_response(False, None)
