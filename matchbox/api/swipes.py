"""
Matchbox — Swipes API

Generic swipe intake.  ``/profiles/{id}/like`` and ``/profiles/{id}/skip``
are shortcuts onto the same engine call.
"""

from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, status

from matchbox.api.deps import get_current_user_id, get_match_engine
from matchbox.models.match import Match
from matchbox.schemas.match import MatchResponse, SwipeCreate, SwipeResponse
from matchbox.services.match_engine import MatchEngine

logger = structlog.get_logger("matchbox.api.swipes")

router = APIRouter()


def swipe_response(is_like: bool, match: Match | None) -> SwipeResponse:
    if match is not None:
        return SwipeResponse(
            status="It's a match!",
            is_mutual_match=True,
            match=MatchResponse.model_validate(match),
        )
    return SwipeResponse(
        status="Like recorded" if is_like else "Skip recorded",
        is_mutual_match=False,
    )


# ──────────────────────────────────────────────────────────────────────────────
# POST / — Record a like or skip
# ──────────────────────────────────────────────────────────────────────────────

@router.post(
    "",
    response_model=SwipeResponse,
    status_code=status.HTTP_200_OK,
    summary="Record a swipe decision",
)
async def create_swipe(
    payload: SwipeCreate,
    user_id: str = Depends(get_current_user_id),
    engine: MatchEngine = Depends(get_match_engine),
) -> SwipeResponse:
    """Record a like or skip on a profile.

    A like that completes a mutual like returns the pair's match.
    Re-sending a decision overwrites the previous one.
    """
    logger.info("create_swipe", user_id=user_id, profile_id=payload.profile_id)
    match = await engine.record_swipe(
        user_id, payload.profile_id, payload.is_like, payload.message
    )
    return swipe_response(payload.is_like, match)
