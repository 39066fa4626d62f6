"""
Matchbox — Main API Router

Aggregates all sub-routers under a single prefix so that ``matchbox.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from matchbox.api import events, matches, messages, notifications, profiles, swipes

router = APIRouter()

router.include_router(swipes.router, prefix="/swipes", tags=["Matching"])
router.include_router(profiles.router, prefix="/profiles", tags=["Profiles"])
router.include_router(matches.router, prefix="/matches", tags=["Conversations"])
router.include_router(messages.router, prefix="/messages", tags=["Conversations"])
router.include_router(notifications.router, prefix="/notifications", tags=["Notifications"])
router.include_router(events.router, prefix="/events", tags=["Live events"])
