"""
Sparkmatch — Main API Router

Aggregates all sub-routers under a single prefix so that ``sparkmatch.main``
can mount the entire API surface with one ``include_router`` call.
"""

from fastapi import APIRouter

from sparkmatch.api import auth, matches, messages, users

router = APIRouter()

router.include_router(auth.router, prefix="/auth", tags=["Auth"])
router.include_router(users.router, prefix="/users", tags=["Users"])
router.include_router(matches.router, prefix="/matches", tags=["Matches"])
router.include_router(messages.router, prefix="/messages", tags=["Messages"])
