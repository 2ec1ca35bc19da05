"""
hackjudge/routes/__init__.py
Route registration
"""
from fastapi import APIRouter

from hackjudge.routes import judging, leaderboard, live, reviews, rubrics

router = APIRouter()

router.include_router(rubrics.router)
router.include_router(judging.router)
router.include_router(leaderboard.router)
router.include_router(reviews.router)
router.include_router(live.router)
