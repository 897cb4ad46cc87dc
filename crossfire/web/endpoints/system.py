"""System health and leaderboard endpoints."""

import logging

from fastapi import APIRouter, Depends, Query

from crossfire.web.dependencies import Services, get_services
from crossfire.web.schemas import LeaderboardEntrySchema, LeaderboardResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Health check endpoint to verify API is running."""
    return {"isAlive": True, "provider": services.provider.provider_name}


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    limit: int = Query(default=20, ge=1, le=100),
    services: Services = Depends(get_services),
):
    """Registered participants ranked by points."""
    entries = services.leaderboard.standings(limit)
    return LeaderboardResponse(entries=[LeaderboardEntrySchema.from_entry(e) for e in entries])
