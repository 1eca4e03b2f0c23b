from fastapi import APIRouter

from .routes import boards, guestbook, health, missions, participation

api_router = APIRouter()

api_router.include_router(health.router, tags=["health"])
api_router.include_router(boards.router, prefix="/boards", tags=["boards"])
api_router.include_router(missions.router, prefix="/boards", tags=["missions"])
api_router.include_router(guestbook.router, prefix="/boards", tags=["guestbook"])
api_router.include_router(participation.router, prefix="/participation", tags=["participation"])
api_router.include_router(participation.activities_router, prefix="/activities", tags=["participation"])
