from fastapi import APIRouter

from readmegen.api.ai import router as ai_router
from readmegen.api.auth import router as auth_router
from readmegen.api.github import router as github_router
from readmegen.api.user import router as user_router

api_router = APIRouter()
api_router.include_router(auth_router)
api_router.include_router(user_router)
api_router.include_router(github_router)
api_router.include_router(ai_router)
