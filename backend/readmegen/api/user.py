from fastapi import APIRouter, Depends

from readmegen.api.error_schema import ERROR_RESPONSE_SCHEMA
from readmegen.deps import get_current_user
from readmegen.services.users import UserView

router = APIRouter(prefix="/user", tags=["user"])
PROFILE_RESPONSE_EXAMPLE = {
    "id": "d7a2ca6c-f9d1-42ce-9de0-35e0dbdc47dc",
    "github_id": "42",
    "username": "octocat",
    "avatar_url": "https://avatars.githubusercontent.com/u/1?v=4",
    "created_at": "2026-02-23T13:00:00Z",
    "updated_at": "2026-02-23T13:00:00Z",
}


@router.get(
    "/profile",
    response_model=UserView,
    summary="Fetch the signed-in user's profile",
    responses={
        200: {"content": {"application/json": {"example": PROFILE_RESPONSE_EXAMPLE}}},
        401: {
            "description": "Missing, invalid or expired session",
            "content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}},
        },
    },
)
def user_profile(current_user: UserView = Depends(get_current_user)) -> UserView:
    return current_user
