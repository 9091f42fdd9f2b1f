from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from readmegen.api.error_schema import ERROR_RESPONSE_SCHEMA
from readmegen.api.github import ReadmeResponse
from readmegen.deps import get_current_user
from readmegen.services.readme_ai import refine_readme
from readmegen.services.users import UserView

router = APIRouter(prefix="/ai", tags=["ai"])
REFINE_REQUEST_EXAMPLE = {
    "currentReadme": "# hello-world\n\nA small demo project.",
    "userRequest": "Add a License section for MIT.",
}


class RefineReadmeRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_readme: str = Field(..., alias="currentReadme", min_length=1)
    user_request: str = Field(..., alias="userRequest")


@router.post(
    "/refine",
    response_model=ReadmeResponse,
    summary="Apply a natural-language change to a README",
    description="Returns a complete replacement document; nothing is stored server-side.",
    responses={
        401: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
        429: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
        502: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
        503: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
    },
    openapi_extra={
        "requestBody": {
            "content": {
                "application/json": {
                    "example": REFINE_REQUEST_EXAMPLE,
                }
            }
        }
    },
)
def refine(payload: RefineReadmeRequest, current_user: UserView = Depends(get_current_user)) -> ReadmeResponse:
    _ = current_user
    return ReadmeResponse(readme=refine_readme(payload.current_readme, payload.user_request))
