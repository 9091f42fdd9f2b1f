from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict, Field

from readmegen.api.error_schema import ERROR_RESPONSE_SCHEMA
from readmegen.deps import get_provider_token
from readmegen.observability import trace_span
from readmegen.services.github_repos import fetch_repository_file_tree, list_user_repositories, repo_name_from_full_name
from readmegen.services.readme_ai import generate_readme

router = APIRouter(prefix="/github", tags=["github"])
ANALYZE_REQUEST_EXAMPLE = {"repoFullName": "octocat/hello-world"}
README_RESPONSE_EXAMPLE = {"readme": "# hello-world\n\nA small demo project..."}
REPOSITORIES_RESPONSE_EXAMPLE = [
    {
        "id": 1296269,
        "name": "hello-world",
        "full_name": "octocat/hello-world",
        "private": False,
        "description": "My first repository on GitHub!",
        "updated_at": "2026-02-23T13:00:00Z",
    }
]


class RepositorySummary(BaseModel):
    id: int
    name: str
    full_name: str
    private: bool = False
    description: str | None = None
    updated_at: str | None = None


class AnalyzeRepoRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    repo_full_name: str = Field(..., alias="repoFullName", min_length=1, examples=["octocat/hello-world"])


class ReadmeResponse(BaseModel):
    readme: str


@router.get(
    "/repos",
    response_model=list[RepositorySummary],
    summary="List the user's most recently updated repositories",
    responses={
        200: {"content": {"application/json": {"example": REPOSITORIES_RESPONSE_EXAMPLE}}},
        401: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
        502: {
            "description": "GitHub request failed",
            "content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}},
        },
    },
)
def list_repositories(access_token: str = Depends(get_provider_token)) -> list[RepositorySummary]:
    return [RepositorySummary(**repo) for repo in list_user_repositories(access_token)]


@router.post(
    "/analyze",
    response_model=ReadmeResponse,
    summary="Generate a README from the repository file tree",
    responses={
        200: {"content": {"application/json": {"example": README_RESPONSE_EXAMPLE}}},
        400: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
        401: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
        429: {
            "description": "Completion backend or local rate limit exceeded",
            "content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}},
        },
        502: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
        503: {"content": {"application/json": {"schema": ERROR_RESPONSE_SCHEMA}}},
    },
    openapi_extra={
        "requestBody": {
            "content": {
                "application/json": {
                    "example": ANALYZE_REQUEST_EXAMPLE,
                }
            }
        }
    },
)
def analyze_repository(
    payload: AnalyzeRepoRequest,
    access_token: str = Depends(get_provider_token),
) -> ReadmeResponse:
    repo_name = repo_name_from_full_name(payload.repo_full_name)
    with trace_span("github.file_tree", repo=payload.repo_full_name):
        file_tree = fetch_repository_file_tree(access_token, payload.repo_full_name)
    return ReadmeResponse(readme=generate_readme(file_tree, repo_name))
