import logging
import re
from urllib.parse import quote

import httpx

from readmegen.config import settings
from readmegen.errors import InvalidRepositoryNameError, UpstreamRepoError


logger = logging.getLogger("readmegen.github_repos")

GITHUB_API_BASE = "https://api.github.com"
REPO_LIST_LIMIT = 20
REPO_FULL_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+/[A-Za-z0-9_.-]+$")
REPOSITORY_SUMMARY_FIELDS = ("id", "name", "full_name", "private", "description", "updated_at")


def _headers(access_token: str) -> dict:
    return {
        "Accept": "application/vnd.github+json",
        "Authorization": f"Bearer {access_token}",
        "X-GitHub-Api-Version": "2022-11-28",
    }


def _get_json(client: httpx.Client, url: str, access_token: str, failure: str, params: dict | None = None):
    try:
        response = client.get(url, headers=_headers(access_token), params=params)
    except httpx.HTTPError as exc:
        logger.warning("github request transport error url=%s error=%s", url, type(exc).__name__)
        raise UpstreamRepoError(failure) from exc

    if not 200 <= response.status_code < 300:
        logger.warning("github request failed url=%s status=%s", url, response.status_code)
        raise UpstreamRepoError(failure, details={"status": response.status_code})

    try:
        return response.json()
    except ValueError as exc:
        raise UpstreamRepoError(failure) from exc


def repo_name_from_full_name(repo_full_name: str) -> str:
    if not REPO_FULL_NAME_PATTERN.match(repo_full_name or ""):
        raise InvalidRepositoryNameError()
    return repo_full_name.split("/", 1)[1]


def list_user_repositories(access_token: str) -> list[dict]:
    """Return up to 20 of the user's repositories, most recently updated first."""
    with httpx.Client(timeout=settings.github_timeout_seconds) as client:
        repos = _get_json(
            client,
            f"{GITHUB_API_BASE}/user/repos",
            access_token,
            "Failed to fetch repositories from GitHub.",
            params={"sort": "updated", "per_page": REPO_LIST_LIMIT},
        )

    if not isinstance(repos, list):
        raise UpstreamRepoError("Failed to fetch repositories from GitHub.")

    return [{field: repo.get(field) for field in REPOSITORY_SUMMARY_FIELDS} for repo in repos if isinstance(repo, dict)]


def fetch_repository_file_tree(access_token: str, repo_full_name: str) -> list[str]:
    """List every path in the head commit of the repository's default branch.

    Resolution is repo -> default branch -> head commit -> recursive tree; each
    step needs the previous response, and any failure stops the chain. An
    empty repository has no branch to resolve and fails rather than yielding
    an empty list.
    """
    repo_name_from_full_name(repo_full_name)
    repo_api = f"{GITHUB_API_BASE}/repos/{repo_full_name}"

    with httpx.Client(timeout=settings.github_timeout_seconds) as client:
        repo_data = _get_json(client, repo_api, access_token, "Failed to fetch repository metadata")
        default_branch = repo_data.get("default_branch") if isinstance(repo_data, dict) else None
        if not default_branch:
            raise UpstreamRepoError("Repository default branch missing")

        branch_data = _get_json(
            client,
            f"{repo_api}/branches/{quote(default_branch, safe='')}",
            access_token,
            "Failed to resolve repository head commit",
        )
        commit_sha = (branch_data.get("commit") or {}).get("sha") if isinstance(branch_data, dict) else None
        if not commit_sha:
            raise UpstreamRepoError("Repository head commit SHA missing")

        tree_data = _get_json(
            client,
            f"{repo_api}/git/trees/{commit_sha}",
            access_token,
            "Failed to fetch repository tree",
            params={"recursive": "1"},
        )

    entries = tree_data.get("tree") if isinstance(tree_data, dict) else None
    if not isinstance(entries, list):
        raise UpstreamRepoError("Repository tree payload invalid")
    if tree_data.get("truncated"):
        logger.warning("github tree truncated repo=%s entries=%s", repo_full_name, len(entries))

    return [entry["path"] for entry in entries if isinstance(entry, dict) and entry.get("path")]
