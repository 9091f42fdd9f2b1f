import logging

import httpx

from readmegen.config import settings
from readmegen.errors import (
    CompletionError,
    GenerationFailedError,
    InvalidCredentialsError,
    RateLimitedError,
    RefinementFailedError,
)
from readmegen.observability import record_completion, trace_span


logger = logging.getLogger("readmegen.readme_ai")

GENERATION_SYSTEM_PROMPT = """
You are an expert software developer and technical writer. Your task is to generate a clean, professional, and beginner-friendly GitHub README.md in GitHub Flavored Markdown, based solely on the provided file structure.

The README must include these key sections:

1. **Project Title & Description** - A clear title and a two sentence description.
2. **Table of Contents** - Organized and clickable.
3. **About The Project** - What the project does, why it exists, the problem it solves, and its features.
4. **Tech Stack** - The main technologies, frameworks, and tools used, listed in a structured manner.
5. **Getting Started**
   - Prerequisites
   - Installation steps
   - Running locally
6. **Contact / Support** - How users can reach the maintainers.

Keep the tone professional, concise, and clear. Use proper Markdown formatting with headings, lists, and code blocks. Do not include logos, images, or badges. Return only the README content.
"""

REFINEMENT_SYSTEM_PROMPT = (
    "You are an expert README editor. Your task is to modify the provided README content based on the user's request. "
    "Respond ONLY with the full, updated README.md content. "
    'Do not add any of your own commentary like "Here is the updated README".'
)


def build_generation_messages(file_tree: list[str], repo_name: str) -> list[dict]:
    tree_listing = "\n".join(file_tree)
    user_prompt = (
        f'Generate a professional README.md for a project named "{repo_name}", using the file structure below:\n\n'
        f"```\n{tree_listing}\n```\n\n"
        "Follow the structure and guidelines from the system prompt. "
        "Do not add any commentary outside the README content."
    )
    return [
        {"role": "system", "content": GENERATION_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def build_refinement_messages(current_readme: str, user_request: str) -> list[dict]:
    user_prompt = (
        "Here is the current README.md:\n"
        "---\n"
        f"{current_readme}\n"
        "---\n\n"
        f'Now, please apply the following change: "{user_request}".\n\n'
        "Remember to return the complete, updated README file."
    )
    return [
        {"role": "system", "content": REFINEMENT_SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


def _request_completion(
    messages: list[dict],
    *,
    operation: str,
    failure: type[CompletionError],
    temperature: float | None = None,
) -> str:
    url = f"{str(settings.llm_base_url).rstrip('/')}/chat/completions"
    headers = {
        "Authorization": f"Bearer {settings.groq_api_key}",
        "Content-Type": "application/json",
    }
    body: dict = {
        "model": settings.llm_model,
        "messages": messages,
        "max_tokens": settings.llm_max_tokens,
    }
    if temperature is not None:
        body["temperature"] = temperature

    try:
        with httpx.Client(timeout=settings.llm_timeout_seconds) as client:
            response = client.post(url, headers=headers, json=body)
    except httpx.HTTPError as exc:
        logger.warning("completion transport error operation=%s error=%s", operation, type(exc).__name__)
        record_completion(operation, "transport_error")
        raise failure() from exc

    if response.status_code == 429:
        record_completion(operation, "rate_limited")
        raise RateLimitedError()
    if response.status_code == 401:
        record_completion(operation, "invalid_credentials")
        raise InvalidCredentialsError()
    if response.status_code != 200:
        logger.warning("completion failed operation=%s status=%s", operation, response.status_code)
        record_completion(operation, "upstream_error")
        raise failure()

    try:
        content = response.json()["choices"][0]["message"]["content"]
    except (ValueError, KeyError, IndexError, TypeError) as exc:
        record_completion(operation, "invalid_payload")
        raise failure() from exc
    if not isinstance(content, str):
        record_completion(operation, "invalid_payload")
        raise failure()

    record_completion(operation, "ok")
    return content


def generate_readme(file_tree: list[str], repo_name: str) -> str:
    """Ask the completion backend for a README describing ``repo_name``.

    The completion text is returned verbatim. Repeated calls are independent
    and may produce different documents.
    """
    logger.info("generating readme repo=%s files=%s", repo_name, len(file_tree))
    with trace_span("ai.generate", repo=repo_name, files=len(file_tree)):
        return _request_completion(
            build_generation_messages(file_tree, repo_name),
            operation="generate",
            failure=GenerationFailedError,
            temperature=settings.llm_temperature,
        )


def refine_readme(current_readme: str, user_request: str) -> str:
    """Return a full replacement for ``current_readme`` with ``user_request`` applied."""
    logger.info("refining readme chars=%s", len(current_readme))
    with trace_span("ai.refine", chars=len(current_readme)):
        return _request_completion(
            build_refinement_messages(current_readme, user_request),
            operation="refine",
            failure=RefinementFailedError,
        )
