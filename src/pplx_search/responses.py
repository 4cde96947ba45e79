"""
Classification of raw API responses and extraction of the answer and its
sources.

Classification works on the response text before any structured parsing, since
gateway and infrastructure failures come back as HTML or plain text rather than
JSON.
"""
import json
import re
from dataclasses import dataclass, field
from logging import getLogger
from typing import Any, List, Optional

from pydantic import ValidationError

from pplx_search.client import ApiResult
from pplx_search.errors import (
    ApiError,
    AuthenticationFailed,
    EmptyResponse,
    MalformedJson,
    UnexpectedHtml,
    UnexpectedResponse,
)
from pplx_search.schemas import ChatResponse, Citation

logger = getLogger(__name__)

AUTH_FAILURE_MARKER = "401 Authorization Required"
HTML_PATTERN = re.compile(r"<html|<body", re.IGNORECASE)
CONTENT_PATTERN = re.compile(r'"content"\s*:\s*"((?:[^"\\]|\\.)*)"')

NO_CONTENT = "No content found"
HTML_PREVIEW_LINES = 5


@dataclass
class Extraction:
    answer: str
    citations: List[Citation] = field(default_factory=list)
    # True when the response carried a web_search_results field, even an empty one
    has_sources: bool = False
    # True when the answer came from pattern matching instead of a parsed body
    degraded: bool = False


def _load_json(body: str) -> Optional[Any]:
    try:
        return json.loads(body)
    except ValueError:
        return None


def classify_response(result: ApiResult) -> None:
    """
    Raise the error matching a failed response, or return if the response
    looks like a successful completion. Checks run in a fixed order and the
    first match wins.
    """
    body = result.body

    if not body.strip():
        raise EmptyResponse()

    if result.status_code == 401 or AUTH_FAILURE_MARKER in body:
        raise AuthenticationFailed()

    # Only a top-level "error" object counts; a "message" key appears inside
    # every successful choice.
    data = _load_json(body)
    if isinstance(data, dict) and "error" in data and "choices" not in data:
        raise ApiError(body)

    completion = isinstance(data, dict) and "choices" in data
    if not completion and HTML_PATTERN.search(body):
        preview = "\n".join(body.splitlines()[:HTML_PREVIEW_LINES])
        raise UnexpectedHtml(preview)

    # Parsed JSON that is neither an error nor a completion, e.g. a gateway 404
    if data is not None and not completion and '"choices"' not in body:
        raise UnexpectedResponse(body)

    logger.debug(f"Response classified as success (HTTP {result.status_code})")


def parse_chat_response(body: str) -> ChatResponse:
    try:
        data = json.loads(body)
    except ValueError as e:
        raise MalformedJson(f"Invalid JSON response from API: {e}") from e
    try:
        return ChatResponse.model_validate(data)
    except ValidationError as e:
        raise UnexpectedResponse(body) from e


def fallback_extract(body: str) -> Extraction:
    """Pull the first "content" string out of an unparseable body."""
    match = CONTENT_PATTERN.search(body)
    if match is None:
        return Extraction(answer=NO_CONTENT, degraded=True)
    try:
        answer = json.loads(f'"{match.group(1)}"')
    except ValueError:
        answer = match.group(1)
    return Extraction(answer=answer, degraded=True)


def extract_content(body: str, strict: bool = False) -> Extraction:
    """
    Extract the answer and citations from a successful response body.

    In strict mode a body that cannot be parsed raises MalformedJson, and one
    that parses but does not fit the completion schema raises
    UnexpectedResponse. Otherwise the answer is recovered by pattern matching
    and the result is flagged as degraded, without citations.
    """
    try:
        response = parse_chat_response(body)
    except (MalformedJson, UnexpectedResponse):
        if strict:
            raise
        logger.warning("Could not parse response body, falling back to pattern extraction")
        return fallback_extract(body)

    message = response.choices[0].message if response.choices else None
    if message is None:
        return Extraction(answer=NO_CONTENT)

    answer = message.content if message.content is not None else NO_CONTENT

    results = message.metadata.web_search_results if message.metadata else None
    if results is None:
        return Extraction(answer=answer)

    citations = [Citation(title=c.title or "", url=c.url or "") for c in results]
    return Extraction(answer=answer, citations=citations, has_sources=True)
