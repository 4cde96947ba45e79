from dataclasses import dataclass
from logging import getLogger
from typing import Optional

import requests

from pplx_search.config import Settings, mask_api_key
from pplx_search.errors import EmptyResponse
from pplx_search.schemas import SYSTEM_PROMPT, ChatMessage, ChatRequest

logger = getLogger(__name__)


@dataclass
class ApiResult:
    status_code: int
    reason: str
    headers: dict[str, str]
    body: str
    trace: Optional[str] = None

    def format_http(self) -> str:
        """Render the response the way it came over the wire: status, headers, body."""
        lines = [f"HTTP/1.1 {self.status_code} {self.reason}".rstrip()]
        lines.extend(f"{name}: {value}" for name, value in self.headers.items())
        lines.append("")
        lines.append(self.body)
        return "\n".join(lines)


def build_chat_request(query: str, model: str) -> ChatRequest:
    return ChatRequest(
        model=model,
        messages=[
            ChatMessage(role="system", content=SYSTEM_PROMPT),
            ChatMessage(role="user", content=query),
        ],
    )


def build_payload(query: str, model: str) -> str:
    return build_chat_request(query, model).model_dump_json(indent=2)


def request_headers(api_key: str) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def format_trace(response: requests.Response) -> str:
    request = response.request
    lines = [f"> {request.method} {request.url}"]
    for name, value in request.headers.items():
        if name.lower() == "authorization":
            scheme, _, token = value.partition(" ")
            value = f"{scheme} {mask_api_key(token)}"
        lines.append(f"> {name}: {value}")
    lines.append(">")
    lines.append(f"< HTTP/1.1 {response.status_code} {response.reason or ''}".rstrip())
    for name, value in response.headers.items():
        lines.append(f"< {name}: {value}")
    lines.append("<")
    return "\n".join(lines)


def send_chat_request(
    payload: str, api_key: str, settings: Settings, verbose: bool = False
) -> ApiResult:
    """
    POST a chat-completion payload to the API once. The call is bounded by
    the configured timeout and is never retried.
    """
    logger.debug(f"POST {settings.api_url} (timeout={settings.timeout}s)")
    try:
        response = requests.post(
            settings.api_url,
            data=payload.encode("utf-8"),
            headers=request_headers(api_key),
            timeout=settings.timeout,
        )
    except requests.RequestException as e:
        logger.error(f"Request to {settings.api_url} failed: {e}")
        raise EmptyResponse(
            f"Empty response from API ({e.__class__.__name__}). "
            "Please check your internet connection."
        ) from e

    logger.debug(f"Received HTTP {response.status_code} ({len(response.content)} bytes)")
    return ApiResult(
        status_code=response.status_code,
        reason=response.reason or "",
        headers=dict(response.headers),
        body=response.text,
        trace=format_trace(response) if verbose else None,
    )
