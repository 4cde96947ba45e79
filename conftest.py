import json
from unittest.mock import MagicMock, patch

import pytest

from pplx_search.config import Settings, save_api_key

TEST_API_KEY = "pplx-test-key-0123456789"
TEST_API_URL = "https://api.test/chat/completions"

SUCCESS_BODY = json.dumps(
    {
        "id": "abc123",
        "model": "sonar",
        "choices": [
            {
                "index": 0,
                "message": {
                    "role": "assistant",
                    "content": "Paris is the capital of France.",
                    "metadata": {
                        "web_search_results": [
                            {"title": "France - Wikipedia", "url": "https://en.wikipedia.org/wiki/France"},
                            {"title": "Paris", "url": "https://example.com/paris"},
                        ]
                    },
                },
            }
        ],
    }
)

NO_SOURCES_BODY = json.dumps(
    {"choices": [{"message": {"content": "Paris is the capital."}}]}
)


@pytest.fixture
def settings(tmp_path):
    """Settings pointing at a throwaway credential file and a fake endpoint."""
    return Settings(
        config_file=tmp_path / "pplx_search.conf",
        api_url=TEST_API_URL,
        default_model="sonar",
        timeout=5.0,
    )


@pytest.fixture
def configured_settings(settings):
    save_api_key(settings.config_file, TEST_API_KEY)
    return settings


def make_response(body="", status_code=200, reason="OK", headers=None):
    response = MagicMock()
    response.status_code = status_code
    response.reason = reason
    response.text = body
    response.content = body.encode("utf-8")
    response.headers = {"Content-Type": "application/json", **(headers or {})}
    response.request = MagicMock()
    response.request.method = "POST"
    response.request.url = TEST_API_URL
    response.request.headers = {
        "Authorization": f"Bearer {TEST_API_KEY}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }
    return response


@pytest.fixture
def mock_post():
    """Patch requests.post as used by the client module."""
    with patch("pplx_search.client.requests.post") as post:
        post.return_value = make_response(SUCCESS_BODY)
        yield post
