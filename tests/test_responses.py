import json

import pytest

from conftest import NO_SOURCES_BODY, SUCCESS_BODY
from pplx_search.client import ApiResult
from pplx_search.errors import (
    ApiError,
    AuthenticationFailed,
    EmptyResponse,
    MalformedJson,
    UnexpectedHtml,
    UnexpectedResponse,
)
from pplx_search.responses import (
    NO_CONTENT,
    classify_response,
    extract_content,
    fallback_extract,
)


def result(body, status_code=200):
    return ApiResult(status_code=status_code, reason="", headers={}, body=body)


@pytest.mark.parametrize("body", [SUCCESS_BODY, NO_SOURCES_BODY, '{"choices": []}'])
def test_classify_success(body):
    assert classify_response(result(body)) is None


def test_classify_success_regardless_of_size():
    answer = "word " * 50000
    body = json.dumps({"choices": [{"message": {"content": answer}}]})

    assert classify_response(result(body)) is None


def test_classify_success_with_message_fields():
    body = json.dumps(
        {"choices": [{"message": {"content": "ok", "role": "assistant"}}], "message": "noise"}
    )

    assert classify_response(result(body)) is None


@pytest.mark.parametrize("body", ["", "   \n"])
def test_classify_empty_first(body):
    with pytest.raises(EmptyResponse):
        classify_response(result(body, status_code=401))


def test_classify_auth_marker_beats_choices():
    body = '401 Authorization Required {"choices": [{"message": {"content": "x"}}]}'

    with pytest.raises(AuthenticationFailed):
        classify_response(result(body))


def test_classify_auth_status_code():
    with pytest.raises(AuthenticationFailed):
        classify_response(result('{"error": {"message": "bad key"}}', status_code=401))


def test_classify_api_error_echoes_body():
    body = '{"error":{"message":"rate limited"}}'

    with pytest.raises(ApiError) as excinfo:
        classify_response(result(body, status_code=429))

    assert excinfo.value.body == body
    assert body in str(excinfo.value)
    assert excinfo.value.exit_code == 1


def test_classify_error_with_choices_is_success():
    body = json.dumps({"error": None, "choices": [{"message": {"content": "ok"}}]})

    assert classify_response(result(body)) is None


def test_classify_html_preview():
    body = "\n".join(
        ["<HTML>", "<head><title>502 Bad Gateway</title></head>", "<body>", "<h1>502</h1>", "<hr>", "nginx", "</body>"]
    )

    with pytest.raises(UnexpectedHtml) as excinfo:
        classify_response(result(body, status_code=502))

    assert excinfo.value.preview.splitlines() == body.splitlines()[:5]
    assert "nginx" not in excinfo.value.preview


def test_extract_content_with_sources():
    extraction = extract_content(SUCCESS_BODY)

    assert extraction.answer == "Paris is the capital of France."
    assert extraction.has_sources
    assert not extraction.degraded
    assert [(c.title, c.url) for c in extraction.citations] == [
        ("France - Wikipedia", "https://en.wikipedia.org/wiki/France"),
        ("Paris", "https://example.com/paris"),
    ]


def test_extract_content_without_sources():
    extraction = extract_content(NO_SOURCES_BODY)

    assert extraction.answer == "Paris is the capital."
    assert extraction.citations == []
    assert not extraction.has_sources


@pytest.mark.parametrize(
    "body",
    [
        '{"choices": []}',
        '{"choices": [{"message": {"content": null}}]}',
        '{"choices": [{}]}',
    ],
)
def test_extract_content_placeholder(body):
    assert extract_content(body).answer == NO_CONTENT


def test_extract_content_null_citation_fields():
    body = json.dumps(
        {
            "choices": [
                {
                    "message": {
                        "content": "ok",
                        "metadata": {"web_search_results": [{"title": None, "url": "https://a.test"}]},
                    }
                }
            ]
        }
    )

    extraction = extract_content(body)

    assert extraction.citations[0].title == ""
    assert extraction.citations[0].url == "https://a.test"


def test_extract_content_fallback():
    body = 'garbage {"choices":[{"message":{"content":"He said \\"hi\\"\\nthen left"'

    extraction = extract_content(body)

    assert extraction.degraded
    assert extraction.answer == 'He said "hi"\nthen left'
    assert extraction.citations == []
    assert not extraction.has_sources


def test_extract_content_strict_raises():
    with pytest.raises(MalformedJson):
        extract_content('{"choices": [', strict=True)


def test_fallback_extract_without_content():
    extraction = fallback_extract("nothing to see")

    assert extraction.answer == NO_CONTENT
    assert extraction.degraded


def test_classify_answer_mentioning_html_is_success():
    body = json.dumps({"choices": [{"message": {"content": "Put scripts before </body> or use <html lang>."}}]})

    assert classify_response(result(body)) is None


@pytest.mark.parametrize("body,status_code", [('{"detail": "Not Found"}', 404), ("[]", 200), ('"ok"', 502)])
def test_classify_json_without_choices(body, status_code):
    with pytest.raises(UnexpectedResponse) as excinfo:
        classify_response(result(body, status_code=status_code))

    assert excinfo.value.body == body
    assert excinfo.value.exit_code == 1


def test_extract_content_numeric_fields_strict():
    body = json.dumps(
        {
            "choices": [
                {
                    "message": {
                        "content": 42,
                        "metadata": {"web_search_results": [{"title": 5, "url": "https://a.test"}]},
                    }
                }
            ]
        }
    )

    extraction = extract_content(body, strict=True)

    assert extraction.answer == "42"
    assert [(c.title, c.url) for c in extraction.citations] == [("5", "https://a.test")]


def test_extract_content_schema_mismatch():
    body = '{"choices": {"message": {"content": "not a list"}}}'

    with pytest.raises(UnexpectedResponse):
        extract_content(body, strict=True)

    extraction = extract_content(body)
    assert extraction.degraded
    assert extraction.answer == "not a list"
