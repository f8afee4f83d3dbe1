import asyncio
import json
from types import SimpleNamespace

import httpx
import openai
import pytest

from vuln_insight.ai_client import (
    AIClient,
    build_prompt,
    extract_json_object,
    mock_analysis,
    parse_analysis,
    strip_code_fences,
)
from vuln_insight.config import Settings
from vuln_insight.errors import (
    AnalysisTimeoutError,
    MalformedOutputError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimitError,
)
from helpers import SAMPLE_ANALYSIS


def test_strip_json_fence():
    text = "```json\n{\"a\": 1}\n```"
    assert strip_code_fences(text) == '{"a": 1}'


def test_strip_bare_fence():
    assert strip_code_fences("```\n{}\n```\n") == "{}"


def test_unfenced_text_unchanged():
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


def test_extract_first_balanced_object():
    text = 'Here you go: {"a": {"b": 1}} and also {"c": 2}'
    assert extract_json_object(text) == '{"a": {"b": 1}}'


def test_extract_ignores_braces_in_strings():
    text = '{"title": "use } carefully \\" {", "n": 1} trailing'
    assert json.loads(extract_json_object(text)) == {"title": 'use } carefully " {', "n": 1}


def test_extract_without_object_fails():
    with pytest.raises(MalformedOutputError):
        extract_json_object("I could not analyze this file.")


def test_extract_unbalanced_fails():
    with pytest.raises(MalformedOutputError):
        extract_json_object('{"a": {"b": 1}')


def test_parse_fenced_response():
    text = "```json\n" + json.dumps(SAMPLE_ANALYSIS) + "\n```"
    assert parse_analysis(text) == SAMPLE_ANALYSIS


def test_parse_fills_missing_summary_counters():
    text = json.dumps({"summary": {"critical": 2}, "prioritizedIssues": []})
    parsed = parse_analysis(text)
    assert parsed["summary"] == {"critical": 2, "high": 0, "medium": 0, "low": 0, "total": 0}


@pytest.mark.parametrize("text", [
    "",
    "   ",
    "no json here",
    "{not: valid json}",
    json.dumps({"summary": {}}),
    json.dumps({"prioritizedIssues": []}),
    json.dumps({"summary": "lots", "prioritizedIssues": []}),
    json.dumps({"summary": {"critical": "N/A"}, "prioritizedIssues": []}),
    json.dumps({"summary": {"high": 2.5}, "prioritizedIssues": []}),
    json.dumps({"summary": {"low": True}, "prioritizedIssues": []}),
    '{"summary": {"total": 1}, "prioritizedIssues": [{"priorityScore": NaN}]}',
    '{"summary": {"total": Infinity}, "prioritizedIssues": []}',
])
def test_parse_rejects_malformed_output(text):
    with pytest.raises(MalformedOutputError):
        parse_analysis(text)


def test_build_prompt_embeds_columns_counts_and_truncated_sample():
    rows = [{"title": "x" * 50, "severity": "High"} for _ in range(200)]
    prompt = build_prompt(rows[:20], total_rows=200, max_chars=300)
    assert "Columns: title, severity" in prompt
    assert "Data Sample (20 of 200 rows):" in prompt
    sample = prompt.split("rows):\n", 1)[1].split("\n\nReturn JSON ONLY", 1)[0]
    assert len(sample) == 300


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.kwargs = None

    async def create(self, **kwargs):
        self.kwargs = kwargs
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def make_client(settings, **kwargs):
    completions = FakeCompletions(**kwargs)
    fake = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return AIClient(settings, client=fake), completions


def _status_error(cls, status):
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")
    return cls("upstream said no", response=httpx.Response(status, request=request), body=None)


@pytest.fixture
def ai_settings():
    return Settings(openai_api_key="test-key", openai_model="gpt-4o-mini")


def test_analyze_sends_low_temperature_request(ai_settings):
    client, completions = make_client(ai_settings, content=json.dumps(SAMPLE_ANALYSIS))
    result = asyncio.run(client.analyze([{"title": "A"}], 1))
    assert result == SAMPLE_ANALYSIS
    assert completions.kwargs["temperature"] == 0.3
    assert completions.kwargs["max_tokens"] == 4096
    assert completions.kwargs["model"] == "gpt-4o-mini"


def test_analyze_empty_response_is_malformed(ai_settings):
    client, _ = make_client(ai_settings, content=None)
    with pytest.raises(MalformedOutputError):
        asyncio.run(client.analyze([{"title": "A"}], 1))


@pytest.mark.parametrize("error, expected", [
    (_status_error(openai.AuthenticationError, 401), UpstreamAuthError),
    (_status_error(openai.RateLimitError, 429), UpstreamRateLimitError),
    (_status_error(openai.InternalServerError, 500), UpstreamError),
    (openai.APITimeoutError(request=httpx.Request("POST", "https://api.openai.com")), AnalysisTimeoutError),
])
def test_analyze_maps_upstream_errors(ai_settings, error, expected):
    client, _ = make_client(ai_settings, error=error)
    with pytest.raises(expected):
        asyncio.run(client.analyze([{"title": "A"}], 1))


def test_missing_api_key_is_auth_error():
    client = AIClient(Settings(openai_api_key=None, use_mock_openai=False))
    with pytest.raises(UpstreamAuthError):
        asyncio.run(client.analyze([{"title": "A"}], 1))


def test_mock_mode_needs_no_key():
    client = AIClient(Settings(openai_api_key=None, use_mock_openai=True))
    result = asyncio.run(client.analyze([{"title": "A", "severity": "critical"}], 7))
    assert result["summary"]["critical"] == 1
    assert result["summary"]["total"] == 7
    assert result["prioritizedIssues"][0]["severity"] == "Critical"


def test_mock_analysis_orders_by_priority():
    rows = [{"severity": "Low"}, {"severity": "High"}, {"severity": "Critical"}]
    scores = [i["priorityScore"] for i in mock_analysis(rows, 3)["prioritizedIssues"]]
    assert scores == sorted(scores, reverse=True)


def test_parse_coerces_numeric_counters_to_int():
    text = json.dumps({"summary": {"critical": "2", "high": 3.0, "total": 5}, "prioritizedIssues": []})
    summary = parse_analysis(text)["summary"]
    assert summary == {"critical": 2, "high": 3, "medium": 0, "low": 0, "total": 5}
    assert all(type(v) is int for v in summary.values())
