import json
import re
from typing import Any, Dict, List, Optional

import openai
from openai import AsyncOpenAI

from .config import Settings, get_settings
from .errors import (
    AnalysisTimeoutError,
    MalformedOutputError,
    UpstreamAuthError,
    UpstreamError,
    UpstreamRateLimitError,
)
from .utils.logging import get_logger

log = get_logger(__name__)

SYSTEM_PROMPT = "You are a DevSecOps expert. You triage vulnerability scan results and answer with JSON only."

PROMPT_TEMPLATE = """You are a DevSecOps expert. Analyze this security scan and return JSON ONLY.

Columns: {columns}

Data Sample ({sample_size} of {total_rows} rows):
{sample}

Return JSON ONLY (no markdown):
{{
  "summary": {{ "critical": <count>, "high": <count>, "medium": <count>, "low": <count>, "total": <count> }},
  "insights": "<1-2 sentence summary>",
  "prioritizedIssues": [
    {{
      "id": "<unique_id>",
      "title": "<vuln_name>",
      "severity": "<Critical|High|Medium|Low>",
      "package": "<component>",
      "cve": "<CVE if available>",
      "priorityScore": <1-10>,
      "aiExplanation": "<concise impact>",
      "remediation": "<fix>",
      "falsePositiveRisk": "<Low|Medium|High>",
      "affectedFiles": ["<location>"]
    }}
  ],
  "recommendations": ["<rec1>", "<rec2>", "<rec3>"]
}}

Return top 15-30 critical issues. Be concise.
"""

SUMMARY_KEYS = ["critical", "high", "medium", "low", "total"]

_FENCE_OPEN = re.compile(r"^```(?:json)?[ \t]*\n?", re.I)
_FENCE_CLOSE = re.compile(r"\n?```\s*$")


def build_prompt(rows: List[Dict[str, Any]], total_rows: int, max_chars: int = 3000) -> str:
    columns = ", ".join(str(c) for c in (rows[0].keys() if rows else []))
    sample = json.dumps(rows, indent=2, default=str)[:max_chars]
    return PROMPT_TEMPLATE.format(columns=columns, sample_size=len(rows), total_rows=total_rows, sample=sample)


def strip_code_fences(text: str) -> str:
    t = (text or "").strip()
    if t.startswith("```"):
        t = _FENCE_OPEN.sub("", t, count=1)
        t = _FENCE_CLOSE.sub("", t)
    return t.strip()


def extract_json_object(text: str) -> str:
    """Return the first balanced ``{...}`` span, ignoring braces inside JSON strings."""
    start = text.find("{")
    if start == -1:
        raise MalformedOutputError("No valid JSON from AI")
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    raise MalformedOutputError("No valid JSON from AI")


def parse_analysis(text: str) -> Dict[str, Any]:
    if not text or not text.strip():
        raise MalformedOutputError("Empty response from AI")
    span = extract_json_object(strip_code_fences(text))
    try:
        parsed = json.loads(span, parse_constant=_reject_constant)
    except ValueError as e:
        raise MalformedOutputError(f"Invalid JSON from AI: {e}")
    if not isinstance(parsed.get("summary"), dict) or not isinstance(parsed.get("prioritizedIssues"), list):
        raise MalformedOutputError("Invalid JSON structure from AI")
    summary = parsed["summary"]
    for key in SUMMARY_KEYS:
        value = summary.get(key)
        if value is None:
            summary[key] = 0
            continue
        try:
            summary[key] = as_count(value)
        except (TypeError, ValueError, OverflowError):
            raise MalformedOutputError(f"Invalid summary counter {key}={value!r} from AI")
    return parsed


def as_count(value) -> int:
    if isinstance(value, bool):
        raise TypeError("boolean is not a count")
    if isinstance(value, float) and not value.is_integer():
        raise ValueError(f"non-integral count {value}")
    return int(value)


def _reject_constant(name):
    # NaN, Infinity and -Infinity cannot be served back as JSON
    raise ValueError(f"non-finite number {name}")


class AIClient:
    def __init__(self, settings: Optional[Settings] = None, client: Optional[AsyncOpenAI] = None):
        self.settings = settings or get_settings()
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.settings.openai_api_key:
                raise UpstreamAuthError("OPENAI_API_KEY is not configured")
            self._client = AsyncOpenAI(api_key=self.settings.openai_api_key)
        return self._client

    async def analyze(self, rows: List[Dict[str, Any]], total_rows: int) -> Dict[str, Any]:
        if self.settings.use_mock_openai:
            return mock_analysis(rows, total_rows)

        client = self._get_client()
        prompt = build_prompt(rows, total_rows, self.settings.prompt_sample_chars)
        try:
            resp = await client.chat.completions.create(
                model=self.settings.openai_model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.settings.ai_temperature,
                top_p=self.settings.ai_top_p,
                max_tokens=self.settings.ai_max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.AuthenticationError as e:
            raise UpstreamAuthError(str(e))
        except openai.RateLimitError as e:
            raise UpstreamRateLimitError(str(e))
        except openai.APITimeoutError as e:
            raise AnalysisTimeoutError(str(e))
        except openai.OpenAIError as e:
            log.error(f"AI analysis error: {e}")
            raise UpstreamError(str(e))

        text = resp.choices[0].message.content if resp.choices else None
        log.info(f"AI response (first 500 chars): {(text or '')[:500]}")
        return parse_analysis(text or "")


def mock_analysis(rows: List[Dict[str, Any]], total_rows: int) -> Dict[str, Any]:
    """Deterministic stand-in for the model, built from the sampled rows."""
    severities = ["Critical", "High", "Medium", "Low"]
    summary = {k: 0 for k in SUMMARY_KEYS}
    issues = []
    for i, row in enumerate(rows):
        sev = _row_severity(row) or severities[i % len(severities)]
        summary[sev.lower()] += 1
        issues.append({
            "id": f"issue-{i + 1}",
            "title": str(_first(row, "title", "name", "vulnerability") or f"Finding {i + 1}"),
            "severity": sev,
            "package": str(_first(row, "package", "component", "library") or ""),
            "cve": str(_first(row, "cve", "cve_id", "id") or ""),
            "priorityScore": {"Critical": 9, "High": 7, "Medium": 5, "Low": 2}[sev],
            "aiExplanation": "Mock explanation based on the scan row.",
            "remediation": "Upgrade the affected component to a patched release.",
            "falsePositiveRisk": "Low",
            "affectedFiles": [str(_first(row, "file", "path", "location") or "")],
        })
    summary["total"] = total_rows
    issues.sort(key=lambda x: x["priorityScore"], reverse=True)
    return {
        "summary": summary,
        "insights": f"Mock analysis of {total_rows} findings.",
        "prioritizedIssues": issues,
        "recommendations": ["Patch critical findings first.", "Re-run the scan after upgrades."],
    }


def _first(row: Dict[str, Any], *names: str):
    lowered = {str(k).lower(): v for k, v in row.items()}
    for n in names:
        if lowered.get(n) not in (None, ""):
            return lowered[n]
    return None


def _row_severity(row: Dict[str, Any]) -> Optional[str]:
    value = _first(row, "severity", "risk", "level")
    if value is None:
        return None
    v = str(value).strip().capitalize()
    return v if v in ("Critical", "High", "Medium", "Low") else None
