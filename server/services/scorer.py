"""Score extraction from free-form judge output.

Parsing is best-effort and never raises. Three strategies are tried in
order and the one that fired is recorded on the outcome:

* ``structured_json``: a fenced ```json block, or the first ``{...}``
  object in the text;
* ``regex_score``: a ``score: <number>`` pattern;
* ``raw_fallback``: the whole text under ``raw_response``, scored 0.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Literal

logger = logging.getLogger(__name__)

ParseStrategy = Literal["structured_json", "regex_score", "raw_fallback"]

SCORE_FIELDS = ("score", "overall_score", "quality_score", "rating", "evaluation_score")
REASONING_FIELDS = ("reasoning", "explanation", "analysis")

_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```", re.IGNORECASE)
_GREEDY_OBJECT_RE = re.compile(r"\{[\s\S]*\}")
_SCORE_RE = re.compile(r"score[:\s]*(\d+(?:\.\d+)?)", re.IGNORECASE)
_REASONING_RES = [
    re.compile(rf"{name}[\"']?[:\s]*(.*?)(?:\n|$)", re.IGNORECASE) for name in REASONING_FIELDS
]
_SENTENCE_SPLIT_RE = re.compile(r"[.!?]\s+")


@dataclass
class ParseOutcome:
    scores: dict = field(default_factory=dict)
    overall_score: float = 0.0
    reasoning: str = ""
    strategy: ParseStrategy = "raw_fallback"

    @property
    def has_score(self) -> bool:
        return self.strategy != "raw_fallback"


def _json_candidates(text: str):
    fenced = _FENCED_JSON_RE.search(text)
    if fenced:
        yield fenced.group(1)
    greedy = _GREEDY_OBJECT_RE.search(text)
    if greedy:
        yield greedy.group(0)


def _first_json_object(text: str) -> dict | None:
    for candidate in _json_candidates(text):
        try:
            value = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict) and value:
            return value

    # Greedy match spans too much when prose with braces follows the object
    decoder = json.JSONDecoder()
    for match in re.finditer(r"\{", text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, dict) and value:
            return value
    return None


def parse_scores(raw_text: str) -> tuple[dict, ParseStrategy]:
    """Return ``(scores, strategy)`` for a judge response."""
    text = raw_text or ""

    structured = _first_json_object(text)
    if structured is not None:
        return structured, "structured_json"

    match = _SCORE_RE.search(text)
    if match:
        return {"score": float(match.group(1))}, "regex_score"

    logger.info("No structured score found in LLM response; keeping raw text")
    return {"raw_response": text}, "raw_fallback"


def _to_number(value) -> float | None:
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip().rstrip("%"))
        except ValueError:
            return None
    return None


def extract_overall_score(scores: dict) -> float:
    """First numeric value among the known score fields, else 0."""
    for name in SCORE_FIELDS:
        if name in scores and scores[name] is not None:
            number = _to_number(scores[name])
            if number is not None:
                return number
    return 0.0


def extract_reasoning(raw_text: str, scores: dict | None = None) -> str:
    for name in REASONING_FIELDS:
        value = (scores or {}).get(name)
        if isinstance(value, str) and value.strip():
            return value.strip()

    text = raw_text or ""
    for pattern in _REASONING_RES:
        match = pattern.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip().strip('",').strip()

    first_sentence = _SENTENCE_SPLIT_RE.split(text.strip(), maxsplit=1)[0]
    return first_sentence or text[:200]


def parse(raw_text: str) -> ParseOutcome:
    """Parse one judge response into scores, an overall score and reasoning."""
    scores, strategy = parse_scores(raw_text)
    return ParseOutcome(
        scores=scores,
        overall_score=extract_overall_score(scores),
        reasoning=extract_reasoning(raw_text, scores),
        strategy=strategy,
    )
