"""Scoring-prompt rendering.

Templates use ``{{name}}`` placeholders and nothing else; all other text,
``{% %}`` and ``{# #}`` included, passes through untouched. Every template
must reference ``{{transcript}}``; one that doesn't is repaired by
appending a transcript section rather than rejected, and the repair is
logged at WARNING level. Placeholders with no matching variable keep their
original text.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

TRANSCRIPT_SECTION = (
    "\n\nConversation Transcript:\n{{transcript}}\n\nPlease evaluate the above."
)

CONVERSATION_MARKERS = ("USER:", "AGENT:")

_TRANSCRIPT_RE = re.compile(r"\{\{\s*transcript\s*\}\}")
_PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)\s*\}\}")


@dataclass
class RenderedPrompt:
    text: str
    was_repaired: bool = False


@dataclass
class TemplateValidation:
    is_valid: bool
    issues: list[str] = field(default_factory=list)
    fixed_template: str | None = None


def references_transcript(template: str) -> bool:
    return bool(_TRANSCRIPT_RE.search(template or ""))


def ensure_transcript_placeholder(template: str) -> tuple[str, bool]:
    """Return ``(final_template, was_repaired)``.

    The input is never modified; a repaired copy has the transcript section
    appended.
    """
    template = template or ""
    if references_transcript(template):
        return template, False
    return template + TRANSCRIPT_SECTION, True


def _coerce(value) -> str:
    return "" if value is None else str(value)


def _substitute(template: str, variables: dict[str, str]) -> str:
    def _replace(match: re.Match) -> str:
        name = match.group(1)
        return variables[name] if name in variables else match.group(0)

    return _PLACEHOLDER_RE.sub(_replace, template)


def render_template(template: str, variables: dict) -> RenderedPrompt:
    """Render a scoring prompt.

    ``variables`` must contain ``transcript``. Values are coerced to strings
    (``None`` renders empty).
    """
    final_template, was_repaired = ensure_transcript_placeholder(template)
    if was_repaired:
        logger.warning(
            "Template has no {{transcript}} placeholder; appending a transcript section"
        )

    values = {key: _coerce(value) for key, value in variables.items()}
    text = _substitute(final_template, values)

    transcript = values.get("transcript", "")
    if transcript and transcript[:50] not in text:
        logger.warning("Rendered prompt does not contain the transcript text")

    return RenderedPrompt(text=text, was_repaired=was_repaired)


def render(template: str, variables: dict) -> str:
    return render_template(template, variables).text


def has_conversation_markers(rendered: str) -> bool:
    """True when the rendered prompt carries at least one USER/AGENT line."""
    return any(marker in rendered for marker in CONVERSATION_MARKERS)


def validate_prompt_template(template: str) -> TemplateValidation:
    """Check a rubric before it is saved.

    Only a missing transcript placeholder makes a template invalid; the
    other findings are advisory.
    """
    issues: list[str] = []
    fixed, repaired = ensure_transcript_placeholder(template)
    if repaired:
        issues.append(
            "Missing {{transcript}} variable - conversation content will not be included"
        )

    text = template or ""
    lowered = text.lower()
    # Placeholder braces don't count as a response-format example
    bare = _PLACEHOLDER_RE.sub("", text)
    if "json" not in lowered and "{" not in bare and "}" not in bare:
        issues.append("Template should include instructions for JSON response format")
    if "score" not in lowered and "rating" not in lowered:
        issues.append("Template should include scoring or rating instructions")

    return TemplateValidation(
        is_valid=not repaired,
        issues=issues,
        fixed_template=fixed if repaired else None,
    )
