"""Tests for scoring-prompt rendering and validation."""

from __future__ import annotations

import logging

from server.services.template_service import (
    TRANSCRIPT_SECTION,
    ensure_transcript_placeholder,
    has_conversation_markers,
    render,
    render_template,
    validate_prompt_template,
)

TRANSCRIPT = "USER: Hello\nAGENT: Hi there"


class TestEnsureTranscriptPlaceholder:
    def test_present(self):
        template = "Rate this:\n{{transcript}}"
        assert ensure_transcript_placeholder(template) == (template, False)

    def test_spaced_placeholder_counts(self):
        template = "Rate this:\n{{ transcript }}"
        assert ensure_transcript_placeholder(template) == (template, False)

    def test_missing_is_appended(self):
        fixed, repaired = ensure_transcript_placeholder("Score 1-5.")
        assert repaired is True
        assert fixed == "Score 1-5." + TRANSCRIPT_SECTION
        assert fixed.endswith("Please evaluate the above.")


class TestRender:
    def test_substitutes_variables(self):
        text = render("Call {{call_id}} ({{duration}}s):\n{{transcript}}", {
            "transcript": TRANSCRIPT, "call_id": "c-1", "duration": 42.0,
        })
        assert text == "Call c-1 (42.0s):\n" + TRANSCRIPT

    def test_unknown_placeholder_left_verbatim(self):
        text = render("{{transcript}} for {{customer_name}}", {"transcript": TRANSCRIPT})
        assert text == TRANSCRIPT + " for {{customer_name}}"

    def test_none_renders_empty(self):
        assert render("[{{customer_number}}] {{transcript}}", {
            "transcript": TRANSCRIPT, "customer_number": None,
        }) == "[] " + TRANSCRIPT

    def test_repairs_missing_transcript(self, caplog):
        with caplog.at_level(logging.WARNING, logger="server.services.template_service"):
            rendered = render_template("Score the agent 1-5.", {"transcript": TRANSCRIPT})

        assert rendered.was_repaired is True
        assert rendered.text == (
            "Score the agent 1-5.\n\nConversation Transcript:\n" + TRANSCRIPT
            + "\n\nPlease evaluate the above."
        )
        assert any("no {{transcript}} placeholder" in r.getMessage() for r in caplog.records)

    def test_json_braces_survive(self):
        template = 'Reply as {"score": <1-5>}\n{{transcript}}'
        assert render(template, {"transcript": TRANSCRIPT}) == (
            'Reply as {"score": <1-5>}\n' + TRANSCRIPT
        )

    def test_block_syntax_kept_verbatim(self):
        template = "{% if %} {{transcript}} {{call_id}}"
        text = render(template, {"transcript": TRANSCRIPT, "call_id": "c-9"})
        assert text == "{% if %} " + TRANSCRIPT + " c-9"

    def test_spaced_unknown_placeholder_keeps_spacing(self):
        text = render("Rate {{ rating }} for:\n{{transcript}}", {"transcript": "USER: hi"})
        assert text == "Rate {{ rating }} for:\nUSER: hi"

    def test_expressions_and_comments_not_evaluated(self):
        template = "Use {{ 'x' * 3 }} and {# note #} here\n{{transcript}}"
        text = render(template, {"transcript": "USER: hi"})
        assert text == "Use {{ 'x' * 3 }} and {# note #} here\nUSER: hi"

    def test_control_blocks_not_executed(self):
        text = render("{% if true %}IF{% endif %} {{transcript}}", {"transcript": "USER: hi"})
        assert text == "{% if true %}IF{% endif %} USER: hi"

    def test_substituted_values_are_not_rescanned(self):
        text = render("{{transcript}}", {"transcript": "USER: my name is {{call_id}}", "call_id": "c-1"})
        assert text == "USER: my name is {{call_id}}"

    def test_does_not_execute_expressions(self):
        template = "{{transcript}} {{ call_id.__class__ }}"
        text = render(template, {"transcript": TRANSCRIPT, "call_id": "c-1"})
        assert "<class" not in text
        assert TRANSCRIPT in text

    def test_conversation_markers(self):
        assert has_conversation_markers(render("{{transcript}}", {"transcript": TRANSCRIPT}))
        assert not has_conversation_markers(render("{{transcript}}", {"transcript": ""}))


class TestValidatePromptTemplate:
    def test_valid_template(self):
        result = validate_prompt_template('{{transcript}}\nGive a score as JSON.')
        assert result.is_valid is True
        assert result.issues == []
        assert result.fixed_template is None

    def test_missing_transcript(self):
        result = validate_prompt_template("Give a score in JSON.")
        assert result.is_valid is False
        assert result.issues == [
            "Missing {{transcript}} variable - conversation content will not be included"
        ]
        assert result.fixed_template == "Give a score in JSON." + TRANSCRIPT_SECTION

    def test_advisory_issues_keep_template_valid(self):
        result = validate_prompt_template("Evaluate:\n{{transcript}}")
        assert result.is_valid is True
        assert result.issues == [
            "Template should include instructions for JSON response format",
            "Template should include scoring or rating instructions",
        ]
