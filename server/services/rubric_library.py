"""Built-in scoring rubrics users can start a prompt from."""

from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class RubricTemplate:
    key: str
    name: str
    description: str
    evaluation_type: str
    prompt_template: str
    pass_threshold: float = 3.0
    scale: str = "1-5"

    def to_dict(self) -> dict:
        return asdict(self)


_QUALITY = """\
Please evaluate the following customer service conversation for overall quality on a scale of 1-5.

CONVERSATION TRANSCRIPT:
{{transcript}}

EVALUATION CRITERIA:
- Clarity and coherence of responses
- Professionalism and tone
- Helpfulness and problem resolution
- Listening skills and empathy

Respond in JSON:
```json
{
  "score": <1-5>,
  "clarity_score": <1-5>,
  "professionalism_score": <1-5>,
  "helpfulness_score": <1-5>,
  "empathy_score": <1-5>,
  "reasoning": "<why you gave these scores>",
  "key_strengths": [],
  "areas_for_improvement": []
}
```
"""

_SENTIMENT = """\
Analyze the customer sentiment in this conversation and how it changes during the call.

CONVERSATION TRANSCRIPT:
{{transcript}}

CALL DETAILS:
- Call ID: {{call_id}}
- Duration: {{duration}} seconds
- Customer: {{customer_number}}

Respond in JSON:
```json
{
  "score": <1-5>,
  "initial_sentiment": "positive|neutral|negative",
  "final_sentiment": "positive|neutral|negative",
  "sentiment_trajectory": "improving|stable|declining",
  "agent_effectiveness": <1-5>,
  "key_turning_points": [],
  "reasoning": "<analysis of the sentiment pattern>"
}
```
"""

_COMPLIANCE = """\
Review this customer service conversation for compliance with standard policies and procedures.

CONVERSATION TRANSCRIPT:
{{transcript}}

COMPLIANCE CHECKLIST:
- Did the agent identify themselves?
- Was customer information handled securely?
- Were required disclaimers given?
- Was escalation offered when needed?
- Was the conversation professional throughout?

Rate compliance on a scale of 1-5 and list any violations, in JSON:
```json
{
  "score": <1-5>,
  "identification_compliance": true,
  "security_compliance": true,
  "disclaimer_compliance": true,
  "escalation_compliance": true,
  "professionalism_compliance": true,
  "violations": [],
  "recommendations": [],
  "reasoning": "<compliance analysis>"
}
```
"""

_ACCURACY = """\
Evaluate the accuracy of the information the agent gave in this conversation.

CONVERSATION TRANSCRIPT:
{{transcript}}

ASSESSMENT CRITERIA:
- Factual accuracy
- Consistency of information
- Clarity and completeness of explanations

Rate information accuracy on a scale of 1-5, in JSON:
```json
{
  "score": <1-5>,
  "factual_accuracy": <1-5>,
  "consistency_score": <1-5>,
  "completeness_score": <1-5>,
  "inaccuracies_found": [],
  "missing_information": [],
  "reasoning": "<accuracy assessment>"
}
```
"""

_RESOLUTION = """\
Assess how effectively the agent resolved the customer's issue in this conversation.

CONVERSATION TRANSCRIPT:
{{transcript}}

EVALUATION FOCUS:
- Understanding of the problem
- Effectiveness of the solution
- Follow-up and next steps
- Time to resolution

Rate resolution on a scale of 1-5, in JSON:
```json
{
  "score": <1-5>,
  "problem_understanding": <1-5>,
  "solution_effectiveness": <1-5>,
  "follow_up_quality": <1-5>,
  "issue_fully_resolved": true,
  "outstanding_items": [],
  "reasoning": "<resolution analysis>"
}
```
"""

RUBRICS: dict[str, RubricTemplate] = {
    r.key: r
    for r in (
        RubricTemplate(
            "quality", "Conversation Quality Assessment",
            "Overall conversation quality, clarity and professionalism",
            "quality", _QUALITY, pass_threshold=3.0,
        ),
        RubricTemplate(
            "sentiment", "Customer Sentiment Analysis",
            "Customer sentiment across the conversation",
            "sentiment", _SENTIMENT, pass_threshold=3.0,
        ),
        RubricTemplate(
            "compliance", "Compliance and Policy Adherence",
            "Adherence to company policies and regulatory requirements",
            "compliance", _COMPLIANCE, pass_threshold=4.0,
        ),
        RubricTemplate(
            "accuracy", "Information Accuracy Assessment",
            "Accuracy and correctness of the information provided",
            "accuracy", _ACCURACY, pass_threshold=4.0,
        ),
        RubricTemplate(
            "resolution", "Issue Resolution Effectiveness",
            "How effectively the customer's issue was resolved",
            "resolution", _RESOLUTION, pass_threshold=3.5,
        ),
    )
}


def get_rubric(key: str) -> RubricTemplate | None:
    return RUBRICS.get(key)


def list_rubrics() -> list[RubricTemplate]:
    return list(RUBRICS.values())
