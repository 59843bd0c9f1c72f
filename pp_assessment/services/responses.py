"""
Response Store — typed answers keyed by question id.

A response is one of four variants:

    BooleanResponse(bool)          → 1.0 / 0.0
    ScaleResponse(1..5)            → value / 5
    PercentageResponse(0..100)     → value / 100
    TextResponse(str)              → recorded, not scored

``normalize`` maps every variant to a 0-1 fraction (or ``None`` for text)
and is exhaustive over the union.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import ClassVar, Iterator, Union

from pp_assessment.core.exceptions import ValidationError
from pp_assessment.services.catalog import Pillar, Question, QuestionType


# ── Response variants ─────────────────────────────────────────────────────


@dataclass(frozen=True)
class BooleanResponse:
    value: bool
    kind: ClassVar[QuestionType] = QuestionType.BOOLEAN

    def __post_init__(self):
        if not isinstance(self.value, bool):
            raise ValidationError("Boolean responses must be true or false",
                                  details={"value": repr(self.value)})


@dataclass(frozen=True)
class ScaleResponse:
    value: int
    kind: ClassVar[QuestionType] = QuestionType.SCALE

    def __post_init__(self):
        if isinstance(self.value, bool) or not isinstance(self.value, int) or not 1 <= self.value <= 5:
            raise ValidationError("Scale responses must be an integer from 1 to 5",
                                  details={"value": repr(self.value)})


@dataclass(frozen=True)
class PercentageResponse:
    value: float
    kind: ClassVar[QuestionType] = QuestionType.PERCENTAGE

    def __post_init__(self):
        if (isinstance(self.value, bool) or not isinstance(self.value, (int, float))
                or math.isnan(self.value) or not 0 <= self.value <= 100):
            raise ValidationError("Percentage responses must be a number from 0 to 100",
                                  details={"value": repr(self.value)})


@dataclass(frozen=True)
class TextResponse:
    value: str
    kind: ClassVar[QuestionType] = QuestionType.TEXT

    def __post_init__(self):
        if not isinstance(self.value, str):
            raise ValidationError("Text responses must be a string",
                                  details={"value": repr(self.value)})


Response = Union[BooleanResponse, ScaleResponse, PercentageResponse, TextResponse]

_VARIANTS: dict[QuestionType, type] = {
    QuestionType.BOOLEAN: BooleanResponse,
    QuestionType.SCALE: ScaleResponse,
    QuestionType.PERCENTAGE: PercentageResponse,
    QuestionType.TEXT: TextResponse,
}


def normalize(response: Response) -> float | None:
    """Return the 0-1 fraction a response contributes, or None for text."""
    if isinstance(response, BooleanResponse):
        return 1.0 if response.value else 0.0
    if isinstance(response, ScaleResponse):
        return response.value / 5
    if isinstance(response, PercentageResponse):
        return response.value / 100
    if isinstance(response, TextResponse):
        return None
    raise TypeError(f"Unsupported response type: {type(response).__name__}")


def coerce_response(question: Question, raw) -> Response:
    """Build the response variant matching ``question.type`` from a raw JSON value.

    Scale values given as whole floats (``4.0``) or numeric strings are
    accepted; anything else outside the variant's domain is rejected.

    Raises:
        ValidationError: If ``raw`` does not fit the question type.
    """
    if raw is None:
        raise ValidationError("A response value is required", details={"question_id": question.id})

    qtype = question.type
    if qtype == QuestionType.BOOLEAN:
        if isinstance(raw, str) and raw.lower() in ("true", "false", "yes", "no"):
            raw = raw.lower() in ("true", "yes")
        return BooleanResponse(raw)
    if qtype == QuestionType.SCALE:
        if isinstance(raw, str) and raw.strip().isdigit():
            raw = int(raw.strip())
        elif isinstance(raw, float) and raw.is_integer():
            raw = int(raw)
        return ScaleResponse(raw)
    if qtype == QuestionType.PERCENTAGE:
        if isinstance(raw, str):
            try:
                raw = float(raw.strip().rstrip("%"))
            except ValueError:
                raise ValidationError("Percentage responses must be a number from 0 to 100",
                                      details={"value": raw}) from None
        return PercentageResponse(raw)
    return TextResponse(raw)


def response_to_dict(response: Response) -> dict:
    return {"type": response.kind.value, "value": response.value}


def response_from_dict(data: dict) -> Response:
    """Rebuild a response from its ``{"type", "value"}`` form."""
    try:
        variant = _VARIANTS[QuestionType(data["type"])]
    except (KeyError, ValueError, TypeError):
        raise ValidationError("Unknown response type", details={"response": repr(data)}) from None
    return variant(data.get("value"))


# ── Store ─────────────────────────────────────────────────────────────────


@dataclass
class ResponseStore:
    """Answers keyed by question id. Unanswered questions are absent."""

    responses: dict[str, Response] = field(default_factory=dict)

    def get(self, question_id: str) -> Response | None:
        return self.responses.get(question_id)

    def set(self, question_id: str, response: Response) -> Response | None:
        """Store a response and return the one it replaced."""
        previous = self.responses.get(question_id)
        self.responses[question_id] = response
        return previous

    def clear(self, question_id: str) -> Response | None:
        return self.responses.pop(question_id, None)

    def for_pillar(self, pillar: Pillar) -> dict[str, Response]:
        return {q.id: self.responses[q.id] for q in pillar.questions if q.id in self.responses}

    def answered_ids(self) -> list[str]:
        return list(self.responses)

    def raw_values(self) -> dict[str, object]:
        """Plain ``question_id -> value`` mapping, as threshold checks expect."""
        return {qid: r.value for qid, r in self.responses.items()}

    def __contains__(self, question_id: str) -> bool:
        return question_id in self.responses

    def __len__(self) -> int:
        return len(self.responses)

    def __iter__(self) -> Iterator[str]:
        return iter(self.responses)

    def to_dict(self) -> dict:
        return {qid: response_to_dict(r) for qid, r in self.responses.items()}

    @classmethod
    def from_dict(cls, data: dict | None) -> "ResponseStore":
        return cls({qid: response_from_dict(r) for qid, r in (data or {}).items()})
