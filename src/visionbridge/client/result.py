"""Wire schemas for the classify command's response."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class ClassificationResult(BaseModel):
    """A successful classification returned by the backend.

    Probabilities are displayed as-is and need not sum to 1.
    """

    model_config = ConfigDict(frozen=True)

    prediction: str
    confidence: float = Field(ge=0.0, le=1.0)
    class_probabilities: dict[str, float]

    @model_validator(mode="after")
    def _check_probabilities(self) -> ClassificationResult:
        for class_name, probability in self.class_probabilities.items():
            if not 0.0 <= probability <= 1.0:
                raise ValueError(f"probability for {class_name!r} is outside [0, 1]: {probability}")
        if self.prediction not in self.class_probabilities:
            raise ValueError(f"class_probabilities has no entry for prediction {self.prediction!r}")
        return self


class ErrorPayload(BaseModel):
    """A logical error reported by the backend in place of a result."""

    error: str


def parse_classify_response(response: Any) -> ClassificationResult | ErrorPayload:
    """Interpret a raw process_image response.

    A mapping carrying an ``error`` field is an error payload; anything else
    must validate as a ClassificationResult.

    Raises:
        pydantic.ValidationError: If the response matches neither shape.
    """
    if isinstance(response, Mapping) and "error" in response:
        return ErrorPayload.model_validate(response)
    return ClassificationResult.model_validate(response)
