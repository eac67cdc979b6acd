"""Projection of a classification result into a ranked display model."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from visionbridge.client.result import ClassificationResult


class ConfidenceTier(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    VERY_LOW = "very-low"
    NEUTRAL = "neutral"


@dataclass(frozen=True)
class DisplayRow:
    class_name: str
    probability: float
    is_top_class: bool
    bar_tier: ConfidenceTier
    percent_label: str


@dataclass(frozen=True)
class DisplayModel:
    prediction: str
    confidence: float
    confidence_tier: ConfidenceTier
    confidence_label: str
    rows: tuple[DisplayRow, ...]


def confidence_tier(value: float) -> ConfidenceTier:
    """Bucket a score into a tier. All thresholds are strict."""
    if value > 0.8:
        return ConfidenceTier.HIGH
    if value > 0.5:
        return ConfidenceTier.MEDIUM
    if value > 0.3:
        return ConfidenceTier.LOW
    return ConfidenceTier.VERY_LOW


def format_percent(value: float) -> str:
    return f"{value * 100:.2f}%"


def project(result: ClassificationResult) -> DisplayModel:
    """Rank classes by probability and assign presentation tiers.

    Only the predicted class's bar is tiered; every other row is neutral
    regardless of its probability.
    """
    # sorted() is stable, so equal probabilities keep their mapping order
    ranked = sorted(result.class_probabilities.items(), key=lambda item: item[1], reverse=True)

    rows = []
    for class_name, probability in ranked:
        is_top_class = class_name == result.prediction
        rows.append(
            DisplayRow(
                class_name=class_name,
                probability=probability,
                is_top_class=is_top_class,
                bar_tier=confidence_tier(probability) if is_top_class else ConfidenceTier.NEUTRAL,
                percent_label=format_percent(probability),
            )
        )

    return DisplayModel(
        prediction=result.prediction,
        confidence=result.confidence,
        confidence_tier=confidence_tier(result.confidence),
        confidence_label=format_percent(result.confidence),
        rows=tuple(rows),
    )
