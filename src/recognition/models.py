"""Canonical recognition result types.

Every provider response is converted into one of these records before
it leaves the recognition package.
"""

import re
from dataclasses import asdict, dataclass, field
from enum import StrEnum
from typing import Any

VIN_PATTERN = re.compile(r"[A-HJ-NPR-Z0-9]{17}")


class RecognitionKind(StrEnum):
    """Supported recognition request kinds."""

    GENERAL = "general"
    LICENSE_PLATE = "license_plate"
    VIN = "vin"
    INVOICE = "invoice"


@dataclass(frozen=True)
class RecognizedWord:
    """A single recognized line of text with its probability."""

    text: str
    probability: float = 0.0
    bounding_box: dict[str, Any] | None = None


@dataclass(frozen=True)
class GeneralResult:
    """Free-text recognition result.

    ``full_text`` is always the newline-join of the word texts in order.
    """

    direction: int = 0
    language: str = "unknown"
    words: tuple[RecognizedWord, ...] = ()

    @property
    def full_text(self) -> str:
        return "\n".join(word.text for word in self.words)

    @property
    def confidence(self) -> float:
        return mean_probability(self.words)

    def to_dict(self) -> dict[str, Any]:
        return {
            "direction": self.direction,
            "language": self.language,
            "words": [asdict(word) for word in self.words],
            "full_text": self.full_text,
        }


@dataclass(frozen=True)
class PlateResult:
    """License plate recognition result."""

    plate_number: str = ""
    color: str = ""
    confidence: float = 0.0
    bounding_vertices: list[dict[str, Any]] | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class VinResult:
    """Vehicle identification numbers found in recognized text."""

    candidate_vins: tuple[str, ...] = ()
    full_text: str = ""
    confidence: float = 0.0

    def __post_init__(self) -> None:
        for vin in self.candidate_vins:
            if not VIN_PATTERN.fullmatch(vin):
                raise ValueError(f"Not a valid VIN: {vin!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "candidate_vins": list(self.candidate_vins),
            "full_text": self.full_text,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class CommodityDetail:
    """One commodity line from an invoice."""

    name: str
    amount: str = ""
    price: str = ""


@dataclass(frozen=True)
class InvoiceResult:
    """Structured invoice or receipt recognition result."""

    invoice_type: str = ""
    invoice_code: str = ""
    invoice_num: str = ""
    invoice_date: str = ""
    total_amount: str = ""
    amount_in_words: str = ""
    seller_name: str = ""
    purchaser_name: str = ""
    commodity_details: tuple[CommodityDetail, ...] = ()
    raw_fields: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["commodity_details"] = [asdict(c) for c in self.commodity_details]
        return data


NormalizedResult = GeneralResult | PlateResult | VinResult | InvoiceResult


def mean_probability(words: tuple[RecognizedWord, ...]) -> float:
    """Average word probability, or 0.0 when there are no words."""
    if not words:
        return 0.0
    return sum(word.probability for word in words) / len(words)
