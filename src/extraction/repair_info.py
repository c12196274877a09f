"""Heuristic extraction of repair facts from recognized text.

Pulls monetary amounts, dates, and service keywords out of the free text
of a repair invoice or receipt. Matching is plain pattern and substring
search, so results are deterministic but not exhaustive.
"""

import re
from dataclasses import dataclass
from typing import Any

from src.recognition.models import GeneralResult, mean_probability
from src.utils.logger import get_logger

logger = get_logger(__name__)

# Labels that precede an amount: amount, fee, total, sum, payable.
AMOUNT_LABELS: tuple[str, ...] = ("金额", "费用", "总计", "合计", "应付")

AMOUNT_PATTERN = re.compile(
    r"(?:" + "|".join(AMOUNT_LABELS) + r")[：:\s]*¥?(\d+(?:\.\d{2})?)"
)

DATE_PATTERN = re.compile(r"(\d{4}[-年]\d{1,2}[-月]\d{1,2}日?)")

# Oil change, maintenance, repair, replace, inspect, clean, adjust, fix,
# engine oil, brakes, tires, air conditioning, battery, spark plug, filter.
REPAIR_KEYWORDS: tuple[str, ...] = (
    "换油",
    "保养",
    "维修",
    "更换",
    "检查",
    "清洗",
    "调整",
    "修理",
    "机油",
    "刹车",
    "轮胎",
    "空调",
    "电池",
    "火花塞",
    "滤芯",
)


@dataclass(frozen=True)
class ExtractedRepairInfo:
    """Facts mined from a recognized repair document."""

    amounts: tuple[float, ...] = ()
    dates: tuple[str, ...] = ()
    repair_items: tuple[str, ...] = ()
    confidence: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "amounts": list(self.amounts),
            "dates": list(self.dates),
            "repair_items": list(self.repair_items),
            "confidence": self.confidence,
        }


def extract_amounts(text: str) -> tuple[float, ...]:
    """Return every labelled amount in order of appearance."""
    return tuple(float(match.group(1)) for match in AMOUNT_PATTERN.finditer(text))


def normalize_date(value: str) -> str:
    """Rewrite ``2024年3月5日`` as ``2024-3-5``, keeping digits as matched."""
    return re.sub(r"[年月]", "-", value).replace("日", "")


def extract_dates(text: str) -> tuple[str, ...]:
    """Return every date in order of appearance, separators unified to ``-``."""
    return tuple(
        normalize_date(match.group(1)) for match in DATE_PATTERN.finditer(text)
    )


def detect_repair_items(text: str) -> tuple[str, ...]:
    """Return the vocabulary keywords contained in ``text``, in vocabulary order."""
    return tuple(keyword for keyword in REPAIR_KEYWORDS if keyword in text)


def extract_repair_info(result: GeneralResult) -> ExtractedRepairInfo:
    """Mine amounts, dates, and service keywords from a general text result.

    Defined for every result, including one with no words.

    Args:
        result: Normalized general text recognition result.

    Returns:
        Extracted facts with the mean word probability as confidence.
    """
    text = result.full_text
    info = ExtractedRepairInfo(
        amounts=extract_amounts(text),
        dates=extract_dates(text),
        repair_items=detect_repair_items(text),
        confidence=mean_probability(result.words),
    )
    logger.info(
        "Repair info: %d amounts, %d dates, %d items (confidence %.2f)",
        len(info.amounts),
        len(info.dates),
        len(info.repair_items),
        info.confidence,
    )
    return info
