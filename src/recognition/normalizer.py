"""Conversion of raw provider payloads into canonical result records.

All functions here are pure: the same payload always produces the same
result, and missing containers or fields fall back to empty defaults
instead of failing.
"""

import math
from collections.abc import Mapping
from typing import Any

from .gateway import RawEngineResponse
from .models import (
    VIN_PATTERN,
    CommodityDetail,
    GeneralResult,
    InvoiceResult,
    PlateResult,
    RecognizedWord,
    VinResult,
    mean_probability,
)

# Provider field name -> InvoiceResult attribute.
INVOICE_FIELDS: dict[str, str] = {
    "InvoiceType": "invoice_type",
    "InvoiceCode": "invoice_code",
    "InvoiceNum": "invoice_num",
    "InvoiceDate": "invoice_date",
    "TotalAmount": "total_amount",
    "AmountInWords": "amount_in_words",
    "SellerName": "seller_name",
    "PurchaserName": "purchaser_name",
}


def _payload(raw: RawEngineResponse | Mapping[str, Any]) -> Mapping[str, Any]:
    if isinstance(raw, RawEngineResponse):
        return raw.payload
    return raw


def _text(value: Any) -> str:
    """Coerce a provider field to a string, flattening ``[{"word": ...}]`` lists."""
    if value is None:
        return ""
    if isinstance(value, list):
        return "".join(_text(item) for item in value)
    if isinstance(value, Mapping):
        return _text(value.get("word") or value.get("words"))
    return str(value)


def _first_text(value: Any) -> str:
    if isinstance(value, list):
        return _text(value[0]) if value else ""
    return _text(value)


def coerce_probability(value: Any) -> float:
    """Turn a provider probability into a float within [0, 1].

    The general text endpoint reports ``{"average": ..., "min": ...}``
    objects when probabilities are requested; the average is used.
    """
    if isinstance(value, Mapping):
        value = value.get("average", 0)
    if isinstance(value, list):
        value = sum(coerce_probability(v) for v in value) / len(value) if value else 0
    try:
        number = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number):
        return 0.0
    return min(max(number, 0.0), 1.0)


def normalize_general(raw: RawEngineResponse | Mapping[str, Any]) -> GeneralResult:
    """Normalize a general text recognition payload."""
    payload = _payload(raw)
    words = tuple(
        RecognizedWord(
            text=_text(item.get("words")),
            probability=coerce_probability(item.get("probability")),
            bounding_box=item.get("location") or None,
        )
        for item in payload.get("words_result") or []
        if isinstance(item, Mapping)
    )
    try:
        direction = int(payload.get("direction") or 0)
    except (TypeError, ValueError):
        direction = 0
    return GeneralResult(
        direction=direction,
        language=str(payload.get("language") or "unknown"),
        words=words,
    )


def normalize_plate(raw: RawEngineResponse | Mapping[str, Any]) -> PlateResult:
    """Normalize a license plate recognition payload."""
    result = _payload(raw).get("words_result") or {}
    if isinstance(result, list):
        result = result[0] if result else {}
    if not isinstance(result, Mapping):
        result = {}
    return PlateResult(
        plate_number=_text(result.get("number")),
        color=_text(result.get("color")),
        confidence=coerce_probability(result.get("probability")),
        bounding_vertices=result.get("vertexes_location") or None,
    )


def normalize_vin(general: GeneralResult) -> VinResult:
    """Find VIN candidates in a general text result.

    Word texts are joined with spaces before matching, so a VIN must
    appear within a single recognized line.
    """
    text = " ".join(word.text for word in general.words)
    candidates = tuple(dict.fromkeys(VIN_PATTERN.findall(text)))
    return VinResult(
        candidate_vins=candidates,
        full_text=text,
        confidence=mean_probability(general.words),
    )


def extract_commodity_details(fields: Mapping[str, Any]) -> tuple[CommodityDetail, ...]:
    """Return the first commodity line when the invoice names one.

    Only one line is captured; multi-line commodity tables are not split.
    """
    name = _first_text(fields.get("CommodityName"))
    if not name:
        return ()
    return (
        CommodityDetail(
            name=name,
            amount=_first_text(fields.get("CommodityAmount")),
            price=_first_text(fields.get("CommodityPrice")),
        ),
    )


def normalize_invoice(raw: RawEngineResponse | Mapping[str, Any]) -> InvoiceResult:
    """Normalize a VAT invoice or receipt recognition payload."""
    fields = _payload(raw).get("words_result") or {}
    if isinstance(fields, list):
        # Receipts come back as plain recognized lines.
        lines = [
            _text(item.get("words")) for item in fields if isinstance(item, Mapping)
        ]
        return InvoiceResult(raw_fields={"lines": lines})
    if not isinstance(fields, Mapping):
        fields = {}
    values = {attr: _text(fields.get(name)) for name, attr in INVOICE_FIELDS.items()}
    return InvoiceResult(
        **values,
        commodity_details=extract_commodity_details(fields),
        raw_fields=dict(fields),
    )
