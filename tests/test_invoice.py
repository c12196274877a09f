"""Tests for invoice recognition with receipt fallback."""

from unittest.mock import MagicMock

import pytest
from conftest import VAT_PAYLOAD

from src.recognition.errors import EngineError, EngineErrorCode
from src.recognition.gateway import RawEngineResponse, RecognitionGateway
from src.recognition.invoice import recognize_invoice
from src.recognition.models import InvoiceResult

RECEIPT_PAYLOAD = {"words_result": {"InvoiceNum": "R-001", "TotalAmount": "80.00"}}


def _gateway() -> MagicMock:
    return MagicMock(spec=RecognitionGateway)


class TestRecognizeInvoice:
    """Tests for the VAT-first, receipt-second call sequence."""

    def test_vat_success_skips_receipt(self) -> None:
        gateway = _gateway()
        gateway.vat_invoice.return_value = RawEngineResponse("vat_invoice", VAT_PAYLOAD)

        result = recognize_invoice(gateway, b"img")

        assert isinstance(result, InvoiceResult)
        assert result.invoice_num == "12345678"
        gateway.vat_invoice.assert_called_once_with(b"img")
        gateway.receipt.assert_not_called()

    def test_raised_error_falls_back_to_receipt(self) -> None:
        gateway = _gateway()
        gateway.vat_invoice.side_effect = EngineError(
            EngineErrorCode.REMOTE_REJECTED, "not a VAT invoice"
        )
        gateway.receipt.return_value = RawEngineResponse("receipt", RECEIPT_PAYLOAD)

        result = recognize_invoice(gateway, b"img")

        assert result.invoice_num == "R-001"
        assert result.total_amount == "80.00"
        gateway.receipt.assert_called_once_with(b"img")

    def test_provider_error_in_payload_does_not_fall_back(self) -> None:
        gateway = _gateway()
        gateway.vat_invoice.return_value = RawEngineResponse(
            "vat_invoice", {"error_code": 282103, "error_msg": "target recognize error"}
        )

        with pytest.raises(EngineError) as exc_info:
            recognize_invoice(gateway, b"img")

        assert exc_info.value.code is EngineErrorCode.REMOTE_REJECTED
        assert exc_info.value.message == "target recognize error"
        gateway.receipt.assert_not_called()

    def test_both_failing_raises_receipt_error(self) -> None:
        gateway = _gateway()
        gateway.vat_invoice.side_effect = EngineError(
            EngineErrorCode.UNKNOWN, "vat down"
        )
        gateway.receipt.side_effect = EngineError(EngineErrorCode.TIMEOUT, "timed out")

        with pytest.raises(EngineError) as exc_info:
            recognize_invoice(gateway, b"img")

        assert exc_info.value.code is EngineErrorCode.TIMEOUT

    def test_receipt_provider_error_raises(self) -> None:
        gateway = _gateway()
        gateway.vat_invoice.side_effect = EngineError(
            EngineErrorCode.UNKNOWN, "vat down"
        )
        gateway.receipt.return_value = RawEngineResponse(
            "receipt", {"error_code": 17, "error_msg": "daily limit reached"}
        )

        with pytest.raises(EngineError) as exc_info:
            recognize_invoice(gateway, b"img")

        assert exc_info.value.code is EngineErrorCode.REMOTE_REJECTED

    def test_non_engine_errors_propagate(self) -> None:
        gateway = _gateway()
        gateway.vat_invoice.side_effect = RuntimeError("bug")

        with pytest.raises(RuntimeError):
            recognize_invoice(gateway, b"img")
        gateway.receipt.assert_not_called()

    def test_cancelled_vat_call_skips_receipt(self) -> None:
        gateway = _gateway()
        gateway.vat_invoice.side_effect = EngineError(
            EngineErrorCode.CANCELLED, "Run was cancelled"
        )

        with pytest.raises(EngineError) as exc_info:
            recognize_invoice(gateway, b"img")

        assert exc_info.value.code is EngineErrorCode.CANCELLED
        gateway.receipt.assert_not_called()
