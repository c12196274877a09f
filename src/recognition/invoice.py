"""Invoice recognition with a receipt fallback.

VAT invoices carry more structured fields, so the VAT endpoint is tried
first. A raised :class:`EngineError` switches to the generic receipt
endpoint unless the run was cancelled; an error code reported inside a
returned payload is raised as-is.
"""

from src.utils.logger import get_logger

from .errors import EngineError, EngineErrorCode
from .gateway import RecognitionGateway, raise_for_provider_error
from .models import InvoiceResult
from .normalizer import normalize_invoice

logger = get_logger(__name__)


def recognize_invoice(gateway: RecognitionGateway, image: bytes) -> InvoiceResult:
    """Recognize an invoice, falling back to receipt recognition.

    Args:
        gateway: Recognition engine gateway.
        image: Encoded image bytes.

    Returns:
        Normalized invoice result from whichever call succeeded.

    Raises:
        EngineError: If both calls raise, or the chosen response carries
            a provider error code.
    """
    try:
        raw = gateway.vat_invoice(image)
    except EngineError as exc:
        if exc.code is EngineErrorCode.CANCELLED:
            raise
        logger.warning(
            "VAT invoice recognition failed (%s: %s), trying receipt recognition",
            exc.code,
            exc.message,
        )
        raw = gateway.receipt(image)

    raise_for_provider_error(raw)
    return normalize_invoice(raw)
