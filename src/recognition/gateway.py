"""Client for the remote recognition engine.

Wraps the Baidu AIP OCR REST API behind a small capability interface:
general text, license plate, VAT invoice, and receipt recognition.
Transport failures raise :class:`EngineError`; provider error codes in an
otherwise successful response are left in the payload and translated by
:func:`raise_for_provider_error`, so callers decide when to check them.
"""

import base64
import json
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests

from src.utils.config import EngineConfig
from src.utils.logger import get_logger

from .cancellation import current_cancellation, on_cancel
from .errors import EngineError, EngineErrorCode

logger = get_logger(__name__)

GENERAL_BASIC = "general_basic"
LICENSE_PLATE = "license_plate"
VAT_INVOICE = "vat_invoice"
RECEIPT = "receipt"

# Provider error codes, grouped by how the pipeline treats them.
_UNAUTHORIZED_CODES = frozenset({6, 14, 110, 111})
_TOKEN_EXPIRED_CODES = frozenset({110, 111})
_REJECTED_CODES = frozenset({4, 17, 18, 19, 100})
_REJECTED_PREFIXES = ("216", "282")

_TOKEN_REFRESH_MARGIN_SECONDS = 60.0
_READ_CHUNK_SIZE = 16 * 1024


@dataclass(frozen=True)
class RawEngineResponse:
    """Provider payload tagged with the operation that produced it."""

    operation: str
    payload: Mapping[str, Any] = field(default_factory=dict)

    @property
    def error_code(self) -> int:
        try:
            return int(self.payload.get("error_code") or 0)
        except (TypeError, ValueError):
            return -1


def classify_provider_error(provider_code: int) -> EngineErrorCode:
    """Map a provider error code to an :class:`EngineErrorCode`."""
    if provider_code in _UNAUTHORIZED_CODES:
        return EngineErrorCode.UNAUTHORIZED
    if provider_code in _REJECTED_CODES or str(provider_code).startswith(
        _REJECTED_PREFIXES
    ):
        return EngineErrorCode.REMOTE_REJECTED
    return EngineErrorCode.UNKNOWN


def raise_for_provider_error(raw: RawEngineResponse) -> RawEngineResponse:
    """Raise if the provider reported an error inside its response.

    Args:
        raw: Response returned by a gateway call.

    Returns:
        The same response when it carries no error code.

    Raises:
        EngineError: If the payload holds a non-zero ``error_code``.
    """
    provider_code = raw.error_code
    if not provider_code:
        return raw
    message = str(raw.payload.get("error_msg") or "unknown provider error")
    code = classify_provider_error(provider_code)
    logger.error(
        "Provider error on %s: [%s] %s (%s)",
        raw.operation,
        provider_code,
        message,
        code,
    )
    raise EngineError(code, message, provider_code=provider_code)


class RecognitionGateway(ABC):
    """Capability interface over a remote recognition provider."""

    @abstractmethod
    def general_text(
        self, image: bytes, options: Mapping[str, Any] | None = None
    ) -> RawEngineResponse:
        """Recognize free text, optionally with per-word probabilities."""

    @abstractmethod
    def license_plate(self, image: bytes) -> RawEngineResponse:
        """Recognize a vehicle license plate."""

    @abstractmethod
    def vat_invoice(self, image: bytes) -> RawEngineResponse:
        """Recognize a structured value-added-tax invoice."""

    @abstractmethod
    def receipt(self, image: bytes) -> RawEngineResponse:
        """Recognize a generic receipt."""


def _encode_option(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


class BaiduOcrGateway(RecognitionGateway):
    """Recognition gateway backed by the Baidu AIP OCR REST API.

    Each call opens its own HTTP session, bounded by the configured
    timeout, and closes it before returning. Only the OAuth access token
    is kept between calls.

    Args:
        config: Engine configuration with credentials, endpoints and timeout.
    """

    def __init__(self, config: EngineConfig) -> None:
        self.config = config
        self._token: str | None = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def general_text(
        self, image: bytes, options: Mapping[str, Any] | None = None
    ) -> RawEngineResponse:
        params: dict[str, Any] = {
            "language_type": self.config.language_type,
            "detect_direction": True,
            "detect_language": True,
            "probability": True,
        }
        params.update(options or {})
        return self._call(GENERAL_BASIC, image, params)

    def license_plate(self, image: bytes) -> RawEngineResponse:
        return self._call(LICENSE_PLATE, image)

    def vat_invoice(self, image: bytes) -> RawEngineResponse:
        return self._call(VAT_INVOICE, image)

    def receipt(self, image: bytes) -> RawEngineResponse:
        return self._call(RECEIPT, image)

    def _access_token(self) -> str:
        """Return a valid access token, fetching a new one when needed."""
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token

            payload = self._post(
                self.config.token_url,
                params={
                    "grant_type": "client_credentials",
                    "client_id": self.config.api_key,
                    "client_secret": self.config.secret_key,
                },
            )
            token = payload.get("access_token")
            if not token:
                message = str(
                    payload.get("error_description")
                    or payload.get("error")
                    or "access token request rejected"
                )
                logger.error("Access token request failed: %s", message)
                raise EngineError(EngineErrorCode.UNAUTHORIZED, message)

            expires_in = float(payload.get("expires_in") or 0)
            self._token = str(token)
            self._token_expires_at = (
                time.monotonic() + expires_in - _TOKEN_REFRESH_MARGIN_SECONDS
            )
            logger.debug("Obtained access token valid for %.0fs", expires_in)
            return self._token

    def _call(
        self,
        operation: str,
        image: bytes,
        options: Mapping[str, Any] | None = None,
    ) -> RawEngineResponse:
        data = {"image": base64.b64encode(image).decode("ascii")}
        for key, value in (options or {}).items():
            data[key] = _encode_option(value)

        payload = self._post(
            f"{self.config.base_url.rstrip('/')}/{operation}",
            params={"access_token": self._access_token()},
            data=data,
        )
        raw = RawEngineResponse(operation=operation, payload=payload)
        if raw.error_code in _TOKEN_EXPIRED_CODES:
            with self._token_lock:
                self._token = None
        logger.debug("Engine call %s returned error_code=%s", operation, raw.error_code)
        return raw

    def _post(
        self,
        url: str,
        params: Mapping[str, str],
        data: Mapping[str, str] | None = None,
    ) -> dict[str, Any]:
        """POST a form request and decode the JSON body.

        ``requests`` applies the timeout to the connect and to each socket
        read, so the body is streamed and checked against an overall
        deadline of ``timeout_seconds``. Waiting for the response headers
        is still bounded per read only. When the active run is cancelled
        the session is closed and no further request is started.

        Raises:
            EngineError: On timeout, cancellation, transport failure, or a
                non-JSON body.
        """
        deadline = time.monotonic() + self.config.timeout_seconds
        try:
            with requests.Session() as session, on_cancel(session.close):
                response = session.post(
                    url,
                    params=params,
                    data=data,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                    timeout=self.config.timeout_seconds,
                    stream=True,
                )
                try:
                    status = response.status_code
                    if status in (401, 403):
                        raise EngineError(
                            EngineErrorCode.UNAUTHORIZED,
                            f"Engine rejected credentials (HTTP {status})",
                        )
                    response.raise_for_status()
                    payload = json.loads(self._read_body(response, url, deadline))
                finally:
                    response.close()
        except requests.Timeout as exc:
            logger.error("Engine request to %s timed out: %s", url, exc)
            raise self._timeout_error() from exc
        except requests.RequestException as exc:
            cancellation = current_cancellation()
            if cancellation is not None and cancellation.cancelled:
                logger.warning("Engine request to %s aborted by cancellation", url)
                cancellation.raise_if_cancelled()
            logger.error("Engine request to %s failed: %s", url, exc)
            raise EngineError(EngineErrorCode.UNKNOWN, str(exc)) from exc
        except ValueError as exc:
            logger.error("Engine response from %s was not JSON: %s", url, exc)
            raise EngineError(
                EngineErrorCode.UNKNOWN, "Engine returned a malformed response"
            ) from exc

        if not isinstance(payload, dict):
            raise EngineError(
                EngineErrorCode.UNKNOWN, "Engine returned an unexpected payload"
            )
        return payload

    def _read_body(
        self, response: requests.Response, url: str, deadline: float
    ) -> bytes:
        chunks = []
        for chunk in response.iter_content(chunk_size=_READ_CHUNK_SIZE):
            if time.monotonic() > deadline:
                logger.error("Engine response from %s exceeded the deadline", url)
                raise self._timeout_error()
            chunks.append(chunk)
        return b"".join(chunks)

    def _timeout_error(self) -> EngineError:
        return EngineError(
            EngineErrorCode.TIMEOUT,
            f"Engine request timed out after {self.config.timeout_seconds:.0f}s",
        )
