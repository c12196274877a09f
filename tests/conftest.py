"""Shared test fixtures for the recognition test suite."""

import logging
from pathlib import Path
from unittest.mock import MagicMock

import cv2
import numpy as np
import pytest

from src.recognition.gateway import RawEngineResponse, RecognitionGateway
from src.utils.config import AppConfig, UploadConfig


@pytest.hookimpl(hookwrapper=True, trylast=True)
def pytest_runtest_call(item):
    """Give ``clean_root`` tests a handler-free root logger for the test body.

    pytest's logging plugin attaches its call-phase capture handlers to the
    root logger after fixtures have run, so the clearing has to happen here,
    inside that wrapper.
    """
    if "clean_root" in item.fixturenames:
        logging.getLogger().handlers.clear()
    yield


def general_payload(*lines: tuple[str, float]) -> dict:
    """Build a general text payload from ``(text, probability)`` pairs."""
    return {
        "log_id": 1,
        "direction": 0,
        "language": "CHN_ENG",
        "words_result_num": len(lines),
        "words_result": [
            {
                "words": text,
                "probability": {"average": prob, "min": prob, "variance": 0},
            }
            for text, prob in lines
        ],
    }


VAT_PAYLOAD = {
    "log_id": 2,
    "words_result": {
        "InvoiceType": "电子普通发票",
        "InvoiceCode": "044031900111",
        "InvoiceNum": "12345678",
        "InvoiceDate": "2024年03月15日",
        "TotalAmount": "350.00",
        "AmountInWords": "叁佰伍拾圆整",
        "SellerName": "某某汽车维修有限公司",
        "PurchaserName": "张三",
        "CommodityName": [{"row": "1", "word": "机油"}, {"row": "2", "word": "滤芯"}],
        "CommodityAmount": [{"row": "1", "word": "300.00"}],
        "CommodityPrice": [{"row": "1", "word": "300"}],
    },
}

PLATE_PAYLOAD = {
    "log_id": 3,
    "words_result": {
        "number": "京A12345",
        "color": "blue",
        "probability": [0.99, 0.98, 0.97],
        "vertexes_location": [{"x": 1, "y": 2}, {"x": 3, "y": 4}],
    },
}


@pytest.fixture
def sample_color_image() -> np.ndarray:
    """Create a simple synthetic BGR test image."""
    image = np.zeros((200, 300, 3), dtype=np.uint8)
    image[50:150, 50:250] = (200, 180, 160)
    return image


@pytest.fixture
def image_file(tmp_path: Path, sample_color_image: np.ndarray) -> Path:
    """Write the synthetic image as a PNG upload."""
    path = tmp_path / "upload.png"
    cv2.imwrite(str(path), sample_color_image)
    return path


@pytest.fixture
def app_config(tmp_path: Path) -> AppConfig:
    """Application config with uploads stored under the test directory."""
    return AppConfig(upload=UploadConfig(upload_dir=str(tmp_path / "uploads")))


@pytest.fixture
def gateway() -> MagicMock:
    """Recognition gateway mock returning well-formed payloads."""
    mock = MagicMock(spec=RecognitionGateway)
    mock.general_text.return_value = RawEngineResponse(
        "general_basic",
        general_payload(("维修费用：¥350.00", 0.9), ("2024年03月15日 更换机油", 0.8)),
    )
    mock.license_plate.return_value = RawEngineResponse("license_plate", PLATE_PAYLOAD)
    mock.vat_invoice.return_value = RawEngineResponse("vat_invoice", VAT_PAYLOAD)
    mock.receipt.return_value = RawEngineResponse(
        "receipt", {"words_result": [{"words": "收据"}]}
    )
    return mock
