"""FastAPI application for the vehicle document recognition API.

Provides upload endpoints for general text, license plate, VIN, and
invoice recognition, plus configuration and health queries. Uploaded
images are stored only for the duration of a request.
"""

import time
import uuid
from pathlib import Path
from typing import Annotated

from fastapi import FastAPI, File, HTTPException, Query, UploadFile
from fastapi.middleware.cors import CORSMiddleware

from src.pipeline.errors import ErrorClassification, PipelineError
from src.pipeline.orchestrator import (
    RecognitionPipeline,
    RecognitionRequest,
    remove_file,
    resolve_kind,
    upload_policy,
)
from src.recognition.models import RecognitionKind
from src.utils.config import load_config
from src.utils.logger import get_logger

from .schemas import (
    ConfigResponse,
    FileInfo,
    HealthResponse,
    RecognitionResponse,
    UploadPolicyResponse,
)

logger = get_logger(__name__)

VERSION = "1.0.0"

app = FastAPI(
    title="Vehicle Document Recognition API",
    description="Recognize license plates, VINs, and repair invoices from photos",
    version=VERSION,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_STATUS_BY_CLASSIFICATION = {
    ErrorClassification.UNSUPPORTED_KIND: 400,
    ErrorClassification.REMOTE_REJECTED: 422,
    ErrorClassification.UNAUTHORIZED: 502,
    ErrorClassification.UNKNOWN: 502,
    ErrorClassification.TIMEOUT: 504,
}

_SUCCESS_MESSAGES = {
    RecognitionKind.GENERAL: "Text recognized",
    RecognitionKind.LICENSE_PLATE: "License plate recognized",
    RecognitionKind.VIN: "VIN recognized",
    RecognitionKind.INVOICE: "Invoice recognized",
}


def _get_pipeline() -> RecognitionPipeline:
    """Build the recognition pipeline from the current configuration."""
    return RecognitionPipeline(load_config())


def status_for(error: PipelineError) -> int:
    """Map a pipeline failure to an HTTP status code."""
    return _STATUS_BY_CLASSIFICATION.get(error.classification, 500)


async def _recognize_upload(
    file: UploadFile, kind_name: str
) -> RecognitionResponse:
    """Validate, store, and recognize one uploaded image.

    Args:
        file: Uploaded JPEG or PNG image.
        kind_name: Requested recognition kind.

    Returns:
        Recognition response with the normalized result.
    """
    start_time = time.time()

    try:
        kind = resolve_kind(kind_name)
    except PipelineError as exc:
        raise HTTPException(status_code=status_for(exc), detail=exc.message) from exc

    pipeline = _get_pipeline()
    policy = upload_policy(pipeline.config.upload)

    if file.content_type not in policy.allowed_mime_types:
        raise HTTPException(
            status_code=400,
            detail=f"Unsupported file type: {file.content_type}; upload JPG or PNG",
        )

    content = await file.read(policy.max_file_size + 1)
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")
    if len(content) > policy.max_file_size:
        raise HTTPException(
            status_code=413,
            detail=f"File exceeds the {policy.max_file_size // (1024 * 1024)}MB limit",
        )

    upload_dir = Path(pipeline.config.upload.upload_dir)
    suffix = Path(file.filename or "").suffix.lower() or ".jpg"
    upload_path = upload_dir / f"ocr_{uuid.uuid4().hex}{suffix}"

    try:
        upload_dir.mkdir(parents=True, exist_ok=True)
        upload_path.write_bytes(content)
        result = await pipeline.arun(
            RecognitionRequest(source_image_path=upload_path, kind=kind),
            delete_source=True,
        )
    except PipelineError as exc:
        logger.error("Recognition of %s failed: %s", file.filename, exc.message)
        raise HTTPException(status_code=status_for(exc), detail=exc.message) from exc
    except OSError as exc:
        logger.error("Could not store upload %s: %s", file.filename, exc)
        raise HTTPException(status_code=500, detail="Could not store upload") from exc
    finally:
        remove_file(upload_path)

    return RecognitionResponse(
        success=True,
        message=_SUCCESS_MESSAGES[kind],
        kind=kind.value,
        data=result.to_dict(),
        file_info=FileInfo(
            original_name=file.filename or "upload",
            size=len(content),
            content_type=file.content_type,
        ),
        processing_time_ms=(time.time() - start_time) * 1000,
    )


@app.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """Return service health status."""
    engine = load_config().engine
    return HealthResponse(
        status="healthy",
        version=VERSION,
        engine_configured=bool(engine.api_key and engine.secret_key),
    )


@app.get("/ocr/config", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Return upload limits and supported kinds, without credentials."""
    policy = upload_policy(load_config().upload)
    return ConfigResponse(success=True, data=UploadPolicyResponse(**policy.to_dict()))


@app.post("/ocr/recognize", response_model=RecognitionResponse)
async def recognize(
    image: Annotated[UploadFile, File(...)],
    kind: Annotated[str, Query()] = RecognitionKind.GENERAL.value,
) -> RecognitionResponse:
    """Recognize an uploaded image as the requested kind."""
    return await _recognize_upload(image, kind)


@app.post("/ocr/license-plate", response_model=RecognitionResponse)
async def recognize_license_plate(
    image: Annotated[UploadFile, File(...)],
) -> RecognitionResponse:
    """Recognize the license plate in an uploaded photo."""
    return await _recognize_upload(image, RecognitionKind.LICENSE_PLATE)


@app.post("/ocr/vin", response_model=RecognitionResponse)
async def recognize_vin(
    image: Annotated[UploadFile, File(...)],
) -> RecognitionResponse:
    """Find vehicle identification numbers in an uploaded photo."""
    return await _recognize_upload(image, RecognitionKind.VIN)


@app.post("/ocr/invoice", response_model=RecognitionResponse)
async def recognize_invoice(
    image: Annotated[UploadFile, File(...)],
) -> RecognitionResponse:
    """Recognize a repair invoice and mine its amounts, dates, and items."""
    return await _recognize_upload(image, RecognitionKind.INVOICE)
