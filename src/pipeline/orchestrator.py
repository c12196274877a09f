"""Recognition pipeline orchestration.

Routes a recognition request through preprocessing, the recognition
gateway, normalization and, for invoices, repair fact extraction. Each
run moves through ``received -> preprocessing -> recognizing ->
normalizing -> (extracting) -> done | failed`` and always removes the
derived preprocessed image, and the source upload when it was handed
over, before it ends. An async run that is cancelled releases both files
and the live engine session immediately.
"""

import asyncio
from collections.abc import Iterator, Mapping
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from src.extraction.repair_info import ExtractedRepairInfo, extract_repair_info
from src.preprocessing.pipeline import ImagePreprocessor, Original, PreparedImage
from src.recognition.cancellation import Cancellation, cancellation_scope, on_cancel
from src.recognition.errors import EngineError
from src.recognition.gateway import (
    BaiduOcrGateway,
    RecognitionGateway,
    raise_for_provider_error,
)
from src.recognition.invoice import recognize_invoice
from src.recognition.models import NormalizedResult, RecognitionKind
from src.recognition.normalizer import (
    normalize_general,
    normalize_plate,
    normalize_vin,
)
from src.utils.config import AppConfig, UploadConfig, load_config
from src.utils.logger import get_logger

from .errors import ErrorClassification, PipelineError, UnsupportedKindError

logger = get_logger(__name__)

VIN_ENGINE_OPTIONS: dict[str, Any] = {"language_type": "ENG", "detect_direction": True}


class PipelineStage(StrEnum):
    """States a pipeline run passes through."""

    RECEIVED = "received"
    PREPROCESSING = "preprocessing"
    RECOGNIZING = "recognizing"
    NORMALIZING = "normalizing"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


_TERMINAL_STAGES = frozenset({PipelineStage.DONE, PipelineStage.FAILED})


@dataclass(frozen=True)
class RecognitionRequest:
    """A single recognition request for one uploaded image."""

    source_image_path: Path
    kind: RecognitionKind | str
    engine_options: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PipelineResult:
    """Structured outcome of a successful pipeline run."""

    kind: RecognitionKind
    result: NormalizedResult
    repair_info: ExtractedRepairInfo | None = None
    full_text: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = self.result.to_dict()
        if self.repair_info is not None:
            data["repair_info"] = self.repair_info.to_dict()
        if self.full_text is not None:
            data["supplementary_text"] = self.full_text
        return data


@dataclass(frozen=True)
class UploadPolicy:
    """Upload limits callers check before starting a run."""

    max_file_size: int
    allowed_mime_types: tuple[str, ...]
    supported_kinds: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_file_size": self.max_file_size,
            "allowed_mime_types": list(self.allowed_mime_types),
            "supported_kinds": list(self.supported_kinds),
        }


def upload_policy(config: UploadConfig) -> UploadPolicy:
    """Return the read-only upload policy for the given configuration."""
    return UploadPolicy(
        max_file_size=config.max_file_size,
        allowed_mime_types=tuple(config.allowed_mime_types),
        supported_kinds=tuple(kind.value for kind in RecognitionKind),
    )


def resolve_kind(kind: RecognitionKind | str) -> RecognitionKind:
    """Validate a requested kind.

    Raises:
        UnsupportedKindError: If ``kind`` is not a known recognition kind.
    """
    try:
        return RecognitionKind(kind)
    except ValueError as exc:
        raise UnsupportedKindError(kind) from exc


def remove_file(path: Path) -> None:
    """Delete a temporary file; failures are logged, not raised."""
    try:
        path.unlink(missing_ok=True)
    except OSError as exc:
        logger.error("Failed to remove temporary file %s: %s", path, exc)


@contextmanager
def prepared_image(
    preprocessor: ImagePreprocessor, source: Path
) -> Iterator[PreparedImage]:
    """Prepare an image and remove the derived copy when the block exits.

    A preprocessor that raises degrades to the original image. Within an
    active cancellation the derived copy is also removed when the run is
    cancelled.
    """
    try:
        prepared = preprocessor.prepare(source)
    except Exception as exc:
        logger.warning(
            "Preprocessor raised for %s, using original image: %s", source, exc
        )
        prepared = Original(path=source, reason=str(exc))
    release = (
        on_cancel(lambda: remove_file(prepared.path))
        if prepared.is_derived
        else nullcontext()
    )
    try:
        with release:
            yield prepared
    finally:
        if prepared.is_derived:
            remove_file(prepared.path)


class PipelineRun:
    """Tracks the stage of one pipeline run."""

    def __init__(
        self, request: RecognitionRequest, cancellation: Cancellation | None = None
    ) -> None:
        self.request = request
        self.cancellation = cancellation
        self.stage = PipelineStage.RECEIVED
        self.history: list[PipelineStage] = [PipelineStage.RECEIVED]

    def transition(self, stage: PipelineStage) -> None:
        if self.cancellation is not None and stage not in _TERMINAL_STAGES:
            self.cancellation.raise_if_cancelled()
        name = Path(self.request.source_image_path).name
        logger.debug("Run %s: %s -> %s", name, self.stage, stage)
        self.stage = stage
        self.history.append(stage)


class RecognitionPipeline:
    """Entry point that turns an uploaded image into a structured result.

    Args:
        config: Application configuration.
        gateway: Recognition gateway; defaults to the Baidu OCR client.
        preprocessor: Image preprocessor; defaults to one built from config.
    """

    def __init__(
        self,
        config: AppConfig,
        gateway: RecognitionGateway | None = None,
        preprocessor: ImagePreprocessor | None = None,
    ) -> None:
        self.config = config
        self.gateway = gateway or BaiduOcrGateway(config.engine)
        self.preprocessor = preprocessor or ImagePreprocessor(config.preprocessing)

    def run(
        self,
        request: RecognitionRequest,
        delete_source: bool = False,
        cancellation: Cancellation | None = None,
    ) -> PipelineResult:
        """Run one request to completion.

        Args:
            request: The recognition request.
            delete_source: Whether the source image is owned by this run and
                must be deleted when it ends.
            cancellation: Cancellation shared with an awaiting caller.

        Returns:
            The structured result for the requested kind.

        Raises:
            PipelineError: If the run ends in the failed state.
        """
        run = PipelineRun(request, cancellation)
        source = Path(request.source_image_path)
        try:
            try:
                kind = resolve_kind(request.kind)
                run.transition(PipelineStage.PREPROCESSING)
                with (
                    cancellation_scope(cancellation),
                    prepared_image(self.preprocessor, source) as prepared,
                ):
                    image = prepared.path.read_bytes()
                    result = self._dispatch(run, kind, image, request.engine_options)
            except PipelineError as exc:
                exc.stage = exc.stage or run.stage.value
                run.transition(PipelineStage.FAILED)
                logger.error("Run failed at %s: %s", exc.stage, exc.message)
                raise
            except EngineError as exc:
                failed_at = run.stage.value
                run.transition(PipelineStage.FAILED)
                logger.error(
                    "Engine error at %s: %s (%s)", failed_at, exc.message, exc.code
                )
                raise PipelineError.from_engine_error(exc, failed_at) from exc
            except Exception as exc:
                failed_at = run.stage.value
                run.transition(PipelineStage.FAILED)
                logger.exception("Unexpected error at %s", failed_at)
                raise PipelineError(
                    ErrorClassification.UNKNOWN, str(exc), failed_at
                ) from exc
        finally:
            if delete_source:
                remove_file(source)

        run.transition(PipelineStage.DONE)
        logger.info("Recognized %s as %s", source.name, kind)
        return result

    async def arun(
        self, request: RecognitionRequest, delete_source: bool = False
    ) -> PipelineResult:
        """Run a request on a worker thread so the event loop stays free.

        If the awaiting task is cancelled, the live engine session is closed
        and the derived image is removed before the cancellation propagates,
        along with the source image when ``delete_source`` is set. The worker
        thread then stops at its next engine call or stage transition.
        """
        cancellation = Cancellation()
        try:
            return await asyncio.to_thread(
                self.run, request, delete_source, cancellation
            )
        except asyncio.CancelledError:
            source = Path(request.source_image_path)
            logger.warning("Run for %s cancelled, releasing resources", source.name)
            cancellation.cancel()
            if delete_source:
                remove_file(source)
            raise

    def _dispatch(
        self,
        run: PipelineRun,
        kind: RecognitionKind,
        image: bytes,
        options: Mapping[str, Any],
    ) -> PipelineResult:
        run.transition(PipelineStage.RECOGNIZING)

        if kind is RecognitionKind.GENERAL:
            raw = raise_for_provider_error(self.gateway.general_text(image, options))
            run.transition(PipelineStage.NORMALIZING)
            return PipelineResult(kind=kind, result=normalize_general(raw))

        if kind is RecognitionKind.LICENSE_PLATE:
            raw = raise_for_provider_error(self.gateway.license_plate(image))
            run.transition(PipelineStage.NORMALIZING)
            return PipelineResult(kind=kind, result=normalize_plate(raw))

        if kind is RecognitionKind.VIN:
            raw = raise_for_provider_error(
                self.gateway.general_text(image, {**VIN_ENGINE_OPTIONS, **options})
            )
            run.transition(PipelineStage.NORMALIZING)
            vin = normalize_vin(normalize_general(raw))
            return PipelineResult(kind=kind, result=vin)

        if kind is RecognitionKind.INVOICE:
            invoice = recognize_invoice(self.gateway, image)
            raw = raise_for_provider_error(self.gateway.general_text(image, options))
            run.transition(PipelineStage.NORMALIZING)
            general = normalize_general(raw)
            run.transition(PipelineStage.EXTRACTING)
            return PipelineResult(
                kind=kind,
                result=invoice,
                repair_info=extract_repair_info(general),
                full_text=general.full_text,
            )

        raise UnsupportedKindError(kind)


def run_pipeline(
    image_path: Path | str,
    kind: RecognitionKind | str,
    options: Mapping[str, Any] | None = None,
    *,
    pipeline: RecognitionPipeline | None = None,
    delete_source: bool = False,
) -> PipelineResult:
    """Recognize one image with a default or supplied pipeline.

    Args:
        image_path: Path to the image to recognize.
        kind: Recognition kind name or enum member.
        options: Extra engine options for text recognition.
        pipeline: Pipeline to use; one is built from the loaded config if omitted.
        delete_source: Whether to delete ``image_path`` once the run ends.

    Returns:
        The structured pipeline result.

    Raises:
        PipelineError: If the run fails.
    """
    pipeline = pipeline or RecognitionPipeline(load_config())
    request = RecognitionRequest(
        source_image_path=Path(image_path),
        kind=kind,
        engine_options=dict(options or {}),
    )
    return pipeline.run(request, delete_source=delete_source)
