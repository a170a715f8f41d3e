import asyncio
import logging
import math
from typing import Any, Callable, Dict, List, Sequence

from starlette.datastructures import UploadFile

from models.models import DetectionRecord
from services.classifier import PredictionClient
from services.errors import (
    InvalidFileType,
    LinkError,
    MissingFile,
    MissingPrediction,
    UnexpectedFile,
)
from services.event_publisher import DETECTION_CREATED, DETECTION_UNLINKED, try_publish_event
from services.normalizer import normalize_image
from services.store import DetectionStore, UserLinker

logger = logging.getLogger(__name__)


def extract_confidence(payload: Dict[str, Any], key: str) -> float:
    """Numeric value under ``key``, or 0 when absent, not a number or not finite."""
    value = payload.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        number = float(value)
    except OverflowError:
        return 0.0
    return number if math.isfinite(number) else 0.0


def sanitize_prediction(value: Any) -> Any:
    """Copy of ``value`` with NaN and infinite floats replaced by ``None``.

    Such floats parse from JSON but cannot be written back into a response.
    """
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, dict):
        return {key: sanitize_prediction(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [sanitize_prediction(item) for item in value]
    return value


def validate_upload(uploads: Sequence[Any]) -> UploadFile:
    """Return the single uploaded image, rejecting anything else up front."""
    files = [upload for upload in uploads if isinstance(upload, UploadFile)]
    if not files:
        raise MissingFile()
    if len(files) > 1:
        raise UnexpectedFile()

    upload = files[0]
    if not (upload.content_type or "").startswith("image"):
        raise InvalidFileType()
    return upload


class DetectionPipeline:
    """validate -> normalize -> classify -> persist -> link.

    Each step runs only after the previous one succeeded. A failed link does
    not undo the stored record: the prediction is still returned and a
    ``detections.unlinked`` event lets the reconciliation consumer retry.
    """

    def __init__(
        self,
        client: PredictionClient,
        store: DetectionStore,
        linker: UserLinker,
        normalize: Callable[[bytes], bytes] = normalize_image,
    ) -> None:
        self.client = client
        self.store = store
        self.linker = linker
        self.normalize = normalize

    async def process(self, uploads: Sequence[Any], owner_id: int) -> Dict[str, Any]:
        upload = validate_upload(uploads)
        raw = await upload.read()

        # CPU-bound decode/resize stays off the event loop
        normalized = await asyncio.to_thread(self.normalize, raw)

        prediction = sanitize_prediction(await self.client.classify(normalized))

        record = await self.store.create(
            owner_id,
            prediction,
            confidence=extract_confidence(prediction, "confidence"),
            image=normalized,
        )
        logger.info("Saved detection %s for user %s", record.id, owner_id)

        try:
            await self.linker.link_detection(owner_id, record.id)
        except LinkError as exc:
            logger.warning(
                "Detection %s saved but not linked to user %s: %s",
                record.id, owner_id, exc,
            )
            await try_publish_event(
                DETECTION_UNLINKED, {"detection_id": record.id, "user_id": owner_id}
            )

        await try_publish_event(
            DETECTION_CREATED,
            {
                "detection_id": record.id,
                "user_id": owner_id,
                "confidence": record.confidence,
                "source": "upload",
            },
        )
        return prediction


class ManualSaveHandler:
    """Stores a client-supplied prediction without calling the classifier."""

    def __init__(self, store: DetectionStore) -> None:
        self.store = store

    async def save(self, payload: Any, owner_id: int) -> DetectionRecord:
        if not isinstance(payload, dict):
            raise MissingPrediction()
        payload = sanitize_prediction(payload)
        if payload.get("prediction") is None:
            raise MissingPrediction()

        # whole body is kept, extra client metadata included
        prediction = {**payload, "formData": payload.get("formData") or None}
        record = await self.store.create(
            owner_id,
            prediction,
            confidence=extract_confidence(payload, "probability"),
            image=None,
        )

        await try_publish_event(
            DETECTION_CREATED,
            {
                "detection_id": record.id,
                "user_id": owner_id,
                "confidence": record.confidence,
                "source": "manual",
            },
        )
        return record


class DetectionLister:

    def __init__(self, store: DetectionStore) -> None:
        self.store = store

    async def list(self, owner_id: int) -> List[DetectionRecord]:
        return await self.store.list_by_owner(owner_id)
