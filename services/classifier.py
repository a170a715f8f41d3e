import logging
import uuid
from typing import Any, Dict, Optional

import httpx

import config
from services.errors import MalformedResponse, UpstreamError, UpstreamUnavailable
from services.normalizer import TARGET_CONTENT_TYPE

logger = logging.getLogger(__name__)


class PredictionClient:
    """Client for the external image classification endpoint.

    One POST per ``classify`` call, no retries. The endpoint answers with an
    envelope ``{"data": {...prediction...}}``; the nested prediction is
    returned unchanged.
    """

    def __init__(
        self,
        url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.url = url
        self.timeout = httpx.Timeout(timeout, connect=min(timeout, 5.0))
        self._transport = transport

    async def classify(self, image: bytes) -> Dict[str, Any]:
        # fresh name per attempt so upstream artifacts never collide
        filename = f"image-{uuid.uuid4().hex}.jpeg"
        files = {"image": (filename, image, TARGET_CONTENT_TYPE)}

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                response = await client.post(self.url, files=files)
            except httpx.TransportError as exc:
                logger.error("Classifier unreachable at %s: %s", self.url, exc)
                raise UpstreamUnavailable() from exc

        if not response.is_success:
            logger.error(
                "Classifier at %s returned status %s", self.url, response.status_code
            )
            raise UpstreamError()

        try:
            body = response.json()
        except ValueError as exc:
            logger.error("Classifier returned a non-JSON body")
            raise MalformedResponse() from exc

        prediction = body.get("data") if isinstance(body, dict) else None
        if not isinstance(prediction, dict):
            logger.error("Classifier response has no 'data' object: %r", body)
            raise MalformedResponse()

        logger.debug("Classifier response: %s", prediction)
        return prediction


_client: Optional[PredictionClient] = None


def get_prediction_client() -> PredictionClient:
    """FastAPI dependency returning the process-wide classifier client."""
    global _client
    if _client is None:
        _client = PredictionClient(config.CLASSIFIER_URL, timeout=config.CLASSIFIER_TIMEOUT)
    return _client
