import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from models.models import DetectionRecord
from queries.queries import (
    append_detection_to_user,
    query_detections_by_owner,
    query_user_detection_link,
    save_detection_record,
)
from services.errors import LinkError, PersistenceError

logger = logging.getLogger(__name__)


class DetectionStore:
    """Persists detection records; blocking DB work runs in a worker thread."""

    def __init__(self, db: Session) -> None:
        self.db = db

    async def create(
        self,
        owner_id: int,
        prediction: Optional[Dict[str, Any]],
        confidence: float = 0.0,
        image: Optional[bytes] = None,
    ) -> DetectionRecord:
        return await asyncio.to_thread(
            self._create, owner_id, prediction, confidence, image
        )

    def _create(self, owner_id, prediction, confidence, image):
        try:
            return save_detection_record(
                self.db,
                image=image,
                prediction=prediction,
                confidence=confidence,
                owner_id=owner_id,
            )
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to save detection for user %s: %s", owner_id, exc)
            raise PersistenceError() from exc

    async def list_by_owner(self, owner_id: int) -> List[DetectionRecord]:
        return await asyncio.to_thread(self._list_by_owner, owner_id)

    def _list_by_owner(self, owner_id):
        try:
            return query_detections_by_owner(self.db, owner_id)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to list detections for user %s: %s", owner_id, exc)
            raise PersistenceError("The detections could not be loaded.") from exc


class UserLinker:
    """Appends detection ids to their owner's ordered detection list."""

    def __init__(self, db: Session) -> None:
        self.db = db

    async def link_detection(self, owner_id: int, detection_id: str) -> None:
        await asyncio.to_thread(self.link_detection_sync, owner_id, detection_id)

    def link_detection_sync(self, owner_id: int, detection_id: str) -> None:
        """Raises ``LinkError`` if the owner is missing or the update fails.

        Linking a record that is already linked to the same owner is a no-op.
        """
        try:
            appended = append_detection_to_user(self.db, owner_id, detection_id)
        except IntegrityError as exc:
            self.db.rollback()
            if query_user_detection_link(self.db, owner_id, detection_id) is not None:
                return
            logger.error(
                "Detection %s cannot be linked to user %s, it is already linked elsewhere: %s",
                detection_id, owner_id, exc,
            )
            raise LinkError() from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.error("Failed to link detection %s to user %s: %s", detection_id, owner_id, exc)
            raise LinkError() from exc

        if not appended:
            raise LinkError(f"User {owner_id} does not exist.")
