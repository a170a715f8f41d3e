from typing import Any, Dict, List, Optional

from sqlalchemy import insert, literal, select
from sqlalchemy.orm import Session

from models.models import DetectionRecord, User, UserDetection


def save_detection_record(
    db: Session,
    image: Optional[bytes],
    prediction: Optional[Dict[str, Any]],
    confidence: float,
    owner_id: int,
) -> DetectionRecord:
    record = DetectionRecord(
        image=image,
        prediction=prediction,
        confidence=confidence,
        owner_id=owner_id,
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def query_detections_by_owner(db: Session, owner_id: int) -> List[DetectionRecord]:
    return (
        db.query(DetectionRecord)
        .filter(DetectionRecord.owner_id == owner_id)
        .order_by(DetectionRecord.created_at)
        .all()
    )


def append_detection_to_user(db: Session, owner_id: int, detection_id: str) -> bool:
    """Append ``detection_id`` to the user's list in a single statement.

    The row is produced by selecting the user itself, so nothing is inserted
    when the user does not exist. Returns whether a row was appended.
    """
    stmt = insert(UserDetection).from_select(
        ["user_id", "detection_id"],
        select(User.id, literal(detection_id)).where(User.id == owner_id),
    )
    result = db.execute(stmt)
    db.commit()
    return result.rowcount == 1


def query_user_detection_link(db: Session, owner_id: int, detection_id: str):
    return (
        db.query(UserDetection)
        .filter(
            UserDetection.user_id == owner_id,
            UserDetection.detection_id == detection_id,
        )
        .first()
    )


def query_user_detection_ids(db: Session, owner_id: int) -> List[str]:
    rows = (
        db.query(UserDetection.detection_id)
        .filter(UserDetection.user_id == owner_id)
        .order_by(UserDetection.id)
        .all()
    )
    # rows are tuples like [('<uuid>',), ...]
    return [row[0] for row in rows]
