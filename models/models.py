import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    JSON,
    LargeBinary,
    String,
)
from sqlalchemy.orm import relationship

from database.db import Base


def _utcnow():
    return datetime.now(timezone.utc)


class User(Base):
    __tablename__ = 'users'

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)

    detection_links = relationship(
        "UserDetection",
        order_by="UserDetection.id",
        back_populates="user",
    )

    @property
    def detection_images(self):
        """Ids of the user's detection records, in the order they were linked."""
        return [link.detection_id for link in self.detection_links]


class DetectionRecord(Base):
    __tablename__ = 'detection_records'

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    image = Column(LargeBinary, nullable=True)
    # classifier payload is open-shaped; stored as-is
    prediction = Column(JSON, nullable=True)
    confidence = Column(Float, nullable=False, default=0.0)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)
    owner_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)


class UserDetection(Base):
    """One entry of a user's ordered detection list."""

    __tablename__ = 'user_detections'

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey('users.id'), nullable=False, index=True)
    detection_id = Column(
        String, ForeignKey('detection_records.id'), nullable=False, unique=True
    )

    user = relationship("User", back_populates="detection_links")
