import os
from io import BytesIO

import pytest
from PIL import Image
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database.db import Base
from models.models import User


def make_image_bytes(fmt="JPEG", size=(1024, 768), mode="RGB", color=(200, 30, 30)):
    if mode == "RGBA":
        img = Image.new("RGBA", size, color + (128,))
    else:
        img = Image.new("RGB", size, color).convert(mode)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def image_bytes():
    return make_image_bytes


@pytest.fixture
def session_factory(tmp_path):
    db_path = os.path.join(str(tmp_path), "test_detections.db")
    engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autoflush=False, autocommit=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    def _make_user(username="alice"):
        user = User(username=username, password="secret")
        db.add(user)
        db.commit()
        db.refresh(user)
        return user.id

    return _make_user
