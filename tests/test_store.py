import asyncio
import logging
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from models.models import User
from queries.queries import query_user_detection_ids
from services.errors import LinkError, PersistenceError
from services.store import DetectionStore, UserLinker


def test_create_assigns_id_and_timestamp(db, make_user):
    user_id = make_user()
    store = DetectionStore(db)

    record = asyncio.run(
        store.create(user_id, {"label": "benign", "scores": [0.1, 0.9]}, confidence=0.9, image=b"img")
    )

    assert record.id
    assert record.created_at is not None
    assert record.owner_id == user_id
    assert record.image == b"img"
    assert record.prediction == {"label": "benign", "scores": [0.1, 0.9]}
    assert record.confidence == 0.9


def test_create_stores_nested_prediction_without_schema(db, make_user):
    user_id = make_user()
    prediction = {"label": "x", "meta": {"model": {"name": "v2", "layers": [1, 2, {"k": None}]}}}

    record = asyncio.run(DetectionStore(db).create(user_id, prediction))

    db.expire_all()
    stored = asyncio.run(DetectionStore(db).list_by_owner(user_id))[0]
    assert stored.id == record.id
    assert stored.prediction == prediction
    assert stored.confidence == 0.0
    assert stored.image is None


def test_create_wraps_storage_failure(db, make_user):
    user_id = make_user()

    with patch(
        "services.store.save_detection_record",
        side_effect=OperationalError("INSERT", {}, Exception("disk full")),
    ):
        with pytest.raises(PersistenceError) as exc_info:
            asyncio.run(DetectionStore(db).create(user_id, {"label": "x"}))

    assert exc_info.value.status_code == 500
    assert "disk full" not in exc_info.value.message


def test_list_by_owner_returns_only_owner_records(db, make_user):
    alice = make_user("alice")
    bob = make_user("bob")
    store = DetectionStore(db)
    for label in ("a", "b"):
        asyncio.run(store.create(alice, {"label": label}))
    asyncio.run(store.create(bob, {"label": "c"}))

    records = asyncio.run(store.list_by_owner(alice))

    assert sorted(r.prediction["label"] for r in records) == ["a", "b"]
    assert all(r.owner_id == alice for r in records)


def test_list_by_owner_without_records_is_empty(db, make_user):
    user_id = make_user()

    assert asyncio.run(DetectionStore(db).list_by_owner(user_id)) == []


def test_list_by_owner_is_repeatable(db, make_user):
    user_id = make_user()
    store = DetectionStore(db)
    asyncio.run(store.create(user_id, {"label": "a"}))
    asyncio.run(store.create(user_id, {"label": "b"}))

    first = {r.id for r in asyncio.run(store.list_by_owner(user_id))}
    second = {r.id for r in asyncio.run(store.list_by_owner(user_id))}

    assert first == second


def test_link_appends_in_order(db, make_user):
    user_id = make_user()
    store = DetectionStore(db)
    linker = UserLinker(db)
    ids = []
    for label in ("a", "b", "c"):
        record = asyncio.run(store.create(user_id, {"label": label}))
        asyncio.run(linker.link_detection(user_id, record.id))
        ids.append(record.id)

    assert query_user_detection_ids(db, user_id) == ids
    assert db.get(User, user_id).detection_images == ids


def test_link_unknown_owner_raises_link_error(db, make_user):
    user_id = make_user()
    record = asyncio.run(DetectionStore(db).create(user_id, {"label": "a"}))

    with pytest.raises(LinkError):
        asyncio.run(UserLinker(db).link_detection(user_id + 1000, record.id))

    # the record itself is kept
    assert [r.id for r in asyncio.run(DetectionStore(db).list_by_owner(user_id))] == [record.id]


def test_link_is_idempotent_for_same_owner(db, make_user):
    user_id = make_user()
    record = asyncio.run(DetectionStore(db).create(user_id, {"label": "a"}))
    linker = UserLinker(db)

    asyncio.run(linker.link_detection(user_id, record.id))
    asyncio.run(linker.link_detection(user_id, record.id))

    assert query_user_detection_ids(db, user_id) == [record.id]


def test_link_to_second_owner_is_refused_and_logged(db, make_user, caplog):
    alice = make_user("alice")
    bob = make_user("bob")
    record = asyncio.run(DetectionStore(db).create(alice, {"label": "a"}))
    asyncio.run(UserLinker(db).link_detection(alice, record.id))

    with caplog.at_level(logging.ERROR, logger="services.store"):
        with pytest.raises(LinkError):
            asyncio.run(UserLinker(db).link_detection(bob, record.id))

    assert "already linked elsewhere" in caplog.text
    assert record.id in caplog.text
    assert query_user_detection_ids(db, alice) == [record.id]
    assert query_user_detection_ids(db, bob) == []


def test_link_wraps_storage_failure(db, make_user):
    user_id = make_user()

    with patch(
        "services.store.append_detection_to_user",
        side_effect=OperationalError("INSERT", {}, Exception("locked")),
    ):
        with pytest.raises(LinkError):
            asyncio.run(UserLinker(db).link_detection(user_id, "some-id"))


def test_concurrent_links_for_same_user_lose_no_updates(session_factory, db, make_user):
    user_id = make_user()
    store = DetectionStore(db)
    record_ids = [
        asyncio.run(store.create(user_id, {"label": str(i)})).id for i in range(8)
    ]

    async def link_all():
        sessions = [session_factory() for _ in record_ids]
        try:
            await asyncio.gather(
                *(
                    UserLinker(session).link_detection(user_id, record_id)
                    for session, record_id in zip(sessions, record_ids)
                )
            )
        finally:
            for session in sessions:
                session.close()

    asyncio.run(link_all())

    linked = query_user_detection_ids(db, user_id)
    assert len(linked) == len(record_ids)
    assert set(linked) == set(record_ids)
