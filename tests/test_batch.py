import uuid
from dataclasses import dataclass, field

import pytest

from spotkit.batch import delete_objs, has_primary_key, update_objs
from spotkit.errors import BadRequestError
from spotkit.query import Database


@dataclass
class DeleteRecord:
    id: str = field(metadata={"primary_key": True})
    name: str = ""
    created_at: int = 0


@dataclass
class UpdateRecord:
    id: str = field(metadata={"primary_key": True})
    name: str = ""
    value: int = 0
    created_at: int = 0


@dataclass
class KeyedRecord:
    key: str = field(default="", metadata={"primary_key": True, "column": "record_id"})
    label: str = ""


@pytest.fixture
def db():
    database = Database()
    database.create_table(DeleteRecord)
    database.create_table(UpdateRecord)
    yield database
    database.close()


def _create_deletes(db, n):
    for i in range(n):
        db.insert(DeleteRecord(id=str(uuid.uuid4()), name=f"Test Record {i}", created_at=i))


def _create_updates(db, n):
    for i in range(n):
        db.insert(
            UpdateRecord(id=str(uuid.uuid4()), name=f"Test Record {i}", value=i, created_at=i)
        )


def _count_value(db, value):
    return db.model(UpdateRecord).where("value = ?", value).count()


def test_has_primary_key():
    assert has_primary_key(DeleteRecord, "id") is True
    assert has_primary_key(DeleteRecord, "name") is False
    assert has_primary_key(KeyedRecord(), "record_id") is True
    assert has_primary_key(KeyedRecord, "key") is False
    assert has_primary_key(str, "id") is False


def test_delete_all_records(db):
    _create_deletes(db, 5)
    assert db.model(DeleteRecord).count() == 5
    deleted = delete_objs(db.model(DeleteRecord), "id", 0, 2)
    assert deleted == 5
    assert db.model(DeleteRecord).count() == 0


def test_delete_with_filter(db):
    _create_deletes(db, 3)
    db.insert(DeleteRecord(id=str(uuid.uuid4()), name="Specific Record"))
    query = db.model(DeleteRecord).where({"name": "Specific Record"})
    assert delete_objs(query, "id", 0, 10) == 1
    remaining = db.model(DeleteRecord).find()
    assert len(remaining) == 3
    assert all(r.name != "Specific Record" for r in remaining)


def test_delete_with_limit(db):
    _create_deletes(db, 4)
    assert delete_objs(db.model(DeleteRecord), "id", 2, 10) == 2
    assert db.model(DeleteRecord).count() == 2


def test_delete_uses_query_limit(db):
    _create_deletes(db, 5)
    assert delete_objs(db.model(DeleteRecord).limit(3), "id", 0, 2) == 3
    assert db.model(DeleteRecord).count() == 2


def test_delete_invalid_query():
    with pytest.raises(BadRequestError, match="invalid query"):
        delete_objs(None, "id", 0, 10)


def test_delete_unknown_primary_key(db):
    with pytest.raises(BadRequestError, match="model primary key `missing` doesn't exist"):
        delete_objs(db.model(DeleteRecord), "missing", 0, 10)


def test_update_all_records(db):
    _create_updates(db, 4)
    assert db.model(UpdateRecord).count() == 4
    updated = update_objs(db.model(UpdateRecord), "id", {"value": 9}, 0, 2)
    assert updated == 4
    assert _count_value(db, 9) == 4


def test_update_with_equality_filter(db):
    _create_updates(db, 5)
    query = db.model(UpdateRecord).where({"value": 1})
    assert update_objs(query, "id", {"value": 42}, 0, 1) == 1
    assert _count_value(db, 42) == 1


def test_update_with_limit(db):
    _create_updates(db, 5)
    assert update_objs(db.model(UpdateRecord), "id", {"value": 7}, 2, 1) == 2
    assert _count_value(db, 7) == 2


def test_update_invalid_query():
    with pytest.raises(BadRequestError, match="invalid query"):
        update_objs(None, "id", {"v": 1}, 0, 1)


def test_update_empty_updates(db):
    with pytest.raises(BadRequestError, match="no updates provided"):
        update_objs(db.model(UpdateRecord), "id", {}, 0, 1)


def test_update_unknown_primary_key(db):
    with pytest.raises(BadRequestError, match="doesn't exist"):
        update_objs(db.model(UpdateRecord), "name", {"value": 1}, 0, 1)