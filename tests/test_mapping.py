import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

import pytest

from spotkit.errors import BadRequestError, InternalServerError, OrmError
from spotkit.mapping import (
    PageRequest,
    base_query,
    build_mapping,
    clear_mapping_cache,
    get_column_name,
    to_snake_case,
    update_obj_fields,
)
from spotkit.query import Database


@dataclass
class SimpleStruct:
    tenant_id: uuid.UUID = field(
        default_factory=lambda: uuid.UUID(int=0), metadata={"column": "tenant_id"}
    )
    id: str = field(default="", metadata={"primary_key": True})
    name: str = ""
    created_at: datetime = field(default_factory=lambda: datetime(2024, 1, 1))


@dataclass
class StructWithColumnOverride:
    id: str = field(default="", metadata={"primary_key": True})
    name: str = field(default="", metadata={"column": "custom_name"})
    internal_data: str = field(default="", metadata={"json": "-", "column": "internal_data"})
    ignored_field: str = field(default="", metadata={"json": "-"})


@dataclass
class NestedStruct:
    value: str = field(default="", metadata={"column": "nested_value"})


@dataclass
class ComplexStruct:
    id: str = field(default="", metadata={"primary_key": True})
    name: str = ""
    nested: NestedStruct = field(default_factory=NestedStruct, metadata={"embedded": True})
    extra: NestedStruct = field(default_factory=NestedStruct)
    tenant_id: uuid.UUID = field(
        default_factory=lambda: uuid.UUID(int=0), metadata={"column": "tenant_id"}
    )


@dataclass
class Base1:
    id: str = field(default="", metadata={"column": "base1_id"})


@dataclass
class Base2:
    name: str = field(default="", metadata={"column": "base2_name"})


@dataclass
class MultiEmbed:
    base1: Base1 = field(default_factory=Base1, metadata={"embedded": True})
    base2: Base2 = field(default_factory=Base2, metadata={"embedded": True})
    description: str = ""


@dataclass
class PointerFieldStruct:
    id: Optional[str] = field(default=None, metadata={"column": "pointer_id"})
    created: Optional[datetime] = field(
        default=None, metadata={"json": "created_at", "column": "created_at"}
    )


@dataclass
class EmptyStruct:
    pass


@pytest.fixture
def db():
    database = Database()
    yield database
    database.close()


@pytest.mark.parametrize(
    "text, expected",
    [
        ("HelloWorld", "hello_world"),
        ("helloWorld", "hello_world"),
        ("User123Model", "user123_model"),
        ("Hello_World", "hello__world"),
        ("HTTPRequest", "http_request"),
        ("simpleURL", "simple_url"),
        ("ID", "id"),
        ("iOS", "i_os"),
        ("", ""),
        ("Already_snake_case", "already_snake_case"),
        ("_LeadingUnderscore", "__leading_underscore"),
        ("TrailingUnderscore_", "trailing_underscore_"),
        ("__DoubleUnderscore", "___double_underscore"),
        ("ABCDef", "abc_def"),
        ("A", "a"),
        ("APIClientConfig", "api_client_config"),
    ],
)
def test_to_snake_case(text, expected):
    assert to_snake_case(text) == expected


def test_build_mapping_simple():
    mapping = build_mapping(SimpleStruct)
    assert mapping == {
        "tenant_id": "tenant_id",
        "id": "id",
        "name": "name",
        "created_at": "created_at",
    }


def test_build_mapping_column_override():
    mapping = build_mapping(StructWithColumnOverride)
    assert mapping == {"id": "id", "name": "custom_name"}


def test_build_mapping_nested():
    assert build_mapping(NestedStruct) == {"value": "nested_value"}


def test_build_mapping_complex():
    mapping = build_mapping(ComplexStruct())
    assert mapping["id"] == "id"
    assert mapping["name"] == "name"
    assert mapping["value"] == "nested_value"
    assert mapping["extra"] == "extra"
    assert mapping["tenant_id"] == "tenant_id"
    assert len(mapping) == 5


def test_build_mapping_non_dataclass():
    assert build_mapping(str) == {}
    assert build_mapping("string") == {}


def test_build_mapping_empty_struct():
    assert build_mapping(EmptyStruct) == {}


def test_build_mapping_multiple_embedded():
    mapping = build_mapping(MultiEmbed)
    assert mapping == {"id": "base1_id", "name": "base2_name", "description": "description"}


def test_build_mapping_optional_fields():
    mapping = build_mapping(PointerFieldStruct)
    assert mapping == {"id": "pointer_id", "created_at": "created_at"}


def test_get_column_name_simple():
    assert get_column_name(SimpleStruct(), "id") == "id"
    assert get_column_name(SimpleStruct, "name") == "name"


def test_get_column_name_override_and_hidden():
    assert get_column_name(StructWithColumnOverride(), "name") == "custom_name"
    with pytest.raises(BadRequestError):
        get_column_name(StructWithColumnOverride(), "internal_data")


def test_get_column_name_complex():
    assert get_column_name(ComplexStruct(), "value") == "nested_value"
    assert get_column_name(ComplexStruct(), "tenant_id") == "tenant_id"


def test_get_column_name_unknown_key():
    with pytest.raises(BadRequestError, match="field key 'non_existent'"):
        get_column_name(SimpleStruct(), "non_existent")


def test_get_column_name_none():
    with pytest.raises(OrmError, match="object is nil"):
        get_column_name(None, "id")


def test_get_column_name_not_dataclass():
    with pytest.raises(OrmError, match="not a dataclass"):
        get_column_name("string", "id")


def test_get_column_name_empty_struct():
    with pytest.raises(BadRequestError):
        get_column_name(EmptyStruct(), "any")


def test_cache_cleared_and_rebuilt():
    assert get_column_name(ComplexStruct(), "id") == "id"
    clear_mapping_cache()
    assert get_column_name(ComplexStruct(), "value") == "nested_value"


def test_page_request_offset():
    assert PageRequest(page_size=10, page_number=2).offset() == 10
    assert PageRequest(page_size=10, page_number=1).offset() == 0
    assert PageRequest().offset() == 0


def test_base_query_tenant_and_user(db):
    tenant = uuid.uuid4()
    user = uuid.uuid4()
    sql, params = base_query(db, SimpleStruct, tenant, user, PageRequest()).to_sql()
    assert "tenant_id = ?" in sql
    assert "user_id = ?" in sql
    assert str(tenant) in params
    assert str(user) in params


def test_base_query_nil_ids_add_no_condition(db):
    nil = uuid.UUID(int=0)
    sql, params = base_query(db, SimpleStruct, nil, nil, PageRequest()).to_sql()
    assert "WHERE" not in sql
    assert params == ()


def test_base_query_paging(db):
    request = PageRequest(page_size=10, page_number=2)
    sql, _ = base_query(db, SimpleStruct, None, None, request).to_sql()
    assert sql.endswith("LIMIT 10 OFFSET 10")


def test_base_query_order_ascending(db):
    sql, _ = base_query(db, SimpleStruct, None, None, PageRequest(order="name")).to_sql()
    assert "ORDER BY name asc" in sql


def test_base_query_order_descending(db):
    sql, _ = base_query(db, SimpleStruct, None, None, PageRequest(order="-name")).to_sql()
    assert "ORDER BY name desc" in sql


def test_base_query_order_uses_column(db):
    request = PageRequest(order="name")
    sql, _ = base_query(db, StructWithColumnOverride, None, None, request).to_sql()
    assert "ORDER BY custom_name asc" in sql


def test_base_query_invalid_order(db):
    with pytest.raises(BadRequestError, match="field key 'nonexistent'"):
        base_query(db, SimpleStruct, None, None, PageRequest(order="nonexistent"))


def test_base_query_without_database():
    with pytest.raises(InternalServerError, match="database not initialized"):
        base_query(None, SimpleStruct, None, None, PageRequest())


def test_base_query_complex_struct(db):
    sql, _ = base_query(db, ComplexStruct, None, None, PageRequest()).to_sql()
    assert sql == 'SELECT * FROM "complex_structs"'


def _fetch(db, model, record_id):
    return db.model(model).where("id = ?", record_id).find()[0]


def test_update_obj_fields_single(db):
    db.create_table(SimpleStruct)
    obj = SimpleStruct(tenant_id=uuid.uuid4(), id="test-id-1", name="Original Name")
    db.insert(obj)
    obj.name = "Updated Name"
    update_obj_fields(db, obj, {"id": obj.id}, "name")
    fetched = _fetch(db, SimpleStruct, obj.id)
    assert fetched.name == "Updated Name"
    assert fetched.id == obj.id
    assert fetched.tenant_id == obj.tenant_id


def test_update_obj_fields_only_named_fields(db):
    db.create_table(SimpleStruct)
    obj = SimpleStruct(id="test-id-5", name="Keep")
    db.insert(obj)
    obj.name = "Changed locally"
    obj.created_at = datetime(2030, 1, 1)
    update_obj_fields(db, obj, {"id": obj.id}, "created_at")
    fetched = _fetch(db, SimpleStruct, obj.id)
    assert fetched.name == "Keep"
    assert fetched.created_at == datetime(2030, 1, 1)


def test_update_obj_fields_multiple(db):
    db.create_table(SimpleStruct)
    obj = SimpleStruct(id="test-id-2", name="Original Name", created_at=datetime(2024, 5, 1))
    db.insert(obj)
    obj.name = "New Name"
    obj.created_at = datetime(2024, 6, 1, 12, 0, 0)
    update_obj_fields(db, obj, {"id": obj.id}, "name", "created_at")
    fetched = _fetch(db, SimpleStruct, obj.id)
    assert fetched.name == "New Name"
    assert fetched.created_at == datetime(2024, 6, 1, 12, 0, 0)
    assert fetched.id == obj.id


def test_update_obj_fields_column_override(db):
    db.create_table(StructWithColumnOverride)
    obj = StructWithColumnOverride(
        id="test-id-3",
        name="Original Custom Name",
        internal_data="Original Internal Data",
        ignored_field="Ignored",
    )
    db.insert(obj)
    obj.name = "Updated Custom Name"
    obj.internal_data = "Updated Internal Data"
    update_obj_fields(db, obj, {"id": obj.id}, "name", "internal_data")
    fetched = _fetch(db, StructWithColumnOverride, obj.id)
    assert fetched.name == "Updated Custom Name"
    assert fetched.internal_data == "Updated Internal Data"


def test_update_obj_fields_invalid_model(db):
    with pytest.raises(InternalServerError):
        update_obj_fields(db, SimpleStruct, {"id": "test"}, "name")
    with pytest.raises(InternalServerError):
        update_obj_fields(db, None, {"id": "test"}, "name")


def test_update_obj_fields_without_database():
    with pytest.raises(InternalServerError, match="database is not initialized"):
        update_obj_fields(None, SimpleStruct(), {"id": "test"}, "name")


def test_update_obj_fields_missing_primary_key(db):
    with pytest.raises(InternalServerError, match="primary key"):
        update_obj_fields(db, SimpleStruct(name="Test"), {}, "name")


def test_update_obj_fields_non_string_parameter(db):
    obj = SimpleStruct(id="test-id-4", name="Test")
    with pytest.raises(InternalServerError, match="update parameter"):
        update_obj_fields(db, obj, {"id": obj.id}, 42)


def test_update_obj_fields_unknown_field(db):
    obj = SimpleStruct(id="test-id-4", name="Test")
    with pytest.raises(BadRequestError, match="field not found"):
        update_obj_fields(db, obj, {"id": obj.id}, "Updated")