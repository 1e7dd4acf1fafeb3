"""
Unit tests for the ingestion mapper
"""

import json
import threading

import pytest

from common.bridge_core.config.config_model import OperationMode, SourceSettings
from common.bridge_core.errors import MapError, MissingIdField, ParseError, UnsupportedPropertyShape
from common.bridge_core.ingest import (
    ChangeKind,
    CreateOp,
    IdentityRegistry,
    IngestionMapper,
    UpdateOp,
    decide_operation,
    normalize_entity_id,
)

TOPIC = "sensors/s1"


def make_mapper(mode="upsert", **overrides):
    settings = SourceSettings(id="sensors", topic="sensors/#", mode=mode, **overrides)
    return IngestionMapper(settings)


def payload(**document):
    return json.dumps(document).encode("utf-8")


class TestDecideOperation:
    @pytest.mark.parametrize(
        "mode, already_seen, expected",
        [
            (OperationMode.UPSERT, False, ChangeKind.CREATE),
            (OperationMode.UPSERT, True, ChangeKind.UPDATE),
            (OperationMode.INSERT, False, ChangeKind.CREATE),
            (OperationMode.INSERT, True, ChangeKind.CREATE),
            (OperationMode.UPDATE, False, ChangeKind.UPDATE),
            (OperationMode.UPDATE, True, ChangeKind.UPDATE),
        ],
    )
    def test_decision_table(self, mode, already_seen, expected):
        assert decide_operation(mode, already_seen) is expected


class TestUpsertMode:
    def test_first_message_creates(self):
        mapper = make_mapper()

        change = mapper.map(TOPIC, payload(id="s1", temp=21.5))

        assert change == CreateOp(id="s1", label="MqttMessage", properties={"temp": 21.5})
        assert mapper.registry.contains("s1")

    def test_second_message_updates(self):
        mapper = make_mapper()
        mapper.map(TOPIC, payload(id="s1", temp=21.5))

        change = mapper.map(TOPIC, payload(id="s1", temp=22.0))

        assert change == UpdateOp(id="s1", properties={"temp": 22.0})

    def test_hundred_messages_one_create(self):
        mapper = make_mapper()

        kinds = [mapper.map(TOPIC, payload(id="s1", n=i)).kind for i in range(100)]

        assert kinds[0] is ChangeKind.CREATE
        assert kinds[1:] == [ChangeKind.UPDATE] * 99

    def test_distinct_ids_create_independently(self):
        mapper = make_mapper()

        first = mapper.map(TOPIC, payload(id="a"))
        second = mapper.map(TOPIC, payload(id="b"))

        assert first.kind is ChangeKind.CREATE
        assert second.kind is ChangeKind.CREATE
        assert mapper.registry.snapshot() == frozenset({"a", "b"})

    def test_concurrent_messages_for_new_id_create_once(self):
        mapper = make_mapper()
        barrier = threading.Barrier(8)
        kinds = []
        lock = threading.Lock()

        def worker(n):
            barrier.wait()
            change = mapper.map(TOPIC, payload(id="shared", n=n))
            with lock:
                kinds.append(change.kind)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert kinds.count(ChangeKind.CREATE) == 1
        assert kinds.count(ChangeKind.UPDATE) == 7


class TestInsertMode:
    def test_always_creates_and_records(self):
        mapper = make_mapper("insert")

        changes = [mapper.map(TOPIC, payload(id="s1", n=i)) for i in range(3)]

        assert all(isinstance(c, CreateOp) for c in changes)
        assert mapper.registry.contains("s1")


class TestUpdateMode:
    def test_always_updates_and_leaves_registry_alone(self):
        mapper = make_mapper("update")

        changes = [mapper.map(TOPIC, payload(id="s1", n=i)) for i in range(3)]

        assert all(isinstance(c, UpdateOp) for c in changes)
        assert len(mapper.registry) == 0


class TestPayloadErrors:
    def test_missing_id_leaves_registry_unchanged(self):
        mapper = make_mapper()

        with pytest.raises(MissingIdField) as exc_info:
            mapper.map(TOPIC, payload(temp=21.5))

        assert exc_info.value.id_field == "id"
        assert exc_info.value.topic == TOPIC
        assert len(mapper.registry) == 0

    def test_null_id_is_missing(self):
        mapper = make_mapper()

        with pytest.raises(MissingIdField) as exc_info:
            mapper.map(TOPIC, b'{"id": null}')

        assert exc_info.value.reason == "null"

    def test_non_scalar_id_is_missing(self):
        with pytest.raises(MissingIdField):
            make_mapper().map(TOPIC, b'{"id": [1, 2]}')

    @pytest.mark.parametrize(
        "raw",
        [
            b"not json",
            b"[1, 2, 3]",
            b'"just a string"',
            b'{"id": "s1", "temp": NaN}',
            b'{"id": "s1", "temp": Infinity}',
            b"\xff\xfe",
        ],
    )
    def test_parse_errors(self, raw):
        mapper = make_mapper()

        with pytest.raises(ParseError):
            mapper.map(TOPIC, raw)
        assert len(mapper.registry) == 0

    @pytest.mark.parametrize("value, shape", [({"lat": 1}, "object"), ([1, 2], "array")])
    def test_nested_values_rejected(self, value, shape):
        mapper = make_mapper()

        with pytest.raises(UnsupportedPropertyShape) as exc_info:
            mapper.map(TOPIC, payload(id="s1", location=value))

        assert exc_info.value.key == "location"
        assert exc_info.value.shape == shape
        assert len(mapper.registry) == 0

    def test_try_map_returns_error(self):
        mapper = make_mapper()

        change, error = mapper.try_map(TOPIC, b"{}")

        assert change is None
        assert isinstance(error, MapError)


class TestProperties:
    def test_scalar_coercion(self):
        change = make_mapper().map(
            TOPIC, b'{"id": "s1", "s": "x", "i": 3, "f": 1.5, "e": 1e3, "b": true, "n": null}'
        )

        assert change.properties == {"s": "x", "i": 3, "f": 1.5, "e": 1000.0, "b": True, "n": None}
        assert isinstance(change.properties["i"], int)
        assert isinstance(change.properties["e"], float)

    def test_custom_label_and_id_field(self):
        mapper = make_mapper(node_label="Sensor", id_field="device")

        change = mapper.map(TOPIC, payload(device="d7", temp=1))

        assert change == CreateOp(id="d7", label="Sensor", properties={"temp": 1})

    def test_include_id_property(self):
        change = make_mapper(include_id_property=True).map(TOPIC, payload(id="s1", temp=1))

        assert change.properties == {"id": "s1", "temp": 1}

    def test_to_dict(self):
        mapper = make_mapper()
        create = mapper.map(TOPIC, payload(id="s1", temp=1))
        update = mapper.map(TOPIC, payload(id="s1", temp=2))

        assert create.to_dict() == {"op": "create", "id": "s1", "label": "MqttMessage", "properties": {"temp": 1}}
        assert update.to_dict() == {"op": "update", "id": "s1", "properties": {"temp": 2}}


class TestIdNormalization:
    @pytest.mark.parametrize(
        "value, expected",
        [
            ("s1", "s1"),
            (42, "42"),
            (42.0, "42"),
            (-3, "-3"),
            (1.5, "1.5"),
            (True, "true"),
            (False, "false"),
            ({"a": 1}, None),
        ],
    )
    def test_normalize(self, value, expected):
        assert normalize_entity_id(value) == expected

    def test_numerically_equal_ids_are_one_entity(self):
        mapper = make_mapper()

        first = mapper.map(TOPIC, b'{"id": 42}')
        second = mapper.map(TOPIC, b'{"id": 42.0}')

        assert first.kind is ChangeKind.CREATE
        assert second.kind is ChangeKind.UPDATE
        assert second.id == "42"

    def test_shared_registry_between_mappers(self):
        registry = IdentityRegistry()
        settings = SourceSettings(id="sensors", topic="sensors/#")
        first = IngestionMapper(settings, registry)
        second = IngestionMapper(settings, registry)

        first.map(TOPIC, payload(id="s1"))

        assert second.map(TOPIC, payload(id="s1")).kind is ChangeKind.UPDATE
