"""Unit tests for the snapshot and plan document codec."""

import json
from dataclasses import replace
import unittest

from schemaforge.domain.entities.schema import (
    AuthPolicy,
    EndpointSpec,
    GlobalSettings,
    RateLimit,
    RelationKind,
    RelationSpec,
    SchemaGraph,
    ServiceSpec,
)
from schemaforge.domain.errors import SnapshotCorrupted
from schemaforge.infrastructure.serialization.snapshot_codec import (
    graph_fingerprint,
    graph_from_document,
    graph_to_document,
)
from tests.fixtures.test_data import TestDataFactory


def full_graph():
    shop = TestDataFactory.create_shop_graph()
    tables = list(shop.tables)
    tables[0] = TestDataFactory.table("users", {
        "id": "uuid, primary_key",
        "email": "string, required, unique, max_length=255",
        "score": "float, min_value=0, max_value=10.5, default=1",
        "active": "boolean, default=false",
        "level": "integer, enum=3|1|2, default=1",
        "meta": "json, default='{\"a\": 1}'",
    })
    tables[1] = replace(
        tables[1],
        relations=(RelationSpec(name="owner", kind=RelationKind.MANY_TO_ONE, target="users", field="user_id"),),
        source="services/orders.yaml",
    )
    return SchemaGraph(
        tables=tuple(tables),
        services=(
            ServiceSpec(
                name="orders",
                source="services/orders.yaml",
                base_path="/orders",
                tables=("orders",),
                endpoints=(EndpointSpec(path="/orders", methods=("GET", "POST"), permissions=("orders:read:own",)),),
                auth=AuthPolicy(required=True, permissions=("orders:*:own",)),
                rate_limit=RateLimit(requests=10, period_seconds=1),
            ),
        ),
        settings=GlobalSettings(project_name="shop", auth_enabled=True, auth_mode="jwt", api_prefix="/api"),
    )


class TestSnapshotCodec(unittest.TestCase):
    """Test exact round trips and integrity checks."""

    def test_round_trip_is_exact(self):
        graph = full_graph()
        # through real JSON text, as the file store does
        restored = graph_from_document(json.loads(json.dumps(graph_to_document(graph))))

        self.assertEqual(restored, graph)
        users = restored.get_table("users")
        self.assertEqual(users.field_names(), ("id", "email", "score", "active", "level", "meta"))
        self.assertIsInstance(users.get_field("score").default, float)
        self.assertIs(users.get_field("active").default, False)
        self.assertEqual(users.get_field("level").enum_values, (3, 1, 2))

    def test_fingerprint_is_stable_and_content_sensitive(self):
        graph = full_graph()
        self.assertEqual(graph_fingerprint(graph), graph_fingerprint(full_graph()))
        self.assertEqual(len(graph_fingerprint(graph)), 64)

        changed = TestDataFactory.with_fields(graph, "products", {"id": "integer, primary_key"})
        self.assertNotEqual(graph_fingerprint(graph), graph_fingerprint(changed))

    def test_document_carries_fingerprint(self):
        graph = TestDataFactory.create_users_graph()
        document = graph_to_document(graph)
        self.assertEqual(document["fingerprint"], graph_fingerprint(graph))
        self.assertEqual(document["format_version"], 1)

    def test_tampered_document_is_rejected(self):
        document = graph_to_document(TestDataFactory.create_users_graph())
        document["graph"]["tables"][0]["fields"][1]["constraints"] = []

        with self.assertRaises(SnapshotCorrupted):
            graph_from_document(document, "snapshot.json")

    def test_wrong_shape_is_rejected(self):
        with self.assertRaises(SnapshotCorrupted) as ctx:
            graph_from_document({"graph": {"tables": "nope"}}, "snapshot.json")
        self.assertEqual(ctx.exception.location, "snapshot.json")

    def test_unknown_format_version_is_rejected(self):
        document = graph_to_document(TestDataFactory.create_users_graph())
        document["format_version"] = 99
        with self.assertRaises(SnapshotCorrupted):
            graph_from_document(document)


if __name__ == '__main__':
    unittest.main()
