"""Unit tests for DiffEngine."""

import unittest

from schemaforge.domain.entities.evolution import OperationKind
from schemaforge.domain.entities.field import Constraint
from schemaforge.domain.services.diff_engine import DiffEngine
from tests.fixtures.test_data import TestDataFactory


class TestDiffEngine(unittest.TestCase):
    """Test DiffEngine functionality."""

    def setUp(self):
        """Set up test fixtures."""
        self.engine = DiffEngine()
        self.users = TestDataFactory.create_users_graph()

    def kinds(self, changes):
        return [(c.kind, c.table, c.field) for c in changes]

    def test_identical_graphs_produce_no_operations(self):
        """Diffing a graph against itself is empty."""
        shop = TestDataFactory.create_shop_graph()
        self.assertEqual(self.engine.compute_diff(shop, shop), [])
        self.assertEqual(self.engine.compute_diff(shop, TestDataFactory.create_shop_graph()), [])

    def test_no_snapshot_creates_every_table(self):
        """Test that a missing baseline yields one create_table per table."""
        shop = TestDataFactory.create_shop_graph()

        changes = self.engine.compute_diff(None, shop)

        self.assertEqual([c.kind for c in changes], [OperationKind.CREATE_TABLE] * 4)
        self.assertEqual([c.table for c in changes], list(shop.table_names()))
        self.assertIs(changes[0].new_table, shop.tables[0])

    def test_add_field(self):
        """Test that a new field generates add_field."""
        # Arrange
        after = TestDataFactory.with_fields(self.users, "users", {
            "id": "uuid, primary_key",
            "email": "string, required, unique, max_length=255",
            "name": "string, default=''",
        })

        # Act
        changes = self.engine.compute_diff(self.users, after)

        # Assert
        self.assertEqual(self.kinds(changes), [(OperationKind.ADD_FIELD, "users", "name")])
        self.assertEqual(changes[0].new_field.default, "")

    def test_drop_field(self):
        after = TestDataFactory.with_fields(self.users, "users", {"id": "uuid, primary_key"})

        changes = self.engine.compute_diff(self.users, after)

        self.assertEqual(self.kinds(changes), [(OperationKind.DROP_FIELD, "users", "email")])
        self.assertEqual(changes[0].old_field.name, "email")

    def test_type_change_is_a_single_alter(self):
        """Test that integer -> float on 'total' yields exactly one alter_field_type."""
        before = TestDataFactory.create_shop_graph()
        after = TestDataFactory.with_fields(before, "orders", {
            "id": "uuid, primary_key",
            "user_id": "uuid, required, indexed, references=users.id",
            "total": "float, required, min_value=0",
            "status": "string, enum=pending|paid|shipped, default='pending'",
        })

        changes = self.engine.compute_diff(before, after)

        self.assertEqual(self.kinds(changes), [(OperationKind.ALTER_FIELD_TYPE, "orders", "total")])

    def test_bounds_default_and_enum_changes_fold_into_alter(self):
        after = TestDataFactory.with_fields(self.users, "users", {
            "id": "uuid, primary_key",
            "email": "string, required, unique, max_length=320",
        })
        changes = self.engine.compute_diff(self.users, after)
        self.assertEqual(self.kinds(changes), [(OperationKind.ALTER_FIELD_TYPE, "users", "email")])

    def test_constraint_toggles(self):
        """Test one operation per toggled constraint."""
        after = TestDataFactory.with_fields(self.users, "users", {
            "id": "uuid, primary_key",
            "email": "string, required, indexed, max_length=255",
        })

        changes = self.engine.compute_diff(self.users, after)

        self.assertEqual(
            [(c.kind, c.constraint) for c in changes],
            [
                (OperationKind.DROP_CONSTRAINT, Constraint.UNIQUE),
                (OperationKind.ADD_CONSTRAINT, Constraint.INDEXED),
            ],
        )
        self.assertTrue(all(c.old_field and c.new_field for c in changes))

    def test_type_and_constraint_change_together(self):
        after = TestDataFactory.with_fields(self.users, "users", {
            "id": "uuid, primary_key",
            "email": "text, required, unique",
        })
        changes = self.engine.compute_diff(self.users, after)
        self.assertEqual(len(changes), 1)
        self.assertEqual(changes[0].kind, OperationKind.ALTER_FIELD_TYPE)

    def test_dropped_table_has_no_child_operations(self):
        """Test that dropping a table does not also drop its fields."""
        before = TestDataFactory.create_shop_graph()
        after = TestDataFactory.without_table(before, "products")

        changes = self.engine.compute_diff(before, after)

        self.assertEqual(self.kinds(changes), [(OperationKind.DROP_TABLE, "products", None)])
        self.assertEqual(changes[0].old_table.name, "products")

    def test_rename_is_drop_plus_add(self):
        """Renames are never inferred."""
        after = TestDataFactory.with_fields(self.users, "users", {
            "id": "uuid, primary_key",
            "email_address": "string, required, unique, max_length=255",
        })
        changes = self.engine.compute_diff(self.users, after)
        self.assertEqual(
            self.kinds(changes),
            [(OperationKind.ADD_FIELD, "users", "email_address"), (OperationKind.DROP_FIELD, "users", "email")],
        )

    def test_field_order_is_not_a_change(self):
        after = TestDataFactory.with_fields(self.users, "users", {
            "email": "string, required, unique, max_length=255",
            "id": "uuid, primary_key",
        })
        self.assertEqual(self.engine.compute_diff(self.users, after), [])


if __name__ == '__main__':
    unittest.main()
