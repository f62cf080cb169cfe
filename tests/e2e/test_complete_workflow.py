"""End-to-end generation runs against real files."""

import tempfile
import unittest
from pathlib import Path

from schemaforge.application.dtos.generation_dto import GenerationRequest
from schemaforge.domain.entities.evolution import Classification, OperationKind
from schemaforge.domain.errors import ConfigLoadFailed, ResolutionFailed, UnconfirmedBreakingChange
from schemaforge.infrastructure.di_container import DIContainer

ROOT = """
project:
  name: shop
database:
  provider: postgresql
imports:
  security: security.yaml
services:
  - services/billing.yaml
models:
  users:
    fields:
{user_fields}
"""

SECURITY = """
auth:
  enabled: true
roles:
  admin:
    permissions: ["users:*:all", "invoices:read:all"]
"""

BILLING = """
base_path: /billing
rate_limit: 100/minute
endpoints:
  - path: /invoices
    methods: [GET, POST]
    permissions: ["invoices:read:own"]
    table: invoices
models:
  invoices:
    fields:
      id: "integer, primary_key, auto_increment"
      user_id: "uuid, required, references=users.id"
      amount: "float, required, min_value=0"
    relations:
      owner:
        type: many_to_one
        table: users
        field: user_id
"""

USERS = {
    "id": "uuid, primary_key",
    "email": "string, required, unique, max_length=255",
}


class TestCompleteWorkflow(unittest.TestCase):
    """Resolve, plan and snapshot through the DI container."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        (self.root / "services").mkdir()
        (self.root / "security.yaml").write_text(SECURITY, encoding="utf-8")
        (self.root / "services" / "billing.yaml").write_text(BILLING, encoding="utf-8")
        self.write_root(USERS)

        self.container = DIContainer()
        self.container.configure(snapshot_path=str(self.root / ".schemaforge" / "snapshot.json"), loader_workers=2)

    def tearDown(self):
        self._tmp.cleanup()

    def write_root(self, user_fields):
        lines = "\n".join(f'      {name}: "{definition}"' for name, definition in user_fields.items())
        (self.root / "schemaforge.yaml").write_text(ROOT.format(user_fields=lines), encoding="utf-8")

    def generate(self, emit_plan=None, **kwargs):
        request = GenerationRequest(config_path=str(self.root / "schemaforge.yaml"), **kwargs)
        return self.container.get_orchestrator().generate(request, emit_plan=emit_plan)

    def test_first_run_creates_every_table(self):
        response = self.generate()

        self.assertEqual(
            [(op.kind, op.table) for op in response.plan.operations],
            [(OperationKind.CREATE_TABLE, "users"), (OperationKind.CREATE_TABLE, "invoices")],
        )
        self.assertIsNone(response.previous_fingerprint)
        self.assertTrue(response.snapshot_written)
        self.assertEqual(response.graph.get_service("billing").tables, ("invoices",))
        self.assertTrue(response.graph.settings.auth_enabled)

    def test_safe_addition(self):
        self.generate()
        self.write_root(dict(USERS, name="string, default=''"))

        response = self.generate()

        self.assertEqual([op.describe() for op in response.plan.operations], ["add_field(users.name)"])
        self.assertEqual(response.plan.operations[0].classification, Classification.SAFE)
        self.assertEqual(len(response.plan.auto_apply), 1)
        self.assertEqual(response.plan.pending_confirmation, ())
        self.assertTrue(response.migration_required)

    def test_breaking_drop_needs_override(self):
        first = self.generate()
        self.write_root({"id": "uuid, primary_key"})

        with self.assertRaises(UnconfirmedBreakingChange) as ctx:
            self.generate()
        self.assertEqual([op.describe() for op in ctx.exception.plan.pending_confirmation], ["drop_field(users.email)"])

        # the refused run did not touch the snapshot
        store = self.container.get_snapshot_store()
        self.assertEqual(store.read(), first.graph)

        response = self.generate(allow_breaking=True)
        self.assertTrue(response.snapshot_written)
        self.assertEqual(store.read_previous(), first.graph)

    def test_plan_is_emitted_before_the_snapshot_moves(self):
        self.generate()
        self.write_root(dict(USERS, name="string, default=''"))
        store = self.container.get_snapshot_store()
        before = store.read()

        def failing_emitter(plan):
            raise OSError("disk full")

        with self.assertRaises(OSError):
            self.generate(emit_plan=failing_emitter)
        self.assertEqual(store.read(), before)

        emitted = []
        response = self.generate(emit_plan=emitted.append)
        self.assertEqual([op.describe() for op in emitted[0].operations], ["add_field(users.name)"])
        self.assertTrue(response.snapshot_written)

    def test_empty_plan_is_not_emitted(self):
        self.generate()
        emitted = []
        self.generate(emit_plan=emitted.append)
        self.assertEqual(emitted, [])

    def test_dry_run_reports_breaking_changes_without_writing(self):
        self.generate()
        self.write_root({"id": "uuid, primary_key"})

        response = self.generate(dry_run=True)

        self.assertTrue(response.plan.has_breaking_changes)
        self.assertFalse(response.snapshot_written)

    def test_no_op_run(self):
        first = self.generate()

        second = self.generate()

        self.assertTrue(second.plan.is_empty)
        self.assertFalse(second.migration_required)
        self.assertFalse(second.snapshot_written)
        self.assertEqual(second.fingerprint, first.fingerprint)
        self.assertEqual(second.previous_fingerprint, first.fingerprint)

    def test_duplicate_table_across_service_files(self):
        (self.root / "services" / "ledger.yaml").write_text(BILLING, encoding="utf-8")
        root = (self.root / "schemaforge.yaml").read_text(encoding="utf-8")
        root = root.replace("  - services/billing.yaml\n", "  - services/billing.yaml\n  - services/ledger.yaml\n")
        (self.root / "schemaforge.yaml").write_text(root, encoding="utf-8")

        with self.assertRaises(ResolutionFailed) as ctx:
            self.generate()

        self.assertEqual(ctx.exception.kinds(), ["DuplicateTableName"])
        message = ctx.exception.errors[0].message
        self.assertIn("billing.yaml", message)
        self.assertIn("ledger.yaml", message)
        self.assertIsNone(self.container.get_snapshot_store().read())

    def test_missing_service_file(self):
        (self.root / "services" / "billing.yaml").unlink()

        with self.assertRaises(ConfigLoadFailed) as ctx:
            self.generate()
        self.assertEqual(ctx.exception.kinds(), ["MissingConfigFile"])


if __name__ == '__main__':
    unittest.main()
