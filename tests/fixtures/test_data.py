from dataclasses import replace
from typing import Dict

from schemaforge.domain.entities.config import ConfigurationBundle, ROOT_ROLE, service_role
from schemaforge.domain.entities.schema import SchemaGraph, TableSpec
from schemaforge.domain.services.constraint_parser import parse_field_definition


class TestDataFactory:
    """Factory for creating test data objects."""
    __test__ = False

    @staticmethod
    def table(name: str, fields: Dict[str, str], source: str = "schemaforge.yaml") -> TableSpec:
        return TableSpec(
            name=name,
            fields=tuple(parse_field_definition(n, d) for n, d in fields.items()),
            source=source,
        )

    @staticmethod
    def graph(*tables: TableSpec) -> SchemaGraph:
        return SchemaGraph(tables=tuple(tables))

    @staticmethod
    def create_users_graph() -> SchemaGraph:
        """users(id uuid pk, email string unique required)."""
        return TestDataFactory.graph(
            TestDataFactory.table("users", {
                "id": "uuid, primary_key",
                "email": "string, required, unique, max_length=255",
            })
        )

    @staticmethod
    def create_shop_graph() -> SchemaGraph:
        """users <- orders <- order_items, plus products."""
        return TestDataFactory.graph(
            TestDataFactory.table("users", {
                "id": "uuid, primary_key",
                "email": "string, required, unique, max_length=255",
                "created_at": "timestamp, auto_add",
            }),
            TestDataFactory.table("orders", {
                "id": "uuid, primary_key",
                "user_id": "uuid, required, indexed, references=users.id",
                "total": "integer, required, min_value=0",
                "status": "string, enum=pending|paid|shipped, default='pending'",
            }),
            TestDataFactory.table("order_items", {
                "id": "integer, primary_key, auto_increment",
                "order_id": "uuid, required, references=orders.id",
                "product_id": "integer, required, references=products.id",
                "quantity": "integer, required, min_value=1",
            }),
            TestDataFactory.table("products", {
                "id": "integer, primary_key, auto_increment",
                "sku": "string, required, unique, max_length=32",
                "price": "float, required, min_value=0",
            }),
        )

    @staticmethod
    def with_table(graph: SchemaGraph, table: TableSpec) -> SchemaGraph:
        return replace(graph, tables=graph.tables + (table,))

    @staticmethod
    def without_table(graph: SchemaGraph, name: str) -> SchemaGraph:
        return replace(graph, tables=tuple(t for t in graph.tables if t.name != name))

    @staticmethod
    def with_fields(graph: SchemaGraph, table_name: str, fields: Dict[str, str]) -> SchemaGraph:
        """Replace the fields of ``table_name`` with ``fields`` (name -> definition)."""
        tables = []
        for t in graph.tables:
            if t.name == table_name:
                t = replace(t, fields=tuple(parse_field_definition(n, d) for n, d in fields.items()))
            tables.append(t)
        return replace(graph, tables=tuple(tables))

    @staticmethod
    def create_bundle(root: Dict, services: Dict[str, Dict] = None, **imports: Dict) -> ConfigurationBundle:
        """Bundle built directly from documents, bypassing the loader."""
        documents = {ROOT_ROLE: root}
        sources = {ROOT_ROLE: "schemaforge.yaml"}
        for role, doc in imports.items():
            documents[role] = doc
            sources[role] = f"{role}.yaml"
        for name, doc in (services or {}).items():
            documents[service_role(name)] = doc
            sources[service_role(name)] = f"services/{name}.yaml"
        return ConfigurationBundle(root_path="schemaforge.yaml", documents=documents, sources=sources)
