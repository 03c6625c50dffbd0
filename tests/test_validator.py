"""Tests for dialect compatibility validation."""

import pytest

from db_reconcile.dialects import get_dialect
from db_reconcile.errors import DialectIncompatibilityError
from db_reconcile.reconcile import combine_validation
from db_reconcile.schema.comparator import compare_schemas
from db_reconcile.schema.ddl import generate_migration
from db_reconcile.schema.models import (
    Column,
    Constraint,
    DatabaseSchema,
    Function,
    Index,
    Sequence,
    Table,
    Trigger,
)
from db_reconcile.schema.validator import (
    PATTERNS,
    can_transform,
    validate_schema_for_dialect,
    validate_sql,
    validate_statements,
)


SAMPLE_STATEMENTS = [
    "CREATE SEQUENCE order_seq;",
    "CREATE TABLE t (id uuid DEFAULT gen_random_uuid(), tags text[]);",
    "CREATE TABLE p (price money, doc xml);",
    "ALTER TABLE o ADD CONSTRAINT o_fk FOREIGN KEY (uid) REFERENCES users (id);",
    "CREATE FUNCTION f() RETURNS void AS $$ BEGIN END $$ LANGUAGE plpgsql;",
    "CREATE TRIGGER trg BEFORE UPDATE ON t FOR EACH ROW EXECUTE FUNCTION f();",
    "CREATE INDEX docs_idx ON docs USING gin (body);",
    "CREATE TYPE mood AS ENUM ('a', 'b');",
    "CREATE EXTENSION IF NOT EXISTS pgcrypto;",
    "DO $$ BEGIN PERFORM 1; END $$;",
]


class TestSqlPatterns:
    """Pattern checks over SQL text."""

    def test_sqlite_sequence(self) -> None:
        """CREATE SEQUENCE is a DDL error on SQLite with an AUTOINCREMENT hint."""
        result = validate_sql("CREATE SEQUENCE order_seq;", get_dialect("sqlite"))

        assert result.valid is False
        [error] = result.errors
        assert (error.category, error.feature) == ("DDL", "CREATE_SEQUENCE")
        assert "AUTOINCREMENT" in error.alternative
        assert error.docs_url == "https://sqlite.org/lang.html"

    def test_postgres_accepts_everything(self) -> None:
        """PostgreSQL is the reference dialect."""
        result = validate_statements(SAMPLE_STATEMENTS, get_dialect("postgres"))
        assert result.valid is True
        assert result.errors == []

    def test_type_names_only_in_type_position(self) -> None:
        """A table named like a type is not a type."""
        assert validate_sql("CREATE TABLE path (id int);", get_dialect("sqlite")).valid
        assert not validate_sql("CREATE TABLE shapes (p path);", get_dialect("sqlite")).valid

    def test_blocked_type(self) -> None:
        """MONEY columns are rejected on CockroachDB."""
        result = validate_sql("CREATE TABLE p (price money NOT NULL);", get_dialect("cockroachdb"))
        assert [e.feature for e in result.errors] == ["MONEY"]
        assert result.errors[0].detected == "money"

    def test_warning_does_not_invalidate(self) -> None:
        """Warnings leave the result valid."""
        result = validate_sql(
            "CREATE TRIGGER trg BEFORE UPDATE ON t FOR EACH ROW EXECUTE FUNCTION f();",
            get_dialect("cockroachdb"),
        )
        assert result.valid is True
        assert [w.feature for w in result.warnings] == ["CREATE_TRIGGER"]

    def test_one_report_per_pattern(self) -> None:
        """A pattern matching twice is reported once."""
        result = validate_sql("CREATE SEQUENCE a; CREATE SEQUENCE b;", get_dialect("sqlite"))
        assert len(result.errors) == 1

    def test_dsql_serial(self) -> None:
        """Serial keys are rejected on Aurora DSQL."""
        result = validate_sql("CREATE TABLE t (id serial PRIMARY KEY);", get_dialect("dsql"))
        assert [e.feature for e in result.errors] == ["SERIAL"]

    def test_mysql_postgres_functions(self) -> None:
        """PostgreSQL-only functions are flagged on MySQL."""
        result = validate_sql(
            "CREATE TABLE t (id uuid DEFAULT gen_random_uuid());", get_dialect("mysql")
        )
        assert "GEN_RANDOM_UUID" in [e.feature for e in result.errors]

    def test_mysql_foreign_keys_allowed(self) -> None:
        """MySQL supports foreign keys; PlanetScale does not."""
        sql = "ALTER TABLE o ADD CONSTRAINT o_fk FOREIGN KEY (uid) REFERENCES users (id);"
        assert validate_sql(sql, get_dialect("mysql")).valid
        features = [e.feature for e in validate_sql(sql, get_dialect("planetscale")).errors]
        assert features == ["FOREIGN_KEY", "REFERENCES"]

    def test_statement_locations(self) -> None:
        """validate_statements locates issues by 1-based position."""
        result = validate_statements(
            ["CREATE TABLE t (id integer);", "CREATE SEQUENCE s;"], get_dialect("sqlite")
        )
        assert [e.location for e in result.errors] == ["statement 2"]

    def test_describe(self) -> None:
        """Issues render on one line."""
        error = validate_sql("CREATE SEQUENCE s;", get_dialect("sqlite"), location="statement 1").errors[0]
        assert error.describe() == (
            "[DDL] CREATE_SEQUENCE at statement 1: Sequences not supported - use AUTOINCREMENT "
            "(Use INTEGER PRIMARY KEY AUTOINCREMENT)"
        )

    def test_raise_for_errors(self) -> None:
        """Errors turn into DialectIncompatibilityError."""
        result = validate_sql("CREATE SEQUENCE s;", get_dialect("sqlite"))
        with pytest.raises(DialectIncompatibilityError, match="1 incompatibility with dialect 'sqlite'") as exc:
            result.raise_for_errors()
        assert exc.value.result is result

    def test_raise_for_errors_clean(self) -> None:
        """A clean result does not raise."""
        validate_sql("CREATE TABLE t (id integer);", get_dialect("sqlite")).raise_for_errors()


class TestVariants:
    """Stricter variants reject everything their base rejects."""

    @pytest.mark.parametrize("base,variant", [
        ("mysql", "planetscale"),
        ("sqlite", "turso"),
    ])
    def test_variant_is_stricter(self, base: str, variant: str) -> None:
        """Errors on the base dialect are errors on the variant."""
        for statement in SAMPLE_STATEMENTS:
            base_errors = {e.feature for e in validate_sql(statement, get_dialect(base)).errors}
            variant_errors = {e.feature for e in validate_sql(statement, get_dialect(variant)).errors}
            assert base_errors <= variant_errors, statement

    def test_every_dialect_has_patterns_entry(self) -> None:
        """Each registered dialect has a pattern registry."""
        from db_reconcile.dialects import DIALECTS

        assert set(DIALECTS) <= set(PATTERNS)

    def test_can_transform(self) -> None:
        """Transforms exist for MySQL, SQLite and Nile only."""
        assert can_transform(get_dialect("mysql"))
        assert can_transform(get_dialect("turso"))
        assert can_transform(get_dialect("nile"))
        assert not can_transform(get_dialect("postgres"))
        assert not can_transform(get_dialect("cockroachdb"))


class TestTransformedValidation:
    """validate_sql with transform=True checks the rewritten text."""

    def test_mysql_rewrite_clears_errors(self) -> None:
        """uuid and gen_random_uuid() are rewritten before validation."""
        result = validate_sql(
            "CREATE TABLE t (id uuid DEFAULT gen_random_uuid());", get_dialect("mysql"), transform=True
        )
        assert result.valid is True
        assert result.transformed_sql == "CREATE TABLE t (id CHAR(36) DEFAULT (UUID()));"
        assert "UUID -> CHAR(36)" in result.transforms

    def test_transform_ignored_for_postgres(self) -> None:
        """No rewrites happen for the reference dialect."""
        result = validate_sql("CREATE TABLE t (id uuid);", get_dialect("postgres"), transform=True)
        assert result.transformed_sql is None


class TestSchemaValidation:
    """validate_schema_for_dialect."""

    def test_sqlite_sequence(self) -> None:
        """Declared sequences cannot exist on SQLite."""
        result = validate_schema_for_dialect(
            DatabaseSchema(sequences=[Sequence(name="order_seq")]), get_dialect("sqlite")
        )
        assert [(e.category, e.feature) for e in result.errors] == [("DDL", "CREATE_SEQUENCE")]

    def test_sqlite_array_is_warning(self) -> None:
        """Arrays fall back to TEXT on SQLite with a warning."""
        table = Table(name="t", columns=[Column(name="tags", data_type="text[]")])
        result = validate_schema_for_dialect(DatabaseSchema(tables=[table]), get_dialect("sqlite"))
        assert result.valid is True
        assert [w.feature for w in result.warnings] == ["ARRAY"]

    def test_blocked_column_type(self) -> None:
        """Blocked types name the column."""
        table = Table(name="t", columns=[Column(name="id", data_type="serial", is_primary_key=True)])
        result = validate_schema_for_dialect(DatabaseSchema(tables=[table]), get_dialect("dsql"))
        [error] = result.errors
        assert (error.feature, error.location) == ("SERIAL", "t.id")

    def test_planetscale_foreign_keys(self) -> None:
        """Foreign keys are rejected on PlanetScale."""
        table = Table(
            name="orders",
            columns=[Column(name="user_id", data_type="integer")],
            constraints=[Constraint(
                name="orders_user_id_fkey", constraint_type="FOREIGN_KEY",
                columns=["user_id"], references_table="users", references_columns=["id"],
            )],
        )
        result = validate_schema_for_dialect(DatabaseSchema(tables=[table]), get_dialect("planetscale"))
        assert [e.feature for e in result.errors] == ["FOREIGN_KEY"]

    def test_unsupported_index_method(self) -> None:
        """Index methods outside the capability set are errors."""
        table = Table(
            name="docs",
            columns=[Column(name="body", data_type="text")],
            indexes=[Index(name="docs_body_idx", columns=["body"], method="gin")],
        )
        result = validate_schema_for_dialect(DatabaseSchema(tables=[table]), get_dialect("xata"))
        assert [e.feature for e in result.errors] == ["GIN_INDEX"]

    def test_routines_and_triggers(self) -> None:
        """Routines and triggers are rejected where unsupported."""
        schema = DatabaseSchema(
            functions=[Function(name="touch", return_type="trigger", body="BEGIN RETURN NEW; END;")],
            triggers=[Trigger(name="trg", table="t", events=["UPDATE"], function_name="touch")],
        )
        result = validate_schema_for_dialect(schema, get_dialect("planetscale"))
        assert [e.feature for e in result.errors] == ["CREATE_FUNCTION", "CREATE_TRIGGER"]

    def test_mysql_plpgsql_function(self) -> None:
        """PL/pgSQL bodies cannot run on MySQL."""
        schema = DatabaseSchema(functions=[Function(name="f", return_type="void", body="BEGIN END;")])
        result = validate_schema_for_dialect(schema, get_dialect("mysql"))
        assert [e.feature for e in result.errors] == ["PLPGSQL"]


class TestNile:
    """Nile tenant rules."""

    def _schema(self) -> DatabaseSchema:
        return DatabaseSchema(
            extensions=["vector", "hstore"],
            tables=[
                Table(name="users", columns=[Column(name="id", data_type="uuid")]),
                Table(name="countries", columns=[
                    Column(name="id", data_type="integer", is_primary_key=True),
                ]),
                Table(
                    name="todos",
                    columns=[
                        Column(name="id", data_type="serial", is_primary_key=True),
                        Column(name="tenant_id", data_type="text", is_nullable=False),
                        Column(name="country_id", data_type="integer"),
                    ],
                    constraints=[Constraint(
                        name="todos_country_id_fkey", constraint_type="FOREIGN_KEY",
                        columns=["country_id"], references_table="countries",
                        references_columns=["id"],
                    )],
                ),
            ],
        )

    def test_errors(self) -> None:
        """Tenant id type, tenant key and cross-kind keys are errors."""
        result = validate_schema_for_dialect(self._schema(), get_dialect("nile"))
        assert sorted(e.feature for e in result.errors) == [
            "CREATE_EXTENSION", "CROSS_TYPE_FK", "TENANT_ID_IN_PK", "TENANT_ID_TYPE",
        ]
        [extension] = [e for e in result.errors if e.feature == "CREATE_EXTENSION"]
        assert extension.detected == "hstore"

    def test_warnings(self) -> None:
        """Built-in tables, serial ids, preinstalled extensions and transaction rules warn."""
        result = validate_schema_for_dialect(self._schema(), get_dialect("nile"))
        assert sorted(w.feature for w in result.warnings) == [
            "BUILTIN_TABLE", "CREATE_EXTENSION", "TENANT_SERIAL", "TRANSACTION_RULES",
        ]

    def test_valid_tenant_table(self) -> None:
        """A uuid tenant_id inside the primary key passes."""
        table = Table(
            name="todos",
            columns=[
                Column(name="tenant_id", data_type="uuid"),
                Column(name="id", data_type="uuid"),
            ],
            constraints=[Constraint(
                name="todos_pkey", constraint_type="PRIMARY_KEY", columns=["tenant_id", "id"],
            )],
        )
        result = validate_schema_for_dialect(DatabaseSchema(tables=[table]), get_dialect("nile"))
        assert result.valid is True
        assert [w.feature for w in result.warnings] == ["TRANSACTION_RULES"]


class TestCombinedValidation:
    """Schema and SQL findings are merged without duplicates."""

    def test_sqlite_sequence_reported_once(self) -> None:
        """A sequence targeted at SQLite yields exactly one error."""
        desired = DatabaseSchema(sequences=[Sequence(name="order_seq")])
        dialect = get_dialect("sqlite")
        migration = generate_migration(compare_schemas(DatabaseSchema(), desired), dialect)

        combined = combine_validation(
            validate_schema_for_dialect(desired, dialect),
            validate_statements(migration.up, dialect),
        )

        assert migration.up == ["CREATE SEQUENCE IF NOT EXISTS order_seq;"]
        assert combined.valid is False
        assert [(e.category, e.feature) for e in combined.errors] == [("DDL", "CREATE_SEQUENCE")]
        assert "AUTOINCREMENT" in combined.errors[0].alternative
