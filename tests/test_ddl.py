"""Tests for up/down DDL generation."""

from db_reconcile.dialects import get_dialect
from db_reconcile.schema.comparator import compare_schemas
from db_reconcile.schema.ddl import DDLGenerator, MigrationSQL, generate_migration, sql_literal
from db_reconcile.schema.models import (
    Column,
    Constraint,
    DatabaseSchema,
    EnumType,
    Function,
    Index,
    Sequence,
    Table,
    Trigger,
)

POSTGRES = get_dialect("postgres")
MYSQL = get_dialect("mysql")
SQLITE = get_dialect("sqlite")


def _users(*extra: Column) -> Table:
    return Table(
        name="users",
        columns=[
            Column(name="id", data_type="integer", is_primary_key=True),
            Column(name="email", data_type="varchar(255)", is_nullable=False),
            *extra,
        ],
    )


def _migrate(current: DatabaseSchema, desired: DatabaseSchema, dialect=POSTGRES) -> MigrationSQL:
    return generate_migration(compare_schemas(current, desired), dialect, current, desired)


class TestScenarios:
    """End-to-end generation for the canonical scenarios."""

    def test_column_addition(self) -> None:
        """Adding one column yields one ADD COLUMN and its DROP."""
        current = DatabaseSchema(tables=[_users()])
        desired = DatabaseSchema(tables=[_users(Column(
            name="created_at",
            data_type="timestamp with time zone",
            is_nullable=False,
            default="current_timestamp",
        ))])

        migration = _migrate(current, desired)

        assert migration.up == [
            "ALTER TABLE users ADD COLUMN created_at timestamp with time zone "
            "NOT NULL DEFAULT current_timestamp;"
        ]
        assert migration.down == ["ALTER TABLE users DROP COLUMN IF EXISTS created_at;"]
        assert migration.warnings == []

    def test_table_rename_with_column_change(self) -> None:
        """Renames come first and later steps use the new names."""
        current = DatabaseSchema(tables=[Table(
            name="customer",
            tracking_id="T1",
            columns=[Column(name="email", data_type="varchar(255)", tracking_id="C1")],
        )])
        desired = DatabaseSchema(tables=[Table(
            name="customers",
            tracking_id="T1",
            columns=[
                Column(name="email_address", data_type="varchar(255)", tracking_id="C1"),
                Column(
                    name="verified", data_type="boolean", is_nullable=False,
                    default="false", tracking_id="C2",
                ),
            ],
        )])

        migration = _migrate(current, desired)

        assert migration.up == [
            "ALTER TABLE customer RENAME TO customers;",
            "ALTER TABLE customers RENAME COLUMN email TO email_address;",
            "ALTER TABLE customers ADD COLUMN verified boolean NOT NULL DEFAULT false;",
        ]
        assert migration.down == [
            "ALTER TABLE customers DROP COLUMN IF EXISTS verified;",
            "ALTER TABLE customers RENAME COLUMN email_address TO email;",
            "ALTER TABLE customers RENAME TO customer;",
        ]

    def test_drop_table_reconstructs_down(self) -> None:
        """Dropping a table recreates it with its indexes on the way down."""
        audit = Table(
            name="audit_log",
            columns=[
                Column(name="id", data_type="integer", is_primary_key=True),
                Column(name="msg", data_type="text", is_nullable=False),
            ],
            indexes=[Index(name="audit_log_msg_idx", columns=["msg"])],
        )
        migration = _migrate(DatabaseSchema(tables=[audit]), DatabaseSchema())

        assert migration.up == ["DROP TABLE IF EXISTS audit_log CASCADE;"]
        assert migration.down == [
            "CREATE TABLE IF NOT EXISTS audit_log (\n"
            "    id integer PRIMARY KEY,\n"
            "    msg text NOT NULL\n"
            ");",
            "CREATE INDEX IF NOT EXISTS audit_log_msg_idx ON audit_log (msg);",
        ]


class TestColumnModifications:
    """ALTER COLUMN statements on PostgreSQL."""

    def test_type_change_uses_explicit_cast(self) -> None:
        """Type changes always carry a USING cast."""
        current = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="a", data_type="integer")])])
        desired = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="a", data_type="bigint")])])

        migration = _migrate(current, desired)

        assert migration.up == ["ALTER TABLE t ALTER COLUMN a TYPE bigint USING a::bigint;"]
        assert migration.down == ["ALTER TABLE t ALTER COLUMN a TYPE integer USING a::integer;"]

    def test_varchar_length_change(self) -> None:
        """A length change is a type change with the full spelling."""
        current = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="a", data_type="varchar(100)")])])
        desired = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="a", data_type="varchar(255)")])])

        migration = _migrate(current, desired)

        assert migration.up == [
            "ALTER TABLE t ALTER COLUMN a TYPE character varying(255) "
            "USING a::character varying(255);"
        ]

    def test_nullability_and_default(self) -> None:
        """SET NOT NULL and SET DEFAULT with their inverses."""
        current = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="status", data_type="text")])])
        desired = DatabaseSchema(tables=[Table(name="t", columns=[
            Column(name="status", data_type="text", is_nullable=False, default="'new'"),
        ])])

        migration = _migrate(current, desired)

        assert migration.up == [
            "ALTER TABLE t ALTER COLUMN status SET NOT NULL;",
            "ALTER TABLE t ALTER COLUMN status SET DEFAULT 'new';",
        ]
        assert migration.down == [
            "ALTER TABLE t ALTER COLUMN status DROP DEFAULT;",
            "ALTER TABLE t ALTER COLUMN status DROP NOT NULL;",
        ]

    def test_add_unique_column(self) -> None:
        """A new unique column declares UNIQUE inline."""
        current = DatabaseSchema(tables=[_users()])
        desired = DatabaseSchema(tables=[_users(Column(name="handle", data_type="text", is_unique=True))])

        migration = _migrate(current, desired)

        assert migration.up == ["ALTER TABLE users ADD COLUMN handle text UNIQUE;"]

    def test_make_existing_column_unique(self) -> None:
        """Flagging a column unique adds a named constraint."""
        current = DatabaseSchema(tables=[_users()])
        desired = DatabaseSchema(tables=[_users()])
        desired.tables[0].columns[1].is_unique = True

        migration = _migrate(current, desired)

        assert migration.up == ["ALTER TABLE users ADD CONSTRAINT users_email_key UNIQUE (email);"]
        assert migration.down == ["ALTER TABLE users DROP CONSTRAINT IF EXISTS users_email_key;"]

    def test_drop_column_reversible(self) -> None:
        """The down of a column drop re-adds its definition."""
        current = DatabaseSchema(tables=[_users(Column(name="legacy", data_type="text"))])
        desired = DatabaseSchema(tables=[_users()])

        migration = _migrate(current, desired)

        assert migration.up == ["ALTER TABLE users DROP COLUMN IF EXISTS legacy;"]
        assert migration.down == ["ALTER TABLE users ADD COLUMN legacy text;"]


class TestEnums:
    """Enum creation and value changes."""

    def test_create_enum_before_table(self) -> None:
        """Types exist before the tables that use them."""
        desired = DatabaseSchema(
            enums=[EnumType(name="mood", values=["sad", "ok"])],
            tables=[Table(name="people", columns=[Column(name="mood", data_type="mood")])],
        )
        migration = _migrate(DatabaseSchema(), desired)

        assert migration.up[0] == "CREATE TYPE mood AS ENUM ('sad', 'ok');"
        assert migration.up[1].startswith("CREATE TABLE IF NOT EXISTS people (")
        assert migration.down[-1] == "DROP TYPE IF EXISTS mood;"

    def test_value_appended(self) -> None:
        """New values are placed after their predecessor."""
        current = DatabaseSchema(enums=[EnumType(name="mood", values=["sad", "ok"])])
        desired = DatabaseSchema(enums=[EnumType(name="mood", values=["sad", "ok", "happy"])])

        migration = _migrate(current, desired)

        assert migration.up == ["ALTER TYPE mood ADD VALUE IF NOT EXISTS 'happy' AFTER 'ok';"]
        assert migration.down[0].startswith("-- Cannot remove value 'happy' from enum mood")

    def test_value_prepended(self) -> None:
        """A value with no predecessor goes before its successor."""
        current = DatabaseSchema(enums=[EnumType(name="mood", values=["sad", "ok"])])
        desired = DatabaseSchema(enums=[EnumType(name="mood", values=["meh", "sad", "ok"])])

        migration = _migrate(current, desired)

        assert migration.up == ["ALTER TYPE mood ADD VALUE IF NOT EXISTS 'meh' BEFORE 'sad';"]

    def test_value_removed_is_caveat_only(self) -> None:
        """Removing a value warns and emits no DDL."""
        current = DatabaseSchema(enums=[EnumType(name="mood", values=["sad", "ok"])])
        desired = DatabaseSchema(enums=[EnumType(name="mood", values=["sad"])])

        migration = _migrate(current, desired)

        assert migration.up == []
        assert migration.is_empty
        assert migration.warnings == [
            "Enum mood value 'ok' was removed from the schema but is not dropped; "
            "enum values cannot be removed in place"
        ]
        assert all(stmt.startswith("--") for stmt in migration.down)


class TestForeignKeys:
    """Foreign key placement across new tables."""

    def test_fk_to_later_table_is_deferred(self) -> None:
        """A key to a table created later is added after both exist."""
        orders = Table(
            name="orders",
            columns=[
                Column(name="id", data_type="integer", is_primary_key=True),
                Column(name="user_id", data_type="integer", is_nullable=False),
            ],
            constraints=[Constraint(
                name="orders_user_id_fkey",
                constraint_type="FOREIGN_KEY",
                columns=["user_id"],
                references_table="users",
                references_columns=["id"],
            )],
        )
        migration = _migrate(DatabaseSchema(), DatabaseSchema(tables=[orders, _users()]))

        assert len(migration.up) == 3
        assert migration.up[0].startswith("CREATE TABLE IF NOT EXISTS orders")
        assert "REFERENCES" not in migration.up[0]
        assert migration.up[1].startswith("CREATE TABLE IF NOT EXISTS users")
        assert migration.up[2] == (
            "ALTER TABLE orders ADD CONSTRAINT orders_user_id_fkey "
            "FOREIGN KEY (user_id) REFERENCES users (id);"
        )
        assert migration.down == [
            "ALTER TABLE orders DROP CONSTRAINT IF EXISTS orders_user_id_fkey;",
            "DROP TABLE IF EXISTS users CASCADE;",
            "DROP TABLE IF EXISTS orders CASCADE;",
        ]

    def test_fk_to_earlier_table_is_inline(self) -> None:
        """A key to an already-created table is declared on the column."""
        accounts = Table(name="accounts", columns=[Column(name="id", data_type="integer", is_primary_key=True)])
        invoices = Table(
            name="invoices",
            columns=[
                Column(name="id", data_type="integer", is_primary_key=True),
                Column(name="account_id", data_type="integer"),
            ],
            constraints=[Constraint(
                name="invoices_account_id_fkey",
                constraint_type="FOREIGN_KEY",
                columns=["account_id"],
                references_table="accounts",
                references_columns=["id"],
                on_delete="CASCADE",
            )],
        )
        migration = _migrate(DatabaseSchema(), DatabaseSchema(tables=[invoices, accounts]))

        assert len(migration.up) == 2
        assert "    account_id integer REFERENCES accounts (id) ON DELETE CASCADE" in migration.up[1]

    def test_dropped_tables_restore_keys_last(self) -> None:
        """Down recreates every dropped table before restoring keys between them."""
        parent = Table(name="parent", columns=[Column(name="id", data_type="integer", is_primary_key=True)])
        child = Table(
            name="child",
            columns=[
                Column(name="id", data_type="integer", is_primary_key=True),
                Column(name="parent_id", data_type="integer"),
            ],
            constraints=[Constraint(
                name="child_parent_id_fkey",
                constraint_type="FOREIGN_KEY",
                columns=["parent_id"],
                references_table="parent",
                references_columns=["id"],
            )],
        )
        migration = _migrate(DatabaseSchema(tables=[parent, child]), DatabaseSchema())

        assert migration.up == [
            "DROP TABLE IF EXISTS child CASCADE;",
            "DROP TABLE IF EXISTS parent CASCADE;",
        ]
        assert migration.down[0].startswith("CREATE TABLE IF NOT EXISTS parent")
        assert migration.down[1].startswith("CREATE TABLE IF NOT EXISTS child")
        assert "REFERENCES" not in migration.down[1]
        assert migration.down[2] == (
            "ALTER TABLE child ADD CONSTRAINT child_parent_id_fkey "
            "FOREIGN KEY (parent_id) REFERENCES parent (id);"
        )


class TestIndexes:
    """Index statements."""

    def test_plain_index(self) -> None:
        """btree indexes omit USING."""
        sql = DDLGenerator().create_index("users", Index(name="users_email_idx", columns=["email"]))
        assert sql == "CREATE INDEX IF NOT EXISTS users_email_idx ON users (email);"

    def test_gin_partial_unique(self) -> None:
        """Methods, uniqueness and predicates are spelled out."""
        index = Index(name="docs_tags_idx", columns=["tags"], method="gin", where="deleted_at IS NULL")
        assert DDLGenerator().create_index("docs", index) == (
            "CREATE INDEX IF NOT EXISTS docs_tags_idx ON docs USING gin (tags) WHERE deleted_at IS NULL;"
        )

    def test_index_added_on_existing_table(self) -> None:
        """An added index is created after column changes."""
        current = DatabaseSchema(tables=[_users()])
        desired = DatabaseSchema(tables=[_users()])
        desired.tables[0].indexes.append(Index(name="users_email_idx", columns=["email"], is_unique=True))

        migration = _migrate(current, desired)

        assert migration.up == ["CREATE UNIQUE INDEX IF NOT EXISTS users_email_idx ON users (email);"]
        assert migration.down == ["DROP INDEX IF EXISTS users_email_idx;"]


class TestPhaseOrder:
    """The forward list follows the fixed phase order."""

    def test_mixed_changes(self) -> None:
        """Renames, enum values, creates, indexes and drops appear in order."""
        current = DatabaseSchema(
            enums=[EnumType(name="mood", values=["sad"])],
            sequences=[Sequence(name="old_seq")],
            tables=[
                Table(name="customer", tracking_id="T", columns=[Column(name="id", data_type="integer")]),
                Table(name="junk", columns=[Column(name="x", data_type="text")]),
            ],
        )
        desired = DatabaseSchema(
            enums=[EnumType(name="mood", values=["sad", "ok"])],
            sequences=[Sequence(name="invoice_seq", start=1000)],
            tables=[
                Table(
                    name="customers", tracking_id="T",
                    columns=[Column(name="id", data_type="bigint")],
                    indexes=[Index(name="customers_id_idx", columns=["id"])],
                ),
            ],
        )

        up = _migrate(current, desired).up

        assert up == [
            "ALTER TABLE customer RENAME TO customers;",
            "ALTER TYPE mood ADD VALUE IF NOT EXISTS 'ok' AFTER 'sad';",
            "ALTER TABLE customers ALTER COLUMN id TYPE bigint USING id::bigint;",
            "CREATE SEQUENCE IF NOT EXISTS invoice_seq START WITH 1000;",
            "CREATE INDEX IF NOT EXISTS customers_id_idx ON customers (id);",
            "DROP TABLE IF EXISTS junk CASCADE;",
            "DROP SEQUENCE IF EXISTS old_seq;",
        ]

    def test_function_and_trigger(self) -> None:
        """Functions are created before the triggers that call them."""
        fn = Function(name="touch", return_type="trigger", body="BEGIN NEW.updated_at := now(); RETURN NEW; END;")
        trigger = Trigger(name="users_touch", table="users", events=["UPDATE"], function_name="touch")
        desired = DatabaseSchema(tables=[_users()], functions=[fn], triggers=[trigger])

        up = _migrate(DatabaseSchema(tables=[_users()]), desired).up

        assert up[0].startswith("CREATE OR REPLACE FUNCTION touch()")
        assert up[0].endswith("AS $function$BEGIN NEW.updated_at := now(); RETURN NEW; END;$function$;")
        assert up[1] == (
            "CREATE TRIGGER users_touch BEFORE UPDATE ON users FOR EACH ROW EXECUTE FUNCTION touch();"
        )

    def test_function_rename(self) -> None:
        """Function renames keep the argument list."""
        current = DatabaseSchema(functions=[Function(name="f_old", return_type="void", body="BEGIN END;", tracking_id="F")])
        desired = DatabaseSchema(functions=[Function(name="f_new", return_type="void", body="BEGIN END;", tracking_id="F")])

        migration = _migrate(current, desired)

        assert migration.up == ["ALTER ROUTINE f_old() RENAME TO f_new;"]
        assert migration.down == ["ALTER ROUTINE f_new() RENAME TO f_old;"]


class TestDialectSpellings:
    """Dialect-specific DDL."""

    def test_quoted_identifiers(self) -> None:
        """Reserved words are quoted with the dialect's quote character."""
        table = Table(name="order", columns=[Column(name="id", data_type="integer")])
        pg = _migrate(DatabaseSchema(), DatabaseSchema(tables=[table]))
        my = _migrate(DatabaseSchema(), DatabaseSchema(tables=[table]), MYSQL)
        assert pg.up[0].startswith('CREATE TABLE IF NOT EXISTS "order" (')
        assert my.up[0].startswith("CREATE TABLE IF NOT EXISTS `order` (")

    def test_sqlite_serial_primary_key(self) -> None:
        """SQLite spells serial keys as INTEGER PRIMARY KEY AUTOINCREMENT."""
        table = Table(name="notes", columns=[
            Column(name="id", data_type="serial", is_primary_key=True),
            Column(name="title", data_type="varchar(80)"),
        ])
        migration = _migrate(DatabaseSchema(), DatabaseSchema(tables=[table]), SQLITE)

        assert migration.up == [
            "CREATE TABLE IF NOT EXISTS notes (\n"
            "    id INTEGER PRIMARY KEY AUTOINCREMENT,\n"
            "    title TEXT\n"
            ");"
        ]
        assert migration.down == ["DROP TABLE IF EXISTS notes;"]

    def test_sqlite_column_change_warns(self) -> None:
        """SQLite cannot alter columns in place."""
        current = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="a", data_type="integer")])])
        desired = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="a", data_type="integer", is_nullable=False)])])

        migration = _migrate(current, desired, SQLITE)

        assert migration.up == []
        assert migration.warnings[0].startswith("SQLite cannot alter column t.a (nullable)")

    def test_mysql_modify_column(self) -> None:
        """MySQL restates the whole column definition."""
        current = DatabaseSchema(tables=[Table(name="t", columns=[Column(name="flag", data_type="boolean")])])
        desired = DatabaseSchema(tables=[Table(name="t", columns=[
            Column(name="flag", data_type="boolean", is_nullable=False, default="0"),
        ])])

        migration = _migrate(current, desired, MYSQL)

        assert migration.up == ["ALTER TABLE t MODIFY COLUMN flag TINYINT(1) NOT NULL DEFAULT 0;"]
        assert migration.down == ["ALTER TABLE t MODIFY COLUMN flag TINYINT(1);"]

    def test_mysql_rename_table_and_drop_index(self) -> None:
        """MySQL uses RENAME TABLE and table-scoped DROP INDEX."""
        current = DatabaseSchema(tables=[Table(
            name="a", tracking_id="T",
            columns=[Column(name="x", data_type="integer")],
            indexes=[Index(name="a_x_idx", columns=["x"])],
        )])
        desired = DatabaseSchema(tables=[Table(name="b", tracking_id="T", columns=[Column(name="x", data_type="integer")])])

        migration = _migrate(current, desired, MYSQL)

        assert migration.up == ["RENAME TABLE a TO b;", "DROP INDEX a_x_idx ON b;"]

    def test_mysql_enum_column(self) -> None:
        """Enum columns are spelled inline on MySQL."""
        desired = DatabaseSchema(
            enums=[EnumType(name="mood", values=["sad", "ok"])],
            tables=[Table(name="people", columns=[Column(name="mood", data_type="mood")])],
        )
        migration = _migrate(DatabaseSchema(), desired, MYSQL)

        assert migration.up == [
            "CREATE TABLE IF NOT EXISTS people (\n    mood ENUM('sad', 'ok')\n);"
        ]


class TestHelpers:
    """Small helpers."""

    def test_sql_literal_escapes(self) -> None:
        """Embedded quotes are doubled."""
        assert sql_literal("it's") == "'it''s'"

    def test_comment_only_migration_is_empty(self) -> None:
        """A migration of comments has nothing to apply."""
        assert MigrationSQL(up=["-- nothing"]).is_empty
        assert not MigrationSQL(up=["SELECT 1;"]).is_empty
