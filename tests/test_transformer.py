"""Tests for PostgreSQL-to-dialect SQL rewrites."""

from db_reconcile.dialects import get_dialect
from db_reconcile.schema.transformer import transform_sql, transform_statement


class TestMySQLRewrites:
    """PostgreSQL DDL rewritten for MySQL."""

    def test_serial_and_boolean(self) -> None:
        """Serial keys and booleans map to MySQL types."""
        result = transform_statement(
            "CREATE TABLE t (id SERIAL PRIMARY KEY, ok BOOLEAN DEFAULT true);", get_dialect("mysql")
        )
        assert result.sql == "CREATE TABLE t (id INT AUTO_INCREMENT PRIMARY KEY, ok TINYINT(1) DEFAULT true);"
        assert result.transforms == [
            "SERIAL PRIMARY KEY -> INT AUTO_INCREMENT PRIMARY KEY",
            "BOOLEAN -> TINYINT(1)",
        ]

    def test_uuid_default(self) -> None:
        """uuid columns and gen_random_uuid() are rewritten."""
        result = transform_statement(
            "CREATE TABLE t (id uuid DEFAULT gen_random_uuid());", get_dialect("mysql")
        )
        assert result.sql == "CREATE TABLE t (id CHAR(36) DEFAULT (UUID()));"
        assert result.transforms == ["UUID -> CHAR(36)", "gen_random_uuid() -> UUID()"]

    def test_quoted_identifiers(self) -> None:
        """Double-quoted identifiers become backticks."""
        result = transform_statement('CREATE TABLE "Order" (id integer);', get_dialect("mysql"))
        assert result.sql == "CREATE TABLE `Order` (id integer);"
        assert result.transforms == ['"identifier" -> `identifier`']

    def test_casts_removed(self) -> None:
        """PostgreSQL casts are dropped."""
        result = transform_statement("SELECT '1'::integer, 'a'::character varying;", get_dialect("mysql"))
        assert result.sql == "SELECT '1', 'a';"
        assert result.transforms == ["::type casts removed"]

    def test_comment_skipped(self) -> None:
        """COMMENT ON statements are commented out."""
        result = transform_statement("COMMENT ON TABLE users IS 'x';", get_dialect("mysql"))
        assert result.sql == "-- Skipped for MySQL: COMMENT ON TABLE users IS 'x';"
        assert result.skipped == ["COMMENT ON TABLE users IS 'x';"]
        assert result.transforms == []

    def test_planetscale_uses_mysql_rules(self) -> None:
        """MySQL-family variants share the rewrites."""
        result = transform_statement("CREATE TABLE t (flag bool);", get_dialect("planetscale"))
        assert result.sql == "CREATE TABLE t (flag TINYINT(1));"


class TestSQLiteRewrites:
    """PostgreSQL DDL rewritten for SQLite."""

    def test_table_definition(self) -> None:
        """Types, parameters and now() are mapped to SQLite affinities."""
        result = transform_statement(
            "CREATE TABLE e (id SERIAL PRIMARY KEY, created timestamptz DEFAULT now(), "
            "price numeric(10,2), email varchar(255) NOT NULL);",
            get_dialect("sqlite"),
        )
        assert result.sql == (
            "CREATE TABLE e (id INTEGER PRIMARY KEY AUTOINCREMENT, created TEXT DEFAULT CURRENT_TIMESTAMP, "
            "price REAL, email TEXT NOT NULL);"
        )
        assert result.transforms == [
            "SERIAL PRIMARY KEY -> INTEGER PRIMARY KEY AUTOINCREMENT",
            "date/time types -> TEXT",
            "VARCHAR(n) -> TEXT",
            "NUMERIC(p,s) -> REAL",
            "NOW() -> CURRENT_TIMESTAMP",
        ]

    def test_uuid_default(self) -> None:
        """gen_random_uuid() becomes a randomblob expression."""
        result = transform_statement(
            "CREATE TABLE k (id uuid DEFAULT gen_random_uuid());", get_dialect("sqlite")
        )
        assert result.sql == "CREATE TABLE k (id TEXT DEFAULT (lower(hex(randomblob(16)))));"

    def test_table_named_like_type(self) -> None:
        """Names in table position are left alone."""
        result = transform_statement("CREATE TABLE date (id integer);", get_dialect("sqlite"))
        assert result.sql == "CREATE TABLE date (id integer);"
        assert result.transforms == []

    def test_turso_uses_sqlite_rules(self) -> None:
        """Turso shares the SQLite rewrites."""
        result = transform_statement("CREATE TABLE t (flag boolean);", get_dialect("turso"))
        assert result.sql == "CREATE TABLE t (flag INTEGER);"


class TestNile:
    """Nile only drops extension statements."""

    def test_extension_skipped(self) -> None:
        """CREATE EXTENSION is commented out."""
        statement = 'CREATE EXTENSION IF NOT EXISTS "uuid-ossp";'
        result = transform_statement(statement, get_dialect("nile"))
        assert result.sql == f"-- Skipped for Nile: {statement}"
        assert result.skipped == [statement]

    def test_types_untouched(self) -> None:
        """Nile is PostgreSQL, so types stay."""
        result = transform_statement("CREATE TABLE t (id uuid);", get_dialect("nile"))
        assert result.sql == "CREATE TABLE t (id uuid);"


class TestTransformSql:
    """Whole scripts."""

    def test_script(self) -> None:
        """Statements are rewritten one by one and rejoined."""
        result = transform_sql(
            "CREATE EXTENSION pgcrypto;\nCREATE TABLE t (flag boolean);", get_dialect("sqlite")
        )
        assert result.sql == "-- Skipped for SQLite: CREATE EXTENSION pgcrypto;\nCREATE TABLE t (flag INTEGER);"
        assert result.skipped == ["CREATE EXTENSION pgcrypto;"]
        assert result.transforms == ["BOOLEAN -> INTEGER"]

    def test_transforms_deduplicated(self) -> None:
        """A rewrite applied twice is listed once."""
        result = transform_sql(
            "CREATE TABLE a (x boolean); CREATE TABLE b (y boolean);", get_dialect("sqlite")
        )
        assert result.transforms == ["BOOLEAN -> INTEGER"]

    def test_postgres_passthrough(self) -> None:
        """Dialects without rewrites get the statements back."""
        result = transform_sql("SELECT 1; SELECT 2;", get_dialect("postgres"))
        assert result.sql == "SELECT 1;\nSELECT 2;"
        assert result.transforms == []
        assert result.skipped == []
