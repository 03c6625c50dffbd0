"""Tests for ignore patterns and schema filtering."""

import textwrap
from pathlib import Path

import pytest

from db_reconcile.errors import IgnoreDependencyError, IgnorePatternError
from db_reconcile.schema.ignore import (
    IgnoreRules,
    filter_schema,
    ignore_dependency_errors,
    load_ignore_file,
    parse_pattern,
    validate_ignore_dependencies,
)
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


class TestParsePattern:
    """Single-line parsing."""

    def test_plain_name_is_table(self) -> None:
        """An untyped pattern targets tables."""
        pattern = parse_pattern("audit_*")
        assert (pattern.object_type, pattern.pattern, pattern.parent, pattern.negated) == (
            "TABLE", "audit_*", None, False,
        )

    def test_typed_with_parent(self) -> None:
        """Sub-object patterns split parent and name."""
        pattern = parse_pattern("!column:users.secret_*")
        assert (pattern.object_type, pattern.parent, pattern.pattern, pattern.negated) == (
            "COLUMN", "users", "secret_*", True,
        )

    def test_blank_and_comment(self) -> None:
        """Blank lines and comments are skipped."""
        assert parse_pattern("   ") is None
        assert parse_pattern("# COLUMN:users.x") is None

    def test_sub_object_requires_parent(self) -> None:
        """A column pattern without a table is rejected."""
        with pytest.raises(IgnorePatternError, match="requires a table name") as exc:
            parse_pattern("COLUMN:password_hash", 3)
        assert exc.value.line_number == 3
        assert "(line 3)" in str(exc.value)

    def test_trigger_requires_parent(self) -> None:
        """Triggers are table-scoped."""
        with pytest.raises(IgnorePatternError):
            parse_pattern("TRIGGER:audit_trg")

    def test_empty_negation(self) -> None:
        """A lone '!' is not a pattern."""
        with pytest.raises(IgnorePatternError, match="empty pattern"):
            parse_pattern("!")

    def test_unknown_type_prefix_is_table_name(self) -> None:
        """Unknown prefixes are taken literally."""
        pattern = parse_pattern("WIDGET:thing")
        assert (pattern.object_type, pattern.pattern) == ("TABLE", "WIDGET:thing")


class TestIgnoreRules:
    """Rule evaluation."""

    def test_defaults(self) -> None:
        """Tool and temporary tables are ignored out of the box."""
        rules = IgnoreRules.from_lines([])
        assert rules.is_ignored("TABLE", "_reconcile_migrations")
        assert rules.is_ignored("TABLE", "tmp_import")
        assert rules.is_ignored("TABLE", "pg_stat_statements")
        assert not rules.is_ignored("TABLE", "users")

    def test_defaults_optional(self) -> None:
        """Defaults can be left out."""
        rules = IgnoreRules.from_lines([], include_defaults=False)
        assert not rules.is_ignored("TABLE", "tmp_import")

    def test_last_match_wins(self) -> None:
        """A later negation re-includes."""
        rules = IgnoreRules.from_lines(["audit_*", "!audit_keep", "audit_keep_old"])
        assert rules.is_ignored("TABLE", "audit_log")
        assert not rules.is_ignored("TABLE", "audit_keep")
        assert rules.is_ignored("TABLE", "audit_keep_old")

    def test_negation_overrides_default(self) -> None:
        """A default can be undone."""
        rules = IgnoreRules.from_lines(["!tmp_keep"])
        assert not rules.is_ignored("TABLE", "tmp_keep")

    def test_case_insensitive_glob(self) -> None:
        """Matching ignores case and supports '?'."""
        rules = IgnoreRules.from_lines(["LOG_?"])
        assert rules.is_ignored("TABLE", "log_a")
        assert not rules.is_ignored("TABLE", "log_ab")

    def test_parent_glob(self) -> None:
        """Parent globs scope sub-object patterns."""
        rules = IgnoreRules.from_lines(["INDEX:*.idx_tmp_*"])
        assert rules.is_ignored("INDEX", "idx_tmp_a", "orders")
        assert not rules.is_ignored("INDEX", "idx_tmp_a")
        assert not rules.is_ignored("COLUMN", "idx_tmp_a", "orders")

    def test_constraint_alias(self) -> None:
        """CONSTRAINT patterns match any constraint kind."""
        rules = IgnoreRules.from_lines(["CONSTRAINT:orders.*_fkey"])
        assert rules.is_ignored(("CONSTRAINT", "FOREIGN_KEY"), "orders_user_id_fkey", "orders")

    def test_line_numbers(self) -> None:
        """Errors name the 1-based line."""
        with pytest.raises(IgnorePatternError, match=r"\(line 2\)"):
            IgnoreRules.from_lines(["users", "INDEX:idx"])


class TestLoadIgnoreFile:
    """Reading ignore files."""

    def test_missing_file(self, tmp_path: Path) -> None:
        """A missing file gives the defaults only."""
        rules = load_ignore_file(tmp_path / ".db-reconcile-ignore")
        assert rules.is_ignored("TABLE", "tmp_x")
        assert not rules.is_ignored("TABLE", "users")

    def test_file(self, tmp_path: Path) -> None:
        """Patterns are read line by line."""
        path = tmp_path / ".db-reconcile-ignore"
        path.write_text(textwrap.dedent("""\
            # hide secrets
            COLUMN:users.password_hash

            FUNCTION:debug_*
        """))
        rules = load_ignore_file(path)
        assert rules.is_ignored("COLUMN", "password_hash", "users")
        assert rules.is_ignored("FUNCTION", "debug_dump")


def _users() -> Table:
    return Table(
        name="users",
        columns=[
            Column(name="id", data_type="integer", is_primary_key=True),
            Column(name="email", data_type="text"),
            Column(name="password_hash", data_type="text"),
        ],
        indexes=[
            Index(name="users_hash_idx", columns=["password_hash"]),
            Index(name="users_email_idx", columns=["email"]),
        ],
    )


class TestFilterSchema:
    """filter_schema drops ignored objects and their dependents."""

    def test_columns_and_dependent_indexes(self) -> None:
        """Indexes over an ignored column go with it."""
        schema = DatabaseSchema(tables=[_users()])
        filtered = filter_schema(schema, IgnoreRules.from_lines(["COLUMN:users.password_hash"]))

        [users] = filtered.tables
        assert [c.name for c in users.columns] == ["id", "email"]
        assert [i.name for i in users.indexes] == ["users_email_idx"]
        assert [c.name for c in users.constraints] == ["users_pkey"]

    def test_ignored_primary_key_column(self) -> None:
        """Ignoring the key column drops the primary key."""
        schema = DatabaseSchema(tables=[_users()])
        filtered = filter_schema(schema, IgnoreRules.from_lines(["COLUMN:users.id"]))

        [users] = filtered.tables
        assert users.constraints == []
        assert not any(c.is_primary_key for c in users.columns)

    def test_tables_and_triggers(self) -> None:
        """Triggers on ignored tables disappear with the table."""
        schema = DatabaseSchema(
            tables=[_users(), Table(name="audit_log", columns=[Column(name="msg", data_type="text")])],
            triggers=[
                Trigger(name="audit_trg", table="audit_log", events=["INSERT"], function_name="f"),
                Trigger(name="users_trg", table="users", events=["UPDATE"], function_name="f"),
            ],
        )
        filtered = filter_schema(schema, IgnoreRules.from_lines(["audit_*"]))
        assert [t.name for t in filtered.tables] == ["users"]
        assert [t.name for t in filtered.triggers] == ["users_trg"]

    def test_top_level_objects(self) -> None:
        """Enums, sequences and functions are filtered by type."""
        schema = DatabaseSchema(
            enums=[EnumType(name="test_mood", values=["a"]), EnumType(name="mood", values=["b"])],
            sequences=[Sequence(name="scratch_seq")],
            functions=[
                Function(name="debug_dump", return_type="void"),
                Function(name="touch", return_type="trigger"),
            ],
            extensions=["pgcrypto"],
        )
        rules = IgnoreRules.from_lines(
            ["ENUM:test_*", "SEQUENCE:scratch_*", "FUNCTION:debug_*", "EXTENSION:pgcrypto"]
        )
        filtered = filter_schema(schema, rules)
        assert [e.name for e in filtered.enums] == ["mood"]
        assert filtered.sequences == []
        assert [f.name for f in filtered.functions] == ["touch"]
        assert filtered.extensions == []

    def test_constraint_patterns(self) -> None:
        """Constraints can be ignored by kind."""
        table = Table(
            name="orders",
            columns=[Column(name="user_id", data_type="integer"), Column(name="total", data_type="integer")],
            constraints=[
                Constraint(name="orders_user_id_fkey", constraint_type="FOREIGN_KEY",
                           columns=["user_id"], references_table="users", references_columns=["id"]),
                Constraint(name="orders_total_check", constraint_type="CHECK",
                           columns=["total"], definition="CHECK (total >= 0)"),
            ],
        )
        filtered = filter_schema(
            DatabaseSchema(tables=[table]), IgnoreRules.from_lines(["FOREIGN_KEY:orders.*"])
        )
        assert [c.name for c in filtered.tables[0].constraints] == ["orders_total_check"]

    def test_check_constraints(self) -> None:
        """CHECK constraints match both CHECK and CONSTRAINT patterns."""
        table = Table(
            name="orders",
            columns=[Column(name="total", data_type="integer")],
            constraints=[
                Constraint(name="orders_total_check", constraint_type="CHECK",
                           columns=["total"], definition="CHECK (total >= 0)"),
            ],
        )
        for line in ("CHECK:orders.*_check", "CONSTRAINT:orders.orders_total_check"):
            filtered = filter_schema(DatabaseSchema(tables=[table]), IgnoreRules.from_lines([line]))
            assert filtered.tables[0].constraints == []

    def test_source_untouched(self) -> None:
        """Filtering copies."""
        schema = DatabaseSchema(tables=[_users()])
        filter_schema(schema, IgnoreRules.from_lines(["COLUMN:users.password_hash"]))
        assert len(schema.tables[0].columns) == 3


class TestIgnoreDependencies:
    """Kept columns must not use ignored types."""

    def test_enum_in_use(self) -> None:
        """An ignored enum used by a kept column is an error."""
        schema = DatabaseSchema(
            enums=[EnumType(name="mood", values=["ok"])],
            tables=[Table(name="t", columns=[Column(name="feeling", data_type="mood")])],
        )
        rules = IgnoreRules.from_lines(["ENUM:mood"])
        assert ignore_dependency_errors(schema, rules) == [
            'Column "t.feeling" uses ignored ENUM "mood". '
            "Either un-ignore the ENUM or ignore this column."
        ]
        with pytest.raises(IgnoreDependencyError) as exc:
            validate_ignore_dependencies(schema, rules)
        assert len(exc.value.problems) == 1

    def test_ignored_column_is_fine(self) -> None:
        """Ignoring the column too resolves the conflict."""
        schema = DatabaseSchema(
            enums=[EnumType(name="mood", values=["ok"])],
            tables=[Table(name="t", columns=[Column(name="feeling", data_type="mood")])],
        )
        rules = IgnoreRules.from_lines(["ENUM:mood", "COLUMN:t.feeling"])
        validate_ignore_dependencies(schema, rules)

    def test_sequence_default(self) -> None:
        """A nextval default on an ignored sequence is an error."""
        schema = DatabaseSchema(
            sequences=[Sequence(name="legacy_seq")],
            tables=[Table(name="t", columns=[
                Column(name="id", data_type="integer", default="nextval('legacy_seq'::regclass)"),
            ])],
        )
        problems = ignore_dependency_errors(schema, IgnoreRules.from_lines(["SEQUENCE:legacy_*"]))
        assert problems == [
            'Column "t.id" uses ignored SEQUENCE "legacy_seq". '
            "Either un-ignore the SEQUENCE or ignore this column."
        ]
