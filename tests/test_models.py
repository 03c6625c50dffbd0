"""Tests for the Canonical Schema Model, type canonicalization and normalization."""

import pytest
from pydantic import ValidationError

from db_reconcile.errors import SchemaInvariantError
from db_reconcile.schema.models import (
    Column,
    Constraint,
    DatabaseSchema,
    Domain,
    EnumType,
    Function,
    FunctionArg,
    Index,
    Table,
)
from db_reconcile.schema.normalize import materially_equal, normalize_schema, schema_hash
from db_reconcile.schema.types import (
    canonicalize_type,
    format_type,
    is_narrowing,
    is_serial,
    normalize_default,
    nextval_sequence,
    storage_type,
)


def _users() -> Table:
    return Table(
        name="users",
        columns=[
            Column(name="id", data_type="serial", is_primary_key=True),
            Column(name="email", data_type="varchar(255)", is_nullable=False),
        ],
    )


class TestTypeCanonicalization:
    """Raw type spellings collapse into one canonical form."""

    def test_aliases(self) -> None:
        """Short PostgreSQL names map to their canonical spelling."""
        assert canonicalize_type("int4").name == "integer"
        assert canonicalize_type("int8").name == "bigint"
        assert canonicalize_type("bool").name == "boolean"
        assert canonicalize_type("timestamptz").name == "timestamp with time zone"

    def test_length_parameter(self) -> None:
        """varchar(n) carries a length, not a precision."""
        parsed = canonicalize_type("VARCHAR(64)")
        assert parsed.name == "character varying"
        assert parsed.length == 64
        assert parsed.precision is None

    def test_numeric_precision_and_scale(self) -> None:
        """numeric(p, s) carries precision and scale."""
        parsed = canonicalize_type("decimal(10,2)")
        assert parsed.name == "numeric"
        assert (parsed.precision, parsed.scale) == (10, 2)

    def test_array_spellings(self) -> None:
        """Internal ``_type`` names and ``[]`` suffixes both mean arrays."""
        assert canonicalize_type("_int4") == canonicalize_type("integer[]")
        assert canonicalize_type("text ARRAY").is_array is True

    def test_quoted_names_keep_case(self) -> None:
        """Quoted user-defined types are not lower-cased."""
        assert canonicalize_type('"MoodType"').name == '"MoodType"'

    def test_format_round_trip(self) -> None:
        """format_type renders what canonicalize_type parsed."""
        parsed = canonicalize_type("numeric(12, 4)")
        assert format_type(*parsed) == "numeric(12, 4)"

    def test_serial_storage(self) -> None:
        """Serial pseudo-types store as their integer type."""
        assert storage_type("bigserial") == "bigint"
        assert storage_type("text") == "text"
        assert is_serial("serial") is True
        assert is_serial("integer") is False


class TestNarrowing:
    """is_narrowing flags changes that could lose data."""

    @staticmethod
    def _col(data_type: str) -> Column:
        return Column(name="c", data_type=data_type)

    def test_shorter_varchar_is_narrowing(self) -> None:
        """Shrinking a varchar is narrowing."""
        assert is_narrowing(self._col("varchar(255)"), self._col("varchar(50)")) is True

    def test_longer_varchar_is_not_narrowing(self) -> None:
        """Growing a varchar is safe."""
        assert is_narrowing(self._col("varchar(50)"), self._col("varchar(255)")) is False

    def test_integer_to_bigint_is_widening(self) -> None:
        """integer -> bigint is a widening cast."""
        assert is_narrowing(self._col("integer"), self._col("bigint")) is False

    def test_bigint_to_integer_is_narrowing(self) -> None:
        """bigint -> integer is narrowing."""
        assert is_narrowing(self._col("bigint"), self._col("integer")) is True

    def test_varchar_to_text_is_widening(self) -> None:
        """Any varchar fits in text."""
        assert is_narrowing(self._col("varchar(50)"), self._col("text")) is False

    def test_text_to_varchar_is_narrowing(self) -> None:
        """text -> varchar(n) may truncate."""
        assert is_narrowing(self._col("text"), self._col("varchar(10)")) is True

    def test_scalar_to_array_is_narrowing(self) -> None:
        """Changing array-ness cannot keep the data."""
        assert is_narrowing(self._col("integer"), self._col("integer[]")) is True

    def test_numeric_scale_reduction_is_narrowing(self) -> None:
        """Dropping decimal places loses data."""
        assert is_narrowing(self._col("numeric(10, 4)"), self._col("numeric(10, 2)")) is True


class TestDefaults:
    """Default expressions normalize for comparison only."""

    def test_cast_suffix_stripped(self) -> None:
        """Trailing ``::type`` casts are ignored."""
        assert normalize_default("'active'::character varying") == "'active'"

    def test_now_synonyms(self) -> None:
        """now() and CURRENT_TIMESTAMP compare equal."""
        assert normalize_default("now()") == normalize_default("CURRENT_TIMESTAMP")

    def test_redundant_parentheses(self) -> None:
        """Wrapping parentheses are removed."""
        assert normalize_default("((0))") == "0"

    def test_empty_default(self) -> None:
        """Blank and None both mean no default."""
        assert normalize_default("  ") is None
        assert normalize_default(None) is None

    def test_nextval_sequence(self) -> None:
        """Sequence name is extracted without schema prefix or quotes."""
        assert nextval_sequence("nextval('\"Orders_seq\"'::regclass)") == "Orders_seq"


class TestColumn:
    """Column canonicalizes its type on construction."""

    def test_type_canonicalized(self) -> None:
        """Raw spelling is parsed into data_type and length."""
        col = Column(name="email", data_type="varchar(255)")
        assert col.data_type == "character varying"
        assert col.length == 255
        assert col.type_sql == "character varying(255)"

    def test_explicit_length_wins(self) -> None:
        """An explicit length is not overwritten by the spelling."""
        col = Column(name="code", data_type="varchar", length=8)
        assert col.type_sql == "character varying(8)"

    def test_defaults(self) -> None:
        """Columns are nullable and untracked by default."""
        col = Column(name="note", data_type="text")
        assert col.is_nullable is True
        assert col.tracking_id is None


class TestTable:
    """Table validators enforce per-table invariants."""

    def test_duplicate_column_rejected(self) -> None:
        """Two columns with one name fail validation."""
        with pytest.raises(ValidationError, match="Duplicate column"):
            Table(
                name="t",
                columns=[
                    Column(name="a", data_type="text"),
                    Column(name="a", data_type="integer"),
                ],
            )

    def test_duplicate_index_rejected(self) -> None:
        """Index names are unique within a table."""
        with pytest.raises(ValidationError, match="Duplicate index"):
            Table(
                name="t",
                columns=[Column(name="a", data_type="text")],
                indexes=[Index(name="ix", columns=["a"]), Index(name="ix", columns=["a"])],
            )

    def test_ordinals_assigned(self) -> None:
        """Missing ordinals are numbered from 1 in declaration order."""
        table = _users()
        assert [c.ordinal for c in table.columns] == [1, 2]

    def test_ordinals_sort_columns(self) -> None:
        """Valid ordinals reorder columns."""
        table = Table(
            name="t",
            columns=[
                Column(name="b", data_type="text", ordinal=2),
                Column(name="a", data_type="text", ordinal=1),
            ],
        )
        assert [c.name for c in table.columns] == ["a", "b"]

    def test_flagged_column_creates_pk_constraint(self) -> None:
        """is_primary_key columns produce a {table}_pkey constraint."""
        table = _users()
        assert table.primary_key is not None
        assert table.primary_key.name == "users_pkey"
        assert table.primary_key.columns == ["id"]

    def test_pk_columns_not_null(self) -> None:
        """Primary key columns are never nullable."""
        table = Table(
            name="t",
            columns=[Column(name="id", data_type="integer", is_nullable=True)],
            constraints=[
                Constraint(name="t_pk", constraint_type="PRIMARY KEY", columns=["id"]),
            ],
        )
        assert table.column("id").is_primary_key is True
        assert table.column("id").is_nullable is False

    def test_two_primary_keys_rejected(self) -> None:
        """A table has at most one primary key."""
        with pytest.raises(ValidationError, match="more than one primary key"):
            Table(
                name="t",
                columns=[Column(name="a", data_type="integer")],
                constraints=[
                    Constraint(name="pk1", constraint_type="PRIMARY_KEY", columns=["a"]),
                    Constraint(name="pk2", constraint_type="PRIMARY_KEY", columns=["a"]),
                ],
            )

    def test_pk_unknown_column_rejected(self) -> None:
        """A primary key must name existing columns."""
        with pytest.raises(ValidationError, match="unknown"):
            Table(
                name="t",
                columns=[Column(name="a", data_type="integer")],
                constraints=[
                    Constraint(name="t_pkey", constraint_type="PRIMARY_KEY", columns=["b"]),
                ],
            )

    def test_single_column_unique_sets_flag(self) -> None:
        """A one-column UNIQUE constraint marks the column unique."""
        table = Table(
            name="t",
            columns=[Column(name="email", data_type="text")],
            constraints=[
                Constraint(name="t_email_key", constraint_type="UNIQUE", columns=["email"]),
            ],
        )
        assert table.column("email").is_unique is True

    def test_no_action_normalized_away(self) -> None:
        """NO ACTION is the default referential action."""
        fk = Constraint(
            name="fk",
            constraint_type="foreign key",
            columns=["a"],
            references_table="x",
            references_columns=["id"],
            on_delete="no action",
            on_update="cascade",
        )
        assert fk.constraint_type == "FOREIGN_KEY"
        assert fk.on_delete is None
        assert fk.on_update == "CASCADE"

    def test_index_method_lowercased(self) -> None:
        """Index methods compare case-insensitively."""
        assert Index(name="ix", columns=["a"], method="GIN").method == "gin"


class TestSchemaObjects:
    """Schema-level objects."""

    def test_enum_duplicate_values_rejected(self) -> None:
        """Enum values are unique."""
        with pytest.raises(ValidationError, match="Duplicate enum value"):
            EnumType(name="mood", values=["happy", "happy"])

    def test_domain_base_type_canonical(self) -> None:
        """Domain base types use the canonical spelling."""
        assert Domain(name="email", base_type="VARCHAR(320)").base_type == "character varying(320)"

    def test_function_signature_skips_out_args(self) -> None:
        """OUT arguments are not part of the signature."""
        fn = Function(
            name="add",
            args=[
                FunctionArg(name="a", data_type="integer"),
                FunctionArg(name="b", data_type="integer"),
                FunctionArg(name="r", data_type="integer", mode="OUT"),
            ],
            body="BEGIN r := a + b; END;",
        )
        assert fn.signature == "add(integer, integer)"

    def test_extensions_accept_strings(self) -> None:
        """Extensions may be listed by name."""
        schema = DatabaseSchema(extensions=["pgcrypto", {"name": "citext"}])
        assert [e.name for e in schema.extensions] == ["pgcrypto", "citext"]


class TestSchemaInvariants:
    """DatabaseSchema.invariant_errors and check_invariants."""

    def test_valid_schema(self) -> None:
        """A consistent schema has no problems."""
        orders = Table(
            name="orders",
            columns=[
                Column(name="id", data_type="integer", is_primary_key=True),
                Column(name="user_id", data_type="integer"),
            ],
            constraints=[
                Constraint(
                    name="orders_user_id_fkey",
                    constraint_type="FOREIGN_KEY",
                    columns=["user_id"],
                    references_table="users",
                    references_columns=["id"],
                ),
            ],
        )
        schema = DatabaseSchema(tables=[_users(), orders])
        assert schema.invariant_errors() == []
        schema.check_invariants()

    def test_duplicate_table(self) -> None:
        """Table names are unique."""
        schema = DatabaseSchema(tables=[_users(), _users()])
        assert "Duplicate table name 'users'" in schema.invariant_errors()

    def test_duplicate_enum(self) -> None:
        """Kinds are singularized in messages."""
        schema = DatabaseSchema(
            enums=[EnumType(name="mood", values=["a"]), EnumType(name="mood", values=["b"])]
        )
        assert schema.invariant_errors() == ["Duplicate enum name 'mood'"]

    def test_fk_unknown_table(self) -> None:
        """A foreign key to a missing table is reported."""
        table = Table(
            name="orders",
            columns=[Column(name="user_id", data_type="integer")],
            constraints=[
                Constraint(
                    name="fk_user",
                    constraint_type="FOREIGN_KEY",
                    columns=["user_id"],
                    references_table="users",
                    references_columns=["id"],
                ),
            ],
        )
        schema = DatabaseSchema(tables=[table])
        assert schema.invariant_errors() == [
            "Foreign key 'fk_user' on 'orders' references unknown table 'users'"
        ]
        with pytest.raises(SchemaInvariantError):
            schema.check_invariants()

    def test_fk_type_mismatch(self) -> None:
        """Foreign key columns must share the storage type of their target."""
        table = Table(
            name="orders",
            columns=[Column(name="user_id", data_type="text")],
            constraints=[
                Constraint(
                    name="fk_user",
                    constraint_type="FOREIGN_KEY",
                    columns=["user_id"],
                    references_table="users",
                    references_columns=["id"],
                ),
            ],
        )
        problems = DatabaseSchema(tables=[_users(), table]).invariant_errors()
        assert len(problems) == 1
        assert "incompatible" in problems[0]

    def test_fk_serial_target_is_compatible(self) -> None:
        """serial stores as integer, so an integer FK may reference it."""
        table = Table(
            name="orders",
            columns=[Column(name="user_id", data_type="int4")],
            constraints=[
                Constraint(
                    name="fk_user",
                    constraint_type="FOREIGN_KEY",
                    columns=["user_id"],
                    references_table="users",
                    references_columns=["id"],
                ),
            ],
        )
        assert DatabaseSchema(tables=[_users(), table]).invariant_errors() == []


class TestNormalization:
    """Material equality ignores comments, tracking ids and ordering."""

    def test_tracking_ids_and_comments_ignored(self) -> None:
        """Only material fields are compared."""
        a = DatabaseSchema(tables=[_users()])
        b = DatabaseSchema(tables=[_users()])
        b.tables[0].tracking_id = "abc"
        b.tables[0].comment = "people"
        assert materially_equal(a, b) is True
        assert schema_hash(a) == schema_hash(b)

    def test_serial_equals_integer_with_nextval(self) -> None:
        """serial and integer + nextval default are the same column."""
        a = Table(name="t", columns=[Column(name="id", data_type="serial")])
        b = Table(
            name="t",
            columns=[
                Column(
                    name="id",
                    data_type="integer",
                    default="nextval('t_id_seq'::regclass)",
                )
            ],
        )
        assert materially_equal(DatabaseSchema(tables=[a]), DatabaseSchema(tables=[b]))

    def test_table_order_ignored(self) -> None:
        """Object lists are compared as sets by name."""
        t1 = Table(name="a", columns=[Column(name="x", data_type="text")])
        t2 = Table(name="b", columns=[Column(name="y", data_type="text")])
        assert normalize_schema(DatabaseSchema(tables=[t1, t2])) == normalize_schema(
            DatabaseSchema(tables=[t2, t1])
        )

    def test_type_change_is_material(self) -> None:
        """A different column type changes the hash."""
        a = Table(name="t", columns=[Column(name="x", data_type="text")])
        b = Table(name="t", columns=[Column(name="x", data_type="integer")])
        assert schema_hash(DatabaseSchema(tables=[a])) != schema_hash(DatabaseSchema(tables=[b]))
