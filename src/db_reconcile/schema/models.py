"""Pydantic models for the Canonical Schema Model (CSM).

The CSM is the currency every component reads or produces:
- Table objects: Column, Index, Constraint, Partitioning, Table
- Schema-level objects: Extension, EnumType, Domain, CompositeType,
  Sequence, Function, Trigger, View, ForeignServer, ForeignTable, Collation
- Container: DatabaseSchema

Column types are canonicalized on construction (``int4`` -> ``integer``)
and table-level invariants (unique names, primary key consistency) are
enforced by validators.  ``tracking_id`` is carried on every entity but is
never part of material equality (see ``db_reconcile.schema.normalize``).

Usage:
    from db_reconcile.schema.models import Column, DatabaseSchema, Table

    schema = DatabaseSchema(tables=[
        Table(name="users", columns=[
            Column(name="id", data_type="int4", is_primary_key=True),
            Column(name="email", data_type="varchar(255)", is_nullable=False),
        ]),
    ])
    schema.tables[0].columns[1].type_sql   # 'character varying(255)'
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

from db_reconcile.errors import SchemaInvariantError
from db_reconcile.schema.types import (
    canonicalize_type,
    format_type,
    storage_type,
)


ConstraintType = Literal["PRIMARY_KEY", "UNIQUE", "CHECK", "FOREIGN_KEY", "EXCLUSION"]


def _canonical_type_fields(data: Any, key: str = "data_type") -> Any:
    """Canonicalize the type spelling in a raw model input dict."""
    if not isinstance(data, dict) or not isinstance(data.get(key), str):
        return data
    parsed = canonicalize_type(data[key])
    data = dict(data)
    data[key] = parsed.name
    for field in ("length", "precision", "scale"):
        if data.get(field) is None and getattr(parsed, field) is not None:
            data[field] = getattr(parsed, field)
    if parsed.is_array:
        data["is_array"] = True
    return data


def _duplicates(names: list[str]) -> list[str]:
    seen: set[str] = set()
    dupes: list[str] = []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes


# ============================================================================
# Table Objects
# ============================================================================


class GeneratedColumn(BaseModel):
    """Generation expression of a computed column."""

    expression: str
    stored: bool = True


class Column(BaseModel):
    """A table column.

    Example:
        >>> col = Column(name="id", data_type="int4")
        >>> col.data_type
        'integer'
        >>> col.is_nullable
        True
    """

    name: str
    ordinal: int = 0
    data_type: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    is_array: bool = False
    is_nullable: bool = True
    default: str | None = None
    is_primary_key: bool = False
    is_unique: bool = False
    generated: GeneratedColumn | None = None
    identity: Literal["ALWAYS", "BY_DEFAULT"] | None = None
    comment: str | None = None
    tracking_id: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _canonicalize(cls, data: Any) -> Any:
        return _canonical_type_fields(data)

    @property
    def type_sql(self) -> str:
        """Canonical type with parameters, e.g. ``numeric(10, 2)``."""
        return format_type(
            self.data_type, self.length, self.precision, self.scale, self.is_array
        )


class Index(BaseModel):
    """A table index."""

    name: str
    columns: list[str] = Field(default_factory=list)
    is_unique: bool = False
    method: str = "btree"  # btree, hash, gin, gist, brin, spgist, fulltext, spatial
    where: str | None = None
    expression: str | None = None
    comment: str | None = None
    tracking_id: str | None = None

    @field_validator("method")
    @classmethod
    def _lower_method(cls, v: str) -> str:
        return v.lower()


class Constraint(BaseModel):
    """A table constraint.

    Example:
        >>> fk = Constraint(
        ...     name="orders_user_id_fkey",
        ...     constraint_type="FOREIGN_KEY",
        ...     columns=["user_id"],
        ...     references_table="users",
        ...     references_columns=["id"],
        ... )
        >>> fk.references_table
        'users'
    """

    name: str
    constraint_type: ConstraintType
    columns: list[str] = Field(default_factory=list)
    check_expr: str | None = None
    definition: str | None = None  # raw body for EXCLUSION constraints
    references_table: str | None = None
    references_columns: list[str] = Field(default_factory=list)
    on_delete: str | None = None
    on_update: str | None = None
    deferrable: bool = False
    tracking_id: str | None = None

    @field_validator("constraint_type", mode="before")
    @classmethod
    def _normalize_type(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper().replace(" ", "_")
        return v

    @field_validator("on_delete", "on_update")
    @classmethod
    def _normalize_action(cls, v: str | None) -> str | None:
        if v is None:
            return None
        v = " ".join(v.upper().split())
        return None if v == "NO ACTION" else v


class PartitionChild(BaseModel):
    """A partition attached to a partitioned table."""

    name: str
    bound: str  # e.g. "FOR VALUES FROM ('2024-01-01') TO ('2025-01-01')"


class Partitioning(BaseModel):
    """Declarative partitioning of a table."""

    type: Literal["RANGE", "LIST", "HASH"]
    keys: list[str] = Field(default_factory=list)
    children: list[PartitionChild] = Field(default_factory=list)

    @field_validator("type", mode="before")
    @classmethod
    def _upper(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v


class Table(BaseModel):
    """A table with its columns, indexes and constraints.

    Primary keys may be declared either by flagging columns
    (``is_primary_key=True``) or by a ``PRIMARY_KEY`` constraint; the
    validator reconciles the two so both views always agree.

    Example:
        >>> t = Table(name="users", columns=[
        ...     Column(name="id", data_type="integer", is_primary_key=True),
        ... ])
        >>> t.primary_key.name
        'users_pkey'
    """

    name: str
    schema_name: str = "public"
    columns: list[Column] = Field(default_factory=list)
    indexes: list[Index] = Field(default_factory=list)
    constraints: list[Constraint] = Field(default_factory=list)
    partitioning: Partitioning | None = None
    comment: str | None = None
    tracking_id: str | None = None

    @model_validator(mode="after")
    def _check_invariants(self) -> "Table":
        for kind, names in (
            ("column", [c.name for c in self.columns]),
            ("index", [i.name for i in self.indexes]),
            ("constraint", [c.name for c in self.constraints]),
        ):
            dupes = _duplicates(names)
            if dupes:
                raise ValueError(
                    f"Duplicate {kind} name(s) in table '{self.name}': {', '.join(dupes)}"
                )

        ordinals = [c.ordinal for c in self.columns]
        if any(o <= 0 for o in ordinals) or len(set(ordinals)) != len(ordinals):
            for position, column in enumerate(self.columns, start=1):
                column.ordinal = position
        else:
            self.columns.sort(key=lambda c: c.ordinal)

        pk_constraints = [
            c for c in self.constraints if c.constraint_type == "PRIMARY_KEY"
        ]
        if len(pk_constraints) > 1:
            raise ValueError(f"Table '{self.name}' has more than one primary key")

        flagged = [c.name for c in self.columns if c.is_primary_key]
        if pk_constraints:
            pk = pk_constraints[0]
            known = {c.name for c in self.columns}
            missing = [c for c in pk.columns if c not in known]
            if missing:
                raise ValueError(
                    f"Primary key '{pk.name}' on '{self.name}' names unknown "
                    f"column(s): {', '.join(missing)}"
                )
            stray = [c for c in flagged if c not in pk.columns]
            if stray:
                raise ValueError(
                    f"Column(s) {', '.join(stray)} flagged primary key but not in "
                    f"constraint '{pk.name}'"
                )
            for column in self.columns:
                column.is_primary_key = column.name in pk.columns
        elif flagged:
            self.constraints.insert(
                0,
                Constraint(
                    name=f"{self.name}_pkey",
                    constraint_type="PRIMARY_KEY",
                    columns=flagged,
                ),
            )

        for column in self.columns:
            if column.is_primary_key:
                column.is_nullable = False

        # A single-column UNIQUE constraint and the column flag are one fact
        for constraint in self.constraints:
            if constraint.constraint_type == "UNIQUE" and len(constraint.columns) == 1:
                column = self.column(constraint.columns[0])
                if column is not None:
                    column.is_unique = True
        return self

    def column(self, name: str) -> Column | None:
        """Return the column named *name*, or None."""
        return next((c for c in self.columns if c.name == name), None)

    def index(self, name: str) -> Index | None:
        """Return the index named *name*, or None."""
        return next((i for i in self.indexes if i.name == name), None)

    def constraint(self, name: str) -> Constraint | None:
        """Return the constraint named *name*, or None."""
        return next((c for c in self.constraints if c.name == name), None)

    @property
    def primary_key(self) -> Constraint | None:
        """The PRIMARY_KEY constraint, if any."""
        return next(
            (c for c in self.constraints if c.constraint_type == "PRIMARY_KEY"), None
        )

    @property
    def foreign_keys(self) -> list[Constraint]:
        """All FOREIGN_KEY constraints in declaration order."""
        return [c for c in self.constraints if c.constraint_type == "FOREIGN_KEY"]


# ============================================================================
# Schema-level Objects
# ============================================================================


class Extension(BaseModel):
    """An installed extension."""

    name: str
    schema_name: str | None = None
    version: str | None = None
    tracking_id: str | None = None


class EnumType(BaseModel):
    """An enumerated type with ordered values."""

    name: str
    values: list[str] = Field(default_factory=list)
    schema_name: str = "public"
    tracking_id: str | None = None

    @field_validator("values")
    @classmethod
    def _unique_values(cls, v: list[str]) -> list[str]:
        dupes = _duplicates(v)
        if dupes:
            raise ValueError(f"Duplicate enum value(s): {', '.join(dupes)}")
        return v


class Domain(BaseModel):
    """A domain over a base type."""

    name: str
    base_type: str
    not_null: bool = False
    default: str | None = None
    check_expr: str | None = None
    schema_name: str = "public"
    tracking_id: str | None = None

    @field_validator("base_type")
    @classmethod
    def _canonical_base(cls, v: str) -> str:
        return format_type(*canonicalize_type(v))


class CompositeAttribute(BaseModel):
    """One attribute of a composite type."""

    name: str
    data_type: str

    @field_validator("data_type")
    @classmethod
    def _canonical(cls, v: str) -> str:
        return format_type(*canonicalize_type(v))


class CompositeType(BaseModel):
    """A composite (row) type."""

    name: str
    attributes: list[CompositeAttribute] = Field(default_factory=list)
    schema_name: str = "public"
    tracking_id: str | None = None


class Sequence(BaseModel):
    """A sequence.  Unset options are left to the database default."""

    name: str
    data_type: str | None = None
    start: int | None = None
    increment: int | None = None
    min_value: int | None = None
    max_value: int | None = None
    cache: int | None = None
    cycle: bool = False
    owned_by: str | None = None  # "table.column"
    schema_name: str = "public"
    tracking_id: str | None = None


class FunctionArg(BaseModel):
    """A function argument."""

    name: str | None = None
    data_type: str
    mode: Literal["IN", "OUT", "INOUT", "VARIADIC"] = "IN"
    default: str | None = None


class Function(BaseModel):
    """A function or procedure.

    Example:
        >>> fn = Function(name="touch", return_type="trigger", body="BEGIN RETURN NEW; END;")
        >>> fn.signature
        'touch()'
    """

    name: str
    kind: Literal["function", "procedure"] = "function"
    args: list[FunctionArg] = Field(default_factory=list)
    return_type: str | None = None
    language: str = "plpgsql"
    body: str = ""
    volatility: Literal["VOLATILE", "STABLE", "IMMUTABLE"] = "VOLATILE"
    is_strict: bool = False
    security_definer: bool = False
    schema_name: str = "public"
    tracking_id: str | None = None

    @property
    def signature(self) -> str:
        """Name plus input argument types, e.g. ``add(integer, integer)``."""
        arg_types = ", ".join(a.data_type for a in self.args if a.mode != "OUT")
        return f"{self.name}({arg_types})"


class Trigger(BaseModel):
    """A trigger bound to a table."""

    name: str
    table: str
    events: list[Literal["INSERT", "UPDATE", "DELETE", "TRUNCATE"]] = Field(
        default_factory=list
    )
    timing: Literal["BEFORE", "AFTER", "INSTEAD_OF"] = "BEFORE"
    for_each: Literal["ROW", "STATEMENT"] = "ROW"
    when: str | None = None
    function_name: str
    tracking_id: str | None = None

    @field_validator("timing", mode="before")
    @classmethod
    def _timing(cls, v: Any) -> Any:
        return v.upper().replace(" ", "_") if isinstance(v, str) else v


class View(BaseModel):
    """A view or materialized view."""

    name: str
    definition: str
    schema_name: str = "public"
    comment: str | None = None
    tracking_id: str | None = None


class ForeignServer(BaseModel):
    """A foreign data server."""

    name: str
    wrapper: str
    options: dict[str, str] = Field(default_factory=dict)
    tracking_id: str | None = None


class ForeignTable(BaseModel):
    """A foreign table served by a foreign server."""

    name: str
    server: str
    columns: list[Column] = Field(default_factory=list)
    options: dict[str, str] = Field(default_factory=dict)
    schema_name: str = "public"
    tracking_id: str | None = None


class Collation(BaseModel):
    """A user-defined collation."""

    name: str
    provider: str = "libc"
    locale: str | None = None
    deterministic: bool = True
    tracking_id: str | None = None


# ============================================================================
# Container
# ============================================================================


# Attribute names of every object list on DatabaseSchema, in dependency order
SCHEMA_OBJECT_KINDS: tuple[str, ...] = (
    "extensions",
    "collations",
    "enums",
    "domains",
    "composite_types",
    "sequences",
    "tables",
    "functions",
    "triggers",
    "views",
    "materialized_views",
    "foreign_servers",
    "foreign_tables",
)


class DatabaseSchema(BaseModel):
    """Complete database schema.

    Example:
        >>> schema = DatabaseSchema(extensions=["pgcrypto"])
        >>> schema.extensions[0].name
        'pgcrypto'
        >>> schema.invariant_errors()
        []
    """

    extensions: list[Extension] = Field(default_factory=list)
    collations: list[Collation] = Field(default_factory=list)
    enums: list[EnumType] = Field(default_factory=list)
    domains: list[Domain] = Field(default_factory=list)
    composite_types: list[CompositeType] = Field(default_factory=list)
    sequences: list[Sequence] = Field(default_factory=list)
    tables: list[Table] = Field(default_factory=list)
    functions: list[Function] = Field(default_factory=list)
    triggers: list[Trigger] = Field(default_factory=list)
    views: list[View] = Field(default_factory=list)
    materialized_views: list[View] = Field(default_factory=list)
    foreign_servers: list[ForeignServer] = Field(default_factory=list)
    foreign_tables: list[ForeignTable] = Field(default_factory=list)

    @field_validator("extensions", mode="before")
    @classmethod
    def _extension_names(cls, v: Any) -> Any:
        if isinstance(v, list):
            return [{"name": e} if isinstance(e, str) else e for e in v]
        return v

    def table(self, name: str) -> Table | None:
        """Return the table named *name*, or None."""
        return next((t for t in self.tables if t.name == name), None)

    def enum(self, name: str) -> EnumType | None:
        """Return the enum named *name*, or None."""
        return next((e for e in self.enums if e.name == name), None)

    def invariant_errors(self) -> list[str]:
        """List violations of the schema-level invariants.

        Checks unique names within each kind and that every foreign key
        names an existing table and columns with compatible types.

        Returns:
            Human-readable problem descriptions, empty when valid.
        """
        problems: list[str] = []
        for kind in SCHEMA_OBJECT_KINDS:
            names = [obj.name for obj in getattr(self, kind)]
            if kind == "functions":
                names = [f.signature for f in self.functions]
            for dupe in _duplicates(names):
                problems.append(f"Duplicate {kind[:-1].replace('_', ' ')} name '{dupe}'")

        for table in self.tables:
            for fk in table.foreign_keys:
                target = self.table(fk.references_table or "")
                if target is None:
                    problems.append(
                        f"Foreign key '{fk.name}' on '{table.name}' references "
                        f"unknown table '{fk.references_table}'"
                    )
                    continue
                if len(fk.columns) != len(fk.references_columns):
                    problems.append(
                        f"Foreign key '{fk.name}' on '{table.name}' has "
                        f"{len(fk.columns)} column(s) but references "
                        f"{len(fk.references_columns)}"
                    )
                    continue
                for local_name, remote_name in zip(fk.columns, fk.references_columns):
                    local = table.column(local_name)
                    remote = target.column(remote_name)
                    if local is None or remote is None:
                        missing = local_name if local is None else f"{target.name}.{remote_name}"
                        problems.append(
                            f"Foreign key '{fk.name}' on '{table.name}' names "
                            f"unknown column '{missing}'"
                        )
                        continue
                    if (
                        storage_type(local.data_type) != storage_type(remote.data_type)
                        or local.is_array != remote.is_array
                    ):
                        problems.append(
                            f"Foreign key '{fk.name}': {table.name}.{local.name} "
                            f"({local.type_sql}) is incompatible with "
                            f"{target.name}.{remote.name} ({remote.type_sql})"
                        )
        return problems

    def check_invariants(self) -> None:
        """Raise ``SchemaInvariantError`` if any invariant is violated."""
        problems = self.invariant_errors()
        if problems:
            raise SchemaInvariantError(problems)
