"""Up/down DDL generation from a schema diff.

Turns a ``SchemaDiff`` into two ordered statement lists.  The forward
(``up``) list is emitted in ten phases so that no statement references an
object before it exists or after it is dropped:

 1. renames
 2. enum value additions
 3. column modifications (and drops of changed constraints)
 4. CREATE of extensions, collations, enums, domains, sequences, composites
 5. CREATE TABLE with inline non-FK constraints
 6. ADD COLUMN, then added constraints
 7. CREATE INDEX
 8. functions, views, materialized views, triggers, foreign objects
 9. deferred foreign keys and sequence ownership
10. drops, dependents first

Every up step registers its inverse; the ``down`` list is those inverses in
reverse order.  Changes that cannot be reversed losslessly produce a
commented caveat instead of a statement.

Identifiers go through the dialect's quoter; type names are never quoted.

Pure logic -- no I/O.

Usage:
    from db_reconcile.dialects import get_dialect
    from db_reconcile.schema.comparator import compare_schemas
    from db_reconcile.schema.ddl import generate_migration

    diff = compare_schemas(current, desired)
    migration = generate_migration(diff, get_dialect("postgres"), current, desired)
    print(migration.up_sql())
"""

import logging
from collections.abc import Callable

from pydantic import BaseModel, Field

from db_reconcile.dialects.base import Dialect
from db_reconcile.dialects.postgres import POSTGRES
from db_reconcile.migrations import is_comment_only
from db_reconcile.schema.diff import ItemDiff, Rename, SchemaDiff, TableDiff
from db_reconcile.schema.models import (
    Collation,
    Column,
    CompositeType,
    Constraint,
    DatabaseSchema,
    Domain,
    EnumType,
    Extension,
    ForeignServer,
    ForeignTable,
    Function,
    Index,
    Sequence,
    Table,
    Trigger,
    View,
)
from db_reconcile.schema.types import is_serial, nextval_sequence, storage_type

logger = logging.getLogger(__name__)

# Rename phase order: containers before their contents
RENAME_ORDER: tuple[str, ...] = (
    "enum",
    "sequence",
    "table",
    "column",
    "index",
    "constraint",
    "domain",
    "composite_type",
    "function",
    "view",
    "materialized_view",
    "trigger",
    "collation",
    "foreign_table",
    "foreign_server",
    "extension",
)

_RENAME_STATEMENTS: dict[str, str] = {
    "enum": "ALTER TYPE {old} RENAME TO {new};",
    "composite_type": "ALTER TYPE {old} RENAME TO {new};",
    "domain": "ALTER DOMAIN {old} RENAME TO {new};",
    "sequence": "ALTER SEQUENCE {old} RENAME TO {new};",
    "view": "ALTER VIEW {old} RENAME TO {new};",
    "materialized_view": "ALTER MATERIALIZED VIEW {old} RENAME TO {new};",
    "collation": "ALTER COLLATION {old} RENAME TO {new};",
    "foreign_table": "ALTER FOREIGN TABLE {old} RENAME TO {new};",
    "foreign_server": "ALTER SERVER {old} RENAME TO {new};",
}

_COLUMN_TYPE_FIELDS = {"type", "length", "precision", "scale"}


# ------------------------------------------------------------------
# Result
# ------------------------------------------------------------------


class MigrationSQL(BaseModel):
    """Generated forward and reverse statements.

    Example:
        >>> MigrationSQL().is_empty
        True
    """

    up: list[str] = Field(default_factory=list)
    down: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        """True when ``up`` holds nothing but comments."""
        return all(is_comment_only(s) for s in self.up)

    def up_sql(self) -> str:
        return "\n".join(self.up)

    def down_sql(self) -> str:
        return "\n".join(self.down)


class _Script:
    """Accumulates up statements and their inverses."""

    def __init__(self) -> None:
        self.up: list[str] = []
        self._down: list[list[str]] = []
        self.warnings: list[str] = []

    def emit(self, up: str | list[str], down: str | list[str] | None = None) -> None:
        self.up.extend([up] if isinstance(up, str) else up)
        if down:
            self._down.insert(0, [down] if isinstance(down, str) else list(down))

    def down_only(self, down: str | list[str]) -> None:
        self._down.insert(0, [down] if isinstance(down, str) else list(down))

    def warn(self, message: str) -> None:
        logger.warning(message)
        self.warnings.append(message)

    def result(self) -> MigrationSQL:
        down = [stmt for block in self._down for stmt in block]
        return MigrationSQL(up=self.up, down=down, warnings=self.warnings)


def sql_literal(value: str) -> str:
    """Single-quote *value* as a SQL string literal.

    Example:
        >>> sql_literal("it's")
        "'it''s'"
    """
    return "'" + value.replace("'", "''") + "'"


# ------------------------------------------------------------------
# Generator
# ------------------------------------------------------------------


class DDLGenerator:
    """Generates dialect-specific DDL for a ``SchemaDiff``.

    Args:
        dialect: Target dialect record.
        enums: Known enum types by name, used to spell enum columns on
            dialects without standalone enum types.
    """

    def __init__(self, dialect: Dialect = POSTGRES, enums: dict[str, list[str]] | None = None):
        self.dialect = dialect
        self.enums = enums or {}
        self.pg_like = dialect.family in ("postgres", "xata")
        self.is_mysql = dialect.family == "mysql"
        self.is_sqlite = dialect.family == "sqlite"
        self._cascade = " CASCADE" if self.pg_like else ""
        self._column_renames: dict[str, dict[str, str]] = {}
        self._table_renames: dict[str, str] = {}

    # -- identifiers ---------------------------------------------------

    def q(self, name: str) -> str:
        return self.dialect.quote_identifier(name)

    def _cols(self, names: list[str]) -> str:
        return ", ".join(self.q(n) for n in names)

    def _map_columns(self, table: str, names: list[str]) -> list[str]:
        mapping = self._column_renames.get(table, {})
        return [mapping.get(n, n) for n in names]

    def _map_table(self, name: str | None) -> str | None:
        if name is None:
            return None
        return self._table_renames.get(name, name)

    def _current_constraint(self, table: str, con: Constraint) -> Constraint:
        """*con* from the observed schema, re-spelled with renamed names."""
        ref_table = self._map_table(con.references_table)
        return con.model_copy(update={
            "columns": self._map_columns(table, con.columns),
            "references_table": ref_table,
            "references_columns": self._map_columns(ref_table or "", con.references_columns),
        })

    # -- column definitions --------------------------------------------

    def column_type(self, col: Column, for_alter: bool = False) -> str:
        """Spell *col*'s type for the target dialect."""
        if col.data_type in self.enums and not self.pg_like:
            if self.is_mysql:
                values = ", ".join(sql_literal(v) for v in self.enums[col.data_type])
                return f"ENUM({values})"
            return "TEXT"
        name = storage_type(col.data_type) if for_alter else col.data_type
        return self.dialect.translate_type(
            name, col.length, col.precision, col.scale, col.is_array
        )

    def column_definition(
        self,
        col: Column,
        inline_pk: bool = False,
        inline_unique: bool = False,
        references: Constraint | None = None,
    ) -> str:
        """Full column definition as used in CREATE TABLE and ADD COLUMN.

        Example:
            >>> gen = DDLGenerator()
            >>> gen.column_definition(Column(name="created_at",
            ...     data_type="timestamptz", is_nullable=False, default="current_timestamp"))
            'created_at timestamp with time zone NOT NULL DEFAULT current_timestamp'
        """
        if self.is_sqlite and inline_pk and is_serial(col.data_type):
            return f"{self.q(col.name)} INTEGER PRIMARY KEY AUTOINCREMENT"

        parts = [self.q(col.name), self.column_type(col)]
        if col.generated is not None:
            storage = "STORED" if col.generated.stored or self.pg_like else "VIRTUAL"
            parts.append(f"GENERATED ALWAYS AS ({col.generated.expression}) {storage}")
        if col.identity and self.pg_like and self.dialect.capabilities.supports_identity_columns:
            mode = "ALWAYS" if col.identity == "ALWAYS" else "BY DEFAULT"
            parts.append(f"GENERATED {mode} AS IDENTITY")
        if not col.is_nullable and not inline_pk:
            parts.append("NOT NULL")
        if (
            col.default is not None
            and col.generated is None
            and not is_serial(col.data_type)
            and not nextval_sequence(col.default)
        ):
            parts.append(f"DEFAULT {col.default}")
        if inline_pk:
            parts.append("PRIMARY KEY")
        if inline_unique:
            parts.append("UNIQUE")
        if references is not None:
            parts.append(self._references(references))
        if col.comment and self.is_mysql:
            parts.append(f"COMMENT {sql_literal(col.comment)}")
        return " ".join(parts)

    def _references(self, fk: Constraint) -> str:
        sql = f"REFERENCES {self.q(fk.references_table or '')} ({self._cols(fk.references_columns)})"
        if fk.on_delete:
            sql += f" ON DELETE {fk.on_delete}"
        if fk.on_update:
            sql += f" ON UPDATE {fk.on_update}"
        if fk.deferrable and self.dialect.capabilities.supports_deferrable_constraints:
            sql += " DEFERRABLE"
        return sql

    def constraint_body(self, con: Constraint) -> str:
        """Constraint definition without its ``CONSTRAINT name`` prefix."""
        if con.constraint_type == "PRIMARY_KEY":
            return f"PRIMARY KEY ({self._cols(con.columns)})"
        if con.constraint_type == "UNIQUE":
            return f"UNIQUE ({self._cols(con.columns)})"
        if con.constraint_type == "CHECK":
            return f"CHECK ({con.check_expr})"
        if con.constraint_type == "FOREIGN_KEY":
            return f"FOREIGN KEY ({self._cols(con.columns)}) {self._references(con)}"
        return f"EXCLUDE {con.definition}"

    def _constraint_clause(self, con: Constraint) -> str:
        return f"CONSTRAINT {self.q(con.name)} {self.constraint_body(con)}"

    def _add_constraint(self, table: str, con: Constraint) -> str:
        if self.is_mysql and con.constraint_type == "PRIMARY_KEY":
            return f"ALTER TABLE {self.q(table)} ADD {self.constraint_body(con)};"
        return f"ALTER TABLE {self.q(table)} ADD {self._constraint_clause(con)};"

    def _drop_constraint(self, table: str, con: Constraint) -> str:
        t = self.q(table)
        if self.is_mysql:
            if con.constraint_type == "PRIMARY_KEY":
                return f"ALTER TABLE {t} DROP PRIMARY KEY;"
            if con.constraint_type == "FOREIGN_KEY":
                return f"ALTER TABLE {t} DROP FOREIGN KEY {self.q(con.name)};"
            if con.constraint_type == "UNIQUE":
                return f"ALTER TABLE {t} DROP INDEX {self.q(con.name)};"
            return f"ALTER TABLE {t} DROP CHECK {self.q(con.name)};"
        return f"ALTER TABLE {t} DROP CONSTRAINT IF EXISTS {self.q(con.name)};"

    # -- tables --------------------------------------------------------

    def create_table(
        self,
        table: Table,
        inline_fk: Callable[[Constraint], bool] = lambda fk: True,
    ) -> tuple[list[str], list[Constraint]]:
        """CREATE TABLE for *table* plus partitions and comments.

        Args:
            table: Table to create.
            inline_fk: Decides whether a foreign key can be created with
                the table.  Keys it rejects are returned for deferral.

        Returns:
            ``(statements, deferred_foreign_keys)``
        """
        pk = table.primary_key
        inline_pk_column = None
        if pk and len(pk.columns) == 1 and pk.name == f"{table.name}_pkey":
            inline_pk_column = pk.columns[0]

        named_unique = {
            c.columns[0]: c for c in table.constraints
            if c.constraint_type == "UNIQUE" and len(c.columns) == 1
        }
        inline_refs: dict[str, Constraint] = {}
        clauses: list[str] = []
        deferred: list[Constraint] = []

        for fk in table.foreign_keys:
            if not self.dialect.capabilities.supports_foreign_keys:
                continue
            if not (self.is_sqlite or inline_fk(fk)):
                deferred.append(fk)
                continue
            default_name = f"{table.name}_{fk.columns[0]}_fkey"
            # MySQL parses but ignores column-level REFERENCES
            if len(fk.columns) == 1 and fk.name == default_name and not self.is_mysql:
                inline_refs[fk.columns[0]] = fk
            else:
                clauses.append(self._constraint_clause(fk))

        lines: list[str] = []
        for col in table.columns:
            unique = named_unique.get(col.name)
            inline_unique = col.is_unique and (
                unique is None or unique.name == f"{table.name}_{col.name}_key"
            )
            lines.append(self.column_definition(
                col,
                inline_pk=col.name == inline_pk_column,
                inline_unique=inline_unique,
                references=inline_refs.get(col.name),
            ))

        for con in table.constraints:
            if con.constraint_type == "PRIMARY_KEY":
                if inline_pk_column is None:
                    clauses.insert(0, self._constraint_clause(con))
            elif con.constraint_type == "UNIQUE":
                if len(con.columns) > 1 or con.name != f"{table.name}_{con.columns[0]}_key":
                    clauses.append(self._constraint_clause(con))
            elif con.constraint_type == "CHECK":
                clauses.append(self._constraint_clause(con))
            elif con.constraint_type == "EXCLUSION" and self.pg_like:
                clauses.append(self._constraint_clause(con))

        body = ",\n".join(f"    {line}" for line in lines + clauses)
        suffix = ""
        if table.partitioning and self.pg_like:
            suffix = f" PARTITION BY {table.partitioning.type} ({self._cols(table.partitioning.keys)})"
        if table.comment and self.is_mysql:
            suffix += f" COMMENT={sql_literal(table.comment)}"
        statements = [f"CREATE TABLE IF NOT EXISTS {self.q(table.name)} (\n{body}\n){suffix};"]

        if table.partitioning and self.pg_like:
            for child in table.partitioning.children:
                statements.append(
                    f"CREATE TABLE IF NOT EXISTS {self.q(child.name)} "
                    f"PARTITION OF {self.q(table.name)} {child.bound};"
                )
        if self.pg_like:
            if table.comment:
                statements.append(
                    f"COMMENT ON TABLE {self.q(table.name)} IS {sql_literal(table.comment)};"
                )
            for col in table.columns:
                if col.comment:
                    statements.append(
                        f"COMMENT ON COLUMN {self.q(table.name)}.{self.q(col.name)} "
                        f"IS {sql_literal(col.comment)};"
                    )
        return statements, deferred

    def drop_table(self, name: str) -> str:
        return f"DROP TABLE IF EXISTS {self.q(name)}{self._cascade};"

    # -- indexes -------------------------------------------------------

    def create_index(self, table: str, index: Index, name: str | None = None) -> str:
        """CREATE INDEX for *index* on *table*.

        Example:
            >>> DDLGenerator().create_index("users", Index(name="users_email_idx", columns=["email"]))
            'CREATE INDEX IF NOT EXISTS users_email_idx ON users (email);'
        """
        name = name or index.name
        keys = f"({index.expression})" if index.expression else self._cols(index.columns)
        if self.is_mysql:
            kind = "UNIQUE " if index.is_unique else ""
            if index.method in ("fulltext", "spatial"):
                kind = f"{index.method.upper()} "
            return f"CREATE {kind}INDEX {self.q(name)} ON {self.q(table)} ({keys});"
        kind = "UNIQUE " if index.is_unique else ""
        using = ""
        if self.pg_like and index.method != "btree":
            using = f" USING {index.method}"
        sql = f"CREATE {kind}INDEX IF NOT EXISTS {self.q(name)} ON {self.q(table)}{using} ({keys})"
        if index.where:
            sql += f" WHERE {index.where}"
        return sql + ";"

    def drop_index(self, table: str, name: str) -> str:
        if self.is_mysql:
            return f"DROP INDEX {self.q(name)} ON {self.q(table)};"
        return f"DROP INDEX IF EXISTS {self.q(name)};"

    # -- schema-level objects ------------------------------------------

    def create_extension(self, ext: Extension) -> str:
        sql = f"CREATE EXTENSION IF NOT EXISTS {self.q(ext.name)}"
        if ext.schema_name:
            sql += f" WITH SCHEMA {self.q(ext.schema_name)}"
        return sql + ";"

    def create_enum(self, enum: EnumType) -> str:
        values = ", ".join(sql_literal(v) for v in enum.values)
        return f"CREATE TYPE {enum.name} AS ENUM ({values});"

    def create_domain(self, domain: Domain) -> str:
        sql = f"CREATE DOMAIN {domain.name} AS {domain.base_type}"
        if domain.default is not None:
            sql += f" DEFAULT {domain.default}"
        if domain.not_null:
            sql += " NOT NULL"
        if domain.check_expr:
            sql += f" CHECK ({domain.check_expr})"
        return sql + ";"

    def create_composite(self, composite: CompositeType) -> str:
        attributes = ", ".join(f"{self.q(a.name)} {a.data_type}" for a in composite.attributes)
        return f"CREATE TYPE {composite.name} AS ({attributes});"

    def _sequence_options(self, seq: Sequence, fields: list[str]) -> str:
        options: list[str] = []
        for field_name in fields:
            value = getattr(seq, field_name)
            if field_name == "data_type" and value:
                options.append(f"AS {value}")
            elif field_name == "increment" and value is not None:
                options.append(f"INCREMENT BY {value}")
            elif field_name == "min_value":
                options.append("NO MINVALUE" if value is None else f"MINVALUE {value}")
            elif field_name == "max_value":
                options.append("NO MAXVALUE" if value is None else f"MAXVALUE {value}")
            elif field_name == "start" and value is not None:
                options.append(f"START WITH {value}")
            elif field_name == "cache" and value is not None:
                options.append(f"CACHE {value}")
            elif field_name == "cycle":
                options.append("CYCLE" if value else "NO CYCLE")
        return " ".join(options)

    def create_sequence(self, seq: Sequence) -> str:
        """CREATE SEQUENCE with only the options the model sets.

        Example:
            >>> DDLGenerator().create_sequence(Sequence(name="order_seq"))
            'CREATE SEQUENCE IF NOT EXISTS order_seq;'
        """
        fields = [
            f for f in ("data_type", "increment", "min_value", "max_value", "start", "cache")
            if getattr(seq, f) is not None
        ]
        if seq.cycle:
            fields.append("cycle")
        options = self._sequence_options(seq, fields)
        sql = f"CREATE SEQUENCE IF NOT EXISTS {self.q(seq.name)}"
        return f"{sql} {options};" if options else f"{sql};"

    def create_collation(self, collation: Collation) -> str:
        options = [f"provider = {collation.provider}"]
        if collation.locale:
            options.append(f"locale = {sql_literal(collation.locale)}")
        if not collation.deterministic:
            options.append("deterministic = false")
        return f"CREATE COLLATION IF NOT EXISTS {self.q(collation.name)} ({', '.join(options)});"

    def _function_args(self, fn: Function) -> str:
        rendered = []
        for arg in fn.args:
            parts = [] if arg.mode == "IN" else [arg.mode]
            if arg.name:
                parts.append(self.q(arg.name))
            parts.append(arg.data_type)
            if arg.default is not None:
                parts.append(f"DEFAULT {arg.default}")
            rendered.append(" ".join(parts))
        return ", ".join(rendered)

    def create_function(self, fn: Function) -> str:
        """CREATE OR REPLACE FUNCTION/PROCEDURE with a dollar-quoted body."""
        tag = "$procedure$" if fn.kind == "procedure" else "$function$"
        keyword = "PROCEDURE" if fn.kind == "procedure" else "FUNCTION"
        lines = [f"CREATE OR REPLACE {keyword} {self.q(fn.name)}({self._function_args(fn)})"]
        if fn.kind == "function":
            lines.append(f" RETURNS {fn.return_type or 'void'}")
        lines.append(f" LANGUAGE {fn.language}")
        if fn.kind == "function":
            if fn.volatility != "VOLATILE":
                lines.append(f" {fn.volatility}")
            if fn.is_strict:
                lines.append(" STRICT")
        if fn.security_definer:
            lines.append(" SECURITY DEFINER")
        lines.append(f"AS {tag}{fn.body}{tag};")
        return "\n".join(lines)

    def drop_function(self, fn: Function) -> str:
        keyword = "PROCEDURE" if fn.kind == "procedure" else "FUNCTION"
        return f"DROP {keyword} IF EXISTS {self.q(fn.name)}{fn.signature[len(fn.name):]};"

    def create_view(self, view: View, materialized: bool = False) -> str:
        definition = view.definition.strip().rstrip(";").strip()
        if materialized:
            return f"CREATE MATERIALIZED VIEW IF NOT EXISTS {self.q(view.name)} AS {definition};"
        if self.is_sqlite:
            return f"CREATE VIEW IF NOT EXISTS {self.q(view.name)} AS {definition};"
        return f"CREATE OR REPLACE VIEW {self.q(view.name)} AS {definition};"

    def drop_view(self, name: str, materialized: bool = False) -> str:
        keyword = "MATERIALIZED VIEW" if materialized else "VIEW"
        return f"DROP {keyword} IF EXISTS {self.q(name)};"

    def create_trigger(self, trigger: Trigger) -> str:
        timing = trigger.timing.replace("_", " ")
        events = " OR ".join(trigger.events)
        sql = (
            f"CREATE TRIGGER {self.q(trigger.name)} {timing} {events} "
            f"ON {self.q(trigger.table)} FOR EACH {trigger.for_each}"
        )
        if trigger.when:
            sql += f" WHEN ({trigger.when})"
        return f"{sql} EXECUTE FUNCTION {self.q(trigger.function_name)}();"

    def drop_trigger(self, name: str, table: str) -> str:
        return f"DROP TRIGGER IF EXISTS {self.q(name)} ON {self.q(table)};"

    def _options(self, options: dict[str, str]) -> str:
        if not options:
            return ""
        rendered = ", ".join(f"{k} {sql_literal(v)}" for k, v in options.items())
        return f" OPTIONS ({rendered})"

    def create_foreign_server(self, server: ForeignServer) -> str:
        return (
            f"CREATE SERVER IF NOT EXISTS {self.q(server.name)} "
            f"FOREIGN DATA WRAPPER {self.q(server.wrapper)}{self._options(server.options)};"
        )

    def create_foreign_table(self, table: ForeignTable) -> str:
        columns = ", ".join(self.column_definition(c) for c in table.columns)
        return (
            f"CREATE FOREIGN TABLE IF NOT EXISTS {self.q(table.name)} ({columns}) "
            f"SERVER {self.q(table.server)}{self._options(table.options)};"
        )

    # ------------------------------------------------------------------
    # Phases
    # ------------------------------------------------------------------

    def generate(self, diff: SchemaDiff) -> MigrationSQL:
        """Generate up and down statements for *diff*."""
        script = _Script()
        self._table_renames = {r.old_name: r.new_name for r in diff.renames_of("table")}
        self._column_renames = {}
        for rename in diff.renames_of("column"):
            self._column_renames.setdefault(rename.table or "", {})[rename.old_name] = rename.new_name
        # Constraints re-created in down still see the new table names
        for old, new in self._table_renames.items():
            if new in self._column_renames:
                self._column_renames[old] = self._column_renames[new]

        self._renames(script, diff)
        self._enum_values(script, diff)
        self._modify_tables(script, diff)
        self._create_objects(script, diff)
        deferred = self._create_tables(script, diff)
        deferred += self._add_columns(script, diff)
        self._indexes(script, diff)
        self._programmable(script, diff)
        self._deferred(script, diff, deferred)
        self._drops(script, diff)
        return script.result()

    # -- 1. renames ----------------------------------------------------

    def _rename_statement(self, rename: Rename, old: str, new: str) -> str | None:
        kind = rename.kind
        if kind == "table":
            if self.is_mysql:
                return f"RENAME TABLE {self.q(old)} TO {self.q(new)};"
            return f"ALTER TABLE {self.q(old)} RENAME TO {self.q(new)};"
        if kind == "column":
            return f"ALTER TABLE {self.q(rename.table)} RENAME COLUMN {self.q(old)} TO {self.q(new)};"
        if kind == "index":
            if self.is_mysql:
                return f"ALTER TABLE {self.q(rename.table)} RENAME INDEX {self.q(old)} TO {self.q(new)};"
            if self.pg_like:
                return f"ALTER INDEX {self.q(old)} RENAME TO {self.q(new)};"
            return None
        if not self.pg_like:
            return None
        if kind == "constraint":
            return (
                f"ALTER TABLE {self.q(rename.table)} RENAME CONSTRAINT "
                f"{self.q(old)} TO {self.q(new)};"
            )
        if kind == "function":
            return f"ALTER ROUTINE {self.q(old)}{rename.arguments or '()'} RENAME TO {self.q(new)};"
        if kind == "trigger":
            return f"ALTER TRIGGER {self.q(old)} ON {self.q(rename.table)} RENAME TO {self.q(new)};"
        template = _RENAME_STATEMENTS.get(kind)
        if template is None:
            return None
        if kind in ("enum", "composite_type"):
            return template.format(old=old, new=new)
        return template.format(old=self.q(old), new=self.q(new))

    def _renames(self, script: _Script, diff: SchemaDiff) -> None:
        order = {kind: i for i, kind in enumerate(RENAME_ORDER)}
        for rename in sorted(diff.renames, key=lambda r: order.get(r.kind, len(order))):
            up = self._rename_statement(rename, rename.old_name, rename.new_name)
            if up is None:
                script.warn(
                    f"Cannot rename {rename.describe()} on {self.dialect.display_name}; "
                    "rename it manually"
                )
                continue
            down = self._rename_statement(rename, rename.new_name, rename.old_name)
            script.emit(up, down)

    # -- 2. enum values ------------------------------------------------

    def _enum_values(self, script: _Script, diff: SchemaDiff) -> None:
        for item in diff.objects_of("enums", "modified"):
            if item.change("values") is None:
                continue
            before: EnumType = item.before
            after: EnumType = item.after
            if not self.pg_like:
                script.warn(
                    f"Enum {after.name} values changed; columns using it are "
                    f"re-declared on {self.dialect.display_name}"
                )
                continue
            known = list(before.values)
            for position, value in enumerate(after.values):
                if value in known:
                    continue
                placement = ""
                previous = [v for v in after.values[:position] if v in known]
                following = [v for v in after.values[position + 1:] if v in known]
                if previous:
                    placement = f" AFTER {sql_literal(previous[-1])}"
                elif following:
                    placement = f" BEFORE {sql_literal(following[0])}"
                script.emit(
                    f"ALTER TYPE {after.name} ADD VALUE IF NOT EXISTS {sql_literal(value)}{placement};",
                    f"-- Cannot remove value {sql_literal(value)} from enum {after.name}: "
                    "PostgreSQL has no DROP VALUE; recreate the type to undo",
                )
                known.append(value)
            for value in before.values:
                if value not in after.values:
                    script.warn(
                        f"Enum {after.name} value {sql_literal(value)} was removed from the "
                        "schema but is not dropped; enum values cannot be removed in place"
                    )
                    script.down_only(
                        f"-- Enum {after.name} still contains {sql_literal(value)}; "
                        "no statement is needed to restore it"
                    )

    # -- 3. column modifications ---------------------------------------

    def _modify_tables(self, script: _Script, diff: SchemaDiff) -> None:
        for table in diff.tables_with("modified"):
            self._drop_changed_constraints(script, table)
            for item in table.columns:
                if item.action == "modified":
                    self._modify_column(script, table, item)
            self._table_properties(script, table)

    def _pk_changed(self, table: TableDiff) -> bool:
        old = table.before.primary_key
        new = table.after.primary_key
        old_cols = self._map_columns(table.name, old.columns) if old else None
        new_cols = new.columns if new else None
        return old_cols != new_cols

    def _drop_changed_constraints(self, script: _Script, table: TableDiff) -> None:
        if self._pk_changed(table) and table.before.primary_key:
            old_pk = self._current_constraint(table.name, table.before.primary_key)
            self._emit_drop_constraint(script, table.name, old_pk)
        for item in table.constraints:
            if item.action in ("removed", "modified"):
                con = self._current_constraint(table.name, item.before)
                if item.action == "modified":
                    con = con.model_copy(update={"name": item.after.name})
                self._emit_drop_constraint(script, table.name, con)

    def _emit_drop_constraint(self, script: _Script, table: str, con: Constraint) -> None:
        if self.is_sqlite:
            script.warn(
                f"SQLite cannot drop constraint {con.name} on {table}; recreate the table"
            )
            return
        script.emit(self._drop_constraint(table, con), self._add_constraint(table, con))

    def _modify_column(self, script: _Script, table: TableDiff, item: ItemDiff) -> None:
        before: Column = item.before.model_copy(update={"name": item.after.name})
        after: Column = item.after
        fields = {c.field for c in item.changes}
        t = self.q(table.name)
        c = self.q(after.name)

        if "unique" in fields:
            self._modify_unique(script, table, item)
        if self.is_sqlite:
            rest = sorted(fields - {"unique", "primaryKey", "comment"})
            if rest:
                script.warn(
                    f"SQLite cannot alter column {table.name}.{after.name} "
                    f"({', '.join(rest)}); recreate the table to apply"
                )
            return
        if self.is_mysql:
            if fields & (_COLUMN_TYPE_FIELDS | {"nullable", "default", "identity", "comment"}):
                script.emit(
                    f"ALTER TABLE {t} MODIFY COLUMN {self.column_definition(after)};",
                    f"ALTER TABLE {t} MODIFY COLUMN {self.column_definition(before)};",
                )
            return

        if fields & _COLUMN_TYPE_FIELDS:
            new_type = self.column_type(after, for_alter=True)
            old_type = self.column_type(before, for_alter=True)
            script.emit(
                f"ALTER TABLE {t} ALTER COLUMN {c} TYPE {new_type} USING {c}::{new_type};",
                f"ALTER TABLE {t} ALTER COLUMN {c} TYPE {old_type} USING {c}::{old_type};",
            )
        if "nullable" in fields:
            set_null = f"ALTER TABLE {t} ALTER COLUMN {c} SET NOT NULL;"
            drop_null = f"ALTER TABLE {t} ALTER COLUMN {c} DROP NOT NULL;"
            if after.is_nullable:
                script.emit(drop_null, set_null)
            else:
                script.emit(set_null, drop_null)
        if "default" in fields:
            script.emit(self._default_statement(t, c, after), self._default_statement(t, c, before))
        if "identity" in fields:
            self._modify_identity(script, t, c, before.identity, after.identity)
        if "comment" in fields and self.pg_like:
            script.emit(
                self._comment_statement(f"COLUMN {t}.{c}", after.comment),
                self._comment_statement(f"COLUMN {t}.{c}", before.comment),
            )

    def _default_statement(self, t: str, c: str, col: Column) -> str:
        if col.default is None or nextval_sequence(col.default) or col.generated:
            return f"ALTER TABLE {t} ALTER COLUMN {c} DROP DEFAULT;"
        return f"ALTER TABLE {t} ALTER COLUMN {c} SET DEFAULT {col.default};"

    def _modify_identity(
        self, script: _Script, t: str, c: str, old: str | None, new: str | None
    ) -> None:
        def add(mode: str) -> str:
            spelled = "ALWAYS" if mode == "ALWAYS" else "BY DEFAULT"
            return f"ALTER TABLE {t} ALTER COLUMN {c} ADD GENERATED {spelled} AS IDENTITY;"

        drop = f"ALTER TABLE {t} ALTER COLUMN {c} DROP IDENTITY IF EXISTS;"
        if old is None and new is not None:
            script.emit(add(new), drop)
        elif new is None and old is not None:
            script.emit(drop, add(old))
        elif old and new:
            def set_mode(mode: str) -> str:
                spelled = "ALWAYS" if mode == "ALWAYS" else "BY DEFAULT"
                return f"ALTER TABLE {t} ALTER COLUMN {c} SET GENERATED {spelled};"
            script.emit(set_mode(new), set_mode(old))

    def _unique_constraint_name(self, table: Table, column: str) -> str:
        for con in table.constraints:
            if con.constraint_type == "UNIQUE" and con.columns == [column]:
                return con.name
        return f"{table.name}_{column}_key"

    def _modify_unique(self, script: _Script, table: TableDiff, item: ItemDiff) -> None:
        column = item.after.name
        if item.after.is_unique:
            name = self._unique_constraint_name(table.after, column)
        else:
            name = self._unique_constraint_name(table.before, item.before.name)
        con = Constraint(name=name, constraint_type="UNIQUE", columns=[column])
        if self.is_sqlite:
            create = f"CREATE UNIQUE INDEX IF NOT EXISTS {self.q(name)} ON {self.q(table.name)} ({self.q(column)});"
            drop = f"DROP INDEX IF EXISTS {self.q(name)};"
        else:
            create = self._add_constraint(table.name, con)
            drop = self._drop_constraint(table.name, con)
        if item.after.is_unique:
            script.emit(create, drop)
        else:
            script.emit(drop, create)

    def _comment_statement(self, target: str, comment: str | None) -> str:
        value = sql_literal(comment) if comment else "NULL"
        return f"COMMENT ON {target} IS {value};"

    def _table_properties(self, script: _Script, table: TableDiff) -> None:
        for change in table.changes:
            if change.field == "comment":
                if self.pg_like:
                    target = f"TABLE {self.q(table.name)}"
                    script.emit(
                        self._comment_statement(target, change.to),
                        self._comment_statement(target, change.from_),
                    )
                elif self.is_mysql:
                    script.emit(
                        f"ALTER TABLE {self.q(table.name)} COMMENT = {sql_literal(change.to or '')};",
                        f"ALTER TABLE {self.q(table.name)} COMMENT = {sql_literal(change.from_ or '')};",
                    )
            elif change.field == "partitioning":
                script.warn(
                    f"Partitioning of table {table.name} changed; "
                    "re-partitioning requires recreating the table"
                )

    # -- 4. independent objects ----------------------------------------

    def _create_objects(self, script: _Script, diff: SchemaDiff) -> None:
        for item in diff.objects_of("extensions", "added"):
            script.emit(
                self.create_extension(item.after),
                f"DROP EXTENSION IF EXISTS {self.q(item.name)};",
            )
        for item in diff.objects_of("collations", "added"):
            script.emit(
                self.create_collation(item.after),
                f"DROP COLLATION IF EXISTS {self.q(item.name)};",
            )
        if self.pg_like:
            for item in diff.objects_of("enums", "added"):
                script.emit(self.create_enum(item.after), f"DROP TYPE IF EXISTS {item.name};")
        for item in diff.objects_of("domains", "added"):
            script.emit(self.create_domain(item.after), f"DROP DOMAIN IF EXISTS {item.name};")
        for item in diff.objects_of("sequences", "added"):
            script.emit(
                self.create_sequence(item.after),
                f"DROP SEQUENCE IF EXISTS {self.q(item.name)};",
            )
        for item in diff.objects_of("composite_types", "added"):
            script.emit(self.create_composite(item.after), f"DROP TYPE IF EXISTS {item.name};")

        for item in diff.objects_of("extensions", "modified"):
            change = item.change("version")
            if change and change.to:
                name = self.q(item.name)
                down = None
                if change.from_:
                    down = f"ALTER EXTENSION {name} UPDATE TO {sql_literal(change.from_)};"
                script.emit(f"ALTER EXTENSION {name} UPDATE TO {sql_literal(change.to)};", down)
        for item in diff.objects_of("domains", "modified"):
            self._modify_domain(script, item)
        for item in diff.objects_of("sequences", "modified"):
            self._modify_sequence(script, item)
        for kind in ("collations", "composite_types"):
            for item in diff.objects_of(kind, "modified"):
                script.warn(
                    f"{kind[:-1].replace('_', ' ').capitalize()} {item.name} changed "
                    f"({', '.join(c.field for c in item.changes)}); it cannot be altered "
                    "in place, drop and recreate it manually"
                )

    def _modify_domain(self, script: _Script, item: ItemDiff) -> None:
        before: Domain = item.before
        after: Domain = item.after
        name = after.name
        for change in item.changes:
            if change.field == "default":
                def statement(domain: Domain) -> str:
                    if domain.default is None:
                        return f"ALTER DOMAIN {name} DROP DEFAULT;"
                    return f"ALTER DOMAIN {name} SET DEFAULT {domain.default};"
                script.emit(statement(after), statement(before))
            elif change.field == "not_null":
                set_nn = f"ALTER DOMAIN {name} SET NOT NULL;"
                drop_nn = f"ALTER DOMAIN {name} DROP NOT NULL;"
                script.emit(*((set_nn, drop_nn) if after.not_null else (drop_nn, set_nn)))
            elif change.field != "schema_name":
                script.warn(
                    f"Domain {name} {change.field} changed; it cannot be altered in place"
                )

    def _modify_sequence(self, script: _Script, item: ItemDiff) -> None:
        before: Sequence = item.before
        after: Sequence = item.after
        name = self.q(after.name)
        fields = [
            c.field for c in item.changes
            if c.field in ("data_type", "increment", "min_value", "max_value", "start", "cache", "cycle")
        ]
        if fields:
            up = self._sequence_options(after, fields)
            down = self._sequence_options(before, fields)
            if up:
                script.emit(
                    f"ALTER SEQUENCE {name} {up};",
                    f"ALTER SEQUENCE {name} {down};" if down else None,
                )
        if item.change("owned_by"):
            script.emit(
                self._owned_by(after.name, after.owned_by),
                self._owned_by(after.name, before.owned_by),
            )

    def _owned_by(self, sequence: str, owner: str | None) -> str:
        if not owner:
            return f"ALTER SEQUENCE {self.q(sequence)} OWNED BY NONE;"
        table, _, column = owner.rpartition(".")
        return f"ALTER SEQUENCE {self.q(sequence)} OWNED BY {self.q(table)}.{self.q(column)};"

    # -- 5. tables -----------------------------------------------------

    def _create_tables(self, script: _Script, diff: SchemaDiff) -> list[tuple[str, Constraint]]:
        added = {t.name for t in diff.tables_with("added")}
        created: set[str] = set()
        deferred: list[tuple[str, Constraint]] = []
        for table_diff in diff.tables_with("added"):
            table = table_diff.after

            def inline(fk: Constraint, table_name: str = table.name) -> bool:
                target = fk.references_table or ""
                return target == table_name or target not in added or target in created

            statements, later = self.create_table(table, inline)
            script.emit(statements, self.drop_table(table.name))
            created.add(table.name)
            deferred.extend((table.name, fk) for fk in later)
            if not self.dialect.capabilities.supports_foreign_keys and table.foreign_keys:
                script.warn(
                    f"Foreign keys on {table.name} are skipped: "
                    f"{self.dialect.display_name} does not support them"
                )
        return deferred

    # -- 6. columns and constraints ------------------------------------

    def _add_columns(self, script: _Script, diff: SchemaDiff) -> list[tuple[str, Constraint]]:
        deferred: list[tuple[str, Constraint]] = []
        for table in diff.tables_with("modified"):
            t = self.q(table.name)
            if_exists = " IF EXISTS" if self.pg_like else ""
            for item in table.columns:
                if item.action != "added":
                    continue
                col: Column = item.after
                unique_name = self._unique_constraint_name(table.after, col.name)
                default_unique = unique_name == f"{table.name}_{col.name}_key"
                if self.is_sqlite and col.is_unique:
                    script.warn(
                        f"SQLite cannot add UNIQUE column {table.name}.{col.name}; "
                        "a unique index is created instead"
                    )
                inline_unique = col.is_unique and default_unique and not self.is_sqlite
                script.emit(
                    f"ALTER TABLE {t} ADD COLUMN {self.column_definition(col, inline_unique=inline_unique)};",
                    f"ALTER TABLE {t} DROP COLUMN{if_exists} {self.q(col.name)};",
                )
                if col.is_unique and (self.is_sqlite or not default_unique):
                    self._modify_unique(script, table, item)
                if col.comment and self.pg_like:
                    script.emit(
                        self._comment_statement(f"COLUMN {t}.{self.q(col.name)}", col.comment)
                    )

            if self._pk_changed(table) and table.after.primary_key:
                pk = table.after.primary_key
                if self.is_sqlite:
                    script.warn(f"SQLite cannot change the primary key of {table.name}")
                else:
                    script.emit(
                        self._add_constraint(table.name, pk),
                        self._drop_constraint(table.name, pk),
                    )

            for item in table.constraints:
                if item.action not in ("added", "modified"):
                    continue
                con: Constraint = item.after
                if con.constraint_type == "FOREIGN_KEY":
                    deferred.append((table.name, con))
                elif self.is_sqlite:
                    script.warn(
                        f"SQLite cannot add constraint {con.name} to {table.name}; "
                        "recreate the table"
                    )
                else:
                    script.emit(
                        self._add_constraint(table.name, con),
                        self._drop_constraint(table.name, con),
                    )
        return deferred

    # -- 7. indexes ----------------------------------------------------

    def _indexes(self, script: _Script, diff: SchemaDiff) -> None:
        for table_diff in diff.tables_with("added"):
            for index in table_diff.after.indexes:
                script.emit(
                    self.create_index(table_diff.name, index),
                    self.drop_index(table_diff.name, index.name),
                )
        for table in diff.tables_with("modified"):
            for item in table.indexes:
                if item.action == "added":
                    script.emit(
                        self.create_index(table.name, item.after),
                        self.drop_index(table.name, item.name),
                    )
                elif item.action == "modified":
                    before = item.before.model_copy(update={
                        "name": item.after.name,
                        "columns": self._map_columns(table.name, item.before.columns),
                    })
                    if {c.field for c in item.changes} == {"comment"}:
                        if self.pg_like:
                            target = f"INDEX {self.q(item.name)}"
                            script.emit(
                                self._comment_statement(target, item.after.comment),
                                self._comment_statement(target, before.comment),
                            )
                        continue
                    script.emit(
                        [self.drop_index(table.name, item.name), self.create_index(table.name, item.after)],
                        [self.drop_index(table.name, item.name), self.create_index(table.name, before)],
                    )

    # -- 8. programmable objects ---------------------------------------

    def _programmable(self, script: _Script, diff: SchemaDiff) -> None:
        for item in diff.objects_of("functions", "added"):
            script.emit(self.create_function(item.after), self.drop_function(item.after))
        for item in diff.objects_of("functions", "modified"):
            before = item.before.model_copy(update={"name": item.after.name})
            fields = {c.field for c in item.changes}
            if fields & {"return_type", "kind", "args"}:
                script.emit(
                    [self.drop_function(before), self.create_function(item.after)],
                    [self.drop_function(item.after), self.create_function(before)],
                )
            else:
                script.emit(self.create_function(item.after), self.create_function(before))

        for item in diff.objects_of("views", "added"):
            script.emit(self.create_view(item.after), self.drop_view(item.name))
        for item in diff.objects_of("views", "modified"):
            before = item.before.model_copy(update={"name": item.after.name})
            if self.is_sqlite:
                script.emit(
                    [self.drop_view(item.name), self.create_view(item.after)],
                    [self.drop_view(item.name), self.create_view(before)],
                )
            else:
                script.emit(self.create_view(item.after), self.create_view(before))

        for item in diff.objects_of("materialized_views", "added"):
            script.emit(
                self.create_view(item.after, materialized=True),
                self.drop_view(item.name, materialized=True),
            )
        for item in diff.objects_of("materialized_views", "modified"):
            before = item.before.model_copy(update={"name": item.after.name})
            script.emit(
                [self.drop_view(item.name, True), self.create_view(item.after, True)],
                [self.drop_view(item.name, True), self.create_view(before, True)],
            )

        triggers = diff.objects_of("triggers", "added") + diff.objects_of("triggers", "modified")
        if triggers and not self.pg_like:
            script.warn(
                f"Triggers are not generated for {self.dialect.display_name}: "
                f"{', '.join(t.name for t in triggers)}"
            )
        elif triggers:
            for item in diff.objects_of("triggers", "added"):
                script.emit(
                    self.create_trigger(item.after),
                    self.drop_trigger(item.name, item.after.table),
                )
            for item in diff.objects_of("triggers", "modified"):
                before = item.before.model_copy(update={
                    "name": item.after.name,
                    "table": self._map_table(item.before.table),
                })
                script.emit(
                    [self.drop_trigger(item.name, before.table), self.create_trigger(item.after)],
                    [self.drop_trigger(item.name, item.after.table), self.create_trigger(before)],
                )

        for item in diff.objects_of("foreign_servers", "added"):
            script.emit(
                self.create_foreign_server(item.after),
                f"DROP SERVER IF EXISTS {self.q(item.name)};",
            )
        for item in diff.objects_of("foreign_tables", "added"):
            script.emit(
                self.create_foreign_table(item.after),
                f"DROP FOREIGN TABLE IF EXISTS {self.q(item.name)};",
            )
        for kind in ("foreign_servers", "foreign_tables"):
            for item in diff.objects_of(kind, "modified"):
                script.warn(
                    f"{kind[:-1].replace('_', ' ').capitalize()} {item.name} changed; "
                    "drop and recreate it to apply"
                )

    # -- 9. deferred foreign keys --------------------------------------

    def _deferred(
        self, script: _Script, diff: SchemaDiff, deferred: list[tuple[str, Constraint]]
    ) -> None:
        for table, fk in deferred:
            if not self.dialect.capabilities.supports_foreign_keys:
                script.warn(
                    f"Foreign key {fk.name} on {table} is skipped: "
                    f"{self.dialect.display_name} does not support foreign keys"
                )
            elif self.is_sqlite:
                script.warn(
                    f"SQLite cannot add foreign key {fk.name} to existing table {table}; "
                    "recreate the table"
                )
            else:
                script.emit(self._add_constraint(table, fk), self._drop_constraint(table, fk))
        if self.pg_like:
            for item in diff.objects_of("sequences", "added"):
                if item.after.owned_by:
                    script.emit(
                        self._owned_by(item.name, item.after.owned_by),
                        self._owned_by(item.name, None),
                    )

    # -- 10. drops -----------------------------------------------------

    def _drops(self, script: _Script, diff: SchemaDiff) -> None:
        for item in diff.objects_of("triggers", "removed"):
            if self.pg_like:
                trigger = item.before.model_copy(update={"table": self._map_table(item.before.table)})
                script.emit(self.drop_trigger(item.name, trigger.table), self.create_trigger(trigger))
        for item in diff.objects_of("functions", "removed"):
            script.emit(self.drop_function(item.before), self.create_function(item.before))
        for item in diff.objects_of("views", "removed"):
            script.emit(self.drop_view(item.name), self.create_view(item.before))
        for item in diff.objects_of("materialized_views", "removed"):
            script.emit(
                self.drop_view(item.name, materialized=True),
                self.create_view(item.before, materialized=True),
            )
        for item in diff.objects_of("foreign_tables", "removed"):
            script.emit(
                f"DROP FOREIGN TABLE IF EXISTS {self.q(item.name)};",
                self.create_foreign_table(item.before),
            )

        for table in diff.tables_with("modified"):
            for item in table.indexes:
                if item.action == "removed":
                    index = item.before.model_copy(update={
                        "columns": self._map_columns(table.name, item.before.columns),
                    })
                    script.emit(
                        self.drop_index(table.name, item.name),
                        self.create_index(table.name, index),
                    )
        for table in diff.tables_with("modified"):
            t = self.q(table.name)
            if_exists = " IF EXISTS" if self.pg_like else ""
            for item in table.columns:
                if item.action == "removed":
                    script.emit(
                        f"ALTER TABLE {t} DROP COLUMN{if_exists} {self.q(item.name)};",
                        f"ALTER TABLE {t} ADD COLUMN {self.column_definition(item.before)};",
                    )

        self._drop_tables(script, diff)

        for item in diff.objects_of("sequences", "removed"):
            script.emit(
                f"DROP SEQUENCE IF EXISTS {self.q(item.name)};",
                self.create_sequence(item.before),
            )
        for item in diff.objects_of("domains", "removed"):
            script.emit(f"DROP DOMAIN IF EXISTS {item.name};", self.create_domain(item.before))
        for item in diff.objects_of("composite_types", "removed"):
            script.emit(f"DROP TYPE IF EXISTS {item.name};", self.create_composite(item.before))
        if self.pg_like:
            for item in diff.objects_of("enums", "removed"):
                script.emit(f"DROP TYPE IF EXISTS {item.name};", self.create_enum(item.before))
        for item in diff.objects_of("collations", "removed"):
            script.emit(
                f"DROP COLLATION IF EXISTS {self.q(item.name)};",
                self.create_collation(item.before),
            )
        for item in diff.objects_of("foreign_servers", "removed"):
            script.emit(
                f"DROP SERVER IF EXISTS {self.q(item.name)};",
                self.create_foreign_server(item.before),
            )
        for item in diff.objects_of("extensions", "removed"):
            script.emit(
                f"DROP EXTENSION IF EXISTS {self.q(item.name)};",
                self.create_extension(item.before),
            )

    def _drop_tables(self, script: _Script, diff: SchemaDiff) -> None:
        removed = diff.tables_with("removed")
        if not removed:
            return
        # Foreign keys come back only after every dropped table exists again
        if not self.is_sqlite and self.dialect.capabilities.supports_foreign_keys:
            restore = [
                self._add_constraint(t.name, self._current_constraint(t.name, fk))
                for t in removed
                for fk in t.before.foreign_keys
            ]
            if restore:
                script.down_only(restore)
        for table_diff in removed:
            table = table_diff.before
            statements, _ = self.create_table(table, lambda fk: False)
            statements += [self.create_index(table.name, index) for index in table.indexes]
            script.emit(self.drop_table(table.name), statements)


def generate_migration(
    diff: SchemaDiff,
    dialect: Dialect = POSTGRES,
    current: DatabaseSchema | None = None,
    desired: DatabaseSchema | None = None,
) -> MigrationSQL:
    """Generate up/down DDL for *diff* on *dialect*.

    The schemas are optional and only used to spell enum columns on
    dialects without standalone enum types.

    Example:
        >>> from db_reconcile.schema.diff import diff_schemas
        >>> from db_reconcile.schema.models import Table
        >>> cur = DatabaseSchema(tables=[Table(name="audit_log", columns=[
        ...     Column(name="id", data_type="integer", is_primary_key=True)])])
        >>> generate_migration(diff_schemas(cur, DatabaseSchema())).up
        ['DROP TABLE IF EXISTS audit_log CASCADE;']
    """
    enums: dict[str, list[str]] = {}
    for schema in (current, desired):
        if schema is not None:
            enums.update({e.name: list(e.values) for e in schema.enums})
    return DDLGenerator(dialect, enums).generate(diff)
