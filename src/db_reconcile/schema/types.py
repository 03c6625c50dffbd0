"""Type canonicalization for the Canonical Schema Model.

Raw type spellings from introspection or from an authored schema are
normalized to one canonical spelling (``int4`` -> ``integer``,
``timestamptz`` -> ``timestamp with time zone``) and their parameters are
pulled out into typed fields.  Translation to a dialect spelling happens
only at DDL generation time (see ``db_reconcile.dialects``).

Pure logic -- no I/O.

Usage:
    from db_reconcile.schema.types import canonicalize_type, format_type

    parsed = canonicalize_type("varchar(255)")
    parsed.name      # 'character varying'
    parsed.length    # 255
    format_type(parsed.name, length=parsed.length)
    # 'character varying(255)'
"""

import re
from typing import Any, NamedTuple


TYPE_ALIASES: dict[str, str] = {
    "int": "integer",
    "int4": "integer",
    "integer": "integer",
    "int8": "bigint",
    "int2": "smallint",
    "serial4": "serial",
    "serial8": "bigserial",
    "serial2": "smallserial",
    "float4": "real",
    "float8": "double precision",
    "float": "double precision",
    "double": "double precision",
    "decimal": "numeric",
    "bool": "boolean",
    "varchar": "character varying",
    "char": "character",
    "bpchar": "character",
    "timestamptz": "timestamp with time zone",
    "timestamp without time zone": "timestamp",
    "timetz": "time with time zone",
    "time without time zone": "time",
    "varbit": "bit varying",
}

# Types whose single parameter is a length rather than a precision
LENGTH_TYPES = frozenset({"character varying", "character", "bit", "bit varying"})

# Types carrying (precision, scale)
NUMERIC_TYPES = frozenset({"numeric"})

# Pseudo-types that expand to an integer column with a sequence default
SERIAL_TYPES: dict[str, str] = {
    "serial": "integer",
    "bigserial": "bigint",
    "smallserial": "smallint",
}

# (from, to) pairs where every value of ``from`` fits in ``to``
WIDENING_CASTS = frozenset({
    ("smallint", "integer"),
    ("smallint", "bigint"),
    ("integer", "bigint"),
    ("smallint", "numeric"),
    ("integer", "numeric"),
    ("bigint", "numeric"),
    ("smallint", "double precision"),
    ("integer", "double precision"),
    ("real", "double precision"),
    ("character", "character varying"),
    ("character", "text"),
    ("character varying", "text"),
    ("date", "timestamp"),
    ("date", "timestamp with time zone"),
    ("timestamp", "timestamp with time zone"),
    ("json", "jsonb"),
})

_PARAMS_RE = re.compile(r"^(?P<base>[^(]+?)\s*\((?P<args>[^)]*)\)(?P<rest>.*)$")
_CAST_SUFFIX_RE = re.compile(r"::[a-z_][\w ]*(?:\[\])?\s*$", re.IGNORECASE)
_NEXTVAL_RE = re.compile(r"nextval\(\s*'([^']+)'", re.IGNORECASE)

_DEFAULT_SYNONYMS: dict[str, str] = {
    "now()": "current_timestamp",
    "current_timestamp()": "current_timestamp",
    "transaction_timestamp()": "current_timestamp",
    "localtimestamp": "current_timestamp",
}


class ParsedType(NamedTuple):
    """A canonical type name with its extracted parameters."""

    name: str
    length: int | None = None
    precision: int | None = None
    scale: int | None = None
    is_array: bool = False


def canonicalize_type(raw: str) -> ParsedType:
    """Normalize a raw type spelling into a ``ParsedType``.

    Handles PostgreSQL internal array names (``_int4``), ``[]`` suffixes,
    parameter lists and the alias table above.  Quoted (user-defined,
    case-sensitive) type names are kept verbatim apart from array markers.

    Examples:
        >>> canonicalize_type("int4")
        ParsedType(name='integer', length=None, precision=None, scale=None, is_array=False)
        >>> canonicalize_type("NUMERIC(10, 2)").precision
        10
        >>> canonicalize_type("_varchar").name
        'character varying'
        >>> canonicalize_type("timestamp(3) with time zone")
        ParsedType(name='timestamp with time zone', length=None, precision=3, scale=None, is_array=False)
    """
    text = " ".join(raw.strip().split())
    is_array = False

    if text.endswith("[]"):
        while text.endswith("[]"):
            text = text[:-2].rstrip()
        is_array = True
    elif text.upper().endswith(" ARRAY"):
        text = text[: -len(" ARRAY")].rstrip()
        is_array = True
    elif text.startswith("_") and len(text) > 1 and '"' not in text:
        text = text[1:]
        is_array = True

    if '"' not in text:
        text = text.lower()

    args: list[int] = []
    match = _PARAMS_RE.match(text)
    if match:
        text = f"{match.group('base').strip()}{match.group('rest')}".strip()
        for part in match.group("args").split(","):
            part = part.strip()
            if part.isdigit():
                args.append(int(part))

    name = TYPE_ALIASES.get(text, text)

    length = precision = scale = None
    if args:
        if name in LENGTH_TYPES:
            length = args[0]
        elif name in NUMERIC_TYPES:
            precision = args[0]
            scale = args[1] if len(args) > 1 else None
        else:
            precision = args[0]

    return ParsedType(name, length, precision, scale, is_array)


def format_type(
    name: str,
    length: int | None = None,
    precision: int | None = None,
    scale: int | None = None,
    is_array: bool = False,
) -> str:
    """Render a canonical type with its parameters.

    Examples:
        >>> format_type("character varying", length=255)
        'character varying(255)'
        >>> format_type("numeric", precision=10, scale=2)
        'numeric(10, 2)'
        >>> format_type("timestamp with time zone", precision=3)
        'timestamp(3) with time zone'
        >>> format_type("integer", is_array=True)
        'integer[]'
    """
    if length is not None:
        rendered = f"{name}({length})"
    elif precision is not None and scale is not None:
        rendered = f"{name}({precision}, {scale})"
    elif precision is not None:
        head, sep, tail = name.partition(" with")
        if sep:
            rendered = f"{head}({precision}){sep}{tail}"
        else:
            rendered = f"{name}({precision})"
    else:
        rendered = name
    return f"{rendered}[]" if is_array else rendered


def storage_type(name: str) -> str:
    """Return the storage type for a pseudo-type (``serial`` -> ``integer``)."""
    return SERIAL_TYPES.get(name, name)


def is_serial(name: str) -> bool:
    """Return True for ``serial``, ``bigserial`` and ``smallserial``."""
    return name in SERIAL_TYPES


def is_narrowing(before: Any, after: Any) -> bool:
    """Return True when changing *before* to *after* could lose data.

    Both arguments are column-like objects exposing ``data_type``,
    ``length``, ``precision``, ``scale`` and ``is_array``.

    Examples:
        >>> from db_reconcile.schema.models import Column
        >>> is_narrowing(Column(name="a", data_type="integer"),
        ...              Column(name="a", data_type="bigint"))
        False
        >>> is_narrowing(Column(name="a", data_type="varchar(255)"),
        ...              Column(name="a", data_type="varchar(50)"))
        True
    """
    if before.is_array != after.is_array:
        return True

    a = storage_type(before.data_type)
    b = storage_type(after.data_type)

    if a == b:
        if after.length is not None and (
            before.length is None or after.length < before.length
        ):
            return True
        if after.precision is not None:
            if before.precision is None or after.precision < before.precision:
                return True
            before_scale = before.scale or 0
            after_scale = after.scale or 0
            if after_scale < before_scale:
                return True
            if (after.precision - after_scale) < (before.precision - before_scale):
                return True
        return False

    if (a, b) not in WIDENING_CASTS:
        return True
    if after.length is not None:
        return before.length is None or after.length < before.length
    return after.precision is not None


def normalize_default(expr: str | None) -> str | None:
    """Normalize a default expression for comparison (never for emission).

    Strips redundant parentheses and trailing type casts, lower-cases
    unquoted expressions, and folds ``now()`` into ``current_timestamp``.

    Examples:
        >>> normalize_default("'active'::character varying")
        "'active'"
        >>> normalize_default("NOW()")
        'current_timestamp'
        >>> normalize_default("(0)")
        '0'
    """
    if expr is None:
        return None
    text = expr.strip()
    if not text:
        return None

    changed = True
    while changed:
        changed = False
        stripped = _CAST_SUFFIX_RE.sub("", text).strip()
        if stripped != text:
            text, changed = stripped, True
        if text.startswith("(") and text.endswith(")") and _balanced(text[1:-1]):
            text, changed = text[1:-1].strip(), True

    if "'" not in text:
        text = text.lower()
    return _DEFAULT_SYNONYMS.get(text, text)


def nextval_sequence(expr: str | None) -> str | None:
    """Extract the sequence name from a ``nextval('...')`` default.

    Examples:
        >>> nextval_sequence("nextval('public.orders_id_seq'::regclass)")
        'orders_id_seq'
        >>> nextval_sequence("0") is None
        True
    """
    if not expr:
        return None
    match = _NEXTVAL_RE.search(expr)
    if not match:
        return None
    name = match.group(1).split(".")[-1]
    return name.strip('"')


def _balanced(text: str) -> bool:
    """Return True if parentheses in *text* never close below depth zero."""
    depth = 0
    for ch in text:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0
