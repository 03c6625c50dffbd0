"""Reserved words that force identifier quoting, per dialect family.

``ALL_RESERVED`` is the union; the DDL generator quotes any identifier
that is reserved in the target dialect.
"""

# Words PostgreSQL reserves or treats specially in DDL positions, plus
# common non-reserved keywords that break unquoted use in column lists.
POSTGRES_RESERVED: frozenset[str] = frozenset({
    "all", "analyse", "analyze", "and", "any", "array", "as", "asc",
    "asymmetric", "authorization", "binary", "both", "case", "cast", "check",
    "collate", "collation", "column", "concurrently", "constraint", "create",
    "cross", "current_catalog", "current_date", "current_role",
    "current_schema", "current_time", "current_timestamp", "current_user",
    "default", "deferrable", "desc", "distinct", "do", "else", "end",
    "except", "false", "fetch", "for", "foreign", "freeze", "from", "full",
    "grant", "group", "having", "ilike", "in", "initially", "inner",
    "intersect", "into", "is", "isnull", "join", "lateral", "leading", "left",
    "like", "limit", "localtime", "localtimestamp", "natural", "not",
    "notnull", "null", "offset", "on", "only", "or", "order", "outer",
    "overlaps", "placing", "primary", "references", "returning", "right",
    "select", "session_user", "similar", "some", "symmetric", "table",
    "tablesample", "then", "to", "trailing", "true", "union", "unique",
    "user", "using", "variadic", "verbose", "when", "where", "window", "with",
    # non-reserved keywords that still collide in generated DDL
    "action", "comment", "data", "date", "domain", "key", "language",
    "locked", "method", "name", "password", "read", "schema", "type",
    "valid", "value", "version", "interval",
})

MYSQL_RESERVED: frozenset[str] = frozenset({
    "accessible", "add", "all", "alter", "analyze", "and", "as", "asc",
    "before", "between", "bigint", "binary", "blob", "both", "by", "call",
    "cascade", "case", "change", "char", "character", "check", "collate",
    "column", "condition", "constraint", "continue", "convert", "create",
    "cross", "cube", "current_date", "current_time", "current_timestamp",
    "current_user", "cursor", "database", "databases", "day_hour",
    "dec", "decimal", "declare", "default", "delayed", "delete", "desc",
    "describe", "distinct", "div", "double", "drop", "dual", "each", "else",
    "elseif", "enclosed", "escaped", "except", "exists", "exit", "explain",
    "false", "fetch", "float", "for", "force", "foreign", "from", "fulltext",
    "function", "generated", "get", "grant", "group", "groups", "having",
    "if", "ignore", "in", "index", "inner", "inout", "insert", "int",
    "integer", "interval", "into", "is", "iterate", "join", "key", "keys",
    "kill", "lag", "lead", "leading", "leave", "left", "like", "limit",
    "lines", "load", "localtime", "localtimestamp", "lock", "long", "loop",
    "match", "mod", "modifies", "natural", "not", "null", "numeric", "of",
    "on", "optimize", "option", "or", "order", "out", "outer", "over",
    "partition", "precision", "primary", "procedure", "purge", "range",
    "rank", "read", "reads", "real", "recursive", "references", "regexp",
    "release", "rename", "repeat", "replace", "require", "restrict",
    "return", "revoke", "right", "rlike", "row", "rows", "schema", "schemas",
    "select", "separator", "set", "show", "signal", "smallint", "spatial",
    "sql", "ssl", "starting", "stored", "straight_join", "system", "table",
    "terminated", "then", "to", "trailing", "trigger", "true", "undo",
    "union", "unique", "unlock", "unsigned", "update", "usage", "use",
    "using", "utc_date", "utc_time", "utc_timestamp", "values", "varchar",
    "varying", "virtual", "when", "where", "while", "window", "with",
    "write", "xor", "year_month", "zerofill",
})

SQLITE_RESERVED: frozenset[str] = frozenset({
    "abort", "action", "add", "after", "all", "alter", "analyze", "and",
    "as", "asc", "attach", "autoincrement", "before", "begin", "between",
    "by", "cascade", "case", "cast", "check", "collate", "column", "commit",
    "conflict", "constraint", "create", "cross", "current_date",
    "current_time", "current_timestamp", "database", "default", "deferrable",
    "deferred", "delete", "desc", "detach", "distinct", "drop", "each",
    "else", "end", "escape", "except", "exclusive", "exists", "explain",
    "fail", "for", "foreign", "from", "full", "glob", "group", "having",
    "if", "ignore", "immediate", "in", "index", "indexed", "initially",
    "inner", "insert", "instead", "intersect", "into", "is", "isnull",
    "join", "key", "left", "like", "limit", "match", "natural", "no", "not",
    "notnull", "null", "of", "offset", "on", "or", "order", "outer", "plan",
    "pragma", "primary", "query", "raise", "recursive", "references",
    "regexp", "reindex", "release", "rename", "replace", "restrict",
    "right", "rollback", "row", "savepoint", "select", "set", "table",
    "temp", "temporary", "then", "to", "transaction", "trigger", "union",
    "unique", "update", "using", "vacuum", "values", "view", "virtual",
    "when", "where", "with", "without",
})

ALL_RESERVED: frozenset[str] = POSTGRES_RESERVED | MYSQL_RESERVED | SQLITE_RESERVED
