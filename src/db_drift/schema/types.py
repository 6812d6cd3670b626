"""Logical column types and the single catalog-to-logical type mapping.

Both sides of a drift comparison -- the live introspector and the model
registry -- resolve type names through ``normalize_type()``.  Raw catalog
spellings (``character varying(255)``, ``int4``, ``_text``...) never reach
the comparator.

Usage:
    from db_drift.schema.types import LogicalType, normalize_type

    >>> normalize_type("character varying(255)")
    ColumnType(base=<LogicalType.STRING: 'string'>, is_array=False)
    >>> str(normalize_type("_int4"))
    'integer[]'
"""

import re
from enum import StrEnum

from pydantic import BaseModel, ConfigDict


class LogicalType(StrEnum):
    """Engine-independent column type classification."""

    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    JSON = "json"
    UUID = "uuid"
    ENUM = "enum"
    OTHER = "other"


class ColumnType(BaseModel):
    """Normalized column type: a logical base type, optionally an array of it.

    Example:
        >>> ColumnType(base=LogicalType.STRING, is_array=True)
        ColumnType(base=<LogicalType.STRING: 'string'>, is_array=True)
    """

    model_config = ConfigDict(frozen=True)

    base: LogicalType
    is_array: bool = False

    def __str__(self) -> str:
        return f"{self.base.value}[]" if self.is_array else self.base.value


# Keys are lower-cased base spellings with length/precision modifiers removed.
TYPE_MAP: dict[str, LogicalType] = {
    # string
    "string": LogicalType.STRING,
    "text": LogicalType.STRING,
    "varchar": LogicalType.STRING,
    "character varying": LogicalType.STRING,
    "char": LogicalType.STRING,
    "character": LogicalType.STRING,
    "bpchar": LogicalType.STRING,
    "name": LogicalType.STRING,
    "citext": LogicalType.STRING,
    "str": LogicalType.STRING,
    # integer
    "integer": LogicalType.INTEGER,
    "int": LogicalType.INTEGER,
    "int2": LogicalType.INTEGER,
    "int4": LogicalType.INTEGER,
    "int8": LogicalType.INTEGER,
    "smallint": LogicalType.INTEGER,
    "bigint": LogicalType.INTEGER,
    "serial": LogicalType.INTEGER,
    "serial4": LogicalType.INTEGER,
    "serial8": LogicalType.INTEGER,
    "smallserial": LogicalType.INTEGER,
    "bigserial": LogicalType.INTEGER,
    # number
    "number": LogicalType.NUMBER,
    "numeric": LogicalType.NUMBER,
    "decimal": LogicalType.NUMBER,
    "real": LogicalType.NUMBER,
    "float": LogicalType.NUMBER,
    "float4": LogicalType.NUMBER,
    "float8": LogicalType.NUMBER,
    "double precision": LogicalType.NUMBER,
    "double": LogicalType.NUMBER,
    "money": LogicalType.NUMBER,
    # boolean
    "boolean": LogicalType.BOOLEAN,
    "bool": LogicalType.BOOLEAN,
    # date / time
    "date": LogicalType.DATE,
    "datetime": LogicalType.DATE,
    "timestamp": LogicalType.DATE,
    "timestamptz": LogicalType.DATE,
    "timestamp with time zone": LogicalType.DATE,
    "timestamp without time zone": LogicalType.DATE,
    "time": LogicalType.DATE,
    "timetz": LogicalType.DATE,
    "time with time zone": LogicalType.DATE,
    "time without time zone": LogicalType.DATE,
    # json
    "json": LogicalType.JSON,
    "jsonb": LogicalType.JSON,
    # uuid
    "uuid": LogicalType.UUID,
    # enumerated
    "enum": LogicalType.ENUM,
}

_MODIFIER_RE = re.compile(r"\s*\([^)]*\)")
_ARRAY_SUFFIX_RE = re.compile(r"(\s*\[\d*\])+$")


def normalize_type(raw_type: str, enum_names: set[str] | frozenset[str] = frozenset()) -> ColumnType:
    """Resolve a catalog or declared type spelling to a ``ColumnType``.

    Handles length/precision modifiers (``varchar(255)``, ``numeric(10, 2)``),
    array spellings (``text[]``, ``integer ARRAY``, ``_int4`` udt names), and
    user-defined enum types (``enum_names``).  Spellings outside the mapping
    resolve to ``LogicalType.OTHER``.

    Args:
        raw_type: Type name from ``information_schema``/``pg_catalog`` or a
            model definition.
        enum_names: Names of enumerated types known to the schema.  A type
            spelled as one of these resolves to ``LogicalType.ENUM``.

    Returns:
        The normalized ``ColumnType``.

    Examples:
        >>> str(normalize_type("int8"))
        'integer'
        >>> str(normalize_type("character varying[]"))
        'string[]'
        >>> str(normalize_type("trip_status", {"trip_status"}))
        'enum'
    """
    spelling = raw_type.strip().strip('"')
    is_array = False

    if _ARRAY_SUFFIX_RE.search(spelling):
        spelling = _ARRAY_SUFFIX_RE.sub("", spelling)
        is_array = True
    elif spelling.upper().endswith(" ARRAY"):
        spelling = spelling[: -len(" ARRAY")]
        is_array = True
    elif spelling.startswith("_") and len(spelling) > 1:
        # pg_type names array types after their element with a leading underscore
        spelling = spelling[1:]
        is_array = True

    spelling = _MODIFIER_RE.sub("", spelling).strip().strip('"')

    if spelling in enum_names:
        return ColumnType(base=LogicalType.ENUM, is_array=is_array)

    # Schema-qualified names (public.trip_status) compare on the bare name
    bare = spelling.rsplit(".", 1)[-1]
    if bare in enum_names:
        return ColumnType(base=LogicalType.ENUM, is_array=is_array)

    base = TYPE_MAP.get(spelling.lower(), TYPE_MAP.get(bare.lower(), LogicalType.OTHER))
    return ColumnType(base=base, is_array=is_array)
