"""Model registry: the schema the application declares it needs.

Loads declarative model definitions and normalizes them into a
``SchemaSnapshot`` using the same ``normalize_type()`` mapping as the
introspector, so semantically equal types compare equal.

Sources:
- A TOML or JSON model description file (``ModelRegistry.from_file``)
- SQLAlchemy declarative models / ``MetaData`` (``ModelRegistry.from_metadata``)
- An import path such as ``"myapp.models:Base"`` (``ModelRegistry.from_import_path``)

Usage:
    from db_drift.schema.registry import load_registry

    registry = load_registry("models.toml")
    expected = registry.snapshot()

Example model file (TOML):

    [enums]
    trip_status = ["draft", "planned", "completed"]

    [tables.users.columns]
    id = { type = "uuid", nullable = false, default = true }
    email = { type = "string", nullable = false }

    [[tables.users.indexes]]
    name = "users_email_idx"
    columns = ["email"]
    unique = true

    [[tables.users.constraints]]
    name = "users_pkey"
    kind = "primary_key"
    columns = ["id"]
"""

import importlib
import json
import logging
import tomllib
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError
from sqlalchemy import CheckConstraint, Enum, ForeignKeyConstraint, MetaData
from sqlalchemy import PrimaryKeyConstraint, UniqueConstraint
from sqlalchemy.dialects import postgresql
from sqlalchemy.exc import CompileError

from db_drift.schema.models import (
    ColumnDef,
    ConstraintDef,
    ConstraintKind,
    IndexDef,
    SchemaSnapshot,
    TableDef,
)
from db_drift.schema.types import normalize_type

logger = logging.getLogger(__name__)

MODEL_FILE_SUFFIXES = (".toml", ".json")


# ============================================================================
# Declarative description models
# ============================================================================


class ModelColumn(BaseModel):
    """A declared column. Undeclared nullability means nullable."""

    type: str
    nullable: bool = True
    default: bool = False
    comment: str | None = None


class ModelIndex(BaseModel):
    """A declared index."""

    name: str
    columns: list[str] = Field(default_factory=list)
    unique: bool = False
    definition: str | None = None


class ModelConstraint(BaseModel):
    """A declared constraint."""

    name: str
    kind: ConstraintKind
    columns: list[str] = Field(default_factory=list)
    references_table: str | None = None
    references_columns: list[str] | None = None
    definition: str = ""


class ModelTable(BaseModel):
    """A declared table."""

    columns: dict[str, ModelColumn] = Field(default_factory=dict)
    indexes: list[ModelIndex] = Field(default_factory=list)
    constraints: list[ModelConstraint] = Field(default_factory=list)
    comment: str | None = None


class ModelDefinitions(BaseModel):
    """Root of a model description file."""

    tables: dict[str, ModelTable] = Field(default_factory=dict)
    enums: dict[str, list[str]] = Field(default_factory=dict)


# ============================================================================
# Registry
# ============================================================================


class ModelRegistry:
    """Declared model tables, normalized on demand into a ``SchemaSnapshot``.

    Table order is declaration order; it drives the comparator's issue order.

    Example:
        >>> registry = ModelRegistry(
        ...     ModelDefinitions(tables={"users": ModelTable(columns={
        ...         "email": ModelColumn(type="varchar(255)", nullable=False),
        ...     })})
        ... )
        >>> str(registry.snapshot().tables["users"].columns["email"].data_type)
        'string'
    """

    def __init__(self, definitions: ModelDefinitions) -> None:
        self._definitions = definitions

    @property
    def table_names(self) -> list[str]:
        return list(self._definitions.tables)

    @property
    def definitions(self) -> ModelDefinitions:
        return self._definitions

    # ------------------------------------------------------------------
    # Constructors
    # ------------------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ModelRegistry":
        """Build from a parsed model description.

        Raises:
            ValueError: If the description does not validate.
        """
        try:
            return cls(ModelDefinitions.model_validate(data))
        except ValidationError as e:
            raise ValueError(f"Invalid model definitions: {e}") from e

    @classmethod
    def from_file(cls, path: str | Path) -> "ModelRegistry":
        """Load a TOML or JSON model description file.

        Raises:
            FileNotFoundError: If the file does not exist.
            ValueError: If the file cannot be parsed or validated.
        """
        model_path = Path(path)
        if not model_path.exists():
            raise FileNotFoundError(f"Model definitions not found: {model_path}")

        suffix = model_path.suffix.lower()
        try:
            if suffix == ".toml":
                with open(model_path, "rb") as f:
                    data = tomllib.load(f)
            elif suffix == ".json":
                data = json.loads(model_path.read_text())
            else:
                raise ValueError(
                    f"Unsupported model file type '{suffix}' "
                    f"(expected one of {', '.join(MODEL_FILE_SUFFIXES)})"
                )
        except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
            raise ValueError(f"Failed to parse {model_path.name}: {e}") from e

        registry = cls.from_dict(data)
        logger.info("Loaded %d model tables from %s", len(registry.table_names), model_path)
        return registry

    @classmethod
    def from_metadata(cls, metadata: MetaData) -> "ModelRegistry":
        """Build from SQLAlchemy ``MetaData`` (e.g. ``Base.metadata``).

        Column types are compiled with the PostgreSQL dialect and then go
        through the shared normalization like any other type spelling.
        """
        dialect = postgresql.dialect()
        tables: dict[str, ModelTable] = {}
        enums: dict[str, list[str]] = {}

        for table in metadata.tables.values():
            columns: dict[str, ModelColumn] = {}
            for column in table.columns:
                if isinstance(column.type, Enum) and column.type.name:
                    enums.setdefault(column.type.name, list(column.type.enums))
                columns[column.name] = ModelColumn(
                    type=_compile_type(column.type, dialect),
                    nullable=bool(column.nullable),
                    default=column.server_default is not None or column.identity is not None,
                    comment=column.comment,
                )

            indexes = [
                ModelIndex(
                    name=index.name,
                    columns=[c.name for c in index.columns],
                    unique=bool(index.unique),
                )
                for index in sorted(table.indexes, key=lambda i: i.name or "")
                if index.name
            ]

            constraints = [
                c
                for c in (
                    _constraint_from_sqlalchemy(table.name, constraint)
                    for constraint in table.constraints
                )
                if c is not None
            ]
            constraints.sort(key=lambda c: c.name)

            tables[table.name] = ModelTable(
                columns=columns,
                indexes=indexes,
                constraints=constraints,
                comment=table.comment,
            )

        return cls(ModelDefinitions(tables=tables, enums=enums))

    @classmethod
    def from_import_path(cls, import_path: str) -> "ModelRegistry":
        """Import ``"package.module:attribute"`` and build from it.

        The attribute may be a ``MetaData`` or a declarative base exposing
        ``.metadata``.

        Raises:
            ValueError: If the path is malformed or does not resolve to
                SQLAlchemy metadata.
        """
        module_name, sep, attribute = import_path.partition(":")
        if not sep or not module_name or not attribute:
            raise ValueError(
                f"Invalid model import path '{import_path}' "
                "(expected 'package.module:attribute')"
            )

        try:
            module = importlib.import_module(module_name)
        except ImportError as e:
            raise ValueError(f"Cannot import model module '{module_name}': {e}") from e

        target = getattr(module, attribute, None)
        metadata = target if isinstance(target, MetaData) else getattr(target, "metadata", None)
        if not isinstance(metadata, MetaData):
            raise ValueError(
                f"'{import_path}' is not SQLAlchemy MetaData or a declarative base"
            )
        return cls.from_metadata(metadata)

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def snapshot(self) -> SchemaSnapshot:
        """Normalize the declared models into a ``SchemaSnapshot``."""
        enum_names = frozenset(self._definitions.enums)
        tables: dict[str, TableDef] = {}

        for table_name, model_table in self._definitions.tables.items():
            columns = {
                name: ColumnDef(
                    name=name,
                    data_type=normalize_type(column.type, enum_names),
                    nullable=column.nullable,
                    has_default=column.default,
                    comment=column.comment,
                )
                for name, column in model_table.columns.items()
            }
            indexes = [
                IndexDef(
                    name=index.name,
                    definition=index.definition or f"({', '.join(index.columns)})",
                    is_unique=index.unique,
                    columns=list(index.columns),
                )
                for index in model_table.indexes
            ]
            constraints = [
                ConstraintDef(**constraint.model_dump())
                for constraint in model_table.constraints
            ]
            tables[table_name] = TableDef(
                name=table_name,
                columns=columns,
                indexes=indexes,
                constraints=constraints,
                comment=model_table.comment,
            )

        return SchemaSnapshot(
            tables=tables,
            enums={name: list(labels) for name, labels in self._definitions.enums.items()},
        )


def load_registry(source: str | Path) -> ModelRegistry:
    """Load a registry from a model file path or a ``module:attribute`` path."""
    text = str(source)
    if Path(text).suffix.lower() in MODEL_FILE_SUFFIXES:
        return ModelRegistry.from_file(text)
    return ModelRegistry.from_import_path(text)


# ------------------------------------------------------------------
# SQLAlchemy helpers
# ------------------------------------------------------------------


def _compile_type(sa_type: Any, dialect: Any) -> str:
    """Render a SQLAlchemy type as PostgreSQL DDL (``VARCHAR(255)``, ``JSONB``...)."""
    try:
        return sa_type.compile(dialect=dialect)
    except CompileError:
        # NullType and friends have no DDL spelling
        return getattr(sa_type, "__visit_name__", "other")


def _constraint_name(constraint: Any) -> str | None:
    """Explicit constraint name, or None for anonymous constraints."""
    name = constraint.name
    return name if isinstance(name, str) and name else None


def _constraint_from_sqlalchemy(table_name: str, constraint: Any) -> ModelConstraint | None:
    """Map a SQLAlchemy constraint, naming anonymous ones the way PostgreSQL does."""
    columns = [c.name for c in constraint.columns]
    name = _constraint_name(constraint)

    if isinstance(constraint, PrimaryKeyConstraint):
        if not columns:
            return None
        return ModelConstraint(
            name=name or f"{table_name}_pkey",
            kind=ConstraintKind.PRIMARY_KEY,
            columns=columns,
        )

    if isinstance(constraint, ForeignKeyConstraint):
        # target_fullname is "[schema.]table.column" and needs no resolution
        targets = [e.target_fullname.split(".") for e in constraint.elements]
        return ModelConstraint(
            name=name or f"{table_name}_{'_'.join(columns)}_fkey",
            kind=ConstraintKind.FOREIGN_KEY,
            columns=columns,
            references_table=targets[0][-2] if targets else None,
            references_columns=[parts[-1] for parts in targets],
        )

    if isinstance(constraint, UniqueConstraint):
        return ModelConstraint(
            name=name or f"{table_name}_{'_'.join(columns)}_key",
            kind=ConstraintKind.UNIQUE,
            columns=columns,
        )

    if isinstance(constraint, CheckConstraint):
        # Anonymous checks (e.g. generated for Boolean/Enum) have no stable name
        if name is None:
            return None
        return ModelConstraint(
            name=name,
            kind=ConstraintKind.CHECK,
            columns=columns,
            definition=str(constraint.sqltext),
        )

    return None
