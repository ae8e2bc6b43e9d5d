"""
Recommender Schemas
===================

Mô tả schema vật lý bằng descriptor có kiểu (TableSpec / ColumnSpec) thay vì
ghép chuỗi SQL. TableSpec.to_table() sinh ra sqlalchemy.Table để tạo DDL,
insert và select.

Tables:
- recommender_catalogue: directory, một row cho mỗi recommender
- recommender_properties: tham số tunable, tối đa một row
- <name>index: index các cell của một recommender
- model tables: similarity (CF) hoặc factor (SVD)
- view tables: (user, item, recscore) cho recommendation queries
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import Boolean, Column, DateTime, Integer, MetaData, REAL, String, Table

from app.recommender.definition import RecommenderDefinition
from app.recommender.methods import RecMethod

DIRECTORY_TABLE_NAME = "recommender_catalogue"
PROPERTIES_TABLE_NAME = "recommender_properties"

# Cột cố định của index table; context attribute không được trùng tên
INDEX_ID_COLUMN = "systemid"
MODEL_NAME_COLUMN = "recmodelname"
USER_MODEL_NAME_COLUMN = "recusermodelname"
ITEM_MODEL_NAME_COLUMN = "recitemmodelname"
VIEW_NAME_COLUMN = "recviewname"
COUNTER_COLUMNS = ("updatecounter", "ratingtotal", "querycounter")
RATE_COLUMNS = ("updaterate", "queryrate")
TIMESTAMP_COLUMN = "levelone_timestamp"

MODEL_NAME_COLUMNS = (MODEL_NAME_COLUMN, USER_MODEL_NAME_COLUMN, ITEM_MODEL_NAME_COLUMN)

RESERVED_INDEX_COLUMNS = frozenset(
    (INDEX_ID_COLUMN, MODEL_NAME_COLUMN, USER_MODEL_NAME_COLUMN, ITEM_MODEL_NAME_COLUMN,
     VIEW_NAME_COLUMN, TIMESTAMP_COLUMN) + COUNTER_COLUMNS + RATE_COLUMNS
)

SCORE_COLUMN = "recscore"
SENTINEL_KEY = -1
SENTINEL_SCORE = -1.0


@dataclass(frozen=True)
class ColumnSpec:
    """
    Một cột trong TableSpec.

    Attributes:
        name: Tên cột
        type_: SQLAlchemy type
        primary_key: Thuộc primary key (composite nếu nhiều cột)
        serial: Integer tự tăng (serial)
        nullable: Mặc định NOT NULL
    """
    name: str
    type_: Any
    primary_key: bool = False
    serial: bool = False
    nullable: bool = False

    def to_column(self) -> Column:
        return Column(
            self.name,
            self.type_,
            primary_key=self.primary_key or self.serial,
            autoincrement=True if self.serial else False,
            nullable=self.nullable,
        )


@dataclass(frozen=True)
class TableSpec:
    """Descriptor cho một CREATE TABLE."""
    name: str
    columns: Tuple[ColumnSpec, ...]
    options: Dict[str, Any] = field(default_factory=dict)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def to_table(self, metadata: Optional[MetaData] = None) -> Table:
        return Table(
            self.name,
            metadata if metadata is not None else MetaData(),
            *[c.to_column() for c in self.columns],
            **self.options
        )


def directory_spec() -> TableSpec:
    return TableSpec(
        name=DIRECTORY_TABLE_NAME,
        columns=(
            ColumnSpec("recommenderid", Integer, serial=True),
            ColumnSpec("recommenderindexname", String),
            ColumnSpec("usertable", String),
            ColumnSpec("itemtable", String),
            ColumnSpec("ratingtable", String),
            ColumnSpec("userkey", String),
            ColumnSpec("itemkey", String),
            ColumnSpec("ratingval", String),
            ColumnSpec("method", String),
            ColumnSpec("contextattributes", Integer),
        ),
        # Không tái sử dụng id sau khi xóa row (tên cell dựa trên id)
        options={"sqlite_autoincrement": True},
    )


def properties_spec() -> TableSpec:
    return TableSpec(
        name=PROPERTIES_TABLE_NAME,
        columns=(
            ColumnSpec("update_threshold", REAL),
            ColumnSpec("tail_length", Integer),
            ColumnSpec("verbose_queries", Boolean),
        ),
    )


def model_name_columns(method: RecMethod) -> Tuple[str, ...]:
    """SVD có hai model (user, item), các method CF chỉ có một."""
    if method.is_factorization:
        return (USER_MODEL_NAME_COLUMN, ITEM_MODEL_NAME_COLUMN)
    return (MODEL_NAME_COLUMN,)


def index_spec(definition: RecommenderDefinition) -> TableSpec:
    columns = [ColumnSpec(INDEX_ID_COLUMN, Integer, serial=True)]
    columns += [ColumnSpec(name, String) for name in model_name_columns(definition.method)]
    columns.append(ColumnSpec(VIEW_NAME_COLUMN, String))
    columns += [ColumnSpec(name, Integer) for name in COUNTER_COLUMNS]
    columns += [ColumnSpec(name, REAL) for name in RATE_COLUMNS]
    columns.append(ColumnSpec(TIMESTAMP_COLUMN, DateTime))
    columns += [ColumnSpec(attr, String) for attr in definition.context_attributes]
    return TableSpec(name=definition.index_name, columns=tuple(columns))


def similarity_model_spec(name: str, entity: str) -> TableSpec:
    """Model CF: (item1, item2, similarity) hoặc (user1, user2, similarity)."""
    return TableSpec(
        name=name,
        columns=(
            ColumnSpec(f"{entity}1", Integer),
            ColumnSpec(f"{entity}2", Integer),
            ColumnSpec("similarity", REAL),
        ),
    )


def factor_model_spec(name: str, entity_column: str) -> TableSpec:
    """Model SVD: (users|items, feature, value)."""
    return TableSpec(
        name=name,
        columns=(
            ColumnSpec(entity_column, Integer),
            ColumnSpec("feature", Integer),
            ColumnSpec("value", REAL),
        ),
    )


def view_spec(name: str, user_key: str, item_key: str) -> TableSpec:
    return TableSpec(
        name=name,
        columns=(
            ColumnSpec(user_key, Integer, primary_key=True),
            ColumnSpec(item_key, Integer, primary_key=True),
            ColumnSpec(SCORE_COLUMN, REAL),
        ),
    )


def sentinel_row(spec: TableSpec) -> Dict[str, Any]:
    """Row giả (-1, -1, -1) để view không bao giờ rỗng."""
    user_key, item_key, score = spec.column_names
    return {user_key: SENTINEL_KEY, item_key: SENTINEL_KEY, score: SENTINEL_SCORE}


def reserved_collisions(attributes: Iterable[str]) -> List[str]:
    return [a for a in attributes if a in RESERVED_INDEX_COLUMNS]


DIRECTORY_TABLE = directory_spec().to_table()
PROPERTIES_TABLE = properties_spec().to_table()
