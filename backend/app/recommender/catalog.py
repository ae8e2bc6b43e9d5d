"""
Recommender Catalog
===================

Bookkeeping cho recommenders:
- recommender_catalogue (directory): tạo lazily, một row mỗi recommender
- recommender_properties: tạo một lần với một row default
- <name>index: schema phụ thuộc method, một row mỗi cell
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, select

from app.config import Settings, settings as default_settings
from app.db.gateway import QueryGateway
from app.recommender.definition import RecommenderDefinition, index_table_name
from app.recommender.methods import RecMethod
from app.recommender.schema import (
    COUNTER_COLUMNS,
    DIRECTORY_TABLE,
    MODEL_NAME_COLUMNS,
    PROPERTIES_TABLE,
    RATE_COLUMNS,
    TIMESTAMP_COLUMN,
    VIEW_NAME_COLUMN,
    TableSpec,
    directory_spec,
    index_spec,
    model_name_columns,
    properties_spec,
)

logger = logging.getLogger(__name__)


@dataclass
class DirectoryEntry:
    """Một row của recommender_catalogue."""
    recommender_id: int
    index_name: str
    user_table: str
    item_table: str
    rating_table: str
    user_key: str
    item_key: str
    rating_value: str
    method: str
    context_attribute_count: int

    @property
    def name(self) -> str:
        return self.index_name[:-len("index")]


@dataclass
class CellRecord:
    """
    Một row của index table.

    Attributes:
        model_names: Tên model table(s), 1 cho CF và 2 cho SVD
        view_name: Tên view table
        rating_total: Số rating dùng để build model
        created_at: Thời điểm tạo cell
        context: Giá trị context attributes (rỗng nếu context-free)
        update_counter / query_counter / update_rate / query_rate: khởi tạo 0
    """
    model_names: Tuple[str, ...]
    view_name: str
    rating_total: int
    created_at: datetime
    context: Dict[str, str] = field(default_factory=dict)
    update_counter: int = 0
    query_counter: int = 0
    update_rate: float = 0.0
    query_rate: float = 0.0
    system_id: Optional[int] = None


def _entry_from_row(row) -> DirectoryEntry:
    return DirectoryEntry(
        recommender_id=row.recommenderid,
        index_name=row.recommenderindexname,
        user_table=row.usertable,
        item_table=row.itemtable,
        rating_table=row.ratingtable,
        user_key=row.userkey,
        item_key=row.itemkey,
        rating_value=row.ratingval,
        method=row.method,
        context_attribute_count=row.contextattributes,
    )


class RecommenderCatalog:
    """Directory, properties và index tables."""

    def __init__(self, gateway: QueryGateway, settings: Optional[Settings] = None):
        self.gateway = gateway
        self.settings = settings or default_settings

    # ------------------------------------------------------------------
    # Directory
    # ------------------------------------------------------------------

    async def ensure_directory(self) -> None:
        await self.gateway.create_table(directory_spec(), if_not_exists=True)

    async def directory_exists(self) -> bool:
        return await self.gateway.table_exists(DIRECTORY_TABLE.name)

    async def register(self, definition: RecommenderDefinition) -> int:
        """
        Thêm recommender vào directory (giữ chỗ tên trước khi tạo cell).

        Returns:
            recommender_id (serial)
        """
        conn = await self.gateway.db.connection()
        result = await conn.execute(
            DIRECTORY_TABLE.insert().values(
                recommenderindexname=definition.index_name,
                usertable=definition.user_table,
                itemtable=definition.item_table,
                ratingtable=definition.rating_table,
                userkey=definition.user_key,
                itemkey=definition.item_key,
                ratingval=definition.rating_value,
                method=definition.method.value,
                contextattributes=len(definition.context_attributes),
            )
        )
        recommender_id = result.inserted_primary_key[0]
        logger.info(f"Registered recommender {definition.name} (id={recommender_id})")
        return recommender_id

    async def lookup(self, name: str) -> Optional[DirectoryEntry]:
        stmt = select(DIRECTORY_TABLE).where(
            DIRECTORY_TABLE.c.recommenderindexname == index_table_name(name)
        )
        rows = await self.gateway.fetch_all(stmt)
        return _entry_from_row(rows[0]) if rows else None

    async def list_entries(self) -> List[DirectoryEntry]:
        if not await self.directory_exists():
            return []
        rows = await self.gateway.fetch_all(
            select(DIRECTORY_TABLE).order_by(DIRECTORY_TABLE.c.recommenderid)
        )
        return [_entry_from_row(r) for r in rows]

    async def remove(self, name: str) -> None:
        await self.gateway.execute_for_rows(
            delete(DIRECTORY_TABLE).where(
                DIRECTORY_TABLE.c.recommenderindexname == index_table_name(name)
            )
        )

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    async def ensure_properties(self) -> bool:
        """
        Tạo recommender_properties với một row default nếu chưa có.

        Returns:
            True nếu vừa tạo
        """
        if await self.gateway.table_exists(PROPERTIES_TABLE.name):
            return False
        await self.gateway.create_table(properties_spec())
        await self.gateway.execute_for_rows(
            PROPERTIES_TABLE.insert().values(
                update_threshold=self.settings.update_threshold,
                tail_length=self.settings.tail_length,
                verbose_queries=self.settings.verbose_queries,
            )
        )
        logger.info("Created recommender_properties with default values")
        return True

    # ------------------------------------------------------------------
    # Index table
    # ------------------------------------------------------------------

    async def create_index_table(self, definition: RecommenderDefinition) -> TableSpec:
        spec = index_spec(definition)
        await self.gateway.create_table(spec)
        return spec

    async def append_cell(self, spec: TableSpec, record: CellRecord) -> None:
        method_columns = [c for c in spec.column_names if c in MODEL_NAME_COLUMNS]
        if len(method_columns) != len(record.model_names):
            raise ValueError(
                f"index table {spec.name} expects {len(method_columns)} model names, "
                f"got {len(record.model_names)}"
            )
        values = dict(zip(method_columns, record.model_names))
        values[VIEW_NAME_COLUMN] = record.view_name
        values.update(zip(
            COUNTER_COLUMNS,
            (record.update_counter, record.rating_total, record.query_counter)
        ))
        values.update(zip(RATE_COLUMNS, (record.update_rate, record.query_rate)))
        values[TIMESTAMP_COLUMN] = record.created_at
        values.update(record.context)
        await self.gateway.execute_for_rows(spec.to_table().insert().values(**values))

    async def read_cells(self, entry: DirectoryEntry, context_attributes: Tuple[str, ...] = ()) -> List[CellRecord]:
        """Đọc toàn bộ index table; cursor đóng trước khi trả về."""
        method = RecMethod.from_token(entry.method)
        model_columns = model_name_columns(method)
        index = await self.gateway.reflect_table(entry.index_name)
        records = []
        async with self.gateway.open_cursor(select(index).order_by(index.c.systemid)) as cursor:
            for row in cursor:
                mapping = row._mapping
                records.append(CellRecord(
                    system_id=mapping["systemid"],
                    model_names=tuple(mapping[c] for c in model_columns),
                    view_name=mapping[VIEW_NAME_COLUMN],
                    update_counter=mapping["updatecounter"],
                    rating_total=mapping["ratingtotal"],
                    query_counter=mapping["querycounter"],
                    update_rate=mapping["updaterate"],
                    query_rate=mapping["queryrate"],
                    created_at=mapping[TIMESTAMP_COLUMN],
                    context={a: mapping[a] for a in context_attributes},
                ))
        return records

    async def context_attributes(self, entry: DirectoryEntry) -> Tuple[str, ...]:
        """Context attributes là các cột trailing của index table."""
        if entry.context_attribute_count == 0:
            return ()
        columns = await self.gateway.column_names(entry.index_name)
        return tuple(columns[-entry.context_attribute_count:])
