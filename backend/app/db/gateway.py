"""
Query Gateway
=============

Lớp mỏng bọc một AsyncSession, là điểm duy nhất mà recommender lifecycle
dùng để chạy DDL/DML và đọc dữ liệu.

- execute_for_effect: DDL, không có result rows
- execute_for_rows: DML (insert/delete), chỉ quan tâm thành công hay lỗi
- open_cursor: mở query session, luôn được đóng khi thoát (kể cả break sớm)
- string_value: lấy giá trị text của một cột trong row hiện tại

Mọi statement là SQLAlchemy Core construct, không ghép chuỗi SQL.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Union

from sqlalchemy import MetaData, Table, inspect, text
from sqlalchemy.engine import CursorResult, Row
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession
from sqlalchemy.schema import CreateTable, DropTable

from app.recommender.schema import TableSpec

logger = logging.getLogger(__name__)


class QueryCursor:
    """Cursor kiểu iterator trên một result đã execute."""

    def __init__(self, result: CursorResult):
        self._result = result
        self._closed = False

    def next_row(self) -> Optional[Row]:
        """Row tiếp theo, hoặc None khi hết."""
        if self._closed:
            return None
        return self._result.fetchone()

    def __iter__(self):
        while True:
            row = self.next_row()
            if row is None:
                break
            yield row

    def close(self) -> None:
        if not self._closed:
            self._result.close()
            self._closed = True


class QueryGateway:
    """Service boundary tới query engine."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _connection(self) -> AsyncConnection:
        return await self.db.connection()

    @property
    def dialect_name(self) -> str:
        return self.db.get_bind().dialect.name

    async def execute_for_effect(self, statement) -> None:
        conn = await self._connection()
        await conn.execute(statement)

    async def execute_for_rows(
        self,
        statement,
        parameters: Optional[Union[Dict[str, Any], Sequence[Dict[str, Any]]]] = None
    ) -> None:
        conn = await self._connection()
        if parameters is None:
            await conn.execute(statement)
        else:
            await conn.execute(statement, parameters)

    @asynccontextmanager
    async def open_cursor(self, statement) -> AsyncIterator[QueryCursor]:
        conn = await self._connection()
        result = await conn.execute(statement)
        cursor = QueryCursor(result)
        try:
            yield cursor
        finally:
            cursor.close()

    async def fetch_all(self, statement) -> List[Row]:
        async with self.open_cursor(statement) as cursor:
            return list(cursor)

    @staticmethod
    def string_value(row: Row, column_name: str) -> Optional[str]:
        """Giá trị text của một cột; None nếu giá trị là NULL."""
        value = row._mapping[column_name]
        if value is None:
            return None
        return str(value)

    async def table_exists(self, table_name: str) -> bool:
        conn = await self._connection()
        return await conn.run_sync(lambda sync_conn: inspect(sync_conn).has_table(table_name))

    async def column_names(self, table_name: str) -> List[str]:
        conn = await self._connection()
        columns = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_columns(table_name))
        return [c["name"] for c in columns]

    async def reflect_table(self, table_name: str) -> Table:
        """Table object với kiểu cột lấy từ database."""
        conn = await self._connection()
        return await conn.run_sync(
            lambda sync_conn: Table(table_name, MetaData(), autoload_with=sync_conn)
        )

    async def create_table(self, spec: TableSpec, if_not_exists: bool = False) -> Table:
        table = spec.to_table()
        await self.execute_for_effect(CreateTable(table, if_not_exists=if_not_exists))
        return table

    async def drop_table(self, table_name: str) -> None:
        await self.execute_for_effect(DropTable(Table(table_name, MetaData())))

    async def transaction_is_read_only(self) -> bool:
        """Chỉ PostgreSQL báo trạng thái read-only của transaction."""
        if self.dialect_name != "postgresql":
            return False
        conn = await self._connection()
        result = await conn.execute(text("SHOW transaction_read_only"))
        return result.scalar() == "on"
