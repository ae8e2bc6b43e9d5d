"""
Recommender Service
===================

Entry points cho CREATE RECOMMENDER / DROP RECOMMENDER, dùng bởi routes và CLI.

- Chạy trong transaction của caller, không commit
- Từ chối khi transaction read-only
- CREATE chạy trong một SAVEPOINT: lỗi ở bất kỳ bước nào rollback toàn bộ
  (directory row, properties, index table, mọi cell) rồi raise lại
- DROP không có SAVEPOINT: lỗi giữa chừng để lại các cell đã drop
"""

import logging
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, settings as default_settings
from app.db.gateway import QueryGateway
from app.recommender.builder import RecommenderBuilder
from app.recommender.catalog import CellRecord, DirectoryEntry, RecommenderCatalog
from app.recommender.destroyer import RecommenderDestroyer
from app.recommender.errors import NoRecommendersError, ReadOnlyTransactionError, RecommenderNotFoundError
from app.recommender.validation import make_definition, validate_definition
from app.web.schemas.recommender import (
    CellResponse,
    CommandResponse,
    CreateRecommenderRequest,
    NoticeResponse,
    RecommenderDetailResponse,
    RecommenderResponse,
)

logger = logging.getLogger(__name__)

CREATE_TAG = "CREATE RECOMMENDER"
DROP_TAG = "DROP RECOMMENDER"


def _cell_response(record: CellRecord) -> CellResponse:
    return CellResponse(
        model_names=list(record.model_names),
        view_name=record.view_name,
        rating_total=record.rating_total,
        update_counter=record.update_counter,
        query_counter=record.query_counter,
        update_rate=record.update_rate,
        query_rate=record.query_rate,
        created_at=record.created_at,
        context=dict(record.context),
    )


def _recommender_fields(entry: DirectoryEntry) -> dict:
    return dict(
        recommender_id=entry.recommender_id,
        name=entry.name,
        index_name=entry.index_name,
        user_table=entry.user_table,
        item_table=entry.item_table,
        rating_table=entry.rating_table,
        user_key=entry.user_key,
        item_key=entry.item_key,
        rating_value=entry.rating_value,
        method=entry.method,
        context_attribute_count=entry.context_attribute_count,
    )


class RecommenderService:
    """Service xử lý recommender lifecycle."""

    @staticmethod
    async def _check_writable(gateway: QueryGateway, command: str, settings: Settings) -> None:
        if settings.read_only or await gateway.transaction_is_read_only():
            raise ReadOnlyTransactionError(command)

    @staticmethod
    async def create_recommender(
        db: AsyncSession,
        request: CreateRecommenderRequest,
        settings: Optional[Settings] = None
    ) -> CommandResponse:
        """
        Tạo recommender: validate, đăng ký catalog, build mọi cell.

        Args:
            db: Database session (transaction của caller)
            request: CREATE RECOMMENDER request
            settings: Settings override (mặc định: app.config.settings)

        Returns:
            CommandResponse với status "CREATE RECOMMENDER"

        Raises:
            RecommenderError: validation, read-only, partition errors
            sqlalchemy.exc.DBAPIError: lỗi từ database
        """
        settings = settings or default_settings
        gateway = QueryGateway(db)
        await RecommenderService._check_writable(gateway, CREATE_TAG, settings)

        definition = make_definition(
            name=request.name,
            user_table=request.users_from,
            item_table=request.items_from,
            rating_table=request.events_from,
            user_key=request.user_key,
            item_key=request.item_key,
            rating_value=request.event_value,
            method=request.method,
            context_attributes=request.context_attributes,
        )
        await validate_definition(gateway, definition, settings)

        logger.info(
            f"statement: {CREATE_TAG} {definition.name} ON {definition.rating_table} "
            f"USERS FROM {definition.user_table} ITEMS FROM {definition.item_table} "
            f"USING {definition.method.value}"
            + (f" CONTEXT ({', '.join(definition.context_attributes)})" if definition.is_contextual else "")
        )

        builder = RecommenderBuilder(gateway, settings)
        try:
            async with db.begin_nested():
                outcome = await builder.build(definition)
        except Exception as e:
            logger.error(f"{CREATE_TAG} {definition.name} failed, rolled back: {e}")
            raise

        return CommandResponse(
            status=CREATE_TAG,
            recommender=definition.name,
            method=definition.method.value,
            cells=[_cell_response(c) for c in outcome.cells],
        )

    @staticmethod
    async def drop_recommender(
        db: AsyncSession,
        name: str,
        settings: Optional[Settings] = None
    ) -> CommandResponse:
        """
        Xóa recommender cùng mọi model / view / index table.

        Raises:
            NoRecommendersError: chưa có recommender nào
            RecommenderNotFoundError: recommender không tồn tại
        """
        settings = settings or default_settings
        gateway = QueryGateway(db)
        await RecommenderService._check_writable(gateway, DROP_TAG, settings)

        logger.info(f"statement: {DROP_TAG} {name.lower()}")
        destroyer = RecommenderDestroyer(gateway, RecommenderCatalog(gateway, settings))
        outcome = await destroyer.destroy(name)

        return CommandResponse(
            status=DROP_TAG,
            recommender=outcome.name,
            method=outcome.method.value,
            cells=[
                CellResponse(model_names=list(c.model_names), view_name=c.view_name, rating_total=0)
                for c in outcome.cells
            ],
            notices=[NoticeResponse(level=n.level, code=n.code, message=n.message) for n in outcome.notices],
        )

    @staticmethod
    async def list_recommenders(db: AsyncSession) -> List[RecommenderResponse]:
        catalog = RecommenderCatalog(QueryGateway(db))
        return [RecommenderResponse(**_recommender_fields(e)) for e in await catalog.list_entries()]

    @staticmethod
    async def describe_recommender(db: AsyncSession, name: str) -> RecommenderDetailResponse:
        catalog = RecommenderCatalog(QueryGateway(db))
        if not await catalog.directory_exists():
            raise NoRecommendersError()
        entry = await catalog.lookup(name.lower())
        if entry is None:
            raise RecommenderNotFoundError(name.lower())

        attributes = await catalog.context_attributes(entry)
        cells = await catalog.read_cells(entry, attributes)
        return RecommenderDetailResponse(
            **_recommender_fields(entry),
            context_attributes=list(attributes),
            cells=[_cell_response(c) for c in cells],
        )
