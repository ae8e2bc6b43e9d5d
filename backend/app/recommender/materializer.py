"""
Cell Materializer
=================

Tạo toàn bộ artifacts cho một cell, theo đúng thứ tự:
1. Sinh tên model / view
2. CREATE model table(s)
3. CREATE view table + insert sentinel row (-1, -1, -1)
4. Gọi strategy để populate model, nhận số rating
5. Insert row vào index table

Index row luôn được insert sau cùng: lỗi giữa chừng có thể để lại table mồ
côi nhưng không bao giờ để lại index row trỏ tới table không tồn tại.
"""

import logging
from datetime import datetime
from typing import Dict

from app.db.gateway import QueryGateway
from app.recommender.catalog import CellRecord, RecommenderCatalog
from app.recommender.definition import RecommenderDefinition
from app.recommender.naming import CellNamer
from app.recommender.schema import TableSpec, sentinel_row, view_spec
from app.recommender.strategies import ModelStrategy

logger = logging.getLogger(__name__)


class CellMaterializer:
    """Build từng cell của một recommender; không phụ thuộc method."""

    def __init__(
        self,
        gateway: QueryGateway,
        catalog: RecommenderCatalog,
        strategy: ModelStrategy,
        definition: RecommenderDefinition,
        index: TableSpec,
        namer: CellNamer
    ):
        self.gateway = gateway
        self.catalog = catalog
        self.strategy = strategy
        self.definition = definition
        self.index = index
        self.namer = namer

    async def materialize(self, context: Dict[str, str]) -> CellRecord:
        """
        Args:
            context: attribute -> value của cell (rỗng nếu context-free)

        Returns:
            CellRecord đã được ghi vào index table
        """
        names = self.namer.next_cell()

        for spec in self.strategy.model_specs(names.model_names):
            await self.gateway.create_table(spec)

        view = view_spec(names.view_name, self.definition.user_key, self.definition.item_key)
        await self.gateway.create_table(view)
        await self.gateway.execute_for_rows(view.to_table().insert().values(**sentinel_row(view)))

        rating_total = await self.strategy.build(names.model_names, context)

        record = CellRecord(
            model_names=names.model_names,
            view_name=names.view_name,
            rating_total=rating_total,
            created_at=datetime.now(),
            context=dict(context),
        )
        await self.catalog.append_cell(self.index, record)

        logger.info(
            f"Cell {names.view_name} of {self.definition.name} ready: "
            f"models={', '.join(names.model_names)}, ratings={rating_total}"
            + (f", context={context}" if context else "")
        )
        return record
