"""
Recommender Destroyer
=====================

DROP RECOMMENDER:
LookupMethod -> EnumerateCells -> DropCellArtifacts* -> DropIndexTable -> RemoveDirectoryRow

- Scan index table xong hết (cursor đã đóng) rồi mới drop
- Drop theo thứ tự enumerate: model(s) trước, view sau
- Lỗi khi drop một cell dừng toàn bộ; các cell đã drop không được tạo lại,
  index table và directory row vẫn còn
"""

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from app.db.gateway import QueryGateway
from app.recommender.catalog import RecommenderCatalog
from app.recommender.errors import NoRecommendersError, Notice, RecommenderNotFoundError, WARNING
from app.recommender.methods import RecMethod

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CellArtifacts:
    model_names: Tuple[str, ...]
    view_name: str

    @property
    def tables(self) -> Tuple[str, ...]:
        return self.model_names + (self.view_name,)


@dataclass
class DropOutcome:
    name: str
    method: RecMethod
    cells: List[CellArtifacts] = field(default_factory=list)
    notices: List[Notice] = field(default_factory=list)


class RecommenderDestroyer:
    def __init__(self, gateway: QueryGateway, catalog: RecommenderCatalog):
        self.gateway = gateway
        self.catalog = catalog

    async def destroy(self, name: str) -> DropOutcome:
        """
        Xóa recommender và mọi artifacts của nó.

        Raises:
            NoRecommendersError: chưa có directory
            RecommenderNotFoundError: tên không có trong directory
        """
        name = name.lower()
        if not await self.catalog.directory_exists():
            raise NoRecommendersError()

        entry = await self.catalog.lookup(name)
        if entry is None:
            raise RecommenderNotFoundError(name)

        # LookupMethod
        method = RecMethod.from_token(entry.method)
        outcome = DropOutcome(name=name, method=method)

        # EnumerateCells
        outcome.cells = [
            CellArtifacts(model_names=record.model_names, view_name=record.view_name)
            for record in await self.catalog.read_cells(entry)
        ]
        if not outcome.cells:
            notice = Notice(
                level=WARNING,
                code="invalid_schema_name",
                message=f"failed to find cells for recommender {name}",
            )
            logger.warning(notice.message)
            outcome.notices.append(notice)

        # DropCellArtifacts
        for cell in outcome.cells:
            for table_name in cell.tables:
                await self.gateway.drop_table(table_name)

        # DropIndexTable, RemoveDirectoryRow
        await self.gateway.drop_table(entry.index_name)
        await self.catalog.remove(name)

        logger.info(f"🗑️  Dropped recommender {name}: {len(outcome.cells)} cells")
        return outcome
