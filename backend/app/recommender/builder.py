"""
Recommender Builder
===================

Pipeline tạo recommender:
directory row -> properties (nếu chưa có) -> index table -> precompute
-> với mỗi cell theo thứ tự partitioner: model/view tables -> strategy -> index row
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from app.config import Settings, settings as default_settings
from app.db.gateway import QueryGateway
from app.recommender.catalog import CellRecord, RecommenderCatalog
from app.recommender.definition import RecommenderDefinition
from app.recommender.materializer import CellMaterializer
from app.recommender.naming import CellNamer
from app.recommender.partitioner import ContextPartitioner
from app.recommender.strategies import build_strategy

logger = logging.getLogger(__name__)


@dataclass
class BuildOutcome:
    recommender_id: int
    index_name: str
    cells: List[CellRecord] = field(default_factory=list)
    created_properties: bool = False


class RecommenderBuilder:
    def __init__(self, gateway: QueryGateway, settings: Optional[Settings] = None):
        self.gateway = gateway
        self.settings = settings or default_settings
        self.catalog = RecommenderCatalog(gateway, self.settings)
        self.partitioner = ContextPartitioner(gateway)

    async def build(self, definition: RecommenderDefinition) -> BuildOutcome:
        strategy = build_strategy(self.gateway, definition, self.settings)

        await self.catalog.ensure_directory()
        recommender_id = await self.catalog.register(definition)
        created_properties = await self.catalog.ensure_properties()
        index = await self.catalog.create_index_table(definition)

        await strategy.prepare()

        materializer = CellMaterializer(
            gateway=self.gateway,
            catalog=self.catalog,
            strategy=strategy,
            definition=definition,
            index=index,
            namer=CellNamer(definition.name, recommender_id, definition.method.model_roles),
        )

        outcome = BuildOutcome(
            recommender_id=recommender_id,
            index_name=index.name,
            created_properties=created_properties,
        )
        for context in await self.partitioner.partitions(definition):
            outcome.cells.append(await materializer.materialize(context))

        logger.info(
            f"✅ Recommender {definition.name} ({definition.method.value}) built: "
            f"{len(outcome.cells)} cells, {sum(c.rating_total for c in outcome.cells)} ratings"
        )
        return outcome
