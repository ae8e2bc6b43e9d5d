"""
Model Strategies
================

Một strategy cho mỗi RecMethod (tập đóng):
- itemcoscf / itempearcf: similarity giữa các item
- usercoscf / userpearcf: similarity giữa các user
- svd: hai factor tables (user, item)

Strategy được chọn một lần cho mỗi recommender:
- prepare(): precompute toàn cục một lần, trước cell đầu tiên
- model_specs(): schema model table(s) cho một cell
- build(): populate model table(s) của một cell, trả về số rating đã dùng
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from app.config import Settings, settings as default_settings
from app.db.gateway import QueryGateway
from app.recommender import kernels
from app.recommender.definition import RecommenderDefinition
from app.recommender.errors import UnknownMethodError
from app.recommender.methods import RecMethod
from app.recommender.schema import TableSpec, factor_model_spec, similarity_model_spec

logger = logging.getLogger(__name__)

# Batch size cho insert
BATCH_SIZE = 1000

COSINE = "cosine"
PEARSON = "pearson"


async def insert_rows(gateway: QueryGateway, spec: TableSpec, rows: Sequence[Dict[str, Any]]) -> None:
    table = spec.to_table()
    for start in range(0, len(rows), BATCH_SIZE):
        await gateway.execute_for_rows(table.insert(), list(rows[start:start + BATCH_SIZE]))


class ModelStrategy(ABC):
    """Interface chung cho các strategy."""

    method: RecMethod

    def __init__(self, gateway: QueryGateway, definition: RecommenderDefinition):
        self.gateway = gateway
        self.definition = definition

    @abstractmethod
    def model_specs(self, model_names: Tuple[str, ...]) -> List[TableSpec]:
        ...

    async def prepare(self) -> None:
        """Precompute toàn cục; mặc định không cần."""

    @abstractmethod
    async def build(self, model_names: Tuple[str, ...], context: Dict[str, str]) -> int:
        ...


class SimilarityStrategy(ModelStrategy):
    """
    Collaborative filtering theo similarity.

    Attributes:
        entity: "item" (item-based) hoặc "user" (user-based)
        measure: "cosine" hoặc "pearson"
    """

    def __init__(
        self,
        gateway: QueryGateway,
        definition: RecommenderDefinition,
        method: RecMethod,
        entity: str,
        measure: str
    ):
        super().__init__(gateway, definition)
        self.method = method
        self.entity = entity
        self.measure = measure
        self.stats: Optional[Union[kernels.CosineStats, kernels.PearsonStats]] = None

    @property
    def entity_table(self) -> str:
        return self.definition.item_table if self.entity == "item" else self.definition.user_table

    @property
    def entity_key(self) -> str:
        return self.definition.item_key if self.entity == "item" else self.definition.user_key

    @property
    def other_key(self) -> str:
        return self.definition.user_key if self.entity == "item" else self.definition.item_key

    def model_specs(self, model_names: Tuple[str, ...]) -> List[TableSpec]:
        (model_name,) = model_names
        return [similarity_model_spec(model_name, self.entity)]

    async def prepare(self) -> None:
        precompute = (
            kernels.precompute_cosine_stats if self.measure == COSINE
            else kernels.precompute_pearson_stats
        )
        self.stats = await precompute(
            self.gateway,
            self.entity_table,
            self.entity_key,
            self.definition.rating_table,
            self.definition.rating_value,
            other_key=self.other_key,
        )

    def _pairs(self, batch: kernels.RatingBatch) -> List[kernels.SimilarityPair]:
        if self.entity == "item":
            entity_keys, other_keys = batch.items, batch.users
        else:
            entity_keys, other_keys = batch.users, batch.items
        if self.measure == COSINE:
            return kernels.cosine_similarity_pairs(self.stats, entity_keys, other_keys, batch.values)
        return kernels.pearson_similarity_pairs(self.stats, entity_keys, other_keys, batch.values)

    async def build(self, model_names: Tuple[str, ...], context: Dict[str, str]) -> int:
        if self.stats is None:
            raise RuntimeError(f"{self.method.value} strategy used before prepare()")

        batch = await kernels.load_ratings(self.gateway, self.definition, context)
        pairs = self._pairs(batch)

        spec = self.model_specs(model_names)[0]
        first, second, score = spec.column_names
        await insert_rows(
            self.gateway,
            spec,
            [{first: a, second: b, score: s} for a, b, s in pairs]
        )
        logger.info(
            f"{self.method.value} model {spec.name}: {len(batch)} ratings, {len(pairs)} similarity pairs"
        )
        return len(batch)


class FactorizationStrategy(ModelStrategy):
    """SVD: factor table cho user và cho item, không cần precompute."""

    method = RecMethod.SVD

    def __init__(
        self,
        gateway: QueryGateway,
        definition: RecommenderDefinition,
        settings: Optional[Settings] = None
    ):
        super().__init__(gateway, definition)
        self.settings = settings or default_settings

    def model_specs(self, model_names: Tuple[str, ...]) -> List[TableSpec]:
        user_model, item_model = model_names
        return [factor_model_spec(user_model, "users"), factor_model_spec(item_model, "items")]

    @staticmethod
    def _factor_rows(spec: TableSpec, ids: np.ndarray, factors: np.ndarray) -> List[Dict[str, Any]]:
        entity, feature, value = spec.column_names
        return [
            {entity: int(entity_id), feature: f, value: float(factors[row, f])}
            for row, entity_id in enumerate(ids)
            for f in range(factors.shape[1])
        ]

    async def build(self, model_names: Tuple[str, ...], context: Dict[str, str]) -> int:
        batch = await kernels.load_ratings(self.gateway, self.definition, context)
        result = kernels.factorize(
            batch.users,
            batch.items,
            batch.values,
            n_factors=self.settings.svd_factors,
            n_epochs=self.settings.svd_epochs,
            learning_rate=self.settings.svd_learning_rate,
            regularization=self.settings.svd_regularization,
            random_state=self.settings.svd_random_state,
        )

        user_spec, item_spec = self.model_specs(model_names)
        await insert_rows(self.gateway, user_spec, self._factor_rows(user_spec, result.user_ids, result.user_factors))
        await insert_rows(self.gateway, item_spec, self._factor_rows(item_spec, result.item_ids, result.item_factors))
        logger.info(
            f"svd models {user_spec.name}/{item_spec.name}: {len(batch)} ratings, "
            f"{result.user_ids.size} users x {result.item_ids.size} items, k={self.settings.svd_factors}"
        )
        return len(batch)


_SIMILARITY_VARIANTS = {
    RecMethod.ITEM_COS_CF: ("item", COSINE),
    RecMethod.ITEM_PEAR_CF: ("item", PEARSON),
    RecMethod.USER_COS_CF: ("user", COSINE),
    RecMethod.USER_PEAR_CF: ("user", PEARSON),
}


def build_strategy(
    gateway: QueryGateway,
    definition: RecommenderDefinition,
    settings: Optional[Settings] = None
) -> ModelStrategy:
    """
    Chọn strategy cho recommender.

    Raises:
        UnknownMethodError: method không thuộc tập đã biết
    """
    method = definition.method
    if method in _SIMILARITY_VARIANTS:
        entity, measure = _SIMILARITY_VARIANTS[method]
        return SimilarityStrategy(gateway, definition, method, entity, measure)
    if method is RecMethod.SVD:
        return FactorizationStrategy(gateway, definition, settings)
    raise UnknownMethodError(method)
