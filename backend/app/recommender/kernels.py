"""
Numerical Kernels
=================

Các phép tính số cho strategies:
- Precompute toàn bộ rating table: vector length (cosine), average + Pearson
  constant (Pearson)
- Similarity giữa các entity trong một cell (cosine / Pearson)
- Matrix factorization bằng SGD cho SVD

Dữ liệu đọc qua QueryGateway, tính bằng numpy.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
from sqlalchemy import String, cast, column, select, table

from app.db.gateway import QueryGateway
from app.recommender.definition import RecommenderDefinition

logger = logging.getLogger(__name__)

SimilarityPair = Tuple[int, int, float]


@dataclass
class CosineStats:
    """
    Attributes:
        ids: Entity ids (sorted, unique)
        lengths: sqrt(sum r^2) trên toàn bộ rating của mỗi entity
    """
    ids: np.ndarray
    lengths: np.ndarray


@dataclass
class PearsonStats:
    """
    Attributes:
        ids: Entity ids (sorted, unique)
        averages: Rating trung bình của mỗi entity
        pearsons: sqrt(sum (r - avg)^2) của mỗi entity
    """
    ids: np.ndarray
    averages: np.ndarray
    pearsons: np.ndarray


@dataclass
class RatingBatch:
    """Ratings của một cell (đã áp context filter)."""
    users: np.ndarray
    items: np.ndarray
    values: np.ndarray

    def __len__(self) -> int:
        return int(self.values.shape[0])


@dataclass
class FactorResult:
    user_ids: np.ndarray
    user_factors: np.ndarray
    item_ids: np.ndarray
    item_factors: np.ndarray


# ============================================================================
# Loading
# ============================================================================

async def _entity_ratings(
    gateway: QueryGateway,
    entity_table: str,
    entity_key: str,
    rating_table: str,
    rating_column: str,
    other_key: Optional[str] = None
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    entities = table(entity_table, column(entity_key))
    id_rows = await gateway.fetch_all(select(entities.c[entity_key]).distinct())
    ids = np.unique(np.array([int(r[0]) for r in id_rows if r[0] is not None], dtype=np.int64))

    required = [entity_key, rating_column] + ([other_key] if other_key else [])
    ratings = table(rating_table, *[column(c) for c in required])
    # Rating thiếu key hoặc value không được tính
    rating_rows = await gateway.fetch_all(
        select(ratings.c[entity_key], ratings.c[rating_column]).where(
            *[ratings.c[c].isnot(None) for c in required]
        )
    )
    keys = np.array([int(r[0]) for r in rating_rows], dtype=np.int64)
    values = np.array([float(r[1]) for r in rating_rows], dtype=np.float64)
    return ids, keys, values


def _index_of(ids: np.ndarray, keys: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    """Vị trí của keys trong ids (sorted); trả thêm mask các key có trong ids."""
    if ids.size == 0:
        return np.zeros(keys.shape, dtype=np.int64), np.zeros(keys.shape, dtype=bool)
    pos = np.searchsorted(ids, keys)
    pos = np.clip(pos, 0, ids.size - 1)
    return pos, ids[pos] == keys


async def precompute_cosine_stats(
    gateway: QueryGateway,
    entity_table: str,
    entity_key: str,
    rating_table: str,
    rating_column: str,
    other_key: Optional[str] = None
) -> CosineStats:
    ids, keys, values = await _entity_ratings(
        gateway, entity_table, entity_key, rating_table, rating_column, other_key
    )
    pos, known = _index_of(ids, keys)
    sums = np.bincount(pos[known], weights=values[known] ** 2, minlength=ids.size)
    logger.info(f"Cosine stats: {ids.size} entities from {entity_table}, {keys.size} ratings")
    return CosineStats(ids=ids, lengths=np.sqrt(sums))


async def precompute_pearson_stats(
    gateway: QueryGateway,
    entity_table: str,
    entity_key: str,
    rating_table: str,
    rating_column: str,
    other_key: Optional[str] = None
) -> PearsonStats:
    ids, keys, values = await _entity_ratings(
        gateway, entity_table, entity_key, rating_table, rating_column, other_key
    )
    pos, known = _index_of(ids, keys)
    pos, values = pos[known], values[known]

    counts = np.bincount(pos, minlength=ids.size)
    totals = np.bincount(pos, weights=values, minlength=ids.size)
    averages = np.divide(totals, counts, out=np.zeros(ids.size), where=counts > 0)
    deviations = np.bincount(pos, weights=(values - averages[pos]) ** 2, minlength=ids.size)
    logger.info(f"Pearson stats: {ids.size} entities from {entity_table}, {values.size} ratings")
    return PearsonStats(ids=ids, averages=averages, pearsons=np.sqrt(deviations))


def rating_query(definition: RecommenderDefinition, context: Optional[Dict[str, str]] = None):
    """
    Ratings của một cell. Context attributes nằm ở user table nên khi có
    context thì join rating table với user table theo user key.
    """
    user_key, item_key, rating_value = definition.user_key, definition.item_key, definition.rating_value
    ratings = table(definition.rating_table, column(user_key), column(item_key), column(rating_value))
    stmt = select(
        ratings.c[user_key].label("user_id"),
        ratings.c[item_key].label("item_id"),
        ratings.c[rating_value].label("rating"),
    ).where(
        ratings.c[user_key].isnot(None),
        ratings.c[item_key].isnot(None),
        ratings.c[rating_value].isnot(None),
    )
    if context:
        user_columns = [user_key] + [a for a in context if a != user_key]
        users = table(definition.user_table, *[column(c) for c in user_columns])
        stmt = stmt.select_from(ratings.join(users, ratings.c[user_key] == users.c[user_key]))
        for attr, value in context.items():
            stmt = stmt.where(cast(users.c[attr], String) == value)
    return stmt


async def load_ratings(
    gateway: QueryGateway,
    definition: RecommenderDefinition,
    context: Optional[Dict[str, str]] = None
) -> RatingBatch:
    rows = await gateway.fetch_all(rating_query(definition, context))
    return RatingBatch(
        users=np.array([int(r.user_id) for r in rows], dtype=np.int64),
        items=np.array([int(r.item_id) for r in rows], dtype=np.int64),
        values=np.array([float(r.rating) for r in rows], dtype=np.float64),
    )


# ============================================================================
# Similarity
# ============================================================================

def _cell_matrix(
    ids: np.ndarray,
    entity_keys: np.ndarray,
    other_keys: np.ndarray,
    values: np.ndarray
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Dense matrix (entity trong cell) x (other) của ratings.

    Returns:
        (entity_positions trong ids, matrix, mask)
    """
    pos, known = _index_of(ids, entity_keys)
    pos, other_keys, values = pos[known], other_keys[known], values[known]

    present, rows = np.unique(pos, return_inverse=True)
    _, cols = np.unique(other_keys, return_inverse=True)
    n_cols = int(cols.max()) + 1 if cols.size else 0

    matrix = np.zeros((present.size, n_cols), dtype=np.float64)
    mask = np.zeros((present.size, n_cols), dtype=bool)
    matrix[rows, cols] = values
    mask[rows, cols] = True
    return present, matrix, mask


def _upper_pairs(ids: np.ndarray, similarities: np.ndarray) -> List[SimilarityPair]:
    """Mỗi cặp (id1 < id2) có similarity khác 0."""
    i, j = np.triu_indices(ids.size, k=1)
    scores = similarities[i, j]
    keep = scores != 0
    return [
        (int(a), int(b), float(s))
        for a, b, s in zip(ids[i[keep]], ids[j[keep]], scores[keep])
    ]


def _normalized(dots: np.ndarray, norms: np.ndarray) -> np.ndarray:
    denom = np.outer(norms, norms)
    return np.divide(dots, denom, out=np.zeros_like(dots), where=denom > 0)


def cosine_similarity_pairs(
    stats: CosineStats,
    entity_keys: np.ndarray,
    other_keys: np.ndarray,
    values: np.ndarray
) -> List[SimilarityPair]:
    """
    sim(a, b) = sum_u r_au * r_bu / (len_a * len_b)

    Tử số chỉ dùng ratings của cell, mẫu số dùng vector length toàn cục.
    """
    present, matrix, _ = _cell_matrix(stats.ids, entity_keys, other_keys, values)
    if present.size < 2:
        return []
    similarities = _normalized(matrix @ matrix.T, stats.lengths[present])
    return _upper_pairs(stats.ids[present], similarities)


def pearson_similarity_pairs(
    stats: PearsonStats,
    entity_keys: np.ndarray,
    other_keys: np.ndarray,
    values: np.ndarray
) -> List[SimilarityPair]:
    """
    sim(a, b) = sum_u (r_au - avg_a)(r_bu - avg_b) / (pearson_a * pearson_b)
    """
    present, matrix, mask = _cell_matrix(stats.ids, entity_keys, other_keys, values)
    if present.size < 2:
        return []
    centered = np.where(mask, matrix - stats.averages[present][:, None], 0.0)
    similarities = _normalized(centered @ centered.T, stats.pearsons[present])
    return _upper_pairs(stats.ids[present], similarities)


# ============================================================================
# Factorization
# ============================================================================

def factorize(
    users: np.ndarray,
    items: np.ndarray,
    values: np.ndarray,
    n_factors: int = 10,
    n_epochs: int = 30,
    learning_rate: float = 0.01,
    regularization: float = 0.02,
    random_state: Optional[int] = None
) -> FactorResult:
    """
    Matrix factorization r_ui ≈ p_u^T q_i bằng SGD.

    Args:
        users: User id của mỗi rating
        items: Item id của mỗi rating
        values: Rating values
        n_factors: Số latent factors (k)
        n_epochs: Số epochs
        learning_rate: Learning rate cho SGD
        regularization: L2 regularization cho factors
        random_state: Random seed để reproducibility

    Returns:
        FactorResult
    """
    if random_state is not None:
        np.random.seed(random_state)
    user_ids, user_idx = np.unique(users, return_inverse=True)
    item_ids, item_idx = np.unique(items, return_inverse=True)

    # Khởi tạo latent factors với giá trị ngẫu nhiên nhỏ
    scale = 0.1 / np.sqrt(n_factors)
    user_factors = np.random.normal(0, scale, (user_ids.size, n_factors))
    item_factors = np.random.normal(0, scale, (item_ids.size, n_factors))

    order = np.arange(values.size)
    for epoch in range(n_epochs):
        np.random.shuffle(order)
        squared_error = 0.0
        for k in order:
            u, i = user_idx[k], item_idx[k]
            p_u = user_factors[u].copy()
            q_i = item_factors[i]
            error = values[k] - p_u @ q_i
            squared_error += error * error
            user_factors[u] += learning_rate * (error * q_i - regularization * p_u)
            item_factors[i] += learning_rate * (error * p_u - regularization * q_i)
        if values.size and (epoch + 1) % 10 == 0:
            logger.debug(f"SGD epoch {epoch + 1}/{n_epochs}: rmse={np.sqrt(squared_error / values.size):.4f}")

    return FactorResult(
        user_ids=user_ids,
        user_factors=user_factors,
        item_ids=item_ids,
        item_factors=item_factors,
    )
