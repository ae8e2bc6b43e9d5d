"""
Tests cho numerical kernels: precompute, similarity, factorization.
"""
import math

import numpy as np
import pytest
from sqlalchemy import text

from app.recommender import kernels
from app.recommender.definition import RecommenderDefinition
from app.recommender.methods import RecMethod

from conftest import RATINGS

DEFINITION = RecommenderDefinition(
    name="movierec",
    user_table="users",
    item_table="items",
    rating_table="ratings",
    user_key="uid",
    item_key="iid",
    rating_value="score",
    method=RecMethod.ITEM_COS_CF,
)

USERS = np.array([r["uid"] for r in RATINGS])
ITEMS = np.array([r["iid"] for r in RATINGS])
VALUES = np.array([r["score"] for r in RATINGS])


def as_dict(pairs):
    return {(a, b): s for a, b, s in pairs}


class TestPrecompute:
    async def test_cosine_lengths(self, gateway):
        stats = await kernels.precompute_cosine_stats(gateway, "items", "iid", "ratings", "score")
        assert stats.ids.tolist() == [1, 2, 3, 4]
        assert stats.lengths == pytest.approx([math.sqrt(41), math.sqrt(10), math.sqrt(20), 0.0])

    async def test_pearson_constants(self, gateway):
        stats = await kernels.precompute_pearson_stats(gateway, "items", "iid", "ratings", "score")
        assert stats.averages == pytest.approx([4.5, 2.0, 3.0, 0.0])
        assert stats.pearsons == pytest.approx([math.sqrt(0.5), math.sqrt(2), math.sqrt(2), 0.0])

    async def test_user_cosine_lengths(self, gateway):
        stats = await kernels.precompute_cosine_stats(gateway, "users", "uid", "ratings", "score")
        assert stats.ids.tolist() == [1, 2, 3, 4]
        assert stats.lengths == pytest.approx([math.sqrt(34), math.sqrt(20), math.sqrt(17), 0.0])

    async def test_incomplete_ratings_ignored(self, db, gateway):
        await db.execute(text(
            "INSERT INTO ratings (uid, iid, score) VALUES (1, 3, NULL), (NULL, 2, 4.0), (2, NULL, 4.0)"
        ))
        stats = await kernels.precompute_cosine_stats(
            gateway, "items", "iid", "ratings", "score", other_key="uid"
        )
        assert stats.lengths == pytest.approx([math.sqrt(41), math.sqrt(10), math.sqrt(20), 0.0])


class TestLoadRatings:
    async def test_context_free(self, gateway):
        batch = await kernels.load_ratings(gateway, DEFINITION)
        assert len(batch) == 6
        assert sorted(batch.values.tolist()) == sorted(VALUES.tolist())

    async def test_context_filter_joins_user_table(self, gateway):
        batch = await kernels.load_ratings(gateway, DEFINITION, {"season": "summer"})
        assert len(batch) == 4
        assert set(batch.users.tolist()) == {1, 2}

    async def test_incomplete_ratings_skipped(self, db, gateway):
        await db.execute(text(
            "INSERT INTO ratings (uid, iid, score) VALUES (1, 3, NULL), (NULL, 2, 4.0), (2, NULL, 4.0)"
        ))
        assert len(await kernels.load_ratings(gateway, DEFINITION)) == 6
        assert len(await kernels.load_ratings(gateway, DEFINITION, {"season": "summer"})) == 4

    async def test_context_without_ratings(self, gateway):
        batch = await kernels.load_ratings(gateway, DEFINITION, {"season": "spring"})
        assert len(batch) == 0


class TestSimilarity:
    def item_cosine_stats(self):
        return kernels.CosineStats(
            ids=np.array([1, 2, 3, 4]),
            lengths=np.sqrt(np.array([41.0, 10.0, 20.0, 0.0])),
        )

    def test_item_cosine_all_ratings(self):
        pairs = as_dict(kernels.cosine_similarity_pairs(self.item_cosine_stats(), ITEMS, USERS, VALUES))
        assert pairs == {
            (1, 2): pytest.approx(15 / math.sqrt(410)),
            (1, 3): pytest.approx(8 / math.sqrt(820)),
            (2, 3): pytest.approx(4 / math.sqrt(200)),
        }

    def test_cell_uses_global_lengths(self):
        summer = np.isin(USERS, [1, 2])
        pairs = as_dict(kernels.cosine_similarity_pairs(
            self.item_cosine_stats(), ITEMS[summer], USERS[summer], VALUES[summer]
        ))
        # Item 2 và 3 không có user chung trong cell: không lưu
        assert set(pairs) == {(1, 2), (1, 3)}
        assert pairs[(1, 2)] == pytest.approx(15 / math.sqrt(410))

    def test_item_pearson(self):
        stats = kernels.PearsonStats(
            ids=np.array([1, 2, 3, 4]),
            averages=np.array([4.5, 2.0, 3.0, 0.0]),
            pearsons=np.array([math.sqrt(0.5), math.sqrt(2), math.sqrt(2), 0.0]),
        )
        pairs = as_dict(kernels.pearson_similarity_pairs(stats, ITEMS, USERS, VALUES))
        assert pairs == {
            (1, 2): pytest.approx(0.5),
            (1, 3): pytest.approx(0.5),
            (2, 3): pytest.approx(-0.5),
        }

    def test_single_entity_has_no_pairs(self):
        stats = self.item_cosine_stats()
        assert kernels.cosine_similarity_pairs(stats, np.array([1]), np.array([1]), np.array([5.0])) == []

    def test_pairs_are_ordered(self):
        pairs = kernels.cosine_similarity_pairs(self.item_cosine_stats(), ITEMS, USERS, VALUES)
        assert all(a < b for a, b, _ in pairs)


class TestFactorize:
    def test_shapes(self):
        result = kernels.factorize(USERS, ITEMS, VALUES, n_factors=4, n_epochs=3, random_state=1)
        assert result.user_ids.tolist() == [1, 2, 3]
        assert result.item_ids.tolist() == [1, 2, 3]
        assert result.user_factors.shape == (3, 4)
        assert result.item_factors.shape == (3, 4)

    def test_reproducible(self):
        a = kernels.factorize(USERS, ITEMS, VALUES, n_factors=2, n_epochs=5, random_state=42)
        b = kernels.factorize(USERS, ITEMS, VALUES, n_factors=2, n_epochs=5, random_state=42)
        np.testing.assert_allclose(a.user_factors, b.user_factors)
        np.testing.assert_allclose(a.item_factors, b.item_factors)

    def test_training_reduces_error(self):
        def rmse(result):
            u = np.searchsorted(result.user_ids, USERS)
            i = np.searchsorted(result.item_ids, ITEMS)
            predictions = np.sum(result.user_factors[u] * result.item_factors[i], axis=1)
            return np.sqrt(np.mean((VALUES - predictions) ** 2))

        untrained = kernels.factorize(USERS, ITEMS, VALUES, n_factors=3, n_epochs=0, random_state=3)
        trained = kernels.factorize(
            USERS, ITEMS, VALUES, n_factors=3, n_epochs=200, learning_rate=0.05, random_state=3
        )
        assert rmse(trained) < rmse(untrained)

    def test_empty_cell(self):
        empty = np.array([], dtype=np.int64)
        result = kernels.factorize(empty, empty, np.array([], dtype=np.float64), n_factors=2, n_epochs=2)
        assert result.user_ids.size == 0
        assert result.item_factors.shape == (0, 2)
