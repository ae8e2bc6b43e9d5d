"""
Tests cho DROP RECOMMENDER.
"""
import pytest
from sqlalchemy import text

from app.db.gateway import QueryGateway
from app.recommender.errors import (
    NoRecommendersError,
    ReadOnlyTransactionError,
    RecommenderNotFoundError,
    WARNING,
)
from app.web.services.recommender_service import RecommenderService

from helpers import create_recommender, fetch_rows, table_names

SOURCE_TABLES = {"users", "items", "ratings"}


@pytest.fixture
def dropped_tables(monkeypatch):
    """Ghi lại thứ tự các table bị drop."""
    calls = []
    original_drop = QueryGateway.drop_table

    async def recording_drop(self, table_name):
        calls.append(table_name)
        await original_drop(self, table_name)

    monkeypatch.setattr(QueryGateway, "drop_table", recording_drop)
    return calls


class TestDropErrors:
    async def test_no_recommenders(self, db, test_settings):
        with pytest.raises(NoRecommendersError) as exc:
            await RecommenderService.drop_recommender(db, "ghost", test_settings)
        assert exc.value.message == "no recommenders have been created"
        assert await table_names(db) == SOURCE_TABLES

    async def test_unknown_recommender(self, db, test_settings, dropped_tables):
        await create_recommender(db, test_settings)
        before = await table_names(db)

        with pytest.raises(RecommenderNotFoundError) as exc:
            await RecommenderService.drop_recommender(db, "ghost", test_settings)

        assert exc.value.message == "recommender ghost does not exist"
        assert dropped_tables == []
        assert await table_names(db) == before

    async def test_read_only_rejected(self, db, test_settings):
        await create_recommender(db, test_settings)
        test_settings.read_only = True
        with pytest.raises(ReadOnlyTransactionError):
            await RecommenderService.drop_recommender(db, "movierec", test_settings)
        assert "movierecindex" in await table_names(db)


class TestDrop:
    async def test_context_free(self, db, test_settings, dropped_tables):
        await create_recommender(db, test_settings)
        result = await RecommenderService.drop_recommender(db, "movierec", test_settings)

        assert result.status == "DROP RECOMMENDER"
        assert result.method == "itemcoscf"
        assert result.notices == []
        assert dropped_tables == ["movierecmodel1_1", "movierecview1_1", "movierecindex"]
        assert await table_names(db) == SOURCE_TABLES | {"recommender_catalogue", "recommender_properties"}
        assert await fetch_rows(db, "SELECT * FROM recommender_catalogue") == []

    async def test_svd_drops_two_models_and_view(self, db, test_settings, dropped_tables):
        await create_recommender(db, test_settings, method="svd")
        result = await RecommenderService.drop_recommender(db, "movierec", test_settings)

        assert dropped_tables == [
            "movierecusermodel1_1",
            "movierecitemmodel1_1",
            "movierecview1_1",
            "movierecindex",
        ]
        assert result.cells[0].model_names == ["movierecusermodel1_1", "movierecitemmodel1_1"]
        assert await fetch_rows(db, "SELECT * FROM recommender_catalogue") == []

    async def test_contextual_drop_order(self, db, test_settings, dropped_tables):
        await create_recommender(db, test_settings, context=["season"])
        await RecommenderService.drop_recommender(db, "movierec", test_settings)

        # 1 index table + 3 cells x (1 model + 1 view)
        assert len(dropped_tables) == 7
        assert dropped_tables == [
            "movierecmodel1_1", "movierecview1_1",
            "movierecmodel1_2", "movierecview1_2",
            "movierecmodel1_3", "movierecview1_3",
            "movierecindex",
        ]

    async def test_name_is_case_insensitive(self, db, test_settings):
        await create_recommender(db, test_settings)
        result = await RecommenderService.drop_recommender(db, "MovieRec", test_settings)
        assert result.recommender == "movierec"
        assert "movierecindex" not in await table_names(db)

    async def test_only_target_recommender_removed(self, db, test_settings):
        await create_recommender(db, test_settings, name="first")
        await create_recommender(db, test_settings, name="second", method="svd")
        await RecommenderService.drop_recommender(db, "first", test_settings)

        tables = await table_names(db)
        assert not any(t.startswith("first") for t in tables)
        assert {"secondindex", "secondusermodel2_1", "seconditemmodel2_1", "secondview2_1"} <= tables
        directory = await fetch_rows(db, "SELECT recommenderindexname FROM recommender_catalogue")
        assert directory == [("secondindex",)]

    async def test_empty_index_warns(self, db, test_settings, dropped_tables):
        await create_recommender(db, test_settings)
        await db.execute(text("DELETE FROM movierecindex"))

        result = await RecommenderService.drop_recommender(db, "movierec", test_settings)

        assert len(result.notices) == 1
        assert result.notices[0].level == WARNING
        assert result.notices[0].message == "failed to find cells for recommender movierec"
        assert dropped_tables == ["movierecindex"]
        assert "movierecindex" not in await table_names(db)
        assert await fetch_rows(db, "SELECT * FROM recommender_catalogue") == []

    async def test_recreate_after_drop(self, db, test_settings):
        await create_recommender(db, test_settings)
        await RecommenderService.drop_recommender(db, "movierec", test_settings)
        result = await create_recommender(db, test_settings)

        # id không được tái sử dụng nên tên cell mới khác tên cũ
        assert result.cells[0].view_name == "movierecview2_1"
        assert "movierecview2_1" in await table_names(db)


class TestDropFailure:
    async def test_failure_stops_remaining_drops(self, db, test_settings, monkeypatch):
        await create_recommender(db, test_settings, context=["season"])

        original_drop = QueryGateway.drop_table

        async def failing_drop(self, table_name):
            if table_name == "movierecmodel1_2":
                raise RuntimeError(f"cannot drop {table_name}")
            await original_drop(self, table_name)

        monkeypatch.setattr(QueryGateway, "drop_table", failing_drop)
        with pytest.raises(RuntimeError, match="cannot drop movierecmodel1_2"):
            await RecommenderService.drop_recommender(db, "movierec", test_settings)

        tables = await table_names(db)
        # Cell 1 đã drop, không được tạo lại
        assert "movierecmodel1_1" not in tables
        assert "movierecview1_1" not in tables
        # Các cell còn lại, index table và directory row vẫn còn
        assert {
            "movierecmodel1_2", "movierecview1_2",
            "movierecmodel1_3", "movierecview1_3",
            "movierecindex",
        } <= tables
        directory = await fetch_rows(db, "SELECT recommenderindexname FROM recommender_catalogue")
        assert directory == [("movierecindex",)]
        assert len(await fetch_rows(db, "SELECT systemid FROM movierecindex")) == 3
