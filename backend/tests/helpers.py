"""Helpers đọc trạng thái database trong tests."""
from sqlalchemy import text

from app.web.schemas.recommender import CreateRecommenderRequest
from app.web.services.recommender_service import RecommenderService


async def fetch_rows(db, sql: str, **params):
    result = await db.execute(text(sql), params)
    return result.fetchall()


async def table_names(db):
    """Tên các user table (bỏ qua bảng nội bộ sqlite_*)."""
    rows = await fetch_rows(
        db, "SELECT name FROM sqlite_master WHERE type = 'table' AND name NOT LIKE 'sqlite_%'"
    )
    return {r[0] for r in rows}


def create_request(name="movierec", method="itemcoscf", context=()) -> CreateRecommenderRequest:
    return CreateRecommenderRequest(
        name=name,
        users_from="users",
        items_from="items",
        events_from="ratings",
        user_key="uid",
        item_key="iid",
        event_value="score",
        method=method,
        context_attributes=list(context),
    )


async def create_recommender(db, settings, name="movierec", method="itemcoscf", context=()):
    return await RecommenderService.create_recommender(db, create_request(name, method, context), settings)
