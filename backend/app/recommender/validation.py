"""
Validation cho CREATE RECOMMENDER.

Chạy trước khi tạo bất kỳ object vật lý nào: tên, method, source tables,
key/value columns, context attributes, và tên chưa bị dùng.
"""
import re
from typing import List, Optional, Sequence

from app.config import Settings, settings as default_settings
from app.db.gateway import QueryGateway
from app.recommender.catalog import RecommenderCatalog
from app.recommender.definition import RecommenderDefinition
from app.recommender.errors import RecommenderExistsError, RecommenderValidationError
from app.recommender.methods import RecMethod
from app.recommender.schema import SCORE_COLUMN, reserved_collisions

IDENTIFIER_RE = re.compile(r"^[a-z_][a-z0-9_]*$")


def _identifier(value: str, what: str) -> str:
    value = (value or "").strip().lower()
    if not IDENTIFIER_RE.match(value):
        raise RecommenderValidationError(f"invalid {what} name: {value!r}")
    return value


def make_definition(
    name: str,
    user_table: str,
    item_table: str,
    rating_table: str,
    user_key: str,
    item_key: str,
    rating_value: str,
    method,
    context_attributes: Optional[Sequence[str]] = None
) -> RecommenderDefinition:
    """
    Chuẩn hóa input (lowercase, parse method) thành RecommenderDefinition.

    Raises:
        UnknownMethodError: method token không hợp lệ
        RecommenderValidationError: identifier sai format
    """
    parsed_method = RecMethod.from_token(method)
    return RecommenderDefinition(
        name=_identifier(name, "recommender"),
        user_table=_identifier(user_table, "user table"),
        item_table=_identifier(item_table, "item table"),
        rating_table=_identifier(rating_table, "rating table"),
        user_key=_identifier(user_key, "user key column"),
        item_key=_identifier(item_key, "item key column"),
        rating_value=_identifier(rating_value, "rating value column"),
        method=parsed_method,
        context_attributes=tuple(_identifier(a, "context attribute") for a in (context_attributes or ())),
    )


async def _require_columns(gateway: QueryGateway, table_name: str, columns: List[str]) -> None:
    if not await gateway.table_exists(table_name):
        raise RecommenderValidationError(f"relation {table_name} does not exist")
    existing = {c.lower() for c in await gateway.column_names(table_name)}
    missing = [c for c in columns if c not in existing]
    if missing:
        raise RecommenderValidationError(
            f"column(s) {', '.join(missing)} do not exist in relation {table_name}"
        )


async def validate_definition(
    gateway: QueryGateway,
    definition: RecommenderDefinition,
    settings: Optional[Settings] = None
) -> None:
    """
    Raises:
        RecommenderValidationError: request không dùng được
        RecommenderExistsError: tên recommender đã tồn tại
    """
    settings = settings or default_settings

    if len(definition.name) > settings.max_recommender_name_length:
        raise RecommenderValidationError(
            f"recommender name {definition.name} is longer than "
            f"{settings.max_recommender_name_length} characters"
        )

    attrs = list(definition.context_attributes)
    duplicates = sorted({a for a in attrs if attrs.count(a) > 1})
    if duplicates:
        raise RecommenderValidationError(
            f"context attribute(s) listed more than once: {', '.join(duplicates)}"
        )
    collisions = reserved_collisions(attrs)
    if collisions:
        raise RecommenderValidationError(
            f"context attribute(s) {', '.join(collisions)} clash with index columns of "
            f"recommender {definition.name}"
        )

    # View table có cột (user_key, item_key, recscore)
    if definition.user_key == definition.item_key:
        raise RecommenderValidationError(
            f"user key and item key of recommender {definition.name} must differ, "
            f"both are {definition.user_key}"
        )
    for key in (definition.user_key, definition.item_key):
        if key == SCORE_COLUMN:
            raise RecommenderValidationError(
                f"key column {key} clashes with the view column of recommender {definition.name}"
            )

    await _require_columns(gateway, definition.user_table, [definition.user_key] + attrs)
    await _require_columns(gateway, definition.item_table, [definition.item_key])
    await _require_columns(
        gateway,
        definition.rating_table,
        [definition.user_key, definition.item_key, definition.rating_value]
    )

    catalog = RecommenderCatalog(gateway, settings)
    if await catalog.directory_exists() and await catalog.lookup(definition.name) is not None:
        raise RecommenderExistsError(definition.name)
    if await gateway.table_exists(definition.index_name):
        raise RecommenderExistsError(definition.name)
