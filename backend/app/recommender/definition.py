"""
Recommender definition đã được validate, dùng xuyên suốt pipeline.
"""
from dataclasses import dataclass, field
from typing import Tuple

from app.recommender.methods import RecMethod


def index_table_name(recommender_name: str) -> str:
    return f"{recommender_name.lower()}index"


@dataclass(frozen=True)
class RecommenderDefinition:
    """
    Một recommender logic.

    Attributes:
        name: Tên recommender (lowercase)
        user_table: Source user table, cũng là nơi chứa context attributes
        item_table: Source item table
        rating_table: Source rating table
        user_key: Cột user key (có trong user table và rating table)
        item_key: Cột item key (có trong item table và rating table)
        rating_value: Cột rating trong rating table
        method: Phương pháp build model
        context_attributes: Các cột context, theo thứ tự khai báo
    """
    name: str
    user_table: str
    item_table: str
    rating_table: str
    user_key: str
    item_key: str
    rating_value: str
    method: RecMethod
    context_attributes: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def index_name(self) -> str:
        return index_table_name(self.name)

    @property
    def is_contextual(self) -> bool:
        return len(self.context_attributes) > 0
