"""
Recommender schemas cho Recommender API.
"""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CreateRecommenderRequest(BaseModel):
    """
    Request schema cho CREATE RECOMMENDER.

    Method tokens: itemcoscf, itempearcf, usercoscf, userpearcf, svd
    """
    name: str = Field(..., description="Recommender name")
    users_from: str = Field(..., description="User table (cũng chứa context attributes)")
    items_from: str = Field(..., description="Item table")
    events_from: str = Field(..., description="Rating table")
    user_key: str = Field(..., description="User key column")
    item_key: str = Field(..., description="Item key column")
    event_value: str = Field(..., description="Rating value column")
    method: str = Field(..., description="Recommendation method")
    context_attributes: List[str] = Field(default_factory=list, description="Context attribute columns")


class NoticeResponse(BaseModel):
    level: str
    code: str
    message: str


class CellResponse(BaseModel):
    """Một cell trong index table."""
    model_config = ConfigDict(protected_namespaces=())

    model_names: List[str] = Field(..., description="Model table(s): 1 cho CF, 2 cho SVD")
    view_name: str = Field(..., description="Recommendation view table")
    rating_total: int = Field(..., description="Số rating dùng để build model")
    update_counter: int = 0
    query_counter: int = 0
    update_rate: float = 0.0
    query_rate: float = 0.0
    created_at: Optional[datetime] = None
    context: dict = Field(default_factory=dict, description="Context attribute values")


class CommandResponse(BaseModel):
    """
    Kết quả CREATE/DROP RECOMMENDER.

    Attributes:
        status: Command tag ("CREATE RECOMMENDER" / "DROP RECOMMENDER")
        recommender: Recommender name
        method: Method token
        cells: Cells tạo ra / đã xóa
        notices: Warnings (ví dụ: không tìm thấy cell khi drop)
    """
    status: str
    recommender: str
    method: str
    cells: List[CellResponse] = Field(default_factory=list)
    notices: List[NoticeResponse] = Field(default_factory=list)


class RecommenderResponse(BaseModel):
    """Một row của directory."""
    recommender_id: int
    name: str
    index_name: str
    user_table: str
    item_table: str
    rating_table: str
    user_key: str
    item_key: str
    rating_value: str
    method: str
    context_attribute_count: int


class RecommenderDetailResponse(RecommenderResponse):
    context_attributes: List[str] = Field(default_factory=list)
    cells: List[CellResponse] = Field(default_factory=list)
