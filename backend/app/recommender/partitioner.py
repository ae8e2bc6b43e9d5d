"""
Context Partitioner
===================

Liệt kê các tổ hợp giá trị context phân biệt, mỗi tổ hợp là một cell.

- Không có context attribute: đúng một context rỗng
- Có N attribute: SELECT DISTINCT trên user table, mỗi row một lần, theo thứ
  tự engine trả về

Giá trị được CAST sang VARCHAR ngay trong query để text trong index table
giống hệt text mà strategy dùng khi lọc rating.
"""

import logging
from typing import Dict, List

from sqlalchemy import String, cast, column, select, table

from app.db.gateway import QueryGateway
from app.recommender.definition import RecommenderDefinition
from app.recommender.errors import PartitionValueError

logger = logging.getLogger(__name__)

Context = Dict[str, str]


def distinct_context_query(definition: RecommenderDefinition):
    attrs = definition.context_attributes
    source = table(definition.user_table, *[column(a) for a in attrs])
    return select(*[cast(source.c[a], String).label(a) for a in attrs]).distinct()


class ContextPartitioner:
    """Chia training data của recommender thành các cell."""

    def __init__(self, gateway: QueryGateway):
        self.gateway = gateway

    async def partitions(self, definition: RecommenderDefinition) -> List[Context]:
        """
        Args:
            definition: Recommender definition

        Returns:
            List context (attribute -> value text), rỗng nếu context-free

        Raises:
            PartitionValueError: một giá trị context là NULL
        """
        if not definition.is_contextual:
            return [{}]

        contexts: List[Context] = []
        # Đọc hết rồi mới trả về: cursor phải đóng trước khi tạo bảng của cell
        async with self.gateway.open_cursor(distinct_context_query(definition)) as cursor:
            for row in cursor:
                context: Context = {}
                for attr in definition.context_attributes:
                    value = self.gateway.string_value(row, attr)
                    if value is None:
                        raise PartitionValueError(
                            f"context attribute {attr} of {definition.user_table} has a NULL value; "
                            f"cannot build a cell for recommender {definition.name}"
                        )
                    context[attr] = value
                contexts.append(context)

        logger.info(
            f"Recommender {definition.name}: {len(contexts)} cells over "
            f"({', '.join(definition.context_attributes)})"
        )
        return contexts
