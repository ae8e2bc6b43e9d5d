"""
Recommender Errors
==================

Lỗi có cấu trúc cho CREATE/DROP RECOMMENDER.

Mỗi lỗi mang:
- code: category ổn định (theo tên SQLSTATE condition của PostgreSQL)
- level: "ERROR" hoặc "WARNING"
- message: mô tả, luôn nêu tên recommender / table liên quan
"""

from dataclasses import dataclass

ERROR = "ERROR"
WARNING = "WARNING"


@dataclass(frozen=True)
class Notice:
    """
    Thông báo không fatal trả về cùng kết quả command.

    Attributes:
        level: "WARNING"
        code: Symbolic category
        message: Human-readable message
    """
    level: str
    code: str
    message: str


class RecommenderError(Exception):
    """Base class cho mọi lỗi của recommender lifecycle."""

    code = "internal_error"
    level = ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class RecommenderValidationError(RecommenderError):
    """Request không hợp lệ; chưa có object vật lý nào được tạo."""
    code = "invalid_parameter_value"


class UnknownMethodError(RecommenderValidationError):
    code = "case_not_found"

    def __init__(self, method):
        super().__init__(f"recommendation method {method!r} not recognized")
        self.method = method


class RecommenderExistsError(RecommenderValidationError):
    code = "duplicate_object"

    def __init__(self, name: str):
        super().__init__(f"recommender {name} already exists")
        self.name = name


class PartitionValueError(RecommenderError):
    """Một giá trị context không thể chuyển sang text (NULL)."""
    code = "null_value_not_allowed"


class NoRecommendersError(RecommenderError):
    code = "invalid_schema_name"

    def __init__(self):
        super().__init__("no recommenders have been created")


class RecommenderNotFoundError(RecommenderError):
    code = "invalid_schema_name"

    def __init__(self, name: str):
        super().__init__(f"recommender {name} does not exist")
        self.name = name


class ReadOnlyTransactionError(RecommenderError):
    code = "read_only_sql_transaction"

    def __init__(self, command: str):
        super().__init__(f"cannot execute {command} in a read-only transaction")
        self.command = command
