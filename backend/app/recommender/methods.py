"""
Recommendation methods.
"""
from enum import Enum
from typing import Tuple

from app.recommender.errors import UnknownMethodError


class RecMethod(str, Enum):
    """Các phương pháp build model, token giống trong directory."""
    ITEM_COS_CF = "itemcoscf"
    ITEM_PEAR_CF = "itempearcf"
    USER_COS_CF = "usercoscf"
    USER_PEAR_CF = "userpearcf"
    SVD = "svd"

    @classmethod
    def from_token(cls, token) -> "RecMethod":
        """
        Parse method token (không phân biệt hoa thường).

        Raises:
            UnknownMethodError: token không thuộc 5 method
        """
        if isinstance(token, cls):
            return token
        if isinstance(token, str):
            try:
                return cls(token.strip().lower())
            except ValueError:
                pass
        raise UnknownMethodError(token)

    @property
    def is_factorization(self) -> bool:
        return self is RecMethod.SVD

    @property
    def model_roles(self) -> Tuple[str, ...]:
        """Role suffix cho tên model table(s) của mỗi cell."""
        if self.is_factorization:
            return ("usermodel", "itemmodel")
        return ("model",)
