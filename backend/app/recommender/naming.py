"""
Tên vật lý cho model / view của từng cell.

Tên = <recommender><role><recommender_id>_<cell_no>. recommender_id là serial
của directory nên không bao giờ trùng giữa các recommender, cell_no tăng dần
trong một recommender.
"""
import itertools
from dataclasses import dataclass
from typing import Tuple

VIEW_ROLE = "view"


@dataclass(frozen=True)
class CellNames:
    """
    Attributes:
        model_names: Một tên (CF) hoặc hai tên user/item (SVD)
        view_name: Tên view table
    """
    model_names: Tuple[str, ...]
    view_name: str


class CellNamer:
    def __init__(self, recommender_name: str, recommender_id: int, model_roles: Tuple[str, ...]):
        self.recommender_name = recommender_name
        self.recommender_id = recommender_id
        self.model_roles = model_roles
        self._sequence = itertools.count(1)

    def _name(self, role: str, cell_no: int) -> str:
        return f"{self.recommender_name}{role}{self.recommender_id}_{cell_no}"

    def next_cell(self) -> CellNames:
        cell_no = next(self._sequence)
        return CellNames(
            model_names=tuple(self._name(role, cell_no) for role in self.model_roles),
            view_name=self._name(VIEW_ROLE, cell_no),
        )
