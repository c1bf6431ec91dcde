"""
Wood quality grades.

Field crews grade standing stems on an ordinal A..D scale. Stems store the
grade as its index (0 = A, 3 = D) so that product rules can compare grades
numerically.
"""
from enum import Enum
from typing import Optional

__all__ = ['WoodQualityGrade']


class WoodQualityGrade(str, Enum):
    """Ordinal wood quality grade, best (A) to worst (D)."""

    A = "A"
    """Veneer / slicing quality."""

    B = "B"
    """Good sawlog quality."""

    C = "C"
    """Ordinary sawlog or industry quality."""

    D = "D"
    """Firewood / pulp quality."""

    @property
    def index(self) -> int:
        return list(WoodQualityGrade).index(self)

    @classmethod
    def from_index(cls, index: Optional[int]) -> Optional["WoodQualityGrade"]:
        """Grade for a stored index; None when ungraded or out of range."""
        if index is None or isinstance(index, bool):
            return None
        grades = list(cls)
        if 0 <= index < len(grades):
            return grades[index]
        return None

    def __str__(self) -> str:
        return self.value
