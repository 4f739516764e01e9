"""
Geometry formulas for the curved-surface solids used in LKPD projects.

Each kind maps to one Formula entry; callers resolve the kind once from
the project type and reuse its functions.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional

from pydantic import BaseModel

from geolearn.schemas.lkpd import ProjectType


class GeometryKind(str, Enum):
    CYLINDER = "cylinder"
    CONE = "cone"
    SPHERE = "sphere"
    HEMISPHERE = "hemisphere"


def _slant(r: float, h: float) -> float:
    return math.sqrt(r * r + h * h)


@dataclass(frozen=True)
class Formula:
    volume: Callable[[float, float], float]
    surface_area: Callable[[float, float], float]
    uses_height: bool = True


FORMULAS: Dict[GeometryKind, Formula] = {
    GeometryKind.CYLINDER: Formula(
        volume=lambda r, h: math.pi * r ** 2 * h,
        surface_area=lambda r, h: 2 * math.pi * r * (r + h),
    ),
    GeometryKind.CONE: Formula(
        volume=lambda r, h: math.pi * r ** 2 * h / 3,
        surface_area=lambda r, h: math.pi * r * (r + _slant(r, h)),
    ),
    GeometryKind.SPHERE: Formula(
        volume=lambda r, h: 4 / 3 * math.pi * r ** 3,
        surface_area=lambda r, h: 4 * math.pi * r ** 2,
        uses_height=False,
    ),
    GeometryKind.HEMISPHERE: Formula(
        volume=lambda r, h: 2 / 3 * math.pi * r ** 3,
        # curved half plus the flat base
        surface_area=lambda r, h: 3 * math.pi * r ** 2,
        uses_height=False,
    ),
}


class Measurements(BaseModel):
    """Stage-5 figures, rounded to two decimals. Capacity is in ml (1 cm3 = 1 ml)."""

    calculated_volume: float
    surface_area: float
    capacity: float


def measure(kind: GeometryKind, radius: float, height: float = 0) -> Measurements:
    if radius < 0 or height < 0:
        raise ValueError("radius and height must be non-negative")
    formula = FORMULAS[kind]
    volume = round(formula.volume(radius, height), 2)
    return Measurements(
        calculated_volume=volume,
        surface_area=round(formula.surface_area(radius, height), 2),
        capacity=volume,
    )


def geometry_for_project(project_type: ProjectType) -> Optional[GeometryKind]:
    """Composite projects have no single formula."""
    if project_type == ProjectType.COMPOSITE:
        return None
    return GeometryKind(project_type.value)
