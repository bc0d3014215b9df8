"""Clusterer configuration: controls search breadth and verification."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from sketchgroup.config import Settings


@dataclass
class ClustererConfig:
    """Knobs consumed by the grouping engine."""

    # Add-modifications per expansion step (count-based neighbourhood)
    search_neighborhood_count: int = 4
    # Distance cut-off for the radius-based neighbourhood
    search_neighborhood_radius: float = 500.0
    use_radius_neighborhood: bool = False
    # How many modifications deep candidate expansion goes
    search_depth: int = 1

    # Classes never expanded during candidate search
    search_excluded_classes: tuple[str, ...] = ("Wire",)

    # Shapes with these types are sent to the template recognizer
    template_types: tuple[str, ...] = ("Gate",)
    # Gate symbol names, recognized structurally
    gate_symbols: tuple[str, ...] = (
        "AND",
        "OR",
        "NAND",
        "NOR",
        "NOT",
        "XOR",
        "XNOR",
        "BUFFER",
    )

    # Proximity grouper: same-labeled strokes closer than this are joined
    join_distance: float = 20.0

    @classmethod
    def from_settings(cls, settings: Settings) -> ClustererConfig:
        return cls(
            search_neighborhood_count=settings.search_neighborhood_count,
            search_neighborhood_radius=settings.search_neighborhood_radius,
            use_radius_neighborhood=settings.use_radius_neighborhood,
            search_depth=settings.search_depth,
            join_distance=settings.join_distance,
        )
