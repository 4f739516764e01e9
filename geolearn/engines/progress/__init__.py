"""
Progress Engine - tab visits and completion percentage per module.

Each learning module has five tabs; completion is the share of tabs the
learner has opened, always a multiple of 20%.
"""

from geolearn.engines.progress.tab_tracker import (
    TabProgressTracker,
    merge_module,
    merge_progress,
)

__all__ = [
    "TabProgressTracker",
    "merge_module",
    "merge_progress",
]
