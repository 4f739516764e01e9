"""
Gamification engine: XP ledger, streaks and badges.
"""

from geolearn.engines.gamification.badges import DEFAULT_BADGE_CATALOG, BadgeEvaluator
from geolearn.engines.gamification.ledger import GamificationLedger, LedgerUpdate, merge_gamification
from geolearn.engines.gamification.streak import StreakCalculator, StreakOutcome, utc_today

__all__ = [
    "DEFAULT_BADGE_CATALOG",
    "BadgeEvaluator",
    "GamificationLedger",
    "LedgerUpdate",
    "merge_gamification",
    "StreakCalculator",
    "StreakOutcome",
    "utc_today",
]
