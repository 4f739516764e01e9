"""GeoLearn progress, gamification and LKPD workflow engine."""

__version__ = "1.0.0"
