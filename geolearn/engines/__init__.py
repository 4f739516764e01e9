"""Engines: tab progress, gamification, and the LKPD stage workflow."""
