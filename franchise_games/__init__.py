"""Franchise gamification backend: quiz scoring and leaderboards."""

__version__ = "1.0.0"
