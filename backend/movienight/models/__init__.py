"""Re-export all SQLAlchemy models for Alembic and import convenience."""

from movienight.models.tables import (  # noqa: F401
    Group, GroupMember, Preference,
    Round, RoundSuggestion, Vote,
    Pick, Rating,
    WatchedMovie, WatchlistItem,
    CatalogCache,
)
