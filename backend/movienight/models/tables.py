"""SQLAlchemy ORM models — all database tables."""

from datetime import datetime
from typing import Optional
from sqlalchemy import (
    Integer, String, Text, Boolean, DateTime, Float,
    ForeignKey, Index, UniqueConstraint, JSON, text,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from movienight.database import Base


# ── Groups (read only for the round engine) ─────────────────────

class Group(Base):
    __tablename__ = "groups"

    group_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False)
    streaming_services: Mapped[list] = mapped_column(JSON, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class GroupMember(Base):
    __tablename__ = "group_members"

    group_id: Mapped[str] = mapped_column(ForeignKey("groups.group_id"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(200))
    role: Mapped[str] = mapped_column(String(20), default="member")  # creator | member
    member_type: Mapped[str] = mapped_column(String(20), default="independent")  # independent | managed
    joined_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Preference(Base):
    __tablename__ = "preferences"

    group_id: Mapped[str] = mapped_column(ForeignKey("groups.group_id"), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    genre_likes: Mapped[list] = mapped_column(JSON, default=list)
    genre_dislikes: Mapped[list] = mapped_column(JSON, default=list)
    max_content_rating: Mapped[Optional[str]] = mapped_column(String(10))  # G | PG | PG-13 | R | NC-17
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── Rounds ───────────────────────────────────────────────────────

class Round(Base):
    __tablename__ = "rounds"
    __table_args__ = (
        Index("idx_rounds_group_created", "group_id", "created_at"),
        # One open round per group
        Index(
            "uq_rounds_group_voting", "group_id",
            unique=True,
            postgresql_where=text("status = 'voting'"),
            sqlite_where=text("status = 'voting'"),
        ),
    )

    round_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    group_id: Mapped[str] = mapped_column(ForeignKey("groups.group_id"), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="voting")
    started_by: Mapped[str] = mapped_column(String(100), nullable=False)
    attendees: Mapped[Optional[list]] = mapped_column(JSON)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    closed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    watched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    rated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    pick_id: Mapped[Optional[str]] = mapped_column(String(36))


class RoundSuggestion(Base):
    __tablename__ = "round_suggestions"
    __table_args__ = (
        UniqueConstraint("round_id", "tmdb_movie_id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    round_id: Mapped[str] = mapped_column(ForeignKey("rounds.round_id", ondelete="CASCADE"), nullable=False)
    tmdb_movie_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), default="")
    year: Mapped[Optional[int]] = mapped_column(Integer)
    poster_path: Mapped[Optional[str]] = mapped_column(String(200))
    overview: Mapped[Optional[str]] = mapped_column(Text)
    genres: Mapped[list] = mapped_column(JSON, default=list)
    content_rating: Mapped[Optional[str]] = mapped_column(String(10))
    popularity: Mapped[float] = mapped_column(Float, default=0.0)
    vote_average: Mapped[float] = mapped_column(Float, default=0.0)
    streaming: Mapped[list] = mapped_column(JSON, default=list)
    score: Mapped[float] = mapped_column(Float, default=0.0)
    reason: Mapped[str] = mapped_column(String(300), default="")
    source: Mapped[str] = mapped_column(String(10), nullable=False)  # algorithm | watchlist
    position: Mapped[int] = mapped_column(Integer, default=0)


class Vote(Base):
    __tablename__ = "votes"
    __table_args__ = (
        UniqueConstraint("round_id", "tmdb_movie_id", "user_id", name="uq_votes_round_movie_user"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    round_id: Mapped[str] = mapped_column(ForeignKey("rounds.round_id", ondelete="CASCADE"), nullable=False)
    tmdb_movie_id: Mapped[int] = mapped_column(Integer, nullable=False)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    vote: Mapped[str] = mapped_column(String(4), nullable=False)  # up | down
    voted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ── Picks & Ratings ──────────────────────────────────────────────

class Pick(Base):
    __tablename__ = "picks"
    __table_args__ = (
        Index("idx_picks_group", "group_id"),
    )

    pick_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    round_id: Mapped[str] = mapped_column(ForeignKey("rounds.round_id"), unique=True, nullable=False)
    group_id: Mapped[str] = mapped_column(ForeignKey("groups.group_id"), nullable=False)
    tmdb_movie_id: Mapped[int] = mapped_column(Integer, nullable=False)
    title: Mapped[str] = mapped_column(String(500), default="")
    poster_path: Mapped[Optional[str]] = mapped_column(String(200))
    picked_by: Mapped[str] = mapped_column(String(100), nullable=False)
    picked_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    watched: Mapped[bool] = mapped_column(Boolean, default=False)
    watched_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))


class Rating(Base):
    __tablename__ = "ratings"
    __table_args__ = (
        UniqueConstraint("round_id", "member_id", name="uq_ratings_round_member"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    round_id: Mapped[str] = mapped_column(ForeignKey("rounds.round_id", ondelete="CASCADE"), nullable=False)
    member_id: Mapped[str] = mapped_column(String(100), nullable=False)
    rating: Mapped[str] = mapped_column(String(20), nullable=False)  # loved | liked | did_not_like
    rated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


# ── Watch history & watchlist ────────────────────────────────────

class WatchedMovie(Base):
    """Movies a group marked as already seen outside of a round."""
    __tablename__ = "watched_movies"

    group_id: Mapped[str] = mapped_column(ForeignKey("groups.group_id"), primary_key=True)
    tmdb_movie_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[Optional[str]] = mapped_column(String(500))
    marked_by: Mapped[Optional[str]] = mapped_column(String(100))
    watched_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class WatchlistItem(Base):
    __tablename__ = "watchlist_items"

    group_id: Mapped[str] = mapped_column(ForeignKey("groups.group_id"), primary_key=True)
    tmdb_movie_id: Mapped[int] = mapped_column(Integer, primary_key=True)
    title: Mapped[str] = mapped_column(String(500), default="")
    year: Mapped[Optional[int]] = mapped_column(Integer)
    poster_path: Mapped[Optional[str]] = mapped_column(String(200))
    genres: Mapped[list] = mapped_column(JSON, default=list)
    content_rating: Mapped[Optional[str]] = mapped_column(String(10))
    added_by: Mapped[Optional[str]] = mapped_column(String(100))
    added_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


# ── Catalog Cache ────────────────────────────────────────────────

class CatalogCache(Base):
    __tablename__ = "catalog_cache"

    cache_key: Mapped[str] = mapped_column(String(200), primary_key=True)
    data: Mapped[Optional[dict]] = mapped_column(JSON)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
