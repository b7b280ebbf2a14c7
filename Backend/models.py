"""
SQLAlchemy ORM models for the Gotchi pet backend.
Tables: users, pet_states, user_activities, game_sessions
"""

from sqlalchemy import (
    Boolean, Column, DateTime, ForeignKey, Integer, String, Text, func
)
from sqlalchemy.orm import relationship, declarative_base

Base = declarative_base()


class User(Base):
    """A player, identified by wallet address."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(String(128), unique=True, nullable=False)
    username = Column(String(64), nullable=True)
    points = Column(Integer, nullable=False, default=0, server_default="0")
    referral_code = Column(String(32), unique=True, nullable=False)
    referred_by = Column(String(128), nullable=True)
    referral_count = Column(Integer, nullable=False, default=0, server_default="0")
    referral_points = Column(Integer, nullable=False, default=0, server_default="0")
    uid = Column(String(128), unique=True, nullable=False)
    created_at = Column(DateTime, server_default=func.now())
    last_points_update = Column(DateTime, server_default=func.now())

    # Relationships
    pet_state = relationship("PetState", back_populates="user", uselist=False, cascade="all, delete-orphan")
    activities = relationship("UserActivity", back_populates="user", cascade="all, delete-orphan")
    game_sessions = relationship("GameSession", back_populates="user", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<User(wallet_address='{self.wallet_address}', points={self.points})>"


class PetState(Base):
    """Pet attributes, one row per wallet."""

    __tablename__ = "pet_states"

    wallet_address = Column(
        String(128),
        ForeignKey("users.wallet_address", ondelete="CASCADE"),
        primary_key=True,
    )
    health = Column(Integer, nullable=False, default=100)
    happiness = Column(Integer, nullable=False, default=100)
    hunger = Column(Integer, nullable=False, default=100)
    cleanliness = Column(Integer, nullable=False, default=100)
    energy = Column(Integer, nullable=False, default=100)
    is_dead = Column(Boolean, nullable=False, default=False)
    quality_score = Column(Integer, nullable=False, default=0)
    last_state_update = Column(DateTime, server_default=func.now())
    last_message = Column(Text, nullable=True)
    last_reaction = Column(Text, nullable=True)

    # Relationships
    user = relationship("User", back_populates="pet_state")

    def __repr__(self):
        return f"<PetState(wallet_address='{self.wallet_address}', health={self.health}, is_dead={self.is_dead})>"


class UserActivity(Base):
    """Log of point-earning activities (interactions, referral bonuses)."""

    __tablename__ = "user_activities"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(
        String(128),
        ForeignKey("users.wallet_address", ondelete="CASCADE"),
        nullable=False,
    )
    activity_id = Column(String(64), unique=True, nullable=False)
    activity_type = Column(String(50), nullable=False)
    name = Column(String(255), nullable=False)
    points = Column(Integer, nullable=False, default=0)
    timestamp = Column(DateTime, nullable=False)

    # Relationships
    user = relationship("User", back_populates="activities")

    def __repr__(self):
        return f"<UserActivity(wallet_address='{self.wallet_address}', type='{self.activity_type}')>"


class GameSession(Base):
    """Records a play session for a wallet."""

    __tablename__ = "game_sessions"

    id = Column(Integer, primary_key=True, index=True)
    wallet_address = Column(
        String(128),
        ForeignKey("users.wallet_address", ondelete="CASCADE"),
        nullable=False,
    )
    session_id = Column(String(64), unique=True, nullable=False)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    score = Column(Integer, nullable=False, default=0)
    completed = Column(Boolean, nullable=False, default=False)

    # Relationships
    user = relationship("User", back_populates="game_sessions")

    def __repr__(self):
        return f"<GameSession(session_id='{self.session_id}', wallet_address='{self.wallet_address}')>"
