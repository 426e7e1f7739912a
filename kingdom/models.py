from sqlalchemy import Column, Integer, String, Boolean, DateTime, Date, JSON, ForeignKey
from datetime import datetime
import uuid

from kingdom.database import Base
from kingdom.constants import (
    DEFAULT_ICON_COLOR, DEFAULT_TITLE_COLOR, DEFAULT_SUBTEXT_COLOR,
    DEFAULT_CALENDAR_COLOR, DEFAULT_BACKGROUND_OPACITY, DEFAULT_FOCAL_POINT,
    DEFAULT_TASK_POINTS, DEFAULT_REWARD_COST, DEFAULT_PUNISHMENT_POINTS,
    DEFAULT_CAROUSEL_TIMER, PRIORITY_MEDIUM, FREQUENCY_DAILY, ROLE_SUBMISSIVE,
    USAGE_DAYS,
)


def new_id() -> str:
    return str(uuid.uuid4())


def empty_usage() -> list:
    return [0] * USAGE_DAYS


class CardStyleMixin:
    """Styling columns shared by every card table"""

    background_image_url = Column(String, nullable=True)
    background_opacity = Column(Integer, default=DEFAULT_BACKGROUND_OPACITY)
    focal_point_x = Column(Integer, default=DEFAULT_FOCAL_POINT)
    focal_point_y = Column(Integer, default=DEFAULT_FOCAL_POINT)
    icon_url = Column(String, nullable=True)
    icon_name = Column(String, nullable=True)
    icon_color = Column(String, default=DEFAULT_ICON_COLOR)
    title_color = Column(String, default=DEFAULT_TITLE_COLOR)
    subtext_color = Column(String, default=DEFAULT_SUBTEXT_COLOR)
    calendar_color = Column(String, default=DEFAULT_CALENDAR_COLOR)
    highlight_effect = Column(Boolean, default=False)


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(String, primary_key=True, default=new_id)
    nickname = Column(String, nullable=True)
    role = Column(String, default=ROLE_SUBMISSIVE)  # submissive or dominant
    points = Column(Integer, default=0, nullable=False)
    dom_points = Column(Integer, default=0, nullable=False)
    linked_partner_id = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class Task(CardStyleMixin, Base):
    __tablename__ = "tasks"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    points = Column(Integer, default=DEFAULT_TASK_POINTS)
    priority = Column(String, default=PRIORITY_MEDIUM)  # low, medium, high
    frequency = Column(String, default=FREQUENCY_DAILY)  # daily, weekly
    frequency_count = Column(Integer, default=1)  # Completions allowed per day
    completed = Column(Boolean, default=False)
    last_completed_date = Column(Date, nullable=True)
    week_identifier = Column(String, nullable=True)  # e.g. "2026-W42"
    usage_data = Column(JSON, default=empty_usage)  # 7 per-weekday counters
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class Rule(CardStyleMixin, Base):
    __tablename__ = "rules"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    priority = Column(String, default=PRIORITY_MEDIUM)
    frequency = Column(String, default=FREQUENCY_DAILY)
    frequency_count = Column(Integer, default=1)
    usage_data = Column(JSON, default=empty_usage)  # 7 per-weekday violation counters
    background_images = Column(JSON, default=list)  # Carousel image URLs
    carousel_timer = Column(Integer, default=DEFAULT_CAROUSEL_TIMER)  # Seconds per image
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class Reward(CardStyleMixin, Base):
    __tablename__ = "rewards"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    cost = Column(Integer, default=DEFAULT_REWARD_COST)
    supply = Column(Integer, default=0)  # How many times it can still be redeemed
    is_dom_reward = Column(Boolean, default=False)  # Paid with dom_points
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class Punishment(CardStyleMixin, Base):
    __tablename__ = "punishments"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True, index=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    points = Column(Integer, default=DEFAULT_PUNISHMENT_POINTS)  # Deducted from the submissive
    dom_points = Column(Integer, nullable=True)  # Earned by the dominant
    dom_supply = Column(Integer, default=0)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)


class PunishmentHistory(Base):
    __tablename__ = "punishment_history"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True, index=True)
    punishment_id = Column(
        String, ForeignKey("punishments.id", ondelete="CASCADE"), nullable=True, index=True
    )
    points_deducted = Column(Integer, nullable=False)
    day_of_week = Column(Integer, nullable=False)
    applied_date = Column(DateTime, default=datetime.now)


class RuleViolation(Base):
    __tablename__ = "rule_violations"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True, index=True)
    rule_id = Column(String, ForeignKey("rules.id", ondelete="CASCADE"), nullable=True, index=True)
    day_of_week = Column(Integer, nullable=False)
    week_number = Column(String, nullable=False)
    violation_date = Column(DateTime, default=datetime.now)


class TaskCompletionHistory(Base):
    __tablename__ = "task_completion_history"

    id = Column(String, primary_key=True, default=new_id)
    user_id = Column(String, nullable=True, index=True)
    task_id = Column(String, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    completed_at = Column(DateTime, default=datetime.now)
