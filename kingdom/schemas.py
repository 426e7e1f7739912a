from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from datetime import datetime, date
from typing import Annotated, List, Literal, Optional, Union
import math

from kingdom.constants import (
    DEFAULT_ICON_COLOR, DEFAULT_TITLE_COLOR, DEFAULT_SUBTEXT_COLOR,
    DEFAULT_CALENDAR_COLOR, DEFAULT_BACKGROUND_OPACITY, DEFAULT_FOCAL_POINT,
    DEFAULT_TASK_POINTS, DEFAULT_REWARD_COST, DEFAULT_PUNISHMENT_POINTS,
    DEFAULT_CAROUSEL_TIMER, USAGE_DAYS, PRIORITIES, PRIORITY_MEDIUM,
)

Priority = Literal["low", "medium", "high"]
Frequency = Literal["daily", "weekly"]

STYLE_DEFAULTS = {
    "background_opacity": DEFAULT_BACKGROUND_OPACITY,
    "focal_point_x": DEFAULT_FOCAL_POINT,
    "focal_point_y": DEFAULT_FOCAL_POINT,
    "icon_color": DEFAULT_ICON_COLOR,
    "title_color": DEFAULT_TITLE_COLOR,
    "subtext_color": DEFAULT_SUBTEXT_COLOR,
    "calendar_color": DEFAULT_CALENDAR_COLOR,
    "highlight_effect": False,
}


def normalize_usage(value) -> List[int]:
    """Coerce anything into a list of exactly seven non-negative ints."""
    if not isinstance(value, (list, tuple)):
        return [0] * USAGE_DAYS
    counts = []
    for item in list(value)[:USAGE_DAYS]:
        try:
            counts.append(max(0, int(item)))
        except (TypeError, ValueError):
            counts.append(0)
    return counts + [0] * (USAGE_DAYS - len(counts))


def punishment_dom_points(points: int) -> int:
    """Dominant's share of a punishment when none is set"""
    return math.ceil(points / 2)


# ===== RECORD STATE =====

class Pending(BaseModel):
    """Locally synthesized record waiting for the remote insert"""
    kind: Literal["pending"] = "pending"
    temp_id: str


class Persisted(BaseModel):
    """Record confirmed by the remote store"""
    kind: Literal["persisted"] = "persisted"


RecordState = Annotated[Union[Pending, Persisted], Field(discriminator="kind")]


class CachedRecord(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    state: RecordState = Field(default_factory=Persisted)

    @property
    def is_pending(self) -> bool:
        return isinstance(self.state, Pending)


class CardStyle(BaseModel):
    background_image_url: Optional[str] = None
    background_opacity: int = Field(default=DEFAULT_BACKGROUND_OPACITY, ge=0, le=100)
    focal_point_x: int = Field(default=DEFAULT_FOCAL_POINT, ge=0, le=100)
    focal_point_y: int = Field(default=DEFAULT_FOCAL_POINT, ge=0, le=100)
    icon_url: Optional[str] = None
    icon_name: Optional[str] = None
    icon_color: str = DEFAULT_ICON_COLOR
    title_color: str = DEFAULT_TITLE_COLOR
    subtext_color: str = DEFAULT_SUBTEXT_COLOR
    calendar_color: str = DEFAULT_CALENDAR_COLOR
    highlight_effect: bool = False

    @model_validator(mode="before")
    @classmethod
    def fill_style_defaults(cls, data):
        # Server rows may carry NULL styling columns
        if isinstance(data, dict):
            data = dict(data)
            for field_name, default in STYLE_DEFAULTS.items():
                if data.get(field_name) is None:
                    data[field_name] = default
        return data


class CardStyleUpdate(BaseModel):
    background_image_url: Optional[str] = None
    background_opacity: Optional[int] = Field(None, ge=0, le=100)
    focal_point_x: Optional[int] = Field(None, ge=0, le=100)
    focal_point_y: Optional[int] = Field(None, ge=0, le=100)
    icon_url: Optional[str] = None
    icon_name: Optional[str] = None
    icon_color: Optional[str] = None
    title_color: Optional[str] = None
    subtext_color: Optional[str] = None
    calendar_color: Optional[str] = None
    highlight_effect: Optional[bool] = None


# ===== TASKS =====

class TaskCreate(CardStyle):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    user_id: Optional[str] = None
    points: int = Field(default=DEFAULT_TASK_POINTS, ge=0)
    priority: Priority = "medium"
    frequency: Frequency = "daily"
    frequency_count: int = Field(default=1, ge=1, le=20)
    usage_data: Optional[List[int]] = None


class TaskUpdate(CardStyleUpdate):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    points: Optional[int] = Field(None, ge=0)
    priority: Optional[Priority] = None
    frequency: Optional[Frequency] = None
    frequency_count: Optional[int] = Field(None, ge=1, le=20)
    completed: Optional[bool] = None
    usage_data: Optional[List[int]] = None


class TaskRecord(CardStyle, CachedRecord):
    title: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    points: int = DEFAULT_TASK_POINTS
    priority: Priority = "medium"
    frequency: Frequency = "daily"
    frequency_count: int = 1
    completed: bool = False
    last_completed_date: Optional[date] = None
    week_identifier: Optional[str] = None
    usage_data: List[int] = Field(default_factory=lambda: [0] * USAGE_DAYS)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("usage_data", mode="before")
    @classmethod
    def coerce_usage(cls, value):
        return normalize_usage(value)

    @field_validator("priority", mode="before")
    @classmethod
    def coerce_priority(cls, value):
        return value if value in PRIORITIES else PRIORITY_MEDIUM


# ===== RULES =====

class RuleCreate(CardStyle):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    user_id: Optional[str] = None
    priority: Priority = "medium"
    frequency: Frequency = "daily"
    frequency_count: int = Field(default=1, ge=1, le=20)
    background_images: List[str] = Field(default_factory=list)
    carousel_timer: int = Field(default=DEFAULT_CAROUSEL_TIMER, ge=1, le=60)
    usage_data: Optional[List[int]] = None


class RuleUpdate(CardStyleUpdate):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    priority: Optional[Priority] = None
    frequency: Optional[Frequency] = None
    frequency_count: Optional[int] = Field(None, ge=1, le=20)
    background_images: Optional[List[str]] = None
    carousel_timer: Optional[int] = Field(None, ge=1, le=60)
    usage_data: Optional[List[int]] = None


class RuleRecord(CardStyle, CachedRecord):
    title: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    priority: Priority = "medium"
    frequency: Frequency = "daily"
    frequency_count: int = 1
    usage_data: List[int] = Field(default_factory=lambda: [0] * USAGE_DAYS)
    background_images: List[str] = Field(default_factory=list)
    carousel_timer: int = DEFAULT_CAROUSEL_TIMER
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("usage_data", mode="before")
    @classmethod
    def coerce_usage(cls, value):
        return normalize_usage(value)

    @field_validator("background_images", mode="before")
    @classmethod
    def coerce_images(cls, value):
        if not isinstance(value, list):
            return []
        return [image for image in value if isinstance(image, str) and image]

    @field_validator("carousel_timer", mode="before")
    @classmethod
    def coerce_timer(cls, value):
        return value if value else DEFAULT_CAROUSEL_TIMER


class RuleViolationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    rule_id: Optional[str]
    user_id: Optional[str] = None
    day_of_week: int
    week_number: str
    violation_date: datetime


# ===== REWARDS =====

class RewardCreate(CardStyle):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    user_id: Optional[str] = None
    cost: int = Field(default=DEFAULT_REWARD_COST, ge=0)
    supply: int = Field(default=0, ge=0)
    is_dom_reward: bool = False


class RewardUpdate(CardStyleUpdate):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    cost: Optional[int] = Field(None, ge=0)
    supply: Optional[int] = Field(None, ge=0)
    is_dom_reward: Optional[bool] = None


class RewardRecord(CardStyle, CachedRecord):
    title: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    cost: int = DEFAULT_REWARD_COST
    supply: int = 0
    is_dom_reward: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ===== PUNISHMENTS =====

class PunishmentCreate(CardStyle):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    user_id: Optional[str] = None
    points: int = Field(default=DEFAULT_PUNISHMENT_POINTS, ge=0)
    dom_points: Optional[int] = Field(default=None, ge=0)
    dom_supply: int = Field(default=0, ge=0)


class PunishmentUpdate(CardStyleUpdate):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    points: Optional[int] = Field(None, ge=0)
    dom_points: Optional[int] = Field(None, ge=0)
    dom_supply: Optional[int] = Field(None, ge=0)


class PunishmentRecord(CardStyle, CachedRecord):
    title: str
    description: Optional[str] = None
    user_id: Optional[str] = None
    points: int = DEFAULT_PUNISHMENT_POINTS
    dom_points: Optional[int] = None
    dom_supply: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @model_validator(mode="after")
    def fill_dom_points(self):
        if self.dom_points is None:
            self.dom_points = punishment_dom_points(self.points)
        return self


class PunishmentHistoryItem(CachedRecord):
    punishment_id: Optional[str] = None
    user_id: Optional[str] = None
    points_deducted: int
    day_of_week: int = Field(..., ge=0, le=6)
    applied_date: Optional[datetime] = None


# ===== PROFILES / NOTICES =====

class TaskCompletionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    task_id: str
    user_id: Optional[str] = None
    completed_at: datetime


class ProfilePoints(BaseModel):
    profile_id: str
    points: int = 0
    dom_points: int = 0


class Notice(BaseModel):
    level: Literal["error", "warning", "success"]
    title: str
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
