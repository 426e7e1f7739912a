"""
Profile repository - Data access layer for Profile model.
Point balances are changed with single UPDATE statements so concurrent
sessions cannot lose each other's adjustments.
"""
from typing import Optional
from sqlalchemy import case
from sqlalchemy.orm import Session

from kingdom.models import Profile


class ProfileRepository:
    """Repository for Profile data access"""

    @staticmethod
    def get_by_id(db: Session, profile_id: str) -> Optional[Profile]:
        """Get profile by ID"""
        return db.query(Profile).filter(Profile.id == profile_id).first()

    @staticmethod
    def create(db: Session, profile: Profile) -> Profile:
        """Create a new profile"""
        db.add(profile)
        db.commit()
        db.refresh(profile)
        return profile

    @staticmethod
    def add_points(db: Session, profile_id: str, delta: int, dom: bool = False) -> bool:
        """
        Atomically add (or subtract) points, never going below zero.

        Args:
            db: Database session
            profile_id: Profile to adjust
            delta: Signed amount
            dom: Adjust dom_points instead of points

        Returns:
            True if the profile exists
        """
        column = Profile.dom_points if dom else Profile.points
        new_value = case((column + delta < 0, 0), else_=column + delta)
        updated = db.query(Profile).filter(Profile.id == profile_id).update(
            {column: new_value}, synchronize_session=False
        )
        db.commit()
        return updated == 1

    @staticmethod
    def spend_points(db: Session, profile_id: str, amount: int, dom: bool = False) -> bool:
        """
        Atomically subtract points only if the balance covers the amount.

        Returns:
            True if the points were deducted
        """
        column = Profile.dom_points if dom else Profile.points
        updated = db.query(Profile).filter(
            Profile.id == profile_id,
            column >= amount
        ).update({column: column - amount}, synchronize_session=False)
        db.commit()
        return updated == 1
