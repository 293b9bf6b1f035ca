"""SQLModel implementation of household membership storage."""

from __future__ import annotations

from typing import Optional

from sqlmodel import select

from ...models.household import Household, HouseholdMember
from .base import OwnedRepository


class SQLModelMemberRepository(OwnedRepository[HouseholdMember]):
    """Members are scoped by the household owner's id."""

    model = HouseholdMember

    def get_by_id(self, obj_id: int, *, user_id: int) -> Optional[HouseholdMember]:
        with self.session_factory() as session:
            obj = session.exec(
                select(HouseholdMember)
                .where(HouseholdMember.id == obj_id)
                .where(HouseholdMember.owner_id == user_id)
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def list_all(self, *, user_id: int) -> list[HouseholdMember]:
        with self.session_factory() as session:
            rows = list(
                session.exec(
                    select(HouseholdMember)
                    .where(HouseholdMember.owner_id == user_id)
                    .order_by(HouseholdMember.invited_at)
                ).all()
            )
            session.expunge_all()
            return rows

    def delete(self, obj_id: int, *, user_id: int) -> bool:
        with self.session_factory() as session:
            obj = session.exec(
                select(HouseholdMember)
                .where(HouseholdMember.id == obj_id)
                .where(HouseholdMember.owner_id == user_id)
            ).first()
            if obj is None:
                return False
            session.delete(obj)
            session.commit()
            return True

    def get_or_create_household(self, *, owner_id: int, name: str = "My household") -> Household:
        with self.session_factory() as session:
            household = session.exec(select(Household).where(Household.owner_id == owner_id)).first()
            if household is None:
                household = Household(owner_id=owner_id, name=name)
                session.add(household)
                session.commit()
                session.refresh(household)
            session.expunge(household)
            return household

    def get_by_token(self, token: str) -> Optional[HouseholdMember]:
        with self.session_factory() as session:
            obj = session.exec(
                select(HouseholdMember).where(HouseholdMember.invitation_token == token)
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def find_by_email(self, email: str, *, owner_id: int) -> Optional[HouseholdMember]:
        with self.session_factory() as session:
            obj = session.exec(
                select(HouseholdMember)
                .where(HouseholdMember.owner_id == owner_id)
                .where(HouseholdMember.email == email)
            ).first()
            if obj:
                session.expunge(obj)
            return obj

    def active_membership(self, *, member_user_id: int) -> Optional[HouseholdMember]:
        """The accepted membership of a user in someone else's household, if any."""
        with self.session_factory() as session:
            obj = session.exec(
                select(HouseholdMember)
                .where(HouseholdMember.member_user_id == member_user_id)
                .where(HouseholdMember.status == "active")
            ).first()
            if obj:
                session.expunge(obj)
            return obj
