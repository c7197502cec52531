"""User repository - lookups used to validate staff and customers"""

from typing import Optional

from sqlalchemy.orm import Session

from ...models import User


class UserRepository:
    @staticmethod
    def get(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_by_firebase_uid(db: Session, firebase_uid: str) -> Optional[User]:
        return db.query(User).filter(User.firebase_uid == firebase_uid).first()

    @staticmethod
    def get_active_with_role(db: Session, user_id: int, role: str) -> Optional[User]:
        user = db.query(User).filter(User.id == user_id, User.is_active.is_(True)).first()
        if user and role in (user.roles or []):
            return user
        return None

    @staticmethod
    def list_active_with_role(db: Session, user_ids: list[int], role: str) -> list[User]:
        """Active users among ``user_ids`` holding ``role`` (roles live in a JSON column)"""
        if not user_ids:
            return []
        users = db.query(User).filter(User.id.in_(user_ids), User.is_active.is_(True)).all()
        return [u for u in users if role in (u.roles or [])]
