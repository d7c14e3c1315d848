import logging

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

import models
from errors import ConflictError, StorageError

logger = logging.getLogger(__name__)


class UserRepository:
    """Keyed access to user accounts"""

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str):
        return self.db.query(models.User).filter(models.User.email == email).first()

    def find_by_id(self, user_id: int):
        return self.db.query(models.User).filter(models.User.id == user_id).first()

    def email_exists(self, email: str) -> bool:
        return self.db.query(models.User.id).filter(models.User.email == email).first() is not None

    def create(self, **fields):
        user = models.User(**fields)
        try:
            self.db.add(user)
            self.db.commit()
        except IntegrityError:
            # The unique index on email decides concurrent signups.
            self.db.rollback()
            raise ConflictError()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to create user")
            raise StorageError()
        self.db.refresh(user)
        return user

    def update_fields(self, user_id: int, **fields):
        user = self.find_by_id(user_id)
        if user is None:
            return None
        for name, value in fields.items():
            setattr(user, name, value)
        try:
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to update user %s", user_id)
            raise StorageError()
        self.db.refresh(user)
        return user


class VerificationCodeRepository:
    """Email verification codes, at most one per address"""

    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str):
        return self.db.query(models.EmailVerificationCode).filter(
            models.EmailVerificationCode.email == email
        ).first()

    def replace(self, email: str, code: str, expires_at):
        """Supersede any existing code for the address with a new one"""
        try:
            self.db.query(models.EmailVerificationCode).filter(
                models.EmailVerificationCode.email == email
            ).delete(synchronize_session=False)
            verification = models.EmailVerificationCode(email=email, code=code, expires_at=expires_at)
            self.db.add(verification)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to store verification code")
            raise StorageError()
        self.db.refresh(verification)
        return verification

    def delete(self, verification):
        try:
            self.db.delete(verification)
            self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Failed to delete verification code")
            raise StorageError()
