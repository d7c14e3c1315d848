from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from pydantic import ValidationError
from sqlalchemy.orm import Session

import config
import models
from config import pwd_context
from database import get_db
from errors import AuthorizationError, InvalidTokenError
from repository import UserRepository
from schemas import TokenPayload

bearer_scheme = HTTPBearer(auto_error=False)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    return pwd_context.verify(plain_password, hashed_password)


def dummy_verify():
    """Spend the same time as a real verify when there is no hash to check"""
    pwd_context.dummy_verify()


class TokenIssuer:
    """Signs and verifies stateless session tokens"""

    def __init__(self, secret_key: str, algorithm: str = "HS256", expire_minutes: int = 60):
        self.secret_key = secret_key
        self.algorithm = algorithm
        self.expire_minutes = expire_minutes

    def issue(self, user_id: int, email: str, is_two_factor_enabled: bool,
              is_two_factor_authenticated: bool) -> str:
        now = datetime.utcnow()
        to_encode = {
            "sub": str(user_id),
            "email": email,
            "is_two_factor_enabled": bool(is_two_factor_enabled),
            "is_two_factor_authenticated": bool(is_two_factor_authenticated),
            "iat": now,
            "exp": now + timedelta(minutes=self.expire_minutes),
        }
        return jwt.encode(to_encode, self.secret_key, algorithm=self.algorithm)

    def verify(self, token: str) -> TokenPayload:
        try:
            payload = jwt.decode(token, self.secret_key, algorithms=[self.algorithm])
            return TokenPayload(**payload)
        except (JWTError, ValidationError):
            raise InvalidTokenError()


def get_token_issuer() -> TokenIssuer:
    return TokenIssuer(config.SECRET_KEY, config.ALGORITHM, config.ACCESS_TOKEN_EXPIRE_MINUTES)


@dataclass
class AuthContext:
    """Result of a successful bearer check: the account and its token claims"""
    user: models.User
    claims: TokenPayload

    @property
    def is_two_factor_satisfied(self) -> bool:
        return not self.user.is_two_factor_enabled or self.claims.is_two_factor_authenticated


def get_current_session(
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
        db: Session = Depends(get_db),
        tokens: TokenIssuer = Depends(get_token_issuer),
) -> AuthContext:
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise InvalidTokenError()

    claims = tokens.verify(credentials.credentials)
    user = UserRepository(db).find_by_id(claims.user_id)
    if user is None:
        raise InvalidTokenError()

    return AuthContext(user=user, claims=claims)


def get_current_user(context: AuthContext = Depends(get_current_session)) -> models.User:
    return context.user


def require_two_factor(context: AuthContext = Depends(get_current_session)) -> models.User:
    """Allow accounts without 2FA, or sessions that passed the second factor"""
    if not context.is_two_factor_satisfied:
        raise AuthorizationError()
    return context.user
