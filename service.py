"""Account lifecycle: signup, signin, email verification and TOTP 2FA.

``AuthService`` composes the credential store, the password hasher, the
token issuer and the email notifier. It is built per request by
``get_auth_service`` and holds no state of its own; the database is the
only thing mutated.

Two-factor enrollment is a two-step protocol. ``generate_two_factor_secret``
stores a secret without enabling anything, the caller then checks a code
with ``is_two_factor_code_valid`` and only afterwards flips the flag with
``enable_two_factor``. The same applies to ``issue_two_factor_session_token``,
which trusts that a valid code was presented.

Code checks are not rate limited here.
"""

import logging

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

import config
import models
import schemas
from auth import TokenIssuer, dummy_verify, get_password_hash, get_token_issuer, verify_password
from database import get_db
from errors import AuthenticationError, ExpiredCodeError, InvalidCodeError
from notifier import EmailNotifier, get_notifier
from repository import UserRepository, VerificationCodeRepository
from utils.email_otp import code_expiry, codes_match, generate_email_code, is_expired
from utils.totp import generate_qr_code, generate_totp_secret, get_totp_uri, verify_totp

logger = logging.getLogger(__name__)


class AuthService:

    def __init__(self, users: UserRepository, codes: VerificationCodeRepository,
                 tokens: TokenIssuer, notifier: EmailNotifier, tasks: BackgroundTasks,
                 otp_length: int = 6, otp_expire_minutes: int = 10,
                 two_factor_app_name: str = "MyApp"):
        self.users = users
        self.codes = codes
        self.tokens = tokens
        self.notifier = notifier
        self.tasks = tasks
        self.otp_length = otp_length
        self.otp_expire_minutes = otp_expire_minutes
        self.two_factor_app_name = two_factor_app_name

    def _session_token(self, user: models.User, is_two_factor_authenticated: bool) -> schemas.TokenResponse:
        access_token = self.tokens.issue(
            user.id, user.email, user.is_two_factor_enabled, is_two_factor_authenticated
        )
        return schemas.TokenResponse(
            access_token=access_token,
            is_two_factor_enabled=user.is_two_factor_enabled,
        )

    def _send_verification_code(self, email: str):
        code = generate_email_code(self.otp_length)
        self.codes.replace(email, code, code_expiry(self.otp_expire_minutes))
        self.tasks.add_task(self.notifier.send_verification_code, email, code)

    def signup(self, data: schemas.UserCreate) -> schemas.TokenResponse:
        user = self.users.create(
            email=data.email,
            hashed_password=get_password_hash(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone_number=data.phone_number,
        )
        logger.info("User %s signed up", user.id)

        self._send_verification_code(user.email)
        return self._session_token(user, is_two_factor_authenticated=False)

    def signin(self, email: str, password: str) -> schemas.TokenResponse:
        # Unknown email and wrong password fail the same way.
        user = self.users.find_by_email(email)
        if user is None:
            dummy_verify()
            logger.info("Signin failed for unknown email")
            raise AuthenticationError()

        if not verify_password(password, user.hashed_password):
            logger.info("Signin failed for user %s", user.id)
            raise AuthenticationError()

        return self._session_token(user, is_two_factor_authenticated=False)

    def verify_email(self, email: str, code: str):
        verification = self.codes.find_by_email(email)
        if verification is None or not codes_match(verification.code, code):
            raise InvalidCodeError()

        if is_expired(verification.expires_at):
            self.codes.delete(verification)
            raise ExpiredCodeError()

        user = self.users.find_by_email(email)
        if user is None:
            self.codes.delete(verification)
            raise InvalidCodeError()

        self.users.update_fields(user.id, is_email_verified=True)
        self.codes.delete(verification)
        logger.info("Email verified for user %s", user.id)

    def resend_verification_otp(self, email: str):
        user = self.users.find_by_email(email)
        if user is None or user.is_email_verified:
            # Same answer either way so the endpoint does not reveal accounts.
            return
        self._send_verification_code(email)

    def generate_two_factor_secret(self, user: models.User) -> schemas.TwoFactorEnrollment:
        secret = generate_totp_secret()
        otpauth_url = get_totp_uri(secret, user.email, self.two_factor_app_name)
        self.users.update_fields(user.id, two_factor_secret=secret)
        return schemas.TwoFactorEnrollment(secret=secret, otpauth_url=otpauth_url)

    def render_enrollment_image(self, otpauth_url: str) -> str:
        return generate_qr_code(otpauth_url)

    def is_two_factor_code_valid(self, code: str, user: models.User) -> bool:
        if not user.two_factor_secret:
            return False
        return verify_totp(user.two_factor_secret, code)

    def enable_two_factor(self, user_id: int):
        user = self.users.find_by_id(user_id)
        if user is None or not user.two_factor_secret:
            raise InvalidCodeError("Two-factor authentication has not been set up")
        self.users.update_fields(user_id, is_two_factor_enabled=True)
        logger.info("2FA enabled for user %s", user_id)

    def disable_two_factor(self, user_id: int):
        self.users.update_fields(user_id, is_two_factor_enabled=False, two_factor_secret=None)
        logger.info("2FA disabled for user %s", user_id)

    def issue_two_factor_session_token(self, user: models.User) -> schemas.TokenResponse:
        return self._session_token(user, is_two_factor_authenticated=True)

    def is_email_registered(self, email: str) -> bool:
        return self.users.email_exists(email)


class UserService:

    def __init__(self, users: UserRepository):
        self.users = users

    def get_profile(self, user: models.User) -> schemas.UserProfile:
        return schemas.UserProfile.model_validate(user)

    def update_profile(self, user_id: int, data: schemas.UserUpdate) -> schemas.UserProfile:
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        user = self.users.update_fields(user_id, **changes)
        return schemas.UserProfile.model_validate(user)


def get_auth_service(
        background_tasks: BackgroundTasks,
        db: Session = Depends(get_db),
        tokens: TokenIssuer = Depends(get_token_issuer),
        notifier: EmailNotifier = Depends(get_notifier),
) -> AuthService:
    return AuthService(
        users=UserRepository(db),
        codes=VerificationCodeRepository(db),
        tokens=tokens,
        notifier=notifier,
        tasks=background_tasks,
        otp_length=config.EMAIL_OTP_LENGTH,
        otp_expire_minutes=config.EMAIL_OTP_EXPIRE_MINUTES,
        two_factor_app_name=config.TWO_FACTOR_APP_NAME,
    )


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    return UserService(UserRepository(db))
