from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from typing import Optional

import config

# E.164: leading "+", country code, at most 15 digits in total
PHONE_PATTERN = r"^\+[1-9]\d{1,14}$"


class UserBase(BaseModel):
    email: EmailStr


class UserCreate(UserBase):
    password: str = Field(min_length=1)
    phone_number: str = Field(pattern=PHONE_PATTERN)
    first_name: str = Field(min_length=1)
    last_name: str = Field(min_length=1)


class UserLogin(UserBase):
    password: str = Field(min_length=1)


class UserUpdate(BaseModel):
    first_name: Optional[str] = Field(default=None, min_length=1)
    last_name: Optional[str] = Field(default=None, min_length=1)
    phone_number: Optional[str] = Field(default=None, pattern=PHONE_PATTERN)


class UserProfile(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: str
    last_name: str
    phone_number: str
    is_email_verified: bool
    is_two_factor_enabled: bool


class VerifyEmailRequest(UserBase):
    otp: str

    @field_validator("otp")
    @classmethod
    def otp_matches_configured_length(cls, value: str) -> str:
        if len(value) != config.EMAIL_OTP_LENGTH or not value.isdigit():
            raise ValueError(f"otp must be {config.EMAIL_OTP_LENGTH} digits")
        return value


class ResendOtpRequest(UserBase):
    pass


class EmailCheckRequest(UserBase):
    pass


class TwoFactorCodeRequest(BaseModel):
    two_factor_code: str = Field(min_length=1)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    is_two_factor_enabled: bool


class TokenPayload(BaseModel):
    sub: str
    email: str
    is_two_factor_enabled: bool
    is_two_factor_authenticated: bool
    exp: int
    iat: Optional[int] = None

    @property
    def user_id(self) -> int:
        return int(self.sub)


class TwoFactorEnrollment(BaseModel):
    secret: str
    otpauth_url: str
