from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, status
from pydantic import EmailStr

import models
import schemas
from auth import get_current_user, require_two_factor
from errors import InvalidCodeError
from service import AuthService, UserService, get_auth_service, get_user_service


auth_router = APIRouter()
users_router = APIRouter()


@auth_router.post("/signup", status_code=201)
def signup(user_data: schemas.UserCreate, service: AuthService = Depends(get_auth_service)):
    token = service.signup(user_data)

    return {
        "status": True,
        "status_code": 201,
        "message": "User registered successfully",
        "data": token.model_dump()
    }


@auth_router.post("/signin")
def signin(login_data: schemas.UserLogin, service: AuthService = Depends(get_auth_service)):
    token = service.signin(login_data.email, login_data.password)

    return {
        "status": True,
        "status_code": 200,
        "message": "Login successful",
        "data": token.model_dump()
    }


@auth_router.get("/my")
def get_my_profile(
        current_user: models.User = Depends(get_current_user),
        users: UserService = Depends(get_user_service)
):
    return {
        "status": True,
        "status_code": 200,
        "message": "Profile retrieved",
        "data": users.get_profile(current_user).model_dump()
    }


@auth_router.post("/verify-email")
def verify_email(verify_data: schemas.VerifyEmailRequest, service: AuthService = Depends(get_auth_service)):
    service.verify_email(verify_data.email, verify_data.otp)

    return {
        "status": True,
        "status_code": 200,
        "message": "Email verified successfully"
    }


@auth_router.post("/resend-otp")
def resend_otp(resend_data: schemas.ResendOtpRequest, service: AuthService = Depends(get_auth_service)):
    service.resend_verification_otp(resend_data.email)

    return {
        "status": True,
        "status_code": 200,
        "message": "If the email is registered and unverified, a new code has been sent"
    }


# Start 2FA enrollment: store a fresh secret and return its QR code.
# Replacing an enrolled secret needs a session that passed the second factor.
@auth_router.post("/2fa/generate")
def generate_2fa(
        service: AuthService = Depends(get_auth_service),
        current_user: models.User = Depends(require_two_factor)
):
    enrollment = service.generate_two_factor_secret(current_user)
    qr_code = service.render_enrollment_image(enrollment.otpauth_url)

    return {
        "status": True,
        "status_code": 200,
        "message": "2FA setup initiated",
        "data": {
            "qr_code": qr_code
        }
    }


@auth_router.post("/2fa/turn-on")
def turn_on_2fa(
        code_data: schemas.TwoFactorCodeRequest,
        service: AuthService = Depends(get_auth_service),
        current_user: models.User = Depends(get_current_user)
):
    if not service.is_two_factor_code_valid(code_data.two_factor_code, current_user):
        raise InvalidCodeError("Wrong authentication code")

    service.enable_two_factor(current_user.id)

    return {
        "status": True,
        "status_code": 200,
        "message": "Two-factor authentication enabled successfully"
    }


@auth_router.post("/2fa/authenticate")
def authenticate_2fa(
        code_data: schemas.TwoFactorCodeRequest,
        service: AuthService = Depends(get_auth_service),
        current_user: models.User = Depends(get_current_user)
):
    if not service.is_two_factor_code_valid(code_data.two_factor_code, current_user):
        raise InvalidCodeError("Wrong authentication code")

    token = service.issue_two_factor_session_token(current_user)

    return {
        "status": True,
        "status_code": 200,
        "message": "Two-factor authentication successful",
        "data": token.model_dump()
    }


@auth_router.post("/2fa/turn-off")
def turn_off_2fa(
        service: AuthService = Depends(get_auth_service),
        current_user: models.User = Depends(require_two_factor)
):
    service.disable_two_factor(current_user.id)

    return {
        "status": True,
        "status_code": 200,
        "message": "Two-factor authentication disabled successfully"
    }


def _email_availability(service: AuthService, email: str):
    return {
        "status": True,
        "status_code": 200,
        "message": "Email availability checked",
        "data": {
            "available": not service.is_email_registered(email)
        }
    }


@auth_router.post("/email")
def check_email(email_data: schemas.EmailCheckRequest, service: AuthService = Depends(get_auth_service)):
    return _email_availability(service, email_data.email)


# GET accepts the address as a query parameter or, like the POST, in the body
@auth_router.get("/email")
def check_email_get(
        email: Optional[EmailStr] = Query(default=None),
        email_data: Optional[schemas.EmailCheckRequest] = Body(default=None),
        service: AuthService = Depends(get_auth_service)
):
    address = email or (email_data.email if email_data else None)
    if address is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Email is required")
    return _email_availability(service, address)


@users_router.get("/me")
def get_me(
        current_user: models.User = Depends(get_current_user),
        users: UserService = Depends(get_user_service)
):
    return {
        "status": True,
        "status_code": 200,
        "message": "Profile retrieved",
        "data": users.get_profile(current_user).model_dump()
    }


@users_router.patch("/me", status_code=status.HTTP_200_OK)
def update_me(
        update_data: schemas.UserUpdate,
        current_user: models.User = Depends(get_current_user),
        users: UserService = Depends(get_user_service)
):
    profile = users.update_profile(current_user.id, update_data)

    return {
        "status": True,
        "status_code": 200,
        "message": "Profile updated successfully",
        "data": profile.model_dump()
    }
