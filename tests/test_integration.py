from datetime import datetime, timedelta

import pyotp
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from database import Base, get_db
from models import EmailVerificationCode, User
from notifier import get_notifier
from auth import get_token_issuer

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

SIGNUP = {
    "email": "a@x.com",
    "password": "pw",
    "phone_number": "+15551234567",
    "first_name": "A",
    "last_name": "B",
}


# Override the get_db dependency for testing
def override_get_db():
    try:
        db = TestingSessionLocal()
        yield db
    finally:
        db.close()


class RecordingNotifier:
    """Collects delivered codes instead of sending email"""

    def __init__(self):
        self.sent = []

    async def send_verification_code(self, email, code):
        self.sent.append((email, code))


@pytest.fixture
def notifier():
    return RecordingNotifier()


# Setup the test database and client
@pytest.fixture
def client(notifier):
    Base.metadata.create_all(bind=engine)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_notifier] = lambda: notifier

    yield TestClient(app)

    app.dependency_overrides.clear()
    Base.metadata.drop_all(bind=engine)


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def signup(client, **overrides):
    response = client.post("/auth/signup", json={**SIGNUP, **overrides})
    assert response.status_code == 201
    return response.json()["data"]["access_token"]


def load_user(email="a@x.com"):
    db = TestingSessionLocal()
    try:
        return db.query(User).filter(User.email == email).first()
    finally:
        db.close()


def claims(token):
    return get_token_issuer().verify(token)


# Signup and signin
def test_signup_returns_token_and_sends_code(client, notifier):
    response = client.post("/auth/signup", json=SIGNUP)

    assert response.status_code == 201
    data = response.json()
    assert data["status"] is True
    assert data["message"] == "User registered successfully"
    token = data["data"]["access_token"]
    assert claims(token).email == "a@x.com"
    assert claims(token).is_two_factor_authenticated is False

    assert len(notifier.sent) == 1
    email, code = notifier.sent[0]
    assert email == "a@x.com"
    assert len(code) == 6 and code.isdigit()

    user = load_user()
    assert user.hashed_password != "pw"
    assert user.is_email_verified is False


def test_signup_existing_email(client):
    signup(client)

    response = client.post("/auth/signup", json=SIGNUP)

    assert response.status_code == 409
    assert response.json() == {"detail": "Email already registered"}


def test_signup_invalid_payload(client):
    response = client.post("/auth/signup", json={**SIGNUP, "phone_number": "555-1234"})
    assert response.status_code == 422

    response = client.post("/auth/signup", json={**SIGNUP, "email": "not-an-email"})
    assert response.status_code == 422


def test_signin(client):
    signup(client)

    response = client.post("/auth/signin", json={"email": "a@x.com", "password": "pw"})

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["token_type"] == "bearer"
    assert data["is_two_factor_enabled"] is False
    assert claims(data["access_token"]).is_two_factor_authenticated is False


def test_signin_incorrect_credentials(client):
    signup(client)

    wrong_password = client.post("/auth/signin", json={"email": "a@x.com", "password": "nope"})
    unknown_email = client.post("/auth/signin", json={"email": "b@x.com", "password": "pw"})

    assert wrong_password.status_code == 401
    assert unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()
    assert wrong_password.headers["www-authenticate"] == "Bearer"


# Email verification
def test_verify_email(client, notifier):
    signup(client)
    _, code = notifier.sent[-1]

    response = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": code})

    assert response.status_code == 200
    assert response.json()["message"] == "Email verified successfully"
    assert load_user().is_email_verified is True


def test_verification_code_is_single_use(client, notifier):
    signup(client)
    _, code = notifier.sent[-1]

    first = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": code})
    second = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": code})

    assert first.status_code == 200
    assert second.status_code == 400
    assert second.json()["detail"] == "Invalid verification code"


def test_verify_email_wrong_code(client, notifier):
    signup(client)
    _, code = notifier.sent[-1]
    wrong = "000000" if code != "000000" else "111111"

    response = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": wrong})

    assert response.status_code == 400
    assert load_user().is_email_verified is False


def test_verify_email_expired_code(client, notifier):
    signup(client)
    _, code = notifier.sent[-1]

    db = TestingSessionLocal()
    verification = db.query(EmailVerificationCode).filter(EmailVerificationCode.email == "a@x.com").first()
    verification.expires_at = datetime.utcnow() - timedelta(minutes=1)
    db.commit()
    db.close()

    response = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": code})

    assert response.status_code == 400
    assert response.json()["detail"] == "Verification code has expired"


def test_verify_email_rejects_malformed_otp(client):
    response = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": "12ab"})
    assert response.status_code == 422


def test_resend_otp_invalidates_previous_code(client, notifier):
    signup(client)
    _, old_code = notifier.sent[-1]

    response = client.post("/auth/resend-otp", json={"email": "a@x.com"})
    assert response.status_code == 200
    _, new_code = notifier.sent[-1]
    assert len(notifier.sent) == 2

    if old_code != new_code:
        stale = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": old_code})
        assert stale.status_code == 400

    fresh = client.post("/auth/verify-email", json={"email": "a@x.com", "otp": new_code})
    assert fresh.status_code == 200


def test_resend_otp_unknown_email(client, notifier):
    response = client.post("/auth/resend-otp", json={"email": "nobody@x.com"})

    assert response.status_code == 200
    assert notifier.sent == []


# Email availability
def test_email_availability(client):
    assert client.post("/auth/email", json={"email": "a@x.com"}).json()["data"] == {"available": True}

    signup(client)

    assert client.post("/auth/email", json={"email": "a@x.com"}).json()["data"] == {"available": False}
    response = client.get("/auth/email", params={"email": "a@x.com"})
    assert response.status_code == 200
    assert response.json()["data"] == {"available": False}


# Profile
def test_profile(client):
    token = signup(client)

    for path in ("/auth/my", "/users/me"):
        response = client.get(path, headers=bearer(token))
        assert response.status_code == 200
        profile = response.json()["data"]
        assert profile["email"] == "a@x.com"
        assert profile["first_name"] == "A"
        assert "hashed_password" not in profile
        assert "two_factor_secret" not in profile


def test_update_profile(client):
    token = signup(client)

    response = client.patch("/users/me", json={"first_name": "Alice"}, headers=bearer(token))

    assert response.status_code == 200
    profile = response.json()["data"]
    assert profile["first_name"] == "Alice"
    assert profile["last_name"] == "B"
    assert load_user().first_name == "Alice"


def test_profile_requires_token(client):
    assert client.get("/users/me").status_code == 401
    assert client.get("/users/me", headers=bearer("garbage")).status_code == 401


# Two-factor authentication
def test_2fa_generate(client):
    token = signup(client)

    response = client.post("/auth/2fa/generate", headers=bearer(token))

    assert response.status_code == 200
    assert response.json()["data"]["qr_code"].startswith("data:image/png;base64,")
    user = load_user()
    assert user.two_factor_secret
    assert user.is_two_factor_enabled is False


def test_2fa_turn_on_invalid_code(client):
    token = signup(client)
    client.post("/auth/2fa/generate", headers=bearer(token))
    secret = load_user().two_factor_secret
    wrong = "000000" if pyotp.TOTP(secret).now() != "000000" else "111111"

    response = client.post("/auth/2fa/turn-on", json={"two_factor_code": wrong}, headers=bearer(token))

    assert response.status_code == 400
    assert response.json()["detail"] == "Wrong authentication code"
    assert load_user().is_two_factor_enabled is False


def test_2fa_turn_on_without_secret(client):
    token = signup(client)

    response = client.post("/auth/2fa/turn-on", json={"two_factor_code": "123456"}, headers=bearer(token))

    assert response.status_code == 400


def test_2fa_full_lifecycle(client):
    token = signup(client)
    client.post("/auth/2fa/generate", headers=bearer(token))
    totp = pyotp.TOTP(load_user().two_factor_secret)

    response = client.post("/auth/2fa/turn-on", json={"two_factor_code": totp.now()}, headers=bearer(token))
    assert response.status_code == 200
    assert load_user().is_two_factor_enabled is True

    # Signin now reports 2FA but the token has not passed the second factor
    signin = client.post("/auth/signin", json={"email": "a@x.com", "password": "pw"}).json()["data"]
    first_factor = signin["access_token"]
    assert signin["is_two_factor_enabled"] is True
    assert claims(first_factor).is_two_factor_authenticated is False

    response = client.post("/auth/2fa/turn-off", headers=bearer(first_factor))
    assert response.status_code == 403

    response = client.post("/auth/2fa/authenticate", json={"two_factor_code": totp.now()},
                           headers=bearer(first_factor))
    assert response.status_code == 200
    second_factor = response.json()["data"]["access_token"]
    assert claims(second_factor).is_two_factor_authenticated is True

    response = client.post("/auth/2fa/turn-off", headers=bearer(second_factor))
    assert response.status_code == 200

    user = load_user()
    assert user.is_two_factor_enabled is False
    assert user.two_factor_secret is None


def test_2fa_generate_requires_second_factor_once_enabled(client):
    token = signup(client)
    client.post("/auth/2fa/generate", headers=bearer(token))
    enrolled_secret = load_user().two_factor_secret
    totp = pyotp.TOTP(enrolled_secret)
    client.post("/auth/2fa/turn-on", json={"two_factor_code": totp.now()}, headers=bearer(token))

    first_factor = client.post(
        "/auth/signin", json={"email": "a@x.com", "password": "pw"}
    ).json()["data"]["access_token"]

    response = client.post("/auth/2fa/generate", headers=bearer(first_factor))

    assert response.status_code == 403
    assert response.json()["detail"] == "Two-factor authentication required"
    assert load_user().two_factor_secret == enrolled_secret

    # A 2FA-confirmed session may still re-enroll
    second_factor = client.post("/auth/2fa/authenticate", json={"two_factor_code": totp.now()},
                                headers=bearer(first_factor)).json()["data"]["access_token"]
    response = client.post("/auth/2fa/generate", headers=bearer(second_factor))

    assert response.status_code == 200
    assert load_user().two_factor_secret != enrolled_secret


def test_2fa_authenticate_invalid_code(client):
    token = signup(client)
    client.post("/auth/2fa/generate", headers=bearer(token))
    secret = load_user().two_factor_secret
    wrong = "000000" if pyotp.TOTP(secret).now() != "000000" else "111111"

    response = client.post("/auth/2fa/authenticate", json={"two_factor_code": wrong}, headers=bearer(token))

    assert response.status_code == 400


def test_health(client):
    assert client.get("/").status_code == 200
    assert client.get("/server").status_code == 200
