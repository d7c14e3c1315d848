import base64
import io

import pyotp
import qrcode

# RFC 6238 defaults: 30 second step, 6 digits, one step of clock skew each way.
TOTP_INTERVAL = 30
TOTP_DIGITS = 6
TOTP_VALID_WINDOW = 1


def generate_totp_secret() -> str:
    """Generate a new Base32 TOTP secret"""
    return pyotp.random_base32()


def get_totp_uri(secret: str, email: str, issuer_name: str = "MyApp") -> str:
    """Build the otpauth:// provisioning URI for authenticator apps"""
    return pyotp.totp.TOTP(secret).provisioning_uri(name=email, issuer_name=issuer_name)


def generate_qr_code(uri: str) -> str:
    """Render a URI as a QR code PNG and return it as a data URL"""
    qr = qrcode.QRCode(
        version=1,
        error_correction=qrcode.constants.ERROR_CORRECT_L,
        box_size=10,
        border=4,
    )
    qr.add_data(uri)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = io.BytesIO()
    img.save(buffered)
    img_str = base64.b64encode(buffered.getvalue()).decode()
    return f"data:image/png;base64,{img_str}"


def verify_totp(secret: str, code: str, for_time=None) -> bool:
    """Verify a TOTP code against the secret, allowing one step of drift"""
    if not code:
        return False
    totp = pyotp.TOTP(secret, digits=TOTP_DIGITS, interval=TOTP_INTERVAL)
    if for_time is None:
        return totp.verify(code, valid_window=TOTP_VALID_WINDOW)
    return totp.verify(code, for_time=for_time, valid_window=TOTP_VALID_WINDOW)
