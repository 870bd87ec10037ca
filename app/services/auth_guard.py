import base64
import binascii
import hashlib
import hmac
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasicCredentials
from fastapi.security.utils import get_authorization_scheme_param

from app.dependencies import get_settings
from config import Settings
from logger_config import setup_logger

REALM = "restricted"

logger = setup_logger()


def parse_basic_credentials(authorization: Optional[str]) -> Optional[HTTPBasicCredentials]:
    """Decode an ``Authorization: Basic`` header value.

    The payload is decoded as UTF-8, matching the charset advertised in the
    challenge. The username ends at the first colon, the password may hold
    more. Returns None for a missing header, another scheme, or a payload
    that is not valid base64/UTF-8 or has no colon.
    """
    scheme, param = get_authorization_scheme_param(authorization)
    if not authorization or scheme.lower() != "basic":
        return None
    try:
        decoded = base64.b64decode(param, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError):
        return None
    username, separator, password = decoded.partition(":")
    if not separator:
        return None
    return HTTPBasicCredentials(username=username, password=password)


def unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Unauthorized",
        headers={"WWW-Authenticate": f'Basic realm="{REALM}", charset="UTF-8"'},
    )


def _digest(value: str) -> bytes:
    return hashlib.sha256(value.encode("utf-8")).digest()


def credentials_match(username: str, password: str, settings: Settings) -> bool:
    """Compare a credential pair against the configured one in constant time.

    Both sides are hashed first so compare_digest always sees equal-length
    inputs, and both comparisons run even when the first one fails.
    """
    username_match = hmac.compare_digest(_digest(username), _digest(settings.auth_username))
    password_match = hmac.compare_digest(
        _digest(password), _digest(settings.auth_password.get_secret_value())
    )
    return username_match and password_match


async def require_basic_auth(
    request: Request,
    settings: Settings = Depends(get_settings),
) -> str:
    """Dependency guarding a route with HTTP Basic auth.

    Returns the authenticated username.
    """
    credentials = parse_basic_credentials(request.headers.get("Authorization"))

    if credentials is not None and credentials_match(
        credentials.username, credentials.password, settings
    ):
        return credentials.username

    client = request.client.host if request.client else "unknown"
    logger.warning(f"Rejected basic auth attempt on {request.url.path} from {client}")
    raise unauthorized()
