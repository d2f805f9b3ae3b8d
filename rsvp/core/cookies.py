"""
Session cookie codec.

The session value (an invitation code, or the invalid-session marker) is
sealed with authenticated encryption (JWE, direct key, AES-256-GCM) so a
client can neither read nor forge it.
"""
import logging
from typing import Optional

from fastapi import Response
from jose import jwe
from jose.constants import ALGORITHMS
from jose.exceptions import JOSEError

from rsvp.core.config import Settings
from rsvp.core.errors import InvalidSession, NoSessionPresent

logger = logging.getLogger(__name__)

SECRET_KEY_LENGTH = 32
SESSION_COOKIE_NAME = "session_token"

# Reserved session value for visitors whose code was already rejected.
# Cannot collide with a real code: codes always start with a capital letter.
INVALID_SESSION_MARKER = "invalid_guest"


def decode_secret_key(hex_key: str) -> bytes:
    """Decode SECRET_COOKIE_KEY and check it has the required length."""
    try:
        key = bytes.fromhex(hex_key)
    except ValueError as e:
        raise ValueError("SECRET_COOKIE_KEY must be hex encoded") from e

    if len(key) != SECRET_KEY_LENGTH:
        raise ValueError(
            f"SECRET_COOKIE_KEY is {len(key)} bytes long when it should be {SECRET_KEY_LENGTH}"
        )
    return key


class SessionCodec:
    def __init__(self, key: bytes):
        if len(key) != SECRET_KEY_LENGTH:
            raise ValueError(f"session key must be {SECRET_KEY_LENGTH} bytes")
        self._key = key

    def seal(self, plaintext: str) -> str:
        token = jwe.encrypt(
            plaintext.encode("utf-8"),
            self._key,
            algorithm=ALGORITHMS.DIR,
            encryption=ALGORITHMS.A256GCM,
        )
        return token.decode("ascii")

    def open(self, token: Optional[str]) -> str:
        """
        Recover the session value.

        Raises NoSessionPresent when there is no token and InvalidSession for
        anything that fails to decrypt or authenticate.
        """
        if not token:
            raise NoSessionPresent()

        try:
            plaintext = jwe.decrypt(token, self._key)
        except (JOSEError, ValueError, TypeError) as e:
            raise InvalidSession("session cookie failed authentication") from e

        if not plaintext:
            raise InvalidSession("session cookie is empty")

        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError as e:
            raise InvalidSession("session cookie is not valid text") from e


def session_cookie_name(app_settings: Settings) -> str:
    # __Host- cookies must be Secure, Path=/ and carry no Domain
    if app_settings.is_prod:
        return f"__Host-{SESSION_COOKIE_NAME}"
    return SESSION_COOKIE_NAME


def set_session_cookie(
    response: Response, codec: SessionCodec, value: str, app_settings: Settings
) -> None:
    try:
        token = codec.seal(value)
    except JOSEError as e:
        logger.error(f"Could not write session cookie: {e}", extra={"code": value})
        return

    max_age = app_settings.session_cookie_max_age_days * 24 * 60 * 60
    response.set_cookie(
        key=session_cookie_name(app_settings),
        value=token,
        max_age=max_age,
        expires=max_age,
        path="/",
        secure=app_settings.is_prod,
        httponly=True,
        samesite="lax",
    )


def clear_session_cookie(response: Response, app_settings: Settings) -> None:
    response.delete_cookie(
        key=session_cookie_name(app_settings),
        path="/",
        secure=app_settings.is_prod,
        httponly=True,
        samesite="lax",
    )
