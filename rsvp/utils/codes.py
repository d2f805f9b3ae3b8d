import re
import secrets
import string

CODE_LENGTH = 12
CODE_PATTERN = re.compile(r"^[A-Z][a-z]+-[A-Za-z0-9]+$")

CODE_CHARSET = string.ascii_letters + string.digits
MIN_RANDOM_CHARS = 2
DEFAULT_PREFIX = "Guest"


def is_valid_code_shape(code: str | None) -> bool:
    """Cheap format check done before any store lookup."""
    if not code or len(code) != CODE_LENGTH:
        return False
    return bool(CODE_PATTERN.fullmatch(code))


def code_prefix(name: str) -> str:
    """
    Capitalised first name, letters only, short enough to leave room for
    the random part. Falls back to a generic prefix.
    """
    first_name = name.strip().split(" ")[0] if name.strip() else ""
    letters = "".join(c for c in first_name if c in string.ascii_letters)
    if len(letters) < 2:
        letters = DEFAULT_PREFIX

    max_len = CODE_LENGTH - 1 - MIN_RANDOM_CHARS
    return letters[:max_len].capitalize()


def generate_code(name: str) -> str:
    """Generate an invitation code like 'Maria-1St4xQ'."""
    prefix = code_prefix(name)
    random_len = CODE_LENGTH - len(prefix) - 1
    suffix = "".join(secrets.choice(CODE_CHARSET) for _ in range(random_len))
    return f"{prefix}-{suffix}"
