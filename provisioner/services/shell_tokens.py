"""Allow-list validation for values interpolated into remote shell commands.

Every operator-supplied token (domain, e-mail, username, path, package name)
must match its character class before it is placed in a command string.
Quoting is not relied upon: a token that does not match is rejected.
"""

from __future__ import annotations

import re

from provisioner.errors import UnsafeTokenError
from provisioner.utils.logging import get_logger

log = get_logger(__name__)

# ── allow-listed character classes ────────────────────────────────────────

DOMAIN_PATTERN = re.compile(
    r"^(?=.{1,253}$)(?!-)[a-z0-9-]{1,63}(?<!-)(\.(?!-)[a-z0-9-]{1,63}(?<!-))+$",
    re.I,
)
EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]{1,64}@[A-Za-z0-9.-]{1,253}\.[A-Za-z]{2,63}$")
USERNAME_PATTERN = re.compile(r"^[a-z_][a-z0-9_-]{0,31}$")
PACKAGE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9.+-]{0,127}$")
COMMAND_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._+-]{1,64}$")
ABS_PATH_PATTERN = re.compile(r"^/[A-Za-z0-9._/-]{0,4095}$")
URL_PATH_PATTERN = re.compile(r"^/[A-Za-z0-9._-]+(/[A-Za-z0-9._-]+)*$")
FILENAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]{1,255}$")
CHANNEL_PATTERN = re.compile(r"^[a-z0-9.]{1,16}$")


class TokenCheck:
    __slots__ = ("allowed", "reason")

    def __init__(self, allowed: bool, reason: str):
        self.allowed = allowed
        self.reason = reason

    def __bool__(self) -> bool:
        return self.allowed


def check_token(value: str, pattern: re.Pattern[str]) -> TokenCheck:
    """Check *value* against one allow-listed pattern."""
    if not value:
        return TokenCheck(False, "empty value")
    if value != value.strip():
        return TokenCheck(False, "leading or trailing whitespace")
    if not pattern.match(value):
        return TokenCheck(False, "contains characters outside the allowed set")
    return TokenCheck(True, "ok")


def _require(field: str, value: str, pattern: re.Pattern[str]) -> str:
    result = check_token(value, pattern)
    if not result:
        log.warning("shell.token_rejected", field=field, reason=result.reason)
        raise UnsafeTokenError(field, value, result.reason)
    return value


# ── public API ────────────────────────────────────────────────────────────

def domain(value: str) -> str:
    return _require("domain", value.lower() if value else value, DOMAIN_PATTERN)


def email(value: str) -> str:
    return _require("email", value, EMAIL_PATTERN)


def username(value: str) -> str:
    return _require("username", value, USERNAME_PATTERN)


def package(value: str) -> str:
    return _require("package", value, PACKAGE_PATTERN)


def command_name(value: str) -> str:
    return _require("command", value, COMMAND_NAME_PATTERN)


def filename(value: str) -> str:
    return _require("filename", value, FILENAME_PATTERN)


def channel(value: str) -> str:
    return _require("channel", value, CHANNEL_PATTERN)


def absolute_path(value: str, field: str = "path") -> str:
    _require(field, value, ABS_PATH_PATTERN)
    if any(part == ".." for part in value.split("/")):
        raise UnsafeTokenError(field, value, "parent directory references are not allowed")
    return value


def url_path(value: str) -> str:
    """Normalise and validate a location prefix such as ``/code``."""
    normalised = "/" + value.strip("/") if value else value
    _require("url path", normalised, URL_PATH_PATTERN)
    if any(part == ".." for part in normalised.split("/")):
        raise UnsafeTokenError("url path", value, "parent directory references are not allowed")
    return normalised
