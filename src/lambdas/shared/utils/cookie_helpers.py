"""Cookie parsing and construction for request-scoped role hints.

Three cookies travel with each request:

    adreach_role       role the client believes it is operating as
    adreach_test_mode  "true" while the client believes test mode is on
    adreach_redirect   redirect-loop marker "<destination>|<epoch seconds>"

All three are HINTS. The route guard re-validates them against the role
store and the test-mode manager and never trusts them for privileged roles.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from http.cookies import CookieError, SimpleCookie

ROLE_HINT_COOKIE = "adreach_role"
TEST_MODE_HINT_COOKIE = "adreach_test_mode"
REDIRECT_MARKER_COOKIE = "adreach_redirect"

HINT_MAX_AGE_SECONDS = 24 * 60 * 60


@dataclass(frozen=True)
class RequestHints:
    """Client-supplied role hints for one request."""

    role: str | None = None
    test_mode: bool = False
    redirect_destination: str | None = None
    redirected_at: float | None = None


def parse_cookies(event: dict) -> dict[str, str]:
    """Parse the Cookie header from an API Gateway style event.

    Args:
        event: Event dict with a ``headers`` mapping.

    Returns:
        Dict mapping cookie names to values. Empty dict if no cookies or
        the header is malformed.
    """
    headers = event.get("headers") or {}
    normalized = {k.lower(): v for k, v in headers.items()}
    cookie_header = normalized.get("cookie", "")
    if not cookie_header:
        return {}
    cookie = SimpleCookie()
    try:
        cookie.load(cookie_header)
    except CookieError:
        return {}
    return {k: v.value for k, v in cookie.items()}


def parse_request_hints(cookies: Mapping[str, str]) -> RequestHints:
    """Extract role hints from parsed cookies. Malformed values are ignored."""
    destination = None
    redirected_at = None
    marker = cookies.get(REDIRECT_MARKER_COOKIE)
    if marker and "|" in marker:
        raw_destination, _, raw_ts = marker.rpartition("|")
        try:
            redirected_at = float(raw_ts)
            destination = raw_destination
        except ValueError:
            pass

    role = cookies.get(ROLE_HINT_COOKIE) or None
    return RequestHints(
        role=role,
        test_mode=cookies.get(TEST_MODE_HINT_COOKIE, "").lower() == "true",
        redirect_destination=destination,
        redirected_at=redirected_at,
    )


def make_set_cookie(
    name: str,
    value: str,
    *,
    httponly: bool = False,
    secure: bool = True,
    samesite: str = "Lax",
    max_age: int = HINT_MAX_AGE_SECONDS,
    path: str = "/",
) -> str:
    """Construct a Set-Cookie header value.

    Hint cookies default to readable by client code (not HttpOnly): the
    dashboard UI reads them to render the role switcher immediately.

    Returns:
        Complete Set-Cookie header value string.
    """
    cookie = SimpleCookie()
    cookie[name] = value
    cookie[name]["httponly"] = httponly
    cookie[name]["secure"] = secure
    cookie[name]["samesite"] = samesite
    cookie[name]["max-age"] = max_age
    cookie[name]["path"] = path
    return cookie[name].OutputString()


def make_clear_cookie(name: str, *, path: str = "/") -> str:
    """Set-Cookie header value that deletes a cookie."""
    return make_set_cookie(name, "", max_age=0, path=path)
