"""Delivery of the login outcome to the browser.

One function decides what success and failure look like for both
transports, popup (postMessage page) and redirect (fragment-carried
token or login page with an error). It returns a description of the
response; the HTTP layer only renders it.
"""

import html
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
from urllib.parse import quote

from .cookies import CookieSpec

DEFAULT_ERROR_MESSAGE = "Sign-in failed"


class TransportMode(Enum):
    POPUP = "popup"
    REDIRECT = "redirect"


@dataclass
class AuthOutcome:
    """Result of a callback: either a token or an error message"""

    ok: bool
    token: Optional[str] = None
    username: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, token: str, username: str) -> "AuthOutcome":
        return cls(ok=True, token=token, username=username)

    @classmethod
    def failure(cls, error: str) -> "AuthOutcome":
        return cls(ok=False, error=error)


@dataclass
class ResponseDescription:
    """What to send back; rendered by the API layer"""

    status_code: int
    location: Optional[str] = None
    html: Optional[str] = None
    json: Optional[dict[str, Any]] = None
    cookies: list[CookieSpec] = field(default_factory=list)

    @property
    def is_redirect(self) -> bool:
        return self.location is not None


def normalize_return_url(value: Optional[str], fallback: str = "/admin") -> str:
    """Restrict return URLs to same-origin absolute paths.

    Anything not starting with a single "/" falls back; the query string
    is dropped.
    """
    raw = value.strip() if isinstance(value, str) else ""
    if not raw or not raw.startswith("/") or raw.startswith("//") or raw.startswith("/\\"):
        return fallback
    path = raw.split("?", 1)[0]
    return path or fallback


def build_login_error_url(login_page_path: str, return_url: str, error: str) -> str:
    return (
        f"{login_page_path}?returnUrl={quote(return_url, safe='')}"
        f"&error={quote(error, safe='')}"
    )


def build_success_redirect_url(return_url: str, token: str, username: str) -> str:
    # Fragment never reaches the server on the next navigation
    return f"{return_url}#token={quote(token, safe='')}&username={quote(username, safe='')}"


_JS_STRING_ESCAPES = {
    ord("\\"): "\\\\",
    ord("\n"): "\\n",
    ord("\r"): "\\r",
    ord("\u2028"): "\\u2028",
    ord("\u2029"): "\\u2029",
}


def _escape(value: Optional[str]) -> str:
    """Make a value safe inside a single-quoted JS string in an HTML page"""
    return html.escape(value or "", quote=True).translate(_JS_STRING_ESCAPES)


def render_popup_html(outcome: AuthOutcome, origin: str) -> str:
    """Page that posts the outcome to window.opener and closes itself"""
    if outcome.ok:
        payload = (
            f"{{ type: 'AUTH_SUCCESS', token: '{_escape(outcome.token)}', "
            f"username: '{_escape(outcome.username)}' }}"
        )
        message = "Sign-in successful. This window will close…"
    else:
        payload = f"{{ type: 'AUTH_ERROR', error: '{_escape(outcome.error or DEFAULT_ERROR_MESSAGE)}' }}"
        message = "Sign-in failed. This window will close…"

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1.0" />
  <title>SSO</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; padding: 20px;">
  <p>{message}</p>
  <script>
    try {{
      if (window.opener) {{
        window.opener.postMessage({payload}, '{_escape(origin)}');
      }}
    }} catch (e) {{
      // opener gone or cross-origin
    }}
    setTimeout(() => window.close(), 600);
  </script>
</body>
</html>"""


def deliver(
    outcome: AuthOutcome,
    mode: TransportMode,
    return_url: str,
    origin: str,
    login_page_path: str = "/admin/login",
    cookies: Optional[list[CookieSpec]] = None,
) -> ResponseDescription:
    """Describe the response for an outcome under the given transport"""
    cookies = list(cookies or [])

    if mode is TransportMode.POPUP:
        return ResponseDescription(
            status_code=200,
            html=render_popup_html(outcome, origin),
            cookies=cookies,
        )

    if outcome.ok:
        location = build_success_redirect_url(return_url, outcome.token or "", outcome.username or "")
    else:
        location = build_login_error_url(
            login_page_path, return_url, outcome.error or DEFAULT_ERROR_MESSAGE
        )
    return ResponseDescription(status_code=302, location=location, cookies=cookies)
