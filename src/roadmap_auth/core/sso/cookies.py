"""Cookie transport for the transient login-flow state.

The browser holds state, nonce, verifier, return URL and popup flag
between the login redirect and the callback; no server memory is used.
Cookies are described here and written by the HTTP layer with
Response.set_cookie.
"""

from dataclasses import dataclass
from typing import Mapping, Optional


def should_use_secure_cookies(forwarded_proto: Optional[str], production: bool) -> bool:
    if (forwarded_proto or "").strip().lower() == "https":
        return True
    return production


@dataclass(frozen=True)
class CookieSpec:
    """Arguments for one Response.set_cookie call"""

    name: str
    value: str
    max_age: int
    http_only: bool = False
    secure: bool = False
    same_site: str = "lax"
    path: str = "/"

    @property
    def expires_now(self) -> bool:
        return self.max_age <= 0


@dataclass(frozen=True)
class FlowCookieNames:
    """Names of the five flow cookies"""

    state: str
    nonce: str
    verifier: str
    return_url: str
    popup: str

    @classmethod
    def with_prefix(cls, prefix: str = "entra_") -> "FlowCookieNames":
        return cls(
            state=f"{prefix}state",
            nonce=f"{prefix}nonce",
            verifier=f"{prefix}pkce_verifier",
            return_url=f"{prefix}return_url",
            popup=f"{prefix}popup",
        )


@dataclass
class FlowState:
    """Login-flow state carried by the cookies"""

    state: str
    nonce: str
    verifier: str
    return_url: str
    popup: bool


class FlowCookieJar:
    """Writes, reads and clears the flow cookies.

    state, nonce and verifier are HttpOnly; return URL and popup flag are
    readable by client script. All five are SameSite=Lax.
    """

    def __init__(self, names: FlowCookieNames, max_age_seconds: int = 600):
        self.names = names
        self.max_age_seconds = max_age_seconds

    def _layout(self) -> list[tuple[str, bool]]:
        return [
            (self.names.state, True),
            (self.names.nonce, True),
            (self.names.verifier, True),
            (self.names.return_url, False),
            (self.names.popup, False),
        ]

    def set_cookies(self, flow: FlowState, secure: bool) -> list[CookieSpec]:
        values = [flow.state, flow.nonce, flow.verifier, flow.return_url, "1" if flow.popup else "0"]
        return [
            CookieSpec(name, value, max_age=self.max_age_seconds, http_only=http_only, secure=secure)
            for (name, http_only), value in zip(self._layout(), values)
        ]

    def clear_cookies(self, secure: bool) -> list[CookieSpec]:
        return [
            CookieSpec(name, "", max_age=0, http_only=http_only, secure=secure)
            for name, http_only in self._layout()
        ]

    def read(self, cookies: Mapping[str, str]) -> dict[str, Optional[str]]:
        """Raw flow cookie values, None where absent or empty"""
        return {
            "state": cookies.get(self.names.state) or None,
            "nonce": cookies.get(self.names.nonce) or None,
            "verifier": cookies.get(self.names.verifier) or None,
            "return_url": cookies.get(self.names.return_url) or None,
            "popup": cookies.get(self.names.popup) or None,
        }
