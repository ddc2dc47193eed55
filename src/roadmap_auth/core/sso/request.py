"""Framework-neutral view of an incoming request and redirect URI resolution."""

from dataclasses import dataclass, field
from typing import Mapping, Optional


@dataclass
class RequestContext:
    """The parts of an HTTP request the SSO flow reads.

    Header names are expected lower-case.
    """

    headers: Mapping[str, str] = field(default_factory=dict)
    query: Mapping[str, str] = field(default_factory=dict)
    cookies: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        """Build from a Starlette/FastAPI Request"""
        return cls(
            headers={k.lower(): v for k, v in request.headers.items()},
            query=dict(request.query_params),
            cookies=dict(request.cookies),
        )

    def header(self, name: str) -> Optional[str]:
        return self.headers.get(name.lower())

    def param(self, name: str) -> Optional[str]:
        value = self.query.get(name)
        return value if isinstance(value, str) else None

    @property
    def forwarded_proto(self) -> Optional[str]:
        return self.header("x-forwarded-proto")

    @property
    def origin(self) -> str:
        proto = self.header("x-forwarded-proto") or "http"
        host = self.header("x-forwarded-host") or self.header("host") or "localhost"
        return f"{proto}://{host}"


def resolve_base_path(production: bool, base_path_dev: str = "", base_path_prod: str = "") -> str:
    raw = base_path_prod if production else base_path_dev
    return (raw or "").rstrip("/")


def resolve_redirect_uri(
    request: RequestContext,
    override: Optional[str] = None,
    callback_path: str = "/api/auth/entra/callback",
    base_path: str = "",
) -> str:
    """Callback URL registered with the IdP.

    An explicit override wins; otherwise origin + base path + callback path.
    """
    if override and override.strip():
        return override.strip()
    return f"{request.origin}{base_path}{callback_path}"
