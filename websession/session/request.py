"""The parts of an HTTP request the session handler needs."""

from dataclasses import dataclass, field
from typing import Mapping, Optional


@dataclass
class RequestContext:
    """Cookies, query parameters and client address for one request."""

    cookies: Mapping[str, str] = field(default_factory=dict)
    query_params: Mapping[str, str] = field(default_factory=dict)
    remote_addr: str = ""

    def cookie(self, name: str) -> Optional[str]:
        value = self.cookies.get(name)
        return value or None

    def param(self, name: str) -> Optional[str]:
        value = self.query_params.get(name)
        return value or None

    @classmethod
    def from_request(cls, request) -> "RequestContext":
        """Build a context from a Starlette/FastAPI request."""
        return cls(
            cookies=dict(request.cookies),
            query_params=dict(request.query_params),
            remote_addr=request.client.host if request.client else "",
        )
