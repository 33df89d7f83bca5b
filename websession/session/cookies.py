"""Cookie values produced by the session handler."""

from dataclasses import dataclass

DAY_SECONDS = 86400


@dataclass(frozen=True)
class CookieSpec:
    """
    A cookie to send to the browser.

    max_age <= 0 asks the browser to delete the cookie.
    """

    name: str
    value: str
    max_age: int
    path: str = "/"
    domain: str = ""
    secure: bool = False
    httponly: bool = True

    @property
    def expired(self) -> bool:
        return self.max_age <= 0

    def apply(self, response) -> None:
        """Set this cookie on a Starlette/FastAPI response."""
        response.set_cookie(
            key=self.name,
            value=self.value,
            max_age=self.max_age,
            path=self.path,
            domain=self.domain or None,
            secure=self.secure,
            httponly=self.httponly,
            samesite="lax",
        )
