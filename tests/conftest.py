"""
Pytest fixtures for websession tests.

Every test gets a fresh in-memory SQLite database with the default
settings, four users and two auth methods:

    id  username   type       password
    1   anonymous  bot        -
    2   alice      normal     alice-pass
    3   bob        inactive   bob-pass
    4   admin      admin      admin-pass

    method 1: database, priority 0, enabled
    method 2: ssh (server=ssh.example.org), priority 1, disabled
"""
import pytest
from sqlalchemy.orm import sessionmaker

from websession.auth.methods import hash_password
from websession.auth.service import AuthService
from websession.auth.users import UserStore
from websession.core.site_config import DEFAULT_SETTINGS, AuthConfig, SiteConfig
from websession.db.engine import init_db, make_engine
from websession.models import AuthMethodParam, AuthMethodRow, SiteSetting, User, UserType
from websession.session import RequestContext, SessionHandler

START_TIME = 1_700_000_000

ANONYMOUS_ID = 1
ALICE_ID = 2
BOB_ID = 3
ADMIN_ID = 4

PASSWORDS = {
    "alice": "alice-pass",
    "bob": "bob-pass",
    "admin": "admin-pass",
}


class FakeClock:
    """Controllable replacement for time.time()."""

    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> int:
        self.now += seconds
        return self.now


def browser_cookies(handler: SessionHandler) -> dict:
    """The cookies a browser would hold after receiving the handler's."""
    return {cookie.name: cookie.value for cookie in handler.session_cookies() if not cookie.expired}


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    session = TestingSession()

    for name, value in DEFAULT_SETTINGS.items():
        session.add(SiteSetting(name=name, value=value))

    session.add_all([
        User(user_id=ANONYMOUS_ID, username="anonymous", user_type=UserType.BOT, created=0),
        User(
            user_id=ALICE_ID,
            username="alice",
            user_type=UserType.NORMAL,
            email="alice@example.org",
            password=hash_password(PASSWORDS["alice"], cost=4),
            created=0,
        ),
        User(
            user_id=BOB_ID,
            username="bob",
            user_type=UserType.INACTIVE,
            password=hash_password(PASSWORDS["bob"], cost=4),
            created=0,
        ),
        User(
            user_id=ADMIN_ID,
            username="admin",
            user_type=UserType.ADMIN,
            password=hash_password(PASSWORDS["admin"], cost=4),
            created=0,
        ),
        AuthMethodRow(id=1, module="database", priority=0, enabled=True),
        AuthMethodRow(id=2, module="ssh", priority=1, enabled=False),
        AuthMethodParam(method_id=2, name="server", value="ssh.example.org"),
    ])
    session.commit()

    yield session
    session.close()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def site_config(db):
    return SiteConfig(db)


@pytest.fixture
def auth_config(site_config):
    return AuthConfig.from_site_config(site_config)


@pytest.fixture
def user_store(db, clock):
    return UserStore(db, clock=clock)


@pytest.fixture
def auth_service(db, site_config, user_store, auth_config):
    return AuthService(db, site_config, users=user_store, config=auth_config)


@pytest.fixture
def make_request():
    """Factory for request contexts: make_request(cookies, params, ip)."""

    def _make(cookies=None, params=None, ip="10.0.0.1"):
        return RequestContext(cookies=cookies or {}, query_params=params or {}, remote_addr=ip)

    return _make


@pytest.fixture
def make_handler(db, auth_service, auth_config, site_config, clock, make_request):
    """
    Factory for session handlers sharing the test database and clock.

    Pass start=False to get a handler that has not processed its request.
    """

    def _make(request=None, config=None, start=True, **kwargs):
        handler = SessionHandler(
            db,
            request or make_request(),
            auth_service,
            config or auth_config,
            site_config,
            clock=clock,
            **kwargs,
        )
        if start:
            handler.start()
        return handler

    return _make
