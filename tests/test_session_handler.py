"""
Tests for SessionHandler.

Tests cover:
- Anonymous session creation and cookie issue
- Session validation: claimed user, IP check, expiry, touch interval
- Login with and without persistence, autologin key rotation
- Logout
- Garbage collection and its once-per-interval claim
- Session variables and query string carry-over
"""
import re

import pytest
from sqlalchemy import func, select

from websession.auth.service import md5_hex
from websession.core.site_config import AuthConfig, SiteConfig
from websession.models import User, UserVisit
from websession.session import (
    SessionConfigError,
    SessionHandler,
    SessionKey,
    SessionRow,
    SessionVariable,
)

from tests.conftest import ADMIN_ID, ALICE_ID, ANONYMOUS_ID, BOB_ID, START_TIME, browser_cookies

SID = "webappname_sid"
UID = "webappname_u"
KEY = "webappname_k"


def count_rows(db, model, *criteria):
    return db.execute(select(func.count()).select_from(model).where(*criteria)).scalar_one()


def login(make_handler, make_request, user_id, persist=False, ip="10.0.0.1"):
    """Start an anonymous session and log the user in, returning the handler."""
    handler = make_handler(make_request(ip=ip))
    handler.create_session(user_id, persist=persist)
    return handler


class TestHandlerConstruction:
    """Tests for SessionHandler construction."""

    def test_missing_collaborators(self, db, auth_service, auth_config, make_request):
        """Should refuse to work without its collaborators."""
        with pytest.raises(SessionConfigError):
            SessionHandler(None, make_request(), auth_service, auth_config)
        with pytest.raises(SessionConfigError):
            SessionHandler(db, None, auth_service, auth_config)
        with pytest.raises(SessionConfigError):
            SessionHandler(db, make_request(), None, auth_config)
        with pytest.raises(SessionConfigError):
            SessionHandler(db, make_request(), auth_service, None)

    def test_initialize_starts_session(self, db, auth_service, auth_config, site_config, make_request, clock):
        """Should create a session when built through initialize()."""
        handler = SessionHandler.initialize(
            db, make_request(), auth_service, auth_config, site_config, clock=clock
        )
        assert handler.session is not None
        assert handler.user_id == ANONYMOUS_ID


class TestAnonymousSessions:
    """Tests for visitors without a valid session."""

    def test_new_visitor_gets_anonymous_session(self, db, make_handler):
        """Should store a new anonymous session for a visitor with no cookies."""
        handler = make_handler()

        assert handler.is_anonymous
        assert re.fullmatch(r"[0-9a-f]{32}", handler.session_id)

        row = db.get(SessionRow, handler.session_id)
        assert row.session_user_id == ANONYMOUS_ID
        assert row.session_start == START_TIME
        assert row.session_time == START_TIME
        assert row.session_ip == "10.0.0.1"
        assert row.session_autologin is False

    def test_anonymous_cookies(self, make_handler):
        """Should issue id and user cookies and clear the key cookie."""
        handler = make_handler()
        cookies = {c.name: c for c in handler.session_cookies()}

        assert cookies[SID].value == handler.session_id
        assert cookies[UID].value == str(ANONYMOUS_ID)
        assert cookies[KEY].value == ""
        assert cookies[KEY].expired
        assert cookies[SID].max_age == 30 * 86400
        assert cookies[SID].httponly

    def test_cookie_lifetime_without_max_autologin(self, make_handler):
        """Should fall back to a 365 day cookie lifetime."""
        handler = make_handler(config=AuthConfig(max_autologin_time=0))
        cookies = {c.name: c for c in handler.session_cookies()}
        assert cookies[SID].max_age == 365 * 86400

    def test_cookie_attributes_follow_config(self, make_handler):
        """Should carry the configured path, domain and secure flag."""
        config = AuthConfig(cookie_name="app", cookie_path="/app", cookie_domain="example.org", cookie_secure=True)
        handler = make_handler(config=config)
        cookie = handler.session_cookies()[0]

        assert cookie.name == "app_sid"
        assert cookie.path == "/app"
        assert cookie.domain == "example.org"
        assert cookie.secure

    def test_session_ids_are_unique(self, make_handler):
        """Should never hand out the same session id twice."""
        ids = {make_handler().session_id for _ in range(10)}
        assert len(ids) == 10

    def test_missing_anonymous_user(self, db, make_handler):
        """Should raise a configuration error if the anonymous user is missing."""
        db.delete(db.get(User, ANONYMOUS_ID))
        db.commit()

        with pytest.raises(SessionConfigError):
            make_handler()

    def test_session_id_from_query_param(self, make_handler, make_request, clock):
        """Should accept the session id from the sid query parameter."""
        first = make_handler()
        clock.advance(10)

        second = make_handler(make_request(cookies={UID: "1"}, params={"sid": first.session_id}))
        assert second.session_id == first.session_id


class TestSessionValidation:
    """Tests for resuming an existing session."""

    def test_resume_within_touch_interval(self, db, make_handler, make_request, clock):
        """Should reuse the session without touching it inside 60 seconds."""
        first = make_handler()
        clock.advance(30)

        second = make_handler(make_request(cookies=browser_cookies(first)))

        assert second.session_id == first.session_id
        assert db.get(SessionRow, first.session_id).session_time == START_TIME

    def test_resume_touches_after_interval(self, db, make_handler, make_request, clock):
        """Should update the last touch time after 60 seconds."""
        first = make_handler()
        clock.advance(61)

        second = make_handler(make_request(cookies=browser_cookies(first)))

        assert second.session_id == first.session_id
        assert second.session_time == START_TIME + 61
        row = db.execute(
            select(SessionRow.session_time).where(SessionRow.session_id == first.session_id)
        ).scalar_one()
        assert row == START_TIME + 61

    def test_touched_session_does_not_expire(self, make_handler, make_request, clock):
        """Should keep a session alive while it is in use."""
        handler = make_handler()
        sessid = handler.session_id

        for _ in range(5):
            clock.advance(3000)
            handler = make_handler(make_request(cookies=browser_cookies(handler)))
            assert handler.session_id == sessid

    def test_expired_session_replaced(self, db, make_handler, make_request, clock):
        """Should replace an idle session once it has expired."""
        first = make_handler()
        clock.advance(3600 + 61)

        second = make_handler(make_request(cookies=browser_cookies(first)))

        assert second.session_id != first.session_id
        assert second.is_anonymous
        assert db.get(SessionRow, first.session_id) is None

    def test_not_expired_at_limit(self, make_handler, make_request, clock):
        """Should still accept a session at exactly session_length + 60."""
        first = make_handler()
        clock.advance(3600 + 60)

        second = make_handler(make_request(cookies=browser_cookies(first)))
        assert second.session_id == first.session_id

    def test_claimed_user_mismatch(self, db, make_handler, make_request):
        """Should not let a cookie claim someone else's session."""
        alice = login(make_handler, make_request, ALICE_ID)
        cookies = browser_cookies(alice)
        cookies[UID] = str(ADMIN_ID)

        handler = make_handler(make_request(cookies=cookies))

        assert handler.is_anonymous
        assert handler.session_id != alice.session_id
        assert db.get(SessionRow, alice.session_id) is not None

    def test_missing_user_cookie(self, make_handler, make_request):
        """Should treat a session id without a user cookie as invalid."""
        alice = login(make_handler, make_request, ALICE_ID)

        handler = make_handler(make_request(cookies={SID: alice.session_id}))
        assert handler.is_anonymous
        assert handler.session_id != alice.session_id

    def test_blocked_user_session_rejected(self, db, make_handler, make_request):
        """Should drop sessions of users who have since been disabled."""
        alice = login(make_handler, make_request, ALICE_ID)
        db.get(User, ALICE_ID).user_type = 1
        db.commit()

        handler = make_handler(make_request(cookies=browser_cookies(alice)))
        assert handler.is_anonymous

    def test_ip_mismatch_rejected(self, make_handler, make_request):
        """Should reject a session presented from another address."""
        alice = login(make_handler, make_request, ALICE_ID, ip="10.0.0.1")

        handler = make_handler(make_request(cookies=browser_cookies(alice), ip="10.0.0.2"))
        assert handler.is_anonymous
        assert handler.session_id != alice.session_id

    def test_partial_ip_match(self, make_handler, make_request):
        """Should accept an address in the same /24 when ip_check is 3."""
        config = AuthConfig(ip_check=3)
        first = make_handler(make_request(ip="10.0.0.1"), config=config)
        first.create_session(ALICE_ID)

        handler = make_handler(make_request(cookies=browser_cookies(first), ip="10.0.0.77"), config=config)
        assert handler.user_id == ALICE_ID
        assert handler.session_id == first.session_id

    def test_unknown_session_id(self, make_handler, make_request):
        """Should create a fresh session for an unknown id."""
        handler = make_handler(make_request(cookies={SID: "0" * 32, UID: "1"}))
        assert handler.session_id != "0" * 32
        assert handler.is_anonymous


class TestIpMatches:
    """Tests for SessionHandler.ip_matches."""

    @pytest.mark.parametrize(
        "ip_check,user_ip,session_ip,expected",
        [
            (4, "10.1.2.3", "10.1.2.3", True),
            (4, "10.1.2.3", "10.1.2.4", False),
            (3, "10.1.2.3", "10.1.2.4", True),
            (3, "10.1.3.3", "10.1.2.3", False),
            (1, "10.9.9.9", "10.1.1.1", True),
            (0, "192.168.0.1", "10.0.0.1", True),
            (0, "", "", True),
            (4, "", "10.0.0.1", False),
            (4, "2001:db8::1", "2001:db8::1", True),
            (2, "2001:db8:1::1", "2001:db8:2::1", True),
            (3, "2001:db8:1::1", "2001:db8:2::1", False),
        ],
    )
    def test_ip_matches(self, make_handler, ip_check, user_ip, session_ip, expected):
        handler = make_handler(config=AuthConfig(ip_check=ip_check), start=False)
        assert handler.ip_matches(user_ip, session_ip) is expected


class TestIsExpired:
    """Tests for SessionHandler.is_expired."""

    def make_row(self, session_time, autologin=False):
        return SessionRow(
            session_id="x" * 32,
            session_user_id=ALICE_ID,
            session_start=session_time,
            session_time=session_time,
            session_ip="10.0.0.1",
            session_autologin=autologin,
        )

    def test_normal_session(self, make_handler):
        """Should expire normal sessions after session_length plus grace."""
        handler = make_handler(start=False)
        assert not handler.is_expired(self.make_row(START_TIME - 3660))
        assert handler.is_expired(self.make_row(START_TIME - 3661))

    def test_persistent_session_max_age(self, make_handler):
        """Should expire persistent sessions after max_autologin_time days."""
        handler = make_handler(start=False)
        limit = 30 * 86400 + 60
        assert not handler.is_expired(self.make_row(START_TIME - limit, autologin=True))
        assert handler.is_expired(self.make_row(START_TIME - limit - 1, autologin=True))

    def test_persistent_session_without_max_age(self, make_handler):
        """Should never expire persistent sessions when max_autologin_time is 0."""
        handler = make_handler(config=AuthConfig(max_autologin_time=0), start=False)
        assert not handler.is_expired(self.make_row(START_TIME - 1000 * 86400, autologin=True))

    def test_persistent_session_when_autologin_disabled(self, make_handler):
        """Should treat persistent sessions as expired when autologin is off."""
        handler = make_handler(config=AuthConfig(allow_autologin=False), start=False)
        assert handler.is_expired(self.make_row(START_TIME, autologin=True))


class TestLogin:
    """Tests for create_session with a user."""

    def test_login_without_persist(self, db, make_handler, make_request):
        """Should attach the session to the user without issuing a key."""
        anon = make_handler()
        old_id = anon.session_id

        anon.create_session(ALICE_ID)

        assert anon.user_id == ALICE_ID
        assert anon.session_id != old_id
        assert anon.autokey is None
        assert db.get(SessionRow, anon.session_id).session_autologin is False
        assert count_rows(db, SessionKey, SessionKey.user_id == ALICE_ID) == 0

        cookies = {c.name: c for c in anon.session_cookies()}
        assert cookies[UID].value == str(ALICE_ID)
        assert cookies[KEY].expired

    def test_login_replaces_anonymous_session(self, db, make_handler):
        """Should delete the anonymous session it replaces."""
        handler = make_handler()
        old_id = handler.session_id

        handler.create_session(ALICE_ID)
        assert db.get(SessionRow, old_id) is None

    def test_login_with_persist(self, db, make_handler, make_request):
        """Should store only the md5 of a new autologin key."""
        handler = login(make_handler, make_request, ALICE_ID, persist=True)

        assert handler.autokey
        assert db.get(SessionRow, handler.session_id).session_autologin is True

        keys = db.execute(select(SessionKey).where(SessionKey.user_id == ALICE_ID)).scalars().all()
        assert len(keys) == 1
        assert keys[0].key_id == md5_hex(handler.autokey)
        assert keys[0].key_id != handler.autokey
        assert keys[0].last_ip == "10.0.0.1"
        assert keys[0].last_login == START_TIME

        assert browser_cookies(handler)[KEY] == handler.autokey

    def test_persist_refused_when_autologin_disabled(self, db, make_handler, make_request):
        """Should never issue a key when autologins are disabled."""
        handler = make_handler(config=AuthConfig(allow_autologin=False))
        handler.create_session(ALICE_ID, persist=True)

        assert handler.user_id == ALICE_ID
        assert handler.autokey is None
        assert db.get(SessionRow, handler.session_id).session_autologin is False
        assert count_rows(db, SessionKey) == 0

    def test_persist_refused_for_anonymous(self, db, make_handler):
        """Should never issue a key to the anonymous user."""
        handler = make_handler(start=False)
        handler.create_session(persist=True)

        assert handler.is_anonymous
        assert count_rows(db, SessionKey) == 0

    def test_login_as_blocked_user_gives_anonymous(self, make_handler):
        """Should fall back to anonymous for users that cannot log in."""
        handler = make_handler()
        handler.create_session(BOB_ID, persist=True)

        assert handler.is_anonymous
        assert handler.autokey is None

    def test_admin_login(self, make_handler):
        """Should treat admin users as real users."""
        handler = make_handler()
        handler.create_session(ADMIN_ID, persist=True)

        assert handler.user_id == ADMIN_ID
        assert handler.autokey

    def test_login_restores_last_visit(self, db, make_handler):
        """Should load the user's previous visit time."""
        db.merge(UserVisit(user_id=ALICE_ID, last_visit=START_TIME - 500))
        db.commit()

        handler = make_handler()
        handler.create_session(ALICE_ID)
        assert handler.last_visit == START_TIME - 500


class TestAutologin:
    """Tests for persistent logins via the autologin key."""

    def test_autologin_rotates_key(self, db, make_handler, make_request, clock):
        """Should log the user in and replace the key with a new one."""
        first = login(make_handler, make_request, ALICE_ID, persist=True)
        old_key = first.autokey
        clock.advance(86400)

        cookies = {UID: str(ALICE_ID), KEY: old_key}
        handler = make_handler(make_request(cookies=cookies))

        assert handler.user_id == ALICE_ID
        assert handler.autokey and handler.autokey != old_key
        assert db.get(SessionRow, handler.session_id).session_autologin is True

        keys = db.execute(select(SessionKey.key_id).where(SessionKey.user_id == ALICE_ID)).scalars().all()
        assert keys == [md5_hex(handler.autokey)]
        assert browser_cookies(handler)[KEY] == handler.autokey

    def test_old_key_rejected_after_rotation(self, make_handler, make_request, clock):
        """Should not accept a key once it has been rotated."""
        first = login(make_handler, make_request, ALICE_ID, persist=True)
        old_key = first.autokey
        make_handler(make_request(cookies={UID: str(ALICE_ID), KEY: old_key}))
        clock.advance(10)

        replay = make_handler(make_request(cookies={UID: str(ALICE_ID), KEY: old_key}))
        assert replay.is_anonymous
        assert replay.autokey is None

    def test_key_for_other_user_rejected(self, make_handler, make_request):
        """Should not accept a key presented with another user's id."""
        alice = login(make_handler, make_request, ALICE_ID, persist=True)

        handler = make_handler(make_request(cookies={UID: str(ADMIN_ID), KEY: alice.autokey}))
        assert handler.is_anonymous

    def test_key_ignored_when_autologin_disabled(self, make_handler, make_request):
        """Should ignore keys once autologins have been turned off."""
        alice = login(make_handler, make_request, ALICE_ID, persist=True)

        handler = make_handler(
            make_request(cookies={UID: str(ALICE_ID), KEY: alice.autokey}),
            config=AuthConfig(allow_autologin=False),
        )
        assert handler.is_anonymous

    def test_key_ignored_for_blocked_user(self, db, make_handler, make_request):
        """Should ignore keys belonging to disabled accounts."""
        alice = login(make_handler, make_request, ALICE_ID, persist=True)
        db.get(User, ALICE_ID).user_type = 1
        db.commit()

        handler = make_handler(make_request(cookies={UID: str(ALICE_ID), KEY: alice.autokey}))
        assert handler.is_anonymous

    def test_set_login_key_inserts_when_old_key_missing(self, db, make_handler, make_request):
        """Should insert a key row when the previous key is not stored."""
        handler = login(make_handler, make_request, ALICE_ID)
        handler.autokey = "not-a-stored-key"

        new_key = handler.set_login_key()

        assert count_rows(db, SessionKey, SessionKey.key_id == md5_hex(new_key)) == 1


class TestLogout:
    """Tests for delete_session."""

    def test_logout_removes_session_and_key(self, db, make_handler, make_request, clock):
        """Should delete the session and key and start an anonymous session."""
        alice = login(make_handler, make_request, ALICE_ID, persist=True)
        old_id = alice.session_id
        clock.advance(120)

        handler = make_handler(make_request(cookies=browser_cookies(alice)))
        assert handler.session_id == old_id
        handler.delete_session()

        assert handler.is_anonymous
        assert handler.session_id != old_id
        assert db.get(SessionRow, old_id) is None
        assert count_rows(db, SessionKey, SessionKey.user_id == ALICE_ID) == 0
        assert KEY not in browser_cookies(handler)

    def test_logout_records_last_visit(self, db, make_handler, make_request, clock):
        """Should store the session's last touch as the user's last visit."""
        alice = login(make_handler, make_request, ALICE_ID)
        clock.advance(120)

        handler = make_handler(make_request(cookies=browser_cookies(alice)))
        handler.delete_session()

        visit = db.get(UserVisit, ALICE_ID)
        assert visit.last_visit == START_TIME + 120

    def test_logout_anonymous(self, db, make_handler):
        """Should simply replace an anonymous session."""
        handler = make_handler()
        old_id = handler.session_id

        handler.delete_session()

        assert handler.is_anonymous
        assert handler.session_id != old_id
        assert db.get(UserVisit, ANONYMOUS_ID) is None


class TestTouchSession:
    """Tests for touch_session."""

    def test_vanished_session(self, db, make_handler, clock):
        """Should report a session deleted before it could be touched."""
        handler = make_handler()
        session = handler.get_session(handler.session_id)
        db.delete(session)
        db.commit()
        clock.advance(120)

        row = SessionRow(
            session_id=handler.session_id,
            session_user_id=ANONYMOUS_ID,
            session_start=START_TIME,
            session_time=START_TIME,
            session_ip="10.0.0.1",
            session_autologin=False,
        )
        assert handler.touch_session(row) is False


class TestGarbageCollection:
    """Tests for collect_garbage."""

    def add_session(self, db, sessid, user_id, session_time, autologin=False):
        db.add(SessionRow(
            session_id=sessid,
            session_user_id=user_id,
            session_start=session_time,
            session_time=session_time,
            session_ip="10.0.0.1",
            session_autologin=autologin,
        ))
        db.commit()

    def test_removes_expired_sessions(self, db, make_handler):
        """Should delete expired sessions and keep live ones."""
        self.add_session(db, "a" * 32, ANONYMOUS_ID, START_TIME - 4000)
        self.add_session(db, "b" * 32, ALICE_ID, START_TIME - 4000)
        self.add_session(db, "c" * 32, ALICE_ID, START_TIME - 100)
        self.add_session(db, "d" * 32, ADMIN_ID, START_TIME - 4000, autologin=True)

        handler = make_handler(start=False)
        assert handler.collect_garbage() is True

        remaining = set(db.execute(select(SessionRow.session_id)).scalars().all())
        assert remaining == {"c" * 32, "d" * 32}

    def test_records_last_visit_of_expired_users(self, db, make_handler):
        """Should store the latest expired session time as the last visit."""
        self.add_session(db, "a" * 32, ALICE_ID, START_TIME - 5000)
        self.add_session(db, "b" * 32, ALICE_ID, START_TIME - 4000)

        make_handler(start=False).collect_garbage()

        assert db.get(UserVisit, ALICE_ID).last_visit == START_TIME - 4000
        assert db.get(UserVisit, ANONYMOUS_ID) is None

    def test_expires_old_persistent_sessions(self, db, make_handler):
        """Should delete persistent sessions older than max_autologin_time."""
        self.add_session(db, "a" * 32, ALICE_ID, START_TIME - 31 * 86400, autologin=True)

        make_handler(start=False).collect_garbage()
        assert db.get(SessionRow, "a" * 32) is None

    def test_removes_all_persistent_sessions_when_autologin_disabled(self, db, make_handler):
        """Should delete every persistent session when autologins are off."""
        self.add_session(db, "a" * 32, ALICE_ID, START_TIME, autologin=True)

        make_handler(config=AuthConfig(allow_autologin=False), start=False).collect_garbage()
        assert db.get(SessionRow, "a" * 32) is None

    def test_respects_interval(self, db, make_handler, site_config, clock):
        """Should run at most once per session_gc seconds."""
        handler = make_handler(config=AuthConfig(session_gc=3600), start=False)

        assert handler.collect_garbage() is True
        assert site_config.get("Session:lastgc") == str(START_TIME)

        clock.advance(1800)
        assert handler.collect_garbage() is False
        assert handler.collect_garbage(force=True) is True

    def test_claim_lost_to_other_process(self, db, auth_service, auth_config, make_request, clock):
        """Should skip the sweep when another process claimed it first."""
        first = SessionHandler(db, make_request(), auth_service, auth_config, SiteConfig(db), clock=clock)
        second = SessionHandler(db, make_request(), auth_service, auth_config, SiteConfig(db), clock=clock)

        assert first.collect_garbage() is True
        assert second.collect_garbage() is False

    def test_removes_stale_keys(self, db, make_handler):
        """Should delete autologin keys unused for max_autologin_time days."""
        db.add(SessionKey(key_id="a" * 32, user_id=ALICE_ID, last_ip="", last_login=START_TIME - 31 * 86400))
        db.add(SessionKey(key_id="b" * 32, user_id=ALICE_ID, last_ip="", last_login=START_TIME - 86400))
        db.commit()

        make_handler(start=False).collect_garbage()

        keys = db.execute(select(SessionKey.key_id)).scalars().all()
        assert keys == ["b" * 32]

    def test_removes_orphaned_variables(self, db, make_handler):
        """Should delete variables of sessions that no longer exist."""
        db.add(SessionVariable(session_id="z" * 32, var_name="theme", var_value="dark"))
        db.commit()

        make_handler(start=False).collect_garbage()
        assert count_rows(db, SessionVariable) == 0


class TestSessionVariables:
    """Tests for get_variable and set_variable."""

    def test_set_and_get(self, make_handler):
        """Should store values per session and return the previous value."""
        handler = make_handler()

        assert handler.get_variable("theme") is None
        assert handler.set_variable("theme", "dark") is None
        assert handler.get_variable("theme") == "dark"
        assert handler.set_variable("theme", "light") == "dark"
        assert handler.get_variable("theme") == "light"

    def test_delete_with_none(self, make_handler):
        """Should delete the variable when the value is None."""
        handler = make_handler()
        handler.set_variable("theme", "dark")

        assert handler.set_variable("theme", None) == "dark"
        assert handler.get_variable("theme", "default") == "default"

    def test_variables_are_per_session(self, make_handler):
        """Should not share variables between sessions."""
        first = make_handler()
        second = make_handler()
        first.set_variable("theme", "dark")

        assert second.get_variable("theme") is None

    def test_initial_variables(self, make_handler):
        """Should store variables passed to create_session."""
        handler = make_handler()
        handler.create_session(ALICE_ID, variables={"return_to": "/home"})

        assert handler.get_variable("return_to") == "/home"

    def test_name_too_long(self, make_handler):
        """Should reject names longer than 80 characters."""
        handler = make_handler()
        with pytest.raises(ValueError):
            handler.set_variable("x" * 81, "value")

    def test_disabled(self, make_handler):
        """Should raise a configuration error when variables are disabled."""
        handler = make_handler(variables_enabled=False)
        with pytest.raises(SessionConfigError):
            handler.get_variable("theme")
        with pytest.raises(SessionConfigError):
            handler.set_variable("theme", "dark")


class TestQuerystring:
    """Tests for encode_querystring and decode_querystring."""

    def test_encode_decode(self):
        """Should carry a query string through an opaque value."""
        encoded = SessionHandler.encode_querystring("block=login;page=2")
        assert re.fullmatch(r"[A-Za-z0-9+/=]+", encoded)
        assert SessionHandler.decode_querystring(encoded) == "block=login&page=2"

    def test_encode_nofix(self):
        """Should keep ; separators when nofix is set."""
        encoded = SessionHandler.encode_querystring("a=1;b=2", nofix=True)
        assert SessionHandler.decode_querystring(encoded) == "a=1;b=2"

    def test_decode_invalid(self):
        """Should return an empty string for invalid input."""
        assert SessionHandler.decode_querystring("not base64!") == ""
        assert SessionHandler.decode_querystring("") == ""
        assert SessionHandler.decode_querystring(None) == ""
        assert SessionHandler.decode_querystring("abc") == ""
