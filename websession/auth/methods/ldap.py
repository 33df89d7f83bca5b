"""
LDAP authentication.

The user's entry is found by searching the configured base for
`<searchfield>=<username>`, binding either as an admin user or
anonymously. The user's password is then checked by binding as the
entry that was found. Parameters:

- server (required): host name, address or ldap:// / ldaps:// URI
- base (required): the DN to search under
- searchfield (required): attribute holding the username, e.g. uid
- adminuser, adminpass: bind as this user for the search
- port: server port, if not the scheme default
- starttls: upgrade a plain connection with STARTTLS
- tlsverify: check the server certificate (on unless set false)
- reuseconn: rebind the search connection instead of opening a new one
- timeout: connection timeout in seconds
"""

import logging
import ssl
from typing import Optional

import ldap3
from ldap3.core.exceptions import LDAPBindError, LDAPException
from ldap3.utils.conv import escape_filter_chars

from websession.core.settings import settings

from .base import AuthMethod, param_flag

logger = logging.getLogger(__name__)


class LDAPAuthMethod(AuthMethod):
    """Authenticate by binding to an LDAP directory as the user."""

    required_params = ("server", "base", "searchfield")
    use_ssl = False

    def __init__(self, context, **params):
        super().__init__(context, **params)

        self.server = params["server"]
        self.base = params["base"]
        self.searchfield = params["searchfield"]
        self.adminuser = params.get("adminuser") or None
        self.adminpass = params.get("adminpass") or None
        self.port = int(params["port"]) if params.get("port") else None
        self.starttls = param_flag(params.get("starttls") or params.get("usetls"))
        self.tls_verify = param_flag(params.get("tlsverify") or "1")
        self.reuseconn = param_flag(params.get("reuseconn"))
        self.timeout = float(params.get("timeout") or settings.ldap_timeout)

    def _server(self) -> ldap3.Server:
        tls = ldap3.Tls(validate=ssl.CERT_REQUIRED if self.tls_verify else ssl.CERT_NONE)
        return ldap3.Server(
            self.server,
            port=self.port,
            use_ssl=self.use_ssl,
            tls=tls,
            get_info=ldap3.NONE,
            connect_timeout=self.timeout,
        )

    def _connect(self, server: ldap3.Server, user: Optional[str] = None, password: Optional[str] = None):
        conn = ldap3.Connection(
            server, user=user, password=password, receive_timeout=self.timeout
        )
        conn.open()
        if self.starttls:
            conn.start_tls()
        return conn

    def find_user_dn(self, conn, username: str) -> Optional[str]:
        """Search for the user's entry, returning its DN if exactly one matches."""
        search_filter = f"({self.searchfield}={escape_filter_chars(username)})"
        if not conn.search(self.base, search_filter, attributes=[]):
            return None

        entries = conn.entries
        if len(entries) != 1:
            if entries:
                logger.warning(f"LDAP search for {username} matched {len(entries)} entries")
            return None
        return entries[0].entry_dn

    def authenticate(self, username: str, password: str) -> bool:
        # An empty password would turn the user bind into an anonymous one
        if not username or not password:
            logger.warning("LDAP login failed: username and password are required")
            return False

        server = self._server()
        conn = None
        try:
            if self.adminuser and self.adminpass:
                conn = self._connect(server, self.adminuser, self.adminpass)
            else:
                conn = self._connect(server)

            if not conn.bind():
                logger.warning(f"LDAP bind to {self.server} failed. Response was: {conn.result}")
                return False

            user_dn = self.find_user_dn(conn, username)
            if not user_dn:
                return False

            if self.reuseconn:
                try:
                    return bool(conn.rebind(user=user_dn, password=password))
                except LDAPBindError:
                    return False

            conn.unbind()
            conn = self._connect(server, user_dn, password)
            return bool(conn.bind())

        except (LDAPException, OSError) as e:
            logger.warning(f"LDAP login to {self.server} failed. Error was: {e}")
            return False
        finally:
            if conn is not None:
                conn.unbind()


class LDAPSAuthMethod(LDAPAuthMethod):
    """LDAP authentication over an SSL connection (ldaps://)."""

    use_ssl = True
