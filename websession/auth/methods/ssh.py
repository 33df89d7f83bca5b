"""
SSH-delegated authentication.

The user's credentials are checked by logging into a remote host over
SSH. A login counts as successful only if the remote shell greets the
user with a welcome or "last login" banner. Transport problems are
logged and reported as a failed authentication.
"""

import logging
import re
import socket

import paramiko

from websession.core.settings import settings

from .base import AuthMethod

logger = logging.getLogger(__name__)

# Matched against the banner with all whitespace removed
BANNER_PATTERN = re.compile(r"Welcome|Lastlogin", re.IGNORECASE)


class SSHAuthMethod(AuthMethod):
    """Authenticate by logging in to an SSH server."""

    required_params = ("server",)

    def __init__(self, context, **params):
        super().__init__(context, **params)

        self.server = params["server"]
        self.port = int(params.get("port") or 22)
        self.timeout = float(params.get("timeout") or settings.ssh_timeout)

    def _read_banner(self, channel) -> str:
        """Read from the shell until the banner matches or the timeout expires."""
        channel.settimeout(self.timeout)
        received = ""
        try:
            while True:
                chunk = channel.recv(4096)
                if not chunk:
                    break
                received += chunk.decode("utf-8", errors="replace")
                if BANNER_PATTERN.search(re.sub(r"\s", "", received)):
                    break
        except socket.timeout:
            pass
        return re.sub(r"\s", "", received)

    def authenticate(self, username: str, password: str) -> bool:
        if not username or not password:
            logger.warning("SSH login failed: username and password are required")
            return False

        client = paramiko.SSHClient()
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
        try:
            client.connect(
                self.server,
                port=self.port,
                username=username,
                password=password,
                timeout=self.timeout,
                banner_timeout=self.timeout,
                auth_timeout=self.timeout,
                allow_agent=False,
                look_for_keys=False,
            )
            channel = client.invoke_shell()
            banner = self._read_banner(channel)
        except paramiko.AuthenticationException:
            return False
        except (paramiko.SSHException, OSError) as e:
            logger.warning(f"ssh login to {self.server} failed. Error was: {e}")
            return False
        finally:
            client.close()

        return bool(BANNER_PATTERN.search(banner))
