"""
Account data models for imapsh.

Defines the connection security modes and the account identity used to
reach an IMAP server and to look up its stored credentials.
"""

import enum
from dataclasses import dataclass


class SecurityType(enum.Enum):
    """Enumeration for connection security types."""
    NONE = "none"
    STARTTLS = "starttls"
    TLS_SSL = "tls_ssl"


IMAP_PORT = 143
IMAPS_PORT = 993


def default_port(security: SecurityType) -> int:
    """
    Get the standard IMAP port for a security mode.

    Args:
        security: Connection security type.

    Returns:
        int: 993 for implicit TLS, 143 otherwise.
    """
    return IMAPS_PORT if security == SecurityType.TLS_SSL else IMAP_PORT


@dataclass(frozen=True)
class Account:
    """
    Resolved account settings for one IMAP connection.

    Built from the configuration file and command line overrides.
    """
    name: str
    username: str
    server: str
    port: int
    security: SecurityType = SecurityType.TLS_SSL

    @property
    def credential_key(self) -> str:
        """Keyring key under which this account's password is stored."""
        return f"{self.username}@{self.server}"

    def __repr__(self) -> str:
        return f"<Account(name='{self.name}', username='{self.username}', server='{self.server}:{self.port}')>"
