"""
Credential storage for imapsh.

Keeps IMAP passwords in the system keyring, keyed by login and server.
"""

import keyring
import keyring.errors
from typing import Optional

from ...data.models.accounts import Account
from ...utils.logging_setup import get_logger

logger = get_logger(__name__)


class CredentialStorageError(Exception):
    """Exception raised when credential storage operations fail."""
    pass


class CredentialManager:
    """
    Manages account passwords in the system keyring.

    Lookup failures are logged and reported as "no stored password" so the
    caller can fall back to prompting.
    """

    SERVICE_NAME = "imapsh"

    def __init__(self):
        """Initialize the credential manager."""
        self.logger = logger

    def store_password(self, account: Account, password: str) -> None:
        """
        Store a password securely in the keyring.

        Args:
            account: Account the password belongs to.
            password: The password to store.

        Raises:
            CredentialStorageError: If password cannot be stored.
        """
        key = account.credential_key
        try:
            keyring.set_password(self.SERVICE_NAME, key, password)
        except keyring.errors.KeyringError as e:
            self.logger.error(f"Failed to store credential for {key}: {e}")
            raise CredentialStorageError(f"Failed to store credential: {e}") from e

        self.logger.info(f"Stored credential for {key}")

    def retrieve_password(self, account: Account) -> Optional[str]:
        """
        Retrieve a password from the keyring.

        Args:
            account: Account to look up.

        Returns:
            str: The stored password, or None if not found or the keyring
                is unavailable.
        """
        key = account.credential_key
        try:
            password = keyring.get_password(self.SERVICE_NAME, key)
        except keyring.errors.KeyringError as e:
            self.logger.warning(f"Failed to retrieve credential {key}: {e}")
            return None

        if password is None:
            self.logger.info(f"No stored credential for {key}")
        return password

    def delete_password(self, account: Account) -> bool:
        """
        Delete a password from the keyring.

        Args:
            account: Account whose password is removed.

        Returns:
            bool: True if deletion succeeded, False otherwise
        """
        key = account.credential_key
        try:
            keyring.delete_password(self.SERVICE_NAME, key)
        except keyring.errors.PasswordDeleteError as e:
            self.logger.warning(f"No credential to delete for {key}: {e}")
            return False
        except keyring.errors.KeyringError as e:
            self.logger.error(f"Failed to delete credential {key}: {e}")
            return False

        self.logger.info(f"Deleted credential: {key}")
        return True
