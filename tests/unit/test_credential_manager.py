"""
Unit tests for keyring credential storage.
"""

from unittest.mock import patch

import keyring.errors
import pytest

from imapsh.core.email.credential_manager import CredentialManager, CredentialStorageError
from imapsh.data.models.accounts import Account

ACCOUNT = Account(name="work", username="alice", server="imap.example.com", port=993)


class TestCredentialManager:
    """Test CredentialManager with the keyring mocked."""

    def setup_method(self):
        """Set up a credential manager."""
        self.manager = CredentialManager()

    @patch("keyring.set_password")
    def test_store_password(self, mock_set):
        """Test passwords are stored under user@server."""
        self.manager.store_password(ACCOUNT, "secret")
        mock_set.assert_called_once_with("imapsh", "alice@imap.example.com", "secret")

    @patch("keyring.set_password", side_effect=keyring.errors.KeyringError("locked"))
    def test_store_failure(self, mock_set):
        """Test a keyring failure on store is raised."""
        with pytest.raises(CredentialStorageError):
            self.manager.store_password(ACCOUNT, "secret")

    @patch("keyring.get_password", return_value="secret")
    def test_retrieve_password(self, mock_get):
        """Test a stored password is returned."""
        assert self.manager.retrieve_password(ACCOUNT) == "secret"
        mock_get.assert_called_once_with("imapsh", "alice@imap.example.com")

    @patch("keyring.get_password", return_value=None)
    def test_retrieve_missing(self, mock_get):
        """Test no stored password."""
        assert self.manager.retrieve_password(ACCOUNT) is None

    @patch("keyring.get_password", side_effect=keyring.errors.NoKeyringError("no backend"))
    def test_retrieve_without_keyring(self, mock_get):
        """Test an unavailable keyring reads as no password."""
        assert self.manager.retrieve_password(ACCOUNT) is None

    @patch("keyring.delete_password")
    def test_delete_password(self, mock_delete):
        """Test deleting a stored password."""
        assert self.manager.delete_password(ACCOUNT) is True
        mock_delete.assert_called_once_with("imapsh", "alice@imap.example.com")

    @patch("keyring.delete_password", side_effect=keyring.errors.PasswordDeleteError("not found"))
    def test_delete_missing(self, mock_delete):
        """Test deleting a password that is not stored."""
        assert self.manager.delete_password(ACCOUNT) is False
