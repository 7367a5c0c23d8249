"""
Application configuration management for the imapsh mailbox browser.
"""

import os
import toml
from pathlib import Path
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field

from ..data.models.accounts import Account, SecurityType, default_port


class AccountConfig(BaseModel):
    """Connection settings for the IMAP account."""

    name: str = Field(default="default", description="Account label shown in logs")
    username: str = Field(default="", description="IMAP login name")
    server: str = Field(default="", description="IMAP server host name")
    port: int = Field(default=0, description="IMAP port, 0 for the standard port of the security mode")
    security: SecurityType = Field(default=SecurityType.TLS_SSL, description="'tls_ssl', 'starttls' or 'none'")
    folder: str = Field(default="INBOX", description="Folder selected after connecting")

    def to_account(self) -> Account:
        """
        Resolve these settings into an Account.

        Returns:
            Account: Account with the port filled in.
        """
        return Account(
            name=self.name,
            username=self.username,
            server=self.server,
            port=self.port or default_port(self.security),
            security=self.security,
        )


class DisplayConfig(BaseModel):
    """Message list and view settings. Adjustable at runtime with `set`."""

    date_format: str = Field(default="%Y-%m-%d %H:%M", description="strftime pattern for list dates")
    sort: str = Field(default="REVERSE DATE", description="IMAP SORT key used by search")
    page_size: int = Field(default=10, ge=1, description="Lines shown by one list command")


class AppConfig:
    """
    Main application configuration class.

    Manages loading, saving, and accessing configuration settings from TOML files.
    """

    def __init__(self, config_dir: Optional[Path] = None):
        """
        Initialize application configuration.

        Args:
            config_dir: Custom configuration directory. If None, uses default.
        """
        self.config_dir = config_dir or self._get_default_config_dir()
        self.config_file = self.config_dir / "imapsh.toml"

        self.account = AccountConfig()
        self.display = DisplayConfig()

        self.config_dir.mkdir(parents=True, exist_ok=True)
        self.load()

    def _get_default_config_dir(self) -> Path:
        """
        Get the default configuration directory based on the operating system.

        Returns:
            Path: Default configuration directory.
        """
        if os.name == "posix":
            xdg_config = os.environ.get("XDG_CONFIG_HOME")
            if xdg_config:
                return Path(xdg_config) / "imapsh"
            return Path.home() / ".config" / "imapsh"
        return Path.home() / ".imapsh"

    def load(self) -> None:
        """
        Load configuration from TOML file.

        Creates default configuration if file doesn't exist.
        """
        if not self.config_file.exists():
            self.save()
            return

        try:
            with open(self.config_file, "r", encoding="utf-8") as f:
                config_data = toml.load(f)

            if "account" in config_data:
                self.account = AccountConfig(**config_data["account"])
            if "display" in config_data:
                self.display = DisplayConfig(**config_data["display"])

        except Exception as e:
            print(f"Warning: Failed to load configuration: {e}")

    def save(self) -> None:
        """
        Save current configuration to TOML file.
        """
        config_data: Dict[str, Any] = {
            "account": self.account.model_dump(mode="json"),
            "display": self.display.model_dump(),
        }

        try:
            with open(self.config_file, "w", encoding="utf-8") as f:
                toml.dump(config_data, f)
        except Exception as e:
            print(f"Warning: Failed to save configuration: {e}")

    def get_data_dir(self) -> Path:
        """
        Get the data directory for log files.

        Returns:
            Path: Data directory path.
        """
        if os.name == "posix":
            xdg_data = os.environ.get("XDG_DATA_HOME")
            if xdg_data:
                data_dir = Path(xdg_data) / "imapsh"
            else:
                data_dir = Path.home() / ".local" / "share" / "imapsh"
        else:
            data_dir = Path.home() / ".imapsh" / "data"

        data_dir.mkdir(parents=True, exist_ok=True)
        return data_dir
