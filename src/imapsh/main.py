#!/usr/bin/env python3
"""
imapsh - Main Application Entry Point

Connects to the configured IMAP account and starts the interactive shell.
"""

import argparse
import getpass
import sys
from pathlib import Path
from typing import List, Optional

from .cli.shell import Shell
from .config.app_config import AppConfig
from .core.email.credential_manager import CredentialManager, CredentialStorageError
from .core.email.imap_client import IMAPClient, IMAPClientError
from .core.session import SessionController
from .data.models.accounts import Account, SecurityType
from .utils.logging_setup import get_logger, setup_logging


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse command line options. Options override the configuration file.

    Args:
        argv: Arguments without the program name; sys.argv when None.

    Returns:
        argparse.Namespace: Parsed options.
    """
    parser = argparse.ArgumentParser(prog="imapsh", description="Interactive IMAP mailbox browser")
    parser.add_argument("--account", help="account label used in logs")
    parser.add_argument("--server", help="IMAP server host name")
    parser.add_argument("--port", type=int, help="IMAP port (default: 993 for tls_ssl, 143 otherwise)")
    parser.add_argument(
        "--security",
        choices=[s.value for s in SecurityType],
        help="connection security mode",
    )
    parser.add_argument("--user", help="IMAP login name")
    parser.add_argument("--folder", help="folder to open first")
    parser.add_argument("--config-dir", type=Path, help="directory holding imapsh.toml")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="log file verbosity",
    )
    parser.add_argument("--save-password", action="store_true", help="store the entered password in the keyring")
    parser.add_argument("--forget-password", action="store_true", help="remove the stored password and exit")
    return parser.parse_args(argv)


def resolve_account(config: AppConfig, args: argparse.Namespace) -> Account:
    """
    Apply command line overrides to the configured account.

    Args:
        config: Loaded configuration.
        args: Parsed options.

    Returns:
        Account: Account to connect to.
    """
    overrides = {
        "name": args.account,
        "server": args.server,
        "port": args.port,
        "security": SecurityType(args.security) if args.security else None,
        "username": args.user,
        "folder": args.folder,
    }
    account_config = config.account.model_copy(
        update={key: value for key, value in overrides.items() if value is not None}
    )
    config.account = account_config
    return account_config.to_account()


def obtain_password(account: Account, credentials: CredentialManager, save: bool) -> str:
    """
    Get the account password from the keyring, or prompt for it.

    Args:
        account: Account to log in to.
        credentials: Keyring access.
        save: Store a prompted password in the keyring.

    Returns:
        str: Password.
    """
    password = credentials.retrieve_password(account)
    if password is not None:
        return password

    password = getpass.getpass(f"Password for {account.credential_key}: ")
    if save:
        try:
            credentials.store_password(account, password)
        except CredentialStorageError as e:
            print(f"Warning: {e}", file=sys.stderr)
    return password


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main application entry point.

    Returns:
        int: Exit code (0 for success, non-zero for error).
    """
    args = parse_args(argv)
    config = AppConfig(config_dir=args.config_dir)
    setup_logging(args.log_level, log_file=config.get_data_dir() / "logs" / "imapsh.log")
    logger = get_logger(__name__)

    account = resolve_account(config, args)
    credentials = CredentialManager()

    if args.forget_password:
        return 0 if credentials.delete_password(account) else 1

    if not account.server or not account.username:
        print("No server or user configured; use --server and --user "
              f"or edit {config.config_file}", file=sys.stderr)
        return 1

    password = obtain_password(account, credentials, args.save_password)
    transport = IMAPClient(account, password)
    session = SessionController(transport, display=config.display)

    try:
        count = session.connect(config.account.folder)
    except IMAPClientError as e:
        logger.error(f"Startup failed: {e}")
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Connected to {account.server}, {config.account.folder} has {count} messages. Type 'help' for commands.")
    try:
        Shell(session).run()
    finally:
        transport.disconnect()
    logger.info("Session ended")
    return 0


if __name__ == "__main__":
    sys.exit(main())
