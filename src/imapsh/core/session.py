"""
Session controller for imapsh.

Owns everything that lives for one browsing session: the selected folder
state, the ordered listing from the last search, the pagination cursor and
the metadata cache. Shell commands call one method each.
"""

import enum
import shutil
from typing import Callable, List, Optional, Sequence, Tuple

from pydantic import ValidationError

from ..config.app_config import DisplayConfig
from ..data.models.message import MessageMetadata
from ..utils.logging_setup import get_logger
from .cache_manager import MetadataCache
from .email.imap_client import IMAPClientError
from .email.mime_decoder import MessageRenderError, extract_plain_text
from .line_formatter import decode_header_text, format_line, sender_name
from .uid_resolver import ResolvedRange, resolve

logger = get_logger(__name__)


class SessionState(enum.Enum):
    """Session lifecycle."""
    DISCONNECTED = "disconnected"
    FOLDER_SELECTED = "folder_selected"
    LISTING_ACTIVE = "listing_active"


class SessionError(Exception):
    """A command cannot run in the current session state."""
    pass


def _terminal_width() -> int:
    return shutil.get_terminal_size().columns


class SessionController:
    """
    Orchestrates reference resolution, caching and rendering.

    Failed transport calls leave the listing, cursor and cache as they were.
    """

    def __init__(
        self,
        transport,
        display: Optional[DisplayConfig] = None,
        terminal_width: Optional[Callable[[], int]] = None,
    ):
        """
        Initialize the session.

        Args:
            transport: IMAP transport (see IMAPClient).
            display: Display settings; changed at runtime with set_option.
            terminal_width: Callable returning the current terminal width.
        """
        self.transport = transport
        self.cache = MetadataCache(transport)
        self.display = display or DisplayConfig()
        self.terminal_width = terminal_width or _terminal_width
        self.state = SessionState.DISCONNECTED
        self.listing: Tuple[int, ...] = ()
        self.cursor = 0
        self.known_folders: List[str] = []
        self.logger = logger

    # State helpers

    def _require_folder(self) -> None:
        if self.state == SessionState.DISCONNECTED:
            raise SessionError("No folder selected")

    def _require_listing(self) -> None:
        """Run the default search when the folder has no listing yet."""
        self._require_folder()
        if self.state == SessionState.FOLDER_SELECTED:
            self.search()

    def _resolve(self, reference: Optional[str]) -> ResolvedRange:
        self._require_listing()
        return resolve(reference, self.listing)

    # Folder selection and search

    def connect(self, folder: str = "INBOX") -> int:
        """
        Connect the transport if needed and select the first folder.

        Args:
            folder: Folder to select.

        Returns:
            int: Number of messages in the folder.
        """
        if not self.transport.is_connected():
            self.transport.connect()
        return self.select(folder)

    def select(self, folder: str) -> int:
        """
        Select a folder. The previous listing is discarded.

        When the select fails the listing is kept only if the transport
        still has the previous folder open with the same UIDVALIDITY.

        Args:
            folder: Folder name.

        Returns:
            int: Number of messages in the folder.
        """
        previous_generation = self.transport.generation
        try:
            self.transport.select_folder(folder)
        except IMAPClientError:
            if self.transport.current_folder is None:
                self._reset_listing(SessionState.DISCONNECTED)
            elif self.transport.generation != previous_generation:
                self._reset_listing(SessionState.FOLDER_SELECTED)
            raise
        self._reset_listing(SessionState.FOLDER_SELECTED)
        return self.transport.message_count

    def _reset_listing(self, state: SessionState) -> None:
        self.listing = ()
        self.cursor = 0
        self.state = state

    def search(self, terms: Sequence[str] = ()) -> int:
        """
        Replace the listing with a new search result.

        Args:
            terms: IMAP search criteria tokens; empty means ALL.

        Returns:
            int: Number of messages found.
        """
        self._require_folder()
        uids = self.transport.search_and_sort(list(terms) or None, self.display.sort)
        self.listing = tuple(uids)
        self.cursor = 0
        self.state = SessionState.LISTING_ACTIVE
        self.logger.info(f"Search {' '.join(terms) or 'ALL'} found {len(uids)} messages")
        return len(uids)

    # Listing

    def list_page(self) -> List[str]:
        """
        Render the page of the listing that starts at the cursor.

        The cursor is not moved.

        Returns:
            List[str]: One formatted line per message.
        """
        self._require_listing()
        page = self.listing[self.cursor:self.cursor + self.display.page_size]
        self.cache.ensure_populated(page)

        width = self.terminal_width()
        return [
            format_line(uid, self.cursor + offset + 1, self.cache.get(uid), width, self.display.date_format)
            for offset, uid in enumerate(page)
        ]

    def next_page(self) -> List[str]:
        """Advance the cursor one page and render it."""
        self._require_listing()
        if self.cursor + self.display.page_size >= len(self.listing):
            raise SessionError("Already at the last page")
        self.cursor += self.display.page_size
        return self.list_page()

    def prev_page(self) -> List[str]:
        """Move the cursor back one page and render it."""
        self._require_listing()
        self.cursor = max(0, self.cursor - self.display.page_size)
        return self.list_page()

    # Viewing

    def view(self, reference: Optional[str]) -> List[str]:
        """
        Render messages as header block plus plain-text body.

        A message that cannot be rendered yields an error line instead of
        failing the whole command.

        Args:
            reference: `n` or `n-m`.

        Returns:
            List[str]: One rendered block per message found.
        """
        resolved = self._resolve(reference)
        self.cache.ensure_populated(resolved.ids)

        blocks = []
        for index, uid in resolved.positions():
            meta = self.cache.get(uid)
            try:
                body = extract_plain_text(self.transport, uid, meta.structure)
            except MessageRenderError as e:
                self.logger.warning(f"Cannot render UID {uid}: {e}")
                blocks.append(f"[{index}] cannot display message: {e}")
                continue
            blocks.append(self._header_block(meta) + "\n\n" + body)
        return blocks

    def _header_block(self, meta: MessageMetadata) -> str:
        envelope = meta.envelope
        sender = envelope.from_[0] if envelope.from_ else None
        from_line = sender_name(sender)
        if sender is not None and sender.mailbox and sender.host:
            address = f"{sender.mailbox}@{sender.host}"
            if from_line != address:
                from_line = f"{from_line} <{address}>"

        date = envelope.date.strftime(self.display.date_format) if envelope.date else ""
        return "\n".join((
            f"From: {from_line}",
            f"Subject: {decode_header_text(envelope.subject)}",
            f"Date: {date}",
        ))

    # Folder mutations

    def folders(self, subscribed: bool = False) -> List[str]:
        """
        List folder names. The full list is remembered for completion.

        Args:
            subscribed: Only subscribed folders.
        """
        if subscribed:
            return self.transport.list_subscribed_folders()
        self.known_folders = self.transport.list_folders()
        return list(self.known_folders)

    def create_folder(self, name: str) -> None:
        self.transport.create_folder(name)
        if name not in self.known_folders:
            self.known_folders.append(name)

    def rename_folder(self, old_name: str, new_name: str) -> None:
        self.transport.rename_folder(old_name, new_name)
        self.known_folders = [new_name if f == old_name else f for f in self.known_folders]

    def delete_folder(self, name: str) -> None:
        self.transport.delete_folder(name)
        self.known_folders = [f for f in self.known_folders if f != name]

    # Message mutations

    def copy(self, reference: Optional[str], folder: str) -> int:
        """
        Copy referenced messages to another folder.

        Returns:
            int: Number of messages copied.
        """
        resolved = self._resolve(reference)
        if resolved:
            self.transport.copy_messages(resolved.ids, folder)
        return len(resolved)

    def delete(self, reference: Optional[str]) -> int:
        """
        Mark referenced messages deleted and refresh their cached flags.

        Returns:
            int: Number of messages marked.
        """
        resolved = self._resolve(reference)
        if resolved:
            self.transport.delete_messages(resolved.ids)
            self.cache.refresh_flags(resolved.ids)
        return len(resolved)

    def restore(self, reference: Optional[str]) -> int:
        """
        Clear the deleted mark and refresh cached flags.

        Returns:
            int: Number of messages restored.
        """
        resolved = self._resolve(reference)
        if resolved:
            self.transport.restore_messages(resolved.ids)
            self.cache.refresh_flags(resolved.ids)
        return len(resolved)

    def expunge(self) -> None:
        self._require_folder()
        self.transport.expunge_current_folder()

    def sync(self) -> None:
        """Forget cached metadata of the selected folder."""
        self._require_folder()
        self.cache.invalidate()

    # Settings

    def set_option(self, key: str, value: str) -> None:
        """
        Change a display setting for this session.

        Args:
            key: DisplayConfig field name.
            value: New value, validated by DisplayConfig.

        Raises:
            SessionError: For unknown keys or invalid values.
        """
        if key not in DisplayConfig.model_fields:
            raise SessionError(f"Unknown setting {key!r}")
        try:
            self.display = DisplayConfig.model_validate({**self.display.model_dump(), key: value})
        except ValidationError as e:
            raise SessionError(f"Invalid value for {key}: {e.errors()[0]['msg']}") from e
        self.logger.info(f"Set {key} = {value!r}")
