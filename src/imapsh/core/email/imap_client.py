"""
IMAP transport for imapsh.

Wraps the imapclient library behind the operations the browser needs:
folder selection, search/sort, batched metadata and flag fetches, body
part retrieval and the folder/message mutations. Server responses are
converted into the data models of `imapsh.data.models.message`.
"""

import ssl
import threading
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence, TypeVar, Union

import imapclient
from imapclient import exceptions as imap_exceptions

from ...data.models.accounts import Account, SecurityType
from ...data.models.message import (
    Address, BodyStructure, Envelope, MailboxIdentity, MessageMetadata,
)
from ...utils.logging_setup import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

DELETED = "\\Deleted"

METADATA_ITEMS = ["ENVELOPE", "BODYSTRUCTURE", "FLAGS"]


class IMAPClientError(Exception):
    """IMAP transport error. The message names the failed operation."""
    pass


class SelectError(IMAPClientError):
    """A folder could not be selected."""
    pass


def _text(value: Any) -> Optional[str]:
    """Convert a response atom to str, keeping None for NIL."""
    if value is None:
        return None
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _params(value: Any) -> Dict[str, str]:
    """Convert a BODYSTRUCTURE parameter list (k1, v1, k2, v2...) to a dict."""
    if not isinstance(value, (tuple, list)):
        return {}
    items = [_text(v) or "" for v in value]
    return {items[i].lower(): items[i + 1] for i in range(0, len(items) - 1, 2)}


def to_body_structure(body: Any) -> BodyStructure:
    """
    Convert an imapclient BodyData tree into a BodyStructure.

    Args:
        body: BODYSTRUCTURE value from a FETCH response.

    Returns:
        BodyStructure: Equivalent part tree.
    """
    if body.is_multipart:
        children = tuple(to_body_structure(part) for part in body[0])
        subtype = (_text(body[1]) or "mixed").lower()
        params = _params(body[2]) if len(body) > 2 else {}
        return BodyStructure(type="multipart", subtype=subtype, params=params, children=children)

    encoding = _text(body[5]) if len(body) > 5 else None
    return BodyStructure(
        type=(_text(body[0]) or "text").lower(),
        subtype=(_text(body[1]) or "plain").lower(),
        encoding=encoding.lower() if encoding else None,
        params=_params(body[2]),
    )


def to_envelope(envelope: Any) -> Envelope:
    """
    Convert an imapclient Envelope into an Envelope.

    Args:
        envelope: ENVELOPE value from a FETCH response, or None.

    Returns:
        Envelope: Date, raw subject and From addresses.
    """
    if envelope is None:
        return Envelope(date=None, subject=None)
    senders = tuple(
        Address(name=_text(a.name), mailbox=_text(a.mailbox), host=_text(a.host))
        for a in (envelope.from_ or ())
    )
    return Envelope(date=envelope.date, subject=_text(envelope.subject), from_=senders)


def to_flags(flags: Optional[Iterable[Any]]) -> FrozenSet[str]:
    """Convert a FLAGS response to a frozenset of str."""
    return frozenset(_text(f) for f in (flags or ()))


class IMAPClient:
    """
    IMAP client for one account and one selected folder at a time.

    Every server failure is raised as IMAPClientError naming the attempted
    operation; nothing is retried.
    """

    def __init__(self, account: Account, password: str, timeout: float = 30.0):
        """
        Initialize IMAP client.

        Args:
            account: Account to connect to.
            password: Login password.
            timeout: Socket timeout in seconds.
        """
        self.account_info = account
        self._password = password
        self.timeout = timeout
        self.imap: Optional[imapclient.IMAPClient] = None
        self.current_folder: Optional[str] = None
        self.message_count = 0
        self._generation: Optional[int] = None
        self.logger = logger
        self._lock = threading.Lock()

    # Identity accessors

    @property
    def account(self) -> str:
        return self.account_info.username

    @property
    def server(self) -> str:
        return self.account_info.server

    @property
    def generation(self) -> Optional[int]:
        """UIDVALIDITY of the selected folder, None before the first select."""
        return self._generation

    def identity(self) -> MailboxIdentity:
        """
        Get the cache partition key of the selected folder.

        Returns:
            MailboxIdentity: Account, server, folder and UIDVALIDITY.

        Raises:
            IMAPClientError: If no folder is selected.
        """
        if self.current_folder is None or self._generation is None:
            raise IMAPClientError("No folder selected")
        return MailboxIdentity(
            account=self.account,
            server=self.server,
            folder=self.current_folder,
            generation=self._generation,
        )

    # Connection management

    def connect(self) -> None:
        """
        Connect and log in to the IMAP server.

        Raises:
            IMAPClientError: If the connection or login fails.
        """
        acct = self.account_info
        try:
            context = ssl.create_default_context()
            if acct.security == SecurityType.TLS_SSL:
                conn = imapclient.IMAPClient(
                    acct.server, port=acct.port, ssl=True, ssl_context=context, timeout=self.timeout
                )
            else:
                conn = imapclient.IMAPClient(acct.server, port=acct.port, ssl=False, timeout=self.timeout)
                if acct.security == SecurityType.STARTTLS:
                    conn.starttls(context)

            conn.login(acct.username, self._password)
        except (imap_exceptions.IMAPClientError, OSError) as e:
            raise IMAPClientError(f"connect to {acct.server}:{acct.port} failed: {e}") from e

        self.imap = conn
        self.logger.info(f"Connected to IMAP server {acct.server}:{acct.port} as {acct.username}")

    def disconnect(self) -> None:
        """Log out. Errors while logging out are only logged."""
        if self.imap is None:
            return
        try:
            self.imap.logout()
        except (imap_exceptions.IMAPClientError, OSError) as e:
            self.logger.debug(f"Logout failed: {e}")
        finally:
            self.imap = None
            self.current_folder = None
            self._generation = None
        self.logger.info("Disconnected from IMAP server")

    def is_connected(self) -> bool:
        return self.imap is not None

    def _conn(self) -> imapclient.IMAPClient:
        if self.imap is None:
            raise IMAPClientError("Not connected to server")
        return self.imap

    def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        """Run one library call, translating its errors."""
        with self._lock:
            try:
                return func(*args)
            except (imap_exceptions.IMAPClientError, OSError, ValueError) as e:
                self.logger.error(f"{operation} failed: {e}")
                raise IMAPClientError(f"{operation} failed: {e}") from e

    # Folders

    def select_folder(self, name: str) -> int:
        """
        Select a folder for reading and writing.

        Args:
            name: Folder name.

        Returns:
            int: The folder's UIDVALIDITY.

        A failed SELECT leaves the server with no mailbox selected, so the
        previous folder is selected again. If that fails too, no folder is
        selected afterwards.

        Raises:
            SelectError: If the folder does not exist or cannot be opened.
        """
        conn = self._conn()
        with self._lock:
            try:
                response = conn.select_folder(name)
            except (imap_exceptions.IMAPClientError, OSError) as e:
                self.logger.error(f"select {name!r} failed: {e}")
                self._reselect_previous(conn)
                raise SelectError(f"select {name!r} failed: {e}") from e

        generation = response.get(b"UIDVALIDITY")
        if generation is None:
            with self._lock:
                self._reselect_previous(conn)
            raise SelectError(f"select {name!r} failed: server sent no UIDVALIDITY")

        self.current_folder = name
        self._generation = int(generation)
        self.message_count = int(response.get(b"EXISTS", 0))
        self.logger.info(f"Selected {name} ({self.message_count} messages, UIDVALIDITY {self._generation})")
        return self._generation

    def _reselect_previous(self, conn: imapclient.IMAPClient) -> None:
        """Select the previously selected folder again after a failed select."""
        previous = self.current_folder
        if previous is None:
            return
        try:
            response = conn.select_folder(previous)
            generation = response.get(b"UIDVALIDITY")
            if generation is None:
                raise SelectError("server sent no UIDVALIDITY")
        except (imap_exceptions.IMAPClientError, OSError, SelectError) as e:
            self.logger.error(f"Reselecting {previous} failed, no folder selected: {e}")
            self.current_folder = None
            self._generation = None
            self.message_count = 0
            return

        self._generation = int(generation)
        self.message_count = int(response.get(b"EXISTS", 0))
        self.logger.info(f"Reselected {previous} (UIDVALIDITY {self._generation})")

    def list_folders(self) -> List[str]:
        """Names of all folders."""
        folders = self._run("list folders", self._conn().list_folders)
        return [name for _flags, _delimiter, name in folders]

    def list_subscribed_folders(self) -> List[str]:
        """Names of subscribed folders."""
        folders = self._run("list subscribed folders", self._conn().list_sub_folders)
        return [name for _flags, _delimiter, name in folders]

    def create_folder(self, name: str) -> None:
        self._run(f"create {name!r}", self._conn().create_folder, name)
        self.logger.info(f"Created folder {name}")

    def rename_folder(self, old_name: str, new_name: str) -> None:
        self._run(f"rename {old_name!r}", self._conn().rename_folder, old_name, new_name)
        self.logger.info(f"Renamed folder {old_name} to {new_name}")

    def delete_folder(self, name: str) -> None:
        self._run(f"delete {name!r}", self._conn().delete_folder, name)
        self.logger.info(f"Deleted folder {name}")

    # Search

    def search_and_sort(
        self,
        criteria: Optional[Union[str, Sequence[str]]] = None,
        sort_key: Optional[str] = "REVERSE DATE",
    ) -> List[int]:
        """
        Search the selected folder and order the result.

        Uses server-side SORT when available. Without it, UIDs are ordered
        ascending, or descending when the sort key starts with REVERSE.

        Args:
            criteria: IMAP search criteria; None or empty means ALL.
            sort_key: IMAP sort key such as "REVERSE DATE" or "FROM".

        Returns:
            List[int]: UIDs in display order.
        """
        conn = self._conn()
        criteria = criteria or ["ALL"]
        if sort_key and conn.has_capability("SORT"):
            return list(self._run("sort", conn.sort, sort_key.split(), criteria))

        uids = sorted(self._run("search", conn.search, criteria, "UTF-8"))
        if sort_key and sort_key.upper().startswith("REVERSE"):
            uids.reverse()
        return uids

    # Fetch

    def fetch_metadata_batch(self, ids: Sequence[int]) -> Dict[int, MessageMetadata]:
        """
        Fetch envelope, body structure and flags for several messages.

        Args:
            ids: Message UIDs.

        Returns:
            Dict[int, MessageMetadata]: Metadata for every requested UID.

        Raises:
            IMAPClientError: If the fetch fails or any UID is missing from
                the response; nothing is returned in that case.
        """
        uids = list(ids)
        if not uids:
            return {}
        response = self._run("fetch metadata", self._conn().fetch, uids, METADATA_ITEMS)

        missing = [uid for uid in uids if uid not in response]
        if missing:
            raise IMAPClientError(f"fetch metadata failed: no data for UIDs {missing}")

        try:
            return {
                uid: MessageMetadata(
                    envelope=to_envelope(response[uid].get(b"ENVELOPE")),
                    structure=to_body_structure(response[uid][b"BODYSTRUCTURE"]),
                    flags=to_flags(response[uid].get(b"FLAGS")),
                )
                for uid in uids
            }
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise IMAPClientError(f"fetch metadata failed: unexpected response: {e!r}") from e

    def fetch_flags_batch(self, ids: Sequence[int]) -> Dict[int, FrozenSet[str]]:
        """
        Fetch current flags for several messages.

        Args:
            ids: Message UIDs.

        Returns:
            Dict[int, FrozenSet[str]]: Flags per UID still present on the server.
        """
        uids = list(ids)
        if not uids:
            return {}
        response = self._run("fetch flags", self._conn().get_flags, uids)
        return {uid: to_flags(flags) for uid, flags in response.items()}

    def fetch_body_part(self, uid: int, part_path: str) -> bytes:
        """
        Fetch the raw bytes of one body section without setting \\Seen.

        Args:
            uid: Message UID.
            part_path: IMAP section, e.g. "1" or "2".

        Returns:
            bytes: Section content, still transfer-encoded.
        """
        response = self._run(
            f"fetch part {part_path} of {uid}", self._conn().fetch, [uid], [f"BODY.PEEK[{part_path}]"]
        )
        data = response.get(uid, {})
        key = f"BODY[{part_path}]".encode()
        if key not in data:
            raise IMAPClientError(f"fetch part {part_path} of {uid} failed: not in response")
        return data[key] or b""

    # Message mutations

    def delete_messages(self, ids: Sequence[int]) -> None:
        """Mark messages \\Deleted."""
        self._run("delete messages", self._conn().add_flags, list(ids), [DELETED])
        self.logger.info(f"Marked {len(ids)} messages deleted in {self.current_folder}")

    def restore_messages(self, ids: Sequence[int]) -> None:
        """Clear \\Deleted from messages."""
        self._run("restore messages", self._conn().remove_flags, list(ids), [DELETED])
        self.logger.info(f"Restored {len(ids)} messages in {self.current_folder}")

    def copy_messages(self, ids: Sequence[int], dest_folder: str) -> None:
        self._run(f"copy to {dest_folder!r}", self._conn().copy, list(ids), dest_folder)
        self.logger.info(f"Copied {len(ids)} messages to {dest_folder}")

    def expunge_current_folder(self) -> None:
        """Permanently remove messages marked \\Deleted."""
        if self.current_folder is None:
            raise IMAPClientError("expunge failed: no folder selected")
        self._run("expunge", self._conn().expunge)
        self.logger.info(f"Expunged {self.current_folder}")

    def __enter__(self) -> "IMAPClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()
