"""
Unit tests for the IMAP transport.

The imapclient connection is replaced with a mock; response values are
built with imapclient's own response types.
"""

from datetime import datetime
from unittest.mock import MagicMock, patch

import pytest
from imapclient import exceptions as imap_exceptions
from imapclient.response_types import Address as IMAPAddress
from imapclient.response_types import BodyData
from imapclient.response_types import Envelope as IMAPEnvelope

from imapsh.core.email.imap_client import (
    IMAPClient, IMAPClientError, SelectError, to_body_structure, to_envelope, to_flags,
)
from imapsh.data.models.accounts import Account, SecurityType

PLAIN_PART = (b"TEXT", b"PLAIN", (b"CHARSET", b"UTF-8"), None, None, b"QUOTED-PRINTABLE", 120, 4)
HTML_PART = (b"TEXT", b"HTML", (b"CHARSET", b"UTF-8"), None, None, b"BASE64", 300, 6)


def imap_envelope(subject=b"Hello", name=b"Alice Example"):
    return IMAPEnvelope(
        date=datetime(2024, 3, 5, 14, 7),
        subject=subject,
        from_=(IMAPAddress(name=name, route=None, mailbox=b"alice", host=b"example.com"),),
        sender=None,
        reply_to=None,
        to=None,
        cc=None,
        bcc=None,
        in_reply_to=None,
        message_id=b"<1@example.com>",
    )


def make_account(security=SecurityType.TLS_SSL, port=993):
    return Account(name="work", username="alice", server="imap.example.com", port=port, security=security)


class TestConversions:
    """Test response conversion helpers."""

    def test_single_part_structure(self):
        """Test a text/plain body structure."""
        structure = to_body_structure(BodyData.create(PLAIN_PART))
        assert (structure.type, structure.subtype) == ("text", "plain")
        assert structure.encoding == "quoted-printable"
        assert structure.charset == "UTF-8"
        assert not structure.is_multipart

    def test_multipart_structure(self):
        """Test children keep their server order."""
        response = (HTML_PART, PLAIN_PART, b"ALTERNATIVE", (b"BOUNDARY", b"b1"), None, None)
        structure = to_body_structure(BodyData.create(response))
        assert structure.is_multipart
        assert structure.subtype == "alternative"
        assert [c.subtype for c in structure.children] == ["html", "plain"]
        assert structure.children[0].encoding == "base64"

    def test_envelope(self):
        """Test the envelope keeps raw subject and sender parts."""
        envelope = to_envelope(imap_envelope(subject=b"=?utf-8?q?Gr=C3=BC=C3=9Fe?="))
        assert envelope.subject == "=?utf-8?q?Gr=C3=BC=C3=9Fe?="
        assert envelope.date == datetime(2024, 3, 5, 14, 7)
        assert envelope.from_[0].name == "Alice Example"
        assert envelope.from_[0].mailbox == "alice"
        assert envelope.from_[0].host == "example.com"

    def test_nil_fields(self):
        """Test NIL subject and name stay None."""
        envelope = to_envelope(imap_envelope(subject=None, name=None))
        assert envelope.subject is None
        assert envelope.from_[0].name is None

    def test_missing_envelope(self):
        """Test a response without ENVELOPE."""
        envelope = to_envelope(None)
        assert envelope.subject is None
        assert envelope.from_ == ()

    def test_flags(self):
        """Test flags become strings."""
        assert to_flags((b"\\Seen", b"\\Flagged")) == frozenset({"\\Seen", "\\Flagged"})
        assert to_flags(None) == frozenset()


class TestConnection:
    """Test connecting with each security mode."""

    @patch("imapclient.IMAPClient")
    def test_tls_connect(self, mock_imap):
        """Test implicit TLS connects with ssl and logs in."""
        client = IMAPClient(make_account(), "secret")
        client.connect()

        args, kwargs = mock_imap.call_args
        assert args == ("imap.example.com",)
        assert kwargs["port"] == 993
        assert kwargs["ssl"] is True
        mock_imap.return_value.login.assert_called_once_with("alice", "secret")
        assert client.is_connected()

    @patch("imapclient.IMAPClient")
    def test_starttls_connect(self, mock_imap):
        """Test STARTTLS upgrades a plain connection before login."""
        client = IMAPClient(make_account(SecurityType.STARTTLS, 143), "secret")
        client.connect()

        assert mock_imap.call_args.kwargs["ssl"] is False
        mock_imap.return_value.starttls.assert_called_once()
        mock_imap.return_value.login.assert_called_once()

    @patch("imapclient.IMAPClient")
    def test_plain_connect(self, mock_imap):
        """Test no security makes no TLS upgrade."""
        IMAPClient(make_account(SecurityType.NONE, 143), "secret").connect()
        mock_imap.return_value.starttls.assert_not_called()

    @patch("imapclient.IMAPClient")
    def test_login_failure(self, mock_imap):
        """Test a rejected login is reported as a transport error."""
        mock_imap.return_value.login.side_effect = imap_exceptions.LoginError("bad credentials")
        client = IMAPClient(make_account(), "wrong")

        with pytest.raises(IMAPClientError, match="connect to imap.example.com:993 failed"):
            client.connect()
        assert not client.is_connected()

    @patch("imapclient.IMAPClient")
    def test_network_failure(self, mock_imap):
        """Test socket errors are reported as transport errors."""
        mock_imap.side_effect = ConnectionRefusedError("refused")
        with pytest.raises(IMAPClientError):
            IMAPClient(make_account(), "secret").connect()

    @patch("imapclient.IMAPClient")
    def test_disconnect(self, mock_imap):
        """Test disconnect logs out and forgets the folder."""
        client = IMAPClient(make_account(), "secret")
        client.connect()
        client.disconnect()
        mock_imap.return_value.logout.assert_called_once()
        assert not client.is_connected()
        assert client.current_folder is None

    def test_not_connected(self):
        """Test operations before connect fail cleanly."""
        with pytest.raises(IMAPClientError):
            IMAPClient(make_account(), "secret").list_folders()


class TestOperations:
    """Test operations on a connected client."""

    def setup_method(self):
        """Set up a client whose connection is a mock."""
        self.conn = MagicMock()
        self.conn.select_folder.return_value = {b"UIDVALIDITY": 1700, b"EXISTS": 3}
        self.client = IMAPClient(make_account(), "secret")
        self.client.imap = self.conn

    def test_identity_needs_selected_folder(self):
        """Test identity before select."""
        with pytest.raises(IMAPClientError):
            self.client.identity()

    def test_select_sets_identity(self):
        """Test select records folder, UIDVALIDITY and count."""
        assert self.client.select_folder("INBOX") == 1700
        identity = self.client.identity()
        assert (identity.account, identity.server, identity.folder, identity.generation) == (
            "alice", "imap.example.com", "INBOX", 1700,
        )
        assert self.client.message_count == 3

    def test_select_failure_reselects_previous(self):
        """Test a failed select opens the previous folder again on the server."""
        inbox = {b"UIDVALIDITY": 1700, b"EXISTS": 3}
        self.conn.select_folder.side_effect = [
            inbox,
            imap_exceptions.IMAPClientError("NO such mailbox"),
            inbox,
        ]
        self.client.select_folder("INBOX")
        with pytest.raises(SelectError, match="select 'Nope' failed"):
            self.client.select_folder("Nope")

        assert self.conn.select_folder.call_args_list[-1].args == ("INBOX",)
        assert self.client.current_folder == "INBOX"
        assert self.client.identity().generation == 1700

    def test_select_failure_and_reselect_failure(self):
        """Test no folder is selected when the previous one cannot be reopened."""
        self.conn.select_folder.side_effect = [
            {b"UIDVALIDITY": 1700, b"EXISTS": 3},
            imap_exceptions.IMAPClientError("NO such mailbox"),
            imap_exceptions.IMAPClientError("NO mailbox gone"),
        ]
        self.client.select_folder("INBOX")
        with pytest.raises(SelectError):
            self.client.select_folder("Nope")

        assert self.client.current_folder is None
        with pytest.raises(IMAPClientError):
            self.client.identity()

    def test_first_select_failure(self):
        """Test a failed first select makes no second call."""
        self.conn.select_folder.side_effect = imap_exceptions.IMAPClientError("NO such mailbox")
        with pytest.raises(SelectError):
            self.client.select_folder("Nope")
        assert self.conn.select_folder.call_count == 1
        assert self.client.current_folder is None

    def test_sort_when_supported(self):
        """Test server-side SORT is used when advertised."""
        self.conn.has_capability.return_value = True
        self.conn.sort.return_value = [9, 4, 7]
        assert self.client.search_and_sort(None, "REVERSE DATE") == [9, 4, 7]
        self.conn.sort.assert_called_once_with(["REVERSE", "DATE"], ["ALL"])

    def test_search_fallback_reverse(self):
        """Test descending UID order without SORT."""
        self.conn.has_capability.return_value = False
        self.conn.search.return_value = [3, 1, 2]
        assert self.client.search_and_sort(["UNSEEN"], "REVERSE DATE") == [3, 2, 1]
        self.conn.search.assert_called_once_with(["UNSEEN"], "UTF-8")

    def test_search_fallback_non_ascii(self):
        """Test free text outside ASCII is searched as UTF-8 without SORT."""
        self.conn.has_capability.return_value = False
        self.conn.search.return_value = [4]
        assert self.client.search_and_sort(["TEXT", "café"], "REVERSE DATE") == [4]
        self.conn.search.assert_called_once_with(["TEXT", "café"], "UTF-8")

    def test_encoding_error_becomes_transport_error(self):
        """Test criteria the library cannot encode fail only that command."""
        self.conn.has_capability.return_value = False
        self.conn.search.side_effect = UnicodeEncodeError("ascii", "café", 3, 4, "ordinal not in range(128)")
        with pytest.raises(IMAPClientError, match="search failed"):
            self.client.search_and_sort(["TEXT", "café"])

    def test_search_fallback_ascending(self):
        """Test ascending UID order without SORT."""
        self.conn.has_capability.return_value = False
        self.conn.search.return_value = [3, 1, 2]
        assert self.client.search_and_sort(None, "DATE") == [1, 2, 3]

    def test_fetch_metadata(self):
        """Test metadata conversion for each UID."""
        self.conn.fetch.return_value = {
            5: {
                b"ENVELOPE": imap_envelope(),
                b"BODYSTRUCTURE": BodyData.create(PLAIN_PART),
                b"FLAGS": (b"\\Seen",),
            },
        }
        result = self.client.fetch_metadata_batch([5])
        assert result[5].envelope.subject == "Hello"
        assert result[5].structure.subtype == "plain"
        assert result[5].flags == frozenset({"\\Seen"})

    def test_fetch_metadata_missing_uid(self):
        """Test a UID absent from the response fails the whole batch."""
        self.conn.fetch.return_value = {
            5: {b"ENVELOPE": imap_envelope(), b"BODYSTRUCTURE": BodyData.create(PLAIN_PART), b"FLAGS": ()},
        }
        with pytest.raises(IMAPClientError, match="no data for UIDs \\[6\\]"):
            self.client.fetch_metadata_batch([5, 6])

    def test_fetch_metadata_empty(self):
        """Test an empty request makes no server call."""
        assert self.client.fetch_metadata_batch([]) == {}
        self.conn.fetch.assert_not_called()

    def test_fetch_flags(self):
        """Test flag fetch uses get_flags."""
        self.conn.get_flags.return_value = {1: (b"\\Deleted",)}
        assert self.client.fetch_flags_batch([1]) == {1: frozenset({"\\Deleted"})}

    def test_fetch_body_part_peeks(self):
        """Test part fetch uses BODY.PEEK and returns the section bytes."""
        self.conn.fetch.return_value = {8: {b"BODY[2]": b"SGVsbG8="}}
        assert self.client.fetch_body_part(8, "2") == b"SGVsbG8="
        self.conn.fetch.assert_called_once_with([8], ["BODY.PEEK[2]"])

    def test_fetch_body_part_missing(self):
        """Test a response without the section."""
        self.conn.fetch.return_value = {}
        with pytest.raises(IMAPClientError):
            self.client.fetch_body_part(8, "1")

    def test_delete_and_restore(self):
        """Test deleted flag changes."""
        self.client.delete_messages([1, 2])
        self.conn.add_flags.assert_called_once_with([1, 2], ["\\Deleted"])
        self.client.restore_messages([2])
        self.conn.remove_flags.assert_called_once_with([2], ["\\Deleted"])

    def test_error_names_operation(self):
        """Test server errors name the attempted operation."""
        self.conn.copy.side_effect = imap_exceptions.IMAPClientError("NO [TRYCREATE]")
        with pytest.raises(IMAPClientError, match="copy to 'Archive' failed"):
            self.client.copy_messages([1], "Archive")

    def test_list_folders(self):
        """Test folder names are taken from LIST responses."""
        self.conn.list_folders.return_value = [((b"\\HasNoChildren",), b"/", "INBOX"), ((), b"/", "Archive")]
        assert self.client.list_folders() == ["INBOX", "Archive"]

    def test_expunge_needs_folder(self):
        """Test expunge before select."""
        with pytest.raises(IMAPClientError):
            self.client.expunge_current_folder()
