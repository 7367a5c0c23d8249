"""
Interactive command shell for imapsh.

Reads command lines with prompt_toolkit, checks argument counts, and
dispatches each command to one SessionController call.
"""

import enum
import shlex
import sys
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, TextIO

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.document import Document

from ..config.app_config import DisplayConfig
from ..core.email.imap_client import IMAPClientError
from ..core.session import SessionController, SessionError
from ..core.uid_resolver import MalformedReference, is_reference
from ..utils.logging_setup import get_logger

logger = get_logger(__name__)

# First words that make a search line raw IMAP criteria rather than free text
IMAP_SEARCH_KEYS = frozenset((
    "ALL", "ANSWERED", "BCC", "BEFORE", "BODY", "CC", "DELETED", "DRAFT", "FLAGGED",
    "FROM", "HEADER", "KEYWORD", "LARGER", "NEW", "NOT", "OLD", "ON", "OR", "RECENT",
    "SEEN", "SENTBEFORE", "SENTON", "SENTSINCE", "SINCE", "SMALLER", "SUBJECT", "TEXT",
    "TO", "UID", "UNANSWERED", "UNDELETED", "UNDRAFT", "UNFLAGGED", "UNKEYWORD", "UNSEEN",
))


class Command(enum.Enum):
    """Every command the shell accepts."""
    SEARCH = "search"
    LIST = "list"
    NEXT = "next"
    PREV = "prev"
    SELECT = "select"
    FOLDERS = "folders"
    VIEW = "view"
    CREATE = "create"
    RENAME = "rename"
    COPY = "copy"
    DELETE = "delete"
    RESTORE = "restore"
    EXPUNGE = "expunge"
    SYNC = "sync"
    SET = "set"
    HELP = "help"
    QUIT = "quit"


@dataclass(frozen=True)
class CommandSpec:
    """Usage text and accepted argument counts of a command."""
    usage: str
    summary: str
    min_args: int = 0
    max_args: Optional[int] = 0


COMMANDS: Dict[Command, CommandSpec] = {
    Command.SEARCH: CommandSpec("search [criteria...]", "search the folder and list the first page", 0, None),
    Command.LIST: CommandSpec("list", "list the current page"),
    Command.NEXT: CommandSpec("next", "list the next page"),
    Command.PREV: CommandSpec("prev", "list the previous page"),
    Command.SELECT: CommandSpec("select <folder>", "open another folder", 1, 1),
    Command.FOLDERS: CommandSpec("folders [subscribed]", "list folders", 0, 1),
    Command.VIEW: CommandSpec("view <n|n-m>", "show messages as plain text", 1, 1),
    Command.CREATE: CommandSpec("create <folder>", "create a folder", 1, 1),
    Command.RENAME: CommandSpec("rename <old> <new>", "rename a folder", 2, 2),
    Command.COPY: CommandSpec("copy [n|n-m] <folder>", "copy messages to a folder", 1, 2),
    Command.DELETE: CommandSpec("delete <n|n-m|folder>", "mark messages deleted, or delete a folder", 1, 1),
    Command.RESTORE: CommandSpec("restore [n|n-m]", "clear the deleted mark", 0, 1),
    Command.EXPUNGE: CommandSpec("expunge", "remove deleted messages for good"),
    Command.SYNC: CommandSpec("sync", "drop cached message data for this folder"),
    Command.SET: CommandSpec("set [<key> <value>]", "show or change a display setting", 0, 2),
    Command.HELP: CommandSpec("help", "show this list"),
    Command.QUIT: CommandSpec("quit", "leave imapsh"),
}

FOLDER_ARG_COMMANDS = frozenset((Command.SELECT, Command.COPY, Command.RENAME, Command.DELETE))


def search_criteria(words: List[str]) -> List[str]:
    """
    Turn search arguments into IMAP criteria.

    Words starting with a search key are passed through; anything else is
    a free-text search.
    """
    if not words or words[0].upper() in IMAP_SEARCH_KEYS:
        return words
    return ["TEXT", " ".join(words)]


class ShellCompleter(Completer):
    """Completes command names, folder names and setting keys."""

    def __init__(self, session: SessionController):
        self.session = session

    def _candidates(self, words: List[str], new_word: bool) -> Iterable[str]:
        if len(words) == 0 or (len(words) == 1 and not new_word):
            return [command.value for command in Command]
        try:
            command = Command(words[0].lower())
        except ValueError:
            return []

        arg_position = len(words) if new_word else len(words) - 1
        if command == Command.SET and arg_position == 1:
            return list(DisplayConfig.model_fields)
        if command in FOLDER_ARG_COMMANDS:
            return self.session.known_folders
        return []

    def get_completions(self, document: Document, complete_event) -> Iterable[Completion]:
        text = document.text_before_cursor
        words = text.split()
        new_word = not text or text[-1].isspace()
        prefix = "" if new_word else words[-1]

        for candidate in self._candidates(words, new_word):
            if candidate.startswith(prefix):
                yield Completion(candidate, start_position=-len(prefix))


class Shell:
    """
    Command loop around a SessionController.

    Expected failures (bad references, transport errors, wrong state) are
    printed and the loop continues.
    """

    def __init__(self, session: SessionController, out: Optional[TextIO] = None):
        """
        Initialize the shell.

        Args:
            session: Session the commands operate on.
            out: Output stream, stdout by default.
        """
        self.session = session
        self.out = out or sys.stdout
        self.logger = logger
        self._handlers: Dict[Command, Callable[[List[str]], Optional[bool]]] = {
            Command.SEARCH: self._do_search,
            Command.LIST: self._do_list,
            Command.NEXT: self._do_next,
            Command.PREV: self._do_prev,
            Command.SELECT: self._do_select,
            Command.FOLDERS: self._do_folders,
            Command.VIEW: self._do_view,
            Command.CREATE: self._do_create,
            Command.RENAME: self._do_rename,
            Command.COPY: self._do_copy,
            Command.DELETE: self._do_delete,
            Command.RESTORE: self._do_restore,
            Command.EXPUNGE: self._do_expunge,
            Command.SYNC: self._do_sync,
            Command.SET: self._do_set,
            Command.HELP: self._do_help,
            Command.QUIT: self._do_quit,
        }

    def _print(self, text: str = "") -> None:
        print(text, file=self.out)

    def _print_lines(self, lines: List[str], empty: str) -> None:
        if not lines:
            self._print(empty)
        for line in lines:
            self._print(line)

    def prompt_text(self) -> str:
        folder = getattr(self.session.transport, "current_folder", None)
        return f"{folder or 'imapsh'}> "

    def execute(self, line: str) -> bool:
        """
        Run one command line.

        Args:
            line: Text typed by the user.

        Returns:
            bool: False when the shell should exit.
        """
        try:
            words = shlex.split(line)
        except ValueError as e:
            self._print(f"Error: {e}")
            return True
        if not words:
            return True

        try:
            command = Command(words[0].lower())
        except ValueError:
            self._print(f"Unknown command: {words[0]} (try 'help')")
            return True

        spec = COMMANDS[command]
        args = words[1:]
        if len(args) < spec.min_args or (spec.max_args is not None and len(args) > spec.max_args):
            self._print(f"Usage: {spec.usage}")
            return True

        try:
            return self._handlers[command](args) is not False
        except MalformedReference as e:
            self._print(f"Bad message reference: {e}")
        except (SessionError, IMAPClientError) as e:
            self.logger.warning(f"{command.value} failed: {e}")
            self._print(f"Error: {e}")
        return True

    def run(self) -> None:
        """Read and execute commands until quit or end of input."""
        prompt = PromptSession(completer=ShellCompleter(self.session))
        while True:
            try:
                line = prompt.prompt(self.prompt_text())
            except KeyboardInterrupt:
                continue
            except EOFError:
                break
            if not self.execute(line):
                break

    # Command handlers

    def _do_search(self, args: List[str]) -> None:
        count = self.session.search(search_criteria(args))
        self._print(f"{count} messages")
        if count:
            self._print_lines(self.session.list_page(), "No messages")

    def _do_list(self, args: List[str]) -> None:
        self._print_lines(self.session.list_page(), "No messages")

    def _do_next(self, args: List[str]) -> None:
        self._print_lines(self.session.next_page(), "No messages")

    def _do_prev(self, args: List[str]) -> None:
        self._print_lines(self.session.prev_page(), "No messages")

    def _do_select(self, args: List[str]) -> None:
        count = self.session.select(args[0])
        self._print(f"Selected {args[0]} ({count} messages)")

    def _do_folders(self, args: List[str]) -> None:
        subscribed = bool(args) and args[0].lower().startswith("sub")
        self._print_lines(self.session.folders(subscribed=subscribed), "No folders")

    def _do_view(self, args: List[str]) -> None:
        blocks = self.session.view(args[0])
        if not blocks:
            self._print("No such message")
        for n, block in enumerate(blocks):
            if n:
                self._print("-" * 40)
            self._print(block)

    def _do_create(self, args: List[str]) -> None:
        self.session.create_folder(args[0])
        self._print(f"Created folder {args[0]}")

    def _do_rename(self, args: List[str]) -> None:
        self.session.rename_folder(args[0], args[1])
        self._print(f"Renamed folder {args[0]} to {args[1]}")

    def _do_copy(self, args: List[str]) -> None:
        reference, folder = (None, args[0]) if len(args) == 1 else (args[0], args[1])
        count = self.session.copy(reference, folder)
        self._print(f"Copied {count} messages to {folder}")

    def _do_delete(self, args: List[str]) -> None:
        if is_reference(args[0]):
            count = self.session.delete(args[0])
            self._print(f"Marked {count} messages deleted")
        else:
            self.session.delete_folder(args[0])
            self._print(f"Deleted folder {args[0]}")

    def _do_restore(self, args: List[str]) -> None:
        count = self.session.restore(args[0] if args else None)
        self._print(f"Restored {count} messages")

    def _do_expunge(self, args: List[str]) -> None:
        self.session.expunge()
        self._print("Expunged deleted messages")

    def _do_sync(self, args: List[str]) -> None:
        self.session.sync()
        self._print("Cache cleared")

    def _do_set(self, args: List[str]) -> None:
        if not args:
            for key, value in self.session.display.model_dump().items():
                self._print(f"{key} = {value}")
            return
        if len(args) != 2:
            self._print(f"Usage: {COMMANDS[Command.SET].usage}")
            return
        self.session.set_option(args[0], args[1])

    def _do_help(self, args: List[str]) -> None:
        for spec in COMMANDS.values():
            self._print(f"  {spec.usage:<24} {spec.summary}")

    def _do_quit(self, args: List[str]) -> bool:
        return False
