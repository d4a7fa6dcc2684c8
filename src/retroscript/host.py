"""
Host collaborators reached by running scripts.

The engine never touches windows, files or sounds directly. It talks to the
abstract services below, bundled in HostServices. In-memory implementations
are provided for tests, headless use and the command line runner.
"""

import asyncio
import inspect
import itertools
import logging
import random
import time
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class HostError(Exception):
    """A collaborator failed; scripts see it as a catchable error."""
    pass


# =============================================================================
# State
# =============================================================================

class StateStore(ABC):
    """Shared desktop state addressed by dot paths such as `settings.theme`."""

    @abstractmethod
    def get(self, path: str) -> Any:
        pass

    @abstractmethod
    def set(self, path: str, value: Any) -> None:
        pass


class InMemoryStateStore(StateStore):
    """Nested dict state store."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self.data: Dict[str, Any] = dict(initial or {})

    def get(self, path: str) -> Any:
        node: Any = self.data
        for key in path.split("."):
            if isinstance(node, dict) and key in node:
                node = node[key]
            elif isinstance(node, list) and key.isdigit() and int(key) < len(node):
                node = node[int(key)]
            else:
                return None
        return node

    def set(self, path: str, value: Any) -> None:
        keys = path.split(".")
        node = self.data
        for key in keys[:-1]:
            child = node.get(key)
            if not isinstance(child, dict):
                child = {}
                node[key] = child
            node = child
        node[keys[-1]] = value


# =============================================================================
# Commands
# =============================================================================

class CommandDispatcher(ABC):
    """Application command catalog (app:launch, window:close, ...)."""

    @abstractmethod
    async def execute(self, name: str, args: Dict[str, Any]) -> Any:
        pass


CommandHandler = Callable[[Dict[str, Any]], Union[Any, Awaitable[Any]]]


class CommandRegistry(CommandDispatcher):
    """
    Dispatcher backed by registered handlers.

    Every executed command is recorded in `history`. Unknown commands are
    only recorded unless the registry was created with `strict=True`, in
    which case they raise HostError.
    """

    def __init__(self, strict: bool = False):
        self.handlers: Dict[str, CommandHandler] = {}
        self.history: List[Tuple[str, Dict[str, Any]]] = []
        self.strict = strict

    def register(self, name: str, handler: CommandHandler) -> None:
        self.handlers[name] = handler

    async def execute(self, name: str, args: Dict[str, Any]) -> Any:
        self.history.append((name, args))
        handler = self.handlers.get(name)
        if handler is None:
            if self.strict:
                raise HostError(f"unknown command '{name}'")
            logger.debug("command_unhandled", extra={"command": name})
            return None
        result = handler(args)
        if inspect.isawaitable(result):
            result = await result
        return result


# =============================================================================
# Events
# =============================================================================

EventHandler = Callable[[str, Any], None]


class EventBus(ABC):
    """Publish/subscribe bus shared between scripts and the desktop."""

    @abstractmethod
    def subscribe(self, pattern: str, handler: EventHandler) -> Any:
        """Register handler; returns a token for unsubscribe."""
        pass

    @abstractmethod
    def unsubscribe(self, token: Any) -> None:
        pass

    @abstractmethod
    def publish(self, name: str, payload: Any = None) -> None:
        pass


def event_matches(pattern: str, name: str) -> bool:
    """'*' matches everything; 'window:*' matches every 'window:' event."""
    if pattern == "*" or pattern == name:
        return True
    if pattern.endswith("*"):
        return name.startswith(pattern[:-1])
    return False


class LocalEventBus(EventBus):
    """
    In-process event bus with wildcard patterns and a bounded history.

    Handlers run synchronously in registration order. A failing handler is
    logged and does not stop delivery to the others.
    """

    def __init__(self, history_size: int = 200):
        self._subscribers: Dict[int, Tuple[str, EventHandler]] = {}
        self._ids = itertools.count(1)
        self.history: Deque[Tuple[str, Any]] = deque(maxlen=history_size)

    def subscribe(self, pattern: str, handler: EventHandler) -> int:
        token = next(self._ids)
        self._subscribers[token] = (pattern, handler)
        return token

    def unsubscribe(self, token: Any) -> None:
        self._subscribers.pop(token, None)

    def subscriber_count(self, pattern: Optional[str] = None) -> int:
        if pattern is None:
            return len(self._subscribers)
        return sum(1 for p, _ in self._subscribers.values() if p == pattern)

    def events(self, name: str) -> List[Any]:
        """Payloads of every recorded event with this exact name."""
        return [payload for event, payload in self.history if event == name]

    def publish(self, name: str, payload: Any = None) -> None:
        self.history.append((name, payload))
        for pattern, handler in list(self._subscribers.values()):
            if not event_matches(pattern, name):
                continue
            try:
                handler(name, payload)
            except Exception:
                logger.exception("event_handler_failed", extra={"event": name})


# =============================================================================
# Files
# =============================================================================

class FileAccess(ABC):
    """File system access with Windows-style paths such as C:/Users/User/a.txt."""

    @abstractmethod
    def read(self, path: str) -> str:
        pass

    @abstractmethod
    def write(self, path: str, content: str) -> None:
        pass

    @abstractmethod
    def mkdir(self, path: str) -> None:
        pass

    @abstractmethod
    def delete(self, path: str) -> None:
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        pass


def normalize_path(path: str) -> str:
    """Normalize separators and drive letter: c:\\a\\b -> C:/a/b."""
    path = path.replace("\\", "/").strip()
    parts = [p for p in path.split("/") if p not in ("", ".")]
    if parts and len(parts[0]) == 2 and parts[0][1] == ":":
        parts[0] = parts[0].upper()
    return "/".join(parts)


class InMemoryFileSystem(FileAccess):
    """Dict-backed file system; directories are tracked explicitly."""

    def __init__(self, files: Optional[Dict[str, str]] = None):
        self.files: Dict[str, str] = {}
        self.directories = {"C:"}
        for path, content in (files or {}).items():
            self.write(path, content)

    def _parent(self, path: str) -> str:
        return path.rsplit("/", 1)[0] if "/" in path else ""

    def read(self, path: str) -> str:
        key = normalize_path(path)
        if key not in self.files:
            raise HostError(f"file not found: {path}")
        return self.files[key]

    def write(self, path: str, content: str) -> None:
        key = normalize_path(path)
        if key in self.directories:
            raise HostError(f"is a directory: {path}")
        parent = self._parent(key)
        while parent:
            self.directories.add(parent)
            parent = self._parent(parent)
        self.files[key] = content

    def mkdir(self, path: str) -> None:
        key = normalize_path(path)
        if key in self.files:
            raise HostError(f"file exists: {path}")
        while key:
            self.directories.add(key)
            key = self._parent(key)

    def delete(self, path: str) -> None:
        key = normalize_path(path)
        if key in self.files:
            del self.files[key]
            return
        if key in self.directories:
            prefix = key + "/"
            if any(f.startswith(prefix) for f in self.files):
                raise HostError(f"directory not empty: {path}")
            self.directories.discard(key)
            return
        raise HostError(f"file not found: {path}")

    def exists(self, path: str) -> bool:
        key = normalize_path(path)
        return key in self.files or key in self.directories


class LocalFileSystem(FileAccess):
    """
    Real files under a sandbox root.

    `C:/Users/User/notes.txt` maps to `<root>/C/Users/User/notes.txt`.
    Paths that would escape the root are rejected.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        parts = PurePosixPath(normalize_path(path)).parts
        if parts and parts[0].endswith(":"):
            parts = (parts[0][:-1],) + parts[1:]
        target = self.root.joinpath(*parts).resolve()
        if target != self.root and self.root not in target.parents:
            raise HostError(f"path escapes sandbox: {path}")
        return target

    def read(self, path: str) -> str:
        target = self._resolve(path)
        try:
            return target.read_text(encoding="utf-8")
        except OSError as e:
            raise HostError(f"cannot read {path}: {e.strerror or e}") from e

    def write(self, path: str, content: str) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
        except OSError as e:
            raise HostError(f"cannot write {path}: {e.strerror or e}") from e

    def mkdir(self, path: str) -> None:
        try:
            self._resolve(path).mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise HostError(f"cannot create directory {path}: {e.strerror or e}") from e

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            if target.is_dir():
                target.rmdir()
            else:
                target.unlink()
        except OSError as e:
            raise HostError(f"cannot delete {path}: {e.strerror or e}") from e

    def exists(self, path: str) -> bool:
        return self._resolve(path).exists()


# =============================================================================
# Dialogs, clock and sound
# =============================================================================

class DialogService(ABC):
    """Modal dialogs. Each call suspends the script until the user answers."""

    @abstractmethod
    async def alert(self, message: str) -> None:
        pass

    @abstractmethod
    async def confirm(self, message: str) -> bool:
        pass

    @abstractmethod
    async def prompt(self, message: str, default: str = "") -> Optional[str]:
        pass


class HeadlessDialogs(DialogService):
    """Answers every dialog immediately with preset responses and records the messages."""

    def __init__(self, confirm_answer: bool = True, prompt_answer: Optional[str] = None):
        self.confirm_answer = confirm_answer
        self.prompt_answer = prompt_answer
        self.messages: List[Tuple[str, str]] = []

    async def alert(self, message: str) -> None:
        self.messages.append(("alert", message))

    async def confirm(self, message: str) -> bool:
        self.messages.append(("confirm", message))
        return self.confirm_answer

    async def prompt(self, message: str, default: str = "") -> Optional[str]:
        self.messages.append(("prompt", message))
        return self.prompt_answer if self.prompt_answer is not None else default


class Clock(ABC):

    @abstractmethod
    def now(self) -> float:
        """Wall-clock time in milliseconds since the epoch."""
        pass

    @abstractmethod
    def monotonic(self) -> float:
        """Monotonic seconds, used for the run budget."""
        pass

    @abstractmethod
    async def sleep(self, ms: float) -> None:
        pass


class SystemClock(Clock):

    def now(self) -> float:
        return time.time() * 1000.0

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, ms: float) -> None:
        await asyncio.sleep(max(0.0, ms) / 1000.0)


class SoundPlayer(ABC):

    @abstractmethod
    def play(self, sound: str) -> None:
        pass


class EventSoundPlayer(SoundPlayer):
    """Forwards sound requests to the desktop as `sound:play` events."""

    def __init__(self, events: EventBus):
        self.events = events

    def play(self, sound: str) -> None:
        self.events.publish("sound:play", {"type": sound})


@dataclass
class HostServices:
    """The full set of collaborators a script run may use."""
    state: StateStore
    commands: CommandDispatcher
    events: EventBus
    files: FileAccess
    dialogs: DialogService
    clock: Clock
    sound: SoundPlayer
    random: "random.Random" = field(default_factory=random.Random)
    environment: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def in_memory(cls, **overrides: Any) -> "HostServices":
        """Build a self-contained host; any service can be overridden by keyword."""
        events = overrides.pop("events", None) or LocalEventBus()
        services = dict(
            state=InMemoryStateStore(),
            commands=CommandRegistry(),
            events=events,
            files=InMemoryFileSystem(),
            dialogs=HeadlessDialogs(),
            clock=SystemClock(),
            sound=EventSoundPlayer(events),
        )
        services.update(overrides)
        return cls(**services)
