"""Action handlers for change requests.

Every flag entry names an action: ``F()`` is the default review-flag
action, ``F(edit:FIELD)`` edits one field of the target, and further
actions can be registered from configuration as ``"module:function"``
strings.  The registry is resolved once when it is built; looking up a name
that was never registered raises ``UnknownActionError``.

Field edits share one compare-and-swap policy:

1. current == new               -> success, nothing changes
2. current == old               -> set new
3. mobile configured to win     -> set new
4. otherwise                    -> ``ConflictError``, nothing changes
"""

from __future__ import annotations

import importlib
import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from orgmobile_sync.config import Config
from orgmobile_sync.errors import (
    ActionExecutionError,
    ConflictError,
    SetupError,
    UnknownActionError,
)
from orgmobile_sync.outline.model import FLAGGED_TAG, Node
from orgmobile_sync.outline.parser import parse_heading
from orgmobile_sync.outline.store import DocumentStore

from .models import ChangeRequest, Target

logger = logging.getLogger(__name__)

ARCHIVE_SENTINEL = "DONEARCHIVE"
NOTE_PROPERTY = "THEFLAGGINGNOTE"

_TAG_SPLIT_RE = re.compile(r":+")
_LINE_BREAK_WS_RE = re.compile(r"[ \t]*\n[ \t]*")


@dataclass
class ActionContext:
    """Everything a handler needs to execute one request."""

    store: DocumentStore
    config: Config
    request: ChangeRequest
    target: Target

    @property
    def node(self) -> Node:
        """The target heading.

        Raises:
            ActionExecutionError: If the target is a whole file.
        """
        if self.target.node is None:
            raise ActionExecutionError(
                f"Target {self.request.link} is a file, not a heading"
            )
        return self.target.node

    def touch(self) -> None:
        self.target.document.modified = True


ActionHandler = Callable[[ActionContext], None]


# ---------------------------------------------------------------------------
# Field comparisons
# ---------------------------------------------------------------------------


def split_tags(value: str | None) -> list[str]:
    if not value:
        return []
    return [t for t in _TAG_SPLIT_RE.split(value.strip()) if t]


def tags_equal(a: str | None, b: str | None) -> bool:
    return not set(split_tags(a)) ^ set(split_tags(b))


def normalize_body(value: str) -> str:
    return _LINE_BREAK_WS_RE.sub("\n", value.strip())


def bodies_equal(a: str | None, b: str | None) -> bool:
    """Compare bodies ignoring surrounding blank lines and per-line padding."""
    if a == b:
        return True
    if a is None or b is None:
        return not (a or b or "").strip()
    return normalize_body(a) == normalize_body(b)


def _empty_as_none(value: str | None) -> str | None:
    return value if value else None


def exact_equal(a: str | None, b: str | None) -> bool:
    return _empty_as_none(a) == _empty_as_none(b)


def _quote(value: str | None) -> str:
    return value if value is not None else ""


def check_field(
    ctx: ActionContext,
    field_name: str,
    current: str | None,
    equal: Callable[[str | None, str | None], bool],
    message: str,
) -> bool:
    """Apply the shared edit policy.

    Returns:
        ``True`` if the new value must be written, ``False`` for a no-op.

    Raises:
        ConflictError: If the old-value snapshot does not match and the
            mobile value is not configured to win.
    """
    old, new = ctx.request.old, ctx.request.new
    if equal(current, new):
        logger.debug("%s already has the requested value", field_name)
        return False
    if equal(current, old):
        return True
    if ctx.config.mobile.remote_wins(field_name):
        logger.info(
            "Overriding %s on '%s' with the mobile value", field_name, ctx.node.title
        )
        return True
    raise ConflictError(field_name, message)


# ---------------------------------------------------------------------------
# Field handlers
# ---------------------------------------------------------------------------


def edit_todo(ctx: ActionContext) -> None:
    node = ctx.node
    current = node.todo
    if not check_field(
        ctx,
        "todo",
        current,
        exact_equal,
        f'State before change was expected as "{_quote(ctx.request.old)}", '
        f'but is "{_quote(current)}"',
    ):
        return
    doc = ctx.target.document
    if ctx.request.new == ARCHIVE_SENTINEL:
        ctx.store.set_todo(doc, node, ctx.store.done_keyword(doc, node))
        ctx.store.archive_subtree(doc, node)
        return
    ctx.store.set_todo(doc, node, ctx.request.new)


def edit_tags(ctx: ActionContext) -> None:
    node = ctx.node
    current = ":".join(node.tags)
    if not check_field(
        ctx,
        "tags",
        current,
        tags_equal,
        f'Tags before change were expected as "{_quote(ctx.request.old)}", '
        f'but are "{current}"',
    ):
        return
    node.tags = split_tags(ctx.request.new)
    ctx.touch()


def edit_priority(ctx: ActionContext) -> None:
    node = ctx.node
    current = node.priority
    if not check_field(
        ctx,
        "priority",
        current,
        exact_equal,
        f'Priority was expected to be "{_quote(ctx.request.old)}", '
        f'but is "{_quote(current)}"',
    ):
        return
    new = ctx.request.new
    if new and not re.fullmatch(r"[A-Z0-9]", new):
        raise ActionExecutionError(f"Invalid priority '{new}'")
    node.priority = new or None
    ctx.touch()


def edit_heading(ctx: ActionContext) -> None:
    node = ctx.node
    current = node.title
    if not check_field(
        ctx,
        "heading",
        current,
        exact_equal,
        f'Heading was expected as "{_quote(ctx.request.old)}", '
        f'but is "{current}"',
    ):
        return
    if not ctx.request.new:
        raise ActionExecutionError("No new heading text given")
    node.title = ctx.request.new
    ctx.touch()


def edit_body(ctx: ActionContext) -> None:
    node = ctx.node
    if not check_field(
        ctx,
        "body",
        node.body,
        bodies_equal,
        "Body was changed on the mobile device and on the computer",
    ):
        return
    new = ctx.request.new
    node.body = new.rstrip("\n") + "\n" if new else ""
    ctx.touch()


def add_heading(ctx: ActionContext) -> None:
    """Insert the new value as a child of the target, or top level for a file."""
    text = (ctx.request.new or "").strip()
    if not text:
        raise ActionExecutionError("No heading text given for addheading")
    doc = ctx.target.document
    keywords = {
        kw for seq in ctx.store.sequences_for(doc) for kw in seq.keywords
    }
    first, _, rest = text.partition("\n")
    _, todo, priority, title, tags = parse_heading(  # type: ignore[misc]
        "* " + first, keywords
    )
    child = Node(level=1, title=title, todo=todo, priority=priority, tags=tags)
    if rest.strip():
        child.body = rest.rstrip() + "\n"
    doc.append_child(ctx.target.node, child)
    logger.info("Added heading '%s' in %s", title, doc.path.name)


FIELD_HANDLERS: dict[str, ActionHandler] = {
    "todo": edit_todo,
    "tags": edit_tags,
    "priority": edit_priority,
    "heading": edit_heading,
    "body": edit_body,
    "addheading": add_heading,
}


# ---------------------------------------------------------------------------
# Actions
# ---------------------------------------------------------------------------


def flag_action(ctx: ActionContext) -> None:
    """Tag the target for review and keep the note, if any, as a property."""
    node = ctx.node
    if FLAGGED_TAG not in node.tags:
        node.tags.append(FLAGGED_TAG)
    note = ctx.request.note
    if note:
        node.properties[NOTE_PROPERTY] = note.replace("\n", "\\n")
    ctx.touch()


def edit_action(ctx: ActionContext) -> None:
    """Dispatch ``F(edit:FIELD)`` to the field handler."""
    handler = FIELD_HANDLERS.get(ctx.request.payload or "")
    if handler is None:
        raise ActionExecutionError(
            f"Unknown edit field '{ctx.request.payload or ''}'"
        )
    handler(ctx)


@dataclass
class RegisteredAction:
    name: str
    handler: ActionHandler
    kind: str  # "flag", "edit" or "other"


@dataclass
class ActionRegistry:
    """Name -> handler table for flag entries."""

    actions: dict[str, RegisteredAction] = field(default_factory=dict)

    def register(
        self, name: str, handler: ActionHandler, kind: str = "other"
    ) -> None:
        self.actions[name] = RegisteredAction(name, handler, kind)

    def get(self, name: str) -> RegisteredAction:
        try:
            return self.actions[name]
        except KeyError:
            raise UnknownActionError(name) from None

    def names(self) -> list[str]:
        return sorted(self.actions)

    @classmethod
    def from_config(cls, config: Config) -> ActionRegistry:
        """Build the table with the built-in actions plus configured ones.

        Raises:
            SetupError: If a configured handler cannot be imported.
        """
        registry = cls()
        registry.register("", flag_action, kind="flag")
        registry.register("edit", edit_action, kind="edit")
        for name, target in config.mobile.actions.items():
            registry.register(name, load_handler(name, target))
        return registry


def load_handler(name: str, target: str) -> ActionHandler:
    """Import ``"package.module:function"``."""
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise SetupError(
            f"Action '{name}': handler must be 'module:function', got '{target}'"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise SetupError(f"Action '{name}': cannot import {module_name}: {exc}") from exc
    handler = getattr(module, attr, None)
    if not callable(handler):
        raise SetupError(f"Action '{name}': {target} is not callable")
    return handler
