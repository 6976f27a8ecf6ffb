"""Canonical outline documents: model, Org parser/renderer, and store."""

from .model import FLAGGED_TAG, Node, OutlineDocument, TodoSequence
from .parser import parse_document, render_document
from .store import DocumentStore

__all__ = [
    "DocumentStore",
    "FLAGGED_TAG",
    "Node",
    "OutlineDocument",
    "TodoSequence",
    "parse_document",
    "render_document",
]
