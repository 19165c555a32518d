# jtree_release.py
# Ownership/release walker.
#
# Gives back every owned piece of a document exactly once, mirroring what
# the builder allocated: text payloads, array blocks with their element
# names and texts, nested nodes, value names, the values themselves, each
# node's value storage, node names and the nodes.
#
# Each value kind has one payload releaser in _RELEASERS. Reaching something
# that was already released raises InvariantViolation, so a node handle
# shared between two parents can never be released twice.

import logging
from typing import Any, Callable, Dict

from jtree_errors import InvariantViolation
from jtree_values import ArrayBlock, Document, Node, Value, ValueKind

logger = logging.getLogger(__name__)


class ReleaseWalker:
    """Recursive release of nodes, values and array blocks against one ledger."""

    def __init__(self, ledger):
        self.ledger = ledger

    def _release_text(self, text: str):
        self.ledger.release("text")

    def _release_inline(self, number):
        pass

    def release_value(self, value: Value):
        if value.released:
            raise InvariantViolation(f"value {value.name!r} released twice")
        if value.kind is not None:
            _RELEASERS[value.kind](self, value._payload)
            value._payload = None
        if value.name is not None:
            self.ledger.release("name")
        if not value.inline:
            self.ledger.release("value")
        value.released = True

    def release_block(self, block: ArrayBlock):
        if block.released:
            raise InvariantViolation("array block released twice")
        for element in block._elements:
            if element.kind in (ValueKind.ARRAY, ValueKind.OBJECT):
                raise InvariantViolation(f"array element {element.name!r} is {element.kind.name}")
            self.release_value(element)
        self.ledger.release("block")
        block._elements = []
        block.released = True

    def release_node(self, node: Node):
        if node.released:
            raise InvariantViolation(f"node {node.name!r} released twice")
        # Marked before the walk so a node inside its own subtree is caught
        node.released = True
        values = node._values
        if values is not None:
            for value in values:
                self.release_value(value)
            self.ledger.release("sequence")
        if node.name is not None:
            self.ledger.release("name")
        self.ledger.release("node")
        node._values = None


_RELEASERS: Dict[ValueKind, Callable[[ReleaseWalker, Any], None]] = {
    ValueKind.STRING: ReleaseWalker._release_text,
    ValueKind.NULL: ReleaseWalker._release_text,
    ValueKind.BOOLEAN: ReleaseWalker._release_text,
    ValueKind.NUMBER: ReleaseWalker._release_inline,
    ValueKind.FLOAT: ReleaseWalker._release_inline,
    ValueKind.DOUBLE: ReleaseWalker._release_inline,
    ValueKind.ARRAY: ReleaseWalker.release_block,
    ValueKind.OBJECT: ReleaseWalker.release_node,
}


def release_document(document: Document):
    """Release everything the document owns. The document is unusable afterwards."""
    ledger = document.ledger
    root = document.detach_root()
    ReleaseWalker(ledger).release_node(root)
    logger.debug("released document, %d allocations outstanding", ledger.outstanding)
