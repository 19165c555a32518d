# jtree_values.py
# Value model for parsed jtree documents.
#
# A Document owns one root Node. A Node owns an ordered sequence of Values.
# A Value is a tagged union: text kinds own their text, an Object owns a
# Node, an Array owns an ArrayBlock of scalar elements. Ownership is strictly
# one parent per child, so the tree is acyclic by construction.
#
# Every owned piece is counted in an AllocationLedger when it is created and
# again when the release walker (jtree_release.py) gives it back. A document
# that was built and then released leaves the ledger at zero outstanding.

from collections import Counter
from enum import IntEnum
from typing import Dict, Iterator, List, Optional, Union

from jtree_errors import InvariantViolation, ReleasedError, ValueKindError

ROOT_NAME = "root"


# ---------------------------------------------------------------------------
# VALUE KINDS
# ---------------------------------------------------------------------------
class ValueKind(IntEnum):
    STRING = 0
    NULL = 1
    BOOLEAN = 2
    NUMBER = 3
    FLOAT = 4
    DOUBLE = 5
    ARRAY = 6
    OBJECT = 7


# Kinds whose payload is owned text
TEXT_KINDS = frozenset({ValueKind.STRING, ValueKind.NULL, ValueKind.BOOLEAN})


def classify_literal(text: str) -> ValueKind:
    """
    Kind of an unquoted word. Exactly "true" or "false" is a Boolean,
    anything else (including "null") is a Null.
    """
    if text == "true" or text == "false":
        return ValueKind.BOOLEAN
    return ValueKind.NULL


def element_name(index: int) -> str:
    return f"#{index}"


# ---------------------------------------------------------------------------
# ALLOCATION LEDGER
# ---------------------------------------------------------------------------
class AllocationLedger:
    """
    Per-category allocation and release counters.

    Categories:
      node      a Node
      sequence  a Node's value storage, created on the first attach
      value     a member Value (array elements live inline in their block)
      name      a Node or Value name
      text      String/Null/Boolean payload text
      block     an ArrayBlock
    """
    CATEGORIES = ("node", "sequence", "value", "name", "text", "block")

    def __init__(self):
        self.allocated: Counter = Counter()
        self.released: Counter = Counter()

    def _check(self, category: str):
        if category not in self.CATEGORIES:
            raise InvariantViolation(f"unknown allocation category {category!r}")

    def allocate(self, category: str):
        self._check(category)
        self.allocated[category] += 1

    def release(self, category: str):
        self._check(category)
        if self.released[category] >= self.allocated[category]:
            raise InvariantViolation(f"{category} released without a matching allocation")
        self.released[category] += 1

    @property
    def total_allocated(self) -> int:
        return sum(self.allocated.values())

    @property
    def outstanding(self) -> int:
        return self.total_allocated - sum(self.released.values())

    def outstanding_by_category(self) -> Dict[str, int]:
        return {c: self.allocated[c] - self.released[c] for c in self.CATEGORIES}

    def summary(self) -> str:
        rows = [f"{c:<9} {self.allocated[c]:>6} {self.released[c]:>6}" for c in self.CATEGORIES]
        head = f"{'category':<9} {'alloc':>6} {'freed':>6}"
        return "\n".join([head] + rows + [f"outstanding {self.outstanding}"])


# ---------------------------------------------------------------------------
# VALUE
# ---------------------------------------------------------------------------
Payload = Union[str, int, float, "ArrayBlock", "Node", None]


class Value:
    """
    One typed datum with an optional name.

    A Value starts pending (kind is None) and receives its payload exactly
    once through one of the set_* methods.
    """
    __slots__ = ("kind", "name", "inline", "released", "_payload", "_ledger")

    def __init__(self, ledger: AllocationLedger, name: Optional[str] = None, inline: bool = False):
        self.kind: Optional[ValueKind] = None
        self.name = name
        self.inline = inline
        self.released = False
        self._payload: Payload = None
        self._ledger = ledger
        if not inline:
            ledger.allocate("value")
        if name is not None:
            ledger.allocate("name")

    def __repr__(self):
        kind = self.kind.name if self.kind is not None else "PENDING"
        return f"Value({self.name!r}, {kind}, {self._payload!r})"

    @property
    def pending(self) -> bool:
        return self.kind is None

    def _assign(self, kind: ValueKind, payload: Payload):
        if self.released:
            raise ReleasedError(f"value {self.name!r} has been released")
        if self.kind is not None:
            raise InvariantViolation(f"payload of value {self.name!r} set twice")
        self.kind = kind
        self._payload = payload

    def set_text(self, kind: ValueKind, text: str):
        if kind not in TEXT_KINDS:
            raise InvariantViolation(f"{kind.name} does not carry text")
        self._assign(kind, text)
        self._ledger.allocate("text")

    def set_number(self, number: int):
        self._assign(ValueKind.NUMBER, int(number))

    def set_float(self, number: float):
        self._assign(ValueKind.FLOAT, float(number))

    def set_double(self, number: float):
        self._assign(ValueKind.DOUBLE, float(number))

    def set_array(self, block: "ArrayBlock"):
        self._assign(ValueKind.ARRAY, block)

    def set_object(self, node: "Node"):
        self._assign(ValueKind.OBJECT, node)

    @property
    def payload(self) -> Payload:
        if self.released:
            raise ReleasedError(f"value {self.name!r} has been released")
        return self._payload

    def _expect(self, kind: ValueKind):
        payload = self.payload
        if self.kind is not kind:
            got = self.kind.name if self.kind is not None else "PENDING"
            raise ValueKindError(f"value {self.name!r} is {got}, not {kind.name}")
        return payload

    def as_string(self) -> str:
        return self._expect(ValueKind.STRING)

    def as_null(self) -> str:
        return self._expect(ValueKind.NULL)

    def as_boolean(self) -> str:
        return self._expect(ValueKind.BOOLEAN)

    def as_number(self) -> int:
        return self._expect(ValueKind.NUMBER)

    def as_float(self) -> float:
        return self._expect(ValueKind.FLOAT)

    def as_double(self) -> float:
        return self._expect(ValueKind.DOUBLE)

    def as_array(self) -> "ArrayBlock":
        return self._expect(ValueKind.ARRAY)

    def as_object(self) -> "Node":
        return self._expect(ValueKind.OBJECT)


# ---------------------------------------------------------------------------
# ARRAY BLOCK
# ---------------------------------------------------------------------------
class ArrayBlock:
    """
    Ordered block of scalar elements named #0, #1, ... by position.

    The block knows its own length; iteration ends after the last element.
    """
    __slots__ = ("released", "_elements", "_ledger")

    def __init__(self, ledger: AllocationLedger):
        self.released = False
        self._elements: List[Value] = []
        self._ledger = ledger
        ledger.allocate("block")

    def _new_element(self) -> Value:
        if self.released:
            raise ReleasedError("array block has been released")
        return Value(self._ledger, name=element_name(len(self._elements)), inline=True)

    def append_text(self, kind: ValueKind, text: str) -> Value:
        element = self._new_element()
        self._elements.append(element)
        element.set_text(kind, text)
        return element

    def append_number(self, number: int) -> Value:
        element = self._new_element()
        self._elements.append(element)
        element.set_number(number)
        return element

    def append_float(self, number: float) -> Value:
        element = self._new_element()
        self._elements.append(element)
        element.set_float(number)
        return element

    def _live(self) -> List[Value]:
        if self.released:
            raise ReleasedError("array block has been released")
        return self._elements

    def __len__(self):
        return len(self._live())

    def __iter__(self) -> Iterator[Value]:
        return iter(list(self._live()))

    def __getitem__(self, index: int) -> Value:
        return self._live()[index]

    def lookup(self, name: str) -> Value:
        for element in self._live():
            if element.name == name:
                return element
        raise KeyError(name)

    def __repr__(self):
        return f"ArrayBlock({len(self._elements)} elements)"


# ---------------------------------------------------------------------------
# NODE
# ---------------------------------------------------------------------------
class Node:
    """
    The member list of one object. Members keep parse order and are only
    ever appended.
    """
    __slots__ = ("name", "released", "_values", "_ledger")

    def __init__(self, ledger: AllocationLedger, name: Optional[str] = None):
        self.name = name
        self.released = False
        self._values: Optional[List[Value]] = None
        self._ledger = ledger
        ledger.allocate("node")
        if name is not None:
            ledger.allocate("name")

    def add_value(self, value: Value):
        if self.released:
            raise ReleasedError(f"node {self.name!r} has been released")
        if value.pending:
            raise InvariantViolation(f"value {value.name!r} attached before its payload was set")
        if value.inline:
            raise InvariantViolation("array elements cannot be attached to a node")
        if self._values is None:
            self._values = []
            self._ledger.allocate("sequence")
        self._values.append(value)

    def _live(self) -> List[Value]:
        if self.released:
            raise ReleasedError(f"node {self.name!r} has been released")
        return self._values or []

    @property
    def count(self) -> int:
        return len(self._live())

    def __len__(self):
        return self.count

    def __iter__(self) -> Iterator[Value]:
        return iter(tuple(self._live()))

    def names(self) -> List[Optional[str]]:
        return [v.name for v in self._live()]

    def get(self, name: str, default: Optional[Value] = None) -> Optional[Value]:
        for value in self._live():
            if value.name == name:
                return value
        return default

    def lookup(self, name: str) -> Value:
        value = self.get(name)
        if value is None:
            raise KeyError(name)
        return value

    __getitem__ = lookup

    def __contains__(self, name) -> bool:
        return self.get(name) is not None

    def __repr__(self):
        return f"Node({self.name!r}, {len(self._values or [])} members)"


# ---------------------------------------------------------------------------
# DOCUMENT
# ---------------------------------------------------------------------------
class Document:
    """
    A parsed document: one root Node named "root".

    Release it exactly once, either with release() or by using the document
    as a context manager.
    """
    __slots__ = ("ledger", "_root")

    def __init__(self, ledger: Optional[AllocationLedger] = None):
        self.ledger = ledger if ledger is not None else AllocationLedger()
        self._root: Optional[Node] = Node(self.ledger, name=ROOT_NAME)

    @property
    def released(self) -> bool:
        return self._root is None

    @property
    def root(self) -> Node:
        if self._root is None:
            raise ReleasedError("document has been released")
        return self._root

    def detach_root(self) -> Node:
        """Hand the root to the caller and invalidate this document."""
        root = self.root
        self._root = None
        return root

    def release(self):
        from jtree_release import release_document
        release_document(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if not self.released:
            self.release()
        return False

    def __getitem__(self, name: str) -> Value:
        return self.root.lookup(name)

    def __contains__(self, name) -> bool:
        return name in self.root

    def __iter__(self) -> Iterator[Value]:
        return iter(self.root)

    def __len__(self):
        return len(self.root)
