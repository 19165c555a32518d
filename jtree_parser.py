# jtree_parser.py
# Tree builder for the jtree JSON dialect.
#
# =============================================================================
#  BUILDER: NON-RECURSIVE STATE MACHINE
# =============================================================================
#
# The builder pulls tokens from the Tokenizer one at a time and switches on
# the lookahead. Two things carry the nesting:
#
#   mode    NAME (expecting a member name) or VALUE (expecting the value of
#           the member just named). It flips each time a name or a value
#           has been fully read.
#   stack   the enclosing parent Nodes. '{' in value position pushes the
#           current parent and makes the new Node the parent; '}' pops.
#
# The root '{' is consumed before the loop and is not pushed, so a '}' seen
# with an empty stack closes the root. Reaching the end of the buffer is the
# only way out of the loop; what is still open at that point is reported.
#
# Arrays are read by a separate routine into one ArrayBlock of scalars.
#
# All parsing state lives in a ParseContext built per call to parse(), so
# independent parses never share anything.
#
# Depth guard defaults to 256 enclosing objects below the root.
# =============================================================================

import argparse
import logging
import sys
from enum import Enum
from typing import Callable, Dict, List, Optional

from jtree_errors import (
    InvariantViolation,
    JSONTreeError,
    MalformedStructureError,
    ResourceLimitError,
    UnsupportedConstructError,
)
from jtree_lexer import TokenKind, Tokenizer, lex
from jtree_release import ReleaseWalker, release_document
from jtree_values import (
    AllocationLedger,
    ArrayBlock,
    Document,
    Node,
    Value,
    ValueKind,
    classify_literal,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# CONSTANTS AND TUNABLES
# ---------------------------------------------------------------------------
DEPTH_LIMIT_DEFAULT = 256   # enclosing objects below the root
NUMBER_DIGITS_MAX   = 31    # longest digit run accepted as a Number


class Mode(Enum):
    NAME = 0
    VALUE = 1


# ---------------------------------------------------------------------------
# PARENT STACK
# ---------------------------------------------------------------------------
class ParentStack:
    """Bounded stack of the Nodes enclosing the current parent."""

    def __init__(self, limit: int):
        if limit < 0:
            raise ValueError("depth limit must not be negative")
        self.limit = limit
        self._items: List[Node] = []

    def __len__(self):
        return len(self._items)

    def push(self, node: Node, offset: int):
        if len(self._items) >= self.limit:
            raise ResourceLimitError(
                f"nesting depth limit {self.limit} exceeded at offset {offset}", offset)
        self._items.append(node)

    def pop(self) -> Node:
        if not self._items:
            raise InvariantViolation("parent stack underflow")
        return self._items.pop()


# ---------------------------------------------------------------------------
# PARSE CONTEXT
# ---------------------------------------------------------------------------
class ParseContext:
    """Everything one parse mutates: tokens, stack, mode and the tree so far."""

    def __init__(self, text: str, start: int = 0, end: Optional[int] = None, *,
                 max_depth: int = DEPTH_LIMIT_DEFAULT, allow_dup: bool = True,
                 ledger: Optional[AllocationLedger] = None):
        self.tokens = Tokenizer(text, start, end)
        self.stack = ParentStack(max_depth)
        self.allow_dup = allow_dup
        self.mode = Mode.NAME
        self.document = Document(ledger)
        self.ledger = self.document.ledger
        self.parent: Node = self.document.root
        self.pending: Optional[Value] = None
        self.open_block: Optional[ArrayBlock] = None
        self.closed = False

    def toggle(self):
        self.mode = Mode.VALUE if self.mode is Mode.NAME else Mode.NAME

    def skip_spaces(self):
        while self.tokens.matches(TokenKind.SPACE):
            self.tokens.advance()

    def fail(self, error_cls, message: str, offset: Optional[int] = None):
        if offset is None:
            offset = self.tokens.lookahead.offset
        raise error_cls(f"{message} at offset {offset}", offset)

    def expect_value(self, what: str):
        if self.mode is not Mode.VALUE:
            self.fail(MalformedStructureError, f"unexpected {what} where a member name was expected")

    def attach(self):
        """Attach the pending value to the current parent."""
        value = self.pending
        self.parent.add_value(value)
        self.pending = None
        return value

    def abandon(self):
        """Release the partial tree of a failed parse."""
        walker = ReleaseWalker(self.ledger)
        if self.pending is not None:
            walker.release_value(self.pending)
            self.pending = None
        if self.open_block is not None:
            walker.release_block(self.open_block)
            self.open_block = None
        if not self.document.released:
            release_document(self.document)


# ---------------------------------------------------------------------------
# SCALAR READERS
# ---------------------------------------------------------------------------
def _read_number(ctx: ParseContext) -> int:
    """Read an optionally negative digit run. Lookahead is MINUS or DIGIT."""
    tokens = ctx.tokens
    negative = tokens.matches(TokenKind.MINUS)
    if negative:
        tokens.advance()
        if not tokens.matches(TokenKind.DIGIT):
            ctx.fail(MalformedStructureError, "expected digits after '-'")

    offset = tokens.pos
    digits = tokens.scan_digits()
    if len(digits) > NUMBER_DIGITS_MAX:
        ctx.fail(ResourceLimitError, f"number longer than {NUMBER_DIGITS_MAX} digits", offset)
    if tokens.peek_char() in (".", "e", "E"):
        ctx.fail(UnsupportedConstructError, "decimal and exponent numbers are not supported", tokens.pos)

    number = int(digits)
    return -number if negative else number


def _read_bare(ctx: ParseContext) -> str:
    """Read an unquoted word. Lookahead is CHARSEQ."""
    offset = ctx.tokens.pos
    word = ctx.tokens.scan_bare()
    if not word:
        ctx.fail(MalformedStructureError, "empty bare word", offset)
    return word


# ---------------------------------------------------------------------------
# ARRAY SUB-PARSER
# ---------------------------------------------------------------------------
def _parse_array(ctx: ParseContext) -> ArrayBlock:
    """
    Read the elements after '[' into one block, up to the matching ']'.

    Elements are strings, numbers or bare words. An array or object as an
    element is refused. On return the ']' is the lookahead token.
    """
    tokens = ctx.tokens
    block = ArrayBlock(ctx.ledger)
    ctx.open_block = block
    logger.debug("Parsing JSON array")

    want_element = True
    while True:
        tokens.advance()
        ctx.skip_spaces()
        kind = tokens.lookahead.kind

        if kind is TokenKind.RBRACK:
            if want_element and len(block):
                ctx.fail(MalformedStructureError, "trailing comma in array")
            break

        if not want_element:
            if kind is TokenKind.COMMA:
                want_element = True
                continue
            if kind is TokenKind.END:
                ctx.fail(MalformedStructureError, "unterminated array")
            ctx.fail(MalformedStructureError, f"expected ',' or ']' in array, got {kind.value}")

        if kind is TokenKind.DQUOTE:
            element = block.append_text(ValueKind.STRING, tokens.scan_quoted())
        elif kind is TokenKind.MINUS or kind is TokenKind.DIGIT:
            element = block.append_number(_read_number(ctx))
        elif kind is TokenKind.CHARSEQ:
            word = _read_bare(ctx)
            element = block.append_text(classify_literal(word), word)
        elif kind is TokenKind.LBRACK:
            ctx.fail(UnsupportedConstructError, "nested arrays are not supported")
        elif kind is TokenKind.LBRACE:
            ctx.fail(UnsupportedConstructError, "objects inside arrays are not supported")
        elif kind is TokenKind.END:
            ctx.fail(MalformedStructureError, "unterminated array")
        else:
            ctx.fail(MalformedStructureError, f"unexpected {kind.value} in array")

        logger.debug("Got element %s = %r", element.name, element.payload)
        want_element = False

    ctx.open_block = None
    return block


# ---------------------------------------------------------------------------
# TOKEN HANDLERS
# ---------------------------------------------------------------------------
def _on_quote(ctx: ParseContext):
    tokens = ctx.tokens
    text = tokens.scan_quoted()

    if ctx.mode is Mode.VALUE:
        ctx.pending.set_text(ValueKind.STRING, text)
        ctx.attach()
        logger.debug("Got value %s", text)
        ctx.toggle()
        return

    name_offset = tokens.current.offset
    if not ctx.allow_dup and text in ctx.parent:
        ctx.fail(MalformedStructureError, f"duplicate key {text!r}", name_offset)
    tokens.advance()
    ctx.skip_spaces()
    if not tokens.matches(TokenKind.COLON):
        ctx.fail(MalformedStructureError, f"expected ':' after member name {text!r}")

    ctx.pending = Value(ctx.ledger, name=text)
    logger.debug("Got name %s", text)
    ctx.toggle()


def _on_number(ctx: ParseContext):
    ctx.expect_value(ctx.tokens.lookahead.kind.value)
    number = _read_number(ctx)
    ctx.pending.set_number(number)
    ctx.attach()
    logger.debug("Got value %d", number)
    ctx.toggle()


def _on_bare(ctx: ParseContext):
    ctx.expect_value("bare word")
    word = _read_bare(ctx)
    ctx.pending.set_text(classify_literal(word), word)
    ctx.attach()
    logger.debug("Got value %s", word)
    ctx.toggle()


def _on_open_brace(ctx: ParseContext):
    ctx.expect_value("'{'")
    ctx.stack.push(ctx.parent, ctx.tokens.lookahead.offset)
    node = Node(ctx.ledger)
    ctx.pending.set_object(node)
    value = ctx.attach()
    logger.debug("Entering object %s at depth %d", value.name, len(ctx.stack))
    ctx.parent = node
    ctx.mode = Mode.NAME


def _on_close_brace(ctx: ParseContext):
    if ctx.mode is Mode.VALUE:
        ctx.fail(MalformedStructureError, f"member {ctx.pending.name!r} has no value")
    if not ctx.stack:
        ctx.closed = True
        return
    ctx.parent = ctx.stack.pop()


def _on_open_bracket(ctx: ParseContext):
    ctx.expect_value("'['")
    block = _parse_array(ctx)
    ctx.pending.set_array(block)
    ctx.attach()
    ctx.toggle()


def _on_separator(ctx: ParseContext):
    pass


def _on_stray(ctx: ParseContext):
    ctx.fail(MalformedStructureError, f"unexpected {ctx.tokens.lookahead.kind.value}")


_HANDLERS: Dict[TokenKind, Callable[[ParseContext], None]] = {
    TokenKind.DQUOTE: _on_quote,
    TokenKind.MINUS: _on_number,
    TokenKind.DIGIT: _on_number,
    TokenKind.CHARSEQ: _on_bare,
    TokenKind.LBRACE: _on_open_brace,
    TokenKind.RBRACE: _on_close_brace,
    TokenKind.LBRACK: _on_open_bracket,
    TokenKind.COMMA: _on_separator,
    TokenKind.SPACE: _on_separator,
    TokenKind.COLON: _on_stray,
    TokenKind.RBRACK: _on_stray,
}


def _build(ctx: ParseContext):
    tokens = ctx.tokens
    tokens.advance()
    ctx.skip_spaces()
    if not tokens.matches(TokenKind.LBRACE):
        ctx.fail(MalformedStructureError, "document must open with '{'")
    tokens.advance()

    while not tokens.matches(TokenKind.END):
        kind = tokens.lookahead.kind
        if ctx.closed and kind is not TokenKind.SPACE:
            ctx.fail(MalformedStructureError, "extra data after root object")
        _HANDLERS[kind](ctx)
        tokens.advance()

    if ctx.mode is Mode.VALUE:
        ctx.fail(MalformedStructureError, f"unexpected end of input: member {ctx.pending.name!r} has no value")
    if not ctx.closed:
        ctx.fail(MalformedStructureError,
                 f"unexpected end of input: {len(ctx.stack) + 1} unclosed object(s)")


# ---------------------------------------------------------------------------
# PUBLIC API
# ---------------------------------------------------------------------------
def parse(text: str, start: int = 0, end: Optional[int] = None, *,
          max_depth: int = DEPTH_LIMIT_DEFAULT, allow_dup: bool = True,
          ledger: Optional[AllocationLedger] = None) -> Document:
    """
    Parse text[start:end] into a Document rooted at a Node named "root".

    Raises a JSONTreeError subclass for rejected input. A failed parse gives
    back everything it had built before raising, so the ledger balances.
    """
    ctx = ParseContext(text, start, end, max_depth=max_depth, allow_dup=allow_dup, ledger=ledger)
    try:
        _build(ctx)
    except JSONTreeError as exc:
        logger.debug("parse rejected (%s): %s", exc.category, exc)
        ctx.abandon()
        raise
    return ctx.document


# ---------------------------------------------------------------------------
# CLI ENTRYPOINT
# ---------------------------------------------------------------------------
def _cli(argv: List[str]) -> int:
    """
    Validate one file. 0 on success, 1 on rejected input.
    """
    ap = argparse.ArgumentParser(description="jtree document validator")
    ap.add_argument("file", help="document to verify")
    ap.add_argument("--debug", action="store_true", help="dump token stream and exit")
    ap.add_argument("--max-depth", type=int, default=DEPTH_LIMIT_DEFAULT)
    ap.add_argument("--reject-dup-keys", action="store_true")
    ap.add_argument("--stats", action="store_true", help="print allocation ledger after release")
    ap.add_argument("-v", "--verbose", action="store_true", help="log builder decisions")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")

    with open(args.file, "r", encoding="utf-8") as fh:
        data = fh.read()

    try:
        if args.debug:
            for tok in lex(data):
                print(f"{tok.offset:>6} {tok.kind.name:<8} {tok.text!r}")
            return 0
        document = parse(data, max_depth=args.max_depth, allow_dup=not args.reject_dup_keys)
    except JSONTreeError as exc:
        print(f"SyntaxError: {exc}", file=sys.stderr)
        return 1

    ledger = document.ledger
    document.release()
    print("OK")
    if args.stats:
        print(ledger.summary())
    return 0


def main():
    sys.exit(_cli(sys.argv[1:]))


if __name__ == "__main__":
    main()
