# jtree_lexer.py
# Tokenizer for the jtree JSON dialect.
#
# The tokenizer walks a cursor over a bounded slice text[start:end] and
# classifies one unit at a time. Punctuation is consumed as it is
# classified. Digit runs and bare character runs are only marked; the
# builder consumes them with scan_digits() / scan_bare(), and quoted bodies
# with scan_quoted().
#
# Whitespace rules:
#   - CR, NL and TAB are always skipped.
#   - A run of spaces is skipped only when the character right before it is
#     CR or NL (indentation). Any other space is a SPACE token.
#   - Both rules repeat until neither moves the cursor, so blank indented
#     lines and tabs after indentation are skipped too.

from enum import Enum
from typing import Iterator, NamedTuple, Optional

from jtree_errors import MalformedStructureError

CR = "\r"
NL = "\n"
TAB = "\t"
SPACE = " "
DIGITS = "0123456789"

_CRNL = (CR, NL)
_CNTRL_SPACE = (CR, NL, TAB)
# Characters that end an unquoted run
_BARE_STOP = frozenset(" ,\t\r\n}]")


# ---------------------------------------------------------------------------
# TOKEN KINDS
# ---------------------------------------------------------------------------
class TokenKind(Enum):
    SPACE = "space"
    LBRACE = "'{'"
    RBRACE = "'}'"
    LBRACK = "'['"
    RBRACK = "']'"
    DQUOTE = "'\"'"
    COMMA = "','"
    COLON = "':'"
    MINUS = "'-'"
    CHARSEQ = "bare word"
    DIGIT = "number"
    END = "end of input"


_PUNCTUATION = {
    "{": TokenKind.LBRACE,
    "}": TokenKind.RBRACE,
    "[": TokenKind.LBRACK,
    "]": TokenKind.RBRACK,
    '"': TokenKind.DQUOTE,
    ",": TokenKind.COMMA,
    ":": TokenKind.COLON,
    "-": TokenKind.MINUS,
    SPACE: TokenKind.SPACE,
}


class Token(NamedTuple):
    """(kind, offset, text). text is only filled in by lex()."""
    kind: TokenKind
    offset: int
    text: str = ""


# ---------------------------------------------------------------------------
# TOKENIZER
# ---------------------------------------------------------------------------
class Tokenizer:
    """
    Two-token lookahead over text[start:end].

    `current` is the token being consumed, `lookahead` the one after it.
    advance() shifts lookahead into current and lexes a new lookahead.
    """

    def __init__(self, text: str, start: int = 0, end: Optional[int] = None):
        if end is None:
            end = len(text)
        if not 0 <= start <= end <= len(text):
            raise ValueError(f"bad buffer bounds start={start} end={end} for length {len(text)}")
        self.text = text
        self.start = start
        self.end = end
        self.pos = start
        self.current: Optional[Token] = None
        self.lookahead: Optional[Token] = None

    def peek_char(self) -> str:
        return self.text[self.pos] if self.pos < self.end else ""

    def lex(self) -> Token:
        text, end = self.text, self.end

        while True:
            mark = self.pos
            while self.pos < end and text[self.pos] in _CNTRL_SPACE:
                self.pos += 1

            if (self.pos < end and text[self.pos] == SPACE
                    and self.pos > self.start and text[self.pos - 1] in _CRNL):
                while self.pos < end and text[self.pos] == SPACE:
                    self.pos += 1

            if self.pos == mark:
                break

        if self.pos >= end:
            return Token(TokenKind.END, self.pos)

        offset = self.pos
        ch = text[offset]
        kind = _PUNCTUATION.get(ch)
        if kind is not None:
            self.pos += 1
            return Token(kind, offset)
        if ch in DIGITS:
            return Token(TokenKind.DIGIT, offset)
        return Token(TokenKind.CHARSEQ, offset)

    def advance(self) -> Token:
        self.current = self.lookahead
        self.lookahead = self.lex()
        return self.lookahead

    def matches(self, kind: TokenKind) -> bool:
        return self.lookahead is not None and self.lookahead.kind is kind

    # -----------------------------------------------------------------------
    # RUN SCANNERS
    # -----------------------------------------------------------------------
    def scan_quoted(self) -> str:
        """
        Read a string body; the cursor sits just past the opening quote.

        The body ends at the first quote not escaped by an odd run of
        backslashes. Escapes are kept verbatim. On return the closing quote
        is the lookahead token.
        """
        text, body_start = self.text, self.pos
        i = body_start
        while True:
            i = text.find('"', i, self.end)
            if i < 0:
                raise MalformedStructureError(
                    f"unterminated string starting at offset {body_start - 1}", body_start - 1)
            j = i - 1
            while j >= body_start and text[j] == "\\":
                j -= 1
            if (i - 1 - j) % 2 == 0:
                break
            i += 1

        body = text[body_start:i]
        self.pos = i
        self.advance()
        if not self.matches(TokenKind.DQUOTE):
            raise MalformedStructureError(f"expected closing quote at offset {i}", i)
        return body

    def scan_digits(self) -> str:
        s = self.pos
        while self.pos < self.end and self.text[self.pos] in DIGITS:
            self.pos += 1
        return self.text[s:self.pos]

    def scan_bare(self) -> str:
        s = self.pos
        while self.pos < self.end and self.text[self.pos] not in _BARE_STOP:
            self.pos += 1
        return self.text[s:self.pos]


# ---------------------------------------------------------------------------
# TOKEN DUMP
# ---------------------------------------------------------------------------
def lex(text: str, start: int = 0, end: Optional[int] = None) -> Iterator[Token]:
    """
    Yield every token of text[start:end] with its text, for debugging.

    A quoted string is reported once, on its opening quote token, with the
    body as its text.
    """
    tokens = Tokenizer(text, start, end)
    tokens.advance()
    while not tokens.matches(TokenKind.END):
        tok = tokens.lookahead
        if tok.kind is TokenKind.DQUOTE:
            tok = tok._replace(text=tokens.scan_quoted())
        elif tok.kind is TokenKind.DIGIT:
            tok = tok._replace(text=tokens.scan_digits())
        elif tok.kind is TokenKind.CHARSEQ:
            tok = tok._replace(text=tokens.scan_bare())
        else:
            tok = tok._replace(text=text[tok.offset])
        yield tok
        tokens.advance()
