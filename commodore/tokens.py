r"""
Quote-aware tokenizer for command lines.

Overview
- split(raw): cut a raw line into Words on whitespace, honoring quoted spans.
  • Three delimiters are recognized: ' " and `. Each one only closes its own kind,
    so a " inside '...' is plain text.
  • A quote only opens a span at the start of a word ("don't" is one word).
  • An unterminated quote swallows the rest of the line as a single word; this is
    lenient on purpose and never an error.
- tokenize(raw, schema): classify the words of a line (or of an already split
  window of words) against an argument schema.
  • "--name" / "--name=value" → long flag (value is True when no '=' is given).
  • "-x" / "-x=value" where x is a schema short flag → short flag.
  • anything else, and every quoted word → positional word.
- positionals(tokens) / flags(tokens): the positional stream (original order) and
  the flag map keyed by argument name (last occurrence wins).

Tokenization is pure and total: it never raises for any input string.

Quick example:
    >>> tokens = tokenize('"sir john" --verbose -c=3 apples', schema)
    >>> positionals(tokens)
    ['sir john', 'apples']
    >>> flags(tokens)
    {'verbose': True, 'count': '3'}
"""
import enum
from collections import namedtuple
from collections.abc import Iterable

QUOTES = frozenset("'\"`")


class TokenType(enum.Enum):
    WORD = "word"
    LONG = "long"
    SHORT = "short"


Word = namedtuple("Word", ("text", "quoted"))
Word.__doc__ = "one whitespace-delimited (or quoted) piece of a raw line"

Token = namedtuple("Token", ("type", "text", "name", "value"))
Token.__doc__ = """
classified word.

- type: TokenType
- text: the word as written (quotes stripped)
- name: argument name for flags, None for words
- value: explicit flag value (str), True for a bare flag, None for words
"""


def split(raw, /):
    """
    split a raw line into Words, honoring the three quote delimiters.
    """
    if not isinstance(raw, str):
        raise TypeError("split() argument must be a string")

    words = []
    index = 0
    length = len(raw)
    while index < length:
        char = raw[index]
        if char.isspace():
            index += 1
            continue
        if char in QUOTES:
            end = raw.find(char, index + 1)
            if end == -1:
                # unterminated: the remainder is one word
                words.append(Word(raw[index + 1:], True))
                break
            words.append(Word(raw[index + 1:end], True))
            index = end + 1
            continue
        start = index
        while index < length and not raw[index].isspace():
            index += 1
        words.append(Word(raw[start:index], False))
    return words


def _words(raw):
    if isinstance(raw, str):
        return split(raw)
    if not isinstance(raw, Iterable):
        raise TypeError("tokenize() argument must be a string or an iterable of words")
    return [word if isinstance(word, Word) else Word(str(word), False) for word in raw]


def tokenize(raw, /, schema=()):
    """
    classify the words of raw against schema.

    parameters
    - raw: str | Iterable[Word | str]
      a raw line, or a window of words already produced by split() (plain strings
      in the window count as unquoted words).
    - schema: Iterable of argument specs exposing .name and .flag; only the short
      flag letters are needed here.

    returns
    - list[Token] in input order.
    """
    shorts = {spec.flag: spec.name for spec in schema if spec.flag}
    tokens = []
    for text, quoted in _words(raw):
        if quoted:
            tokens.append(Token(TokenType.WORD, text, None, None))
            continue

        if text.startswith("--"):
            name, separator, value = text[2:].partition("=")
            if name:
                tokens.append(Token(TokenType.LONG, text, name, value if separator else True))
                continue
        elif text.startswith("-") and len(text) >= 2 and text[1] in shorts and text[2:3] in ("", "="):
            value = text[3:] if len(text) > 2 else True
            tokens.append(Token(TokenType.SHORT, text, shorts[text[1]], value))
            continue

        tokens.append(Token(TokenType.WORD, text, None, None))
    return tokens


def positionals(tokens, /):
    """
    the positional token stream: every non-flag token text, in original order.
    """
    return [token.text for token in tokens if token.type is TokenType.WORD]


def flags(tokens, /):
    """
    map of argument name → flag value; when a flag repeats, the last one wins.
    """
    return {token.name: token.value for token in tokens if token.type is not TokenType.WORD}


__all__ = (
    "QUOTES",
    "TokenType",
    "Word",
    "Token",
    "split",
    "tokenize",
    "positionals",
    "flags",
)
