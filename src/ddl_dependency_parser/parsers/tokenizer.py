"""
Tokenizer module for Oracle DDL scripts.

Turns raw script text into an ordered list of tokens. Keyword recognition is
done once here so later stages compare enum members instead of strings.
Two providers implement the same contract: a compiled-pattern tokenizer
(default) and a character-scanning tokenizer.
"""

import re
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Type


class TokenKind(Enum):
    """Lexical token categories."""
    IDENTIFIER = "IDENTIFIER"
    QUOTED_IDENTIFIER = "QUOTED_IDENTIFIER"
    KEYWORD = "KEYWORD"
    PUNCTUATION = "PUNCTUATION"
    STRING_LITERAL = "STRING_LITERAL"
    NUMBER_LITERAL = "NUMBER_LITERAL"


class Keyword(Enum):
    """Words the segmenter and extractor react to."""
    CREATE = "CREATE"
    OR = "OR"
    REPLACE = "REPLACE"
    TABLE = "TABLE"
    VIEW = "VIEW"
    MATERIALIZED = "MATERIALIZED"
    PACKAGE = "PACKAGE"
    BODY = "BODY"
    PROCEDURE = "PROCEDURE"
    FUNCTION = "FUNCTION"
    TRIGGER = "TRIGGER"
    DECLARE = "DECLARE"
    BEGIN = "BEGIN"
    END = "END"
    CASE = "CASE"
    IF = "IF"
    LOOP = "LOOP"
    IS = "IS"
    AS = "AS"
    SELECT = "SELECT"
    FROM = "FROM"
    JOIN = "JOIN"
    INTO = "INTO"
    USING = "USING"
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    MERGE = "MERGE"
    REFERENCES = "REFERENCES"
    ONLY = "ONLY"
    ON = "ON"
    WHERE = "WHERE"
    SET = "SET"
    VALUES = "VALUES"
    OF = "OF"
    FOR = "FOR"
    LANGUAGE = "LANGUAGE"
    EXTERNAL = "EXTERNAL"


KEYWORDS: Dict[str, Keyword] = {kw.value: kw for kw in Keyword}

# Characters that always form a token of their own outside quoted runs
SEPARATORS = "(),;.@:="


@dataclass(frozen=True)
class Token:
    """A single lexical token."""
    text: str
    kind: TokenKind
    keyword: Optional[Keyword] = None
    offset: int = 0
    line: int = 1

    @property
    def is_identifier(self) -> bool:
        return self.kind in (TokenKind.IDENTIFIER, TokenKind.QUOTED_IDENTIFIER)

    def is_punct(self, char: str) -> bool:
        return self.kind == TokenKind.PUNCTUATION and self.text == char


def classify_word(text: str) -> TokenKind:
    """Classify an accreted run of non-separator characters."""
    first = text[0]
    if first.isdigit():
        return TokenKind.NUMBER_LITERAL
    if first.isalpha() or first in "_$#":
        return TokenKind.IDENTIFIER
    return TokenKind.PUNCTUATION


def make_word_token(text: str, offset: int, line: int) -> Token:
    kind = classify_word(text)
    keyword = None
    if kind == TokenKind.IDENTIFIER:
        keyword = KEYWORDS.get(text.upper())
        if keyword is not None:
            kind = TokenKind.KEYWORD
    return Token(text=text, kind=kind, keyword=keyword, offset=offset, line=line)


class BaseTokenizer(ABC):
    """
    Contract shared by all tokenizer providers.

    Whitespace and comments are never emitted. Each separator character is
    its own token; double-quoted runs are one QUOTED_IDENTIFIER token and
    single-quoted runs one STRING_LITERAL token, both including their
    delimiters. Tokenizing never fails.
    """

    name = "base"

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def tokenize(self, text: str) -> List[Token]:
        """
        Split text into tokens.

        Args:
            text: Complete DDL script

        Returns:
            Ordered list of tokens
        """


class RegexTokenizer(BaseTokenizer):
    """Tokenizer driven by one compiled alternation pattern."""

    name = "regex"

    TOKEN_PATTERN = re.compile(
        r'(?P<ws>\s+)'
        r'|(?P<line_comment>--[^\n]*)'
        r'|(?P<block_comment>/\*.*?(?:\*/|\Z))'
        r'|(?P<quoted>"(?:[^"]|"")*(?:"|\Z))'
        r"|(?P<string>'(?:[^']|'')*(?:'|\Z))"
        r'|(?P<sep>[(),;.@:=])'
        r'|(?P<word>(?:[^\s(),;.@:=\'"/-]|-(?!-)|/(?!\*))+)',
        re.DOTALL
    )

    def tokenize(self, text: str) -> List[Token]:
        tokens = []
        line = 1
        for match in self.TOKEN_PATTERN.finditer(text):
            group = match.lastgroup
            value = match.group()
            if group == 'quoted':
                tokens.append(Token(value, TokenKind.QUOTED_IDENTIFIER, offset=match.start(), line=line))
            elif group == 'string':
                tokens.append(Token(value, TokenKind.STRING_LITERAL, offset=match.start(), line=line))
            elif group == 'sep':
                tokens.append(Token(value, TokenKind.PUNCTUATION, offset=match.start(), line=line))
            elif group == 'word':
                tokens.append(make_word_token(value, match.start(), line))
            line += value.count('\n')

        self.logger.debug(f"Tokenized {len(text)} characters into {len(tokens)} tokens")
        return tokens


class ScanningTokenizer(BaseTokenizer):
    """Character-by-character tokenizer with the same output as RegexTokenizer."""

    name = "scanning"

    def tokenize(self, text: str) -> List[Token]:
        tokens = []
        length = len(text)
        line = 1
        i = 0
        while i < length:
            ch = text[i]

            if ch.isspace():
                if ch == '\n':
                    line += 1
                i += 1
                continue

            if text.startswith('--', i):
                end = text.find('\n', i)
                i = length if end < 0 else end
                continue

            if text.startswith('/*', i):
                end = text.find('*/', i + 2)
                end = length if end < 0 else end + 2
                line += text.count('\n', i, end)
                i = end
                continue

            if ch in '"\'':
                end = self._quoted_run_end(text, i, ch)
                value = text[i:end]
                kind = TokenKind.QUOTED_IDENTIFIER if ch == '"' else TokenKind.STRING_LITERAL
                tokens.append(Token(value, kind, offset=i, line=line))
                line += value.count('\n')
                i = end
                continue

            if ch in SEPARATORS:
                tokens.append(Token(ch, TokenKind.PUNCTUATION, offset=i, line=line))
                i += 1
                continue

            start = i
            while i < length and not self._ends_word(text, i):
                i += 1
            tokens.append(make_word_token(text[start:i], start, line))

        self.logger.debug(f"Tokenized {length} characters into {len(tokens)} tokens")
        return tokens

    @staticmethod
    def _ends_word(text: str, i: int) -> bool:
        ch = text[i]
        if ch.isspace() or ch in SEPARATORS or ch in '"\'':
            return True
        return text.startswith('--', i) or text.startswith('/*', i)

    @staticmethod
    def _quoted_run_end(text: str, start: int, quote: str) -> int:
        """Index just past the closing quote; doubled quotes are escapes."""
        i = start + 1
        length = len(text)
        while i < length:
            if text[i] == quote:
                if i + 1 < length and text[i + 1] == quote:
                    i += 2
                    continue
                return i + 1
            i += 1
        return length


TOKENIZERS: Dict[str, Type[BaseTokenizer]] = {
    RegexTokenizer.name: RegexTokenizer,
    ScanningTokenizer.name: ScanningTokenizer,
}


def get_tokenizer(name: str = "regex") -> BaseTokenizer:
    """Instantiate a tokenizer provider by name."""
    try:
        return TOKENIZERS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown tokenizer '{name}', expected one of: {', '.join(sorted(TOKENIZERS))}"
        )
