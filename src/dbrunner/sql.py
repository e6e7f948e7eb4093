"""
SQL placeholder handling.

Statements are written with positional ``?`` placeholders. This module finds
them (ignoring quoted literals and identifiers), converts them to the style a
driver expects, and recognizes the stored procedure call escape:

    {call name(?, ?)}
    {? = call name(?)}

Main entry points:
- `count_placeholders()` - Number of positional placeholders
- `standardize_placeholders()` - Convert ? to %s for format-style drivers
- `parse_call()` - Recognize a call escape
- `rewrite_call()` - Turn a call escape into plain SQL
- `is_insert()` - Recognize statements that generate keys
"""
import re
from dataclasses import dataclass
from enum import Enum, auto


class TokenType(Enum):
    SQL_TEXT = auto()
    STRING_LITERAL = auto()     # '...' or "..."
    COMMENT = auto()            # -- line or /* block */
    POSITIONAL_PH = auto()      # ?
    PERCENT = auto()            # bare % (must be doubled for format style)


@dataclass(slots=True)
class Token:
    """Slice ``sql[start:end]`` of a statement and what it is."""
    type: TokenType
    text: str
    start: int
    end: int


@dataclass(slots=True)
class CallSpec:
    """A parsed ``{call ...}`` escape."""
    name: str
    arguments: str
    has_return: bool


_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<comment>--[^\n]*|/\*.*?\*/)
    |(?P<qmark>\?)
    |(?P<percent>%)
""", re.VERBOSE | re.DOTALL)

_TOKEN_TYPES = {
    'string': TokenType.STRING_LITERAL,
    'comment': TokenType.COMMENT,
    'qmark': TokenType.POSITIONAL_PH,
    'percent': TokenType.PERCENT,
}

_CALL_ESCAPE = re.compile(r"""
    ^\s*\{\s*
    (?P<ret>\?\s*=\s*)?
    call\s+
    (?P<name>[\w.$"]+)
    \s*(?:\((?P<args>.*)\))?
    \s*\}\s*$
""", re.IGNORECASE | re.VERBOSE | re.DOTALL)


def tokenize_sql(sql: str) -> list[Token]:
    """Split ``sql`` into tokens whose texts join back into ``sql``.

    Quoted literals and comments are single tokens, so a ``?`` or ``%``
    inside them is never reported as a placeholder or percent sign.
    """
    tokens = []
    pos = 0
    for match in _TOKENIZE.finditer(sql):
        if match.start() > pos:
            tokens.append(Token(TokenType.SQL_TEXT, sql[pos:match.start()], pos, match.start()))
        tokens.append(Token(_TOKEN_TYPES[match.lastgroup], match.group(), match.start(), match.end()))
        pos = match.end()
    if pos < len(sql):
        tokens.append(Token(TokenType.SQL_TEXT, sql[pos:], pos, len(sql)))
    return tokens


def count_placeholders(sql: str | None) -> int:
    """Count positional placeholders outside literals and comments.
    """
    if not sql or '?' not in sql:
        return 0
    return sum(1 for token in tokenize_sql(sql) if token.type == TokenType.POSITIONAL_PH)


def has_placeholders(sql: str | None) -> bool:
    """Check if SQL has any positional placeholders.
    """
    return count_placeholders(sql) > 0


def standardize_placeholders(sql: str, paramstyle: str = 'qmark') -> str:
    """Rewrite ``?`` placeholders for a driver using ``paramstyle``.

    qmark SQL is returned as is. For format and pyformat drivers each ``?``
    becomes ``%s`` and every other percent sign is doubled, including those
    inside literals and comments.
    """
    if not sql or paramstyle == 'qmark':
        return sql

    if paramstyle not in {'format', 'pyformat'}:
        raise ValueError(f'Unsupported paramstyle: {paramstyle}')

    if '?' not in sql and '%' not in sql:
        return sql

    def render(token: Token) -> str:
        if token.type == TokenType.POSITIONAL_PH:
            return '%s'
        if token.type == TokenType.SQL_TEXT:
            return token.text
        return token.text.replace('%', '%%')

    return ''.join(render(token) for token in tokenize_sql(sql))


def parse_call(sql: str) -> CallSpec | None:
    """Recognize a stored procedure call escape.

    Returns None when the SQL is not a call escape.
    """
    match = _CALL_ESCAPE.match(sql)
    if match is None:
        return None
    return CallSpec(
        name=match.group('name'),
        arguments=(match.group('args') or '').strip(),
        has_return=match.group('ret') is not None,
    )


def rewrite_call(call: CallSpec) -> str:
    """Render a call escape as plain SQL.

    Procedures become ``CALL name(...)``; the ``? = call`` form is a function
    and becomes ``SELECT name(...)`` (its leading placeholder is dropped).
    """
    if call.has_return:
        return f'SELECT {call.name}({call.arguments})'
    return f'CALL {call.name}({call.arguments})'


def is_insert(sql: str | None) -> bool:
    """Check if the statement is an INSERT (or SQLite REPLACE).

    Leading comments and whitespace are skipped.
    """
    if not sql:
        return False
    for token in tokenize_sql(sql):
        if token.type == TokenType.COMMENT:
            continue
        if token.type != TokenType.SQL_TEXT:
            return False
        words = token.text.split(None, 1)
        if words:
            return words[0].lower() in {'insert', 'replace'}
    return False
