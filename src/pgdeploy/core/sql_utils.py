"""
SQL utilities - helpers for deployment script handling.

Single source of truth for splitting script text into statements, deciding
whether a script may run inside a transaction, and syntax-checking scripts
before a deployment.
"""

import re

import sqlglot
from sqlglot.errors import ParseError, TokenError

NO_TRANSACTION_DIRECTIVE = "pgdeploy:no-transaction"

_DIRECTIVE_PATTERN = re.compile(
    rf"^\s*--\s*{re.escape(NO_TRANSACTION_DIRECTIVE)}\s*$", re.MULTILINE | re.IGNORECASE
)
_DOLLAR_TAG = re.compile(r"\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$")

# Statements PostgreSQL refuses to run inside a transaction block
_AUTOCOMMIT_PATTERNS = tuple(
    re.compile(pattern, re.IGNORECASE | re.DOTALL)
    for pattern in (
        r"^CREATE\s+(UNIQUE\s+)?INDEX\s+CONCURRENTLY\b",
        r"^DROP\s+INDEX\s+CONCURRENTLY\b",
        r"^REINDEX\b.*\bCONCURRENTLY\b",
        r"^VACUUM\b",
        r"^(CREATE|DROP)\s+DATABASE\b",
        r"^(CREATE|DROP)\s+TABLESPACE\b",
        r"^ALTER\s+SYSTEM\b",
    )
)


def _follows_identifier(sql_text: str, index: int) -> bool:
    """Return True if a `$` at index continues an identifier such as `a$b`."""
    if index == 0:
        return False
    previous = sql_text[index - 1]
    return previous.isalnum() or previous in "_$"


def _skip_line_comment(sql_text: str, index: int) -> int:
    """Return the index of the newline ending a `--` comment (or end of text)."""
    end = sql_text.find("\n", index)
    return len(sql_text) if end == -1 else end


def _skip_block_comment(sql_text: str, index: int) -> int:
    """Return the index just past a `/* ... */` comment (or end of text)."""
    end = sql_text.find("*/", index + 2)
    return len(sql_text) if end == -1 else end + 2


def split_sql_statements(sql_text: str) -> list[str]:
    """Split SQL script into statements while preserving quoted semicolons.

    Semicolons inside single-quoted strings, double-quoted identifiers and
    dollar-quoted bodies ($$ ... $$ or $tag$ ... $tag$) are part of the
    statement. Comments outside quotes are dropped. Empty statements are not
    included.

    Args:
        sql_text: Raw SQL script content (e.g. from a file).

    Returns:
        List of non-empty statement strings, in order.
    """
    statements: list[str] = []
    current: list[str] = []
    in_single_quote = False
    in_double_quote = False
    dollar_tag: str | None = None
    index = 0
    length = len(sql_text)

    while index < length:
        char = sql_text[index]

        if dollar_tag is not None:
            if sql_text.startswith(dollar_tag, index):
                current.append(dollar_tag)
                index += len(dollar_tag)
                dollar_tag = None
            else:
                current.append(char)
                index += 1
            continue

        if in_single_quote or in_double_quote:
            current.append(char)
            if in_single_quote and char == "'":
                in_single_quote = False
            elif in_double_quote and char == '"':
                in_double_quote = False
            index += 1
            continue

        if sql_text.startswith("--", index):
            index = _skip_line_comment(sql_text, index)
            continue
        if sql_text.startswith("/*", index):
            current.append(" ")
            index = _skip_block_comment(sql_text, index)
            continue

        if char == "$" and not _follows_identifier(sql_text, index):
            match = _DOLLAR_TAG.match(sql_text, index)
            if match:
                dollar_tag = match.group(0)
                current.append(dollar_tag)
                index = match.end()
                continue
        elif char == "'":
            in_single_quote = True
        elif char == '"':
            in_double_quote = True
        elif char == ";":
            statement = "".join(current).strip()
            if statement:
                statements.append(statement)
            current = []
            index += 1
            continue

        current.append(char)
        index += 1

    tail = "".join(current).strip()
    if tail:
        statements.append(tail)

    return statements


def has_no_transaction_directive(sql_text: str) -> bool:
    """Return True if the script opts out of transactional execution."""
    return bool(_DIRECTIVE_PATTERN.search(sql_text))


def requires_autocommit(statement: str) -> bool:
    """Return True if the statement cannot run inside a transaction block."""
    text = statement.strip()
    return any(pattern.match(text) for pattern in _AUTOCOMMIT_PATTERNS)


def is_transactional(sql_text: str) -> bool:
    """Decide the execution scope for a whole script.

    A script runs in one transaction unless it carries the
    ``-- pgdeploy:no-transaction`` directive or contains a statement that
    PostgreSQL rejects inside a transaction block.
    """
    if has_no_transaction_directive(sql_text):
        return False
    return not any(requires_autocommit(stmt) for stmt in split_sql_statements(sql_text))


def check_sql_syntax(sql_text: str, dialect: str = "postgres") -> list[str]:
    """Parse every statement with SQLGlot and collect parse problems.

    SQLGlot does not cover every PostgreSQL construct, so callers usually
    treat the returned problems as warnings.

    Args:
        sql_text: Raw SQL script content
        dialect: SQLGlot dialect name (default: postgres)

    Returns:
        List of human-readable problems, empty if every statement parsed
    """
    problems: list[str] = []
    for position, statement in enumerate(split_sql_statements(sql_text), 1):
        try:
            parsed = sqlglot.parse_one(statement, read=dialect)
        except (ParseError, TokenError) as e:
            first_line = str(e).splitlines()[0] if str(e) else type(e).__name__
            problems.append(f"statement {position}: {first_line}")
            continue
        if parsed is None:
            problems.append(f"statement {position}: could not be parsed")
    return problems
