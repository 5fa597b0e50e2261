"""
SQL Validator

Deterministic, LLM-free gate in front of the database. A statement passes
only if it starts with SELECT, contains none of the data- or
privilege-modifying keywords as a bare word, and is a single statement.

Keywords are searched in a "keyword-scan view" of the statement: the text
with the contents of every quoted span (string literals, quoted identifiers,
PostgreSQL dollar quotes) blanked out, so data such as
``note = 'please update later'`` cannot trigger a rejection. Rejection
reasons quote the original statement, never the scan view.

Quoting rules follow the target dialect. PostgreSQL (with
``standard_conforming_strings`` on) ends a literal only at a quote, with
``''`` as the escape; backslash escapes apply inside ``E'...'`` only. MySQL
honours backslash escapes in single- and double-quoted strings. Comments
are left visible and never open a literal.
"""

import logging
import re
from dataclasses import dataclass

import sqlparse

from sqlchat.models.agent import ValidationResult

logger = logging.getLogger(__name__)

DANGEROUS_KEYWORDS = (
    "DROP",
    "DELETE",
    "UPDATE",
    "INSERT",
    "ALTER",
    "TRUNCATE",
    "CREATE",
    "GRANT",
    "REVOKE",
)

_KEYWORD_PATTERN = re.compile(r"\b(" + "|".join(DANGEROUS_KEYWORDS) + r")\b", re.IGNORECASE)
_SELECT_PREFIX = re.compile(r"select\b", re.IGNORECASE)
_DOLLAR_TAG = re.compile(r"\$([A-Za-z_][A-Za-z0-9_]*)?\$")


@dataclass(frozen=True)
class ScanView:
    """Keyword-scan view plus the offset of the first top-level ``;``."""

    text: str
    first_semicolon: int | None
    trailing_code: bool


def scan_statement(sql: str, dialect: str = "postgresql") -> ScanView:
    """
    Walk ``sql`` with the quoting rules of ``dialect``.

    The returned text has the same length as ``sql``. ``trailing_code`` is
    set when anything other than whitespace, comments or further semicolons
    follows the first top-level semicolon. An unterminated quote is not
    treated as a literal.
    """
    mysql = dialect == "mysql"
    out: list[str] = []
    first_semicolon: int | None = None
    trailing_code = False
    i, n = 0, len(sql)

    while i < n:
        ch = sql[i]
        nxt = sql[i + 1] if i + 1 < n else ""

        # Comments: kept verbatim
        if ch == "-" and nxt == "-" and (not mysql or i + 2 >= n or sql[i + 2].isspace()):
            end = _line_end(sql, i)
        elif mysql and ch == "#":
            end = _line_end(sql, i)
        elif ch == "/" and nxt == "*":
            if mysql and sql.startswith("/*!", i):
                # MySQL executes the body of /*! ... */
                out.append("/*!")
                i += 3
                continue
            end = _block_comment_end(sql, i, nested=not mysql)
        else:
            end = None
        if end is not None:
            out.append(sql[i:end])
            i = end
            continue

        end = _quoted_end(sql, i, mysql)
        if end is not None:
            if first_semicolon is not None:
                trailing_code = True
            out.append(_blank(sql, i, end))
            i = end
            continue

        if ch == ";":
            if first_semicolon is None:
                first_semicolon = i
        elif first_semicolon is not None and not ch.isspace():
            trailing_code = True
        out.append(ch)
        i += 1

    return ScanView("".join(out), first_semicolon, trailing_code)


def keyword_scan_view(sql: str, dialect: str = "postgresql") -> str:
    """Return ``sql`` with the contents of quoted spans replaced by spaces."""
    return scan_statement(sql, dialect).text


def _line_end(sql: str, start: int) -> int:
    end = sql.find("\n", start)
    return len(sql) if end == -1 else end


def _block_comment_end(sql: str, start: int, nested: bool) -> int:
    depth = 0
    i = start
    while i < len(sql) - 1:
        pair = sql[i : i + 2]
        if pair == "/*" and (nested or depth == 0):
            depth += 1
            i += 2
        elif pair == "*/":
            depth -= 1
            i += 2
            if depth == 0:
                return i
        else:
            i += 1
    return len(sql)


def _quoted_end(sql: str, start: int, mysql: bool) -> int | None:
    """End offset of the quoted span opening at ``start``, if one does."""
    ch = sql[start]
    if ch == "'":
        if mysql:
            backslash = True
        else:
            # E'...' escape strings; the E must not end a longer word
            prefix = sql[start - 1] if start > 0 else ""
            before = sql[start - 2] if start > 1 else ""
            backslash = prefix in ("e", "E") and not (before.isalnum() or before == "_")
        return _literal_end(sql, start, "'", backslash)
    if ch == '"':
        return _literal_end(sql, start, '"', backslash=mysql)
    if ch == "`" and mysql:
        return _literal_end(sql, start, "`", backslash=False)
    if ch == "$" and not mysql:
        prev = sql[start - 1] if start > 0 else ""
        if prev.isalnum() or prev in ("_", "$"):
            return None
        match = _DOLLAR_TAG.match(sql, start)
        if match is None:
            return None
        close = sql.find(match.group(0), match.end())
        return None if close == -1 else close + len(match.group(0))
    return None


def _literal_end(sql: str, start: int, quote: str, backslash: bool) -> int | None:
    i = start + 1
    n = len(sql)
    while i < n:
        c = sql[i]
        if backslash and c == "\\":
            i += 2
            continue
        if c == quote:
            if i + 1 < n and sql[i + 1] == quote:
                i += 2
                continue
            return i + 1
        i += 1
    return None


def _blank(sql: str, start: int, end: int) -> str:
    """Keep the outer delimiter characters, blank everything between."""
    if sql[start] == "$":
        tag_len = _DOLLAR_TAG.match(sql, start).end() - start
        inner = " " * (end - start - 2 * tag_len)
        return sql[start : start + tag_len] + inner + sql[end - tag_len : end]
    return sql[start] + " " * (end - start - 2) + sql[end - 1]


class SQLValidator:
    """Read-only SELECT gate. Never bypassed, including for repaired SQL."""

    name = "SQLValidator"

    def __init__(self, dialect: str = "postgresql"):
        self.dialect = dialect

    def validate(self, sql: str) -> ValidationResult:
        statement = (sql or "").strip()
        if not statement:
            return ValidationResult.rejected("Query is empty")

        if not _SELECT_PREFIX.match(statement):
            logger.warning("Rejected non-SELECT statement", extra={"sql": statement[:200]})
            return ValidationResult.rejected(
                f"Only SELECT queries are allowed. Received: {_excerpt(statement)}"
            )

        view = scan_statement(statement, self.dialect)
        match = _KEYWORD_PATTERN.search(view.text)
        if match:
            keyword = match.group(1).upper()
            logger.warning(
                f"Rejected statement containing {keyword}",
                extra={"sql": statement[:200], "keyword": keyword, "dialect": self.dialect},
            )
            return ValidationResult.rejected(
                f"Query contains forbidden keyword {keyword}: {_excerpt(statement)}",
                keyword=keyword,
            )

        if view.trailing_code:
            trailing = statement[view.first_semicolon + 1 :]
            kind = _statement_type(trailing)
            logger.warning(
                "Rejected multi-statement query",
                extra={"sql": statement[:200], "trailing_type": kind, "dialect": self.dialect},
            )
            return ValidationResult.rejected(
                f"Only a single statement is allowed (found a trailing {kind} statement): "
                f"{_excerpt(statement)}"
            )

        return ValidationResult.accepted()


def _statement_type(sql: str) -> str:
    """Best-effort statement type for messages only."""
    parsed = [stmt for stmt in sqlparse.parse(sql) if stmt.value.strip(" \t\r\n;")]
    if not parsed:
        return "UNKNOWN"
    return parsed[0].get_type()


def _excerpt(sql: str, limit: int = 200) -> str:
    flat = " ".join(sql.split())
    return flat if len(flat) <= limit else flat[: limit - 3] + "..."
