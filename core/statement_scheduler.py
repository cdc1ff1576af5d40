#!/usr/bin/env python3
"""
DocShift Statement Scheduler
============================

Turns a raw schema/DDL script into an ordered list of single statements
that can be executed one at a time.

Parsing walks the script character by character. Inside a dollar-quoted
block ($$ ... $$ or $tag$ ... $tag$), a single-quoted literal, a
double-quoted identifier or a comment, the ';' terminator is ordinary
content. Comments outside quoted regions are dropped from the emitted text.

Classification tests each statement against one ordered rule table, most
specific rule first, and ordering is a stable sort on the rule priority:

    drop function (1) < create table (2) < create function (3)
    < create index (4) < create trigger (5) < data call (6)
    < anonymous block (7) < unclassified (8)

The module performs no I/O and never talks to a database.

Usage:
    from core.statement_scheduler import schedule_script
    for statement in schedule_script(open('schema.sql').read()):
        cursor.execute(statement)
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Sequence

logger = logging.getLogger(__name__)


class StatementKind(Enum):
    DROP_FUNCTION = "drop function"
    CREATE_TABLE = "create table"
    CREATE_FUNCTION = "create function"
    CREATE_INDEX = "create index"
    CREATE_TRIGGER = "create trigger"
    DATA_CALL = "data call"
    ANONYMOUS_BLOCK = "anonymous block"
    UNCLASSIFIED = "unclassified"


@dataclass(frozen=True)
class ClassificationRule:
    kind: StatementKind
    pattern: str
    priority: int


# Tested in this order. A replace-function statement can contain table DDL
# in its body, so function rules precede the table rule.
DEFAULT_RULES = (
    ClassificationRule(StatementKind.DROP_FUNCTION, r'\bDROP\s+FUNCTION\b', 1),
    ClassificationRule(StatementKind.CREATE_FUNCTION, r'\bCREATE\s+(?:OR\s+REPLACE\s+)?FUNCTION\b', 3),
    ClassificationRule(StatementKind.CREATE_TABLE,
                       r'\bCREATE\s+(?:(?:GLOBAL|LOCAL)\s+)?(?:(?:TEMP|TEMPORARY|UNLOGGED)\s+)?TABLE\b', 2),
    ClassificationRule(StatementKind.CREATE_INDEX, r'\bCREATE\s+(?:UNIQUE\s+)?INDEX\b', 4),
    ClassificationRule(StatementKind.CREATE_TRIGGER,
                       r'\bCREATE\s+(?:OR\s+REPLACE\s+)?(?:CONSTRAINT\s+)?TRIGGER\b', 5),
    ClassificationRule(StatementKind.ANONYMOUS_BLOCK, r'^\s*DO\b', 7),
    ClassificationRule(StatementKind.DATA_CALL, r'^\s*(?:SELECT|INSERT|UPDATE|DELETE|WITH)\b', 6),
)

UNCLASSIFIED_PRIORITY = 8

DEFAULT_KEYWORDS = ('CREATE', 'DROP', 'SELECT', 'INSERT', 'UPDATE', 'DELETE', 'ALTER', 'DO')

DOLLAR_TAG = re.compile(r'\$(?:[A-Za-z_][A-Za-z0-9_]*)?\$')


@dataclass(frozen=True)
class Statement:
    """One retained statement and where it sorts"""
    index: int
    text: str
    kind: StatementKind
    priority: int


class StatementScheduler:
    """Split, classify and order the statements of a raw script"""

    def __init__(self, rules: Optional[Sequence[ClassificationRule]] = None,
                 keywords: Optional[Iterable[str]] = None):
        self.rules = tuple(rules) if rules is not None else DEFAULT_RULES
        self._compiled = [(rule, re.compile(rule.pattern, re.IGNORECASE)) for rule in self.rules]
        words = tuple(keywords) if keywords is not None else DEFAULT_KEYWORDS
        self._keyword_pattern = re.compile(
            r'\b(?:' + '|'.join(re.escape(word) for word in words) + r')\b', re.IGNORECASE
        )

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def split(self, script: str) -> List[str]:
        """
        Split a script on unquoted terminators.

        Returns the raw fragments with comments outside quoted regions
        removed, untrimmed and without the terminator. Empty and
        comment-only fragments come back as whitespace.
        """
        fragments: List[str] = []
        current: List[str] = []
        position = 0
        length = len(script or "")

        while position < length:
            char = script[position]

            if char == '$' and not self._inside_identifier(script, position):
                match = DOLLAR_TAG.match(script, position)
                if match:
                    tag = match.group(0)
                    closing = script.find(tag, match.end())
                    if closing == -1:
                        logger.warning(f"Unterminated quoted block {tag}; keeping the remaining text as one statement")
                        current.append(script[position:])
                        position = length
                        continue
                    current.append(script[position:closing + len(tag)])
                    position = closing + len(tag)
                    continue

            if char in ("'", '"'):
                closing = script.find(char, position + 1)
                end = length if closing == -1 else closing + 1
                current.append(script[position:end])
                position = end
                continue

            if script.startswith('--', position):
                newline = script.find('\n', position)
                position = length if newline == -1 else newline
                continue

            if script.startswith('/*', position):
                closing = script.find('*/', position + 2)
                position = length if closing == -1 else closing + 2
                current.append(' ')
                continue

            if char == ';':
                fragments.append(''.join(current))
                current = []
                position += 1
                continue

            current.append(char)
            position += 1

        fragments.append(''.join(current))
        return fragments

    @staticmethod
    def _inside_identifier(script: str, position: int) -> bool:
        # "a$b$" is an identifier, not the start of a quoted block
        if position == 0:
            return False
        previous = script[position - 1]
        return previous.isalnum() or previous == '_'

    # ------------------------------------------------------------------
    # Classification & ordering
    # ------------------------------------------------------------------

    def classify(self, text: str) -> ClassificationRule:
        for rule, pattern in self._compiled:
            if pattern.search(text):
                return rule
        return ClassificationRule(StatementKind.UNCLASSIFIED, '', UNCLASSIFIED_PRIORITY)

    def plan(self, script: str) -> List[Statement]:
        """Return retained statements, stably ordered by priority."""
        statements: List[Statement] = []
        for fragment in self.split(script):
            text = fragment.strip()
            if not text:
                continue
            if not self._keyword_pattern.search(text):
                logger.warning(f"Discarding fragment without a recognized keyword: {text[:60]!r}")
                continue
            rule = self.classify(text)
            statements.append(Statement(
                index=len(statements),
                text=text if text.endswith(";") else f"{text};",
                kind=rule.kind,
                priority=rule.priority,
            ))

        ordered = sorted(statements, key=lambda statement: statement.priority)
        logger.debug(f"Scheduled {len(ordered)} statements")
        return ordered

    def schedule(self, script: str) -> List[str]:
        return [statement.text for statement in self.plan(script)]


def schedule_script(script: str) -> List[str]:
    """Order a script's statements with the default rule table."""
    return StatementScheduler().schedule(script)
