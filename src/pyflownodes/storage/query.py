"""
Visibility query language.

A query is a conjunction of comparisons:

    WorkflowType = 'OrderWorkflow' AND ExecutionStatus != 'COMPLETED'
    CustomStringField = "order-42"

Keys:
- WorkflowId, RunId, WorkflowType, ExecutionStatus, TaskQueue: execution fields
- anything else: a search attribute; ``=`` matches when the value is among
  the attribute's values, ``!=`` when it is not

The empty query matches every execution.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pyflownodes.errors import ValidationError
from pyflownodes.models.execution import WorkflowExecution

BUILTIN_KEYS = {
    "WorkflowId": "workflow_id",
    "RunId": "run_id",
    "WorkflowType": "workflow_type",
    "ExecutionStatus": "status",
    "TaskQueue": "task_queue",
}

_TOKEN_RE = re.compile(
    r"""\s*(?:
        (?P<string>'(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")
      | (?P<op>!=|=)
      | (?P<word>[A-Za-z_][A-Za-z0-9_]*)
    )""",
    re.VERBOSE,
)


@dataclass(frozen=True)
class Comparison:
    key: str
    op: str
    value: str

    @property
    def is_builtin(self) -> bool:
        return self.key in BUILTIN_KEYS

    def matches(self, execution: WorkflowExecution) -> bool:
        if self.is_builtin:
            actual = getattr(execution, BUILTIN_KEYS[self.key])
            actual = actual.value if self.key == "ExecutionStatus" else actual
            equal = str(actual) == self.value
        else:
            values = execution.search_attributes.get(self.key, [])
            equal = any(str(v) == self.value for v in values)
        return equal if self.op == "=" else not equal


@dataclass(frozen=True)
class VisibilityQuery:
    clauses: tuple[Comparison, ...] = ()

    @classmethod
    def parse(cls, text: str | VisibilityQuery | None) -> VisibilityQuery:
        """
        Parse query text.

        Raises:
            ValidationError: On malformed input
        """
        if isinstance(text, VisibilityQuery):
            return text
        if text is None or not text.strip():
            return cls()

        tokens = _tokenize(text)
        clauses: list[Comparison] = []
        pos = 0
        while True:
            if pos + 3 > len(tokens):
                raise ValidationError(f"Incomplete query: {text!r}")
            (key_kind, key), (op_kind, op), (value_kind, value) = tokens[pos : pos + 3]
            if key_kind != "word" or op_kind != "op" or value_kind != "string":
                raise ValidationError(
                    f"Expected <Key> = '<value>' in query {text!r}, got {key} {op} {value}"
                )
            clauses.append(Comparison(key=key, op=op, value=value))
            pos += 3

            if pos == len(tokens):
                break
            kind, word = tokens[pos]
            if kind != "word" or word.upper() != "AND":
                raise ValidationError(f"Expected AND in query {text!r}, got {word}")
            pos += 1

        return cls(tuple(clauses))

    def matches(self, execution: WorkflowExecution) -> bool:
        return all(clause.matches(execution) for clause in self.clauses)

    def builtin_equalities(self) -> dict[str, str]:
        """Equality clauses on execution fields, as ``{field: value}``.

        Stores push these down to their native filters before applying
        ``matches`` to the remaining candidates.
        """
        return {
            BUILTIN_KEYS[c.key]: c.value for c in self.clauses if c.is_builtin and c.op == "="
        }


def _tokenize(text: str) -> list[tuple[str, str]]:
    tokens: list[tuple[str, str]] = []
    pos = 0
    while pos < len(text):
        if text[pos:].strip() == "":
            break
        match = _TOKEN_RE.match(text, pos)
        if match is None or match.end() == pos:
            raise ValidationError(f"Unexpected character in query at {pos}: {text!r}")
        kind = match.lastgroup
        value = match.group(kind)
        if kind == "string":
            value = re.sub(r"\\(.)", r"\1", value[1:-1])
        tokens.append((kind, value))
        pos = match.end()
    return tokens
