from __future__ import annotations

from typing import Optional


class TreeSurgeryError(ValueError):
    """Base class for errors raised while compiling or applying tree surgery.

    ``source`` and ``line`` are filled in by callers that know where the
    offending text came from (a rule file, a command-line flag) and are
    prefixed to the rendered message.
    """

    def __init__(self, message: str, *, source: Optional[str] = None, line: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.source = source
        self.line = line

    def with_context(self, source: Optional[str] = None, line: Optional[int] = None) -> "TreeSurgeryError":
        if source is not None:
            self.source = source
        if line is not None:
            self.line = line
        return self

    def __str__(self) -> str:
        if self.source is None:
            return self.message
        if self.line is None:
            return f"{self.source}: {self.message}"
        return f"{self.source}:{self.line}: {self.message}"


class TreeFormatError(TreeSurgeryError):
    """Raised when bracketed tree text cannot be read."""


class PatternSyntaxError(TreeSurgeryError):
    def __init__(self, message: str, pattern: str, offset: int, token: str, **context):
        super().__init__(f"{message} at offset {offset} (near {token!r}) in pattern {pattern!r}", **context)
        self.pattern = pattern
        self.offset = offset
        self.token = token


class OperationSyntaxError(TreeSurgeryError):
    def __init__(self, message: str, statement: str, **context):
        super().__init__(f"{message} in operation {statement!r}" if statement else message, **context)
        self.statement = statement


class UnboundCaptureError(OperationSyntaxError):
    def __init__(self, name: str, statement: str, declared: frozenset[str] | set[str], **context):
        known = ", ".join(sorted(declared)) or "none"
        super().__init__(f"capture '{name}' is not declared by the pattern (declared: {known})", statement, **context)
        self.name = name
        self.declared = frozenset(declared)


class StructuralPreconditionError(TreeSurgeryError):
    """Raised when an operation cannot be applied to the matched nodes."""
