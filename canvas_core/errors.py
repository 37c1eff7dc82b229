"""
Canvas error taxonomy.

- ParseError: diagram text is malformed or yields no nodes (surfaced verbatim)
- BindingResolutionFailure: an arrow binding points at a deleted element
- RendererFailure: the external renderer rejected an operation
- StorageCorruption: persisted state failed structural validation

Only ParseError and RendererFailure ever propagate to callers. Binding and
storage problems are recovered where they are detected.
"""

from typing import Any, Optional


class CanvasError(Exception):
    """Base exception for all canvas errors.

    Keeps a human-readable message plus optional context for logs.
    """

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class ParseError(CanvasError):
    """Raised when diagram text cannot be turned into a graph."""

    def __init__(self, message: str, grammar: Optional[str] = None,
                 line_number: Optional[int] = None):
        context: dict[str, Any] = {}
        if grammar is not None:
            context["grammar"] = grammar
        if line_number is not None:
            context["line"] = line_number
        super().__init__(message, context)
        self.grammar = grammar
        self.line_number = line_number

    def __str__(self) -> str:
        # Shown to users as-is
        return self.message


class BindingResolutionFailure(CanvasError):
    """A binding's target element no longer exists."""
    pass


class RendererFailure(CanvasError):
    """The rendering collaborator rejected a request."""
    pass


class StorageCorruption(CanvasError):
    """Persisted canvas state is not structurally valid."""
    pass
