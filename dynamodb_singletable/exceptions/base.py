from typing import Any, Dict, Optional


class SingleTableError(Exception):
    """Root of every error raised by the engine.

    ``context`` carries structured details (model, operation, kind, ...) that
    are appended to the message when the error is rendered.
    """

    def __init__(self, message: str, original_error: Optional[Exception] = None, context: Optional[Dict[str, Any]] = None):
        self.message = message
        self.original_error = original_error
        self.context = dict(context or {})
        super().__init__(message)

    def add_context(self, key: str, value: Any) -> 'SingleTableError':
        """Record a context value unless one is already present."""
        self.context.setdefault(key, value)
        return self

    def to_dict(self) -> Dict[str, Any]:
        details = {
            'error': self.__class__.__name__,
            'message': self.message,
            **self.context,
        }
        if self.original_error is not None:
            details['cause'] = repr(self.original_error)
        return details

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{key}={value}" for key, value in self.context.items())
        return f"{self.message} ({details})"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, context={self.context!r})"
