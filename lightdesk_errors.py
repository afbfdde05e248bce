"""Error taxonomy shared by the editor, the live view and the REST client."""

from __future__ import annotations


class LightdeskError(Exception):
    """Base class for every error the UI surfaces on its status line."""


class FetchError(LightdeskError):
    """A GET failed at the network level or returned a non-2xx status."""

    def __init__(self, message: str, *, method: str = "GET", url: str = "", status_code: int | None = None) -> None:
        self.message = message
        self.method = method
        self.url = url
        self.status_code = status_code
        super().__init__(str(self))

    def __str__(self) -> str:
        parts = [self.message]
        if self.url:
            parts.append(f"{self.method} {self.url}")
        if self.status_code is not None:
            parts.append(f"status={self.status_code}")
        return " | ".join(parts)


class SaveError(FetchError):
    """The config POST failed; the in-memory model is left as it was."""

    def __init__(self, message: str, *, url: str = "", status_code: int | None = None) -> None:
        super().__init__(message, method="POST", url=url, status_code=status_code)


class MalformedInputError(LightdeskError, ValueError):
    """Structured text typed into a field could not be parsed."""

    def __init__(self, name: str, detail: str) -> None:
        self.name = name
        self.detail = detail
        super().__init__(f"{name}: {detail}")


class NoSchemaError(LightdeskError):
    """A registry was empty where a default type was required."""


class NotFoundError(LightdeskError, KeyError):
    """A chain, effect, event or action does not exist in the model."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "not found"


class DuplicateKeyError(LightdeskError, ValueError):
    """A rename would collide with an existing key."""
