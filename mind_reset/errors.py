from __future__ import annotations

import logging
from typing import Callable

from mind_reset.i18n.core import DEFAULT_LOCALE, resolve_locale, t

logger = logging.getLogger("mind_reset.errors")


class MindResetError(Exception):
    """Base class for errors raised by the scheduling and habit core."""

    message_key = "error.generic"

    def __init__(self, detail: str = "", *, message_key: str | None = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if message_key is not None:
            self.message_key = message_key

    def user_message(self, locale: str = DEFAULT_LOCALE) -> str:
        return t(self.message_key, locale, detail=self.detail)


class NotFound(MindResetError):
    message_key = "error.not_found"


class DecodeError(MindResetError):
    message_key = "error.decode"


class StoreError(MindResetError):
    """The document store could not be reached or refused a read."""

    message_key = "error.store"


class StoreWriteError(StoreError):
    message_key = "error.store_write"


class ValidationError(MindResetError):
    message_key = "error.validation"


ErrorListener = Callable[[MindResetError], None]


class ErrorChannel:
    """Observable sink for failures caught at a store boundary.

    Stores never raise I/O failures to their callers; they publish them here
    so the UI layer can show ``message`` and offer a retry.
    """

    def __init__(self, locale: str | None = DEFAULT_LOCALE) -> None:
        self.locale = resolve_locale(locale)
        self._listeners: list[ErrorListener] = []
        self.history: list[MindResetError] = []

    @property
    def last(self) -> MindResetError | None:
        return self.history[-1] if self.history else None

    @property
    def message(self) -> str | None:
        err = self.last
        return err.user_message(self.locale) if err else None

    def listen(self, listener: ErrorListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _remove

    def publish(self, error: MindResetError) -> None:
        self.history.append(error)
        for listener in list(self._listeners):
            try:
                listener(error)
            except Exception:  # noqa: BLE001
                logger.exception("Error listener failed")

    def clear(self) -> None:
        self.history.clear()
