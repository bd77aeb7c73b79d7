"""Exception types shared across ScreenSense."""

from __future__ import annotations


class ScreenSenseError(Exception):
    """Base class for errors raised by ScreenSense itself."""

    status_code = 500


class CaptureError(ScreenSenseError):
    """Screenpipe returned something we could not interpret."""

    status_code = 502


class StoreError(ScreenSenseError):
    """The document store could not be reached or rejected an operation."""

    status_code = 500


class InvalidTransition(ScreenSenseError):
    """An insight status change that the lifecycle does not allow."""

    status_code = 409

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move insight from '{current}' to '{target}'")
        self.current = current
        self.target = target
