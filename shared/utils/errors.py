from __future__ import annotations


class RaceDataError(Exception):
    """Base class for errors surfaced to API callers."""

    status_code = 500

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.detail = detail


class NotFoundError(RaceDataError):
    status_code = 404

    def __init__(self, entity: str, identifier: object) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.identifier = identifier


class UpstreamError(RaceDataError):
    """The weather service was unreachable or answered with garbage."""

    status_code = 502
