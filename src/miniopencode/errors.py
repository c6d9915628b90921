from __future__ import annotations


class MiniOpencodeError(Exception):
    pass


class ResolutionError(MiniOpencodeError):
    pass


class CatalogError(MiniOpencodeError):
    def __init__(self, message: str, *, status_code: int | None = None, body: str = ""):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class FeedError(MiniOpencodeError):
    def __init__(self, message: str, *, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
