from typing import Optional


class ForgeError(Exception):
    pass


class InvalidSpec(ForgeError):
    """A dataset specification is incomplete or inconsistent."""


class PathNotFound(ForgeError):
    """Root path is missing or is not a directory."""


class InvalidPercentage(ForgeError):
    """A mutation percentage is outside its accepted range."""


class IOFailure(ForgeError):
    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path
