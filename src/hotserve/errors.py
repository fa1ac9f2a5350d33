"""Startup errors raised before the server begins serving."""


class HotServeError(Exception):
    """Base class for errors that stop the server from starting."""


class DirectoryNotFoundError(HotServeError):
    """The directory to serve does not exist or is not a directory."""

    def __init__(self, directory: str):
        self.directory = directory
        super().__init__(f"directory {directory} does not exist")


class WatcherError(HotServeError):
    """The filesystem watcher could not be set up."""


class BindError(HotServeError):
    """The listening address could not be bound."""

    def __init__(self, address: str, reason: str):
        self.address = address
        super().__init__(f"cannot listen on {address}: {reason}")
