"""Server configuration."""

from collections.abc import Iterable
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hotserve.errors import DirectoryNotFoundError

DEFAULT_PORT = 8090
DEFAULT_IP = "*"
DEFAULT_EXTENSIONS: tuple[str, ...] = (".html",)

ALL_INTERFACES = "0.0.0.0"


def split_extensions(values: Iterable[str]) -> tuple[str, ...]:
    """Flatten repeated and comma-separated extension options.

    ``[".html,.css", ".js"]`` becomes ``(".html", ".css", ".js")``. Order is
    kept and blank entries are dropped.
    """
    extensions: list[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if part:
                extensions.append(part)
    return tuple(extensions)


def has_suffix(path: str, extensions: Iterable[str]) -> bool:
    """Return True if ``path`` ends with any of ``extensions`` (case-sensitive)."""
    return any(path.endswith(ext) for ext in extensions)


class ServerConfig(BaseModel):
    """Immutable settings for one server run."""

    model_config = ConfigDict(frozen=True)

    root: Path
    ip: str = DEFAULT_IP
    port: int = Field(default=DEFAULT_PORT, ge=0, le=65535)
    watch_exts: tuple[str, ...] = DEFAULT_EXTENSIONS
    inject_exts: tuple[str, ...] = DEFAULT_EXTENSIONS

    @field_validator("root")
    @classmethod
    def _absolute_root(cls, value: Path) -> Path:
        return value.expanduser().absolute()

    @field_validator("watch_exts", "inject_exts", mode="before")
    @classmethod
    def _normalize_extensions(cls, value: Iterable[str] | str) -> tuple[str, ...]:
        if isinstance(value, str):
            value = [value]
        return split_extensions(value)

    @classmethod
    def from_directory(cls, directory: str | Path | None = None, **options) -> "ServerConfig":
        """Build a config for ``directory``, defaulting to the working directory.

        Raises:
            DirectoryNotFoundError: If the directory is missing or not a directory.
        """
        path = Path(directory) if directory else Path.cwd()
        if not path.is_dir():
            raise DirectoryNotFoundError(str(directory or path))
        return cls(root=path.resolve(), **options)

    @property
    def bind_host(self) -> str:
        """Host passed to the socket layer; ``*`` means all interfaces."""
        if self.ip in ("", DEFAULT_IP):
            return ALL_INTERFACES
        return self.ip

    @property
    def address(self) -> str:
        return f"{self.ip}:{self.port}"

    @property
    def display_url(self) -> str:
        return f"http://{self.address}"

    def is_watched(self, path: str) -> bool:
        return has_suffix(path, self.watch_exts)

    def is_injectable(self, path: str) -> bool:
        return has_suffix(path, self.inject_exts)
