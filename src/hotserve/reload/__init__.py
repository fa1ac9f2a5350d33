"""Filesystem watching for live reload."""

from hotserve.reload.watcher import HiddenDirectoryFilter, ReloadWatcher, WatchEvent

__all__ = ["HiddenDirectoryFilter", "ReloadWatcher", "WatchEvent"]
