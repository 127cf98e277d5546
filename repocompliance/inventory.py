"""Repository file inventory helpers.

``FileInventory`` wraps the caller-owned list of ``FileInventoryEntry`` values
and answers the case-insensitive lookups the evaluators need. Content is
requested lazily through a ``ContentProvider`` so callers can back it with any
file source; ``load_git_inventory`` builds an inventory from a local checkout.

A provider returns None for content it does not have. Fetch failures are
reported by raising ``ContentUnavailableError``; ``OSError`` and
``UnicodeDecodeError`` are accepted too. Each reads as unavailable content
and the evaluators turn it into a warning. Any other exception is a provider
bug and propagates.
"""

from __future__ import annotations

import logging
import typing as typ
from pathlib import Path

import pygit2

from .errors import ContentUnavailableError, InventoryError
from .models import FileInventoryEntry

if typ.TYPE_CHECKING:
    import collections.abc as cabc

_logger = logging.getLogger(__name__)

# Returns None or raises ContentUnavailableError for unavailable content.
ContentProvider = typ.Callable[[str], "str | None"]


class FileInventory:
    """Read-only view over a repository snapshot."""

    def __init__(
        self,
        entries: cabc.Iterable[FileInventoryEntry | cabc.Mapping[str, typ.Any]],
        *,
        content_provider: ContentProvider | None = None,
    ) -> None:
        """Normalise the entries and remember how to fetch content."""
        self._entries: tuple[FileInventoryEntry, ...] = tuple(
            _coerce_entry(entry) for entry in entries
        )
        self._lowered: tuple[str, ...] = tuple(
            entry.path.lower() for entry in self._entries
        )
        self._content_provider = content_provider

    def __len__(self) -> int:
        """Return the number of files in the snapshot."""
        return len(self._entries)

    @property
    def paths(self) -> tuple[str, ...]:
        """Original paths in input order."""
        return tuple(entry.path for entry in self._entries)

    @property
    def lowered_paths(self) -> tuple[str, ...]:
        """Lower-cased paths in input order."""
        return self._lowered

    def find(self, path: str) -> str | None:
        """Return the original path matching ``path`` case-insensitively."""
        target = path.lower()
        for entry, lowered in zip(self._entries, self._lowered, strict=True):
            if lowered == target:
                return entry.path
        return None

    def contains(self, path: str) -> bool:
        """Return True when ``path`` exists (case-insensitive, exact)."""
        return self.find(path) is not None

    def under(self, folder: str) -> tuple[str, ...]:
        """Return original paths contained in ``folder``."""
        prefix = folder.lower().rstrip("/") + "/"
        return tuple(
            entry.path
            for entry, lowered in zip(self._entries, self._lowered, strict=True)
            if lowered.startswith(prefix)
        )

    def read(self, path: str) -> str | None:
        """Return the content of ``path`` or None when it cannot be read."""
        if self._content_provider is not None:
            try:
                return self._content_provider(path)
            except (
                ContentUnavailableError,
                OSError,
                UnicodeDecodeError,
            ) as error:
                _logger.debug("Content provider failed for %s: %s", path, error)
                return None
        for entry in self._entries:
            if entry.path == path:
                return entry.content
        return None


def _coerce_entry(
    entry: FileInventoryEntry | cabc.Mapping[str, typ.Any],
) -> FileInventoryEntry:
    if isinstance(entry, FileInventoryEntry):
        return entry
    try:
        path = entry["path"]
    except (KeyError, TypeError) as error:
        message = f"Inventory entry is missing a path: {entry!r}"
        raise InventoryError(message) from error
    content = entry.get("content")
    return FileInventoryEntry(
        path=str(path),
        content=content if isinstance(content, str) else None,
    )


def _repository_not_found_error(path: Path) -> InventoryError:
    return InventoryError(f"Repository {str(path)!r} not found.")


def _unresolvable_ref_error(ref: str, error: Exception) -> InventoryError:
    return InventoryError(f"Cannot resolve {ref!r} to a tree: {error}")


def _open_repository(path: Path) -> pygit2.Repository:
    try:
        resolved = pygit2.discover_repository(str(path))
    except KeyError as error:
        raise _repository_not_found_error(path) from error
    if resolved is None:
        raise _repository_not_found_error(path)
    try:
        return pygit2.Repository(resolved)
    except pygit2.GitError as error:
        detail = f"Cannot open repository {str(path)!r}: {error}"
        raise InventoryError(detail) from error


def load_git_inventory(
    path: Path,
    *,
    ref: str = "HEAD",
    include_content: bool = True,
) -> tuple[FileInventoryEntry, ...]:
    """Return the recursive file tree of ``ref`` in the repository at ``path``.

    Blob content is decoded as UTF-8; binary or undecodable blobs are listed
    without content so that evaluators treat them as unreadable.
    """
    repository = _open_repository(Path(path).expanduser())
    try:
        tree = repository.revparse_single(ref).peel(pygit2.Tree)
    except (KeyError, ValueError, pygit2.GitError) as error:
        raise _unresolvable_ref_error(ref, error) from error

    entries: list[FileInventoryEntry] = []
    _walk_tree(repository, tree, "", entries, include_content=include_content)
    _logger.debug("Loaded %d files from %s at %s", len(entries), path, ref)
    return tuple(entries)


def _walk_tree(
    repository: pygit2.Repository,
    tree: pygit2.Tree,
    prefix: str,
    entries: list[FileInventoryEntry],
    *,
    include_content: bool,
) -> None:
    for item in tree:
        item_path = f"{prefix}{item.name}"
        if item.type_str == "tree":
            subtree = repository[item.id].peel(pygit2.Tree)
            _walk_tree(
                repository,
                subtree,
                f"{item_path}/",
                entries,
                include_content=include_content,
            )
        elif item.type_str == "blob":
            content = _decode_blob(repository, item.id) if include_content else None
            entries.append(FileInventoryEntry(path=item_path, content=content))


def _decode_blob(repository: pygit2.Repository, oid: pygit2.Oid) -> str | None:
    blob = repository[oid].peel(pygit2.Blob)
    if blob.is_binary:
        return None
    try:
        return blob.data.decode("utf-8")
    except UnicodeDecodeError:
        return None
