"""Packaging of a local build context into a gzip-compressed tar archive."""

from __future__ import annotations

import gzip
import logging
import os
import tarfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Set, Tuple, Union

from .errors import ArchiveError
from .ignore import (
    Decision,
    IgnoreRule,
    compile_rule,
    compile_rules,
    decide,
    is_common_ignore,
    normalize_path,
    read_ignore_file,
)

logger = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

DEFAULT_IGNORE_FILE = ".dockerignore"


@dataclass(frozen=True)
class CompletedArchive:
    """A sealed archive and the absolute paths packaged into it."""

    path: Path
    file_list: Tuple[str, ...]

    def __len__(self) -> int:
        return len(self.file_list)


class ArchiveBuilder:
    """Stream files and directories into a ``.tar.gz`` build context.

    Configuration calls (:meth:`with_ignore`) and additions
    (:meth:`add_path`, :meth:`add_file`, :meth:`add_directory`) are applied
    in call order; :meth:`seal` finishes the archive and returns a
    :class:`CompletedArchive`. After sealing, or after an error aborted the
    build, the builder rejects further calls.

    Entries are written in PAX format so paths longer than the classic
    100-character tar limit are kept intact. Symbolic links are followed.

    Examples:
        >>> with ArchiveBuilder("context.tar.gz") as builder:
        ...     builder.with_ignore(["*.log", "build/"]).add_directory(".")
        ...     archive = builder.seal()
        >>> archive.file_list
        ('/work/Dockerfile', '/work/app', '/work/app/main.py')
    """

    def __init__(self, destination: PathLike) -> None:
        self.destination = Path(destination)
        self._destination_abs = os.path.abspath(self.destination)
        self._rules: Tuple[IgnoreRule, ...] = ()
        self._file_list: List[str] = []
        self._visited_dirs: Set[Tuple[int, int]] = set()
        self._sealed = False
        self._closed = False

        try:
            self._fileobj: BinaryIO = open(self.destination, "wb")
        except OSError as exc:
            raise ArchiveError(
                f"Cannot create archive '{self.destination}': {exc}"
            ) from exc

        try:
            self._gzip = gzip.GzipFile(fileobj=self._fileobj, mode="wb")
            self._tar = tarfile.TarFile(
                fileobj=self._gzip,
                mode="w",
                format=tarfile.PAX_FORMAT,
                dereference=True,
            )
        except BaseException:
            self._fileobj.close()
            raise

        logger.debug("Opened archive %s", self.destination)

    @classmethod
    def open(cls, destination: PathLike) -> "ArchiveBuilder":
        return cls(destination)

    def __enter__(self) -> "ArchiveBuilder":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        if exc_type is not None:
            self.abort()
        elif not self._closed:
            self.seal()
        return False

    @property
    def file_list(self) -> Tuple[str, ...]:
        return tuple(self._file_list)

    @property
    def sealed(self) -> bool:
        return self._sealed

    def with_ignore(
        self, patterns: Optional[Iterable[Union[str, IgnoreRule]]]
    ) -> "ArchiveBuilder":
        """Install the ordered ignore rules used for all later additions."""
        self._ensure_open()
        rules: List[IgnoreRule] = []
        for pattern in patterns or ():
            if isinstance(pattern, IgnoreRule):
                rules.append(pattern)
            else:
                rules.append(compile_rule(pattern))
        self._rules = tuple(rules)
        return self

    def add_path(self, path: PathLike) -> "ArchiveBuilder":
        if os.path.isdir(path):
            return self.add_directory(path)
        return self.add_file(path)

    def add_file(self, path: PathLike) -> "ArchiveBuilder":
        """Add a single path stored under its own normalised name."""
        self._ensure_open()
        absolute = os.path.abspath(os.fspath(path))
        self._guarded(self._add_entry, absolute, _entry_name(path))
        return self

    def add_directory(self, path: PathLike) -> "ArchiveBuilder":
        """Recursively add the contents of ``path``, relative to ``path``.

        The directory itself is not an entry. A missing directory or one
        that cannot be listed adds nothing.
        """
        self._ensure_open()
        root = os.path.abspath(os.fspath(path))
        if not os.path.exists(root):
            logger.debug("Build context %s does not exist, nothing to add", root)
            return self
        self._guarded(self._add_children, root, "")
        return self

    def seal(self) -> CompletedArchive:
        """Flush and close the tar, gzip and file streams."""
        self._ensure_open()
        try:
            self._tar.close()
            self._gzip.close()
            self._fileobj.close()
        except OSError as exc:
            self.abort()
            raise ArchiveError(
                f"Failed to finish archive '{self.destination}': {exc}"
            ) from exc

        self._closed = True
        self._sealed = True
        archive = CompletedArchive(path=self.destination, file_list=self.file_list)
        logger.info(
            "Packaged %d entries into %s", len(archive.file_list), self.destination
        )
        return archive

    def abort(self) -> None:
        """Close all streams without finishing the archive.

        The partially written file is left on disk.
        """
        if self._closed:
            return
        self._closed = True
        self._tar.closed = True
        for stream in (self._gzip, self._fileobj):
            try:
                stream.close()
            except OSError as exc:
                logger.debug("Error closing %r while aborting: %s", stream, exc)
        logger.debug("Aborted archive %s", self.destination)

    def _ensure_open(self) -> None:
        if self._closed:
            state = "sealed" if self._sealed else "aborted"
            raise ArchiveError(f"Archive '{self.destination}' is already {state}.")

    def _guarded(self, func, *args) -> None:
        try:
            func(*args)
        except ArchiveError:
            self.abort()
            raise
        except OSError as exc:
            self.abort()
            raise ArchiveError(
                f"Failed to write archive '{self.destination}': {exc}"
            ) from exc
        except BaseException:
            self.abort()
            raise

    def _add_entry(self, path: str, arcname: str) -> None:
        if (
            not os.path.exists(path)
            or path == self._destination_abs
            or is_common_ignore(os.path.basename(path))
            or decide(self._rules, arcname) is Decision.EXCLUDE
        ):
            logger.debug("Skipping %s", arcname)
            return

        info = self._tar.gettarinfo(name=path, arcname=arcname)
        if info is None:
            logger.debug("Skipping unsupported file type %s", path)
            return

        self._file_list.append(path)
        if info.isreg():
            with open(path, "rb") as source:
                self._tar.addfile(info, source)
        else:
            self._tar.addfile(info)

        if info.isdir():
            self._add_children(path, arcname)

    def _add_children(self, directory: str, arcname: str) -> None:
        try:
            stat = os.stat(directory)
        except OSError as exc:
            logger.debug("Cannot stat %s: %s", directory, exc)
            return
        key = (stat.st_dev, stat.st_ino)
        if key in self._visited_dirs:
            logger.debug("Already visited %s, not descending again", directory)
            return
        self._visited_dirs.add(key)

        for name in _list_children(directory):
            child_arcname = f"{arcname}/{name}" if arcname else name
            self._add_entry(os.path.join(directory, name), child_arcname)


def package_context(
    context_dir: PathLike,
    destination: PathLike,
    ignore: Optional[Iterable[str]] = None,
    ignore_file: Optional[str] = DEFAULT_IGNORE_FILE,
) -> CompletedArchive:
    """Package ``context_dir`` into ``destination`` in one call.

    The configured ``ignore`` patterns come first and therefore take
    precedence over the patterns read from ``ignore_file`` inside the
    context. All patterns are compiled before the destination is created.
    """
    context = Path(context_dir)
    patterns: List[str] = list(ignore or [])
    if ignore_file:
        patterns.extend(read_ignore_file(context / ignore_file))
    rules = compile_rules(patterns)

    logger.debug(
        "Packaging %s into %s with %d ignore rules", context, destination, len(rules)
    )
    with ArchiveBuilder(destination) as builder:
        builder.with_ignore(rules).add_directory(context)
        return builder.seal()


def _list_children(directory: str) -> List[str]:
    try:
        with os.scandir(directory) as entries:
            return [entry.name for entry in entries]
    except OSError as exc:
        logger.warning("Cannot list %s, skipping its contents: %s", directory, exc)
        return []


def _entry_name(path: PathLike) -> str:
    value = os.path.normpath(os.fspath(path))
    value = os.path.splitdrive(value)[1]
    parts = normalize_path(value).lstrip("/").split("/")
    while parts and parts[0] == "..":
        parts.pop(0)
    value = "/".join(parts)
    if not value or value == ".":
        value = os.path.basename(os.path.abspath(os.fspath(path)))
    return value
