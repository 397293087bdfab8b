import os
import re
import logging
from pathlib import Path
from typing import Iterator, Iterable, Optional, List, Tuple, Union
from datetime import datetime

from .. import config
from ..models import PhotoInfo
from ..database.dircache import DirectoryCache
from .sortkey import sort_key


class LocalPhotoSource:
    """
    Walks local directories and yields candidate photos.

    Hidden entries are never visited. Inside a directory, photos come out in
    sort-key order; subdirectories follow, alphabetically, depth first.

    With a DirectoryCache, a directory whose mtime matches the cached value
    has its files skipped (no stat, nothing yielded). Its subdirectories are
    still walked and judged on their own mtimes.
    """
    def __init__(self,
                 paths: Iterable[Union[Path, str]],
                 extensions: Optional[Iterable[str]] = None,
                 dir_cache: Optional[DirectoryCache] = None,
                 name_filter: Optional[Union[str, re.Pattern]] = None,
                 scan_id: Optional[int] = None,
                 record_dirs: bool = True):
        self.paths = [Path(p) for p in paths]
        self.extensions = {e.lower() for e in (extensions or config.PHOTO_EXTS)}
        self.name_filter = re.compile(name_filter) if isinstance(name_filter, str) else name_filter
        self.scan_id = scan_id

        # A filtered walk only sees part of each directory, so it must not
        # mark directories as fully scanned.
        if dir_cache is not None and self.name_filter is not None:
            logging.debug("Directory cache disabled because a name filter is active.")
            dir_cache = None
        self.dir_cache = dir_cache
        # A run that may stop early (new-scan limit) reads the cache but
        # never marks directories as done.
        self.record_dirs = record_dirs

        self.skipped_dirs = 0
        self.skipped_files = 0

    def scan(self) -> Iterator[PhotoInfo]:
        self.skipped_dirs = 0
        self.skipped_files = 0
        yield from self._walk_paths(record=True)
        if self.skipped_dirs:
            logging.info(f"Skipped {self.skipped_dirs} unchanged directories ({self.skipped_files} photos).")

    def count(self) -> int:
        """Number of photos scan() would yield right now. Never writes the cache."""
        return sum(1 for _ in self._walk_paths(record=False))

    def _walk_paths(self, record: bool) -> Iterator[PhotoInfo]:
        for root in self.paths:
            yield from self._walk(root, record=record)

    def _walk(self, root: Path, record: bool) -> Iterator[PhotoInfo]:
        """Depth-first walker using os.scandir."""
        if root.is_file():
            if self._accepts(root.name):
                info = self._photo_info(root)
                if info:
                    yield info
            return

        stack = [root]
        while stack:
            current = stack.pop()
            try:
                dir_mtime_ns = os.stat(current).st_mtime_ns
                with os.scandir(current) as it:
                    entries = [e for e in it if not e.name.startswith('.')]
            except OSError as e:
                logging.warning(f"Cannot read directory {current}: {e}")
                continue

            dirs = sorted((e for e in entries if e.is_dir(follow_symlinks=False)), key=lambda e: e.name.lower())
            files = [e for e in entries if e.is_file(follow_symlinks=False)
                     and os.path.splitext(e.name)[1].lower() in self.extensions]

            # Push dirs reversed so we process A before Z
            for d in reversed(dirs):
                stack.append(Path(d.path))

            if self.dir_cache is not None:
                cached_count = self.dir_cache.should_skip(current, dir_mtime_ns)
                if cached_count is not None:
                    if record:
                        self.skipped_dirs += 1
                        self.skipped_files += cached_count
                        logging.debug(f"Unchanged directory, skipping {cached_count} photos: {current}")
                    continue
                if record and self.record_dirs:
                    # Written as soon as the listing is known so an interrupted
                    # run still remembers directories it finished reading.
                    self.dir_cache.on_scanned(current, dir_mtime_ns, len(files), self.scan_id)

            for path, _ in self._ordered(files):
                if not self._accepts(path.name):
                    continue
                info = self._photo_info(path)
                if info:
                    yield info

    def _ordered(self, files: List[os.DirEntry]) -> List[Tuple[Path, str]]:
        named = [(Path(e.path), e.name) for e in files]
        named.sort(key=lambda item: (sort_key(item[1]), item[1]))
        return named

    def _accepts(self, name: str) -> bool:
        if name.startswith('.'):
            return False
        if os.path.splitext(name)[1].lower() not in self.extensions:
            return False
        if self.name_filter is not None and not self.name_filter.search(name):
            return False
        return True

    def _stat_file(self, path: Path) -> os.stat_result:
        return os.stat(path)

    def _photo_info(self, path: Path) -> Optional[PhotoInfo]:
        try:
            st = self._stat_file(path)
        except OSError as e:
            # File might have been moved/deleted during scan
            logging.debug(f"Cannot stat {path}: {e}")
            return None
        return PhotoInfo(
            path=path,
            filename=path.stem,
            extension=path.suffix.lower(),
            size=st.st_size,
            modified_at=datetime.fromtimestamp(st.st_mtime),
        )
