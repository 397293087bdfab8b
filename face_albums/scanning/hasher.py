import hashlib
from pathlib import Path
from dataclasses import dataclass
from .. import config
from ..exceptions import FileHashError

@dataclass
class HashResult:
    digest: str
    size: int

class FileHasher:
    def compute_hash(self, path: Path) -> HashResult:
        """
        Computes the content identity of a file: SHA-256 over its bytes plus
        the number of bytes read. Name, location and mtime play no part.

        The file is streamed in HASH_CHUNK_SIZE pieces so large media never
        has to fit in memory.
        """
        h = hashlib.sha256()
        size = 0
        try:
            with open(path, 'rb') as f:
                while chunk := f.read(config.HASH_CHUNK_SIZE):
                    h.update(chunk)
                    size += len(chunk)
        except OSError as e:
            raise FileHashError(f"Cannot hash {path}: {e}") from e
        return HashResult(h.hexdigest(), size)
