"""On-disk cache of parsed include files.

Parsing large vendor libraries (cyclonev_atoms.v is tens of thousands of lines)
dominates short runs, so each include file's InterfaceTable can be pickled next
to a fingerprint of the file it came from. A cached table is only used while the
fingerprint (resolved path, size, mtime) still matches; anything else is a miss.
The cache never changes results.
"""

import hashlib
import logging
import os
import pickle
from pathlib import Path
from typing import Dict, Optional, Union

CACHE_SUFFIX = '.ports.pkl'
CACHE_FORMAT_VERSION = 1

logger = logging.getLogger(__name__)


def source_fingerprint(filepath: Union[str, Path]) -> Dict:
    """Identity of a source file: resolved path, size and modification time."""
    resolved = Path(filepath).resolve()
    st = os.stat(resolved)
    return {
        'path': str(resolved),
        'size': st.st_size,
        'mtime_ns': st.st_mtime_ns,
    }


class PortTableCache:
    """
    Pickle-backed lookup/store of per-file interface tables.

    Example:
        cache = PortTableCache('.fanout_cache')
        table = cache.lookup('cells.v')
        if table is None:
            table = parse_include_file('cells.v')
            cache.store('cells.v', table)
    """

    def __init__(self, cache_dir: Union[str, Path]):
        self.cache_dir = Path(cache_dir)

    def cache_path(self, filepath: Union[str, Path]) -> Path:
        """Cache file for a source: <stem>.<path digest>.ports.pkl"""
        resolved = str(Path(filepath).resolve())
        digest = hashlib.sha1(resolved.encode('utf-8')).hexdigest()[:10]
        return self.cache_dir / f"{Path(filepath).stem}.{digest}{CACHE_SUFFIX}"

    def lookup(self, filepath: Union[str, Path]):
        """
        Return the cached InterfaceTable for filepath, or None on a miss.

        Stale or unreadable entries are misses.
        """
        path = self.cache_path(filepath)
        if not path.exists():
            return None
        try:
            with open(path, 'rb') as f:
                payload = pickle.load(f)
        except (OSError, pickle.UnpicklingError, EOFError, ValueError,
                AttributeError, ImportError) as e:
            logger.warning(f"Ignoring unreadable cache entry {path}: {e}")
            return None

        if not isinstance(payload, dict) or payload.get('version') != CACHE_FORMAT_VERSION:
            logger.warning(f"Ignoring cache entry {path} with unknown format")
            return None
        try:
            fingerprint = source_fingerprint(filepath)
        except OSError:
            return None
        if payload.get('source') != fingerprint:
            logger.debug(f"Cache entry {path} is stale")
            return None
        return payload['table']

    def store(self, filepath: Union[str, Path], table) -> Optional[Path]:
        """Pickle table for filepath. Returns the cache file path, None if it can't be written."""
        path = self.cache_path(filepath)
        payload = {
            'version': CACHE_FORMAT_VERSION,
            'source': source_fingerprint(filepath),
            'table': table,
        }
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            tmp_path = path.with_name(path.name + '.tmp')
            with open(tmp_path, 'wb') as f:
                pickle.dump(payload, f, protocol=pickle.HIGHEST_PROTOCOL)
            os.replace(tmp_path, path)
        except OSError as e:
            logger.warning(f"Could not write cache entry {path}: {e}")
            return None
        logger.debug(f"Stored {len(table)} modules in {path}")
        return path
