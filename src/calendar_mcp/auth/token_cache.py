"""Per-account token cache files.

Each account gets one file under the token directory. The credential
providers store whatever their library serializes (an MSAL token cache, a
google-auth authorized-user document) and this module only handles the file:
restricted permissions, atomic replacement and a lock per file so concurrent
fan-out workers never interleave writes.
"""
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from calendar_mcp.paths import get_token_directory, sanitize_account_id

logger = logging.getLogger(__name__)


class TokenCacheStore:
    """Reads and writes per-account token cache files.

    Attributes:
        token_dir: Directory holding the cache files
        suffix: File suffix distinguishing cache formats (e.g. '.msal.json')
    """

    def __init__(self, token_dir: Optional[Path] = None, suffix: str = '.json'):
        self.token_dir = Path(token_dir) if token_dir is not None else get_token_directory()
        self.suffix = suffix
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        logger.debug(f"TokenCacheStore initialized with token_dir: {self.token_dir}")

    def path_for(self, account_id: str) -> Path:
        """Get the cache file path for an account.

        Raises:
            ValueError: If the account id is empty
        """
        return self.token_dir / f"{sanitize_account_id(account_id)}{self.suffix}"

    def lock_for(self, account_id: str) -> threading.Lock:
        """Lock guarding one account's cache file."""
        key = sanitize_account_id(account_id)
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock

    def read(self, account_id: str) -> Optional[str]:
        """Return the cache file contents, or None if there is no file."""
        path = self.path_for(account_id)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            logger.debug(f"No token cache for account '{account_id}': {path}")
            return None

    def write(self, account_id: str, content: str) -> None:
        """Write the cache file atomically (temp file + rename) with 0600 permissions.

        Raises:
            OSError: If the directory or file cannot be written
        """
        self.token_dir.mkdir(parents=True, exist_ok=True)
        try:
            os.chmod(self.token_dir, 0o700)
        except OSError:
            # Windows may not support chmod fully
            logger.debug(f"Could not set directory permissions on {self.token_dir}")

        path = self.path_for(account_id)
        temp_fd, temp_path = tempfile.mkstemp(
            dir=self.token_dir,
            prefix=f".{path.name}.tmp.",
        )
        try:
            with os.fdopen(temp_fd, 'w', encoding='utf-8') as f:
                f.write(content)
            try:
                os.chmod(temp_path, 0o600)
            except OSError:
                logger.warning(f"Could not set temp file permissions on {temp_path}")
            os.replace(temp_path, path)
        except Exception:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

        logger.debug(f"Saved token cache for account '{account_id}' to {path}")
