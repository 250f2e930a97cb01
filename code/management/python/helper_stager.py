#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Fetches and caches third-party helper scripts.

A staged helper lives at a stable path inside the cache directory, next to a
'.ref' marker recording which version reference it was fetched from and when.
Both files are written to a temporary path first and then moved into place,
so a reader never sees a partially written executable.

Two caching policies are supported:

- persistent: a cached helper whose marker matches the requested version
  reference is reused without touching the network.
- per-run: the helper is fetched on every run and deleted after use.
"""

# --- STANDARD LIBRARY IMPORTS ---
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Set

# --- THIRD-PARTY LIBRARY IMPORTS ---
import requests

PERSISTENT = "persistent"
PER_RUN = "per-run"
CACHE_DIR_MODE = 0o755
HELPER_MODE = 0o755
CHUNK_SIZE = 8192


class StagingError(Exception):
    """Raised when a helper script could not be fetched or published."""


class HelperStager:
    """Fetches a versioned helper script into a cache directory."""

    def __init__(
        self,
        cache_dir: Path,
        policy: str = PERSISTENT,
        session: Optional[requests.Session] = None,
        timeout: int = 60,
    ):
        if policy not in (PERSISTENT, PER_RUN):
            raise ValueError(f"Unknown helper cache policy: '{policy}'")
        self.cache_dir = Path(cache_dir)
        self.policy = policy
        self.session = session if session is not None else requests.Session()
        self.timeout = timeout
        self.fetch_count = 0
        self._in_flight: Set[Path] = set()

    @staticmethod
    def marker_path(path: Path) -> Path:
        return path.with_name(f"{path.name}.ref")

    def cached_ref(self, path: Path) -> Optional[str]:
        """Returns the version reference recorded for a cached helper, if any."""
        try:
            lines = self.marker_path(path).read_text().splitlines()
        except OSError:
            return None
        return lines[0].strip() if lines else None

    def is_cached(self, path: Path, version_ref: str) -> bool:
        return (
            path.is_file()
            and os.access(path, os.X_OK)
            and self.cached_ref(path) == version_ref
        )

    def stage(self, url_template: str, version_ref: str, name: str) -> Path:
        """
        Returns the path of an executable helper for version_ref.

        Raises StagingError on any network or filesystem failure; the cached
        copy, if there was one, is left untouched in that case.
        """
        path = self.cache_dir / name
        if self.policy == PERSISTENT and self.is_cached(path, version_ref):
            logging.info(f"Using cached {name} ({version_ref}) at {path}.")
            return path

        url = url_template.format(ref=version_ref)
        logging.info(f"Fetching {name} ({version_ref}) from {url}...")
        try:
            self.cache_dir.mkdir(mode=CACHE_DIR_MODE, parents=True, exist_ok=True)
            tmp_path = self._download(url, name)
            os.chmod(tmp_path, HELPER_MODE)
            os.replace(tmp_path, path)
            self._in_flight.discard(tmp_path)
            self._write_marker(path, version_ref, url)
        except requests.RequestException as e:
            raise StagingError(f"Failed to download {name} from {url}: {e}") from e
        except OSError as e:
            raise StagingError(f"Failed to publish {name} at {path}: {e}") from e
        finally:
            self.cleanup()

        self.fetch_count += 1
        logging.info(f"Staged {name} at {path}.")
        return path

    def _new_temp(self, name: str) -> Path:
        fd, tmp_name = tempfile.mkstemp(prefix=f".{name}.", dir=self.cache_dir)
        os.close(fd)
        tmp_path = Path(tmp_name)
        self._in_flight.add(tmp_path)
        return tmp_path

    def _download(self, url: str, name: str) -> Path:
        tmp_path = self._new_temp(name)
        with self.session.get(url, stream=True, timeout=self.timeout) as response:
            response.raise_for_status()
            with open(tmp_path, "wb") as handle:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if chunk:
                        handle.write(chunk)
                handle.flush()
                os.fsync(handle.fileno())
        if tmp_path.stat().st_size == 0:
            raise StagingError(f"Downloaded {name} from {url} is empty.")
        return tmp_path

    def _write_marker(self, path: Path, version_ref: str, url: str) -> None:
        fetched_at = datetime.now(timezone.utc).isoformat(timespec="seconds")
        tmp_path = self._new_temp(f"{path.name}.ref")
        tmp_path.write_text(f"{version_ref}\n{url}\n{fetched_at}\n")
        os.chmod(tmp_path, 0o644)
        os.replace(tmp_path, self.marker_path(path))
        self._in_flight.discard(tmp_path)

    def release(self, path: Path) -> None:
        """Deletes a staged helper after use under the per-run policy."""
        if self.policy != PER_RUN:
            return
        for target in (Path(path), self.marker_path(Path(path))):
            try:
                target.unlink()
                logging.debug(f"Removed staged file {target}.")
            except FileNotFoundError:
                pass

    def cleanup(self) -> None:
        """Removes temporary files left behind by an interrupted fetch."""
        for tmp_path in list(self._in_flight):
            try:
                tmp_path.unlink()
                logging.debug(f"Removed temporary file {tmp_path}.")
            except FileNotFoundError:
                pass
            except OSError as e:
                logging.warning(f"Could not remove temporary file {tmp_path}: {e}")
            self._in_flight.discard(tmp_path)
