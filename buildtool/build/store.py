"""
Persists fingerprints of compiled projects between runs.
"""
import json
import os
import uuid
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple
import logging

from ..core.exceptions import InvalidProjectError, PersistError
from ..core.models import Project, CompiledProject, DEFAULT_MANIFEST_NAME
from .models import Fingerprint, FingerprintRecord


class FingerprintStore:
    """Reads and writes the fingerprint store file"""

    def __init__(self, store_path: Path, manifest_name: str = DEFAULT_MANIFEST_NAME):
        """
        Initialize fingerprint store.

        Args:
            store_path: Path to the JSON store file
            manifest_name: Marker used to re-validate stored project paths
        """
        self.store_path = Path(store_path)
        self.manifest_name = manifest_name
        self.logger = logging.getLogger(__name__)

    def load(self) -> Dict[CompiledProject, Fingerprint]:
        """
        Load stored fingerprints.

        Records whose project or build directory no longer validates are
        dropped. A missing file is an empty store.

        Returns:
            Dict mapping CompiledProject to its last persisted Fingerprint
        """
        if not self.store_path.exists():
            self.logger.info(f"No fingerprint store at {self.store_path}, starting fresh")
            return {}

        try:
            with open(self.store_path, 'r') as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            self.logger.warning(f"Ignoring unreadable fingerprint store {self.store_path}: {e}")
            return {}

        if not isinstance(data, list):
            self.logger.warning(
                f"Ignoring fingerprint store {self.store_path}: expected a JSON array"
            )
            return {}

        fingerprints = {}
        for entry in data:
            resolved = self._resolve_entry(entry)
            if resolved:
                compiled, fingerprint = resolved
                fingerprints[compiled] = fingerprint

        dropped = len(data) - len(fingerprints)
        self.logger.info(
            f"Loaded {len(fingerprints)} fingerprints from {self.store_path}"
            + (f" ({dropped} dropped)" if dropped else "")
        )
        return fingerprints

    def _resolve_entry(self, entry) -> Optional[Tuple[CompiledProject, Fingerprint]]:
        try:
            record = FingerprintRecord.from_dict(entry)
        except (KeyError, TypeError, ValueError) as e:
            self.logger.debug(f"Dropping malformed fingerprint record {entry!r}: {e}")
            return None

        try:
            project = Project.from_path(record.project_source_path, self.manifest_name)
            compiled = CompiledProject.from_paths(project, record.project_build_path)
        except InvalidProjectError as e:
            self.logger.debug(f"Dropping stale fingerprint record: {e}")
            return None

        return compiled, record.fingerprint

    def save(self, entries: Iterable[Tuple[CompiledProject, Fingerprint]]):
        """
        Overwrite the store with exactly the given entries.

        Args:
            entries: Complete set of (CompiledProject, Fingerprint) pairs to keep

        Raises:
            PersistError: If the file cannot be written
        """
        records: List[dict] = [
            FingerprintRecord.from_compiled(compiled, fingerprint).to_dict()
            for compiled, fingerprint in entries
        ]
        records.sort(key=lambda record: record['project_source_path'])

        temp_path = self.store_path.with_name(
            f".temp_{str(uuid.uuid4())[:8]}_{self.store_path.name}"
        )

        try:
            self.store_path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, 'w') as f:
                json.dump(records, f, indent=2)

            os.replace(str(temp_path), str(self.store_path))

        except OSError as e:
            raise PersistError(
                f"Failed to save fingerprint store {self.store_path}: {e}"
            ) from e

        finally:
            if temp_path.exists():
                try:
                    temp_path.unlink()
                except OSError as e:
                    self.logger.warning(f"Could not remove temp file {temp_path}: {e}")

        self.logger.info(f"Saved {len(records)} fingerprints to {self.store_path}")

    def delete(self) -> bool:
        """Remove the store file. Returns True if a file was removed."""
        if not self.store_path.exists():
            return False
        self.store_path.unlink()
        return True
