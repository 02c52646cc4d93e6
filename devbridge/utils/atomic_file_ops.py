"""
Atomic JSON file operations shared by the marker store and the fake config bridge.
Writers replace whole files with tempfile + rename so readers in another
process never observe a half-written document.
"""
import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

import fasteners


class CorruptFileError(ValueError):
    """Raised when a JSON file exists but cannot be decoded."""


class AtomicFileOperations:
    """Provides atomic file operations using tempfile + rename pattern."""

    @staticmethod
    def lock_for(file_path: Path) -> fasteners.InterProcessLock:
        """Inter-process lock guarding read-modify-write cycles on file_path."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        return fasteners.InterProcessLock(str(file_path.parent / f"{file_path.name}.lock"))

    @staticmethod
    def read_json(file_path: Path) -> Optional[Any]:
        """
        Read a JSON file.

        Returns:
            Decoded document, or None if the file does not exist

        Raises:
            CorruptFileError: file exists but is not valid JSON
        """
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise CorruptFileError(f"{file_path}: {e}") from e

    @staticmethod
    def write_json_atomic(file_path: Path, data: Any) -> Any:
        """Atomically write JSON data using tempfile + rename."""
        file_path = Path(file_path)
        file_path.parent.mkdir(parents=True, exist_ok=True)

        # Temp file must live in the same directory for rename to be atomic
        with tempfile.NamedTemporaryFile(
            mode='w',
            encoding='utf-8',
            delete=False,
            dir=file_path.parent,
            suffix='.tmp',
            prefix=f"{file_path.name}."
        ) as tmp:
            tmp_path = tmp.name
            try:
                json.dump(data, tmp, indent=2)
                tmp.flush()
                os.fsync(tmp.fileno())
            except (TypeError, ValueError, OSError):
                tmp.close()
                os.unlink(tmp_path)
                raise

        try:
            os.replace(tmp_path, file_path)
            return data
        except OSError:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    @staticmethod
    def remove(file_path: Path) -> bool:
        """Delete file_path if present. Returns True if a file was removed."""
        try:
            os.unlink(file_path)
            return True
        except FileNotFoundError:
            return False
