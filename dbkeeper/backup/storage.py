"""
Local storage for backup archives.

All archives of all jobs live flat in one backup directory; the backup log
stores bare filenames relative to it.
"""

import os
from pathlib import Path


class StorageError(Exception):
    """Raised when storage operation fails."""
    pass


class BackupFileNotFound(StorageError):
    """Raised when a backup file is expected on disk but missing."""
    pass


class LocalStorage:
    """
    Handler for the backup directory.
    """

    def __init__(self, base_path: str):
        """
        Initialize local storage handler.

        Args:
            base_path: Directory holding backup archives
        """
        self.base_path = Path(base_path)
        self.ensure_directory()

    def ensure_directory(self):
        """
        Create the backup directory if it doesn't exist.

        Raises:
            StorageError: If the directory cannot be created
        """
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create backup directory {self.base_path}: {e}")

    def path_for(self, filename: str) -> str:
        """
        Get full filesystem path for a backup filename.

        Args:
            filename: Bare archive filename

        Returns:
            Full filesystem path

        Raises:
            StorageError: If filename would escape the backup directory
        """
        if not filename or os.path.basename(filename) != filename or filename in ('.', '..'):
            raise StorageError(f"Invalid backup filename: {filename!r}")
        return str(self.base_path / filename)

    def unique_name(self, filename: str) -> str:
        """
        Return filename, suffixed with -1, -2, ... if it is already taken.

        Args:
            filename: Preferred filename

        Returns:
            Filename not present in the backup directory
        """
        if not self.exists(filename):
            return filename

        stem, extension = os.path.splitext(filename)
        counter = 1
        while True:
            candidate = f"{stem}-{counter}{extension}"
            if not self.exists(candidate):
                return candidate
            counter += 1

    def exists(self, filename: str) -> bool:
        return os.path.isfile(self.path_for(filename))

    def size(self, filename: str) -> int:
        """
        Get size of a stored file in bytes.

        Raises:
            BackupFileNotFound: If the file doesn't exist
        """
        try:
            return os.path.getsize(self.path_for(filename))
        except FileNotFoundError:
            raise BackupFileNotFound(f"Backup file not found: {filename}")

    def delete(self, filename: str) -> bool:
        """
        Delete a file from the backup directory.

        A missing file is not an error.

        Args:
            filename: Bare archive filename

        Returns:
            True if a file was removed, False if it was already gone

        Raises:
            StorageError: If deletion fails
        """
        full_path = Path(self.path_for(filename))

        try:
            full_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete backup file: {e}")
