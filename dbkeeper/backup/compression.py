"""
Archive handling for database dumps.

Each backup is a zip archive holding exactly one ``.sql`` entry.
"""

import os
import re
import tempfile
import unicodedata
import zipfile
from datetime import datetime
from typing import Optional, Tuple


TIMESTAMP_FORMAT = '%Y-%m-%d_%H-%M-%S'

# Keeps "backup-{slug}-{timestamp}-{n}.zip" well inside a 255 byte filename
MAX_SLUG_LENGTH = 100


class CompressionError(Exception):
    """Raised when archive creation fails."""
    pass


class ArchiveExistsError(CompressionError):
    """Raised when the target archive name was taken by another writer."""
    pass


def create_archive(entry_name: str, data: bytes, archive_path: str) -> str:
    """
    Write a single-entry zip archive.

    The archive is written to a temporary file in the target directory and
    hard-linked into place. A failure never leaves a partial archive behind,
    and an existing file at archive_path is never overwritten.

    Args:
        entry_name: Name of the entry inside the archive
        data: Entry contents
        archive_path: Full path of the archive to create

    Returns:
        Full path to the created archive file

    Raises:
        ArchiveExistsError: If archive_path already exists
        CompressionError: If archive creation fails
    """
    if not data:
        raise CompressionError("No data to archive")

    directory = os.path.dirname(archive_path) or '.'
    temp_path = None

    try:
        fd, temp_path = tempfile.mkstemp(prefix='.partial-', suffix='.zip', dir=directory)
        with os.fdopen(fd, 'wb') as handle:
            with zipfile.ZipFile(handle, 'w', zipfile.ZIP_DEFLATED) as zipf:
                zipf.writestr(entry_name, data)
        os.link(temp_path, archive_path)
        return archive_path
    except FileExistsError:
        raise ArchiveExistsError(f"Archive already exists: {os.path.basename(archive_path)}")
    except Exception as e:
        raise CompressionError(f"Failed to create archive: {e}")
    finally:
        if temp_path and os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError:
                pass


def slugify(label: str) -> str:
    """
    Turn a job label into a filename-safe slug.

    Lowercases, strips accents and collapses every run of other characters
    into a single hyphen. ``"Nightly DB (main)"`` becomes ``"nightly-db-main"``.
    Slugs are cut to MAX_SLUG_LENGTH characters.
    """
    normalized = unicodedata.normalize('NFKD', label)
    ascii_label = normalized.encode('ascii', 'ignore').decode('ascii')
    slug = re.sub(r'[^a-z0-9]+', '-', ascii_label.lower()).strip('-')
    slug = slug[:MAX_SLUG_LENGTH].rstrip('-')
    return slug or 'job'


def generate_archive_names(when: datetime, label: Optional[str] = None) -> Tuple[str, str]:
    """
    Generate the archive filename and its inner entry name.

    Format: backup-{slug}-{YYYY-MM-DD_HH-MM-SS}.zip for scheduled jobs,
    backup-{YYYY-MM-DD_HH-MM-SS}.zip for manual backups.

    Args:
        when: Backup start time
        label: Job label, None for manual backups

    Returns:
        Tuple of (archive filename, entry name)
    """
    timestamp = when.strftime(TIMESTAMP_FORMAT)

    if label is None:
        stem = f"backup-{timestamp}"
    else:
        stem = f"backup-{slugify(label)}-{timestamp}"

    return f"{stem}.zip", f"{stem}.sql"


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Args:
        archive_path: Path to the archive file

    Returns:
        File size in bytes

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
