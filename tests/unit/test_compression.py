"""
Unit tests for compression module (dbkeeper/backup/compression.py).

Tests single-entry zip creation and archive naming.
"""

import os
import zipfile
from datetime import datetime
from unittest.mock import patch

import pytest

from dbkeeper.backup.compression import (
    create_archive,
    generate_archive_names,
    get_archive_size,
    slugify,
    ArchiveExistsError,
    CompressionError,
    MAX_SLUG_LENGTH
)


class TestCreateArchive:
    """Test create_archive function."""

    def test_creates_single_entry_zip(self, tmp_path):
        """Archive holds exactly one entry with the dump bytes."""
        archive_path = str(tmp_path / "backup.zip")
        data = b"CREATE TABLE t (id INTEGER);\n" * 50

        result = create_archive("backup.sql", data, archive_path)

        assert result == archive_path
        with zipfile.ZipFile(archive_path, 'r') as zipf:
            assert zipf.namelist() == ["backup.sql"]
            assert zipf.read("backup.sql") == data
            assert zipf.getinfo("backup.sql").compress_type == zipfile.ZIP_DEFLATED

    def test_no_partial_files_left(self, tmp_path):
        create_archive("backup.sql", b"data", str(tmp_path / "backup.zip"))

        assert os.listdir(tmp_path) == ["backup.zip"]

    def test_empty_data_raises_error(self, tmp_path):
        archive_path = tmp_path / "backup.zip"

        with pytest.raises(CompressionError, match="No data"):
            create_archive("backup.sql", b"", str(archive_path))

        assert not archive_path.exists()

    def test_missing_directory_raises_error(self, tmp_path):
        with pytest.raises(CompressionError, match="Failed to create archive"):
            create_archive("backup.sql", b"data", str(tmp_path / "missing" / "backup.zip"))

    def test_failure_cleans_up_temp_file(self, tmp_path):
        """A failure while writing removes the partial archive."""
        with patch('dbkeeper.backup.compression.zipfile.ZipFile.writestr', side_effect=OSError("disk full")):
            with pytest.raises(CompressionError, match="disk full"):
                create_archive("backup.sql", b"data", str(tmp_path / "backup.zip"))

        assert os.listdir(tmp_path) == []

    def test_existing_archive_is_not_overwritten(self, tmp_path):
        """A name claimed by another writer raises instead of replacing its archive."""
        archive_path = tmp_path / "backup.zip"
        archive_path.write_bytes(b"first writer")

        with pytest.raises(ArchiveExistsError):
            create_archive("backup.sql", b"second writer", str(archive_path))

        assert archive_path.read_bytes() == b"first writer"
        assert os.listdir(tmp_path) == ["backup.zip"]

    def test_archive_exists_is_compression_error(self):
        assert issubclass(ArchiveExistsError, CompressionError)


class TestArchiveNames:
    """Test archive filename generation."""

    def test_scheduled_job_name(self):
        zip_name, entry_name = generate_archive_names(datetime(2024, 1, 3, 10, 0, 5), "Nightly DB (main)")

        assert zip_name == "backup-nightly-db-main-2024-01-03_10-00-05.zip"
        assert entry_name == "backup-nightly-db-main-2024-01-03_10-00-05.sql"

    def test_manual_name(self):
        zip_name, entry_name = generate_archive_names(datetime(2024, 1, 3, 10, 0, 5))

        assert zip_name == "backup-2024-01-03_10-00-05.zip"
        assert entry_name == "backup-2024-01-03_10-00-05.sql"

    @pytest.mark.parametrize("label,expected", [
        ("Nightly", "nightly"),
        ("  Weekly   Full  ", "weekly-full"),
        ("Café Øresund", "cafe-resund"),
        ("../../etc/passwd", "etc-passwd"),
        ("***", "job"),
    ])
    def test_slugify(self, label, expected):
        assert slugify(label) == expected

    def test_long_slug_is_truncated(self):
        slug = slugify('Nightly ' + 'x' * 300)

        assert len(slug) == MAX_SLUG_LENGTH
        assert slug.startswith('nightly-xxx')

    def test_truncated_slug_has_no_trailing_hyphen(self):
        label = 'a' * (MAX_SLUG_LENGTH - 1) + ' tail'
        assert slugify(label) == 'a' * (MAX_SLUG_LENGTH - 1)

    def test_long_label_fits_filename_limit(self, tmp_path):
        """A long label still produces an archive name the filesystem accepts."""
        zip_name, entry_name = generate_archive_names(datetime(2024, 1, 3, 10, 0, 5), 'Nightly ' + 'x' * 300)

        assert len(zip_name.encode()) < 255
        create_archive(entry_name, b"data", str(tmp_path / zip_name))
        assert os.listdir(tmp_path) == [zip_name]


class TestGetArchiveSize:

    def test_size(self, tmp_path):
        archive = tmp_path / "a.zip"
        archive.write_bytes(b"x" * 1234)
        assert get_archive_size(str(archive)) == 1234

    def test_missing_file(self, tmp_path):
        with pytest.raises(CompressionError, match="not found"):
            get_archive_size(str(tmp_path / "missing.zip"))
