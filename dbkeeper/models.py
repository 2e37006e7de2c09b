import enum
from datetime import datetime
from dbkeeper import db


class PersistenceError(Exception):
    """Raised when persistent state cannot be read or written."""
    pass


class BackupOrigin(str, enum.Enum):
    """Where a backup came from."""
    SCHEDULED = 'scheduled'
    MANUAL = 'manual'


class Setting(db.Model):
    """Serialized key/value option (holds the job mapping blob)"""
    __tablename__ = 'settings'

    id = db.Column(db.Integer, primary_key=True)
    key = db.Column(db.String(191), unique=True, nullable=False)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    def __repr__(self):
        return f'<Setting {self.key}>'


class BackupRecord(db.Model):
    """One completed backup artifact"""
    __tablename__ = 'backup_records'
    __table_args__ = (
        db.Index('ix_backup_records_job_time', 'job_id', 'backup_time'),
    )

    id = db.Column(db.Integer, primary_key=True, autoincrement=True)
    job_id = db.Column(db.String(64), nullable=True)  # NULL for manual backups
    origin = db.Column(db.String(20), nullable=False, default=BackupOrigin.SCHEDULED.value)
    backup_time = db.Column(db.DateTime, nullable=False)  # Local time of completion
    file_name = db.Column(db.String(255), nullable=False)
    file_size = db.Column(db.BigInteger, nullable=False)

    @property
    def is_manual(self) -> bool:
        return self.origin == BackupOrigin.MANUAL.value

    def to_dict(self) -> dict:
        return {
            'id': self.id,
            'job_id': self.job_id,
            'origin': self.origin,
            'backup_time': self.backup_time.isoformat(),
            'file_name': self.file_name,
            'file_size': self.file_size,
        }

    def __repr__(self):
        return f'<BackupRecord {self.file_name} origin={self.origin} job_id={self.job_id}>'
