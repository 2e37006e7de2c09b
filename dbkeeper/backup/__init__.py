"""
Backup module for dbkeeper.

This module handles the core backup functionality including:
- Database dump production
- Compression
- Backup directory storage
- Job and backup log persistence
- Execution orchestration
- Retention cap enforcement
"""

from .backuplog import BackupLog, MANUAL
from .compression import create_archive
from .dump import SQLAlchemyDumpProducer
from .executor import BackupExecutor
from .jobstore import JobStore
from .manager import BackupManager, get_backup_manager
from .retention import RetentionManager
from .storage import LocalStorage

__all__ = [
    'BackupLog',
    'MANUAL',
    'create_archive',
    'SQLAlchemyDumpProducer',
    'BackupExecutor',
    'JobStore',
    'BackupManager',
    'get_backup_manager',
    'RetentionManager',
    'LocalStorage'
]
