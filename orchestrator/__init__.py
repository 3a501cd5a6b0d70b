"""
Orchestration package for the backup run.

Sequences the phases: list boards → export boards → rewrite card links → report.
"""

from .backup_orchestrator import BackupOrchestrator
from .backup_report import BackupReport

__all__ = [
    'BackupOrchestrator',
    'BackupReport'
]
