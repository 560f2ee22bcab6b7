from datetime import datetime, timezone
from worldsnap import db


def _utcnow():
    return datetime.now(timezone.utc)


class BackupRun(db.Model):
    """One backup attempt, its artifact and its logs"""
    __tablename__ = 'backup_runs'

    id = db.Column(db.Integer, primary_key=True)
    label = db.Column(db.String(255), nullable=False)
    compress_type = db.Column(db.String(20), nullable=False)  # zstd, zip
    filename = db.Column(db.String(500))
    status = db.Column(db.String(20), nullable=False)  # running, success, failed
    started_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    completed_at = db.Column(db.DateTime)
    file_size_bytes = db.Column(db.BigInteger)
    entry_count = db.Column(db.Integer)
    deleted_artifacts = db.Column(db.Text)  # Comma separated filenames removed by retention
    error_message = db.Column(db.Text)
    logs = db.Column(db.Text)  # Detailed execution logs

    def to_dict(self):
        return {
            'id': self.id,
            'label': self.label,
            'compress_type': self.compress_type,
            'filename': self.filename,
            'status': self.status,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
            'file_size_bytes': self.file_size_bytes,
            'entry_count': self.entry_count,
            'deleted_artifacts': self.deleted_artifacts.split(',') if self.deleted_artifacts else [],
            'error_message': self.error_message
        }

    def __repr__(self):
        return f'<BackupRun {self.filename} status={self.status}>'
