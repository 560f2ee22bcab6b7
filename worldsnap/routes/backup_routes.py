"""
Backup routes - list artifacts, trigger backups, history, session events.
"""

from flask import Blueprint, current_app, jsonify, request

from worldsnap import db, events
from worldsnap.backup.coordinator import BackupInProgressError
from worldsnap.backup.formats import CompressType, ConfigurationError
from worldsnap.models import BackupRun


bp = Blueprint('backups', __name__, url_prefix='/api')


def _service():
    return current_app.extensions['worldsnap']


@bp.route('/backups', methods=['GET'])
def list_backups():
    """
    List artifacts in the backups directory, oldest first.

    Returns:
        JSON with artifacts and directory usage
    """
    service = _service()
    return jsonify({
        'artifacts': service.list_artifacts(),
        'usage': service.usage(),
        'busy': service.busy
    })


@bp.route('/backups', methods=['POST'])
def create_backup():
    """
    Run a backup now.

    Request JSON (all optional):
        - format: 'zstd' or 'zip' (default: configured format)
        - label: filename label (default: 'api')
        - wait: wait for the archive and return the run (default: false)

    Returns:
        202 when queued, 200 with the run when waited for, 409 if a backup
        is already running
    """
    data = request.get_json(silent=True) or {}

    compress_type = None
    if data.get('format'):
        try:
            compress_type = CompressType.from_name(data['format'])
        except ConfigurationError as e:
            return jsonify({'error': str(e)}), 400

    label = str(data.get('label') or 'api')

    try:
        future = _service().run_backup(label, compress_type)
    except BackupInProgressError as e:
        return jsonify({'error': str(e)}), 409

    if not data.get('wait'):
        return jsonify({'message': f"Backup '{label}' has been queued"}), 202

    result = future.result()
    if result is None:
        return jsonify({'error': 'Backup task failed, see logs'}), 500
    if result['status'] != 'success':
        return jsonify({'error': result['error_message'], 'run': result}), 500

    return jsonify({'message': f"Backup created: {result['filename']}", 'run': result})


@bp.route('/backups/history', methods=['GET'])
def list_history():
    """
    Recent backup runs, newest first.

    Query params:
        - status: Filter by status (running/success/failed)
        - limit: Max number of records (default: 50, max: 200)
    """
    status_filter = request.args.get('status')
    limit = request.args.get('limit', 50, type=int)

    if limit > 200:
        limit = 200
    if limit < 1:
        limit = 1

    query = BackupRun.query

    if status_filter:
        if status_filter not in ['running', 'success', 'failed']:
            return jsonify({'error': 'Invalid status filter'}), 400
        query = query.filter(BackupRun.status == status_filter)

    runs = query.order_by(BackupRun.started_at.desc(), BackupRun.id.desc()).limit(limit).all()

    return jsonify([run.to_dict() for run in runs])


@bp.route('/backups/history/<int:run_id>/logs', methods=['GET'])
def get_run_logs(run_id):
    """Captured log lines of one backup run."""
    run = db.get_or_404(BackupRun, run_id)
    return jsonify({'id': run.id, 'logs': run.logs or ''})


@bp.route('/sessions/<name>/join', methods=['POST'])
def session_join(name):
    """Host reports a session joining."""
    future = events.session_joined(_service(), name)
    return jsonify({'backup_started': future is not None})


@bp.route('/sessions/<name>/leave', methods=['POST'])
def session_leave(name):
    """Host reports a session leaving."""
    future = events.session_left(_service(), name)
    return jsonify({'backup_started': future is not None})
