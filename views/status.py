# views/status.py

import logging

from flask import Blueprint, current_app, jsonify

from database import get_db, get_cursor

LOGGER = logging.getLogger(__name__)

status_bp = Blueprint('status', __name__)


@status_bp.route('/api/status', methods=['GET'])
def get_status():
    """
    Returns database reachability, the tracker count and resolver pool state.
    """
    cursor = None
    try:
        conn = get_db()
        cursor = get_cursor(conn)
        cursor.execute("SELECT COUNT(*) AS total FROM trackers")
        tracker_count = cursor.fetchone()['total']
    except Exception:
        LOGGER.exception("status check failed")
        return jsonify({
            'status': 'error',
            'message': 'internal error'
        }), 500
    finally:
        if cursor is not None:
            cursor.close()

    service = current_app.extensions.get("resolution_service")
    return jsonify({
        'status': 'ok',
        'tracker_count': tracker_count,
        'resolver': service.stats() if service is not None else None,
    })
