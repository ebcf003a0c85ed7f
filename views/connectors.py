# views/connectors.py

import asyncio

from flask import Blueprint, current_app, jsonify

connectors_bp = Blueprint('connectors', __name__)


def get_registry():
    return current_app.extensions["connector_registry"]


@connectors_bp.route('/api/connectors', methods=['GET'])
def list_connectors():
    return jsonify({'success': True, 'connectors': get_registry().list()})


@connectors_bp.route('/api/connectors/health', methods=['GET'])
def connectors_health():
    """Run every connector's health check once; 503 when any of them fails."""
    results = asyncio.run(get_registry().health())
    healthy = all(item['healthy'] for item in results)
    return jsonify({'success': healthy, 'connectors': results}), (200 if healthy else 503)
