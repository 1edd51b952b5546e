from datetime import datetime, timezone

from flask import Blueprint, current_app, jsonify

health_bp = Blueprint('health', __name__)


@health_bp.route('/health')
def health_check():
    """Health check endpoint for external monitoring"""
    return jsonify({
        'status': 'ok',
        'service': current_app.config.get('SERVICE_NAME', 'ngo-dashboard'),
        'timestamp': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z'),
    })
