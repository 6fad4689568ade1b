"""Dashboard blueprint."""
from flask import Blueprint, jsonify, current_app, Response

from pos.database import get_session
from pos.services.dashboard_service import get_today_summary

dashboard_bp = Blueprint('dashboard', __name__, url_prefix='/dashboard')


@dashboard_bp.route('/summary', methods=['GET'])
def summary() -> Response:
    """Today's sales figures and low stock alerts."""
    data = get_today_summary(get_session())
    return jsonify({'status': 'success', 'currency': current_app.config.get('CURRENCY'), **data})
