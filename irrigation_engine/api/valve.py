"""Valve state and hardware bridge endpoints."""
from flask import Blueprint, jsonify, request
from irrigation_engine.api import api_bp
from irrigation_engine.api.errors import error_response, not_initialized
from irrigation_engine.config.config import KEY_VALVE_CONFIRMATION
from irrigation_engine.models.irrigation_state import ValveConfirmation
from irrigation_engine.utils.time_utils import utcnow

valve_bp = Blueprint('valve', __name__)
api_bp.register_blueprint(valve_bp, url_prefix='/valve')

# Global controllers (will be initialized in main.py)
controllers = {}


@valve_bp.route('/state', methods=['GET'])
def get_valve_state():
    """Get commanded vs. confirmed valve state."""
    try:
        reconciler = controllers.get('reconciler')
        if not reconciler:
            return not_initialized('Confirmation reconciler')

        return jsonify({
            'success': True,
            'valve': reconciler.get_status()
        }), 200

    except Exception as e:
        return error_response(e)


@valve_bp.route('/confirmation', methods=['POST'])
def report_confirmation():
    """Hardware bridge reports the physical valve state."""
    try:
        store = controllers.get('store')
        if not store:
            return not_initialized('State store')

        data = request.get_json(silent=True) or {}
        if not isinstance(data.get('open'), bool):
            return jsonify({
                'success': False,
                'error': "'open' must be true or false"
            }), 400

        confirmation = ValveConfirmation(open=data['open'], reported_at=utcnow())
        store.set(KEY_VALVE_CONFIRMATION, confirmation.to_dict())
        return jsonify({
            'success': True,
            'confirmation': confirmation.to_dict()
        }), 200

    except Exception as e:
        return error_response(e)
