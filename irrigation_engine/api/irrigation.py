"""Irrigation API endpoints."""
from flask import Blueprint, jsonify, request
from irrigation_engine.api import api_bp
from irrigation_engine.api.errors import error_response, not_initialized

irrigation_bp = Blueprint('irrigation', __name__)
api_bp.register_blueprint(irrigation_bp, url_prefix='/irrigation')

# Global controllers (will be initialized in main.py)
controllers = {}

ROLE_HEADER = 'X-User-Role'


def _role():
    return request.headers.get(ROLE_HEADER)


@irrigation_bp.route('/status', methods=['GET'])
def get_irrigation_status():
    """Get mode, phase, active cycle, tank and valve status."""
    try:
        scheduler = controllers.get('scheduler')
        if not scheduler:
            return not_initialized('Irrigation scheduler')

        return jsonify({
            'success': True,
            'status': scheduler.get_status()
        }), 200

    except Exception as e:
        return error_response(e)


@irrigation_bp.route('/config', methods=['GET'])
def get_config():
    """Get the stored irrigation configuration."""
    try:
        commands = controllers.get('commands')
        if not commands:
            return not_initialized('Operator commands')

        return jsonify({
            'success': True,
            'config': commands.get_config()
        }), 200

    except Exception as e:
        return error_response(e)


@irrigation_bp.route('/config', methods=['PUT'])
def save_config():
    """Save a partial configuration update."""
    try:
        commands = controllers.get('commands')
        if not commands:
            return not_initialized('Operator commands')

        changes = request.get_json(silent=True)
        config = commands.save_config(_role(), changes)
        return jsonify({
            'success': True,
            'message': 'Configuration saved',
            'config': config
        }), 200

    except Exception as e:
        return error_response(e)


@irrigation_bp.route('/manual', methods=['POST'])
def manual_switch():
    """Turn manual watering on or off."""
    try:
        commands = controllers.get('commands')
        if not commands:
            return not_initialized('Operator commands')

        data = request.get_json(silent=True) or {}
        if not isinstance(data.get('on'), bool):
            return jsonify({
                'success': False,
                'error': "'on' must be true or false"
            }), 400

        result = commands.set_manual_switch(_role(), data['on'])
        return jsonify(dict(result, success=True)), 200

    except Exception as e:
        return error_response(e)


@irrigation_bp.route('/tank', methods=['GET'])
def get_tank():
    """Get the tank level."""
    try:
        commands = controllers.get('commands')
        if not commands:
            return not_initialized('Operator commands')

        return jsonify({
            'success': True,
            'tank': commands.get_tank()
        }), 200

    except Exception as e:
        return error_response(e)


@irrigation_bp.route('/tank', methods=['PUT'])
def update_tank():
    """Change tank capacity or low-water threshold."""
    try:
        commands = controllers.get('commands')
        if not commands:
            return not_initialized('Operator commands')

        tank = commands.update_tank(_role(), request.get_json(silent=True))
        return jsonify({
            'success': True,
            'tank': tank
        }), 200

    except Exception as e:
        return error_response(e)


@irrigation_bp.route('/tank/refill', methods=['POST'])
def refill_tank():
    """Refill the tank by a percentage of its capacity."""
    try:
        commands = controllers.get('commands')
        if not commands:
            return not_initialized('Operator commands')

        data = request.get_json(silent=True) or {}
        tank = commands.refill_tank(_role(), data.get('percent'))
        return jsonify({
            'success': True,
            'tank': tank
        }), 200

    except Exception as e:
        return error_response(e)


@irrigation_bp.route('/decisions', methods=['GET'])
def get_decisions():
    """Get recent trigger decisions, newest first."""
    try:
        scheduler = controllers.get('scheduler')
        if not scheduler:
            return not_initialized('Irrigation scheduler')

        limit = request.args.get('limit', default=50, type=int)
        decisions = scheduler.get_decisions(limit)
        return jsonify({
            'success': True,
            'decisions': decisions,
            'count': len(decisions)
        }), 200

    except Exception as e:
        return error_response(e)
