"""System status API endpoints."""
from flask import Blueprint, jsonify
from irrigation_engine import __version__
from irrigation_engine.api import api_bp
from irrigation_engine.api.errors import error_response

system_bp = Blueprint('system', __name__)
api_bp.register_blueprint(system_bp, url_prefix='/system')

# Global system state (will be initialized in main.py)
system_state = {
    'controllers': None
}


@system_bp.route('/status', methods=['GET'])
def get_system_status():
    """Get scheduler, cycle timer and store status."""
    try:
        status = {
            'version': __version__,
            'scheduler': None,
            'cycle_timer': None,
            'store': None
        }

        if system_state['controllers']:
            scheduler = system_state['controllers'].get('scheduler')
            store = system_state['controllers'].get('store')

            if scheduler:
                status['scheduler'] = {
                    'running': scheduler.is_running,
                    'poll_interval': scheduler.poll_interval,
                    'tick_interval': scheduler.tick_interval
                }
                status['cycle_timer'] = scheduler.cycle_timer.get_status()

            if store:
                status['store'] = type(store).__name__

        return jsonify({
            'success': True,
            'status': status
        }), 200
    except Exception as e:
        return error_response(e)
