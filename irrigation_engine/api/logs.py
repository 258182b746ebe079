"""Log viewing API endpoints."""
from datetime import timedelta
from flask import Blueprint, jsonify, request
from irrigation_engine.api import api_bp
from irrigation_engine.api.errors import error_response
from irrigation_engine.config.database import get_db
from irrigation_engine.models.cycle_log import CycleLog, CycleStatus
from irrigation_engine.models.system_log import SystemLog, LogLevel
from irrigation_engine.utils.time_utils import utcnow

logs_bp = Blueprint('logs', __name__)
api_bp.register_blueprint(logs_bp, url_prefix='/logs')

# Optional overrides (will be initialized in main.py)
controllers = {}


def _session():
    db_session_factory = controllers.get('db_session_factory', get_db)
    return next(db_session_factory())


@logs_bp.route('/cycles', methods=['GET'])
def get_cycle_logs():
    """Get watering cycle history with optional filters."""
    db = None
    try:
        db = _session()

        # Get query parameters
        mode = request.args.get('mode')
        status = request.args.get('status')
        limit = request.args.get('limit', default=100, type=int)
        hours = request.args.get('hours', type=int)  # Last N hours

        query = db.query(CycleLog)

        if mode:
            query = query.filter(CycleLog.mode == mode)

        if status:
            try:
                status_enum = CycleStatus[status.upper()]
                query = query.filter(CycleLog.status == status_enum)
            except KeyError:
                pass

        if hours:
            cutoff_time = utcnow() - timedelta(hours=hours)
            query = query.filter(CycleLog.timestamp >= cutoff_time)

        logs = query.order_by(CycleLog.timestamp.desc(), CycleLog.id.desc()).limit(limit).all()

        result = [{
            'id': log.id,
            'timestamp': log.timestamp.isoformat() if log.timestamp else None,
            'mode': log.mode,
            'trigger': log.trigger,
            'status': log.status.value if log.status else None,
            'planned_duration': log.planned_duration,
            'duration': log.duration,
            'water_used': log.water_used,
            'notes': log.notes
        } for log in logs]

        return jsonify({
            'success': True,
            'logs': result,
            'count': len(result)
        }), 200

    except Exception as e:
        return error_response(e)
    finally:
        if db:
            db.close()


@logs_bp.route('/system', methods=['GET'])
def get_system_logs():
    """Get system logs."""
    db = None
    try:
        db = _session()

        # Get query parameters
        log_level = request.args.get('log_level')
        component = request.args.get('component')
        limit = request.args.get('limit', default=100, type=int)
        hours = request.args.get('hours', type=int)

        query = db.query(SystemLog)

        if log_level:
            try:
                level_enum = LogLevel[log_level.upper()]
                query = query.filter(SystemLog.log_level == level_enum)
            except KeyError:
                pass

        if component:
            query = query.filter(SystemLog.component == component)

        if hours:
            cutoff_time = utcnow() - timedelta(hours=hours)
            query = query.filter(SystemLog.timestamp >= cutoff_time)

        logs = query.order_by(SystemLog.timestamp.desc(), SystemLog.id.desc()).limit(limit).all()

        result = [{
            'id': log.id,
            'timestamp': log.timestamp.isoformat() if log.timestamp else None,
            'log_level': log.log_level.value if log.log_level else None,
            'component': log.component,
            'message': log.message
        } for log in logs]

        return jsonify({
            'success': True,
            'logs': result,
            'count': len(result)
        }), 200

    except Exception as e:
        return error_response(e)
    finally:
        if db:
            db.close()
