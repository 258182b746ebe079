"""API endpoints package."""
from flask import Blueprint

api_bp = Blueprint('api', __name__, url_prefix='/api')

# Import all endpoints to register routes
from irrigation_engine.api import irrigation, valve, logs, system
