"""System configuration settings."""
import os

# Environment detection
IS_RASPBERRY_PI = os.path.exists('/proc/device-tree/model') or os.getenv('USE_REAL_HARDWARE', 'false').lower() == 'true'
SIMULATE_HARDWARE = os.getenv('SIMULATE_HARDWARE', 'false' if IS_RASPBERRY_PI else 'true').lower() == 'true'

# Durable store
BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
DATABASE_PATH = os.getenv('DATABASE_PATH', os.path.join(BASE_DIR, 'database', 'irrigation_engine.db'))
DATABASE_URL = os.getenv('DATABASE_URL', f'sqlite:///{DATABASE_PATH}')
USE_MEMORY_STORE = os.getenv('USE_MEMORY_STORE', 'false').lower() == 'true'

# Store keys shared with the operator UI and the hardware bridge
KEY_IRRIGATION_CONFIG = 'irrigationConfig'
KEY_LAST_AUTO_TRIGGER_MARK = 'lastAutoTriggerMark'
KEY_VALVE_COMMAND = 'valveCommand'
KEY_VALVE_CONFIRMATION = 'valveConfirmation'
KEY_TANK_LEVEL = 'tankLevel'

# Scheduler cadence
POLL_INTERVAL_SEC = float(os.getenv('POLL_INTERVAL_SEC', '60'))
TICK_INTERVAL_SEC = float(os.getenv('TICK_INTERVAL_SEC', '1'))
DECISION_LOG_SIZE = int(os.getenv('DECISION_LOG_SIZE', '200'))

# Scheduled mode compares wall-clock time in this zone (None = system local time)
SCHEDULE_TIMEZONE = os.getenv('SCHEDULE_TIMEZONE') or None
# A scheduled minute missed between two polls still fires if noticed within this many seconds
SCHEDULE_CATCH_UP_SEC = float(os.getenv('SCHEDULE_CATCH_UP_SEC', '300'))

# Automatic mode fence
USE_FENCE_COMPARE_AND_SET = os.getenv('USE_FENCE_COMPARE_AND_SET', 'true').lower() == 'true'

# Valve confirmation
CONFIRMATION_TIMEOUT_SEC = float(os.getenv('CONFIRMATION_TIMEOUT_SEC', '15'))
RESEND_ON_STALE = os.getenv('RESEND_ON_STALE', 'false').lower() == 'true'
SIMULATED_CONFIRMATION_DELAY_SEC = float(os.getenv('SIMULATED_CONFIRMATION_DELAY_SEC', '0'))

# Water accounting
# Unset means a full tank drains over exactly one cycle
NOMINAL_FLOW_LPM = float(os.getenv('NOMINAL_FLOW_LPM')) if os.getenv('NOMINAL_FLOW_LPM') else None
MIN_MANUAL_START_LITERS = float(os.getenv('MIN_MANUAL_START_LITERS', '5.0'))

# Defaults used until an operator saves a configuration
DEFAULT_IRRIGATION_MODE = os.getenv('DEFAULT_IRRIGATION_MODE', 'auto')
DEFAULT_IRRIGATION_ACTIVE = os.getenv('DEFAULT_IRRIGATION_ACTIVE', 'false').lower() == 'true'
DEFAULT_CYCLE_DURATION_MINUTES = float(os.getenv('DEFAULT_CYCLE_DURATION_MINUTES', '20'))
DEFAULT_AUTO_FREQUENCY_HOURS = float(os.getenv('DEFAULT_AUTO_FREQUENCY_HOURS', '12'))
DEFAULT_SCHEDULED_TIME_OF_DAY = os.getenv('DEFAULT_SCHEDULED_TIME_OF_DAY', '06:30')
DEFAULT_MOISTURE_MIN_PERCENT = float(os.getenv('DEFAULT_MOISTURE_MIN_PERCENT', '35'))
DEFAULT_MOISTURE_MAX_PERCENT = float(os.getenv('DEFAULT_MOISTURE_MAX_PERCENT', '70'))
DEFAULT_TANK_CAPACITY_LITERS = float(os.getenv('DEFAULT_TANK_CAPACITY_LITERS', '500'))
DEFAULT_TANK_CURRENT_LITERS = float(os.getenv('DEFAULT_TANK_CURRENT_LITERS', '213'))
DEFAULT_TANK_LOW_THRESHOLD_PERCENT = float(os.getenv('DEFAULT_TANK_LOW_THRESHOLD_PERCENT', '20'))

# Validation limits for operator input
MIN_CYCLE_DURATION_MINUTES = 1.0
MAX_CYCLE_DURATION_MINUTES = 240.0
MAX_AUTO_FREQUENCY_HOURS = 168.0

# HTTP API
API_HOST = os.getenv('API_HOST', '0.0.0.0')
API_PORT = int(os.getenv('API_PORT', '5000'))
