from .health import health_bp
from .enrollment_actions import enrollment_actions_bp
from .consultations import consultations_bp
from .audit_logs import audit_bp
