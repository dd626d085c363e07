from .db import db
from .user import User, Role, user_roles
from .audit_log import AuditLog, ErrorLog
from .session import Session
from .rate_limit import RateLimitCounter
from .specialist import Specialist
from .slot import Slot
from .consultation import Consultation
from .course import Course, Lesson, CourseProgress
from .enrollment import Enrollment
