from campus_lms.db.base_class import Base

# import models so SQLAlchemy registers them on Base.metadata
from campus_lms.models.assignment import Assignment  # noqa: F401
from campus_lms.models.assignment_statistics import AssignmentStatistics  # noqa: F401
from campus_lms.models.course import Course  # noqa: F401
from campus_lms.models.enrollment import Enrollment  # noqa: F401
from campus_lms.models.submission import Submission  # noqa: F401
from campus_lms.models.user import User  # noqa: F401
