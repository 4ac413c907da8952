# academic/constants.py
from enum import Enum


class DegreeType(str, Enum):
    UNDERGRADUATE = "UNDERGRADUATE"
    ND = "ND"
    NCE = "NCE"
    HND = "HND"
    POSTGRADUATE_DIPLOMA = "POSTGRADUATE_DIPLOMA"
    MASTERS = "MASTERS"
    PHD = "PHD"
    CERTIFICATE = "CERTIFICATE"
    DIPLOMA = "DIPLOMA"
    ASSOCIATE = "ASSOCIATE"
    PROFESSIONAL_DOCTORATE = "PROFESSIONAL_DOCTORATE"


class SemesterType(str, Enum):
    FIRST = "FIRST"
    SECOND = "SECOND"
    SUMMER = "SUMMER"


class GradeLetter(str, Enum):
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    E = "E"
    F = "F"
    P = "P"  # pass (ungraded)
    I = "I"  # incomplete


class Scope(str, Enum):
    ALL = "ALL"
    FACULTY = "FACULTY"
    DEPARTMENT = "DEPARTMENT"
    PROGRAM = "PROGRAM"


class LecturerRole(str, Enum):
    LECTURER = "LECTURER"
    HOD = "HOD"
    DEAN = "DEAN"
    EXAMINER = "EXAMINER"


class OfferingReason(str, Enum):
    CURRENT_OFFERING = "current-offering"
    CARRYOVER = "carryover"


class OutcomeStatus(str, Enum):
    PROGRESSED = "PROGRESSED"
    GRADUATED = "GRADUATED"
    RETAINED = "RETAINED"  # final year, not eligible to graduate
    NO_OP = "NO_OP"
    FAILED = "FAILED"


# -------------------------------------
# Progression policy
# -------------------------------------

# Levels of the fixed-increment family are numbered 100, 200, ... duration * 100
BASE_LEVEL_VALUE = 100
LEVEL_STEP = 100

FIXED_INCREMENT_DEGREE_TYPES = frozenset(
    {
        DegreeType.UNDERGRADUATE,
        DegreeType.ND,
        DegreeType.HND,
        DegreeType.NCE,
    }
)

ORDERED_SEQUENCE_DEGREE_TYPES = frozenset(
    {
        DegreeType.POSTGRADUATE_DIPLOMA,
        DegreeType.MASTERS,
        DegreeType.PHD,
        DegreeType.CERTIFICATE,
        DegreeType.DIPLOMA,
        DegreeType.ASSOCIATE,
        DegreeType.PROFESSIONAL_DOCTORATE,
    }
)

# Any recorded grade outside this set counts as a pass
FAILING_GRADES = frozenset({GradeLetter.F, GradeLetter.I})

# Staff allowed to inspect another student's registrable courses
COURSE_REGISTRATION_REVIEWER_ROLES = frozenset({LecturerRole.HOD, LecturerRole.EXAMINER})
