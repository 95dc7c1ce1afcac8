from app.core.models.course import Course, CourseDiscipline, Discipline
from app.core.models.class_model import ClassStudent, ClassTeacher, SchoolClass
from app.core.models.enrollment import Enrollment
from app.core.models.document import Document, DocumentType
from app.core.models.contract import Contract, ContractTemplate
from app.core.models.evaluation import Evaluation, Grade
from app.core.models.request import Request, RequestType

__all__ = [
    "Course",
    "CourseDiscipline",
    "Discipline",
    "SchoolClass",
    "ClassTeacher",
    "ClassStudent",
    "Enrollment",
    "DocumentType",
    "Document",
    "ContractTemplate",
    "Contract",
    "Evaluation",
    "Grade",
    "RequestType",
    "Request",
]
