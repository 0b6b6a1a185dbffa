import datetime as dt
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict


# ---------------------------
# AUTH
# ---------------------------
class Login(BaseModel):
    email: str
    password: str


class Register(BaseModel):
    full_name: str
    email: str
    password: str
    type: str
    department_id: Optional[int] = None
    roll_number: Optional[str] = None
    semester: Optional[int] = None
    designation: Optional[str] = None
    specialization: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    email: str


class ResetPasswordConfirm(BaseModel):
    token: str
    new_password: str
    confirm_password: str


# ---------------------------
# USERS
# ---------------------------
class PasswordChange(BaseModel):
    current_password: str
    new_password: str
    confirm_password: str


class UserUpdate(BaseModel):
    full_name: Optional[str] = None


class StudentProfileUpdate(BaseModel):
    department_id: Optional[int] = None
    semester: Optional[int] = None
    contact: Optional[str] = None
    address: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_contact: Optional[str] = None


class FacultyProfileUpdate(BaseModel):
    department_id: Optional[int] = None
    designation: Optional[str] = None
    specialization: Optional[str] = None
    contact: Optional[str] = None
    office: Optional[str] = None
    education: Optional[str] = None


class StatusUpdate(BaseModel):
    status: Literal["active", "inactive"]


# ---------------------------
# COURSES
# ---------------------------
class CourseCreate(BaseModel):
    code: str
    name: str
    credits: int
    semester: str
    department: str
    description: Optional[str] = None
    max_students: Optional[int] = None
    instructor_id: Optional[int] = None


class CourseUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    credits: Optional[int] = None
    semester: Optional[str] = None
    department: Optional[str] = None
    max_students: Optional[int] = None


class CourseAdminUpdate(CourseUpdate):
    code: Optional[str] = None
    instructor_id: Optional[int] = None


class EnrollRequest(BaseModel):
    student_id: int


class MaterialCreate(BaseModel):
    title: str
    type: str
    file_path: str
    description: Optional[str] = None


class ScheduleCreate(BaseModel):
    day: str
    start_time: str
    end_time: str
    room: Optional[str] = None


# ---------------------------
# ASSIGNMENTS
# ---------------------------
class AssignmentCreate(BaseModel):
    course_id: int
    title: str
    due_date: dt.datetime
    total_marks: int
    description: Optional[str] = None
    weightage: Optional[float] = None


class AssignmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[dt.datetime] = None
    total_marks: Optional[int] = None
    weightage: Optional[float] = None


class SubmissionCreate(BaseModel):
    file_path: str


class GradeSubmission(BaseModel):
    student_id: int
    score: float
    feedback: Optional[str] = None


# ---------------------------
# ATTENDANCE
# ---------------------------
AttendanceStatus = Literal["present", "absent", "late"]


class AttendanceMark(BaseModel):
    date: dt.date
    attendance_data: List[Any]


class AttendanceEntry(BaseModel):
    student_id: int
    status: AttendanceStatus
    remarks: Optional[str] = None


class AttendanceUpdate(BaseModel):
    status: AttendanceStatus
    remarks: Optional[str] = None


# ---------------------------
# GRADES
# ---------------------------
class GradesBatch(BaseModel):
    grades_data: List[Any]


class GradeEntry(BaseModel):
    student_id: int
    grade_point: float
    grade_letter: str
    remarks: Optional[str] = None


class GradeUpdate(BaseModel):
    grade_point: float
    grade_letter: str
    remarks: Optional[str] = None


# ---------------------------
# NOTICES
# ---------------------------
class AttachmentIn(BaseModel):
    file_path: str
    file_name: str
    file_type: Optional[str] = None


class NoticeCreate(BaseModel):
    title: str
    content: str
    type: str
    course_id: Optional[int] = None
    department_id: Optional[int] = None
    priority: Optional[str] = None
    expiry_date: Optional[dt.date] = None
    attachments: Optional[List[Any]] = None


class NoticeUpdate(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = None
    priority: Optional[str] = None
    expiry_date: Optional[dt.date] = None


# ---------------------------
# RESPONSES
# ---------------------------
class OrmModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserOut(OrmModel):
    id: int
    full_name: str
    email: str
    type: str
    status: str
    created_at: Optional[dt.datetime] = None


class StudentProfileOut(OrmModel):
    id: int
    user_id: int
    roll_number: Optional[str] = None
    department_id: Optional[int] = None
    semester: Optional[int] = None
    contact: Optional[str] = None
    address: Optional[str] = None
    guardian_name: Optional[str] = None
    guardian_contact: Optional[str] = None


class FacultyProfileOut(OrmModel):
    id: int
    user_id: int
    department_id: Optional[int] = None
    designation: Optional[str] = None
    specialization: Optional[str] = None
    contact: Optional[str] = None
    office: Optional[str] = None
    education: Optional[str] = None


class CourseOut(OrmModel):
    id: int
    code: str
    name: str
    description: Optional[str] = None
    credits: int
    semester: str
    department: str
    instructor_id: Optional[int] = None
    max_students: int
    created_at: Optional[dt.datetime] = None


class EnrollmentOut(OrmModel):
    id: int
    student_id: int
    course_id: int
    grade_point: Optional[float] = None
    grade_letter: Optional[str] = None
    remarks: Optional[str] = None
    enrollment_date: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None
    updated_by: Optional[int] = None


class MaterialOut(OrmModel):
    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    type: str
    file_path: str
    uploaded_by: int
    created_at: Optional[dt.datetime] = None


class ScheduleOut(OrmModel):
    id: int
    course_id: int
    day: str
    start_time: str
    end_time: str
    room: Optional[str] = None


class AssignmentOut(OrmModel):
    id: int
    course_id: int
    title: str
    description: Optional[str] = None
    due_date: dt.datetime
    total_marks: int
    weightage: float
    created_by: int
    created_at: Optional[dt.datetime] = None


class SubmissionOut(OrmModel):
    id: int
    assignment_id: int
    student_id: int
    file_path: str
    submitted_date: dt.datetime
    status: str
    score: Optional[float] = None
    feedback: Optional[str] = None
    graded_by: Optional[int] = None
    graded_at: Optional[dt.datetime] = None


class AttendanceOut(OrmModel):
    id: int
    student_id: int
    course_id: int
    date: dt.date
    status: str
    remarks: Optional[str] = None
    recorded_by: Optional[int] = None


class AttachmentOut(OrmModel):
    id: int
    notice_id: int
    file_path: str
    file_name: str
    file_type: Optional[str] = None


class NoticeOut(OrmModel):
    id: int
    title: str
    content: str
    type: str
    course_id: Optional[int] = None
    department_id: Optional[int] = None
    priority: str
    created_by: int
    expiry_date: Optional[dt.date] = None
    created_at: Optional[dt.datetime] = None


def to_dict(schema, obj, **extra) -> Dict[str, Any]:
    """Serialize an ORM row through its output schema and merge extra keys."""
    data = schema.model_validate(obj).model_dump()
    data.update(extra)
    return data
