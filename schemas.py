"""
Database Schemas for the Institute Admin API

Each Pydantic model corresponds to a MongoDB collection:
- Course -> "course"
- AdmissionRecord -> "admission"
- StudentRecord -> "student"
- Batch -> "batch"

These models are used for validation at the record store boundary and to
shape API responses.
"""

from pydantic import BaseModel, Field, EmailStr, field_validator
from typing import List, Optional, Literal
from datetime import date, datetime

AdmissionStatus = Literal["Pending", "Verified", "Rejected", "Suspended", "Cancelled"]
StudentStatus = Literal["Current", "Freeze", "Concluded", "Not Completed", "Suspended", "Alumni"]
PaymentStatus = Literal["Paid", "Overdue", "Pending"]
Channel = Literal["Call", "Email", "WhatsApp"]

STUDENT_STATUSES: List[str] = ["Current", "Freeze", "Concluded", "Not Completed", "Suspended", "Alumni"]


def _as_date(value):
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and len(value) > 10:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).date()
    return value


# Catalog
class Course(BaseModel):
    id: str
    name: str
    category: str = Field("General", description="Display category")
    duration: str = ""
    fees: float = Field(0, ge=0)
    description: str = ""
    status: str = Field("live", description="live, upcoming or any other label")
    featured: bool = False
    start_date: Optional[str] = None
    created_at: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def default_category(cls, v):
        return v or "General"


class Batch(BaseModel):
    batch_code: str
    course_name: Optional[str] = None
    created_at: Optional[datetime] = None


# Fees
class Installment(BaseModel):
    id: str
    amount: float = Field(..., ge=0)
    due_date: date = Field(..., description="Datetimes are truncated to their date")
    paid_at: Optional[datetime] = None

    @field_validator("due_date", mode="before")
    @classmethod
    def truncate_due_date(cls, v):
        return _as_date(v)


class FeeSummary(BaseModel):
    total: float = Field(0, ge=0)
    installments: List[Installment] = Field(default_factory=list)


class Document(BaseModel):
    name: str
    url: str
    verified: bool = False


# Admissions
class StudentContact(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    phone: str = ""


class AdmissionRecord(BaseModel):
    id: str
    student: StudentContact
    course: str
    batch: str = ""
    campus: str = ""
    status: AdmissionStatus = "Pending"
    fee: FeeSummary = Field(default_factory=FeeSummary)
    documents: List[Document] = Field(default_factory=list)
    notes: Optional[str] = None
    rejected_reason: Optional[str] = None
    student_id: Optional[str] = Field(None, description="Assigned once, never regenerated")
    created_at: datetime


# Students
class AdmissionSnapshot(BaseModel):
    course: str
    batch: str = ""
    campus: str = ""
    date: datetime


class AttendanceEntry(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    present: bool


class CommunicationEntry(BaseModel):
    id: str
    channel: Channel
    message: str
    at: datetime


class StudentRecord(BaseModel):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    status: StudentStatus = "Current"
    admission: AdmissionSnapshot
    fee: FeeSummary = Field(default_factory=FeeSummary)
    attendance: List[AttendanceEntry] = Field(default_factory=list)
    communications: List[CommunicationEntry] = Field(default_factory=list, description="Newest first")
    documents: List[Document] = Field(default_factory=list)
    enrolled_courses: List[str] = Field(default_factory=list)
