import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import date, datetime, timezone
from typing import List, Literal, Optional
from urllib.parse import urlencode

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, Field

import database
from schemas import (
    AdmissionRecord,
    AdmissionStatus,
    Channel,
    Course,
    Document,
    FeeSummary,
    StudentContact,
    StudentRecord,
    StudentStatus,
)
from backend import admissions, directory
from backend.catalog import CatalogView, catalog_page
from backend.config import settings
from backend.directory import BatchIndex, StudentFilter
from backend.exceptions import CourseNotFound, RecordNotFound, general_exception_handler
from backend.logging_setup import setup_logging
from backend.notifications import notify
from backend.payments import outstanding_amount, paid_amount, payment_status
from backend.printing import render_admission_form, render_voucher
from backend.store import LocalStore, RecordStore, RemoteStore

setup_logging()
logger = logging.getLogger(__name__)

store = RecordStore(RemoteStore(database.db), LocalStore(settings.local_store_dir))
batch_index = BatchIndex()


def get_store() -> RecordStore:
    return store


def get_batch_index() -> BatchIndex:
    return batch_index


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting Institute Admin API")
    subscription = None
    if settings.realtime_enabled:
        batch_index.load(store.load("batch"))
        subscription = store.subscribe("batch", batch_index.apply_change)
        if subscription:
            logger.info("Realtime batch updates enabled")

    yield

    if subscription:
        subscription.close()
    logger.info("Shutdown complete")


app = FastAPI(title="Institute Admin API", version=settings.app_version, lifespan=lifespan)


@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    start_time = time.time()
    response = await call_next(request)
    process_time = time.time() - start_time
    response.headers["X-Process-Time"] = str(process_time)
    logger.info(f"{request.method} {request.url.path} - {process_time:.3f}s")
    return response


app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
def root():
    return {"message": "Institute Admin API running"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _student_view(s: StudentRecord) -> dict:
    installments = s.fee.installments
    return s.model_dump(mode="json") | {
        "payment_status": payment_status(installments),
        "paid": paid_amount(installments),
        "outstanding": outstanding_amount(installments),
    }


def _admission_view(rec: AdmissionRecord) -> dict:
    return rec.model_dump(mode="json") | {"payment_status": payment_status(rec.fee.installments)}


def _load_admission(store: RecordStore, admission_id: str) -> AdmissionRecord:
    rec = store.get("admission", admission_id)
    if rec is None:
        raise RecordNotFound("admission", admission_id)
    return rec


def _load_student(store: RecordStore, student_id: str) -> StudentRecord:
    student = store.get("student", student_id)
    if student is None:
        raise RecordNotFound("student", student_id)
    return student


def _outcome(store: RecordStore, outcome: admissions.AdmissionOutcome, title: str,
             description: Optional[str] = None) -> dict:
    """Persist a changed admission and shape the action response."""
    toast = None
    if outcome.changed:
        store.save("admission", outcome.record)
        toast = notify(title, description)
    return {"item": _admission_view(outcome.record), "changed": outcome.changed, "toast": toast}


# ---------- Courses ----------
@app.get("/courses")
def list_courses(query: str = "", category: str = "All", store: RecordStore = Depends(get_store)):
    courses = store.load_models("course")
    return catalog_page(courses, CatalogView(query=query, category=category))


@app.post("/courses")
def upsert_course(course: Course, store: RecordStore = Depends(get_store)):
    if not course.created_at:
        course = course.model_copy(update={"created_at": _now().isoformat()})
    saved_to = store.save("course", course)
    return {"id": course.id, "saved_to": saved_to}


# ---------- Admissions ----------
class AdmissionCreate(BaseModel):
    student: StudentContact
    course: str
    batch: str = ""
    campus: str = ""
    fee: FeeSummary = Field(default_factory=FeeSummary)
    documents: List[Document] = Field(default_factory=list)
    notes: Optional[str] = None


@app.post("/admissions")
def create_admission(payload: AdmissionCreate, store: RecordStore = Depends(get_store)):
    rec = admissions.intake(
        payload.student, payload.course, payload.batch, payload.campus,
        fee=payload.fee, documents=payload.documents, notes=payload.notes,
    )
    store.save("admission", rec)
    return {"id": rec.id}


@app.get("/admissions")
def list_admissions(status: Optional[AdmissionStatus] = None, store: RecordStore = Depends(get_store)):
    items = store.load_models("admission")
    if status:
        items = [a for a in items if a.status == status]
    return {"items": [_admission_view(a) for a in items]}


@app.get("/admissions/{admission_id}")
def get_admission(admission_id: str, store: RecordStore = Depends(get_store)):
    return _admission_view(_load_admission(store, admission_id))


@app.delete("/admissions/{admission_id}")
def delete_admission(admission_id: str, store: RecordStore = Depends(get_store)):
    if not store.delete("admission", admission_id):
        raise RecordNotFound("admission", admission_id)
    return {"deleted": admission_id}


class ApproveRequest(BaseModel):
    batch: Optional[str] = None
    campus: Optional[str] = None


@app.post("/admissions/{admission_id}/approve")
def approve_admission(admission_id: str, payload: Optional[ApproveRequest] = None,
                      store: RecordStore = Depends(get_store)):
    payload = payload or ApproveRequest()
    rec = _load_admission(store, admission_id)
    existing = store.get("student", rec.student_id) if rec.student_id else None
    outcome = admissions.approve(rec, payload.batch, payload.campus, taken=store.ids("student"), existing=existing)
    if outcome.student is not None:
        store.save("student", outcome.student)
    response = _outcome(store, outcome, "Admission confirmed",
                        f"Student added: {outcome.student.name}" if outcome.student else None)
    response["student"] = _student_view(outcome.student) if outcome.student else None
    return response


class RejectRequest(BaseModel):
    reason: Optional[str] = None


@app.post("/admissions/{admission_id}/reject")
def reject_admission(admission_id: str, payload: RejectRequest, store: RecordStore = Depends(get_store)):
    rec = _load_admission(store, admission_id)
    return _outcome(store, admissions.reject(rec, payload.reason), "Admission Rejected")


@app.post("/admissions/{admission_id}/suspend")
def suspend_admission(admission_id: str, store: RecordStore = Depends(get_store)):
    rec = _load_admission(store, admission_id)
    return _outcome(store, admissions.suspend(rec), "Admission Suspended")


@app.post("/admissions/{admission_id}/cancel")
def cancel_admission(admission_id: str, store: RecordStore = Depends(get_store)):
    rec = _load_admission(store, admission_id)
    return _outcome(store, admissions.cancel(rec), "Admission Cancelled")


class TransferRequest(BaseModel):
    batch: str
    campus: str


@app.post("/admissions/{admission_id}/transfer")
def transfer_admission(admission_id: str, payload: TransferRequest, store: RecordStore = Depends(get_store)):
    rec = _load_admission(store, admission_id)
    return _outcome(store, admissions.transfer(rec, payload.batch, payload.campus), "Transferred")


@app.post("/admissions/{admission_id}/mark-paid")
def mark_admission_paid(admission_id: str, store: RecordStore = Depends(get_store)):
    rec = _load_admission(store, admission_id)
    return _outcome(store, admissions.mark_all_paid(rec), "Marked as Paid")


@app.post("/admissions/{admission_id}/documents/{index}/toggle")
def toggle_admission_document(admission_id: str, index: int, store: RecordStore = Depends(get_store)):
    rec = _load_admission(store, admission_id)
    return _outcome(store, admissions.toggle_document(rec, index), "Document updated")


class QuickEnrollRequest(BaseModel):
    course_id: str
    amount: Optional[float] = Field(None, ge=0, description="Defaults to the course fee")
    batch: Optional[str] = None
    campus: Optional[str] = None


@app.post("/admissions/{admission_id}/quick-enroll")
def quick_enroll(admission_id: str, payload: QuickEnrollRequest, store: RecordStore = Depends(get_store)):
    rec = _load_admission(store, admission_id)
    course = next((c for c in store.load_models("course") if c.id == payload.course_id), None)
    if course is None:
        raise CourseNotFound(payload.course_id)
    existing = store.get("student", rec.student_id) if rec.student_id else None
    batch = payload.batch if payload.batch is not None else rec.batch
    campus = payload.campus if payload.campus is not None else rec.campus
    amount = payload.amount if payload.amount is not None else course.fees
    outcome, voucher = admissions.quick_enroll(
        rec, course.name, amount, batch, campus,
        existing=existing, taken=store.ids("student"),
    )
    store.save("student", outcome.student)
    if outcome.changed:
        store.save("admission", outcome.record)
    query = urlencode({"course": course.name, "batch": batch, "campus": campus, "amount": amount})
    return {
        "student": _student_view(outcome.student),
        "voucher": voucher | {"issued": voucher["issued"].isoformat()},
        "voucher_url": f"/students/{outcome.student.id}/voucher?{query}",
        "toast": notify("Enrolled", f"{outcome.student.name} enrolled in {course.name}"),
    }


@app.get("/admissions/{admission_id}/form", response_class=HTMLResponse)
def print_admission_form(admission_id: str, store: RecordStore = Depends(get_store)):
    return render_admission_form(_load_admission(store, admission_id))


# ---------- Students ----------
@app.get("/students")
def list_students(
    q: str = "",
    status: Optional[StudentStatus] = None,
    course: Optional[str] = None,
    batch: Optional[str] = None,
    campus: Optional[str] = None,
    locked_status: Optional[StudentStatus] = None,
    store: RecordStore = Depends(get_store),
):
    view = StudentFilter(q=q, status=status, course=course, batch=batch, campus=campus,
                         locked_status=locked_status)
    students = directory.filter_students(store.load_models("student"), view)
    return {"items": [_student_view(s) for s in students]}


@app.get("/students/options")
def student_filter_options(store: RecordStore = Depends(get_store),
                           batches: BatchIndex = Depends(get_batch_index)):
    course_names = [c.name for c in store.load_models("course")]
    return directory.filter_options(store.load_models("student"), batches, course_names)


@app.get("/students/{student_id}")
def get_student(student_id: str, store: RecordStore = Depends(get_store)):
    student = _load_student(store, student_id)
    return _student_view(student) | {
        "attendance_history": [a.model_dump() for a in directory.attendance_history(student)],
    }


def _student_action(store: RecordStore, student: StudentRecord, title: str) -> dict:
    store.save("student", student)
    return {"item": _student_view(student), "toast": notify(title)}


class CommunicationCreate(BaseModel):
    channel: Channel
    message: Optional[str] = None


@app.post("/students/{student_id}/communications")
def log_student_communication(student_id: str, payload: CommunicationCreate,
                              store: RecordStore = Depends(get_store)):
    student = directory.log_communication(_load_student(store, student_id), payload.channel, payload.message)
    titles = {"Call": "Voice call logged", "Email": "Email sent", "WhatsApp": "WhatsApp sent"}
    return _student_action(store, student, titles[payload.channel])


class AttendanceMark(BaseModel):
    present: bool
    day: Optional[date] = Field(None, description="Defaults to today")


@app.post("/students/{student_id}/attendance")
def mark_student_attendance(student_id: str, payload: AttendanceMark, store: RecordStore = Depends(get_store)):
    student = directory.mark_attendance(_load_student(store, student_id), payload.present, payload.day)
    title = "Marked Present" if payload.present else "Marked Absent"
    return _student_action(store, student, f"{title} ({(payload.day or date.today()).isoformat()})")


class StudentActionRequest(BaseModel):
    action: Literal["conclude", "not_completed", "suspend", "freeze"]


@app.post("/students/{student_id}/action")
def apply_student_action(student_id: str, payload: StudentActionRequest, store: RecordStore = Depends(get_store)):
    student = directory.apply_action(_load_student(store, student_id), payload.action)
    titles = {
        "conclude": "Course concluded",
        "not_completed": "Marked as Not Completed",
        "suspend": "Course suspended",
        "freeze": "Course frozen",
    }
    return _student_action(store, student, titles[payload.action])


class BatchTransfer(BaseModel):
    batch: str = Field(..., min_length=1)


@app.post("/students/{student_id}/batch")
def transfer_student_batch(student_id: str, payload: BatchTransfer, store: RecordStore = Depends(get_store)):
    student = directory.transfer_batch(_load_student(store, student_id), payload.batch)
    return _student_action(store, student, f"Batch transferred to {payload.batch}")


class CampusTransfer(BaseModel):
    campus: str = Field(..., min_length=1)


@app.post("/students/{student_id}/campus")
def transfer_student_campus(student_id: str, payload: CampusTransfer, store: RecordStore = Depends(get_store)):
    student = directory.transfer_campus(_load_student(store, student_id), payload.campus)
    return _student_action(store, student, f"Campus transferred to {payload.campus}")


@app.post("/students/{student_id}/certificate")
def request_certificate(student_id: str, store: RecordStore = Depends(get_store)):
    student = _load_student(store, student_id)
    return {"toast": notify("Certificate request submitted", student.name)}


@app.get("/students/{student_id}/voucher", response_class=HTMLResponse)
def print_voucher(
    student_id: str,
    course: Optional[str] = None,
    batch: Optional[str] = None,
    campus: Optional[str] = None,
    amount: Optional[float] = None,
    store: RecordStore = Depends(get_store),
):
    student = _load_student(store, student_id)
    return render_voucher(admissions.voucher_fields(student, course, batch, campus, amount))


# ---------- Utilities ----------
@app.get("/schema")
def get_schema():
    return {"schemas": ["course", "admission", "student", "batch"]}


@app.get("/test")
def test_database(store: RecordStore = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if settings.database_url else "❌ Not Set",
        "database_name": settings.database_name,
        "connection_status": "Not Connected",
        "local_store": os.path.abspath(store.local.directory),
        "collections": [],
    }

    if store.remote is None:
        response["database"] = "⚠️  Not configured, using local store"
        return response
    try:
        collections = store.remote.db.list_collection_names()
        response["collections"] = collections[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except Exception as e:
        response["database"] = f"⚠️  Configured but Error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
