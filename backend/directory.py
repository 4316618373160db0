"""Student directory: filtering, filter options and per-student actions."""
import threading
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel

from schemas import STUDENT_STATUSES, AttendanceEntry, Channel, CommunicationEntry, StudentRecord, StudentStatus

CAMPUSES: List[str] = ["Main Campus", "Sub Campus", "FSD", "Other"]

COMMUNICATION_DEFAULTS: Dict[str, tuple] = {
    "Call": ("call", "Admin initiated voice call"),
    "Email": ("email", "Admin email sent"),
    "WhatsApp": ("wa", "Admin WhatsApp message"),
}

ACTIONS: Dict[str, StudentStatus] = {
    "conclude": "Alumni",
    "not_completed": "Not Completed",
    "suspend": "Suspended",
    "freeze": "Freeze",
}


class StudentFilter(BaseModel):
    q: str = ""
    status: Optional[StudentStatus] = None
    course: Optional[str] = None
    batch: Optional[str] = None
    campus: Optional[str] = None
    # A locked view (e.g. the Alumni page) ignores ``status``
    locked_status: Optional[StudentStatus] = None

    @property
    def effective_status(self) -> Optional[str]:
        return self.locked_status or self.status


def filter_students(students: Iterable[StudentRecord], view: StudentFilter) -> List[StudentRecord]:
    q = view.q.strip().lower()
    status = view.effective_status

    def matches(s: StudentRecord) -> bool:
        if q and not (q in s.name.lower() or q in s.id.lower() or q in s.admission.course.lower()):
            return False
        if status and s.status != status:
            return False
        if view.course and s.admission.course != view.course:
            return False
        if view.batch and s.admission.batch != view.batch:
            return False
        if view.campus and s.admission.campus != view.campus:
            return False
        return True

    return [s for s in students if matches(s)]


class BatchIndex:
    """Batch codes and course names fed by the realtime batch subscription."""

    def __init__(self):
        self._lock = threading.Lock()
        self.batches = set()
        self.courses = set()
        # Mongo _id -> batch_code, learned from insert/update events
        self._codes = {}

    def load(self, rows: Iterable[dict]):
        with self._lock:
            for r in rows:
                if r.get("batch_code"):
                    self.batches.add(r["batch_code"])
                if r.get("course_name"):
                    self.courses.add(r["course_name"])

    def apply_change(self, event: dict):
        """Apply a change-stream event; course names are never removed.

        A delete names its batch through the pre-image when the collection
        records one, else through the ``documentKey`` seen on an earlier event.
        """
        op = event.get("operationType")
        doc_id = (event.get("documentKey") or {}).get("_id")
        with self._lock:
            if op == "delete":
                before = event.get("fullDocumentBeforeChange") or {}
                known = self._codes.pop(doc_id, None)
                self.batches.discard(before.get("batch_code") or known)
                return
            doc = event.get("fullDocument") or {}
            if doc.get("batch_code"):
                self.batches.add(doc["batch_code"])
                if doc_id is not None:
                    self._codes[doc_id] = doc["batch_code"]
            if doc.get("course_name"):
                self.courses.add(doc["course_name"])

    def snapshot(self):
        with self._lock:
            return set(self.batches), set(self.courses)


def filter_options(
    students: Iterable[StudentRecord],
    batch_index: Optional[BatchIndex] = None,
    course_names: Iterable[str] = (),
) -> Dict[str, List[str]]:
    students = list(students)
    batches, courses = batch_index.snapshot() if batch_index else (set(), set())
    courses |= {c for c in course_names if c}
    courses |= {s.admission.course for s in students if s.admission.course}
    batches |= {s.admission.batch for s in students if s.admission.batch}
    return {
        "statuses": list(STUDENT_STATUSES),
        "courses": sorted(courses),
        "batches": sorted(batches),
        "campuses": sorted(CAMPUSES),
    }


def log_communication(student: StudentRecord, channel: Channel, message: Optional[str] = None,
                      now: Optional[datetime] = None) -> StudentRecord:
    now = now or datetime.now(timezone.utc)
    prefix, default_message = COMMUNICATION_DEFAULTS[channel]
    entry = CommunicationEntry(
        id=f"{prefix}-{int(now.timestamp() * 1000)}",
        channel=channel,
        message=message or default_message,
        at=now,
    )
    return student.model_copy(update={"communications": [entry, *student.communications]})


def mark_attendance(student: StudentRecord, present: bool, day: Optional[date] = None) -> StudentRecord:
    """Upsert today's (or ``day``'s) attendance; one entry per date."""
    key = (day or date.today()).isoformat()
    entry = AttendanceEntry(date=key, present=present)
    attendance = list(student.attendance)
    for i, a in enumerate(attendance):
        if a.date == key:
            attendance[i] = entry
            break
    else:
        attendance.append(entry)
    return student.model_copy(update={"attendance": attendance})


def attendance_history(student: StudentRecord) -> List[AttendanceEntry]:
    return sorted(student.attendance, key=lambda a: a.date)


def set_status(student: StudentRecord, status: StudentStatus) -> StudentRecord:
    return student.model_copy(update={"status": status})


def apply_action(student: StudentRecord, action: str) -> StudentRecord:
    return set_status(student, ACTIONS[action])


def transfer_batch(student: StudentRecord, batch: str) -> StudentRecord:
    return student.model_copy(update={"admission": student.admission.model_copy(update={"batch": batch})})


def transfer_campus(student: StudentRecord, campus: str) -> StudentRecord:
    return student.model_copy(update={"admission": student.admission.model_copy(update={"campus": campus})})
