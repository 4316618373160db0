"""
Admission workflow

Every action takes an AdmissionRecord and returns an AdmissionOutcome with a
new record; the input is never mutated. Actions that are not allowed from
the current status, or that miss required input, return the input record
unchanged with ``changed=False``.

    Pending  -> Verified (approve, mints the StudentRecord) | Rejected
    Verified -> Suspended | Cancelled
"""
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Collection, Dict, List, Optional, Tuple

from schemas import (
    AdmissionRecord,
    AdmissionSnapshot,
    Document,
    FeeSummary,
    Installment,
    StudentContact,
    StudentRecord,
)
from .identifiers import ensure_student_id
from .payments import mark_all_paid as _mark_installments_paid

logger = logging.getLogger(__name__)


@dataclass
class AdmissionOutcome:
    record: AdmissionRecord
    changed: bool
    student: Optional[StudentRecord] = None


def _unchanged(rec: AdmissionRecord, why: str) -> AdmissionOutcome:
    logger.info(f"Admission {rec.id}: {why}; no change")
    return AdmissionOutcome(rec, False)


def intake(
    student: StudentContact,
    course: str,
    batch: str = "",
    campus: str = "",
    fee: Optional[FeeSummary] = None,
    documents: Optional[List[Document]] = None,
    notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> AdmissionRecord:
    return AdmissionRecord(
        id=uuid.uuid4().hex,
        student=student,
        course=course,
        batch=batch,
        campus=campus,
        status="Pending",
        fee=fee or FeeSummary(),
        documents=documents or [],
        notes=notes,
        created_at=now or datetime.now(timezone.utc),
    )


def build_student(rec: AdmissionRecord, student_id: str) -> StudentRecord:
    """StudentRecord snapshot of an admission, fee installments included."""
    return StudentRecord(
        id=student_id,
        name=rec.student.name,
        email=rec.student.email,
        phone=rec.student.phone,
        status="Current",
        admission=AdmissionSnapshot(
            course=rec.course,
            batch=rec.batch,
            campus=rec.campus,
            date=rec.created_at,
        ),
        fee=FeeSummary(
            total=rec.fee.total,
            installments=[i.model_copy() for i in rec.fee.installments],
        ),
    )


def approve(
    rec: AdmissionRecord,
    batch: Optional[str] = None,
    campus: Optional[str] = None,
    taken: Collection[str] = (),
    existing: Optional[StudentRecord] = None,
) -> AdmissionOutcome:
    """Verify a Pending admission and mint its StudentRecord.

    When ``existing`` is the student already linked to the admission (a
    quick enrollment made it), that record is kept as is so its courses,
    attendance and fees survive. Re-approving a Verified record is a no-op
    and mints nothing.
    """
    if rec.status != "Pending":
        return _unchanged(rec, f"cannot approve from {rec.status}")
    if existing is not None and existing.id == rec.student_id:
        student_id = existing.id
    else:
        existing = None
        student_id = ensure_student_id(rec.student_id, rec.student.name, taken)
    update: Dict[str, Any] = {"status": "Verified", "student_id": student_id}
    if batch is not None:
        update["batch"] = batch
    if campus is not None:
        update["campus"] = campus
    verified = rec.model_copy(update=update)
    logger.info(f"Admission {rec.id} approved as student {student_id}")
    student = existing if existing is not None else build_student(verified, student_id)
    return AdmissionOutcome(verified, True, student)


def reject(rec: AdmissionRecord, reason: Optional[str]) -> AdmissionOutcome:
    if not reason or not reason.strip():
        return _unchanged(rec, "rejection needs a reason")
    if rec.status != "Pending":
        return _unchanged(rec, f"cannot reject from {rec.status}")
    return AdmissionOutcome(rec.model_copy(update={"status": "Rejected", "rejected_reason": reason.strip()}), True)


def suspend(rec: AdmissionRecord) -> AdmissionOutcome:
    if rec.status != "Verified":
        return _unchanged(rec, f"cannot suspend from {rec.status}")
    return AdmissionOutcome(rec.model_copy(update={"status": "Suspended"}), True)


def cancel(rec: AdmissionRecord) -> AdmissionOutcome:
    if rec.status != "Verified":
        return _unchanged(rec, f"cannot cancel from {rec.status}")
    return AdmissionOutcome(rec.model_copy(update={"status": "Cancelled"}), True)


def transfer(rec: AdmissionRecord, batch: str, campus: str) -> AdmissionOutcome:
    if rec.batch == batch and rec.campus == campus:
        return AdmissionOutcome(rec, False)
    return AdmissionOutcome(rec.model_copy(update={"batch": batch, "campus": campus}), True)


def mark_all_paid(rec: AdmissionRecord, now: Optional[datetime] = None) -> AdmissionOutcome:
    if all(i.paid_at for i in rec.fee.installments):
        return AdmissionOutcome(rec, False)
    fee = rec.fee.model_copy(update={"installments": _mark_installments_paid(rec.fee.installments, now)})
    return AdmissionOutcome(rec.model_copy(update={"fee": fee}), True)


def toggle_document(rec: AdmissionRecord, index: int) -> AdmissionOutcome:
    if not 0 <= index < len(rec.documents):
        return _unchanged(rec, f"no document at index {index}")
    documents = [
        d.model_copy(update={"verified": not d.verified}) if i == index else d
        for i, d in enumerate(rec.documents)
    ]
    return AdmissionOutcome(rec.model_copy(update={"documents": documents}), True)


def quick_enroll(
    rec: AdmissionRecord,
    course: str,
    amount: float,
    batch: str,
    campus: str,
    existing: Optional[StudentRecord] = None,
    taken: Collection[str] = (),
    now: Optional[datetime] = None,
) -> Tuple[AdmissionOutcome, Dict[str, Any]]:
    """Enroll without the admission form and return the voucher fields.

    An already stored student is reused as-is; otherwise a fresh one is
    built with a single FULL installment due today.
    """
    now = now or datetime.now(timezone.utc)
    student_id = ensure_student_id(rec.student_id, rec.student.name, taken)
    amount = float(amount or 0)
    student = existing or StudentRecord(
        id=student_id,
        name=rec.student.name,
        email=rec.student.email,
        phone=rec.student.phone,
        status="Current",
        admission=AdmissionSnapshot(course=course, batch=batch, campus=campus, date=now),
        fee=FeeSummary(
            total=amount,
            installments=[Installment(id="FULL", amount=amount, due_date=now.date())],
        ),
    )
    enrolled = list(student.enrolled_courses)
    if course not in enrolled:
        enrolled.append(course)
    student = student.model_copy(update={"enrolled_courses": enrolled})

    changed = rec.student_id != student.id
    record = rec.model_copy(update={"student_id": student.id}) if changed else rec
    voucher = voucher_fields(student, course=course, batch=batch, campus=campus, amount=amount)
    return AdmissionOutcome(record, changed, student), voucher


def voucher_fields(
    student: StudentRecord,
    course: Optional[str] = None,
    batch: Optional[str] = None,
    campus: Optional[str] = None,
    amount: Optional[float] = None,
    issued: Optional[date] = None,
) -> Dict[str, Any]:
    """Flat field map consumed by the fee voucher template."""
    return {
        "student_name": student.name,
        "student_email": student.email,
        "student_phone": student.phone,
        "student_id": student.id,
        "course": course if course is not None else student.admission.course,
        "batch": batch if batch is not None else student.admission.batch,
        "campus": campus if campus is not None else student.admission.campus,
        "amount": amount if amount is not None else student.fee.total,
        "issued": issued or date.today(),
    }
