from datetime import date, datetime, timezone

from backend import admissions
from schemas import AdmissionSnapshot, Document, StudentContact, StudentRecord


def test_intake_creates_pending_record():
    rec = admissions.intake(
        StudentContact(name="Bilal Ahmed", email="bilal@institute.pk", phone="0312"),
        "Graphic Design", batch="GD-02", campus="FSD",
    )
    assert rec.status == "Pending"
    assert rec.student_id is None
    assert len(rec.id) == 32


def test_approve_mints_one_student(admission):
    outcome = admissions.approve(admission, batch="PY-02", campus="Sub Campus", taken=set())
    assert outcome.changed
    assert outcome.record.status == "Verified"
    assert outcome.record.batch == "PY-02"
    student = outcome.student
    assert student.id == outcome.record.student_id
    assert student.status == "Current"
    assert student.admission.batch == "PY-02"
    assert student.admission.campus == "Sub Campus"
    assert student.admission.date == admission.created_at
    assert [i.id for i in student.fee.installments] == ["I1", "I2"]
    assert admission.status == "Pending"


def test_second_approval_is_a_noop(admission):
    first = admissions.approve(admission)
    second = admissions.approve(first.record)
    assert not second.changed
    assert second.student is None
    assert second.record is first.record


def test_approve_keeps_assigned_student_id(admission):
    rec = admission.model_copy(update={"student_id": "AK-240101-ABCD"})
    assert admissions.approve(rec).student.id == "AK-240101-ABCD"


def test_reject_requires_reason(admission):
    for reason in (None, "", "   "):
        outcome = admissions.reject(admission, reason)
        assert not outcome.changed
        assert outcome.record.status == "Pending"


def test_reject_with_reason(admission):
    outcome = admissions.reject(admission, "  Incomplete documents ")
    assert outcome.record.status == "Rejected"
    assert outcome.record.rejected_reason == "Incomplete documents"


def test_reject_only_from_pending(admission):
    verified = admissions.approve(admission).record
    assert not admissions.reject(verified, "late").changed


def test_suspend_and_cancel_only_from_verified(admission):
    assert not admissions.suspend(admission).changed
    assert not admissions.cancel(admission).changed
    verified = admissions.approve(admission).record
    assert admissions.suspend(verified).record.status == "Suspended"
    assert admissions.cancel(verified).record.status == "Cancelled"


def test_transfer(admission):
    outcome = admissions.transfer(admission, "PY-03", "FSD")
    assert (outcome.record.batch, outcome.record.campus) == ("PY-03", "FSD")
    assert not admissions.transfer(outcome.record, "PY-03", "FSD").changed


def test_mark_all_paid(admission):
    now = datetime(2024, 6, 1, tzinfo=timezone.utc)
    outcome = admissions.mark_all_paid(admission, now)
    assert all(i.paid_at == now for i in outcome.record.fee.installments)
    assert not admissions.mark_all_paid(outcome.record).changed


def test_toggle_document(admission):
    rec = admission.model_copy(update={"documents": [Document(name="CNIC", url="https://files/cnic.pdf")]})
    toggled = admissions.toggle_document(rec, 0)
    assert toggled.record.documents[0].verified
    assert not admissions.toggle_document(rec, 3).changed


def test_quick_enroll_builds_full_installment(admission):
    now = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
    outcome, voucher = admissions.quick_enroll(admission, "Graphic Design", 25000, "GD-01", "FSD", now=now)
    student = outcome.student
    assert outcome.changed
    assert outcome.record.student_id == student.id
    assert student.fee.total == 25000
    assert [(i.id, i.amount, i.due_date) for i in student.fee.installments] == [("FULL", 25000, date(2024, 6, 1))]
    assert student.enrolled_courses == ["Graphic Design"]
    assert voucher["student_id"] == student.id
    assert voucher["amount"] == 25000
    assert voucher["course"] == "Graphic Design"


def test_quick_enroll_reuses_existing_student(admission):
    existing = admissions.approve(admission).student
    existing = existing.model_copy(update={"enrolled_courses": ["Python Programming"]})
    rec = admission.model_copy(update={"student_id": existing.id})
    outcome, _ = admissions.quick_enroll(rec, "Python Programming", 0, "", "", existing=existing)
    assert not outcome.changed
    assert outcome.student.enrolled_courses == ["Python Programming"]
    outcome, _ = admissions.quick_enroll(rec, "Graphic Design", 0, "", "", existing=existing)
    assert outcome.student.enrolled_courses == ["Python Programming", "Graphic Design"]
    assert outcome.student.fee == existing.fee
    assert isinstance(outcome.student, StudentRecord)


def test_approve_keeps_quick_enrolled_student(admission):
    outcome, _ = admissions.quick_enroll(admission, "Graphic Design", 25000, "GD-01", "Main Campus", taken=set())
    enrolled = outcome.student
    approved = admissions.approve(outcome.record, existing=enrolled)
    assert approved.changed
    assert approved.record.status == "Verified"
    assert approved.student is enrolled
    assert approved.student.enrolled_courses == ["Graphic Design"]
    assert approved.student.fee.total == 25000


def test_approve_ignores_unrelated_existing_student(admission):
    other = StudentRecord(
        id="ZZ-240101-ZZZZ", name="Someone Else",
        admission=AdmissionSnapshot(course="Graphic Design", date=admission.created_at),
    )
    rec = admission.model_copy(update={"student_id": "AK-240101-ABCD"})
    outcome = admissions.approve(rec, existing=other)
    assert outcome.student.id == "AK-240101-ABCD"
    assert outcome.student.name == "Ayesha Khan"
