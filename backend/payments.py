"""Fee installment arithmetic and the derived payment status."""
from datetime import date, datetime, timezone
from typing import Iterable, List, Optional

from schemas import Installment, PaymentStatus


def payment_status(installments: Iterable[Installment], today: Optional[date] = None) -> PaymentStatus:
    """Derive Paid / Overdue / Pending from installments alone.

    An unpaid installment due strictly before ``today`` makes the whole
    fee Overdue, whatever the other installments look like. An empty list
    owes nothing and is Paid.
    """
    today = today or date.today()
    unpaid = [i for i in installments if i.paid_at is None]
    if not unpaid:
        return "Paid"
    if any(i.due_date < today for i in unpaid):
        return "Overdue"
    return "Pending"


def paid_amount(installments: Iterable[Installment]) -> float:
    return sum(i.amount for i in installments if i.paid_at is not None)


def outstanding_amount(installments: Iterable[Installment]) -> float:
    return sum(i.amount for i in installments if i.paid_at is None)


def mark_all_paid(installments: Iterable[Installment], now: Optional[datetime] = None) -> List[Installment]:
    """Stamp every unpaid installment; already paid ones keep their timestamp."""
    now = now or datetime.now(timezone.utc)
    return [i if i.paid_at else i.model_copy(update={"paid_at": now}) for i in installments]
