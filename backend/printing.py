"""Print-ready HTML documents rendered from Jinja2 templates."""
import os
from datetime import date, datetime
from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from schemas import AdmissionRecord
from .config import settings
from .payments import payment_status

TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "templates")


def money(value) -> str:
    return f"{settings.currency_symbol}{float(value or 0):,.0f}"


def display_date(value) -> str:
    if isinstance(value, str):
        value = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if isinstance(value, (date, datetime)):
        return value.strftime("%d/%m/%Y")
    return ""


env = Environment(
    loader=FileSystemLoader(TEMPLATE_DIR),
    autoescape=select_autoescape(["html"]),
)
env.filters["money"] = money
env.filters["display_date"] = display_date


def render_voucher(fields: Dict[str, Any]) -> str:
    """Fee voucher from the flat field map built by ``voucher_fields``."""
    return env.get_template("voucher.html").render(**fields)


def render_admission_form(rec: AdmissionRecord, today: Optional[date] = None) -> str:
    return env.get_template("admission_form.html").render(
        rec=rec,
        payment_status=payment_status(rec.fee.installments, today),
    )
