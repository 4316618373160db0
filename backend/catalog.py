"""Course catalog views and the built-in course list."""
from typing import Dict, Iterable, List, Tuple

from pydantic import BaseModel

from schemas import Course

# Served when neither the remote nor the local store has any course
DEFAULT_COURSES: List[Dict] = [
    {"id": "web-dev", "name": "Full Stack Web Development", "category": "Development",
     "duration": "6 months", "fees": 60000, "description": "HTML, CSS, JavaScript, React and Node.js",
     "status": "live", "featured": True},
    {"id": "python", "name": "Python Programming", "category": "Development",
     "duration": "3 months", "fees": 30000, "description": "Core Python, OOP and scripting",
     "status": "live"},
    {"id": "data-science", "name": "Data Science & Machine Learning", "category": "Data",
     "duration": "6 months", "fees": 75000, "description": "Pandas, scikit-learn and model deployment",
     "status": "live", "featured": True},
    {"id": "graphic-design", "name": "Graphic Design", "category": "Design",
     "duration": "3 months", "fees": 25000, "description": "Photoshop, Illustrator and branding",
     "status": "live"},
    {"id": "digital-marketing", "name": "Digital Marketing", "category": "Marketing",
     "duration": "2 months", "fees": 20000, "description": "SEO, social media and paid ads",
     "status": "live"},
    {"id": "cloud-devops", "name": "Cloud & DevOps", "category": "Development",
     "duration": "4 months", "fees": 55000, "description": "Linux, Docker, CI/CD and AWS",
     "status": "upcoming"},
]


class CatalogView(BaseModel):
    query: str = ""
    category: str = "All"


def categories(courses: Iterable[Course]) -> List[str]:
    seen = ["All"]
    for c in courses:
        if c.category not in seen:
            seen.append(c.category)
    return seen


def filter_courses(courses: Iterable[Course], view: CatalogView) -> List[Course]:
    q = view.query.strip().lower()
    return [
        c for c in courses
        if (view.category == "All" or c.category == view.category)
        and (not q or q in c.name.lower())
    ]


def featured(courses: Iterable[Course]) -> List[Course]:
    return [c for c in courses if c.featured]


def upcoming(courses: Iterable[Course]) -> List[Course]:
    return sorted(
        (c for c in courses if c.status.lower() == "upcoming"),
        key=lambda c: c.start_date or "",
    )


def latest(courses: Iterable[Course]) -> List[Course]:
    return sorted(courses, key=lambda c: c.created_at or "", reverse=True)


def by_category(courses: Iterable[Course]) -> List[Tuple[str, List[Course]]]:
    groups: Dict[str, List[Course]] = {}
    for c in courses:
        groups.setdefault(c.category, []).append(c)
    return list(groups.items())


def catalog_page(courses: List[Course], view: CatalogView) -> Dict:
    """Everything the catalog screen shows for one view state."""
    shown = filter_courses(courses, view)
    return {
        "items": shown,
        "categories": categories(courses),
        "featured": featured(shown),
        "upcoming": upcoming(shown),
        "latest": latest(shown),
        "by_category": [{"category": k, "items": v} for k, v in by_category(shown)],
    }
