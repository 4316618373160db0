"""Toast notifications returned to the admin client."""
import logging
from typing import Dict, Optional

logger = logging.getLogger(__name__)


def notify(title: str, description: Optional[str] = None) -> Dict[str, Optional[str]]:
    if description:
        logger.info(f"{title}: {description}")
    else:
        logger.info(title)
    return {"title": title, "description": description}
