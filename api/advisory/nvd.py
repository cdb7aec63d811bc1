import logging
from datetime import datetime, timezone
from typing import Optional

from . import schemas

logger = logging.getLogger(__name__)

# e.g. 2018-02-20T21:29Z; the feed carries no seconds
NVD_DATE_FORMAT = "%Y-%m-%dT%H:%MZ"
PROBLEM_TYPE_SEPARATOR = ","


def problem_type_summary(cve: schemas.Cve) -> str:
    """Join every weakness description, each followed by the separator."""
    if cve.problemtype is None or cve.problemtype.problemtype_data is None:
        return ""
    parts: list[str] = []
    for data in cve.problemtype.problemtype_data:
        for description in data.description or []:
            if description.value is None:
                continue
            parts.append(f"{description.value}{PROBLEM_TYPE_SEPARATOR}")
    return "".join(parts)


def english_description(cve: schemas.Cve) -> Optional[str]:
    if cve.description is None or cve.description.description_data is None:
        return None
    selected = None
    for entry in cve.description.description_data:
        if (entry.lang or "").lower() == "en":
            selected = entry.value
    return selected


def v2_severity(item: schemas.CveItem) -> Optional[str]:
    if item.impact is None or item.impact.base_metric_v2 is None:
        return None
    return item.impact.base_metric_v2.severity


def parse_nvd_date(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.strptime(value, NVD_DATE_FORMAT).replace(tzinfo=timezone.utc)
    except ValueError:
        logger.error("Could not convert date string %s", value, exc_info=True)
    return None
