# taskpool/provider/labels.py
import re
from typing import Iterable, Optional

from taskpool.contract.models import ROLES, Role

_ESTIMATION_RE = re.compile(r"^\s*(\d+)\s*(m|min|mins|minutes|h|hr|hrs|hours)\s*$", re.IGNORECASE)


def role_from_labels(labels: Iterable[str]) -> str:
    """
    First label whose text is exactly a role name. Issues without a role
    label are development work.
    """
    for label in labels or []:
        if label in ROLES:
            return label
    return Role.DEV.value


def estimation_from_labels(labels: Iterable[str]) -> Optional[int]:
    """Minutes from labels like '30m', '90 min' or '2h'; None when absent."""
    for label in labels or []:
        match = _ESTIMATION_RE.match(label or "")
        if not match:
            continue
        amount, unit = int(match.group(1)), match.group(2).lower()
        return amount * 60 if unit.startswith("h") else amount
    return None
