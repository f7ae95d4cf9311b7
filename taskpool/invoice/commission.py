# taskpool/invoice/commission.py
from typing import Callable, Optional

from taskpool.core import config
from taskpool.core.errors import NoSuchContract
from taskpool.core.helpers import percent_of, task_value

# (task, wallet) -> commission in minor units
CommissionPolicy = Callable[[object, Optional[object]], int]


def value_of(task) -> int:
    contract = task.contract()
    if contract is None:
        raise NoSuchContract(f"Task #{task.issue_id} has no contract to bill.")
    return task_value(contract.hourly_rate, task.estimation_minutes)


def percentage_commission(task, wallet) -> int:
    """The wallet's basis points of the task value, rounded half-even."""
    basis_points = wallet.commission_bp if wallet is not None else config.DEFAULT_COMMISSION_BP
    return percent_of(value_of(task), basis_points)


def no_commission(task, wallet) -> int:
    return 0


default_policy: CommissionPolicy = percentage_commission
