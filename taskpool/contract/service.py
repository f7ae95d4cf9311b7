# taskpool/contract/service.py
import datetime
import logging
from typing import Optional

from taskpool.core.errors import InvalidArgument, InvalidState, NotFound
from taskpool.core.events import ContractRemoved
from taskpool.core.helpers import utcnow
from taskpool.core.storage import Storage
from taskpool.contract.models import Contract, ContractId

logger = logging.getLogger("uvicorn.error")


def get_contract_or_404(storage: Storage, contract_id: ContractId, for_update: bool = False) -> Contract:
    contract = storage.contracts().get_by_id(ContractId(*contract_id), for_update=for_update)
    if contract is None:
        raise NotFound(f"Contract {tuple(contract_id)} not found.")
    return contract


def add_contract(
    storage: Storage,
    repo_fullname: str,
    username: str,
    provider: str,
    hourly_rate: int,
    role: str,
    deadline: Optional[datetime.datetime] = None,
) -> Contract:
    contract = storage.with_transaction(
        lambda s: s.contracts().add(repo_fullname, username, provider, hourly_rate, role), deadline=deadline
    )
    logger.info("Contract %s added at %s/h", tuple(contract.contract_id), hourly_rate)
    return contract


def mark_for_removal(
    storage: Storage,
    contract_id: ContractId,
    at: Optional[datetime.datetime] = None,
    deadline: Optional[datetime.datetime] = None,
) -> Contract:
    """Flag the contract; the first mark wins, later calls change nothing."""
    def _mark(s: Storage) -> Contract:
        contract = get_contract_or_404(s, contract_id, for_update=True)
        if contract.marked_for_removal is None:
            contract.marked_for_removal = at or utcnow()
            s.db.flush()
            logger.info("Contract %s marked for removal", tuple(contract.contract_id))
        return contract
    return storage.with_transaction(_mark, deadline=deadline)


def update_hourly_rate(
    storage: Storage, contract_id: ContractId, hourly_rate: int, deadline: Optional[datetime.datetime] = None
) -> Contract:
    """New rate applies to tasks invoiced from now on; invoiced tasks keep theirs."""
    if hourly_rate is None or hourly_rate < 0:
        raise InvalidArgument("Hourly rate cannot be negative.")

    def _update(s: Storage) -> Contract:
        contract = get_contract_or_404(s, contract_id, for_update=True)
        contract.hourly_rate = hourly_rate
        s.db.flush()
        return contract
    return storage.with_transaction(_update, deadline=deadline)


def remove_contract(storage: Storage, contract_id: ContractId, deadline: Optional[datetime.datetime] = None) -> None:
    """
    Delete a contract whose invoices are all paid and which has no task
    assigned under it. Any unpaid invoice blocks the removal, even an empty one.
    """
    def _remove(s: Storage) -> None:
        contract = get_contract_or_404(s, contract_id, for_update=True)
        cid = contract.contract_id
        if len(s.tasks().of_contract(cid)) > 0:
            raise InvalidState(f"Contract {tuple(cid)} still has assigned tasks.")
        for invoice in s.invoices().of_contract(cid):
            if not invoice.is_paid:
                raise InvalidState(f"Contract {tuple(cid)} has an unpaid invoice ({invoice.id}).")
        s.db.delete(contract)
        s.db.flush()
        s.emit(ContractRemoved(contract_id=tuple(cid)))
        logger.info("Contract %s removed", tuple(cid))
    storage.with_transaction(_remove, deadline=deadline)
