# taskpool/contract/collections.py
from typing import Optional

from taskpool.core.collections import Collection
from taskpool.core.errors import AlreadyExists, InvalidArgument, ReferencedEntityMissing
from taskpool.contract.models import Contract, ContractId, ROLES


class Contracts(Collection[Contract]):

    def __init__(self, storage):
        super().__init__(
            storage,
            lambda: storage.db.query(Contract).order_by(
                Contract.provider, Contract.repo_fullname, Contract.username, Contract.role
            ),
        )

    def get_by_id(self, contract_id: ContractId, for_update: bool = False) -> Optional[Contract]:
        query = self.storage.db.query(Contract).filter(
            Contract.repo_fullname == contract_id.repo_fullname,
            Contract.username == contract_id.username,
            Contract.provider == contract_id.provider,
            Contract.role == contract_id.role,
        )
        if for_update:
            query = query.with_for_update()
        return query.first()

    def add(self, repo_fullname: str, username: str, provider: str, hourly_rate: int, role: str) -> Contract:
        if hourly_rate is None or hourly_rate < 0:
            raise InvalidArgument("Hourly rate cannot be negative.")
        if role not in ROLES:
            raise InvalidArgument(f"Unknown role {role}, expected one of {', '.join(ROLES)}.")
        if self.storage.projects().get_by_id(repo_fullname, provider) is None:
            raise ReferencedEntityMissing(f"Project {repo_fullname} ({provider}) is not registered.")
        if self.storage.contributors().get_by_id(username, provider) is None:
            raise ReferencedEntityMissing(f"Contributor {username} ({provider}) is not registered.")
        contract_id = ContractId(repo_fullname, username, provider, role)
        if self.get_by_id(contract_id) is not None:
            raise AlreadyExists(f"Contract {tuple(contract_id)} already exists.")
        contract = Contract(
            repo_fullname=repo_fullname,
            username=username,
            provider=provider,
            role=role,
            hourly_rate=hourly_rate,
        )
        self.storage.db.add(contract)
        self.storage.db.flush()
        return contract

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectContracts":
        return ProjectContracts(self.storage, repo_fullname, provider)

    def of_contributor(self, username: str, provider: str) -> "ContributorContracts":
        return ContributorContracts(self.storage, username, provider)


class ProjectContracts(Collection[Contract]):

    def __init__(self, storage, repo_fullname: str, provider: str, role: Optional[str] = None):
        def source():
            query = storage.db.query(Contract).filter(
                Contract.repo_fullname == repo_fullname, Contract.provider == provider
            )
            if role is not None:
                query = query.filter(Contract.role == role)
            return query.order_by(Contract.username, Contract.role)
        super().__init__(storage, source)
        self.repo_fullname = repo_fullname
        self.provider = provider
        self.role = role

    def of_project(self, repo_fullname: str, provider: str) -> "ProjectContracts":
        return self._check_scope((self.repo_fullname, self.provider), (repo_fullname, provider), "contracts")

    def with_role(self, role: str) -> "ProjectContracts":
        return ProjectContracts(self.storage, self.repo_fullname, self.provider, role)

    def get_by_id(self, contract_id: ContractId) -> Optional[Contract]:
        if (contract_id.repo_fullname, contract_id.provider) != (self.repo_fullname, self.provider):
            return None
        return self.storage.contracts().get_by_id(contract_id)


class ContributorContracts(Collection[Contract]):

    def __init__(self, storage, username: str, provider: str):
        super().__init__(
            storage,
            lambda: storage.db.query(Contract)
            .filter(Contract.username == username, Contract.provider == provider)
            .order_by(Contract.repo_fullname, Contract.role),
        )
        self.username = username
        self.provider = provider

    def of_contributor(self, username: str, provider: str) -> "ContributorContracts":
        return self._check_scope((self.username, self.provider), (username, provider), "contracts")

    def roles(self, repo_fullname: str):
        return [c.role for c in self if c.repo_fullname == repo_fullname]

    def get_by_id(self, contract_id: ContractId) -> Optional[Contract]:
        if (contract_id.username, contract_id.provider) != (self.username, self.provider):
            return None
        return self.storage.contracts().get_by_id(contract_id)
