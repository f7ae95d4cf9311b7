import pytest

from conftest import add_contributor, add_task
from taskpool.contract.models import ContractId
from taskpool.core.errors import InvalidArgument, ScopeMismatch


def test_register_contributor_creates_zero_rate_dev_contract(storage, project):
    contributors = project.contributors()
    mihai = storage.with_transaction(lambda s: contributors.register("mihai", "github"))

    assert list(contributors) == [mihai]
    contracts = list(project.contracts())
    assert len(contracts) == 1
    assert contracts[0].contract_id == ContractId("john/test", "mihai", "github", "DEV")
    assert contracts[0].hourly_rate == 0


def test_register_existing_member_is_returned(storage, project):
    contributors = project.contributors()
    first = storage.with_transaction(lambda s: contributors.register("mihai", "github"))
    again = storage.with_transaction(lambda s: contributors.register("mihai", "github"))
    assert first == again
    assert len(project.contracts()) == 1


def test_register_contributor_from_other_provider(storage, project):
    with pytest.raises(InvalidArgument):
        storage.with_transaction(lambda s: project.contributors().register("mihai", "gitlab"))
    assert len(project.contributors()) == 0


def test_project_contributors_are_distinct(storage, project):
    add_contributor(storage, project, "mihai", roles=("DEV", "REV", "QA"))
    add_contributor(storage, project, "vlad", roles=("DEV",))
    assert [c.username for c in project.contributors()] == ["mihai", "vlad"]
    assert project.contributors().get_by_id("vlad", "github").username == "vlad"
    assert project.contributors().get_by_id("mary", "github") is None


def test_contributor_contract_roles(storage, project):
    mihai = add_contributor(storage, project, "mihai", roles=("DEV", "REV", "QA"))
    assert sorted(mihai.contracts().roles("john/test")) == ["DEV", "QA", "REV"]


def test_views_are_lazy_and_restartable(storage, project):
    contributors = project.contributors()
    assert list(contributors) == []
    add_contributor(storage, project, "mihai")
    assert [c.username for c in contributors] == ["mihai"]
    assert [c.username for c in contributors] == ["mihai"]


def test_facade_scoping(storage, owner, project):
    mihai = add_contributor(storage, project, "mihai")
    contributors = project.contributors()
    assert contributors.of_project("john/test", "github") is contributors
    with pytest.raises(ScopeMismatch):
        contributors.of_project("john/other", "github")

    contracts = mihai.contracts()
    assert contracts.of_contributor("mihai", "github") is contracts
    with pytest.raises(ScopeMismatch):
        contracts.of_contributor("vlad", "github")

    cid = ContractId("john/test", "mihai", "github", "DEV")
    invoices = storage.invoices().of_contract(cid)
    assert invoices.of_contract(cid) is invoices
    with pytest.raises(ScopeMismatch):
        invoices.of_contract(ContractId("john/test", "mihai", "github", "QA"))

    tasks = project.tasks()
    assert tasks.of_project("john/test", "github") is tasks
    with pytest.raises(ScopeMismatch):
        tasks.of_project("john/test", "gitlab")

    owned = owner.projects()
    assert owned.of_owner("john", "github") is owned
    with pytest.raises(ScopeMismatch):
        owned.of_owner("mary", "github")


def test_elect_rejects_task_from_another_project(storage, owner, project):
    other = storage.with_transaction(lambda s: s.projects().register(owner, "john/other"))
    task = add_task(storage, other, "7")
    with pytest.raises(ScopeMismatch):
        project.contributors().elect(task)


def test_user_credentials(storage, owner, now):
    import datetime
    from taskpool.user.models import ApiToken

    def _add(s):
        token = ApiToken(name="ci", username=owner.username, provider=owner.provider,
                         expires_at=now + datetime.timedelta(days=30))
        token.set_secret("hunter2")
        owner.credentials.append(token)
        s.db.flush()
        return token
    token = storage.with_transaction(_add)

    assert [c.name for c in owner.credentials] == ["ci"]
    assert token.verify("hunter2", now)
    assert not token.verify("wrong", now)
    assert not token.verify("hunter2", now + datetime.timedelta(days=31))
