import pytest

from taskpool.core.errors import AlreadyExists, InvalidArgument, NotFound, ReferencedEntityMissing
from taskpool.project.service import activate_wallet, register_project, register_wallet
from taskpool.user.models import User


def test_register_project(storage, owner):
    project = register_project(storage, owner, "john/app")
    assert project.owner == owner
    assert project.min_estimation == 60
    assert project.max_estimation == 480
    assert project.deadline_days == 10
    assert project.max_open_tasks is None
    assert len(project.webhook_token) == 64
    assert [p.repo_fullname for p in owner.projects()] == ["john/app"]


def test_register_project_validation(storage, owner, project):
    with pytest.raises(AlreadyExists):
        register_project(storage, owner, "john/test")
    with pytest.raises(ReferencedEntityMissing):
        register_project(storage, User(username="ghost", provider="github"), "ghost/app")
    with pytest.raises(InvalidArgument):
        register_project(storage, owner, "john/bad", min_estimation=120, max_estimation=60)


def test_first_wallet_is_active(storage, project):
    fake = register_wallet(storage, project, "FAKE")
    stripe = register_wallet(storage, project, "STRIPE", cash=100000, currency="EUR", identifier="cus_123")
    assert fake.active and not stripe.active
    assert project.wallets().active() == fake
    with pytest.raises(AlreadyExists):
        register_wallet(storage, project, "FAKE")


def test_activate_wallet(storage, project):
    register_wallet(storage, project, "FAKE")
    register_wallet(storage, project, "STRIPE")
    activate_wallet(storage, project, "STRIPE")
    wallets = project.wallets()
    assert wallets.active().type == "STRIPE"
    assert [w.type for w in wallets if w.active] == ["STRIPE"]
    with pytest.raises(NotFound):
        activate_wallet(storage, project, "PAYPAL")


def test_wallet_type_by_keyword(storage, project):
    register_wallet(storage, project, wallet_type="FAKE")
    paypal = register_wallet(storage, project, wallet_type="PAYPAL", currency="USD")
    activate_wallet(storage, project, wallet_type="PAYPAL")
    assert project.wallets().get_by_type(wallet_type="PAYPAL") == paypal
    assert project.wallets().active().type == "PAYPAL"
