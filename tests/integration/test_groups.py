"""Integration tests for savings groups and the group-savings credit"""

import pytest
from microcredit_engine.domain.exceptions import GroupMembershipError, InvalidAmountError, NotFoundError
from microcredit_engine.domain.models import Currency, Money, ProductArgs, ProductType


def usd(cents: int) -> Money:
    return Money(cents, Currency.USD)


@pytest.fixture
def members(make_customer):
    ids = [f"member-{i}" for i in range(5)]
    for customer_id in ids:
        make_customer(customer_id)
    return ids


@pytest.fixture
def funded_group(services, members):
    """Five members with 125 USD pooled each"""
    group = services.groups.create_group("Tujenge", "member-0", members)
    for customer_id in members:
        services.groups.record_contribution(group.id, customer_id, usd(12_500))
    return group


def test_group_needs_five_to_ten_members(services, make_customer, members):
    with pytest.raises(GroupMembershipError):
        services.groups.create_group("Too small", "member-0", members[:4])

    extra = [f"extra-{i}" for i in range(6)]
    for customer_id in extra:
        make_customer(customer_id)
    with pytest.raises(GroupMembershipError):
        services.groups.create_group("Too big", "member-0", members + extra)


def test_duplicate_members_count_once(services, members):
    with pytest.raises(GroupMembershipError):
        services.groups.create_group("Duplicates", "member-0", members[:4] + [members[0]])


def test_members_must_exist(services, members):
    with pytest.raises(NotFoundError):
        services.groups.create_group("Ghosts", "member-0", members[:4] + ["ghost"])


def test_contributions_are_pooled(services, funded_group):
    assert services.groups.pooled_savings(funded_group.id, Currency.USD) == usd(62_500)
    assert services.groups.pooled_savings(funded_group.id, Currency.CDF) == Money(0, Currency.CDF)


def test_only_members_contribute(services, funded_group, make_customer):
    make_customer("outsider")

    with pytest.raises(GroupMembershipError):
        services.groups.record_contribution(funded_group.id, "outsider", usd(1_000))
    with pytest.raises(InvalidAmountError):
        services.groups.record_contribution(funded_group.id, "member-1", usd(0))


def test_group_credit_capped_at_pooled_ceiling(services, funded_group):
    args = ProductArgs(group_id=funded_group.id)

    too_much = services.credits.check_product_eligibility("member-1", ProductType.GROUP_SAVINGS, usd(50_001), args)
    ok = services.credits.check_product_eligibility("member-1", ProductType.GROUP_SAVINGS, usd(50_000), args)

    assert too_much.reasons == ["amount exceeds 80% of pooled group savings (maximum 500.00)"]
    assert ok.eligible is True


def test_group_credit_requires_membership(services, funded_group, make_customer):
    make_customer("outsider")

    result = services.credits.check_product_eligibility(
        "outsider", ProductType.GROUP_SAVINGS, usd(10_000), ProductArgs(group_id=funded_group.id)
    )

    assert result.reasons == ["customer is not a member of this group"]


def test_group_credit_without_caution(services, funded_group, disbursed_credit):
    credit = disbursed_credit("member-1", ProductType.GROUP_SAVINGS, usd(50_000), ProductArgs(group_id=funded_group.id))

    assert credit.status == "DISBURSED"
    assert credit.caution_cents == 0
    assert credit.processing_fee_cents == 750
    assert credit.total_interest_cents == 1_000
    assert credit.remaining_cents == 51_000
    assert credit.group_id == funded_group.id
