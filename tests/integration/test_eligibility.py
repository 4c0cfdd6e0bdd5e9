"""Integration tests for eligibility profiles, standing overrides and product checks"""

import pytest
from microcredit_engine.domain.exceptions import NotFoundError
from microcredit_engine.domain.models import AccountType, Currency, Money, ProductArgs, ProductType, Standing
from microcredit_engine.infrastructure.database.repositories import SavingsRepository
from microcredit_engine.services.passes import run_eligibility_refresh_pass


def usd(cents: int) -> Money:
    return Money(cents, Currency.USD)


def test_profile_is_created_on_first_use(services, make_customer):
    make_customer("cust-1")

    profile = services.eligibility.get_profile("cust-1")

    assert profile.standing == "NEUTRAL"
    assert profile.score == 50
    lines = {line.currency: line for line in profile.credit_lines}
    assert set(lines) == {"USD", "CDF"}
    assert lines["USD"].limit_cents == 150_000
    assert lines["USD"].used_cents == 0


def test_profile_of_unknown_customer(services):
    with pytest.raises(NotFoundError):
        services.eligibility.get_profile("ghost")


def test_new_customer_is_eligible_within_limit(services, make_customer):
    make_customer("cust-1")

    result = services.eligibility.check_eligibility("cust-1", usd(100_000))

    assert result.eligible is True
    assert result.reason is None
    assert result.available == usd(150_000)


def test_amount_above_available_credit(services, make_customer):
    make_customer("cust-1")

    result = services.eligibility.check_eligibility("cust-1", usd(150_001))

    assert result.eligible is False
    assert result.reason == "amount 1500.01 exceeds available credit 1500.00"


def test_low_score_is_rejected(services, make_customer):
    make_customer("cust-1")
    profile = services.eligibility.get_profile("cust-1")
    profile.score = 25
    services.db.flush()

    result = services.eligibility.check_eligibility("cust-1", usd(10_000))

    assert result.eligible is False
    assert result.reason == "score below minimum 30"


def test_blacklist_dominates_everything(services, make_customer):
    make_customer("cust-1")
    services.eligibility.blacklist("cust-1", "fraud", "admin-1")

    result = services.eligibility.check_eligibility("cust-1", usd(1))

    assert result.eligible is False
    assert result.standing == Standing.BLACKLISTED
    assert result.score == 0
    assert result.available == usd(0)
    assert services.eligibility.standing_reasons("cust-1", usd(1)) == ["customer is blacklisted: fraud"]


def test_blacklisted_customer_fails_every_product(services, overdraft_customer):
    services.eligibility.blacklist(overdraft_customer, "fraud", "admin-1")

    result = services.credits.check_product_eligibility(
        overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000), ProductArgs()
    )

    assert result.eligible is False
    assert result.reasons == ["customer is blacklisted: fraud"]


def test_whitelist_bypasses_score_gate_and_sets_limit(services, make_customer):
    make_customer("cust-1")
    services.eligibility.blacklist("cust-1", "fraud", "admin-1")

    profile = services.eligibility.whitelist("cust-1", "cleared by committee", "admin-2", new_limit=usd(700_000))
    profile.score = 10
    services.db.flush()

    assert profile.standing == "WHITELISTED"
    assert profile.blacklist_reason is None
    result = services.eligibility.check_eligibility("cust-1", usd(600_000))
    assert result.eligible is True
    assert result.limit == usd(700_000)


def test_reset_standing_clears_overrides(services, make_customer):
    make_customer("cust-1")
    services.eligibility.whitelist("cust-1", "vip", "admin-1", new_limit=usd(700_000))

    profile = services.eligibility.reset_standing("cust-1", "admin-1")

    assert profile.standing == "NEUTRAL"
    assert profile.whitelist_reason is None
    assert profile.score == 50
    usd_line = next(line for line in profile.credit_lines if line.currency == "USD")
    assert usd_line.limit_override_cents is None
    assert usd_line.limit_cents == 150_000


def test_standing_changes_are_audited(services, make_customer):
    make_customer("cust-1")
    services.eligibility.blacklist("cust-1", "fraud", "admin-1")

    entries = services.audit.audits.list_by_entity("cust-1")

    assert [entry.action for entry in entries] == ["customer.blacklist"]
    assert entries[0].actor_id == "admin-1"
    assert entries[0].before["standing"] == "NEUTRAL"
    assert entries[0].after["standing"] == "BLACKLISTED"


def test_overdraft_reports_every_unmet_condition(services, make_customer, deposit):
    make_customer("cust-1")
    deposit("cust-1", AccountType.MANDATORY_SAVINGS, 1_000, days=10)

    result = services.credits.check_product_eligibility("cust-1", ProductType.SHORT_OVERDRAFT, usd(10_000), ProductArgs())

    assert result.eligible is False
    assert result.reasons == [
        "mandatory savings balance insufficient: required 50.00, current 10.00",
        "26 deposit days required in the last 35 days (current: 10)",
    ]


def test_overdraft_rejects_wrong_currency(services, overdraft_customer):
    result = services.credits.check_product_eligibility(
        overdraft_customer, ProductType.SHORT_OVERDRAFT, Money(10_000, Currency.CDF), ProductArgs()
    )

    assert result.reasons == ["SHORT_OVERDRAFT credits are only granted in USD"]


def test_overdraft_customer_is_eligible(services, overdraft_customer):
    result = services.credits.check_product_eligibility(
        overdraft_customer, ProductType.SHORT_OVERDRAFT, usd(10_000), ProductArgs()
    )

    assert result.eligible is True
    assert result.reasons == []


def test_only_completed_savings_cycles_count(services, db, make_customer, today):
    make_customer("cust-1")
    cycles = SavingsRepository(db)
    for status in ("COMPLETED", "COMPLETED", "BROKEN", "ACTIVE"):
        cycles.create_cycle(
            customer_id="cust-1", currency="CDF", target_cents=500_000, status=status, started_on=today
        )

    assert services.credits.facts("cust-1").completed_savings_cycles() == 2


def test_daily_refresh_retiers_stale_profiles(services, db, make_customer, today):
    make_customer("cust-1")
    dormant = make_customer("cust-dormant")
    profile = services.eligibility.get_profile("cust-1")
    profile.score = 90
    for line in profile.credit_lines:
        line.limit_cents = 1
    for account in dormant.accounts:
        account.status = "INACTIVE"
    db.commit()

    report = run_eligibility_refresh_pass(db, as_of=today)

    assert (report.name, report.examined, report.processed, report.failed) == ("eligibility_refresh", 1, 1, 0)
    profile = services.eligibility.get_profile("cust-1")
    assert profile.score == 50
    lines = {line.currency: line for line in profile.credit_lines}
    assert lines["USD"].limit_cents == 150_000
