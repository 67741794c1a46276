# Overview: Pytest coverage for the register open/close state machine and reconciliation.

"""
Register Reconciliation Tests

Walks the OPEN -> CLOSED lifecycle:
- opening cash compared against the previous register (warning, never blocking)
- cash movements feeding the expected drawer total
- variance gate: note plus manager PIN approval above the outlet threshold
- closed registers are frozen
"""

from datetime import date, timedelta

import pytest

from backoffice.context import RequestContext
from backoffice.errors import (
    AlreadyClosed,
    AlreadyOpen,
    InvalidState,
    NotFound,
    PinNotConfigured,
    PreviousRegisterOpen,
    RegisterClosed,
    Unauthorized,
    VarianceExplanationRequired,
)
from backoffice.extensions import db
from backoffice.models import DailyClosure, MonthlySummary, RegisterTransaction, User, UserPin
from backoffice.services import register_service, sale_service, settings_service
from backoffice.services.pin_service import ManagerApproval

from conftest import reload


DAY = date(2026, 3, 1)


def _cash_sale(ctx, external_id, total_cents, day=DAY):
    return sale_service.process_sale(ctx, {
        "external_id": external_id,
        "items": [{"name": "Bread", "quantity": 1, "unit_price_cents": total_cents}],
        "total_cents": total_cents,
        "payment_method": "CASH",
        "created_at": f"{day.isoformat()}T10:00:00Z",
    })


@pytest.fixture
def tight_threshold(db_session, outlet):
    settings_service.set_outlet_setting(outlet.id, settings_service.VARIANCE_THRESHOLD_KEY, 10)


class TestEndToEndReconciliation:

    def test_variance_blocks_close_until_explained_and_approved(self, db_session, ctx, manager, tight_threshold):
        register = register_service.open_register(ctx, DAY, 500).register
        _cash_sale(ctx, "pos-e2e", 200)

        with pytest.raises(VarianceExplanationRequired) as excinfo:
            register_service.close_register(ctx, register.id, actual_cash_cents=650)
        assert excinfo.value.details["expected_cash_cents"] == 700
        assert excinfo.value.details["variance_cents"] == -50
        assert reload(register).status == "OPEN"

        with pytest.raises(VarianceExplanationRequired):
            register_service.close_register(
                ctx, register.id, actual_cash_cents=650, variance_note="short change given"
            )

        closed = register_service.close_register(
            ctx,
            register.id,
            actual_cash_cents=650,
            variance_note="short change given",
            approval=ManagerApproval(user_id=manager.id, pin="2468"),
        )

        assert closed.status == "CLOSED"
        assert closed.closing_cash_cents == 700
        assert closed.actual_cash_cents == 650
        assert closed.variance_cents == -50
        assert closed.variance_authorized_by_user_id == manager.id
        assert closed.closed_by_user_id == ctx.actor_id

        daily = db.session.query(DailyClosure).filter_by(outlet_id=ctx.outlet_id, business_date=DAY).one()
        assert daily.register_id == register.id
        assert daily.variance_cents == -50
        assert daily.cash_sales_cents == 200
        assert daily.closed_at is not None

        monthly = db.session.query(MonthlySummary).filter_by(outlet_id=ctx.outlet_id, month="2026-03").one()
        assert monthly.total_sales_cents == 200
        assert monthly.last_refreshed_at is not None

    def test_variance_within_threshold_closes_without_note(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 500).register
        closed = register_service.close_register(ctx, register.id, actual_cash_cents=495)
        assert closed.variance_cents == -5
        assert closed.variance_note is None


class TestOpen:

    def test_first_register_expects_zero(self, db_session, ctx):
        result = register_service.open_register(ctx, DAY, 0)
        assert result.warning is None
        assert result.register.expected_opening_cents == 0
        assert result.register.opened_by_user_id == ctx.actor_id

    def test_opening_compared_with_previous_counted_close(self, db_session, ctx):
        first = register_service.open_register(ctx, DAY, 500).register
        register_service.close_register(ctx, first.id, actual_cash_cents=505)

        result = register_service.open_register(ctx, DAY + timedelta(days=1), 480, "float recount")
        assert result.register.expected_opening_cents == 505
        assert result.register.opening_variance_cents == -25
        assert result.register.opening_note == "float recount"
        assert "-25" in result.warning

    def test_same_date_twice_already_open(self, db_session, ctx):
        register_service.open_register(ctx, DAY, 0)
        with pytest.raises(AlreadyOpen):
            register_service.open_register(ctx, DAY, 0)

    def test_closed_date_cannot_be_reopened(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        register_service.close_register(ctx, register.id, actual_cash_cents=0)
        with pytest.raises(AlreadyOpen):
            register_service.open_register(ctx, DAY, 0)

    def test_previous_register_must_be_closed(self, db_session, ctx):
        register_service.open_register(ctx, DAY, 0)
        with pytest.raises(PreviousRegisterOpen):
            register_service.open_register(ctx, DAY + timedelta(days=1), 0)

    def test_single_open_register_rule_can_be_relaxed(self, db_session, app, ctx, monkeypatch):
        monkeypatch.setitem(app.config, "ENFORCE_SINGLE_OPEN_REGISTER", False)
        register_service.open_register(ctx, DAY, 0)
        result = register_service.open_register(ctx, DAY + timedelta(days=1), 0)
        assert result.register.status == "OPEN"

    def test_negative_opening_rejected(self, db_session, ctx):
        with pytest.raises(ValueError):
            register_service.open_register(ctx, DAY, -1)

    def test_outlet_of_another_tenant_not_found(self, db_session, ctx, other_tenant):
        foreign = RequestContext(tenant_id=other_tenant.id, outlet_id=ctx.outlet_id, actor_id=ctx.actor_id)
        with pytest.raises(NotFound):
            register_service.open_register(foreign, DAY, 0)


class TestTransactions:

    def test_expected_cash_counts_cash_movements(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 1000).register
        register_service.record_transaction(ctx, register.id, type="EXPENSE", amount_cents=300, category="milk")
        register_service.record_transaction(ctx, register.id, type="MANUAL", amount_cents=100, is_inflow=True)
        register_service.record_transaction(ctx, register.id, type="PAYOUT", amount_cents=50)
        # Card money never reaches the drawer
        register_service.record_transaction(ctx, register.id, type="SALE", amount_cents=400, payment_mode="CARD")

        register = reload(register)
        assert register.card_sales_cents == 400
        assert register_service.expected_cash(register) == 1000 - 300 + 100 - 50

        closed = register_service.close_register(ctx, register.id, actual_cash_cents=750)
        assert closed.variance_cents == 0
        daily = db.session.query(DailyClosure).filter_by(outlet_id=ctx.outlet_id, business_date=DAY).one()
        assert daily.total_expense_cents == 300

    def test_outflow_types_are_never_inflows(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 1000).register
        txn = register_service.record_transaction(
            ctx, register.id, type="WITHDRAWAL", amount_cents=100, is_inflow=True
        )
        assert txn.is_inflow is False

    def test_manual_requires_direction(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        with pytest.raises(ValueError):
            register_service.record_transaction(ctx, register.id, type="MANUAL", amount_cents=100)

    def test_amount_must_be_positive(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        with pytest.raises(ValueError):
            register_service.record_transaction(ctx, register.id, type="EXPENSE", amount_cents=0)

    def test_closed_register_rejects_transactions(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        register_service.close_register(ctx, register.id, actual_cash_cents=0)
        with pytest.raises(RegisterClosed):
            register_service.record_transaction(ctx, register.id, type="EXPENSE", amount_cents=100)
        assert db.session.query(RegisterTransaction).count() == 0

    def test_transactions_are_immutable(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        txn = register_service.record_transaction(ctx, register.id, type="EXPENSE", amount_cents=100)
        txn.amount_cents = 1
        with pytest.raises(InvalidState):
            db.session.flush()
        db.session.rollback()

    def test_list_transactions_filters(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        register_service.record_transaction(ctx, register.id, type="EXPENSE", amount_cents=100)
        register_service.record_transaction(ctx, register.id, type="SALE", amount_cents=200, payment_mode="UPI")

        expenses = register_service.list_transactions(ctx, register.id, type="EXPENSE")
        assert [t.amount_cents for t in expenses] == [100]
        upi = register_service.list_transactions(ctx, register.id, payment_mode="UPI")
        assert [t.type for t in upi] == ["SALE"]


class TestClose:

    def test_close_twice_already_closed(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        register_service.close_register(ctx, register.id, actual_cash_cents=0)
        with pytest.raises(AlreadyClosed):
            register_service.close_register(ctx, register.id, actual_cash_cents=0)

    def test_sales_breakdown_replaces_accumulated_figures(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 500).register
        _cash_sale(ctx, "pos-c1", 200)

        closed = register_service.close_register(
            ctx,
            register.id,
            actual_cash_cents=800,
            sales_breakdown={"cash": 300, "upi": 150},
        )
        assert closed.cash_sales_cents == 300
        assert closed.upi_sales_cents == 150
        assert closed.closing_cash_cents == 800
        assert closed.variance_cents == 0

    def test_unknown_breakdown_key_rejected(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        with pytest.raises(ValueError):
            register_service.close_register(ctx, register.id, actual_cash_cents=0, sales_breakdown={"cheque": 1})

    def test_wrong_pin_is_unauthorized_and_counted(self, db_session, ctx, manager, tight_threshold):
        register = register_service.open_register(ctx, DAY, 500).register
        with pytest.raises(Unauthorized):
            register_service.close_register(
                ctx,
                register.id,
                actual_cash_cents=0,
                variance_note="missing",
                approval=ManagerApproval(user_id=manager.id, pin="0000"),
            )
        assert reload(register).status == "OPEN"
        pin = db.session.query(UserPin).filter_by(user_id=manager.id).one()
        assert pin.failed_attempts == 1

    def test_pin_locks_after_repeated_failures(self, db_session, app, ctx, manager, tight_threshold):
        register = register_service.open_register(ctx, DAY, 500).register
        for _ in range(app.config["PIN_MAX_FAILED_ATTEMPTS"]):
            with pytest.raises(Unauthorized):
                register_service.close_register(
                    ctx, register.id, actual_cash_cents=0, variance_note="x",
                    approval=ManagerApproval(user_id=manager.id, pin="0000"),
                )

        # Even the right PIN is refused while locked
        with pytest.raises(Unauthorized):
            register_service.close_register(
                ctx, register.id, actual_cash_cents=0, variance_note="x",
                approval=ManagerApproval(user_id=manager.id, pin="2468"),
            )
        assert db.session.query(UserPin).filter_by(user_id=manager.id).one().locked_until is not None

    def test_staff_cannot_approve(self, db_session, ctx, staff, tight_threshold):
        register = register_service.open_register(ctx, DAY, 500).register
        with pytest.raises(Unauthorized):
            register_service.close_register(
                ctx, register.id, actual_cash_cents=0, variance_note="x",
                approval=ManagerApproval(user_id=staff.id, pin="1234"),
            )

    def test_manager_without_pin(self, db_session, ctx, tenant, outlet, tight_threshold):
        boss = User(tenant_id=tenant.id, outlet_id=outlet.id, name="No Pin", role="OWNER", is_active=True)
        db.session.add(boss)
        db.session.commit()
        register = register_service.open_register(ctx, DAY, 500).register
        with pytest.raises(PinNotConfigured):
            register_service.close_register(
                ctx, register.id, actual_cash_cents=0, variance_note="x",
                approval=ManagerApproval(user_id=boss.id, pin="1234"),
            )

    def test_injected_pin_verifier(self, db_session, ctx, manager, tight_threshold):
        calls = []

        def verifier(call_ctx, approval):
            calls.append(approval)
            return manager

        register = register_service.open_register(ctx, DAY, 500).register
        closed = register_service.close_register(
            ctx, register.id, actual_cash_cents=0, variance_note="count later",
            approval=ManagerApproval(user_id=manager.id, pin="9999"),
            pin_verifier=verifier,
        )
        assert calls == [ManagerApproval(user_id=manager.id, pin="9999")]
        assert closed.variance_authorized_by_user_id == manager.id

    def test_approval_ignored_within_threshold(self, db_session, ctx, manager):
        register = register_service.open_register(ctx, DAY, 500).register
        closed = register_service.close_register(
            ctx, register.id, actual_cash_cents=450, variance_note="rounding",
            approval=ManagerApproval(user_id=manager.id, pin="0000"),
        )
        assert closed.status == "CLOSED"
        assert closed.variance_cents == -50
        assert closed.variance_authorized_by_user_id is None
        pin = db.session.query(UserPin).filter_by(user_id=manager.id).one()
        assert pin.failed_attempts == 0

    def test_declared_cash_counts_toward_approval_check(self, db_session, ctx, manager, tight_threshold):
        calls = []

        def verifier(call_ctx, approval):
            calls.append(approval)
            return manager

        register = register_service.open_register(ctx, DAY, 500).register
        closed = register_service.close_register(
            ctx, register.id, actual_cash_cents=700, sales_breakdown={"cash": 200},
            variance_note="n/a", approval=ManagerApproval(user_id=manager.id, pin="9999"),
            pin_verifier=verifier,
        )
        assert calls == []
        assert closed.variance_cents == 0

    def test_sale_after_close_leaves_register_frozen(self, db_session, ctx):
        register = register_service.open_register(ctx, DAY, 0).register
        register_service.close_register(ctx, register.id, actual_cash_cents=0)

        _cash_sale(ctx, "pos-late", 200)
        assert reload(register).cash_sales_cents == 0
        daily = db.session.query(DailyClosure).filter_by(outlet_id=ctx.outlet_id, business_date=DAY).one()
        assert daily.cash_sales_cents == 200


class TestQueries:

    def test_summary_includes_expected_cash(self, db_session, ctx):
        register_service.open_register(ctx, DAY, 500)
        _cash_sale(ctx, "pos-q1", 200)
        summary = register_service.get_register_summary(ctx, DAY.isoformat())
        assert summary["expected_cash_cents"] == 700
        assert summary["cash_sales_cents"] == 200

    def test_missing_register_not_found(self, db_session, ctx):
        with pytest.raises(NotFound):
            register_service.get_register(ctx, DAY)

    def test_history_range(self, db_session, ctx):
        for offset in range(3):
            register = register_service.open_register(ctx, DAY + timedelta(days=offset), 0).register
            register_service.close_register(ctx, register.id, actual_cash_cents=0)

        history = register_service.get_register_history(ctx, DAY + timedelta(days=1), DAY + timedelta(days=2))
        assert [r.business_date for r in history] == [DAY + timedelta(days=1), DAY + timedelta(days=2)]

    def test_current_register(self, db_session, ctx):
        assert register_service.get_open_register(ctx) is None
        register = register_service.open_register(ctx, DAY, 0).register
        assert register_service.get_open_register(ctx).id == register.id
