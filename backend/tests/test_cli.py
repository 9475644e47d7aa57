# Overview: Pytest coverage for the Flask CLI command groups.

from sqlalchemy import update

from micropos.models import CashSession, Organization, Product, Warehouse
from micropos.services import cash_session_service as css
from micropos.services import products_service as ps


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["system", "init", "--org", "Corner Shop", "--currency", "eur"])
    assert first.exit_code == 0, first.output
    assert "Created organization: Corner Shop" in first.output

    second = runner.invoke(args=["system", "init", "--org", "Corner Shop"])
    assert second.exit_code == 0, second.output
    assert "Using existing organization" in second.output
    assert "Using existing warehouse" in second.output

    org = db_session.query(Organization).filter_by(name="Corner Shop").one()
    assert org.currency == "EUR"
    assert db_session.query(Warehouse).filter_by(org_id=org.id).count() == 1


def test_reset_db_requires_confirmation(app, db_session, org):
    result = app.test_cli_runner().invoke(args=["system", "reset-db"], input="n\n")
    assert result.exit_code != 0
    assert db_session.get(Organization, org.id) is not None


def test_open_list_and_close_session(app, db_session, org):
    runner = app.test_cli_runner()

    opened = runner.invoke(args=["sessions", "open", "--user", "cashier-1", "--opening-cents", "10000"])
    assert opened.exit_code == 0, opened.output
    session = css.get_current_session(org.id)
    assert session is not None
    assert session.opening_amount_cents == 10000

    again = runner.invoke(args=["sessions", "open", "--user", "cashier-2"])
    assert again.exit_code == 1
    assert "already" in again.output.lower()

    listed = runner.invoke(args=["sessions", "list", "--status", "OPEN"])
    assert session.id in listed.output

    closed = runner.invoke(args=["sessions", "close", session.id, "--counted-cents", "9900", "--notes", "short"])
    assert closed.exit_code == 0, closed.output
    assert "Variance:  -100" in closed.output
    assert css.get_current_session(org.id) is None


def test_org_required_when_ambiguous(app, db_session, org, other_org):
    result = app.test_cli_runner().invoke(args=["sessions", "open", "--user", "cashier-1"])
    assert result.exit_code == 1
    assert "--org-id" in result.output

    explicit = app.test_cli_runner().invoke(args=["sessions", "open", "--org-id", other_org.id, "--user", "cashier-1"])
    assert explicit.exit_code == 0, explicit.output
    assert css.get_current_session(other_org.id) is not None


def test_audit_stock_exit_codes(app, db_session, org):
    runner = app.test_cli_runner()
    product = ps.create_product(org.id, {"name": "Tea"})

    clean = runner.invoke(args=["ledger", "audit-stock"])
    assert clean.exit_code == 0
    assert "PASS" in clean.output

    db_session.execute(update(Product).where(Product.id == product.id).values(stock=3))
    db_session.commit()

    drift = runner.invoke(args=["ledger", "audit-stock"])
    assert drift.exit_code == 1
    assert "drift=3" in drift.output


def test_audit_sessions_exit_codes(app, db_session, org):
    session = css.open_cash_session(org.id, "cashier-1", 500)
    css.close_cash_session(session.id, 500)
    runner = app.test_cli_runner()

    assert runner.invoke(args=["ledger", "audit-sessions"]).exit_code == 0

    db_session.execute(update(CashSession).where(CashSession.id == session.id).values(variance_cents=42))
    db_session.commit()
    assert runner.invoke(args=["ledger", "audit-sessions"]).exit_code == 1


def test_outbox_status(app, db_session, org):
    ps.create_product(org.id, {"name": "Tea"})
    result = app.test_cli_runner().invoke(args=["outbox", "status"])
    assert result.exit_code == 0
    assert "PENDING  1" in result.output
