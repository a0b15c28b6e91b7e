# Overview: Pytest coverage for the Flask CLI command groups.

from sqlalchemy import inspect

from invoicer.extensions import db
from invoicer.models import User


def test_users_create_and_list(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=[
        "users", "create",
        "--username", "carol",
        "--email", "carol@example.com",
        "--password", "Password123!",
    ])
    assert result.exit_code == 0, result.output
    assert "Created user: carol" in result.output

    listed = runner.invoke(args=["users", "list"])
    assert "carol@example.com" in listed.output


def test_users_create_rejects_weak_password(app, db_session):
    result = app.test_cli_runner().invoke(args=[
        "users", "create", "--username", "dave", "--email", "dave@example.com", "--password", "short",
    ])

    assert result.exit_code != 0
    assert db_session.query(User).filter_by(username="dave").count() == 0


def test_sequences_next_and_list(app, db_session, owner_a, current_year):
    runner = app.test_cli_runner()

    first = runner.invoke(args=["sequences", "next", "--owner-id", str(owner_a.id), "--type", "QTN"])
    second = runner.invoke(args=["sequences", "next", "--owner-id", str(owner_a.id), "--type", "QTN"])

    assert first.output.strip() == f"QTN-{current_year}-001"
    assert second.output.strip() == f"QTN-{current_year}-002"

    listed = runner.invoke(args=["sequences", "list", "--owner-id", str(owner_a.id)])
    assert f"QTN-{current_year}-002" in listed.output


def test_sequences_next_unknown_owner(app, db_session):
    result = app.test_cli_runner().invoke(args=["sequences", "next", "--owner-id", "999", "--type", "INV"])

    assert result.exit_code != 0
    assert "not found" in result.output


def test_sequences_list_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["sequences", "list"])
    assert "No counters found." in result.output


def test_init_db(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])

    assert result.exit_code == 0
    assert "sequence_counters" in inspect(db.engine).get_table_names()
