"""
CLI command tests (flask submissions ...).
"""

import json


def test_list_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["submissions", "list"])
    assert result.exit_code == 0
    assert "No submissions found." in result.output


def test_list_and_timeline(app, submission, fill_forms):
    fill_forms(submission.id)
    runner = app.test_cli_runner()

    listed = runner.invoke(args=["submissions", "list", "--status", "pending_admin_review"])
    assert listed.exit_code == 0
    assert "forms=3/3" in listed.output

    timeline = runner.invoke(args=["submissions", "timeline", str(submission.id), "--json"])
    assert timeline.exit_code == 0
    assert json.loads(timeline.output)["progress_percentage"] == 25


def test_timeline_unknown_submission(app, db_session):
    result = app.test_cli_runner().invoke(args=["submissions", "timeline", "777"])
    assert result.exit_code != 0
    assert "not found" in result.output


def test_stats(app, submission, advance):
    advance(submission.id, "approved")
    result = app.test_cli_runner().invoke(args=["submissions", "stats"])
    assert result.exit_code == 0
    assert json.loads(result.output)["completed"] == 1


def test_reset_db_requires_confirmation(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "reset-db"])
    assert result.exit_code == 1
