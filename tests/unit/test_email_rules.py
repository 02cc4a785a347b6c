from datetime import UTC, datetime

import pytest

from centri.features.integrations.domain.models import NormalizedEmail
from centri.features.updates.domain.email_rules import (
    clean_newsletter_body,
    email_to_candidate,
    mail_severity,
    sender_name,
)

RECEIVED = datetime(2026, 10, 18, 9, 30, tzinfo=UTC)


def _email(subject, sender="Dana Lee <dana@acme.com>", unread=True, unsubscribe=False, snippet="hi"):
    return NormalizedEmail(
        message_id="msg-1",
        subject=subject,
        sender=sender,
        received_at=RECEIVED,
        snippet=snippet,
        thread_id="thread-1",
        labels=["INBOX", "UNREAD"] if unread else ["INBOX"],
        has_list_unsubscribe=unsubscribe,
    )


@pytest.mark.parametrize(
    "subject, severity",
    [
        ("URGENT: server down", "urgent"),
        ("Action required on your account", "urgent"),
        ("Please approve the contract", "important"),
        ("Lunch?", "info"),
    ],
)
def test_mail_severity(subject, severity):
    assert mail_severity(subject) == severity


def test_unread_human_mail_becomes_email_item():
    candidate = email_to_candidate(_email("Contract for review"))

    assert candidate.type == "email"
    assert candidate.severity == "important"
    assert candidate.source == "gmail"
    assert candidate.external_id == "msg-1"
    assert candidate.url.endswith("#inbox/msg-1")
    assert candidate.occurred_at == RECEIVED


def test_read_mail_is_skipped():
    assert email_to_candidate(_email("Contract for review", unread=False)) is None


def test_automated_sender_skipped_unless_urgent():
    sender = "Billing <noreply@vendor.com>"
    assert email_to_candidate(_email("Your receipt", sender=sender)) is None

    urgent = email_to_candidate(_email("Urgent: card declined", sender=sender))
    assert urgent.severity == "urgent"


def test_list_unsubscribe_marks_newsletter_even_when_read():
    candidate = email_to_candidate(
        _email("Ideas for Q4", unread=False, unsubscribe=True, snippet="View in browser Big news")
    )

    assert candidate.type == "newsletter"
    assert candidate.severity == "info"
    assert candidate.body == "Big news"
    assert candidate.metadata["sender_name"] == "Dana Lee"


def test_newsletter_subject_heuristic():
    candidate = email_to_candidate(_email("The Weekly Digest #42"))
    assert candidate.type == "newsletter"


def test_clean_newsletter_body_truncates_to_150_chars():
    body = clean_newsletter_body("Unsubscribe " + "a" * 400)
    assert len(body) == 150
    assert body.endswith("...")
    assert "Unsubscribe" not in body


def test_sender_name_falls_back_to_address():
    assert sender_name('"Sam Ortiz" <sam@x.io>') == "Sam Ortiz"
    assert sender_name("<sam@x.io>") == "<sam@x.io>"
