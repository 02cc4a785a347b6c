"""
Mail triage rules shared by the sync pipeline and the feed's mail collector.

Newsletters go to their own list; other mail surfaces only when unread and
either urgent or from a human sender.
"""

import re

from centri.features.integrations.domain.models import NormalizedEmail
from centri.features.updates.domain.models import (
    IMPORTANT,
    INFO,
    TYPE_NEWSLETTER,
    URGENT,
    UpdateCandidate,
)

MAIL_SOURCE = "gmail"
TYPE_EMAIL = "email"

NEWSLETTER_SUBJECT = re.compile(r"newsletter|digest|weekly|roundup|edition|update|launch|trends", re.I)
NEWSLETTER_SENDER_MARKERS = ("substack", "linkedin", "news")
URGENT_SUBJECT = re.compile(r"urgent|asap|immediate|action required|important|deadline", re.I)
IMPORTANT_SUBJECT = re.compile(r"review|approve|contract|invoice|meeting|schedule", re.I)
AUTOMATED_SENDER_MARKERS = ("noreply", "no-reply")
NEWSLETTER_CLUTTER = re.compile(r"View in browser|Unsubscribe|Click here|trouble viewing", re.I)
NEWSLETTER_BODY_MAX = 150


def mail_url(message_id: str) -> str:
    return f"https://mail.google.com/mail/u/0/#inbox/{message_id}"


def is_newsletter(email: NormalizedEmail) -> bool:
    sender = email.sender.lower()
    return (
        email.has_list_unsubscribe
        or bool(NEWSLETTER_SUBJECT.search(email.subject))
        or any(marker in sender for marker in NEWSLETTER_SENDER_MARKERS)
    )


def is_automated_sender(sender: str) -> bool:
    lowered = sender.lower()
    return any(marker in lowered for marker in AUTOMATED_SENDER_MARKERS)


def mail_severity(subject: str) -> str:
    if URGENT_SUBJECT.search(subject):
        return URGENT
    if IMPORTANT_SUBJECT.search(subject):
        return IMPORTANT
    return INFO


def clean_newsletter_body(text: str) -> str:
    """Drop boilerplate links and cap the snippet length."""
    cleaned = " ".join(NEWSLETTER_CLUTTER.sub("", text or "").split())
    if len(cleaned) > NEWSLETTER_BODY_MAX:
        cleaned = cleaned[: NEWSLETTER_BODY_MAX - 3] + "..."
    return cleaned


def sender_name(sender: str) -> str:
    return sender.split("<")[0].replace('"', "").strip() or sender


def email_to_candidate(email: NormalizedEmail) -> UpdateCandidate | None:
    """
    Map one message to a feed candidate, or None when it should stay out of the feed.
    """
    if is_newsletter(email):
        return UpdateCandidate(
            source=MAIL_SOURCE,
            type=TYPE_NEWSLETTER,
            severity=INFO,
            title=email.subject,
            body=clean_newsletter_body(email.snippet),
            occurred_at=email.received_at,
            external_id=email.message_id,
            url=mail_url(email.message_id),
            metadata={
                "from": email.sender,
                "sender_name": sender_name(email.sender),
                "original_snippet": email.snippet,
            },
        )

    is_urgent = bool(URGENT_SUBJECT.search(email.subject))
    if not email.is_unread or not (is_urgent or not is_automated_sender(email.sender)):
        return None

    return UpdateCandidate(
        source=MAIL_SOURCE,
        type=TYPE_EMAIL,
        severity=mail_severity(email.subject),
        title=email.subject,
        body=email.snippet,
        occurred_at=email.received_at,
        external_id=email.message_id,
        url=mail_url(email.message_id),
        metadata={"labels": email.labels, "from": email.sender, "thread_id": email.thread_id},
    )
