"""Tests for the monitoring run, the crisis rule, notifications and the scheduled pass."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest
import requests
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

import background
from background import (
    dispatch_alert,
    evaluate_crisis,
    is_crisis,
    monitor_active_brands,
    monitor_brand,
    negative_ratio,
)
from events import alert_feed
from models import Alert, Brand, Mention
from schemas import SentimentLabel

NEG = SentimentLabel.negative
POS = SentimentLabel.positive
NEU = SentimentLabel.neutral


def _count(db, model):
    return db.query(func.count(model.id)).scalar()


# ===================================================================
# Crisis rule
# ===================================================================


def test_negative_ratio():
    assert negative_ratio([]) == 0
    assert negative_ratio(["negative", "positive", "neutral"]) == pytest.approx(1 / 3)
    assert negative_ratio([NEG, NEG]) == 1


def test_exactly_half_negative_is_not_a_crisis():
    assert is_crisis([NEG, POS]) is False
    assert is_crisis([NEG, NEG, POS, NEU]) is False


def test_just_over_half_negative_is_a_crisis():
    assert is_crisis([NEG, NEG, POS]) is True
    assert is_crisis([NEG] * 51 + [POS] * 49) is True


def test_evaluate_crisis_half_creates_nothing(db, brand, make_source):
    batch = make_source(NEG, POS).fetch(brand.name)
    assert evaluate_crisis(db, brand.id, brand.name, batch) is None
    assert _count(db, Alert) == 0


def test_evaluate_crisis_creates_one_negative_spike(db, brand, negative_source):
    alert = evaluate_crisis(db, brand.id, brand.name, negative_source.fetch(brand.name))
    assert alert is not None
    assert _count(db, Alert) == 1
    assert alert.alert_type == "negative_spike"
    assert alert.message == "Acme experiencing increased negative sentiment"
    assert alert.sentiment_threshold == 50
    assert alert.is_sent is False


# ===================================================================
# Monitoring run
# ===================================================================


def test_monitor_brand_adds_three_mentions_no_alert(db, brand):
    result = monitor_brand(db, brand.id, brand.name)
    assert result.mentions_added == 3
    assert result.alert is None

    labels = sorted(m.sentiment_label for m in db.query(Mention).filter(Mention.brand_id == brand.id))
    assert labels == ["negative", "neutral", "positive"]
    assert _count(db, Alert) == 0


def test_monitor_brand_is_not_idempotent(db, brand):
    monitor_brand(db, brand.id, brand.name)
    monitor_brand(db, brand.id, brand.name)
    assert _count(db, Mention) == 6


def test_monitor_brand_evaluates_each_batch_alone(db, brand, make_source):
    # History is overwhelmingly negative, the new batch is not
    monitor_brand(db, brand.id, brand.name, make_source(NEG, NEG, NEG))
    result = monitor_brand(db, brand.id, brand.name, make_source(NEG, POS))
    assert result.alert is None
    assert _count(db, Alert) == 1


def test_monitor_brand_rolls_back_on_write_failure(db):
    with pytest.raises(IntegrityError):
        monitor_brand(db, 9999, "Ghost")
    assert _count(db, Mention) == 0
    assert _count(db, Alert) == 0


# ===================================================================
# Notifications
# ===================================================================


def _crisis_alert(db, brand, negative_source):
    return monitor_brand(db, brand.id, brand.name, negative_source).alert


def test_dispatch_without_channels_leaves_alert_pending(db, brand, negative_source):
    alert = _crisis_alert(db, brand, negative_source)
    assert dispatch_alert(db, alert) is False
    db.refresh(alert)
    assert alert.is_sent is False


def test_dispatch_to_slack_marks_sent(db, brand, negative_source, monkeypatch):
    monkeypatch.setattr(background.config, "SLACK_WEBHOOK_URL", "https://hooks.slack.test/x")
    alert = _crisis_alert(db, brand, negative_source)

    with patch("background.requests.post") as post:
        post.return_value = MagicMock(status_code=200)
        assert dispatch_alert(db, alert) is True

    post.assert_called_once()
    assert post.call_args.args[0] == "https://hooks.slack.test/x"
    assert "NEGATIVE_SPIKE" in post.call_args.kwargs["json"]["text"]
    db.refresh(alert)
    assert alert.is_sent is True
    assert alert.sent_at is not None


def test_dispatch_to_telegram_uses_brand_chat(db, brand, negative_source, monkeypatch):
    monkeypatch.setattr(background.config, "TELEGRAM_BOT_TOKEN", "123:abc")
    alert = _crisis_alert(db, brand, negative_source)

    with patch("background.requests.post") as post:
        assert dispatch_alert(db, alert) is True

    assert post.call_args.args[0] == "https://api.telegram.org/bot123:abc/sendMessage"
    assert post.call_args.kwargs["json"]["chat_id"] == "4242"


def test_dispatch_failure_is_logged_not_raised(db, brand, negative_source, monkeypatch):
    monkeypatch.setattr(background.config, "SLACK_WEBHOOK_URL", "https://hooks.slack.test/x")
    alert = _crisis_alert(db, brand, negative_source)

    with patch("background.requests.post", side_effect=requests.ConnectionError("down")):
        assert dispatch_alert(db, alert) is False

    db.refresh(alert)
    assert alert.is_sent is False


def test_dispatch_email_to_brand_contact(db, brand, negative_source, monkeypatch):
    monkeypatch.setattr(background.config, "EMAIL_HOST", "smtp.test")
    monkeypatch.setattr(background.config, "EMAIL_USER", "alerts@monitor.test")
    alert = _crisis_alert(db, brand, negative_source)

    with patch("background.smtplib.SMTP") as smtp:
        server = smtp.return_value.__enter__.return_value
        assert dispatch_alert(db, alert) is True

    smtp.assert_called_once_with("smtp.test", 587, timeout=10)
    sent = server.send_message.call_args.args[0]
    assert sent["To"] == "pr@acme.test"
    assert "Acme" in sent["Subject"]


def test_dispatch_email_failure(db, brand, negative_source, monkeypatch):
    monkeypatch.setattr(background.config, "EMAIL_HOST", "smtp.test")
    alert = _crisis_alert(db, brand, negative_source)

    with patch("background.smtplib.SMTP", side_effect=smtplib.SMTPConnectError(421, "busy")):
        assert dispatch_alert(db, alert) is False


# ===================================================================
# Scheduled pass
# ===================================================================


def test_monitor_active_brands_skips_inactive(db):
    db.add_all([Brand(name="Acme"), Brand(name="Dormant", is_active=False)])
    db.commit()

    assert monitor_active_brands() == 3
    rows = db.query(Brand.name, func.count(Mention.id)).outerjoin(Mention).group_by(Brand.name).all()
    assert dict(rows) == {"Acme": 3, "Dormant": 0}


def test_monitor_active_brands_publishes_alerts(db, brand, negative_source):
    received = []
    alert_feed.subscribe(received.append)
    try:
        monitor_active_brands(negative_source)
    finally:
        alert_feed.unsubscribe(received.append)
    assert len(received) == 1
    assert received[0].brand_id == brand.id
