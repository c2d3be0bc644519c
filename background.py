import logging
import smtplib
from dataclasses import dataclass
from email.mime.text import MIMEText
from typing import Iterable, List, Optional

import requests
from apscheduler.schedulers.background import BackgroundScheduler
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from crud import create_alert, create_mentions, get_active_brands, mark_alert_sent
from database import SessionLocal
from events import alert_feed
from models import Alert
from schemas import AlertCreate, AlertType, MentionDraft, SentimentLabel
from sources import MentionSource, MockMentionSource

logger = logging.getLogger(__name__)

# A batch is a crisis when strictly more than half of it is negative
CRISIS_NEGATIVE_RATIO = 0.5
CRISIS_THRESHOLD_PCT = 50

TELEGRAM_API = "https://api.telegram.org/bot{token}/sendMessage"

default_source = MockMentionSource()


@dataclass
class MonitorResult:
    mentions_added: int
    alert: Optional[Alert] = None


def negative_ratio(labels: Iterable[str]) -> float:
    labels = list(labels)
    if not labels:
        return 0.0
    negatives = sum(1 for label in labels if label == SentimentLabel.negative)
    return negatives / len(labels)


def is_crisis(labels: Iterable[str]) -> bool:
    return negative_ratio(labels) > CRISIS_NEGATIVE_RATIO


def evaluate_crisis(db: Session, brand_id: int, brand_name: str, batch: List[MentionDraft], commit: bool = True):
    """Create one negative_spike alert if ``batch`` crosses the crisis ratio.

    Only the batch is considered, never the brand's earlier mentions.
    """
    if not is_crisis(m.sentiment_label for m in batch):
        return None
    alert = AlertCreate(
        brand_id=brand_id,
        alert_type=AlertType.negative_spike,
        message=f"{brand_name} experiencing increased negative sentiment",
        sentiment_threshold=CRISIS_THRESHOLD_PCT,
    )
    return create_alert(db, alert, commit=commit)


def monitor_brand(db: Session, brand_id: int, brand_name: str, source: Optional[MentionSource] = None) -> MonitorResult:
    """Ingest one batch of mentions for a brand and run the crisis rule on it."""
    source = source or default_source
    batch = source.fetch(brand_name)
    try:
        create_mentions(db, brand_id, batch, commit=False)
        alert = evaluate_crisis(db, brand_id, brand_name, batch, commit=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    if alert is not None:
        db.refresh(alert)
        logger.warning("Crisis alert %s for brand %s (%s)", alert.id, brand_id, brand_name)
    logger.info("Added %d %s mentions for brand %s", len(batch), source.platform, brand_name)
    return MonitorResult(mentions_added=len(batch), alert=alert)


# Notifications

def alert_text(alert: Alert) -> str:
    return f"🚨 {alert.alert_type.upper()}: {alert.message}"


def notify_slack(alert: Alert) -> bool:
    webhook = config.SLACK_WEBHOOK_URL
    if not webhook:
        return False
    try:
        resp = requests.post(webhook, json={"text": alert_text(alert)}, timeout=10)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error("Slack notification failed for alert %s: %s", alert.id, e)
        return False
    return True


def notify_email(alert: Alert) -> bool:
    recipient = alert.brand.notification_email
    if not config.EMAIL_HOST or not recipient:
        return False
    msg = MIMEText(f"Alert: {alert.message}\nThreshold: {alert.sentiment_threshold}%")
    msg['Subject'] = f"Brand Sentiment Alert: {alert.brand.name}"
    msg['From'] = config.EMAIL_USER
    msg['To'] = recipient
    try:
        with smtplib.SMTP(config.EMAIL_HOST, config.EMAIL_PORT, timeout=10) as server:
            server.starttls()
            if config.EMAIL_USER:
                server.login(config.EMAIL_USER, config.EMAIL_PASS)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("Email notification failed for alert %s: %s", alert.id, e)
        return False
    return True


def notify_telegram(alert: Alert) -> bool:
    chat_id = alert.brand.telegram_chat_id
    if not config.TELEGRAM_BOT_TOKEN or not chat_id:
        return False
    url = TELEGRAM_API.format(token=config.TELEGRAM_BOT_TOKEN)
    try:
        resp = requests.post(url, json={"chat_id": chat_id, "text": alert_text(alert)}, timeout=15)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error("Telegram notification failed for alert %s: %s", alert.id, e)
        return False
    return True


def dispatch_alert(db: Session, alert: Alert) -> bool:
    """Send ``alert`` to every configured channel; mark it sent if any delivered."""
    results = [notify_slack(alert), notify_email(alert), notify_telegram(alert)]
    if not any(results):
        logger.info("Alert %s not delivered to any channel", alert.id)
        return False
    mark_alert_sent(db, alert.id)
    return True


def handle_new_alert(db: Session, alert: Alert) -> None:
    alert_feed.publish(alert)
    dispatch_alert(db, alert)


# Scheduled monitoring

def monitor_active_brands(source: Optional[MentionSource] = None) -> int:
    """One monitoring pass over every active brand; returns mentions added."""
    db = SessionLocal()
    added = 0
    try:
        brands = [(b.id, b.name) for b in get_active_brands(db)]
        for brand_id, name in brands:
            try:
                result = monitor_brand(db, brand_id, name, source)
            except SQLAlchemyError:
                logger.exception("Scheduled monitoring failed for brand %s", name)
                continue
            added += result.mentions_added
            if result.alert is not None:
                handle_new_alert(db, result.alert)
    finally:
        db.close()
    return added


scheduler: Optional[BackgroundScheduler] = None


def start_scheduler(interval_seconds: int) -> BackgroundScheduler:
    global scheduler
    scheduler = BackgroundScheduler()
    scheduler.add_job(monitor_active_brands, 'interval', seconds=interval_seconds, id="monitor_active_brands")
    scheduler.start()
    logger.info("Background monitoring every %ds", interval_seconds)
    return scheduler


def stop_scheduler() -> None:
    global scheduler
    if scheduler is not None:
        scheduler.shutdown(wait=False)
        scheduler = None
