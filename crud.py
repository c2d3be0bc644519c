from sqlalchemy.orm import Session, joinedload
from sqlalchemy import func
from models import Alert, Brand, Mention, MonitoringSession
from schemas import AlertCreate, BrandCreate, MentionDraft
import schemas
import analytics
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

REPORT_WINDOWS = (1, 7, 30, 90)
TOP_BRANDS_LIMIT = 6
RECENT_ALERTS_LIMIT = 5

def window_start(days: int) -> datetime:
    return datetime.now(timezone.utc) - timedelta(days=days)

# Brands

def get_brand(db: Session, brand_id: int):
    return db.query(Brand).filter(Brand.id == brand_id).first()

def find_brand_by_name(db: Session, name: str):
    # Fold both sides in the database so non-ASCII names match themselves
    # Oldest row wins if concurrent searches created duplicates
    return (
        db.query(Brand)
        .filter(func.lower(Brand.name) == func.lower(name.strip()))
        .order_by(Brand.id)
        .first()
    )

def create_brand(db: Session, brand: BrandCreate):
    db_brand = Brand(**brand.model_dump())
    db.add(db_brand)
    db.commit()
    db.refresh(db_brand)
    return db_brand

def lookup_or_create_brand(db: Session, name: str):
    """Return (brand, created). Not atomic: two concurrent searches may both create."""
    name = name.strip()
    brand = find_brand_by_name(db, name)
    if brand:
        brand.updated_at = func.now()
        db.commit()
        db.refresh(brand)
        return brand, False
    brand = create_brand(db, BrandCreate(name=name, description=f"Brand monitoring for {name}"))
    return brand, True

def get_active_brands(db: Session):
    return db.query(Brand).filter(Brand.is_active.is_(True)).order_by(Brand.id).all()

def start_monitoring_session(db: Session, brand_id: int):
    session = MonitoringSession(brand_id=brand_id, status="active")
    db.add(session)
    db.commit()
    db.refresh(session)
    return session

# Mentions

def create_mentions(db: Session, brand_id: int, drafts: Sequence[MentionDraft], commit: bool = True):
    rows = [Mention(brand_id=brand_id, **d.model_dump(mode="json")) for d in drafts]
    db.add_all(rows)
    if commit:
        db.commit()
    else:
        db.flush()
    return rows

def get_mentions(db: Session, days: Optional[int] = None, brand_id: Optional[int] = None, limit: Optional[int] = None):
    query = db.query(Mention).order_by(Mention.mention_date.desc(), Mention.id.desc())
    if days:
        query = query.filter(Mention.mention_date >= window_start(days))
    if brand_id is not None:
        query = query.filter(Mention.brand_id == brand_id)
    if limit:
        query = query.limit(limit)
    return query.all()

# Alerts

def create_alert(db: Session, alert: AlertCreate, commit: bool = True):
    db_alert = Alert(**alert.model_dump(mode="json"))
    db.add(db_alert)
    if commit:
        db.commit()
        db.refresh(db_alert)
    else:
        db.flush()
    return db_alert

def get_alert(db: Session, alert_id: int):
    return db.query(Alert).filter(Alert.id == alert_id).first()

def alert_with_brand(alert: Alert) -> schemas.AlertWithBrand:
    data = schemas.Alert.model_validate(alert).model_dump()
    return schemas.AlertWithBrand(**data, brand_name=alert.brand.name)

def get_alerts(db: Session, limit: Optional[int] = None, brand_id: Optional[int] = None) -> List[schemas.AlertWithBrand]:
    query = db.query(Alert).options(joinedload(Alert.brand)).order_by(Alert.created_at.desc(), Alert.id.desc())
    if brand_id is not None:
        query = query.filter(Alert.brand_id == brand_id)
    if limit:
        query = query.limit(limit)
    return [alert_with_brand(a) for a in query.all()]

def get_alert_stats(db: Session) -> schemas.AlertStats:
    sent = db.query(func.count(Alert.id)).filter(Alert.is_sent.is_(True)).scalar() or 0
    total = db.query(func.count(Alert.id)).scalar() or 0
    return schemas.AlertStats(pending=total - sent, sent=sent)

def mark_alert_sent(db: Session, alert_id: int):
    db_alert = get_alert(db, alert_id)
    if db_alert:
        # is_sent only ever goes false -> true; sent_at tracks the latest delivery
        db_alert.is_sent = True
        db_alert.sent_at = datetime.now(timezone.utc)
        db.commit()
        db.refresh(db_alert)
    return db_alert

# Aggregation

def get_brand_summaries(db: Session) -> List[schemas.BrandSummary]:
    summaries = []
    for brand in get_active_brands(db):
        labels = [row.sentiment_label for row in db.query(Mention.sentiment_label).filter(Mention.brand_id == brand.id)]
        counts = analytics.count_labels(labels)
        summaries.append(schemas.BrandSummary(
            id=brand.id,
            name=brand.name,
            sentiment_label=analytics.brand_sentiment_label(counts["positive"], len(labels)),
            mention_count=len(labels),
        ))
    return summaries

def get_analytics_overview(db: Session, days: int = 7, brand_id: Optional[int] = None) -> schemas.AnalyticsOverview:
    mentions = get_mentions(db, days=days, brand_id=brand_id)

    by_brand = {}
    for m in mentions:
        by_brand.setdefault(m.brand_id, []).append(m)

    brands = get_active_brands(db)
    if brand_id is not None:
        brands = [b for b in brands if b.id == brand_id]

    top_brands = []
    for brand in brands:
        b = analytics.breakdown(by_brand.get(brand.id, []))
        top_brands.append(schemas.TopBrand(
            id=brand.id,
            name=brand.name,
            mention_count=b.total_mentions,
            positive_mentions=b.positive_mentions,
            negative_mentions=b.negative_mentions,
            positive_pct=b.positive_pct,
            badge=analytics.health_badge(b.positive_pct),
        ))
    top_brands.sort(key=lambda t: t.mention_count, reverse=True)

    return schemas.AnalyticsOverview(
        days=days,
        breakdown=analytics.breakdown(mentions),
        top_brands=top_brands[:TOP_BRANDS_LIMIT],
        recent_alerts=get_alerts(db, limit=RECENT_ALERTS_LIMIT, brand_id=brand_id),
    )

def get_reports(db: Session, days: int = 7) -> List[schemas.ReportRow]:
    start = window_start(days)
    reports = []
    for brand in get_active_brands(db):
        mentions = (
            db.query(Mention.sentiment_label, Mention.sentiment_score)
            .filter(Mention.brand_id == brand.id, Mention.mention_date >= start)
            .all()
        )
        reports.append(analytics.build_snapshot(brand.name, mentions, days))
    reports.sort(key=lambda r: r.total_mentions, reverse=True)
    return reports

def report_cards(rows: Sequence[schemas.ReportRow]) -> List[schemas.ReportCard]:
    return [
        schemas.ReportCard(
            **r.model_dump(),
            positive_pct=analytics.sentiment_percentage(r.positive_mentions, r.total_mentions),
            negative_pct=analytics.sentiment_percentage(r.negative_mentions, r.total_mentions),
            trend=analytics.sentiment_trend(r.avg_sentiment),
        )
        for r in rows
    ]
