from enum import Enum
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Optional, List

class SentimentLabel(str, Enum):
    positive = "positive"
    neutral = "neutral"
    negative = "negative"

class AlertType(str, Enum):
    crisis = "crisis"
    negative_spike = "negative_spike"
    generic = "generic"

class ExportFormat(str, Enum):
    csv = "csv"
    json = "json"

# Brands

class BrandSearch(BaseModel):
    query: str = Field(min_length=1)

class BrandBase(BaseModel):
    name: str
    description: Optional[str] = None
    is_active: bool = True
    twitter_handle: Optional[str] = None
    notification_email: Optional[str] = None
    telegram_chat_id: Optional[str] = None

class BrandCreate(BrandBase):
    pass

class Brand(BrandBase):
    id: int
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class BrandSummary(BaseModel):
    id: int
    name: str
    sentiment_label: str  # positive, negative, mixed
    mention_count: int

# Mentions

class MentionDraft(BaseModel):
    """A mention produced by a MentionSource, not yet persisted."""
    mention_text: str
    platform: str = "twitter"
    sentiment_label: SentimentLabel
    sentiment_score: float = Field(ge=0, le=1)
    confidence: float = Field(ge=0, le=1)
    author_username: Optional[str] = None
    url: Optional[str] = None

class Mention(BaseModel):
    id: int
    brand_id: int
    mention_text: str
    platform: str
    sentiment_label: SentimentLabel
    sentiment_score: float
    confidence: float
    author_username: Optional[str]
    url: Optional[str]
    mention_date: datetime

    class Config:
        from_attributes = True

# Monitoring

class MonitorRequest(BaseModel):
    brand_id: int = Field(alias="brandId")
    brand_name: str = Field(alias="brandName", min_length=1)

    class Config:
        populate_by_name = True

class MonitorResponse(BaseModel):
    success: bool = True
    mentions_added: int = Field(alias="mentionsAdded")

    class Config:
        populate_by_name = True

class SearchResult(BaseModel):
    brand: Brand
    created: bool
    mentions_added: int
    alert_created: bool

# Alerts

class AlertBase(BaseModel):
    brand_id: int
    alert_type: AlertType
    message: str
    sentiment_threshold: Optional[float] = None

class AlertCreate(AlertBase):
    pass

class Alert(AlertBase):
    id: int
    is_sent: bool
    sent_at: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True

class AlertWithBrand(Alert):
    brand_name: str

class AlertStats(BaseModel):
    pending: int
    sent: int

# Analytics and reports

class SentimentBreakdown(BaseModel):
    total_mentions: int
    positive_mentions: int
    negative_mentions: int
    neutral_mentions: int
    positive_pct: float
    negative_pct: float
    neutral_pct: float
    avg_sentiment: float

class TopBrand(BaseModel):
    id: int
    name: str
    mention_count: int
    positive_mentions: int
    negative_mentions: int
    positive_pct: float
    badge: str  # favorable, neutral, unfavorable

class AnalyticsOverview(BaseModel):
    days: int
    breakdown: SentimentBreakdown
    top_brands: List[TopBrand]
    recent_alerts: List[AlertWithBrand]

class ReportRow(BaseModel):
    brand: str
    total_mentions: int
    positive_mentions: int
    negative_mentions: int
    neutral_mentions: int
    avg_sentiment: float
    period: str

class ReportCard(ReportRow):
    positive_pct: float
    negative_pct: float
    trend: str  # Positive, Negative, Neutral
