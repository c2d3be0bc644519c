from sqlalchemy import Column, Integer, String, Float, DateTime, Boolean, Text, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from database import Base

class Brand(Base):
    __tablename__ = "brands"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False, index=True)
    description = Column(Text)
    is_active = Column(Boolean, default=True)
    twitter_handle = Column(String, nullable=True)
    notification_email = Column(String, nullable=True)
    telegram_chat_id = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    mentions = relationship("Mention", back_populates="brand")
    alerts = relationship("Alert", back_populates="brand")

class Mention(Base):
    __tablename__ = "brand_mentions"

    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False, index=True)
    mention_text = Column(Text, nullable=False)
    platform = Column(String, nullable=False, default="twitter")
    sentiment_label = Column(String, nullable=False)  # positive, neutral, negative
    sentiment_score = Column(Float, nullable=False)  # 0..1
    confidence = Column(Float, nullable=False)
    author_username = Column(String, nullable=True)
    url = Column(String, nullable=True)
    mention_date = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    brand = relationship("Brand", back_populates="mentions")

class Alert(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False, index=True)
    alert_type = Column(String, nullable=False)  # crisis, negative_spike, generic
    message = Column(Text, nullable=False)
    sentiment_threshold = Column(Float, nullable=True)
    is_sent = Column(Boolean, default=False)
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    brand = relationship("Brand", back_populates="alerts")

class MonitoringSession(Base):
    __tablename__ = "monitoring_sessions"

    id = Column(Integer, primary_key=True, index=True)
    brand_id = Column(Integer, ForeignKey("brands.id"), nullable=False, index=True)
    status = Column(String, default="active")
    started_at = Column(DateTime(timezone=True), server_default=func.now())
