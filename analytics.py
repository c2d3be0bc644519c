"""Aggregation formulas shared by the analytics and reports endpoints."""

from typing import Iterable, Sequence

from schemas import ReportRow, SentimentBreakdown, SentimentLabel

FAVORABLE_PCT = 60
UNFAVORABLE_PCT = 40


def sentiment_percentage(count: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(count / total * 100, 1)


def average_score(scores: Sequence[float]) -> float:
    if not scores:
        return 0.0
    return sum(scores) / len(scores)


def count_labels(labels: Iterable[str]) -> dict:
    counts = {label.value: 0 for label in SentimentLabel}
    for label in labels:
        if label in counts:
            counts[label] += 1
    return counts


def breakdown(mentions) -> SentimentBreakdown:
    """Summarize (label, score) pairs or Mention rows into counts and percentages."""
    labels = []
    scores = []
    for m in mentions:
        labels.append(m.sentiment_label)
        scores.append(m.sentiment_score or 0)
    counts = count_labels(labels)
    total = len(labels)
    return SentimentBreakdown(
        total_mentions=total,
        positive_mentions=counts["positive"],
        negative_mentions=counts["negative"],
        neutral_mentions=counts["neutral"],
        positive_pct=sentiment_percentage(counts["positive"], total),
        negative_pct=sentiment_percentage(counts["negative"], total),
        neutral_pct=sentiment_percentage(counts["neutral"], total),
        avg_sentiment=average_score(scores),
    )


def health_badge(positive_pct: float) -> str:
    if positive_pct > FAVORABLE_PCT:
        return "favorable"
    if positive_pct < UNFAVORABLE_PCT:
        return "unfavorable"
    return "neutral"


def brand_sentiment_label(positive: int, total: int) -> str:
    if total == 0:
        return "mixed"
    ratio = positive / total
    if ratio > 0.6:
        return "positive"
    if ratio < 0.4:
        return "negative"
    return "mixed"


def sentiment_trend(avg_score: float) -> str:
    if avg_score > 0.6:
        return "Positive"
    if avg_score < 0.4:
        return "Negative"
    return "Neutral"


def build_snapshot(brand_name: str, mentions, days: int) -> ReportRow:
    b = breakdown(mentions)
    return ReportRow(
        brand=brand_name,
        total_mentions=b.total_mentions,
        positive_mentions=b.positive_mentions,
        negative_mentions=b.negative_mentions,
        neutral_mentions=b.neutral_mentions,
        avg_sentiment=b.avg_sentiment,
        period=f"{days} days",
    )
