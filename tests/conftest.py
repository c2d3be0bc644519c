import os

# Configure before the app modules read the environment
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["MONITOR_INTERVAL_SECONDS"] = "0"
for _key in ("SLACK_WEBHOOK_URL", "EMAIL_HOST", "EMAIL_USER", "EMAIL_PASS", "TELEGRAM_BOT_TOKEN"):
    os.environ[_key] = ""

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database import Base, SessionLocal, engine  # noqa: E402
from main import app  # noqa: E402
from models import Brand  # noqa: E402
from schemas import MentionDraft, SentimentLabel  # noqa: E402


class FixedMentionSource:
    """Returns one mention per label given, for driving the crisis rule."""

    platform = "test"

    def __init__(self, *labels):
        self.labels = labels

    def fetch(self, brand_name):
        return [
            MentionDraft(
                mention_text=f"{brand_name} mention {i}",
                platform=self.platform,
                sentiment_label=label,
                sentiment_score=0.1 if label == SentimentLabel.negative else 0.7,
                confidence=0.9,
                author_username=f"tester{i}",
            )
            for i, label in enumerate(self.labels)
        ]


@pytest.fixture(autouse=True)
def setup_db():
    """Create all tables before each test and drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def brand(db):
    b = Brand(name="Acme", notification_email="pr@acme.test", telegram_chat_id="4242")
    db.add(b)
    db.commit()
    db.refresh(b)
    return b


@pytest.fixture
def negative_source():
    return FixedMentionSource(SentimentLabel.negative, SentimentLabel.negative, SentimentLabel.positive)


@pytest.fixture
def make_source():
    return FixedMentionSource
