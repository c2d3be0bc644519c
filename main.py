import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Depends, WebSocket, WebSocketDisconnect, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

import config
from logging_config import setup_logging
from database import engine, get_db
from models import Base
import schemas
from schemas import (
    AlertStats, AlertWithBrand, AnalyticsOverview, BrandSearch, BrandSummary, ExportFormat,
    Mention, MonitorRequest, MonitorResponse, ReportCard, SearchResult,
)
from crud import (
    REPORT_WINDOWS, alert_with_brand, get_alert_stats, get_alerts, get_analytics_overview,
    get_brand, get_brand_summaries, get_mentions, get_reports, lookup_or_create_brand,
    mark_alert_sent, report_cards, start_monitoring_session,
)
from background import default_source, handle_new_alert, monitor_brand, start_scheduler, stop_scheduler
from events import alert_feed
from reports import EmptyReportError, export_report

setup_logging()
logger = logging.getLogger(__name__)

Base.metadata.create_all(bind=engine)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if config.MONITOR_INTERVAL_SECONDS > 0:
        start_scheduler(config.MONITOR_INTERVAL_SECONDS)
    logger.info("Brand sentiment monitor started")
    yield
    stop_scheduler()
    logger.info("Brand sentiment monitor stopped")


app = FastAPI(title="Brand Sentiment Monitor", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "Database error, please try again"})


def get_mention_source():
    return default_source


def report_window(days: int = 7) -> int:
    if days not in REPORT_WINDOWS:
        raise HTTPException(status_code=422, detail=f"days must be one of {list(REPORT_WINDOWS)}")
    return days


def optional_window(days: Optional[int] = None) -> Optional[int]:
    if days is None:
        return None
    return report_window(days)


async def stop_task(task: asyncio.Task) -> None:
    """Cancel ``task`` and collect its outcome so a failed send is logged."""
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        pass
    except Exception:
        logger.exception("Alert push to websocket failed")


def run_monitoring(db: Session, brand_id: int, brand_name: str, source):
    result = monitor_brand(db, brand_id, brand_name, source)
    if result.alert is not None:
        handle_new_alert(db, result.alert)
    return result


# Push feed

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    loop = asyncio.get_running_loop()
    queue: asyncio.Queue = asyncio.Queue()

    def on_alert(alert):
        payload = {"type": "newAlert", "data": schemas.Alert.model_validate(alert).model_dump(mode="json")}
        loop.call_soon_threadsafe(queue.put_nowait, payload)

    async def forward():
        while True:
            await websocket.send_json(await queue.get())

    # Subscribe before accepting so no alert slips in between
    alert_feed.subscribe(on_alert)
    sender = None
    try:
        await websocket.accept()
        sender = asyncio.create_task(forward())
        while True:
            await websocket.receive_text()  # Keep alive
    except WebSocketDisconnect:
        pass
    finally:
        alert_feed.unsubscribe(on_alert)
        if sender is not None:
            await stop_task(sender)


# Brands and monitoring

@app.post("/api/brands/search", response_model=SearchResult)
def search_brand(search: BrandSearch, db: Session = Depends(get_db), source=Depends(get_mention_source)):
    query = search.query.strip()
    if not query:
        raise HTTPException(status_code=422, detail="Search query is empty")
    brand, created = lookup_or_create_brand(db, query)
    if created:
        logger.info("Created brand %s (%s)", brand.id, brand.name)
    start_monitoring_session(db, brand.id)
    result = run_monitoring(db, brand.id, brand.name, source)
    db.refresh(brand)
    return SearchResult(
        brand=schemas.Brand.model_validate(brand),
        created=created,
        mentions_added=result.mentions_added,
        alert_created=result.alert is not None,
    )


@app.post("/api/monitor-brand", response_model=MonitorResponse)
def monitor_brand_endpoint(request: MonitorRequest, db: Session = Depends(get_db), source=Depends(get_mention_source)):
    if not get_brand(db, request.brand_id):
        raise HTTPException(status_code=404, detail="Brand not found")
    try:
        result = run_monitoring(db, request.brand_id, request.brand_name, source)
    except SQLAlchemyError as e:
        logger.exception("Monitoring failed for brand %s", request.brand_id)
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    return MonitorResponse(mentions_added=result.mentions_added)


@app.get("/api/brands", response_model=list[BrandSummary])
def read_brands(db: Session = Depends(get_db)):
    return get_brand_summaries(db)


@app.post("/api/brands/{brand_id}/monitor", response_model=MonitorResponse)
def remonitor_brand(brand_id: int, db: Session = Depends(get_db), source=Depends(get_mention_source)):
    brand = get_brand(db, brand_id)
    if not brand:
        raise HTTPException(status_code=404, detail="Brand not found")
    result = run_monitoring(db, brand.id, brand.name, source)
    return MonitorResponse(mentions_added=result.mentions_added)


@app.get("/api/mentions", response_model=list[Mention])
def read_mentions(
    brand_id: Optional[int] = None,
    limit: int = Query(100, ge=1, le=1000),
    days: Optional[int] = Depends(optional_window),
    db: Session = Depends(get_db),
):
    return get_mentions(db, days=days, brand_id=brand_id, limit=limit)


# Analytics

@app.get("/api/analytics", response_model=AnalyticsOverview)
def read_analytics(brand_id: Optional[int] = None, days: int = Depends(report_window), db: Session = Depends(get_db)):
    return get_analytics_overview(db, days=days, brand_id=brand_id)


# Alerts

@app.get("/api/alerts", response_model=list[AlertWithBrand])
def read_alerts(brand_id: Optional[int] = None, limit: Optional[int] = Query(None, ge=1), db: Session = Depends(get_db)):
    return get_alerts(db, limit=limit, brand_id=brand_id)


@app.get("/api/alerts/stats", response_model=AlertStats)
def read_alert_stats(db: Session = Depends(get_db)):
    return get_alert_stats(db)


@app.put("/api/alerts/{alert_id}/sent", response_model=AlertWithBrand)
def mark_sent_endpoint(alert_id: int, db: Session = Depends(get_db)):
    db_alert = mark_alert_sent(db, alert_id)
    if not db_alert:
        raise HTTPException(status_code=404, detail="Alert not found")
    return alert_with_brand(db_alert)


# Reports

@app.get("/api/reports", response_model=list[ReportCard])
def read_reports(days: int = Depends(report_window), db: Session = Depends(get_db)):
    return report_cards(get_reports(db, days))


@app.get("/api/reports/export")
def export_reports(
    fmt: ExportFormat = Query(ExportFormat.csv, alias="format"),
    days: int = Depends(report_window),
    db: Session = Depends(get_db),
):
    try:
        content, filename, media_type = export_report(get_reports(db, days), fmt, days)
    except EmptyReportError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@app.get("/health")
def health():
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
