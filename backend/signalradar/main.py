from fastapi import Depends, FastAPI
from fastapi import Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session

from signalradar.auth_cron import verify_cron_secret
from signalradar.db import get_session, init_db
from signalradar.digest.job import DigestSender, run_digest_job
from signalradar.logging_config import get_logger
from signalradar.models import Filter
from signalradar.notifications.email_smtp import send_email_smtp
from signalradar.organizations import bootstrap_user
from signalradar.radar.drilldown import days_ago, recent_signals, signal_payload
from signalradar.radar.filter_store import (
    FilterValidationError,
    activate_filter,
    create_filter,
    delete_filter,
    list_filters,
)
from signalradar.radar.pipeline import radar_row_payload, rank_accounts
from signalradar.radar.taxonomy import DIGEST_FREQUENCIES, SIGNAL_GROUPS, pretty_signal
from signalradar.scoring.breakdown import (
    ScoreProvider,
    StoreScoreProvider,
    breakdown_payload,
    reconcile_breakdown,
)
from signalradar.settings import settings

log = get_logger(__name__)

app = FastAPI(title="SignalRadar API", version="0.1.0")

origins = [o.strip() for o in settings.cors_origins.split(",") if o.strip()]
if origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )


@app.on_event("startup")
def _startup() -> None:
    init_db()


def get_digest_sender() -> DigestSender:
    return send_email_smtp


def get_score_provider(session: Session = Depends(get_session)) -> ScoreProvider:
    return StoreScoreProvider(session)


def _filter_payload(f: Filter) -> dict:
    return {
        "id": f.id,
        "name": f.name,
        "countries": list(f.countries or []),
        "signal_types": list(f.signal_types) if f.signal_types is not None else None,
        "min_score": f.min_score,
        "digest_frequency": f.digest_frequency,
        "email_alerts": f.email_alerts,
        "is_active": f.is_active,
        "created_at": f.created_at.isoformat() if f.created_at else None,
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/bootstrap")
def bootstrap(payload: dict, session: Session = Depends(get_session)) -> dict:
    """
    Called after sign-in: upserts the profile and creates an org for users
    without one.
    """

    if not isinstance(payload, dict):
        return {"ok": False, "error": "Expected JSON body"}
    try:
        org = bootstrap_user(
            session=session,
            user_id=str(payload.get("user_id") or ""),
            email=str(payload.get("email") or ""),
        )
    except ValueError as e:
        return {"ok": False, "error": str(e)}
    return {"ok": True, "org": {"id": org.id, "name": org.name}}


@app.get("/signal-types")
def signal_types() -> dict:
    return {
        "digest_frequencies": list(DIGEST_FREQUENCIES),
        "groups": [
            {"label": g.label, "items": [{"value": t, "label": pretty_signal(t)} for t in g.items]}
            for g in SIGNAL_GROUPS
        ],
    }


@app.get("/orgs/{org_id}/filters")
def get_filters(org_id: str, session: Session = Depends(get_session)) -> dict:
    return {"rows": [_filter_payload(f) for f in list_filters(session, org_id)]}


@app.post("/orgs/{org_id}/filters")
def post_filter(org_id: str, payload: dict, session: Session = Depends(get_session)):
    if not isinstance(payload, dict):
        return JSONResponse({"ok": False, "error": "Expected JSON body"}, status_code=400)
    try:
        f = create_filter(
            session=session,
            org_id=org_id,
            name=str(payload.get("name") or ""),
            countries=payload.get("countries") or [],
            signal_types=payload.get("signal_types"),
            min_score=payload.get("min_score") or 0,
            digest_frequency=str(payload.get("digest_frequency") or "daily"),
            email_alerts=bool(payload.get("email_alerts")),
        )
    except FilterValidationError as e:
        return JSONResponse({"ok": False, "error": str(e)}, status_code=400)
    return {"ok": True, "filter": _filter_payload(f)}


@app.delete("/orgs/{org_id}/filters/{filter_id}")
def remove_filter(org_id: str, filter_id: str, session: Session = Depends(get_session)):
    if not delete_filter(session=session, org_id=org_id, filter_id=filter_id):
        return JSONResponse({"ok": False, "error": "Filter not found"}, status_code=404)
    return {"ok": True}


@app.post("/orgs/{org_id}/filters/{filter_id}/activate")
def make_filter_active(org_id: str, filter_id: str, session: Session = Depends(get_session)):
    if not activate_filter(session=session, org_id=org_id, filter_id=filter_id):
        return JSONResponse({"ok": False, "error": "Filter not found"}, status_code=404)
    return {"ok": True}


@app.get("/orgs/{org_id}/radar")
def radar(org_id: str, session: Session = Depends(get_session)):
    try:
        result = rank_accounts(session, org_id)
    except SQLAlchemyError:
        log.exception("Radar load failed for org %s", org_id)
        return JSONResponse({"ok": False, "status": "Error loading radar.", "rows": []}, status_code=500)

    return {
        "ok": True,
        "filter": _filter_payload(result.filter) if result.filter is not None else None,
        "status": result.status,
        "rows": [radar_row_payload(r) for r in result.rows],
    }


@app.get("/accounts/{account_id}/signals")
def account_signals(account_id: str, session: Session = Depends(get_session)):
    try:
        rows = recent_signals(session, account_id)
    except SQLAlchemyError:
        log.exception("Signal drill-down failed for account %s", account_id)
        return JSONResponse({"ok": False, "status": "Could not load signals.", "rows": []}, status_code=500)

    last = rows[0].occurred_at if rows else None
    return {
        "ok": True,
        "last_signal_at": last.isoformat() if last else None,
        "last_signal_days_ago": days_ago(last) if last else None,
        "rows": [signal_payload(s) for s in rows],
    }


@app.get("/orgs/{org_id}/accounts/{account_id}/breakdown")
def score_breakdown(
    org_id: str,
    account_id: str,
    limit: int = 0,
    provider: ScoreProvider = Depends(get_score_provider),
):
    lim = max(1, min(int(limit or settings.breakdown_limit), 50))
    try:
        report = reconcile_breakdown(provider, org_id, account_id, lim)
    except SQLAlchemyError:
        log.exception("Score lookup failed for org %s account %s", org_id, account_id)
        return JSONResponse({"ok": False, "status": "Could not load score."}, status_code=500)
    return {"ok": True, **breakdown_payload(report)}


@app.api_route("/api/digest", methods=["GET", "POST"])
def trigger_digest(
    request: Request,
    session: Session = Depends(get_session),
    sender: DigestSender = Depends(get_digest_sender),
):
    """
    Scheduler entry point. Optional x-cron-secret header when
    SIGNALRADAR_CRON_SECRET is set.
    """

    if not verify_cron_secret(secret=settings.cron_secret, header_value=request.headers.get("x-cron-secret", "")):
        return JSONResponse({"ok": False, "error": "Unauthorized"}, status_code=401)

    try:
        result = run_digest_job(session=session, sender=sender)
    except Exception as e:
        log.exception("Digest job failed")
        return JSONResponse({"ok": False, "error": str(e) or e.__class__.__name__}, status_code=500)

    return result.as_dict()
