from __future__ import annotations

import json
import time
from datetime import datetime

from celery import shared_task
from flask import current_app

from propertipro.extensions import db
from propertipro.services import premium_service, reconciliation_service
from propertipro.utils.job_runs import record_job_run


def _task_log(task_name: str, *, status: str, started_at: float, trace_id: str = "", **extra):
    duration_ms = int(max(0.0, (time.perf_counter() - float(started_at))) * 1000.0)
    payload = {
        "task_name": task_name,
        "status": status,
        "duration_ms": duration_ms,
        "trace_id": str(trace_id or ""),
        "timestamp": datetime.utcnow().isoformat(),
    }
    payload.update(extra or {})
    try:
        current_app.logger.info(json.dumps(payload))
    except Exception:
        pass


@shared_task(bind=True, name="propertipro.tasks.premium_tasks.expire_premium_listings")
def expire_premium_listings_task(self, *, trace_id: str = ""):
    started = time.perf_counter()
    started_at = datetime.utcnow()
    try:
        result = premium_service.expire_premium_listings()
    except Exception as e:
        db.session.rollback()
        record_job_run(job_name="premium_expiry", ok=False, started_at=started_at, error=str(e))
        _task_log("expire_premium_listings", status="failed", started_at=started, trace_id=trace_id, error=str(e))
        raise
    record_job_run(job_name="premium_expiry", ok=True, started_at=started_at)
    _task_log(
        "expire_premium_listings",
        status="ok",
        started_at=started,
        trace_id=trace_id,
        expired=int(result.get("expired") or 0),
        unpromoted=len(result.get("unpromoted") or []),
    )
    return {"ok": True, **result}


@shared_task(bind=True, name="propertipro.tasks.premium_tasks.reconcile_premium_listings")
def reconcile_premium_listings_task(self, *, persist: bool = True, trace_id: str = ""):
    started = time.perf_counter()
    started_at = datetime.utcnow()
    try:
        summary = reconciliation_service.reconcile_premium_listings(apply=True)
        report_id = None
        if persist and (reconciliation_service.unresolved_count(summary) or summary["expired_count"]):
            report_id = int(reconciliation_service.persist_report(summary).id)
    except Exception as e:
        db.session.rollback()
        record_job_run(job_name="premium_reconcile", ok=False, started_at=started_at, error=str(e))
        _task_log("reconcile_premium_listings", status="failed", started_at=started, trace_id=trace_id, error=str(e))
        raise
    record_job_run(job_name="premium_reconcile", ok=True, started_at=started_at)
    _task_log(
        "reconcile_premium_listings",
        status="ok",
        started_at=started,
        trace_id=trace_id,
        activated=summary["activated_count"],
        activation_errors=summary["activation_error_count"],
        expired=summary["expired_count"],
        drift=summary["drift_count"],
        report_id=report_id,
    )
    return {"ok": True, "report_id": report_id, "drift_count": summary["drift_count"]}
