from propertipro.models.listing import Listing
from propertipro.models.payment import AdPayment
from propertipro.models.premium_listing import PremiumListing
from propertipro.models.activity_log import ActivityLog
from propertipro.models.webhook_event import WebhookEvent
from propertipro.models.idempotency_key import IdempotencyKey
from propertipro.models.reconciliation_report import ReconciliationReport
from propertipro.models.job_run import JobRun

__all__ = [
    "Listing",
    "AdPayment",
    "PremiumListing",
    "ActivityLog",
    "WebhookEvent",
    "IdempotencyKey",
    "ReconciliationReport",
    "JobRun",
]
