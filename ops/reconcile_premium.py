from __future__ import annotations

import argparse
import json
import os
import sys


def _bootstrap_app():
    from propertipro import create_app

    app = create_app()
    app.app_context().push()
    return app


def main():
    parser = argparse.ArgumentParser(description="Reconcile premium listings with payment state and report drift.")
    parser.add_argument("--dry-run", action="store_true", help="Report drift without writing changes.")
    parser.add_argument("--persist", action="store_true", help="Persist report row in reconciliation_reports.")
    args = parser.parse_args()

    _bootstrap_app()
    from propertipro.services.reconciliation_service import (
        persist_report,
        reconcile_premium_listings,
        unresolved_count,
    )

    summary = reconcile_premium_listings(apply=not args.dry_run)
    if args.persist:
        row = persist_report(summary, created_by=None)
        summary["report_id"] = int(row.id)

    print(json.dumps(summary, indent=2))
    return 0 if unresolved_count(summary) == 0 else 2


if __name__ == "__main__":
    os.environ.setdefault("FLASK_APP", "propertipro:create_app")
    sys.exit(main())
