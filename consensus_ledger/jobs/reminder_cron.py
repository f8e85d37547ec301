"""
Reminder Cron Job: periodic maintenance and vote reminders.

This module runs as a scheduled job (via cron or similar) to close
decisions whose deadline has passed and nudge voters who have not voted.

Typical cron schedule: 0 9 * * 1-5 (weekdays at 9 AM)
"""

import asyncio
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Any

import httpx

from ..core import (
    Clock,
    close_db,
    create_engine,
    create_session_factory,
    get_settings,
    init_db,
    utc_now,
)
from ..services import (
    LifecycleManager,
    LoggingNotifier,
    ReminderNotifier,
    ReminderSelector,
    WebhookNotifier,
)
from ..store import EntityStore, SqlEntityStore

logger = logging.getLogger(__name__)


# =============================================================================
# ALERTING
# =============================================================================


async def send_alert(
    title: str,
    message: str,
    severity: str = "error",
    details: dict | None = None,
    webhook_url: str | None = None,
) -> None:
    """
    Send an alert when the job fails.

    Always logs; also POSTs to a generic webhook (PagerDuty, Opsgenie,
    custom) when one is configured.
    """
    log_message = f"[CRON ALERT] {title}: {message}"
    if details:
        log_message += f" | Details: {details}"

    if severity == "critical":
        logger.critical(log_message)
    else:
        logger.error(log_message)

    if not webhook_url:
        return

    payload = {
        "title": title,
        "message": message,
        "severity": severity,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "source": "consensus-reminders",
        "details": details or {},
    }
    try:
        async with httpx.AsyncClient() as client:
            await client.post(webhook_url, json=payload, timeout=10)
    except httpx.HTTPError as e:
        logger.error(f"Failed to send webhook alert: {e}")


async def run_reminder_job(
    store: EntityStore,
    notifier: ReminderNotifier,
    clock: Clock = utc_now,
    alert_webhook_url: str | None = None,
) -> dict[str, Any]:
    """
    Main entry point for the reminder job.

    This function:
    1. Evaluates every active decision (expiring those past deadline)
    2. Sends one reminder per missing voter on what is still active
    3. Logs results

    Returns:
        Job result summary
    """
    start_time = clock()
    logger.info(f"Starting reminder job at {start_time.isoformat()}")

    results = {
        "started_at": start_time.isoformat(),
        "completed_at": None,
        "finalized_count": 0,
        "decisions_processed": 0,
        "reminders_sent": 0,
        "reminders_failed": 0,
        "errors": [],
    }

    lifecycle = LifecycleManager(store, clock=clock)
    selector = ReminderSelector(store, notifier, lifecycle=lifecycle, clock=clock)

    try:
        # Step 1: close out decisions that are due
        maintenance = await lifecycle.run_maintenance_pass()
        results["finalized_count"] = maintenance.finalized
        results["errors"].extend(maintenance.errors)

        # Step 2: remind whoever is still missing
        reminders = await selector.run_reminder_pass()
        results["decisions_processed"] = reminders.decisions_processed
        results["reminders_sent"] = reminders.total_reminders_sent
        results["reminders_failed"] = reminders.total_failed
        for decision_id, errors in reminders.per_decision_errors.items():
            results["errors"].extend(f"Decision {decision_id}: {error}" for error in errors)

    except Exception as e:
        error_msg = f"Reminder job failed: {str(e)}"
        logger.error(error_msg)
        results["errors"].append(error_msg)

        await send_alert(
            title="Reminder Cron Job Failed",
            message="The reminder job crashed unexpectedly.",
            severity="critical",
            details={
                "error": str(e),
                "traceback": traceback.format_exc()[-500:],  # Last 500 chars
                "started_at": results["started_at"],
                "finalized_before_crash": results["finalized_count"],
            },
            webhook_url=alert_webhook_url,
        )
        raise

    end_time = clock()
    results["completed_at"] = end_time.isoformat()
    results["duration_seconds"] = (end_time - start_time).total_seconds()

    logger.info(
        f"Reminder job completed in {results['duration_seconds']:.2f}s: "
        f"{results['finalized_count']} finalized, "
        f"{results['reminders_sent']} reminders sent, "
        f"{results['reminders_failed']} failed"
    )

    if results["reminders_failed"] > 0:
        await send_alert(
            title="Reminder Job Completed with Warnings",
            message=f"{results['reminders_failed']} reminders failed to send.",
            severity="warning",
            details={
                "reminders_sent": results["reminders_sent"],
                "reminders_failed": results["reminders_failed"],
                "errors": results["errors"][:5],  # First 5 errors
            },
            webhook_url=alert_webhook_url,
        )

    return results


async def _run_from_database(database_url: str, webhook_url: str | None) -> dict[str, Any]:
    settings = get_settings().model_copy(update={"database_url": database_url})
    engine = create_engine(settings)
    try:
        # Tables are managed by migrations in production
        if settings.environment != "production":
            await init_db(engine)
        store = SqlEntityStore(create_session_factory(engine))
        if webhook_url:
            notifier = WebhookNotifier(
                webhook_url, timeout_seconds=settings.reminder_timeout_seconds
            )
        else:
            notifier = LoggingNotifier()
        return await run_reminder_job(
            store, notifier, alert_webhook_url=settings.alert_webhook_url
        )
    finally:
        await close_db(engine)


# =============================================================================
# CLI ENTRY POINT
# =============================================================================


def main():
    """CLI entry point for the reminder job."""
    import argparse

    settings = get_settings()

    parser = argparse.ArgumentParser(description="Run the decision reminder job")
    parser.add_argument(
        "--database-url",
        default=settings.database_url,
        help="Database connection string (PostgreSQL or SQLite)",
    )
    parser.add_argument(
        "--webhook-url",
        default=settings.reminder_webhook_url,
        help="Where reminder tasks are POSTed (logs only when omitted)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        results = asyncio.run(_run_from_database(args.database_url, args.webhook_url))
        print(f"Job completed: {results}")
    except Exception as e:
        print(f"Job failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
