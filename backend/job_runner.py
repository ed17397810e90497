"""
Shared job runner for scheduled background jobs.
Used by server (scheduler) and admin (manual run).
Each run_* returns a dict with "message" (and optionally "count") for admin toast.
"""
import logging

logger = logging.getLogger(__name__)


async def run_payment_reminders():
    try:
        from services.payment_reminders import process_payment_reminders
        results = await process_payment_reminders()
        count = results["reminders_sent"] + results["final_notices_sent"]
        logger.info(f"Payment reminders job completed: {count} emails sent")
        return {
            "message": (
                f"Payment reminders sent: {results['reminders_sent']}, "
                f"final notices sent: {results['final_notices_sent']}"
            ),
            "count": count,
            "details": results,
        }
    except Exception as e:
        logger.error(f"Payment reminders job failed: {e}")
        raise


# URL job id -> runner for the admin run-now endpoint
JOB_RUNNERS = {
    "payment-reminders": run_payment_reminders,
}
