"""Azure Functions entry point: scheduled expiration sweep and health check."""
import json
import logging

import azure.functions as func

from classifieds.api.container import ServiceContainer
from classifieds.application.use_cases.expiration_sweeper import SweepReport

app = func.FunctionApp(http_auth_level=func.AuthLevel.FUNCTION)

# Built on first use and reused while the worker stays warm.
_container: ServiceContainer | None = None


def get_container() -> ServiceContainer:
    global _container
    if _container is None:
        _container = ServiceContainer.build()
    return _container


async def run_expiration_sweep(container: ServiceContainer | None = None) -> SweepReport | None:
    """Run one sweep through the scheduler so it never overlaps a running one."""
    container = container or get_container()
    report = await container.scheduler.run_once()
    if report is None:
        logging.warning("Expiration sweep skipped: previous run still in flight")
        return None

    logging.info(f"Expiration sweep processed {report.processed} listing(s)")
    for failure in report.failed:
        logging.error(f"Expiration sweep failed for {failure.listing_id}: {failure.reason}")
    return report


# ============================================================================
# Timer Trigger - Hourly expiration sweep
# ============================================================================

@app.schedule(schedule="0 0 * * * *", arg_name="timer", run_on_startup=False)
async def scheduled_expiration_sweep(timer: func.TimerRequest) -> None:
    """Runs at the top of every hour (UTC)."""
    if timer.past_due:
        logging.info("Expiration sweep timer is past due")
    await run_expiration_sweep()


# ============================================================================
# Health Check
# ============================================================================

@app.route(route="health", methods=["GET"])
async def health(req: func.HttpRequest) -> func.HttpResponse:
    """Health check endpoint."""
    container = get_container()
    database_ok = await container.gateway.is_healthy()
    broker_ok = await container.event_publisher.is_healthy()

    overall = "healthy" if database_ok and broker_ok else "degraded"

    return func.HttpResponse(
        json.dumps({
            "status": overall,
            "database": "connected" if database_ok else "error",
            "rabbitmq": "connected" if broker_ok else "error",
        }),
        mimetype="application/json",
    )
