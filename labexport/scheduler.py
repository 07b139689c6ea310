from datetime import date
import logging

from apscheduler.schedulers.blocking import BlockingScheduler

from labexport.config import Settings
from labexport.pipeline import PipelineRunner
from labexport.schemas import STATUS_FAILED


logger = logging.getLogger(__name__)


def _run_daily_export(runner: PipelineRunner) -> None:
    result = runner.run(None, today=date.today())
    failed = [stage.name for stage in result.stages if stage.status == STATUS_FAILED]
    if failed:
        logger.error(
            "scheduled export finished with failed stages",
            extra={"display_date": result.resolution.display_date, "failed_stages": failed},
        )
        return
    logger.info(
        "scheduled export completed",
        extra={"display_date": result.resolution.display_date, "rows": result.row_count},
    )


def start_scheduler(settings: Settings, runner: PipelineRunner, *, run_now: bool = False) -> None:
    scheduler = BlockingScheduler()
    scheduler.add_job(
        _run_daily_export,
        "cron",
        args=[runner],
        hour=settings.schedule_hour,
        minute=settings.schedule_minute,
        id="daily_export",
        replace_existing=True,
    )

    logger.info(
        "scheduler started",
        extra={"schedule_hour": settings.schedule_hour, "schedule_minute": settings.schedule_minute},
    )

    if run_now:
        _run_daily_export(runner)

    scheduler.start()
