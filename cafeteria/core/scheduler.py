"""
后台任务调度
使用 APScheduler 定期运行健康统计对账，并可选地在每月1日重置月度消费
"""

import logging
from typing import Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class SchedulerManager:
    """管理调度器生命周期和任务注册"""

    def __init__(self, services):
        self.services = services
        self.scheduler: Optional[BackgroundScheduler] = None

    def initialize(self) -> None:
        if self.scheduler is not None:
            logger.warning("Scheduler already initialized")
            return

        settings = self.services.settings
        self.scheduler = BackgroundScheduler(
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )
        self.scheduler.add_job(
            self.services.reconciliation.run_once,
            trigger=IntervalTrigger(seconds=settings.reconciliation_interval_seconds),
            id="wellness_reconciliation",
            name="Wellness reconciliation sweep",
            replace_existing=True,
        )
        if settings.monthly_reset_enabled:
            self.scheduler.add_job(
                self.services.wallets.reset_all_monthly_spending,
                trigger=CronTrigger(day=1, hour=0, minute=0),
                id="monthly_spending_reset",
                name="Monthly spending reset",
                replace_existing=True,
            )
        logger.info("Scheduler initialized with %d jobs", len(self.scheduler.get_jobs()))

    def start(self) -> None:
        if self.scheduler is None:
            raise RuntimeError("Scheduler not initialized")
        if self.scheduler.running:
            logger.warning("Scheduler already running")
            return
        self.scheduler.start()
        logger.info("Scheduler started")

    def shutdown(self, wait: bool = True) -> None:
        if self.scheduler is None or not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=wait)
        logger.info("Scheduler shutdown (wait=%s)", wait)

    def get_jobs(self) -> List[Dict[str, str]]:
        if self.scheduler is None:
            return []
        return [
            {
                "id": job.id,
                "name": job.name,
                "trigger": str(job.trigger),
            }
            for job in self.scheduler.get_jobs()
        ]
