"""
任务调度器 - 基于APScheduler
管理对账等后台周期任务
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from rc_core.config import Settings, get_settings
from rc_core.database import DatabaseManager, get_db_manager
from rc_core.services.reconciliation_service import ReconciliationService
from rc_core.utils.logger import get_logger

logger = get_logger(__name__)

RECONCILE_JOB_KEY = "wallet.reconcile_pending"


class TaskScheduler:
    """任务调度器"""

    def __init__(self):
        """初始化调度器"""
        self.scheduler = AsyncIOScheduler(
            timezone='UTC',
            job_defaults={
                'coalesce': True,  # 合并多个pending的相同任务
                'max_instances': 1,  # 同一任务不并发执行
                'misfire_grace_time': 300  # 允许延迟5分钟
            }
        )
        self.registered_handlers: Dict[str, Callable] = {}
        self._running_jobs: set = set()

    def register_handler(self, service_key: str, handler: Callable):
        """
        注册任务处理函数

        Args:
            service_key: 任务唯一标识
            handler: 异步处理函数，接收配置字典
        """
        self.registered_handlers[service_key] = handler
        logger.info("Registered task handler", service_key=service_key)

    def start(self):
        """启动调度器"""
        self.scheduler.start()
        logger.info("Task scheduler started", jobs=[job.id for job in self.scheduler.get_jobs()])

    async def shutdown(self):
        """关闭调度器，最多等待 30 秒让正在执行的任务结束"""
        if self._running_jobs:
            logger.info("Waiting for running jobs to complete", count=len(self._running_jobs))
            try:
                await asyncio.wait_for(
                    asyncio.gather(*[self._wait_for_job(job_id) for job_id in list(self._running_jobs)]),
                    timeout=30
                )
            except asyncio.TimeoutError:
                logger.warning("Timeout waiting for jobs to complete, shutting down anyway")

        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        logger.info("Task scheduler shut down")

    async def _wait_for_job(self, job_id: str):
        while job_id in self._running_jobs:
            await asyncio.sleep(0.5)

    def add_service(
        self,
        service_key: str,
        service_type: str,
        schedule_config: str,
        config_json: Optional[Dict[str, Any]] = None
    ):
        """
        添加任务到调度器

        Args:
            service_key: 任务唯一标识
            service_type: 调度类型 (cron | interval)
            schedule_config: cron 表达式或间隔秒数
            config_json: 任务配置
        """
        if service_key not in self.registered_handlers:
            logger.warning("No handler registered, skipping", service_key=service_key)
            return

        if service_type == "cron":
            trigger = CronTrigger.from_crontab(schedule_config, timezone='UTC')
        elif service_type == "interval":
            trigger = IntervalTrigger(seconds=int(schedule_config), timezone='UTC')
        else:
            raise ValueError(f"Unknown service_type: {service_type}")

        self.scheduler.add_job(
            self.run_service,
            trigger=trigger,
            args=[service_key, config_json or {}],
            id=service_key,
            name=service_key,
            replace_existing=True
        )
        logger.info(
            "Service added to scheduler",
            service_key=service_key,
            service_type=service_type,
            schedule=schedule_config,
        )

    def remove_service(self, service_key: str):
        """从调度器移除任务"""
        try:
            self.scheduler.remove_job(service_key)
            logger.info("Service removed from scheduler", service_key=service_key)
        except JobLookupError:
            logger.warning("Service not found in scheduler", service_key=service_key)

    async def run_service(self, service_key: str, config_json: Optional[Dict[str, Any]] = None) -> Any:
        """
        执行一次任务（调度触发或手动触发）

        同一任务正在执行时跳过；任务异常只记录日志，不影响调度器
        """
        if service_key in self._running_jobs:
            logger.warning("Service is already running, skipping this execution", service_key=service_key)
            return None

        handler = self.registered_handlers[service_key]
        run_id = f"{service_key}_{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}"
        self._running_jobs.add(service_key)

        try:
            result = await handler(config_json or {})
            logger.info("Service executed successfully", run_id=run_id, result=result)
            return result
        except Exception:
            logger.error("Service execution failed", run_id=run_id, exc_info=True)
            return None
        finally:
            self._running_jobs.discard(service_key)


def make_reconcile_handler(db_manager: DatabaseManager, settings: Settings) -> Callable:
    """对账任务处理函数"""

    async def reconcile_pending_transactions(config: Dict[str, Any]) -> Dict[str, int]:
        timeout_minutes = int(config.get("timeout_minutes", settings.pending_timeout_minutes))
        async with db_manager.get_transaction() as session:
            failed = await ReconciliationService.fail_stale_pending_transactions(session, timeout_minutes)
        return {"failed": failed}

    return reconcile_pending_transactions


def build_scheduler(
    settings: Optional[Settings] = None,
    db_manager: Optional[DatabaseManager] = None,
) -> TaskScheduler:
    """创建调度器并注册对账任务"""
    settings = settings or get_settings()
    db_manager = db_manager or get_db_manager()

    scheduler = TaskScheduler()
    scheduler.register_handler(RECONCILE_JOB_KEY, make_reconcile_handler(db_manager, settings))
    scheduler.add_service(
        RECONCILE_JOB_KEY,
        "interval",
        str(settings.reconcile_interval_seconds),
        {"timeout_minutes": settings.pending_timeout_minutes},
    )
    return scheduler
