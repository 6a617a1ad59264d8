"""
对账服务
扫描已支付或已完成但尚未计入健康统计的订单并补计

每个订单通过 WellnessService.apply_order 的条件认领计入，重复运行或与
下单/状态更新路径并发时都不会重复累加；单个订单失败不影响其余订单。
"""

import logging
import threading
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from ..config.settings import Settings, settings as default_settings
from ..core.database import DatabaseManager
from ..models.order import COUNTABLE_ORDER_SQL
from .wellness_service import WellnessService

logger = logging.getLogger(__name__)


class ReconciliationService:
    """健康统计对账服务"""

    def __init__(self, db: DatabaseManager, wellness_service: WellnessService,
                 settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.wellness = wellness_service
        self.settings = settings or default_settings
        self.clock = clock or datetime.now
        self._running = threading.Lock()

    def find_unprocessed(self, limit: Optional[int] = None) -> list:
        limit = limit or self.settings.reconciliation_batch_size
        return self.db.fetch_dicts(
            f"""
            SELECT order_id, order_number, student_id FROM orders
            WHERE {COUNTABLE_ORDER_SQL} AND NOT COALESCE(wellness_processed, FALSE)
            ORDER BY order_id
            LIMIT ?
            """,
            [limit]
        )

    def run_once(self) -> Dict[str, Any]:
        """
        执行一轮对账

        Returns:
            dict: found（待处理数）、processed（本轮计入数）、skipped（已被其他路径计入）、
                  errors（失败数）；已有一轮在运行时 running=True 且不做任何处理
        """
        if not self._running.acquire(blocking=False):
            logger.info("对账任务仍在运行，跳过本轮")
            return {"running": True, "found": 0, "processed": 0, "skipped": 0, "errors": 0}

        try:
            started = self.clock()
            orders = self.find_unprocessed()
            summary = {"running": False, "found": len(orders), "processed": 0, "skipped": 0, "errors": 0}
            if not orders:
                logger.debug("没有待对账的订单")
                return summary

            logger.info("发现 %d 个未计入健康统计的订单", len(orders))
            for order in orders:
                try:
                    if self.wellness.apply_order(order["order_id"]):
                        summary["processed"] += 1
                    else:
                        summary["skipped"] += 1
                except Exception:
                    summary["errors"] += 1
                    logger.exception("订单 %s 对账失败", order["order_number"] or order["order_id"])

            self.db.log_action("reconciliation_run", None, None, {
                **summary, "started_at": started.isoformat(),
            })
            logger.info("对账完成：计入 %(processed)d，跳过 %(skipped)d，失败 %(errors)d", summary)
            return summary
        finally:
            self._running.release()
