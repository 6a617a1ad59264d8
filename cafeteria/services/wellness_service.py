"""
健康统计服务模块
维护用户每日营养与消费统计，保证每个订单只被计入一次

主要功能：
- 按 (用户, 日期) 获取或创建日记录
- 原子累加订单统计（单条 UPDATE，无读改写）
- 订单计入：先以条件 UPDATE 认领 wellness_processed 标记，再在同一事务内累加
- 月度汇总：实时对日记录求和
- 每日营养目标
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from ..config.settings import Settings, settings as default_settings
from ..core.database import DatabaseManager
from ..core.exceptions import TransientStorageError
from ..models.order import COUNTABLE_ORDER_SQL
from ..models.wellness import MonthlyStats, WellnessTracking

logger = logging.getLogger(__name__)


class WellnessService:
    """健康统计服务类"""

    def __init__(self, db: DatabaseManager, settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock or datetime.now

    def find(self, user_id: int, day: date) -> Optional[WellnessTracking]:
        row = self.db.fetch_dict(
            "SELECT * FROM wellness_tracking WHERE user_id=? AND date=?", [user_id, day]
        )
        return WellnessTracking(**row) if row else None

    def get_or_create(self, user_id: int, day: date) -> WellnessTracking:
        """获取日记录，不存在时创建全零记录；并发重复创建时回读已有记录"""
        existing = self.find(user_id, day)
        if existing is not None:
            return existing
        now = self.clock()
        self.db.execute(
            """
            INSERT INTO wellness_tracking(user_id, date, day, month, year, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?)
            ON CONFLICT DO NOTHING
            """,
            [user_id, day, day.day, day.month, day.year, now, now]
        )
        return self.find(user_id, day)

    def get_today_tracking(self, user_id: int) -> WellnessTracking:
        return self.get_or_create(user_id, self.clock().date())

    def add_order_stats(self, user_id: int, day: date, calories: float, proteins: float,
                        carbs: float, amount_cents: int) -> WellnessTracking:
        """一次原子更新累加日/月统计并把当日完成订单数加1"""
        self.get_or_create(user_id, day)
        row = self.db.fetch_dict(
            """
            UPDATE wellness_tracking SET
                daily_calories = daily_calories + ?,
                daily_proteins = daily_proteins + ?,
                daily_carbs = daily_carbs + ?,
                daily_spent_cents = daily_spent_cents + ?,
                monthly_calories = monthly_calories + ?,
                monthly_proteins = monthly_proteins + ?,
                monthly_spent_cents = monthly_spent_cents + ?,
                orders_completed_today = orders_completed_today + 1,
                updated_at = ?
            WHERE user_id = ? AND date = ?
            RETURNING *
            """,
            [calories, proteins, carbs, amount_cents, calories, proteins, amount_cents,
             self.clock(), user_id, day]
        )
        return WellnessTracking(**row)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(TransientStorageError),
        reraise=True,
    )
    def apply_order(self, order_id: int, day: Optional[date] = None) -> bool:
        """
        将订单计入健康统计

        认领与累加在同一事务内：只有 wellness_processed 从 FALSE 变为 TRUE 的调用者累加，
        其余调用直接返回 False。day 为空时按取餐时间、其次下单时间确定归属日。

        Returns:
            bool: 本次调用是否实际计入
        """
        with self.db.transaction():
            row = self.db.fetch_dict(
                f"""
                UPDATE orders SET
                    wellness_processed = TRUE,
                    wellness_date = COALESCE(CAST(? AS DATE), CAST(COALESCE(pickup_time, created_at) AS DATE)),
                    updated_at = ?
                WHERE order_id = ? AND NOT wellness_processed AND {COUNTABLE_ORDER_SQL}
                RETURNING student_id, total_calories, total_proteins, total_carbs,
                          total_price_cents, wellness_date
                """,
                [day, self.clock(), order_id]
            )
            if row is None:
                return False
            self.add_order_stats(
                row["student_id"], row["wellness_date"], row["total_calories"],
                row["total_proteins"], row["total_carbs"], row["total_price_cents"]
            )
        logger.debug("订单 %s 已计入 %s 的健康统计", order_id, row["wellness_date"])
        return True

    def reverse_order(self, order: Dict[str, Any], spend: bool, nutrition: bool) -> bool:
        """退款时按配置回退已计入的消费/营养，各字段不低于0"""
        if not (spend or nutrition) or not order.get("wellness_processed") or order.get("wellness_date") is None:
            return False
        sets = []
        params: list = []
        if spend:
            amount = order["total_price_cents"]
            sets += ["daily_spent_cents = GREATEST(daily_spent_cents - ?, 0)",
                     "monthly_spent_cents = GREATEST(monthly_spent_cents - ?, 0)"]
            params += [amount, amount]
        if nutrition:
            cal, pro, carb = order["total_calories"], order["total_proteins"], order["total_carbs"]
            sets += ["daily_calories = GREATEST(daily_calories - ?, 0)",
                     "daily_proteins = GREATEST(daily_proteins - ?, 0)",
                     "daily_carbs = GREATEST(daily_carbs - ?, 0)",
                     "monthly_calories = GREATEST(monthly_calories - ?, 0)",
                     "monthly_proteins = GREATEST(monthly_proteins - ?, 0)",
                     "orders_completed_today = GREATEST(orders_completed_today - 1, 0)"]
            params += [cal, pro, carb, cal, pro]
        sets.append("updated_at = ?")
        params += [self.clock(), order["student_id"], order["wellness_date"]]
        self.db.execute(
            f"UPDATE wellness_tracking SET {', '.join(sets)} WHERE user_id = ? AND date = ?",
            params
        )
        return True

    def get_monthly_stats(self, user_id: int, year: int, month: int) -> MonthlyStats:
        """月度汇总，实时对日记录求和"""
        row = self.db.fetch_dict(
            """
            SELECT COALESCE(SUM(daily_calories), 0) AS total_calories,
                   COALESCE(SUM(daily_proteins), 0) AS total_proteins,
                   COALESCE(SUM(daily_carbs), 0) AS total_carbs,
                   COALESCE(SUM(daily_spent_cents), 0) AS total_spent_cents,
                   COALESCE(SUM(orders_completed_today), 0) AS total_orders,
                   COUNT(CASE WHEN orders_completed_today > 0 THEN 1 END) AS days_with_orders
            FROM wellness_tracking
            WHERE user_id = ? AND year = ? AND month = ?
            """,
            [user_id, year, month]
        )
        days = int(row["days_with_orders"])
        total_calories = float(row["total_calories"])
        return MonthlyStats(
            user_id=user_id,
            year=year,
            month=month,
            total_calories=total_calories,
            total_proteins=float(row["total_proteins"]),
            total_carbs=float(row["total_carbs"]),
            total_spent_cents=int(row["total_spent_cents"]),
            total_orders=int(row["total_orders"]),
            days_with_orders=days,
            average_daily_calories=round(total_calories / days, 2) if days else 0,
        )

    def get_overview(self, user_id: int, day: Optional[date] = None) -> Dict[str, Any]:
        """指定日期（默认今天）的日记录及所在月份的汇总"""
        target = day or self.clock().date()
        tracking = self.get_or_create(user_id, target)
        monthly = self.get_monthly_stats(user_id, target.year, target.month)
        return {
            "date": target.isoformat(),
            "daily": tracking.model_dump(),
            "monthly": monthly.model_dump(),
        }

    def update_daily_goals(self, user_id: int, calorie_goal: Optional[float] = None,
                           protein_goal: Optional[float] = None, carb_goal: Optional[float] = None,
                           day: Optional[date] = None) -> WellnessTracking:
        """设置当日营养目标，未提供的目标保持不变"""
        target = day or self.clock().date()
        self.get_or_create(user_id, target)
        row = self.db.fetch_dict(
            """
            UPDATE wellness_tracking SET
                calorie_goal = COALESCE(?, calorie_goal),
                protein_goal = COALESCE(?, protein_goal),
                carb_goal = COALESCE(?, carb_goal),
                updated_at = ?
            WHERE user_id = ? AND date = ?
            RETURNING *
            """,
            [calorie_goal, protein_goal, carb_goal, self.clock(), user_id, target]
        )
        return WellnessTracking(**row)
