"""
餐品目录服务模块
管理餐品和取餐时段，提供可订性判断与时段容量控制
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional

from ..config.settings import Settings, settings as default_settings
from ..core.database import DatabaseManager
from ..core.exceptions import MealNotFoundError, SlotFullError, TimeSlotNotFoundError
from ..models.meal import Meal, TimeSlot, day_of_week, format_days
from ..schemas.meal import MealCreateRequest, TimeSlotCreateRequest

logger = logging.getLogger(__name__)

_NUTRITION_FIELDS = ("calories", "proteins", "carbohydrates", "fats", "fiber")


class CatalogService:
    """餐品目录服务类"""

    def __init__(self, db: DatabaseManager, settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock or datetime.now

    # ---- 餐品 ----

    def get_meal(self, meal_id: int) -> Meal:
        row = self.db.fetch_dict("SELECT * FROM meals WHERE meal_id=?", [meal_id])
        if row is None:
            raise MealNotFoundError(details={"meal_id": meal_id})
        return Meal.from_row(row)

    def find_meal(self, meal_id: int) -> Optional[Meal]:
        row = self.db.fetch_dict("SELECT * FROM meals WHERE meal_id=?", [meal_id])
        return Meal.from_row(row) if row else None

    def list_available_meals(self, category: Optional[str] = None,
                             on_date: Optional[date] = None) -> List[Meal]:
        """指定日期（默认今天）可订的餐品"""
        target = on_date or self.clock().date()
        query = "SELECT * FROM meals WHERE is_available"
        params: List[Any] = []
        if category:
            query += " AND category=?"
            params.append(category)
        query += " ORDER BY category, name"
        meals = [Meal.from_row(r) for r in self.db.fetch_dicts(query, params)]
        return [m for m in meals if m.is_available_on(target)]

    def list_meals(self, category: Optional[str] = None) -> List[Meal]:
        """全部餐品（员工视图）"""
        query = "SELECT * FROM meals"
        params: List[Any] = []
        if category:
            query += " WHERE category=?"
            params.append(category)
        return [Meal.from_row(r) for r in self.db.fetch_dicts(query + " ORDER BY meal_id", params)]

    def create_meal(self, req: MealCreateRequest, created_by: Optional[int] = None) -> Meal:
        now = self.clock()
        n = req.nutritional_info
        row = self.db.fetch_dict(
            """
            INSERT INTO meals(name, description, price_cents, cost_cents, calories, proteins, carbohydrates,
                              fats, fiber, category, is_available, available_days, created_by, created_at, updated_at)
            VALUES (?,?,?,?,?,?,?,?,?,?,?,?,?,?,?)
            RETURNING *
            """,
            [req.name, req.description or "", req.price_cents, req.cost_cents, n.calories, n.proteins,
             n.carbohydrates, n.fats, n.fiber, req.category.value, req.is_available,
             format_days(req.available_days), created_by, now, now]
        )
        self.db.log_action("meal_create", None, created_by, {"meal_id": row["meal_id"], "name": req.name})
        return Meal.from_row(row)

    def update_meal(self, meal_id: int, changes: Dict[str, Any], actor_id: Optional[int] = None) -> Meal:
        """按字段更新餐品，已下单的订单保留下单时快照不受影响"""
        self.get_meal(meal_id)
        columns: Dict[str, Any] = {}
        for key, value in changes.items():
            if value is None:
                continue
            if key == "nutritional_info":
                for field in _NUTRITION_FIELDS:
                    columns[field] = value[field] if isinstance(value, dict) else getattr(value, field)
            elif key == "available_days":
                columns[key] = format_days(value)
            elif key == "category":
                columns[key] = getattr(value, "value", value)
            else:
                columns[key] = value
        if not columns:
            return self.get_meal(meal_id)

        columns["updated_at"] = self.clock()
        assignments = ", ".join(f"{c}=?" for c in columns)
        row = self.db.fetch_dict(
            f"UPDATE meals SET {assignments} WHERE meal_id=? RETURNING *",
            list(columns.values()) + [meal_id]
        )
        self.db.log_action("meal_update", None, actor_id,
                           {"meal_id": meal_id, "fields": sorted(k for k in columns if k != "updated_at")})
        return Meal.from_row(row)

    def toggle_meal_availability(self, meal_id: int, actor_id: Optional[int] = None) -> Meal:
        self.get_meal(meal_id)
        row = self.db.fetch_dict(
            "UPDATE meals SET is_available = NOT is_available, updated_at=? WHERE meal_id=? RETURNING *",
            [self.clock(), meal_id]
        )
        self.db.log_action("meal_toggle", None, actor_id, {"meal_id": meal_id, "is_available": row["is_available"]})
        return Meal.from_row(row)

    def increment_order_count(self, meal_id: int, by: int = 1):
        """热度计数，尽力而为"""
        self.db.execute("UPDATE meals SET order_count = order_count + ? WHERE meal_id=?", [by, meal_id])

    # ---- 取餐时段 ----

    def get_time_slot(self, slot_id: int) -> TimeSlot:
        row = self.db.fetch_dict("SELECT * FROM time_slots WHERE slot_id=?", [slot_id])
        if row is None:
            raise TimeSlotNotFoundError(details={"time_slot_id": slot_id})
        return TimeSlot(**row)

    def list_time_slots(self, on_date: Optional[date] = None, available_only: bool = True) -> List[TimeSlot]:
        """指定日期（默认今天）的取餐时段：当天的指定日期时段加上匹配星期的循环时段"""
        target = on_date or self.clock().date()
        query = """
            SELECT * FROM time_slots
            WHERE (slot_date = ? OR (slot_date IS NULL AND (day_of_week IS NULL OR day_of_week = ?)))
        """
        if available_only:
            query += " AND is_available"
        rows = self.db.fetch_dicts(query + " ORDER BY start_time, slot_id", [target, day_of_week(target)])
        return [TimeSlot(**r) for r in rows]

    def create_time_slot(self, req: TimeSlotCreateRequest, actor_id: Optional[int] = None) -> TimeSlot:
        row = self.db.fetch_dict(
            """
            INSERT INTO time_slots(start_time, end_time, slot_date, day_of_week, max_orders, description, created_at)
            VALUES (?,?,?,?,?,?,?)
            RETURNING *
            """,
            [req.start_time, req.end_time, req.slot_date, req.day_of_week, req.max_orders,
             req.description or "", self.clock()]
        )
        self.db.log_action("time_slot_create", None, actor_id, {"slot_id": row["slot_id"]})
        return TimeSlot(**row)

    def toggle_time_slot(self, slot_id: int, actor_id: Optional[int] = None) -> TimeSlot:
        self.get_time_slot(slot_id)
        row = self.db.fetch_dict(
            "UPDATE time_slots SET is_available = NOT is_available WHERE slot_id=? RETURNING *",
            [slot_id]
        )
        self.db.log_action("time_slot_toggle", None, actor_id,
                           {"slot_id": slot_id, "is_available": row["is_available"]})
        return TimeSlot(**row)

    def book_slot(self, slot_id: int) -> TimeSlot:
        """
        预订一个名额，容量检查与计数在同一条条件 UPDATE 中完成

        Raises:
            TimeSlotNotFoundError: 时段不存在
            SlotFullError: 时段已满或未开放
        """
        row = self.db.fetch_dict(
            """
            UPDATE time_slots SET current_orders = current_orders + 1
            WHERE slot_id = ? AND is_available AND current_orders < max_orders
            RETURNING *
            """,
            [slot_id]
        )
        if row is None:
            slot = self.get_time_slot(slot_id)
            if not slot.is_available:
                raise SlotFullError("所选取餐时段未开放", details={"time_slot_id": slot_id})
            raise SlotFullError(details={"time_slot_id": slot_id, "max_orders": slot.max_orders})
        return TimeSlot(**row)

    def release_slot(self, slot_id: int):
        """释放一个名额，计数不低于0"""
        self.db.execute(
            "UPDATE time_slots SET current_orders = current_orders - 1 WHERE slot_id=? AND current_orders > 0",
            [slot_id]
        )
