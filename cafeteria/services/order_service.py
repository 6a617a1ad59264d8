"""
订单服务模块
提供订单生命周期的核心业务逻辑，包括下单、状态流转、取消退款和取餐

主要功能：
- 下单：校验、价格/营养快照、扣款、预订取餐时段
- 状态流转：按状态机校验，完成时计入健康统计
- 取消：钱包支付的订单全额退款并释放时段名额
- 取餐：校验取餐码，累加学生每日摄入
- 查询：我的订单、全部订单（员工）、当日统计

业务规则：
- 订单写入、取餐码、扣款、流水和时段预订在同一个数据库事务中完成
- 健康统计与餐品热度在提交后尽力执行，失败只记日志，由对账任务补齐健康统计
- 订单总价与营养在下单时冻结，之后餐品改价不影响已有订单
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config.settings import Settings, settings as default_settings
from ..core.database import DatabaseManager
from ..core.exceptions import (
    AuthorizationError,
    CannotCancelError,
    EmptyOrderError,
    InsufficientBalanceError,
    InvalidPickupTokenError,
    InvalidStatusTransitionError,
    MealNotFoundError,
    MealUnavailableError,
    NotReadyError,
    OnboardingRequiredError,
    OrderNotFoundError,
    SlotFullError,
)
from ..models.order import (
    CANCELLABLE_STATUSES,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    can_transition,
    format_order_number,
)
from ..models.user import Principal
from ..schemas.order import OrderCreateRequest
from .catalog_service import CatalogService
from .pickup_token import decode_pickup_token, encode_pickup_token
from .user_service import UserService
from .wallet_service import WalletService
from .wellness_service import WellnessService

logger = logging.getLogger(__name__)


class OrderService:
    """订单服务类，编排钱包、目录和健康统计"""

    def __init__(self, db: DatabaseManager, wallet_service: WalletService,
                 catalog_service: CatalogService, wellness_service: WellnessService,
                 user_service: UserService, settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.wallets = wallet_service
        self.catalog = catalog_service
        self.wellness = wellness_service
        self.users = user_service
        self.settings = settings or default_settings
        self.clock = clock or datetime.now

    # ---- 下单 ----

    def create_order(self, user_id: int, req: OrderCreateRequest) -> Dict[str, Any]:
        """
        创建订单

        Args:
            user_id: 下单学生ID
            req: 订单行、取餐时段、支付方式和备注

        Returns:
            dict: {"order": 订单详情, "budget_warning": 超预算提示或 None}

        Raises:
            EmptyOrderError: 没有订单行
            OnboardingRequiredError: 未完成资料设置
            MealNotFoundError / MealUnavailableError: 餐品不存在或今日不可订
            TimeSlotNotFoundError / SlotFullError: 时段不存在或已满
            InsufficientBalanceError: 钱包支付且余额不足
        """
        if not req.items:
            raise EmptyOrderError()

        user = self.users.get_user(user_id)
        if not user.onboarding_completed:
            raise OnboardingRequiredError()

        now = self.clock()
        today = now.date()

        # 校验餐品并生成快照
        items: List[OrderItem] = []
        for line in req.items:
            meal = self.catalog.find_meal(line.meal_id)
            if meal is None:
                raise MealNotFoundError(details={"meal_id": line.meal_id})
            if not meal.is_available_on(today):
                raise MealUnavailableError(f"{meal.name} 今日不可订", details={"meal_id": meal.meal_id})
            n = meal.nutritional_info
            items.append(OrderItem(
                meal_id=meal.meal_id,
                meal_name=meal.name,
                quantity=line.quantity,
                unit_price_cents=meal.price_cents,
                calories=n.calories,
                proteins=n.proteins,
                carbohydrates=n.carbohydrates,
            ))

        slot = None
        if req.time_slot_id is not None:
            slot = self.catalog.get_time_slot(req.time_slot_id)
            if not slot.is_bookable():
                raise SlotFullError(details={"time_slot_id": slot.slot_id})

        total_price = sum(i.line_total_cents for i in items)
        total_calories = sum(i.calories * i.quantity for i in items)
        total_proteins = sum(i.proteins * i.quantity for i in items)
        total_carbs = sum(i.carbohydrates * i.quantity for i in items)

        pay_by_wallet = req.payment_method == PaymentMethod.WALLET
        wallet = self.wallets.find_wallet(user_id)
        if pay_by_wallet and (wallet is None or not wallet.can_afford(total_price)):
            raise InsufficientBalanceError(details={
                "required_cents": total_price,
                "balance_cents": wallet.balance_cents if wallet else 0,
            })

        budget_warning = None
        if wallet is not None and wallet.exceeds_budget(total_price):
            over = wallet.current_month_spent_cents + total_price - wallet.monthly_budget_cap_cents
            budget_warning = f"本次订单将超出月度预算 {over / 100:.2f} {self.settings.currency}"

        pickup_time = req.pickup_time
        if pickup_time is None and slot is not None:
            pickup_time = slot.pickup_start(today)
        pickup_end = pickup_time + timedelta(minutes=self.settings.pickup_window_minutes) if pickup_time else None

        with self.db.transaction():
            order_id = self.db.execute_one(
                """
                INSERT INTO orders(student_id, total_price_cents, total_calories, total_proteins, total_carbs,
                                   time_slot_id, pickup_time, pickup_time_end, payment_method, payment_status,
                                   status, special_instructions, created_at, updated_at)
                VALUES (?,?,?,?,?,?,?,?,?,'pending','pending',?,?,?)
                RETURNING order_id
                """,
                [user_id, total_price, total_calories, total_proteins, total_carbs,
                 req.time_slot_id, pickup_time, pickup_end, req.payment_method.value,
                 req.special_instructions or "", now, now]
            )[0]

            order_number = format_order_number(now, order_id)
            token = encode_pickup_token(order_id, order_number, user_id, self.settings.pickup_token_secret)
            self.db.execute(
                "UPDATE orders SET order_number=?, qr_code=? WHERE order_id=?",
                [order_number, token, order_id]
            )

            for item in items:
                self.db.execute(
                    """
                    INSERT INTO order_items(order_id, meal_id, meal_name, quantity, unit_price_cents,
                                            calories, proteins, carbohydrates)
                    VALUES (?,?,?,?,?,?,?,?)
                    """,
                    [order_id, item.meal_id, item.meal_name, item.quantity, item.unit_price_cents,
                     item.calories, item.proteins, item.carbohydrates]
                )

            if pay_by_wallet:
                if total_price > 0:
                    self.wallets.deduct_funds(user_id, total_price, f"订单 {order_number}", order_id=order_id)
                self.db.execute(
                    "UPDATE orders SET payment_status='paid' WHERE order_id=?", [order_id]
                )

            if slot is not None:
                self.catalog.book_slot(slot.slot_id)

            self.db.log_action("order_create", user_id, user_id, {
                "order_id": order_id,
                "order_number": order_number,
                "total_price_cents": total_price,
                "payment_method": req.payment_method.value,
            })

        logger.info("订单 %s 创建成功，金额 %s 分", order_number, total_price)

        if pay_by_wallet:
            self._apply_wellness_best_effort(order_id, today)
        for item in items:
            try:
                self.catalog.increment_order_count(item.meal_id)
            except Exception:
                logger.warning("餐品 %s 热度计数更新失败", item.meal_id, exc_info=True)

        return {"order": self.serialize(self.get_order(order_id)), "budget_warning": budget_warning}

    def _apply_wellness_best_effort(self, order_id: int, day=None):
        """计入健康统计；失败不影响主流程，由对账任务补齐"""
        try:
            self.wellness.apply_order(order_id, day)
        except Exception:
            logger.exception("订单 %s 计入健康统计失败，等待对账任务处理", order_id)

    # ---- 查询 ----

    def get_order(self, order_id: int) -> Order:
        row = self.db.fetch_dict("SELECT * FROM orders WHERE order_id=?", [order_id])
        if row is None:
            raise OrderNotFoundError(details={"order_id": order_id})
        return self._to_model(row)

    def get_order_for(self, order_id: int, principal: Principal) -> Order:
        """订单详情，仅下单学生本人或员工可见"""
        order = self.get_order(order_id)
        if not principal.is_staff and order.student_id != principal.id:
            raise AuthorizationError("无权查看该订单")
        return order

    def list_my_orders(self, user_id: int, page: int = 1, limit: int = 10,
                       status: Optional[str] = None) -> Tuple[List[Order], int]:
        where, params = ["student_id = ?"], [user_id]
        if status:
            where.append("status = ?")
            params.append(status)
        return self._list(where, params, page, limit)

    def list_all_orders(self, page: int = 1, limit: int = 10, status: Optional[str] = None,
                        on_date=None) -> Tuple[List[Order], int]:
        where, params = [], []
        if status:
            where.append("status = ?")
            params.append(status)
        if on_date:
            where.append("CAST(created_at AS DATE) = ?")
            params.append(on_date)
        return self._list(where, params, page, limit)

    def _list(self, where: List[str], params: List[Any], page: int, limit: int) -> Tuple[List[Order], int]:
        where_sql = f"WHERE {' AND '.join(where)}" if where else ""
        total = self.db.execute_one(f"SELECT COUNT(*) FROM orders {where_sql}", params)[0]
        rows = self.db.fetch_dicts(
            f"SELECT * FROM orders {where_sql} ORDER BY created_at DESC, order_id DESC LIMIT ? OFFSET ?",
            params + [limit, (page - 1) * limit]
        )
        return [self._to_model(r) for r in rows], int(total)

    def _to_model(self, row: Dict[str, Any]) -> Order:
        items = self.db.fetch_dicts(
            "SELECT meal_id, meal_name, quantity, unit_price_cents, calories, proteins, carbohydrates "
            "FROM order_items WHERE order_id=? ORDER BY item_id",
            [row["order_id"]]
        )
        return Order(**row, items=[OrderItem(**i) for i in items])

    def serialize(self, order: Order) -> Dict[str, Any]:
        """订单展示格式，订单行附带当前餐品信息"""
        data = order.model_dump(mode="json")
        for item in data["items"]:
            meal = self.catalog.find_meal(item["meal_id"])
            item["meal"] = {
                "meal_id": meal.meal_id,
                "name": meal.name,
                "description": meal.description,
                "category": meal.category,
            } if meal else None
            item["line_total_cents"] = item["unit_price_cents"] * item["quantity"]
        return data

    # ---- 状态流转 ----

    def update_status(self, order_id: int, new_status: str, actor_id: int,
                      reason: Optional[str] = None) -> Order:
        """
        员工更新订单状态

        转为 cancelled 走取消流程（退款、释放名额）；转为 completed 时计入健康统计。

        Raises:
            OrderNotFoundError: 订单不存在
            InvalidStatusTransitionError: 状态机不允许该转换
        """
        new_status = OrderStatus(new_status)
        if new_status == OrderStatus.CANCELLED:
            return self._cancel(order_id, reason or "员工取消", actor_id)

        current = self.get_order(order_id)
        if not can_transition(current.status, new_status):
            raise InvalidStatusTransitionError(
                f"订单状态不能从 {current.status} 变为 {new_status.value}",
                details={"from": current.status, "to": new_status.value}
            )

        row = self.db.fetch_dict(
            "UPDATE orders SET status=?, updated_at=? WHERE order_id=? AND status=? RETURNING order_id",
            [new_status.value, self.clock(), order_id, current.status]
        )
        if row is None:
            latest = self.get_order(order_id)
            raise InvalidStatusTransitionError(
                f"订单状态已变为 {latest.status}",
                details={"from": latest.status, "to": new_status.value}
            )
        self.db.log_action("order_status_update", current.student_id, actor_id, {
            "order_id": order_id, "from": current.status, "to": new_status.value,
        })

        if new_status == OrderStatus.COMPLETED:
            self._apply_wellness_best_effort(order_id, self.clock().date())
        return self.get_order(order_id)

    # ---- 取消 ----

    def cancel_order(self, order_id: int, principal: Principal, reason: Optional[str] = None) -> Order:
        """学生取消自己的订单"""
        order = self.get_order(order_id)
        if order.student_id != principal.id:
            raise AuthorizationError("只能取消自己的订单")
        return self._cancel(order_id, reason or "学生取消", principal.id)

    def _cancel(self, order_id: int, reason: str, actor_id: int) -> Order:
        now = self.clock()
        statuses = ", ".join(f"'{s}'" for s in sorted(CANCELLABLE_STATUSES))
        with self.db.transaction():
            row = self.db.fetch_dict(
                f"""
                UPDATE orders SET status='cancelled', cancellation_reason=?, updated_at=?
                WHERE order_id=? AND status IN ({statuses})
                RETURNING *
                """,
                [reason, now, order_id]
            )
            if row is None:
                current = self.get_order(order_id)
                raise CannotCancelError(details={"order_id": order_id, "status": current.status})

            refunded = 0
            if row["payment_status"] == PaymentStatus.PAID.value and row["payment_method"] == PaymentMethod.WALLET.value:
                if row["total_price_cents"] > 0:
                    self.wallets.refund(row["student_id"], row["total_price_cents"], order_id,
                                        f"订单 {row['order_number']} 退款")
                    refunded = row["total_price_cents"]
                self.db.execute("UPDATE orders SET payment_status='refunded' WHERE order_id=?", [order_id])

            if row["time_slot_id"] is not None:
                self.catalog.release_slot(row["time_slot_id"])

            self.wellness.reverse_order(
                row,
                spend=self.settings.refund_reverses_wellness_spend and refunded > 0,
                nutrition=self.settings.refund_reverses_wellness_nutrition,
            )
            self.db.log_action("order_cancel", row["student_id"], actor_id, {
                "order_id": order_id, "reason": reason, "refunded_cents": refunded,
            })

        logger.info("订单 %s 已取消，退款 %s 分", row["order_number"], refunded)
        return self.get_order(order_id)

    # ---- 取餐 ----

    def collect_order(self, order_id: int, staff_id: int, pickup_token: Optional[str] = None) -> Order:
        """
        员工确认取餐

        Raises:
            InvalidPickupTokenError: 提供的取餐码与订单不符
            OrderNotFoundError: 订单不存在
            NotReadyError: 订单不是待取餐状态
        """
        if pickup_token:
            payload = decode_pickup_token(pickup_token, self.settings.pickup_token_secret)
            if payload["orderId"] != order_id:
                raise InvalidPickupTokenError("取餐码与订单不匹配", details={"order_id": order_id})

        now = self.clock()
        with self.db.transaction():
            row = self.db.fetch_dict(
                """
                UPDATE orders SET status='completed', collected_by=?, collected_at=?, updated_at=?
                WHERE order_id=? AND status='ready'
                RETURNING *
                """,
                [staff_id, now, now, order_id]
            )
            if row is None:
                current = self.get_order(order_id)
                raise NotReadyError(details={"order_id": order_id, "status": current.status})
            self.users.add_daily_intake(row["student_id"], row["total_calories"], row["total_proteins"], now.date())
            self.db.log_action("order_collect", row["student_id"], staff_id, {"order_id": order_id})

        self._apply_wellness_best_effort(order_id, now.date())
        return self.get_order(order_id)

    # ---- 统计 ----

    def today_stats(self) -> Dict[str, Any]:
        """当日订单数与营收，按状态分组"""
        today = self.clock().date()
        rows = self.db.fetch_dicts(
            """
            SELECT status, COUNT(*) AS count, COALESCE(SUM(total_price_cents), 0) AS revenue_cents
            FROM orders WHERE CAST(created_at AS DATE) = ?
            GROUP BY status ORDER BY status
            """,
            [today]
        )
        by_status = [
            {"status": r["status"], "count": int(r["count"]), "revenue_cents": int(r["revenue_cents"])}
            for r in rows
        ]
        return {
            "date": today.isoformat(),
            "total_orders": sum(s["count"] for s in by_status),
            "total_revenue_cents": sum(s["revenue_cents"] for s in by_status),
            "by_status": by_status,
        }
