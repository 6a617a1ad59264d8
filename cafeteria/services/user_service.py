"""
用户服务
处理用户资料、资料设置（onboarding）和每日摄入计数
"""

import logging
from datetime import date, datetime
from typing import Any, Callable, Dict, Optional

from ..config.settings import Settings, settings as default_settings
from ..core.database import DatabaseManager
from ..core.exceptions import ConflictError, UserNotFoundError
from ..models.user import NutritionalGoal, Role, User
from .wallet_service import WalletService, serialize_wallet

logger = logging.getLogger(__name__)


class UserService:
    """用户服务"""

    def __init__(self, db: DatabaseManager, wallet_service: WalletService,
                 settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.wallets = wallet_service
        self.settings = settings or default_settings
        self.clock = clock or datetime.now

    def create_user(self, email: str, name: Optional[str] = None, role: Role = Role.STUDENT,
                    onboarding_completed: bool = False) -> User:
        """创建用户，同一事务内创建钱包"""
        if self.db.execute_one("SELECT 1 FROM users WHERE email=?", [email]):
            raise ConflictError("邮箱已被注册", "DUPLICATE_EMAIL")
        now = self.clock()
        with self.db.transaction():
            row = self.db.fetch_dict(
                """
                INSERT INTO users(email, name, role, onboarding_completed, created_at, updated_at)
                VALUES (?,?,?,?,?,?)
                RETURNING *
                """,
                [email, name, Role(role).value, onboarding_completed, now, now]
            )
            self.wallets.get_or_create_wallet(row["id"])
        logger.info("创建用户 %s (%s)", row["id"], row["role"])
        return User(**row)

    def get_user(self, user_id: int) -> User:
        row = self.db.fetch_dict("SELECT * FROM users WHERE id=?", [user_id])
        if row is None:
            raise UserNotFoundError(details={"user_id": user_id})
        return User(**row)

    def get_profile(self, user_id: int) -> Dict[str, Any]:
        """用户资料及钱包摘要"""
        user = self.get_user(user_id)
        wallet = self.wallets.find_wallet(user_id)
        return {
            "user": user.model_dump(),
            "wallet": serialize_wallet(wallet, self.settings.currency) if wallet else None,
        }

    def complete_onboarding(self, user_id: int, nutritional_goal: str = NutritionalGoal.NONE,
                            monthly_budget_cap_cents: int = 0) -> Dict[str, Any]:
        """完成资料设置：记录营养目标，确保钱包存在并设置月度预算"""
        self.get_user(user_id)
        with self.db.transaction():
            self.db.execute(
                "UPDATE users SET onboarding_completed=TRUE, nutritional_goal=?, updated_at=? WHERE id=?",
                [NutritionalGoal(nutritional_goal).value, self.clock(), user_id]
            )
            self.wallets.get_or_create_wallet(user_id)
            self.wallets.update_budget_cap(user_id, monthly_budget_cap_cents, actor_id=user_id)
            self.db.log_action("user_onboarding", user_id, user_id, {
                "nutritional_goal": NutritionalGoal(nutritional_goal).value,
                "monthly_budget_cap_cents": monthly_budget_cap_cents,
            })
        return self.get_profile(user_id)

    def add_daily_intake(self, user_id: int, calories: float, proteins: float, day: date):
        """
        累加用户的每日摄入

        当天首次累加时先清零（last_intake_reset 不是当天），整个过程是一条 UPDATE。
        """
        self.db.execute(
            """
            UPDATE users SET
                daily_calorie_intake = CASE WHEN last_intake_reset IS DISTINCT FROM ?
                                            THEN ? ELSE daily_calorie_intake + ? END,
                daily_protein_intake = CASE WHEN last_intake_reset IS DISTINCT FROM ?
                                            THEN ? ELSE daily_protein_intake + ? END,
                last_intake_reset = ?,
                updated_at = ?
            WHERE id = ?
            """,
            [day, calories, calories, day, proteins, proteins, day, self.clock(), user_id]
        )
