"""
钱包服务模块
提供钱包余额、月度预算和流水账本的核心业务逻辑

主要功能：
- 入账/扣款：单条条件 UPDATE 完成余额变更，同一事务内写入流水
- 退款：入账并冲减本月消费
- 月度消费重置、预算上限设置
- 流水查询与汇总、余额与预算摘要、本月统计
- 员工柜台充值

业务规则：
- 余额永不为负，扣款在存储层以 balance_cents >= amount 为条件
- 每次余额变动恰好对应一条流水，流水只追加不修改
- 本月消费只在 wallets.current_month_spent_cents 一处累计
"""

import logging
import math
from datetime import date, datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..config.settings import Settings, settings as default_settings
from ..core.database import DatabaseManager
from ..core.exceptions import (
    InsufficientBalanceError,
    InvalidAmountError,
    UserNotFoundError,
    ValidationError,
    WalletNotFoundError,
)
from ..models.user import Role
from ..models.wallet import Transaction, TransactionType, Wallet

logger = logging.getLogger(__name__)


def serialize_wallet(wallet: Wallet, currency: str) -> Dict[str, Any]:
    """钱包对外展示格式，不限额时剩余预算为 None"""
    data = wallet.model_dump()
    remaining = wallet.remaining_budget_cents()
    data["remaining_budget_cents"] = None if remaining == math.inf else remaining
    data["budget_usage_percentage"] = wallet.budget_usage_percentage()
    data["currency"] = currency
    return data


class WalletService:
    """钱包服务类，封装余额与流水相关的业务逻辑"""

    def __init__(self, db: DatabaseManager, settings: Optional[Settings] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self.settings = settings or default_settings
        self.clock = clock or datetime.now

    # ---- 查询 ----

    def get_wallet(self, user_id: int) -> Wallet:
        row = self.db.fetch_dict("SELECT * FROM wallets WHERE user_id=?", [user_id])
        if row is None:
            raise WalletNotFoundError(details={"user_id": user_id})
        return Wallet(**row)

    def find_wallet(self, user_id: int) -> Optional[Wallet]:
        row = self.db.fetch_dict("SELECT * FROM wallets WHERE user_id=?", [user_id])
        return Wallet(**row) if row else None

    def get_or_create_wallet(self, user_id: int) -> Wallet:
        """获取钱包，不存在时创建（并发重复创建时回读已有记录）"""
        wallet = self.find_wallet(user_id)
        if wallet is not None:
            return wallet
        now = self.clock()
        self.db.execute(
            "INSERT INTO wallets(user_id, created_at, updated_at) VALUES (?,?,?) ON CONFLICT DO NOTHING",
            [user_id, now, now]
        )
        return self.get_wallet(user_id)

    # ---- 余额变动 ----

    def add_funds(self, user_id: int, amount_cents: int, description: str,
                  order_id: Optional[int] = None, payment_method: Optional[str] = None,
                  processed_by: Optional[int] = None,
                  notes: Optional[str] = None) -> Tuple[Wallet, Transaction]:
        """
        钱包入账

        Raises:
            InvalidAmountError: 金额不大于0
            WalletNotFoundError: 钱包不存在
        """
        self._check_amount(amount_cents)
        now = self.clock()
        with self.db.transaction():
            row = self.db.fetch_dict(
                """
                UPDATE wallets
                SET balance_cents = balance_cents + ?, last_transaction_date = ?, updated_at = ?
                WHERE user_id = ?
                RETURNING *
                """,
                [amount_cents, now, now, user_id]
            )
            if row is None:
                raise WalletNotFoundError(details={"user_id": user_id})
            txn = self._record(row, TransactionType.CREDIT, amount_cents, description, now,
                               order_id=order_id, payment_method=payment_method,
                               processed_by=processed_by, notes=notes)
        return Wallet(**row), txn

    def deduct_funds(self, user_id: int, amount_cents: int, description: str,
                     order_id: Optional[int] = None,
                     payment_method: Optional[str] = "wallet") -> Tuple[Wallet, Transaction]:
        """
        钱包扣款，余额检查与扣减在同一条条件 UPDATE 中完成

        Raises:
            InvalidAmountError: 金额不大于0
            WalletNotFoundError: 钱包不存在
            InsufficientBalanceError: 余额不足，余额保持不变
        """
        self._check_amount(amount_cents)
        now = self.clock()
        with self.db.transaction():
            row = self.db.fetch_dict(
                """
                UPDATE wallets
                SET balance_cents = balance_cents - ?,
                    current_month_spent_cents = current_month_spent_cents + ?,
                    last_transaction_date = ?, updated_at = ?
                WHERE user_id = ? AND balance_cents >= ?
                RETURNING *
                """,
                [amount_cents, amount_cents, now, now, user_id, amount_cents]
            )
            if row is None:
                current = self.db.execute_one("SELECT balance_cents FROM wallets WHERE user_id=?", [user_id])
                if current is None:
                    raise WalletNotFoundError(details={"user_id": user_id})
                raise InsufficientBalanceError(details={
                    "required_cents": amount_cents,
                    "balance_cents": current[0],
                })
            txn = self._record(row, TransactionType.DEBIT, amount_cents, description, now,
                               order_id=order_id, payment_method=payment_method)
        return Wallet(**row), txn

    def refund(self, user_id: int, amount_cents: int, order_id: int,
               description: str) -> Tuple[Wallet, Transaction]:
        """订单退款：入账并冲减本月消费（不低于0）"""
        self._check_amount(amount_cents)
        now = self.clock()
        with self.db.transaction():
            row = self.db.fetch_dict(
                """
                UPDATE wallets
                SET balance_cents = balance_cents + ?,
                    current_month_spent_cents = GREATEST(current_month_spent_cents - ?, 0),
                    last_transaction_date = ?, updated_at = ?
                WHERE user_id = ?
                RETURNING *
                """,
                [amount_cents, amount_cents, now, now, user_id]
            )
            if row is None:
                raise WalletNotFoundError(details={"user_id": user_id})
            txn = self._record(row, TransactionType.CREDIT, amount_cents, description, now,
                               order_id=order_id, payment_method="wallet")
        return Wallet(**row), txn

    def recharge(self, user_id: int, amount_cents: int,
                 payment_method: Optional[str] = "online") -> Tuple[Wallet, Transaction]:
        """学生自助充值"""
        wallet, txn = self.add_funds(user_id, amount_cents, "钱包充值", payment_method=payment_method)
        self.db.log_action("wallet_recharge", user_id, user_id, {
            "amount_cents": amount_cents,
            "balance_after_cents": wallet.balance_cents,
            "transaction_id": txn.transaction_id,
        })
        logger.info("用户 %s 充值 %s 分", user_id, amount_cents)
        return wallet, txn

    def staff_charge(self, staff_id: int, student_id: int, amount_cents: int,
                     payment_method: str, notes: Optional[str] = None) -> Tuple[Wallet, Transaction]:
        """员工柜台为学生充值，只允许给学生账户充值"""
        user = self.db.execute_one("SELECT role FROM users WHERE id=?", [student_id])
        if user is None:
            raise UserNotFoundError(details={"user_id": student_id})
        if user[0] != Role.STUDENT.value:
            raise ValidationError("只能为学生钱包充值", "NOT_A_STUDENT")
        self.get_or_create_wallet(student_id)
        wallet, txn = self.add_funds(
            student_id, amount_cents, f"柜台充值（{payment_method}）",
            payment_method=payment_method, processed_by=staff_id, notes=notes
        )
        self.db.log_action("wallet_staff_charge", student_id, staff_id, {
            "amount_cents": amount_cents,
            "payment_method": payment_method,
            "transaction_id": txn.transaction_id,
        })
        return wallet, txn

    def _record(self, wallet_row: Dict[str, Any], txn_type: TransactionType, amount_cents: int,
                description: str, now: datetime, order_id: Optional[int] = None,
                payment_method: Optional[str] = None, processed_by: Optional[int] = None,
                notes: Optional[str] = None) -> Transaction:
        """写入一条流水，balance_after 取自同一事务内刚更新的余额"""
        row = self.db.fetch_dict(
            """
            INSERT INTO transactions(wallet_id, user_id, type, amount_cents, description, order_id,
                                     payment_method, balance_after_cents, status, processed_by, notes, created_at)
            VALUES (?,?,?,?,?,?,?,?,'completed',?,?,?)
            RETURNING *
            """,
            [wallet_row["wallet_id"], wallet_row["user_id"], txn_type.value, amount_cents, description,
             order_id, payment_method, wallet_row["balance_cents"], processed_by, notes, now]
        )
        return Transaction(**row)

    @staticmethod
    def _check_amount(amount_cents: Any):
        if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
            raise InvalidAmountError(details={"amount_cents": amount_cents})

    # ---- 预算 ----

    def update_budget_cap(self, user_id: int, cap_cents: int, actor_id: Optional[int] = None) -> Wallet:
        if cap_cents is None or cap_cents < 0:
            raise ValidationError("月度预算不能为负数", "INVALID_BUDGET")
        row = self.db.fetch_dict(
            "UPDATE wallets SET monthly_budget_cap_cents=?, updated_at=? WHERE user_id=? RETURNING *",
            [cap_cents, self.clock(), user_id]
        )
        if row is None:
            raise WalletNotFoundError(details={"user_id": user_id})
        self.db.log_action("wallet_budget_update", user_id, actor_id or user_id,
                           {"monthly_budget_cap_cents": cap_cents})
        return Wallet(**row)

    def reset_monthly_spending(self, user_id: int, actor_id: Optional[int] = None) -> Wallet:
        row = self.db.fetch_dict(
            "UPDATE wallets SET current_month_spent_cents=0, updated_at=? WHERE user_id=? RETURNING *",
            [self.clock(), user_id]
        )
        if row is None:
            raise WalletNotFoundError(details={"user_id": user_id})
        self.db.log_action("wallet_monthly_reset", user_id, actor_id, {})
        return Wallet(**row)

    def reset_all_monthly_spending(self, actor_id: Optional[int] = None) -> int:
        """重置所有钱包的本月消费，返回受影响钱包数"""
        rows = self.db.execute_query(
            "UPDATE wallets SET current_month_spent_cents=0, updated_at=? "
            "WHERE current_month_spent_cents > 0 RETURNING wallet_id",
            [self.clock()]
        )
        self.db.log_action("wallet_monthly_reset_all", None, actor_id, {"wallets": len(rows)})
        logger.info("月度消费已重置，共 %d 个钱包", len(rows))
        return len(rows)

    # ---- 报表 ----

    def list_transactions(self, user_id: int, page: int = 1, limit: int = 10,
                          txn_type: Optional[str] = None, start_date: Optional[date] = None,
                          end_date: Optional[date] = None) -> Tuple[List[Transaction], int, Dict[str, Any]]:
        """分页查询流水，返回 (流水列表, 总数, 入账/扣款汇总)"""
        wallet = self.get_wallet(user_id)
        where = ["wallet_id = ?"]
        params: List[Any] = [wallet.wallet_id]
        if txn_type:
            where.append("type = ?")
            params.append(txn_type)
        if start_date:
            where.append("created_at >= ?")
            params.append(datetime.combine(start_date, datetime.min.time()))
        if end_date:
            where.append("created_at < ?")
            params.append(datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
        where_sql = " AND ".join(where)

        rows = self.db.fetch_dicts(
            f"SELECT * FROM transactions WHERE {where_sql} "
            "ORDER BY created_at DESC, transaction_id DESC LIMIT ? OFFSET ?",
            params + [limit, (page - 1) * limit]
        )
        summary_row = self.db.fetch_dict(
            f"""
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(CASE WHEN type='credit' THEN amount_cents END), 0) AS total_credits_cents,
                   COALESCE(SUM(CASE WHEN type='debit' THEN amount_cents END), 0) AS total_debits_cents,
                   COUNT(CASE WHEN type='credit' THEN 1 END) AS credit_count,
                   COUNT(CASE WHEN type='debit' THEN 1 END) AS debit_count
            FROM transactions WHERE {where_sql}
            """,
            params
        )
        total = int(summary_row.pop("total"))
        summary = {k: int(v) for k, v in summary_row.items()}
        return [Transaction(**r) for r in rows], total, summary

    def balance_summary(self, user_id: int) -> Dict[str, Any]:
        return serialize_wallet(self.get_wallet(user_id), self.settings.currency)

    def monthly_stats(self, user_id: int) -> Dict[str, Any]:
        """本月入账/扣款统计"""
        wallet = self.get_wallet(user_id)
        now = self.clock()
        month_start = datetime(now.year, now.month, 1)
        row = self.db.fetch_dict(
            """
            SELECT COALESCE(SUM(CASE WHEN type='credit' THEN amount_cents END), 0) AS credits_cents,
                   COALESCE(SUM(CASE WHEN type='debit' THEN amount_cents END), 0) AS debits_cents,
                   COUNT(CASE WHEN type='credit' THEN 1 END) AS credit_count,
                   COUNT(CASE WHEN type='debit' THEN 1 END) AS debit_count
            FROM transactions WHERE wallet_id=? AND created_at >= ?
            """,
            [wallet.wallet_id, month_start]
        )
        credit_count, debit_count = int(row["credit_count"]), int(row["debit_count"])
        credits, debits = int(row["credits_cents"]), int(row["debits_cents"])
        return {
            "year": now.year,
            "month": now.month,
            "balance_cents": wallet.balance_cents,
            "credits_cents": credits,
            "debits_cents": debits,
            "credit_count": credit_count,
            "debit_count": debit_count,
            "average_credit_cents": round(credits / credit_count) if credit_count else 0,
            "average_debit_cents": round(debits / debit_count) if debit_count else 0,
            "current_month_spent_cents": wallet.current_month_spent_cents,
            "monthly_budget_cap_cents": wallet.monthly_budget_cap_cents,
        }

    def replay_ledger(self, wallet_id: int) -> int:
        """从0开始回放流水得到的余额"""
        row = self.db.execute_one(
            "SELECT COALESCE(SUM(CASE WHEN type='credit' THEN amount_cents ELSE -amount_cents END), 0) "
            "FROM transactions WHERE wallet_id=?",
            [wallet_id]
        )
        return int(row[0])
