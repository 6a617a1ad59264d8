"""
数据一致性检查服务
检查钱包余额与流水、时段计数、订单支付和健康统计之间的一致性
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..core.database import DatabaseManager
from ..models.order import COUNTABLE_ORDER_SQL

logger = logging.getLogger(__name__)


class ConsistencyCheckResult:
    """一致性检查结果"""

    def __init__(self):
        self.issues: List[Dict[str, Any]] = []
        self.warnings: List[Dict[str, Any]] = []
        self.statistics: Dict[str, Any] = {}

    def add_issue(self, issue_type: str, description: str, details: Dict[str, Any] = None):
        """添加问题"""
        self.issues.append({
            'type': issue_type,
            'description': description,
            'details': details or {},
            'severity': 'error',
        })

    def add_warning(self, warning_type: str, description: str, details: Dict[str, Any] = None):
        """添加警告"""
        self.warnings.append({
            'type': warning_type,
            'description': description,
            'details': details or {},
            'severity': 'warning',
        })

    def to_dict(self) -> Dict[str, Any]:
        return {
            'issues': self.issues,
            'warnings': self.warnings,
            'statistics': self.statistics,
            'summary': {
                'total_issues': len(self.issues),
                'total_warnings': len(self.warnings),
                'status': 'healthy' if not self.issues else 'issues_found',
                'checked_at': datetime.now().isoformat()
            }
        }


class ConsistencyService:
    """数据一致性服务"""

    def __init__(self, db: DatabaseManager):
        self.db = db

    def check_data_consistency(self, operator_id: Optional[int] = None,
                               include_warnings: bool = True) -> Dict[str, Any]:
        """
        全面的数据一致性检查

        Args:
            operator_id: 操作员ID（写入审计日志）
            include_warnings: 是否包含警告信息
        """
        result = ConsistencyCheckResult()
        result.statistics = self._collect_basic_statistics()

        self._check_ledger_balances(result)
        self._check_negative_balances(result)
        self._check_paid_orders_have_debits(result)
        self._check_slot_counters(result)

        if include_warnings:
            self._check_users_without_wallet(result)
            self._check_pending_wellness(result)

        self.db.log_action("consistency_check", None, operator_id, {
            "issues": len(result.issues), "warnings": len(result.warnings),
        })
        if result.issues:
            logger.warning("一致性检查发现 %d 个问题", len(result.issues))
        return result.to_dict()

    def _collect_basic_statistics(self) -> Dict[str, Any]:
        """收集基础统计信息"""
        wallets = self.db.fetch_dict("""
            SELECT COUNT(*) AS total,
                   COALESCE(SUM(balance_cents), 0) AS total_balance_cents,
                   COALESCE(SUM(current_month_spent_cents), 0) AS month_spent_cents
            FROM wallets
        """)
        orders = self.db.fetch_dicts("SELECT status, COUNT(*) AS count FROM orders GROUP BY status ORDER BY status")
        return {
            'users': int(self.db.execute_one("SELECT COUNT(*) FROM users")[0]),
            'wallets': {k: int(v) for k, v in wallets.items()},
            'orders': {r['status']: int(r['count']) for r in orders},
            'transactions': int(self.db.execute_one("SELECT COUNT(*) FROM transactions")[0]),
        }

    def _check_ledger_balances(self, result: ConsistencyCheckResult):
        """流水回放结果应与钱包余额一致"""
        rows = self.db.fetch_dicts("""
            SELECT w.wallet_id, w.user_id, w.balance_cents,
                   COALESCE(SUM(CASE WHEN t.type='credit' THEN t.amount_cents
                                     ELSE -t.amount_cents END), 0) AS ledger_cents
            FROM wallets w LEFT JOIN transactions t ON t.wallet_id = w.wallet_id
            GROUP BY w.wallet_id, w.user_id, w.balance_cents
            HAVING w.balance_cents != COALESCE(SUM(CASE WHEN t.type='credit' THEN t.amount_cents
                                                        ELSE -t.amount_cents END), 0)
        """)
        for r in rows:
            result.add_issue('ledger_mismatch', f"钱包 {r['wallet_id']} 余额与流水不一致", {
                'wallet_id': r['wallet_id'],
                'user_id': r['user_id'],
                'balance_cents': int(r['balance_cents']),
                'ledger_cents': int(r['ledger_cents']),
            })

    def _check_negative_balances(self, result: ConsistencyCheckResult):
        for wallet_id, balance in self.db.execute_query(
            "SELECT wallet_id, balance_cents FROM wallets WHERE balance_cents < 0"
        ):
            result.add_issue('negative_balance', f"钱包 {wallet_id} 余额为负",
                             {'wallet_id': wallet_id, 'balance_cents': balance})

    def _check_paid_orders_have_debits(self, result: ConsistencyCheckResult):
        """钱包支付的已付订单必须有对应扣款流水"""
        rows = self.db.execute_query("""
            SELECT o.order_id, o.order_number FROM orders o
            WHERE o.payment_method = 'wallet' AND o.payment_status IN ('paid', 'refunded')
              AND o.total_price_cents > 0
              AND NOT EXISTS (
                  SELECT 1 FROM transactions t WHERE t.order_id = o.order_id AND t.type = 'debit'
              )
        """)
        for order_id, order_number in rows:
            result.add_issue('paid_without_debit', f"订单 {order_number} 已支付但没有扣款流水",
                             {'order_id': order_id})

    def _check_slot_counters(self, result: ConsistencyCheckResult):
        """时段计数不超过容量，且不少于引用它的有效订单数"""
        rows = self.db.fetch_dicts("""
            SELECT s.slot_id, s.max_orders, s.current_orders,
                   COUNT(o.order_id) AS live_orders
            FROM time_slots s
            LEFT JOIN orders o ON o.time_slot_id = s.slot_id AND o.status != 'cancelled'
            GROUP BY s.slot_id, s.max_orders, s.current_orders
        """)
        for r in rows:
            if r['current_orders'] > r['max_orders']:
                result.add_issue('slot_overbooked', f"时段 {r['slot_id']} 超出容量", dict(r))
            elif r['current_orders'] < r['live_orders']:
                result.add_issue('slot_counter_low', f"时段 {r['slot_id']} 计数少于有效订单数",
                                 {k: int(v) for k, v in r.items()})

    def _check_users_without_wallet(self, result: ConsistencyCheckResult):
        for (user_id,) in self.db.execute_query("""
            SELECT u.id FROM users u
            WHERE NOT EXISTS (SELECT 1 FROM wallets w WHERE w.user_id = u.id)
        """):
            result.add_warning('missing_wallet', f"用户 {user_id} 没有钱包", {'user_id': user_id})

    def _check_pending_wellness(self, result: ConsistencyCheckResult):
        count = self.db.execute_one(
            f"SELECT COUNT(*) FROM orders WHERE {COUNTABLE_ORDER_SQL} AND NOT wellness_processed"
        )[0]
        if count:
            result.add_warning('wellness_pending', f"{count} 个订单尚未计入健康统计", {'count': int(count)})
