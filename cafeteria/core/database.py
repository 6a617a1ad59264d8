"""
数据库连接和管理模块
封装 DuckDB 连接、表结构、事务和查询辅助方法

所有访问都经过同一把可重入锁串行化；事务可以嵌套（内层直接复用外层事务），
DuckDB 抛出的异常在这里统一转换为应用异常。
"""

import json
import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Generator, List, Optional

import duckdb

from .exceptions import (
    BaseApplicationError,
    ConcurrencyError,
    DatabaseError,
    TransientStorageError,
)
from ..config.settings import settings

logger = logging.getLogger(__name__)

# 完整的表结构定义
SCHEMA_SQL = r"""
CREATE SEQUENCE IF NOT EXISTS users_id_seq;
CREATE TABLE IF NOT EXISTS users (
  id INTEGER DEFAULT nextval('users_id_seq') PRIMARY KEY,
  email TEXT UNIQUE NOT NULL,
  name TEXT,
  role TEXT CHECK(role IN ('student','cafeteria_staff','admin')) NOT NULL DEFAULT 'student',
  onboarding_completed BOOLEAN DEFAULT FALSE,
  nutritional_goal TEXT DEFAULT 'None',
  daily_calorie_intake DOUBLE DEFAULT 0,
  daily_protein_intake DOUBLE DEFAULT 0,
  last_intake_reset DATE,
  created_at TIMESTAMP DEFAULT current_timestamp,
  updated_at TIMESTAMP DEFAULT current_timestamp
);

CREATE SEQUENCE IF NOT EXISTS wallets_id_seq;
CREATE TABLE IF NOT EXISTS wallets (
  wallet_id INTEGER DEFAULT nextval('wallets_id_seq') PRIMARY KEY,
  user_id INTEGER UNIQUE NOT NULL,
  balance_cents BIGINT NOT NULL DEFAULT 0 CHECK(balance_cents >= 0),
  monthly_budget_cap_cents BIGINT NOT NULL DEFAULT 0 CHECK(monthly_budget_cap_cents >= 0),
  current_month_spent_cents BIGINT NOT NULL DEFAULT 0 CHECK(current_month_spent_cents >= 0),
  is_active BOOLEAN DEFAULT TRUE,
  last_transaction_date TIMESTAMP,
  created_at TIMESTAMP DEFAULT current_timestamp,
  updated_at TIMESTAMP DEFAULT current_timestamp
);

CREATE SEQUENCE IF NOT EXISTS transactions_id_seq;
CREATE TABLE IF NOT EXISTS transactions (
  transaction_id INTEGER DEFAULT nextval('transactions_id_seq') PRIMARY KEY,
  wallet_id INTEGER NOT NULL,
  user_id INTEGER NOT NULL,
  type TEXT CHECK(type IN ('credit','debit')) NOT NULL,
  amount_cents BIGINT NOT NULL CHECK(amount_cents > 0),
  description TEXT NOT NULL,
  order_id INTEGER,
  payment_method TEXT,
  balance_after_cents BIGINT NOT NULL,
  status TEXT CHECK(status IN ('pending','completed','failed','refunded')) NOT NULL DEFAULT 'completed',
  processed_by INTEGER,
  notes TEXT,
  created_at TIMESTAMP DEFAULT current_timestamp
);

CREATE INDEX IF NOT EXISTS idx_transactions_wallet ON transactions(wallet_id);
CREATE INDEX IF NOT EXISTS idx_transactions_user ON transactions(user_id);

CREATE SEQUENCE IF NOT EXISTS meals_id_seq;
CREATE TABLE IF NOT EXISTS meals (
  meal_id INTEGER DEFAULT nextval('meals_id_seq') PRIMARY KEY,
  name TEXT NOT NULL,
  description TEXT DEFAULT '',
  price_cents BIGINT NOT NULL CHECK(price_cents >= 0),
  cost_cents BIGINT NOT NULL DEFAULT 0 CHECK(cost_cents >= 0),
  calories DOUBLE NOT NULL DEFAULT 0,
  proteins DOUBLE NOT NULL DEFAULT 0,
  carbohydrates DOUBLE NOT NULL DEFAULT 0,
  fats DOUBLE NOT NULL DEFAULT 0,
  fiber DOUBLE NOT NULL DEFAULT 0,
  category TEXT NOT NULL DEFAULT 'Main Course',
  is_available BOOLEAN DEFAULT TRUE,
  available_days TEXT DEFAULT '1,2,3,4,5',
  order_count INTEGER DEFAULT 0,
  created_by INTEGER,
  created_at TIMESTAMP DEFAULT current_timestamp,
  updated_at TIMESTAMP DEFAULT current_timestamp
);

CREATE SEQUENCE IF NOT EXISTS time_slots_id_seq;
CREATE TABLE IF NOT EXISTS time_slots (
  slot_id INTEGER DEFAULT nextval('time_slots_id_seq') PRIMARY KEY,
  start_time TEXT NOT NULL,
  end_time TEXT NOT NULL,
  slot_date DATE,
  day_of_week INTEGER CHECK(day_of_week IS NULL OR (day_of_week >= 0 AND day_of_week <= 6)),
  max_orders INTEGER NOT NULL DEFAULT 50 CHECK(max_orders >= 1),
  current_orders INTEGER NOT NULL DEFAULT 0 CHECK(current_orders >= 0 AND current_orders <= max_orders),
  is_available BOOLEAN DEFAULT TRUE,
  description TEXT DEFAULT '',
  created_at TIMESTAMP DEFAULT current_timestamp
);

CREATE SEQUENCE IF NOT EXISTS orders_id_seq;
CREATE TABLE IF NOT EXISTS orders (
  order_id INTEGER DEFAULT nextval('orders_id_seq') PRIMARY KEY,
  order_number TEXT,
  student_id INTEGER NOT NULL,
  total_price_cents BIGINT NOT NULL,
  total_calories DOUBLE NOT NULL DEFAULT 0,
  total_proteins DOUBLE NOT NULL DEFAULT 0,
  total_carbs DOUBLE NOT NULL DEFAULT 0,
  time_slot_id INTEGER,
  pickup_time TIMESTAMP,
  pickup_time_end TIMESTAMP,
  payment_method TEXT CHECK(payment_method IN ('wallet','cash_on_delivery')) NOT NULL,
  payment_status TEXT CHECK(payment_status IN ('pending','paid','refunded')) NOT NULL DEFAULT 'pending',
  status TEXT CHECK(status IN ('pending','confirmed','preparing','ready','completed','cancelled')) NOT NULL DEFAULT 'pending',
  wellness_processed BOOLEAN NOT NULL DEFAULT FALSE,
  wellness_date DATE,
  qr_code TEXT,
  special_instructions TEXT DEFAULT '',
  cancellation_reason TEXT,
  notification_ready_sent BOOLEAN DEFAULT FALSE,
  collected_by INTEGER,
  collected_at TIMESTAMP,
  created_at TIMESTAMP DEFAULT current_timestamp,
  updated_at TIMESTAMP DEFAULT current_timestamp
);

CREATE INDEX IF NOT EXISTS idx_orders_student ON orders(student_id);

CREATE SEQUENCE IF NOT EXISTS order_items_id_seq;
CREATE TABLE IF NOT EXISTS order_items (
  item_id INTEGER DEFAULT nextval('order_items_id_seq') PRIMARY KEY,
  order_id INTEGER NOT NULL,
  meal_id INTEGER NOT NULL,
  meal_name TEXT,
  quantity INTEGER NOT NULL CHECK(quantity >= 1),
  unit_price_cents BIGINT NOT NULL,
  calories DOUBLE NOT NULL DEFAULT 0,
  proteins DOUBLE NOT NULL DEFAULT 0,
  carbohydrates DOUBLE NOT NULL DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id);

CREATE SEQUENCE IF NOT EXISTS wellness_id_seq;
CREATE TABLE IF NOT EXISTS wellness_tracking (
  tracking_id INTEGER DEFAULT nextval('wellness_id_seq') PRIMARY KEY,
  user_id INTEGER NOT NULL,
  date DATE NOT NULL,
  day INTEGER NOT NULL,
  month INTEGER NOT NULL,
  year INTEGER NOT NULL,
  daily_calories DOUBLE NOT NULL DEFAULT 0,
  daily_proteins DOUBLE NOT NULL DEFAULT 0,
  daily_carbs DOUBLE NOT NULL DEFAULT 0,
  daily_spent_cents BIGINT NOT NULL DEFAULT 0,
  monthly_calories DOUBLE NOT NULL DEFAULT 0,
  monthly_proteins DOUBLE NOT NULL DEFAULT 0,
  monthly_spent_cents BIGINT NOT NULL DEFAULT 0,
  orders_completed_today INTEGER NOT NULL DEFAULT 0,
  calorie_goal DOUBLE,
  protein_goal DOUBLE,
  carb_goal DOUBLE,
  created_at TIMESTAMP DEFAULT current_timestamp,
  updated_at TIMESTAMP DEFAULT current_timestamp,
  UNIQUE(user_id, date)
);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  user_id INTEGER,
  actor_id INTEGER,
  action TEXT,
  detail_json JSON,
  created_at TIMESTAMP DEFAULT current_timestamp
);

CREATE INDEX IF NOT EXISTS idx_logs_user ON logs(user_id);
CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


def _path_from_url(db_url: str) -> str:
    if db_url.startswith("duckdb://"):
        return db_url.replace("duckdb://", "", 1)
    return db_url


class DatabaseManager:
    """数据库管理器，封装所有数据库操作"""

    def __init__(self, db_path: Optional[str] = None, timeout_seconds: Optional[float] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self._local = threading.local()
        self.db_path = db_path or self._get_db_path_from_settings()
        if timeout_seconds is None:
            timeout_seconds = settings.db_timeout_seconds
        self.timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, app_settings) -> "DatabaseManager":
        return cls(_path_from_url(app_settings.database_url), app_settings.db_timeout_seconds)

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        return _path_from_url(settings.database_url)

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接（首次访问时建立连接并初始化表结构）"""
        with self._lock:
            if self._connection is None:
                if self.db_path != ":memory:":
                    Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
                try:
                    self._connection = duckdb.connect(self.db_path)
                except duckdb.Error as e:
                    # 文件被其他进程锁定时也走这里
                    raise self._translate(e) from e
                self._init_schema()
            return self._connection

    def get_connection(self) -> duckdb.DuckDBPyConnection:
        return self.connection

    def _init_schema(self):
        """初始化数据库表结构"""
        try:
            try:
                self._connection.execute("LOAD json")
            except duckdb.Error:
                pass  # 内置的 JSON 扩展无需显式加载
            self._connection.execute(SCHEMA_SQL)
        except duckdb.Error as e:
            raise DatabaseError(f"Failed to initialize schema: {e}")

    def init_database(self):
        """初始化数据库"""
        self.get_connection()

    def close(self):
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        同一线程内嵌套使用时复用外层事务；应用异常回滚后原样抛出，
        DuckDB 异常回滚后转换为应用异常。
        """
        with self._lock:
            conn = self.connection
            depth = getattr(self._local, "depth", 0)
            if depth:
                self._local.depth = depth + 1
                try:
                    yield conn
                finally:
                    self._local.depth = depth
                return

            self._run(lambda: conn.execute("BEGIN TRANSACTION"))
            self._local.depth = 1
            try:
                yield conn
                self._run(lambda: conn.execute("COMMIT"))
            except BaseApplicationError:
                self._rollback(conn)
                raise
            except duckdb.Error as e:
                self._rollback(conn)
                raise self._translate(e) from e
            except Exception:
                self._rollback(conn)
                raise
            finally:
                self._local.depth = 0

    def _rollback(self, conn: duckdb.DuckDBPyConnection):
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error:
            pass  # 事务已被 DuckDB 自动中止

    def _run(self, fn: Callable[[], Any]) -> Any:
        """执行一次数据库往返，超时后中断当前查询"""
        timer = None
        if self.timeout_seconds and self.timeout_seconds > 0:
            timer = threading.Timer(self.timeout_seconds, self._interrupt)
            timer.daemon = True
            timer.start()
        try:
            return fn()
        except duckdb.Error as e:
            raise self._translate(e) from e
        finally:
            if timer is not None:
                timer.cancel()

    def _interrupt(self):
        conn = self._connection
        if conn is not None:
            logger.warning("数据库查询超过 %.1fs，已中断", self.timeout_seconds)
            conn.interrupt()

    @staticmethod
    def _translate(error: Exception) -> BaseApplicationError:
        if isinstance(error, (duckdb.InterruptException, duckdb.IOException, duckdb.ConnectionException)):
            return TransientStorageError(f"存储暂时不可用: {error}")
        if isinstance(error, duckdb.TransactionException) or "conflict" in str(error).lower():
            return ConcurrencyError()
        return DatabaseError(f"数据库操作失败: {error}")

    def execute(self, query: str, params: list = None) -> None:
        """执行写操作"""
        with self._lock:
            con = self.connection
            self._run(lambda: con.execute(query, params or []))

    def execute_query(self, query: str, params: list = None) -> list:
        """执行查询并返回结果"""
        with self._lock:
            con = self.connection
            return self._run(lambda: con.execute(query, params or []).fetchall())

    def execute_one(self, query: str, params: list = None) -> Optional[tuple]:
        """执行查询并返回单条结果"""
        with self._lock:
            con = self.connection
            return self._run(lambda: con.execute(query, params or []).fetchone())

    def fetch_dicts(self, query: str, params: list = None) -> List[Dict[str, Any]]:
        """执行查询，按列名返回字典列表"""
        with self._lock:
            con = self.connection

            def _fetch():
                cur = con.execute(query, params or [])
                columns = [d[0] for d in cur.description]
                return [dict(zip(columns, row)) for row in cur.fetchall()]

            return self._run(_fetch)

    def fetch_dict(self, query: str, params: list = None) -> Optional[Dict[str, Any]]:
        """执行查询，返回第一行的字典形式"""
        rows = self.fetch_dicts(query, params)
        return rows[0] if rows else None

    def log_action(self, action: str, user_id: Optional[int] = None,
                   actor_id: Optional[int] = None, detail: Optional[Dict[str, Any]] = None):
        """写入业务审计日志"""
        self.execute(
            "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
            [user_id, actor_id, action, json.dumps(detail or {}, ensure_ascii=False, default=str)]
        )

