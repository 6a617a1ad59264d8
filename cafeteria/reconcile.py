"""
健康统计对账命令行

用法:
    python -m cafeteria.reconcile           执行一轮对账
    python -m cafeteria.reconcile --watch   按配置的间隔持续对账

DuckDB 文件同一时间只能被一个进程打开；API 服务运行时请改用
POST /api/v1/admin/reconciliation/run。

退出码: 0 成功，1 有订单对账失败，2 数据库不可用
"""

import logging
import sys
import time
from typing import Optional

from .app import configure_logging
from .config import get_settings
from .config.settings import Settings
from .core.database import DatabaseManager
from .core.exceptions import BaseApplicationError, TransientStorageError
from .services import build_services

logger = logging.getLogger("cafeteria.reconcile")


def show_help():
    print(__doc__)


def run(watch: bool = False, settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    configure_logging(settings)
    services = build_services(DatabaseManager.from_settings(settings), settings)

    try:
        summary = services.reconciliation.run_once()
        print(f"found={summary['found']} processed={summary['processed']} "
              f"skipped={summary['skipped']} errors={summary['errors']}")
        if not watch:
            return 1 if summary["errors"] else 0

        interval = settings.reconciliation_interval_seconds
        logger.info("持续对账中，间隔 %ss，Ctrl+C 退出", interval)
        while True:
            time.sleep(interval)
            services.reconciliation.run_once()
    except TransientStorageError as e:
        logger.error("无法打开数据库: %s", e.message)
        print(f"数据库 {services.db.db_path} 当前不可用（可能正被API服务占用）。\n"
              f"服务运行中时请调用 POST {settings.api_prefix}/admin/reconciliation/run 执行对账。",
              file=sys.stderr)
        return 2
    except BaseApplicationError as e:
        logger.error("对账失败: [%s] %s", e.error_code, e.message)
        return 1
    except KeyboardInterrupt:
        logger.info("对账已停止")
        return 0
    finally:
        services.db.close()


def main():
    """主函数"""
    args = sys.argv[1:]
    if "--help" in args or "-h" in args:
        show_help()
        return
    sys.exit(run(watch="--watch" in args))


if __name__ == "__main__":
    main()
