from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 数据库配置
    database_url: str = "duckdb://./data/cafeteria.duckdb"
    db_timeout_seconds: float = 10.0  # 单次数据库往返的超时，0 表示不限制

    # JWT配置
    jwt_secret_key: str = "change-me-in-production-jwt-secret-key"
    jwt_algorithm: str = "HS256"
    jwt_expire_hours: int = 24 * 7  # 7天

    # 取餐码签名密钥
    pickup_token_secret: str = "change-me-in-production-pickup-secret"

    # API配置
    api_title: str = "Campus Cafeteria API"
    api_version: str = "1.0.0"
    api_prefix: str = "/api/v1"
    default_page_size: int = 10
    max_page_size: int = 100

    # 业务配置
    currency: str = "DH"
    pickup_window_minutes: int = 30

    # 后台任务
    scheduler_enabled: bool = True
    reconciliation_interval_seconds: int = 30
    reconciliation_batch_size: int = 500
    monthly_reset_enabled: bool = False

    # 取消退款时是否回退已计入的健康统计（消费与营养分开控制）
    refund_reverses_wellness_spend: bool = False
    refund_reverses_wellness_nutrition: bool = False

    # 日志 / 开发模式
    log_level: str = "INFO"
    debug: bool = False

    model_config = SettingsConfigDict(
        env_prefix="CAFETERIA_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )


# 全局设置实例
settings = Settings()
