from ..settings import Settings


class DevelopmentSettings(Settings):
    debug: bool = True
    log_level: str = "DEBUG"
    database_url: str = "duckdb://./data/cafeteria_dev.duckdb"
    reconciliation_interval_seconds: int = 10
