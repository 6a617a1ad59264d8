import os

from .settings import Settings, settings
from .environments import DevelopmentSettings

_PROFILES = {
    "development": DevelopmentSettings,
}


def get_settings(env: str = None) -> Settings:
    """按 CAFETERIA_ENV 选择配置；未知或未设置时使用全局默认配置"""
    env = env or os.getenv("CAFETERIA_ENV", "")
    profile = _PROFILES.get(env.lower())
    if profile is None:
        return settings
    return profile()


__all__ = ["Settings", "settings", "get_settings", "DevelopmentSettings"]
