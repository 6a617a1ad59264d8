"""
测试配置文件
提供测试所需的fixtures和配置
"""

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from ..app import create_app
from ..config.settings import Settings
from ..core.database import DatabaseManager
from ..core.security import create_access_token
from ..models.meal import MealCategory, NutritionalInfo
from ..models.user import Role
from ..schemas.meal import MealCreateRequest, TimeSlotCreateRequest
from ..services import build_services

# 2025-03-12 是周三
FIXED_NOW = datetime(2025, 3, 12, 11, 30)
ALL_DAYS = [0, 1, 2, 3, 4, 5, 6]


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now += timedelta(**kwargs)


@pytest.fixture
def test_settings():
    """测试配置"""
    return Settings(
        _env_file=None,
        database_url="duckdb://:memory:",
        db_timeout_seconds=0,
        jwt_secret_key="test-jwt-secret-key-for-cafeteria-tests",
        pickup_token_secret="test-pickup-secret-for-cafeteria-tests",
        api_title="Campus Cafeteria API (Test)",
        api_version="1.0.0-test",
        scheduler_enabled=False,
    )


@pytest.fixture
def clock():
    return FakeClock(FIXED_NOW)


@pytest.fixture
def test_db():
    """测试数据库（内存）"""
    db = DatabaseManager(":memory:", timeout_seconds=0)
    db.init_database()
    yield db
    db.close()


@pytest.fixture
def services(test_db, test_settings, clock):
    return build_services(test_db, test_settings, clock)


@pytest.fixture
def sample_user(services):
    """已完成资料设置、余额 100.00 的学生"""
    user = services.users.create_user("student@campus.edu", "测试学生", Role.STUDENT,
                                      onboarding_completed=True)
    services.wallets.add_funds(user.id, 10000, "初始充值")
    return user


@pytest.fixture
def other_user(services):
    """另一个学生，余额 50.00"""
    user = services.users.create_user("other@campus.edu", "另一个学生", Role.STUDENT,
                                      onboarding_completed=True)
    services.wallets.add_funds(user.id, 5000, "初始充值")
    return user


@pytest.fixture
def staff_user(services):
    return services.users.create_user("staff@campus.edu", "食堂员工", Role.CAFETERIA_STAFF,
                                      onboarding_completed=True)


@pytest.fixture
def admin_user(services):
    return services.users.create_user("admin@campus.edu", "管理员", Role.ADMIN,
                                      onboarding_completed=True)


@pytest.fixture
def sample_meal(services):
    """25.00 的鸡肉饭，每天可订"""
    return services.catalog.create_meal(MealCreateRequest(
        name="鸡肉饭",
        description="香煎鸡腿配米饭",
        price_cents=2500,
        cost_cents=1200,
        nutritional_info=NutritionalInfo(calories=650, proteins=35, carbohydrates=80, fats=20),
        category=MealCategory.MAIN_COURSE,
        available_days=ALL_DAYS,
    ))


@pytest.fixture
def salad_meal(services):
    """12.00 的沙拉，每天可订"""
    return services.catalog.create_meal(MealCreateRequest(
        name="鸡胸肉沙拉",
        price_cents=1200,
        nutritional_info=NutritionalInfo(calories=200, proteins=8, carbohydrates=20),
        category=MealCategory.SALAD,
        available_days=ALL_DAYS,
    ))


@pytest.fixture
def sample_slot(services):
    """每天 12:00-12:30，容量 2"""
    return services.catalog.create_time_slot(TimeSlotCreateRequest(
        start_time="12:00", end_time="12:30", max_orders=2, description="午餐"
    ))


@pytest.fixture
def app_instance(test_settings, test_db, clock):
    """测试应用"""
    return create_app(test_settings, test_db, clock)


@pytest.fixture
def client(app_instance):
    """测试客户端"""
    with TestClient(app_instance) as c:
        yield c


def _headers(user, settings):
    token = create_access_token(user.id, user.email, user.role, settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(sample_user, test_settings):
    """学生认证请求头"""
    return _headers(sample_user, test_settings)


@pytest.fixture
def other_headers(other_user, test_settings):
    return _headers(other_user, test_settings)


@pytest.fixture
def staff_headers(staff_user, test_settings):
    """员工认证请求头"""
    return _headers(staff_user, test_settings)


@pytest.fixture
def admin_headers(admin_user, test_settings):
    """管理员认证请求头"""
    return _headers(admin_user, test_settings)
