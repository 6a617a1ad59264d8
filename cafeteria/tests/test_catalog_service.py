from datetime import date

import pytest

from ..core.exceptions import MealNotFoundError, SlotFullError, TimeSlotNotFoundError
from ..schemas.meal import MealCreateRequest, TimeSlotCreateRequest

WEDNESDAY = date(2025, 3, 12)
SUNDAY = date(2025, 3, 16)


class TestMeals:
    """餐品目录测试"""

    def test_create_meal_round_trips_nutrition_and_days(self, services, staff_user):
        """测试创建餐品保存营养信息和可售星期"""
        meal = services.catalog.create_meal(MealCreateRequest(
            name="牛肉面",
            price_cents=1800,
            nutritional_info={"calories": 700, "proteins": 30, "carbohydrates": 95},
            available_days=[5, 1, 3, 1],
        ), created_by=staff_user.id)

        fetched = services.catalog.get_meal(meal.meal_id)
        assert fetched.available_days == [1, 3, 5]
        assert fetched.nutritional_info.calories == 700
        assert fetched.category == "Main Course"
        assert fetched.created_by == staff_user.id

    def test_available_meals_respect_weekday_and_switch(self, services):
        """测试今日可订餐品受星期和开关限制"""
        weekday = services.catalog.create_meal(MealCreateRequest(name="工作日套餐", price_cents=2000))
        weekend = services.catalog.create_meal(MealCreateRequest(
            name="周末早午餐", price_cents=3000, available_days=[0, 6]
        ))
        off = services.catalog.create_meal(MealCreateRequest(
            name="下架餐品", price_cents=1000, is_available=False, available_days=list(range(7))
        ))

        wednesday_ids = {m.meal_id for m in services.catalog.list_available_meals(on_date=WEDNESDAY)}
        sunday_ids = {m.meal_id for m in services.catalog.list_available_meals(on_date=SUNDAY)}

        assert wednesday_ids == {weekday.meal_id}
        assert sunday_ids == {weekend.meal_id}
        assert off.meal_id in {m.meal_id for m in services.catalog.list_meals()}

    def test_category_filter(self, services, sample_meal, salad_meal):
        """测试按分类筛选"""
        salads = services.catalog.list_available_meals(category="Salad")
        assert [m.meal_id for m in salads] == [salad_meal.meal_id]

    def test_update_meal_partial(self, services, sample_meal):
        """测试部分字段更新餐品"""
        meal = services.catalog.update_meal(sample_meal.meal_id, {
            "price_cents": 2800,
            "available_days": [1, 2],
            "description": None,
        })

        assert meal.price_cents == 2800
        assert meal.available_days == [1, 2]
        assert meal.name == "鸡肉饭"
        assert meal.description == "香煎鸡腿配米饭"

    def test_toggle_meal(self, services, sample_meal):
        """测试切换餐品上下架"""
        assert services.catalog.toggle_meal_availability(sample_meal.meal_id).is_available is False
        assert services.catalog.toggle_meal_availability(sample_meal.meal_id).is_available is True

    def test_unknown_meal(self, services):
        """测试查询不存在的餐品"""
        assert services.catalog.find_meal(999) is None
        with pytest.raises(MealNotFoundError):
            services.catalog.update_meal(999, {"price_cents": 1})


class TestTimeSlots:
    """取餐时段测试"""

    def test_list_slots_for_date(self, services):
        """测试按日期列出取餐时段"""
        every_day = services.catalog.create_time_slot(TimeSlotCreateRequest(start_time="12:00", end_time="12:30"))
        wednesdays = services.catalog.create_time_slot(TimeSlotCreateRequest(
            start_time="11:30", end_time="12:00", day_of_week=3
        ))
        dated = services.catalog.create_time_slot(TimeSlotCreateRequest(
            start_time="18:00", end_time="18:30", slot_date=SUNDAY
        ))

        assert [s.slot_id for s in services.catalog.list_time_slots(WEDNESDAY)] == [
            wednesdays.slot_id, every_day.slot_id
        ]
        assert [s.slot_id for s in services.catalog.list_time_slots(SUNDAY)] == [
            every_day.slot_id, dated.slot_id
        ]

    def test_closed_slots_hidden_unless_requested(self, services, sample_slot):
        """测试已关闭时段默认不显示"""
        services.catalog.toggle_time_slot(sample_slot.slot_id)

        assert services.catalog.list_time_slots(WEDNESDAY) == []
        assert len(services.catalog.list_time_slots(WEDNESDAY, available_only=False)) == 1

    def test_book_until_full(self, services, sample_slot):
        """测试预订直到时段满员"""
        services.catalog.book_slot(sample_slot.slot_id)
        slot = services.catalog.book_slot(sample_slot.slot_id)

        assert slot.is_full
        assert slot.remaining_capacity == 0
        with pytest.raises(SlotFullError):
            services.catalog.book_slot(sample_slot.slot_id)

    def test_booking_closed_slot(self, services, sample_slot):
        """测试不能预订已关闭时段"""
        services.catalog.toggle_time_slot(sample_slot.slot_id)
        with pytest.raises(SlotFullError) as exc_info:
            services.catalog.book_slot(sample_slot.slot_id)
        assert exc_info.value.message == "所选取餐时段未开放"

    def test_release_never_goes_negative(self, services, sample_slot):
        """测试释放名额不会小于零"""
        services.catalog.release_slot(sample_slot.slot_id)
        assert services.catalog.get_time_slot(sample_slot.slot_id).current_orders == 0

    def test_unknown_slot(self, services):
        """测试预订不存在的时段"""
        with pytest.raises(TimeSlotNotFoundError):
            services.catalog.book_slot(999)
