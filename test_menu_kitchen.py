"""
Тесты меню, очереди кухни и отчётов статистики
"""
import pytest

from api.models import Category, Dish, Order, OrderItem, SalesSummary, PopularDish, DailySales
from handlers.kitchen_handlers import render_kitchen
from handlers.stats_handlers import render_summary, render_popular
from utils.kitchen import kitchen_queue, next_item_status, servable_items
from utils.menu import menu_dishes, dishes_per_category, dishes_word
from utils.validation import (
    ValidationError, validate_price, validate_category_deletable, validate_unique_name
)


def make_item(item_id, order_id, status, chef_id=None, name="Борщ"):
    return OrderItem(id=item_id, order_id=order_id, dish_id=1, dish_name=name,
                     quantity=1, price=300.0, status=status, chef_id=chef_id)


def make_dish(dish_id, name, category_id=1, stopped=False, active=True, description=''):
    return Dish(id=dish_id, name=name, price=100.0, category_id=category_id,
                description=description, is_active=active, is_stopped=stopped)


def test_kitchen_queue_orders_by_status_then_order():
    items = [
        make_item(1, 5, 'ready'),
        make_item(2, 7, 'ordered'),
        make_item(3, 4, 'preparing'),
        make_item(4, 3, 'ordered'),
        make_item(5, 3, 'served'),
    ]
    assert [item.id for item in kitchen_queue(items)] == [4, 2, 3, 1]


def test_only_chef_who_took_item_can_finish_it():
    assert next_item_status(make_item(1, 1, 'ordered'), chef_id=9) == 'preparing'
    assert next_item_status(make_item(1, 1, 'preparing', chef_id=9), chef_id=9) == 'ready'
    assert next_item_status(make_item(1, 1, 'preparing', chef_id=8), chef_id=9) is None
    assert next_item_status(make_item(1, 1, 'ready', chef_id=9), chef_id=9) is None


def test_servable_items_are_ready_ones():
    order = Order(id=1, table_id=2, status='in_progress', items=[
        make_item(1, 1, 'ready'), make_item(2, 1, 'preparing'), make_item(3, 1, 'served'),
    ])
    assert [item.id for item in servable_items(order)] == [1]
    assert order.total == 900.0


def test_render_kitchen_offers_buttons_only_for_allowed_moves():
    items = kitchen_queue([
        make_item(1, 1, 'ordered'),
        make_item(2, 1, 'preparing', chef_id=8),
        make_item(3, 2, 'preparing', chef_id=9),
    ])
    text, markup = render_kitchen(items, chef_id=9)

    callbacks = [row[0].callback_data for row in markup.inline_keyboard]
    assert callbacks == ['item_next:1:preparing', 'item_next:3:ready', 'kitchen_reload']
    assert "Готовится" in text


def test_render_kitchen_reports_load_failure():
    text, markup = render_kitchen(None, chef_id=9)
    assert text.startswith("⚠️")
    assert [row[0].callback_data for row in markup.inline_keyboard] == ['kitchen_reload']


def test_trainee_menu_hides_stopped_and_inactive_dishes():
    dishes = [
        make_dish(1, "Щи"),
        make_dish(2, "Борщ", stopped=True),
        make_dish(3, "Окрошка", active=False),
        make_dish(4, "Блины", category_id=2, description="со сметаной"),
    ]

    assert [d.name for d in menu_dishes(dishes)] == ["Блины", "Щи"]
    assert [d.id for d in menu_dishes(dishes, include_unavailable=True)] == [4, 2, 3, 1]
    assert [d.id for d in menu_dishes(dishes, category_id=1)] == [1]
    assert [d.id for d in menu_dishes(dishes, search="СМЕТАН")] == [4]
    assert dishes_per_category(dishes) == {1: 3, 2: 1}


def test_dish_names_are_unique_ignoring_case():
    dishes = [make_dish(1, "Борщ")]
    with pytest.raises(ValidationError):
        validate_unique_name(" борщ ", dishes)
    assert validate_unique_name("Борщ", dishes, exclude_id=1) == "Борщ"


def test_price_validation():
    assert validate_price("249,9") == 249.9
    assert validate_price(" 350 ") == 350.0
    for bad in ("0", "-5", "abc", "nan", "inf"):
        with pytest.raises(ValidationError):
            validate_price(bad)


def test_category_with_dishes_cannot_be_deleted():
    category = Category(id=1, name="Супы")
    dishes = [make_dish(1, "Щи"), make_dish(2, "Борщ", stopped=True)]

    with pytest.raises(ValidationError) as exc_info:
        validate_category_deletable(category, dishes)
    assert exc_info.value.message == "Нельзя удалить категорию «Супы», так как в ней находится 2 блюда"

    validate_category_deletable(Category(id=2, name="Десерты"), dishes)


def test_dishes_word_declension():
    assert [dishes_word(n) for n in (1, 2, 5, 11, 12, 21, 24, 25)] == [
        "блюдо", "блюда", "блюд", "блюд", "блюд", "блюдо", "блюда", "блюд"
    ]


def test_summary_and_popular_rendering():
    summary = SalesSummary(
        period="Май 2025", orders_count=3, revenue=1500.0, average_order_value=500.0,
        order_statuses={'closed': 3}, days=[DailySales(date='2025-05-01', orders_count=3, revenue=1500.0)]
    )
    text = render_summary("📆 Месяц", summary)

    assert text.startswith("📆 Месяц (Май 2025)")
    assert "Выручка: 1500.00 ₽" in text
    assert "Закрыт: 3" in text
    assert "2025-05-01: 3 зак., 1500.00 ₽" in text

    assert "продаж нет" in render_popular([])
    assert "1. Борщ: 12 шт., 4200.00 ₽" in render_popular([PopularDish(5, "Борщ", 12, 4200.0)])
