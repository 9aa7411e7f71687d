"""
Меню: отбор блюд по категории и поиску
"""
from collections import Counter
from typing import Dict, Iterable, List, Optional

from api.models import Dish


def menu_dishes(dishes: Iterable[Dish], category_id: Optional[int] = None,
                search: str = '', include_unavailable: bool = False) -> List[Dish]:
    """
    Блюда для показа, по названию.
    Стажёр видит только доступные блюда; администратор и повар видят и стоп-лист.
    """
    search = search.strip().lower()
    result = [
        dish for dish in dishes
        if (include_unavailable or dish.is_available)
        and (category_id is None or dish.category_id == category_id)
        and (not search or search in dish.name.lower() or search in dish.description.lower())
    ]
    return sorted(result, key=lambda dish: dish.name.lower())


def dishes_per_category(dishes: Iterable[Dish]) -> Dict[int, int]:
    return dict(Counter(dish.category_id for dish in dishes if dish.category_id is not None))


def dishes_word(count: int) -> str:
    """блюдо / блюда / блюд"""
    if count % 10 == 1 and count % 100 != 11:
        return "блюдо"
    if 2 <= count % 10 <= 4 and not 12 <= count % 100 <= 14:
        return "блюда"
    return "блюд"
