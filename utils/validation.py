"""
Проверки форм до отправки на сервер
"""
import math
import re
from datetime import datetime
from typing import Iterable, Optional

from config import settings
from utils.menu import dishes_word


class ValidationError(Exception):
    """Ошибка заполнения конкретного поля"""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


EMAIL_RE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def validate_email(email: str) -> str:
    email = email.strip()
    if not EMAIL_RE.match(email):
        raise ValidationError('email', "Введите корректный email")
    return email


def validate_password(password: str, confirmation: Optional[str] = None) -> str:
    if len(password) < settings.MIN_PASSWORD_LENGTH:
        raise ValidationError(
            'password', f"Минимум {settings.MIN_PASSWORD_LENGTH} символов"
        )
    if confirmation is not None and password != confirmation:
        raise ValidationError('confirm_password', "Пароли не совпадают")
    return password


def validate_person_name(name: str, field: str = 'name') -> str:
    name = name.strip()
    if len(name) < 2:
        raise ValidationError(field, "Введите корректное имя")
    return name


def validate_phone(phone: str) -> str:
    phone = phone.strip()
    digits = re.sub(r'\D', '', phone)
    if len(digits) < 10:
        raise ValidationError('phone', "Введите корректный номер телефона")
    return phone


def validate_unique_name(name: str, items: Iterable, exclude_id: Optional[int] = None,
                         field: str = 'name') -> str:
    """
    Название не должно совпадать (без учёта регистра) с другим элементом.
    Подходит для столов, категорий и блюд: у всех есть id и name.
    """
    name = name.strip()
    if not name:
        raise ValidationError(field, "Обязательное поле")
    for item in items:
        if item.id != exclude_id and item.name.strip().lower() == name.lower():
            raise ValidationError(field, f"\"{name}\" уже существует")
    return name


def validate_capacity(capacity: int) -> int:
    if capacity not in settings.TABLE_CAPACITIES:
        allowed = ', '.join(str(value) for value in settings.TABLE_CAPACITIES)
        raise ValidationError('capacity', f"Вместимость должна быть одной из: {allowed}")
    return capacity


def validate_window(reserved_from: datetime, reserved_to: datetime):
    if reserved_from >= reserved_to:
        raise ValidationError('reserved_to', "Окончание брони должно быть позже начала")


def validate_guest_count(guest_count: int, capacity: int) -> int:
    if guest_count < 1:
        raise ValidationError('guest_count', "Минимум 1 гость")
    if capacity and guest_count > capacity:
        raise ValidationError('guest_count', f"Стол рассчитан на {capacity} гостей")
    return guest_count


def validate_price(text: str) -> float:
    """Цена блюда: положительное число, допускается запятая"""
    try:
        price = float(text.strip().replace(',', '.'))
    except ValueError:
        raise ValidationError('price', "Введите цену числом, например 350 или 249.90")
    if not math.isfinite(price) or price <= 0:
        raise ValidationError('price', "Цена должна быть больше нуля")
    return round(price, 2)


def validate_category_deletable(category, dishes: Iterable):
    """Категорию с блюдами удалять нельзя"""
    count = sum(1 for dish in dishes if dish.category_id == category.id)
    if count:
        raise ValidationError(
            'category',
            f"Нельзя удалить категорию «{category.name}», так как в ней находится "
            f"{count} {dishes_word(count)}"
        )
