"""
Состояния для FSM (Finite State Machine)
"""
from aiogram.fsm.state import State, StatesGroup


class LoginStates(StatesGroup):
    """Состояния входа"""
    entering_email = State()
    entering_password = State()


class RegisterStates(StatesGroup):
    """Состояния регистрации"""
    entering_email = State()
    entering_password = State()
    confirming_password = State()
    entering_first_name = State()
    entering_last_name = State()


class ReservationStates(StatesGroup):
    """Состояния процесса бронирования"""
    choosing_table = State()
    choosing_date = State()
    choosing_time = State()
    choosing_duration = State()
    entering_name = State()
    entering_phone = State()
    entering_guests = State()
    confirming = State()


class TableStates(StatesGroup):
    """Состояния редактирования стола"""
    entering_name = State()
    choosing_capacity = State()


class CategoryStates(StatesGroup):
    """Состояния добавления и переименования категории"""
    entering_name = State()


class DishStates(StatesGroup):
    """Состояния добавления и изменения блюда"""
    entering_name = State()
    entering_price = State()


class MenuStates(StatesGroup):
    """Поиск по меню"""
    entering_search = State()


class UserStates(StatesGroup):
    """Состояния создания сотрудника администратором"""
    entering_email = State()
    entering_password = State()
    entering_first_name = State()
    entering_last_name = State()
    choosing_role = State()
    renaming_first_name = State()
    renaming_last_name = State()
