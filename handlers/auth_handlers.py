"""
Обработчики входа, регистрации и выхода
"""
import logging
from typing import Optional

from aiogram import Router, F
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

from api.client import ApiError
from config import settings
from keyboards.keyboards import (
    get_main_menu_keyboard, get_guest_keyboard, get_cancel_keyboard,
    BTN_LOGIN, BTN_REGISTER, BTN_LOGOUT, ROLE_TEXT
)
from states.staff_states import LoginStates, RegisterStates
from utils.session import Session, SessionStore
from utils.validation import (
    ValidationError, validate_email, validate_password, validate_person_name
)

logger = logging.getLogger(__name__)
router = Router()


def access_error(session: Optional[Session], *roles: str) -> Optional[str]:
    """Текст ошибки доступа или None, если доступ есть"""
    if session is None:
        return "🔐 Сначала войдите: /login"
    if not session.user.is_active:
        return "⛔️ Ваша учётная запись заблокирована"
    if roles and not session.has_role(*roles):
        return f"⚠️ Раздел недоступен для роли {ROLE_TEXT.get(session.role, session.role)}"
    return None


@router.message(Command("start"))
async def cmd_start(message: Message, state: FSMContext, sessions: SessionStore):
    """Обработка команды /start"""
    await state.clear()

    session = await sessions.check(message.chat.id)
    if session is not None:
        await message.answer(
            f"👋 С возвращением, {session.user.full_name}!\n"
            f"Роль: {ROLE_TEXT.get(session.role, session.role)}",
            reply_markup=get_main_menu_keyboard(session.user)
        )
        return

    await message.answer(
        "👋 Добро пожаловать в систему управления рестораном!\n\n"
        "Войдите или зарегистрируйтесь:",
        reply_markup=get_guest_keyboard()
    )


@router.message(Command("login"))
@router.message(F.text == BTN_LOGIN)
async def start_login(message: Message, state: FSMContext):
    """Начало входа"""
    await state.clear()
    await message.answer("📧 Введите email:", reply_markup=get_cancel_keyboard())
    await state.set_state(LoginStates.entering_email)


@router.message(LoginStates.entering_email, F.text)
async def process_login_email(message: Message, state: FSMContext):
    try:
        email = validate_email(message.text)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(email=email)
    await message.answer("🔑 Введите пароль:")
    await state.set_state(LoginStates.entering_password)


@router.message(LoginStates.entering_password, F.text)
async def process_login_password(message: Message, state: FSMContext,
                                 sessions: SessionStore):
    """Проверка логина и пароля на сервере"""
    data = await state.get_data()
    password = message.text

    # Пароль не должен оставаться в истории чата
    try:
        await message.delete()
    except TelegramAPIError as e:
        logger.warning(f"Не удалось удалить сообщение с паролем: {e}")

    try:
        session = await sessions.login(message.chat.id, data['email'], password)
    except ApiError as e:
        logger.info(f"Неудачный вход {data['email']}: {e}")
        await message.answer(
            f"⚠️ {e.message or 'Ошибка авторизации'}\n\nПопробуйте ещё раз: /login",
            reply_markup=get_guest_keyboard()
        )
        await state.clear()
        return

    await state.clear()
    await message.answer(
        f"✅ Вы вошли как {session.user.full_name}\n"
        f"Роль: {ROLE_TEXT.get(session.role, session.role)}",
        reply_markup=get_main_menu_keyboard(session.user)
    )


@router.message(Command("register"))
@router.message(F.text == BTN_REGISTER)
async def start_register(message: Message, state: FSMContext):
    """Начало регистрации"""
    await state.clear()
    await message.answer("📧 Введите email:", reply_markup=get_cancel_keyboard())
    await state.set_state(RegisterStates.entering_email)


@router.message(RegisterStates.entering_email, F.text)
async def process_register_email(message: Message, state: FSMContext):
    try:
        email = validate_email(message.text)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(email=email)
    await message.answer(f"🔑 Придумайте пароль (минимум {settings.MIN_PASSWORD_LENGTH} символов):")
    await state.set_state(RegisterStates.entering_password)


@router.message(RegisterStates.entering_password, F.text)
async def process_register_password(message: Message, state: FSMContext):
    password = message.text
    try:
        await message.delete()
    except TelegramAPIError as e:
        logger.warning(f"Не удалось удалить сообщение с паролем: {e}")

    try:
        validate_password(password)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(password=password)
    await message.answer("🔑 Повторите пароль:")
    await state.set_state(RegisterStates.confirming_password)


@router.message(RegisterStates.confirming_password, F.text)
async def process_register_confirmation(message: Message, state: FSMContext):
    data = await state.get_data()
    confirmation = message.text
    try:
        await message.delete()
    except TelegramAPIError as e:
        logger.warning(f"Не удалось удалить сообщение с паролем: {e}")

    try:
        validate_password(data['password'], confirmation)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}\n\n🔑 Придумайте пароль заново:")
        await state.set_state(RegisterStates.entering_password)
        return

    await message.answer("👤 Введите имя:")
    await state.set_state(RegisterStates.entering_first_name)


@router.message(RegisterStates.entering_first_name, F.text)
async def process_register_first_name(message: Message, state: FSMContext):
    try:
        first_name = validate_person_name(message.text, 'first_name')
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(first_name=first_name)
    await message.answer("👤 Введите фамилию:")
    await state.set_state(RegisterStates.entering_last_name)


@router.message(RegisterStates.entering_last_name, F.text)
async def process_register_last_name(message: Message, state: FSMContext,
                                     sessions: SessionStore):
    try:
        last_name = validate_person_name(message.text, 'last_name')
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    data = await state.get_data()
    await state.clear()

    try:
        session = await sessions.register(
            message.chat.id, data['email'], data['password'], data['first_name'], last_name
        )
    except ApiError as e:
        logger.info(f"Неудачная регистрация {data['email']}: {e}")
        await message.answer(
            f"⚠️ {e.message or 'Ошибка регистрации'}",
            reply_markup=get_guest_keyboard()
        )
        return

    await message.answer(
        f"✅ Регистрация завершена, {session.user.full_name}!\n"
        f"Роль: {ROLE_TEXT.get(session.role, session.role)}",
        reply_markup=get_main_menu_keyboard(session.user)
    )


@router.message(Command("logout"))
@router.message(F.text == BTN_LOGOUT)
async def cmd_logout(message: Message, state: FSMContext, sessions: SessionStore):
    """Выход"""
    await state.clear()
    sessions.logout(message.chat.id)
    await message.answer("🚪 Вы вышли из системы", reply_markup=get_guest_keyboard())


@router.callback_query(F.data == "cancel")
async def cancel_process(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    """Отмена любого многошагового действия"""
    await state.clear()

    await callback.message.edit_text("❌ Действие отменено")
    await callback.message.answer(
        "Выберите действие:",
        reply_markup=get_main_menu_keyboard(session.user if session else None)
    )
    await callback.answer()
