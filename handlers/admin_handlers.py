"""
Обработчики команд администраторов: столы и сотрудники
"""
import logging
from typing import Optional

from aiogram import Router, F
from aiogram.exceptions import TelegramAPIError
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

from api.client import ApiError
from api.models import ROLE_ADMIN, ROLE_SUPER_ADMIN, ROLES
from api.repository import TableRepository, UserRepository
from config import settings
from handlers.auth_handlers import access_error
from handlers.table_handlers import refresh_floor, render_tables, edit_or_answer
from keyboards.keyboards import (
    get_capacity_keyboard, get_cancel_keyboard, get_confirmation_keyboard,
    get_users_keyboard, get_user_actions_keyboard, get_roles_keyboard,
    BTN_USERS, ROLE_TEXT
)
from states.staff_states import TableStates, UserStates
from utils.floor import FloorSnapshot
from utils.session import Session
from utils.validation import (
    ValidationError, validate_unique_name, validate_capacity,
    validate_email, validate_password, validate_person_name
)

logger = logging.getLogger(__name__)
router = Router()


# Столы
@router.callback_query(F.data == "table_add")
async def start_add_table(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    """Добавление стола"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await state.update_data(table_id=None)
    await callback.message.edit_text("✏️ Введите название стола:", reply_markup=get_cancel_keyboard())
    await state.set_state(TableStates.entering_name)
    await callback.answer()


@router.callback_query(F.data.startswith("table_edit:"))
async def start_edit_table(callback: CallbackQuery, state: FSMContext,
                           session: Optional[Session], floor: FloorSnapshot):
    """Изменение стола"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    table = floor.get_table(int(callback.data.split(":")[1]))
    if table is None:
        await callback.answer("Стол не найден", show_alert=True)
        return

    await state.clear()
    await state.update_data(table_id=table.id)
    await callback.message.edit_text(
        f"✏️ Новое название для «{table.name}»:",
        reply_markup=get_cancel_keyboard()
    )
    await state.set_state(TableStates.entering_name)
    await callback.answer()


@router.message(TableStates.entering_name, F.text)
async def process_table_name(message: Message, state: FSMContext, floor: FloorSnapshot):
    """Название стола: проверка на дубликат без учёта регистра"""
    data = await state.get_data()
    try:
        name = validate_unique_name(message.text, floor.tables, exclude_id=data.get('table_id'))
    except ValidationError as e:
        await message.answer(f"⚠️ Стол: {e.message}")
        return

    await state.update_data(name=name)
    await message.answer("👥 Выберите вместимость:", reply_markup=get_capacity_keyboard())
    await state.set_state(TableStates.choosing_capacity)


@router.callback_query(F.data.startswith("capacity:"), TableStates.choosing_capacity)
async def process_table_capacity(callback: CallbackQuery, state: FSMContext,
                                 session: Optional[Session], floor: FloorSnapshot):
    """Сохранение стола"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    try:
        capacity = validate_capacity(int(callback.data.split(":")[1]))
    except ValidationError as e:
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        return

    data = await state.get_data()
    await state.clear()

    try:
        if data.get('table_id'):
            await TableRepository.update_table(session.client, data['table_id'], data['name'], capacity)
            done = "✅ Столик успешно обновлен"
        else:
            await TableRepository.create_table(session.client, data['name'], capacity)
            done = "✅ Столик успешно добавлен"
    except ApiError as e:
        action = "обновить" if data.get('table_id') else "добавить"
        logger.error(f"Ошибка сохранения столика: {e}")
        await callback.message.edit_text(f"⚠️ Не удалось {action} столик: {e.message}")
        await callback.answer()
        return

    logger.info(f"Стол «{data['name']}» сохранён ({session.user.email})")
    await refresh_floor(floor, session)
    text, markup = render_tables(floor, session)
    await edit_or_answer(callback, f"{done}\n\n{text}", markup)
    await callback.answer()


@router.callback_query(F.data.startswith("table_delete:"))
async def ask_delete_table(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    table = floor.get_table(int(callback.data.split(":")[1]))
    if table is None:
        await callback.answer("Стол не найден", show_alert=True)
        return

    await callback.message.edit_text(
        f"Вы уверены, что хотите удалить столик «{table.name}»?",
        reply_markup=get_confirmation_keyboard(f"table_delete_ok:{table.id}")
    )
    await callback.answer()


@router.callback_query(F.data.startswith("table_delete_ok:"))
async def delete_table(callback: CallbackQuery, session: Optional[Session], floor: FloorSnapshot):
    """Удаление стола после подтверждения"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    table_id = int(callback.data.split(":")[1])
    try:
        await TableRepository.delete_table(session.client, table_id)
    except ApiError as e:
        logger.error(f"Ошибка удаления столика {table_id}: {e}")
        await callback.answer(f"⚠️ Не удалось удалить столик: {e.message}", show_alert=True)
        return

    logger.info(f"Стол {table_id} удалён ({session.user.email})")
    await refresh_floor(floor, session)
    text, markup = render_tables(floor, session)
    await edit_or_answer(callback, f"🗑 Столик успешно удален\n\n{text}", markup)
    await callback.answer()


# Сотрудники
async def load_users(session: Session):
    try:
        return await UserRepository.get_all_users(session.client)
    except ApiError as e:
        logger.error(f"Ошибка загрузки сотрудников: {e}")
        return None


def users_summary(users) -> str:
    counts = [
        f"{ROLE_TEXT[role]}: {sum(1 for user in users if user.role == role)}"
        for role in ROLES
    ]
    return f"👥 Сотрудники ({len(users)})\n\n" + "\n".join(counts)


@router.message(F.text == BTN_USERS)
async def show_users(message: Message, session: Optional[Session]):
    """Список сотрудников"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await message.answer(error)
        return

    users = await load_users(session)
    if users is None:
        await message.answer("⚠️ Не удалось загрузить сотрудников")
        return

    await message.answer(users_summary(users), reply_markup=get_users_keyboard(users))


@router.callback_query(F.data == "users_back")
async def callback_users(callback: CallbackQuery, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    users = await load_users(session)
    if users is None:
        await callback.answer("⚠️ Не удалось загрузить сотрудников", show_alert=True)
        return

    await edit_or_answer(callback, users_summary(users), get_users_keyboard(users))
    await callback.answer()


async def show_user_card(callback: CallbackQuery, session: Session, user_id: int):
    users = await load_users(session) or []
    user = next((u for u in users if u.id == user_id), None)
    if user is None:
        await callback.answer("Сотрудник не найден", show_alert=True)
        return

    text = (
        f"👤 {user.full_name}\n"
        f"📧 {user.email}\n"
        f"Роль: {ROLE_TEXT.get(user.role, user.role)}\n"
        f"Статус: {'активен' if user.is_active else 'заблокирован'}"
    )

    # Супер-админа может менять только другой супер-админ
    editable = session.role == ROLE_SUPER_ADMIN and user.role != ROLE_SUPER_ADMIN
    await edit_or_answer(callback, text, get_user_actions_keyboard(user, editable))


@router.callback_query(F.data.startswith("user:"))
async def show_user(callback: CallbackQuery, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await show_user_card(callback, session, int(callback.data.split(":")[1]))
    await callback.answer()


@router.callback_query(F.data.startswith("user_toggle:"))
async def toggle_user(callback: CallbackQuery, session: Optional[Session]):
    """Блокировка / активация сотрудника"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    user_id = int(callback.data.split(":")[1])
    if user_id == session.user.id:
        await callback.answer("Нельзя заблокировать самого себя", show_alert=True)
        return

    users = await load_users(session) or []
    user = next((u for u in users if u.id == user_id), None)
    if user is None:
        await callback.answer("Сотрудник не найден", show_alert=True)
        return

    if user.role == ROLE_SUPER_ADMIN and session.role != ROLE_SUPER_ADMIN:
        await callback.answer("Недостаточно прав", show_alert=True)
        return

    try:
        await UserRepository.change_status(session.client, user_id, not user.is_active)
    except ApiError as e:
        logger.error(f"Ошибка изменения статуса сотрудника {user_id}: {e}")
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        return

    logger.info(f"Сотрудник {user_id}: isActive={not user.is_active} ({session.user.email})")
    await show_user_card(callback, session, user_id)
    await callback.answer()


@router.callback_query(F.data.startswith("user_role:"))
async def change_user_role(callback: CallbackQuery, session: Optional[Session]):
    """Смена роли: только супер-админ"""
    error = access_error(session, ROLE_SUPER_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    _, user_id, role = callback.data.split(":")
    if role not in ROLES or role == ROLE_SUPER_ADMIN:
        await callback.answer("Недопустимая роль", show_alert=True)
        return

    try:
        await UserRepository.change_role(session.client, int(user_id), role)
    except ApiError as e:
        logger.error(f"Ошибка смены роли сотрудника {user_id}: {e}")
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        return

    logger.info(f"Сотрудник {user_id}: роль {role} ({session.user.email})")
    await show_user_card(callback, session, int(user_id))
    await callback.answer(f"Роль: {ROLE_TEXT[role]}")


@router.callback_query(F.data.startswith("user_delete:"))
async def delete_user(callback: CallbackQuery, session: Optional[Session]):
    """Удаление сотрудника: только супер-админ"""
    error = access_error(session, ROLE_SUPER_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    user_id = int(callback.data.split(":")[1])
    if user_id == session.user.id:
        await callback.answer("Нельзя удалить самого себя", show_alert=True)
        return

    try:
        await UserRepository.delete_user(session.client, user_id)
    except ApiError as e:
        logger.error(f"Ошибка удаления сотрудника {user_id}: {e}")
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        return

    logger.info(f"Сотрудник {user_id} удалён ({session.user.email})")
    users = await load_users(session) or []
    await edit_or_answer(callback, users_summary(users), get_users_keyboard(users))
    await callback.answer("Сотрудник удалён")



# Создание сотрудника администратором
@router.callback_query(F.data == "user_add")
async def start_add_user(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await callback.message.edit_text("📧 Email нового сотрудника:", reply_markup=get_cancel_keyboard())
    await state.set_state(UserStates.entering_email)
    await callback.answer()


@router.message(UserStates.entering_email, F.text)
async def process_user_email(message: Message, state: FSMContext):
    try:
        email = validate_email(message.text)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(email=email)
    await message.answer(f"🔑 Пароль (минимум {settings.MIN_PASSWORD_LENGTH} символов):")
    await state.set_state(UserStates.entering_password)


@router.message(UserStates.entering_password, F.text)
async def process_user_password(message: Message, state: FSMContext):
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
    await message.answer("👤 Имя:")
    await state.set_state(UserStates.entering_first_name)


@router.message(UserStates.entering_first_name, F.text)
async def process_user_first_name(message: Message, state: FSMContext):
    try:
        first_name = validate_person_name(message.text, 'first_name')
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(first_name=first_name)
    await message.answer("👤 Фамилия:")
    await state.set_state(UserStates.entering_last_name)


@router.message(UserStates.entering_last_name, F.text)
async def process_user_last_name(message: Message, state: FSMContext):
    try:
        last_name = validate_person_name(message.text, 'last_name')
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(last_name=last_name)
    await message.answer("🎭 Выберите роль:", reply_markup=get_roles_keyboard("new_role"))
    await state.set_state(UserStates.choosing_role)


@router.callback_query(F.data.startswith("new_role:"), UserStates.choosing_role)
async def process_user_role(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    """Сохранение нового сотрудника"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    role = callback.data.split(":")[1]
    if role not in ROLES or role == ROLE_SUPER_ADMIN:
        await callback.answer("Недопустимая роль", show_alert=True)
        return

    data = await state.get_data()
    await state.clear()

    try:
        user = await UserRepository.create_user(
            session.client, data['email'], data['password'],
            data['first_name'], data['last_name'], role
        )
    except ApiError as e:
        logger.error(f"Ошибка создания сотрудника {data['email']}: {e}")
        await callback.message.edit_text(f"⚠️ Не удалось создать сотрудника: {e.message}")
        await callback.answer()
        return

    logger.info(f"Сотрудник {data['email']} создан с ролью {role} ({session.user.email})")
    users = await load_users(session) or []
    await edit_or_answer(
        callback,
        f"✅ Сотрудник {user.full_name or data['email']} добавлен\n\n{users_summary(users)}",
        get_users_keyboard(users)
    )
    await callback.answer()


# Изменение имени сотрудника
@router.callback_query(F.data.startswith("user_rename:"))
async def start_rename_user(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    user_id = int(callback.data.split(":")[1])
    users = await load_users(session) or []
    user = next((u for u in users if u.id == user_id), None)
    if user is None:
        await callback.answer("Сотрудник не найден", show_alert=True)
        return

    if user.role == ROLE_SUPER_ADMIN and session.role != ROLE_SUPER_ADMIN:
        await callback.answer("Недостаточно прав", show_alert=True)
        return

    await state.clear()
    await state.update_data(user_id=user_id)
    await callback.message.edit_text(
        f"👤 Новое имя для {user.full_name}:",
        reply_markup=get_cancel_keyboard()
    )
    await state.set_state(UserStates.renaming_first_name)
    await callback.answer()


@router.message(UserStates.renaming_first_name, F.text)
async def process_rename_first_name(message: Message, state: FSMContext):
    try:
        first_name = validate_person_name(message.text, 'first_name')
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    await state.update_data(first_name=first_name)
    await message.answer("👤 Новая фамилия:")
    await state.set_state(UserStates.renaming_last_name)


@router.message(UserStates.renaming_last_name, F.text)
async def process_rename_last_name(message: Message, state: FSMContext, session: Optional[Session]):
    """Сохранение имени через PUT /users/:id"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await message.answer(error)
        return

    try:
        last_name = validate_person_name(message.text, 'last_name')
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    data = await state.get_data()
    await state.clear()

    try:
        await UserRepository.update_user(session.client, data['user_id'], {
            'firstName': data['first_name'],
            'lastName': last_name
        })
    except ApiError as e:
        logger.error(f"Ошибка изменения сотрудника {data['user_id']}: {e}")
        await message.answer(f"⚠️ Не удалось сохранить: {e.message}")
        return

    logger.info(f"Сотрудник {data['user_id']} переименован ({session.user.email})")
    users = await load_users(session) or []
    await message.answer(
        f"✅ Имя сохранено: {data['first_name']} {last_name}\n\n{users_summary(users)}",
        reply_markup=get_users_keyboard(users)
    )
