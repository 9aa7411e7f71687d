"""
Обработчики меню: просмотр для всех ролей, категории и блюда для администратора,
стоп-лист для администратора и повара
"""
import logging
from typing import List, Optional

from aiogram import Router, F
from aiogram.types import Message, CallbackQuery
from aiogram.fsm.context import FSMContext

from api.client import ApiError
from api.models import Category, Dish, ROLE_ADMIN, ROLE_CHEF
from api.repository import CategoryRepository, DishRepository
from handlers.auth_handlers import access_error
from handlers.table_handlers import edit_or_answer
from keyboards.keyboards import (
    get_categories_keyboard, get_dishes_keyboard, get_dish_actions_keyboard,
    get_cancel_keyboard, get_confirmation_keyboard, BTN_MENU
)
from states.staff_states import CategoryStates, DishStates, MenuStates
from utils.menu import menu_dishes, dishes_per_category
from utils.session import Session
from utils.validation import (
    ValidationError, validate_unique_name, validate_price, validate_category_deletable
)

logger = logging.getLogger(__name__)
router = Router()

STOP_LIST_ROLES = (ROLE_ADMIN, ROLE_CHEF)


def sees_stop_list(session: Session) -> bool:
    """Администратор и повар видят блюда в стоп-листе, остальные только доступные"""
    return session.has_role(*STOP_LIST_ROLES)


async def load_menu(session: Session):
    """Категории и блюда. None, если сервер недоступен"""
    try:
        categories = await CategoryRepository.get_all_categories(session.client)
        dishes = await DishRepository.get_dishes(session.client)
    except ApiError as e:
        logger.error(f"Ошибка загрузки меню: {e}")
        return None
    return categories, dishes


def find_by_id(items, item_id: Optional[int]):
    return next((item for item in items if item.id == item_id), None)


def render_categories(categories: List[Category], dishes: List[Dish], session: Session) -> tuple:
    visible = menu_dishes(dishes, include_unavailable=sees_stop_list(session))
    stopped = sum(1 for dish in dishes if dish.is_stopped)

    text = f"📖 Меню\n\nКатегорий: {len(categories)} | Блюд: {len(visible)}"
    if sees_stop_list(session) and stopped:
        text += f"\n⛔️ В стоп-листе: {stopped}"
    if not categories:
        text += "\n\nКатегорий пока нет"

    markup = get_categories_keyboard(
        categories, dishes_per_category(visible), manage=session.has_role(ROLE_ADMIN)
    )
    return text, markup


def render_dishes(dishes: List[Dish], session: Session, category: Optional[Category] = None,
                  title: str = "📋 Все блюда") -> tuple:
    if category is not None:
        title = f"📂 {category.name}"
        if category.description:
            title += f"\n{category.description}"

    text = title if dishes else f"{title}\n\nБлюд не найдено"
    markup = get_dishes_keyboard(dishes, category, manage=session.has_role(ROLE_ADMIN))
    return text, markup


def render_dish(dish: Dish, category: Optional[Category], session: Session) -> tuple:
    text = (
        f"🍲 {dish.name}\n\n"
        f"💰 Цена: {dish.price:.2f} ₽\n"
        f"📂 Категория: {category.name if category else '—'}"
    )
    if dish.cooking_time_min:
        text += f"\n⏱ Время приготовления: {dish.cooking_time_min} мин"
    if dish.description:
        text += f"\n\n{dish.description}"
    if dish.is_stopped:
        text += "\n\n⛔️ Блюдо в стоп-листе"

    markup = get_dish_actions_keyboard(
        dish,
        can_stop=session.has_role(*STOP_LIST_ROLES),
        can_manage=session.has_role(ROLE_ADMIN)
    )
    return text, markup


@router.message(F.text == BTN_MENU)
async def show_menu(message: Message, state: FSMContext, session: Optional[Session]):
    """Категории меню"""
    error = access_error(session)
    if error:
        await message.answer(error)
        return

    await state.clear()
    menu = await load_menu(session)
    if menu is None:
        await message.answer("⚠️ Не удалось загрузить меню. Проверьте подключение к серверу.")
        return

    text, markup = render_categories(*menu, session)
    await message.answer(text, reply_markup=markup)


@router.callback_query(F.data == "menu_back")
async def menu_back(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    menu = await load_menu(session)
    if menu is None:
        await callback.answer("⚠️ Не удалось загрузить меню", show_alert=True)
        return

    await edit_or_answer(callback, *render_categories(*menu, session))
    await callback.answer()


@router.callback_query(F.data.startswith("menu_cat:"))
async def show_category(callback: CallbackQuery, session: Optional[Session]):
    """Блюда категории или всё меню"""
    error = access_error(session)
    if error:
        await callback.answer(error, show_alert=True)
        return

    menu = await load_menu(session)
    if menu is None:
        await callback.answer("⚠️ Не удалось загрузить меню", show_alert=True)
        return
    categories, dishes = menu

    category_str = callback.data.split(":")[1]
    category = None
    if category_str != 'all':
        category = find_by_id(categories, int(category_str))
        if category is None:
            await callback.answer("Категория не найдена", show_alert=True)
            return

    shown = menu_dishes(
        dishes,
        category_id=category.id if category else None,
        include_unavailable=sees_stop_list(session)
    )
    await edit_or_answer(callback, *render_dishes(shown, session, category))
    await callback.answer()


@router.callback_query(F.data == "menu_search")
async def start_search(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.set_state(MenuStates.entering_search)
    await callback.message.edit_text("🔍 Введите часть названия блюда:", reply_markup=get_cancel_keyboard())
    await callback.answer()


@router.message(MenuStates.entering_search, F.text)
async def process_search(message: Message, state: FSMContext, session: Optional[Session]):
    """Поиск по названию и описанию"""
    error = access_error(session)
    if error:
        await message.answer(error)
        return

    await state.clear()
    menu = await load_menu(session)
    if menu is None:
        await message.answer("⚠️ Не удалось загрузить меню")
        return

    query = message.text.strip()
    shown = menu_dishes(menu[1], search=query, include_unavailable=sees_stop_list(session))
    text, markup = render_dishes(shown, session, title=f"🔍 Поиск: «{query}»")
    await message.answer(text, reply_markup=markup)


@router.callback_query(F.data.startswith("dish:"))
async def show_dish(callback: CallbackQuery, session: Optional[Session]):
    """Карточка блюда"""
    error = access_error(session)
    if error:
        await callback.answer(error, show_alert=True)
        return

    menu = await load_menu(session)
    if menu is None:
        await callback.answer("⚠️ Не удалось загрузить меню", show_alert=True)
        return
    categories, dishes = menu

    dish = find_by_id(dishes, int(callback.data.split(":")[1]))
    if dish is None or (not dish.is_available and not sees_stop_list(session)):
        await callback.answer("Блюдо недоступно", show_alert=True)
        return

    await edit_or_answer(callback, *render_dish(dish, find_by_id(categories, dish.category_id), session))
    await callback.answer()


@router.callback_query(F.data.startswith("dish_stop:"))
async def toggle_stop(callback: CallbackQuery, session: Optional[Session]):
    """Стоп-лист: блюдо временно нельзя заказать"""
    error = access_error(session, *STOP_LIST_ROLES)
    if error:
        await callback.answer(error, show_alert=True)
        return

    dish_id = int(callback.data.split(":")[1])
    try:
        await DishRepository.toggle_stop(session.client, dish_id)
    except ApiError as e:
        logger.error(f"Ошибка изменения стоп-листа для блюда {dish_id}: {e}")
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        return

    menu = await load_menu(session)
    if menu is None:
        await callback.answer("⚠️ Не удалось обновить меню", show_alert=True)
        return
    categories, dishes = menu

    dish = find_by_id(dishes, dish_id)
    if dish is None:
        await callback.answer("Блюдо не найдено", show_alert=True)
        return

    logger.info(f"Блюдо {dish_id}: isStopped={dish.is_stopped} ({session.user.email})")
    await edit_or_answer(callback, *render_dish(dish, find_by_id(categories, dish.category_id), session))
    await callback.answer("⛔️ В стоп-листе" if dish.is_stopped else "▶️ Снято со стопа")


# Категории
@router.callback_query(F.data == "cat_add")
async def start_add_category(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await state.update_data(category_id=None)
    await callback.message.edit_text("📂 Введите название категории:", reply_markup=get_cancel_keyboard())
    await state.set_state(CategoryStates.entering_name)
    await callback.answer()


@router.callback_query(F.data.startswith("cat_edit:"))
async def start_edit_category(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await state.update_data(category_id=int(callback.data.split(":")[1]))
    await callback.message.edit_text("📂 Новое название категории:", reply_markup=get_cancel_keyboard())
    await state.set_state(CategoryStates.entering_name)
    await callback.answer()


@router.message(CategoryStates.entering_name, F.text)
async def process_category_name(message: Message, state: FSMContext, session: Optional[Session]):
    """Название категории: уникально без учёта регистра"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await message.answer(error)
        return

    data = await state.get_data()
    category_id = data.get('category_id')

    try:
        categories = await CategoryRepository.get_all_categories(session.client)
        name = validate_unique_name(message.text, categories, exclude_id=category_id)
        if category_id:
            await CategoryRepository.update_category(session.client, category_id, name)
            done = "✅ Категория переименована"
        else:
            await CategoryRepository.create_category(session.client, name)
            done = "✅ Категория добавлена"
    except ValidationError as e:
        await message.answer(f"⚠️ Категория: {e.message}")
        return
    except ApiError as e:
        logger.error(f"Ошибка сохранения категории: {e}")
        await message.answer(f"⚠️ Не удалось сохранить категорию: {e.message}")
        await state.clear()
        return

    await state.clear()
    logger.info(f"Категория «{name}» сохранена ({session.user.email})")

    menu = await load_menu(session)
    if menu is None:
        await message.answer(done)
        return
    text, markup = render_categories(*menu, session)
    await message.answer(f"{done}\n\n{text}", reply_markup=markup)


@router.callback_query(F.data.startswith("cat_delete:"))
async def ask_delete_category(callback: CallbackQuery, session: Optional[Session]):
    """Удалить можно только пустую категорию"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    menu = await load_menu(session)
    if menu is None:
        await callback.answer("⚠️ Не удалось загрузить меню", show_alert=True)
        return
    categories, dishes = menu

    category = find_by_id(categories, int(callback.data.split(":")[1]))
    if category is None:
        await callback.answer("Категория не найдена", show_alert=True)
        return

    try:
        validate_category_deletable(category, dishes)
    except ValidationError as e:
        await callback.answer(f"⚠️ {e.message}", show_alert=True)
        return

    await callback.message.edit_text(
        f"Вы уверены, что хотите удалить категорию «{category.name}»?",
        reply_markup=get_confirmation_keyboard(f"cat_delete_ok:{category.id}")
    )
    await callback.answer()


@router.callback_query(F.data.startswith("cat_delete_ok:"))
async def delete_category(callback: CallbackQuery, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    category_id = int(callback.data.split(":")[1])
    try:
        await CategoryRepository.delete_category(session.client, category_id)
    except ApiError as e:
        logger.error(f"Ошибка удаления категории {category_id}: {e}")
        await callback.answer(f"⚠️ Не удалось удалить категорию: {e.message}", show_alert=True)
        return

    logger.info(f"Категория {category_id} удалена ({session.user.email})")
    menu = await load_menu(session)
    if menu is not None:
        text, markup = render_categories(*menu, session)
        await edit_or_answer(callback, f"🗑 Категория удалена\n\n{text}", markup)
    await callback.answer()


# Блюда
@router.callback_query(F.data.startswith("dish_add:"))
async def start_add_dish(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await state.update_data(dish_id=None, category_id=int(callback.data.split(":")[1]))
    await callback.message.edit_text("🍲 Введите название блюда:", reply_markup=get_cancel_keyboard())
    await state.set_state(DishStates.entering_name)
    await callback.answer()


@router.callback_query(F.data.startswith("dish_edit:"))
async def start_rename_dish(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await state.update_data(dish_id=int(callback.data.split(":")[1]))
    await callback.message.edit_text("🍲 Новое название блюда:", reply_markup=get_cancel_keyboard())
    await state.set_state(DishStates.entering_name)
    await callback.answer()


@router.callback_query(F.data.startswith("dish_price:"))
async def start_reprice_dish(callback: CallbackQuery, state: FSMContext, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    await state.clear()
    await state.update_data(dish_id=int(callback.data.split(":")[1]))
    await callback.message.edit_text("💰 Новая цена, ₽:", reply_markup=get_cancel_keyboard())
    await state.set_state(DishStates.entering_price)
    await callback.answer()


@router.message(DishStates.entering_name, F.text)
async def process_dish_name(message: Message, state: FSMContext, session: Optional[Session]):
    """Название блюда: при добавлении дальше спрашиваем цену"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await message.answer(error)
        return

    data = await state.get_data()
    dish_id = data.get('dish_id')

    try:
        dishes = await DishRepository.get_dishes(session.client)
        name = validate_unique_name(message.text, dishes, exclude_id=dish_id)
        if dish_id:
            await DishRepository.update_dish(session.client, dish_id, {'name': name})
    except ValidationError as e:
        await message.answer(f"⚠️ Блюдо: {e.message}")
        return
    except ApiError as e:
        logger.error(f"Ошибка сохранения блюда: {e}")
        await message.answer(f"⚠️ Не удалось сохранить блюдо: {e.message}")
        await state.clear()
        return

    if dish_id:
        await state.clear()
        logger.info(f"Блюдо {dish_id} переименовано в «{name}» ({session.user.email})")
        await message.answer(f"✅ Блюдо переименовано: {name}")
        return

    await state.update_data(name=name)
    await message.answer("💰 Введите цену, ₽:")
    await state.set_state(DishStates.entering_price)


@router.message(DishStates.entering_price, F.text)
async def process_dish_price(message: Message, state: FSMContext, session: Optional[Session]):
    """Цена: сохранение нового блюда или новой цены"""
    error = access_error(session, ROLE_ADMIN)
    if error:
        await message.answer(error)
        return

    try:
        price = validate_price(message.text)
    except ValidationError as e:
        await message.answer(f"⚠️ {e.message}")
        return

    data = await state.get_data()
    await state.clear()

    try:
        if data.get('dish_id'):
            await DishRepository.update_dish(session.client, data['dish_id'], {'price': price})
            done = f"✅ Цена обновлена: {price:.2f} ₽"
        else:
            dish = await DishRepository.create_dish(session.client, data['name'], price, data['category_id'])
            done = f"✅ Блюдо «{dish.name or data['name']}» добавлено"
    except ApiError as e:
        logger.error(f"Ошибка сохранения блюда: {e}")
        await message.answer(f"⚠️ Не удалось сохранить блюдо: {e.message}")
        return

    logger.info(f"Блюдо сохранено: {data.get('name') or data.get('dish_id')}, {price} ({session.user.email})")
    await message.answer(done)


@router.callback_query(F.data.startswith("dish_delete:"))
async def ask_delete_dish(callback: CallbackQuery, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    dish_id = int(callback.data.split(":")[1])
    await callback.message.edit_text(
        "Вы уверены, что хотите удалить блюдо?",
        reply_markup=get_confirmation_keyboard(f"dish_delete_ok:{dish_id}")
    )
    await callback.answer()


@router.callback_query(F.data.startswith("dish_delete_ok:"))
async def delete_dish(callback: CallbackQuery, session: Optional[Session]):
    error = access_error(session, ROLE_ADMIN)
    if error:
        await callback.answer(error, show_alert=True)
        return

    dish_id = int(callback.data.split(":")[1])
    try:
        await DishRepository.delete_dish(session.client, dish_id)
    except ApiError as e:
        logger.error(f"Ошибка удаления блюда {dish_id}: {e}")
        await callback.answer(f"⚠️ Не удалось удалить блюдо: {e.message}", show_alert=True)
        return

    logger.info(f"Блюдо {dish_id} удалено ({session.user.email})")
    menu = await load_menu(session)
    if menu is not None:
        text, markup = render_categories(*menu, session)
        await edit_or_answer(callback, f"🗑 Блюдо удалено\n\n{text}", markup)
    await callback.answer()
