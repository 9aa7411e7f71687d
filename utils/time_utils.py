"""
Утилиты для работы со временем и расписанием

Все сравнения выполняются над моментами времени в UTC.
Перевод в локальное время нужен только для отображения.
"""
from datetime import datetime, timedelta, timezone
from typing import Any, List, Optional
from zoneinfo import ZoneInfo

from config import settings


def utc_now() -> datetime:
    """Текущий момент в UTC"""
    return datetime.now(timezone.utc)


def display_zone() -> ZoneInfo:
    return ZoneInfo(settings.DISPLAY_TIMEZONE)


def parse_instant(value: Any) -> Optional[datetime]:
    """
    Разбор момента времени из ответа API.
    Строки без смещения считаются UTC. Некорректные значения дают None.
    """
    if value is None or value == '':
        return None

    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        text = value.strip()
        if text.endswith('Z'):
            text = text[:-1] + '+00:00'
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def to_api_instant(moment: datetime) -> str:
    """Момент в формате ISO 8601 (UTC) для отправки в API"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=display_zone())
    return moment.astimezone(timezone.utc).isoformat().replace('+00:00', 'Z')


def to_local(moment: datetime) -> datetime:
    """Перевод момента в часовой пояс зала"""
    return moment.astimezone(display_zone())


def get_available_dates(now: Optional[datetime] = None) -> List[datetime]:
    """Получение списка доступных дат для бронирования (локальная полночь)"""
    now = now or utc_now()
    today = to_local(now).replace(hour=0, minute=0, second=0, microsecond=0)
    return [today + timedelta(days=i) for i in range(settings.MAX_BOOKING_DAYS)]


def get_available_times(date: datetime, now: Optional[datetime] = None) -> List[datetime]:
    """
    Получение списка слотов начала брони для даты.
    Слоты идут с шагом RESERVATION_STEP_MINUTES от открытия до
    (закрытие - 1 час); прошедшие слоты отбрасываются.
    """
    now = now or utc_now()
    zone = display_zone()
    day = date.astimezone(zone) if date.tzinfo else date.replace(tzinfo=zone)

    current = datetime.combine(day.date(), settings.OPEN_TIME, tzinfo=zone)
    end = datetime.combine(day.date(), settings.CLOSE_TIME, tzinfo=zone) - timedelta(hours=1)

    times = []
    while current <= end:
        if current > now:
            times.append(current)
        current += timedelta(minutes=settings.RESERVATION_STEP_MINUTES)
    return times


def format_datetime(dt: Optional[datetime]) -> str:
    """Форматирование datetime для отображения"""
    if dt is None:
        return "—"
    return to_local(dt).strftime("%d.%m.%Y %H:%M")


def format_date(dt: datetime, now: Optional[datetime] = None) -> str:
    """Форматирование даты"""
    weekdays = ['Пн', 'Вт', 'Ср', 'Чт', 'Пт', 'Сб', 'Вс']
    local = to_local(dt) if dt.tzinfo else dt
    weekday = weekdays[local.weekday()]

    today = to_local(now or utc_now()).date()
    if local.date() == today:
        return f"Сегодня ({weekday})"
    elif local.date() == today + timedelta(days=1):
        return f"Завтра ({weekday})"
    else:
        return f"{local.strftime('%d.%m')} ({weekday})"


def format_time(dt: Optional[datetime]) -> str:
    """Форматирование времени"""
    if dt is None:
        return "—"
    return to_local(dt).strftime("%H:%M")


def format_window(start: Optional[datetime], end: Optional[datetime]) -> str:
    """Интервал брони: 18.05.2025 18:00–20:00"""
    return f"{format_datetime(start)}–{format_time(end)}"
