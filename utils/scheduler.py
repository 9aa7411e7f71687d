"""
Планировщик периодических задач
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from api.client import ApiError
from api.models import RESERVATION_SEATED
from api.repository import ReservationRepository
from config import settings
from utils.floor import FloorSnapshot
from utils.table_status import select_expired_reservations
from utils.time_utils import utc_now

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = 'reconcile_reservations'
RELOAD_JOB_ID = 'floor_reload'

# Бронь уже не в том состоянии на сервере: считаем переход выполненным
_SETTLED_STATUSES = (404, 409)


class ReservationReconciler:
    """
    Завершение посаженных броней, время которых истекло.

    Каждая бронь завершается отдельным запросом: ошибка по одной не мешает
    остальным. Уже завершённые и обрабатываемые сейчас брони пропускаются,
    поэтому повторный запуск на тех же данных ничего не делает.
    """

    def __init__(self, floor: FloorSnapshot, scheduler: Optional[AsyncIOScheduler] = None,
                 reload_delay: float = 2):
        self.floor = floor
        self.scheduler = scheduler
        self.reload_delay = reload_delay
        self._in_flight: Set[int] = set()
        self._completed: Set[int] = set()

    async def reconcile(self, now: Optional[datetime] = None) -> List[int]:
        """Завершение истёкших броней. Возвращает ID успешно завершённых"""
        if self.floor.closed:
            return []

        now = now or utc_now()
        expired = select_expired_reservations(
            self.floor.reservations, now,
            skip_ids=self._in_flight | self._completed
        )

        completed = []
        for reservation_id in expired:
            self._in_flight.add(reservation_id)
            try:
                await ReservationRepository.complete(self.floor.client, reservation_id)
                completed.append(reservation_id)
                logger.info(f"Бронирование {reservation_id} автоматически завершено")
            except ApiError as e:
                if e.status in _SETTLED_STATUSES:
                    completed.append(reservation_id)
                    logger.info(f"Бронирование {reservation_id} уже не активно на сервере: {e}")
                else:
                    logger.error(f"Ошибка завершения бронирования {reservation_id}: {e}")
            finally:
                self._in_flight.discard(reservation_id)

        self._completed.update(completed)

        if completed and not self.floor.closed:
            await self.schedule_reload()

        return completed

    async def schedule_reload(self):
        """
        Одна перезагрузка снимка через reload_delay секунд.
        Повторный вызов заменяет ещё не выполненную задачу.
        """
        if self.scheduler is None or not self.scheduler.running:
            await self.reload()
            return

        self.scheduler.add_job(
            self.reload,
            trigger=DateTrigger(
                run_date=datetime.now(timezone.utc) + timedelta(seconds=self.reload_delay)
            ),
            id=RELOAD_JOB_ID,
            name='Перезагрузка снимка зала',
            replace_existing=True
        )

    async def reload(self):
        """Перезагрузка снимка и очистка памяти о завершённых бронях"""
        try:
            await self.floor.load()
        except Exception as e:
            logger.error(f"Ошибка при перезагрузке снимка зала: {e}", exc_info=True)
            return

        still_seated = {
            reservation.id for reservation in self.floor.reservations
            if reservation.status == RESERVATION_SEATED
        }
        self._completed &= still_seated


async def reconcile_reservations_job(reconciler: ReservationReconciler):
    """Задача: обновить снимок зала и завершить истёкшие брони"""
    if not reconciler.floor.client.token:
        logger.debug("Нет токена для фоновых задач, проверка бронирований пропущена")
        return

    try:
        await reconciler.floor.load()
        completed = await reconciler.reconcile()
        if completed:
            logger.info(f"Автоматически завершено бронирований: {len(completed)}")
    except Exception as e:
        logger.error(f"Ошибка при проверке бронирований: {e}", exc_info=True)


async def start_scheduler(reconciler: ReservationReconciler) -> AsyncIOScheduler:
    """Запуск планировщика задач"""
    scheduler = AsyncIOScheduler()
    reconciler.scheduler = scheduler

    # Первая проверка сразу при запуске, дальше по интервалу
    scheduler.add_job(
        reconcile_reservations_job,
        trigger=IntervalTrigger(seconds=settings.RESERVATION_CHECK_SECONDS),
        args=[reconciler],
        id=RECONCILE_JOB_ID,
        name='Завершение истёкших бронирований',
        next_run_time=datetime.now(timezone.utc),
        max_instances=1,
        coalesce=True,
        replace_existing=True
    )

    scheduler.start()
    logger.info("Планировщик задач запущен")

    return scheduler


def stop_scheduler(scheduler: AsyncIOScheduler, floor: FloorSnapshot):
    """Остановка таймера. Запросы в полёте доработают, но их результат отбросится"""
    floor.close()
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Планировщик задач остановлен")
