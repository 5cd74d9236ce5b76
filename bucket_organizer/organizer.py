"""
Модуль бизнес-логики переноса объектов.

Объединяет разбор ключей и работу с объектным хранилищем для переноса
объектов из плоского префикса в структуру по датам (organized/YYYY/MM/DD/).
Перенос выполняется копированием с последующим удалением исходного объекта.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from enum import Enum
from functools import partial
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

try:
    from .config_loader import Config
    from .logger import OrganizerLogger
    from .key_parser import (
        MalformedKeyError, RelocationPlan, is_organized, is_under_prefix,
        normalize_prefix, plan_relocation,
    )
    from .object_store import (
        ObjectStore, ObjectStoreError, StorePermissionError, TransientStoreError,
        create_object_store,
    )
except ImportError:
    from config_loader import Config
    from logger import OrganizerLogger
    from key_parser import (
        MalformedKeyError, RelocationPlan, is_organized, is_under_prefix,
        normalize_prefix, plan_relocation,
    )
    from object_store import (
        ObjectStore, ObjectStoreError, StorePermissionError, TransientStoreError,
        create_object_store,
    )


class OrganizeError(Exception):
    """Исключение для ошибок, прерывающих весь перенос (например, листинг)."""
    pass


class RelocationOutcome(str, Enum):
    """Результат переноса одного объекта."""
    MOVED = 'Moved'
    SKIPPED_MALFORMED_NAME = 'SkippedMalformedName'
    FAILED_COPY = 'FailedCopy'
    FAILED_DELETE = 'FailedDelete'


FAILED_OUTCOMES = (RelocationOutcome.FAILED_COPY, RelocationOutcome.FAILED_DELETE)


@dataclass
class RelocationResult:
    """Результат обработки одного кандидата."""
    source_key: str
    destination_key: Optional[str]
    outcome: RelocationOutcome
    error: Optional[str] = None
    attempts: int = 0

    @property
    def failed(self) -> bool:
        return self.outcome in FAILED_OUTCOMES

    def to_dict(self) -> Dict:
        return {
            'sourceKey': self.source_key,
            'destinationKey': self.destination_key,
            'outcome': self.outcome.value,
            'error': self.error,
            'attempts': self.attempts
        }


class OrganizeStats:
    """Класс для хранения статистики переноса."""

    def __init__(self):
        self.total_candidates = 0
        self.outcomes = {outcome: 0 for outcome in RelocationOutcome}
        self.start_time = None
        self.end_time = None
        self.errors = []

    def add_result(self, result: RelocationResult):
        """Учитывает результат обработки одного объекта."""
        self.total_candidates += 1
        self.outcomes[result.outcome] += 1
        if result.failed:
            self.errors.append({
                'source_key': result.source_key,
                'outcome': result.outcome.value,
                'error': result.error,
                'timestamp': datetime.now()
            })

    @property
    def moved(self) -> int:
        return self.outcomes[RelocationOutcome.MOVED]

    @property
    def failed(self) -> int:
        return sum(self.outcomes[outcome] for outcome in FAILED_OUTCOMES)

    def get_duration(self) -> Optional[float]:
        """Возвращает продолжительность переноса в секундах."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return None

    def is_successful(self) -> bool:
        """Успех - если нет ни одного FailedCopy/FailedDelete."""
        return self.failed == 0

    def to_dict(self) -> Dict:
        """Преобразует статистику в словарь."""
        return {
            'total_candidates': self.total_candidates,
            'moved': self.outcomes[RelocationOutcome.MOVED],
            'skipped_malformed_name': self.outcomes[RelocationOutcome.SKIPPED_MALFORMED_NAME],
            'failed_copy': self.outcomes[RelocationOutcome.FAILED_COPY],
            'failed_delete': self.outcomes[RelocationOutcome.FAILED_DELETE],
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'duration_seconds': self.get_duration(),
            'successful': self.is_successful()
        }


class Organizer:
    """Основной класс для переноса объектов в структуру по датам."""

    def __init__(self, config: Config, logger: OrganizerLogger, store: ObjectStore):
        """
        Инициализация органайзера.

        Args:
            config: Конфигурация приложения
            logger: Логгер для записи операций
            store: Клиент объектного хранилища
        """
        self.config = config
        self.logger = logger
        self.store = store
        self.destination_root = config.organizer.destination_root
        self.stats = OrganizeStats()
        self._permission_denied: Optional[StorePermissionError] = None

    def organize(self, bucket: str, prefix: str,
                 candidate_keys: Optional[Iterable[str]] = None) -> List[RelocationResult]:
        """
        Переносит объекты под префиксом в структуру по датам.

        Args:
            bucket: Имя бакета
            prefix: Отслеживаемый префикс
            candidate_keys: Ключи из события; None - обход всего префикса

        Returns:
            List[RelocationResult]: Результаты в порядке листинга/события

        Raises:
            OrganizeError: Если не удалось получить листинг
        """
        prefix = normalize_prefix(prefix)
        self.stats = OrganizeStats()
        self.stats.start_time = datetime.now()
        self._permission_denied = None

        if candidate_keys is not None:
            candidate_keys = list(candidate_keys)

        self.logger.log_organize_start(
            bucket, prefix, None if candidate_keys is None else len(candidate_keys)
        )

        candidates = self._collect_candidates(bucket, prefix, candidate_keys)
        results = self._relocate_all(bucket, candidates)

        for result in results:
            self.stats.add_result(result)

        self.stats.end_time = datetime.now()
        self.logger.log_organize_end(self.stats.to_dict())

        return results

    def plan(self, bucket: str, prefix: str,
             candidate_keys: Optional[Iterable[str]] = None) -> List[Union[RelocationPlan, RelocationResult]]:
        """
        Вычисляет ключи назначения без копирования и удаления.

        Returns:
            List: RelocationPlan для корректных ключей, RelocationResult
            (SkippedMalformedName) для некорректных, в порядке кандидатов
        """
        prefix = normalize_prefix(prefix)
        if candidate_keys is not None:
            candidate_keys = list(candidate_keys)

        candidates = self._collect_candidates(bucket, prefix, candidate_keys)
        return [self._prepare(key) for key in candidates]

    def list_keys(self, bucket: str, prefix: str) -> List[str]:
        """
        Получает все ключи под префиксом, проходя по всем страницам листинга.

        Args:
            bucket: Имя бакета
            prefix: Префикс

        Returns:
            List[str]: Ключи в порядке листинга, каждый ровно один раз

        Raises:
            OrganizeError: Если листинг не удался
        """
        keys = []
        seen = set()
        token = None
        page_number = 0

        while True:
            list_page = partial(self.store.list_objects, bucket, prefix, token)
            try:
                page, _ = self._call_with_retries('list', prefix, list_page)
            except ObjectStoreError as e:
                self.logger.log_critical_error(f"Не удалось получить листинг s3://{bucket}/{prefix}", e)
                raise OrganizeError(f"Ошибка листинга s3://{bucket}/{prefix}: {e}") from e

            page_number += 1
            self.logger.log_listing_page(page_number, len(page.keys), page.next_token is not None)

            for key in page.keys:
                if key not in seen:
                    seen.add(key)
                    keys.append(key)

            if not page.next_token:
                break
            token = page.next_token

        return keys

    def _collect_candidates(self, bucket: str, prefix: str,
                            candidate_keys: Optional[List[str]]) -> List[str]:
        """Получает ключи (листинг или событие) и отбрасывает неподходящие."""
        from_event = candidate_keys is not None
        keys = candidate_keys if from_event else self.list_keys(bucket, prefix)

        candidates = []
        seen = set()
        for key in keys:
            if key in seen:
                continue
            seen.add(key)

            if key == prefix or key.endswith('/'):
                self.logger.log_key_filtered(key, "заглушка каталога")
                continue
            if is_organized(key, self.destination_root):
                self.logger.log_key_filtered(key, f"уже в {self.destination_root}/")
                continue
            if from_event and not is_under_prefix(key, prefix):
                self.logger.log_warning(f"Ключ {key} не относится к префиксу {prefix}, пропущен")
                continue

            candidates.append(key)

        return candidates

    def _relocate_all(self, bucket: str, candidates: List[str]) -> List[RelocationResult]:
        """Обрабатывает кандидатов последовательно или пулом потоков."""
        max_workers = self.config.organizer.max_workers
        process = partial(self._process_key, bucket)

        if max_workers > 1 and len(candidates) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                results = list(executor.map(process, candidates))
        else:
            results = [process(key) for key in candidates]

        # None - объект уже перенесен ранее
        return [result for result in results if result is not None]

    def _prepare(self, key: str) -> Union[RelocationPlan, RelocationResult]:
        """Строит план переноса или результат SkippedMalformedName."""
        try:
            return plan_relocation(key, self.destination_root)
        except MalformedKeyError as e:
            self.logger.log_malformed_key(key, e.reason)
            return RelocationResult(
                source_key=key,
                destination_key=None,
                outcome=RelocationOutcome.SKIPPED_MALFORMED_NAME,
                error=e.reason
            )

    def _process_key(self, bucket: str, key: str) -> Optional[RelocationResult]:
        prepared = self._prepare(key)
        if isinstance(prepared, RelocationResult):
            result = prepared
        else:
            result = self.relocate(bucket, prepared)

        if result is None:
            self.logger.log_key_filtered(key, f"уже перенесен в {prepared.destination_key}")
            return None

        self.logger.log_relocation(
            result.source_key, result.destination_key, result.outcome.value, result.error, result.attempts
        )
        return result

    def relocate(self, bucket: str, plan: RelocationPlan) -> Optional[RelocationResult]:
        """
        Переносит один объект: сначала копирование, затем удаление исходного.

        Args:
            bucket: Имя бакета
            plan: План переноса

        Returns:
            RelocationResult: Moved, FailedCopy или FailedDelete;
            None если исходного объекта нет, а объект назначения уже существует
        """
        denied = self._permission_denied
        if denied is not None:
            return RelocationResult(plan.source_key, plan.destination_key,
                                    RelocationOutcome.FAILED_COPY,
                                    f"Пропущено после отказа в доступе: {denied}")

        copy = partial(self.store.copy_object, bucket, plan.source_key, plan.destination_key)
        try:
            _, attempts = self._call_with_retries('copy', plan.source_key, copy)
        except ObjectStoreError as e:
            if isinstance(e, StorePermissionError):
                self._permission_denied = e
            elif e.code == 'NoSuchKey' and self._destination_exists(bucket, plan):
                return None
            # Удаление без успешного копирования недопустимо
            return RelocationResult(plan.source_key, plan.destination_key,
                                    RelocationOutcome.FAILED_COPY, str(e), e.attempts)

        delete = partial(self.store.delete_object, bucket, plan.source_key)
        try:
            _, attempts = self._call_with_retries('delete', plan.source_key, delete)
        except ObjectStoreError as e:
            if isinstance(e, StorePermissionError):
                self._permission_denied = e
            # Объект остался в обоих местах до следующего прохода
            return RelocationResult(plan.source_key, plan.destination_key,
                                    RelocationOutcome.FAILED_DELETE, str(e), e.attempts)

        return RelocationResult(plan.source_key, plan.destination_key, RelocationOutcome.MOVED,
                                attempts=attempts)

    def _destination_exists(self, bucket: str, plan: RelocationPlan) -> bool:
        """Проверяет, что объект назначения уже существует (повторное событие)."""
        list_destination = partial(self.store.list_objects, bucket, plan.destination_key, None)
        try:
            page, _ = self._call_with_retries('list', plan.destination_key, list_destination)
        except ObjectStoreError:
            return False
        return plan.destination_key in page.keys

    def _call_with_retries(self, operation: str, key: str, func: Callable) -> Tuple[object, int]:
        """
        Выполняет операцию с хранилищем с повторами для временных ошибок.

        Пауза между попытками растет экспоненциально: retry_delay * 2^(n-1).
        Ошибки доступа и постоянные ошибки не повторяются.

        Returns:
            Tuple: Результат операции и количество выполненных попыток

        Raises:
            ObjectStoreError: Если все попытки исчерпаны или ошибка постоянная;
            в атрибуте attempts - количество выполненных попыток
        """
        max_attempts = self.config.organizer.max_attempts
        retry_delay = self.config.organizer.retry_delay

        for attempt in range(1, max_attempts + 1):
            try:
                return func(), attempt
            except TransientStoreError as e:
                if attempt >= max_attempts:
                    e.attempts = attempt
                    self.logger.log_store_error(operation, key, e)
                    raise
                delay = retry_delay * (2 ** (attempt - 1))
                self.logger.log_retry(operation, key, attempt, max_attempts, delay, e)
                if delay > 0:
                    time.sleep(delay)
            except StorePermissionError as e:
                e.attempts = attempt
                self.logger.log_critical_error(f"Отказ в доступе при {operation} {key}, проверьте права", e)
                raise
            except ObjectStoreError as e:
                e.attempts = attempt
                self.logger.log_store_error(operation, key, e)
                raise


def create_organizer(config: Config, logger: OrganizerLogger, store: Optional[ObjectStore] = None) -> Organizer:
    """
    Удобная функция для создания органайзера.

    Args:
        config: Конфигурация приложения
        logger: Логгер
        store: Клиент хранилища (по умолчанию S3 из конфигурации)

    Returns:
        Organizer: Объект органайзера
    """
    if store is None:
        store = create_object_store(config.store, logger)
    return Organizer(config, logger, store)
