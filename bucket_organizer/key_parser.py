"""
Модуль разбора ключей объектов.

Извлекает дату из имени объекта вида filename-<random>-YYYY-MM-DD.txt
и вычисляет ключ назначения в структуре по датам (organized/YYYY/MM/DD/).
"""

import re
from dataclasses import dataclass


DEFAULT_DESTINATION_ROOT = "organized"

_DIGITS = re.compile(r"[0-9]+")


class MalformedKeyError(ValueError):
    """Исключение для ключей, из имени которых нельзя извлечь дату."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"{reason}: {key}")


@dataclass(frozen=True)
class DatePartition:
    """Дата, извлеченная из имени объекта."""
    year: str
    month: str
    day: str

    def as_path(self) -> str:
        return f"{self.year}/{self.month}/{self.day}"


@dataclass(frozen=True)
class RelocationPlan:
    """Пара исходного ключа и вычисленного ключа назначения."""
    source_key: str
    destination_key: str
    partition: DatePartition


def normalize_prefix(prefix: str) -> str:
    """
    Приводит префикс к виду 'path/' (ровно один завершающий слеш).

    Args:
        prefix: Префикс из конфигурации

    Returns:
        str: Нормализованный префикс; пустая строка остается пустой

    Raises:
        ValueError: Если префикс начинается со слеша
    """
    if prefix.startswith('/'):
        raise ValueError(f"Префикс не должен начинаться со слеша: {prefix}")

    stripped = prefix.rstrip('/')
    return f"{stripped}/" if stripped else ""


def basename(key: str) -> str:
    return key.rsplit('/', 1)[-1]


def parse_date_partition(key: str) -> DatePartition:
    """
    Извлекает дату из имени объекта.

    Дата - последние три поля имени, разделенные '-', перед расширением.

    Args:
        key: Ключ объекта

    Returns:
        DatePartition: Год, месяц и день (месяц и день дополнены до 2 цифр)

    Raises:
        MalformedKeyError: Если имя не соответствует шаблону даты
    """
    name = basename(key)
    if not name:
        raise MalformedKeyError(key, "Пустое имя файла")

    stem = name.rsplit('.', 1)[0] if '.' in name else name
    fields = stem.split('-')
    if len(fields) < 3:
        raise MalformedKeyError(key, "В имени файла нет даты")

    year, month, day = fields[-3:]
    for value in (year, month, day):
        if not _DIGITS.fullmatch(value):
            raise MalformedKeyError(key, f"Поле даты не является числом '{value}'")

    if len(year) != 4:
        raise MalformedKeyError(key, f"Некорректный год '{year}'")
    if len(month) > 2 or not 1 <= int(month) <= 12:
        raise MalformedKeyError(key, f"Некорректный месяц '{month}'")
    if len(day) > 2 or not 1 <= int(day) <= 31:
        raise MalformedKeyError(key, f"Некорректный день '{day}'")

    return DatePartition(year=year, month=month.zfill(2), day=day.zfill(2))


def build_destination_key(key: str, partition: DatePartition,
                          destination_root: str = DEFAULT_DESTINATION_ROOT) -> str:
    """
    Вычисляет ключ назначения для объекта.

    Args:
        key: Исходный ключ объекта
        partition: Дата объекта
        destination_root: Корень структуры по датам

    Returns:
        str: Ключ вида {root}/YYYY/MM/DD/{basename}
    """
    root = destination_root.strip('/')
    return f"{root}/{partition.as_path()}/{basename(key)}"


def plan_relocation(key: str, destination_root: str = DEFAULT_DESTINATION_ROOT) -> RelocationPlan:
    """
    Строит план перемещения объекта.

    Raises:
        MalformedKeyError: Если из имени нельзя извлечь дату
    """
    partition = parse_date_partition(key)
    return RelocationPlan(
        source_key=key,
        destination_key=build_destination_key(key, partition, destination_root),
        partition=partition
    )


def is_organized(key: str, destination_root: str = DEFAULT_DESTINATION_ROOT) -> bool:
    """
    Проверяет, лежит ли ключ под корнем структуры по датам.

    Корень ищется как сегмент пути в любой позиции, чтобы не обрабатывать
    повторно объекты, если корень оказался внутри отслеживаемого префикса.
    """
    root = destination_root.strip('/')
    if not root:
        return False
    return f"/{root}/" in f"/{key}"


def is_under_prefix(key: str, prefix: str) -> bool:
    return key.startswith(prefix)
