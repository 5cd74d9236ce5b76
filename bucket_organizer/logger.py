"""
Модуль для настройки и управления логированием приложения.

Обеспечивает централизованную настройку логирования с цветным выводом
в консоль, необязательной ротацией файлов и структурированными записями
о переносе каждого объекта.
"""

import json
import logging
import logging.handlers
import sys
from pathlib import Path
from typing import Optional
from datetime import datetime

try:
    from .config_loader import LoggingConfig
except ImportError:
    from config_loader import LoggingConfig


LOGGER_NAME = 'bucket_organizer'


class ColoredFormatter(logging.Formatter):
    """Форматтер с цветным выводом для консоли."""

    # Цветовые коды ANSI
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        """Форматирует запись лога с цветом."""
        levelname = record.levelname
        if levelname in self.COLORS:
            record.levelname = f"{self.COLORS[levelname]}{levelname}{self.COLORS['RESET']}"
        try:
            return super().format(record)
        finally:
            # Запись разделяется между обработчиками
            record.levelname = levelname


class OrganizerLogger:
    """Класс для управления логированием приложения Bucket Organizer."""

    # Уровень записи о переносе в зависимости от результата
    OUTCOME_LEVELS = {
        'Moved': logging.INFO,
        'SkippedMalformedName': logging.WARNING,
        'FailedCopy': logging.ERROR,
        'FailedDelete': logging.ERROR,
    }

    def __init__(self, config: LoggingConfig):
        """
        Инициализация логгера.

        Args:
            config: Конфигурация логирования
        """
        self.config = config
        self.logger: Optional[logging.Logger] = None
        self._setup_logger()

    def _setup_logger(self) -> None:
        """Настраивает логгер с консольным и (опционально) файловым выводом."""
        level = getattr(logging, self.config.level.upper())

        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(level)

        # Обработчики остаются от предыдущего вызова в том же процессе (Lambda)
        for handler in self.logger.handlers[:]:
            handler.close()
            self.logger.removeHandler(handler)

        fmt = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'
        datefmt = '%Y-%m-%d %H:%M:%S'

        console_handler = logging.StreamHandler(sys.stdout)
        if self.config.colored:
            console_handler.setFormatter(ColoredFormatter(fmt=fmt, datefmt=datefmt))
        else:
            console_handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
        console_handler.setLevel(level)
        self.logger.addHandler(console_handler)

        if self.config.log_file:
            log_file_path = Path(self.config.log_file)
            log_file_path.parent.mkdir(parents=True, exist_ok=True)

            file_handler = logging.handlers.RotatingFileHandler(
                filename=log_file_path,
                maxBytes=self.config.max_log_size * 1024 * 1024,  # MB -> байты
                backupCount=self.config.backup_count,
                encoding='utf-8'
            )
            file_handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
            file_handler.setLevel(level)
            self.logger.addHandler(file_handler)

        # Предотвращаем дублирование сообщений
        self.logger.propagate = False

    def get_logger(self) -> logging.Logger:
        """
        Возвращает настроенный логгер.

        Returns:
            logging.Logger: Настроенный логгер
        """
        if self.logger is None:
            raise RuntimeError("Логгер не инициализирован")
        return self.logger

    def log_organize_start(self, bucket: str, prefix: str, candidate_count: Optional[int] = None) -> None:
        """
        Логирует начало переноса.

        Args:
            bucket: Имя бакета
            prefix: Отслеживаемый префикс
            candidate_count: Количество ключей из события (None - обход префикса)
        """
        self.logger.info(f"🚀 Начало переноса: s3://{bucket}/{prefix}")
        if candidate_count is None:
            self.logger.info("📂 Режим: обход всего префикса")
        else:
            self.logger.info(f"📨 Режим: ключи из события ({candidate_count})")
        self.logger.info(f"⏰ Время начала: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

    def log_organize_end(self, stats: dict) -> None:
        """
        Логирует завершение переноса.

        Args:
            stats: Статистика переноса (OrganizeStats.to_dict())
        """
        self.logger.info("✅ Перенос завершен")
        self.logger.info("📊 Статистика:")
        self.logger.info(f"   • Кандидатов: {stats.get('total_candidates', 0)}")
        self.logger.info(f"   • Перенесено: {stats.get('moved', 0)}")
        self.logger.info(f"   • Пропущено: {stats.get('skipped_malformed_name', 0)}")
        self.logger.info(f"   • Ошибок копирования: {stats.get('failed_copy', 0)}")
        self.logger.info(f"   • Ошибок удаления: {stats.get('failed_delete', 0)}")

    def log_listing_page(self, page_number: int, key_count: int, has_more: bool) -> None:
        """Логирует получение страницы листинга."""
        suffix = ", есть продолжение" if has_more else ""
        self.logger.debug(f"📄 Страница листинга #{page_number}: {key_count} ключей{suffix}")

    def log_relocation(self, source_key: str, destination_key: Optional[str], outcome: str,
                       error: Optional[str] = None, attempts: Optional[int] = None) -> None:
        """
        Записывает структурированную строку о результате переноса объекта.

        Args:
            source_key: Исходный ключ
            destination_key: Ключ назначения (None если не вычислен)
            outcome: Результат переноса
            error: Описание ошибки (опционально)
            attempts: Количество вызовов хранилища на последнем шаге
        """
        payload = {
            'sourceKey': source_key,
            'destinationKey': destination_key,
            'outcome': outcome,
        }
        if error:
            payload['error'] = error
        if attempts is not None:
            payload['attempts'] = attempts

        level = self.OUTCOME_LEVELS.get(outcome, logging.INFO)
        self.logger.log(level, f"📦 {json.dumps(payload, ensure_ascii=False)}")

    def log_malformed_key(self, key: str, reason: str) -> None:
        """
        Логирует ключ, из которого нельзя извлечь дату.

        Args:
            key: Ключ объекта
            reason: Причина
        """
        self.logger.warning(f"⚠️ Некорректное имя объекта {key}: {reason}")

    def log_key_filtered(self, key: str, reason: str) -> None:
        """Логирует ключ, исключенный из кандидатов."""
        self.logger.debug(f"⏭️ Ключ {key} пропущен: {reason}")

    def log_retry(self, operation: str, key: str, attempt: int, max_attempts: int,
                  delay: float, error: Exception) -> None:
        """
        Логирует повторную попытку операции с хранилищем.

        Args:
            operation: Операция (list, copy, delete)
            key: Ключ или префикс
            attempt: Номер неудачной попытки
            max_attempts: Максимальное количество попыток
            delay: Пауза перед следующей попыткой, сек
            error: Исключение
        """
        self.logger.warning(
            f"🔁 {operation.upper()} {key}: попытка {attempt}/{max_attempts} неудачна ({error}), "
            f"повтор через {delay:.2f} сек"
        )

    def log_store_error(self, operation: str, key: str, error: Exception) -> None:
        """
        Логирует ошибку хранилища.

        Args:
            operation: Операция, при которой произошла ошибка
            key: Ключ или префикс
            error: Исключение
        """
        self.logger.error(f"🪣 Ошибка хранилища при {operation} {key}: {error}")

    def log_system_info(self, info: str) -> None:
        """
        Логирует системную информацию.

        Args:
            info: Информационное сообщение
        """
        self.logger.info(f"ℹ️ {info}")

    def log_warning(self, message: str) -> None:
        """
        Логирует предупреждение.

        Args:
            message: Сообщение предупреждения
        """
        self.logger.warning(f"⚠️ {message}")

    def log_critical_error(self, message: str, error: Exception = None) -> None:
        """
        Логирует критическую ошибку.

        Args:
            message: Сообщение об ошибке
            error: Исключение (опционально)
        """
        if error:
            self.logger.critical(f"💥 {message}: {error}")
        else:
            self.logger.critical(f"💥 {message}")

