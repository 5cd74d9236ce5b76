"""
Модуль для загрузки и валидации конфигурации приложения.

Обеспечивает загрузку параметров из config/settings.ini и переменных
окружения (BUCKET_NAME, BUCKET_PATH и др.) с валидацией и удобным
доступом к настройкам. Переменные окружения имеют приоритет над файлом.
"""

import configparser
import os
from pathlib import Path
from typing import Mapping, Optional
from dataclasses import dataclass

try:
    from .key_parser import DEFAULT_DESTINATION_ROOT, is_organized, normalize_prefix
except ImportError:
    from key_parser import DEFAULT_DESTINATION_ROOT, is_organized, normalize_prefix


@dataclass
class BucketConfig:
    """Конфигурация отслеживаемого бакета."""
    name: str
    path: str


@dataclass
class OrganizerConfig:
    """Конфигурация параметров переноса."""
    destination_root: str = DEFAULT_DESTINATION_ROOT
    max_attempts: int = 3
    retry_delay: float = 0.5
    max_workers: int = 1


@dataclass
class StoreConfig:
    """Конфигурация клиента объектного хранилища."""
    region: Optional[str] = None
    endpoint_url: Optional[str] = None
    connect_timeout: float = 5.0
    read_timeout: float = 30.0


@dataclass
class LoggingConfig:
    """Конфигурация логирования."""
    level: str = 'INFO'
    log_file: Optional[Path] = None
    max_log_size: int = 10
    backup_count: int = 5
    colored: bool = True


@dataclass
class Config:
    """Основная конфигурация приложения."""
    bucket: BucketConfig
    organizer: OrganizerConfig
    store: StoreConfig
    logging: LoggingConfig


# Переменная окружения -> (секция, параметр)
ENV_OVERRIDES = {
    'BUCKET_NAME': ('bucket', 'name'),
    'BUCKET_PATH': ('bucket', 'path'),
    'DESTINATION_ROOT': ('organizer', 'destination_root'),
    'MAX_ATTEMPTS': ('organizer', 'max_attempts'),
    'RETRY_DELAY': ('organizer', 'retry_delay'),
    'MAX_WORKERS': ('organizer', 'max_workers'),
    'AWS_REGION': ('store', 'region'),
    'S3_ENDPOINT_URL': ('store', 'endpoint_url'),
    'CONNECT_TIMEOUT': ('store', 'connect_timeout'),
    'READ_TIMEOUT': ('store', 'read_timeout'),
    'LOG_LEVEL': ('logging', 'level'),
    'LOG_FILE': ('logging', 'log_file'),
    'LOG_COLORED': ('logging', 'colored'),
}


class ConfigLoader:
    """Класс для загрузки и валидации конфигурации."""

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """
        Инициализация загрузчика конфигурации.

        Args:
            config_path: Путь к файлу конфигурации (None - только окружение)
            environ: Переменные окружения (по умолчанию os.environ)
        """
        self.config_path = Path(config_path) if config_path else None
        self.environ = os.environ if environ is None else environ
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """
        Загружает конфигурацию из файла и переменных окружения.

        Returns:
            Config: Объект конфигурации

        Raises:
            FileNotFoundError: Если указанный файл конфигурации не найден
            ValueError: Если конфигурация некорректна
        """
        config_parser = configparser.ConfigParser()

        if self.config_path is not None:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Файл конфигурации не найден: {self.config_path}")
            config_parser.read(self.config_path, encoding='utf-8')

        self._apply_environment(config_parser)

        try:
            self._config = Config(
                bucket=self._load_bucket_config(config_parser),
                organizer=self._load_organizer_config(config_parser),
                store=self._load_store_config(config_parser),
                logging=self._load_logging_config(config_parser)
            )

            self._validate_config()

            return self._config

        except Exception as e:
            self._config = None
            raise ValueError(f"Ошибка загрузки конфигурации: {e}")

    def _apply_environment(self, parser: configparser.ConfigParser) -> None:
        """Переносит переменные окружения в секции конфигурации."""
        for variable, (section, option) in ENV_OVERRIDES.items():
            value = self.environ.get(variable)
            if value is None:
                continue
            if not parser.has_section(section):
                parser.add_section(section)
            parser.set(section, option, value)

    def _load_bucket_config(self, parser: configparser.ConfigParser) -> BucketConfig:
        """Загружает конфигурацию бакета."""
        section = 'bucket'

        if not parser.has_section(section):
            raise ValueError(f"Секция '{section}' не найдена (задайте BUCKET_NAME и BUCKET_PATH)")

        name = parser.get(section, 'name', fallback='').strip()
        if not name:
            raise ValueError("Не задано имя бакета (BUCKET_NAME)")

        path = parser.get(section, 'path', fallback='').strip()
        if not path:
            raise ValueError("Не задан отслеживаемый префикс (BUCKET_PATH)")

        return BucketConfig(name=name, path=normalize_prefix(path))

    def _load_organizer_config(self, parser: configparser.ConfigParser) -> OrganizerConfig:
        """Загружает конфигурацию переноса."""
        section = 'organizer'
        defaults = OrganizerConfig()

        if not parser.has_section(section):
            return defaults

        return OrganizerConfig(
            destination_root=parser.get(section, 'destination_root', fallback=defaults.destination_root).strip('/'),
            max_attempts=parser.getint(section, 'max_attempts', fallback=defaults.max_attempts),
            retry_delay=parser.getfloat(section, 'retry_delay', fallback=defaults.retry_delay),
            max_workers=parser.getint(section, 'max_workers', fallback=defaults.max_workers)
        )

    def _load_store_config(self, parser: configparser.ConfigParser) -> StoreConfig:
        """Загружает конфигурацию клиента хранилища."""
        section = 'store'
        defaults = StoreConfig()

        if not parser.has_section(section):
            return defaults

        return StoreConfig(
            region=parser.get(section, 'region', fallback=None) or None,
            endpoint_url=parser.get(section, 'endpoint_url', fallback=None) or None,
            connect_timeout=parser.getfloat(section, 'connect_timeout', fallback=defaults.connect_timeout),
            read_timeout=parser.getfloat(section, 'read_timeout', fallback=defaults.read_timeout)
        )

    def _load_logging_config(self, parser: configparser.ConfigParser) -> LoggingConfig:
        """Загружает конфигурацию логирования."""
        section = 'logging'
        defaults = LoggingConfig()

        if not parser.has_section(section):
            return defaults

        log_file = parser.get(section, 'log_file', fallback='').strip()

        return LoggingConfig(
            level=parser.get(section, 'level', fallback=defaults.level),
            log_file=Path(log_file) if log_file else None,
            max_log_size=parser.getint(section, 'max_log_size', fallback=defaults.max_log_size),
            backup_count=parser.getint(section, 'backup_count', fallback=defaults.backup_count),
            colored=parser.getboolean(section, 'colored', fallback=defaults.colored)
        )

    def _validate_config(self) -> None:
        """Валидирует загруженную конфигурацию."""
        if not self._config:
            raise ValueError("Конфигурация не загружена")

        organizer = self._config.organizer

        if not organizer.destination_root:
            raise ValueError("Корень структуры по датам не может быть пустым")

        # Префикс внутри корня назначения приводит к бесконечному циклу триггеров
        if is_organized(self._config.bucket.path, organizer.destination_root):
            raise ValueError(
                f"Префикс {self._config.bucket.path} находится внутри {organizer.destination_root}/"
            )

        if organizer.max_attempts < 1:
            raise ValueError("Количество попыток должно быть не меньше 1")

        if organizer.retry_delay < 0:
            raise ValueError("Задержка между попытками не может быть отрицательной")

        if organizer.max_workers < 1:
            raise ValueError("Количество потоков должно быть не меньше 1")

        if self._config.store.connect_timeout <= 0 or self._config.store.read_timeout <= 0:
            raise ValueError("Таймауты хранилища должны быть больше 0")

        # Проверка уровня логирования
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self._config.logging.level.upper() not in valid_levels:
            raise ValueError(f"Некорректный уровень логирования: {self._config.logging.level}")

    def get_config(self) -> Config:
        """
        Возвращает загруженную конфигурацию.

        Returns:
            Config: Объект конфигурации

        Raises:
            ValueError: Если конфигурация не загружена
        """
        if self._config is None:
            raise ValueError("Конфигурация не загружена. Вызовите load_config() сначала.")
        return self._config

    def reload_config(self) -> Config:
        """
        Перезагружает конфигурацию.

        Returns:
            Config: Обновленный объект конфигурации
        """
        self._config = None
        return self.load_config()


def load_config(config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None) -> Config:
    """
    Удобная функция для быстрой загрузки конфигурации.

    Args:
        config_path: Путь к файлу конфигурации (None - только окружение)
        environ: Переменные окружения (по умолчанию os.environ)

    Returns:
        Config: Объект конфигурации
    """
    loader = ConfigLoader(config_path, environ)
    return loader.load_config()
