"""
Точка входа AWS Lambda.

Принимает уведомления S3 (ObjectCreated), прямой вызов вида
{"bucketName": ..., "objectKeys": [...]} или пустое событие по расписанию
(обход всего префикса), запускает перенос и сообщает результат вызова.
"""

from typing import Dict, List, Optional
from urllib.parse import unquote_plus

try:
    from .config_loader import Config, load_config
    from .logger import OrganizerLogger
    from .object_store import ObjectStore, create_object_store
    from .organizer import OrganizeError, create_organizer
except ImportError:
    from config_loader import Config, load_config
    from logger import OrganizerLogger
    from object_store import ObjectStore, create_object_store
    from organizer import OrganizeError, create_organizer


class OrganizeFailedError(OrganizeError):
    """Исключение для вызова, в котором хотя бы один объект не перенесен."""

    def __init__(self, message: str, stats: Dict):
        self.stats = stats
        super().__init__(message)


def extract_object_keys(event: Dict, bucket: str, logger: OrganizerLogger) -> Optional[List[str]]:
    """
    Извлекает ключи объектов для заданного бакета из события.

    Args:
        event: Событие вызова
        bucket: Имя отслеживаемого бакета
        logger: Логгер

    Returns:
        List[str] или None: Ключи объектов; None если событие не содержит
        ключей (вызов по расписанию - обход префикса)
    """
    if 'objectKeys' in event:
        event_bucket = event.get('bucketName', bucket)
        if event_bucket != bucket:
            logger.log_warning(f"Событие для бакета {event_bucket} проигнорировано (ожидается {bucket})")
            return []
        object_keys = event['objectKeys']
        if isinstance(object_keys, str):
            return [object_keys]
        if not isinstance(object_keys, list):
            logger.log_warning(f"Некорректное поле objectKeys: {object_keys!r}, ожидается список ключей")
            return []
        return list(object_keys)

    records = event.get('Records')
    if not records:
        return None

    keys = []
    for record in records:
        s3 = record.get('s3', {})
        record_bucket = s3.get('bucket', {}).get('name')
        raw_key = s3.get('object', {}).get('key')

        if raw_key is None:
            logger.log_warning(f"Запись события без ключа объекта: {record.get('eventName')}")
            continue
        if record_bucket != bucket:
            logger.log_warning(f"Запись для бакета {record_bucket} проигнорирована (ожидается {bucket})")
            continue

        # Ключи в уведомлениях S3 закодированы как в URL
        keys.append(unquote_plus(raw_key))

    return keys


def handle_event(event: Dict, config: Config, logger: OrganizerLogger, store: ObjectStore) -> Dict:
    """
    Обрабатывает одно событие.

    Returns:
        Dict: Статистика и результаты по объектам

    Raises:
        OrganizeError: Если листинг не удался
        OrganizeFailedError: Если есть результаты FailedCopy/FailedDelete
    """
    bucket = config.bucket.name
    candidate_keys = extract_object_keys(event or {}, bucket, logger)

    organizer = create_organizer(config, logger, store)
    results = organizer.organize(bucket, config.bucket.path, candidate_keys)
    stats = organizer.stats.to_dict()

    if not organizer.stats.is_successful():
        raise OrganizeFailedError(
            f"Не перенесено объектов: {organizer.stats.failed} из {organizer.stats.total_candidates}",
            stats
        )

    return {
        'bucket': bucket,
        'prefix': config.bucket.path,
        'stats': stats,
        'results': [result.to_dict() for result in results]
    }


def lambda_handler(event, context):
    """Обработчик AWS Lambda; конфигурация берется из переменных окружения."""
    config = load_config()
    logger = OrganizerLogger(config.logging)

    if context is not None:
        logger.log_system_info(f"Вызов {getattr(context, 'aws_request_id', '-')}")

    store = create_object_store(config.store, logger)
    return handle_event(event, config, logger, store)
