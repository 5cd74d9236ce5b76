"""
Модуль для операций с объектным хранилищем.

Определяет контракт клиента хранилища (листинг, копирование, удаление)
и его реализацию поверх boto3 для S3. Ошибки boto3 приводятся к
собственной таксономии: временные, ошибки доступа и постоянные.
"""

from dataclasses import dataclass, field
from typing import List, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)

try:
    from .config_loader import StoreConfig
    from .logger import OrganizerLogger
except ImportError:
    from config_loader import StoreConfig
    from logger import OrganizerLogger


# Коды ошибок S3, при которых повтор имеет смысл
TRANSIENT_ERROR_CODES = {
    'InternalError',
    'RequestTimeout',
    'RequestTimeoutException',
    'ServiceUnavailable',
    'SlowDown',
    'Throttling',
    'ThrottlingException',
    'RequestLimitExceeded',
    'TooManyRequestsException',
}

# Коды ошибок S3, указывающие на ошибку конфигурации прав
PERMISSION_ERROR_CODES = {
    'AccessDenied',
    'AllAccessDisabled',
    'AccountProblem',
    'ExpiredToken',
    'InvalidAccessKeyId',
    'InvalidToken',
    'SignatureDoesNotMatch',
}


class ObjectStoreError(Exception):
    """Исключение для ошибок объектного хранилища."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        self.attempts = 0
        super().__init__(message)


class TransientStoreError(ObjectStoreError):
    """Временная ошибка (сеть, таймаут, троттлинг), допускающая повтор."""
    pass


class StorePermissionError(ObjectStoreError):
    """Отказ в доступе - ошибка конфигурации, повтор бесполезен."""
    pass


@dataclass
class ListPage:
    """Одна страница листинга."""
    keys: List[str] = field(default_factory=list)
    next_token: Optional[str] = None


class ObjectStore:
    """
    Контракт клиента объектного хранилища.

    Реализации выбрасывают ObjectStoreError и его подклассы.
    """

    def list_objects(self, bucket: str, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        raise NotImplementedError

    def copy_object(self, bucket: str, source_key: str, destination_key: str) -> None:
        raise NotImplementedError

    def delete_object(self, bucket: str, key: str) -> None:
        raise NotImplementedError


def classify_error(error: Exception, operation: str, key: str) -> ObjectStoreError:
    """
    Приводит исключение boto3/botocore к таксономии ошибок хранилища.

    Args:
        error: Исходное исключение
        operation: Операция (list, copy, delete)
        key: Ключ или префикс

    Returns:
        ObjectStoreError: Исключение соответствующего класса
    """
    message = f"Ошибка {operation} {key}: {error}"

    if isinstance(error, ClientError):
        code = error.response.get('Error', {}).get('Code')
        status = error.response.get('ResponseMetadata', {}).get('HTTPStatusCode') or 0

        if code in PERMISSION_ERROR_CODES or status == 403:
            return StorePermissionError(message, code)
        if code in TRANSIENT_ERROR_CODES or status >= 500 or status == 429:
            return TransientStoreError(message, code)
        return ObjectStoreError(message, code)

    if isinstance(error, (EndpointConnectionError, ConnectTimeoutError, ReadTimeoutError, BotoConnectionError)):
        return TransientStoreError(message)

    return ObjectStoreError(message)


class S3ObjectStore(ObjectStore):
    """Реализация контракта хранилища поверх boto3 S3 клиента."""

    def __init__(self, store_config: StoreConfig, logger: OrganizerLogger, client=None):
        """
        Инициализация клиента хранилища.

        Args:
            store_config: Конфигурация клиента
            logger: Логгер для записи операций
            client: Готовый boto3 клиент (по умолчанию создается из конфигурации)
        """
        self.store_config = store_config
        self.logger = logger
        self.client = client if client is not None else self._create_client()

    def _create_client(self):
        """Создает boto3 клиент с таймаутами; повторы выполняет Organizer."""
        boto_config = BotoConfig(
            connect_timeout=self.store_config.connect_timeout,
            read_timeout=self.store_config.read_timeout,
            retries={'total_max_attempts': 1}
        )
        client = boto3.client(
            's3',
            region_name=self.store_config.region,
            endpoint_url=self.store_config.endpoint_url,
            config=boto_config
        )
        self.logger.log_system_info(
            f"Клиент S3 создан (region={self.store_config.region or 'default'}, "
            f"endpoint={self.store_config.endpoint_url or 'aws'})"
        )
        return client

    def list_objects(self, bucket: str, prefix: str, continuation_token: Optional[str] = None) -> ListPage:
        """
        Получает одну страницу листинга объектов под префиксом.

        Args:
            bucket: Имя бакета
            prefix: Префикс
            continuation_token: Токен продолжения предыдущей страницы

        Returns:
            ListPage: Ключи страницы и токен следующей страницы

        Raises:
            ObjectStoreError: Если листинг не удался
        """
        params = {'Bucket': bucket, 'Prefix': prefix, 'Delimiter': '/'}
        if continuation_token:
            params['ContinuationToken'] = continuation_token

        try:
            response = self.client.list_objects_v2(**params)
        except (ClientError, BotoCoreError) as e:
            raise classify_error(e, 'list', prefix) from e

        # Пустой префикс возвращается без 'Contents'
        keys = [obj['Key'] for obj in response.get('Contents', [])]
        next_token = response.get('NextContinuationToken') if response.get('IsTruncated') else None

        return ListPage(keys=keys, next_token=next_token)

    def copy_object(self, bucket: str, source_key: str, destination_key: str) -> None:
        """
        Копирует объект внутри бакета.

        Raises:
            ObjectStoreError: Если копирование не удалось
        """
        try:
            self.client.copy_object(
                CopySource={'Bucket': bucket, 'Key': source_key},
                Bucket=bucket,
                Key=destination_key
            )
        except (ClientError, BotoCoreError) as e:
            raise classify_error(e, 'copy', source_key) from e

    def delete_object(self, bucket: str, key: str) -> None:
        """
        Удаляет объект.

        Raises:
            ObjectStoreError: Если удаление не удалось
        """
        try:
            self.client.delete_object(Bucket=bucket, Key=key)
        except (ClientError, BotoCoreError) as e:
            raise classify_error(e, 'delete', key) from e


def create_object_store(store_config: StoreConfig, logger: OrganizerLogger) -> S3ObjectStore:
    """
    Удобная функция для создания клиента хранилища.

    Args:
        store_config: Конфигурация клиента
        logger: Логгер

    Returns:
        S3ObjectStore: Клиент хранилища
    """
    return S3ObjectStore(store_config, logger)
