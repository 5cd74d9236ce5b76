"""
Общие фикстуры тестов: конфигурация, мок логгера и хранилище в памяти.
"""

import pytest
from unittest.mock import Mock

from bucket_organizer.config_loader import Config, BucketConfig, OrganizerConfig, StoreConfig, LoggingConfig
from bucket_organizer.logger import OrganizerLogger
from bucket_organizer.object_store import ObjectStore, ObjectStoreError, ListPage


class FakeObjectStore(ObjectStore):
    """
    Хранилище в памяти с постраничным листингом и внедряемыми ошибками.

    Листинг ведет себя как list_objects_v2 с Delimiter='/': возвращает
    только объекты непосредственно под префиксом, в лексикографическом порядке.
    """

    def __init__(self, keys=None, page_size=1000):
        self.objects = {key: f"content of {key}".encode() for key in (keys or [])}
        self.page_size = page_size
        self.calls = []
        self.copy_failures = {}
        self.delete_failures = {}
        self.list_failures = []

    def fail_copy(self, key, *errors):
        self.copy_failures.setdefault(key, []).extend(errors)

    def fail_delete(self, key, *errors):
        self.delete_failures.setdefault(key, []).extend(errors)

    def list_objects(self, bucket, prefix, continuation_token=None):
        self.calls.append(('list', prefix, continuation_token))
        if self.list_failures:
            raise self.list_failures.pop(0)

        matching = sorted(
            key for key in self.objects
            if key.startswith(prefix) and '/' not in key[len(prefix):]
        )
        start = int(continuation_token) if continuation_token else 0
        end = start + self.page_size
        next_token = str(end) if end < len(matching) else None
        return ListPage(keys=matching[start:end], next_token=next_token)

    def copy_object(self, bucket, source_key, destination_key):
        self.calls.append(('copy', source_key, destination_key))
        failures = self.copy_failures.get(source_key)
        if failures:
            raise failures.pop(0)
        if source_key not in self.objects:
            raise ObjectStoreError(f"Ошибка copy {source_key}: NoSuchKey", 'NoSuchKey')
        self.objects[destination_key] = self.objects[source_key]

    def delete_object(self, bucket, key):
        self.calls.append(('delete', key))
        failures = self.delete_failures.get(key)
        if failures:
            raise failures.pop(0)
        self.objects.pop(key, None)

    def operations(self, kind):
        return [call for call in self.calls if call[0] == kind]


@pytest.fixture
def config():
    """Создает конфигурацию без пауз между попытками."""
    return Config(
        bucket=BucketConfig(name='test-bucket', path='incoming/'),
        organizer=OrganizerConfig(
            destination_root='organized',
            max_attempts=3,
            retry_delay=0.0,
            max_workers=1
        ),
        store=StoreConfig(region='us-east-1'),
        logging=LoggingConfig(level='INFO', log_file=None, colored=False)
    )


@pytest.fixture
def mock_logger():
    """Создает мок логгера."""
    return Mock(spec=OrganizerLogger)


@pytest.fixture
def fake_store():
    return FakeObjectStore()
