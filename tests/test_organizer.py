"""
Тесты для модуля organizer.py
"""

import pytest
from unittest.mock import Mock, patch
from datetime import datetime

from bucket_organizer.organizer import (
    Organizer,
    OrganizeError,
    OrganizeStats,
    RelocationOutcome,
    RelocationResult,
    create_organizer,
)
from bucket_organizer.key_parser import RelocationPlan
from bucket_organizer.object_store import (
    ListPage,
    ObjectStoreError,
    StorePermissionError,
    TransientStoreError,
)

from conftest import FakeObjectStore


BUCKET = 'test-bucket'
PREFIX = 'incoming/'


class TestOrganizeStats:
    """Тесты для класса OrganizeStats."""

    def test_stats_initialization(self):
        """Тест инициализации статистики."""
        stats = OrganizeStats()

        assert stats.total_candidates == 0
        assert stats.moved == 0
        assert stats.failed == 0
        assert stats.start_time is None
        assert stats.end_time is None
        assert stats.errors == []
        assert stats.is_successful() is True

    def test_add_result(self):
        """Тест учета результатов."""
        stats = OrganizeStats()

        stats.add_result(RelocationResult('a', 'b', RelocationOutcome.MOVED))
        stats.add_result(RelocationResult('c', None, RelocationOutcome.SKIPPED_MALFORMED_NAME, 'bad'))
        stats.add_result(RelocationResult('d', 'e', RelocationOutcome.FAILED_DELETE, 'boom'))

        assert stats.total_candidates == 3
        assert stats.moved == 1
        assert stats.failed == 1
        assert stats.is_successful() is False
        assert len(stats.errors) == 1
        assert stats.errors[0]['source_key'] == 'd'
        assert stats.errors[0]['outcome'] == 'FailedDelete'

    def test_skipped_does_not_fail(self):
        """Тест: некорректные имена не делают вызов неуспешным."""
        stats = OrganizeStats()
        stats.add_result(RelocationResult('c', None, RelocationOutcome.SKIPPED_MALFORMED_NAME, 'bad'))

        assert stats.is_successful() is True

    def test_to_dict(self):
        """Тест преобразования в словарь."""
        stats = OrganizeStats()
        stats.add_result(RelocationResult('a', 'b', RelocationOutcome.MOVED))
        stats.add_result(RelocationResult('c', 'd', RelocationOutcome.FAILED_COPY, 'x'))
        stats.start_time = datetime(2024, 1, 1, 10, 0, 0)
        stats.end_time = datetime(2024, 1, 1, 10, 0, 30)

        result = stats.to_dict()

        assert result['total_candidates'] == 2
        assert result['moved'] == 1
        assert result['skipped_malformed_name'] == 0
        assert result['failed_copy'] == 1
        assert result['failed_delete'] == 0
        assert result['start_time'] == '2024-01-01T10:00:00'
        assert result['duration_seconds'] == 30.0
        assert result['successful'] is False

    def test_result_to_dict(self):
        """Тест преобразования результата в словарь."""
        result = RelocationResult('a', 'b', RelocationOutcome.FAILED_DELETE, 'timeout', 3)

        assert result.to_dict() == {
            'sourceKey': 'a',
            'destinationKey': 'b',
            'outcome': 'FailedDelete',
            'error': 'timeout',
            'attempts': 3
        }


class TestOrganizer:
    """Тесты для класса Organizer."""

    def make_organizer(self, config, mock_logger, store):
        return Organizer(config, mock_logger, store)

    def test_single_key_scenario(self, config, mock_logger):
        """Тест сценария: incoming/filename-57-2024-03-09.txt -> organized/2024/03/09/."""
        key = 'incoming/filename-57-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, [key])

        assert len(results) == 1
        assert results[0].outcome == RelocationOutcome.MOVED
        assert results[0].destination_key == 'organized/2024/03/09/filename-57-2024-03-09.txt'
        assert key not in store.objects
        assert 'organized/2024/03/09/filename-57-2024-03-09.txt' in store.objects
        mock_logger.log_relocation.assert_called_once_with(
            key, 'organized/2024/03/09/filename-57-2024-03-09.txt', 'Moved', None, 1
        )

    def test_copy_before_delete(self, config, mock_logger):
        """Тест порядка операций: копирование, затем удаление."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        organizer.organize(BUCKET, PREFIX, [key])

        assert store.calls == [
            ('copy', key, 'organized/2024/03/09/a-1-2024-03-09.txt'),
            ('delete', key),
        ]

    def test_folder_placeholder_excluded(self, config, mock_logger):
        """Тест: ключ, равный префиксу, не является кандидатом."""
        store = FakeObjectStore(['incoming/'])
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, ['incoming/'])

        assert results == []
        assert store.operations('copy') == []
        mock_logger.log_relocation.assert_not_called()

    def test_folder_placeholder_excluded_from_listing(self, config, mock_logger):
        """Тест: заглушка каталога из листинга не обрабатывается."""
        store = FakeObjectStore(['incoming/', 'incoming/a-1-2024-03-09.txt'])
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, 'incoming')

        assert [r.source_key for r in results] == ['incoming/a-1-2024-03-09.txt']

    def test_malformed_keys_skipped_without_store_calls(self, config, mock_logger):
        """Тест: некорректные имена пропускаются без обращений к хранилищу."""
        keys = ['incoming/notes.txt', 'incoming/file-2024-13-40.txt']
        store = FakeObjectStore(keys)
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, keys)

        assert [r.outcome for r in results] == [RelocationOutcome.SKIPPED_MALFORMED_NAME] * 2
        assert all(r.destination_key is None for r in results)
        assert store.calls == []
        assert mock_logger.log_malformed_key.call_count == 2
        assert organizer.stats.is_successful() is True

    def test_already_organized_keys_filtered(self, config, mock_logger):
        """Тест: ключи под organized/ не обрабатываются повторно."""
        key = 'organized/2024/03/09/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, [key])

        assert results == []
        assert store.calls == []

    def test_event_key_outside_prefix_ignored(self, config, mock_logger):
        """Тест: ключ из события вне префикса игнорируется."""
        key = 'other/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, [key])

        assert results == []
        assert store.calls == []
        mock_logger.log_warning.assert_called_once()

    def test_duplicate_event_keys_collapsed(self, config, mock_logger):
        """Тест: повтор ключа в одном событии обрабатывается один раз."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, [key, key])

        assert len(results) == 1
        assert results[0].outcome == RelocationOutcome.MOVED

    def test_second_scan_is_noop(self, config, mock_logger):
        """Тест идемпотентности: повторный проход после переноса ничего не делает."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        first = organizer.organize(BUCKET, PREFIX)
        store.calls.clear()
        second = organizer.organize(BUCKET, PREFIX)

        assert [r.outcome for r in first] == [RelocationOutcome.MOVED]
        assert second == []
        assert store.operations('copy') == []
        assert store.operations('delete') == []

    def test_event_for_destination_key_is_noop(self, config, mock_logger):
        """Тест: событие о созданном в organized/ объекте не вызывает операций."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        moved = organizer.organize(BUCKET, PREFIX, [key])
        store.calls.clear()
        again = organizer.organize(BUCKET, PREFIX, [moved[0].destination_key])

        assert again == []
        assert store.calls == []

    def test_repeated_event_for_moved_key_is_noop(self, config, mock_logger):
        """Тест: повторное событие для уже перенесенного ключа не дает ошибки."""
        key = 'incoming/filename-57-2024-03-09.txt'
        destination = 'organized/2024/03/09/filename-57-2024-03-09.txt'
        store = FakeObjectStore([key])
        organizer = self.make_organizer(config, mock_logger, store)

        first = organizer.organize(BUCKET, PREFIX, [key])
        store.calls.clear()
        second = organizer.organize(BUCKET, PREFIX, [key])

        assert [r.outcome for r in first] == [RelocationOutcome.MOVED]
        assert second == []
        assert organizer.stats.is_successful() is True
        assert store.operations('delete') == []
        assert store.operations('copy') == [('copy', key, destination)]
        assert list(store.objects) == [destination]
        mock_logger.log_key_filtered.assert_called_with(key, f"уже перенесен в {destination}")

    def test_missing_source_without_destination_fails_copy(self, config, mock_logger):
        """Тест: отсутствующий исходный объект без копии в organized/ - FailedCopy."""
        key = 'incoming/a-1-2024-03-09.txt'
        organizer = self.make_organizer(config, mock_logger, FakeObjectStore())

        results = organizer.organize(BUCKET, PREFIX, [key])

        assert results[0].outcome == RelocationOutcome.FAILED_COPY
        assert results[0].attempts == 1
        assert organizer.stats.is_successful() is False

    def test_permission_error_skips_remaining_objects(self, config, mock_logger):
        """Тест: после отказа в доступе остальные объекты не обращаются к хранилищу."""
        keys = [
            'incoming/a-1-2024-03-09.txt',
            'incoming/b-2-2024-03-10.txt',
            'incoming/c-3-2024-03-11.txt',
        ]
        store = FakeObjectStore(keys)
        store.fail_copy(keys[0], StorePermissionError("denied", 'AccessDenied'))
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, keys)

        assert [r.source_key for r in results] == keys
        assert all(r.outcome == RelocationOutcome.FAILED_COPY for r in results)
        assert results[0].attempts == 1
        assert results[1].attempts == 0
        assert len(store.operations('copy')) == 1
        assert store.operations('delete') == []
        mock_logger.log_critical_error.assert_called_once()

    def test_permission_flag_reset_between_runs(self, config, mock_logger):
        """Тест: отказ в доступе не переносится на следующий вызов."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        store.fail_copy(key, StorePermissionError("denied", 'AccessDenied'))
        organizer = self.make_organizer(config, mock_logger, store)

        organizer.organize(BUCKET, PREFIX, [key])
        results = organizer.organize(BUCKET, PREFIX, [key])

        assert results[0].outcome == RelocationOutcome.MOVED

    def test_partial_failure_isolation(self, config, mock_logger):
        """Тест: ошибки отдельных объектов не прерывают обработку остальных."""
        keys = [
            'incoming/a-1-2024-01-01.txt',
            'incoming/notes.txt',
            'incoming/b-2-2024-02-02.txt',
            'incoming/c-3-2024-03-03.txt',
            'incoming/d-4-2024-04-04.txt',
        ]
        store = FakeObjectStore(keys)
        store.fail_copy('incoming/b-2-2024-02-02.txt', ObjectStoreError("copy failed", 'NoSuchKey'))
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, keys)

        outcomes = [r.outcome for r in results]
        assert outcomes.count(RelocationOutcome.MOVED) == 3
        assert outcomes.count(RelocationOutcome.SKIPPED_MALFORMED_NAME) == 1
        assert outcomes.count(RelocationOutcome.FAILED_COPY) == 1
        assert [r.source_key for r in results] == keys
        # Удаление после неудачного копирования не выполняется
        assert ('delete', 'incoming/b-2-2024-02-02.txt') not in store.calls
        assert 'incoming/b-2-2024-02-02.txt' in store.objects
        assert organizer.stats.is_successful() is False

    def test_pagination_enumerates_every_key_once(self, config, mock_logger):
        """Тест: обход префикса проходит все страницы листинга."""
        keys = [f'incoming/file-{i}-2024-05-{(i % 28) + 1:02d}.txt' for i in range(25)]
        store = FakeObjectStore(keys, page_size=10)
        organizer = self.make_organizer(config, mock_logger, store)

        listed = organizer.list_keys(BUCKET, PREFIX)

        assert sorted(listed) == sorted(keys)
        assert len(listed) == len(set(listed))
        assert len(store.operations('list')) == 3

    def test_pagination_organize_moves_all_pages(self, config, mock_logger):
        """Тест: перенос при обходе префикса больше одной страницы."""
        keys = [f'incoming/file-{i}-2024-05-{(i % 28) + 1:02d}.txt' for i in range(1005)]
        store = FakeObjectStore(keys, page_size=1000)
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX)

        assert len(results) == 1005
        assert all(r.outcome == RelocationOutcome.MOVED for r in results)
        assert not any(key.startswith('incoming/') for key in store.objects)

    def test_listing_passes_continuation_token(self, config, mock_logger):
        """Тест передачи токена продолжения."""
        store = Mock()
        store.list_objects.side_effect = [
            ListPage(keys=['incoming/a'], next_token='t1'),
            ListPage(keys=['incoming/b'], next_token=None),
        ]
        organizer = self.make_organizer(config, mock_logger, store)

        keys = organizer.list_keys(BUCKET, PREFIX)

        assert keys == ['incoming/a', 'incoming/b']
        assert store.list_objects.call_args_list[0].args == (BUCKET, PREFIX, None)
        assert store.list_objects.call_args_list[1].args == (BUCKET, PREFIX, 't1')

    def test_empty_listing(self, config, mock_logger):
        """Тест пустого префикса."""
        organizer = self.make_organizer(config, mock_logger, FakeObjectStore())

        results = organizer.organize(BUCKET, PREFIX)

        assert results == []
        assert organizer.stats.is_successful() is True

    def test_listing_failure_aborts(self, config, mock_logger):
        """Тест: ошибка листинга прерывает весь вызов."""
        store = FakeObjectStore(['incoming/a-1-2024-03-09.txt'])
        store.list_failures = [StorePermissionError("denied", 'AccessDenied')]
        organizer = self.make_organizer(config, mock_logger, store)

        with pytest.raises(OrganizeError):
            organizer.organize(BUCKET, PREFIX)

        assert store.operations('copy') == []

    def test_listing_transient_error_retried(self, config, mock_logger):
        """Тест повтора листинга после временной ошибки."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        store.list_failures = [TransientStoreError("throttled", 'SlowDown')]
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX)

        assert [r.outcome for r in results] == [RelocationOutcome.MOVED]
        assert len(store.operations('list')) == 2
        mock_logger.log_retry.assert_called_once()

    def test_transient_copy_error_retried(self, config, mock_logger):
        """Тест: временная ошибка копирования повторяется."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        store.fail_copy(key, TransientStoreError("timeout"), TransientStoreError("timeout"))
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, [key])

        assert results[0].outcome == RelocationOutcome.MOVED
        assert len(store.operations('copy')) == 3

    def test_permission_error_not_retried(self, config, mock_logger):
        """Тест: ошибка доступа не повторяется и отмечается как критическая."""
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        store.fail_copy(key, StorePermissionError("denied", 'AccessDenied'))
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, [key])

        assert results[0].outcome == RelocationOutcome.FAILED_COPY
        assert len(store.operations('copy')) == 1
        assert store.operations('delete') == []
        mock_logger.log_critical_error.assert_called_once()

    def test_failed_delete_then_retry_converges(self, config, mock_logger):
        """Тест: FailedDelete после исчерпания попыток, повторный вызов - Moved."""
        key = 'incoming/filename-57-2024-03-09.txt'
        destination = 'organized/2024/03/09/filename-57-2024-03-09.txt'
        store = FakeObjectStore([key])
        store.fail_delete(key, *[TransientStoreError("timeout") for _ in range(3)])
        organizer = self.make_organizer(config, mock_logger, store)

        first = organizer.organize(BUCKET, PREFIX, [key])

        assert first[0].outcome == RelocationOutcome.FAILED_DELETE
        assert first[0].destination_key == destination
        assert first[0].attempts == 3
        assert len(store.operations('delete')) == 3
        # Объект временно существует в обоих местах
        assert key in store.objects
        assert destination in store.objects

        second = organizer.organize(BUCKET, PREFIX, [key])

        assert second[0].outcome == RelocationOutcome.MOVED
        assert second[0].attempts == 1
        assert key not in store.objects
        assert [k for k in store.objects if k.startswith('organized/')] == [destination]
        assert store.objects[destination] == f"content of {key}".encode()

    def test_retry_backoff_is_exponential(self, config, mock_logger):
        """Тест экспоненциальной паузы между попытками."""
        config.organizer.retry_delay = 0.5
        key = 'incoming/a-1-2024-03-09.txt'
        store = FakeObjectStore([key])
        store.fail_copy(key, *[TransientStoreError("timeout") for _ in range(3)])
        organizer = self.make_organizer(config, mock_logger, store)

        with patch('bucket_organizer.organizer.time.sleep') as mock_sleep:
            results = organizer.organize(BUCKET, PREFIX, [key])

        assert results[0].outcome == RelocationOutcome.FAILED_COPY
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]
        mock_logger.log_store_error.assert_called_once()

    def test_concurrent_relocation_keeps_order(self, config, mock_logger):
        """Тест: пул потоков сохраняет порядок результатов."""
        config.organizer.max_workers = 4
        keys = [f'incoming/file-{i}-2024-06-{i + 1:02d}.txt' for i in range(12)]
        store = FakeObjectStore(keys)
        organizer = self.make_organizer(config, mock_logger, store)

        results = organizer.organize(BUCKET, PREFIX, keys)

        assert [r.source_key for r in results] == keys
        assert all(r.outcome == RelocationOutcome.MOVED for r in results)

    def test_plan_does_not_touch_store(self, config, mock_logger):
        """Тест: план переноса не копирует и не удаляет объекты."""
        keys = ['incoming/a-1-2024-03-09.txt', 'incoming/notes.txt']
        store = FakeObjectStore(keys)
        organizer = self.make_organizer(config, mock_logger, store)

        entries = organizer.plan(BUCKET, PREFIX)

        assert isinstance(entries[0], RelocationPlan)
        assert entries[0].destination_key == 'organized/2024/03/09/a-1-2024-03-09.txt'
        assert isinstance(entries[1], RelocationResult)
        assert entries[1].outcome == RelocationOutcome.SKIPPED_MALFORMED_NAME
        assert store.operations('copy') == []
        assert store.operations('delete') == []

    def test_stats_updated(self, config, mock_logger):
        """Тест обновления статистики и логирования начала/конца."""
        keys = ['incoming/a-1-2024-03-09.txt', 'incoming/notes.txt']
        organizer = self.make_organizer(config, mock_logger, FakeObjectStore(keys))

        organizer.organize(BUCKET, PREFIX, keys)

        assert organizer.stats.total_candidates == 2
        assert organizer.stats.start_time is not None
        assert organizer.stats.end_time is not None
        mock_logger.log_organize_start.assert_called_once_with(BUCKET, PREFIX, 2)
        mock_logger.log_organize_end.assert_called_once()


@patch('bucket_organizer.organizer.create_object_store')
def test_create_organizer_builds_store(mock_create_store, config, mock_logger):
    """Тест создания клиента хранилища по умолчанию."""
    mock_create_store.return_value = Mock()

    organizer = create_organizer(config, mock_logger)

    assert organizer.store == mock_create_store.return_value
    mock_create_store.assert_called_once_with(config.store, mock_logger)


def test_create_organizer_uses_given_store(config, mock_logger):
    """Тест передачи готового клиента."""
    store = FakeObjectStore()

    organizer = create_organizer(config, mock_logger, store)

    assert organizer.store is store
