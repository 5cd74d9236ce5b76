"""
Главный модуль CLI интерфейса для утилиты переноса объектов.

Предоставляет командный интерфейс для ручного прохода по префиксу,
переноса отдельных ключей и просмотра плана переноса.
"""

import argparse
import sys
from pathlib import Path
from typing import Dict, List, Optional

try:
    from .config_loader import load_config
    from .logger import OrganizerLogger
    from .key_parser import RelocationPlan
    from .organizer import Organizer, OrganizeError, RelocationResult, create_organizer
except ImportError:
    from config_loader import load_config
    from logger import OrganizerLogger
    from key_parser import RelocationPlan
    from organizer import Organizer, OrganizeError, RelocationResult, create_organizer


DEFAULT_CONFIG_PATH = "config/settings.ini"


class OrganizerCLI:
    """Класс для обработки команд CLI."""

    def __init__(self):
        self.config = None
        self.logger = None
        self.organizer: Optional[Organizer] = None

    def setup(self, config_path: Optional[str] = None) -> bool:
        """
        Инициализирует CLI с конфигурацией.

        Args:
            config_path: Путь к файлу конфигурации (None - config/settings.ini,
                если он существует, иначе только окружение)

        Returns:
            bool: True если инициализация успешна
        """
        if config_path is None and Path(DEFAULT_CONFIG_PATH).exists():
            config_path = DEFAULT_CONFIG_PATH

        try:
            self.config = load_config(config_path)

            self.logger = OrganizerLogger(self.config.logging)

            self.organizer = create_organizer(self.config, self.logger)

            source = config_path or "переменных окружения"
            self.logger.log_system_info(f"Конфигурация загружена из: {source}")
            return True

        except Exception as e:
            print(f"❌ Ошибка инициализации: {e}")
            return False

    def _prefix(self, args) -> str:
        return getattr(args, 'prefix', None) or self.config.bucket.path

    def _print_errors(self, errors: List[Dict]) -> None:
        if errors:
            print(f"\n⚠️ Не перенесено {len(errors)} объектов:")
            for error in errors[:10]:  # Показываем первые 10 ошибок
                print(f"   • {error['source_key']} [{error['outcome']}]: {error['error']}")
            if len(errors) > 10:
                print(f"   ... и еще {len(errors) - 10} ошибок")

    def _run(self, candidate_keys: Optional[List[str]], prefix: str) -> int:
        bucket = self.config.bucket.name

        try:
            self.organizer.organize(bucket, prefix, candidate_keys)
        except OrganizeError as e:
            print(f"❌ Ошибка переноса: {e}")
            return 1

        stats = self.organizer.stats
        summary = stats.to_dict()

        print("\n✅ Перенос завершен!")
        print("📊 Статистика:")
        print(f"   • Кандидатов: {summary['total_candidates']}")
        print(f"   • Перенесено: {summary['moved']}")
        print(f"   • Пропущено (некорректное имя): {summary['skipped_malformed_name']}")
        print(f"   • Ошибок копирования: {summary['failed_copy']}")
        print(f"   • Ошибок удаления: {summary['failed_delete']}")
        if summary['duration_seconds'] is not None:
            print(f"   • Продолжительность: {summary['duration_seconds']:.2f} сек")

        self._print_errors(stats.errors)

        return 0 if stats.is_successful() else 1

    def cmd_organize(self, args) -> int:
        """
        Команда переноса всех объектов под префиксом.

        Args:
            args: Аргументы командной строки

        Returns:
            int: Код возврата (0 - успех, 1 - ошибка)
        """
        prefix = self._prefix(args)

        if args.dry_run:
            return self.cmd_plan(args)

        print(f"🚀 Перенос объектов s3://{self.config.bucket.name}/{prefix}")
        return self._run(None, prefix)

    def cmd_organize_keys(self, args) -> int:
        """
        Команда переноса указанных ключей (как при событии).

        Args:
            args: Аргументы командной строки

        Returns:
            int: Код возврата (0 - успех, 1 - ошибка)
        """
        print(f"📨 Перенос {len(args.keys)} ключей")
        return self._run(args.keys, self._prefix(args))

    def cmd_plan(self, args) -> int:
        """
        Команда просмотра плана переноса без изменений в хранилище.

        Args:
            args: Аргументы командной строки

        Returns:
            int: Код возврата (0 - успех, 1 - ошибка)
        """
        prefix = self._prefix(args)
        limit = getattr(args, 'limit', None) or 20

        try:
            entries = self.organizer.plan(self.config.bucket.name, prefix)
        except OrganizeError as e:
            print(f"❌ Ошибка получения плана: {e}")
            return 1

        planned = [e for e in entries if isinstance(e, RelocationPlan)]
        skipped = [e for e in entries if isinstance(e, RelocationResult)]

        print(f"📋 План переноса s3://{self.config.bucket.name}/{prefix} (первые {limit}):")
        for i, entry in enumerate(entries[:limit]):
            if isinstance(entry, RelocationPlan):
                print(f"   {i+1:2d}. {entry.source_key} → {entry.destination_key}")
            else:
                print(f"   {i+1:2d}. {entry.source_key} ⏭️ {entry.error}")

        if len(entries) > limit:
            print(f"   ... и еще {len(entries) - limit} объектов")

        print(f"\n📊 К переносу: {len(planned)}, некорректных имен: {len(skipped)}")
        return 0


def create_parser() -> argparse.ArgumentParser:
    """
    Создает парсер аргументов командной строки.

    Returns:
        argparse.ArgumentParser: Настроенный парсер
    """
    parser = argparse.ArgumentParser(
        description="Утилита переноса объектов бакета в структуру по датам",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Примеры использования:

  # Перенос всех объектов под префиксом BUCKET_PATH
  bucket-organizer organize

  # Просмотр плана без изменений
  bucket-organizer organize --dry-run
  bucket-organizer plan --limit 50

  # Перенос отдельных ключей
  bucket-organizer organize-keys incoming/filename-57-2024-03-09.txt

  # Другой файл конфигурации
  bucket-organizer --config /etc/bucket-organizer.ini organize
        """
    )

    # Общие аргументы
    parser.add_argument(
        '--config',
        default=None,
        help=f'Путь к файлу конфигурации (по умолчанию: {DEFAULT_CONFIG_PATH}, если существует)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Подробный вывод'
    )

    # Подкоманды
    subparsers = parser.add_subparsers(dest='command', help='Доступные команды')

    # Команда organize
    organize_parser = subparsers.add_parser('organize', help='Перенос всех объектов под префиксом')
    organize_parser.add_argument(
        '--prefix',
        help='Префикс (по умолчанию из конфигурации)'
    )
    organize_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Только показать план переноса'
    )

    # Команда organize-keys
    keys_parser = subparsers.add_parser('organize-keys', help='Перенос указанных ключей')
    keys_parser.add_argument(
        'keys',
        nargs='+',
        help='Ключи объектов'
    )
    keys_parser.add_argument(
        '--prefix',
        help='Префикс (по умолчанию из конфигурации)'
    )

    # Команда plan
    plan_parser = subparsers.add_parser('plan', help='Просмотр плана переноса')
    plan_parser.add_argument(
        '--prefix',
        help='Префикс (по умолчанию из конфигурации)'
    )
    plan_parser.add_argument(
        '--limit',
        type=int,
        default=20,
        help='Максимальное количество объектов для отображения (по умолчанию: 20)'
    )

    return parser


def main(argv: Optional[List[str]] = None):
    """Главная функция CLI."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Проверяем, что команда указана
    if not args.command:
        parser.print_help()
        return 1

    cli = OrganizerCLI()

    if not cli.setup(args.config):
        return 1

    try:
        if args.command == 'organize':
            return cli.cmd_organize(args)
        elif args.command == 'organize-keys':
            return cli.cmd_organize_keys(args)
        elif args.command == 'plan':
            return cli.cmd_plan(args)
        else:
            print(f"❌ Неизвестная команда: {args.command}")
            return 1

    except KeyboardInterrupt:
        print("\n⚠️ Операция прервана пользователем")
        return 1
    except Exception as e:
        print(f"❌ Неожиданная ошибка: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
