"""Apply pending generated form migrations from the command line."""
from __future__ import annotations

from django.core.management.base import BaseCommand

from formbuilder.migrator import MigrationRunner


class Command(BaseCommand):
    help = "Create the tables declared by pending generated form migrations."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--list",
            action="store_true",
            help="Only list pending migrations.",
        )

    def handle(self, *args, **options) -> None:
        runner = MigrationRunner()
        if options["list"]:
            for path in runner.pending():
                self.stdout.write(path.stem)
            return
        applied = runner.run()
        for name in applied:
            self.stdout.write(self.style.SUCCESS(f"Applied {name}"))
        if not applied:
            self.stdout.write("No pending form migrations.")
