"""Management command to re-classify customer groups and tags."""

from django.core.management.base import BaseCommand

from clientele.services.sync import SyncCoordinator


class Command(BaseCommand):
    help = "Normalize customer groups and tags with the current configuration"

    def add_arguments(self, parser):
        parser.add_argument(
            "--chunk",
            type=int,
            default=None,
            help="Customers per batch (defaults to REBUILD_CHUNK_SIZE)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report changes without saving them",
        )

    def handle(self, *args, **options):
        chunk = options["chunk"]
        if chunk is not None and chunk <= 0:
            chunk = None
        dry_run = options["dry_run"]

        processed, updated = SyncCoordinator().normalize_groups(
            dry_run=dry_run, chunk_size=chunk
        )
        self.stdout.write(
            self.style.SUCCESS(f"Processed {processed} customers, updated {updated}.")
        )
        if dry_run:
            self.stdout.write(self.style.WARNING("Dry run: no changes were saved."))
