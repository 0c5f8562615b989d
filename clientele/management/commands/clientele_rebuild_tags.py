"""Management command to re-evaluate tag rules for every customer."""

from django.core.management.base import BaseCommand

from clientele.services.sync import SyncCoordinator


class Command(BaseCommand):
    help = "Re-evaluate tag rules and VIP flags for all customers"

    def add_arguments(self, parser):
        parser.add_argument(
            "--chunk",
            type=int,
            default=None,
            help="Customers per batch (defaults to REBUILD_CHUNK_SIZE)",
        )

    def handle(self, *args, **options):
        chunk = options["chunk"]
        if chunk is not None and chunk <= 0:
            chunk = None

        updated = SyncCoordinator().recompute_all(chunk_size=chunk)
        if updated is None:
            self.stdout.write(self.style.WARNING("Tag rebuild already running, skipped."))
            return

        self.stdout.write(self.style.SUCCESS(f"Tags rebuilt, {updated} customers updated."))
