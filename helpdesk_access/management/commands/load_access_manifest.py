"""
Django management command to load an access bootstrap manifest.
"""

import json

from django.core.management.base import BaseCommand, CommandError

from ...exceptions import AccessControlError
from ...security.bootstrap import apply_manifest, load_manifest


class Command(BaseCommand):
    """Apply roles, permissions, statuses and policies from a manifest."""

    help = "Load roles, permissions, departments, statuses and access policies from a JSON manifest"

    def add_arguments(self, parser):
        parser.add_argument(
            "--path",
            type=str,
            default=None,
            help="Manifest file (defaults to the configured or bundled manifest)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Validate and apply inside a rolled back transaction",
        )

    def handle(self, *args, **options):
        try:
            manifest = load_manifest(options.get("path"))
            summary = apply_manifest(manifest, dry_run=options.get("dry_run", False))
        except AccessControlError as exc:
            raise CommandError(str(exc)) from exc

        label = "Dry run" if summary.dry_run else "Manifest applied"
        self.stdout.write(self.style.SUCCESS(f"{label}: {manifest.source}"))
        self.stdout.write(json.dumps(summary.as_dict(), indent=2, sort_keys=True))
        for skipped in summary.skipped:
            self.stdout.write(self.style.WARNING(f"Skipped {skipped}"))
