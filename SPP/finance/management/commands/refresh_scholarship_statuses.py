from datetime import date

from django.core.management.base import BaseCommand

from finance.services import ScholarshipService


class Command(BaseCommand):
    help = 'Re-derive scholarship statuses (active, inactive, expired) from their dates'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date',
            help='Evaluate statuses as of this date (YYYY-MM-DD); defaults to today',
        )

    def handle(self, *args, **options):
        today = None
        if options['date']:
            today = date.fromisoformat(options['date'])

        changed = ScholarshipService.refresh_statuses(today)
        self.stdout.write(self.style.SUCCESS(f'Updated {changed} scholarship status(es).'))
