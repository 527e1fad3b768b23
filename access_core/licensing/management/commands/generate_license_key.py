from datetime import date, timedelta

from django.core.management.base import BaseCommand, CommandError

from access_core.licensing.keys import FEATURE_ORDER, LicenseKeyError, generate_license_key


class Command(BaseCommand):
    help = 'Generate a signed license key'

    def add_arguments(self, parser):
        parser.add_argument(
            '--max-users',
            type=int,
            required=True,
            help='Number of seats the license allows'
        )
        parser.add_argument(
            '--valid-from',
            type=date.fromisoformat,
            default=None,
            help='First valid day (YYYY-MM-DD), defaults to today'
        )
        parser.add_argument(
            '--valid-until',
            type=date.fromisoformat,
            default=None,
            help='Last valid day (YYYY-MM-DD)'
        )
        parser.add_argument(
            '--days',
            type=int,
            default=365,
            help='Validity in days when --valid-until is not given (default: 365)'
        )
        parser.add_argument(
            '--feature',
            action='append',
            dest='features',
            choices=FEATURE_ORDER,
            help='Feature to include; repeat for several (default: all)'
        )

    def handle(self, *args, **options):
        valid_from = options['valid_from'] or date.today()
        valid_until = options['valid_until'] or valid_from + timedelta(days=options['days'])
        features = options['features'] or list(FEATURE_ORDER)

        try:
            key = generate_license_key(options['max_users'], valid_from, valid_until, features)
        except LicenseKeyError as e:
            raise CommandError(str(e))

        self.stdout.write(self.style.SUCCESS(key))
        self.stdout.write(
            f"  Users: {options['max_users']}\n"
            f"  Valid: {valid_from.isoformat()} to {valid_until.isoformat()}\n"
            f"  Features: {', '.join(features)}"
        )
