from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.core.models import ApiToken, User


class Command(BaseCommand):
    help = 'Issue a bearer API token for a user'

    def add_arguments(self, parser):
        parser.add_argument('username')
        parser.add_argument('--label', default='cli')
        parser.add_argument('--days', type=int, default=settings.API_TOKEN_EXPIRY_DAYS,
                            help='Days until expiry, 0 for a token that never expires')

    def handle(self, *args, **options):
        try:
            user = User.objects.get(username=options['username'])
        except User.DoesNotExist:
            raise CommandError(f"User {options['username']} does not exist")
        if not user.is_active:
            raise CommandError(f"User {user.username} is inactive")

        api_token, raw = ApiToken.create_token(user, label=options['label'], expires_days=options['days'])

        expiry = api_token.expires_at.isoformat() if api_token.expires_at else 'never'
        self.stdout.write(self.style.SUCCESS(f"Token for {user.username} ({user.role}), expires {expiry}"))
        self.stdout.write(raw)
