from django.core.management.base import BaseCommand
from django.utils import timezone

from core.services.dashboard import CACHE_KEY, refresh_counters
from core.services.realtime import emit_to_all


class Command(BaseCommand):
    help = "Warm the dashboard cache and broadcast a WebSocket refresh event."

    def handle(self, *args, **options):
        now = timezone.now()
        refresh_counters()
        keys_refreshed = [CACHE_KEY]
        emit_to_all('broadcast.refresh', {'version': int(now.timestamp()), 'ts': now.isoformat(),
                                          'keys': keys_refreshed})
        self.stdout.write(self.style.SUCCESS(f"Refreshed {len(keys_refreshed)} keys at {now}"))
