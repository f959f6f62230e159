"""
Administrative dashboard endpoint.

Counters are served from the cache and recomputed at most once per
``DASHBOARD_CACHE_SECONDS``.
"""
from __future__ import annotations

from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.permissions import IsAdminRole
from core.services.dashboard import get_counters
from core.views.common import ok


@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_dashboard(request):
    return ok(get_counters())
