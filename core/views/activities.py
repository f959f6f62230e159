from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Activity, User
from core.permissions import missing_tenant
from core.services.activity import serialize_activity
from core.views.common import ok


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def list_activities(request):
    """Recent activities, newest first, scoped to the caller's tenant."""
    qp = request.query_params
    try:
        limit = min(max(int(qp.get('limit') or 50), 1), 200)
    except ValueError:
        limit = 50
    qs = Activity.objects.all()
    user = request.user
    if missing_tenant(user):
        qs = qs.none()
    elif user.role == User.HOSPITAL_ADMIN:
        qs = qs.filter(hospital_id=user.hospital_id)
    elif user.role == User.PHARMACY_STAFF:
        qs = qs.filter(pharmacy_id=user.pharmacy_id)
    elif user.role == User.DISTRIBUTOR:
        qs = qs.filter(distributor_id=user.distributor_id)
    elif user.role == User.DOCTOR:
        qs = qs.filter(doctor_id=user.id)
    elif user.role == User.PATIENT:
        qs = qs.filter(patient_id=user.id)
    if qp.get('type'):
        qs = qs.filter(type=qp['type'])
    for key, field in (('hospitalId', 'hospital_id'), ('pharmacyId', 'pharmacy_id'),
                       ('distributorId', 'distributor_id')):
        if qp.get(key):
            qs = qs.filter(**{field: qp[key]})
    return ok([serialize_activity(a) for a in qs.order_by('-created_at', '-id')[:limit]])
