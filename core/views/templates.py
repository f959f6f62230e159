"""
Document templates: CRUD, default lookup and rendering.
"""
from __future__ import annotations

from django.db import transaction
from django.db.models import Q
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated

from core.models import Hospital, Template, User
from core.permissions import IsAdminOrReadOnly
from core.serializers.billing import RenderSerializer, TemplateSerializer
from core.services.templates import clear_other_defaults, find_default_template, render_template, serialize_template
from core.views.common import created, fail, flag, ok

FIELD_MAP = {
    'name': 'name',
    'type': 'type',
    'hospitalId': 'hospital_id',
    'content': 'content',
    'variables': 'variables',
    'headerImageUrl': 'header_image_url',
    'footerText': 'footer_text',
    'isActive': 'is_active',
    'isDefault': 'is_default',
}


def _visible(user):
    qs = Template.objects.all()
    if user.role == User.HOSPITAL_ADMIN:
        return qs.filter(Q(hospital_id=user.hospital_id) | Q(hospital__isnull=True))
    return qs


def _save(template: Template, vd: dict) -> Template:
    for key, value in vd.items():
        setattr(template, FIELD_MAP[key], value)
    with transaction.atomic():
        template.save()
        if template.is_default:
            clear_other_defaults(template)
    return template


def _writable(request, hospital_id) -> bool:
    user = request.user
    if user.role == User.HOSPITAL_ADMIN:
        return bool(user.hospital_id) and hospital_id == user.hospital_id
    return True


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def template_collection(request):
    if request.method == 'POST':
        s = TemplateSerializer(data=request.data)
        s.is_valid(raise_exception=True)
        vd = s.validated_data
        if vd.get('hospitalId') and not Hospital.objects.filter(pk=vd['hospitalId']).exists():
            return fail('Hospital not found', status.HTTP_404_NOT_FOUND)
        if not _writable(request, vd.get('hospitalId')):
            return fail('Not allowed for this hospital', status.HTTP_403_FORBIDDEN)
        template = _save(Template(created_by=request.user), vd)
        return created(serialize_template(template))

    qs = _visible(request.user)
    qp = request.query_params
    if qp.get('type'):
        qs = qs.filter(type=qp['type'].upper())
    if qp.get('hospitalId'):
        qs = qs.filter(hospital_id=qp['hospitalId'])
    active = flag(qp.get('isActive'))
    if active is not None:
        qs = qs.filter(is_active=active)
    return ok([serialize_template(t) for t in qs.order_by('type', '-is_default', 'name')])


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def template_default(request, type_):
    template = find_default_template(type_.upper(), request.query_params.get('hospitalId'))
    if not template:
        return fail('No default template for this type', status.HTTP_404_NOT_FOUND)
    return ok(serialize_template(template))


@api_view(['GET', 'PATCH', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminOrReadOnly])
def template_detail(request, pk):
    template = _visible(request.user).filter(pk=pk).first()
    if not template:
        return fail('Template not found', status.HTTP_404_NOT_FOUND)
    if request.method == 'GET':
        return ok(serialize_template(template))
    if not _writable(request, template.hospital_id):
        return fail('Not allowed for this hospital', status.HTTP_403_FORBIDDEN)
    if request.method == 'DELETE':
        template.delete()
        return ok({'id': pk})
    s = TemplateSerializer(data=request.data, partial=True)
    s.is_valid(raise_exception=True)
    return ok(serialize_template(_save(template, s.validated_data)))


@api_view(['POST'])
@permission_classes([IsAuthenticated])
def template_render(request, pk):
    template = _visible(request.user).filter(pk=pk).first()
    if not template:
        return fail('Template not found', status.HTTP_404_NOT_FOUND)
    s = RenderSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    rendered = render_template(template, s.validated_data.get('data') or {})
    return ok({'rendered': rendered, 'template': serialize_template(template)})
