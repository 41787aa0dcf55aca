# Views for scanner app

from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.response import Response
from django.shortcuts import get_object_or_404
from django.utils import timezone

from apps.api.permissions import capability
from apps.core.config import load_meal_config
from apps.core.models import ScanLog, Student
from apps.utils.qr_utils import generate_qr_image
from .serializers import ManualApprovalSerializer, ScanLogSerializer, ScanRequestSerializer
from .services import process_scan, resolve_manual_approval, scan_stats


def _limit(request, default=20, maximum=200):
    try:
        return max(1, min(int(request.query_params.get('limit', default)), maximum))
    except (TypeError, ValueError):
        return default


@api_view(['POST'])
@permission_classes([capability('scanner.scan')])
def scan(request):
    """Validate a scanned student or order code"""
    serializer = ScanRequestSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = process_scan(
        data['qrCode'],
        device_id=data.get('deviceId', ''),
        user=request.user,
        meal_type=data.get('mealType'),
    )
    return Response(result)


@api_view(['POST'])
@permission_classes([capability('scanner.override')])
def manual_approval(request):
    """Resolve a pending manual approval"""
    serializer = ManualApprovalSerializer(data=request.data)
    serializer.is_valid(raise_exception=True)
    data = serializer.validated_data

    result = resolve_manual_approval(
        data['approved'],
        token=data.get('approvalToken'),
        student_id=data.get('studentId'),
        meal_type=data.get('mealType'),
        device_id=data.get('deviceId', ''),
        user=request.user,
    )
    if result is None:
        return Response(
            {'success': False, 'error': 'No pending approval found'},
            status=status.HTTP_404_NOT_FOUND
        )
    return Response(result)


@api_view(['GET'])
@permission_classes([capability('scanner.read')])
def recent_scans(request):
    """Today's scans with a stats summary"""
    facility = getattr(request.user, 'mess_facility', None)
    logs = ScanLog.objects.filter(scan_date=timezone.localdate()).select_related(
        'student', 'order', 'scanned_by'
    )
    if facility is not None:
        logs = logs.filter(student__mess_facility=facility)

    return Response({
        'scans': ScanLogSerializer(logs[:_limit(request)], many=True).data,
        'stats': scan_stats(facility),
    })


@api_view(['GET'])
@permission_classes([capability('scanner.read')])
def scan_logs(request):
    logs = ScanLog.objects.select_related('student', 'order', 'scanned_by')
    device_id = request.query_params.get('deviceId')
    if device_id:
        logs = logs.filter(device_id=device_id)
    return Response(ScanLogSerializer(logs[:_limit(request, default=50)], many=True).data)


@api_view(['GET'])
@permission_classes([capability('scanner.read')])
def student_qr(request, student_id):
    """Student QR code as a base64 PNG"""
    student = get_object_or_404(Student, id=student_id)
    return Response({
        'student_id': student.id,
        'register_number': student.register_number,
        'qr_code': student.qr_code,
        'image_base64': generate_qr_image(student.qr_code),
    })


@api_view(['GET'])
@permission_classes([capability('scanner.read')])
def current_meal(request):
    config = load_meal_config()
    now = timezone.now()
    next_meal, next_start = config.next_meal(now)
    return Response({
        'meal_type': config.current_meal(now),
        'server_time': timezone.localtime(now).isoformat(),
        'next_meal': next_meal,
        'next_meal_starts_at': next_start.isoformat() if next_start else None,
        'meal_windows': [window.to_dict() for window in config.windows],
    })
