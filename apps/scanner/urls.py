# URLs for scanner app
from django.urls import path
from . import views

urlpatterns = [
	path('scan', views.scan, name='scanner_scan'),
	path('manual-approval', views.manual_approval, name='scanner_manual_approval'),
	path('recent-scans', views.recent_scans, name='scanner_recent_scans'),
	path('logs', views.scan_logs, name='scanner_logs'),
	path('students/<int:student_id>/qr', views.student_qr, name='scanner_student_qr'),
	path('current-meal', views.current_meal, name='scanner_current_meal'),
]
