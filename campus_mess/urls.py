# URL configuration for campus_mess project.
from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include


def health(request):
	return JsonResponse({'status': 'ok', 'message': 'Campus mess API is running'})


urlpatterns = [
	path('admin/', admin.site.urls),
	path('health', health, name='health'),
	path('api/v1/', include('apps.api.urls')),
	path('api/v1/scanner/', include('apps.scanner.urls')),
	path('api/v1/', include('apps.inventory.urls')),
	path('api/v1/', include('apps.kitchen.urls')),
]
