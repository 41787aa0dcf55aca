# URLs for api app
from django.urls import path
from . import views

urlpatterns = [
	path('auth/me', views.me, name='auth_me'),

	path('fnb-manager/dashboard', views.fnb_dashboard, name='fnb_dashboard'),
	path('fnb-manager/mess-facilities', views.mess_facilities, name='fnb_mess_facilities'),
	path('fnb-manager/mess-facilities/<int:facility_id>', views.mess_facility_detail, name='fnb_mess_facility_detail'),
	path('fnb-manager/packages', views.packages, name='fnb_packages'),
	path('fnb-manager/packages/<int:package_id>', views.package_detail, name='fnb_package_detail'),
	path('fnb-manager/subscriptions', views.subscriptions, name='fnb_subscriptions'),
	path('fnb-manager/subscriptions/<int:subscription_id>', views.subscription_detail, name='fnb_subscription_detail'),
	path('fnb-manager/students', views.students, name='fnb_students'),
	path('fnb-manager/students/<int:student_id>', views.student_detail, name='fnb_student_detail'),
	path('fnb-manager/menu-items', views.menu_items, name='fnb_menu_items'),
	path('fnb-manager/menu-items/<int:menu_item_id>', views.menu_item_detail, name='fnb_menu_item_detail'),
	path('fnb-manager/orders', views.orders, name='fnb_orders'),
	path('fnb-manager/orders/<int:order_id>', views.order_detail, name='fnb_order_detail'),

	path('system-config', views.system_config, name='system_config'),
	path('system-config/meal-times', views.meal_times, name='system_config_meal_times'),
	path('system-config/bulk-update', views.system_config_bulk_update, name='system_config_bulk_update'),
	path('system-config/<str:key>', views.system_config_detail, name='system_config_detail'),
]
