# URLs for inventory app
from django.urls import path
from . import views

urlpatterns = [
	path('items', views.items, name='items'),
	path('items/categories', views.categories, name='item_categories'),
	path('items/units', views.units, name='item_units'),
	path('items/<int:item_id>', views.item_detail, name='item_detail'),
	path('items/<int:item_id>/batches', views.item_batches, name='item_batches'),
	path('items/<int:item_id>/ledger', views.item_ledger, name='item_ledger'),
	path('vendors', views.vendors, name='vendors'),
	path('vendors/<int:vendor_id>', views.vendor_detail, name='vendor_detail'),
	path('purchase-orders', views.purchase_orders, name='purchase_orders'),
	path('purchase-orders/<int:po_id>', views.purchase_order_detail, name='purchase_order_detail'),
	path('grn', views.grns, name='grns'),
	path('grn/<int:grn_id>', views.grn_detail, name='grn_detail'),
	path('issues', views.issues, name='issues'),
	path('alerts', views.alerts, name='alerts'),
	path('alerts/generate', views.alerts_generate, name='alerts_generate'),
	path('alerts/<int:alert_id>/resolve', views.alert_resolve, name='alert_resolve'),
	path('dashboard/overview', views.dashboard_overview, name='dashboard_overview'),
	path('dashboard/stock-analysis', views.stock_analysis, name='dashboard_stock_analysis'),
]
