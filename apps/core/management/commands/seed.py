from datetime import timedelta
from decimal import Decimal

from django.core.management.base import BaseCommand
from django.db import transaction
from django.utils import timezone

from apps.core.models import MenuItem, MessFacility, Package, Student, Subscription, SystemConfig, User
from apps.inventory.models import Category, Item, Unit, Vendor
from apps.kitchen.models import Dish, Recipe
from apps.kitchen.services import refresh_dish_cost

CONFIG = [
    ('breakfast_start', '07:30', 'meal_times'),
    ('breakfast_end', '09:30', 'meal_times'),
    ('lunch_start', '12:00', 'meal_times'),
    ('lunch_end', '14:00', 'meal_times'),
    ('snacks_start', '16:00', 'meal_times'),
    ('snacks_end', '17:30', 'meal_times'),
    ('dinner_start', '19:00', 'meal_times'),
    ('dinner_end', '21:00', 'meal_times'),
    ('auto_mark_attendance', 'true', 'meals'),
    ('allow_manual_override', 'true', 'meals'),
    ('approval_expiry_minutes', '5', 'meals'),
    ('qr_code_expiry_hours', '24', 'orders'),
    ('default_order_status', 'PREPARED', 'orders'),
    ('default_tax_rate', '18', 'finance'),
]

UNITS = [('Kilogram', 'kg'), ('Gram', 'g'), ('Liter', 'l'), ('Milliliter', 'ml'),
         ('Pieces', 'pcs'), ('Box', 'box'), ('Packet', 'packet')]

CATEGORIES = ['Vegetables', 'Grains & Pulses', 'Dairy', 'Spices', 'Oil & Condiments']

# username, email, password, role, full name, phone
USERS = [
    ('admin', 'admin@foodservice.com', 'admin123', 'ADMIN', 'System Administrator', '9999999999'),
    ('chef', 'chef@foodservice.com', 'chef123', 'CHEF', 'Head Chef', '9999999998'),
    ('store', 'store@foodservice.com', 'store123', 'STORE', 'Store Manager', '9999999997'),
    ('cook', 'cook@foodservice.com', 'cook123', 'COOK', 'Kitchen Cook', '9999999996'),
    ('fnb', 'fnb@foodservice.com', 'fnb123', 'FNB_MANAGER', 'FNB Manager', '9999999995'),
    ('scanner', 'scanner@foodservice.com', 'scanner123', 'SCANNER', 'QR Scanner Device', '9999999994'),
]

FACILITIES = [
    ('Girls Hostel - Nursing', 'Campus Center, Ground Floor', 500),
    ('Boys Hostel - Nursing', 'Boys Hostel for nursing, First Floor', 200),
    ('Gowthami Hostel Mess', 'Gowthami Hostel Mess, First Floor', 200),
]

VENDORS = [
    ('Fresh Produce Co.', '9876543210', 'sales@freshproduce.com', 'Market Road, City Center', 'GST001234567'),
    ('Grain Traders Ltd.', '9876543211', 'orders@graintraders.com', 'Industrial Area, Sector 5', 'GST001234568'),
    ('Dairy Fresh Suppliers', '9876543212', 'orders@dairyfresh.com', 'Dairy Complex, Ring Road', 'GST001234569'),
]

# sku, name, unit symbol, category, vendor, reorder point, perishable, cost
ITEMS = [
    ('VEG001', 'Onion', 'kg', 'Vegetables', 'Fresh Produce Co.', 50, True, '25.00'),
    ('GRN001', 'Rice (Basmati)', 'kg', 'Grains & Pulses', 'Grain Traders Ltd.', 100, False, '80.00'),
    ('VEG002', 'Tomato', 'kg', 'Vegetables', 'Fresh Produce Co.', 25, True, '30.00'),
    ('SPC001', 'Turmeric Powder', 'kg', 'Spices', 'Fresh Produce Co.', 10, False, '150.00'),
    ('DAI001', 'Milk (Full Cream)', 'l', 'Dairy', 'Dairy Fresh Suppliers', 50, True, '55.00'),
]

# dish, category, [(sku, qty per 5 students)]
DISHES = [
    ('Vegetable Curry', 'MAIN', [('VEG001', '0.250'), ('VEG002', '0.400')]),
    ('Rice', 'RICE', [('GRN001', '0.750')]),
    ('Dal Tadka', 'MAIN', [('SPC001', '0.010'), ('VEG002', '0.100')]),
]

STUDENTS = [
    ('CS2021001', 'Rahul Kumar', 'STUDENT', '', 'Computer Science', '9876543210', 'rahul.kumar@college.edu', 'A-101'),
    ('EMP001', 'Dr. Rajesh Gupta', 'EMPLOYEE', 'EMP001', 'Computer Science', '9876543213', 'rajesh.gupta@college.edu', ''),
    ('NS2021001', 'Priya Sharma', 'STUDENT', '', 'Nursing', '9876543214', 'priya.sharma@college.edu', 'B-205'),
]


class Command(BaseCommand):
    help = 'Seed configuration and demo data; safe to run repeatedly'

    @transaction.atomic
    def handle(self, *args, **options):
        self.stdout.write('Seeding system configuration...')
        for key, value, category in CONFIG:
            # existing values are operator edits and are left alone
            SystemConfig.objects.get_or_create(key=key, defaults={'value': value, 'category': category})

        self.stdout.write('Seeding units and categories...')
        units = {
            symbol: Unit.objects.update_or_create(name=name, defaults={'symbol': symbol})[0]
            for name, symbol in UNITS
        }
        categories = {name: Category.objects.get_or_create(name=name)[0] for name in CATEGORIES}

        self.stdout.write('Seeding mess facilities...')
        facilities = [
            MessFacility.objects.update_or_create(
                name=name, defaults={'location': location, 'capacity': capacity}
            )[0]
            for name, location, capacity in FACILITIES
        ]

        self.stdout.write('Seeding users...')
        for username, email, password, role, full_name, phone in USERS:
            first_name, _, last_name = full_name.partition(' ')
            user, created = User.objects.get_or_create(
                username=username,
                defaults={
                    'email': email,
                    'role': role,
                    'first_name': first_name,
                    'last_name': last_name,
                    'phone': phone,
                    'is_staff': role == 'ADMIN',
                    'is_superuser': role == 'ADMIN',
                    'mess_facility': facilities[0] if role == 'SCANNER' else None,
                }
            )
            if created:
                user.set_password(password)
                user.save(update_fields=['password'])
                self.stdout.write(f"  Created {role} -> username: {username} | password: {password}")

        self.stdout.write('Seeding packages...')
        Package.objects.get_or_create(
            name='Basic Monthly Plan',
            mess_facility=facilities[0],
            defaults={
                'description': 'Lunch and Dinner for 30 days',
                'duration_days': 30,
                'price': Decimal('2500.00'),
                'meals_included': ['LUNCH', 'DINNER'],
            }
        )
        full, _ = Package.objects.get_or_create(
            name='Full Monthly Plan',
            mess_facility=facilities[0],
            defaults={
                'description': 'All meals for 30 days',
                'duration_days': 30,
                'price': Decimal('3500.00'),
                'meals_included': ['BREAKFAST', 'LUNCH', 'SNACKS', 'DINNER'],
            }
        )

        self.stdout.write('Seeding vendors and items...')
        vendors = {
            name: Vendor.objects.update_or_create(
                name=name, defaults={'phone': phone, 'email': email, 'address': address, 'gst_number': gst}
            )[0]
            for name, phone, email, address, gst in VENDORS
        }
        items = {}
        for sku, name, unit, category, vendor, reorder_point, perishable, cost in ITEMS:
            items[sku], _ = Item.objects.update_or_create(
                sku=sku,
                defaults={
                    'name': name,
                    'unit': units[unit],
                    'category': categories[category],
                    'vendor': vendors[vendor],
                    'moq': reorder_point,
                    'reorder_point': reorder_point,
                    'perishable': perishable,
                    'cost_per_unit': Decimal(cost),
                }
            )

        self.stdout.write('Seeding dishes and recipes...')
        for name, category, ingredients in DISHES:
            dish, _ = Dish.objects.get_or_create(name=name, defaults={'category': category})
            for sku, qty in ingredients:
                Recipe.objects.update_or_create(
                    dish=dish, item=items[sku], defaults={'qty_per_5_students': Decimal(qty)}
                )
            refresh_dish_cost(dish)

        self.stdout.write('Seeding students and subscriptions...')
        today = timezone.localdate()
        for register, name, user_type, employee_id, department, mobile, email, room in STUDENTS:
            student, created = Student.objects.get_or_create(
                register_number=register,
                defaults={
                    'name': name,
                    'user_type': user_type,
                    'employee_id': employee_id,
                    'department': department,
                    'mobile_number': mobile,
                    'email': email,
                    'room_number': room,
                    'mess_facility': facilities[0],
                }
            )
            if created and register != 'NS2021001':
                Subscription.objects.create(
                    student=student,
                    package=full,
                    mess_facility=facilities[0],
                    start_date=today,
                    end_date=today + timedelta(days=full.duration_days - 1),
                    amount_paid=full.price,
                )

        for name, meal_type, price, description in [
            ('Idly with Sambar', 'BREAKFAST', '40.00', 'Steamed rice cakes with lentil curry'),
            ('Rice with Sambar & Curry', 'LUNCH', '90.00', 'Rice, sambar, vegetable curry and yogurt'),
        ]:
            MenuItem.objects.get_or_create(
                mess_facility=facilities[0],
                name=name,
                defaults={'meal_type': meal_type, 'price': Decimal(price), 'description': description},
            )

        self.stdout.write(self.style.SUCCESS(
            f'Seed complete: {len(facilities)} facilities, {Package.objects.count()} packages, '
            f'{Item.objects.count()} items, {Dish.objects.count()} dishes'
        ))
