"""
Runtime mess configuration.

Defaults come from settings.MESS_CONFIG; SystemConfig rows override them.
The merged result is cached and dropped whenever a SystemConfig row changes
(see apps.core.signals).
"""
import logging
from datetime import datetime, timedelta

from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

logger = logging.getLogger(__name__)

CACHE_KEY = 'mess:meal-config'

MEAL_ORDER = ['BREAKFAST', 'LUNCH', 'SNACKS', 'DINNER']

# SystemConfig keys that hold meal window boundaries, e.g. lunch_start
WINDOW_KEYS = [f"{meal.lower()}_{edge}" for meal in MEAL_ORDER for edge in ('start', 'end')]


def parse_hhmm(value):
    return datetime.strptime(str(value).strip(), '%H:%M').time()


def _as_bool(value):
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ('true', '1', 'yes', 'on')


def _as_int(key, value, default):
    try:
        return int(str(value).strip())
    except (TypeError, ValueError):
        logger.warning(f"Ignoring non-numeric config value {key}={value!r}")
        return default


class MealWindow:
    """Half-open daily window [start, end)"""

    def __init__(self, meal_type, start, end):
        self.meal_type = meal_type
        self.start = start
        self.end = end

    def contains(self, moment):
        return self.start <= moment < self.end

    def to_dict(self):
        return {
            'meal_type': self.meal_type,
            'start': self.start.strftime('%H:%M'),
            'end': self.end.strftime('%H:%M'),
        }

    def __repr__(self):
        return f"MealWindow({self.meal_type}, {self.start:%H:%M}-{self.end:%H:%M})"


class MealConfig:
    def __init__(self, windows, auto_mark_attendance=True, qr_code_expiry_hours=24,
                 allow_manual_override=True, approval_expiry_minutes=5,
                 default_tax_rate=18, default_order_status='PENDING'):
        self.windows = windows
        self.auto_mark_attendance = auto_mark_attendance
        self.qr_code_expiry_hours = qr_code_expiry_hours
        self.allow_manual_override = allow_manual_override
        self.approval_expiry_minutes = approval_expiry_minutes
        self.default_tax_rate = default_tax_rate
        self.default_order_status = default_order_status

    def window(self, meal_type):
        for window in self.windows:
            if window.meal_type == meal_type:
                return window
        return None

    def meal_at(self, moment):
        """Return the meal type whose window contains the wall-clock time, or None"""
        for window in self.windows:
            if window.contains(moment):
                return window.meal_type
        return None

    def current_meal(self, now=None):
        now = timezone.localtime(now or timezone.now())
        return self.meal_at(now.time())

    def next_meal(self, now=None):
        """Return (meal_type, start datetime) of the next window to open"""
        now = timezone.localtime(now or timezone.now())
        upcoming = sorted(self.windows, key=lambda w: w.start)
        for window in upcoming:
            if window.start > now.time():
                return window.meal_type, now.replace(
                    hour=window.start.hour, minute=window.start.minute, second=0, microsecond=0
                )
        if not upcoming:
            return None, None
        first = upcoming[0]
        tomorrow = now + timedelta(days=1)
        return first.meal_type, tomorrow.replace(
            hour=first.start.hour, minute=first.start.minute, second=0, microsecond=0
        )

    def as_dict(self):
        return {
            'meal_windows': [window.to_dict() for window in self.windows],
            'auto_mark_attendance': self.auto_mark_attendance,
            'qr_code_expiry_hours': self.qr_code_expiry_hours,
            'allow_manual_override': self.allow_manual_override,
            'approval_expiry_minutes': self.approval_expiry_minutes,
            'default_tax_rate': self.default_tax_rate,
            'default_order_status': self.default_order_status,
        }


def build_meal_config(overrides=None):
    """Merge SystemConfig key/value overrides onto settings.MESS_CONFIG"""
    overrides = overrides or {}
    defaults = settings.MESS_CONFIG

    windows = []
    for meal_type in MEAL_ORDER:
        default_window = defaults['meal_windows'][meal_type]
        bounds = {}
        for edge in ('start', 'end'):
            key = f"{meal_type.lower()}_{edge}"
            fallback = parse_hhmm(default_window[edge])
            raw = overrides.get(key)
            if raw is None:
                bounds[edge] = fallback
                continue
            try:
                bounds[edge] = parse_hhmm(raw)
            except ValueError:
                logger.warning(f"Invalid time for {key}: {raw!r}, using {default_window[edge]}")
                bounds[edge] = fallback
        if bounds['start'] >= bounds['end']:
            logger.warning(f"Empty {meal_type} window {bounds['start']}-{bounds['end']}, using defaults")
            bounds = {edge: parse_hhmm(default_window[edge]) for edge in ('start', 'end')}
        windows.append(MealWindow(meal_type, bounds['start'], bounds['end']))

    def pick(key):
        return overrides.get(key, defaults[key])

    return MealConfig(
        windows=windows,
        auto_mark_attendance=_as_bool(pick('auto_mark_attendance')),
        qr_code_expiry_hours=_as_int('qr_code_expiry_hours', pick('qr_code_expiry_hours'), defaults['qr_code_expiry_hours']),
        allow_manual_override=_as_bool(pick('allow_manual_override')),
        approval_expiry_minutes=_as_int(
            'approval_expiry_minutes', pick('approval_expiry_minutes'), defaults['approval_expiry_minutes']
        ),
        default_tax_rate=_as_int('default_tax_rate', pick('default_tax_rate'), defaults['default_tax_rate']),
        default_order_status=str(pick('default_order_status')).strip().upper(),
    )


def load_meal_config():
    config = cache.get(CACHE_KEY)
    if config is None:
        from apps.core.models import SystemConfig
        overrides = dict(SystemConfig.objects.values_list('key', 'value'))
        config = build_meal_config(overrides)
        cache.set(CACHE_KEY, config, settings.MESS_CONFIG.get('config_cache_seconds', 300))
    return config


def invalidate_meal_config():
    cache.delete(CACHE_KEY)


def is_valid_time(value):
    try:
        parse_hhmm(value)
    except ValueError:
        return False
    return True
