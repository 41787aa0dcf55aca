import os

import dj_database_url

from .settings import *  # noqa: F401,F403

SECRET_KEY = 'test-secret-key'
DEBUG = False
SECURE_SSL_REDIRECT = False
ALLOWED_HOSTS = ['*']

# Concurrency tests run only when TEST_DATABASE_URL points at PostgreSQL
DATABASES = {
	'default': dj_database_url.parse(os.getenv('TEST_DATABASE_URL', 'sqlite://:memory:'))
}
DATABASES['default']['ATOMIC_REQUESTS'] = True

CACHES = {
	'default': {
		'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
		'LOCATION': 'campus-mess-tests',
	}
}

STORAGES = {
	'default': {
		'BACKEND': 'django.core.files.storage.FileSystemStorage',
	},
	'staticfiles': {
		'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
	},
}

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

TELEGRAM_BOT_TOKEN = None
