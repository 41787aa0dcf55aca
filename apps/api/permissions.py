from django.utils import timezone
from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed
from rest_framework.permissions import BasePermission, SAFE_METHODS
from apps.core.models import ApiToken

# role -> capabilities; '*' grants everything
ROLE_CAPABILITIES = {
	'ADMIN': {'*'},
	'FNB_MANAGER': {
		'fnb.read', 'fnb.write',
		'scanner.scan', 'scanner.override', 'scanner.read',
		'kitchen.read', 'kitchen.write',
		'config.read', 'inventory.read', 'reports.read',
	},
	'CHEF': {
		'kitchen.read', 'kitchen.write',
		'inventory.read', 'config.read', 'reports.read',
	},
	'STORE': {
		'inventory.read', 'inventory.write',
		'kitchen.read', 'config.read',
	},
	'COOK': {
		'kitchen.read', 'inventory.read',
	},
	'SCANNER': {
		'scanner.scan', 'scanner.read', 'config.read',
	},
	'VIEWER': {
		'fnb.read', 'scanner.read', 'kitchen.read', 'inventory.read', 'reports.read', 'config.read',
	},
}


def user_has_capability(user, capability):
	if user is None or not getattr(user, 'is_authenticated', False):
		return False
	if getattr(user, 'is_superuser', False):
		return True
	granted = ROLE_CAPABILITIES.get(getattr(user, 'role', None), set())
	return '*' in granted or capability in granted


class ApiTokenAuthentication(BaseAuthentication):
	"""Bearer token authentication against hashed ApiToken rows"""
	keyword = 'Bearer'

	def authenticate(self, request):
		auth_header = request.META.get('HTTP_AUTHORIZATION')
		if not auth_header or not auth_header.startswith(f'{self.keyword} '):
			return None

		token = auth_header.split(' ', 1)[1].strip()
		if not token:
			raise AuthenticationFailed('Invalid token')

		try:
			api_token = ApiToken.objects.select_related('user').get(
				token_hash=ApiToken.hash_token(token),
				active=True
			)
		except ApiToken.DoesNotExist:
			raise AuthenticationFailed('Invalid token')

		if api_token.is_expired():
			raise AuthenticationFailed('Token expired')

		if not api_token.user.is_active:
			raise AuthenticationFailed('User inactive or deleted')

		ApiToken.objects.filter(pk=api_token.pk).update(last_used_at=timezone.now())
		return (api_token.user, api_token)

	def authenticate_header(self, request):
		return self.keyword


class HasCapability(BasePermission):
	"""Checks the role capability table; subclasses set read/write capabilities"""
	read_capability = None
	write_capability = None

	def has_permission(self, request, view):
		if not request.user or not request.user.is_authenticated:
			return False
		needed = self.read_capability if request.method in SAFE_METHODS else self.write_capability
		return needed is not None and user_has_capability(request.user, needed)


def capability(read=None, write=None):
	"""Build a permission class for the given capabilities, e.g. capability('fnb.read', 'fnb.write')"""
	return type(
		f"Capability_{read or write}".replace('.', '_'),
		(HasCapability,),
		{'read_capability': read, 'write_capability': write if write is not None else read}
	)
