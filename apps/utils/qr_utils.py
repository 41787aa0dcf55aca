import secrets
import qrcode
from io import BytesIO
import base64

STUDENT_CODE_PREFIX = 'QR_'
SUBSCRIPTION_CODE_PREFIX = 'SUB-'
ORDER_CODE_PREFIX = 'ORDER_'


def generate_student_code(register_number):
	"""Opaque student token, e.g. QR_21CS001_9F2A61BC"""
	return f"{STUDENT_CODE_PREFIX}{register_number}_{secrets.token_hex(4).upper()}"


def generate_coupon_code(order_number, issued_at):
	"""Scannable coupon for an ad-hoc order"""
	return f"{ORDER_CODE_PREFIX}{order_number}_{int(issued_at.timestamp())}"


def subscription_register_number(code):
	"""Return the register number carried by a SUB-<registerNumber> code, else None"""
	if code.startswith(SUBSCRIPTION_CODE_PREFIX):
		register_number = code[len(SUBSCRIPTION_CODE_PREFIX):].strip()
		return register_number or None
	return None


def generate_qr_image(payload):
	"""Generate QR code image from payload"""
	qr = qrcode.QRCode(
		version=1,
		error_correction=qrcode.constants.ERROR_CORRECT_M,
		box_size=10,
		border=4,
	)
	qr.add_data(payload)
	qr.make(fit=True)

	img = qr.make_image(fill_color="black", back_color="white")

	# Convert to base64 for easy transmission
	buffer = BytesIO()
	img.save(buffer, format='PNG')

	return base64.b64encode(buffer.getvalue()).decode()
