"""
Invite links: personal invite URL, WhatsApp deep link and QR code
"""

import io
import re
from urllib.parse import quote

import qrcode

from app.core.config import settings
from app.schemas.guest import GuestResponse

INVITE_MESSAGES = {
    "ru": "Привет, {first_name}! Приглашаем тебя на нашу свадьбу. Пожалуйста, подтверди участие по ссылке: {url}",
    "he": "היי {first_name}! אנחנו שמחים להזמין אותך לחתונה שלנו. אשר/י הגעה בקישור: {url}",
}

class InviteService:
    """Builds what the admin sends to a guest"""

    @staticmethod
    def invite_url(guest_id: str) -> str:
        return f"{settings.BASE_URL}/guest/invite/{guest_id}"

    @staticmethod
    def sanitize_phone(phone: str) -> str:
        """Digits only, without leading zeros, as wa.me expects"""
        digits = re.sub(r"\D", "", phone)
        if not digits:
            return phone
        return digits.lstrip("0") or digits

    @staticmethod
    def invite_message(guest: GuestResponse) -> str:
        template = INVITE_MESSAGES.get(guest.language, INVITE_MESSAGES["ru"])
        return template.format(first_name=guest.first_name, url=InviteService.invite_url(guest.id))

    @staticmethod
    def whatsapp_link(guest: GuestResponse) -> str:
        phone = InviteService.sanitize_phone(guest.phone)
        return f"https://wa.me/{phone}?text={quote(InviteService.invite_message(guest))}"

    @staticmethod
    def generate_invite_qr(guest_id: str, format: str = "PNG") -> bytes:
        """QR code pointing at the guest's personal invite page"""
        qr = qrcode.QRCode(
            version=1,
            error_correction=qrcode.constants.ERROR_CORRECT_M,
            box_size=10,
            border=4,
        )
        qr.add_data(InviteService.invite_url(guest_id))
        qr.make(fit=True)

        img = qr.make_image(fill_color="black", back_color="white")
        buffer = io.BytesIO()
        img.save(buffer, format=format)
        return buffer.getvalue()
