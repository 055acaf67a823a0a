import base64
import json
from io import BytesIO
from typing import Optional

import qrcode


def qr_payload(item_id, name: str, brand: Optional[str], serial_number: Optional[str]) -> str:
    """Stable JSON identifying an item when its label is scanned."""
    return json.dumps(
        {"id": str(item_id), "name": name, "brand": brand, "serialNumber": serial_number},
        separators=(",", ":"),
    )


def generate_qr_code_image(data: str) -> BytesIO:
    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=10,
        border=4,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)
    return buffer


def qr_data_url(data: str) -> str:
    png = generate_qr_code_image(data).getvalue()
    return "data:image/png;base64," + base64.b64encode(png).decode("ascii")


def item_qr_code(item) -> str:
    return qr_data_url(qr_payload(item.id, item.name, item.brand, item.serial_number))
