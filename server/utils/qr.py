"""
QR code for a student's access code, shown after registration.
"""
import io
import base64
import qrcode


def access_code_qr(code, checkin_url=None, box_size=10, border=2):
    """
    Encode the access code (or a check-in link carrying it) as a base64 PNG.
    Embeddable directly in HTML: <img src="data:image/png;base64,..." />
    """
    data = f"{checkin_url}?code={code}" if checkin_url else code

    qr = qrcode.QRCode(
        version=None,
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=box_size,
        border=border,
    )
    qr.add_data(data)
    qr.make(fit=True)

    img = qr.make_image(fill_color="black", back_color="white")

    buffer = io.BytesIO()
    img.save(buffer, format='PNG')

    img_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    return data, f"data:image/png;base64,{img_base64}"
