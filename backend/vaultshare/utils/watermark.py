"""
Burn recipient and access time into a rendition of a shared file.

Both renderers draw the same two lines, "Shared with: {email}" and
"Downloaded at: {timestamp}", in translucent red text rotated by
WATERMARK_ANGLE around the middle of the page or image.
"""
from io import BytesIO
from typing import Tuple

from PIL import Image, ImageDraw, ImageFont, UnidentifiedImageError
from pypdf import PdfReader, PdfWriter
from pypdf.errors import PdfReadError
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.pdfgen import canvas

from vaultshare.core.exceptions import UnsupportedType

WATERMARK_ANGLE = -30
WATERMARK_RGB = (255, 0, 0)

PDF_FONT = "Helvetica"
PDF_FONT_SIZE = 24
PDF_OPACITY = 0.3

IMAGE_OPACITY = 0.25


def watermark_lines(email: str, timestamp: str) -> Tuple[str, str]:
    return f"Shared with: {email}", f"Downloaded at: {timestamp}"


def _pdf_overlay(width: float, height: float, left: float, bottom: float, lines: Tuple[str, str]):
    buf = BytesIO()
    # invariant=1 keeps creation dates and ids out, so equal input gives equal output
    c = canvas.Canvas(buf, pagesize=(left + width, bottom + height), invariant=1)
    c.setFont(PDF_FONT, PDF_FONT_SIZE)
    c.setFillColorRGB(*(v / 255 for v in WATERMARK_RGB))
    c.setFillAlpha(PDF_OPACITY)

    center_y = bottom + height / 2
    offsets = (PDF_FONT_SIZE + 5, -PDF_FONT_SIZE - 5)
    for text, offset in zip(lines, offsets):
        text_width = stringWidth(text, PDF_FONT, PDF_FONT_SIZE)
        c.saveState()
        c.translate(left + (width - text_width) / 2, center_y + offset)
        c.rotate(WATERMARK_ANGLE)
        c.drawString(0, 0, text)
        c.restoreState()

    c.showPage()
    c.save()
    buf.seek(0)
    return PdfReader(buf).pages[0]


def add_pdf_watermark(data: bytes, email: str, timestamp: str) -> bytes:
    try:
        reader = PdfReader(BytesIO(data))
        pages = list(reader.pages)
    except PdfReadError as e:
        raise UnsupportedType(f"Cannot read PDF: {e}") from e

    lines = watermark_lines(email, timestamp)
    writer = PdfWriter()
    for page in pages:
        box = page.mediabox
        overlay = _pdf_overlay(float(box.width), float(box.height), float(box.left), float(box.bottom), lines)
        page.merge_page(overlay)
        writer.add_page(page)

    out = BytesIO()
    writer.write(out)
    return out.getvalue()


def add_image_watermark(data: bytes, email: str, timestamp: str) -> bytes:
    try:
        base = Image.open(BytesIO(data))
        base.load()
    except (UnidentifiedImageError, OSError) as e:
        raise UnsupportedType(f"Cannot read image: {e}") from e

    width, height = base.size
    font_size = max(min(width, height) // 25, 10)
    font = ImageFont.load_default(size=font_size)

    overlay = Image.new("RGBA", base.size, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    fill = WATERMARK_RGB + (int(255 * IMAGE_OPACITY),)
    center_x, center_y = width / 2, height / 2

    for text, line_y in zip(watermark_lines(email, timestamp), (center_y - font_size, center_y + font_size)):
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        draw.text(
            (center_x - (right - left) / 2 - left, line_y - (bottom - top) / 2 - top),
            text,
            font=font,
            fill=fill,
        )

    overlay = overlay.rotate(WATERMARK_ANGLE, resample=Image.Resampling.BICUBIC, center=(center_x, center_y))
    result = Image.alpha_composite(base.convert("RGBA"), overlay)

    out = BytesIO()
    result.save(out, format="PNG")
    return out.getvalue()
