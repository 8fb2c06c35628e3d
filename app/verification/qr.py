"""QR code rendering for wallet invitations."""

import logging
from io import BytesIO

import qrcode
import qrcode.image.svg

log = logging.getLogger(__name__)


def render_qr_svg(data: str) -> str:
    """Render data as a standalone SVG QR code."""
    buf = BytesIO()
    qrcode.make(data, image_factory=qrcode.image.svg.SvgPathImage).save(buf)
    svg = buf.getvalue().decode("utf-8")
    log.debug(f"Rendered invitation QR ({len(svg)} bytes)")
    return svg
