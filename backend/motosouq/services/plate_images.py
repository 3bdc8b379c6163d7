"""Renderizado de matrículas a PNG con Pillow."""
import logging
import os
from typing import Optional

from PIL import Image, ImageDraw, ImageFont

from motosouq.core.config import settings
from motosouq.models.license_plate import LicensePlate

logger = logging.getLogger(__name__)

PLATE_SIZE = (520, 120)
BORDER = 6


def _draw_plate(plate: LicensePlate) -> Image.Image:
    image = Image.new("RGB", PLATE_SIZE, "white")
    draw = ImageDraw.Draw(image)
    width, height = PLATE_SIZE
    draw.rectangle([0, 0, width - 1, height - 1], outline="black", width=BORDER)

    font = ImageFont.load_default()
    draw.text((BORDER * 3, BORDER * 2), plate.city_name, fill="black", font=font)

    # Los valores se pintan de izquierda a derecha según su posición
    text = plate.display_text() or "-"
    left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
    x = (width - (right - left)) // 2
    y = (height - (bottom - top)) // 2
    draw.text((x, y), text, fill="black", font=font)
    return image


def render_plate_image(plate: LicensePlate, output_dir: Optional[str] = None) -> Optional[str]:
    """
    Genera la imagen de la matrícula y devuelve su ruta.
    Cualquier fallo se registra y devuelve None; nunca interrumpe el guardado.
    """
    output_dir = output_dir or settings.PLATE_IMAGE_DIR
    try:
        os.makedirs(output_dir, exist_ok=True)
        path = os.path.join(output_dir, f"{plate.id}.png")
        _draw_plate(plate).save(path, format="PNG")
        logger.info(f"Imagen de matrícula generada: {path}")
        return path
    except Exception as e:
        logger.error(f"No se pudo generar la imagen de la matrícula {plate.id}: {e}")
        return None
