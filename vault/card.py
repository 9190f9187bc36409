"""Shareable memory card rendering (PNG) with Pillow.

Layout: title and date header, mood line, a cover-cropped rounded photo,
the word-wrapped reflection, and an optional category footer. The card
height grows with the reflection. Output depends only on the entry and its
photo bytes.
"""

from __future__ import annotations

from io import BytesIO
from pathlib import Path

from PIL import Image, ImageDraw, ImageFont, ImageOps

from vault.fileio import write_bytes_atomic
from vault.models import MemoryEntry
from vault.timeline import pretty_date
from vault.workspace import cards_dir

APP_TITLE = "DayVault"

CARD_W = 1080
PAD = 72
LINE_H = 52

HEADER_H = 170
PHOTO_H = 720
PHOTO_RADIUS = 44
GAP_AFTER_PHOTO = 54
LABEL_H = 44
LABEL_GAP = 22
SECTION_GAP = 26

BACKGROUND = (255, 245, 248)
SURFACE = (255, 250, 252)
INK = (43, 43, 43)
MUTED = (90, 90, 90)
PLACEHOLDER = (236, 224, 229)


def _font(size: int) -> ImageFont.ImageFont | ImageFont.FreeTypeFont:
    return ImageFont.load_default(size=size)


def wrap_lines(draw: ImageDraw.ImageDraw, text: str, font, max_width: float) -> list[str]:
    """Greedy word wrap by rendered width."""
    words = (text or "").split()
    lines: list[str] = []
    line = ""
    for word in words:
        candidate = f"{line} {word}" if line else word
        if draw.textlength(candidate, font=font) <= max_width:
            line = candidate
        else:
            if line:
                lines.append(line)
            line = word
    if line:
        lines.append(line)
    return lines


def _photo_tile(photo: bytes, size: tuple[int, int]) -> Image.Image:
    try:
        with Image.open(BytesIO(photo)) as src:
            tile = ImageOps.fit(src.convert("RGB"), size, Image.Resampling.LANCZOS)
    except (OSError, Image.DecompressionBombError):
        tile = Image.new("RGB", size, PLACEHOLDER)
    return tile


def render_card(entry: MemoryEntry, photo: bytes) -> bytes:
    """Render *entry* as a PNG and return the encoded bytes."""
    body_font = _font(38)
    measure = ImageDraw.Draw(Image.new("RGB", (1, 1)))
    max_text_w = CARD_W - PAD * 2
    reflection_lines = wrap_lines(measure, entry.reflection.strip(), body_font, max_text_w)
    category = (entry.category or "").strip()

    reflection_h = max(1, len(reflection_lines)) * LINE_H
    footer_h = 110 if category else 70
    total_h = (
        PAD + HEADER_H + PHOTO_H + GAP_AFTER_PHOTO + LABEL_H + LABEL_GAP
        + reflection_h + SECTION_GAP + footer_h + PAD
    )

    card = Image.new("RGB", (CARD_W, total_h), BACKGROUND)
    draw = ImageDraw.Draw(card)
    draw.rounded_rectangle((28, 28, CARD_W - 28, total_h - 28), radius=44, fill=SURFACE)

    y = PAD
    draw.text((PAD, y + 10), APP_TITLE, font=_font(48), fill=INK)
    draw.text((PAD, y + 76), pretty_date(entry.day_key), font=_font(34), fill=MUTED)
    draw.text((PAD, y + 121), f"Mood: {entry.mood}", font=_font(34), fill=INK)
    y += HEADER_H

    photo_w = CARD_W - PAD * 2
    tile = _photo_tile(photo, (photo_w, PHOTO_H))
    mask = Image.new("L", (photo_w, PHOTO_H), 0)
    ImageDraw.Draw(mask).rounded_rectangle((0, 0, photo_w, PHOTO_H), radius=PHOTO_RADIUS, fill=255)
    card.paste(tile, (PAD, y), mask)
    y += PHOTO_H + GAP_AFTER_PHOTO

    draw.text((PAD, y), "Reflection", font=_font(34), fill=INK)
    y += LABEL_H + LABEL_GAP
    for line in reflection_lines:
        draw.text((PAD, y), line, font=body_font, fill=INK)
        y += LINE_H
    if not reflection_lines:
        y += LINE_H
    y += SECTION_GAP

    if category:
        draw.text((PAD, y), f"Category: {category}", font=_font(30), fill=MUTED)

    buf = BytesIO()
    card.save(buf, format="PNG")
    return buf.getvalue()


def write_card(entry: MemoryEntry, photo: bytes, root: Path | None = None) -> Path:
    """Render and store the card as cards/<dayKey>.png."""
    path = cards_dir(root) / f"{entry.day_key}.png"
    write_bytes_atomic(path, render_card(entry, photo))
    return path
