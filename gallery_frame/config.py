from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = BASE_DIR / "data"
STATE_FILE = DATA_DIR / "gallery.json"

DB_NAME = "fotosDB"
DB_VERSION = 1
STORE_NAME = "fotos"

TARGET_WIDTH = 720
TARGET_HEIGHT = 1280
CANONICAL_MIME = "image/webp"
DATA_URI_PREFIX = f"data:{CANONICAL_MIME};base64,"

ROTATION_SECONDS = 5.0
MIN_ROTATION_SECONDS = 0.1

PRIMARY_SLOT = "img-principal"
SECONDARY_SLOTS = (
    "img-foto1",
    "img-foto2",
    "img-foto3",
    "img-foto4",
    "img-foto5",
    "img-foto6",
)
SLOT_IDS = (PRIMARY_SLOT, *SECONDARY_SLOTS)

EXPORT_FILENAME = "imagens.json"


@dataclass(frozen=True)
class FrameSettings:
    state_file: Path = STATE_FILE
    rotation_seconds: float = ROTATION_SECONDS
    slot_ids: tuple[str, ...] = SLOT_IDS

    def __post_init__(self) -> None:
        if not self.slot_ids:
            raise ValueError("at least one display slot is required")
        object.__setattr__(self, "slot_ids", tuple(self.slot_ids))
        object.__setattr__(self, "rotation_seconds", max(MIN_ROTATION_SECONDS, float(self.rotation_seconds)))

    @property
    def secondary_count(self) -> int:
        return len(self.slot_ids) - 1

    @classmethod
    def from_env(cls) -> "FrameSettings":
        state_file = Path(os.environ.get("GALLERY_STATE_FILE", str(STATE_FILE)))
        rotation_seconds = float(os.environ.get("GALLERY_ROTATION_SECONDS", ROTATION_SECONDS))
        return cls(state_file=state_file, rotation_seconds=rotation_seconds)
