# agroclima_match/storage/crop_store.py
from __future__ import annotations

import json
from pathlib import Path
from typing import Dict, Mapping

from ..schemas.inputs import Crop, crops_to_dict, parse_crops

DEFAULT_STORE_PATH = Path("crops_k_calibrated.json")


class JsonCropStore:
    """Calibrated crops kept in one JSON file, keyed by crop name."""

    def __init__(self, path: Path | str = DEFAULT_STORE_PATH):
        self.path = Path(path)

    def save(self, crops: Mapping[str, Crop]) -> Path:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = crops_to_dict(crops)
        self.path.write_text(json.dumps(payload, ensure_ascii=False, indent=2), encoding="utf-8")
        return self.path

    def load(self) -> Dict[str, Crop]:
        if not self.path.exists():
            raise FileNotFoundError(f"Calibrated crops not found: {self.path}")

        with open(self.path, "r", encoding="utf-8") as f:
            raw = json.load(f)

        if not isinstance(raw, dict):
            raise ValueError(f"Invalid JSON: expected an object keyed by crop name in {self.path}")
        return parse_crops(raw)
