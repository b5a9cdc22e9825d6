# agroclima_match/matching/weights.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional

from ..config import MatchConfig


class KSource(str, Enum):
    EXPLICIT = "explicit"    # crop's own k value, weight = k / sum(k)
    DEFAULTED = "defaulted"  # crop has k values, but not for this field
    UNIFORM = "uniform"      # crop has no k values at all


@dataclass(frozen=True)
class VariableWeighting:
    variable: str
    k: float
    weight: float
    source: KSource


@dataclass(frozen=True)
class CropWeighting:
    variables: Dict[str, VariableWeighting]
    warnings: List[str]

    def k_sources(self) -> Dict[str, str]:
        return {v: w.source.value for v, w in self.variables.items()}

    def normalized_weights(self) -> Dict[str, float]:
        """Weights derived from k (uniform ones when the crop has no k)."""
        explicit = {v: w.weight for v, w in self.variables.items() if w.source is KSource.EXPLICIT}
        if explicit:
            return explicit
        if all(w.source is KSource.UNIFORM for w in self.variables.values()):
            return {v: w.weight for v, w in self.variables.items()}
        return {}


def derive_weights(k_values: Optional[Mapping[str, Optional[float]]], config: MatchConfig) -> CropWeighting:
    """
    Per required field: which k to use and with which weight.

    - no k values at all -> every field UNIFORM (DEFAULT_K, 1/N)
    - otherwise fields with a non-null k are EXPLICIT, weighted k / sum of the
      present k values; the rest are DEFAULTED (DEFAULT_K, 1/N) and stay out
      of the normalization.
    """
    k_values = dict(k_values or {})
    fields = config.required_fields
    uniform = config.default_weight

    if not k_values:
        return CropWeighting(
            variables={
                f: VariableWeighting(f, float(config.default_k), uniform, KSource.UNIFORM) for f in fields
            },
            warnings=["No k_values found, using defaults"],
        )

    present = {f: float(k_values[f]) for f in fields if k_values.get(f) is not None}
    k_sum = sum(present.values()) or 1.0

    variables: Dict[str, VariableWeighting] = {}
    warnings: List[str] = []
    for f in fields:
        if f in present:
            variables[f] = VariableWeighting(f, present[f], present[f] / k_sum, KSource.EXPLICIT)
        else:
            warnings.append(f"Missing k value for '{f}', will use default")
            variables[f] = VariableWeighting(f, float(config.default_k), uniform, KSource.DEFAULTED)

    return CropWeighting(variables=variables, warnings=warnings)
