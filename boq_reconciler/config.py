# boq_reconciler/config.py

import os

from dotenv import load_dotenv

load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    return int(raw) if raw else default


# ------------------------------------------------------------
# Matching
# ------------------------------------------------------------

# Best candidate must reach this score to become an automatic match
MATCH_THRESHOLD = _env_float("BOQ_MATCH_THRESHOLD", 0.6)

# Anything below this never shows up as a candidate (review lists included)
CANDIDATE_MIN_SCORE = _env_float("BOQ_CANDIDATE_MIN_SCORE", 0.35)

TOP_N = _env_int("BOQ_TOP_N", 5)

# token overlap / order-invariant edit / literal edit
SIMILARITY_WEIGHTS = {
    "token_overlap": 0.60,
    "token_sort": 0.25,
    "literal": 0.15,
}

# ------------------------------------------------------------
# Solver defaults
# ------------------------------------------------------------

DEFAULT_MIN_COEFF = _env_float("BOQ_MIN_COEFF", 0.70)
DEFAULT_MAX_COEFF = _env_float("BOQ_MAX_COEFF", 1.30)
DEFAULT_PENALTY = _env_float("BOQ_PENALTY", 500.0)

# Relative slack allowed when checking stage ceilings after solving
FEASIBILITY_TOLERANCE = 1e-6

CURRENCY_DECIMALS = 2

# ------------------------------------------------------------
# Adaptive iteration tuning
# ------------------------------------------------------------

TARGET_GAP_PERCENT = _env_float("BOQ_TARGET_GAP_PERCENT", 1.0)
GAP_BAND_PERCENT = _env_float("BOQ_GAP_BAND_PERCENT", 0.5)
BOUND_STEP = 0.05
MIN_COEFF_FLOOR = 0.40
MAX_COEFF_CEILING = 2.00
PENALTY_FLOOR = 1.0
PENALTY_CEILING = 1e6

# ------------------------------------------------------------
# Unit aliases (canonical -> variants)
# ------------------------------------------------------------

UNIT_ALIASES = {
    "m": ["m", "m.", "lm", "l.m.", "meter", "meters", "metre", "metres", "mtr", "м", "м."],
    "m2": ["m2", "m²", "sq.m", "sq m", "sqm", "m^2", "square meter", "м2", "кв.м", "кв.м."],
    "m3": ["m3", "m³", "cu.m", "cu m", "cbm", "m^3", "cubic meter", "м3", "куб.м", "куб.м."],
    "kg": ["kg", "kg.", "kgs", "kilogram", "kilograms", "кг", "кг."],
    "t": ["t", "t.", "ton", "tons", "tonne", "tonnes", "т", "т."],
    "l": ["l", "l.", "ltr", "liter", "litre", "liters", "litres", "л", "л."],
    "pcs": ["pcs", "pcs.", "pc", "pc.", "piece", "pieces", "ea", "ea.", "each", "nr", "no.", "бр", "бр."],
    "set": ["set", "sets", "kit", "компл", "компл.", "к-т"],
    "h": ["h", "hr", "hrs", "hour", "hours", "ч", "ч."],
    "lump sum": ["lump sum", "ls", "l.s.", "lumpsum", "сума"],
}
