"""
Configuration constants for the SeverusPT burn-severity explorer.

Severity model (Key & Benson, 2006):
  dNBR  = NBR_pre - NBR_post
  RdNBR = dNBR / sqrt(|NBR_pre|)
  RBR   = dNBR / (NBR_pre + 1.001)

Secrets are read from the environment (a local .env is loaded first).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# ── Google Earth Engine ──────────────────────────────────────────────────────
GEE_PROJECT_ID = os.environ.get("GEE_PROJECT_ID", "severus-457615")
GEE_SERVICE_ACCOUNT = os.environ.get("GEE_SERVICE_ACCOUNT")
# Keys pasted into .env usually carry literal "\n" sequences
GEE_PRIVATE_KEY = (os.environ.get("GEE_PRIVATE_KEY") or "").replace("\\n", "\n") or None

# ── Default Area of Interest (Pedrógão Grande fire, June 2017) ──────────────
DEFAULT_LAT = 39.9250
DEFAULT_LON = -8.1450
DEFAULT_RADIUS_KM = 10

DEFAULT_PRE_START = "2017-05-01"
DEFAULT_PRE_END = "2017-06-15"
DEFAULT_POST_START = "2017-06-25"
DEFAULT_POST_END = "2017-08-15"

# Mainland Portugal, used by the index composite endpoint
PORTUGAL_ROI = [[-9.6, 42.2], [-6.2, 42.2], [-6.2, 36.8], [-9.6, 36.8], [-9.6, 42.2]]

# ── Processing ───────────────────────────────────────────────────────────────
CRS = "EPSG:4326"
MAX_PIXELS = 1e13
DEFAULT_SCALE = 30
INDICES = ("NDVI", "NBR")

# ── Severity Classification (dNBR breakpoints, lower class wins ties) ───────
# ≤0.10 unburned · ≤0.27 low · ≤0.44 moderate-low · ≤0.66 moderate-high · >0.66 high
SEVERITY_BREAKS = (0.10, 0.27, 0.44, 0.66)
SEVERITY_LABELS = {
    1: "Unburned / very low",
    2: "Low",
    3: "Moderate-low",
    4: "Moderate-high",
    5: "High",
}
RBR_OFFSET = 1.001

# ── Segmentation (speckle removal) defaults ─────────────────────────────────
SEGMENTATION_DEFAULTS = {
    "kernel": 3,      # focal median radius (pixels)
    "dnbr": 0.1,      # smoothed dNBR threshold
    "cva": 0.05,      # change-vector magnitude threshold
    "minPix": 100,    # minimum connected patch size (pixels)
}

# ── Visualisation ────────────────────────────────────────────────────────────
CONTINUOUS_PALETTE = ["b6cdff", "efcc4b", "c03838"]
SEVERITY_PALETTE = ["3385ff", "ffff4d", "ff8000", "b30000", "330000"]

SEVERITY_VIS = {
    "dNBR":     {"min": 0, "max": 0.85, "palette": CONTINUOUS_PALETTE},
    "RdNBR":    {"min": -0.5, "max": 1.5, "palette": CONTINUOUS_PALETTE},
    "RBR":      {"min": 0, "max": 0.6, "palette": CONTINUOUS_PALETTE},
    "Severity": {"min": 1, "max": 5, "palette": SEVERITY_PALETTE},
}

INDEX_VIS = {
    "NDVI":       {"min": 0.0, "max": 0.8, "palette": ["brown", "yellow", "green", "darkgreen"]},
    "NDVI_MODIS": {"min": -0.2, "max": 0.8, "palette": ["red", "orange", "yellow", "green", "darkgreen"]},
    "NBR":        {"min": -1.0, "max": 1.0, "palette": ["red", "orange", "yellow", "green", "blue"]},
}

# ── Burned-area reference layers ─────────────────────────────────────────────
BURNED_AREA_DATASETS = {
    "ICNF":  {"asset": "users/joaofgo/severus_pt/AA_ICNF_2000_2021_PT_v2", "year_field": "Ano"},
    "EFFIS": {"asset": "users/joaofgo/severus_pt/effis_all", "year_field": "year"},
}

# ── RAG corpus ───────────────────────────────────────────────────────────────
RAG_DOCS_DIR = os.environ.get("RAG_DOCS_DIR", os.path.join("static", "docs"))
EMBEDDINGS_CACHE = os.environ.get("RAG_CACHE_FILE", "embeddings_cache.json")
EMBEDDING_MODEL = "intfloat/multilingual-e5-small"
EMBED_MAX_CHARS = 512
CHUNK_MAX_CHARS = 800
DOC_SOURCE = "Documentos SeverusPT"
DOC_CATEGORY = "incendios_florestais"
SEARCH_MIN_SIMILARITY = 0.5

# ── Chat (OpenRouter) ────────────────────────────────────────────────────────
OPENROUTER_API_KEY = os.environ.get("OPENROUTER_API_KEY") or os.environ.get("DP_API_KEY")
OPENROUTER_URL = "https://openrouter.ai/api/v1/chat/completions"
OPENROUTER_MODEL = os.environ.get("OPENROUTER_MODEL", "deepseek/deepseek-r1-0528:free")
APP_URL = os.environ.get("APP_URL", "https://proj4-severuspt.onrender.com/")
APP_TITLE = "SeverusBot"

CHAT_TOP_K = 3
CHAT_MIN_SIMILARITY = 0.65
CHAT_CHUNK_CHARS = 500
CHAT_CONTEXT_CHARS = 1500
CHAT_TEMPERATURE = 0.7
CHAT_MAX_TOKENS = 800

RETRIEVAL_TIMEOUT_S = 5
COMPLETION_TIMEOUT_S = 15
CHAT_MAX_ATTEMPTS = 3
CHAT_BACKOFF_S = (1, 2)   # sleep before attempt 2, 3

CHAT_POLICY = """
Como especialista em incêndios florestais em Portugal, siga estas regras:
1. Responda em português europeu, formal mas acessível
2. Seja conciso (1-2 parágrafos)
3. Baseie-se apenas no contexto fornecido
4. Caso não saiba, responda: "Não possuo dados suficientes sobre isso"
"""
CHAT_APOLOGY = "Erro temporário no serviço. Por favor, tente novamente."
CHAT_EMPTY_REPLY = "Não foi possível gerar uma resposta."

CONTEXT_FOUND = "Contexto encontrado"
CONTEXT_NONE = "Sem contexto relevante"
CONTEXT_UNAVAILABLE = "Contexto indisponível"

# ── Output Paths ────────────────────────────────────────────────────────────
OUTPUT_DIR = "output"
SEVERITY_MAP_HTML = "severity_map.html"
REPORT_JSON = "severity_report.json"

# ── Server ──────────────────────────────────────────────────────────────────
PORT = int(os.environ.get("PORT", 5050))
