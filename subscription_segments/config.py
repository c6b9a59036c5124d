# Configuration constants for the subscription segmentation report
import os

# ======================= CONFIG =======================
CSV_PATH = "data/subscriptions.csv"
OUTPUT_DIR = "outputs"
FIGURES_DIR = os.path.join(OUTPUT_DIR, "figures")   # EDA + clustering charts
REPORT_DIR = os.path.join(OUTPUT_DIR, "report")     # report tables and narrative
SNAPSHOT_PATH = os.path.join(OUTPUT_DIR, "clean_subscriptions.joblib")
SEED = 42

DPI = 150

# Identifier column (joined back on, never clustered on)
KEY_COL = "account_id"

# Missing marker for categorical tokens (numeric attributes use NaN)
MISSING = "missing"

# Data cleaning
PRICE_CENTS_THRESHOLD = 100.0   # monthly prices above this were entered in cents

# Dissimilarity engine
GOWER_CHUNK_ROWS = 1024   # rows per block when building the N x N matrix

# Clustering
K_RANGE = range(2, 9)   # candidate k values
FORCE_K = None          # force k, or None to take the best silhouette width
PAM_MAX_ITER = 100      # swap-phase iteration cap

# Projection
TSNE_PERPLEXITY = 30.0

# Feature definitions
NOMINAL_ATTRS = ["product_group", "campaign_code", "payment_method", "country"]
ORDERED_ATTRS = ["contract_monthly_price"]
NUMERIC_ATTRS = []

# Declared level sets; nominal attributes not listed here take their observed levels
DECLARED_LEVELS = {
    "product_group": ["Basic", "Family", "Premium", "Standard", "Student"],
    "payment_method": ["Credit Card", "Direct Debit", "Invoice", "PayPal"],
    "country": ["AT", "CH", "DE", "FR", "NL"],
}

CLUSTER_ATTRS = ["product_group", "campaign_code", "contract_monthly_price",
                 "payment_method", "country"]

# Rate definitions: name -> (column, condition A levels, condition B levels)
ACTIVE = "Active"
CANCELLED = "Cancelled"
FAILED_PAYMENT = "Failed Payment"
OTHER_REASONS = ["Too Expensive", "Not Using", "Switched Provider", "Moved", "Other"]

RATES = {
    "subscription_rate": ("status", [ACTIVE], [CANCELLED]),
    "failed_payment_rate": ("cancellation_reason", [FAILED_PAYMENT], OTHER_REASONS),
}

# Columns cross-tabulated against cluster in the report
CROSSTAB_COLS = ["campaign_code", "product_group", "contract_monthly_price"]


def ensure_output_dirs():
    """Create output directories if they do not exist yet."""
    for d in (OUTPUT_DIR, FIGURES_DIR, REPORT_DIR):
        os.makedirs(d, exist_ok=True)
