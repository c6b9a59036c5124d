# Data loading, cleaning and snapshotting
import re
import joblib
import numpy as np
import pandas as pd
from typing import Callable, Dict, List, Optional, Sequence

try:
    from .config import CSV_PATH, KEY_COL, PRICE_CENTS_THRESHOLD, SNAPSHOT_PATH, OTHER_REASONS
    from .exceptions import SchemaMismatchError
except ImportError:
    from config import CSV_PATH, KEY_COL, PRICE_CENTS_THRESHOLD, SNAPSHOT_PATH, OTHER_REASONS
    from exceptions import SchemaMismatchError

# -------------------------- Lookup Tables --------------------------
# Keys are lower-cased, whitespace-collapsed spellings seen in the raw export.
STATUS_NORMALIZE: Dict[str, str] = {
    "active": "Active", "activ": "Active", "live": "Active",
    "cancelled": "Cancelled", "canceled": "Cancelled", "cancel": "Cancelled",
    "terminated": "Cancelled",
}

PAYMENT_NORMALIZE: Dict[str, str] = {
    "credit card": "Credit Card", "creditcard": "Credit Card", "cc": "Credit Card",
    "visa": "Credit Card", "mastercard": "Credit Card",
    "paypal": "PayPal", "pay pal": "PayPal",
    "direct debit": "Direct Debit", "sepa": "Direct Debit", "sepa direct debit": "Direct Debit",
    "invoice": "Invoice", "bank transfer": "Invoice",
}

COUNTRY_NORMALIZE: Dict[str, str] = {
    "de": "DE", "germany": "DE", "deutschland": "DE",
    "at": "AT", "austria": "AT", "österreich": "AT",
    "ch": "CH", "switzerland": "CH", "schweiz": "CH",
    "nl": "NL", "netherlands": "NL",
    "fr": "FR", "france": "FR",
}

REASON_NORMALIZE: Dict[str, str] = {
    "failed payment": "Failed Payment", "payment failed": "Failed Payment",
    "payment failure": "Failed Payment", "chargeback": "Failed Payment",
    "too expensive": "Too Expensive", "price": "Too Expensive",
    "not using": "Not Using", "no usage": "Not Using", "unused": "Not Using",
    "switched provider": "Switched Provider", "competitor": "Switched Provider",
    "moved": "Moved", "relocation": "Moved",
    "other": "Other",
}

PRODUCT_NORMALIZE: Dict[str, str] = {
    "basic": "Basic", "standard": "Standard", "premium": "Premium",
    "family": "Family", "student": "Student",
}

# -------------------------- Helper Functions --------------------------
def _clean_token(x) -> Optional[str]:
    """Collapse whitespace and lower-case a raw cell; blanks become None."""
    if x is None or (not isinstance(x, str) and pd.isna(x)):
        return None
    v = re.sub(r"\s+", " ", str(x).strip()).lower()
    return v or None

def _map_values(series: pd.Series, lookup: Dict[str, str], fallback: Optional[str] = None) -> pd.Series:
    """Map spelling variants to canonical levels.

    Unmapped non-blank values keep their stripped original text unless a
    fallback level is given.
    """
    def _one(x):
        v = _clean_token(x)
        if v is None:
            return np.nan
        if v in lookup:
            return lookup[v]
        return fallback if fallback is not None else str(x).strip()
    return series.map(_one)

# -------------------------- Cleaning Stages --------------------------
def standardize_column_names(df: pd.DataFrame) -> pd.DataFrame:
    """Strip and snake_case column headers."""
    out = df.copy()
    out.columns = [re.sub(r"[\s\-]+", "_", str(c).strip()).lower() for c in out.columns]
    return out

def drop_duplicate_accounts(df: pd.DataFrame) -> pd.DataFrame:
    """
    Remove exact duplicate rows, then keep a single row per account.

    When an account appears more than once the row with the latest start date
    wins; rows without a start date lose to dated ones.
    """
    out = df.drop_duplicates()
    if "start_date" in out.columns:
        order = pd.to_datetime(out["start_date"], errors="coerce")
        out = (out.assign(_order=order)
                  .sort_values([KEY_COL, "_order"], na_position="first", kind="mergesort")
                  .drop_duplicates(subset=[KEY_COL], keep="last")
                  .drop(columns="_order"))
    else:
        out = out.drop_duplicates(subset=[KEY_COL], keep="last")
    return out.sort_index().reset_index(drop=True)

def normalize_categorical_values(df: pd.DataFrame) -> pd.DataFrame:
    """Map categorical spelling variants onto canonical levels."""
    out = df.copy()
    if "status" in out.columns:
        out["status"] = _map_values(out["status"], STATUS_NORMALIZE)
    if "payment_method" in out.columns:
        out["payment_method"] = _map_values(out["payment_method"], PAYMENT_NORMALIZE)
    if "country" in out.columns:
        out["country"] = _map_values(out["country"], COUNTRY_NORMALIZE)
    if "cancellation_reason" in out.columns:
        out["cancellation_reason"] = _map_values(out["cancellation_reason"], REASON_NORMALIZE,
                                                 fallback=OTHER_REASONS[-1])
    if "product_group" in out.columns:
        out["product_group"] = _map_values(out["product_group"], PRODUCT_NORMALIZE)
    if "campaign_code" in out.columns:
        out["campaign_code"] = out["campaign_code"].map(lambda x: (_clean_token(x) or "").upper() or np.nan)
    return out

def parse_dates(df: pd.DataFrame) -> pd.DataFrame:
    """Convert date columns to datetimes; unparseable values become NaT."""
    out = df.copy()
    for c in ("start_date", "end_date"):
        if c in out.columns:
            out[c] = pd.to_datetime(out[c], errors="coerce")
    return out

def correct_price_outliers(df: pd.DataFrame, cents_threshold: float = PRICE_CENTS_THRESHOLD) -> pd.DataFrame:
    """
    Repair price columns.

    - values above the cents threshold were keyed in cents and are divided by 100
    - zero or negative prices are treated as missing
    - missing contract prices take the median price of their product group
    """
    out = df.copy()
    for c in ("contract_monthly_price", "list_price"):
        if c not in out.columns:
            continue
        price = pd.to_numeric(out[c], errors="coerce")
        price = price.where(price <= cents_threshold, price / 100.0)
        price = price.where(price > 0)
        out[c] = price.round(2)

    if "contract_monthly_price" in out.columns and "product_group" in out.columns:
        group_median = out.groupby("product_group")["contract_monthly_price"].transform("median")
        out["contract_monthly_price"] = out["contract_monthly_price"].fillna(group_median)
    return out

CLEANING_STAGES: List[Callable[[pd.DataFrame], pd.DataFrame]] = [
    standardize_column_names,
    drop_duplicate_accounts,
    normalize_categorical_values,
    parse_dates,
    correct_price_outliers,
]

def run_cleaning_pipeline(df: pd.DataFrame,
                          stages: Sequence[Callable[[pd.DataFrame], pd.DataFrame]] = CLEANING_STAGES,
                          verbose: bool = True) -> pd.DataFrame:
    """Apply cleaning stages in order. The input frame is never modified."""
    out = df
    for stage in stages:
        before = len(out)
        out = stage(out)
        if verbose:
            print(f"[cleaning] {stage.__name__}: {before:,} -> {len(out):,} rows")
    return out

# -------------------------- Loading / Snapshot --------------------------
def load_raw_data(csv_path: str = CSV_PATH) -> pd.DataFrame:
    """Read the raw export and check the identifier column is present."""
    print(f"Loading data from {csv_path}...")
    df = pd.read_csv(csv_path, low_memory=False)
    df = standardize_column_names(df)

    if KEY_COL not in df.columns:
        raise SchemaMismatchError(f"{KEY_COL} column is required.")

    print(f"Raw data shape: {df.shape}")
    return df

def get_clean_dataframe(csv_path: str = CSV_PATH) -> pd.DataFrame:
    """
    Load the raw export and run every cleaning stage.

    Returns:
        pd.DataFrame: Cleaned account table, one row per account
    """
    df = load_raw_data(csv_path)
    df_clean = run_cleaning_pipeline(df)
    print(f"Clean data shape: {df_clean.shape}")
    return df_clean

def save_snapshot(df: pd.DataFrame, path: str = SNAPSHOT_PATH) -> str:
    joblib.dump(df, path)
    print(f"Snapshot written to {path}")
    return path

def load_snapshot(path: str = SNAPSHOT_PATH) -> pd.DataFrame:
    return joblib.load(path)

if __name__ == "__main__":
    df_clean = get_clean_dataframe()
    print("\nData cleaning completed successfully!")
    print(f"Shape: {df_clean.shape}")
    print(f"Memory usage: {df_clean.memory_usage(deep=True).sum() / 1024**2:.1f} MB")
