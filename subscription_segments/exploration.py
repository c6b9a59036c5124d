# Exploratory summary tables and charts of the cleaned account table
import os
from typing import Sequence

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns

try:
    from .config import DPI
    from .reporting import RateDefinition, compute_rate
except ImportError:
    from config import DPI
    from reporting import RateDefinition, compute_rate


def status_overview(df: pd.DataFrame, column: str = "status") -> pd.DataFrame:
    """Account count and share per status, missing included."""
    vc = df[column].value_counts(dropna=False)
    return pd.DataFrame({
        column: vc.index,
        "n_accounts": vc.values,
        "share_pct": (vc.values / len(df) * 100).round(1),
    })


def missing_overview(df: pd.DataFrame) -> pd.DataFrame:
    missing = df.isnull().mean() * 100
    return (missing[missing > 0].sort_values(ascending=False)
            .round(1).rename("missing_pct").rename_axis("column").reset_index())


def rate_by(df: pd.DataFrame, column: str, rate: RateDefinition) -> pd.DataFrame:
    """Named rate per level of ``column``, with the counts it is built from."""
    rows = []
    for level, g in df.groupby(column, dropna=False):
        n_a, n_b = rate.counts(g)
        rows.append({column: level, "n_accounts": len(g), f"{rate.name}_a_count": n_a,
                     f"{rate.name}_b_count": n_b, rate.name: compute_rate(n_a, n_b)})
    return pd.DataFrame(rows)


def run_exploration(df: pd.DataFrame, rates: Sequence[RateDefinition], columns: Sequence[str],
                    table_dir: str, figure_dir: str):
    """Write the EDA tables and charts; returns the tables by name."""
    print("[eda] Building summary tables...")
    tables = {
        "status_overview": status_overview(df),
        "missing_overview": missing_overview(df),
    }
    for rate in rates:
        for col in columns:
            if col in df.columns and col != rate.column:
                tables[f"{rate.name}_by_{col}"] = rate_by(df, col, rate)

    for name, t in tables.items():
        t.to_csv(os.path.join(table_dir, f"eda_{name}.csv"), index=False)

    print("[eda] Drawing charts...")
    for col in columns:
        if col in df.columns:
            plot_counts_by_status(df, col, os.path.join(figure_dir, f"eda_counts_{col}.png"))
    if "contract_monthly_price" in df.columns:
        plot_price_distribution(df, os.path.join(figure_dir, "eda_price_distribution.png"))

    print(f"[eda] Wrote {len(tables)} tables")
    return tables


def plot_counts_by_status(df: pd.DataFrame, column: str, path: str, hue: str = "status"):
    try:
        order = df[column].value_counts().index
        plt.figure(figsize=(10, 5))
        sns.countplot(data=df, x=column, hue=hue, order=order)
        plt.title(f"Accounts by {column} and {hue}")
        plt.xticks(rotation=45, ha="right")
        plt.tight_layout()
        plt.savefig(path, dpi=DPI)
    except ValueError as e:
        print(f"Warning: Could not create count plot for {column}: {e}")
    finally:
        plt.close()


def plot_price_distribution(df: pd.DataFrame, path: str, hue: str = "status"):
    try:
        plt.figure(figsize=(10, 5))
        sns.histplot(data=df, x="contract_monthly_price", hue=hue, multiple="stack", bins=30)
        plt.title("Contract Monthly Price Distribution")
        plt.tight_layout()
        plt.savefig(path, dpi=DPI)
    except ValueError as e:
        print(f"Warning: Could not create price distribution plot: {e}")
    finally:
        plt.close()
