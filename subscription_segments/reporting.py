# Cluster report: join assignments back to accounts, per-cluster rates, narrative
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Sequence, Tuple

import numpy as np
import pandas as pd

try:
    from .config import CLUSTER_ATTRS, KEY_COL, RATES
    from .clustering import ClusteringResult
    from .schema import RecordSet
except ImportError:
    from config import CLUSTER_ATTRS, KEY_COL, RATES
    from clustering import ClusteringResult
    from schema import RecordSet


@dataclass(frozen=True)
class RateDefinition:
    """
    Named rate count(A) / (count(A) + count(B)) over one column.

    Rows matching neither condition (e.g. active accounts for a cancellation
    reason rate) are ignored.
    """
    name: str
    column: str
    condition_a: Tuple
    condition_b: Tuple

    def __post_init__(self):
        a, b = tuple(self.condition_a), tuple(self.condition_b)
        overlap = set(a) & set(b)
        if overlap:
            raise ValueError(f"{self.name}: levels in both conditions: {sorted(overlap)}")
        object.__setattr__(self, "condition_a", a)
        object.__setattr__(self, "condition_b", b)

    def counts(self, df: pd.DataFrame) -> Tuple[int, int]:
        col = df[self.column]
        return int(col.isin(self.condition_a).sum()), int(col.isin(self.condition_b).sum())


def rate_definitions(rates: Dict[str, tuple] = RATES) -> List[RateDefinition]:
    return [RateDefinition(name, col, a, b) for name, (col, a, b) in rates.items()]


def compute_rate(n_a: int, n_b: int) -> float:
    """A / (A + B); NaN when neither condition was observed."""
    total = n_a + n_b
    return n_a / total if total else np.nan


def attach_clusters(result: ClusteringResult, records: RecordSet, source_df: pd.DataFrame,
                    key: str = KEY_COL) -> pd.DataFrame:
    """
    Join cluster index and medoid key onto the source rows by key.

    Returns:
        DataFrame with one row per clustered record, original columns plus
        ``cluster`` and ``medoid_key``
    """
    keys = list(records.keys)
    df_labels = pd.DataFrame({
        key: keys,
        "cluster": np.asarray(result.labels, dtype=int),
        "medoid_key": [keys[m] for m in result.assignment],
    })
    return df_labels.merge(source_df, on=key, how="left", validate="one_to_one")


def cluster_rate_table(df_join: pd.DataFrame, rates: Sequence[RateDefinition],
                       cluster_col: str = "cluster") -> pd.DataFrame:
    """Size and named rates per cluster, with the counts behind each rate."""
    n_total = len(df_join)
    rows = []
    for cid, g in df_join.groupby(cluster_col):
        rec = {"cluster": int(cid), "n_accounts": int(len(g)),
               "share_pct": round(len(g) / n_total * 100, 1)}
        for rate in rates:
            n_a, n_b = rate.counts(g)
            rec[f"{rate.name}_a_count"] = n_a
            rec[f"{rate.name}_b_count"] = n_b
            rec[rate.name] = compute_rate(n_a, n_b)
        rows.append(rec)
    return pd.DataFrame(rows).sort_values("cluster").reset_index(drop=True)


def overall_rates(df: pd.DataFrame, rates: Sequence[RateDefinition]) -> Dict[str, float]:
    return {rate.name: compute_rate(*rate.counts(df)) for rate in rates}


def rate_crosstab(df_join: pd.DataFrame, rate: RateDefinition, by: str,
                  cluster_col: str = "cluster") -> pd.DataFrame:
    """Rate per cluster x level of ``by``; NaN where neither condition occurs."""
    flags = pd.DataFrame({
        cluster_col: df_join[cluster_col],
        by: df_join[by],
        "_a": df_join[rate.column].isin(rate.condition_a).astype(int),
        "_b": df_join[rate.column].isin(rate.condition_b).astype(int),
    })
    g = flags.groupby([cluster_col, by])[["_a", "_b"]].sum()
    total = g["_a"] + g["_b"]
    rate_values = (g["_a"] / total.where(total > 0)).rename(rate.name)
    return rate_values.unstack(by)


def create_cluster_profiles(df_join: pd.DataFrame, rate_table: pd.DataFrame,
                            profile_cols: Iterable[str] = CLUSTER_ATTRS,
                            cluster_col: str = "cluster", tag: str = "pam") -> pd.DataFrame:
    """
    Dominant level of each profile column per cluster, merged with the rate table.
    """
    print(f"[{tag}] Creating cluster profiles...")
    profiles = []
    for cid, g in df_join.groupby(cluster_col):
        rec = {"cluster": int(cid), "medoid_key": g["medoid_key"].iloc[0]}
        for col in profile_cols:
            if col in g.columns:
                vc = g[col].value_counts(normalize=True)
                if len(vc):
                    rec[f"{col}_top"] = vc.index[0]
                    rec[f"{col}_pct"] = round(vc.iloc[0] * 100, 1)

        if "contract_monthly_price" in g.columns:
            price = pd.to_numeric(g["contract_monthly_price"], errors="coerce")
            rec["contract_monthly_price_mean"] = round(price.mean(), 2)
        profiles.append(rec)

    df_profiles = rate_table.merge(pd.DataFrame(profiles), on="cluster", how="left")
    print(f"[{tag}] Created profiles for {len(profiles)} clusters")
    return df_profiles


def create_recommendations(df_profiles: pd.DataFrame, overall: Dict[str, float],
                           rates: Sequence[RateDefinition], threshold_pp: float = 5.0) -> List[str]:
    """
    Translate rate gaps into one short business recommendation per cluster.

    A cluster is flagged when a rate sits more than ``threshold_pp`` percentage
    points away from the overall rate.
    """
    def _safe(v):
        return v if isinstance(v, str) else "-"

    def _fmt(v):
        return "n/a" if pd.isna(v) else f"{v * 100:.1f}%"

    lines = []
    for _, r in df_profiles.iterrows():
        head = (f"Cluster {int(r['cluster'])}: {int(r['n_accounts']):,} accounts "
                f"({r['share_pct']}%), typical account {r.get('medoid_key')}")
        lines.append(head)
        lines.append(f"- Profile: {_safe(r.get('product_group_top'))} / {_safe(r.get('campaign_code_top'))} / "
                     f"{_safe(r.get('payment_method_top'))} / {_safe(r.get('country_top'))}, "
                     f"mean price {r.get('contract_monthly_price_mean', '-')}")

        for rate in rates:
            value, base = r.get(rate.name), overall.get(rate.name)
            lines.append(f"- {rate.name}: {_fmt(value)} (overall {_fmt(base)})")
            if pd.isna(value) or pd.isna(base):
                continue
            gap_pp = (value - base) * 100
            if abs(gap_pp) <= threshold_pp:
                continue
            direction = "above" if gap_pp > 0 else "below"
            lines.append(f"  -> {abs(gap_pp):.1f} pp {direction} overall; "
                         f"{_recommendation_for(rate.name, gap_pp, r)}")
        lines.append("")
    return lines


def _recommendation_for(rate_name: str, gap_pp: float, r: pd.Series) -> str:
    campaign = r.get("campaign_code_top")
    payment = r.get("payment_method_top")
    if rate_name == "subscription_rate":
        if gap_pp < 0:
            return f"retention risk: review pricing and onboarding of campaign {campaign}"
        return f"strong retention: scale campaign {campaign} for similar accounts"
    if rate_name == "failed_payment_rate":
        if gap_pp > 0:
            return f"payment friction: offer alternatives to {payment} and add dunning reminders"
        return f"low payment friction with {payment}"
    return "review drivers"


def write_summary_report(path: str, df_clean: pd.DataFrame, chosen_k: int, sil_scores: Dict[int, float],
                         result: ClusteringResult, df_profiles: pd.DataFrame, overall: Dict[str, float],
                         recommendations: List[str], forced: bool = False):
    """Plain-text summary of the segmentation run."""
    def _pct(v):
        return "n/a" if pd.isna(v) else f"{v * 100:.1f}%"

    report = []
    report.append("# Subscription Account Segmentation Summary")
    report.append("=" * 70)
    report.append("")
    report.append(f"Analysis Date: {datetime.now().strftime('%Y-%m-%d %H:%M')}")
    report.append(f"Accounts Analyzed: {len(df_clean):,}")
    report.append(f"Clustering Attributes: {', '.join(CLUSTER_ATTRS)}")
    report.append("")

    report.append("## OVERALL RATES")
    for name, v in overall.items():
        report.append(f"- {name}: {_pct(v)}")
    report.append("")

    report.append("## CLUSTER COUNT")
    for k in sorted(sil_scores):
        mark = " <- chosen" if k == chosen_k else ""
        report.append(f"- k={k}: average silhouette width {sil_scores[k]:.4f}{mark}")
    how = "forced by configuration" if forced else "highest average silhouette width"
    report.append(f"Chosen k={chosen_k} ({how}); PAM cost {result.total_cost:.3f} "
                  f"(average {result.average_cost:.4f}), {result.n_iter} swap(s)")
    report.append("")

    report.append("## CLUSTER SIZES")
    for _, row in df_profiles.iterrows():
        report.append(f"  Cluster {int(row['cluster'])}: {int(row['n_accounts']):,} accounts")
    report.append("")

    report.append("## RECOMMENDATIONS")
    report.append("")
    report.extend(recommendations)

    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(report))
    print(f"Summary report written to {path}")
