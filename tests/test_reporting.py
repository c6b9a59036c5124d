import numpy as np
import pandas as pd
import pytest

from subscription_segments.clustering import ClusteringResult
from subscription_segments.reporting import (
    RateDefinition,
    attach_clusters,
    cluster_rate_table,
    compute_rate,
    create_cluster_profiles,
    create_recommendations,
    overall_rates,
    rate_crosstab,
    rate_definitions,
    write_summary_report,
)
from subscription_segments.schema import Attribute, AttributeKind, AttributeSchema, normalize_attributes

SUBSCRIPTION = RateDefinition("subscription_rate", "status", ("Active",), ("Cancelled",))
FAILED = RateDefinition("failed_payment_rate", "cancellation_reason", ("Failed Payment",),
                        ("Too Expensive", "Other"))


@pytest.fixture
def accounts() -> pd.DataFrame:
    return pd.DataFrame({
        "account_id": ["A", "B", "C", "D", "E", "F"],
        "status": ["Active", "Active", "Cancelled", "Cancelled", "Cancelled", "Active"],
        "cancellation_reason": [None, None, "Failed Payment", "Too Expensive", "Failed Payment", None],
        "product_group": ["Basic", "Basic", "Premium", "Premium", "Premium", "Basic"],
        "campaign_code": ["SPRING24", "SPRING24", "REFERRAL", "REFERRAL", "SPRING24", "REFERRAL"],
        "contract_monthly_price": [9.99, 9.99, 19.99, 19.99, 19.99, 9.99],
    })


@pytest.fixture
def joined(accounts) -> pd.DataFrame:
    schema = AttributeSchema((Attribute("product_group", AttributeKind.NOMINAL),))
    records = normalize_attributes(accounts, schema)
    result = ClusteringResult(k=2, medoids=(0, 2), labels=np.array([0, 0, 1, 1, 1, 0]), total_cost=0.0,
                              cost_history=(0.0,), n_iter=0, converged=True)
    # source rows in a different order than the records
    return attach_clusters(result, records, accounts.iloc[::-1])


def test_rate_without_observations_is_nan() -> None:
    assert np.isnan(compute_rate(0, 0))
    assert compute_rate(3, 1) == pytest.approx(0.75)
    assert compute_rate(0, 4) == 0.0


def test_overlapping_conditions_are_rejected() -> None:
    with pytest.raises(ValueError):
        RateDefinition("bad", "status", ("Active",), ("Active", "Cancelled"))


def test_rate_definitions_from_config() -> None:
    names = [r.name for r in rate_definitions()]
    assert names == ["subscription_rate", "failed_payment_rate"]


def test_attach_clusters_joins_on_key(joined) -> None:
    by_key = joined.set_index("account_id")

    assert len(joined) == 6
    assert by_key.loc["C", "cluster"] == 1
    assert by_key.loc["C", "status"] == "Cancelled"
    assert by_key.loc["F", "medoid_key"] == "A"
    assert by_key.loc["E", "medoid_key"] == "C"


def test_cluster_rate_table(joined) -> None:
    table = cluster_rate_table(joined, [SUBSCRIPTION, FAILED])

    assert table["n_accounts"].sum() == 6
    assert table["share_pct"].tolist() == [50.0, 50.0]
    assert table.loc[0, "subscription_rate"] == 1.0
    assert table.loc[1, "subscription_rate"] == 0.0
    # cluster 0 has no cancellations, so no failed-payment rate
    assert np.isnan(table.loc[0, "failed_payment_rate"])
    assert table.loc[1, "failed_payment_rate"] == pytest.approx(2 / 3)
    assert table.loc[1, "failed_payment_rate_a_count"] == 2
    assert table.loc[1, "failed_payment_rate_b_count"] == 1


def test_overall_rates(accounts) -> None:
    overall = overall_rates(accounts, [SUBSCRIPTION, FAILED])
    assert overall["subscription_rate"] == pytest.approx(0.5)
    assert overall["failed_payment_rate"] == pytest.approx(2 / 3)


def test_rate_crosstab(joined) -> None:
    ct = rate_crosstab(joined, SUBSCRIPTION, "campaign_code")

    assert ct.loc[0, "SPRING24"] == 1.0
    assert ct.loc[1, "REFERRAL"] == 0.0
    assert ct.loc[1, "SPRING24"] == 0.0


def test_profiles_and_recommendations(joined, tmp_path) -> None:
    rates = [SUBSCRIPTION, FAILED]
    table = cluster_rate_table(joined, rates)
    profiles = create_cluster_profiles(joined, table, ["product_group", "campaign_code"])

    assert profiles.loc[0, "product_group_top"] == "Basic"
    assert profiles.loc[1, "product_group_pct"] == 100.0
    assert profiles.loc[1, "contract_monthly_price_mean"] == pytest.approx(19.99)

    overall = {"subscription_rate": 0.5, "failed_payment_rate": 2 / 3}
    lines = create_recommendations(profiles, overall, rates)
    text = "\n".join(lines)

    assert "Cluster 0: 3 accounts" in text
    assert "retention risk" in text
    assert "strong retention" in text
    assert "failed_payment_rate: n/a" in text

    path = tmp_path / "summary.txt"
    result = ClusteringResult(k=2, medoids=(0, 2), labels=np.array([0, 0, 1, 1, 1, 0]), total_cost=0.0,
                              cost_history=(0.0,), n_iter=0, converged=True)
    write_summary_report(str(path), joined, 2, {2: 0.8, 3: 0.4}, result, profiles, overall, lines)
    summary = path.read_text(encoding="utf-8")
    assert "k=2: average silhouette width 0.8000 <- chosen" in summary
    assert "Cluster 1: 3 accounts" in summary
