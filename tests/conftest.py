import matplotlib

matplotlib.use("Agg")

import numpy as np
import pandas as pd
import pytest

from subscription_segments.schema import Attribute, AttributeKind, AttributeSchema, normalize_attributes


@pytest.fixture
def color_price_frame() -> pd.DataFrame:
    return pd.DataFrame({
        "id": ["a", "b", "c", "d"],
        "color": ["red", "red", "blue", "blue"],
        "price": [1.0, 1.0, 10.0, 10.0],
    })


@pytest.fixture
def color_price_schema() -> AttributeSchema:
    return AttributeSchema((
        Attribute("color", AttributeKind.NOMINAL, ("blue", "red")),
        Attribute("price", AttributeKind.NUMERIC),
    ))


@pytest.fixture
def color_price_records(color_price_frame, color_price_schema):
    return normalize_attributes(color_price_frame, color_price_schema, key="id")


@pytest.fixture
def mixed_frame() -> pd.DataFrame:
    """Forty accounts over nominal, ordered and numeric attributes, with gaps."""
    rng = np.random.default_rng(7)
    n = 40
    df = pd.DataFrame({
        "account_id": [f"A{i:03d}" for i in range(n)],
        "plan": rng.choice(["Basic", "Premium", "Family"], size=n),
        "payment_method": rng.choice(["Credit Card", "PayPal", "Invoice"], size=n).astype(object),
        "tier": rng.choice(["low", "mid", "high"], size=n).astype(object),
        "tenure": rng.integers(1, 48, size=n).astype(float),
    })
    df.loc[[3, 11, 25], "payment_method"] = np.nan
    df.loc[[5, 19], "tier"] = np.nan
    df.loc[[8, 30, 31], "tenure"] = np.nan
    return df


@pytest.fixture
def mixed_schema() -> AttributeSchema:
    return AttributeSchema((
        Attribute("plan", AttributeKind.NOMINAL, ("Basic", "Family", "Premium")),
        Attribute("payment_method", AttributeKind.NOMINAL, ("Credit Card", "Invoice", "PayPal")),
        Attribute("tier", AttributeKind.ORDERED, ("low", "mid", "high")),
        Attribute("tenure", AttributeKind.NUMERIC),
    ))


@pytest.fixture
def mixed_records(mixed_frame, mixed_schema):
    return normalize_attributes(mixed_frame, mixed_schema)


@pytest.fixture
def subscriptions_frame() -> pd.DataFrame:
    """Small raw export with the spelling noise the cleaning stages repair."""
    rows = []
    products = [("Basic", 9.99), ("Premium", 19.99), ("Family", 24.99)]
    campaigns = ["SPRING24", "REFERRAL", "blackfriday "]
    payments = ["credit card", "PayPal", "SEPA", "Invoice"]
    countries = ["DE", "Germany", "AT", "ch"]
    for i in range(36):
        product, price = products[i % 3]
        payment = payments[i % 4]
        cancelled = payment == "Invoice" or i % 5 == 0
        rows.append({
            "Account ID": f"S{i:04d}",
            "Status": ("canceled" if i % 2 else "Cancelled") if cancelled else "active ",
            "Product Group": product,
            "Campaign Code": campaigns[i % 3],
            "Contract Monthly Price": price * 100 if i == 7 else price,
            "Payment Method": payment,
            "Cancellation Reason": ("payment failed" if payment == "Invoice" else "Too expensive") if cancelled else None,
            "Country": countries[i % 4],
            "Start Date": f"2023-{(i % 12) + 1:02d}-01",
            "End Date": "2024-01-15" if cancelled else "",
            "List Price": price,
        })
    df = pd.DataFrame(rows)
    # one duplicated export row
    return pd.concat([df, df.iloc[[4]]], ignore_index=True)
