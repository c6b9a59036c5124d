import argparse
from pathlib import Path

import numpy as np
import pandas as pd

PRODUCTS = {"Basic": 9.99, "Standard": 14.99, "Premium": 19.99, "Family": 24.99, "Student": 4.99}
CAMPAIGNS = ["SPRING24", "BLACKFRIDAY", "REFERRAL", "NONE"]
PAYMENTS = ["credit card", "PayPal", "SEPA", "Invoice"]
COUNTRIES = ["DE", "Germany", "AT", "CH", "nl"]
REASONS = ["Failed Payment", "too expensive", "Not using", "competitor", "moved", "other"]


def generate(size: int, seed: int, duplicate_rate: float) -> pd.DataFrame:
    rng = np.random.default_rng(seed)
    product = rng.choice(list(PRODUCTS), size=size, p=[0.3, 0.3, 0.2, 0.1, 0.1])
    campaign = rng.choice(CAMPAIGNS, size=size)
    payment = rng.choice(PAYMENTS, size=size, p=[0.4, 0.25, 0.25, 0.1])

    # invoice payers and discount campaigns churn more, mostly through failed payments
    p_cancel = 0.25 + 0.25 * (payment == "Invoice") + 0.15 * (campaign == "BLACKFRIDAY")
    cancelled = rng.random(size) < p_cancel
    reason = np.where(
        cancelled,
        np.where(payment == "Invoice", "Failed Payment", rng.choice(REASONS, size=size)),
        None,
    )

    price = np.array([PRODUCTS[p] for p in product])
    cents = rng.random(size) < 0.02
    price = np.where(cents, price * 100, price)

    start = pd.Timestamp("2022-01-01") + pd.to_timedelta(rng.integers(0, 700, size=size), unit="D")
    end = [s + pd.Timedelta(days=int(d)) if c else pd.NaT
           for s, d, c in zip(start, rng.integers(30, 400, size=size), cancelled)]

    df = pd.DataFrame({
        "Account ID": [f"A{i:06d}" for i in range(size)],
        "Status": np.where(cancelled, rng.choice(["Cancelled", "canceled"], size=size), "Active"),
        "Product Group": product,
        "Campaign Code": campaign,
        "Contract Monthly Price": price,
        "Payment Method": payment,
        "Cancellation Reason": reason,
        "Country": rng.choice(COUNTRIES, size=size),
        "Start Date": start.strftime("%Y-%m-%d"),
        "End Date": [e.strftime("%Y-%m-%d") if pd.notna(e) else "" for e in end],
        "List Price": [PRODUCTS[p] for p in product],
    })

    n_dup = int(size * duplicate_rate)
    if n_dup:
        df = pd.concat([df, df.sample(n=n_dup, random_state=seed)], ignore_index=True)
    return df


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a synthetic subscription export")
    parser.add_argument("--size", type=int, default=2000)
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--duplicate-rate", type=float, default=0.03)
    parser.add_argument("--output", type=Path, default=Path("data/subscriptions.csv"))
    args = parser.parse_args()

    df = generate(args.size, args.seed, args.duplicate_rate)
    args.output.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(args.output, index=False)
    print(f"Wrote {len(df):,} rows to {args.output}")


if __name__ == "__main__":
    main()
