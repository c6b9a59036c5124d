# Main orchestration script - ties together cleaning, clustering and the report
import argparse
import os
from datetime import datetime
from typing import Optional

import numpy as np

try:
    from .config import *
    from .data_cleaning import get_clean_dataframe, save_snapshot
    from .exploration import run_exploration
    from .schema import AttributeSchema, normalize_attributes
    from .dissimilarity import gower_matrix
    from .exceptions import InvalidClusterCountError
    from .clustering import pam, silhouette_by_k, plot_silhouette_curve, plot_silhouette_profile
    from .projection import tsne_embedding, famd_coordinates, plot_embedding
    from .reporting import (rate_definitions, attach_clusters, cluster_rate_table, overall_rates,
                            rate_crosstab, create_cluster_profiles, create_recommendations,
                            write_summary_report)
except ImportError:
    from config import *
    from data_cleaning import get_clean_dataframe, save_snapshot
    from exploration import run_exploration
    from schema import AttributeSchema, normalize_attributes
    from dissimilarity import gower_matrix
    from exceptions import InvalidClusterCountError
    from clustering import pam, silhouette_by_k, plot_silhouette_curve, plot_silhouette_profile
    from projection import tsne_embedding, famd_coordinates, plot_embedding
    from reporting import (rate_definitions, attach_clusters, cluster_rate_table, overall_rates,
                           rate_crosstab, create_cluster_profiles, create_recommendations,
                           write_summary_report)


def run_full_analysis(csv_path: str = CSV_PATH, force_k: Optional[int] = FORCE_K,
                      k_range=K_RANGE, seed: int = SEED, unexpected: str = "reject") -> dict:
    """
    Run the whole segmentation report:
    clean -> snapshot -> EDA -> normalize -> Gower -> silhouette sweep -> PAM
    -> projections -> per-cluster rates, profiles and recommendations.
    """
    print("=" * 60)
    print("SUBSCRIPTION ACCOUNT SEGMENTATION")
    print("=" * 60)
    print(f"Analysis started at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"Random seed: {seed}")
    print()

    ensure_output_dirs()
    rates = rate_definitions(RATES)

    # Step 1: load and clean
    print("Step 1: Loading and cleaning data...")
    df_clean = get_clean_dataframe(csv_path)
    save_snapshot(df_clean, SNAPSHOT_PATH)
    print()

    # Step 2: exploration
    print("Step 2: Exploratory tables and charts")
    print("-" * 50)
    run_exploration(df_clean, rates, CLUSTER_ATTRS + ["status"], REPORT_DIR, FIGURES_DIR)
    print()

    # Step 3: normalize attributes and build the dissimilarity matrix
    print("Step 3: Gower dissimilarity on clustering attributes")
    print("-" * 50)
    schema = AttributeSchema.from_frame(df_clean, nominal=NOMINAL_ATTRS, ordered=ORDERED_ATTRS,
                                        numeric=NUMERIC_ATTRS, order=CLUSTER_ATTRS,
                                        levels=DECLARED_LEVELS)
    records = normalize_attributes(df_clean, schema, key=KEY_COL, unexpected=unexpected)
    D = gower_matrix(records, chunk_size=GOWER_CHUNK_ROWS)
    print()

    # Step 4: cluster count
    print("Step 4: Silhouette sweep")
    print("-" * 50)
    ks = [k for k in k_range if k <= len(records)]
    if not ks and force_k is None:
        raise InvalidClusterCountError(min(k_range), len(records))
    sil_scores = silhouette_by_k(D, ks, max_iter=PAM_MAX_ITER, label="pam")
    plot_silhouette_curve(sil_scores, os.path.join(FIGURES_DIR, "pam_silhouette.png"),
                          "PAM on Gower distance: silhouette by k")
    if force_k is not None:
        chosen_k = force_k
        print(f"[pam] FORCED k={chosen_k}")
    else:
        chosen_k = max(sil_scores, key=lambda k: (sil_scores[k], -k))
        print(f"[pam] Best k={chosen_k} with silhouette={sil_scores[chosen_k]:.4f}")
    print()

    # Step 5: final partition and projections
    print(f"Step 5: PAM with k={chosen_k} and 2D projections")
    print("-" * 50)
    result = pam(D, chosen_k, max_iter=PAM_MAX_ITER, label="pam")
    plot_silhouette_profile(D, result, os.path.join(FIGURES_DIR, "pam_silhouette_profile.png"),
                            f"Silhouette widths, k={chosen_k}")

    coords = tsne_embedding(D, seed=seed)
    plot_embedding(coords, result.labels, os.path.join(FIGURES_DIR, "pam_tsne.png"),
                   f"t-SNE of Gower distance, PAM k={chosen_k}", "t-SNE 1", "t-SNE 2")
    famd_xy = famd_coordinates(records, seed=seed)
    plot_embedding(famd_xy, result.labels, os.path.join(FIGURES_DIR, "pam_famd.png"),
                   f"FAMD factor map, PAM k={chosen_k}", "Factor 1", "Factor 2")
    print()

    # Step 6: report
    print("Step 6: Cluster report")
    print("-" * 50)
    df_join = attach_clusters(result, records, df_clean, key=KEY_COL)
    df_join[[KEY_COL, "cluster", "medoid_key"]].to_csv(
        os.path.join(REPORT_DIR, "account_clusters.csv"), index=False)

    rate_table = cluster_rate_table(df_join, rates)
    overall = overall_rates(df_clean, rates)
    rate_table.to_csv(os.path.join(REPORT_DIR, "cluster_rates.csv"), index=False)

    for rate in rates:
        for col in CROSSTAB_COLS:
            ct = rate_crosstab(df_join, rate, col)
            ct.to_csv(os.path.join(REPORT_DIR, f"{rate.name}_by_cluster_{col}.csv"))

    df_profiles = create_cluster_profiles(df_join, rate_table, CLUSTER_ATTRS)
    df_profiles.to_csv(os.path.join(REPORT_DIR, "cluster_profiles.csv"), index=False)

    recommendations = create_recommendations(df_profiles, overall, rates)
    with open(os.path.join(REPORT_DIR, "recommendations.txt"), "w", encoding="utf-8") as f:
        f.write("\n".join(recommendations))

    write_summary_report(os.path.join(REPORT_DIR, "SEGMENTATION_SUMMARY.txt"), df_clean, chosen_k,
                         sil_scores, result, df_profiles, overall, recommendations,
                         forced=force_k is not None)

    print("\n" + "=" * 60)
    print("ANALYSIS COMPLETE!")
    print("=" * 60)
    print(f"Analysis completed at: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  - Figures: {FIGURES_DIR}/")
    print(f"  - Report tables: {REPORT_DIR}/")

    return {
        "chosen_k": chosen_k,
        "silhouette": sil_scores,
        "result": result,
        "records": records,
        "dissimilarity": D,
        "profiles": df_profiles,
        "rates": rate_table,
        "overall": overall,
    }


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Segment subscription accounts with Gower distance and PAM")
    parser.add_argument("--input-csv", default=CSV_PATH)
    parser.add_argument("--k", type=int, default=FORCE_K, help="force the cluster count")
    parser.add_argument("--k-min", type=int, default=min(K_RANGE))
    parser.add_argument("--k-max", type=int, default=max(K_RANGE))
    parser.add_argument("--seed", type=int, default=SEED)
    parser.add_argument("--extend-levels", action="store_true",
                        help="accept unexpected categorical values as new levels instead of failing")
    return parser


def main() -> None:
    args = _build_parser().parse_args()
    np.random.seed(args.seed)
    res = run_full_analysis(
        csv_path=args.input_csv,
        force_k=args.k,
        k_range=range(args.k_min, args.k_max + 1),
        seed=args.seed,
        unexpected="extend" if args.extend_levels else "reject",
    )
    print(f"\nFinal: {res['chosen_k']} clusters, silhouette={res['silhouette'].get(res['chosen_k'], float('nan')):.3f}")


if __name__ == "__main__":
    main()
