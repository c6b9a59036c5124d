# 2D projections of the accounts for visual inspection only
import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
import prince
from sklearn.manifold import TSNE

try:
    from .config import DPI, SEED, TSNE_PERPLEXITY
    from .dissimilarity import validate_dissimilarity
    from .schema import AttributeKind, RecordSet
except ImportError:
    from config import DPI, SEED, TSNE_PERPLEXITY
    from dissimilarity import validate_dissimilarity
    from schema import AttributeKind, RecordSet


def tsne_embedding(D: np.ndarray, seed: int = SEED, perplexity: float = TSNE_PERPLEXITY) -> np.ndarray:
    """
    t-SNE of a precomputed dissimilarity matrix.

    Perplexity is capped for small record sets since t-SNE needs it below N.

    Returns:
        np.ndarray of shape (N, 2)
    """
    D = validate_dissimilarity(D)
    n = D.shape[0]
    if n < 2:
        raise ValueError("t-SNE needs at least two records")
    p = min(perplexity, max(1.0, (n - 1) / 3.0))
    print(f"[tsne] Embedding {n:,} records (perplexity={p:.1f}, seed={seed})...")
    tsne = TSNE(n_components=2, metric="precomputed", init="random", perplexity=p, random_state=seed)
    return tsne.fit_transform(D)


def famd_coordinates(records: RecordSet, seed: int = SEED) -> np.ndarray:
    """
    Factor map of the clustering attributes on the first two components.

    Nominal attributes enter as categories, ordered ranks and numeric values as
    quantities (missing values take the column median). Falls back to MCA or
    PCA when only one kind of variable is present.
    """
    frame = pd.DataFrame(index=range(len(records)))
    cat_cols, num_cols = [], []
    for attr in records.schema:
        col = records.columns[attr.name]
        if attr.kind is AttributeKind.NOMINAL:
            frame[attr.name] = pd.Series(col, dtype="object").astype("category")
            cat_cols.append(attr.name)
        else:
            s = pd.Series(col, dtype=float)
            frame[attr.name] = s.fillna(s.median() if s.notna().any() else 0.0)
            num_cols.append(attr.name)

    if cat_cols and num_cols:
        model = prince.FAMD(n_components=2, random_state=seed)
    elif cat_cols:
        model = prince.MCA(n_components=2, random_state=seed)
    else:
        model = prince.PCA(n_components=2, random_state=seed)

    print(f"[famd] {type(model).__name__} on {len(cat_cols)} categorical + {len(num_cols)} numeric attributes")
    model.fit(frame)
    coords = model.row_coordinates(frame)
    return np.asarray(coords)[:, :2]


def plot_embedding(coords: np.ndarray, labels: np.ndarray, path: str, title: str,
                   xlabel: str = "Dim 1", ylabel: str = "Dim 2"):
    """Scatter of a 2D projection coloured by cluster."""
    try:
        plt.figure(figsize=(10, 6))
        n_clusters = len(np.unique(labels))
        palette = sns.color_palette("tab10", n_colors=n_clusters)
        sns.scatterplot(x=coords[:, 0], y=coords[:, 1], hue=np.asarray(labels), palette=palette, s=12)
        plt.title(title)
        plt.xlabel(xlabel)
        plt.ylabel(ylabel)
        plt.legend(title="Cluster", bbox_to_anchor=(1.05, 1), loc="upper left")
        plt.tight_layout()
        plt.savefig(path, dpi=DPI)
    except ValueError as e:
        print(f"Warning: Could not create projection plot {path}: {e}")
    finally:
        plt.close()
