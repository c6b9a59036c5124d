# Subscription Account Segmentation

"""
Segmentation of subscription accounts on mixed-type attributes:

- data_cleaning.py: Loading, deduplication, value normalization, price repair, snapshot
- exploration.py: Summary tables and charts of the cleaned table
- schema.py: Attribute schema and normalizer
- dissimilarity.py: Gower dissimilarity matrix
- clustering.py: Partitioning around medoids and silhouette sweep
- projection.py: t-SNE and FAMD maps for plotting
- reporting.py: Per-cluster rates, profiles and recommendations
- main.py: Orchestration script that ties everything together
"""

__version__ = "1.0.0"
__author__ = "Customer Analytics Team"
